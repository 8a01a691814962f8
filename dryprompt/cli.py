"""
DryPrompt command line.

Usage:
    dryprompt serve
    dryprompt analyze
    dryprompt add-samples
    dryprompt set-key [API_KEY]
    dryprompt configure [--target-process NAME ...] [--interval MINUTES] ...
    dryprompt status
"""

import argparse
import asyncio
import getpass
import json
import logging
import os
import sys

from .common.config import load_config


def _configure_logging(verbose: bool) -> None:
    level = "DEBUG" if verbose else os.getenv("DRYPROMPT_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def _analyze() -> int:
    from .app.runtime import build_runtime

    rt = build_runtime()
    await rt.analytics.initialize()
    result = await rt.controller.trigger_manual_analysis()
    if result is None:
        print("Analysis failed; see log output", file=sys.stderr)
        return 1
    print(json.dumps(result.to_dict(), indent=2))
    return 1 if result.has_fatal_error else 0


async def _add_samples() -> int:
    from .app.runtime import build_runtime

    rt = build_runtime()
    added = await rt.coordinator.add_sample_data()
    print(f"Added {added} sample prompts ({rt.log_store.count()} entries in log)")
    return 0


def _set_key(api_key: str) -> int:
    from .common.secret_store import FileSecretStore

    key = api_key or getpass.getpass("OpenAI API key: ")
    try:
        FileSecretStore().set_credential(key)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print("API key saved")
    return 0


def _configure(args) -> int:
    from .common.config import CONFIG_PATH, save_config

    config = load_config()
    if args.target_process:
        config.capture.target_process_names = args.target_process
    if args.interval is not None:
        if args.interval <= 0:
            print("Error: --interval must be positive", file=sys.stderr)
            return 1
        config.scheduler.analysis_interval = args.interval * 60
    if args.threshold is not None:
        if not 0 < args.threshold <= 1:
            print("Error: --threshold must be in (0, 1]", file=sys.stderr)
            return 1
        config.analysis.similarity_threshold = args.threshold
    if args.provider:
        config.llm.provider = args.provider
    if args.supabase_url:
        config.analytics.supabase_url = args.supabase_url
        config._env_sourced_keys.discard("supabase_url")
    if args.supabase_key:
        config.analytics.supabase_key = args.supabase_key
        config._env_sourced_keys.discard("supabase_key")

    save_config(config)
    print(f"Configuration saved to {CONFIG_PATH}")
    return 0


def _status() -> int:
    from .capture.log_store import LogStore
    from .common.secret_store import FileSecretStore
    from pathlib import Path

    config = load_config()
    store = LogStore(Path(config.storage.log_path), Path(config.storage.archive_dir))
    status = {
        "log_path": config.storage.log_path,
        "log_entries": store.count(),
        "archives": len(store.list_archives()),
        "api_key_configured": FileSecretStore().has_credential(),
        "target_processes": config.capture.target_process_names,
        "llm_provider": config.llm.provider,
        "analytics_configured": bool(config.analytics.supabase_url and config.analytics.supabase_key),
    }
    print(json.dumps(status, indent=2))
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="dryprompt", description="Detect repeated prompts and suggest shortcuts")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run capture, scheduled analysis and the local control server")
    sub.add_parser("analyze", help="Run one analysis over the current prompt log")
    sub.add_parser("add-samples", help="Log the built-in sample prompts")
    set_key = sub.add_parser("set-key", help="Store the OpenAI API key")
    set_key.add_argument("api_key", nargs="?", default="", help="API key (prompted if omitted)")
    configure = sub.add_parser("configure", help="Persist settings to the config file")
    configure.add_argument("--target-process", action="append", help="Process name to capture from (repeatable)")
    configure.add_argument("--interval", type=float, help="Minutes between automated analyses")
    configure.add_argument("--threshold", type=float, help="Cosine similarity threshold for clustering")
    configure.add_argument("--provider", choices=["openai", "anthropic"], help="Completion provider")
    configure.add_argument("--supabase-url", help="Supabase project URL for analytics")
    configure.add_argument("--supabase-key", help="Supabase anon key for analytics")
    sub.add_parser("status", help="Show log and configuration status")

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "serve":
        from .app.server import run_server

        run_server()
        return 0
    if args.command == "analyze":
        return asyncio.run(_analyze())
    if args.command == "add-samples":
        return asyncio.run(_add_samples())
    if args.command == "set-key":
        return _set_key(args.api_key)
    if args.command == "configure":
        return _configure(args)
    return _status()


if __name__ == "__main__":
    sys.exit(main())
