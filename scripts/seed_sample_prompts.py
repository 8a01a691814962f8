#!/usr/bin/env python3
"""
Sample Prompt Seeding Script

Writes the built-in sample prompts straight into the prompt log, bypassing
capture, so an analysis run can be exercised without typing in the target
application.

Usage:
    python scripts/seed_sample_prompts.py [--dry-run] [--repeat 2] [--clear]
"""

import sys
import argparse
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def main():
    parser = argparse.ArgumentParser(description="Seed the prompt log with sample prompts")
    parser.add_argument("--dry-run", action="store_true", help="Print what would be done without executing")
    parser.add_argument("--repeat", type=int, default=1, help="Number of times to write the sample set")
    parser.add_argument("--clear", action="store_true", help="Clear the current prompt log first")
    parser.add_argument("--log-path", type=str, default=None, help="Prompt log file (default: from config)")
    args = parser.parse_args()

    from dryprompt.capture.log_store import LogStore, LogStoreError
    from dryprompt.capture.monitor import SAMPLE_PROCESS_NAME, SAMPLE_PROMPTS, SAMPLE_WINDOW_TITLE
    from dryprompt.common.config import ensure_directories, load_config

    if args.repeat < 1:
        print("[Seed] ERROR: --repeat must be at least 1")
        sys.exit(1)

    config = load_config()
    log_path = Path(args.log_path) if args.log_path else Path(config.storage.log_path)
    store = LogStore(log_path, Path(config.storage.archive_dir))

    print(f"[Seed] Prompt log: {store.log_path}")
    print(f"[Seed] Current entries: {store.count()}")

    if args.dry_run:
        print("[Seed] DRY RUN - no changes will be made")
        if args.clear:
            print("[Seed] Would clear the current prompt log")
        print(f"[Seed] Would write {len(SAMPLE_PROMPTS) * args.repeat} entries:")
        for prompt in SAMPLE_PROMPTS:
            print(f"[Seed]   {prompt}")
        return

    ensure_directories(config)

    try:
        if args.clear:
            store.clear()
            print("[Seed] Cleared prompt log")

        written = 0
        for _ in range(args.repeat):
            for prompt in SAMPLE_PROMPTS:
                if store.log_text_input(prompt, SAMPLE_WINDOW_TITLE, SAMPLE_PROCESS_NAME) is not None:
                    written += 1
    except LogStoreError as e:
        print(f"[Seed] ERROR: {e}")
        sys.exit(1)

    print(f"[Seed] Complete: {written} written, {store.count()} entries in log")


if __name__ == "__main__":
    main()
