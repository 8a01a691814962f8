"""
Runtime wiring.

Builds every component from a DryPromptConfig and hands back one object
holding them. The server and CLI both start from build_runtime().
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..analysis.pipeline import AnalysisPipeline, ClientFactory
from ..capture.input_backend import select_backend
from ..capture.log_store import LogStore
from ..capture.monitor import CaptureCoordinator
from ..capture.window_probe import WindowProbe
from ..common.analytics import AnalyticsStore
from ..common.config import DryPromptConfig, ensure_directories, load_config
from ..common.embedding_service import EmbeddingService
from ..common.llm_client import LLMClient
from ..common.permissions import SystemPermissionProvider
from ..common.secret_store import FileSecretStore
from .controller import ApplicationController
from .notifier import LoggingNotifier

logger = logging.getLogger("dryprompt.app.runtime")


def make_client_factory(config: DryPromptConfig) -> ClientFactory:
    """Provider clients are rebuilt per run so a new API key applies immediately."""

    def factory(credential: str):
        embedder = EmbeddingService(credential, model=config.analysis.embedding_model)
        if not embedder.is_available:
            raise RuntimeError("Embedding service unavailable")

        if config.llm.provider == "anthropic":
            llm = LLMClient(
                provider="anthropic",
                model=config.llm.anthropic_model,
                anthropic_api_key=config.llm.anthropic_api_key,
                temperature=config.llm.temperature,
                max_tokens=config.llm.max_tokens,
            )
        else:
            llm = LLMClient(
                provider="openai",
                model=config.llm.openai_model,
                openai_api_key=credential,
                temperature=config.llm.temperature,
                max_tokens=config.llm.max_tokens,
            )
        if not llm.is_available:
            raise RuntimeError(f"{config.llm.provider} completion client unavailable")

        return embedder.embed, llm.complete

    return factory


@dataclass
class Runtime:
    config: DryPromptConfig
    log_store: LogStore
    secret_store: FileSecretStore
    analytics: AnalyticsStore
    coordinator: CaptureCoordinator
    pipeline: AnalysisPipeline
    notifier: LoggingNotifier
    controller: ApplicationController


def build_runtime(config: Optional[DryPromptConfig] = None) -> Runtime:
    config = config or load_config()
    ensure_directories(config)

    log_store = LogStore(Path(config.storage.log_path), Path(config.storage.archive_dir))
    secret_store = FileSecretStore()
    analytics = AnalyticsStore(config.analytics.supabase_url, config.analytics.supabase_key)

    backend = select_backend(config.capture.prefer_native_capture)
    coordinator = CaptureCoordinator(
        log_store,
        config.capture,
        WindowProbe(config.capture.target_process_names),
        backend,
    )
    pipeline = AnalysisPipeline(
        log_store,
        secret_store,
        make_client_factory(config),
        config.analysis,
        analytics=analytics,
        archive_keep=config.storage.archive_keep,
    )
    notifier = LoggingNotifier()
    controller = ApplicationController(
        secret_store,
        SystemPermissionProvider(),
        coordinator,
        pipeline,
        log_store,
        notifier=notifier,
        config=config.scheduler,
    )
    logger.info("Runtime ready (capture backend: %s)", backend.mode.value)
    return Runtime(
        config=config,
        log_store=log_store,
        secret_store=secret_store,
        analytics=analytics,
        coordinator=coordinator,
        pipeline=pipeline,
        notifier=notifier,
        controller=controller,
    )
