"""
Analysis Pipeline

One analysis run over the current prompt log:

    LOAD -> EMBED -> CLUSTER -> SYNTHESIZE -> PERSIST -> DONE

Routing is a pure function of the run state (next_stage). A fatal error in
any stage jumps straight to PERSIST, so every run archives what it read and
records statistics. Stage errors are collected and returned; run() never
raises for a failure inside a stage.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..capture.log_store import LogStore, LogStoreError
from ..common.analytics import AnalyticsStore
from ..common.config import AnalysisConfig
from ..common.errors import ProviderError
from ..common.schemas import AnalysisRecord, LogEntry, Suggestion
from ..common.secret_store import SecretStore, SecretStoreError
from .clustering import Cluster, cluster_embeddings, clustering_stats
from .embedding import EmbeddingResult, NoEmbeddableTextError, embed_entries
from .synthesis import synthesize_suggestions

logger = logging.getLogger("dryprompt.analysis.pipeline")

EmbedFn = Callable[[List[str]], List[List[float]]]
CompleteFn = Callable[[str], str]
# Builds the provider calls for one run from the stored credential
ClientFactory = Callable[[str], Tuple[EmbedFn, CompleteFn]]


class Stage(str, Enum):
    LOAD = "load"
    EMBED = "embed"
    CLUSTER = "cluster"
    SYNTHESIZE = "synthesize"
    PERSIST = "persist"
    DONE = "done"


_STAGE_ORDER = [Stage.LOAD, Stage.EMBED, Stage.CLUSTER, Stage.SYNTHESIZE, Stage.PERSIST, Stage.DONE]


@dataclass
class StageError:
    """An error recorded by a stage. Fatal errors short-circuit to PERSIST."""
    stage: Stage
    message: str
    fatal: bool
    kind: str = "other"

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "message": self.message,
            "fatal": self.fatal,
            "kind": self.kind,
        }


@dataclass
class PipelineState:
    """Per-run state. Each stage output stays None until that stage produced it."""
    stage: Stage = Stage.LOAD
    entries: Optional[List[LogEntry]] = None
    embeddings: Optional[List[EmbeddingResult]] = None
    clusters: Optional[List[Cluster]] = None
    suggestions: Optional[List[Suggestion]] = None
    errors: List[StageError] = field(default_factory=list)
    record: Optional[AnalysisRecord] = None
    archive_path: Optional[Path] = None
    started_at: float = field(default_factory=time.monotonic)
    embed_fn: Optional[Callable] = field(default=None, repr=False)
    complete_fn: Optional[Callable] = field(default=None, repr=False)

    @property
    def has_fatal_error(self) -> bool:
        return any(error.fatal for error in self.errors)

    def fail(self, message: str, fatal: bool, kind: str = "other") -> None:
        self.errors.append(StageError(stage=self.stage, message=message, fatal=fatal, kind=kind))


def next_stage(state: PipelineState) -> Stage:
    """
    Stage to run after state.stage.

    PERSIST is always reached before DONE; a fatal error skips the stages in
    between.
    """
    if state.stage in (Stage.PERSIST, Stage.DONE):
        return Stage.DONE
    if state.has_fatal_error:
        return Stage.PERSIST
    return _STAGE_ORDER[_STAGE_ORDER.index(state.stage) + 1]


@dataclass
class PipelineResult:
    suggestions: List[Suggestion]
    errors: List[StageError]
    record: Optional[AnalysisRecord] = None
    archive_path: Optional[Path] = None
    cluster_stats: Optional[Dict[str, Any]] = None

    @property
    def has_fatal_error(self) -> bool:
        return any(error.fatal for error in self.errors)

    def to_dict(self) -> dict:
        return {
            "suggestions": [s.model_dump() for s in self.suggestions],
            "errors": [e.to_dict() for e in self.errors],
            "record": self.record.model_dump() if self.record else None,
            "archive_path": str(self.archive_path) if self.archive_path else None,
            "cluster_stats": self.cluster_stats,
        }


def _as_async(fn: Callable) -> Callable[..., Awaitable]:
    """Coroutine functions pass through; blocking callables run in a worker thread."""
    if inspect.iscoroutinefunction(fn):
        return fn

    async def wrapper(*args):
        result = await asyncio.to_thread(fn, *args)
        if inspect.isawaitable(result):
            result = await result
        return result

    return wrapper


class AnalysisPipeline:
    """
    Runs embed/cluster/synthesize over the prompt log and archives it.

    Usage:
        pipeline = AnalysisPipeline(log_store, secret_store, client_factory, config.analysis)
        result = await pipeline.run()
    """

    def __init__(
        self,
        log_store: LogStore,
        secret_store: SecretStore,
        client_factory: ClientFactory,
        config: Optional[AnalysisConfig] = None,
        analytics: Optional[AnalyticsStore] = None,
        archive_keep: int = 30,
    ):
        self._log_store = log_store
        self._secret_store = secret_store
        self._client_factory = client_factory
        self._config = config or AnalysisConfig()
        self._analytics = analytics
        self._archive_keep = archive_keep
        self._handlers = {
            Stage.LOAD: self._load,
            Stage.EMBED: self._embed,
            Stage.CLUSTER: self._cluster,
            Stage.SYNTHESIZE: self._synthesize,
            Stage.PERSIST: self._persist,
        }

    async def run(self) -> PipelineResult:
        state = PipelineState()
        logger.info("Starting analysis run")

        while state.stage != Stage.DONE:
            await self._handlers[state.stage](state)
            state.stage = next_stage(state)

        result = PipelineResult(
            suggestions=list(state.suggestions or []),
            errors=list(state.errors),
            record=state.record,
            archive_path=state.archive_path,
            cluster_stats=clustering_stats(state.clusters) if state.clusters is not None else None,
        )
        logger.info(
            "Analysis run finished: %d suggestions, %d errors (%d fatal)",
            len(result.suggestions),
            len(result.errors),
            sum(1 for e in result.errors if e.fatal),
        )
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _load(self, state: PipelineState) -> None:
        if state.entries is not None:
            return
        state.entries = await asyncio.to_thread(self._log_store.read_all)
        logger.info("Loaded %d log entries", len(state.entries))
        if not state.entries:
            state.fail("No log entries found to analyze", fatal=True, kind="empty_log")

    async def _embed(self, state: PipelineState) -> None:
        if state.embeddings is not None:
            return

        try:
            credential = await asyncio.to_thread(self._secret_store.get_credential)
        except SecretStoreError as e:
            state.fail(f"Could not read API key: {e}", fatal=True, kind="auth")
            return
        if not credential:
            state.fail("No OpenAI API key found", fatal=True, kind="auth")
            return

        try:
            embed_fn, complete_fn = self._client_factory(credential)
        except (ProviderError, RuntimeError, ValueError) as e:
            state.fail(f"Failed to initialize provider clients: {e}", fatal=True, kind="auth")
            return
        state.embed_fn = _as_async(embed_fn)
        state.complete_fn = _as_async(complete_fn)

        try:
            state.embeddings = await embed_entries(
                state.entries,
                state.embed_fn,
                batch_size=self._config.embedding_batch_size,
                delay=self._config.embedding_batch_delay,
                min_length=self._config.min_embed_length,
            )
        except NoEmbeddableTextError as e:
            state.fail(str(e), fatal=True, kind="empty_log")
        except ProviderError as e:
            logger.error("Embedding failed (%s): %s", e.kind, e)
            state.fail(f"Failed to generate embeddings: {e}", fatal=True, kind=e.kind)
        except (RuntimeError, ValueError) as e:
            logger.error("Embedding failed: %s", e)
            state.fail(f"Failed to generate embeddings: {e}", fatal=True)

    async def _cluster(self, state: PipelineState) -> None:
        if state.clusters is not None:
            return
        state.clusters = cluster_embeddings(
            state.embeddings,
            threshold=self._config.similarity_threshold,
            min_cluster_size=self._config.min_cluster_size,
            max_clusters=self._config.max_clusters,
        )
        stats = clustering_stats(state.clusters)
        logger.info(
            "Found %d clusters covering %d prompts (largest %d)",
            stats["total_clusters"], stats["total_items"], stats["largest_size"],
        )

    async def _synthesize(self, state: PipelineState) -> None:
        if state.suggestions is not None:
            return
        if not state.clusters:
            logger.info("No clusters found, nothing to synthesize")
            state.suggestions = []
            return

        suggestions, errors = await synthesize_suggestions(
            state.clusters,
            state.complete_fn,
            delay=self._config.synthesis_delay,
            sample_size=self._config.synthesis_sample_size,
            trigger_prefix=self._config.trigger_prefix,
        )
        for message in errors:
            state.fail(message, fatal=False, kind="synthesis")
        state.suggestions = suggestions

    async def _persist(self, state: PipelineState) -> None:
        elapsed_ms = int((time.monotonic() - state.started_at) * 1000)
        state.record = AnalysisRecord(
            total_prompts=len(state.entries or []),
            clusters_found=len(state.clusters or []),
            suggestions_generated=len(state.suggestions or []),
            processing_time_ms=elapsed_ms,
        )

        if self._analytics is not None and self._analytics.is_available:
            if not await self._analytics.store_analysis_result(state.record):
                state.fail("Failed to store analysis result", fatal=False, kind="analytics")
            stored = []
            for suggestion in state.suggestions or []:
                row_id = await self._analytics.store_suggestion(suggestion)
                if row_id is not None:
                    suggestion = suggestion.model_copy(update={"persisted_id": row_id})
                stored.append(suggestion)
            if state.suggestions is not None:
                state.suggestions = stored

        if state.entries:
            try:
                state.archive_path = await asyncio.to_thread(
                    self._log_store.archive_and_reset, len(state.entries)
                )
            except LogStoreError as e:
                logger.error("Error archiving logs: %s", e)
                state.fail(f"Failed to archive processed logs: {e}", fatal=False, kind="archive")

        try:
            await asyncio.to_thread(self._log_store.prune_archives, self._archive_keep)
        except (OSError, ValueError) as e:
            state.fail(f"Failed to prune archives: {e}", fatal=False, kind="archive")
