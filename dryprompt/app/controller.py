"""
Application Controller

Owns the application state machine:

    starting -> configuration-needed | permission-needed -> idle <-> analyzing
    error (from any state) -> idle after error_recovery_delay

and the timers around it: permission polling, the recurring analysis
schedule, the one-shot initial check and error recovery. At most one
analysis run is in flight at a time; the guard is set before the first
await of a run.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..analysis.pipeline import AnalysisPipeline, PipelineResult
from ..capture.log_store import LogStore
from ..capture.monitor import CaptureCoordinator
from ..common.config import SchedulerConfig
from ..common.permissions import PermissionProvider
from ..common.secret_store import SecretStore, SecretStoreError
from .notifier import Notifier

logger = logging.getLogger("dryprompt.app.controller")


class AppState(str, Enum):
    STARTING = "starting"
    CONFIGURATION_NEEDED = "configuration-needed"
    PERMISSION_NEEDED = "permission-needed"
    IDLE = "idle"
    ANALYZING = "analyzing"
    ERROR = "error"


StateObserver = Callable[[AppState, bool], None]


def _cancel(task: Optional[asyncio.Task]) -> Optional[asyncio.Task]:
    """Cancel a task unless it is the caller; returns it if it should be awaited."""
    if task is None or task.done():
        return None
    if task is asyncio.current_task():
        return None
    task.cancel()
    return task


class ApplicationController:
    """
    Central coordinator between capture, analysis and the shell.

    Usage:
        controller = ApplicationController(secret_store, permissions, coordinator,
                                           pipeline, log_store, notifier, config.scheduler)
        await controller.initialize()
        ...
        await controller.cleanup()
    """

    def __init__(
        self,
        secret_store: SecretStore,
        permissions: PermissionProvider,
        coordinator: CaptureCoordinator,
        pipeline: AnalysisPipeline,
        log_store: LogStore,
        notifier: Optional[Notifier] = None,
        config: Optional[SchedulerConfig] = None,
    ):
        self._secret_store = secret_store
        self._permissions = permissions
        self._coordinator = coordinator
        self._pipeline = pipeline
        self._log_store = log_store
        self._notifier = notifier
        self._config = config or SchedulerConfig()

        self._state = AppState.STARTING
        self._is_analyzing = False
        self._last_analysis_time: Optional[datetime] = None
        self._next_analysis_time: Optional[datetime] = None
        self._last_result: Optional[PipelineResult] = None
        self._observers: List[StateObserver] = []

        self._monitoring_started = False
        self._scheduler_task: Optional[asyncio.Task] = None
        self._initial_check_task: Optional[asyncio.Task] = None
        self._recovery_task: Optional[asyncio.Task] = None
        self._permission_unsubscribe: Optional[Callable[[], None]] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def is_analyzing(self) -> bool:
        return self._is_analyzing

    @property
    def last_result(self) -> Optional[PipelineResult]:
        return self._last_result

    def add_observer(self, observer: StateObserver) -> Callable[[], None]:
        """Register a state observer; returns a function that unregisters it."""
        self._observers.append(observer)

        def unsubscribe():
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _set_state(self, new_state: AppState) -> None:
        if self._state == new_state:
            return
        logger.info("State change: %s -> %s", self._state.value, new_state.value)
        self._state = new_state

        for observer in list(self._observers):
            try:
                observer(new_state, self._is_analyzing)
            except Exception as e:
                logger.error("Error in state change observer: %s", e)

        if self._notifier is not None:
            try:
                self._notifier.on_state_change(new_state.value, self._is_analyzing)
            except Exception as e:
                logger.error("Notifier failed on state change: %s", e)

    def _enter_error(self) -> None:
        """Move to error and (re)arm the recovery timer."""
        self._set_state(AppState.ERROR)
        _cancel(self._recovery_task)
        self._recovery_task = asyncio.get_running_loop().create_task(self._recover_after_delay())

    async def _recover_after_delay(self) -> None:
        await asyncio.sleep(self._config.error_recovery_delay)
        self._recovery_task = None
        if self._state == AppState.ERROR:
            logger.info("Recovering from error state")
            self._set_state(AppState.IDLE)

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        logger.info("Initializing application state...")
        try:
            await self._bootstrap()
        except Exception as e:
            logger.exception("Error during app initialization: %s", e)
            self._enter_error()

    async def _bootstrap(self, request_permission: bool = False) -> None:
        has_credential = await asyncio.to_thread(self._secret_store.has_credential)
        if not has_credential:
            logger.info("No API key found")
            self._set_state(AppState.CONFIGURATION_NEEDED)
            return

        has_permission = await asyncio.to_thread(self._permissions.has_permission)
        if not has_permission:
            logger.info("Accessibility permission required")
            self._set_state(AppState.PERMISSION_NEEDED)
            self._start_permission_monitoring()
            if request_permission:
                await asyncio.to_thread(self._permissions.request_permission)
            return

        await self._start_monitoring()
        if self._state != AppState.ANALYZING:
            self._set_state(AppState.IDLE)

    async def _start_monitoring(self) -> None:
        if self._monitoring_started:
            return
        self._monitoring_started = True
        logger.info("API key and permissions found, starting monitoring...")
        try:
            await self._coordinator.start()
        except Exception:
            self._monitoring_started = False
            raise

        if self._notifier is not None:
            try:
                self._notifier.on_monitoring_started(self._coordinator.status()["capture_mode"])
            except Exception as e:
                logger.error("Notifier failed on monitoring start: %s", e)

        self._start_scheduler()

    def _start_permission_monitoring(self) -> None:
        if self._permission_unsubscribe is not None:
            return
        logger.info("Starting permission monitoring...")
        self._permission_unsubscribe = self._permissions.monitor_changes(
            self._on_permission_change, self._config.permission_poll_interval
        )

    def _stop_permission_monitoring(self) -> None:
        unsubscribe = self._permission_unsubscribe
        self._permission_unsubscribe = None
        if unsubscribe is not None:
            unsubscribe()

    async def _on_permission_change(self, granted: bool) -> None:
        if not granted:
            return
        logger.info("Accessibility permission granted")
        self._stop_permission_monitoring()
        try:
            has_credential = await asyncio.to_thread(self._secret_store.has_credential)
            if not has_credential:
                self._set_state(AppState.CONFIGURATION_NEEDED)
                return
            await self._start_monitoring()
            if self._state != AppState.ANALYZING:
                self._set_state(AppState.IDLE)
        except Exception as e:
            logger.exception("Error handling permission grant: %s", e)
            self._enter_error()

    async def handle_credential_update(self, credential: str) -> None:
        """
        Store a new API key and re-run the bootstrap.

        Raises:
            ValueError: if the credential is empty
        """
        try:
            await asyncio.to_thread(self._secret_store.set_credential, credential)
        except SecretStoreError as e:
            logger.error("Error saving API key: %s", e)
            self._enter_error()
            return

        try:
            await self._bootstrap(request_permission=True)
        except Exception as e:
            logger.exception("Error handling API key update: %s", e)
            self._enter_error()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _start_scheduler(self) -> None:
        if self._scheduler_task is not None:
            logger.info("Automated analysis already scheduled")
            return
        logger.info(
            "Starting automated analysis (every %.0f minutes)",
            self._config.analysis_interval / 60,
        )
        self._schedule_next_analysis()
        loop = asyncio.get_running_loop()
        self._scheduler_task = loop.create_task(self._scheduler_loop())
        self._initial_check_task = loop.create_task(self._initial_check())

    def _schedule_next_analysis(self) -> None:
        self._next_analysis_time = datetime.now(timezone.utc) + timedelta(
            seconds=self._config.analysis_interval
        )

    async def _scheduler_loop(self) -> None:
        while True:
            self._schedule_next_analysis()
            await asyncio.sleep(self._config.analysis_interval)
            if self._state == AppState.IDLE and not self._is_analyzing:
                # A started run always completes, even if the scheduler is cancelled
                await asyncio.shield(self.run_analysis(manual=False))

    async def _initial_check(self) -> None:
        await asyncio.sleep(self._config.initial_check_delay)
        self._initial_check_task = None
        if self._state != AppState.IDLE or self._is_analyzing:
            return

        count = await asyncio.to_thread(self._log_store.count)
        if count < self._config.min_entries_for_analysis:
            logger.info(
                "Found %d log entries (minimum %d), skipping initial analysis",
                count, self._config.min_entries_for_analysis,
            )
            return

        if self._state == AppState.IDLE and not self._is_analyzing:
            logger.info("Found %d log entries, running initial analysis", count)
            await asyncio.shield(self.run_analysis(manual=False))

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def trigger_manual_analysis(self) -> Optional[PipelineResult]:
        if self._is_analyzing:
            logger.info("Analysis already in progress, skipping manual trigger")
            return None
        return await self.run_analysis(manual=True)

    async def run_analysis(self, manual: bool = False) -> Optional[PipelineResult]:
        """
        Run the pipeline once.

        Returns:
            The pipeline result, or None if a run was already in flight or
            the pipeline raised
        """
        if self._is_analyzing:
            logger.info("Analysis already in progress")
            return None
        self._is_analyzing = True
        self._set_state(AppState.ANALYZING)
        logger.info("Starting %s analysis...", "manual" if manual else "automated")

        try:
            result = await self._pipeline.run()
        except Exception as e:
            logger.exception("Analysis failed: %s", e)
            self._is_analyzing = False
            self._enter_error()
            return None
        finally:
            self._is_analyzing = False

        self._last_analysis_time = datetime.now(timezone.utc)
        self._last_result = result
        logger.info("Analysis complete: %d suggestions generated", len(result.suggestions))

        if self._notifier is not None:
            try:
                self._notifier.on_analysis_complete(result.suggestions)
            except Exception as e:
                logger.error("Notifier failed on analysis complete: %s", e)

        if self._state == AppState.ANALYZING:
            self._set_state(AppState.IDLE)
        return result

    # ------------------------------------------------------------------
    # Teardown / status
    # ------------------------------------------------------------------

    async def cleanup(self) -> None:
        """Stop every timer and the coordinator; back to starting. Idempotent."""
        logger.info("Cleaning up app controller...")
        pending = [
            _cancel(self._scheduler_task),
            _cancel(self._initial_check_task),
            _cancel(self._recovery_task),
        ]
        self._scheduler_task = None
        self._initial_check_task = None
        self._recovery_task = None
        self._next_analysis_time = None
        await asyncio.gather(*(t for t in pending if t is not None), return_exceptions=True)

        self._stop_permission_monitoring()

        if self._monitoring_started:
            self._monitoring_started = False
            await self._coordinator.stop()

        self._set_state(AppState.STARTING)

    def detailed_status(self) -> Dict[str, Any]:
        last = self._last_result
        return {
            "state": self._state.value,
            "is_analyzing": self._is_analyzing,
            "last_analysis_time": self._last_analysis_time.isoformat() if self._last_analysis_time else None,
            "next_analysis_time": (
                self._next_analysis_time.isoformat()
                if self._scheduler_task is not None and self._next_analysis_time
                else None
            ),
            "monitoring_active": self._coordinator.is_running,
            "capture": self._coordinator.status(),
            "last_result": {
                "suggestions": len(last.suggestions),
                "errors": [e.to_dict() for e in last.errors],
                "record": last.record.model_dump() if last.record else None,
                "cluster_stats": last.cluster_stats,
            } if last else None,
        }
