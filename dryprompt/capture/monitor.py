"""
Capture Coordinator

Two-tier polling over the target application:

1. Coarse tier (every process_check_interval): is the target process running?
   Presence starts the fine tier; absence stops it and disables capture.
2. Fine tier (every window_check_interval): is the target window focused?
   Focus enables a capture session; losing focus flushes and disables it.

During a session key events from the input backend thread are handed to the
event loop, buffered, and flushed on submit or after buffer_timeout seconds
of inactivity. Flushed text that looks like a prompt is appended to the log.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from ..common.config import CaptureConfig
from ..common.schemas import LogEntry
from .input_backend import (
    CaptureBackend,
    CaptureMode,
    CaptureUnavailableError,
    FallbackSampler,
    KeyEvent,
)
from .log_store import LogStore, LogStoreError
from .prompt_filter import evaluate_buffer
from .window_probe import WindowProbe

logger = logging.getLogger("dryprompt.capture.monitor")

SAMPLE_WINDOW_TITLE = "Cursor - test.js"
SAMPLE_PROCESS_NAME = "Cursor"

# Prompts written by add_sample_data(), grouped so that clustering finds
# an "explain" and a "review/debug" pattern.
SAMPLE_PROMPTS = (
    "Explain the following code:",
    "Please explain this code snippet:",
    "Can you explain how this code works?",
    "Help me understand this code:",
    "Describe what this code does:",
    "Review the following code:",
    "Please review this code for me:",
    "Can you review this code snippet?",
    "Check this code for issues:",
    "Debug the following code:",
)


@dataclass
class MonitoringState:
    """Mutable capture state, owned by one CaptureCoordinator."""
    is_running: bool = False
    is_target_present: bool = False
    is_target_active: bool = False
    capture_enabled: bool = False
    text_buffer: str = ""
    last_event_time: Optional[float] = None
    capture_mode: CaptureMode = CaptureMode.DISABLED
    last_window_title: Optional[str] = None
    last_process_name: Optional[str] = None


class CaptureCoordinator:
    """
    Watches the target application and turns typing into log entries.

    Usage:
        coordinator = CaptureCoordinator(log_store, config.capture, probe, backend)
        await coordinator.start()
        ...
        await coordinator.stop()
    """

    def __init__(
        self,
        log_store: LogStore,
        config: CaptureConfig,
        probe: WindowProbe,
        backend: CaptureBackend,
    ):
        self._log_store = log_store
        self._config = config
        self._probe = probe
        self._backend = backend
        self._state = MonitoringState()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._process_task: Optional[asyncio.Task] = None
        self._window_task: Optional[asyncio.Task] = None
        self._fallback_task: Optional[asyncio.Task] = None
        self._flush_handle: Optional[asyncio.TimerHandle] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def backend_mode(self) -> CaptureMode:
        return self._backend.mode

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._state.is_running:
            logger.info("Capture coordinator already running")
            return

        self._loop = asyncio.get_running_loop()
        self._state.is_running = True
        self._state.capture_mode = self._backend.mode
        logger.info(
            "Starting capture for %s (mode: %s)",
            ", ".join(self._config.target_process_names),
            self._state.capture_mode.value,
        )

        await self.check_process()
        self._process_task = self._loop.create_task(self._process_loop())

    async def stop(self) -> None:
        """Tear down both polling tiers and reset state. Safe to call repeatedly."""
        if not self._state.is_running:
            return

        self._state.is_running = False
        tasks = [t for t in (self._process_task, self._window_task) if t is not None]
        self._process_task = None
        self._window_task = None
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        await asyncio.gather(*(t for t in tasks if t is not current), return_exceptions=True)

        await self._disable_capture()

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

        self._state = MonitoringState()
        logger.info("Capture coordinator stopped")

    async def _process_loop(self) -> None:
        while self._state.is_running:
            await asyncio.sleep(self._config.process_check_interval)
            await self.check_process()

    async def _window_loop(self) -> None:
        while self._state.is_running and self._state.is_target_present:
            await self.check_window()
            await asyncio.sleep(self._config.window_check_interval)

    # ------------------------------------------------------------------
    # Polling steps
    # ------------------------------------------------------------------

    async def check_process(self) -> bool:
        """Coarse tier: one process presence check."""
        running = await asyncio.to_thread(self._probe.is_target_running)

        if running and not self._state.is_target_present:
            logger.info("Target application detected, starting window monitoring")
            self._state.is_target_present = True
            if self._state.is_running:
                self._window_task = asyncio.get_running_loop().create_task(self._window_loop())
        elif not running and self._state.is_target_present:
            logger.info("Target application no longer running, stopping window monitoring")
            self._state.is_target_present = False
            self._state.is_target_active = False
            task = self._window_task
            self._window_task = None
            if task is not None and task is not asyncio.current_task():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            await self._disable_capture()

        return running

    async def check_window(self) -> bool:
        """Fine tier: one foreground window check."""
        info = await asyncio.to_thread(self._probe.active_target_window)
        active = info is not None

        if active:
            self._state.last_window_title = info.title
            self._state.last_process_name = info.process_name

        if active and not self._state.is_target_active:
            logger.info("Target window became active: %s", info.title)
            self._state.is_target_active = True
            await self._enable_capture()
        elif not active and self._state.is_target_active:
            logger.info("Target window became inactive")
            self._state.is_target_active = False
            await self._disable_capture()

        return active

    # ------------------------------------------------------------------
    # Capture session
    # ------------------------------------------------------------------

    async def _enable_capture(self) -> None:
        if self._state.capture_enabled:
            return

        self._state.capture_enabled = True
        self._state.text_buffer = ""
        self._loop = asyncio.get_running_loop()

        if self._backend.mode == CaptureMode.NATIVE:
            try:
                await asyncio.to_thread(self._backend.start, self._on_key_from_thread)
            except CaptureUnavailableError as e:
                logger.warning("Native capture unavailable, switching to fallback mode: %s", e)
                self._backend = FallbackSampler()
                self._state.capture_mode = CaptureMode.FALLBACK

        if self._backend.mode == CaptureMode.FALLBACK:
            self._fallback_task = self._loop.create_task(self._fallback_loop())

        logger.info("Capture enabled (%s)", self._state.capture_mode.value)

    async def _disable_capture(self) -> None:
        if not self._state.capture_enabled:
            return

        self._state.capture_enabled = False
        self._cancel_flush_timer()

        if self._backend.mode == CaptureMode.NATIVE:
            self._backend.stop()

        task = self._fallback_task
        self._fallback_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self.flush_buffer()
        logger.info("Capture disabled")

    def _on_key_from_thread(self, event: KeyEvent) -> None:
        """Listener-thread entry point; hands the event to the loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self.handle_key_event, event)
        except RuntimeError:
            # Loop shut down between the check and the call
            pass

    def handle_key_event(self, event: KeyEvent) -> None:
        """Apply one key event to the buffer. Runs on the event loop."""
        if not self._state.capture_enabled:
            return

        loop = asyncio.get_running_loop()
        self._state.last_event_time = loop.time()

        if event.kind == "submit":
            self._schedule_flush()
            return
        if event.kind == "backspace":
            self._state.text_buffer = self._state.text_buffer[:-1]
        elif event.kind == "char":
            self._state.text_buffer += event.char

        self._cancel_flush_timer()
        self._flush_handle = loop.call_later(self._config.buffer_timeout, self._schedule_flush)

    def _cancel_flush_timer(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

    def _schedule_flush(self) -> None:
        self._cancel_flush_timer()
        task = asyncio.get_running_loop().create_task(self.flush_buffer())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush_buffer(self) -> bool:
        """
        Evaluate and clear the buffer.

        Returns:
            True if the text was logged
        """
        self._cancel_flush_timer()
        text = self._state.text_buffer
        self._state.text_buffer = ""
        if not text.strip():
            return False

        keep, reason = evaluate_buffer(
            text,
            min_length=self._config.min_text_length,
            min_distinct_chars=self._config.min_distinct_chars,
        )
        if not keep:
            logger.debug("Discarded buffer (%s): %d chars", reason, len(text))
            return False

        try:
            await asyncio.to_thread(
                self._log_store.log_text_input,
                text,
                self._state.last_window_title,
                self._state.last_process_name,
            )
        except LogStoreError as e:
            logger.error("Failed to log captured text: %s", e)
            return False
        return True

    async def _fallback_loop(self) -> None:
        while self._state.capture_enabled:
            await asyncio.sleep(self._config.fallback_sample_interval)
            if not (self._state.capture_enabled and self._state.is_target_active):
                continue
            sample = self._backend.sample()
            try:
                await asyncio.to_thread(
                    self._log_store.log_text_input,
                    sample,
                    self._state.last_window_title,
                    self._state.last_process_name,
                )
                logger.info("Fallback sample logged: %s", sample)
            except LogStoreError as e:
                logger.error("Failed to log fallback sample: %s", e)

    # ------------------------------------------------------------------
    # Direct injection
    # ------------------------------------------------------------------

    async def manual_log(self, text: str, context: Optional[Dict[str, Any]] = None) -> Optional[LogEntry]:
        """
        Append text directly, bypassing capture and the prompt filter.

        Args:
            text: Text to log
            context: Optional {"window_title": ..., "process_name": ...}

        Raises:
            LogStoreError: if the write fails
        """
        context = context or {}
        return await asyncio.to_thread(
            self._log_store.log_text_input,
            text,
            context.get("window_title"),
            context.get("process_name"),
        )

    async def add_sample_data(self) -> int:
        """Write the built-in sample prompts; returns the number written."""
        written = 0
        for prompt in SAMPLE_PROMPTS:
            entry = await self.manual_log(
                prompt,
                {"window_title": SAMPLE_WINDOW_TITLE, "process_name": SAMPLE_PROCESS_NAME},
            )
            if entry is not None:
                written += 1
        logger.info("Added %d sample prompts", written)
        return written

    def status(self) -> Dict[str, Any]:
        return {
            "is_running": self._state.is_running,
            "is_target_present": self._state.is_target_present,
            "is_target_active": self._state.is_target_active,
            "capture_enabled": self._state.capture_enabled,
            "capture_mode": self._state.capture_mode.value,
            "buffer_length": len(self._state.text_buffer),
            "last_window_title": self._state.last_window_title,
        }
