"""
Permission Provider

Capture needs OS accessibility/input-monitoring trust. The controller only
sees has_permission / request_permission / monitor_changes; the polling
monitor reports transitions to a callback on the event loop.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import subprocess
import sys
from typing import Awaitable, Callable, Optional, Protocol, Union

logger = logging.getLogger("dryprompt.common.permissions")

ACCESSIBILITY_SETTINGS_URL = "x-apple.systempreferences:com.apple.preference.security?Privacy_Accessibility"

PermissionCallback = Callable[[bool], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


class PermissionProvider(Protocol):
    def has_permission(self) -> bool: ...

    def request_permission(self) -> bool: ...

    def monitor_changes(self, callback: PermissionCallback, interval: float = 2.0) -> Unsubscribe: ...


class PermissionMonitor:
    """
    Polls a permission check and invokes the callback when the result changes.

    The first poll only records the baseline. The callback may be a plain
    function or a coroutine function; coroutines are awaited inside the poll
    task. Stopping from inside the callback is allowed.
    """

    def __init__(self, check: Callable[[], bool], callback: PermissionCallback, interval: float = 2.0):
        self._check = check
        self._callback = callback
        self._interval = interval
        self._last: Optional[bool] = None
        self._stopped = False
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "PermissionMonitor":
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        task = self._task
        self._task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        logger.info("Stopped monitoring permission changes")

    @property
    def is_active(self) -> bool:
        return not self._stopped

    async def poll_once(self) -> None:
        try:
            current = await asyncio.to_thread(self._check)
        except Exception as e:
            logger.error("Error checking permission: %s", e)
            return

        previous = self._last
        self._last = current
        if previous is None or previous == current:
            return

        logger.info("Permission state changed: %s -> %s", previous, current)
        result = self._callback(current)
        if inspect.isawaitable(result):
            await result

    async def _run(self) -> None:
        while not self._stopped:
            await self.poll_once()
            if self._stopped:
                break
            await asyncio.sleep(self._interval)


class SystemPermissionProvider:
    """
    Accessibility permission on macOS via pyobjc; other platforms need no
    extra grant for keyboard capture and report granted.
    """

    def __init__(self) -> None:
        self._is_macos = sys.platform == "darwin"

    def has_permission(self) -> bool:
        if not self._is_macos:
            return True
        try:
            from ApplicationServices import AXIsProcessTrusted

            trusted = bool(AXIsProcessTrusted())
        except ImportError:
            logger.warning("pyobjc ApplicationServices not installed, cannot verify accessibility permission")
            return False
        logger.debug("Accessibility permission: %s", "GRANTED" if trusted else "DENIED")
        return trusted

    def request_permission(self) -> bool:
        if self.has_permission():
            return True
        if not self._is_macos:
            return False
        logger.info("Opening System Settings for Accessibility permission")
        try:
            subprocess.run(["open", ACCESSIBILITY_SETTINGS_URL], check=False, timeout=10)
        except (OSError, subprocess.SubprocessError) as e:
            logger.error("Could not open Accessibility settings: %s", e)
        return False

    def monitor_changes(self, callback: PermissionCallback, interval: float = 2.0) -> Unsubscribe:
        monitor = PermissionMonitor(self.has_permission, callback, interval).start()
        return monitor.stop
