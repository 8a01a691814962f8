"""
Window Probe

Answers the two questions the capture coordinator polls: is the target
process running (coarse tier), and is its window in the foreground (fine
tier). Process presence comes from psutil on every platform; the foreground
window comes from user32 on Windows and NSWorkspace on macOS.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

import psutil

logger = logging.getLogger("dryprompt.capture.window_probe")


@dataclass
class ActiveWindowInfo:
    """Details describing the current foreground window."""

    title: str
    process_name: str
    pid: int
    timestamp: datetime

    def matches(self, target_names: Iterable[str]) -> bool:
        """True if the owning process is one of the target names (case-insensitive, .exe/.app ignored)."""
        own = _normalize_name(self.process_name)
        return bool(own) and any(own == _normalize_name(name) for name in target_names)


def _normalize_name(name: str) -> str:
    lowered = (name or "").strip().lower()
    for suffix in (".exe", ".app"):
        if lowered.endswith(suffix):
            lowered = lowered[: -len(suffix)]
    return lowered


def is_process_running(target_names: Iterable[str]) -> bool:
    """Check whether any process with one of the target names is alive."""
    wanted = {_normalize_name(name) for name in target_names if name}
    if not wanted:
        return False
    for proc in psutil.process_iter(["name"]):
        try:
            if _normalize_name(proc.info.get("name") or "") in wanted:
                return True
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return False


class ActiveWindowProvider:
    """Platform helper that retrieves foreground window metadata."""

    def __init__(self) -> None:
        self._platform = sys.platform
        self._supported = False
        self._init_platform()

    def _init_platform(self) -> None:
        if self._platform.startswith("win"):
            try:
                import ctypes
                from ctypes import wintypes

                self._ctypes = ctypes
                self._wintypes = wintypes
                user32 = ctypes.windll.user32
                self._get_foreground_window = user32.GetForegroundWindow
                self._get_window_text_length = user32.GetWindowTextLengthW
                self._get_window_text = user32.GetWindowTextW
                self._get_window_thread_process_id = user32.GetWindowThreadProcessId
                self._supported = True
            except (ImportError, AttributeError, OSError) as e:
                logger.error("Failed to initialise Windows window probe: %s", e)
        elif self._platform == "darwin":
            try:
                from AppKit import NSWorkspace

                self._workspace = NSWorkspace.sharedWorkspace()
                self._supported = True
            except ImportError:
                logger.warning("pyobjc AppKit not installed, foreground window detection disabled")
        else:
            logger.warning("Foreground window detection is not supported on %s", self._platform)

    def is_supported(self) -> bool:
        return self._supported

    def current(self) -> Optional[ActiveWindowInfo]:
        if not self._supported:
            return None
        if self._platform == "darwin":
            return self._current_macos()
        return self._current_windows()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _current_macos(self) -> Optional[ActiveWindowInfo]:
        app = self._workspace.frontmostApplication()
        if app is None:
            return None
        name = str(app.localizedName() or "")
        return ActiveWindowInfo(
            title=name,
            process_name=name,
            pid=int(app.processIdentifier()),
            timestamp=datetime.now(timezone.utc),
        )

    def _current_windows(self) -> Optional[ActiveWindowInfo]:
        hwnd = self._get_foreground_window()
        if not hwnd:
            return None
        pid = self._window_process_id(hwnd)
        return ActiveWindowInfo(
            title=self._window_title(hwnd),
            process_name=self._process_name(pid),
            pid=pid,
            timestamp=datetime.now(timezone.utc),
        )

    def _window_title(self, hwnd: int) -> str:
        length = self._get_window_text_length(hwnd)
        if length == 0:
            # Console and UWP windows can report zero length
            length = 1024
        buffer = self._ctypes.create_unicode_buffer(length + 1)
        self._get_window_text(hwnd, buffer, length + 1)
        return buffer.value.strip()

    def _window_process_id(self, hwnd: int) -> int:
        pid = self._wintypes.DWORD()
        self._get_window_thread_process_id(hwnd, self._ctypes.byref(pid))
        return int(pid.value)

    def _process_name(self, pid: int) -> str:
        if pid <= 0:
            return ""
        try:
            return psutil.Process(pid).name()
        except (psutil.AccessDenied, psutil.NoSuchProcess, psutil.ZombieProcess):
            return ""


class WindowProbe:
    """
    Target-specific view over the process list and the foreground window.

    The coordinator depends only on is_target_running() and
    active_target_window(); tests substitute a Mock with the same methods.
    """

    def __init__(self, target_names: Iterable[str], provider: Optional[ActiveWindowProvider] = None):
        self._target_names = [name for name in target_names if name]
        self._provider = provider if provider is not None else ActiveWindowProvider()

    @property
    def target_names(self):
        return list(self._target_names)

    def is_target_running(self) -> bool:
        try:
            return is_process_running(self._target_names)
        except psutil.Error as e:
            logger.error("Error checking for target process: %s", e)
            return False

    def active_target_window(self) -> Optional[ActiveWindowInfo]:
        """Foreground window info if it belongs to the target, else None."""
        try:
            info = self._provider.current()
        except Exception as e:
            logger.error("Error checking active window: %s", e)
            return None
        if info is not None and info.matches(self._target_names):
            return info
        return None
