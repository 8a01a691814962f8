"""
Capture - passive prompt collection

Watches the target application and turns typing into prompt log entries.

Key Components:
- CaptureCoordinator: two-tier process/window polling and text buffering
- LogStore: append-only prompt log with archive rotation
- WindowProbe: target process and foreground window detection
- KeyboardBackend / FallbackSampler: native or synthetic capture
"""

from .input_backend import CaptureMode, FallbackSampler, KeyboardBackend, KeyEvent, select_backend
from .log_store import LogStore, LogStoreError
from .monitor import CaptureCoordinator, MonitoringState
from .prompt_filter import is_likely_prompt
from .window_probe import ActiveWindowInfo, WindowProbe

__all__ = [
    "CaptureMode",
    "FallbackSampler",
    "KeyboardBackend",
    "KeyEvent",
    "select_backend",
    "LogStore",
    "LogStoreError",
    "CaptureCoordinator",
    "MonitoringState",
    "is_likely_prompt",
    "ActiveWindowInfo",
    "WindowProbe",
]
