"""
Input Backend

Capture capability selected once at startup:

- KeyboardBackend: native key capture through a pynput listener thread
- FallbackSampler: synthetic sample prompts when native capture is unavailable

pynput is imported lazily so that a missing install or a platform without an
input-monitoring backend degrades to fallback capture instead of failing.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Union

logger = logging.getLogger("dryprompt.capture.input_backend")


class CaptureMode(str, Enum):
    NATIVE = "native"
    FALLBACK = "fallback"
    DISABLED = "disabled"


class CaptureUnavailableError(RuntimeError):
    """Native capture could not be started."""
    pass


@dataclass(frozen=True)
class KeyEvent:
    """A raw input event, already reduced to what the text buffer needs."""
    kind: str  # "char" | "backspace" | "submit"
    char: str = ""


SUBMIT_KEYS = ("enter", "tab", "esc")

KeyEventHandler = Callable[[KeyEvent], None]


def translate_key(key) -> Optional[KeyEvent]:
    """
    Map a pynput key object to a KeyEvent.

    Special keys (pynput.keyboard.Key members) are identified by name;
    printable keys (KeyCode) carry a char. Modifiers and navigation keys
    produce None.
    """
    char = getattr(key, "char", None)
    if char:
        if len(char) == 1 and char.isprintable():
            return KeyEvent("char", char)
        return None

    name = getattr(key, "name", None)
    if name == "space":
        return KeyEvent("char", " ")
    if name == "backspace":
        return KeyEvent("backspace")
    if name in SUBMIT_KEYS:
        return KeyEvent("submit")
    return None


class KeyboardBackend:
    """
    Native capture via a pynput keyboard listener.

    The listener calls back on its own thread; the handler passed to start()
    must be thread-safe (the coordinator hands events to its event loop).
    """

    mode = CaptureMode.NATIVE

    def __init__(self):
        self._listener = None

    @staticmethod
    def is_available() -> bool:
        try:
            from pynput import keyboard  # noqa: F401
        except ImportError as e:
            logger.warning("pynput not available, native capture disabled: %s", e)
            return False
        except Exception as e:
            # pynput raises at import time when no input backend exists (e.g. headless X)
            logger.warning("pynput failed to load, native capture disabled: %s", e)
            return False
        return True

    @property
    def is_listening(self) -> bool:
        return self._listener is not None

    def start(self, on_event: KeyEventHandler) -> None:
        """
        Start the listener thread.

        Raises:
            CaptureUnavailableError: if pynput cannot be loaded or the listener fails
        """
        if self._listener is not None:
            return

        try:
            from pynput import keyboard
        except Exception as e:
            raise CaptureUnavailableError(f"pynput unavailable: {e}") from e

        def on_press(key):
            event = translate_key(key)
            if event is not None:
                on_event(event)

        try:
            listener = keyboard.Listener(on_press=on_press)
            listener.daemon = True
            listener.start()
            listener.wait()
        except Exception as e:
            raise CaptureUnavailableError(f"keyboard listener failed to start: {e}") from e

        if not getattr(listener, "IS_TRUSTED", True):
            listener.stop()
            raise CaptureUnavailableError("process is not trusted for input monitoring")

        self._listener = listener
        logger.info("Native keyboard capture started")

    def stop(self) -> None:
        listener = self._listener
        self._listener = None
        if listener is not None:
            listener.stop()
            logger.info("Native keyboard capture stopped")


# Synthetic prompts logged while in fallback mode
FALLBACK_PROMPTS = (
    "Explain how this function works",
    "Review this code for bugs",
    "Help me debug this issue",
    "What does this code do?",
    "Can you optimize this function?",
)


class FallbackSampler:
    """Degraded capture: yields a sample prompt per sampling interval."""

    mode = CaptureMode.FALLBACK

    def __init__(self, prompts: Sequence[str] = FALLBACK_PROMPTS, rng: Optional[random.Random] = None):
        if not prompts:
            raise ValueError("FallbackSampler needs at least one prompt")
        self._prompts = tuple(prompts)
        self._rng = rng or random.Random()

    @property
    def prompts(self):
        return self._prompts

    def sample(self) -> str:
        return self._rng.choice(self._prompts)


CaptureBackend = Union[KeyboardBackend, FallbackSampler]


def select_backend(prefer_native: bool = True) -> CaptureBackend:
    """Probe once and return the capture capability for this process."""
    if prefer_native and KeyboardBackend.is_available():
        return KeyboardBackend()
    logger.warning("Using fallback capture mode (synthetic sample prompts)")
    return FallbackSampler()
