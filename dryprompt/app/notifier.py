"""
Notifier

The shell/notification collaborator. The controller reports state changes,
monitoring start and run completion; presenting them (tray icon, desktop
notifications, shortcut dialogs) is up to the implementation.
"""

import logging
from typing import List, Protocol, Sequence

from ..common.schemas import Suggestion

logger = logging.getLogger("dryprompt.app.notifier")


class Notifier(Protocol):
    def on_state_change(self, state: str, is_analyzing: bool) -> None: ...

    def on_monitoring_started(self, capture_mode: str) -> None: ...

    def on_analysis_complete(self, suggestions: Sequence[Suggestion]) -> None: ...


class LoggingNotifier:
    """Writes notifications to the log and keeps the latest suggestions for the control server."""

    def __init__(self):
        self.latest_suggestions: List[Suggestion] = []

    def on_state_change(self, state: str, is_analyzing: bool) -> None:
        logger.info("State: %s%s", state, " (analyzing)" if is_analyzing else "")

    def on_monitoring_started(self, capture_mode: str) -> None:
        if capture_mode == "native":
            logger.info("Monitoring started: capturing prompts typed in the target application")
        else:
            logger.warning("Monitoring started in %s mode: real keyboard capture is unavailable", capture_mode)

    def on_analysis_complete(self, suggestions: Sequence[Suggestion]) -> None:
        self.latest_suggestions = list(suggestions)
        if not suggestions:
            logger.info("Analysis complete: no new shortcut suggestions")
            return
        logger.info("Analysis complete: %d shortcut suggestion(s)", len(suggestions))
        for suggestion in suggestions:
            logger.info(
                "  %s -> \"%s\" (confidence %.2f)",
                suggestion.trigger, suggestion.replacement, suggestion.confidence,
            )
