"""
App - application control

ApplicationController runs the state machine and scheduling; runtime wires
components from config; server exposes the local FastAPI control surface.
"""

from .controller import AppState, ApplicationController
from .notifier import LoggingNotifier, Notifier

__all__ = [
    "AppState",
    "ApplicationController",
    "LoggingNotifier",
    "Notifier",
]
