"""
DryPrompt Record Schemas

Pydantic models shared by capture, analysis and the control server.
"""

from .records import (
    LogEntry,
    Suggestion,
    AnalysisRecord,
    utc_now_iso,
)

__all__ = [
    "LogEntry",
    "Suggestion",
    "AnalysisRecord",
    "utc_now_iso",
]
