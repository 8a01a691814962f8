"""
DryPrompt Record Schemas

LogEntry is what capture writes to disk; Suggestion is the terminal output of
an analysis run; AnalysisRecord holds the per-run statistics sent to the
analytics store.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class LogEntry(BaseModel):
    """A captured prompt-like text span. Immutable once written."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: str = Field(default_factory=utc_now_iso)
    text: str
    window_title: Optional[str] = Field(default=None, alias="windowTitle")
    process_name: Optional[str] = Field(default=None, alias="processName")

    def to_json(self) -> dict:
        """Serialize with the on-disk camelCase keys"""
        return self.model_dump(by_alias=True, exclude_none=True)


class Suggestion(BaseModel):
    """A proposed text-replacement shortcut synthesized from one cluster"""
    trigger: str
    replacement: str
    source_texts: List[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    persisted_id: Optional[str] = None


class AnalysisRecord(BaseModel):
    """Statistics of one analysis run"""
    total_prompts: int = Field(ge=0)
    clusters_found: int = Field(ge=0)
    suggestions_generated: int = Field(ge=0)
    analysis_timestamp: str = Field(default_factory=utc_now_iso)
    processing_time_ms: int = Field(ge=0)
