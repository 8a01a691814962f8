"""
Log Store

Append-only collection of captured prompt text, persisted as one JSON list
(~/.dryprompt/prompt_log.json). After an analysis run the current segment is
rotated into ~/.dryprompt/archive/prompt_log_<timestamp>.json.

Reads never raise: a missing or corrupt store reads as empty so that losing
history can never block capture. Writes raise LogStoreError.
"""

import os
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..common.config import ARCHIVE_DIR, PROMPT_LOG_PATH
from ..common.schemas import LogEntry

logger = logging.getLogger("dryprompt.capture.log_store")

ARCHIVE_PREFIX = "prompt_log_"


class LogStoreError(IOError):
    """Disk failure writing or rotating the prompt log."""
    pass


def _preview(text: str, limit: int = 50) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


class LogStore:
    """
    Manages the prompt log segment and its archives.

    Every append is a read-modify-write of the whole file, written through a
    temporary file and os.replace so a crash never leaves a half-written log.
    Capture and rotation run on worker threads; every write path holds the
    store lock for its whole read-modify-write.
    """

    def __init__(self, log_path: Optional[Path] = None, archive_dir: Optional[Path] = None):
        """
        Initialize log store.

        Args:
            log_path: Path to the current segment (default: ~/.dryprompt/prompt_log.json)
            archive_dir: Directory for rotated segments (default: ~/.dryprompt/archive)
        """
        self._log_path = Path(log_path) if log_path else PROMPT_LOG_PATH
        self._archive_dir = Path(archive_dir) if archive_dir else ARCHIVE_DIR
        self._lock = threading.Lock()

    @property
    def log_path(self) -> Path:
        return self._log_path

    @property
    def archive_dir(self) -> Path:
        return self._archive_dir

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _read_file(self, path: Path) -> List[LogEntry]:
        """Parse a segment file; unreadable content is reported and read as empty."""
        if not path.exists():
            return []

        try:
            with open(path, encoding="utf-8") as f:
                raw = f.read()
        except OSError as e:
            logger.warning("Failed to read log file %s: %s", path, e)
            return []

        if not raw.strip():
            return []

        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError(f"expected a JSON list, got {type(data).__name__}")
            return [LogEntry.model_validate(item) for item in data]
        except (json.JSONDecodeError, ValueError, ValidationError) as e:
            logger.warning("Corrupt log file %s, treating as empty: %s", path, e)
            return []

    def _write_file(self, path: Path, entries: List[LogEntry]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump([entry.to_json() for entry in entries], f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)

    def read_all(self) -> List[LogEntry]:
        """Get all entries in the current segment, in capture order"""
        return self._read_file(self._log_path)

    def count(self) -> int:
        """Number of entries in the current segment"""
        return len(self.read_all())

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def append(self, entry: LogEntry) -> None:
        """
        Append an entry to the current segment.

        Raises:
            LogStoreError: if the segment cannot be written
        """
        with self._lock:
            entries = self.read_all()
            entries.append(entry)
            try:
                self._write_file(self._log_path, entries)
            except OSError as e:
                logger.error("Failed to log text input: %s", e)
                raise LogStoreError(f"Failed to save text input to log file: {e}") from e

        logger.info("Logged text input: \"%s\"", _preview(entry.text))

    def log_text_input(
        self,
        text: str,
        window_title: Optional[str] = None,
        process_name: Optional[str] = None,
    ) -> Optional[LogEntry]:
        """
        Build and append an entry for captured text.

        Returns:
            The written entry, or None if the text was empty
        """
        if not text or not text.strip():
            return None

        entry = LogEntry(
            text=text.strip(),
            window_title=window_title,
            process_name=process_name,
        )
        self.append(entry)
        return entry

    def clear(self) -> None:
        """Delete the current segment (idempotent)"""
        with self._lock:
            try:
                self._log_path.unlink()
                logger.info("Prompt log cleared")
            except FileNotFoundError:
                pass
            except OSError as e:
                raise LogStoreError(f"Failed to clear prompt log file: {e}") from e

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    def _new_archive_path(self) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        path = self._archive_dir / f"{ARCHIVE_PREFIX}{stamp}.json"
        suffix = 1
        while path.exists():
            path = self._archive_dir / f"{ARCHIVE_PREFIX}{stamp}-{suffix}.json"
            suffix += 1
        return path

    def archive_and_reset(self, processed: Optional[int] = None) -> Optional[Path]:
        """
        Move the current segment into the archive directory.

        Args:
            processed: Number of leading entries consumed by the caller. Entries
                beyond this count were appended after the caller's snapshot;
                they are written back to a fresh current segment.

        Returns:
            Path of the archive, or None if there was nothing to archive

        Raises:
            LogStoreError: if the rename or the write-back fails
        """
        with self._lock:
            return self._archive_locked(processed)

    def _archive_locked(self, processed: Optional[int]) -> Optional[Path]:
        if not self._log_path.exists():
            logger.info("No log file to archive")
            return None

        archive_path = self._new_archive_path()
        try:
            self._archive_dir.mkdir(parents=True, exist_ok=True)
            os.replace(self._log_path, archive_path)
        except OSError as e:
            logger.error("Failed to archive prompt log: %s", e)
            raise LogStoreError(f"Failed to archive prompt log file: {e}") from e

        if processed is not None:
            archived = self._read_file(archive_path)
            if len(archived) > processed:
                carried = archived[processed:]
                try:
                    self._write_file(archive_path, archived[:processed])
                    self._write_file(self._log_path, carried)
                except OSError as e:
                    raise LogStoreError(f"Failed to carry over unprocessed entries: {e}") from e
                logger.info("Carried %d unprocessed entries into the new log", len(carried))

        logger.info("Prompt log archived to: %s", archive_path)
        return archive_path

    def list_archives(self) -> List[Path]:
        """Archived segments, oldest first"""
        if not self._archive_dir.exists():
            return []
        return sorted(
            p for p in self._archive_dir.glob(f"{ARCHIVE_PREFIX}*.json") if p.is_file()
        )

    def read_archive(self, path: Path) -> List[LogEntry]:
        return self._read_file(Path(path))

    def prune_archives(self, keep: int) -> int:
        """
        Delete the oldest archives beyond `keep`.

        Returns:
            Number of archives removed
        """
        if keep < 0:
            raise ValueError("keep must be >= 0")

        archives = self.list_archives()
        excess = archives[:max(0, len(archives) - keep)]
        removed = 0
        for path in excess:
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning("Failed to delete archive %s: %s", path, e)
        if removed:
            logger.info("Pruned %d old archives", removed)
        return removed
