"""Tests for the prompt log store and its archive rotation."""

import json
import pytest


@pytest.fixture
def store(tmp_path):
    from dryprompt.capture.log_store import LogStore
    return LogStore(log_path=tmp_path / "prompt_log.json", archive_dir=tmp_path / "archive")


class TestAppend:
    def test_empty_store(self, store):
        assert store.read_all() == []
        assert store.count() == 0

    def test_log_text_input_writes_camel_case(self, store):
        entry = store.log_text_input("  explain this code please  ", "Cursor - app.py", "Cursor")

        assert entry.text == "explain this code please"
        raw = json.loads(store.log_path.read_text())
        assert raw[0]["text"] == "explain this code please"
        assert raw[0]["windowTitle"] == "Cursor - app.py"
        assert raw[0]["processName"] == "Cursor"
        assert raw[0]["timestamp"].endswith("Z")

    def test_empty_text_is_ignored(self, store):
        assert store.log_text_input("   ") is None
        assert store.log_text_input("") is None
        assert not store.log_path.exists()

    def test_entries_keep_capture_order(self, store):
        for i in range(3):
            store.log_text_input(f"prompt number {i}")
        assert [e.text for e in store.read_all()] == [
            "prompt number 0", "prompt number 1", "prompt number 2",
        ]

    def test_missing_context_is_omitted(self, store):
        store.log_text_input("explain the diff")
        raw = json.loads(store.log_path.read_text())
        assert "windowTitle" not in raw[0]
        assert "processName" not in raw[0]

    def test_write_failure_raises(self, tmp_path, caplog):
        import logging
        from dryprompt.capture.log_store import LogStore, LogStoreError
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        store = LogStore(log_path=blocker / "prompt_log.json", archive_dir=tmp_path / "archive")

        with caplog.at_level(logging.ERROR, logger="dryprompt.capture.log_store"):
            with pytest.raises(LogStoreError):
                store.log_text_input("explain this code")
        assert "Failed to log text input" in caplog.text


class TestCorruption:
    def test_corrupt_file_reads_as_empty(self, store, caplog):
        import logging
        store.log_path.write_text("{not json")
        with caplog.at_level(logging.WARNING, logger="dryprompt.capture.log_store"):
            assert store.read_all() == []
        assert "Corrupt log file" in caplog.text

    def test_non_list_reads_as_empty(self, store):
        store.log_path.write_text(json.dumps({"text": "x"}))
        assert store.read_all() == []

    def test_append_after_corruption_starts_fresh(self, store):
        store.log_path.write_text("garbage")
        store.log_text_input("explain this code")
        assert store.count() == 1


class TestClear:
    def test_clear_is_idempotent(self, store):
        store.log_text_input("explain this code")
        store.clear()
        store.clear()
        assert store.count() == 0
        assert not store.log_path.exists()


class TestArchive:
    def test_archive_without_log_returns_none(self, store):
        assert store.archive_and_reset() is None
        assert store.list_archives() == []

    def test_archive_moves_segment(self, store):
        store.log_text_input("explain this code")
        store.log_text_input("write unit tests for this")

        path = store.archive_and_reset()

        assert path.parent == store.archive_dir
        assert path.name.startswith("prompt_log_")
        assert path.suffix == ".json"
        assert store.count() == 0
        assert [e.text for e in store.read_archive(path)] == [
            "explain this code", "write unit tests for this",
        ]

    def test_entries_after_snapshot_are_carried_over(self, store):
        store.log_text_input("explain this code")
        store.log_text_input("write unit tests for this")
        snapshot = store.read_all()
        # Captured while the analysis was running
        store.log_text_input("review this pull request")

        path = store.archive_and_reset(processed=len(snapshot))

        assert [e.text for e in store.read_archive(path)] == [
            "explain this code", "write unit tests for this",
        ]
        assert [e.text for e in store.read_all()] == ["review this pull request"]

    def test_archive_names_are_unique(self, store):
        paths = []
        for i in range(3):
            store.log_text_input(f"prompt number {i}")
            paths.append(store.archive_and_reset())
        assert len(set(paths)) == 3
        assert store.list_archives() == sorted(paths)

    def test_prune_keeps_newest(self, store):
        paths = []
        for i in range(4):
            store.log_text_input(f"prompt number {i}")
            paths.append(store.archive_and_reset())

        removed = store.prune_archives(keep=2)

        assert removed == 2
        assert store.list_archives() == sorted(paths)[2:]

    def test_prune_within_limit_is_noop(self, store):
        store.log_text_input("explain this code")
        store.archive_and_reset()
        assert store.prune_archives(keep=5) == 0
        assert len(store.list_archives()) == 1

    def test_prune_rejects_negative(self, store):
        with pytest.raises(ValueError):
            store.prune_archives(keep=-1)


class TestConcurrentRotation:
    """Capture appends and pipeline rotation run on separate worker threads."""

    def _pause_first_call(self, store, name, started, release):
        original = getattr(store, name)
        calls = []

        def wrapper(*args, **kwargs):
            result = original(*args, **kwargs)
            if not calls:
                calls.append(1)
                started.set()
                release.wait(timeout=2)
            return result

        setattr(store, name, wrapper)

    def test_rotation_waits_for_inflight_append(self, store):
        import threading
        import time
        for i in range(5):
            store.log_text_input(f"explain snippet number {i}")
        started, release = threading.Event(), threading.Event()
        # Append reads its snapshot, then stalls before writing
        self._pause_first_call(store, "_read_file", started, release)

        appender = threading.Thread(target=store.log_text_input, args=("please review this code",))
        appender.start()
        assert started.wait(timeout=2)
        paths = []
        rotator = threading.Thread(target=lambda: paths.append(store.archive_and_reset(processed=5)))
        rotator.start()
        time.sleep(0.1)
        assert rotator.is_alive()

        release.set()
        appender.join(timeout=2)
        rotator.join(timeout=2)

        assert len(store.read_archive(paths[0])) == 5
        assert [e.text for e in store.read_all()] == ["please review this code"]

    def test_append_during_carry_over_is_kept(self, store):
        import threading
        import time
        for i in range(6):
            store.log_text_input(f"explain snippet number {i}")
        started, release = threading.Event(), threading.Event()
        # Rotation stalls after rewriting the archive, before the carry-over write
        self._pause_first_call(store, "_write_file", started, release)

        rotator = threading.Thread(target=store.archive_and_reset, kwargs={"processed": 5})
        rotator.start()
        assert started.wait(timeout=2)
        appender = threading.Thread(
            target=store.log_text_input, args=("new prompt typed during rotation?",)
        )
        appender.start()
        time.sleep(0.1)
        assert appender.is_alive()

        release.set()
        rotator.join(timeout=2)
        appender.join(timeout=2)

        assert [e.text for e in store.read_all()] == [
            "explain snippet number 5", "new prompt typed during rotation?",
        ]
        archived = store.read_archive(store.list_archives()[0])
        assert len(archived) == 5
