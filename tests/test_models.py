"""Tests for models modules."""

import hashlib
import pytest
import time
from pathlib import Path

from src.watcher.models import EventKind, LogicalEvent, RawFSEvent
from src.history.models import (
    ChangeOutcome,
    HistoryEntry,
    HistoryEventType,
    OutcomeKind,
    compute_fingerprint,
    normalize_fingerprint,
)


class TestEventKind:
    """Tests for EventKind enum."""

    def test_event_kind_values(self):
        assert EventKind.ADD.value == "add"
        assert EventKind.CHANGE.value == "change"
        assert EventKind.UNLINK.value == "unlink"

    def test_event_kind_from_value(self):
        assert EventKind("add") == EventKind.ADD
        assert EventKind("unlink") == EventKind.UNLINK


class TestRawFSEvent:
    """Tests for RawFSEvent dataclass."""

    def test_create_raw_event(self, tmp_path):
        before = time.time()
        event = RawFSEvent(kind=EventKind.ADD, path=tmp_path / "a.txt")
        assert event.kind == EventKind.ADD
        assert event.path == tmp_path / "a.txt"
        assert event.timestamp >= before

    def test_relative_path_rejected(self):
        with pytest.raises(ValueError):
            RawFSEvent(kind=EventKind.ADD, path=Path("relative/a.txt"))


class TestLogicalEvent:
    """Tests for LogicalEvent dataclass."""

    def test_to_dict_from_dict(self, tmp_path):
        event = LogicalEvent(kind=EventKind.CHANGE, path=tmp_path / "a.txt", first_seen=10.0, dispatched_at=10.5)
        data = event.to_dict()

        assert data["kind"] == "change"
        assert data["path"] == str(tmp_path / "a.txt")

        restored = LogicalEvent.from_dict(data)
        assert restored == event


class TestFingerprint:
    """Tests for fingerprint helpers."""

    def test_compute_fingerprint(self, tmp_path):
        test_file = tmp_path / "doc.txt"
        test_file.write_bytes(b"hello")

        fingerprint = compute_fingerprint(test_file)

        assert fingerprint == "0x" + hashlib.sha256(b"hello").hexdigest()
        assert fingerprint.startswith("0x2cf24db")
        assert len(fingerprint) == 66

    def test_compute_fingerprint_large_file(self, tmp_path):
        data = b"x" * (65536 * 3 + 17)
        test_file = tmp_path / "big.bin"
        test_file.write_bytes(data)

        assert compute_fingerprint(test_file) == "0x" + hashlib.sha256(data).hexdigest()

    def test_compute_fingerprint_missing_file(self, tmp_path):
        assert compute_fingerprint(tmp_path / "missing.txt") is None

    def test_compute_fingerprint_directory(self, tmp_path):
        assert compute_fingerprint(tmp_path) is None

    def test_normalize_fingerprint(self):
        assert normalize_fingerprint("abc") == "0xabc"
        assert normalize_fingerprint("0xabc") == "0xabc"


class TestChangeOutcome:
    """Tests for ChangeOutcome dataclass."""

    @pytest.mark.parametrize("kind,expected", [
        (OutcomeKind.ADDED, True),
        (OutcomeKind.CHANGED, True),
        (OutcomeKind.RENAMED, True),
        (OutcomeKind.UNCHANGED, False),
        (OutcomeKind.REMOVAL_PENDING, False),
        (OutcomeKind.UNTRACKED_REMOVAL, False),
        (OutcomeKind.UNREADABLE, False),
    ])
    def test_is_submittable(self, tmp_path, kind, expected):
        outcome = ChangeOutcome(kind=kind, path=tmp_path / "a.txt")
        assert outcome.is_submittable is expected


class TestHistoryEntry:
    """Tests for HistoryEntry dataclass."""

    def test_to_dict(self, tmp_path):
        entry = HistoryEntry(
            id=1,
            user_email="u@example.com",
            file_id=7,
            path=tmp_path / "a.txt",
            fingerprint="0xabc",
            event_type=HistoryEventType.RENAME,
            timestamp=1234,
        )
        data = entry.to_dict()

        assert data["event_type"] == "rename"
        assert data["path"] == str(tmp_path / "a.txt")
        assert data["file_id"] == 7
