"""
File history tracking.

Fingerprints watched files, keeps their last known state in SQLite and
records every add, content change and rename.
"""

from .classifier import ChangeClassifier
from .exceptions import FileNotTrackedError, HistoryError, StoreError, UserContextError
from .models import (
    ChangeOutcome,
    CollectionKind,
    HistoryEntry,
    HistoryEventType,
    OutcomeKind,
    TrackedFile,
    WatchedFolder,
    compute_fingerprint,
    normalize_fingerprint,
)
from .store import HistoryStore

__all__ = [
    "ChangeClassifier",
    "ChangeOutcome",
    "CollectionKind",
    "FileNotTrackedError",
    "HistoryEntry",
    "HistoryError",
    "HistoryEventType",
    "HistoryStore",
    "OutcomeKind",
    "StoreError",
    "TrackedFile",
    "UserContextError",
    "WatchedFolder",
    "compute_fingerprint",
    "normalize_fingerprint",
]
