"""
Data models for the history package.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
import hashlib
import logging
import time

logger = logging.getLogger(__name__)

FINGERPRINT_PREFIX = "0x"


class HistoryEventType(Enum):
    """Kinds of transitions recorded in file history."""
    ADD = "add"
    CHANGE = "change"
    RENAME = "rename"


class OutcomeKind(Enum):
    """What the change classifier decided about a logical event."""
    ADDED = "added"
    CHANGED = "changed"
    RENAMED = "renamed"
    UNCHANGED = "unchanged"
    REMOVAL_PENDING = "removal_pending"
    UNTRACKED_REMOVAL = "untracked_removal"
    UNREADABLE = "unreadable"


class CollectionKind(Enum):
    """Remote groupings a watched folder can feed."""
    MARK = "mark"
    PROJECT = "project"


def now_ms() -> int:
    """Current Unix time in integer milliseconds."""
    return int(time.time() * 1000)


def normalize_fingerprint(value: str) -> str:
    """Ensure a stored fingerprint carries the ``0x`` prefix."""
    if value.startswith(FINGERPRINT_PREFIX):
        return value
    return f"{FINGERPRINT_PREFIX}{value}"


def compute_fingerprint(path: Path) -> Optional[str]:
    """
    Compute the content fingerprint of a file.

    The fingerprint is the lowercase hex SHA-256 digest of the whole file,
    prefixed with ``0x``.

    Args:
        path: Path to the file

    Returns:
        The fingerprint, or None if the file cannot be read
    """
    if not path.exists() or path.is_dir():
        return None

    try:
        hasher = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                hasher.update(chunk)
        return f"{FINGERPRINT_PREFIX}{hasher.hexdigest()}"
    except (IOError, OSError, PermissionError) as e:
        logger.warning(f"Could not hash {path}: {e}")
        return None


@dataclass(frozen=True)
class TrackedFile:
    """
    Last known state of one watched path for one user.

    Attributes:
        id: Row identifier
        user_email: Owning user
        path: Absolute path (unique per user)
        fingerprint: Current content fingerprint (None until first hash)
        submitted: Whether this fingerprint produced a successful claim
        created_at: Creation time in milliseconds
        updated_at: Last update time in milliseconds
    """
    id: int
    user_email: str
    path: Path
    fingerprint: Optional[str]
    submitted: bool
    created_at: int
    updated_at: int

    @classmethod
    def from_row(cls, row) -> "TrackedFile":
        return cls(
            id=row["id"],
            user_email=row["user_email"],
            path=Path(row["path"]),
            fingerprint=row["current_hash"],
            submitted=bool(row["submitted"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


@dataclass(frozen=True)
class HistoryEntry:
    """
    Immutable record of one detected state transition.

    Attributes:
        id: Row identifier
        user_email: Owning user
        file_id: TrackedFile the entry belongs to (None if purged)
        path: Path at the time of the event
        fingerprint: Fingerprint at the time of the event
        event_type: Transition kind
        timestamp: Event time in milliseconds
    """
    id: int
    user_email: str
    file_id: Optional[int]
    path: Path
    fingerprint: Optional[str]
    event_type: HistoryEventType
    timestamp: int

    @classmethod
    def from_row(cls, row) -> "HistoryEntry":
        return cls(
            id=row["id"],
            user_email=row["user_email"],
            file_id=row["file_id"],
            path=Path(row["path"]),
            fingerprint=row["hash"],
            event_type=HistoryEventType(row["event_type"]),
            timestamp=row["timestamp"],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "user_email": self.user_email,
            "file_id": self.file_id,
            "path": str(self.path),
            "fingerprint": self.fingerprint,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class WatchedFolder:
    """A folder whose files feed a remote collection."""
    user_email: str
    collection_kind: CollectionKind
    collection_id: str
    folder_path: Path

    @classmethod
    def from_row(cls, row) -> "WatchedFolder":
        return cls(
            user_email=row["user_email"],
            collection_kind=CollectionKind(row["collection_kind"]),
            collection_id=row["collection_id"],
            folder_path=Path(row["folder_path"]),
        )


@dataclass(frozen=True)
class ChangeOutcome:
    """
    Result of classifying one logical event.

    Attributes:
        kind: Decision taken by the classifier
        path: Path the event was about
        fingerprint: Fresh (or last known, for removals) fingerprint
        file_id: TrackedFile affected, if any
        previous_path: Source path when a rename was detected
    """
    kind: OutcomeKind
    path: Path
    fingerprint: Optional[str] = None
    file_id: Optional[int] = None
    previous_path: Optional[Path] = None

    @property
    def is_submittable(self) -> bool:
        """True for genuine adds, content changes and renames."""
        return self.kind in (OutcomeKind.ADDED, OutcomeKind.CHANGED, OutcomeKind.RENAMED)
