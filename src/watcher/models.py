"""Data models for the file watcher package."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
import time


class EventKind(Enum):
    """Kinds of filesystem notifications surfaced by the watcher."""
    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"


@dataclass(frozen=True)
class RawFSEvent:
    """
    Raw notification from the filesystem watcher before coalescing.

    Delivery is at-least-once: the same change may be reported several
    times, and a new file is commonly reported as ADD followed by CHANGE.

    Attributes:
        kind: What happened to the path
        path: Absolute path of the affected file
        timestamp: Unix timestamp when the notification was received
    """
    kind: EventKind
    path: Path
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        if not self.path.is_absolute():
            raise ValueError(f"path must be absolute: {self.path}")


@dataclass(frozen=True)
class LogicalEvent:
    """
    A coalesced notification dispatched for processing.

    Attributes:
        kind: The logical kind (the earliest ADD wins over later CHANGEs)
        path: Absolute path of the affected file
        first_seen: Timestamp of the first raw notification in the window
        dispatched_at: Timestamp when the coalescer released the event
    """
    kind: EventKind
    path: Path
    first_seen: float = field(default_factory=time.time)
    dispatched_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "path": str(self.path),
            "first_seen": self.first_seen,
            "dispatched_at": self.dispatched_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LogicalEvent":
        """Create from dictionary."""
        return cls(
            kind=EventKind(data["kind"]),
            path=Path(data["path"]),
            first_seen=data.get("first_seen", time.time()),
            dispatched_at=data.get("dispatched_at", time.time()),
        )
