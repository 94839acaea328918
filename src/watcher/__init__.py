"""
File Watcher Package

Watches folders for file changes and turns raw notifications into an
ordered stream of logical events.

Features:
- Per-folder collection mapping with nested folders (deepest wins)
- File change events: ADD, CHANGE, UNLINK
- Per-path debouncing (ADD followed by CHANGE stays ADD)
- Rename detection via UNLINK+ADD fingerprint correlation
- Strictly sequential processing of logical events

The orchestrator lives in ``src.watcher.process`` (``WatchPipeline``).
"""

from .models import (
    EventKind,
    RawFSEvent,
    LogicalEvent,
)

from .config import WatcherConfig

from .exceptions import (
    WatcherError,
    QueueError,
    QueueClosedError,
    RootError,
    RootNotFoundError,
    RootAlreadyExistsError,
    WatcherNotRunningError,
    WatcherAlreadyRunningError,
)

from .coalescer import EventCoalescer
from .queue import SequentialQueue
from .renames import PendingRename, RenameCorrelator
from .root_manager import RootManager
from .fs_watcher import FSWatcherPool, FSEventHandler


__all__ = [
    # Models
    "EventKind",
    "RawFSEvent",
    "LogicalEvent",
    # Config
    "WatcherConfig",
    # Exceptions
    "WatcherError",
    "QueueError",
    "QueueClosedError",
    "RootError",
    "RootNotFoundError",
    "RootAlreadyExistsError",
    "WatcherNotRunningError",
    "WatcherAlreadyRunningError",
    # Components
    "EventCoalescer",
    "SequentialQueue",
    "PendingRename",
    "RenameCorrelator",
    "RootManager",
    "FSWatcherPool",
    "FSEventHandler",
]

__version__ = "0.1.0"
