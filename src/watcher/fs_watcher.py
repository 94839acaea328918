"""File system watcher using watchdog library."""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from .models import EventKind, RawFSEvent
from .config import WatcherConfig

logger = logging.getLogger(__name__)


class FSEventHandler(FileSystemEventHandler):
    """
    Handler that converts watchdog events to RawFSEvent.

    Only file events are surfaced. A move is reported as UNLINK of the
    source followed by ADD of the destination, leaving rename detection
    to the rename correlator.
    """

    def __init__(
        self,
        callback: Callable[[RawFSEvent], None],
        config: WatcherConfig,
        root: Path,
    ):
        super().__init__()
        self.callback = callback
        self.config = config
        self.root = root

    def _should_ignore(self, path: Path) -> bool:
        """Check if the path should be ignored."""
        try:
            relative = path.relative_to(self.root)
        except ValueError:
            relative = path
        return self.config.should_ignore(relative)

    def _emit(self, kind: EventKind, path: Path):
        """Emit a RawFSEvent to the callback."""
        if self._should_ignore(path):
            return

        raw_event = RawFSEvent(kind=kind, path=path, timestamp=time.time())
        try:
            self.callback(raw_event)
        except Exception as e:
            logger.error(f"Event callback failed for {path}: {e}")

    def on_created(self, event):
        if event.is_directory:
            return
        self._emit(EventKind.ADD, Path(event.src_path))

    def on_deleted(self, event):
        if event.is_directory:
            return
        self._emit(EventKind.UNLINK, Path(event.src_path))

    def on_modified(self, event):
        if event.is_directory:
            return
        self._emit(EventKind.CHANGE, Path(event.src_path))

    def on_moved(self, event):
        if event.is_directory:
            return
        self._emit(EventKind.UNLINK, Path(event.src_path))
        self._emit(EventKind.ADD, Path(event.dest_path))


class FSWatcherPool:
    """
    Manages multiple watchdog observers, one per root.

    Provides a unified interface for starting and stopping
    watchers for multiple root directories.
    """

    def __init__(
        self,
        event_callback: Callable[[RawFSEvent], None],
        config: Optional[WatcherConfig] = None,
    ):
        """
        Initialize the watcher pool.

        Args:
            event_callback: Callback function for raw filesystem events,
                invoked on watchdog's observer threads
            config: Watcher configuration
        """
        self.event_callback = event_callback
        self.config = config or WatcherConfig()
        self._observers: Dict[Path, Observer] = {}
        self._lock = threading.Lock()

    def start_watching(self, root: Path) -> bool:
        """
        Start watching a root directory.

        Args:
            root: Path to the root directory

        Returns:
            True if watching started, False if already watching
        """
        root = root.resolve()

        with self._lock:
            if root in self._observers:
                return False

            observer = Observer()
            handler = FSEventHandler(self.event_callback, self.config, root)
            observer.schedule(handler, str(root), recursive=self.config.recursive)
            observer.start()

            self._observers[root] = observer
            logger.info(f"Watching {root}")
            return True

    def stop_watching(self, root: Path) -> bool:
        """
        Stop watching a root directory.

        Args:
            root: Path to the root directory

        Returns:
            True if watching stopped, False if not watching
        """
        root = root.resolve()

        with self._lock:
            observer = self._observers.pop(root, None)
            if observer is None:
                return False

            observer.stop()
            observer.join(timeout=5.0)
            logger.info(f"Stopped watching {root}")
            return True

    def stop_all(self) -> int:
        """
        Stop all watchers.

        Returns:
            Number of watchers stopped
        """
        with self._lock:
            count = len(self._observers)

            for observer in self._observers.values():
                observer.stop()

            for observer in self._observers.values():
                observer.join(timeout=5.0)

            self._observers.clear()
            return count

    def is_watching(self, root: Path) -> bool:
        root = root.resolve()

        with self._lock:
            return root in self._observers

    def get_watched_roots(self) -> List[Path]:
        """
        Get list of currently watched roots.

        Returns:
            List of watched root paths
        """
        with self._lock:
            return list(self._observers.keys())

    def __len__(self) -> int:
        """Return the number of active watchers."""
        with self._lock:
            return len(self._observers)
