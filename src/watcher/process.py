"""Main watch pipeline orchestrator."""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

from ..claims.client import ClaimApiClient
from ..claims.images import ImageTransformer
from ..claims.pipeline import SubmissionPipeline
from ..history.classifier import ChangeClassifier
from ..history.models import ChangeOutcome, CollectionKind, OutcomeKind, WatchedFolder
from ..history.store import HistoryStore
from .coalescer import EventCoalescer
from .config import WatcherConfig
from .exceptions import QueueClosedError, WatcherAlreadyRunningError, WatcherNotRunningError
from .fs_watcher import FSWatcherPool
from .models import EventKind, LogicalEvent, RawFSEvent
from .queue import SequentialQueue
from .renames import RenameCorrelator
from .root_manager import RootManager

logger = logging.getLogger(__name__)


class WatchPipeline:
    """
    Main orchestrator for one user's watched folders.

    Raw watchdog notifications are handed to the event loop, coalesced
    per path, then classified and submitted strictly one at a time by a
    single sequential queue. All store access happens on the loop thread.
    """

    def __init__(
        self,
        user_email: str,
        store: HistoryStore,
        config: Optional[WatcherConfig] = None,
        client: Optional[ClaimApiClient] = None,
        images: Optional[ImageTransformer] = None,
    ):
        """
        Initialize the watch pipeline.

        Args:
            user_email: User whose folders are watched
            store: History store
            config: Watcher configuration
            client: Claim API client; without one, changes are recorded
                but no claims are submitted
            images: Image transformer for image uploads
        """
        self.user_email = user_email
        self.store = store
        self.config = config or WatcherConfig()

        self.store.ensure_user(user_email)

        self._root_manager = RootManager(user_email)
        self._correlator = RenameCorrelator(
            correlation_window_ms=self.config.rename_window_ms,
            sweep_interval_ms=self.config.rename_sweep_interval_ms,
            sweep_grace_ms=self.config.debounce_ms + self.config.rename_sweep_grace_ms,
        )
        self.classifier = ChangeClassifier(store, self._correlator)
        self.submitter: Optional[SubmissionPipeline] = None
        if client is not None:
            self.submitter = SubmissionPipeline(store, self.classifier, client, images)
            self.submitter.token_store(user_email).subscribe(self._on_token_changed)

        self._queue: SequentialQueue[LogicalEvent] = SequentialQueue(self._process, name="events")
        self._coalescer: Optional[EventCoalescer] = None
        self._fs_watcher_pool = FSWatcherPool(self._on_raw_event, self.config)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_requested: Optional[asyncio.Event] = None
        self._running = False

        self._load_persisted_folders()

    def _load_persisted_folders(self) -> None:
        """Load watched folders from the store into the root manager."""
        for folder in self.store.get_watched_folders(self.user_email):
            if not folder.folder_path.is_dir():
                logger.warning(f"Watched folder is missing, skipping: {folder.folder_path}")
                continue
            try:
                self._root_manager.add_root(folder.folder_path, folder.collection_kind, folder.collection_id)
            except Exception as e:
                logger.error(f"Failed to load folder {folder.folder_path}: {e}")

    def _on_token_changed(self, token: Optional[str]) -> None:
        if token is None:
            logger.warning(f"Signed out: claims for {self.user_email} paused until next login")
        else:
            logger.info(f"Token updated for {self.user_email}")

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """
        Start watching all registered folders.

        Raises:
            WatcherAlreadyRunningError: If already running
        """
        if self._running:
            raise WatcherAlreadyRunningError("Watch pipeline is already running")

        self._loop = asyncio.get_running_loop()
        self._stop_requested = asyncio.Event()
        self._coalescer = EventCoalescer(self._on_logical_event, self.config.debounce_ms, self._loop)

        await self._queue.start()
        self._correlator.start()

        for folder in self._root_manager.get_roots():
            self._fs_watcher_pool.start_watching(folder.folder_path)

        self._running = True
        logger.info(f"Watching {len(self._root_manager)} folder(s) for {self.user_email}")

    async def stop(self) -> None:
        """
        Stop watching, dispatch pending notifications and drain the queue.
        """
        if not self._running:
            return
        self._running = False

        self._fs_watcher_pool.stop_all()
        if self._coalescer is not None:
            self._coalescer.flush_all()
        await self._queue.stop(drain=True)
        await self._correlator.stop()
        logger.info(
            f"Watch pipeline stopped ({self._queue.processed} processed, {self._queue.failed} failed)"
        )

    def request_stop(self) -> None:
        """Ask a running run_forever() to return."""
        if self._stop_requested is not None:
            self._stop_requested.set()

    async def run_forever(self) -> None:
        """Start, block until request_stop() is called, then stop."""
        await self.start()
        try:
            await self._stop_requested.wait()
        finally:
            await self.stop()

    async def drain(self) -> None:
        """
        Dispatch every pending notification now and wait until the queue
        has processed them.

        Raises:
            WatcherNotRunningError: If not running
        """
        if not self._running:
            raise WatcherNotRunningError("Watch pipeline is not running")
        # Let notifications handed over with call_soon_threadsafe reach the coalescer
        await asyncio.sleep(0)
        self._coalescer.flush_all()
        await self._queue.join()

    def _on_raw_event(self, event: RawFSEvent) -> None:
        """Hand a raw notification from a watchdog thread to the loop."""
        if not self._running or self._loop is None:
            return
        if self._root_manager.find_root_for_path(event.path) is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._coalescer.add, event)
        except RuntimeError:
            logger.debug(f"Event loop closed; dropped {event.kind.value} for {event.path}")

    def notify(self, kind: EventKind, path: Path) -> None:
        """
        Report a filesystem notification. Safe to call from any thread.

        Raises:
            WatcherNotRunningError: If not running
        """
        if not self._running:
            raise WatcherNotRunningError("Watch pipeline is not running")
        self._on_raw_event(RawFSEvent(kind=kind, path=path))

    def _on_logical_event(self, event: LogicalEvent) -> None:
        try:
            self._queue.enqueue(event)
        except QueueClosedError:
            logger.debug(f"Queue closed; dropped {event.kind.value} for {event.path}")

    async def _process(self, event: LogicalEvent) -> ChangeOutcome:
        """Classify one event and submit a claim when it is a genuine change."""
        outcome = await self.classifier.classify(event, self.user_email)

        if outcome.kind == OutcomeKind.UNREADABLE:
            return outcome

        if self.submitter is not None and outcome.is_submittable:
            status = await self.submitter.submit(outcome, self.user_email)
            logger.debug(f"Submission for {outcome.path}: {status.value}")
        return outcome

    def add_folder(self, path: Path, kind: CollectionKind, collection_id: str) -> WatchedFolder:
        """
        Register a folder feeding a collection and start watching it.

        Raises:
            RootNotFoundError: If the folder does not exist
            RootAlreadyExistsError: If the folder is already watched
        """
        folder = self._root_manager.add_root(path, kind, collection_id)
        self.store.add_watched_folder(self.user_email, kind, collection_id, folder.folder_path)
        if self._running:
            self._fs_watcher_pool.start_watching(folder.folder_path)
        logger.info(f"Added folder {folder.folder_path} for {kind.value} {collection_id}")
        return folder

    def remove_folder(self, path: Path) -> bool:
        """
        Stop watching a folder and forget its collection mapping.

        Returns:
            True if the folder was watched
        """
        folder = self._root_manager.remove_root(path)
        if folder is None:
            return False

        self.store.remove_watched_folder(
            self.user_email, folder.collection_kind, folder.collection_id, folder.folder_path
        )
        self._fs_watcher_pool.stop_watching(folder.folder_path)
        logger.info(f"Removed folder {folder.folder_path}")
        return True

    def get_folders(self) -> List[WatchedFolder]:
        """
        Get the current list of watched folders.

        Returns:
            List of watched folders
        """
        return self._root_manager.get_roots()

    def queue_size(self) -> int:
        return self._queue.size()

    def pending_count(self) -> int:
        """Get number of paths waiting out the debounce window."""
        if self._coalescer is None:
            return 0
        return self._coalescer.pending_count()
