"""
Change classification for logical filesystem events.

Turns each coalesced event into a ChangeOutcome, recording the
TrackedFile and HistoryEntry writes it implies.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from ..watcher.models import EventKind, LogicalEvent
from ..watcher.renames import RenameCorrelator
from .exceptions import HistoryError
from .models import (
    ChangeOutcome,
    HistoryEntry,
    HistoryEventType,
    OutcomeKind,
    compute_fingerprint,
    normalize_fingerprint,
    now_ms,
)
from .store import HistoryStore

logger = logging.getLogger(__name__)


class ChangeClassifier:
    """
    Decides whether a logical event is an add, a content change, a rename
    or a no-op, and persists the result.

    Must only be called from one serialized context (the processing queue),
    so that history written for one event is visible when the next event
    is classified.
    """

    def __init__(
        self,
        store: HistoryStore,
        correlator: RenameCorrelator,
        hasher: Callable[[Path], Optional[str]] = compute_fingerprint,
    ):
        """
        Initialize the classifier.

        Args:
            store: History store for tracked files and history
            correlator: Rename correlator holding recent removals
            hasher: Function computing a file's fingerprint (None if unreadable)
        """
        self.store = store
        self.correlator = correlator
        self.hasher = hasher

    async def _fingerprint(self, path: Path) -> Optional[str]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.hasher, path)

    async def classify(self, event: LogicalEvent, user_email: str) -> ChangeOutcome:
        """
        Classify a logical event and record its effect.

        Args:
            event: Coalesced event to classify
            user_email: User the watched folder belongs to

        Returns:
            The outcome describing what was recorded
        """
        if event.kind == EventKind.UNLINK:
            return self._on_unlink(event, user_email)

        fingerprint = await self._fingerprint(event.path)
        if fingerprint is None:
            logger.warning(f"Skipping unreadable file: {event.path}")
            return ChangeOutcome(kind=OutcomeKind.UNREADABLE, path=event.path)

        if event.kind == EventKind.ADD:
            candidate = self.correlator.match(user_email, fingerprint, event.first_seen)
            if candidate is not None and candidate.path != event.path:
                renamed = self._on_rename(event.path, candidate.path, fingerprint, user_email)
                if renamed is not None:
                    return renamed

        return self._on_add_or_change(event.path, fingerprint, user_email)

    def _on_unlink(self, event: LogicalEvent, user_email: str) -> ChangeOutcome:
        tracked = self.store.get_file_by_path(user_email, event.path)
        if tracked is None or tracked.fingerprint is None:
            logger.debug(f"Removal of untracked path: {event.path}")
            return ChangeOutcome(kind=OutcomeKind.UNTRACKED_REMOVAL, path=event.path)

        self.correlator.on_unlink(user_email, event.path, tracked.fingerprint, event.first_seen)
        logger.debug(f"Removal pending rename correlation: {event.path}")
        return ChangeOutcome(
            kind=OutcomeKind.REMOVAL_PENDING,
            path=event.path,
            fingerprint=tracked.fingerprint,
            file_id=tracked.id,
        )

    def _on_rename(self, new_path: Path, old_path: Path, fingerprint: str, user_email: str) -> Optional[ChangeOutcome]:
        tracked = self.store.get_file_by_path(user_email, old_path)
        if tracked is None or tracked.fingerprint != fingerprint:
            tracked = self.store.get_file_by_fingerprint(user_email, fingerprint)
        if tracked is None:
            logger.debug(f"Rename source {old_path} is no longer tracked")
            return None

        occupant = self.store.get_file_by_path(user_email, new_path)
        if occupant is not None and occupant.id != tracked.id:
            # Moved over a tracked file (atomic save): the destination keeps its lineage
            logger.debug(f"{old_path} replaced tracked {new_path}; recording as a content change")
            return None

        ts = now_ms()
        self.store.update_file_path(user_email, tracked.id, new_path, ts)
        self.store.insert_history(user_email, tracked.id, new_path, fingerprint, HistoryEventType.RENAME, ts)
        logger.info(f"Renamed: {old_path} -> {new_path}")
        return ChangeOutcome(
            kind=OutcomeKind.RENAMED,
            path=new_path,
            fingerprint=fingerprint,
            file_id=tracked.id,
            previous_path=old_path,
        )

    def _on_add_or_change(self, path: Path, fingerprint: str, user_email: str) -> ChangeOutcome:
        existing = self.store.get_file_by_path(user_email, path)

        if existing is not None and existing.fingerprint == fingerprint:
            logger.debug(f"Unchanged: {path}")
            return ChangeOutcome(
                kind=OutcomeKind.UNCHANGED,
                path=path,
                fingerprint=fingerprint,
                file_id=existing.id,
            )

        if existing is None:
            # Content already tracked elsewhere moves to this path
            owner = self.store.get_file_by_fingerprint(user_email, fingerprint)
            if owner is not None and owner.path != path:
                return self._on_rename(path, owner.path, fingerprint, user_email)

        ts = now_ms()
        tracked = self.store.upsert_file(user_email, path, fingerprint, ts)

        if existing is None:
            self.store.insert_history(user_email, tracked.id, path, fingerprint, HistoryEventType.ADD, ts)
            logger.info(f"Added: {path}")
            return ChangeOutcome(kind=OutcomeKind.ADDED, path=path, fingerprint=fingerprint, file_id=tracked.id)

        if not self.store.insert_history(user_email, tracked.id, path, fingerprint, HistoryEventType.CHANGE, ts):
            logger.debug(f"Fingerprint already in history for {path}; no new entry")
        logger.info(f"Changed: {path}")
        return ChangeOutcome(kind=OutcomeKind.CHANGED, path=path, fingerprint=fingerprint, file_id=tracked.id)

    def previous_fingerprint(self, user_email: str, path: Path, fresh_fingerprint: str) -> Optional[str]:
        """
        Resolve the fingerprint a file had before its current content.

        Works both before and after the classifier has committed the fresh
        fingerprint: a stored fingerprint that differs from the fresh one is
        the previous one; otherwise the latest history entry with a
        different fingerprint is used.

        Args:
            user_email: Owning user
            path: Absolute file path
            fresh_fingerprint: Fingerprint of the current on-disk content

        Returns:
            The previous fingerprint, or None for a file with no prior version
        """
        tracked = self.store.get_file_by_path(user_email, path)
        if tracked is None:
            return None

        if tracked.fingerprint and tracked.fingerprint != fresh_fingerprint:
            return normalize_fingerprint(tracked.fingerprint)

        previous = self.store.get_previous_fingerprint(user_email, tracked.id, fresh_fingerprint)
        if previous is None:
            return None
        return normalize_fingerprint(previous)

    def history_for_folders(
        self,
        user_email: str,
        folders: Sequence[Path],
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[HistoryEntry], int]:
        """
        Get one page of history for files under the given folders.

        Args:
            user_email: Owning user
            folders: Watched folder paths
            page: 1-based page number
            page_size: Entries per page

        Returns:
            Tuple of (entries newest first, total entry count)
        """
        if not folders:
            return [], 0

        page = max(page, 1)
        offset = (page - 1) * page_size
        try:
            items = self.store.get_history_for_folders(user_email, folders, limit=page_size, offset=offset)
            total = self.store.count_history_for_folders(user_email, folders)
        except HistoryError as e:
            logger.error(f"Failed to load history for {len(folders)} folder(s): {e}")
            return [], 0
        return items, total
