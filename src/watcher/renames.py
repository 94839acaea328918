"""Short-lived table of removed paths used to recognise renames."""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingRename:
    """A removed path that may reappear elsewhere with the same content."""
    user_email: str
    path: Path
    fingerprint: str
    removed_at: float


class RenameCorrelator:
    """
    Correlates UNLINK + ADD notifications to detect renames.

    An UNLINK of a tracked file records its last known fingerprint. A later
    ADD whose fresh fingerprint matches a recorded one, within the
    correlation window, is a rename of that file. When several candidates
    share a fingerprint the earliest recorded one is taken; content-identical
    simultaneous renames cannot be told apart from the hash alone.

    The periodic sweep runs on the same event loop as matching, so an entry
    is never purged while it is being matched. Eligibility is decided by
    match() from event timestamps; the sweep only reclaims memory. Events
    reach match() after the debounce delay and any queue backlog, so the
    sweep keeps entries for ``sweep_grace_ms`` beyond the window.
    """

    def __init__(
        self,
        correlation_window_ms: int = 1000,
        sweep_interval_ms: int = 5000,
        sweep_grace_ms: int = 0,
    ):
        """
        Initialize the rename correlator.

        Args:
            correlation_window_ms: Time window in ms to correlate events
            sweep_interval_ms: Interval in ms between purges of expired entries
            sweep_grace_ms: Extra time in ms the sweep keeps entries past the window
        """
        self.correlation_window_ms = correlation_window_ms
        self.sweep_interval_ms = sweep_interval_ms
        self.sweep_grace_ms = sweep_grace_ms
        self._pending: Dict[Tuple[str, Path], PendingRename] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    def on_unlink(self, user_email: str, path: Path, fingerprint: str, timestamp: Optional[float] = None) -> PendingRename:
        """
        Record a removed path as a rename candidate.

        Args:
            user_email: Owner of the tracked file
            path: Path that was removed
            fingerprint: Last known fingerprint of the removed file
            timestamp: When the removal was observed

        Returns:
            The recorded candidate
        """
        entry = PendingRename(
            user_email=user_email,
            path=path,
            fingerprint=fingerprint,
            removed_at=timestamp if timestamp is not None else time.time(),
        )
        key = (user_email, path)
        self._pending.pop(key, None)
        self._pending[key] = entry
        return entry

    def match(self, user_email: str, fingerprint: str, timestamp: Optional[float] = None) -> Optional[PendingRename]:
        """
        Find and consume a candidate with the given fingerprint.

        Args:
            user_email: Owner of the added file
            fingerprint: Fingerprint of the added file
            timestamp: When the add was observed

        Returns:
            The matched candidate, or None if nothing eligible matches
        """
        now = timestamp if timestamp is not None else time.time()
        window_sec = self.correlation_window_ms / 1000.0

        for key, entry in self._pending.items():
            if entry.user_email != user_email or entry.fingerprint != fingerprint:
                continue
            if (now - entry.removed_at) > window_sec:
                continue
            del self._pending[key]
            return entry

        return None

    def flush_expired(self, current_time: Optional[float] = None, grace_ms: int = 0) -> List[PendingRename]:
        """
        Remove and return candidates older than the correlation window.

        Args:
            current_time: Current timestamp
            grace_ms: Extra age in ms tolerated beyond the window

        Returns:
            The expired candidates
        """
        now = current_time if current_time is not None else time.time()
        window_sec = (self.correlation_window_ms + grace_ms) / 1000.0

        expired = [entry for entry in self._pending.values() if (now - entry.removed_at) > window_sec]
        for entry in expired:
            del self._pending[(entry.user_email, entry.path)]

        if expired:
            logger.debug(f"Forgot {len(expired)} unmatched removal(s)")
        return expired

    async def _sweep_loop(self) -> None:
        interval = self.sweep_interval_ms / 1000.0
        while True:
            await asyncio.sleep(interval)
            self.flush_expired(grace_ms=self.sweep_grace_ms)

    def start(self) -> None:
        """Start the periodic sweep on the running loop."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the periodic sweep and drop all candidates."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None
        self.clear()

    @property
    def is_sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def clear(self) -> None:
        """Clear all pending candidates."""
        self._pending.clear()

    def __len__(self) -> int:
        return len(self._pending)
