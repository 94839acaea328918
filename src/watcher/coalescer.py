"""Per-path debouncing of raw filesystem notifications."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .models import EventKind, LogicalEvent, RawFSEvent

logger = logging.getLogger(__name__)


@dataclass
class PendingEvent:
    """An event waiting to be dispatched after the debounce window."""
    kind: EventKind
    path: Path
    first_seen: float = field(default_factory=time.time)
    handle: Optional[asyncio.TimerHandle] = None


class EventCoalescer:
    """
    Debounces rapid notifications for the same path into one logical event.

    Every notification for a path re-arms that path's timer. When the timer
    fires with no further notifications, exactly one LogicalEvent is handed
    to ``on_dispatch``.

    Coalescing rules:
    - ADD then CHANGE → single ADD
    - CHANGE then CHANGE → single CHANGE
    - CHANGE then ADD → single ADD
    - UNLINK is dispatched immediately and cancels any pending ADD/CHANGE
      for the same path

    Must be driven from the event loop thread; watchdog threads hand
    notifications over with ``loop.call_soon_threadsafe``.
    """

    def __init__(
        self,
        on_dispatch: Callable[[LogicalEvent], None],
        debounce_ms: int = 500,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        """
        Initialize the coalescer.

        Args:
            on_dispatch: Callback receiving each coalesced event
            debounce_ms: Debounce window in milliseconds
            loop: Event loop used for timers (defaults to the running loop)
        """
        self.on_dispatch = on_dispatch
        self.debounce_ms = debounce_ms
        self._loop = loop
        self._pending: Dict[Path, PendingEvent] = {}

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def add(self, event: RawFSEvent) -> None:
        """
        Add a raw notification to the coalescer.

        Args:
            event: The raw notification
        """
        path = event.path

        if event.kind == EventKind.UNLINK:
            existing = self._pending.pop(path, None)
            if existing is not None and existing.handle is not None:
                existing.handle.cancel()
                logger.debug(f"Dropped pending {existing.kind.value} for removed path {path}")
            self._dispatch(LogicalEvent(kind=EventKind.UNLINK, path=path, first_seen=event.timestamp))
            return

        existing = self._pending.get(path)
        if existing is None:
            pending = PendingEvent(kind=event.kind, path=path, first_seen=event.timestamp)
            self._pending[path] = pending
        else:
            pending = existing
            if existing.handle is not None:
                existing.handle.cancel()
            if event.kind == EventKind.ADD:
                pending.kind = EventKind.ADD

        delay = self.debounce_ms / 1000.0
        pending.handle = self._get_loop().call_later(delay, self._fire, path)

    def notify(self, kind: EventKind, path: Path) -> None:
        """Convenience wrapper around add() for a (kind, path) pair."""
        self.add(RawFSEvent(kind=kind, path=path))

    def _fire(self, path: Path) -> None:
        pending = self._pending.pop(path, None)
        if pending is None:
            return
        self._dispatch(LogicalEvent(kind=pending.kind, path=pending.path, first_seen=pending.first_seen))

    def _dispatch(self, event: LogicalEvent) -> None:
        logger.debug(f"Dispatching {event.kind.value}: {event.path}")
        try:
            self.on_dispatch(event)
        except Exception as e:
            logger.error(f"Dispatch callback failed for {event.path}: {e}", exc_info=True)

    def flush_all(self) -> List[LogicalEvent]:
        """
        Dispatch every pending event immediately, regardless of time.

        Returns:
            The events that were dispatched, in arming order
        """
        flushed = []
        for path in list(self._pending.keys()):
            pending = self._pending.pop(path)
            if pending.handle is not None:
                pending.handle.cancel()
            event = LogicalEvent(kind=pending.kind, path=pending.path, first_seen=pending.first_seen)
            self._dispatch(event)
            flushed.append(event)
        return flushed

    def pending_count(self) -> int:
        """Get number of paths with an armed timer."""
        return len(self._pending)

    def is_pending(self, path: Path) -> bool:
        """Check whether a path has an undelivered notification."""
        return path in self._pending

    def clear(self) -> None:
        """Cancel all pending timers without dispatching."""
        for pending in self._pending.values():
            if pending.handle is not None:
                pending.handle.cancel()
        self._pending.clear()
