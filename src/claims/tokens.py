"""Bearer token storage with change notification."""

import logging
from typing import Callable, List, Optional

from ..history.store import HistoryStore

logger = logging.getLogger(__name__)

TokenObserver = Callable[[Optional[str]], None]


class TokenStore:
    """
    Keeps a user's bearer token on their user row.

    Observers are called with the new token (None after clear) whenever
    the token is set or cleared.
    """

    def __init__(self, store: HistoryStore, user_email: str):
        self.store = store
        self.user_email = user_email
        self._observers: List[TokenObserver] = []

    def get(self) -> Optional[str]:
        return self.store.get_token(self.user_email)

    def set(self, token: str) -> None:
        self.store.set_token(self.user_email, token)
        self._notify(token)

    def clear(self) -> None:
        self.store.clear_token(self.user_email)
        self._notify(None)

    def subscribe(self, observer: TokenObserver) -> Callable[[], None]:
        """
        Register an observer for token changes.

        Returns:
            A function that unregisters the observer
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _notify(self, token: Optional[str]) -> None:
        for observer in list(self._observers):
            try:
                observer(token)
            except Exception as e:
                logger.error(f"Token observer failed: {e}", exc_info=True)
