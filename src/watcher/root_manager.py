"""Thread-safe registry of watched folders and the collections they feed."""

import threading
from pathlib import Path
from typing import Dict, List, Optional

from ..history.models import CollectionKind, WatchedFolder
from .exceptions import RootAlreadyExistsError, RootNotFoundError


class RootManager:
    """
    Thread-safe management of the folders being watched for one user.

    Each folder maps to exactly one collection. Folders may be nested; a
    path belongs to the deepest folder that contains it.
    """

    def __init__(self, user_email: str):
        """
        Initialize the root manager.

        Args:
            user_email: User owning the watched folders
        """
        self.user_email = user_email
        self._roots: Dict[Path, WatchedFolder] = {}
        self._lock = threading.RLock()

    def add_root(
        self,
        path: Path,
        kind: CollectionKind,
        collection_id: str,
        must_exist: bool = True,
    ) -> WatchedFolder:
        """
        Add a folder to watch.

        Args:
            path: Path to the folder
            kind: Kind of collection the folder feeds
            collection_id: Remote collection identifier
            must_exist: If True, raise error if path doesn't exist

        Returns:
            The registered watched folder

        Raises:
            RootNotFoundError: If must_exist and path doesn't exist
            RootAlreadyExistsError: If the folder is already being watched
        """
        path = path.resolve()

        if must_exist and not path.is_dir():
            raise RootNotFoundError(f"Folder does not exist: {path}")

        with self._lock:
            if path in self._roots:
                existing = self._roots[path]
                raise RootAlreadyExistsError(
                    f"Folder already watched for {existing.collection_kind.value} {existing.collection_id}: {path}"
                )

            folder = WatchedFolder(
                user_email=self.user_email,
                collection_kind=kind,
                collection_id=collection_id,
                folder_path=path,
            )
            self._roots[path] = folder
            return folder

    def remove_root(self, path: Path) -> Optional[WatchedFolder]:
        """
        Remove a folder from watching.

        Args:
            path: Path to the folder

        Returns:
            The removed watched folder, or None if not found
        """
        path = path.resolve()

        with self._lock:
            return self._roots.pop(path, None)

    def get_roots(self) -> List[WatchedFolder]:
        """Get the current watched folders ordered by path."""
        with self._lock:
            return [self._roots[path] for path in sorted(self._roots)]

    def get_paths(self) -> List[Path]:
        with self._lock:
            return sorted(self._roots)

    def find_root_for_path(self, path: Path) -> Optional[WatchedFolder]:
        """
        Find the watched folder that owns a path.

        Matching is by whole path components, longest folder first, so
        ``/w`` does not own ``/w2/file``.

        Args:
            path: Absolute path to check

        Returns:
            The deepest watched folder containing the path, or None
        """
        best: Optional[WatchedFolder] = None

        with self._lock:
            for root, folder in self._roots.items():
                try:
                    path.relative_to(root)
                except ValueError:
                    continue
                if best is None or len(root.parts) > len(best.folder_path.parts):
                    best = folder
        return best

    def is_under_any_root(self, path: Path) -> bool:
        return self.find_root_for_path(path) is not None

    def has_root(self, path: Path) -> bool:
        path = path.resolve()

        with self._lock:
            return path in self._roots

    def clear(self) -> int:
        """
        Remove all folders.

        Returns:
            Number of folders removed
        """
        with self._lock:
            count = len(self._roots)
            self._roots.clear()
            return count

    def __len__(self) -> int:
        """Return the number of watched folders."""
        with self._lock:
            return len(self._roots)

    def __contains__(self, path: Path) -> bool:
        """Check if a path is a watched folder."""
        return self.has_root(path)
