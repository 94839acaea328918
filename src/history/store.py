"""
SQLite persistence for tracked files and their change history.

Tables: users, files, file_history, watched_folders, config.
Every file, history, folder and config row is scoped to a user email;
deleting the user row cascades to all of them.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from .exceptions import FileNotTrackedError, StoreError, UserContextError
from .models import (
    CollectionKind,
    HistoryEntry,
    HistoryEventType,
    TrackedFile,
    WatchedFolder,
    now_ms,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    email           TEXT PRIMARY KEY,
    token           TEXT,
    created_at      INTEGER NOT NULL,
    updated_at      INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS files (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_email      TEXT NOT NULL REFERENCES users(email) ON DELETE CASCADE,
    path            TEXT NOT NULL,
    current_hash    TEXT,
    submitted       INTEGER NOT NULL DEFAULT 0,
    created_at      INTEGER NOT NULL,
    updated_at      INTEGER NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_files_user_path ON files(user_email, path);
CREATE UNIQUE INDEX IF NOT EXISTS idx_files_user_hash ON files(user_email, current_hash);

CREATE TABLE IF NOT EXISTS file_history (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_email      TEXT NOT NULL REFERENCES users(email) ON DELETE CASCADE,
    file_id         INTEGER REFERENCES files(id) ON DELETE CASCADE,
    path            TEXT NOT NULL,
    hash            TEXT,
    event_type      TEXT NOT NULL,
    timestamp       INTEGER NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_history_user_file_hash ON file_history(user_email, file_id, hash)
    WHERE event_type != 'rename';
CREATE INDEX IF NOT EXISTS idx_history_file ON file_history(file_id);
CREATE INDEX IF NOT EXISTS idx_history_timestamp ON file_history(timestamp);

CREATE TABLE IF NOT EXISTS watched_folders (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    user_email      TEXT NOT NULL REFERENCES users(email) ON DELETE CASCADE,
    collection_kind TEXT NOT NULL,
    collection_id   TEXT NOT NULL,
    folder_path     TEXT NOT NULL,
    created_at      INTEGER NOT NULL,
    updated_at      INTEGER NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_folders_user_collection_path
    ON watched_folders(user_email, collection_kind, collection_id, folder_path);

CREATE TABLE IF NOT EXISTS config (
    user_email      TEXT NOT NULL REFERENCES users(email) ON DELETE CASCADE,
    key             TEXT NOT NULL,
    value           TEXT NOT NULL,
    created_at      INTEGER NOT NULL,
    updated_at      INTEGER NOT NULL,
    PRIMARY KEY (user_email, key)
);
"""


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class HistoryStore:
    """SQLite-backed store for tracked files, history and watched folders."""

    def __init__(self, db_path: Path):
        """
        Initialize the history store.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        self._closed = False

        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        self._conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
            isolation_level=None,
        )
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

        self._conn.executescript(_SCHEMA)

    def _check_closed(self) -> None:
        if self._closed:
            raise StoreError("Store is closed")

    @staticmethod
    def _require_user(user_email: Optional[str]) -> str:
        if not user_email or not user_email.strip():
            raise UserContextError("No current user set; a user email is required for store access")
        return user_email

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            self._conn.execute("BEGIN")
            try:
                yield self._conn
                self._conn.execute("COMMIT")
            except Exception:
                self._conn.execute("ROLLBACK")
                raise

    def _ensure_user_row(self, conn: sqlite3.Connection, user_email: str) -> None:
        now = now_ms()
        conn.execute(
            "INSERT OR IGNORE INTO users (email, created_at, updated_at) VALUES (?, ?, ?)",
            (user_email, now, now),
        )

    # User operations

    def ensure_user(self, user_email: str) -> None:
        """Create the user row if it does not exist."""
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            self._ensure_user_row(self._conn, user_email)

    def get_token(self, user_email: str) -> Optional[str]:
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            row = self._conn.execute(
                "SELECT token FROM users WHERE email = ?", (user_email,)
            ).fetchone()
            return row["token"] if row else None

    def set_token(self, user_email: str, token: str) -> None:
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._transaction() as conn:
            self._ensure_user_row(conn, user_email)
            conn.execute(
                "UPDATE users SET token = ?, updated_at = ? WHERE email = ?",
                (token, now_ms(), user_email),
            )

    def clear_token(self, user_email: str) -> None:
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            self._conn.execute(
                "UPDATE users SET token = NULL, updated_at = ? WHERE email = ?",
                (now_ms(), user_email),
            )

    def reset_user(self, user_email: str) -> int:
        """
        Purge all data belonging to a user.

        Files, history, watched folders and config rows are removed by
        cascade. This is the only operation that hard-deletes tracked files.

        Args:
            user_email: User to purge

        Returns:
            Number of tracked files removed
        """
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._transaction() as conn:
            file_count = conn.execute(
                "SELECT COUNT(*) FROM files WHERE user_email = ?", (user_email,)
            ).fetchone()[0]
            conn.execute("DELETE FROM users WHERE email = ?", (user_email,))

        logger.info(f"Reset all data for {user_email} ({file_count} tracked file(s))")
        return file_count

    # Tracked file operations

    def get_file_by_path(self, user_email: str, path: Path) -> Optional[TrackedFile]:
        """
        Get the tracked file at a path.

        Args:
            user_email: Owning user
            path: Absolute file path

        Returns:
            TrackedFile or None if the path is not tracked
        """
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM files WHERE user_email = ? AND path = ?",
                (user_email, str(path)),
            ).fetchone()
            return TrackedFile.from_row(row) if row else None

    def get_file_by_id(self, user_email: str, file_id: int) -> Optional[TrackedFile]:
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM files WHERE user_email = ? AND id = ?",
                (user_email, file_id),
            ).fetchone()
            return TrackedFile.from_row(row) if row else None

    def get_file_by_fingerprint(self, user_email: str, fingerprint: str) -> Optional[TrackedFile]:
        """Get the tracked file whose current content has this fingerprint."""
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM files WHERE user_email = ? AND current_hash = ? LIMIT 1",
                (user_email, fingerprint),
            ).fetchone()
            return TrackedFile.from_row(row) if row else None

    def get_submitted_file_by_fingerprint(self, user_email: str, fingerprint: str) -> Optional[TrackedFile]:
        """Get the tracked file with this fingerprint if it was already claimed."""
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM files WHERE user_email = ? AND current_hash = ? AND submitted = 1 LIMIT 1",
                (user_email, fingerprint),
            ).fetchone()
            return TrackedFile.from_row(row) if row else None

    def get_files(self, user_email: str) -> List[TrackedFile]:
        """Get all tracked files of a user ordered by path."""
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM files WHERE user_email = ? ORDER BY path",
                (user_email,),
            ).fetchall()
            return [TrackedFile.from_row(row) for row in rows]

    def upsert_file(self, user_email: str, path: Path, fingerprint: str, timestamp: Optional[int] = None) -> TrackedFile:
        """
        Create or update the tracked file at a path.

        A fingerprint identifies at most one tracked file per user. If the
        same content is already tracked under another path and nothing is
        tracked at ``path``, that row is moved to ``path`` instead of a new
        row being inserted. If both rows exist, the row at ``path`` takes the
        fingerprint and the other row's fingerprint is cleared.

        Args:
            user_email: Owning user
            path: Absolute file path
            fingerprint: Fresh content fingerprint
            timestamp: Update time in milliseconds

        Returns:
            The tracked file after the write
        """
        self._check_closed()
        user_email = self._require_user(user_email)
        ts = timestamp if timestamp is not None else now_ms()
        path_str = str(path)

        with self._transaction() as conn:
            self._ensure_user_row(conn, user_email)

            by_hash = conn.execute(
                "SELECT id, path FROM files WHERE user_email = ? AND current_hash = ?",
                (user_email, fingerprint),
            ).fetchone()

            if by_hash is not None and by_hash["path"] != path_str:
                at_path = conn.execute(
                    "SELECT id FROM files WHERE user_email = ? AND path = ?",
                    (user_email, path_str),
                ).fetchone()
                if at_path is None:
                    conn.execute(
                        "UPDATE files SET path = ?, updated_at = ? WHERE id = ?",
                        (path_str, ts, by_hash["id"]),
                    )
                    row = conn.execute("SELECT * FROM files WHERE id = ?", (by_hash["id"],)).fetchone()
                    return TrackedFile.from_row(row)
                conn.execute(
                    "UPDATE files SET current_hash = NULL, submitted = 0, updated_at = ? WHERE id = ?",
                    (ts, by_hash["id"]),
                )

            conn.execute("""
                INSERT INTO files (user_email, path, current_hash, submitted, created_at, updated_at)
                VALUES (?, ?, ?, 0, ?, ?)
                ON CONFLICT(user_email, path) DO UPDATE SET
                    submitted = CASE WHEN files.current_hash = excluded.current_hash
                                     THEN files.submitted ELSE 0 END,
                    current_hash = excluded.current_hash,
                    updated_at = excluded.updated_at
            """, (user_email, path_str, fingerprint, ts, ts))

            row = conn.execute(
                "SELECT * FROM files WHERE user_email = ? AND path = ?",
                (user_email, path_str),
            ).fetchone()
            if row is None:
                raise StoreError(f"Failed to upsert file {path}")
            return TrackedFile.from_row(row)

    def update_file_path(self, user_email: str, file_id: int, new_path: Path, timestamp: Optional[int] = None) -> None:
        """
        Move a tracked file to a new path.

        Raises:
            FileNotTrackedError: If no such file exists for the user
            StoreError: If another tracked file already has the new path
        """
        self._check_closed()
        user_email = self._require_user(user_email)
        ts = timestamp if timestamp is not None else now_ms()

        with self._lock:
            try:
                cursor = self._conn.execute(
                    "UPDATE files SET path = ?, updated_at = ? WHERE user_email = ? AND id = ?",
                    (str(new_path), ts, user_email, file_id),
                )
            except sqlite3.IntegrityError as e:
                raise StoreError(f"Cannot move file {file_id} to {new_path}: {e}") from e
            if cursor.rowcount == 0:
                raise FileNotTrackedError(f"No tracked file {file_id} for {user_email}")

    def mark_submitted(self, user_email: str, fingerprint: str) -> int:
        """
        Flag the file currently holding this fingerprint as claimed.

        Returns:
            Number of rows updated
        """
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            cursor = self._conn.execute(
                "UPDATE files SET submitted = 1 WHERE user_email = ? AND current_hash = ?",
                (user_email, fingerprint),
            )
            return cursor.rowcount

    # History operations

    def insert_history(
        self,
        user_email: str,
        file_id: Optional[int],
        path: Path,
        fingerprint: str,
        event_type: HistoryEventType,
        timestamp: Optional[int] = None,
    ) -> bool:
        """
        Append a history entry.

        An add or change is recorded at most once per file and fingerprint;
        repeated inserts are ignored. Every rename gets its own entry.

        Returns:
            True if a row was written, False if it already existed
        """
        self._check_closed()
        user_email = self._require_user(user_email)
        ts = timestamp if timestamp is not None else now_ms()

        with self._lock:
            cursor = self._conn.execute("""
                INSERT OR IGNORE INTO file_history (user_email, file_id, path, hash, event_type, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (user_email, file_id, str(path), fingerprint, event_type.value, ts))
            return cursor.rowcount == 1

    def get_history_for_file(self, user_email: str, file_id: int) -> List[HistoryEntry]:
        """Get a file's history, oldest first."""
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM file_history WHERE user_email = ? AND file_id = ? ORDER BY timestamp, id",
                (user_email, file_id),
            ).fetchall()
            return [HistoryEntry.from_row(row) for row in rows]

    def get_previous_fingerprint(self, user_email: str, file_id: int, current_fingerprint: str) -> Optional[str]:
        """
        Get the most recent recorded fingerprint that differs from the current one.

        Ties on timestamp are broken by insertion order.
        """
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            row = self._conn.execute("""
                SELECT hash FROM file_history
                WHERE user_email = ? AND file_id = ? AND hash IS NOT NULL AND hash != ?
                ORDER BY timestamp DESC, id DESC
                LIMIT 1
            """, (user_email, file_id, current_fingerprint)).fetchone()
            return row["hash"] if row else None

    def _folder_predicate(self, folders: Sequence[Path]) -> tuple:
        clauses = []
        params: List[str] = []
        for folder in folders:
            folder_str = str(folder).rstrip("/")
            clauses.append("path = ?")
            params.append(folder_str)
            clauses.append("path LIKE ? ESCAPE '\\'")
            params.append(_escape_like(folder_str) + "/%")
        return "(" + " OR ".join(clauses) + ")", params

    def get_history_for_folders(
        self,
        user_email: str,
        folders: Sequence[Path],
        limit: int = 20,
        offset: int = 0,
    ) -> List[HistoryEntry]:
        """
        Get history entries under any of the given folders, newest first.

        Args:
            user_email: Owning user
            folders: Folder paths to include
            limit: Maximum entries to return
            offset: Number of entries to skip

        Returns:
            List of history entries
        """
        self._check_closed()
        user_email = self._require_user(user_email)

        if not folders:
            return []

        predicate, params = self._folder_predicate(folders)
        with self._lock:
            rows = self._conn.execute(
                f"SELECT * FROM file_history WHERE user_email = ? AND {predicate} "
                f"ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?",
                [user_email] + params + [limit, offset],
            ).fetchall()
            return [HistoryEntry.from_row(row) for row in rows]

    def count_history_for_folders(self, user_email: str, folders: Sequence[Path]) -> int:
        """Count history entries under any of the given folders."""
        self._check_closed()
        user_email = self._require_user(user_email)

        if not folders:
            return 0

        predicate, params = self._folder_predicate(folders)
        with self._lock:
            row = self._conn.execute(
                f"SELECT COUNT(*) FROM file_history WHERE user_email = ? AND {predicate}",
                [user_email] + params,
            ).fetchone()
            return row[0]

    # Watched folder operations

    def add_watched_folder(self, user_email: str, kind: CollectionKind, collection_id: str, folder: Path) -> WatchedFolder:
        """Register a folder as feeding a collection."""
        self._check_closed()
        user_email = self._require_user(user_email)
        now = now_ms()

        with self._transaction() as conn:
            self._ensure_user_row(conn, user_email)
            conn.execute("""
                INSERT INTO watched_folders (user_email, collection_kind, collection_id, folder_path, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_email, collection_kind, collection_id, folder_path)
                DO UPDATE SET updated_at = excluded.updated_at
            """, (user_email, kind.value, collection_id, str(folder), now, now))

        return WatchedFolder(user_email, kind, collection_id, Path(folder))

    def remove_watched_folder(self, user_email: str, kind: CollectionKind, collection_id: str, folder: Path) -> bool:
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM watched_folders WHERE user_email = ? AND collection_kind = ? "
                "AND collection_id = ? AND folder_path = ?",
                (user_email, kind.value, collection_id, str(folder)),
            )
            return cursor.rowcount > 0

    def remove_folders_for_collection(self, user_email: str, kind: CollectionKind, collection_id: str) -> int:
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM watched_folders WHERE user_email = ? AND collection_kind = ? AND collection_id = ?",
                (user_email, kind.value, collection_id),
            )
            return cursor.rowcount

    def get_watched_folders(self, user_email: str) -> List[WatchedFolder]:
        """Get every watched folder of a user."""
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM watched_folders WHERE user_email = ? "
                "ORDER BY collection_kind, collection_id, folder_path",
                (user_email,),
            ).fetchall()
            return [WatchedFolder.from_row(row) for row in rows]

    def get_folders_for_collection(self, user_email: str, kind: CollectionKind, collection_id: str) -> List[Path]:
        return [
            folder.folder_path
            for folder in self.get_watched_folders(user_email)
            if folder.collection_kind == kind and folder.collection_id == collection_id
        ]

    def find_collection_for_path(self, user_email: str, path: Path) -> Optional[WatchedFolder]:
        """
        Find the watched folder owning a file by longest path prefix.

        Args:
            user_email: Owning user
            path: Absolute file path

        Returns:
            The most specific watched folder containing the path, or None
        """
        best: Optional[WatchedFolder] = None
        for folder in self.get_watched_folders(user_email):
            try:
                path.relative_to(folder.folder_path)
            except ValueError:
                continue
            if best is None or len(folder.folder_path.parts) > len(best.folder_path.parts):
                best = folder
        return best

    # Config operations

    def get_config(self, user_email: str, key: str) -> Optional[str]:
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM config WHERE user_email = ? AND key = ?",
                (user_email, key),
            ).fetchone()
            return row["value"] if row else None

    def set_config(self, user_email: str, key: str, value: str) -> None:
        self._check_closed()
        user_email = self._require_user(user_email)
        now = now_ms()

        with self._transaction() as conn:
            self._ensure_user_row(conn, user_email)
            conn.execute("""
                INSERT INTO config (user_email, key, value, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_email, key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """, (user_email, key, value, now, now))

    def delete_config(self, user_email: str, key: str) -> None:
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            self._conn.execute(
                "DELETE FROM config WHERE user_email = ? AND key = ?",
                (user_email, key),
            )

    def get_all_config(self, user_email: str) -> Dict[str, str]:
        self._check_closed()
        user_email = self._require_user(user_email)

        with self._lock:
            rows = self._conn.execute(
                "SELECT key, value FROM config WHERE user_email = ?", (user_email,)
            ).fetchall()
            return {row["key"]: row["value"] for row in rows}

    def close(self) -> None:
        """Close the store and release resources."""
        if self._closed:
            return

        self._closed = True
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
