"""Configuration for the file watcher package."""

import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass
class WatcherConfig:
    """
    Configuration options for the file watcher pipeline.

    Attributes:
        db_path: Path to the SQLite database holding file history
        debounce_ms: Quiet period before a path's notifications are dispatched
        rename_window_ms: Time window to correlate UNLINK+ADD as a rename
        rename_sweep_interval_ms: Interval for purging expired rename candidates
        rename_sweep_grace_ms: How long past the window the sweep keeps candidates
            whose matching ADD may still be waiting in the queue
        ignore_patterns: Glob patterns for files to ignore
        recursive: Whether to watch directories recursively
    """
    db_path: Path = field(default_factory=lambda: Path("claims.db"))
    debounce_ms: int = 500
    rename_window_ms: int = 1000
    rename_sweep_interval_ms: int = 5000
    rename_sweep_grace_ms: int = 30000
    ignore_patterns: List[str] = field(default_factory=lambda: [
        ".*",
        "*.swp",
        "*.swo",
        "node_modules/*",
        "node_modules",
        ".git/*",
        ".git",
    ])
    recursive: bool = True

    def __post_init__(self):
        if isinstance(self.db_path, str):
            self.db_path = Path(self.db_path)

    @classmethod
    def from_env(cls) -> "WatcherConfig":
        """Create config from environment variables, falling back to defaults."""
        config = cls()
        if os.environ.get("CLAIMWATCH_DB"):
            config.db_path = Path(os.environ["CLAIMWATCH_DB"])
        if os.environ.get("CLAIMWATCH_DEBOUNCE_MS"):
            config.debounce_ms = int(os.environ["CLAIMWATCH_DEBOUNCE_MS"])
        if os.environ.get("CLAIMWATCH_RENAME_WINDOW_MS"):
            config.rename_window_ms = int(os.environ["CLAIMWATCH_RENAME_WINDOW_MS"])
        return config

    def should_ignore(self, path: Path) -> bool:
        """
        Check if a path should be ignored based on ignore patterns.

        Every component of the path is checked, so files inside an
        ignored directory (``.git``, ``node_modules``) are ignored too.

        Args:
            path: Path to check

        Returns:
            True if the path should be ignored
        """
        path_str = str(path)

        for pattern in self.ignore_patterns:
            for part in path.parts:
                if part in ("/", "\\") or part.endswith(":\\"):
                    continue
                if fnmatch.fnmatch(part, pattern):
                    return True
            if fnmatch.fnmatch(path_str, f"*/{pattern}"):
                return True

        return False
