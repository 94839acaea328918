"""Custom exceptions for the file watcher package."""


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class QueueError(WatcherError):
    """Error related to the sequential processing queue."""
    pass


class QueueClosedError(QueueError):
    """Work was submitted to a queue that has been stopped."""
    pass


class RootError(WatcherError):
    """Error related to watched folder management."""
    pass


class RootNotFoundError(RootError):
    """Specified folder does not exist."""
    pass


class RootAlreadyExistsError(RootError):
    """Folder is already being watched."""
    pass


class WatcherNotRunningError(WatcherError):
    """Watch pipeline is not running."""
    pass


class WatcherAlreadyRunningError(WatcherError):
    """Watch pipeline is already running."""
    pass
