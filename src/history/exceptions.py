"""
Custom exceptions for the history package.
"""


class HistoryError(Exception):
    """Base exception for history errors."""
    pass


class StoreError(HistoryError):
    """Error in history store operations."""
    pass


class UserContextError(StoreError):
    """A store call was made without a user key."""
    pass


class FileNotTrackedError(StoreError):
    """No tracked file matches the request."""
    pass
