"""
Custom exceptions for the claims package.
"""

from typing import Any, Dict, Optional


class ClaimError(Exception):
    """Base exception for claim submission errors."""
    pass


class ApiError(ClaimError):
    """The claim API returned an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TokenExpiredError(ApiError):
    """The bearer token was rejected (HTTP 401)."""

    def __init__(self, message: str = "Token expired or invalid"):
        super().__init__(message, status_code=401)


class ClaimValidationError(ClaimError):
    """A claim payload failed local validation and must not be sent."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}
