"""
Claim submission.

Builds content-addressed claims for watched files and submits them to
the remote collection (project or mark) that owns the file's folder.
"""

from .client import ClaimApiClient
from .collection import (
    Collection,
    CollectionMetadata,
    MarkCollection,
    ProjectCollection,
    collection_for,
)
from .config import ClaimsConfig
from .exceptions import ApiError, ClaimError, ClaimValidationError, TokenExpiredError
from .images import ImageTransformer, ProcessedImage
from .payload import (
    ClaimPayload,
    FileSubject,
    build_claim_data,
    guess_mime_type,
    is_image_mime_type,
    is_valid_fingerprint,
    validate_claim_data,
)
from .pipeline import SubmissionPipeline, SubmissionStatus
from .tokens import TokenStore

__all__ = [
    "ApiError",
    "ClaimApiClient",
    "ClaimError",
    "ClaimPayload",
    "ClaimValidationError",
    "ClaimsConfig",
    "Collection",
    "CollectionMetadata",
    "FileSubject",
    "ImageTransformer",
    "MarkCollection",
    "ProcessedImage",
    "ProjectCollection",
    "SubmissionPipeline",
    "SubmissionStatus",
    "TokenExpiredError",
    "TokenStore",
    "build_claim_data",
    "collection_for",
    "guess_mime_type",
    "is_image_mime_type",
    "is_valid_fingerprint",
    "validate_claim_data",
]
