"""
Claim payload construction and validation.
"""

import json
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .exceptions import ClaimValidationError

if TYPE_CHECKING:
    from .collection import Collection, CollectionMetadata

FINGERPRINT_PATTERN = re.compile(r"0x[0-9a-f]{64}")

DEFAULT_MIME_TYPE = "application/octet-stream"
LICENSE_URL = "https://ucfr.io/LICENSE.txt"
CANONICAL_URL = "https://www.ucfr.io/"

# Extensions the platform registry maps differently or not at all
_MIME_OVERRIDES = {
    ".ts": "text/typescript",
    ".md": "text/markdown",
    ".js": "text/javascript",
}


def is_valid_fingerprint(value: Any) -> bool:
    """Check for ``0x`` followed by 64 lowercase hex characters."""
    return isinstance(value, str) and FINGERPRINT_PATTERN.fullmatch(value) is not None


def guess_mime_type(path: Path) -> str:
    """Guess a file's MIME type from its extension."""
    suffix = path.suffix.lower()
    if suffix in _MIME_OVERRIDES:
        return _MIME_OVERRIDES[suffix]
    mime_type, _ = mimetypes.guess_type(path.name)
    return mime_type or DEFAULT_MIME_TYPE


def is_image_mime_type(mime_type: str) -> bool:
    return mime_type.startswith("image/")


@dataclass(frozen=True)
class FileSubject:
    """
    The file a claim is about.

    Attributes:
        name: File name without directory
        media_type: MIME type
        size: Size in bytes
        fingerprint: Fingerprint of the original bytes
        last_modified: Modification time in integer milliseconds
        previous_fingerprint: Fingerprint of the prior version, if known
    """
    name: str
    media_type: str
    size: int
    fingerprint: str
    last_modified: int
    previous_fingerprint: Optional[str] = None

    @classmethod
    def from_path(cls, path: Path, fingerprint: str, previous_fingerprint: Optional[str] = None) -> "FileSubject":
        stat = path.stat()
        return cls(
            name=path.name,
            media_type=guess_mime_type(path),
            size=stat.st_size,
            fingerprint=fingerprint,
            last_modified=int(stat.st_mtime * 1000),
            previous_fingerprint=previous_fingerprint,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "mediaType": self.media_type,
            "size": self.size,
            "fingerprint": self.fingerprint,
            "lastModified": self.last_modified,
        }
        if self.previous_fingerprint:
            data["previousFingerprint"] = self.previous_fingerprint
        return data


def build_claim_data(
    collection: "Collection",
    metadata: "CollectionMetadata",
    user_email: str,
    subject: FileSubject,
) -> Dict[str, Any]:
    """
    Build the metadata object embedded in a claim.

    Args:
        collection: Collection receiving the claim (supplies the vocabulary)
        metadata: Fetched collection metadata
        user_email: Email of the authorized user
        subject: The file being claimed

    Returns:
        The metadata object, ready to be JSON-encoded into the payload
    """
    noun = collection.noun
    return {
        "filename": subject.name,
        "userEmail": user_email,
        collection.id_field: metadata.id,
        collection.name_field: metadata.name,
        "fingerprint": subject.fingerprint,
        "version": "1.0",
        "lang": "en",
        "title": f"UCFR {noun} for {subject.name}",
        "description": (
            f"Submitted by {user_email}. {collection.kind.value.capitalize()} {metadata.name}. "
            f"{noun} covers {subject.name}"
        ),
        "keywords": [
            "UCFR",
            noun.lower(),
            metadata.organization_name or "Personal",
            metadata.name,
            subject.media_type,
            subject.name,
        ],
        "license": LICENSE_URL,
        "canonicalUrl": CANONICAL_URL,
        "author": {
            "email": user_email,
            "organizationId": metadata.organization_id or metadata.id,
            "projectId": metadata.id,
        },
        "subject": subject.to_dict(),
    }


def validate_claim_data(data: Dict[str, Any], required_fields: List[str]) -> None:
    """
    Check a claim's metadata before it is sent.

    Args:
        data: Metadata object from build_claim_data
        required_fields: Keys that must hold non-empty strings

    Raises:
        ClaimValidationError: With missing fields and fingerprint diagnostics
    """
    missing = [
        name for name in required_fields
        if not isinstance(data.get(name), str) or not data[name].strip()
    ]
    fingerprint = data.get("fingerprint")
    fingerprint_valid = is_valid_fingerprint(fingerprint)

    if missing or not fingerprint_valid:
        raise ClaimValidationError(
            "Claim validation failed",
            details={
                "missingFields": missing,
                "fingerprintValid": fingerprint_valid,
                "fingerprintSample": fingerprint[:10] if isinstance(fingerprint, str) else None,
            },
        )


@dataclass(frozen=True)
class ClaimPayload:
    """Wire body of a claim submission."""
    fingerprint: str
    data: Dict[str, Any]
    method_id: int = 0
    external_id: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "methodId": self.method_id,
            "externalId": self.external_id,
            "fingerprint": self.fingerprint,
            "data": json.dumps(self.data),
        }
