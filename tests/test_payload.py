"""Tests for claim payload module."""

import hashlib
import json
import os
import pytest
from pathlib import Path
from unittest.mock import MagicMock

from src.claims.collection import CollectionMetadata, MarkCollection, ProjectCollection
from src.claims.exceptions import ClaimValidationError
from src.claims.payload import (
    ClaimPayload,
    FileSubject,
    build_claim_data,
    guess_mime_type,
    is_image_mime_type,
    is_valid_fingerprint,
    validate_claim_data,
)

VALID_FP = "0x" + hashlib.sha256(b"hello").hexdigest()


class TestFingerprintValidation:
    """Tests for fingerprint shape validation."""

    def test_valid_fingerprint(self):
        assert is_valid_fingerprint(VALID_FP) is True
        assert is_valid_fingerprint("0x" + "0" * 64) is True

    @pytest.mark.parametrize("value", [
        "0x" + "A" * 64,
        "0x" + "a" * 63,
        "0x" + "a" * 65,
        "0x" + "a" * 64 + "\n",
        " 0x" + "a" * 64,
        "a" * 64,
        "0X" + "a" * 64,
        "0x" + "g" * 64,
        "",
        None,
    ])
    def test_invalid_fingerprint(self, value):
        assert is_valid_fingerprint(value) is False


class TestMimeTypes:
    """Tests for MIME type detection."""

    @pytest.mark.parametrize("name,expected", [
        ("a.txt", "text/plain"),
        ("a.png", "image/png"),
        ("a.JPG", "image/jpeg"),
        ("a.pdf", "application/pdf"),
        ("a.ts", "text/typescript"),
        ("a.md", "text/markdown"),
        ("a.unknownext", "application/octet-stream"),
        ("noext", "application/octet-stream"),
    ])
    def test_guess_mime_type(self, name, expected):
        assert guess_mime_type(Path("/w") / name) == expected

    def test_is_image_mime_type(self):
        assert is_image_mime_type("image/png") is True
        assert is_image_mime_type("image/svg+xml") is True
        assert is_image_mime_type("text/plain") is False


class TestFileSubject:
    """Tests for FileSubject dataclass."""

    def test_from_path(self, tmp_path):
        path = tmp_path / "doc.txt"
        path.write_bytes(b"hello")
        os.utime(path, (1700000000.5, 1700000000.5))

        subject = FileSubject.from_path(path, VALID_FP)

        assert subject.name == "doc.txt"
        assert subject.media_type == "text/plain"
        assert subject.size == 5
        assert subject.last_modified == 1700000000500

    def test_to_dict_omits_missing_previous(self):
        subject = FileSubject("a.txt", "text/plain", 5, VALID_FP, 1000)
        assert "previousFingerprint" not in subject.to_dict()

    def test_to_dict_with_previous(self):
        previous = "0x" + "1" * 64
        subject = FileSubject("a.txt", "text/plain", 5, VALID_FP, 1000, previous)
        data = subject.to_dict()

        assert data == {
            "name": "a.txt",
            "mediaType": "text/plain",
            "size": 5,
            "fingerprint": VALID_FP,
            "lastModified": 1000,
            "previousFingerprint": previous,
        }


class TestBuildClaimData:
    """Tests for claim metadata construction."""

    def _subject(self):
        return FileSubject("doc.txt", "text/plain", 5, VALID_FP, 1000)

    def test_project_vocabulary(self):
        collection = ProjectCollection("p1", MagicMock())
        metadata = CollectionMetadata(id="p1", name="Novel", organization_id="org1", organization_name="Acme")

        data = build_claim_data(collection, metadata, "me@example.com", self._subject())

        assert data["filename"] == "doc.txt"
        assert data["userEmail"] == "me@example.com"
        assert data["projectId"] == "p1"
        assert data["projectName"] == "Novel"
        assert data["fingerprint"] == VALID_FP
        assert data["subject"]["fingerprint"] == VALID_FP
        assert data["title"] == "UCFR Claim for doc.txt"
        assert data["keywords"][:4] == ["UCFR", "claim", "Acme", "Novel"]
        assert data["author"] == {"email": "me@example.com", "organizationId": "org1", "projectId": "p1"}
        assert "markId" not in data

    def test_mark_vocabulary(self):
        collection = MarkCollection("m1", MagicMock())
        metadata = CollectionMetadata(id="m1", name="Logo")

        data = build_claim_data(collection, metadata, "me@example.com", self._subject())

        assert data["markId"] == "m1"
        assert data["markName"] == "Logo"
        assert data["title"] == "UCFR Artifact for doc.txt"
        assert data["description"] == "Submitted by me@example.com. Mark Logo. Artifact covers doc.txt"
        assert data["keywords"][1:3] == ["artifact", "Personal"]
        assert data["author"]["organizationId"] == "m1"


class TestValidateClaimData:
    """Tests for claim validation."""

    REQUIRED = ["filename", "userEmail", "projectId", "projectName", "fingerprint"]

    def _data(self, **overrides):
        data = {
            "filename": "doc.txt",
            "userEmail": "me@example.com",
            "projectId": "p1",
            "projectName": "Novel",
            "fingerprint": VALID_FP,
        }
        data.update(overrides)
        return data

    def test_valid(self):
        validate_claim_data(self._data(), self.REQUIRED)

    def test_missing_fields(self):
        with pytest.raises(ClaimValidationError) as exc_info:
            validate_claim_data(self._data(projectName="  ", userEmail=None), self.REQUIRED)

        assert exc_info.value.details["missingFields"] == ["userEmail", "projectName"]
        assert exc_info.value.details["fingerprintValid"] is True

    def test_uppercase_fingerprint_blocked(self):
        bad = "0x" + VALID_FP[2:].upper()
        with pytest.raises(ClaimValidationError) as exc_info:
            validate_claim_data(self._data(fingerprint=bad), self.REQUIRED)

        assert exc_info.value.details["fingerprintValid"] is False
        assert exc_info.value.details["fingerprintSample"] == bad[:10]


class TestClaimPayload:
    """Tests for the wire payload."""

    def test_to_dict(self):
        payload = ClaimPayload(fingerprint=VALID_FP, data={"filename": "doc.txt"})
        wire = payload.to_dict()

        assert wire["methodId"] == 0
        assert wire["externalId"] == 1
        assert wire["fingerprint"] == VALID_FP
        assert isinstance(wire["data"], str)
        assert json.loads(wire["data"]) == {"filename": "doc.txt"}
