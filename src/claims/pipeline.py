"""
Submission of claims for classified file changes.
"""

import asyncio
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from ..history.classifier import ChangeClassifier
from ..history.models import ChangeOutcome
from ..history.store import HistoryStore
from .client import ClaimApiClient
from .collection import Collection, collection_for
from .exceptions import ApiError, ClaimValidationError, TokenExpiredError
from .images import ImageTransformer
from .payload import (
    ClaimPayload,
    FileSubject,
    build_claim_data,
    is_image_mime_type,
    validate_claim_data,
)
from .tokens import TokenStore

logger = logging.getLogger(__name__)


class SubmissionStatus(Enum):
    """How a submission attempt ended."""
    SUBMITTED = "submitted"
    NOT_APPLICABLE = "not_applicable"
    SKIPPED_NOT_WATCHED = "skipped_not_watched"
    SKIPPED_NO_TOKEN = "skipped_no_token"
    TOKEN_EXPIRED = "token_expired"
    INVALID = "invalid"
    FAILED = "failed"


class SubmissionPipeline:
    """
    Submits one claim per detected add, change or rename.

    Works with any Collection; projects and marks share every step.
    Nothing here raises to the caller: token expiry clears the token,
    validation and API failures are logged, and the status says what
    happened. Failed submissions are not retried.
    """

    def __init__(
        self,
        store: HistoryStore,
        classifier: ChangeClassifier,
        client: ClaimApiClient,
        images: Optional[ImageTransformer] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            store: History store (watched folders, tokens, submitted flags)
            classifier: Classifier used for previous-fingerprint lookup
            client: Claim API client
            images: Image transformer for image uploads
        """
        self.store = store
        self.classifier = classifier
        self.client = client
        self.images = images or ImageTransformer()
        self._token_stores: Dict[str, TokenStore] = {}

    def token_store(self, user_email: str) -> TokenStore:
        """Get the token store for a user, creating it on first use."""
        tokens = self._token_stores.get(user_email)
        if tokens is None:
            tokens = TokenStore(self.store, user_email)
            self._token_stores[user_email] = tokens
        return tokens

    def _expire_token(self, user_email: str) -> SubmissionStatus:
        logger.warning(f"Token expired for {user_email}; skipping claim")
        self.token_store(user_email).clear()
        return SubmissionStatus.TOKEN_EXPIRED

    async def submit(self, outcome: ChangeOutcome, user_email: str) -> SubmissionStatus:
        """
        Submit a claim for a classified change.

        Args:
            outcome: Classifier outcome for the file
            user_email: User the file belongs to

        Returns:
            The submission status
        """
        if not outcome.is_submittable or outcome.fingerprint is None:
            return SubmissionStatus.NOT_APPLICABLE

        path = outcome.path
        folder = self.store.find_collection_for_path(user_email, path)
        if folder is None:
            logger.debug(f"No collection for {path}")
            return SubmissionStatus.SKIPPED_NOT_WATCHED

        token = self.token_store(user_email).get()
        if not token:
            logger.info(f"No token available, skipping claim for {path.name}")
            return SubmissionStatus.SKIPPED_NO_TOKEN

        collection = collection_for(folder, self.client)

        try:
            metadata = await collection.fetch_metadata(token)
            email = await self.client.authorized_email(token)
        except TokenExpiredError:
            return self._expire_token(user_email)
        except (ApiError, httpx.HTTPError) as e:
            logger.error(f"Could not fetch {collection.kind.value} {collection.collection_id}: {e}")
            return SubmissionStatus.FAILED

        if not email:
            logger.error("Could not identify user email")
            return SubmissionStatus.FAILED

        try:
            previous = self.classifier.previous_fingerprint(user_email, path, outcome.fingerprint)
            subject = FileSubject.from_path(path, outcome.fingerprint, previous)
        except OSError as e:
            logger.warning(f"File disappeared before submission: {path} ({e})")
            return SubmissionStatus.FAILED

        data = build_claim_data(collection, metadata, email, subject)
        required = ["filename", "userEmail", collection.id_field, collection.name_field, "fingerprint"]
        try:
            validate_claim_data(data, required)
        except ClaimValidationError as e:
            context = {
                "filePath": str(path),
                collection.id_field: collection.collection_id,
                collection.name_field: metadata.name,
                **e.details,
            }
            logger.error(f"Validation failed; not submitting claim {json.dumps(context, indent=2)}")
            return SubmissionStatus.INVALID

        payload = ClaimPayload(fingerprint=subject.fingerprint, data=data).to_dict()
        is_image = is_image_mime_type(subject.media_type)

        logger.info(f"Submitting {collection.noun.lower()} for {subject.name} in {collection.kind.value} {metadata.name}")
        try:
            if is_image:
                result = await self._submit_image(collection, token, payload, path, subject)
            else:
                result = await collection.create_claim(token, payload)
        except TokenExpiredError:
            return self._expire_token(user_email)
        except (ApiError, httpx.HTTPError, OSError) as e:
            context = {
                collection.id_field: collection.collection_id,
                collection.name_field: metadata.name,
                "fileName": subject.name,
                "isImage": is_image,
                "error": str(e),
            }
            logger.error(f"Failed to submit {collection.noun.lower()} {json.dumps(context, indent=2)}")
            return SubmissionStatus.FAILED

        self.store.mark_submitted(user_email, subject.fingerprint)
        logger.info(
            f"{collection.noun} submitted successfully: {result.get('id')} "
            f"({collection.kind.value}: {metadata.name}, file: {subject.name})"
        )
        return SubmissionStatus.SUBMITTED

    async def _submit_image(
        self,
        collection: Collection,
        token: str,
        payload: Dict[str, Any],
        path: Path,
        subject: FileSubject,
    ) -> Dict[str, Any]:
        """Upload an image claim; the payload keeps the original fingerprint."""
        loop = asyncio.get_running_loop()
        original = await loop.run_in_executor(None, path.read_bytes)
        processed = await loop.run_in_executor(None, self.images.process, original, subject.media_type)

        result = await collection.create_image_claim(
            token, payload, subject.name, processed.data, processed.mime_type
        )
        if processed.transformed:
            logger.info(f"Submitted transformed image for {subject.name}")
        return result
