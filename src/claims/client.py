"""
HTTP client for the claim API and the auth service.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from .config import ClaimsConfig
from .exceptions import ApiError, TokenExpiredError

logger = logging.getLogger(__name__)


class ClaimApiClient:
    """
    Async client for the remote claim API.

    All claim API calls are bearer-token authenticated. HTTP 401 from
    any endpoint raises TokenExpiredError; other error responses raise
    ApiError carrying the status code.
    """

    def __init__(
        self,
        config: Optional[ClaimsConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Claims configuration
            transport: Optional httpx transport (used by tests)
        """
        self.config = config or ClaimsConfig()
        self._client = httpx.AsyncClient(
            timeout=self.config.timeout_seconds,
            transport=transport,
        )

    @staticmethod
    def _headers(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    @staticmethod
    def _check_response(response: httpx.Response, action: str) -> None:
        if response.status_code == 401:
            raise TokenExpiredError(f"Token rejected while trying to {action}")
        if response.is_error:
            raise ApiError(
                f"Failed to {action}: HTTP {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

    async def fetch_collection(self, segment: str, collection_id: str, token: str) -> Dict[str, Any]:
        """
        Fetch a collection by id.

        Args:
            segment: API path segment for the collection kind ("projects", "marks")
            collection_id: Collection identifier
            token: Bearer token

        Returns:
            The decoded collection object
        """
        url = f"{self.config.api_base}/api/{segment}/{collection_id}"
        response = await self._client.get(url, headers=self._headers(token))
        self._check_response(response, f"fetch {segment} {collection_id}")
        return response.json()

    async def fetch_project(self, project_id: str, token: str) -> Dict[str, Any]:
        return await self.fetch_collection("projects", project_id, token)

    async def fetch_mark(self, mark_id: str, token: str) -> Dict[str, Any]:
        return await self.fetch_collection("marks", mark_id, token)

    async def create_claim(
        self,
        segment: str,
        collection_id: str,
        token: str,
        payload: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Submit a JSON claim to a collection.

        Args:
            segment: API path segment for the collection kind
            collection_id: Collection identifier
            token: Bearer token
            payload: Wire payload (methodId, externalId, fingerprint, data)

        Returns:
            The created claim object
        """
        url = f"{self.config.api_base}/api/{segment}/{collection_id}/claims"
        response = await self._client.post(url, json=payload, headers=self._headers(token))
        self._check_response(response, f"create claim in {segment} {collection_id}")
        return response.json()

    async def create_claim_with_file(
        self,
        segment: str,
        collection_id: str,
        token: str,
        payload: Dict[str, Any],
        filename: str,
        content: bytes,
        mime_type: str,
    ) -> Dict[str, Any]:
        """
        Submit a claim together with the file bytes as multipart form data.

        The payload fingerprint always describes the original file, even
        when ``content`` is a transformed copy.
        """
        url = f"{self.config.api_base}/api/{segment}/{collection_id}/claims/image"
        form = {key: str(value) for key, value in payload.items()}
        files = {"file": (filename, content, mime_type)}
        response = await self._client.post(url, data=form, files=files, headers=self._headers(token))
        self._check_response(response, f"create image claim in {segment} {collection_id}")
        return response.json()

    async def authorized_email(self, token: str) -> Optional[str]:
        """
        Ask the auth service which user a token belongs to.

        Returns:
            The user's email, or None if the service does not confirm it

        Raises:
            TokenExpiredError: If the token is rejected
        """
        url = f"{self.config.auth_base}/is-authorized"
        try:
            response = await self._client.post(url, headers=self._headers(token))
        except httpx.HTTPError as e:
            logger.error(f"is-authorized request failed: {e}")
            return None

        if response.status_code == 401:
            raise TokenExpiredError("Token rejected by auth service")
        if response.is_error:
            logger.error(f"is-authorized failed: HTTP {response.status_code}")
            return None

        data = response.json()
        if not data.get("ok"):
            return None
        return (data.get("value") or {}).get("email")

    async def poll_for_token(
        self,
        request_id: str,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> Optional[str]:
        """
        Poll the auth service until a login request yields a token.

        HTTP 404 means the user has not finished signing in yet.

        Args:
            request_id: Login request identifier
            sleep: Coroutine used to wait between attempts

        Returns:
            The token, or None on failure or after the last attempt
        """
        url = f"{self.config.auth_base}/poll/{request_id}"

        for attempt in range(self.config.poll_max_attempts):
            try:
                response = await self._client.get(url)
            except httpx.HTTPError as e:
                logger.warning(f"Auth polling error (attempt {attempt + 1}): {e}")
                await sleep(self.config.poll_interval_seconds)
                continue

            if response.status_code == 404:
                await sleep(self.config.poll_interval_seconds)
                continue
            if response.is_error:
                logger.error(f"Auth polling failed: HTTP {response.status_code}")
                return None
            return response.json().get("token")

        logger.error(f"Login request {request_id} timed out after {self.config.poll_max_attempts} attempts")
        return None

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False
