"""
Remote collections that receive claims.

Projects and marks behave identically; they differ only in API path and
in the vocabulary used inside the claim metadata.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..history.models import CollectionKind, WatchedFolder
from .client import ClaimApiClient


@dataclass(frozen=True)
class CollectionMetadata:
    """Name and owning organization of a remote collection."""
    id: str
    name: str
    organization_id: Optional[str] = None
    organization_name: Optional[str] = None

    @classmethod
    def from_response(cls, collection_id: str, data: Dict[str, Any]) -> "CollectionMetadata":
        organization = data.get("organization") or {}
        return cls(
            id=collection_id,
            name=data.get("name") or "",
            organization_id=organization.get("id"),
            organization_name=organization.get("name"),
        )


class Collection:
    """
    A remote collection a watched folder feeds.

    Subclasses set the API path segment and the claim vocabulary.
    """

    kind: CollectionKind
    segment: str
    noun: str
    id_field: str
    name_field: str

    def __init__(self, collection_id: str, client: ClaimApiClient):
        self.collection_id = collection_id
        self.client = client

    async def fetch_metadata(self, token: str) -> CollectionMetadata:
        data = await self.client.fetch_collection(self.segment, self.collection_id, token)
        return CollectionMetadata.from_response(self.collection_id, data)

    async def create_claim(self, token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.client.create_claim(self.segment, self.collection_id, token, payload)

    async def create_image_claim(
        self,
        token: str,
        payload: Dict[str, Any],
        filename: str,
        content: bytes,
        mime_type: str,
    ) -> Dict[str, Any]:
        return await self.client.create_claim_with_file(
            self.segment, self.collection_id, token, payload, filename, content, mime_type
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.collection_id!r})"


class ProjectCollection(Collection):
    kind = CollectionKind.PROJECT
    segment = "projects"
    noun = "Claim"
    id_field = "projectId"
    name_field = "projectName"


class MarkCollection(Collection):
    kind = CollectionKind.MARK
    segment = "marks"
    noun = "Artifact"
    id_field = "markId"
    name_field = "markName"


_COLLECTION_TYPES = {
    CollectionKind.PROJECT: ProjectCollection,
    CollectionKind.MARK: MarkCollection,
}


def collection_for(folder: WatchedFolder, client: ClaimApiClient) -> Collection:
    """Create the collection a watched folder feeds."""
    return _COLLECTION_TYPES[folder.collection_kind](folder.collection_id, client)
