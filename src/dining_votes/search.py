"""Push food vote tallies into the Meilisearch index and proxy queries to it."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests
from pydantic import BaseModel

from .errors import FetchError
from .remote import RemoteRegistry

logger = logging.getLogger(__name__)

DEFAULT_INDEX = "foods"
FILTERABLE_ATTRIBUTES = ["location", "votes"]
SORTABLE_ATTRIBUTES = ["votes"]


class FoodDocument(BaseModel):
    id: int
    name: str
    votes: int = 0
    location: str


def build_documents(remote: RemoteRegistry, counts: Mapping[str, int]) -> List[FoodDocument]:
    """One document per registered food; foods without a counter have 0 votes."""
    return [
        FoodDocument(
            id=entry.id,
            name=entry.name,
            votes=max(0, counts.get(str(entry.id), 0)),
            location=entry.location,
        )
        for entry in sorted(remote.registry.foods.values(), key=lambda e: e.id)
    ]


class SearchIndexClient:
    """Thin wrapper over the Meilisearch REST API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        *,
        index: str = DEFAULT_INDEX,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.index = index
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        url = f"{self.base_url}/indexes/{self.index}{path}"
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            raise FetchError(f"Search index request {method} {path} failed: {exc}") from exc

    def configure(self) -> None:
        self._request(
            "PATCH",
            "/settings",
            json={
                "filterableAttributes": FILTERABLE_ATTRIBUTES,
                "sortableAttributes": SORTABLE_ATTRIBUTES,
            },
        )

    def upsert(self, documents: Sequence[FoodDocument]) -> None:
        if not documents:
            return
        self._request(
            "PUT",
            "/documents",
            params={"primaryKey": "id"},
            json=[document.model_dump() for document in documents],
        )

    def search(
        self,
        query: str,
        *,
        location: Optional[str] = None,
        sort: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"q": query, "limit": limit, "offset": offset}
        if location:
            escaped = location.replace("\\", "\\\\").replace('"', '\\"')
            payload["filter"] = f'location = "{escaped}"'
        if sort:
            payload["sort"] = [sort]
        return self._request("POST", "/search", json=payload)


def sync_search(remote: RemoteRegistry, counts: Mapping[str, int], index: SearchIndexClient) -> int:
    documents = build_documents(remote, counts)
    index.upsert(documents)
    logger.info("Synced %s foods to search index %s", len(documents), index.index)
    return len(documents)
