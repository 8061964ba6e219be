from __future__ import annotations

from typing import Any, List

import pytest
import requests

from dining_votes.errors import FetchError
from dining_votes.remote import RemoteRegistry
from dining_votes.search import FoodDocument, SearchIndexClient, build_documents, sync_search


class FakeResponse:
    def __init__(self, body: Any, status_code: int = 200):
        self.body = body
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        return self.body


class RecordingSession:
    def __init__(self, response: FakeResponse):
        self.response = response
        self.calls: List[dict] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        return self.response


def test_build_documents_pairs_names_with_counts(remote: RemoteRegistry) -> None:
    documents = build_documents(remote, {"0": 4, "9": 2})
    assert documents == [
        FoodDocument(id=0, name="pizza", votes=4, location="earhart"),
        FoodDocument(id=1, name="salad", votes=0, location="wiley"),
    ]


def test_sync_search_upserts_every_food(remote: RemoteRegistry) -> None:
    session = RecordingSession(FakeResponse({"taskUid": 1}))
    client = SearchIndexClient("http://meili:7700/", "secret", index="foods", session=session)

    assert sync_search(remote, {"1": 3}, client) == 2

    call = session.calls[0]
    assert call["method"] == "PUT"
    assert call["url"] == "http://meili:7700/indexes/foods/documents"
    assert call["params"] == {"primaryKey": "id"}
    assert call["headers"]["Authorization"] == "Bearer secret"
    assert call["json"][1] == {"id": 1, "name": "salad", "votes": 3, "location": "wiley"}


def test_search_builds_filter_and_sort() -> None:
    session = RecordingSession(FakeResponse({"hits": []}))
    client = SearchIndexClient("http://meili:7700", session=session)

    assert client.search("pizza", location="earhart", sort="votes:desc", limit=5) == {"hits": []}

    call = session.calls[0]
    assert call["url"] == "http://meili:7700/indexes/foods/search"
    assert call["json"] == {
        "q": "pizza",
        "limit": 5,
        "offset": 0,
        "filter": 'location = "earhart"',
        "sort": ["votes:desc"],
    }
    assert "Authorization" not in call["headers"]


def test_index_failures_become_fetch_errors() -> None:
    client = SearchIndexClient("http://meili:7700", session=RecordingSession(FakeResponse({}, status_code=503)))
    with pytest.raises(FetchError):
        client.configure()
