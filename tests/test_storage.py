"""Tests for the storage adapters."""

from __future__ import annotations

import asyncio

import pytest
from elasticsearch import TransportError

from around.config import StoreConfig
from around.errors import QueryFailed, StoreUnavailable
from around.models import Location
from around.storage import (
    ElasticsearchStorage,
    InMemoryStorage,
    ensure_index,
    haversine_km,
    parse_distance,
)


class _FakeIndices:
    def __init__(self, exists: bool = False, error: Exception | None = None) -> None:
        self._exists = exists
        self._error = error
        self.created: list[tuple[str, dict]] = []

    async def exists(self, *, index: str) -> bool:
        if self._error:
            raise self._error
        return self._exists

    async def create(self, *, index: str, mappings: dict) -> None:
        self.created.append((index, mappings))


class _FakeClient:
    def __init__(
        self,
        response: dict | None = None,
        *,
        error: Exception | None = None,
        indices: _FakeIndices | None = None,
    ) -> None:
        self._response = response or {}
        self._error = error
        self.indices = indices or _FakeIndices()
        self.indexed: list[dict] = []
        self.searches: list[dict] = []
        self.closed = False

    async def index(self, **kwargs) -> dict:
        if self._error:
            raise self._error
        self.indexed.append(kwargs)
        return {"result": "created"}

    async def search(self, **kwargs) -> dict:
        if self._error:
            raise self._error
        self.searches.append(kwargs)
        return self._response

    async def close(self) -> None:
        self.closed = True


def test_parse_distance_units() -> None:
    assert parse_distance("200km") == 200.0
    assert parse_distance("50.5km") == 50.5
    assert parse_distance("1500m") == pytest.approx(1.5)
    assert parse_distance("1mi") == pytest.approx(1.609344)


def test_haversine_known_distance() -> None:
    san_francisco = Location(lat=37.7749, lon=-122.4194)
    los_angeles = Location(lat=34.0522, lon=-118.2437)
    assert haversine_km(san_francisco, los_angeles) == pytest.approx(559, rel=0.01)


def test_unrefreshed_writes_are_invisible_until_refresh() -> None:
    storage = InMemoryStorage()
    document = {"user": "a", "message": "b", "location": {"lat": 1.0, "lon": 1.0}}
    asyncio.run(storage.index_document("around", "post", "1", document, refresh=False))
    center = Location(lat=1.0, lon=1.0)

    before = asyncio.run(storage.geo_radius_query("around", "location", center, "1km"))
    asyncio.run(storage.refresh("around"))
    after = asyncio.run(storage.geo_radius_query("around", "location", center, "1km"))

    assert before.hits == []
    assert after.hits == [("1", document)]


def test_in_memory_bad_distance_is_query_failure() -> None:
    storage = InMemoryStorage()
    asyncio.run(storage.create_index("around", {}))

    with pytest.raises(QueryFailed):
        asyncio.run(
            storage.geo_radius_query("around", "location", Location(lat=0.0, lon=0.0), "far")
        )


def test_ensure_index_creates_geo_point_mapping() -> None:
    indices = _FakeIndices(exists=False)
    storage = ElasticsearchStorage("http://es:9200", client=_FakeClient(indices=indices))

    created = asyncio.run(ensure_index(storage, StoreConfig()))

    assert created is True
    index, mappings = indices.created[0]
    assert index == "around"
    assert mappings["properties"]["location"] == {"type": "geo_point"}
    assert mappings["_meta"] == {"doc_type": "post"}


def test_ensure_index_skips_existing_index() -> None:
    indices = _FakeIndices(exists=True)
    storage = ElasticsearchStorage("http://es:9200", client=_FakeClient(indices=indices))

    assert asyncio.run(ensure_index(storage, StoreConfig())) is False
    assert indices.created == []


def test_index_exists_wraps_transport_error() -> None:
    indices = _FakeIndices(error=TransportError("connection refused"))
    storage = ElasticsearchStorage("http://es:9200", client=_FakeClient(indices=indices))

    with pytest.raises(StoreUnavailable):
        asyncio.run(storage.index_exists("around"))


def test_index_document_refreshes_on_write() -> None:
    client = _FakeClient()
    storage = ElasticsearchStorage("http://es:9200", client=client)
    document = {"user": "john", "message": "hi", "location": {"lat": 37.0, "lon": -122.0}}

    asyncio.run(storage.index_document("around", "post", "abc", document))

    assert client.indexed == [
        {"index": "around", "id": "abc", "document": document, "refresh": True}
    ]


def test_index_document_wraps_transport_error() -> None:
    client = _FakeClient(error=TransportError("connection refused"))
    storage = ElasticsearchStorage("http://es:9200", client=client)

    with pytest.raises(StoreUnavailable):
        asyncio.run(storage.index_document("around", "post", "abc", {}))


def test_geo_query_builds_distance_filter_and_reads_hits() -> None:
    response = {
        "took": 7,
        "hits": {
            "total": {"value": 2, "relation": "eq"},
            "hits": [
                {"_id": "a", "_source": {"user": "john"}},
                {"_id": "b", "_source": {"user": "jane"}},
            ],
        },
    }
    client = _FakeClient(response)
    storage = ElasticsearchStorage("http://es:9200", client=client)

    result = asyncio.run(
        storage.geo_radius_query(
            "around", "location", Location(lat=37.1, lon=-122.1), "50km", size=100
        )
    )

    search = client.searches[0]
    assert search["index"] == "around"
    assert search["size"] == 100
    assert search["query"]["bool"]["filter"]["geo_distance"] == {
        "distance": "50km",
        "location": {"lat": 37.1, "lon": -122.1},
    }
    assert result.hits == [("a", {"user": "john"}), ("b", {"user": "jane"})]
    assert result.total_hits == 2
    assert result.took_ms == 7


def test_geo_query_accepts_integer_total() -> None:
    client = _FakeClient({"took": 1, "hits": {"total": 0, "hits": []}})
    storage = ElasticsearchStorage("http://es:9200", client=client)

    result = asyncio.run(
        storage.geo_radius_query("around", "location", Location(lat=0.0, lon=0.0), "1km")
    )

    assert result.total_hits == 0
    assert result.hits == []


def test_geo_query_wraps_transport_error() -> None:
    client = _FakeClient(error=TransportError("connection refused"))
    storage = ElasticsearchStorage("http://es:9200", client=client)

    with pytest.raises(QueryFailed):
        asyncio.run(
            storage.geo_radius_query("around", "location", Location(lat=0.0, lon=0.0), "1km")
        )


def test_close_closes_client() -> None:
    client = _FakeClient()
    storage = ElasticsearchStorage("http://es:9200", client=client)

    asyncio.run(storage.close())

    assert client.closed


def test_ensure_index_records_mapping_in_memory() -> None:
    storage = InMemoryStorage()

    assert asyncio.run(ensure_index(storage, StoreConfig())) is True

    assert storage.mappings("around")["properties"]["location"] == {"type": "geo_point"}


def test_oversized_coordinate_document_is_not_matched() -> None:
    storage = InMemoryStorage()
    huge = {"user": "x", "message": "y", "location": {"lat": 10**400, "lon": 0}}
    asyncio.run(storage.index_document("around", "post", "huge", huge))

    result = asyncio.run(
        storage.geo_radius_query("around", "location", Location(lat=0.0, lon=0.0), "1km")
    )

    assert result.hits == []
