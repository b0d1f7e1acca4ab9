"""Storage layer abstractions."""

from __future__ import annotations

import logging
import math
import re
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from elasticsearch import ApiError, AsyncElasticsearch, TransportError

from .config import StoreConfig
from .errors import MalformedInput, QueryFailed, StoreUnavailable
from .models import Location

LOGGER = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0088

_UNIT_TO_KM = {
    "km": 1.0,
    "m": 0.001,
    "mi": 1.609344,
}
_DISTANCE_RE = re.compile(r"^\s*(?P<value>[0-9.eE+-]+)\s*(?P<unit>km|mi|m)\s*$")


def parse_distance(distance: str) -> float:
    """Convert an Elasticsearch distance string such as ``"50km"`` to km."""

    match = _DISTANCE_RE.match(distance)
    if match is None:
        raise MalformedInput(f"Unsupported distance {distance!r}")
    try:
        value = float(match.group("value"))
    except ValueError as exc:
        raise MalformedInput(f"Unsupported distance {distance!r}") from exc
    return value * _UNIT_TO_KM[match.group("unit")]


def haversine_km(a: Location, b: Location) -> float:
    lat1, lon1, lat2, lon2 = map(math.radians, (a.lat, a.lon, b.lat, b.lon))
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


@dataclass(slots=True)
class GeoQueryResult:
    """Raw hits of a geo query, in the order the store returned them."""

    hits: list[tuple[str, Any]] = field(default_factory=list)
    total_hits: int = 0
    took_ms: int = 0


class AbstractStorage:
    """Interface for persisting and querying post documents."""

    async def index_exists(self, index: str) -> bool:
        raise NotImplementedError

    async def create_index(self, index: str, mappings: dict) -> None:
        raise NotImplementedError

    async def index_document(
        self,
        index: str,
        doc_type: str,
        doc_id: str,
        document: dict,
        *,
        refresh: bool = True,
    ) -> None:
        raise NotImplementedError

    async def geo_radius_query(
        self,
        index: str,
        field_name: str,
        center: Location,
        distance: str,
        *,
        size: Optional[int] = None,
    ) -> GeoQueryResult:
        raise NotImplementedError

    async def close(self) -> None:
        return None


async def ensure_index(storage: AbstractStorage, config: StoreConfig) -> bool:
    """Create the posts index with a geo_point mapping unless it exists.

    Returns True when the index was created.
    """

    if await storage.index_exists(config.index):
        return False
    await storage.create_index(config.index, config.index_mappings())
    LOGGER.info("Created index %s", config.index)
    return True


class InMemoryStorage(AbstractStorage):
    """Simple dictionary-based storage for demos and tests.

    Geo queries use the haversine distance and include documents lying
    exactly on the radius, as Elasticsearch's ``geo_distance`` filter does.
    """

    def __init__(self) -> None:
        self._mappings: Dict[str, dict] = {}
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._pending: Dict[str, Dict[str, Any]] = {}

    async def index_exists(self, index: str) -> bool:
        return index in self._documents

    async def create_index(self, index: str, mappings: dict) -> None:
        if index in self._documents:
            raise StoreUnavailable(f"Index {index} already exists")
        self._mappings[index] = deepcopy(mappings)
        self._documents[index] = {}
        self._pending[index] = {}

    async def index_document(
        self,
        index: str,
        doc_type: str,
        doc_id: str,
        document: dict,
        *,
        refresh: bool = True,
    ) -> None:
        if index not in self._documents:
            await self.create_index(index, {})
        self._pending[index][doc_id] = deepcopy(document)
        if refresh:
            await self.refresh(index)

    async def refresh(self, index: str) -> None:
        pending = self._pending.get(index)
        if not pending:
            return
        self._documents[index].update(pending)
        pending.clear()

    async def geo_radius_query(
        self,
        index: str,
        field_name: str,
        center: Location,
        distance: str,
        *,
        size: Optional[int] = None,
    ) -> GeoQueryResult:
        if index not in self._documents:
            raise QueryFailed(f"no such index [{index}]")
        try:
            radius_km = parse_distance(distance)
        except MalformedInput as exc:
            raise QueryFailed(str(exc)) from exc

        matched: list[tuple[str, Any]] = []
        for doc_id, document in self._documents[index].items():
            point = _extract_point(document, field_name)
            if point is None:
                continue
            if haversine_km(center, point) <= radius_km:
                matched.append((doc_id, deepcopy(document)))

        hits = matched if size is None else matched[:size]
        return GeoQueryResult(hits=hits, total_hits=len(matched), took_ms=0)

    def documents(self, index: str) -> list[dict]:
        return [deepcopy(doc) for doc in self._documents.get(index, {}).values()]

    def mappings(self, index: str) -> dict:
        return deepcopy(self._mappings.get(index, {}))


def _extract_point(document: Any, field_name: str) -> Location | None:
    if not isinstance(document, dict):
        return None
    try:
        return Location.from_dict(document.get(field_name))
    except MalformedInput:
        return None


class ElasticsearchStorage(AbstractStorage):
    """Storage backed by a single shared ``AsyncElasticsearch`` client."""

    def __init__(self, url: str, client: AsyncElasticsearch | None = None) -> None:
        self._url = url
        self._client = client or AsyncElasticsearch([url])

    async def index_exists(self, index: str) -> bool:
        try:
            return bool(await self._client.indices.exists(index=index))
        except (ApiError, TransportError) as exc:
            raise StoreUnavailable(f"Failed to contact Elasticsearch at {self._url}: {exc}") from exc

    async def create_index(self, index: str, mappings: dict) -> None:
        try:
            await self._client.indices.create(index=index, mappings=mappings)
        except (ApiError, TransportError) as exc:
            raise StoreUnavailable(f"Failed to create index {index}: {exc}") from exc

    async def index_document(
        self,
        index: str,
        doc_type: str,
        doc_id: str,
        document: dict,
        *,
        refresh: bool = True,
    ) -> None:
        # Mapping types are gone from current Elasticsearch; doc_type only
        # lives in the index _meta.
        try:
            await self._client.index(
                index=index,
                id=doc_id,
                document=document,
                refresh=refresh,
            )
        except (ApiError, TransportError) as exc:
            raise StoreUnavailable(f"Failed to store {doc_type} {doc_id}: {exc}") from exc

    async def geo_radius_query(
        self,
        index: str,
        field_name: str,
        center: Location,
        distance: str,
        *,
        size: Optional[int] = None,
    ) -> GeoQueryResult:
        query = {
            "bool": {
                "must": {"match_all": {}},
                "filter": {
                    "geo_distance": {
                        "distance": distance,
                        field_name: {"lat": center.lat, "lon": center.lon},
                    }
                },
            }
        }
        try:
            response = await self._client.search(index=index, query=query, size=size)
        except (ApiError, TransportError) as exc:
            raise QueryFailed(f"Geo query on {index} failed: {exc}") from exc

        hits_section = response["hits"]
        total = hits_section.get("total", 0)
        if isinstance(total, dict):
            total = total.get("value", 0)
        hits = [
            (str(hit.get("_id")), hit.get("_source"))
            for hit in hits_section.get("hits", [])
        ]
        return GeoQueryResult(
            hits=hits,
            total_hits=int(total or 0),
            took_ms=int(response["took"] or 0),
        )

    async def close(self) -> None:
        await self._client.close()


def build_storage(config: StoreConfig) -> AbstractStorage:
    if config.backend == "memory":
        LOGGER.warning("Using in-memory storage; posts will not survive a restart")
        return InMemoryStorage()
    if config.backend != "elasticsearch":
        raise ValueError(f"Unsupported store backend: {config.backend}")
    return ElasticsearchStorage(config.url)
