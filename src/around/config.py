"""Configuration objects for the around service."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_INDEX = "around"
DEFAULT_DOC_TYPE = "post"
DEFAULT_RANGE_KM = 200.0


@dataclass(slots=True)
class FilterConfig:
    """Configures content filtering for posts."""

    banned_words: set[str] = field(
        default_factory=lambda: {
            "shit",
            "fuck",
            "bitch",
        }
    )
    words_file: str | None = None


@dataclass(slots=True)
class StoreConfig:
    """Where posts live and how the index is laid out."""

    url: str = "http://localhost:9200"
    backend: str = "elasticsearch"
    index: str = DEFAULT_INDEX
    doc_type: str = DEFAULT_DOC_TYPE
    location_field: str = "location"

    def index_mappings(self) -> dict:
        return {
            "_meta": {"doc_type": self.doc_type},
            "properties": {
                "user": {"type": "keyword"},
                "message": {"type": "text"},
                self.location_field: {"type": "geo_point"},
            },
        }


@dataclass(slots=True)
class SearchConfig:
    """Defaults applied to geo searches."""

    default_range_km: float = DEFAULT_RANGE_KM
    max_results: int = 100

    def __post_init__(self) -> None:
        if self.max_results <= 0:
            raise ValueError("max_results must be positive")

    def resolve_range(self, range_km: float | None) -> float:
        if range_km is None:
            return self.default_range_km
        return range_km


@dataclass(slots=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"


@dataclass(slots=True)
class Settings:
    store: StoreConfig = field(default_factory=StoreConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
