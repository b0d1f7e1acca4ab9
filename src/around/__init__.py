"""Core domain logic for the around message board."""

from .config import FilterConfig, SearchConfig, ServerConfig, Settings, StoreConfig
from .errors import AroundError, MalformedInput, QueryFailed, StoreUnavailable
from .filtering import LexiconRegistry, SpamLexicon, is_spam
from .models import IngestResult, Location, Post, SearchRequest, SearchResult
from .services import AroundService
from .storage import AbstractStorage, ElasticsearchStorage, InMemoryStorage

__all__ = [
    "AbstractStorage",
    "AroundError",
    "AroundService",
    "ElasticsearchStorage",
    "FilterConfig",
    "InMemoryStorage",
    "IngestResult",
    "LexiconRegistry",
    "Location",
    "MalformedInput",
    "Post",
    "QueryFailed",
    "SearchConfig",
    "SearchRequest",
    "SearchResult",
    "ServerConfig",
    "Settings",
    "SpamLexicon",
    "StoreConfig",
    "StoreUnavailable",
    "is_spam",
]
