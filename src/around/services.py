"""Core services implementing post ingestion and geo search."""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import Callable

from .config import SearchConfig, StoreConfig
from .errors import MalformedInput
from .filtering import LexiconRegistry, is_spam
from .models import IngestResult, Location, Post, SearchRequest, SearchResult
from .storage import AbstractStorage, ensure_index

LOGGER = logging.getLogger(__name__)


def _new_post_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class AroundService:
    storage: AbstractStorage
    lexicon: LexiconRegistry
    store_config: StoreConfig = field(default_factory=StoreConfig)
    search_config: SearchConfig = field(default_factory=SearchConfig)
    id_factory: Callable[[], str] = _new_post_id

    async def bootstrap(self) -> bool:
        return await ensure_index(self.storage, self.store_config)

    async def ingest(self, candidate: Post) -> IngestResult:
        """Persist a post unless its message contains a banned token.

        Spam is not an error: the result simply reports ``accepted=False``
        and nothing is written. Store failures raise ``StoreUnavailable``.
        """

        lexicon = self.lexicon.current()
        if is_spam(candidate.message, lexicon):
            LOGGER.info(
                "Post by %s contains spam words, not stored (lexicon v%s)",
                candidate.user,
                lexicon.version,
            )
            return IngestResult(stored_id=None, accepted=False)

        post_id = self.id_factory()
        await self.storage.index_document(
            self.store_config.index,
            self.store_config.doc_type,
            post_id,
            candidate.to_dict(),
            refresh=True,
        )
        LOGGER.info("Post %s by %s saved to index %s", post_id, candidate.user, self.store_config.index)
        return IngestResult(stored_id=post_id, accepted=True)

    def build_request(self, center: Location, radius_km: float | None = None) -> SearchRequest:
        radius = self.search_config.resolve_range(radius_km)
        if isinstance(radius, bool) or not isinstance(radius, (int, float)):
            raise MalformedInput(f"range must be a number (got {radius!r})")
        if not math.isfinite(radius) or radius <= 0:
            raise MalformedInput("range must be a positive number of kilometres")
        return SearchRequest(center=center, radius_km=radius)

    async def search(self, center: Location, radius_km: float | None = None) -> SearchResult:
        """Return clean posts within ``radius_km`` of ``center``.

        Hits that cannot be decoded are skipped, and posts that are spam under
        the current lexicon are hidden, even if they were accepted earlier.
        Query failures raise ``QueryFailed`` and no partial result is returned.
        """

        request = self.build_request(center, radius_km)
        raw = await self.storage.geo_radius_query(
            self.store_config.index,
            self.store_config.location_field,
            request.center,
            request.distance(),
            size=self.search_config.max_results,
        )
        LOGGER.info(
            "Query took %s milliseconds, found a total of %s posts",
            raw.took_ms,
            raw.total_hits,
        )

        lexicon = self.lexicon.current()
        result = SearchResult(total_hits=raw.total_hits, took_ms=raw.took_ms)
        for doc_id, source in raw.hits:
            try:
                post = Post.from_dict(source)
            except MalformedInput as exc:
                LOGGER.warning("Skipping undecodable hit %s: %s", doc_id, exc)
                result.skipped += 1
                continue
            if is_spam(post.message, lexicon):
                LOGGER.info("Post %s contains spam words, not displayed", doc_id)
                result.hidden += 1
                continue
            result.posts.append(post)
        return result
