"""Secondary metadata and trailer enrichment for the final shortlist."""

from __future__ import annotations

import logging
from typing import Any, Sequence
from urllib.parse import quote

from pydantic import ValidationError

from ..cache import RecommendationCache, build_cache
from ..cancellation import CancellationToken, RecommendationCancelled
from ..config import Settings, get_settings
from ..models import (
    EnrichedItem,
    EnrichedRecommendation,
    RankedCandidate,
    SecondaryRecord,
    TrailerRef,
)
from .catalog import CatalogClient

logger = logging.getLogger(__name__)

YOUTUBE_SEARCH_URL = "https://www.youtube.com/results"
YOUTUBE_EMBED_URL = "https://www.youtube.com/embed/{video_id}"
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"


def metadata_cache_key(title: str, year: str) -> str:
    return f"{title}|{year}"


def trailer_query(title: str, year: str) -> str:
    """Return the video search query for a title and optional year."""

    if year:
        return f"{title} {year} official trailer"
    return f"{title} official trailer"


def trailer_search_url(query: str) -> str:
    return f"{YOUTUBE_SEARCH_URL}?search_query={quote(query, safe='')}"


def is_not_found(payload: Any) -> bool:
    """Return whether a metadata payload means "no match"."""

    if not isinstance(payload, dict) or not payload:
        return True
    if payload.get("notFound"):
        return True
    return str(payload.get("Response", "True")).strip().lower() == "false"


class EnrichmentPipeline:
    """Attach secondary metadata and trailer links to ranked candidates.

    The two caches are injected so their eviction policy can be chosen by
    the caller; by default they follow the cache settings.
    """

    def __init__(
        self,
        client: CatalogClient,
        *,
        metadata_cache: RecommendationCache[SecondaryRecord] | None = None,
        trailer_cache: RecommendationCache[TrailerRef] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or get_settings()
        if metadata_cache is None:
            metadata_cache = build_cache(
                self._settings.metadata_cache_size,
                self._settings.cache_ttl_seconds,
                name="metadata",
            )
        self.metadata_cache = metadata_cache
        if trailer_cache is None:
            trailer_cache = build_cache(
                self._settings.trailer_cache_size,
                self._settings.cache_ttl_seconds,
                name="trailer",
            )
        self.trailer_cache = trailer_cache

    async def enrich_with_metadata(
        self,
        ranked: Sequence[RankedCandidate],
        cancellation: CancellationToken,
    ) -> list[EnrichedItem]:
        """Pair each candidate with secondary metadata, dropping misses.

        Lookups run concurrently; output keeps the input order.
        """

        results = await cancellation.gather(
            *(self._metadata_for(entry, cancellation) for entry in ranked)
        )
        items = [item for item in results if item is not None]
        if len(items) < len(ranked):
            logger.info(
                "Secondary metadata missing for %s of %s candidates",
                len(ranked) - len(items),
                len(ranked),
            )
        return items

    async def enrich_with_trailer(
        self,
        items: Sequence[EnrichedItem],
        cancellation: CancellationToken,
    ) -> list[EnrichedRecommendation]:
        """Attach a trailer reference to every item; misses fall back to search."""

        return await cancellation.gather(
            *(self._trailer_for(item, cancellation) for item in items)
        )

    async def _metadata_for(
        self, entry: RankedCandidate, cancellation: CancellationToken
    ) -> EnrichedItem | None:
        cancellation.raise_if_cancelled()
        movie = entry.movie
        title = movie.title
        year = str(movie.year or "")
        key = metadata_cache_key(title, year)

        record = self.metadata_cache.get(key)
        if record is None:
            record = await self._lookup_metadata(title, year, cancellation)
            if record is None and self._settings.metadata_fallback:
                record = SecondaryRecord.from_movie(movie)
            if record is None:
                return None
            self.metadata_cache.set(key, record)

        return EnrichedItem(
            candidate=movie,
            secondary_metadata=record,
            reasons=list(entry.reasons),
            score=entry.score,
        )

    async def _lookup_metadata(
        self, title: str, year: str, cancellation: CancellationToken
    ) -> SecondaryRecord | None:
        try:
            payload = await cancellation.guard(
                self._client.lookup_secondary_metadata(
                    title, year, cancellation=cancellation
                )
            )
        except RecommendationCancelled:
            raise
        except Exception as exc:
            logger.warning("Secondary metadata lookup failed for %s (%s): %s", title, year, exc)
            return None

        if is_not_found(payload):
            logger.debug("No secondary metadata for %s (%s)", title, year)
            return None
        try:
            return SecondaryRecord.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Discarding malformed metadata for %s: %s", title, exc)
            return None

    async def _trailer_for(
        self, item: EnrichedItem, cancellation: CancellationToken
    ) -> EnrichedRecommendation:
        cancellation.raise_if_cancelled()
        record = item.secondary_metadata
        title = record.title or item.candidate.title
        year = record.year or str(item.candidate.year or "")
        query = trailer_query(title, year)

        trailer = self.trailer_cache.get(query)
        if trailer is None:
            trailer = await self._lookup_trailer(query, cancellation)
            if trailer is None:
                trailer = TrailerRef(search_url=trailer_search_url(query))
            else:
                self.trailer_cache.set(query, trailer)

        return EnrichedRecommendation(
            candidate=item.candidate,
            secondary_metadata=record,
            trailer=trailer,
            reasons=list(item.reasons),
            score=item.score,
        )

    async def _lookup_trailer(
        self, query: str, cancellation: CancellationToken
    ) -> TrailerRef | None:
        """Return a trailer for ``query``; ``None`` when the lookup failed."""

        try:
            payload = await cancellation.guard(
                self._client.search_video(query, cancellation=cancellation)
            )
        except RecommendationCancelled:
            raise
        except Exception as exc:
            logger.warning("Trailer search failed for %s: %s", query, exc)
            return None

        search_url = trailer_search_url(query)
        items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            return TrailerRef(search_url=search_url)
        video = items[0].get("id")
        video_id = video.get("videoId") if isinstance(video, dict) else None
        if not video_id:
            return TrailerRef(search_url=search_url)
        return TrailerRef(
            search_url=search_url,
            embed_url=YOUTUBE_EMBED_URL.format(video_id=video_id),
            direct_url=YOUTUBE_WATCH_URL.format(video_id=video_id),
            video_id=str(video_id),
        )
