"""Candidate gathering from several independent catalog queries."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable

from pydantic import ValidationError

from ..cancellation import CancellationToken, RecommendationCancelled
from ..config import ScoringWeights, Settings, get_settings
from ..genres import DARK_MOOD_GENRE_IDS, LIGHT_MOOD_GENRE_IDS
from ..models import Candidate, MovieRef, ScoringContext
from ..reasons import Reason, ReasonKind, add_reason
from ..utils import normalize_favorite_titles
from .catalog import CatalogClient

logger = logging.getLogger(__name__)

# (light, dark) bias per source; no bias is applied when mood is "any".
_MOOD_BIAS: dict[str, tuple[float, float]] = {
    "discover": (2.0, 2.0),
    "favorite_search": (1.2, 1.2),
    "recommendations": (1.1, 1.2),
    "similar": (0.9, 1.25),
    "trending": (0.6, 0.6),
}


@dataclass(slots=True)
class SourceBatch:
    """Raw results of one upstream query and how to weigh them."""

    results: list[Any]
    weight: float
    reason: Reason
    mood_bias: float = 0.0


@dataclass(slots=True)
class CandidatePool:
    """Score-accumulating map of candidates keyed by movie id."""

    selected_genres: frozenset[str] = frozenset()
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    intensity_multiplier: float = 1.0
    current_year: int = field(default_factory=lambda: date.today().year)
    _entries: dict[int | str, Candidate] = field(
        default_factory=dict, init=False, repr=False
    )

    def base_score(self, movie: MovieRef, *, mood_bias: float = 0.0) -> float:
        """Score a single upstream hit before its source weight is applied."""

        w = self.weights
        score = movie.vote_average * w.rating_weight + movie.popularity * w.popularity_weight
        if self.selected_genres:
            overlap = sum(1 for gid in movie.genre_ids if str(gid) in self.selected_genres)
            score += overlap * w.genre_overlap_weight
        score += mood_bias * self.intensity_multiplier
        if movie.vote_count:
            score += math.log10(1 + movie.vote_count) * w.vote_count_weight
        year = movie.year
        if year is not None:
            age = max(0, self.current_year - year)
            score += w.recency_weight / (1 + age / w.recency_half_life_years)
        return score

    def accumulate(
        self,
        movie: MovieRef,
        base_score: float,
        weight: float,
        reason: Reason | None = None,
    ) -> Candidate:
        """Add a weighted contribution for ``movie`` and union its reason."""

        entry = self._entries.get(movie.id)
        if entry is None:
            entry = Candidate(movie=movie)
            self._entries[movie.id] = entry
        entry.score += base_score * weight
        add_reason(entry.reasons, reason)
        return entry

    def add_results(
        self,
        results: Iterable[Any],
        *,
        weight: float,
        reason: Reason | None = None,
        mood_bias: float = 0.0,
    ) -> int:
        """Ingest raw catalog results, returning how many were accepted."""

        accepted = 0
        for raw in results:
            if not isinstance(raw, dict) or not raw.get("id") or not raw.get("genre_ids"):
                continue
            try:
                movie = MovieRef.model_validate(raw)
            except ValidationError:
                logger.debug("Skipping malformed catalog record %s", raw.get("id"))
                continue
            if not movie.genre_ids:
                continue
            base = self.base_score(movie, mood_bias=mood_bias)
            self.accumulate(movie, base, weight * self.intensity_multiplier, reason)
            accepted += 1
        return accepted

    def candidates(self) -> list[Candidate]:
        return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


class CandidateAggregator:
    """Issue the discovery queries for a request and merge their results."""

    def __init__(self, client: CatalogClient, settings: Settings | None = None):
        self._client = client
        self._settings = settings or get_settings()

    async def discover_candidates(
        self,
        context: ScoringContext,
        cancellation: CancellationToken,
    ) -> list[Candidate]:
        """Return de-duplicated candidates for ``context``.

        Upstream failures shrink the result; cancellation aborts it.
        """

        cancellation.raise_if_cancelled()
        weights = self._settings.scoring
        favorites = normalize_favorite_titles(
            context.favorite_titles, self._settings.max_favorite_titles
        )
        genre_list = self._discovery_genres(context)

        tasks = [self._discover(context, genre_list, cancellation)]
        tasks.extend(
            self._favorite(title, context, cancellation) for title in favorites
        )
        if not context.selected_genres and not favorites:
            tasks.append(self._trending(context, cancellation))

        batch_groups = await cancellation.gather(*tasks)

        pool = CandidatePool(
            selected_genres=frozenset(genre_list),
            weights=weights,
            intensity_multiplier=self._intensity_multiplier(context),
        )
        # Merge in task order so float accumulation never depends on timing.
        source_count = 0
        for batches in batch_groups:
            for batch in batches:
                source_count += 1
                pool.add_results(
                    batch.results,
                    weight=batch.weight,
                    reason=batch.reason,
                    mood_bias=batch.mood_bias,
                )

        logger.info(
            "Collected %s candidates from %s catalog queries", len(pool), source_count
        )
        return pool.candidates()

    def _discovery_genres(self, context: ScoringContext) -> list[str]:
        genres = list(context.selected_genres)
        extra: tuple[str, ...] = ()
        if context.mood == "light":
            extra = LIGHT_MOOD_GENRE_IDS
        elif context.mood == "dark":
            extra = DARK_MOOD_GENRE_IDS
        for genre in extra:
            if genre not in genres:
                genres.append(genre)
        return genres

    def _intensity_multiplier(self, context: ScoringContext) -> float:
        if context.mood_intensity >= 2:
            return self._settings.scoring.mood_intensity_high_multiplier
        if context.mood_intensity <= 0:
            return self._settings.scoring.mood_intensity_low_multiplier
        return 1.0

    @staticmethod
    def _mood_bias(source: str, context: ScoringContext) -> float:
        if context.mood == "light":
            return _MOOD_BIAS[source][0]
        if context.mood == "dark":
            return _MOOD_BIAS[source][1]
        return 0.0

    def _discover_params(
        self, context: ScoringContext, genre_list: list[str]
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "sort_by": "popularity.desc",
            "vote_count.gte": str(self._settings.discover_min_votes),
        }
        if context.mood_intensity >= 2:
            params["sort_by"] = "vote_average.desc"
            params["vote_average.gte"] = "6.5"
        elif context.mood_intensity <= 0:
            params["sort_by"] = "release_date.desc"
            params["vote_average.lte"] = "7.5"
        if genre_list:
            params["with_genres"] = ",".join(genre_list)
        seed = context.seed if context.seed is not None else random.random()
        params["page"] = str(1 + int(abs(seed) * 3) % 3)
        return params

    async def _fetch(
        self,
        path: str,
        params: dict[str, Any],
        cancellation: CancellationToken,
        *,
        label: str,
    ) -> list[Any] | None:
        """Run one catalog query, absorbing everything but cancellation."""

        try:
            payload = await cancellation.guard(
                self._client.search_or_discover(path, params, cancellation=cancellation)
            )
        except RecommendationCancelled:
            raise
        except Exception as exc:
            logger.warning("Catalog query %s failed for %s: %s", path, label, exc)
            return None
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            logger.warning("Catalog query %s returned no result list for %s", path, label)
            return None
        return results

    async def _discover(
        self,
        context: ScoringContext,
        genre_list: list[str],
        cancellation: CancellationToken,
    ) -> list[SourceBatch]:
        params = self._discover_params(context, genre_list)
        results = await self._fetch("discover/movie", params, cancellation, label="discovery")
        if results is None:
            return []
        reason = Reason(
            ReasonKind.POPULAR_IN_GENRES if genre_list else ReasonKind.POPULAR_WORLDWIDE
        )
        return [
            SourceBatch(
                results,
                self._settings.scoring.discover_multiplier,
                reason,
                self._mood_bias("discover", context),
            )
        ]

    async def _favorite(
        self,
        title: str,
        context: ScoringContext,
        cancellation: CancellationToken,
    ) -> list[SourceBatch]:
        weights = self._settings.scoring
        results = await self._fetch(
            "search/movie",
            {"query": title, "include_adult": "false"},
            cancellation,
            label=title,
        )
        if not results:
            return []
        batches = [
            SourceBatch(
                results,
                weights.favorite_search_multiplier,
                Reason.favorite_search(title),
                self._mood_bias("favorite_search", context),
            )
        ]

        top_match = results[0] if isinstance(results[0], dict) else None
        if not top_match or not top_match.get("id"):
            return batches
        reference = top_match.get("title") or top_match.get("original_title") or title
        movie_id = top_match["id"]

        recommendations, similar = await cancellation.gather(
            self._fetch(f"movie/{movie_id}/recommendations", {}, cancellation, label=reference),
            self._fetch(f"movie/{movie_id}/similar", {}, cancellation, label=reference),
        )
        if recommendations is not None:
            batches.append(
                SourceBatch(
                    recommendations,
                    weights.recommendations_multiplier,
                    Reason.fans_also_enjoyed(reference),
                    self._mood_bias("recommendations", context),
                )
            )
        if similar is not None:
            batches.append(
                SourceBatch(
                    similar,
                    weights.similar_multiplier,
                    Reason.similar_picks(reference),
                    self._mood_bias("similar", context),
                )
            )
        return batches

    async def _trending(
        self, context: ScoringContext, cancellation: CancellationToken
    ) -> list[SourceBatch]:
        results = await self._fetch(
            "trending/movie/week", {}, cancellation, label="cold start"
        )
        if results is None:
            return []
        return [
            SourceBatch(
                results,
                self._settings.scoring.trending_multiplier,
                Reason(ReasonKind.TRENDING),
                self._mood_bias("trending", context),
            )
        ]
