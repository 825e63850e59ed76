"""Request orchestration across aggregation, ranking and enrichment."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from ..cancellation import CancellationToken
from ..config import Settings, get_settings
from ..models import EnrichedRecommendation, ScoringContext, WatchedEntry
from ..utils import normalize_title
from .aggregator import CandidateAggregator
from .catalog import CatalogClient
from .enrichment import EnrichmentPipeline
from .ranking import RankingEngine

logger = logging.getLogger(__name__)


class RecommendationStatus(str, Enum):
    OK = "ok"
    NO_CANDIDATES = "no_candidates"
    ALL_WATCHED = "all_watched"
    NO_METADATA = "no_metadata"


STATUS_MESSAGES: dict[RecommendationStatus, str] = {
    RecommendationStatus.OK: (
        "Here's a curated batch based on your input. Mark anything you've "
        "already seen and the next batch will adapt."
    ),
    RecommendationStatus.NO_CANDIDATES: (
        "Nothing matched that combination. Try loosening your genre filters a bit."
    ),
    RecommendationStatus.ALL_WATCHED: (
        "Everything found is already in your watched list. Try new genres or "
        "clear some history."
    ),
    RecommendationStatus.NO_METADATA: (
        "Candidates were found but none had catalog details. Try again in a bit "
        "or tweak your filters."
    ),
}


@dataclass(slots=True)
class RecommendationResult:
    """Outcome of one recommendation request."""

    status: RecommendationStatus
    recommendations: list[EnrichedRecommendation] = field(default_factory=list)
    candidate_count: int = 0

    @property
    def message(self) -> str:
        return STATUS_MESSAGES[self.status]

    @property
    def ok(self) -> bool:
        return self.status is RecommendationStatus.OK


class RecommendationService:
    """Run the recommendation stages for callers, one request per session.

    Starting a request for a session cancels whichever request that session
    still has in flight, so stale results are never returned.
    """

    def __init__(
        self,
        aggregator: CandidateAggregator,
        ranking: RankingEngine,
        enrichment: EnrichmentPipeline,
        settings: Settings | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._ranking = ranking
        self._enrichment = enrichment
        self._settings = settings or get_settings()
        self._active: dict[str, CancellationToken] = {}

    @classmethod
    def from_client(
        cls, client: CatalogClient, settings: Settings | None = None
    ) -> "RecommendationService":
        """Build a service with default stages around ``client``."""

        resolved = settings or get_settings()
        return cls(
            CandidateAggregator(client, resolved),
            RankingEngine(resolved.scoring),
            EnrichmentPipeline(client, settings=resolved),
            resolved,
        )

    def is_running(self, session_key: str = "default") -> bool:
        return session_key in self._active

    def cancel(self, session_key: str = "default") -> bool:
        """Abandon the in-flight request for ``session_key``, if any."""

        token = self._active.get(session_key)
        if token is None:
            return False
        token.cancel()
        return True

    async def recommend(
        self,
        context: ScoringContext,
        *,
        max_count: int | None = None,
        session_key: str = "default",
    ) -> RecommendationResult:
        """Produce enriched recommendations for ``context``.

        Raises :class:`~reelmix.cancellation.RecommendationCancelled` when
        the request is superseded, explicitly cancelled or times out.
        """

        previous = self._active.get(session_key)
        if previous is not None:
            logger.info("Superseding in-flight recommendation for %s", session_key)
            previous.cancel("superseded")

        token = CancellationToken()
        self._active[session_key] = token
        timeout = self._settings.recommendation_timeout_seconds
        if timeout:
            token.cancel_after(timeout)
        try:
            return await self._run(
                context,
                token,
                max_count or self._settings.max_recommendations,
            )
        finally:
            token.clear_deadline()
            if self._active.get(session_key) is token:
                del self._active[session_key]

    async def _run(
        self,
        context: ScoringContext,
        token: CancellationToken,
        max_count: int,
    ) -> RecommendationResult:
        candidates = await self._aggregator.discover_candidates(context, token)
        token.raise_if_cancelled()
        if not candidates:
            return RecommendationResult(RecommendationStatus.NO_CANDIDATES)

        ranked = self._ranking.select_top_candidates(
            candidates, context, context.watched_movies, max_count
        )
        if not ranked:
            return RecommendationResult(
                RecommendationStatus.ALL_WATCHED, candidate_count=len(candidates)
            )

        items = await self._enrichment.enrich_with_metadata(ranked, token)
        token.raise_if_cancelled()
        if not items:
            return RecommendationResult(
                RecommendationStatus.NO_METADATA, candidate_count=len(candidates)
            )

        recommendations = await self._enrichment.enrich_with_trailer(items, token)
        token.raise_if_cancelled()
        recommendations = _drop_watched(recommendations, context.watched_movies)
        if not recommendations:
            return RecommendationResult(
                RecommendationStatus.ALL_WATCHED, candidate_count=len(candidates)
            )

        logger.info(
            "Returning %s recommendations from %s candidates",
            len(recommendations),
            len(candidates),
        )
        return RecommendationResult(
            RecommendationStatus.OK,
            recommendations=recommendations,
            candidate_count=len(candidates),
        )


def _drop_watched(
    recommendations: Sequence[EnrichedRecommendation],
    watched: Sequence[WatchedEntry],
) -> list[EnrichedRecommendation]:
    """Remove entries whose secondary record matches a watched title."""

    watched_ids = {normalize_title(entry.id) for entry in watched if entry.id}
    watched_titles = {normalize_title(entry.title) for entry in watched if entry.title}
    kept: list[EnrichedRecommendation] = []
    for recommendation in recommendations:
        record = recommendation.secondary_metadata
        if record.imdb_id and normalize_title(record.imdb_id) in watched_ids:
            continue
        if normalize_title(record.title) in watched_titles:
            continue
        kept.append(recommendation)
    return kept
