"""Final scoring and diversity-aware selection of candidates."""

from __future__ import annotations

import logging
import math
import random
from collections import Counter
from datetime import date
from typing import Sequence

from ..config import ScoringWeights
from ..genres import DARK_MOOD_GENRES, LIGHT_MOOD_GENRES
from ..models import Candidate, MovieRef, RankedCandidate, ScoringContext, WatchedEntry
from ..reasons import Reason, ReasonKind, add_reason
from ..taste import preferred_rating, watched_genre_weights
from ..utils import derive_seed, normalize_title, seeded_noise

logger = logging.getLogger(__name__)

DEFAULT_MAX_COUNT = 8


class RankingEngine:
    """Turn aggregated candidates into an ordered, diversified shortlist."""

    def __init__(
        self,
        weights: ScoringWeights | None = None,
        *,
        current_year: int | None = None,
    ) -> None:
        self._weights = weights or ScoringWeights()
        self._current_year = current_year

    def select_top_candidates(
        self,
        candidates: Sequence[Candidate],
        context: ScoringContext,
        watched_movies: Sequence[WatchedEntry] | None = None,
        max_count: int | None = None,
    ) -> list[RankedCandidate]:
        """Score, filter and greedily pick up to ``max_count`` candidates.

        ``watched_movies`` defaults to the context's history. ``None`` for
        ``max_count`` keeps every eligible candidate.
        """

        watched = list(context.watched_movies if watched_movies is None else watched_movies)
        if max_count is not None and max_count <= 0:
            max_count = DEFAULT_MAX_COUNT

        scorer = _CandidateScorer(
            self._weights,
            context,
            watched,
            current_year=self._current_year or date.today().year,
        )
        scored = [
            scorer.score(entry) for entry in candidates if not scorer.is_watched(entry.movie)
        ]
        if len(scored) < len(candidates):
            logger.debug(
                "Dropped %s already watched candidates", len(candidates) - len(scored)
            )
        limit = len(scored) if max_count is None else max_count
        return self._diversify(scored, limit)

    def _diversify(
        self, scored: list[RankedCandidate], limit: int
    ) -> list[RankedCandidate]:
        genre_counts: Counter[str] = Counter()
        remaining = list(scored)
        selected: list[RankedCandidate] = []

        def penalty(entry: RankedCandidate) -> float:
            return sum(
                genre_counts[genre] * self._weights.diversity_penalty
                for genre in entry.movie.genre_keys
            )

        while remaining and len(selected) < limit:
            best_index = max(
                range(len(remaining)),
                key=lambda index: remaining[index].score - penalty(remaining[index]),
            )
            pick = remaining.pop(best_index)
            pick_penalty = penalty(pick)
            if pick_penalty < self._weights.balanced_mix_threshold and selected:
                add_reason(pick.reasons, Reason(ReasonKind.BALANCED_MIX))
            pick.score -= pick_penalty
            selected.append(pick)
            genre_counts.update(pick.movie.genre_keys)

        selected.sort(key=lambda entry: entry.score, reverse=True)
        return selected


class _CandidateScorer:
    """Per-request scoring state derived from the context and history."""

    def __init__(
        self,
        weights: ScoringWeights,
        context: ScoringContext,
        watched: list[WatchedEntry],
        *,
        current_year: int,
    ) -> None:
        self._w = weights
        self._context = context
        self._current_year = current_year
        self._genre_weights = watched_genre_weights(watched)
        self._preferred_rating = preferred_rating(watched)
        self._favorites = {normalize_title(title) for title in context.favorite_titles}
        self._favorites.discard("")
        self._selected = set(context.selected_genres)
        self._watched_ids = {normalize_title(entry.id) for entry in watched if entry.id}
        self._watched_titles = {
            normalize_title(entry.title) for entry in watched if entry.title
        }
        self._seed = derive_seed(context.seed) if context.seed is not None else None

    def is_watched(self, movie: MovieRef) -> bool:
        if normalize_title(str(movie.id)) in self._watched_ids:
            return True
        return normalize_title(movie.title) in self._watched_titles

    def noise(self, movie: MovieRef) -> float:
        if self._seed is None:
            return random.random()
        return seeded_noise(movie.id, self._seed)

    def score(self, entry: Candidate) -> RankedCandidate:
        movie = entry.movie
        reasons = list(dict.fromkeys(entry.reasons))
        boost = self._personalization(movie, reasons) + self._quality(movie, reasons)
        tie_break = self.noise(movie) * self._w.tie_break_magnitude
        return RankedCandidate(
            movie=movie,
            score=entry.score + boost + tie_break,
            reasons=reasons,
        )

    def _personalization(self, movie: MovieRef, reasons: list[Reason]) -> float:
        w = self._w
        boost = 0.0
        if normalize_title(movie.title) in self._favorites:
            boost += w.favorite_match_boost
            add_reason(reasons, Reason(ReasonKind.FAVORITE_MATCH))

        genre_names = movie.genre_names
        for name in genre_names:
            weight = self._genre_weights.get(name)
            if weight:
                boost += w.watched_genre_weight * math.sqrt(weight)
                add_reason(reasons, Reason(ReasonKind.WATCHED_GENRES))

        if not self._selected:
            boost += w.genre_variety_weight * (len(movie.genre_ids) or 1)
        elif any(str(gid) in self._selected for gid in movie.genre_ids):
            add_reason(reasons, Reason(ReasonKind.GENRE_MATCH))

        mood = self._context.mood
        if mood == "light" and LIGHT_MOOD_GENRES.intersection(genre_names):
            boost += w.mood_match_boost
            add_reason(reasons, Reason(ReasonKind.MOOD_LIGHT))
        elif mood == "dark" and DARK_MOOD_GENRES.intersection(genre_names):
            boost += w.mood_match_boost
            add_reason(reasons, Reason(ReasonKind.MOOD_DARK))

        if self._preferred_rating is not None and movie.rating:
            diff = abs(self._preferred_rating - movie.rating)
            boost += max(0.0, w.rating_preference_window - diff)
            if diff < w.rating_lane_tolerance:
                add_reason(reasons, Reason(ReasonKind.RATING_LANE))
        return boost

    def _quality(self, movie: MovieRef, reasons: list[Reason]) -> float:
        w = self._w
        rating = movie.rating
        if rating >= w.high_rating_threshold:
            add_reason(reasons, Reason(ReasonKind.HIGH_RATING))
        elif rating >= w.solid_rating_threshold:
            add_reason(reasons, Reason(ReasonKind.SOLID_RATING))
        if movie.vote_count >= w.community_votes_threshold:
            add_reason(reasons, Reason(ReasonKind.COMMUNITY_VOTES))
        year = movie.year
        if year is not None and self._current_year - year <= w.fresh_release_years:
            add_reason(reasons, Reason(ReasonKind.FRESH_RELEASE))
        return rating * w.quality_weight if rating else 0.0


def select_top_candidates(
    candidates: Sequence[Candidate],
    context: ScoringContext,
    watched_movies: Sequence[WatchedEntry] | None = None,
    max_count: int | None = DEFAULT_MAX_COUNT,
    *,
    weights: ScoringWeights | None = None,
) -> list[RankedCandidate]:
    """Rank ``candidates`` for ``context`` with the given (or default) weights."""

    return RankingEngine(weights).select_top_candidates(
        candidates, context, watched_movies, max_count
    )
