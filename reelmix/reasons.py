"""Structured justifications attached to recommended movies.

Scoring code only ever produces :class:`Reason` values. Turning them into
copy is left to whoever presents the recommendations, via
:meth:`Reason.render` or :func:`render_reasons`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class ReasonKind(str, Enum):
    """Why a movie surfaced in the recommendations."""

    POPULAR_IN_GENRES = "popular_in_genres"
    POPULAR_WORLDWIDE = "popular_worldwide"
    FAVORITE_SEARCH = "favorite_search"
    FANS_ALSO_ENJOYED = "fans_also_enjoyed"
    SIMILAR_PICKS = "similar_picks"
    TRENDING = "trending"
    FAVORITE_MATCH = "favorite_match"
    WATCHED_GENRES = "watched_genres"
    GENRE_MATCH = "genre_match"
    MOOD_LIGHT = "mood_light"
    MOOD_DARK = "mood_dark"
    RATING_LANE = "rating_lane"
    HIGH_RATING = "high_rating"
    SOLID_RATING = "solid_rating"
    COMMUNITY_VOTES = "community_votes"
    FRESH_RELEASE = "fresh_release"
    BALANCED_MIX = "balanced_mix"


_TEMPLATES: dict[ReasonKind, str] = {
    ReasonKind.POPULAR_IN_GENRES: "Popular in your chosen genres",
    ReasonKind.POPULAR_WORLDWIDE: "Popular worldwide this week",
    ReasonKind.FAVORITE_SEARCH: 'Because "{subject}" is in your favorites',
    ReasonKind.FANS_ALSO_ENJOYED: 'Fans of "{subject}" also enjoyed',
    ReasonKind.SIMILAR_PICKS: 'Similar picks to "{subject}"',
    ReasonKind.TRENDING: "Trending this week",
    ReasonKind.FAVORITE_MATCH: "Inspired by your favorites list",
    ReasonKind.WATCHED_GENRES: "Echoes your watched favorites",
    ReasonKind.GENRE_MATCH: "Matches your selected genres",
    ReasonKind.MOOD_LIGHT: "Fits today's feel-good vibe",
    ReasonKind.MOOD_DARK: "Taps into your intense mood",
    ReasonKind.RATING_LANE: "In the same rating lane you tend to enjoy",
    ReasonKind.HIGH_RATING: "Well loved by movie fans (7.5+ rating)",
    ReasonKind.SOLID_RATING: "Solid viewer scores on TMDB",
    ReasonKind.COMMUNITY_VOTES: "Backed by lots of community votes",
    ReasonKind.FRESH_RELEASE: "Fresh release from the last few years",
    ReasonKind.BALANCED_MIX: "Balances the mix",
}


@dataclass(frozen=True, slots=True)
class Reason:
    """A single justification, optionally tied to a subject title."""

    kind: ReasonKind
    subject: str | None = None

    @classmethod
    def favorite_search(cls, title: str) -> "Reason":
        return cls(ReasonKind.FAVORITE_SEARCH, title)

    @classmethod
    def fans_also_enjoyed(cls, title: str) -> "Reason":
        return cls(ReasonKind.FANS_ALSO_ENJOYED, title)

    @classmethod
    def similar_picks(cls, title: str) -> "Reason":
        return cls(ReasonKind.SIMILAR_PICKS, title)

    def render(self) -> str:
        """Return the human-readable copy for this reason."""

        return _TEMPLATES[self.kind].format(subject=self.subject or "")

    def __str__(self) -> str:
        return self.render()


def add_reason(reasons: list[Reason], reason: Reason | None) -> None:
    """Append ``reason`` unless an identical one is already present."""

    if reason is not None and reason not in reasons:
        reasons.append(reason)


def render_reasons(reasons: Iterable[Reason]) -> list[str]:
    """Render reasons to display strings, dropping duplicate copy."""

    rendered: list[str] = []
    for reason in reasons:
        text = reason.render()
        if text not in rendered:
            rendered.append(text)
    return rendered
