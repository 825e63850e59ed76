"""Summaries of a user's viewing history."""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from .models import WatchedEntry


def watched_genre_weights(watched: Sequence[WatchedEntry]) -> dict[str, int]:
    """Return how often each genre appears across the watched titles."""

    counter: Counter[str] = Counter()
    for entry in watched:
        counter.update(genre for genre in entry.genres if genre)
    return dict(counter)


def preferred_rating(watched: Sequence[WatchedEntry]) -> float | None:
    """Return the mean rating of watched titles that carry one."""

    ratings = [entry.rating for entry in watched if entry.rating is not None]
    if not ratings:
        return None
    return sum(ratings) / len(ratings)
