"""Utility helpers shared by the recommendation pipeline."""

from __future__ import annotations

import re
from typing import Any, Iterable

_UINT32_MASK = 0xFFFFFFFF
_YEAR_RE = re.compile(r"(19|20|21)\d{2}")


def normalize_title(value: str | None) -> str:
    """Return the comparison key used for title matching."""

    return (value or "").strip().casefold()


def normalize_genre_selections(genres: Iterable[Any] | None) -> list[str]:
    """Return stripped, de-duplicated genre ids as strings, keeping order."""

    if not genres:
        return []
    cleaned: list[str] = []
    for genre in genres:
        if isinstance(genre, bool) or not isinstance(genre, (str, int, float)):
            continue
        text = str(genre).strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned


def normalize_favorite_titles(
    titles: Iterable[Any] | None, limit: int | None = None
) -> list[str]:
    """Trim favorite titles, dropping blanks and capping at ``limit``."""

    if not titles:
        return []
    cleaned = [
        title.strip() for title in titles if isinstance(title, str) and title.strip()
    ]
    if limit is not None:
        return cleaned[: max(0, limit)]
    return cleaned


def parse_year(value: Any) -> int | None:
    """Extract a four digit year from a release date or free-form string."""

    if isinstance(value, int) and not isinstance(value, bool):
        return value if 1800 <= value <= 2200 else None
    if not isinstance(value, str) or len(value) < 4:
        return None
    if value[:4].isdigit():
        return int(value[:4])
    match = _YEAR_RE.search(value)
    return int(match.group(0)) if match else None


def _string_hash(value: str) -> int:
    result = 0
    for char in value:
        result = (31 * result + ord(char)) & _UINT32_MASK
    return result


def derive_seed(seed: float) -> int:
    """Scale a fractional request seed into a 32-bit integer."""

    return int(abs(seed) * 1_000_000_000) & _UINT32_MASK


def seeded_noise(key: object, seed: int) -> float:
    """Return a deterministic value in ``[0, 1)`` for ``key`` under ``seed``.

    This is a plain multiply-xor-shift integer mix, not a cryptographic or
    statistically strong generator. It is stateless so identical inputs
    always produce identical outputs.
    """

    mixed = (_string_hash(str(key)) ^ seed) & _UINT32_MASK
    mixed = ((mixed ^ (mixed >> 15)) * 0x2C1B3C6D) & _UINT32_MASK
    mixed = ((mixed ^ (mixed >> 12)) * 0x297A2D39) & _UINT32_MASK
    mixed ^= mixed >> 15
    return mixed / 4294967296.0
