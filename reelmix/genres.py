"""Genre identifiers used by the movie catalog."""

from __future__ import annotations

CATALOG_GENRES: dict[int, str] = {
    28: "Action",
    12: "Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    14: "Fantasy",
    36: "History",
    27: "Horror",
    10402: "Music",
    9648: "Mystery",
    10749: "Romance",
    878: "Science Fiction",
    10770: "TV Movie",
    53: "Thriller",
    10752: "War",
    37: "Western",
}

# Genre ids folded into discovery when a mood is requested.
LIGHT_MOOD_GENRE_IDS: tuple[str, ...] = ("35", "10751", "16", "10749")
DARK_MOOD_GENRE_IDS: tuple[str, ...] = ("27", "53", "80", "18")

LIGHT_MOOD_GENRES = frozenset({"Comedy", "Family", "Animation", "Romance"})
DARK_MOOD_GENRES = frozenset({"Thriller", "Horror", "Crime", "Drama"})


def genre_name(genre_id: int | str) -> str:
    """Return the display name for a genre id, or an empty string."""

    try:
        return CATALOG_GENRES.get(int(genre_id), "")
    except (TypeError, ValueError):
        return ""
