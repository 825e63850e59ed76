"""Records exchanged between the recommendation stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .genres import genre_name
from .reasons import Reason, render_reasons
from .utils import (
    normalize_favorite_titles,
    normalize_genre_selections,
    parse_year,
)

Mood = Literal["any", "light", "dark"]

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w342"


class MovieRef(BaseModel):
    """Primary catalog record as returned by search and discovery routes."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    id: int | str
    title: str
    original_title: str | None = None
    genre_ids: tuple[int, ...] = ()
    vote_average: float = 0.0
    popularity: float = 0.0
    vote_count: int = Field(default=0, ge=0)
    release_date: str | None = None
    overview: str | None = None
    poster_path: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _fill_title(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("title"):
            fallback = data.get("original_title") or data.get("name")
            if fallback:
                data = {**data, "title": fallback}
        return data

    @field_validator("vote_average", "popularity", "vote_count", mode="before")
    @classmethod
    def _missing_metric_is_zero(cls, value: object) -> object:
        return 0 if value is None else value

    @field_validator("genre_ids", mode="before")
    @classmethod
    def _parse_genre_ids(cls, value: object) -> object:
        if value is None:
            return ()
        return value

    @property
    def rating(self) -> float:
        return self.vote_average

    @property
    def year(self) -> int | None:
        return parse_year(self.release_date)

    @property
    def genre_names(self) -> list[str]:
        """Display names of the genres this movie is tagged with."""

        return [name for name in (genre_name(gid) for gid in self.genre_ids) if name]

    @property
    def genre_keys(self) -> list[str]:
        """Genre labels used for diversity bookkeeping.

        Unknown ids fall back to their string form so they still count.
        """

        return [genre_name(gid) or str(gid) for gid in self.genre_ids]

    @property
    def poster_url(self) -> str | None:
        if not self.poster_path:
            return None
        if self.poster_path.startswith("http"):
            return self.poster_path
        return f"{POSTER_BASE_URL}{self.poster_path}"


class SecondaryRecord(BaseModel):
    """Ratings and plot details from the secondary metadata catalog."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(validation_alias=AliasChoices("Title", "title"))
    year: str = Field(default="", validation_alias=AliasChoices("Year", "year"))
    imdb_id: str = Field(default="", validation_alias=AliasChoices("imdbID", "imdb_id"))
    type: str = Field(default="movie", validation_alias=AliasChoices("Type", "type"))
    plot: str | None = Field(default=None, validation_alias=AliasChoices("Plot", "plot"))
    genre: str | None = Field(default=None, validation_alias=AliasChoices("Genre", "genre"))
    poster: str | None = Field(default=None, validation_alias=AliasChoices("Poster", "poster"))
    imdb_rating: str | None = Field(
        default=None, validation_alias=AliasChoices("imdbRating", "imdb_rating")
    )
    ratings: list[dict[str, str]] = Field(
        default_factory=list, validation_alias=AliasChoices("Ratings", "ratings")
    )
    source: str = "omdb"

    @field_validator("year", "imdb_id", mode="before")
    @classmethod
    def _stringify(cls, value: object) -> object:
        if value is None:
            return ""
        return str(value)

    @property
    def rating_value(self) -> float | None:
        """Parsed IMDb rating, ``None`` when the catalog reports ``N/A``."""

        try:
            return float(self.imdb_rating) if self.imdb_rating else None
        except ValueError:
            return None

    @classmethod
    def from_movie(cls, movie: MovieRef) -> "SecondaryRecord":
        """Build a stand-in record from the primary catalog entry."""

        overview = (movie.overview or "").strip()
        return cls(
            title=movie.title,
            year=str(movie.year or ""),
            plot=overview or "No plot summary available from TMDB.",
            genre=", ".join(movie.genre_names),
            poster=movie.poster_url or "N/A",
            imdb_rating="N/A",
            source="catalog-fallback",
        )


class WatchedEntry(BaseModel):
    """A title from the user's viewing history."""

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = Field(default=None, validation_alias=AliasChoices("id", "imdbID", "imdb_id"))
    title: str = ""
    genres: list[str] = Field(default_factory=list)
    rating: float | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("genres", mode="before")
    @classmethod
    def _parse_genres(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class ScoringContext(BaseModel):
    """Preferences for a single recommendation request."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    selected_genres: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("selected_genres", "selectedGenres")
    )
    favorite_titles: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("favorite_titles", "favoriteTitles")
    )
    seed: float | None = None
    watched_movies: list[WatchedEntry] = Field(
        default_factory=list, validation_alias=AliasChoices("watched_movies", "watchedMovies")
    )
    mood: Mood = "any"
    mood_intensity: float = Field(
        default=1.0, validation_alias=AliasChoices("mood_intensity", "moodIntensity")
    )

    @field_validator("selected_genres", mode="before")
    @classmethod
    def _normalise_genres(cls, value: object) -> list[str]:
        if isinstance(value, (str, int)):
            value = [value]
        return normalize_genre_selections(value)  # type: ignore[arg-type]

    @field_validator("favorite_titles", mode="before")
    @classmethod
    def _normalise_favorites(cls, value: object) -> list[str]:
        if isinstance(value, str):
            value = [value]
        return normalize_favorite_titles(value)  # type: ignore[arg-type]

    @field_validator("mood", mode="before")
    @classmethod
    def _unknown_mood_is_any(cls, value: object) -> object:
        if value in ("light", "dark"):
            return value
        return "any"

    @field_validator("mood_intensity", mode="before")
    @classmethod
    def _clamp_intensity(cls, value: object) -> float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 1.0
        if value != value:  # NaN
            return 1.0
        return float(min(2.0, max(0.0, value)))

    @field_validator("seed", mode="before")
    @classmethod
    def _finite_seed(cls, value: object) -> object:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)) and value == value and abs(value) != float("inf"):
            return value
        return None


@dataclass(slots=True)
class Candidate:
    """A movie collected by the aggregator with its accumulated score."""

    movie: MovieRef
    score: float = 0.0
    reasons: list[Reason] = field(default_factory=list)


@dataclass(slots=True)
class RankedCandidate:
    """A candidate after personalisation, noise and diversity adjustments."""

    movie: MovieRef
    score: float
    reasons: list[Reason] = field(default_factory=list)
    already_watched: bool = False


@dataclass(frozen=True, slots=True)
class TrailerRef:
    """Where to watch a trailer; ``search_url`` is always usable."""

    search_url: str
    embed_url: str | None = None
    direct_url: str | None = None
    video_id: str | None = None


@dataclass(slots=True)
class EnrichedItem:
    """A ranked candidate paired with its secondary metadata."""

    candidate: MovieRef
    secondary_metadata: SecondaryRecord
    reasons: list[Reason] = field(default_factory=list)
    score: float = 0.0


@dataclass(slots=True)
class EnrichedRecommendation:
    """Final recommendation handed to the presentation layer."""

    candidate: MovieRef
    secondary_metadata: SecondaryRecord
    trailer: TrailerRef
    reasons: list[Reason] = field(default_factory=list)
    score: float = 0.0

    def reason_copy(self) -> list[str]:
        return render_reasons(self.reasons)
