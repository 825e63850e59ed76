"""Application configuration models."""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import BaseModel, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScoringWeights(BaseModel):
    """Tunable constants used by candidate aggregation and ranking.

    The defaults reproduce the hand-tuned behaviour of the recommender. They
    are exposed so deployments can experiment without touching the code.
    """

    # Base score of a single upstream hit.
    rating_weight: float = 0.9
    popularity_weight: float = 0.03
    genre_overlap_weight: float = 4.2
    vote_count_weight: float = 1.5
    recency_weight: float = 2.0
    recency_half_life_years: float = Field(default=8.0, gt=0)

    # Per-source multipliers.
    discover_multiplier: float = 1.0
    favorite_search_multiplier: float = 1.4
    recommendations_multiplier: float = 1.25
    similar_multiplier: float = 1.1
    trending_multiplier: float = 0.9

    # Personalisation.
    favorite_match_boost: float = 3.5
    watched_genre_weight: float = 1.1
    genre_variety_weight: float = 0.3
    rating_preference_window: float = 2.5
    rating_lane_tolerance: float = 1.0
    mood_match_boost: float = 1.6

    # Quality.
    quality_weight: float = 0.6
    high_rating_threshold: float = 7.5
    solid_rating_threshold: float = 6.8
    community_votes_threshold: int = 500
    fresh_release_years: int = 3

    # Tie-break noise and diversity.
    tie_break_magnitude: float = Field(default=0.4, ge=0, le=0.4)
    diversity_penalty: float = 0.9
    balanced_mix_threshold: float = 0.5

    # Mood support.
    mood_intensity_high_multiplier: float = 1.35
    mood_intensity_low_multiplier: float = 0.75


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    omdb_api_key: str | None = Field(default=None, alias="OMDB_API_KEY")
    youtube_api_key: str | None = Field(default=None, alias="YOUTUBE_API_KEY")

    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    omdb_api_url: HttpUrl = Field(
        default="https://www.omdbapi.com", alias="OMDB_API_URL"
    )
    youtube_api_url: HttpUrl = Field(
        default="https://www.googleapis.com/youtube/v3", alias="YOUTUBE_API_URL"
    )
    catalog_language: str = Field(default="en-US", alias="CATALOG_LANGUAGE")

    request_timeout_seconds: float = Field(
        default=10.0, alias="REQUEST_TIMEOUT", gt=0, le=120
    )
    recommendation_timeout_seconds: float | None = Field(
        default=None, alias="RECOMMENDATION_TIMEOUT", gt=0
    )
    max_concurrent_requests: int = Field(
        default=8, alias="MAX_CONCURRENT_REQUESTS", ge=1, le=64
    )

    max_favorite_titles: int = Field(
        default=6, alias="MAX_FAVORITE_TITLES", ge=0, le=50
    )
    discover_min_votes: int = Field(
        default=150, alias="DISCOVER_MIN_VOTES", ge=0
    )
    max_recommendations: int = Field(
        default=8, alias="MAX_RECOMMENDATIONS", ge=1, le=100
    )

    metadata_cache_size: int = Field(
        default=512, alias="METADATA_CACHE_SIZE", ge=0
    )
    trailer_cache_size: int = Field(
        default=512, alias="TRAILER_CACHE_SIZE", ge=0
    )
    cache_ttl_seconds: int | None = Field(default=None, alias="CACHE_TTL", gt=0)
    metadata_fallback: bool = Field(default=False, alias="METADATA_FALLBACK")

    scoring: ScoringWeights = Field(default_factory=ScoringWeights, alias="SCORING")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> str:
        """Accept lower-case level names and reject unknown ones."""

        if value is None:
            return "INFO"
        level = str(value).strip().upper() or "INFO"
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator(
        "tmdb_api_key", "omdb_api_key", "youtube_api_key", mode="before"
    )
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )


def configure_logging(settings: Settings) -> None:
    """Configure root logging for processes embedding the recommender."""

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]
