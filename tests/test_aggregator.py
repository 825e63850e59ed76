"""Tests for candidate aggregation."""

from __future__ import annotations

import asyncio
import logging
import math
import time

import pytest

from reelmix.cancellation import CancellationToken, RecommendationCancelled
from reelmix.config import Settings
from reelmix.models import MovieRef, ScoringContext
from reelmix.reasons import Reason, ReasonKind
from reelmix.services.aggregator import CandidateAggregator, CandidatePool
from reelmix.services.catalog import CatalogError


def test_accumulate_sums_weighted_contributions_and_unions_reasons(movie) -> None:
    pool = CandidatePool()
    ref = MovieRef.model_validate(movie(7, "Heat"))
    popular = Reason(ReasonKind.POPULAR_IN_GENRES)
    favorite = Reason.favorite_search("Heat")

    pool.accumulate(ref, 10.0, 1.0, popular)
    pool.accumulate(ref, 8.0, 1.4, favorite)
    entry = pool.accumulate(ref, 0.0, 1.0, popular)

    assert len(pool) == 1
    assert entry.score == pytest.approx(21.2)
    assert entry.reasons == [popular, favorite]


def test_base_score_follows_weighted_formula(movie) -> None:
    pool = CandidatePool(selected_genres=frozenset({"28", "12"}), current_year=2024)
    ref = MovieRef.model_validate(
        movie(
            1,
            genre_ids=[28, 12, 18],
            vote_average=8.0,
            popularity=100.0,
            vote_count=999,
            release_date="2016-03-01",
        )
    )

    expected = 8.0 * 0.9 + 100.0 * 0.03 + 2 * 4.2 + 3 * 1.5 + 2 / (1 + 8 / 8)
    assert pool.base_score(ref) == pytest.approx(expected)


def test_add_results_drops_records_without_genres_or_identity(movie) -> None:
    pool = CandidatePool()
    accepted = pool.add_results(
        [
            movie(1),
            movie(2, genre_ids=[]),
            {"title": "No id", "genre_ids": [28]},
            {"id": 3, "genre_ids": [28]},
            movie(4, title=None, original_title="Le Samourai"),
            "not a record",
        ],
        weight=1.0,
    )

    assert accepted == 2
    titles = sorted(candidate.movie.title for candidate in pool.candidates())
    assert titles == ["Le Samourai", "Movie 1"]
    assert all(candidate.movie.genre_ids for candidate in pool.candidates())


@pytest.mark.anyio
async def test_discovery_uses_genres_and_seeded_page(
    settings: Settings, movie, fake_client_cls
) -> None:
    client = fake_client_cls({"discover/movie": {"results": [movie(1), movie(2)]}})
    aggregator = CandidateAggregator(client, settings)
    context = ScoringContext(selected_genres=["28", "35"], seed=0.42)

    candidates = await aggregator.discover_candidates(context, CancellationToken())

    assert client.paths() == ["discover/movie"]
    params = client.calls[0][1]
    assert params["with_genres"] == "28,35"
    assert params["sort_by"] == "popularity.desc"
    assert params["vote_count.gte"] == "150"
    assert params["page"] == "2"
    assert len(candidates) == 2
    assert all(
        candidate.reasons == [Reason(ReasonKind.POPULAR_IN_GENRES)] for candidate in candidates
    )


@pytest.mark.anyio
async def test_favorites_trigger_search_and_follow_up_queries(
    settings: Settings, movie, fake_client_cls
) -> None:
    mad_max = movie(76341, "Mad Max: Fury Road", vote_average=7.6, vote_count=20000)
    shared = movie(9, "The Road Warrior")
    client = fake_client_cls(
        {
            "search/movie:Mad Max": {"results": [mad_max, shared]},
            "movie/76341/recommendations": {"results": [shared, movie(10)]},
            "movie/76341/similar": {"results": [movie(11)]},
        }
    )
    aggregator = CandidateAggregator(client, settings)
    context = ScoringContext(favorite_titles=["Mad Max"], seed=0.1)

    candidates = await aggregator.discover_candidates(context, CancellationToken())

    assert sorted(client.paths()) == sorted(
        [
            "discover/movie",
            "search/movie",
            "movie/76341/recommendations",
            "movie/76341/similar",
        ]
    )
    by_id = {candidate.movie.id: candidate for candidate in candidates}
    assert set(by_id) == {76341, 9, 10, 11}

    road_warrior = by_id[9]
    assert road_warrior.reasons == [
        Reason.favorite_search("Mad Max"),
        Reason.fans_also_enjoyed("Mad Max: Fury Road"),
    ]
    pool = CandidatePool()
    base = pool.base_score(road_warrior.movie)
    assert road_warrior.score == pytest.approx(base * 1.4 + base * 1.25)
    assert by_id[11].reasons == [Reason.similar_picks("Mad Max: Fury Road")]
    assert str(by_id[76341].reasons[0]) == 'Because "Mad Max" is in your favorites'


@pytest.mark.anyio
async def test_cold_start_falls_back_to_trending(
    settings: Settings, movie, fake_client_cls
) -> None:
    client = fake_client_cls({"trending/movie/week": {"results": [movie(5)]}})
    aggregator = CandidateAggregator(client, settings)

    candidates = await aggregator.discover_candidates(ScoringContext(), CancellationToken())

    assert sorted(client.paths()) == ["discover/movie", "trending/movie/week"]
    assert "with_genres" not in client.calls[0][1]
    assert candidates[0].reasons == [Reason(ReasonKind.TRENDING)]


@pytest.mark.anyio
async def test_trending_skipped_when_preferences_exist(
    settings: Settings, fake_client_cls
) -> None:
    client = fake_client_cls()
    aggregator = CandidateAggregator(client, settings)

    await aggregator.discover_candidates(
        ScoringContext(selected_genres=["18"]), CancellationToken()
    )

    assert "trending/movie/week" not in client.paths()


@pytest.mark.anyio
async def test_upstream_failures_are_logged_and_skipped(
    settings: Settings, movie, fake_client_cls, caplog: pytest.LogCaptureFixture
) -> None:
    client = fake_client_cls(
        {
            "discover/movie": CatalogError("tmdb", "request failed with status 500"),
            "search/movie:Heat": {"results": [movie(949, "Heat")]},
            "movie/949/recommendations": CatalogError("tmdb", "timeout"),
            "movie/949/similar": {"results": "garbage"},
        }
    )
    aggregator = CandidateAggregator(client, settings)

    with caplog.at_level(logging.WARNING):
        candidates = await aggregator.discover_candidates(
            ScoringContext(selected_genres=["80"], favorite_titles=["Heat"]),
            CancellationToken(),
        )

    assert [candidate.movie.id for candidate in candidates] == [949]
    assert "discover/movie failed" in caplog.text
    assert "recommendations failed" in caplog.text


@pytest.mark.anyio
async def test_every_source_failing_yields_empty_list(
    settings: Settings, fake_client_cls
) -> None:
    client = fake_client_cls(
        {
            "discover/movie": CatalogError("tmdb", "down"),
            "trending/movie/week": CatalogError("tmdb", "down"),
        }
    )
    aggregator = CandidateAggregator(client, settings)
    assert await aggregator.discover_candidates(ScoringContext(), CancellationToken()) == []


@pytest.mark.anyio
async def test_cancellation_before_any_response_rejects(
    settings: Settings, movie, fake_client_cls
) -> None:
    block = asyncio.Event()
    client = fake_client_cls(
        {
            "discover/movie": {"results": [movie(1)]},
            "search/movie:Heat": {"results": [movie(2)]},
        },
        block=block,
    )
    aggregator = CandidateAggregator(client, settings)
    token = CancellationToken()

    task = asyncio.create_task(
        aggregator.discover_candidates(
            ScoringContext(selected_genres=["28"], favorite_titles=["Heat"]), token
        )
    )
    await asyncio.sleep(0.01)
    token.cancel()

    with pytest.raises(RecommendationCancelled):
        await task
    block.set()


@pytest.mark.anyio
async def test_cancellation_raised_by_client_is_not_swallowed(
    settings: Settings, fake_client_cls
) -> None:
    client = fake_client_cls({"search/movie:Heat": RecommendationCancelled("superseded")})
    aggregator = CandidateAggregator(client, settings)

    with pytest.raises(RecommendationCancelled):
        await aggregator.discover_candidates(
            ScoringContext(favorite_titles=["Heat"]), CancellationToken()
        )


@pytest.mark.anyio
async def test_favorites_are_capped(fake_client_cls) -> None:
    settings = Settings(_env_file=None, MAX_FAVORITE_TITLES=2)  # type: ignore[call-arg]
    client = fake_client_cls()
    aggregator = CandidateAggregator(client, settings)

    await aggregator.discover_candidates(
        ScoringContext(favorite_titles=["A", "B", "C", "D"]), CancellationToken()
    )

    queries = [params["query"] for path, params in client.calls if path == "search/movie"]
    assert sorted(queries) == ["A", "B"]


@pytest.mark.anyio
async def test_mood_extends_genres_and_intensity_changes_sort(
    settings: Settings, fake_client_cls
) -> None:
    client = fake_client_cls()
    aggregator = CandidateAggregator(client, settings)

    await aggregator.discover_candidates(
        ScoringContext(selected_genres=["35"], mood="light", mood_intensity=2),
        CancellationToken(),
    )

    params = client.calls[0][1]
    assert params["with_genres"] == "35,10751,16,10749"
    assert params["sort_by"] == "vote_average.desc"
    assert params["vote_average.gte"] == "6.5"


@pytest.mark.anyio
async def test_negative_vote_counts_are_skipped(
    settings: Settings, movie, fake_client_cls
) -> None:
    client = fake_client_cls(
        {"discover/movie": {"results": [movie(1), movie(2, vote_count=-3)]}}
    )
    aggregator = CandidateAggregator(client, settings)

    candidates = await aggregator.discover_candidates(
        ScoringContext(selected_genres=["28"]), CancellationToken()
    )

    assert [candidate.movie.id for candidate in candidates] == [1]


@pytest.mark.anyio
async def test_cancelled_source_stops_slow_siblings(
    settings: Settings, movie, fake_client_cls
) -> None:
    client = fake_client_cls(
        {
            "discover/movie": {"results": [movie(1)]},
            "search/movie:Heat": RecommendationCancelled("superseded"),
        },
        delays={"discover/movie": 1.0},
    )
    aggregator = CandidateAggregator(client, settings)
    token = CancellationToken()

    started = time.monotonic()
    with pytest.raises(RecommendationCancelled):
        await aggregator.discover_candidates(
            ScoringContext(selected_genres=["28"], favorite_titles=["Heat"]), token
        )

    assert time.monotonic() - started < 0.5
    assert token.cancelled
    assert token.reason == "superseded"


def overlapping_routes(movie) -> dict:
    shared = movie(5, "Shared", genre_ids=[28, 53], vote_average=7.3, popularity=41.7)
    return {
        "discover/movie": {"results": [shared, movie(1), movie(2, genre_ids=[12])]},
        "search/movie:Heat": {"results": [movie(949, "Heat"), shared]},
        "movie/949/recommendations": {"results": [shared, movie(3)]},
        "movie/949/similar": {"results": [movie(4), shared, movie(1)]},
        "search/movie:Alien": {"results": [movie(348, "Alien"), movie(2)]},
        "movie/348/recommendations": {"results": [shared]},
    }


@pytest.mark.anyio
@pytest.mark.parametrize(
    "delays",
    [
        {"search/movie:Heat": 0.04, "movie/348/recommendations": 0.02},
        {"discover/movie": 0.04, "movie/949/similar": 0.03, "search/movie:Alien": 0.01},
    ],
)
async def test_merge_does_not_depend_on_completion_order(
    settings: Settings, movie, fake_client_cls, delays: dict
) -> None:
    context = ScoringContext(
        selected_genres=["28"], favorite_titles=["Heat", "Alien"], seed=0.42
    )
    baseline = await CandidateAggregator(
        fake_client_cls(overlapping_routes(movie)), settings
    ).discover_candidates(context, CancellationToken())
    shuffled = await CandidateAggregator(
        fake_client_cls(overlapping_routes(movie), delays=delays), settings
    ).discover_candidates(context, CancellationToken())

    def snapshot(candidates):
        return [(c.movie.id, c.score, c.reasons) for c in candidates]

    assert snapshot(shuffled) == snapshot(baseline)


@pytest.mark.anyio
async def test_dark_mood_at_low_intensity(settings: Settings, movie, fake_client_cls) -> None:
    client = fake_client_cls(
        {"discover/movie": {"results": [movie(1, genre_ids=[53, 28])]}}
    )
    aggregator = CandidateAggregator(client, settings)

    [candidate] = await aggregator.discover_candidates(
        ScoringContext(selected_genres=["28"], mood="dark", mood_intensity=0),
        CancellationToken(),
    )

    params = client.calls[0][1]
    assert params["with_genres"] == "28,27,53,80,18"
    assert params["sort_by"] == "release_date.desc"
    assert params["vote_average.lte"] == "7.5"
    assert "vote_average.gte" not in params

    base = 6.0 * 0.9 + 10.0 * 0.03 + 2 * 4.2 + 2.0 * 0.75 + math.log10(101) * 1.5
    assert candidate.score == pytest.approx(base * 0.75)


@pytest.mark.anyio
async def test_light_mood_at_high_intensity_scales_contributions(
    settings: Settings, movie, fake_client_cls
) -> None:
    client = fake_client_cls(
        {"discover/movie": {"results": [movie(1, genre_ids=[35])]}}
    )
    aggregator = CandidateAggregator(client, settings)

    [candidate] = await aggregator.discover_candidates(
        ScoringContext(mood="light", mood_intensity=2), CancellationToken()
    )

    base = 6.0 * 0.9 + 10.0 * 0.03 + 1 * 4.2 + 2.0 * 1.35 + math.log10(101) * 1.5
    assert candidate.score == pytest.approx(base * 1.35)
