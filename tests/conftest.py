"""Pytest configuration and test helpers."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

# Ensure the package is importable when running tests without an editable
# install. This mirrors the runtime layout where ``reelmix`` sits at the
# project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from reelmix.cancellation import CancellationToken  # noqa: E402
from reelmix.config import Settings  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def build_movie(movie_id: int, title: str | None = None, **overrides: Any) -> dict[str, Any]:
    """Return a catalog search result with sensible defaults."""

    movie: dict[str, Any] = {
        "id": movie_id,
        "title": title or f"Movie {movie_id}",
        "genre_ids": [28],
        "vote_average": 6.0,
        "popularity": 10.0,
        "vote_count": 100,
    }
    movie.update(overrides)
    return movie


class FakeCatalogClient:
    """In-memory catalog client recording every call it receives.

    ``routes`` maps a path (or ``"search/movie:<query>"``) to a payload or an
    exception instance to raise. ``delays`` maps the same keys to seconds to
    wait before answering. ``block`` holds every call until it is set.
    """

    def __init__(
        self,
        routes: dict[str, Any] | None = None,
        *,
        metadata: dict[str, Any] | None = None,
        videos: dict[str, Any] | None = None,
        block: asyncio.Event | None = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.routes = routes or {}
        self.delays = delays or {}
        self.metadata = metadata or {}
        self.videos = videos or {}
        self.block = block
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.metadata_calls: list[tuple[str, str]] = []
        self.video_calls: list[str] = []

    async def _respond(self, value: Any, default: Any) -> Any:
        if self.block is not None:
            await self.block.wait()
        if isinstance(value, BaseException):
            raise value
        return default if value is None else value

    async def search_or_discover(
        self, path: str, params: dict[str, Any], *, cancellation: CancellationToken
    ) -> dict[str, Any]:
        self.calls.append((path, dict(params)))
        key = f"{path}:{params['query']}" if "query" in params else path
        if key in self.delays:
            await asyncio.sleep(self.delays[key])
        return await self._respond(self.routes.get(key), {"results": []})

    async def lookup_secondary_metadata(
        self, title: str, year: str, *, cancellation: CancellationToken
    ) -> dict[str, Any]:
        self.metadata_calls.append((title, year))
        return await self._respond(self.metadata.get(title), {"Response": "False"})

    async def search_video(
        self, query: str, *, cancellation: CancellationToken
    ) -> dict[str, Any]:
        self.video_calls.append(query)
        return await self._respond(self.videos.get(query), {"items": []})

    def paths(self) -> list[str]:
        return [path for path, _ in self.calls]


def omdb_record(title: str, year: str = "", imdb_id: str = "", **extra: Any) -> dict[str, Any]:
    record = {
        "Title": title,
        "Year": year,
        "imdbID": imdb_id or "tt-" + title.lower().replace(" ", "-"),
        "Plot": f"A plot about {title}.",
        "imdbRating": "7.1",
        "Response": "True",
    }
    record.update(extra)
    return record


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def movie() -> Callable[..., dict[str, Any]]:
    return build_movie


@pytest.fixture
def fake_client_cls() -> type[FakeCatalogClient]:
    return FakeCatalogClient


@pytest.fixture
def omdb() -> Callable[..., dict[str, Any]]:
    return omdb_record
