"""HTTP access to the movie, metadata and video catalogs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from ..cancellation import CancellationToken
from ..config import Settings

logger = logging.getLogger(__name__)

TMDB_PATHS = frozenset({"discover/movie", "search/movie", "trending/movie/week"})
_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class CatalogError(RuntimeError):
    """An upstream catalog request failed or returned an unusable payload."""

    def __init__(
        self, service: str, message: str, *, status_code: int | None = None
    ) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


class CatalogClient(Protocol):
    """Operations the recommendation pipeline needs from the catalogs."""

    async def search_or_discover(
        self,
        path: str,
        params: dict[str, Any],
        *,
        cancellation: CancellationToken,
    ) -> dict[str, Any]: ...

    async def lookup_secondary_metadata(
        self,
        title: str,
        year: str,
        *,
        cancellation: CancellationToken,
    ) -> dict[str, Any]: ...

    async def search_video(
        self,
        query: str,
        *,
        cancellation: CancellationToken,
    ) -> dict[str, Any]: ...


def is_allowed_tmdb_path(path: str) -> bool:
    """Return whether ``path`` is one of the catalog routes we query."""

    if path in TMDB_PATHS:
        return True
    parts = path.split("/")
    return (
        len(parts) == 3
        and parts[0] == "movie"
        and parts[1].isdigit()
        and parts[2] in {"recommendations", "similar"}
    )


class HttpCatalogClient:
    """Catalog client backed by TMDB, OMDb and the YouTube Data API."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising HttpCatalogClient")
        self._settings = settings
        self._client = http_client
        self._semaphore = asyncio.Semaphore(settings.max_concurrent_requests)
        self._max_attempts = 2

    async def search_or_discover(
        self,
        path: str,
        params: dict[str, Any],
        *,
        cancellation: CancellationToken,
    ) -> dict[str, Any]:
        """Query a TMDB listing route and return its JSON payload."""

        path = path.strip("/")
        if not is_allowed_tmdb_path(path):
            raise ValueError(f"Unsupported TMDB path: {path}")
        query: dict[str, Any] = {
            "api_key": self._settings.tmdb_api_key,
            "language": self._settings.catalog_language,
            "include_adult": "false",
        }
        query.update(
            {key: value for key, value in params.items() if value not in (None, "")}
        )
        url = f"{str(self._settings.tmdb_api_url).rstrip('/')}/{path}"
        return await self._get_json("tmdb", url, query, cancellation)

    async def lookup_secondary_metadata(
        self,
        title: str,
        year: str,
        *,
        cancellation: CancellationToken,
    ) -> dict[str, Any]:
        """Look up ratings and plot for a title/year pair."""

        if not self._settings.omdb_api_key:
            raise CatalogError("omdb", "OMDb API key is not configured")
        query: dict[str, Any] = {
            "apikey": self._settings.omdb_api_key,
            "plot": "short",
            "t": title,
        }
        if year:
            query["y"] = year
        url = f"{str(self._settings.omdb_api_url).rstrip('/')}/"
        return await self._get_json("omdb", url, query, cancellation)

    async def search_video(
        self,
        query: str,
        *,
        cancellation: CancellationToken,
    ) -> dict[str, Any]:
        """Return the single best video search hit for ``query``."""

        if not self._settings.youtube_api_key:
            raise CatalogError("youtube", "YouTube API key is not configured")
        params = {
            "key": self._settings.youtube_api_key,
            "part": "snippet",
            "type": "video",
            "maxResults": 1,
            "q": query,
        }
        url = f"{str(self._settings.youtube_api_url).rstrip('/')}/search"
        return await self._get_json("youtube", url, params, cancellation)

    async def _get_json(
        self,
        service: str,
        url: str,
        params: dict[str, Any],
        cancellation: CancellationToken,
    ) -> dict[str, Any]:
        attempt = 0
        while True:
            attempt += 1
            cancellation.raise_if_cancelled()
            try:
                async with self._semaphore:
                    response = await cancellation.guard(
                        self._client.get(
                            url,
                            params=params,
                            timeout=self._settings.request_timeout_seconds,
                        )
                    )
            except httpx.HTTPError as exc:
                if attempt < self._max_attempts:
                    logger.info(
                        "Transient error talking to %s (%s). Retrying",
                        service,
                        exc.__class__.__name__,
                    )
                    await cancellation.guard(asyncio.sleep(0.2 * attempt))
                    continue
                raise CatalogError(service, f"request failed: {exc}") from exc

            if response.status_code in _RETRYABLE_STATUS and attempt < self._max_attempts:
                logger.info(
                    "%s answered %s, retrying", service, response.status_code
                )
                await cancellation.guard(asyncio.sleep(0.2 * attempt))
                continue
            break

        if response.status_code >= 400:
            raise CatalogError(
                service,
                f"request failed with status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise CatalogError(service, "response was not valid JSON") from exc
        if not isinstance(payload, dict):
            raise CatalogError(service, "unexpected response structure")
        return payload
