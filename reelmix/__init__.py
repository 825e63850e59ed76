"""Reelmix movie recommendation pipeline."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "CancellationToken": "reelmix.cancellation",
    "RecommendationCancelled": "reelmix.cancellation",
    "ScoringContext": "reelmix.models",
    "WatchedEntry": "reelmix.models",
    "Settings": "reelmix.config",
    "get_settings": "reelmix.config",
    "CandidateAggregator": "reelmix.services.aggregator",
    "RankingEngine": "reelmix.services.ranking",
    "select_top_candidates": "reelmix.services.ranking",
    "EnrichmentPipeline": "reelmix.services.enrichment",
    "HttpCatalogClient": "reelmix.services.catalog",
    "RecommendationService": "reelmix.services.recommender",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    if name in _EXPORTS:
        module = import_module(_EXPORTS[name])
        return getattr(module, name)
    raise AttributeError(f"module 'reelmix' has no attribute {name}")
