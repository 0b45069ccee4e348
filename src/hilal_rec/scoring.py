"""
Candidate scoring.

Linear heuristic over taste-profile overlap plus global popularity:

    score = 3 * sum(genre counts) + 2 * sum(tag counts)
          + 0.5 * log10(views + 1) + 0.3 * rating + (2 if trending)

Genre overlap dominates, tags are secondary, popularity and rating break
ties and trending is a flat bonus. No normalization or decay.
"""
import logging
from typing import Iterable

import numpy as np

from .config import SCORE_WEIGHTS, TRENDING_BONUS
from .models import CatalogItem, InteractionSet, ScoredCandidate, TasteProfile

logger = logging.getLogger(__name__)


def profile_affinity(item: CatalogItem, profile: TasteProfile) -> float:
    """Genre and tag overlap with the profile; labels the profile lacks count 0."""
    genre_hits = sum(profile.genres.get(g, 0) for g in item.genre)
    tag_hits = sum(profile.tags.get(t, 0) for t in item.tags)
    return SCORE_WEIGHTS['genre'] * genre_hits + SCORE_WEIGHTS['tag'] * tag_hits


def score_candidates(
    catalog: Iterable[CatalogItem],
    interactions: InteractionSet,
    profile: TasteProfile,
) -> list[ScoredCandidate]:
    """
    Score every catalog item the viewer has not interacted with.

    No thresholding: zero-score candidates are kept. Output follows
    catalog order; see rank_candidates for the sorted view.
    """
    candidates = [item for item in catalog if item.id not in interactions]
    if not candidates:
        return []

    affinity = np.array([profile_affinity(item, profile) for item in candidates], dtype=np.float64)
    views = np.array([item.total_views for item in candidates], dtype=np.float64)
    ratings = np.array([item.rating for item in candidates], dtype=np.float64)
    trending = np.array([item.is_trending for item in candidates], dtype=bool)

    scores = (
        affinity
        + SCORE_WEIGHTS['popularity'] * np.log10(np.maximum(views, 0.0) + 1.0)
        + SCORE_WEIGHTS['rating'] * ratings
        + np.where(trending, TRENDING_BONUS, 0.0)
    )

    logger.debug(f"Scored {len(candidates)} candidates (max {scores.max():.2f})")
    return [ScoredCandidate(item=item, score=float(score)) for item, score in zip(candidates, scores)]


def rank_candidates(scored: list[ScoredCandidate]) -> list[ScoredCandidate]:
    """Sort by descending score; equal scores keep their input order."""
    return sorted(scored, key=lambda c: -c.score)
