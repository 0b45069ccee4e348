"""
Per-request recommendation pipeline.

collect interactions -> taste profile -> score candidates -> build sections

Nothing is cached between calls; for a fixed store snapshot the output is
identical on every call.
"""
import asyncio
import logging
from typing import Any

import httpx

from .collector import collect_interactions
from .config import STORE_BACKEND
from .database import SQLiteStore
from .models import CatalogItem, InteractionSet, RecommendationSection, TasteProfile
from .profile import build_taste_profile
from .scoring import score_candidates, rank_candidates
from .sections import build_sections, popular_section
from .store import RestStore

logger = logging.getLogger(__name__)


def make_store(backend: str = STORE_BACKEND, client: httpx.AsyncClient | None = None):
    """Store adapter for a backend name ("rest" or "sqlite"); use it as an async context manager."""
    if backend == "sqlite":
        return SQLiteStore()
    if backend == "rest":
        return RestStore(client=client)
    raise ValueError(f"Unknown store backend: {backend}")


def interacted_items(catalog: list[CatalogItem], interactions: InteractionSet) -> list[CatalogItem]:
    """Catalog rows for the interaction set, in interaction order. Ids missing from the catalog are skipped."""
    by_id = {item.id: item for item in catalog}
    return [by_id[item_id] for item_id in interactions.ordered if item_id in by_id]


def recommend_from_snapshot(
    catalog: list[CatalogItem],
    interactions: InteractionSet,
) -> list[RecommendationSection]:
    """Run the pure part of the pipeline over already-fetched data."""
    if interactions.is_empty:
        return [popular_section(catalog)]

    sources = interacted_items(catalog, interactions)
    profile = build_taste_profile(sources)
    ranked = rank_candidates(score_candidates(catalog, interactions, profile))
    return build_sections(sources, ranked)


async def load_user_state(store, user_id: str) -> tuple[list[CatalogItem], InteractionSet]:
    """
    Fetch the catalog and the viewer's interactions concurrently.

    If either fetch fails the other is cancelled and awaited before the
    error propagates, so no store reads outlive the request.
    """
    interactions_task = asyncio.create_task(collect_interactions(store, user_id))
    catalog_task = asyncio.create_task(store.fetch_catalog())
    try:
        interactions, catalog = await asyncio.gather(interactions_task, catalog_task)
    except BaseException:
        for task in (interactions_task, catalog_task):
            task.cancel()
        await asyncio.gather(interactions_task, catalog_task, return_exceptions=True)
        raise
    return catalog, interactions


async def recommend(store, user_id: str) -> list[RecommendationSection]:
    """
    Recommendation sections for one viewer.

    A failed catalog fetch raises; a failed favorites or watch-history fetch
    only narrows the interaction set (see collect_interactions).
    """
    catalog, interactions = await load_user_state(store, user_id)
    sections = recommend_from_snapshot(catalog, interactions)
    summary = [f"{s.reason}:{len(s.items)}" for s in sections]
    logger.info(f"Recommendations for {user_id}: {len(interactions)} interactions, {len(catalog)} catalog items, sections={summary}")
    return sections


async def taste_profile_for(store, user_id: str) -> tuple[InteractionSet, TasteProfile]:
    catalog, interactions = await load_user_state(store, user_id)
    return interactions, build_taste_profile(interacted_items(catalog, interactions))


def sections_payload(sections: list[RecommendationSection]) -> dict[str, Any]:
    return {"sections": [section.to_dict() for section in sections]}
