"""Genre and tag frequencies over the series a viewer has interacted with."""
import logging
from collections import Counter
from typing import Iterable

from .models import CatalogItem, TasteProfile

logger = logging.getLogger(__name__)


def build_taste_profile(items: Iterable[CatalogItem]) -> TasteProfile:
    """
    Count how often each genre and tag appears across the interacted items.

    Every item adds 1 per distinct genre and 1 per distinct tag; the two
    counters are kept separate. Items with no labels add nothing.
    """
    genres: Counter[str] = Counter()
    tags: Counter[str] = Counter()
    n_items = 0

    for item in items:
        n_items += 1
        genres.update(item.genre)
        tags.update(item.tags)

    logger.debug(f"Taste profile from {n_items} items: {len(genres)} genres, {len(tags)} tags")
    return TasteProfile(genres=dict(genres), tags=dict(tags), n_items=n_items)
