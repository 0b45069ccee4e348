"""Collect the catalog items a viewer has favorited or watched."""
import asyncio
import logging
from datetime import datetime

from .models import InteractionSet, parse_timestamp_naive
from .store import StoreError

logger = logging.getLogger(__name__)


def _parse_when(value) -> datetime | None:
    if not value:
        return None
    try:
        return parse_timestamp_naive(str(value))
    except ValueError:
        logger.debug(f"Ignoring unparseable interaction timestamp {value!r}")
        return None


def order_by_recency(edges: list[tuple[str, datetime | None]]) -> tuple[str, ...]:
    """
    Dedupe series ids, most recently interacted first.

    A series takes the latest timestamp among its edges. Series with no
    timestamp at all go last; ties keep the order the edges arrived in.
    """
    latest: dict[str, datetime | None] = {}
    for series_id, when in edges:
        if series_id not in latest:
            latest[series_id] = when
        elif when is not None and (latest[series_id] is None or when > latest[series_id]):
            latest[series_id] = when

    # sorted() is stable under reverse=True, so equal timestamps keep arrival order
    dated = sorted((sid for sid, when in latest.items() if when is not None),
                   key=lambda sid: latest[sid], reverse=True)
    undated = [sid for sid, when in latest.items() if when is None]
    return tuple(dated + undated)


async def _favorite_edges(store, user_id: str) -> list[tuple[str, datetime | None]]:
    rows = await store.fetch_favorites(user_id)
    return [
        (str(row["series_id"]), _parse_when(row.get("created_at")))
        for row in rows
        if row.get("series_id") is not None
    ]


async def _watch_edges(store, user_id: str) -> list[tuple[str, datetime | None]]:
    rows = [row for row in await store.fetch_watch_history(user_id) if row.get("episode_id") is not None]
    if not rows:
        return []

    episode_series = await store.fetch_episode_series([str(row["episode_id"]) for row in rows])
    edges = []
    for row in rows:
        series_id = episode_series.get(str(row["episode_id"]))
        if series_id is None:
            logger.debug(f"Episode {row['episode_id']} has no series, skipping")
            continue
        edges.append((series_id, _parse_when(row.get("updated_at"))))
    return edges


async def collect_interactions(store, user_id: str) -> InteractionSet:
    """
    Build the viewer's interaction set from favorites and watch history.

    The two sub-fetches run concurrently. A StoreError in either one is
    treated as an empty result for that sub-fetch so the other still counts;
    any other exception propagates.
    """
    results = await asyncio.gather(
        _favorite_edges(store, user_id),
        _watch_edges(store, user_id),
        return_exceptions=True,
    )

    edges: list[tuple[str, datetime | None]] = []
    for label, result in zip(("favorites", "watch history"), results):
        if isinstance(result, StoreError):
            logger.warning(f"Could not read {label} for user {user_id}, treating as empty: {result}")
            continue
        if isinstance(result, BaseException):
            raise result
        edges.extend(result)

    interactions = InteractionSet(order_by_recency(edges))
    logger.debug(f"User {user_id}: {len(interactions)} interacted series from {len(edges)} edges")
    return interactions
