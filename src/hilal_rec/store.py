"""
Read-only adapter for the hosted relational store (PostgREST dialect).

Every store adapter exposes the same async read interface:

    fetch_favorites(user_id)         -> [{"series_id", "created_at"}, ...]
    fetch_watch_history(user_id)     -> [{"episode_id", "updated_at"}, ...]
    fetch_episode_series(ids)        -> {episode_id: series_id}
    fetch_catalog()                  -> [CatalogItem, ...] ordered by id

Failures surface as StoreError so callers can decide whether a fetch
is allowed to degrade.
"""
import asyncio
import logging
from typing import Any, Iterable

import httpx

from .config import (
    SUPABASE_URL,
    SUPABASE_SERVICE_ROLE_KEY,
    HTTP_TIMEOUT,
    MAX_CONCURRENT_REQUESTS,
    IN_FILTER_CHUNK_SIZE,
    CATALOG_PAGE_SIZE,
)
from .models import CatalogItem

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """A read against the data store failed."""


def chunked(values: list[str], size: int) -> Iterable[list[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


def _in_filter(values: Iterable[str]) -> str:
    """Render a PostgREST `in` filter, quoting values that contain reserved characters."""
    rendered = []
    for value in values:
        text = str(value)
        if any(ch in text for ch in ',()"\\ '):
            text = '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
        rendered.append(text)
    return f"in.({','.join(rendered)})"


def _content_range_total(header: str | None) -> int | None:
    """Total row count from a PostgREST Content-Range header ("0-999/2350"), if known."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


class RestStore:
    """Async client for the store's REST endpoint, shared across requests."""

    name = "rest"

    def __init__(
        self,
        base_url: str = SUPABASE_URL,
        api_key: str = SUPABASE_SERVICE_ROLE_KEY,
        client: httpx.AsyncClient | None = None,
        max_concurrent: int = MAX_CONCURRENT_REQUESTS,
        chunk_size: int = IN_FILTER_CHUNK_SIZE,
        page_size: int = CATALOG_PAGE_SIZE,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.chunk_size = chunk_size
        self.page_size = page_size
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.client = client
        self._owns_client = client is None

    async def __aenter__(self):
        if not self.base_url:
            raise StoreError("SUPABASE_URL is not configured")
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None
        return False

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }

    async def _fetch(
        self,
        table: str,
        params: dict[str, str],
        headers: dict[str, str] | None = None,
    ) -> tuple[list[dict[str, Any]], httpx.Headers]:
        """GET one table with PostgREST filters; raises StoreError on any failure."""
        if not self.client:
            raise RuntimeError("RestStore must be used as an async context manager")

        url = f"{self.base_url}/rest/v1/{table}"
        async with self.semaphore:
            try:
                resp = await self.client.get(url, params=params, headers={**self._headers, **(headers or {})})
                resp.raise_for_status()
                rows = resp.json()
            except httpx.HTTPStatusError as exc:
                logger.error(f"HTTP {exc.response.status_code} reading {table}: {exc.response.text[:200]}")
                raise StoreError(f"{table} query failed with HTTP {exc.response.status_code}") from exc
            except httpx.HTTPError as exc:
                logger.error(f"Request error reading {table}: {type(exc).__name__}: {exc}")
                raise StoreError(f"{table} query failed: {type(exc).__name__}") from exc
            except ValueError as exc:
                raise StoreError(f"{table} returned invalid JSON") from exc

        if not isinstance(rows, list):
            raise StoreError(f"{table} returned {type(rows).__name__}, expected a list")
        logger.debug(f"Read {len(rows)} rows from {table}")
        return rows, resp.headers

    async def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        rows, _ = await self._fetch(table, params)
        return rows

    async def fetch_favorites(self, user_id: str) -> list[dict[str, Any]]:
        return await self._select("favorites", {
            "select": "series_id,created_at",
            "user_id": f"eq.{user_id}",
        })

    async def fetch_watch_history(self, user_id: str) -> list[dict[str, Any]]:
        return await self._select("continue_watching", {
            "select": "episode_id,updated_at",
            "user_id": f"eq.{user_id}",
        })

    async def fetch_episode_series(self, episode_ids: list[str]) -> dict[str, str]:
        unique_ids = list(dict.fromkeys(str(e) for e in episode_ids))
        if not unique_ids:
            return {}

        batches = await asyncio.gather(*[
            self._select("episodes", {"select": "id,series_id", "id": _in_filter(batch)})
            for batch in chunked(unique_ids, self.chunk_size)
        ])
        return {
            str(row["id"]): str(row["series_id"])
            for rows in batches
            for row in rows
            if row.get("id") is not None and row.get("series_id") is not None
        }

    async def fetch_catalog(self) -> list[CatalogItem]:
        """
        Whole catalog ordered by id, read in pages.

        The server may cap each response below page_size (max-rows), so paging
        continues until the Content-Range total is reached. Without a total,
        a short or empty page ends the read.
        """
        rows: list[dict[str, Any]] = []
        while True:
            page, headers = await self._fetch(
                "series",
                {"select": "*", "order": "id.asc", "limit": str(self.page_size), "offset": str(len(rows))},
                headers={"Prefer": "count=exact"},
            )
            rows.extend(page)
            if not page:
                break
            total = _content_range_total(headers.get("content-range"))
            if total is not None:
                if len(rows) >= total:
                    break
            elif len(page) < self.page_size:
                break
        return [CatalogItem.from_row(row) for row in rows]
