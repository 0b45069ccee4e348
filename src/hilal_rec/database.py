"""
Local SQLite snapshot of the store's tables.

The snapshot mirrors the hosted tables the engine reads (series, episodes,
favorites, continue_watching) so the pipeline can run offline. SQLiteStore
exposes the same async read interface as store.RestStore.
"""
import asyncio
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any

from .config import DB_PATH, IN_FILTER_CHUNK_SIZE
from .models import CatalogItem
from .store import StoreError, chunked

logger = logging.getLogger(__name__)

SERIES_COLUMNS = (
    "id", "slug", "title_ar", "title_en", "description_ar", "description_en",
    "poster_image", "backdrop_image", "release_year", "genre", "tags",
    "rating", "total_views", "is_trending", "created_at",
)
JSON_LIST_COLUMNS = {"genre", "tags"}


def _connect(read_only: bool = False) -> sqlite3.Connection:
    if read_only:
        conn = sqlite3.connect(f"{DB_PATH.resolve().as_uri()}?mode=ro", uri=True, check_same_thread=False)
    else:
        DB_PATH.parent.mkdir(exist_ok=True, parents=True)
        conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000")
    return conn


@contextmanager
def get_db(read_only: bool = False):
    """
    Short-lived connection for schema setup, imports and ad-hoc reads.

    Commits on a clean exit, rolls back on error, and always closes.
    """
    conn = _connect(read_only)
    try:
        yield conn
        if not read_only:
            conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db() -> None:
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS series (
                id TEXT PRIMARY KEY,
                slug TEXT,
                title_ar TEXT,
                title_en TEXT,
                description_ar TEXT,
                description_en TEXT,
                poster_image TEXT,
                backdrop_image TEXT,
                release_year INTEGER,
                genre TEXT,         -- JSON list
                tags TEXT,          -- JSON list
                rating REAL DEFAULT 0,
                total_views INTEGER DEFAULT 0,
                is_trending INTEGER DEFAULT 0,
                created_at TEXT
            );

            CREATE TABLE IF NOT EXISTS episodes (
                id TEXT PRIMARY KEY,
                series_id TEXT NOT NULL,
                episode_number INTEGER,
                title_ar TEXT,
                title_en TEXT,
                created_at TEXT
            );

            CREATE TABLE IF NOT EXISTS favorites (
                user_id TEXT NOT NULL,
                series_id TEXT NOT NULL,
                created_at TEXT,
                PRIMARY KEY (user_id, series_id)
            );

            CREATE TABLE IF NOT EXISTS continue_watching (
                user_id TEXT NOT NULL,
                episode_id TEXT NOT NULL,
                updated_at TEXT,
                PRIMARY KEY (user_id, episode_id)
            );

            CREATE INDEX IF NOT EXISTS idx_episodes_series ON episodes(series_id);
            CREATE INDEX IF NOT EXISTS idx_favorites_user ON favorites(user_id);
            CREATE INDEX IF NOT EXISTS idx_continue_watching_user ON continue_watching(user_id);
        """)


def load_json(val):
    """Safely load a JSON list from a db field."""
    if not val:
        return []
    if isinstance(val, list):
        return val
    try:
        return json.loads(val)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"Failed to parse JSON '{str(val)[:50]}...': {e}")
        return []


def _series_row_to_dict(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    for col in JSON_LIST_COLUMNS:
        data[col] = load_json(data.get(col))
    data["is_trending"] = bool(data.get("is_trending"))
    return data


def import_snapshot(snapshot: dict[str, list[dict]]) -> dict[str, int]:
    """
    Load a JSON snapshot (series, episodes, favorites, continue_watching arrays)
    into the local database, replacing rows with the same keys.

    Returns:
        Dict mapping table name -> rows written.
    """
    counts = {"series": 0, "episodes": 0, "favorites": 0, "continue_watching": 0}

    with get_db() as conn:
        for series in snapshot.get("series", []):
            values = []
            for col in SERIES_COLUMNS:
                val = series.get(col)
                if col in JSON_LIST_COLUMNS:
                    val = json.dumps(val or [], ensure_ascii=False)
                elif col == "is_trending":
                    val = int(bool(val))
                values.append(val)
            placeholders = ", ".join("?" for _ in SERIES_COLUMNS)
            conn.execute(
                f"INSERT OR REPLACE INTO series ({', '.join(SERIES_COLUMNS)}) VALUES ({placeholders})",
                values,
            )
            counts["series"] += 1

        for ep in snapshot.get("episodes", []):
            conn.execute("""
                INSERT OR REPLACE INTO episodes (id, series_id, episode_number, title_ar, title_en, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (ep["id"], ep["series_id"], ep.get("episode_number"),
                  ep.get("title_ar"), ep.get("title_en"), ep.get("created_at")))
            counts["episodes"] += 1

        for fav in snapshot.get("favorites", []):
            conn.execute(
                "INSERT OR REPLACE INTO favorites (user_id, series_id, created_at) VALUES (?, ?, ?)",
                (fav["user_id"], fav["series_id"], fav.get("created_at")),
            )
            counts["favorites"] += 1

        for cw in snapshot.get("continue_watching", []):
            conn.execute(
                "INSERT OR REPLACE INTO continue_watching (user_id, episode_id, updated_at) VALUES (?, ?, ?)",
                (cw["user_id"], cw["episode_id"], cw.get("updated_at")),
            )
            counts["continue_watching"] += 1

    logger.info(
        f"Imported {counts['series']} series, {counts['episodes']} episodes, "
        f"{counts['favorites']} favorites, {counts['continue_watching']} watch entries"
    )
    return counts


def load_favorites(conn: sqlite3.Connection, user_id: str) -> list[dict]:
    rows = conn.execute(
        "SELECT series_id, created_at FROM favorites WHERE user_id = ? ORDER BY rowid",
        (user_id,),
    ).fetchall()
    return [dict(r) for r in rows]


def load_watch_history(conn: sqlite3.Connection, user_id: str) -> list[dict]:
    rows = conn.execute(
        "SELECT episode_id, updated_at FROM continue_watching WHERE user_id = ? ORDER BY rowid",
        (user_id,),
    ).fetchall()
    return [dict(r) for r in rows]


def load_episode_series(
    conn: sqlite3.Connection,
    episode_ids: list[str],
    chunk_size: int = IN_FILTER_CHUNK_SIZE,
) -> dict[str, str]:
    unique_ids = list(dict.fromkeys(str(e) for e in episode_ids))
    mapping: dict[str, str] = {}
    for batch in chunked(unique_ids, chunk_size):
        placeholders = ", ".join("?" for _ in batch)
        rows = conn.execute(
            f"SELECT id, series_id FROM episodes WHERE id IN ({placeholders})",
            batch,
        ).fetchall()
        mapping.update({str(r["id"]): str(r["series_id"]) for r in rows})
    return mapping


def load_series(conn: sqlite3.Connection) -> list[dict]:
    rows = conn.execute(f"SELECT {', '.join(SERIES_COLUMNS)} FROM series ORDER BY id").fetchall()
    return [_series_row_to_dict(r) for r in rows]


class SQLiteStore:
    """
    Async read interface over the local snapshot.

    Opens one read-only connection on enter and closes it on exit. Queries
    run on worker threads, serialized on that connection by a lock.
    """

    name = "sqlite"

    def __init__(self):
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    async def __aenter__(self):
        if not DB_PATH.exists():
            raise StoreError(f"Snapshot database not found at {DB_PATH}. Run: hilal-rec init-db")
        try:
            self._conn = _connect(read_only=True)
        except sqlite3.Error as exc:
            raise StoreError(f"Could not open snapshot {DB_PATH}: {exc}") from exc
        logger.debug(f"Opened snapshot {DB_PATH}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._conn is not None:
            await asyncio.to_thread(self._close)
        return False

    def _close(self):
        with self._lock:
            self._conn.close()
            self._conn = None

    def _locked(self, func, *args):
        with self._lock:
            if self._conn is None:
                raise StoreError("Snapshot store is closed")
            return func(self._conn, *args)

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(self._locked, func, *args)
        except sqlite3.Error as exc:
            logger.error(f"SQLite error in {func.__name__}: {exc}")
            raise StoreError(f"{func.__name__} failed: {exc}") from exc

    async def fetch_favorites(self, user_id: str) -> list[dict]:
        return await self._run(load_favorites, user_id)

    async def fetch_watch_history(self, user_id: str) -> list[dict]:
        return await self._run(load_watch_history, user_id)

    async def fetch_episode_series(self, episode_ids: list[str]) -> dict[str, str]:
        if not episode_ids:
            return {}
        return await self._run(load_episode_series, list(episode_ids))

    async def fetch_catalog(self) -> list[CatalogItem]:
        rows = await self._run(load_series)
        return [CatalogItem.from_row(row) for row in rows]
