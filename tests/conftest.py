import importlib
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from hilal_rec.models import CatalogItem  # noqa: E402
from hilal_rec.store import StoreError  # noqa: E402


def make_item(item_id, genre=(), tags=(), views=0, rating=0.0, trending=False, **extra) -> CatalogItem:
    row = {
        "id": item_id,
        "slug": f"{item_id}-slug",
        "title_ar": f"{item_id} ar",
        "title_en": f"{item_id} en",
        "genre": list(genre),
        "tags": list(tags),
        "rating": rating,
        "total_views": views,
        "is_trending": trending,
        "created_at": "2024-01-01T00:00:00+00:00",
    }
    row.update(extra)
    return CatalogItem.from_row(row)


class FakeStore:
    """In-memory store with the adapter read interface and switchable failures."""

    name = "fake"

    def __init__(self, catalog=(), favorites=None, watches=None, episodes=None, fail=()):
        self.catalog = list(catalog)
        self.favorites = favorites or {}   # user -> [(series_id, created_at)]
        self.watches = watches or {}       # user -> [(episode_id, updated_at)]
        self.episodes = episodes or {}     # episode_id -> series_id
        self.fail = set(fail)
        self.calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    def _check(self, name):
        self.calls.append(name)
        if name in self.fail:
            raise StoreError(f"{name} unavailable")

    async def fetch_favorites(self, user_id):
        self._check("favorites")
        return [{"series_id": s, "created_at": t} for s, t in self.favorites.get(user_id, [])]

    async def fetch_watch_history(self, user_id):
        self._check("watch_history")
        return [{"episode_id": e, "updated_at": t} for e, t in self.watches.get(user_id, [])]

    async def fetch_episode_series(self, episode_ids):
        self._check("episodes")
        return {e: self.episodes[e] for e in episode_ids if e in self.episodes}

    async def fetch_catalog(self):
        self._check("catalog")
        return list(self.catalog)


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("HILAL_DB", str(db_path))
    import hilal_rec.config as config

    importlib.reload(config)
    yield config
    monkeypatch.undo()
    importlib.reload(config)


@pytest.fixture
def fresh_db(monkeypatch, tmp_path):
    """
    Reload config/database modules against a temp DB path.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("HILAL_DB", str(db_path))

    import hilal_rec.config as config
    import hilal_rec.database as database

    importlib.reload(config)
    importlib.reload(database)

    return database


@pytest.fixture
def snapshot():
    return {
        "series": [
            {"id": "s1", "slug": "bab-al-hara", "title_ar": "باب الحارة", "title_en": "Bab Al Hara",
             "genre": ["Drama", "History"], "tags": ["family"], "rating": 8.1, "total_views": 5000,
             "is_trending": True, "poster_image": "https://cdn.test/s1.jpg", "created_at": "2024-01-01T00:00:00Z"},
            {"id": "s2", "slug": "al-hayba", "title_ar": "الهيبة", "title_en": "Al Hayba",
             "genre": ["drama", "action"], "tags": ["family", "crime"], "rating": 7.5, "total_views": 9000,
             "is_trending": False, "created_at": "2024-01-02T00:00:00Z"},
            {"id": "s3", "slug": "selfie", "title_ar": "سيلفي", "title_en": "Selfie",
             "genre": ["comedy"], "tags": ["satire"], "rating": 6.0, "total_views": 300,
             "is_trending": False, "created_at": "2024-01-03T00:00:00Z"},
            {"id": "s4", "slug": "al-nihaya", "title_ar": "النهاية", "title_en": "Al Nihaya",
             "genre": ["sci-fi", "drama"], "tags": [], "rating": 7.0, "total_views": 1200,
             "is_trending": True, "created_at": "2024-01-04T00:00:00Z"},
        ],
        "episodes": [
            {"id": "e1", "series_id": "s1", "episode_number": 1},
            {"id": "e2", "series_id": "s1", "episode_number": 2},
            {"id": "e3", "series_id": "s3", "episode_number": 1},
        ],
        "favorites": [
            {"user_id": "u1", "series_id": "s2", "created_at": "2024-02-01T10:00:00+00:00"},
        ],
        "continue_watching": [
            {"user_id": "u1", "episode_id": "e1", "updated_at": "2024-03-01T10:00:00+00:00"},
            {"user_id": "u1", "episode_id": "e2", "updated_at": "2024-03-02T10:00:00+00:00"},
        ],
    }
