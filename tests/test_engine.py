import asyncio
import random

import pytest

from hilal_rec import engine
from hilal_rec.models import InteractionSet
from hilal_rec.store import StoreError

from conftest import FakeStore, make_item


def _random_catalog(seed: int, size: int = 60):
    rng = random.Random(seed)
    genres = ["drama", "comedy", "history", "action", "romance", "crime"]
    tags = ["family", "ramadan", "gulf", "levant", "egypt", "period"]
    return [
        make_item(
            f"s{i:03d}",
            genre=rng.sample(genres, rng.randint(0, 3)),
            tags=rng.sample(tags, rng.randint(0, 3)),
            views=rng.randint(0, 100_000),
            rating=round(rng.uniform(0, 10), 1),
            trending=rng.random() < 0.2,
        )
        for i in range(size)
    ]


def _run(store, user_id="u1"):
    return asyncio.run(engine.recommend(store, user_id))


def test_cold_start_returns_single_popular_section():
    catalog = _random_catalog(1)
    sections = _run(FakeStore(catalog=catalog))

    assert len(sections) == 1
    assert sections[0].reason == "popular"
    views = [item.total_views for item in sections[0].items]
    assert len(views) == 12
    assert views == sorted(views, reverse=True)


def test_cold_start_when_interactions_fail_to_load():
    store = FakeStore(catalog=_random_catalog(2), favorites={"u1": [("s001", None)]}, fail={"favorites"})
    sections = _run(store)
    assert [s.reason for s in sections] == ["popular"]


@pytest.mark.parametrize("seed", [3, 4, 5, 6])
def test_section_invariants_hold_for_random_catalogs(seed):
    catalog = _random_catalog(seed)
    rng = random.Random(seed)
    favorites = [(item.id, f"2024-01-{rng.randint(1, 28):02d}T00:00:00Z") for item in rng.sample(catalog, 5)]
    store = FakeStore(catalog=catalog, favorites={"u1": favorites})

    sections = _run(store)
    interacted = {sid for sid, _ in favorites}

    seen = [item.id for s in sections for item in s.items]
    assert len(seen) == len(set(seen))
    assert not interacted & set(seen)
    for section in sections:
        if section.reason == "because_you_watched":
            assert 2 <= len(section.items) <= 8
            assert section.source.id in interacted
        else:
            assert section.reason == "recommended"
            assert len(section.items) <= 10
    assert sum(1 for s in sections if s.reason == "because_you_watched") <= 3


def test_idempotent_for_unchanged_data():
    catalog = _random_catalog(7)
    store = FakeStore(catalog=catalog, favorites={"u1": [("s010", "2024-01-01T00:00:00Z")]},
                      watches={"u1": [("e1", "2024-02-01T00:00:00Z")]}, episodes={"e1": "s020"})

    first = engine.sections_payload(_run(store))
    second = engine.sections_payload(_run(store))
    assert first == second


def test_favorite_drama_example():
    a = make_item("A", genre=["drama"], views=100)
    b = make_item("B", genre=["drama"], views=50)
    c = make_item("C", genre=["comedy"], views=10)
    store = FakeStore(catalog=[a, b, c], favorites={"u1": [("A", None)]})

    sections = _run(store)

    # C shares nothing with A but its global score still gives a positive match
    assert [s.reason for s in sections] == ["because_you_watched"]
    assert sections[0].source.id == "A"
    assert [i.id for i in sections[0].items] == ["B", "C"]


def test_sources_follow_interaction_recency():
    catalog = [
        make_item("old", genre=["comedy"]),
        make_item("new", genre=["drama"]),
        make_item("c1", genre=["comedy"]), make_item("c2", genre=["comedy"]),
        make_item("d1", genre=["drama"]), make_item("d2", genre=["drama"]),
    ]
    store = FakeStore(
        catalog=catalog,
        favorites={"u1": [("old", "2023-01-01T00:00:00Z")]},
        watches={"u1": [("ep", "2024-05-01T00:00:00Z")]},
        episodes={"ep": "new"},
    )

    sections = _run(store)

    assert sections[0].source.id == "new"
    assert [i.id for i in sections[0].items][:2] == ["d1", "d2"]


def test_interactions_outside_catalog_are_excluded_but_harmless():
    catalog = [make_item("a", views=3), make_item("b", views=5)]
    store = FakeStore(catalog=catalog, favorites={"u1": [("deleted", None)]})

    sections = _run(store)

    assert [s.reason for s in sections] == ["recommended"]
    assert [i.id for i in sections[0].items] == ["b", "a"]


def test_everything_interacted_gives_empty_sections():
    catalog = [make_item("a"), make_item("b")]
    store = FakeStore(catalog=catalog, favorites={"u1": [("a", None), ("b", None)]})
    assert _run(store) == []


def test_catalog_failure_propagates():
    store = FakeStore(catalog=[make_item("a")], fail={"catalog"})
    with pytest.raises(StoreError):
        _run(store)


def test_payload_has_no_scores():
    catalog = _random_catalog(8)
    store = FakeStore(catalog=catalog, favorites={"u1": [("s001", None)]})

    payload = engine.sections_payload(_run(store))

    for section in payload["sections"]:
        for row in section["series"]:
            assert not any("score" in key for key in row)


def test_recommend_from_snapshot_matches_async_pipeline():
    catalog = _random_catalog(9)
    interactions = InteractionSet(("s005", "s017"))
    store = FakeStore(catalog=catalog, favorites={"u1": [("s005", None), ("s017", None)]})

    assert engine.recommend_from_snapshot(catalog, interactions) == _run(store)


def test_make_store_rejects_unknown_backend():
    with pytest.raises(ValueError):
        engine.make_store("mongo")


def test_catalog_failure_cancels_interaction_reads():
    done = []

    class SlowFavoritesStore(FakeStore):
        async def fetch_favorites(self, user_id):
            await asyncio.sleep(0.05)
            done.append("favorites finished")
            return await super().fetch_favorites(user_id)

    store = SlowFavoritesStore(catalog=[make_item("a")], favorites={"u1": [("a", None)]}, fail={"catalog"})

    async def run():
        with pytest.raises(StoreError):
            await engine.recommend(store, "u1")
        await asyncio.sleep(0.2)

    asyncio.run(run())

    assert done == []
    assert "favorites" not in store.calls
