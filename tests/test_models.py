from datetime import datetime

import pytest

from hilal_rec.models import (
    CatalogItem,
    InteractionSet,
    RecommendationSection,
    REASON_BECAUSE_YOU_WATCHED,
    REASON_RECOMMENDED,
    normalize_labels,
    parse_timestamp_naive,
)

from conftest import make_item


def test_from_row_normalizes_labels_and_numbers():
    item = CatalogItem.from_row({
        "id": 42,
        "slug": "al-hayba",
        "genre": [" Drama", "drama", "ACTION", None],
        "tags": "Family",
        "rating": "7.5",
        "total_views": None,
        "is_trending": None,
        "poster_image": "https://cdn.test/p.jpg",
    })

    assert item.id == "42"
    assert item.genre == ("drama", "action")
    assert item.tags == ("family",)
    assert item.rating == 7.5
    assert item.total_views == 0
    assert item.is_trending is False


def test_from_row_rejects_missing_id():
    with pytest.raises(ValueError):
        CatalogItem.from_row({"slug": "orphan"})


def test_bad_numbers_read_as_zero():
    item = CatalogItem.from_row({"id": "x", "rating": "n/a", "total_views": -30})
    assert item.rating == 0.0
    assert item.total_views == 0


def test_to_dict_returns_store_row_untouched():
    item = make_item("s1", genre=["Drama"], views=10, poster_image="p.jpg")
    payload = item.to_dict()

    assert payload["genre"] == ["Drama"]
    assert payload["poster_image"] == "p.jpg"
    assert "score" not in payload and "_score" not in payload


def test_interaction_set_dedupes_and_keeps_order():
    interactions = InteractionSet(("b", "a", "b", "c"))
    assert interactions.ordered == ("b", "a", "c")
    assert "a" in interactions
    assert "z" not in interactions
    assert len(interactions) == 3
    assert not interactions.is_empty
    assert InteractionSet().is_empty


def test_section_payload_shapes():
    source = make_item("src")
    item = make_item("s1")

    byw = RecommendationSection(reason=REASON_BECAUSE_YOU_WATCHED, items=(item,), source=source).to_dict()
    assert byw["reason"] == "because_you_watched"
    assert byw["source_title_ar"] == "src ar"
    assert byw["source_title_en"] == "src en"
    assert byw["source_slug"] == "src-slug"
    assert [s["id"] for s in byw["series"]] == ["s1"]

    rec = RecommendationSection(reason=REASON_RECOMMENDED, items=(item,)).to_dict()
    assert set(rec) == {"reason", "series"}


def test_timestamp_parsing_is_naive():
    assert parse_timestamp_naive("2024-03-01T10:00:00Z").tzinfo is None
    assert parse_timestamp_naive("2024-03-01T10:00:00+00:00") == parse_timestamp_naive("2024-03-01T10:00:00")


def test_timestamp_parsing_converts_offsets_to_utc():
    assert parse_timestamp_naive("2024-01-01T10:00:00+03:00") == datetime(2024, 1, 1, 7, 0)
    assert parse_timestamp_naive("2023-12-31T22:30:00-02:00") == datetime(2024, 1, 1, 0, 30)


def test_timestamp_parsing_accepts_any_fraction_length():
    assert parse_timestamp_naive("2024-05-01T12:34:56.78+00:00") == datetime(2024, 5, 1, 12, 34, 56, 780000)
    assert parse_timestamp_naive("2024-05-01T12:34:56.1Z").microsecond == 100000
    assert parse_timestamp_naive("2024-05-01T12:34:56.123456789").microsecond == 123456


def test_normalize_labels_handles_empty():
    assert normalize_labels(None) == ()
    assert normalize_labels([]) == ()
    assert normalize_labels(["", "  "]) == ()
