"""Value types passed between the recommendation pipeline stages."""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

logger = logging.getLogger(__name__)

REASON_POPULAR = "popular"
REASON_BECAUSE_YOU_WATCHED = "because_you_watched"
REASON_RECOMMENDED = "recommended"

_FRACTION_RE = re.compile(r"\.(\d+)")


def parse_timestamp_naive(timestamp_str: str) -> datetime:
    """
    Parse ISO format timestamp string to a naive UTC datetime.

    Offsets are converted to UTC before being dropped, so values from
    sources in different zones compare correctly. Fractional seconds of
    any length are accepted (Postgres trims trailing zeros).
    """
    if timestamp_str.endswith("Z"):
        timestamp_str = timestamp_str[:-1] + "+00:00"
    timestamp_str = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), timestamp_str, count=1)
    dt = datetime.fromisoformat(timestamp_str)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def normalize_labels(values: Any) -> tuple[str, ...]:
    """Trim, lowercase and dedupe genre/tag labels, keeping first-seen order."""
    if not values:
        return ()
    if isinstance(values, str):
        values = [values]

    seen: dict[str, None] = {}
    for value in values:
        if not isinstance(value, str):
            continue
        label = value.strip().lower()
        if label:
            seen.setdefault(label, None)
    return tuple(seen)


def _as_float(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _as_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class CatalogItem:
    """A series/program row from the catalog, with normalized matching fields."""
    id: str
    slug: str = ""
    title_ar: str = ""
    title_en: str = ""
    genre: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    rating: float = 0.0
    total_views: int = 0
    is_trending: bool = False
    created_at: str | None = None
    row: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CatalogItem":
        """Build an item from a store row; missing numbers read as 0, missing flags as False."""
        if row.get("id") is None:
            raise ValueError(f"Catalog row without id: {dict(row)!r}")
        return cls(
            id=str(row["id"]),
            slug=row.get("slug") or "",
            title_ar=row.get("title_ar") or "",
            title_en=row.get("title_en") or "",
            genre=normalize_labels(row.get("genre")),
            tags=normalize_labels(row.get("tags")),
            rating=_as_float(row.get("rating")),
            total_views=_as_int(row.get("total_views")),
            is_trending=bool(row.get("is_trending")),
            created_at=row.get("created_at"),
            row=MappingProxyType(dict(row)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Response DTO: the store row as received."""
        if self.row:
            return dict(self.row)
        return {
            "id": self.id,
            "slug": self.slug,
            "title_ar": self.title_ar,
            "title_en": self.title_en,
            "genre": list(self.genre),
            "tags": list(self.tags),
            "rating": self.rating,
            "total_views": self.total_views,
            "is_trending": self.is_trending,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class InteractionSet:
    """Catalog-item ids the viewer favorited or watched, most recent first."""
    ordered: tuple[str, ...] = ()
    ids: frozenset[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        ordered = tuple(dict.fromkeys(str(i) for i in self.ordered))
        object.__setattr__(self, "ordered", ordered)
        object.__setattr__(self, "ids", frozenset(ordered))

    @property
    def is_empty(self) -> bool:
        return not self.ordered

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.ids

    def __len__(self) -> int:
        return len(self.ordered)


@dataclass(frozen=True)
class TasteProfile:
    """Genre and tag frequencies across the viewer's interacted items."""
    genres: Mapping[str, int] = field(default_factory=dict)
    tags: Mapping[str, int] = field(default_factory=dict)
    n_items: int = 0

    def top_genres(self, n: int = 5) -> list[tuple[str, int]]:
        return sorted(self.genres.items(), key=lambda kv: (-kv[1], kv[0]))[:n]

    def top_tags(self, n: int = 5) -> list[tuple[str, int]]:
        return sorted(self.tags.items(), key=lambda kv: (-kv[1], kv[0]))[:n]


@dataclass(frozen=True)
class ScoredCandidate:
    item: CatalogItem
    score: float


@dataclass(frozen=True)
class RecommendationSection:
    """An ordered group of items shown together, with the reason it exists."""
    reason: str
    items: tuple[CatalogItem, ...]
    source: CatalogItem | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"reason": self.reason}
        if self.source is not None:
            payload["source_title_ar"] = self.source.title_ar
            payload["source_title_en"] = self.source.title_en
            payload["source_slug"] = self.source.slug
        payload["series"] = [item.to_dict() for item in self.items]
        return payload
