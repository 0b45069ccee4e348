"""
Arrange scored candidates into display sections.

Sections never share an item: every emitted "because you watched" section
adds its items to a used set that later sections skip, and the final
"recommended" section takes what is left.
"""
import logging
from typing import Iterable

from .config import (
    POPULAR_LIMIT,
    MAX_SOURCE_SECTIONS,
    SOURCE_SECTION_LIMIT,
    MIN_SOURCE_SECTION_SIZE,
    RECOMMENDED_LIMIT,
    MATCH_GENRE_WEIGHT,
    MATCH_TAG_WEIGHT,
    MATCH_SCORE_WEIGHT,
)
from .models import (
    CatalogItem,
    RecommendationSection,
    ScoredCandidate,
    REASON_POPULAR,
    REASON_BECAUSE_YOU_WATCHED,
    REASON_RECOMMENDED,
)

logger = logging.getLogger(__name__)


def popular_section(catalog: Iterable[CatalogItem], limit: int = POPULAR_LIMIT) -> RecommendationSection:
    """Cold-start section: most viewed items first."""
    top = sorted(catalog, key=lambda item: -item.total_views)[:limit]
    return RecommendationSection(reason=REASON_POPULAR, items=tuple(top))


def match_score(candidate: ScoredCandidate, source: CatalogItem) -> float:
    shared_genres = len(set(candidate.item.genre) & set(source.genre))
    shared_tags = len(set(candidate.item.tags) & set(source.tags))
    return (
        MATCH_GENRE_WEIGHT * shared_genres
        + MATCH_TAG_WEIGHT * shared_tags
        + MATCH_SCORE_WEIGHT * candidate.score
    )


def _source_matches(
    source: CatalogItem,
    ranked: list[ScoredCandidate],
    used: set[str],
    limit: int,
) -> list[ScoredCandidate]:
    matches = []
    for candidate in ranked:
        if candidate.item.id in used:
            continue
        score = match_score(candidate, source)
        if score > 0:
            matches.append((score, candidate))
    # Stable over the score-ranked input, so equal match scores keep global rank
    matches.sort(key=lambda pair: -pair[0])
    return [candidate for _, candidate in matches[:limit]]


def build_sections(
    sources: list[CatalogItem],
    ranked: list[ScoredCandidate],
    max_sources: int = MAX_SOURCE_SECTIONS,
    section_limit: int = SOURCE_SECTION_LIMIT,
    min_section_size: int = MIN_SOURCE_SECTION_SIZE,
    recommended_limit: int = RECOMMENDED_LIMIT,
) -> list[RecommendationSection]:
    """
    Build "because you watched" sections for the first few sources, then a
    catch-all "recommended" section from the remaining candidates.

    Args:
        sources: Interacted items in source-selection order
        ranked: Candidates sorted by descending global score
        max_sources: How many sources get a section attempt
        section_limit: Max items per source section
        min_section_size: Source sections smaller than this are dropped
        recommended_limit: Max items in the catch-all section

    Returns:
        Sections in construction order; empty if nothing qualifies.
    """
    used: set[str] = set()
    sections: list[RecommendationSection] = []

    for source in sources[:max_sources]:
        matches = _source_matches(source, ranked, used, section_limit)
        if len(matches) < min_section_size:
            logger.debug(f"Dropping section for '{source.slug or source.id}': {len(matches)} matches")
            continue

        sections.append(RecommendationSection(
            reason=REASON_BECAUSE_YOU_WATCHED,
            items=tuple(m.item for m in matches),
            source=source,
        ))
        used.update(m.item.id for m in matches)

    remaining = [c.item for c in ranked if c.item.id not in used][:recommended_limit]
    if remaining:
        sections.append(RecommendationSection(reason=REASON_RECOMMENDED, items=tuple(remaining)))

    return sections
