from typing import List, Optional, Sequence
from dataclasses import dataclass
from datetime import datetime
import logging

from sqlalchemy.orm import Session

from quotedigest.core.config import settings
from quotedigest.core.exceptions import RecommendationEmptyCatalog
from quotedigest.models import CatalogEntry
from quotedigest.services.catalog_service import list_active_entries

logger = logging.getLogger(__name__)

MATCH_RELEVANCE = "relevance"
MATCH_UNIVERSAL = "universal"

DEFAULT_ENTRY_REASONING = "Recommended based on the quotes you saved"

# Reasoning templates keyed by how the entry was selected
REASONING_TEMPLATES = {
    MATCH_RELEVANCE: "{reasoning}. It speaks to your recent themes: {themes}.",
    MATCH_UNIVERSAL: "{reasoning}. A universal pick for self-discovery while your themes take shape.",
}


@dataclass
class ScoredEntry:
    """A catalog entry selected for a user, with how and how strongly it matched."""
    entry: CatalogEntry
    relevance_score: int
    match_type: str
    matched_themes: Optional[List[str]] = None


def relevance_score(entry: CatalogEntry, user_themes: Sequence[str]) -> int:
    """Number of canonical categories shared by the entry and the user's themes."""
    return len(set(entry.categories or []) & set(user_themes or []))


def _created_at(entry: CatalogEntry) -> datetime:
    return entry.created_at or datetime.min


def rank_entries(
    entries: Sequence[CatalogEntry],
    user_themes: Sequence[str],
    limit: int,
    universal_category: str,
) -> List[ScoredEntry]:
    """
    Rank catalog entries for a user's themes.

    Active entries only, sorted by (relevance desc, priority desc, created_at desc).
    When the best entry shares no category with the user, the ranking is
    discarded and the highest-priority active entries tagged with the universal
    category are returned instead (or the highest-priority active entries
    overall if nothing carries that tag).

    Raises:
        RecommendationEmptyCatalog: when there is no active entry at all
    """
    active = [e for e in entries if e.is_active]
    if not active:
        raise RecommendationEmptyCatalog("No active catalog entries to recommend")
    if limit <= 0:
        return []

    themes = list(dict.fromkeys(user_themes or []))

    # Stable sorts, least significant key first
    ranked = sorted(active, key=_created_at, reverse=True)
    ranked = sorted(ranked, key=lambda e: e.priority or 0, reverse=True)
    ranked = sorted(ranked, key=lambda e: relevance_score(e, themes), reverse=True)

    top = ranked[:limit]
    if relevance_score(top[0], themes) > 0:
        return [
            ScoredEntry(
                entry=e,
                relevance_score=relevance_score(e, themes),
                match_type=MATCH_RELEVANCE,
                matched_themes=[t for t in themes if t in (e.categories or [])],
            )
            for e in top
        ]

    universal = [e for e in active if universal_category in (e.categories or [])]
    if not universal:
        logger.warning(
            f"No active catalog entry tagged '{universal_category}', falling back to priority order"
        )
        universal = active

    fallback = sorted(universal, key=_created_at, reverse=True)
    fallback = sorted(fallback, key=lambda e: e.priority or 0, reverse=True)
    return [
        ScoredEntry(entry=e, relevance_score=0, match_type=MATCH_UNIVERSAL, matched_themes=[])
        for e in fallback[:limit]
    ]


def build_reasoning(scored: ScoredEntry) -> str:
    """Human-readable reason for showing an entry, from the template for its match type."""
    base = (scored.entry.reasoning or DEFAULT_ENTRY_REASONING).strip().rstrip(".")
    template = REASONING_TEMPLATES.get(scored.match_type, REASONING_TEMPLATES[MATCH_UNIVERSAL])
    themes = ", ".join(t.lower() for t in (scored.matched_themes or []))
    return template.format(reasoning=base, themes=themes)


class RecommendationMatcher:
    """Ranks the catalog store against a user's recent canonical themes."""

    def __init__(self, universal_category: Optional[str] = None):
        self.universal_category = universal_category or settings.UNIVERSAL_CATEGORY

    def recommend(self, db: Session, user_themes: Sequence[str], limit: Optional[int] = None) -> List[ScoredEntry]:
        if limit is None:
            limit = settings.RECOMMENDATION_LIMIT
        entries = list_active_entries(db)
        results = rank_entries(entries, user_themes, limit, self.universal_category)
        ranked = [(r.entry.slug, r.relevance_score, r.match_type) for r in results]
        logger.debug(f"Recommendations for themes={list(user_themes or [])}: {ranked}")
        return results
