"""Read-only access to the recommendation catalog."""
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from quotedigest.models import CatalogEntry

logger = logging.getLogger(__name__)


def list_active_entries(db: Session) -> List[CatalogEntry]:
    return (
        db.query(CatalogEntry)
        .filter(CatalogEntry.is_active.is_(True))
        .order_by(CatalogEntry.priority.desc(), CatalogEntry.created_at.desc())
        .all()
    )


def get_by_slug(db: Session, slug: str) -> Optional[CatalogEntry]:
    """Active entry by slug, used when building links from stored recommendations."""
    if not slug:
        return None
    return (
        db.query(CatalogEntry)
        .filter(CatalogEntry.slug == slug.lower(), CatalogEntry.is_active.is_(True))
        .one_or_none()
    )


def get_catalog_stats(db: Session) -> Dict:
    """Total/active counts and how many active entries carry each category."""
    entries = db.query(CatalogEntry).all()
    active = [e for e in entries if e.is_active]

    breakdown: Dict[str, int] = {}
    for entry in active:
        for key in entry.categories or []:
            breakdown[key] = breakdown.get(key, 0) + 1

    return {
        "total": len(entries),
        "active": len(active),
        "inactive": len(entries) - len(active),
        "categories_breakdown": dict(sorted(breakdown.items(), key=lambda item: -item[1])),
    }
