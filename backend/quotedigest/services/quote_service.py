"""
Quote submission and period lookups.

Category and themes are assigned exactly once, here, at submission time.
Only reanalyze_quote() changes them afterwards.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from quotedigest.models import Quote
from quotedigest.services.category_normalizer import CategoryNormalizer, default_normalizer
from quotedigest.utils.periods import PERIOD_WEEK, Period, month_period, utcnow, week_period

logger = logging.getLogger(__name__)


def _classify(
    normalizer: CategoryNormalizer,
    text: str,
    analysis: Optional[Dict],
):
    """Classifier output wins when present; otherwise detect from the quote text."""
    if analysis and (analysis.get("category") or analysis.get("themes")):
        return normalizer.normalize_analysis(analysis.get("category"), analysis.get("themes"))
    themes = normalizer.detect_from_text(text)
    return themes[0], themes


def submit_quote(
    db: Session,
    user_id: str,
    text: str,
    author: Optional[str] = None,
    source: Optional[str] = None,
    analysis: Optional[Dict] = None,
    created_at: Optional[datetime] = None,
    normalizer: CategoryNormalizer = default_normalizer,
) -> Quote:
    """
    Create a quote with canonical category/themes and business-time period fields.

    Args:
        db: Database session
        user_id: Owner of the quote
        text: Quote text (required, non-empty)
        author: Optional author
        source: Optional book/source title
        analysis: Optional classifier output {"category": str, "themes": [str]}
        created_at: Optional submission time (naive UTC), defaults to now
    """
    if not text or not text.strip():
        raise ValueError("Quote text is required")

    created_at = created_at or utcnow()
    category, themes = _classify(normalizer, text, analysis)
    week = week_period(created_at)
    month = month_period(created_at)

    quote = Quote(
        user_id=str(user_id),
        text=text.strip(),
        author=author.strip() if author and author.strip() else None,
        source=source,
        category=category,
        themes=themes,
        iso_year=week.year,
        iso_week=week.number,
        year_number=month.year,
        month_number=month.number,
        created_at=created_at,
    )
    db.add(quote)
    db.commit()
    db.refresh(quote)
    logger.info(f"Quote saved: user_id={user_id}, quote_id={quote.id}, category={category}, themes={themes}")
    return quote


def reanalyze_quote(
    db: Session,
    quote_id: str,
    analysis: Optional[Dict] = None,
    normalizer: CategoryNormalizer = default_normalizer,
) -> Optional[Quote]:
    """Explicit re-analysis: the only path that rewrites a quote's category and themes."""
    quote = db.query(Quote).filter(Quote.id == quote_id).one_or_none()
    if not quote:
        return None
    quote.category, quote.themes = _classify(normalizer, quote.text, analysis)
    db.commit()
    db.refresh(quote)
    logger.info(f"Quote re-analyzed: quote_id={quote_id}, category={quote.category}, themes={quote.themes}")
    return quote


def get_period_quotes(db: Session, user_id: str, period: Period) -> List[Quote]:
    q = db.query(Quote).filter(Quote.user_id == str(user_id))
    if period.kind == PERIOD_WEEK:
        q = q.filter(Quote.iso_year == period.year, Quote.iso_week == period.number)
    else:
        q = q.filter(Quote.year_number == period.year, Quote.month_number == period.number)
    return q.order_by(Quote.created_at.asc()).all()


def get_quotes_by_ids(db: Session, quote_ids: Sequence[str]) -> List[Quote]:
    """Quotes referenced by a stored report; ids that no longer exist are skipped."""
    ids = [str(i) for i in (quote_ids or [])]
    if not ids:
        return []
    return db.query(Quote).filter(Quote.id.in_(ids)).order_by(Quote.created_at.asc()).all()


def list_users_with_quotes(db: Session, period: Period) -> List[str]:
    q = db.query(Quote.user_id).distinct()
    if period.kind == PERIOD_WEEK:
        q = q.filter(Quote.iso_year == period.year, Quote.iso_week == period.number)
    else:
        q = q.filter(Quote.year_number == period.year, Quote.month_number == period.number)
    return sorted(row[0] for row in q.all())
