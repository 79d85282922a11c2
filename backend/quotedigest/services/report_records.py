"""
Stored period report shapes and the pure formulas behind them.

A stored report is either a PeriodReportV1 (written before metric snapshots
existed: only quote references) or a PeriodReportV2 (frozen snapshot).
record_from_row() classifies a row once; upgrade() turns V1 into V2 with the
exact same compute_metrics() used at generation time, so a recomputed
snapshot is identical to one that would have been generated from the same
quotes.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from quotedigest.models import PeriodReport
from quotedigest.services.category_normalizer import CategoryNormalizer
from quotedigest.utils.periods import Period, business_day

DELTA_FIELDS = ("quote_count", "unique_author_count", "active_day_count")


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (2.5 -> 3), unlike Python's round()."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class MetricsSnapshot:
    quote_count: int
    unique_author_count: int
    active_day_count: int
    progress_pct: int
    target_quotes: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "quote_count": self.quote_count,
            "unique_author_count": self.unique_author_count,
            "active_day_count": self.active_day_count,
            "progress_pct": self.progress_pct,
            "target_quotes": self.target_quotes,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["MetricsSnapshot"]:
        """Parse a stored snapshot; None when it is missing or incomplete."""
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                quote_count=int(data["quote_count"]),
                unique_author_count=int(data["unique_author_count"]),
                active_day_count=int(data["active_day_count"]),
                progress_pct=int(data["progress_pct"]),
                target_quotes=int(data.get("target_quotes") or 0),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass(frozen=True)
class ReportDelta:
    quote_count: int = 0
    unique_author_count: int = 0
    active_day_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in DELTA_FIELDS}


@dataclass(frozen=True)
class RecommendationRecord:
    catalog_entry_id: str
    slug: str
    title: str
    relevance_score: int
    reasoning: str
    match_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "catalog_entry_id": self.catalog_entry_id,
            "slug": self.slug,
            "title": self.title,
            "relevance_score": self.relevance_score,
            "reasoning": self.reasoning,
            "match_type": self.match_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecommendationRecord":
        return cls(
            catalog_entry_id=str(data.get("catalog_entry_id") or ""),
            slug=data.get("slug") or "",
            title=data.get("title") or "",
            relevance_score=int(data.get("relevance_score") or 0),
            reasoning=data.get("reasoning") or "",
            match_type=data.get("match_type") or "relevance",
        )


@dataclass(frozen=True)
class PeriodReportV1:
    """Legacy report: quote references only, no frozen snapshot."""
    id: str
    user_id: str
    period: Period
    quote_ids: List[str]
    dominant_themes: List[str]
    recommendations: List[RecommendationRecord]
    sent_at: datetime
    feedback: Optional[Dict[str, Any]] = None
    is_read: bool = False
    schema_version: int = field(default=1, init=False)


@dataclass(frozen=True)
class PeriodReportV2:
    """Final report with a frozen metrics snapshot."""
    id: str
    user_id: str
    period: Period
    quote_ids: List[str]
    metrics: MetricsSnapshot
    dominant_themes: List[str]
    recommendations: List[RecommendationRecord]
    sent_at: datetime
    feedback: Optional[Dict[str, Any]] = None
    is_read: bool = False
    schema_version: int = field(default=2, init=False)


StoredPeriodReport = Union[PeriodReportV1, PeriodReportV2]


def compute_metrics(quotes: Iterable, target_quotes: int, offset_min: Optional[int] = None) -> MetricsSnapshot:
    """
    Activity metrics for a set of quotes.

    quote_count = number of quotes; unique_author_count = distinct non-empty
    authors; active_day_count = distinct business-time calendar days;
    progress_pct = min(100, round(quote_count / target * 100)).
    """
    quotes = list(quotes)
    authors = {q.author.strip() for q in quotes if q.author and q.author.strip()}
    days = {business_day(q.created_at, offset_min) for q in quotes if q.created_at}
    count = len(quotes)
    progress = min(100, round_half_up(count / target_quotes * 100)) if target_quotes > 0 else 0
    return MetricsSnapshot(
        quote_count=count,
        unique_author_count=len(authors),
        active_day_count=len(days),
        progress_pct=progress,
        target_quotes=target_quotes,
    )


def dominant_themes_for(quotes: Sequence, normalizer: CategoryNormalizer) -> List[str]:
    """normalize_theme_list over the flattened themes of the quotes, best-known = first quote's category."""
    flattened: List[str] = []
    for quote in quotes:
        flattened.extend(quote.themes or [])
    best_known = quotes[0].category if quotes else None
    return normalizer.normalize_theme_list(flattened, best_known=best_known)


def compute_delta(current: Optional[MetricsSnapshot], previous: Optional[MetricsSnapshot]) -> ReportDelta:
    """Field-wise current - previous; all zeros when either side is not comparable."""
    if current is None or previous is None:
        return ReportDelta()
    return ReportDelta(**{
        name: getattr(current, name) - getattr(previous, name)
        for name in DELTA_FIELDS
    })


def record_from_row(row: PeriodReport) -> StoredPeriodReport:
    period = Period(row.period_type, row.period_year, row.period_number)
    common = dict(
        id=row.id,
        user_id=row.user_id,
        period=period,
        quote_ids=[str(i) for i in (row.quote_ids or [])],
        dominant_themes=list(row.dominant_themes or []),
        recommendations=[RecommendationRecord.from_dict(r) for r in (row.recommendations or [])],
        sent_at=row.sent_at,
        feedback=row.feedback,
        is_read=bool(row.is_read),
    )
    metrics = MetricsSnapshot.from_dict(row.metrics)
    if metrics is None:
        return PeriodReportV1(**common)
    return PeriodReportV2(metrics=metrics, **common)


def upgrade(
    legacy: PeriodReportV1,
    quotes: Sequence,
    target_quotes: int,
    normalizer: CategoryNormalizer,
    offset_min: Optional[int] = None,
) -> PeriodReportV2:
    """
    Recompute the snapshot of a legacy report from its referenced quotes.

    Stored legacy themes are free-form strings; they are normalized to
    canonical keys, or derived from the quotes when the report has none.
    """
    if legacy.dominant_themes:
        themes = normalizer.normalize_theme_list(legacy.dominant_themes)
    else:
        themes = dominant_themes_for(list(quotes), normalizer)
    return PeriodReportV2(
        id=legacy.id,
        user_id=legacy.user_id,
        period=legacy.period,
        quote_ids=list(legacy.quote_ids),
        metrics=compute_metrics(quotes, target_quotes, offset_min),
        dominant_themes=themes,
        recommendations=list(legacy.recommendations),
        sent_at=legacy.sent_at,
        feedback=legacy.feedback,
        is_read=legacy.is_read,
    )
