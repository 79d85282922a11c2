from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from quotedigest.services.report_records import PeriodReportV2, ReportDelta


class MetricsSnapshotResponse(BaseModel):
    quote_count: int
    unique_author_count: int
    active_day_count: int
    progress_pct: int
    target_quotes: int


class ReportDeltaResponse(BaseModel):
    quote_count: int = 0
    unique_author_count: int = 0
    active_day_count: int = 0


class ReportRecommendation(BaseModel):
    catalog_entry_id: str
    slug: str
    title: str
    relevance_score: int
    reasoning: str
    match_type: str  # "relevance" | "universal"


class ReportFeedback(BaseModel):
    rating: int
    comment: Optional[str] = None
    responded_at: Optional[str] = None


class PeriodReportResponse(BaseModel):
    id: str
    user_id: str
    period_type: str
    period_key: str
    quote_count: int  # Same as metrics.quote_count, for list views
    metrics: MetricsSnapshotResponse
    delta: ReportDeltaResponse
    dominant_themes: List[str]
    recommendations: List[ReportRecommendation]
    sent_at: datetime
    is_read: bool = False
    feedback: Optional[ReportFeedback] = None


class ReportFeedbackRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)


class GenerateReportRequest(BaseModel):
    period_key: Optional[str] = None  # Defaults to the previous complete period


def report_to_response(report: PeriodReportV2, delta: Optional[ReportDelta] = None) -> PeriodReportResponse:
    """Build the API/client payload for a stored report and its delta."""
    delta = delta or ReportDelta()
    return PeriodReportResponse(
        id=report.id,
        user_id=report.user_id,
        period_type=report.period.kind,
        period_key=report.period.key,
        quote_count=report.metrics.quote_count,
        metrics=MetricsSnapshotResponse(**report.metrics.to_dict()),
        delta=ReportDeltaResponse(**delta.to_dict()),
        dominant_themes=list(report.dominant_themes),
        recommendations=[ReportRecommendation(**r.to_dict()) for r in report.recommendations],
        sent_at=report.sent_at,
        is_read=report.is_read,
        feedback=ReportFeedback(**report.feedback) if report.feedback else None,
    )
