"""
Period report endpoints.

ReportNotFound, StorageUnavailable and RecommendationEmptyCatalog are not
caught here; the handlers in main.py turn them into 404/503/409 with a
machine-readable code.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
import logging

from quotedigest.core.auth import get_current_user_id
from quotedigest.database import get_db
from quotedigest.schemas.report import (
    GenerateReportRequest,
    PeriodReportResponse,
    ReportFeedback,
    ReportFeedbackRequest,
    report_to_response,
)
from quotedigest.services.feedback_service import mark_report_read, submit_report_feedback
from quotedigest.services.report_service import report_service
from quotedigest.utils.periods import PERIOD_TYPES, PERIOD_WEEK, Period, previous_complete_period

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


def _parse_period(period_key: str) -> Period:
    try:
        return Period.parse(period_key)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _respond(db: Session, report) -> PeriodReportResponse:
    delta = report_service.compute_report_delta(db, report)
    return report_to_response(report, delta)


@router.get("/latest", response_model=PeriodReportResponse)
def get_latest_report(
    kind: str = Query(PERIOD_WEEK, description="Period type: week or month"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    if kind not in PERIOD_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown period type: {kind}")
    report = report_service.get_latest_report(db, user_id, kind)
    return _respond(db, report)


@router.post("/generate", response_model=PeriodReportResponse)
def generate_report(
    payload: GenerateReportRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Generate the report for a period, or return the existing one. Safe to call repeatedly."""
    period = _parse_period(payload.period_key) if payload.period_key else previous_complete_period(PERIOD_WEEK)
    report = report_service.generate_or_fetch(db, user_id, period)
    return _respond(db, report)


@router.get("/{period_key}", response_model=PeriodReportResponse)
def get_report(
    period_key: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    report = report_service.get_report(db, user_id, _parse_period(period_key))
    return _respond(db, report)


@router.post("/{period_key}/feedback", response_model=ReportFeedback)
def post_report_feedback(
    period_key: str,
    payload: ReportFeedbackRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Attach feedback to a report. The first feedback is kept; later submissions return it unchanged."""
    period = _parse_period(period_key)
    try:
        feedback = submit_report_feedback(db, user_id, period, payload.rating, payload.comment)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    return ReportFeedback(**feedback)


@router.post("/{period_key}/read", status_code=status.HTTP_204_NO_CONTENT)
def post_report_read(
    period_key: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    mark_report_read(db, user_id, _parse_period(period_key))
