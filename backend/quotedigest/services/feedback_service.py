"""
Feedback and read-tracking for generated period reports.

Feedback is an optional, append-only annotation: the first submission is
kept and later ones are ignored. It never touches the frozen metrics
snapshot, dominant themes or recommendations.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from quotedigest.core.exceptions import ReportNotFound, StorageUnavailable
from quotedigest.models import PeriodReport
from quotedigest.services.report_service import find_report_row
from quotedigest.utils.instrumentation import log_event, log_event_best_effort
from quotedigest.utils.periods import Period, utcnow

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
MAX_COMMENT_LENGTH = 2000


def submit_report_feedback(
    db: Session,
    user_id: str,
    period: Period,
    rating: int,
    comment: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Attach feedback to a user's report for a period.

    Args:
        db: Database session
        user_id: Report owner
        period: Report period
        rating: Integer 1-5
        comment: Optional free text, trimmed and capped

    Returns:
        The feedback stored on the report (the earlier one if feedback already existed)

    Raises:
        ValueError: rating outside 1-5
        ReportNotFound: no report for this period
        StorageUnavailable: database unreachable
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise ValueError(f"rating must be an integer between {MIN_RATING} and {MAX_RATING}")

    user_id = str(user_id)
    try:
        report = find_report_row(db, user_id, period)
        if report is None:
            raise ReportNotFound(user_id, period.key)

        if report.feedback:
            logger.debug(f"Duplicate report feedback ignored: report_id={report.id}")
            return report.feedback

        comment = (comment or "").strip()[:MAX_COMMENT_LENGTH] or None
        feedback = {
            "rating": rating,
            "comment": comment,
            "responded_at": utcnow().isoformat(),
        }
        # Only the first submission writes
        updated = db.query(PeriodReport).filter(
            PeriodReport.id == report.id,
            PeriodReport.feedback.is_(None),
        ).update({PeriodReport.feedback: feedback}, synchronize_session=False)
        db.commit()
        if updated == 0:
            db.refresh(report)
            logger.info(f"Report feedback already submitted concurrently: report_id={report.id}")
            return report.feedback
    except OperationalError as e:
        db.rollback()
        raise StorageUnavailable("Storage unavailable while saving report feedback", original=e) from e

    logger.info(f"Report feedback saved: report_id={report.id}, user_id={user_id}, rating={rating}")
    log_event(
        db,
        event_name="report_feedback_submitted",
        user_id=user_id,
        properties={"report_id": report.id, "period": period.key, "rating": rating},
    )
    db.commit()
    return feedback


def mark_report_read(db: Session, user_id: str, period: Period) -> bool:
    """
    Mark a report as read. Returns True the first time, False if it was already read.

    Raises:
        ReportNotFound: no report for this period
    """
    user_id = str(user_id)
    try:
        report = find_report_row(db, user_id, period)
        if report is None:
            raise ReportNotFound(user_id, period.key)
        if report.is_read:
            return False
        report.is_read = True
        report.read_at = utcnow()
        db.commit()
    except OperationalError as e:
        db.rollback()
        raise StorageUnavailable("Storage unavailable while marking report read", original=e) from e

    log_event_best_effort("report_read", user_id=user_id, properties={"period": period.key})
    return True
