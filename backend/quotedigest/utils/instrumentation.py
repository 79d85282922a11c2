"""
Server-side event logging for the reporting pipeline.

Events go to the event_logs table (for querying) and to the structured log
(for immediate visibility). Event names in use: report_generated,
report_feedback_submitted, report_read.
"""
import logging
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError, ProgrammingError
from quotedigest.models import EventLog
from quotedigest.database import SessionLocal

logger = logging.getLogger(__name__)


def _emit(event_name: str, user_id: Optional[str], properties: Optional[Dict[str, Any]], request_id: Optional[str]):
    logger.info(
        "event_logged",
        extra={
            "event_name": event_name,
            "user_id": user_id,
            "request_id": request_id,
            "properties": properties,
        },
    )


def log_event(
    db: Session,
    event_name: str,
    user_id: Optional[str] = None,
    properties: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> None:
    """
    Add an event to the caller's session and flush it.

    Does not commit; the caller commits. Call it after the business row has
    been committed: a failed flush is rolled back here so the caller's next
    commit starts from a clean session.
    """
    try:
        db.add(EventLog(
            event_name=event_name,
            user_id=str(user_id) if user_id is not None else None,
            properties=properties,
            request_id=request_id,
        ))
        db.flush()
        _emit(event_name, user_id, properties, request_id)
    except (OperationalError, ProgrammingError) as e:
        db.rollback()
        logger.warning(
            "Failed to log event: event_name=%s, user_id=%s, error=%s",
            event_name,
            user_id,
            str(e),
        )


def log_event_best_effort(
    event_name: str,
    user_id: Optional[str] = None,
    properties: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> None:
    """
    Log an event in its own session and commit independently.

    Never raises: a missing event_logs table or a database error is logged
    as a warning.
    """
    db = None
    try:
        db = SessionLocal()
        db.add(EventLog(
            event_name=event_name,
            user_id=str(user_id) if user_id is not None else None,
            properties=properties,
            request_id=request_id,
        ))
        db.commit()
        _emit(event_name, user_id, properties, request_id)
    except (OperationalError, ProgrammingError) as e:
        error_str = str(e).lower()
        if "does not exist" in error_str or "no such table" in error_str:
            logger.warning(
                "event_logs table missing, run alembic upgrade head. "
                "Event logging disabled until migration is applied."
            )
        else:
            logger.warning(
                "Failed to log event (database error): event_name=%s, user_id=%s, error=%s",
                event_name,
                user_id,
                str(e),
                exc_info=True,
            )
        if db:
            db.rollback()
    except Exception as e:
        logger.warning(
            "Failed to log event: event_name=%s, user_id=%s, error=%s",
            event_name,
            user_id,
            str(e),
            exc_info=True,
        )
        if db:
            db.rollback()
    finally:
        if db:
            db.close()
