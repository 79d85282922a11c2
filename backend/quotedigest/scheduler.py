"""
Background scheduler for period report generation.

Uses APScheduler to run the weekly and monthly batch jobs in the background.
Each job generates the report of the previous complete period for every user
who saved quotes in it; generation is idempotent, so a rerun or an overlap
with an on-demand request never creates a duplicate.
"""
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session
from quotedigest.database import SessionLocal
from quotedigest.services.report_service import report_service
from quotedigest.utils.periods import PERIOD_MONTH, PERIOD_WEEK, previous_complete_period
from quotedigest.utils.timing import time_operation

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def run_period_reports(kind: str, session_factory=SessionLocal) -> dict:
    """Generate missing reports for the previous complete period of this kind."""
    period = previous_complete_period(kind)
    logger.info(f"Running {kind} report job for {period.key}")

    db: Session = session_factory()
    try:
        with time_operation(f"{kind}_reports {period.key}", logger.info):
            result = report_service.generate_reports_for_period(db, period)
        logger.info(f"{kind.capitalize()} report job completed: {period.key} {result}")
        return result
    except Exception as e:
        logger.exception(f"{kind.capitalize()} report job failed: {e}")
        return {"generated": [], "failed": []}
    finally:
        db.close()


def weekly_reports_job():
    """Runs every Monday at 09:00 business time (06:00 UTC)."""
    run_period_reports(PERIOD_WEEK)


def monthly_reports_job():
    """Runs on the 1st of every month at 09:30 business time (06:30 UTC)."""
    run_period_reports(PERIOD_MONTH)


def start_scheduler():
    """
    Start the background scheduler with all configured jobs.
    Call this from the FastAPI startup event.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return

    logger.info("Starting background scheduler")
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        weekly_reports_job,
        trigger=CronTrigger(day_of_week='mon', hour=6, minute=0, timezone="UTC"),
        id='weekly_period_reports',
        name='Generate weekly period reports',
        replace_existing=True
    )
    scheduler.add_job(
        monthly_reports_job,
        trigger=CronTrigger(day=1, hour=6, minute=30, timezone="UTC"),
        id='monthly_period_reports',
        name='Generate monthly period reports',
        replace_existing=True
    )

    scheduler.start()
    logger.info("Background scheduler started with weekly and monthly report jobs")


def stop_scheduler():
    """
    Stop the background scheduler.
    Call this from the FastAPI shutdown event.
    """
    global scheduler

    if scheduler is not None:
        logger.info("Stopping background scheduler")
        scheduler.shutdown()
        scheduler = None
