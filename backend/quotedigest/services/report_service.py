"""
Period report lifecycle: generate-once, read, upgrade legacy rows, compute deltas.

State per (user_id, period): Absent -> Generating -> Final (-> Final with feedback).

Mutual exclusion has two layers. Inside one process, a per-key lock makes a
second caller wait for the first and then read the committed row. Across
processes, the unique constraint on period_reports decides the winner; the
loser gets an IntegrityError, treats it as ReportGenerationConflict and
returns the winner's row. Nothing is written until quotes, metrics, themes
and recommendations have all been computed, so a failure leaves the period
Absent and retryable.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from quotedigest.core.config import settings
from quotedigest.core.exceptions import ReportGenerationConflict, ReportNotFound, StorageUnavailable
from quotedigest.models import PeriodReport
from quotedigest.services.category_normalizer import CategoryNormalizer, default_normalizer
from quotedigest.services.quote_service import get_period_quotes, get_quotes_by_ids, list_users_with_quotes
from quotedigest.services.recommendation_matcher import RecommendationMatcher, build_reasoning
from quotedigest.services.report_records import (
    PeriodReportV1,
    PeriodReportV2,
    RecommendationRecord,
    ReportDelta,
    compute_delta,
    compute_metrics,
    dominant_themes_for,
    record_from_row,
    upgrade,
)
from quotedigest.utils.instrumentation import log_event
from quotedigest.utils.periods import Period, utcnow
from quotedigest.utils.timing import log_elapsed, now_ms

logger = logging.getLogger(__name__)


class _KeyedLocks:
    """One lock per generation key, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, list] = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def is_held(self, key: str) -> bool:
        with self._guard:
            entry = self._locks.get(key)
            return bool(entry and entry[0].locked())


def _generation_key(user_id: str, period: Period) -> str:
    return f"{user_id}:{period.key}"


def find_report_row(db: Session, user_id: str, period: Period) -> Optional[PeriodReport]:
    return db.query(PeriodReport).filter(
        PeriodReport.user_id == str(user_id),
        PeriodReport.period_type == period.kind,
        PeriodReport.period_year == period.year,
        PeriodReport.period_number == period.number,
    ).one_or_none()


@contextmanager
def _storage_guard(db: Session, action: str):
    """Translate driver/transport failures into StorageUnavailable."""
    try:
        yield
    except OperationalError as e:
        db.rollback()
        logger.warning(f"Storage unavailable during {action}: {e}")
        raise StorageUnavailable(f"Storage unavailable during {action}", original=e) from e


class PeriodReportService:
    def __init__(
        self,
        normalizer: CategoryNormalizer = default_normalizer,
        matcher: Optional[RecommendationMatcher] = None,
        weekly_target: Optional[int] = None,
        monthly_target: Optional[int] = None,
        recommendation_limit: Optional[int] = None,
        tz_offset_min: Optional[int] = None,
    ):
        self.normalizer = normalizer
        self.matcher = matcher or RecommendationMatcher()
        self.weekly_target = weekly_target or settings.WEEKLY_TARGET_QUOTES
        self.monthly_target = monthly_target or settings.MONTHLY_TARGET_QUOTES
        self.recommendation_limit = recommendation_limit or settings.RECOMMENDATION_LIMIT
        self.tz_offset_min = settings.BUSINESS_TZ_OFFSET_MIN if tz_offset_min is None else tz_offset_min
        self._locks = _KeyedLocks()

    def target_for(self, period: Period) -> int:
        return self.monthly_target if period.kind == "month" else self.weekly_target

    def is_generating(self, user_id: str, period: Period) -> bool:
        return self._locks.is_held(_generation_key(user_id, period))

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_or_fetch(self, db: Session, user_id: str, period: Period) -> PeriodReportV2:
        """
        Return the report for (user_id, period), generating it if absent.

        Idempotent: any number of calls, concurrent or not, observe the same
        report id.

        Raises:
            RecommendationEmptyCatalog: no active catalog entries (nothing is written)
            StorageUnavailable: database unreachable
        """
        user_id = str(user_id)
        with _storage_guard(db, f"report generation {user_id}/{period.key}"):
            existing = find_report_row(db, user_id, period)
            if existing:
                return self._read_row(db, existing)

            with self._locks.hold(_generation_key(user_id, period)):
                # Another thread may have committed while we waited on the lock
                db.expire_all()
                existing = find_report_row(db, user_id, period)
                if existing:
                    logger.info(f"Report for user {user_id} period {period.key} already exists")
                    return self._read_row(db, existing)
                return self._generate(db, user_id, period)

    def _generate(self, db: Session, user_id: str, period: Period) -> PeriodReportV2:
        started = now_ms()
        try:
            step = now_ms()
            quotes = get_period_quotes(db, user_id, period)
            metrics = compute_metrics(quotes, self.target_for(period), self.tz_offset_min)
            themes = dominant_themes_for(quotes, self.normalizer)
            step = log_elapsed(step, f"report {period.key} metrics and themes")
            scored = self.matcher.recommend(db, themes, self.recommendation_limit)
            log_elapsed(step, f"report {period.key} recommendations")
        except Exception:
            db.rollback()
            logger.warning(
                f"Report generation aborted before commit: user_id={user_id}, period={period.key}",
                exc_info=True,
            )
            raise

        recommendations = [
            RecommendationRecord(
                catalog_entry_id=str(s.entry.id),
                slug=s.entry.slug,
                title=s.entry.title,
                relevance_score=s.relevance_score,
                reasoning=build_reasoning(s),
                match_type=s.match_type,
            ).to_dict()
            for s in scored
        ]

        row = PeriodReport(
            user_id=user_id,
            period_type=period.kind,
            period_year=period.year,
            period_number=period.number,
            quote_ids=[q.id for q in quotes],
            metrics=metrics.to_dict(),
            dominant_themes=themes,
            recommendations=recommendations,
            sent_at=utcnow(),
            generation_time_ms=int(now_ms() - started),
        )
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            conflict = ReportGenerationConflict(user_id, period.key)
            logger.info(f"{conflict}; reading the committed report instead")
            winner = find_report_row(db, user_id, period)
            if winner is None:
                raise
            return self._read_row(db, winner)

        db.refresh(row)
        logger.info(
            f"Report created: report_id={row.id}, user_id={user_id}, period={period.key}, "
            f"quotes={metrics.quote_count}, themes={themes}, generation_ms={row.generation_time_ms}"
        )
        log_event(
            db,
            event_name="report_generated",
            user_id=user_id,
            properties={
                "report_id": row.id,
                "period": period.key,
                "quote_count": metrics.quote_count,
                "recommendations": [r["slug"] for r in recommendations],
            },
        )
        db.commit()
        return record_from_row(row)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _read_row(self, db: Session, row: PeriodReport) -> PeriodReportV2:
        """Classify a row and upgrade legacy shapes, persisting the recomputed snapshot."""
        record = record_from_row(row)
        if isinstance(record, PeriodReportV2):
            return record
        return self._upgrade_legacy(db, row, record)

    def _upgrade_legacy(self, db: Session, row: PeriodReport, legacy: PeriodReportV1) -> PeriodReportV2:
        quotes = get_quotes_by_ids(db, legacy.quote_ids)
        if len(quotes) != len(legacy.quote_ids):
            logger.warning(
                f"Legacy report {legacy.id} references {len(legacy.quote_ids)} quotes, "
                f"{len(quotes)} still exist"
            )
        upgraded = upgrade(legacy, quotes, self.target_for(legacy.period), self.normalizer, self.tz_offset_min)
        row.metrics = upgraded.metrics.to_dict()
        row.dominant_themes = upgraded.dominant_themes
        db.commit()
        logger.info(f"Legacy report upgraded: report_id={legacy.id}, period={legacy.period.key}")
        return upgraded

    def get_report(self, db: Session, user_id: str, period: Period) -> PeriodReportV2:
        """
        Raises:
            ReportNotFound: the period was never generated for this user
            StorageUnavailable: database unreachable
        """
        user_id = str(user_id)
        with _storage_guard(db, f"report read {user_id}/{period.key}"):
            row = find_report_row(db, user_id, period)
            if row is None:
                raise ReportNotFound(user_id, period.key)
            return self._read_row(db, row)

    def get_latest_report(self, db: Session, user_id: str, kind: str = "week") -> PeriodReportV2:
        user_id = str(user_id)
        with _storage_guard(db, f"latest {kind} report read {user_id}"):
            row = (
                db.query(PeriodReport)
                .filter(PeriodReport.user_id == user_id, PeriodReport.period_type == kind)
                .order_by(PeriodReport.period_year.desc(), PeriodReport.period_number.desc())
                .first()
            )
            if row is None:
                raise ReportNotFound(user_id, f"latest-{kind}")
            return self._read_row(db, row)

    def compute_report_delta(self, db: Session, report: PeriodReportV2) -> ReportDelta:
        """Change versus the adjacent prior period; all zeros when there is nothing to compare."""
        with _storage_guard(db, f"delta for {report.user_id}/{report.period.key}"):
            previous_row = find_report_row(db, report.user_id, report.period.previous())
            if previous_row is None:
                return ReportDelta()
            previous = self._read_row(db, previous_row)
            return compute_delta(report.metrics, previous.metrics)

    # ------------------------------------------------------------------
    # Batch generation (scheduler)
    # ------------------------------------------------------------------

    def list_users_needing_reports(self, db: Session, period: Period) -> List[str]:
        with_quotes = list_users_with_quotes(db, period)
        with_reports = {
            row[0]
            for row in db.query(PeriodReport.user_id).filter(
                PeriodReport.period_type == period.kind,
                PeriodReport.period_year == period.year,
                PeriodReport.period_number == period.number,
            ).all()
        }
        return [user_id for user_id in with_quotes if user_id not in with_reports]

    def generate_reports_for_period(self, db: Session, period: Period) -> Dict[str, List[str]]:
        """Generate missing reports for every user with quotes in the period; one failure does not stop the batch."""
        result: Dict[str, List[str]] = {"generated": [], "failed": []}
        for user_id in self.list_users_needing_reports(db, period):
            try:
                report = self.generate_or_fetch(db, user_id, period)
                result["generated"].append(report.id)
            except Exception as e:
                db.rollback()
                logger.exception(f"Report generation failed: user_id={user_id}, period={period.key}, error={e}")
                result["failed"].append(user_id)
        logger.info(
            f"Batch generation for {period.key}: generated={len(result['generated'])}, failed={len(result['failed'])}"
        )
        return result


report_service = PeriodReportService()
