from sqlalchemy import Column, String, Integer, Text, Boolean, DateTime, JSON, UniqueConstraint
import uuid
import sqlalchemy as sa
from quotedigest.database import Base
from quotedigest.utils.periods import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class Quote(Base):
    """
    A quote submitted by a user.

    category/themes are assigned once by the category normalizer at submission
    and only change through explicit re-analysis. The period columns are
    stamped in business time so weekly/monthly collection is an index lookup.
    """
    __tablename__ = "quotes"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False, index=True)
    text = Column(Text, nullable=False)
    author = Column(String, nullable=True)
    source = Column(String, nullable=True)
    category = Column(String, nullable=False)
    themes = Column(JSON, nullable=False, default=list)
    iso_year = Column(Integer, nullable=False)
    iso_week = Column(Integer, nullable=False)
    year_number = Column(Integer, nullable=False)
    month_number = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        sa.Index("idx_quotes_user_week", "user_id", "iso_year", "iso_week"),
        sa.Index("idx_quotes_user_month", "user_id", "year_number", "month_number"),
    )


class CatalogEntry(Base):
    """Recommendable book or course, tagged with canonical category keys. Read-only to reporting."""
    __tablename__ = "catalog_entries"

    id = Column(String(36), primary_key=True, default=_new_id)
    slug = Column(String, unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    author = Column(String, nullable=True)
    description = Column(Text, nullable=False)
    price = Column(String, nullable=True)
    categories = Column(JSON, nullable=False, default=list)
    priority = Column(Integer, nullable=False, default=5)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    reasoning = Column(Text, nullable=True)  # recommendation reasoning template
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class PeriodReport(Base):
    """
    Frozen per-user, per-period report.

    At most one row per (user_id, period_type, period_year, period_number);
    the unique constraint is what makes concurrent generation safe across
    processes. Rows written before metric snapshots existed have metrics=NULL
    and only quote_ids; readers upgrade them on first read.
    """
    __tablename__ = "period_reports"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False, index=True)
    period_type = Column(String, nullable=False)  # "week" | "month"
    period_year = Column(Integer, nullable=False)
    period_number = Column(Integer, nullable=False)
    quote_ids = Column(JSON, nullable=False, default=list)
    metrics = Column(JSON, nullable=True)
    dominant_themes = Column(JSON, nullable=False, default=list)
    recommendations = Column(JSON, nullable=False, default=list)
    feedback = Column(JSON(none_as_null=True), nullable=True)
    sent_at = Column(DateTime, default=utcnow, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    generation_time_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "period_type", "period_year", "period_number",
            name="uq_period_reports_user_period",
        ),
        sa.Index("idx_period_reports_user_sent", "user_id", "sent_at"),
    )


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(String(36), primary_key=True, default=_new_id)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    user_id = Column(String, nullable=True, index=True)
    event_name = Column(String, nullable=False, index=True)
    properties = Column(JSON, nullable=True)
    request_id = Column(String, nullable=True)
