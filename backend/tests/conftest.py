"""Pytest configuration for backend tests."""
import sys
import os
import tempfile
from datetime import datetime
from pathlib import Path
import pytest
from sqlalchemy.orm import Session

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are read at import time, so the database URL must be in place
# before anything from quotedigest is imported. TEST_DATABASE_URL points the
# suite at another database (e.g. a Postgres test instance); by default each
# run gets a throwaway SQLite file.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL") or (
    f"sqlite:///{Path(tempfile.mkdtemp(prefix='quotedigest-tests-')) / 'test.db'}"
)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["DEBUG"] = "false"
os.environ["SCHEDULER_ENABLED"] = "false"

from quotedigest.database import Base, SessionLocal, engine as app_engine  # noqa: E402

# Import the entire models module to ensure all models are registered with Base.metadata
import quotedigest.models  # noqa: E402,F401
from quotedigest.models import CatalogEntry, PeriodReport  # noqa: E402
from quotedigest.services.quote_service import submit_quote  # noqa: E402


@pytest.fixture(scope="function")
def engine():
    """
    The application engine with a fresh schema for every test.

    Tests that spawn threads or call the HTTP app open their own sessions via
    SessionLocal, so everything shares this one database.
    """
    Base.metadata.drop_all(bind=app_engine)
    Base.metadata.create_all(bind=app_engine)
    yield app_engine
    Base.metadata.drop_all(bind=app_engine)


@pytest.fixture(scope="function")
def db(engine) -> Session:
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def session_factory(engine):
    return SessionLocal


@pytest.fixture
def add_entry(db: Session):
    """Insert a catalog entry; returns the refreshed row."""
    def _add(slug, categories, priority=5, is_active=True, created_at=None, reasoning=None, title=None):
        entry = CatalogEntry(
            slug=slug,
            title=title or slug.replace("-", " ").title(),
            author="Test Author",
            description=f"Description of {slug}",
            price="$10",
            categories=list(categories),
            priority=priority,
            is_active=is_active,
            reasoning=reasoning,
            created_at=created_at or datetime(2025, 1, 1),
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry
    return _add


@pytest.fixture
def default_catalog(add_entry):
    """A small catalog covering relevance matches and the universal fallback."""
    return [
        add_entry("art-of-loving", ["LOVE", "RELATIONSHIPS"], priority=8, reasoning="A classic on love"),
        add_entry("rich-dad", ["MONEY"], priority=7, reasoning="Money habits explained"),
        add_entry("find-yourself", ["SELF-DISCOVERY"], priority=9, reasoning="A guided look inward"),
        add_entry("stoic-letters", ["CRISES", "MEANING OF LIFE"], priority=6),
    ]


@pytest.fixture
def add_quote(db: Session):
    """Submit a quote through the normal submission path."""
    def _add(user_id, text, created_at, author=None, analysis=None):
        return submit_quote(db, user_id=user_id, text=text, author=author, analysis=analysis, created_at=created_at)
    return _add


@pytest.fixture
def add_legacy_report(db: Session):
    """Insert a report row written before metric snapshots existed (metrics=NULL)."""
    def _add(user_id, period, quote_ids, dominant_themes=None, sent_at=None):
        row = PeriodReport(
            user_id=user_id,
            period_type=period.kind,
            period_year=period.year,
            period_number=period.number,
            quote_ids=list(quote_ids),
            metrics=None,
            dominant_themes=list(dominant_themes or []),
            recommendations=[],
            sent_at=sent_at or datetime(2025, 1, 20, 6, 0),
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    return _add
