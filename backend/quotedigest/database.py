from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from quotedigest.core.config import settings
import logging
import time

logger = logging.getLogger(__name__)

logger.info("QUOTEDIGEST DATABASE_URL = %s", settings.get_masked_database_url())


def build_engine(database_url: str, debug: bool = False):
    """
    Create an engine with pre-ping and, in debug mode, slow query logging.

    SQLite connections are shared across threads by the report generation
    workers and the client fetcher, so same-thread checking is disabled there.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    new_engine = create_engine(
        database_url,
        pool_pre_ping=True,
        echo=False,
        connect_args=connect_args,
    )

    if debug:
        slow_query_threshold_ms = 200.0

        @event.listens_for(new_engine, "before_cursor_execute")
        def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            """Store query start time before execution."""
            context._query_start_time = time.perf_counter()

        @event.listens_for(new_engine, "after_cursor_execute")
        def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            """Log slow queries after execution."""
            if hasattr(context, "_query_start_time"):
                elapsed_ms = (time.perf_counter() - context._query_start_time) * 1000
                if elapsed_ms >= slow_query_threshold_ms:
                    statement_first_line = statement.split("\n")[0].strip()[:100]
                    logger.warning(
                        f"SLOW_QUERY: {elapsed_ms:.2f}ms - {statement_first_line}"
                    )

    return new_engine


engine = build_engine(settings.DATABASE_URL, debug=settings.DEBUG)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Dev convenience: ensure the reporting tables exist.

    WARNING: create_all() will NOT add missing columns to existing tables.
    Use 'alembic upgrade head' against Postgres for schema changes.
    """
    from quotedigest import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
