from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy import create_engine, event
from dms.config import SQLALCHEMY_DATABASE_URI, SLOW_QUERY_THRESHOLD_MS
import logging
import time

# Set up query logging
query_logger = logging.getLogger('sqlalchemy.queries')

def _log_slow_query(conn, cursor, statement, parameters, context, executemany):
    """Log slow database queries for performance monitoring."""
    duration_ms = (time.time() - context._query_start_time) * 1000

    if duration_ms > SLOW_QUERY_THRESHOLD_MS:
        query_logger.warning(
            f"Slow query detected ({duration_ms:.2f}ms): {statement[:200]}..."
        )

_engine_kwargs = {}
if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
    # Quart serves requests from one loop thread but the session may be used by worker threads
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    _engine_kwargs["pool_pre_ping"] = True

engine = create_engine(
    SQLALCHEMY_DATABASE_URI,
    echo=False,  # Don't echo all queries, we'll log slow ones only
    future=True,
    **_engine_kwargs
)

# Attach query timing event listener
@event.listens_for(engine, "before_cursor_execute")
def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    context._query_start_time = time.time()

@event.listens_for(engine, "after_cursor_execute")
def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    _log_slow_query(conn, cursor, statement, parameters, context, executemany)

SessionLocal = scoped_session(sessionmaker(bind=engine, autoflush=False, autocommit=False))
Base = declarative_base()


def init_db():
    """
    Create all tables. Safe to run repeatedly; existing tables are left alone.
    """
    # Import all models to ensure they're registered with Base.metadata
    import dms.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    query_logger.info("Database tables created successfully")
