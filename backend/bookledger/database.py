from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from bookledger.core.config import settings
import logging
import time

logger = logging.getLogger(__name__)

logger.info("BOOKLEDGER DATABASE_URL = %s", settings.get_masked_database_url())


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        # Sessions are handed across FastAPI's threadpool
        return {"check_same_thread": False}
    return {}


def install_slow_query_logging(target: Engine, threshold_ms: float) -> None:
    """Warn about any statement on `target` that runs longer than threshold_ms."""

    @event.listens_for(target, "before_cursor_execute")
    def _start_timer(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.perf_counter()

    @event.listens_for(target, "after_cursor_execute")
    def _log_if_slow(conn, cursor, statement, parameters, context, executemany):
        started = getattr(context, "_query_start_time", None)
        if started is None:
            return
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms >= threshold_ms:
            logger.warning("SLOW_QUERY: %.2fms - %s", elapsed_ms, statement.split("\n")[0].strip()[:100])


engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before using them
    echo=False,  # Slow statements are logged by install_slow_query_logging instead
    connect_args=_connect_args(settings.DATABASE_URL),
)

if settings.DEBUG:
    install_slow_query_logging(engine, settings.SLOW_QUERY_THRESHOLD_MS)

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
    Create any missing tables.

    create_all() never alters existing tables, so column changes on a live
    database need to be applied by hand.
    """
    from bookledger import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
