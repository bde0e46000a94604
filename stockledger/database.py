import logging
import random
import time
from typing import Callable, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from stockledger.config import settings
from stockledger.errors import ConcurrentModification, LedgerError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Execution option read by the SQLite "begin" hook; mutation paths ask for IMMEDIATE
SQLITE_BEGIN_OPTION = "sqlite_begin"

_RETRYABLE_MESSAGES = ("database is locked", "deadlock detected", "could not serialize")

# Only unique-key races between concurrent writers are retried; other
# integrity failures propagate unchanged
_UNIQUE_VIOLATION_MESSAGES = ("unique constraint", "duplicate key")
_UNIQUE_VIOLATION_SQLSTATE = "23505"


def create_db_engine(url: str, echo: bool = False) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = settings.SQLITE_BUSY_TIMEOUT

    db_engine = create_engine(url, echo=echo, connect_args=connect_args)

    if url.startswith("sqlite"):
        in_memory = url in ("sqlite://", "sqlite:///:memory:")

        @event.listens_for(db_engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            # Let SQLAlchemy emit BEGIN itself so writers can take the lock up front
            dbapi_connection.isolation_level = None
            if not in_memory:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA journal_mode=WAL")
                cursor.close()

        @event.listens_for(db_engine, "begin")
        def _sqlite_begin(conn):
            mode = conn.get_execution_options().get(SQLITE_BEGIN_OPTION, "DEFERRED")
            conn.exec_driver_sql(f"BEGIN {mode}")

    return db_engine


engine = create_db_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _begin_write(db: Session) -> None:
    """Open the transaction in write mode.

    On SQLite this takes the database write lock at BEGIN, which serializes
    writers; other dialects rely on SELECT ... FOR UPDATE row locks. A clean
    read-only transaction left open by earlier lookups is closed first.
    """
    if db.get_bind().dialect.name != "sqlite":
        return
    if db.in_transaction():
        if db.new or db.dirty or db.deleted:
            return
        db.commit()
    db.connection(execution_options={SQLITE_BEGIN_OPTION: "IMMEDIATE"})


def _error_message(exc: Exception) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc).lower()


def _is_unique_violation(exc: IntegrityError) -> bool:
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if sqlstate:
        return sqlstate == _UNIQUE_VIOLATION_SQLSTATE
    return any(m in _error_message(exc) for m in _UNIQUE_VIOLATION_MESSAGES)


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, IntegrityError):
        return _is_unique_violation(exc)
    if isinstance(exc, OperationalError):
        return any(m in _error_message(exc) for m in _RETRYABLE_MESSAGES)
    return False


def _backoff_delay(attempt: int) -> float:
    # Exponential backoff with full jitter
    ceiling = min(settings.RETRY_MAX_DELAY, settings.RETRY_BASE_DELAY * (2 ** (attempt - 1)))
    return random.uniform(0, ceiling)


def run_in_transaction(db: Session, operation: Callable[[], T], label: str = "operation") -> T:
    """Run ``operation`` as one transaction: commit on success, roll back on any error.

    Lock and version conflicts are retried with jittered backoff; business
    errors (``LedgerError``) propagate untouched and are never retried.
    """
    attempts = settings.CONCURRENCY_MAX_RETRIES + 1
    for attempt in range(1, attempts + 1):
        try:
            _begin_write(db)
            result = operation()
            db.commit()
            return result
        except LedgerError:
            db.rollback()
            raise
        except Exception as exc:
            db.rollback()
            if not _is_retryable(exc):
                raise
            if attempt == attempts:
                logger.warning("Giving up on %s after %d attempts: %s", label, attempts, exc)
                break
            logger.warning("Conflict during %s (attempt %d/%d), retrying: %s", label, attempt, attempts, exc)
            time.sleep(_backoff_delay(attempt))

    raise ConcurrentModification(f"{label} failed after {attempts} attempts due to concurrent modification")


def init_db(bind: Engine | None = None):
    # Import all models so Base.metadata knows about them
    import stockledger.models.catalog  # noqa: F401
    import stockledger.models.inventory  # noqa: F401
    import stockledger.models.stock_movement  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
