"""Database configuration, session management and transaction scopes."""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from shiftledger.config import settings
from shiftledger.errors import StoreFailure, ValidationFailure

logger = logging.getLogger(__name__)


def build_engine(database_url: str, timeout_seconds: int = settings.store_timeout_seconds):
    """Create an engine with a bounded wait on locks and statements."""
    if database_url.startswith("sqlite"):
        # SQLite-specific config
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": timeout_seconds}
        )

    # PostgreSQL config (production)
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
        pool_timeout=timeout_seconds,
        connect_args={"options": f"-c statement_timeout={timeout_seconds * 1000}"}
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI endpoints to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block of writes as one transaction.

    Commits when the block exits cleanly. Any exception rolls back every
    statement issued inside the block. Constraint violations surface as
    ValidationFailure; other driver errors surface as StoreFailure. The
    original exception is chained either way.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Transaction rolled back after constraint violation: %s", exc.orig)
        raise ValidationFailure(f"Rejected by store constraint: {exc.orig}") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Transaction rolled back after store error: %s", exc)
        if isinstance(exc, OperationalError):
            raise StoreFailure(f"Store unavailable or timed out: {exc.orig}") from exc
        raise StoreFailure(f"Store operation failed: {exc}") from exc
    except Exception:
        db.rollback()
        raise
