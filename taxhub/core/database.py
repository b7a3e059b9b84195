"""
Database configuration, session management and transaction helpers
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy import event, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.attributes import set_committed_value
import structlog

from taxhub.core.config import get_settings
from taxhub.core.errors import ConcurrencyConflict, ConstraintViolation, TransientStoreError

logger = structlog.get_logger(__name__)
settings = get_settings()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores FOREIGN KEY clauses unless asked per connection"""
    if type(dbapi_connection).__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(url: Optional[str] = None, **kwargs) -> Engine:
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, echo=settings.DEBUG, **kwargs)


engine = build_engine()


def init_db(bind: Optional[Engine] = None) -> None:
    """Initialize database tables (development only, production uses Alembic)"""
    import taxhub.models  # noqa: F401  registers tables on the metadata

    SQLModel.metadata.create_all(bind or engine)
    logger.info("Database tables created")


def get_session() -> Generator[Session, None, None]:
    """Dependency to get database session"""
    with Session(engine) as session:
        yield session


@contextmanager
def unit_of_work(session: Session) -> Generator[Session, None, None]:
    """Run a block as one transaction: commit on success, roll back on any error"""
    try:
        yield session
        session.commit()
    except OperationalError as e:
        session.rollback()
        logger.error("Transient store failure, transaction rolled back", error=str(e))
        raise TransientStoreError("The data store is temporarily unavailable", reason=str(e.orig)) from e
    except IntegrityError as e:
        session.rollback()
        logger.warning("Constraint violation, transaction rolled back", error=str(e.orig))
        raise ConstraintViolation(str(e.orig)) from e
    except Exception:
        session.rollback()
        raise


def claim_version(session: Session, row: SQLModel, expected_version: Optional[int] = None) -> int:
    """
    Compare-and-set the row's version column.

    Issues UPDATE ... SET version = v + 1 WHERE id = :id AND version = v
    against the version the caller loaded. Zero matched rows means another
    transaction changed the row first and raises ConcurrencyConflict.
    Returns the new version.
    """
    model = type(row)
    current = row.version
    if expected_version is not None and expected_version != current:
        raise ConcurrencyConflict(model.__tablename__, row.id, expected_version=expected_version)

    result = session.exec(
        update(model)
        .where(model.id == row.id, model.version == current)
        .values(version=current + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "Optimistic concurrency conflict",
            entity=model.__tablename__,
            entity_id=str(row.id),
            loaded_version=current,
        )
        raise ConcurrencyConflict(model.__tablename__, row.id, expected_version=current)

    set_committed_value(row, "version", current + 1)
    return current + 1
