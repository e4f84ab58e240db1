from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.config import get_settings

settings = get_settings()


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Single shared connection so an in-memory database survives across sessions
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
    }


# Create SQLAlchemy engine with connection pooling
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))


if engine.dialect.name == "sqlite":
    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        # SQLite leaves foreign keys unenforced unless asked per connection
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db():
    """
    Dependency to get database session.
    Yields a database session and closes it after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session, isolation_level: Optional[str] = None) -> Iterator[Session]:
    """
    Run a unit of work on `db` and guarantee commit-or-rollback.

    The session commits when the block exits normally and rolls back on any
    exception, which is then re-raised. `isolation_level` is applied only on
    PostgreSQL and must be requested before anything else touches the session.

    Example:
        with transaction(db, isolation_level="REPEATABLE READ"):
            total = db.query(Order).count()
    """
    if isolation_level and db.get_bind().dialect.name == "postgresql":
        db.connection(execution_options={"isolation_level": isolation_level})

    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
