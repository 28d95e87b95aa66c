# tunnel_plane/database/session.py
"""
Engine, session factory and the per-operation unit of work
"""

from contextlib import contextmanager
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator, Iterator
import logging

from tunnel_plane.config import settings
from .models import Base

logger = logging.getLogger(__name__)


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL

    SQLite has no row locks, so every transaction is opened with
    BEGIN IMMEDIATE: concurrent writers queue on the database lock instead
    of both reading stale rows.
    """
    if not database_url.startswith("sqlite"):
        # PostgreSQL or other databases
        return create_engine(
            database_url,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
            echo=echo,
        )

    in_memory = ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///")
    kwargs = {
        "connect_args": {"check_same_thread": False, "timeout": 30},
        "echo": echo,
    }
    if in_memory:
        # One shared connection; there is no second writer to queue against
        kwargs["poolclass"] = StaticPool

    sqlite_engine = create_engine(database_url, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        if not in_memory:
            # Let SQLAlchemy emit BEGIN itself
            dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    if not in_memory:
        @event.listens_for(sqlite_engine, "begin")
        def begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine
)


def init_db() -> None:
    """Create missing tables (startup and seeding)"""
    Base.metadata.create_all(bind=engine)
    logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


def get_db() -> Generator[Session, None, None]:
    """One session per request, closed when the response is done"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Unit of work: commit when the block finishes, roll back on any exception

    A lifecycle operation and its activity entry are written inside one
    block so they land together or not at all.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


class DatabaseManager:
    """Connectivity check for the health endpoint"""

    def __init__(self, bind: Engine):
        self.bind = bind

    def check_connection(self) -> bool:
        try:
            with self.bind.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection check failed: {e}")
            return False


# Export
db_manager = DatabaseManager(engine)
