"""Database configuration and session management."""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .core.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url


if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False}
    )

    # SQLite defaults foreign_keys to OFF; enable it on every connection so
    # grants and members cannot point at missing nodes.
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI routes to get database session.

    Rolls back the transaction on unhandled exceptions so that the
    connection is returned to the pool in a clean state.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _begin_immediate(db: Session) -> None:
    """Take SQLite's database write lock now rather than at the first write.

    pysqlite only emits BEGIN before the first DML statement, and SQLite
    ignores FOR UPDATE, so the checks a unit of work runs before writing
    (cycles, code clashes, parent paths) must happen after this lock.
    """
    if db.get_bind().dialect.name != "sqlite":
        return
    conn = db.connection()
    if not conn.connection.dbapi_connection.in_transaction:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Run a block of writes as one transaction.

    Commits when the block exits normally. Any exception rolls back every
    write made inside the block and is re-raised, so a failed move or
    delete never leaves a partially rewritten subtree behind.

    Units of work are serialized: on SQLite the database write lock is taken
    on entry, on PostgreSQL the repositories lock the rows they check.
    """
    try:
        _begin_immediate(db)
        yield db
        db.commit()
    except SQLAlchemyError:
        logger.exception("Transaction failed, rolling back")
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise
