"""SQLite engine and transaction management for the entity store.

This module provides:
- Database: connection manager (WAL, busy timeout, foreign keys)
- Read-only opening through a SQLite ``mode=ro`` URI
- Schema creation, including the pre-populated species and modifier tables
- Session utilities for reads and serializable (BEGIN IMMEDIATE) writes
"""

from __future__ import annotations

import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine, select

from identdb.store.models import Modifier, ModifierName, Species, SpeciesName

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = structlog.get_logger()

# Retry configuration for acquiring the write lock
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 0.1  # 100ms base
DEFAULT_RETRY_MAX_DELAY = 2.0  # 2s max


def _is_database_locked_error(error: Exception) -> bool:
    """Check if error is a SQLite database locked error."""
    error_str = str(error).lower()
    return "database is locked" in error_str or "database is busy" in error_str


class Database:
    """SQLite connection manager for one entity store file.

    A read-only Database opens the file through a ``mode=ro`` URI, so any
    write attempt fails inside SQLite itself.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        read_only: bool = False,
        busy_timeout_ms: int = 30000,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
    ) -> None:
        self.db_path = db_path
        self.read_only = read_only
        self._busy_timeout_ms = busy_timeout_ms
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self.engine = self._create_engine()

    def _create_engine(self) -> Engine:
        if self.read_only:
            url = f"sqlite:///file:{self.db_path}?mode=ro&uri=true"
        else:
            url = f"sqlite:///{self.db_path}"
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        event.listen(engine, "connect", _pragma_configurator(self._busy_timeout_ms, self.read_only))
        return engine

    def create_all(self) -> None:
        """Create all tables and populate the fixed species and modifier rows.

        Rows are inserted in enum order, so the n-th member gets key n.
        Safe to call on an existing store.
        """
        SQLModel.metadata.create_all(self.engine)
        with self.session() as session:
            if session.exec(select(SpeciesName)).first() is None:
                session.add_all(SpeciesName(species_name=s.description) for s in Species)
            if session.exec(select(ModifierName)).first() is None:
                session.add_all(ModifierName(modifier=m.description) for m in Modifier)
            session.commit()
        logger.debug("schema_created", path=str(self.db_path))

    def dispose(self) -> None:
        """Close every pooled connection."""
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """ORM session for reads and step-wise commits."""
        with Session(self.engine) as session:
            yield session

    @contextmanager
    def immediate_transaction(
        self,
        max_retries: int | None = None,
    ) -> Generator[Session, None, None]:
        """
        Session with BEGIN IMMEDIATE for serializable writes.

        BEGIN IMMEDIATE acquires a RESERVED lock immediately, blocking other
        writers but allowing readers. Acquiring the lock is retried with
        exponential backoff when SQLite reports the database busy.

        The session commits on successful exit and rolls back on exception.

        Args:
            max_retries: Override default max retries (default: 3)
        """
        retries = self._max_retries if max_retries is None else max_retries

        with Session(self.engine) as session:
            self._begin_immediate(session, retries)
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    def _begin_immediate(self, session: Session, retries: int) -> None:
        """Take the write lock, backing off while another writer holds it."""
        attempt = 0
        while True:
            try:
                session.execute(text("BEGIN IMMEDIATE"))
                return
            except OperationalError as e:
                session.rollback()
                if attempt >= retries or not _is_database_locked_error(e):
                    raise
                delay = min(self._retry_base_delay * 2**attempt, self._retry_max_delay)
                attempt += 1
                logger.warning(
                    "write_lock_busy", attempt=attempt, max_retries=retries, delay_sec=delay
                )
                time.sleep(delay)

    def execute_raw(self, sql: str, params: dict[str, Any] | None = None) -> Any:
        """Execute raw SQL and return all rows."""
        with self.engine.connect() as conn:
            result = conn.execute(text(sql), params or {})
            rows = result.fetchall() if result.returns_rows else []
            if not self.read_only:
                conn.commit()
            return rows


def _pragma_configurator(
    busy_timeout_ms: int, read_only: bool
) -> Callable[[Any, Any], None]:
    def _configure_pragmas(dbapi_conn: Any, _connection_record: Any) -> None:
        """Configure SQLite for concurrent access and integrity."""
        cursor = dbapi_conn.cursor()
        if not read_only:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
        cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return _configure_pragmas
