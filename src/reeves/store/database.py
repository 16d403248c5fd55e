"""SQLite engine and transaction scopes for the signature store.

- Database: engine in WAL mode, tables created from SQLModel metadata
- immediate_transaction: the single writer scope, BEGIN IMMEDIATE with
  backoff while another writer holds the lock
- read_transaction: one snapshot for a multi-statement read

A crate replace commits as one write transaction; WAL readers keep seeing
the previous snapshot until that commit lands.
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = structlog.get_logger()

_BUSY_MARKERS = ("database is locked", "database is busy")
_MAX_BACKOFF_SEC = 2.0


def _writer_busy(error: OperationalError) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _BUSY_MARKERS)


class Database:
    """Engine plus session scopes over one SQLite file.

    Many threads share one Database; each scope opens its own session.
    """

    def __init__(
        self,
        db_path: Path,
        max_retries: int = 3,
        retry_base_delay: float = 0.1,
        busy_timeout_ms: int = 30000,
    ) -> None:
        self.db_path = db_path
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self.engine = self._connect(busy_timeout_ms)

    def _connect(self, busy_timeout_ms: int) -> Engine:
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )

        def _on_connect(dbapi_conn: Any, _record: Any) -> None:
            _apply_pragmas(dbapi_conn, busy_timeout_ms)

        event.listen(engine, "connect", _on_connect)
        return engine

    def create_all(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Plain session for single-statement reads."""
        with Session(self.engine) as session:
            yield session

    @contextmanager
    def read_transaction(self) -> Generator[Session, None, None]:
        """Session pinned to one WAL snapshot, rolled back on exit."""
        with Session(self.engine) as session:
            session.execute(text("BEGIN"))
            try:
                yield session
            finally:
                session.rollback()

    @contextmanager
    def immediate_transaction(
        self,
        max_retries: int | None = None,
    ) -> Generator[Session, None, None]:
        """Writer session: BEGIN IMMEDIATE, commit on exit, roll back on error.

        Only taking the write lock is retried, with exponential backoff while
        another writer is busy. The block itself runs once.

        Args:
            max_retries: Lock attempts after the first (default from the constructor).
        """
        retries = self._max_retries if max_retries is None else max_retries
        attempt = 0
        while True:
            session = Session(self.engine)
            try:
                session.execute(text("BEGIN IMMEDIATE"))
                break
            except OperationalError as e:
                session.close()
                if not _writer_busy(e) or attempt >= retries:
                    raise
                delay = min(self._retry_base_delay * 2**attempt, _MAX_BACKOFF_SEC)
                attempt += 1
                logger.warning("store_writer_busy", attempt=attempt, max_retries=retries, delay_sec=delay)
                time.sleep(delay)

        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()


def _apply_pragmas(dbapi_conn: Any, busy_timeout_ms: int) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
    # NORMAL is durable enough under WAL
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA cache_size=-64000")
    cursor.close()
