"""Signature store: persistent crate records and the derived type index.

Writes replace a crate wholesale inside one BEGIN IMMEDIATE transaction.
Reads of a single crate run inside one read transaction, so a reader sees
either the old function list or the new one, never a mix. There is no
snapshot across crates.
"""

from __future__ import annotations

import json
import time
from collections.abc import Generator, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, func, tuple_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from reeves.core.errors import StoreError
from reeves.signature import CrateId, CrateRecord, FnRecord
from reeves.store.database import Database
from reeves.store.indexes import create_additional_indexes
from reeves.store.models import CrateRow, FnRow, TypeMentionRow

if TYPE_CHECKING:
    from reeves.config.models import StoreConfig

log = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class StoredCrate:
    """Crate row summary, as listed by ``SignatureStore.list_crates``."""

    crate: CrateId
    import_name: str
    fn_count: int
    analyzed_at: float | None


@dataclass(frozen=True, slots=True)
class StoreStats:
    crates: int
    functions: int
    type_mentions: int


def _decode(row: FnRow) -> FnRecord:
    try:
        return row.to_record()
    except (ValueError, KeyError, TypeError, json.JSONDecodeError) as e:
        raise StoreError.corrupt_record(row.fn_key, str(e)) from e


@contextmanager
def _store_errors(operation: str) -> Generator[None, None, None]:
    """Surface storage failures as StoreError."""
    try:
        yield
    except (SQLAlchemyError, OSError) as e:
        log.error("store_operation_failed", operation=operation, error=str(e))
        raise StoreError.io_failure(operation, str(e)) from e


class SignatureStore:
    """SQLite-backed store of crate records.

    Safe to share across threads: every operation opens its own session.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        busy_timeout_ms: int = 30000,
        max_retries: int = 3,
        retry_base_delay: float = 0.1,
        page_size: int = 500,
    ) -> None:
        self.db_path = Path(db_path)
        self._page_size = page_size
        with _store_errors("open"):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = Database(
                self.db_path,
                max_retries=max_retries,
                retry_base_delay=retry_base_delay,
                busy_timeout_ms=busy_timeout_ms,
            )
            self._db.create_all()
            create_additional_indexes(self._db.engine)

    @classmethod
    def from_config(cls, config: StoreConfig) -> SignatureStore:
        return cls(
            config.db_path,
            busy_timeout_ms=config.busy_timeout_ms,
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay_sec,
            page_size=config.page_size,
        )

    def close(self) -> None:
        self._db.dispose()

    def __enter__(self) -> SignatureStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # Writes

    def put_crate(self, record: CrateRecord) -> None:
        """Replace everything stored for ``record.crate`` in one transaction."""
        crate = record.crate
        fn_rows: list[dict[str, Any]] = []
        start = time.monotonic()
        with _store_errors("put_crate"), self._db.immediate_transaction() as session:
            session.execute(
                delete(CrateRow).where(
                    col(CrateRow.name) == crate.name, col(CrateRow.version) == crate.version
                )
            )
            row = CrateRow(
                name=crate.name,
                version=crate.version,
                import_name=record.import_name,
                fn_count=len(record.functions),
                analyzed_at=time.time(),
            )
            session.add(row)
            session.flush()
            if row.id is None:
                raise StoreError.corrupt_record(str(crate), "no row id assigned on insert")

            fn_rows = [
                FnRow.from_record(row.id, crate, ordinal, fn)
                for ordinal, fn in enumerate(record.functions)
            ]
            if fn_rows:
                session.execute(FnRow.__table__.insert(), fn_rows)  # type: ignore[attr-defined]

            mentions = [{"ident": ident, "crate_id": row.id} for ident in sorted(record.identifiers())]
            if mentions:
                session.execute(TypeMentionRow.__table__.insert(), mentions)  # type: ignore[attr-defined]

        log.info(
            "store_put_crate",
            crate=str(crate),
            functions=len(fn_rows),
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def remove_crate(self, crate: CrateId) -> bool:
        """Delete a crate and everything derived from it. Returns False if absent."""
        with _store_errors("remove_crate"), self._db.immediate_transaction() as session:
            result = session.execute(
                delete(CrateRow).where(
                    col(CrateRow.name) == crate.name, col(CrateRow.version) == crate.version
                )
            )
            removed = bool(result.rowcount)  # type: ignore[attr-defined]
        if removed:
            log.info("store_remove_crate", crate=str(crate))
        return removed

    def rebuild_type_index(self) -> int:
        """Recompute type_mentions from the stored function records.

        Returns the number of (identifier, crate) entries written.
        """
        total = 0
        with _store_errors("rebuild_type_index"), self._db.immediate_transaction() as session:
            session.execute(delete(TypeMentionRow))
            crate_ids = session.exec(select(CrateRow.id)).all()
            for crate_row_id in crate_ids:
                fn_rows = session.exec(
                    select(FnRow).where(col(FnRow.crate_id) == crate_row_id)
                ).all()
                idents: set[str] = set()
                for fn_row in fn_rows:
                    idents |= _decode(fn_row).identifiers()
                if idents:
                    session.execute(
                        TypeMentionRow.__table__.insert(),  # type: ignore[attr-defined]
                        [{"ident": i, "crate_id": crate_row_id} for i in sorted(idents)],
                    )
                total += len(idents)
        log.info("store_type_index_rebuilt", entries=total)
        return total

    # Reads

    def _find_crate_row(self, session: Session, crate: CrateId) -> CrateRow | None:
        return session.exec(
            select(CrateRow).where(
                col(CrateRow.name) == crate.name, col(CrateRow.version) == crate.version
            )
        ).first()

    def _load_functions(self, session: Session, crate_row_id: int) -> list[FnRecord]:
        rows = session.exec(
            select(FnRow).where(col(FnRow.crate_id) == crate_row_id).order_by(col(FnRow.ordinal))
        ).all()
        return [_decode(r) for r in rows]

    def get_crate(self, crate: CrateId) -> CrateRecord | None:
        with _store_errors("get_crate"), self._db.read_transaction() as session:
            row = self._find_crate_row(session, crate)
            if row is None or row.id is None:
                return None
            functions = self._load_functions(session, row.id)
            return CrateRecord(crate=crate, import_name=row.import_name, functions=tuple(functions))

    def crates_mentioning(self, identifier: str) -> set[CrateId]:
        """Crates whose functions mention ``identifier`` anywhere."""
        with _store_errors("crates_mentioning"), self._db.session() as session:
            rows = session.exec(
                select(CrateRow.name, CrateRow.version)
                .join(TypeMentionRow, col(TypeMentionRow.crate_id) == col(CrateRow.id))
                .where(col(TypeMentionRow.ident) == identifier)
            ).all()
        return {CrateId(name, version) for name, version in rows}

    def list_crates(self) -> list[StoredCrate]:
        with _store_errors("list_crates"), self._db.session() as session:
            rows = session.exec(
                select(CrateRow).order_by(col(CrateRow.name), col(CrateRow.version))
            ).all()
            return [
                StoredCrate(r.crate_id(), r.import_name, r.fn_count, r.analyzed_at) for r in rows
            ]

    def _crate_pages(self) -> Iterator[list[CrateRow]]:
        """Keyset-paginated crate rows ordered by (name, version)."""
        last: tuple[str, str] | None = None
        while True:
            with _store_errors("iter_all_fn_records"), self._db.session() as session:
                stmt = select(CrateRow)
                if last is not None:
                    stmt = stmt.where(tuple_(col(CrateRow.name), col(CrateRow.version)) > tuple_(*last))
                page = session.exec(
                    stmt.order_by(col(CrateRow.name), col(CrateRow.version)).limit(self._page_size)
                ).all()
            if not page:
                return
            yield list(page)
            last = (page[-1].name, page[-1].version)

    def iter_all_fn_records(self) -> Iterator[tuple[CrateId, FnRecord]]:
        """Every stored function, ordered by crate then ordinal.

        Lazy: crates are paged by keyset and each crate's functions are read
        in their own snapshot. Calling again starts over.
        """
        for page in self._crate_pages():
            for crate_row in page:
                with _store_errors("iter_all_fn_records"), self._db.read_transaction() as session:
                    current = self._find_crate_row(session, crate_row.crate_id())
                    functions = (
                        []
                        if current is None or current.id is None
                        else self._load_functions(session, current.id)
                    )
                crate = crate_row.crate_id()
                for fn in functions:
                    yield crate, fn

    def get_functions(self, keys: Iterable[str]) -> dict[str, tuple[CrateId, FnRecord]]:
        """Look up functions by stable key. Unknown keys are omitted."""
        wanted = list(dict.fromkeys(keys))
        if not wanted:
            return {}
        found: dict[str, tuple[CrateId, FnRecord]] = {}
        with _store_errors("get_functions"), self._db.session() as session:
            for start in range(0, len(wanted), self._page_size):
                chunk = wanted[start : start + self._page_size]
                rows = session.exec(
                    select(FnRow, CrateRow)
                    .join(CrateRow, col(FnRow.crate_id) == col(CrateRow.id))
                    .where(col(FnRow.fn_key).in_(chunk))
                ).all()
                for fn_row, crate_row in rows:
                    found[fn_row.fn_key] = (crate_row.crate_id(), _decode(fn_row))
        return found

    def stats(self) -> StoreStats:
        with _store_errors("stats"), self._db.read_transaction() as session:
            crates = session.exec(select(func.count()).select_from(CrateRow)).one()
            functions = session.exec(select(func.count()).select_from(FnRow)).one()
            mentions = session.exec(select(func.count()).select_from(TypeMentionRow)).one()
        return StoreStats(crates=crates, functions=functions, type_mentions=mentions)

    def dump_lines(self) -> Iterator[str]:
        """Human-readable dump of every table, for debugging."""
        for stored in self.list_crates():
            yield f"crate {stored.crate} import={stored.import_name} fns={stored.fn_count}"
            record = self.get_crate(stored.crate)
            if record is None:
                continue
            for ordinal, fn in enumerate(record.functions):
                yield f"  {stored.crate.fn_key(ordinal)} {fn.signature()}"

        with _store_errors("dump"), self._db.session() as session:
            rows = session.exec(
                select(TypeMentionRow.ident, CrateRow.name, CrateRow.version)
                .join(CrateRow, col(TypeMentionRow.crate_id) == col(CrateRow.id))
                .order_by(col(TypeMentionRow.ident), col(CrateRow.name), col(CrateRow.version))
            ).all()
        by_ident: dict[str, list[str]] = {}
        for ident, name, version in rows:
            by_ident.setdefault(ident, []).append(f"{name}@{version}")
        for ident, crates in by_ident.items():
            yield f"type {ident}: {', '.join(crates)}"
