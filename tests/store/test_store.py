"""Tests for store/store.py module.

Covers:
- put_crate / get_crate round trip and wholesale replacement
- remove_crate and the derived type index
- crates_mentioning, iter_all_fn_records, get_functions
- rebuild_type_index, stats, list_crates, dump_lines
- readers never observing a half-replaced crate
"""

from __future__ import annotations

import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from factories import crate_record, fn
from reeves.config.models import StoreConfig
from reeves.core.errors import ErrorCode, StoreError
from reeves.signature import CrateId, CrateRecord, Reference
from reeves.store import SignatureStore
from reeves.store.models import FnRow


def header_crate(version: str = "0.1.0") -> CrateRecord:
    return crate_record(
        f"demo@{version}",
        fn("parse", ["&[u8]"], "Option<Header>", owner="Header", receiver=Reference.SHARED),
        fn("name", [], "String", owner="Header", receiver=Reference.SHARED),
        fn("checksum", ["&[u8; 4]"], "u32"),
    )


class TestPutAndGet:
    """Tests for put_crate and get_crate."""

    def test_round_trip_preserves_order_and_content(self, store: SignatureStore) -> None:
        """Functions come back equal and in insertion order."""
        # Given
        record = header_crate()

        # When
        store.put_crate(record)
        loaded = store.get_crate(CrateId("demo", "0.1.0"))

        # Then
        assert loaded == record

    def test_missing_crate_returns_none(self, store: SignatureStore) -> None:
        assert store.get_crate(CrateId("nope", "1.0.0")) is None

    def test_put_replaces_previous_record(self, store: SignatureStore) -> None:
        """A second put for the same crate discards every earlier function."""
        # Given
        store.put_crate(header_crate())
        replacement = crate_record("demo@0.1.0", fn("only", ["Token"]))

        # When
        store.put_crate(replacement)

        # Then
        loaded = store.get_crate(CrateId("demo", "0.1.0"))
        assert loaded is not None
        assert [f.name for f in loaded.functions] == ["only"]
        assert store.crates_mentioning("Header") == set()
        assert store.crates_mentioning("Token") == {CrateId("demo", "0.1.0")}

    def test_put_is_idempotent(self, store: SignatureStore) -> None:
        """Storing the same record twice leaves one copy."""
        store.put_crate(header_crate())
        store.put_crate(header_crate())

        stats = store.stats()
        assert stats.crates == 1
        assert stats.functions == 3

    def test_versions_are_independent(self, store: SignatureStore) -> None:
        store.put_crate(header_crate("0.1.0"))
        store.put_crate(crate_record("demo@0.2.0", fn("f")))

        old = store.get_crate(CrateId("demo", "0.1.0"))
        assert old is not None
        assert len(old.functions) == 3

    def test_empty_crate_is_stored(self, store: SignatureStore) -> None:
        """A crate with no public functions is still recorded as analyzed."""
        store.put_crate(crate_record("empty@1.0.0"))
        loaded = store.get_crate(CrateId("empty", "1.0.0"))
        assert loaded is not None
        assert loaded.functions == ()


class TestRemove:
    """Tests for remove_crate."""

    def test_remove_drops_functions_and_mentions(self, store: SignatureStore) -> None:
        store.put_crate(header_crate())

        assert store.remove_crate(CrateId("demo", "0.1.0")) is True

        assert store.get_crate(CrateId("demo", "0.1.0")) is None
        assert store.crates_mentioning("Header") == set()
        assert store.stats().functions == 0
        assert store.stats().type_mentions == 0

    def test_remove_missing_returns_false(self, store: SignatureStore) -> None:
        assert store.remove_crate(CrateId("demo", "9.9.9")) is False


class TestTypeIndex:
    """Tests for crates_mentioning and rebuild_type_index."""

    def test_mentions_cover_nested_generics_and_markers(self, store: SignatureStore) -> None:
        store.put_crate(header_crate())
        crate = CrateId("demo", "0.1.0")

        for ident in ("Header", "Option", "u8", "u32", "String", "[]"):
            assert store.crates_mentioning(ident) == {crate}, ident

    def test_unknown_identifier(self, store: SignatureStore) -> None:
        store.put_crate(header_crate())
        assert store.crates_mentioning("Frame") == set()

    def test_rebuild_restores_index(self, store: SignatureStore) -> None:
        """Rebuilding from records reproduces the mentions written by put_crate."""
        # Given
        store.put_crate(header_crate())
        store.put_crate(crate_record("other@1.0.0", fn("frame", [], "Frame")))
        before = store.stats().type_mentions

        # When
        entries = store.rebuild_type_index()

        # Then
        assert entries == before
        assert store.crates_mentioning("Frame") == {CrateId("other", "1.0.0")}
        assert store.crates_mentioning("Header") == {CrateId("demo", "0.1.0")}


class TestEnumeration:
    """Tests for iter_all_fn_records, list_crates and get_functions."""

    def test_iterates_every_function_across_pages(self, store: SignatureStore) -> None:
        """The fixture's page size of 2 forces several crate pages."""
        # Given
        for name in ("c", "a", "e", "b", "d"):
            store.put_crate(crate_record(f"{name}@1.0.0", fn(f"{name}_one"), fn(f"{name}_two")))

        # When
        seen = [(str(crate), f.name) for crate, f in store.iter_all_fn_records()]

        # Then
        assert seen == [
            (f"{n}@1.0.0", f"{n}_{i}") for n in ("a", "b", "c", "d", "e") for i in ("one", "two")
        ]

    def test_iteration_restarts(self, store: SignatureStore) -> None:
        store.put_crate(header_crate())
        assert len(list(store.iter_all_fn_records())) == len(list(store.iter_all_fn_records())) == 3

    def test_list_crates_sorted(self, store: SignatureStore) -> None:
        store.put_crate(crate_record("zeta@1.0.0", fn("z")))
        store.put_crate(header_crate())

        listed = store.list_crates()

        assert [str(c.crate) for c in listed] == ["demo@0.1.0", "zeta@1.0.0"]
        assert listed[0].fn_count == 3
        assert listed[0].import_name == "demo"
        assert listed[0].analyzed_at is not None

    def test_get_functions_by_key(self, store: SignatureStore) -> None:
        """Known keys resolve to (crate, record); unknown keys are omitted."""
        store.put_crate(header_crate())
        crate = CrateId("demo", "0.1.0")

        found = store.get_functions(["demo@0.1.0#2", "demo@0.1.0#0", "demo@0.1.0#7", "x@1#0"])

        assert set(found) == {"demo@0.1.0#0", "demo@0.1.0#2"}
        assert found["demo@0.1.0#2"] == (crate, fn("checksum", ["&[u8; 4]"], "u32"))

    def test_get_functions_chunks_large_requests(self, store: SignatureStore) -> None:
        store.put_crate(crate_record("wide@1.0.0", *(fn(f"f{i}") for i in range(7))))

        found = store.get_functions(f"wide@1.0.0#{i}" for i in range(7))

        assert [found[f"wide@1.0.0#{i}"][1].name for i in range(7)] == [f"f{i}" for i in range(7)]

    def test_get_functions_empty(self, store: SignatureStore) -> None:
        assert store.get_functions([]) == {}


class TestDump:
    """Tests for dump_lines."""

    def test_dump_lists_crates_functions_and_types(self, store: SignatureStore) -> None:
        store.put_crate(header_crate())

        lines = list(store.dump_lines())

        assert lines[0] == "crate demo@0.1.0 import=demo fns=3"
        assert lines[1] == "  demo@0.1.0#0 fn Header::parse(&self, &[u8]) -> Option<Header>"
        assert "type Header: demo@0.1.0" in lines


class TestConcurrency:
    """Readers see either the old or the new record, never a mix."""

    def test_concurrent_reader_sees_whole_records(self, store: SignatureStore) -> None:
        # Given
        crate = CrateId("demo", "0.1.0")
        small = crate_record("demo@0.1.0", *(fn(f"old{i}") for i in range(3)))
        large = crate_record("demo@0.1.0", *(fn(f"new{i}") for i in range(8)))
        store.put_crate(small)
        valid = {small.functions, large.functions}
        stop = threading.Event()
        errors: list[str] = []

        def reader() -> None:
            while not stop.is_set():
                loaded = store.get_crate(crate)
                if loaded is None or loaded.functions not in valid:
                    errors.append(repr(loaded))
                    return

        # When
        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        try:
            for i in range(20):
                store.put_crate(large if i % 2 == 0 else small)
        finally:
            stop.set()
            for t in threads:
                t.join(timeout=10)

        # Then
        assert errors == []


class TestErrors:
    """Tests for storage error surfacing."""

    def test_corrupt_row_raises_store_error(self, store: SignatureStore) -> None:
        """A row whose JSON no longer decodes is reported, not skipped."""
        # Given
        store.put_crate(header_crate())
        with store._db.immediate_transaction() as session:
            row = session.execute(
                FnRow.__table__.select().where(FnRow.__table__.c.ordinal == 0)  # type: ignore[attr-defined]
            ).first()
            assert row is not None
            session.execute(
                FnRow.__table__.update()  # type: ignore[attr-defined]
                .where(FnRow.__table__.c.id == row.id)  # type: ignore[attr-defined]
                .values(params_json="{broken")
            )

        # When / Then
        with pytest.raises(StoreError) as exc_info:
            store.get_crate(CrateId("demo", "0.1.0"))
        assert exc_info.value.code == ErrorCode.STORE_CORRUPT_RECORD
        assert exc_info.value.details["key"] == "demo@0.1.0#0"

    def test_insert_without_row_id_raises_store_error(self, store: SignatureStore) -> None:
        """A crate row that never receives an id aborts the replace."""
        with (
            patch("reeves.store.database.Session.flush"),
            pytest.raises(StoreError) as exc_info,
        ):
            store.put_crate(header_crate())

        assert exc_info.value.code == ErrorCode.STORE_CORRUPT_RECORD
        assert exc_info.value.details["key"] == "demo@0.1.0"
        assert store.get_crate(CrateId("demo", "0.1.0")) is None

    def test_unopenable_path_raises_store_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(StoreError) as exc_info:
            SignatureStore(blocker / "reeves.db")
        assert exc_info.value.code == ErrorCode.STORE_IO_ERROR


class TestFromConfig:
    """Tests for SignatureStore.from_config."""

    def test_uses_config_values(self, tmp_path: Path) -> None:
        config = StoreConfig(db_path=str(tmp_path / "cfg.db"), page_size=7)
        with SignatureStore.from_config(config) as s:
            assert s.db_path == tmp_path / "cfg.db"
            assert s._page_size == 7
            assert (tmp_path / "cfg.db").exists()
