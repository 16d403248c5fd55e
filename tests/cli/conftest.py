"""Shared fixtures for CLI tests."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from factories import crate_record, fn
from reeves.signature import Reference
from reeves.store import SignatureStore


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """The reeves group reconfigures the root logger; put it back afterwards."""
    monkeypatch.setenv("REEVES__LOGGING__LEVEL", "WARNING")
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "cli.db"


@pytest.fixture
def seeded_db(db_path: Path) -> Path:
    """Store with demo@0.1.0 (three functions) and other@1.0.0 (one)."""
    with SignatureStore(db_path) as store:
        store.put_crate(
            crate_record(
                "demo@0.1.0",
                fn("parse", ["&[u8]"], "Option<Header>", owner="Header", receiver=Reference.SHARED),
                fn("name", [], "String", owner="Header", receiver=Reference.SHARED),
                fn("checksum", ["&[u8; 4]"], "u32"),
            )
        )
        store.put_crate(crate_record("other@1.0.0", fn("split", ["&Header", "u8"], "Vec<Header>")))
    return db_path
