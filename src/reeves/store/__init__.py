"""Signature store: SQLite persistence for crate records and the type index."""

from reeves.store.database import Database
from reeves.store.store import SignatureStore, StoreStats, StoredCrate

__all__ = [
    "Database",
    "SignatureStore",
    "StoreStats",
    "StoredCrate",
]
