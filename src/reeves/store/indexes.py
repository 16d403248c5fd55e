"""Additional index creation for query performance.

These indexes complement the basic indexes defined in SQLModel Field()
declarations. They are composite indexes for common query patterns that
cannot be expressed via Field(index=True).

Call create_additional_indexes() after Database.create_all().
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text

if TYPE_CHECKING:
    from sqlalchemy import Engine


ADDITIONAL_INDEXES = [
    # Per-crate function listing in ordinal order
    "CREATE INDEX IF NOT EXISTS idx_fn_records_crate_ordinal ON fn_records(crate_id, ordinal)",
    # Reverse lookup when a crate's mentions are dropped
    "CREATE INDEX IF NOT EXISTS idx_type_mentions_crate ON type_mentions(crate_id)",
]


def create_additional_indexes(engine: Engine) -> None:
    """
    Create additional composite indexes.

    Call this after Database.create_all() to add performance indexes
    that cannot be expressed via SQLModel Field() declarations.
    """
    with engine.connect() as conn:
        for sql in ADDITIONAL_INDEXES:
            conn.execute(text(sql))
        conn.commit()

