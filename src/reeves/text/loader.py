"""Projects the signature store into the text index."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from reeves.text.lexical import TextDocument, TextIndex

if TYPE_CHECKING:
    from reeves.signature import CrateId
    from reeves.store import SignatureStore

log = structlog.get_logger(__name__)


class TextIndexLoader:
    """Rebuilds the text index from every stored function."""

    def __init__(self, batch_size: int = 1000) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.batch_size = batch_size

    def load(self, store: SignatureStore, index: TextIndex, *, clear: bool = True) -> int:
        """Upsert one document per stored function. Returns the number loaded.

        Functions arrive grouped by crate in ordinal order, which is what
        makes the running ordinal below equal to the stored key.
        """
        if clear:
            index.clear()

        batch: list[TextDocument] = []
        loaded = 0
        current: CrateId | None = None
        ordinal = 0
        for crate, fn in store.iter_all_fn_records():
            if crate != current:
                current, ordinal = crate, 0
            batch.append(TextDocument.from_record(crate, ordinal, fn))
            ordinal += 1
            if len(batch) >= self.batch_size:
                loaded += index.upsert(batch)
                batch = []
        if batch:
            loaded += index.upsert(batch)

        log.info("text_index_loaded", documents=loaded)
        return loaded
