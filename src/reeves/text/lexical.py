"""Free-text function search via Tantivy.

One document per stored function, keyed by its stable function key. The key
field uses the raw tokenizer so deletes match it exactly; signature, name,
owner and crate are tokenized for ranking.
"""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import tantivy

from reeves.core.errors import TextBackendError
from reeves.signature import CrateId, FnRecord

log = structlog.get_logger(__name__)

_SEARCH_FIELDS = ["signature", "name", "owner", "crate"]
_TERM_RE = re.compile(r"[A-Za-z0-9_]+")


@dataclass(frozen=True, slots=True)
class TextDocument:
    """Projection of one FnRecord into the text backend."""

    fn_key: str
    signature: str
    name: str
    owner: str
    crate: str

    @classmethod
    def from_record(cls, crate: CrateId, ordinal: int, fn: FnRecord) -> TextDocument:
        return cls(
            fn_key=crate.fn_key(ordinal),
            signature=fn.signature(),
            name=fn.name,
            owner=fn.owner or "",
            crate=str(crate),
        )


def build_text_query(text: str) -> str:
    """Reduce free text to OR-ed word terms, dropping Tantivy syntax."""
    return " ".join(_TERM_RE.findall(text))


class TextIndex:
    """
    Tantivy index of function signatures.

    Usage::

        index = TextIndex(Path("reeves.tantivy"))
        index.upsert([TextDocument.from_record(crate, 0, fn)])
        keys = index.search("Header parse", limit=10)
    """

    def __init__(self, index_path: Path | str):
        self.index_path = Path(index_path)
        self._index: Any = None
        self._initialized = False
        self._write_lock = threading.Lock()

    def _ensure_initialized(self) -> None:
        """Lazily create or open the Tantivy index."""
        if self._initialized:
            return

        schema_builder = tantivy.SchemaBuilder()
        schema_builder.add_text_field("fn_key", stored=True, tokenizer_name="raw")
        # Exact crate identity for per-crate deletes
        schema_builder.add_text_field("crate_exact", stored=False, tokenizer_name="raw")
        schema_builder.add_text_field("signature", stored=True, tokenizer_name="default")
        schema_builder.add_text_field("name", stored=True, tokenizer_name="default")
        schema_builder.add_text_field("owner", stored=True, tokenizer_name="default")
        schema_builder.add_text_field("crate", stored=True, tokenizer_name="default")
        schema = schema_builder.build()

        try:
            self.index_path.mkdir(parents=True, exist_ok=True)
            self._index = tantivy.Index(schema, path=str(self.index_path))
        except (OSError, ValueError) as e:
            raise TextBackendError.unavailable(str(self.index_path), str(e)) from e
        self._initialized = True

    def upsert(self, docs: list[TextDocument]) -> int:
        """Replace documents by fn_key in a single writer commit."""
        if not docs:
            return 0
        self._ensure_initialized()
        with self._write_lock:
            try:
                writer = self._index.writer()
                for d in docs:
                    writer.delete_documents("fn_key", d.fn_key)
                    doc = tantivy.Document()
                    doc.add_text("fn_key", d.fn_key)
                    doc.add_text("crate_exact", d.crate)
                    doc.add_text("signature", d.signature)
                    doc.add_text("name", d.name)
                    doc.add_text("owner", d.owner)
                    doc.add_text("crate", d.crate)
                    writer.add_document(doc)
                writer.commit()
                writer.wait_merging_threads()
            except (OSError, ValueError) as e:
                raise TextBackendError.failed("upsert", str(e)) from e
        self._index.reload()
        return len(docs)

    def remove_crate(self, crate: CrateId) -> None:
        """Drop every document of one crate version."""
        self._ensure_initialized()
        with self._write_lock:
            try:
                writer = self._index.writer()
                writer.delete_documents("crate_exact", str(crate))
                writer.commit()
                writer.wait_merging_threads()
            except (OSError, ValueError) as e:
                raise TextBackendError.failed("remove_crate", str(e)) from e
        self._index.reload()

    def clear(self) -> None:
        """Clear all documents from the index."""
        self._ensure_initialized()
        with self._write_lock:
            try:
                writer = self._index.writer()
                writer.delete_all_documents()
                writer.commit()
                writer.wait_merging_threads()
            except (OSError, ValueError) as e:
                raise TextBackendError.failed("clear", str(e)) from e
        self._index.reload()

    def search(self, query: str, limit: int = 20) -> list[str]:
        """Function keys matching ``query``, best first."""
        return [key for key, _score in self.search_scored(query, limit)]

    def search_scored(self, query: str, limit: int = 20) -> list[tuple[str, float]]:
        """(fn_key, score) pairs matching ``query``, best first."""
        self._ensure_initialized()
        text_query = build_text_query(query)
        if not text_query or limit <= 0:
            return []

        start = time.monotonic()
        try:
            searcher = self._index.searcher()
            parsed = self._index.parse_query(text_query, _SEARCH_FIELDS)
            hits = searcher.search(parsed, limit).hits
            scored = [(searcher.doc(addr).get_first("fn_key"), float(score)) for score, addr in hits]
        except (OSError, ValueError) as e:
            raise TextBackendError.failed("search", str(e)) from e

        log.debug(
            "text_search",
            terms=text_query,
            hits=len(scored),
            query_time_ms=int((time.monotonic() - start) * 1000),
        )
        return [(key, score) for key, score in scored if key]

    def doc_count(self) -> int:
        """Return number of documents in the index."""
        self._ensure_initialized()
        self._index.reload()
        return int(self._index.searcher().num_docs)
