"""Type-directed function search.

Structural hits come from the signature store: the type index narrows the
candidate crates, then each candidate's functions are matched against every
query type. Free-text hits from the text backend are appended after them,
in backend rank order, without deduplication.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

import structlog

from reeves.core.errors import QueryError, TextBackendError
from reeves.query.matcher import fn_matches
from reeves.signature import CrateId, TypeExpr, parse_type

if TYPE_CHECKING:
    from reeves.store import SignatureStore
    from reeves.text import TextIndex

log = structlog.get_logger(__name__)

HitSource = Literal["structural", "text"]


@dataclass(frozen=True, slots=True)
class SearchHit:
    crate: CrateId
    fn_key: str
    signature: str
    source: HitSource
    score: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "crate": self.crate.name,
            "version": self.crate.version,
            "fn_key": self.fn_key,
            "signature": self.signature,
            "source": self.source,
            "score": self.score,
        }


@dataclass
class SearchResults:
    """Ranked hits: structural first, then text."""

    hits: list[SearchHit] = field(default_factory=list)
    structural_total: int = 0
    candidate_crates: int = 0
    text_degraded: bool = False
    query_time_ms: int = 0

    @property
    def structural(self) -> list[SearchHit]:
        return [h for h in self.hits if h.source == "structural"]

    @property
    def text(self) -> list[SearchHit]:
        return [h for h in self.hits if h.source == "text"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": [h.to_dict() for h in self.hits],
            "structural_total": self.structural_total,
            "candidate_crates": self.candidate_crates,
            "text_degraded": self.text_degraded,
            "query_time_ms": self.query_time_ms,
        }


def parse_queries(queries: Sequence[str]) -> list[TypeExpr]:
    """Parse every query string.

    Raises:
        QueryError: empty_query for an empty list, parse_error for the first
            unparsable query.
    """
    if not queries:
        raise QueryError.empty_query()
    return [parse_type(q) for q in queries]


class QueryMatcher:
    """Answers type queries against a SignatureStore and optional TextIndex.

    Usage::

        matcher = QueryMatcher(store, text_index)
        results = matcher.search(["Header", "u8"])
    """

    def __init__(
        self,
        store: SignatureStore,
        text_index: TextIndex | None = None,
        *,
        limit: int = 200,
        text_limit: int = 20,
    ) -> None:
        self.store = store
        self.text_index = text_index
        self.limit = limit
        self.text_limit = text_limit

    def search(
        self,
        queries: Sequence[str],
        *,
        limit: int | None = None,
        text_limit: int | None = None,
    ) -> SearchResults:
        start = time.monotonic()
        parsed = parse_queries(queries)
        limit = self.limit if limit is None else limit
        text_limit = self.text_limit if text_limit is None else text_limit

        results = SearchResults()
        structural = self._structural(parsed, results)
        results.structural_total = len(structural)
        results.hits.extend(structural[: max(limit, 0)])
        results.hits.extend(self._text(queries, text_limit, results))
        results.query_time_ms = int((time.monotonic() - start) * 1000)

        log.info(
            "search_completed",
            queries=list(queries),
            candidates=results.candidate_crates,
            structural=results.structural_total,
            returned=len(results.hits),
            query_time_ms=results.query_time_ms,
        )
        return results

    def candidate_crates(self, parsed: Sequence[TypeExpr]) -> set[CrateId]:
        """Crates mentioning every queried base identifier."""
        candidates: set[CrateId] | None = None
        for query in parsed:
            mentioning = self.store.crates_mentioning(query.base)
            candidates = mentioning if candidates is None else candidates & mentioning
            if not candidates:
                return set()
        return candidates or set()

    def _structural(self, parsed: Sequence[TypeExpr], results: SearchResults) -> list[SearchHit]:
        candidates = self.candidate_crates(parsed)
        results.candidate_crates = len(candidates)

        hits: list[SearchHit] = []
        for crate in sorted(candidates):
            record = self.store.get_crate(crate)
            if record is None:
                continue  # removed since the type index was read
            for ordinal, fn in enumerate(record.functions):
                if fn_matches(parsed, fn):
                    hits.append(
                        SearchHit(crate, crate.fn_key(ordinal), fn.signature(), "structural")
                    )
        hits.sort(key=lambda h: (h.signature, h.crate))
        return hits

    def _text(
        self, queries: Sequence[str], text_limit: int, results: SearchResults
    ) -> list[SearchHit]:
        if self.text_index is None or text_limit <= 0:
            return []
        try:
            scored = self.text_index.search_scored(" ".join(queries), text_limit)
        except TextBackendError as e:
            log.warning("text_backend_failed", error=str(e))
            results.text_degraded = True
            return []

        found = self.store.get_functions(key for key, _ in scored)
        hits: list[SearchHit] = []
        for key, score in scored:
            entry = found.get(key)
            if entry is None:
                continue  # text index is stale for this key
            crate, fn = entry
            hits.append(SearchHit(crate, key, fn.signature(), "text", score))
        return hits
