"""Type-directed query matching."""

from reeves.query.matcher import fn_matches, occurs_in, type_matches
from reeves.query.search import QueryMatcher, SearchHit, SearchResults, parse_queries

__all__ = [
    "QueryMatcher",
    "SearchHit",
    "SearchResults",
    "fn_matches",
    "occurs_in",
    "parse_queries",
    "type_matches",
]
