"""Structural type matching.

A query type matches a stored type when the bases are equal and every
generic the query spells out matches the stored generic at the same
position. Stored generics the query leaves out are wildcards, so ``Option``
matches ``Option<u8>`` and ``[u8]`` matches ``[u8; 512]``. References are
ignored.
"""

from __future__ import annotations

from collections.abc import Sequence

from reeves.signature import FnRecord, TypeExpr


def type_matches(query: TypeExpr, stored: TypeExpr) -> bool:
    """Does ``stored`` (exactly this node, not its children) satisfy ``query``?"""
    if query.base != stored.base:
        return False
    if query.array_len is not None and query.array_len != stored.array_len:
        return False
    if len(query.generics) > len(stored.generics):
        return False
    return all(type_matches(q, s) for q, s in zip(query.generics, stored.generics, strict=False))


def occurs_in(query: TypeExpr, stored: TypeExpr) -> bool:
    """Does ``query`` match ``stored`` or any type nested in its generics?"""
    return any(type_matches(query, node) for node in stored.walk())


def fn_matches(queries: Sequence[TypeExpr], fn: FnRecord) -> bool:
    """Every query occurs somewhere in the receiver, params or return type."""
    types = fn.mentioned_types()
    return all(any(occurs_in(q, t) for t in types) for q in queries)
