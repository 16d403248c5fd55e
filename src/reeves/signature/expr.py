"""Recursive type expressions and their canonical display form.

A ``TypeExpr`` is a tagged tree: every node has a ``base`` identifier and an
ordered tuple of generic arguments. Arrays, slices, tuples, pointers, trait
objects and function pointers are expressed with marker bases instead of
separate node types, so matching, formatting and serialization are each a
single recursive function.

Canonical display examples::

    u8                  TypeExpr("u8")
    &mut Vec<u8>        TypeExpr("Vec", (TypeExpr("u8"),), Reference.MUTABLE)
    &[u8; 512]          TypeExpr("[]", (TypeExpr("u8"),), Reference.SHARED, 512)
    (u8, String)        TypeExpr("()", (TypeExpr("u8"), TypeExpr("String")))
    impl Iterator<u8>   TypeExpr("impl", (TypeExpr("Iterator", (TypeExpr("u8"),)),))
    fn(u8) -> bool      TypeExpr("fn", (TypeExpr("u8"), TypeExpr("bool")))
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

ARRAY = "[]"
TUPLE = "()"
IMPL = "impl"
DYN = "dyn"
CONST_PTR = "*const"
MUT_PTR = "*mut"
FN_PTR = "fn"
UNKNOWN = "_"
NEVER = "!"

_UNARY_MARKERS = frozenset({ARRAY, IMPL, DYN, CONST_PTR, MUT_PTR})


class Reference(str, Enum):
    """Reference modifier applied to a whole type expression."""

    NONE = ""
    SHARED = "&"
    MUTABLE = "&mut"

    @property
    def prefix(self) -> str:
        """Display prefix, e.g. '&mut ' for MUTABLE."""
        if self is Reference.MUTABLE:
            return "&mut "
        return self.value

    @property
    def self_param(self) -> str:
        """Receiver display, e.g. '&mut self'."""
        return f"{self.prefix}self"


@dataclass(frozen=True, slots=True)
class TypeExpr:
    """A type signature fragment. Immutable; equality is structural."""

    base: str
    generics: tuple[TypeExpr, ...] = field(default=())
    reference: Reference = Reference.NONE
    array_len: int | None = None

    def __post_init__(self) -> None:
        if not self.base:
            raise ValueError("TypeExpr base must not be empty")
        if not isinstance(self.generics, tuple):
            object.__setattr__(self, "generics", tuple(self.generics))
        if self.array_len is not None:
            if self.base != ARRAY:
                raise ValueError(f"array_len is only valid on arrays, not {self.base!r}")
            if self.array_len < 0:
                raise ValueError(f"array_len must not be negative, got {self.array_len}")
        if self.base in _UNARY_MARKERS and len(self.generics) != 1:
            raise ValueError(f"{self.base!r} takes exactly one type argument")
        if self.base == FN_PTR and not self.generics:
            raise ValueError("function pointers need at least a return type")

    @property
    def is_array(self) -> bool:
        return self.base == ARRAY and self.array_len is not None

    @property
    def is_slice(self) -> bool:
        return self.base == ARRAY and self.array_len is None

    @property
    def is_unit(self) -> bool:
        return self.base == TUPLE and not self.generics

    def walk(self) -> Iterator[TypeExpr]:
        """Yield this expression and every nested generic, pre-order."""
        yield self
        for generic in self.generics:
            yield from generic.walk()

    def identifiers(self) -> set[str]:
        """All base identifiers mentioned anywhere in the expression."""
        return {node.base for node in self.walk()}

    def with_reference(self, reference: Reference) -> TypeExpr:
        return replace(self, reference=reference)

    def to_dict(self) -> dict[str, Any]:
        """Compact JSON-ready form; default-valued keys are omitted."""
        data: dict[str, Any] = {"b": self.base}
        if self.generics:
            data["g"] = [g.to_dict() for g in self.generics]
        if self.reference is not Reference.NONE:
            data["r"] = self.reference.value
        if self.array_len is not None:
            data["n"] = self.array_len
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TypeExpr:
        return cls(
            base=data["b"],
            generics=tuple(cls.from_dict(g) for g in data.get("g", ())),
            reference=Reference(data.get("r", "")),
            array_len=data.get("n"),
        )

    def __str__(self) -> str:
        return format_type(self)


UNIT = TypeExpr(TUPLE)


def format_type(expr: TypeExpr) -> str:
    """Format an expression in the canonical display grammar."""
    return expr.reference.prefix + _format_core(expr)


def _format_core(expr: TypeExpr) -> str:
    base = expr.base
    args = [format_type(g) for g in expr.generics]

    if base == ARRAY:
        if expr.array_len is None:
            return f"[{args[0]}]"
        return f"[{args[0]}; {expr.array_len}]"
    if base == TUPLE:
        if len(args) == 1:
            return f"({args[0]},)"
        return f"({', '.join(args)})"
    if base in (IMPL, DYN, CONST_PTR, MUT_PTR):
        return f"{base} {args[0]}"
    if base == FN_PTR:
        return f"fn({', '.join(args[:-1])}) -> {args[-1]}"
    if args:
        return f"{base}<{', '.join(args)}>"
    return base
