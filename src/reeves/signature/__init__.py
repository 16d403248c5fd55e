"""Type expression model: TypeExpr, its grammar, and function/crate records."""

from reeves.signature.expr import (
    ARRAY,
    TUPLE,
    UNIT,
    UNKNOWN,
    Reference,
    TypeExpr,
    format_type,
)
from reeves.signature.parser import parse_type, tokenize
from reeves.signature.records import CrateId, CrateRecord, FnRecord

__all__ = [
    "ARRAY",
    "TUPLE",
    "UNIT",
    "UNKNOWN",
    "CrateId",
    "CrateRecord",
    "FnRecord",
    "Reference",
    "TypeExpr",
    "format_type",
    "parse_type",
    "tokenize",
]
