"""Function and crate records built from analysis output."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from reeves.core.errors import QueryError
from reeves.signature.expr import Reference, TypeExpr, format_type
from reeves.signature.parser import parse_type


@dataclass(frozen=True, slots=True, order=True)
class CrateId:
    """Crate identity: package name plus version."""

    name: str
    version: str

    @classmethod
    def parse(cls, text: str) -> CrateId:
        """Parse 'name@version' (or 'name version')."""
        sep = "@" if "@" in text else " "
        name, _, version = text.strip().partition(sep)
        name, version = name.strip(), version.strip()
        if not name or not version:
            raise ValueError(f"Expected 'name@version', got {text!r}")
        return cls(name, version)

    def fn_key(self, ordinal: int) -> str:
        """Stable identifier of the ordinal-th function of this crate."""
        return f"{self.name}@{self.version}#{ordinal}"

    def __str__(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass(frozen=True, slots=True)
class FnRecord:
    """One exported function or method.

    ``receiver`` is None for functions without ``self``; ``Reference.NONE``
    means ``self`` is taken by value. ``ret`` is None for unit returns.
    """

    name: str
    params: tuple[TypeExpr, ...] = ()
    ret: TypeExpr | None = None
    owner: str | None = None
    receiver: Reference | None = None
    path: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.params, tuple):
            object.__setattr__(self, "params", tuple(self.params))
        if self.receiver is not None and self.owner is None:
            raise ValueError(f"method {self.name!r} has a receiver but no owner")

    @property
    def display_path(self) -> str:
        if self.path:
            return self.path
        if self.owner:
            return f"{self.owner}::{self.name}"
        return self.name

    def owner_type(self) -> TypeExpr | None:
        """The owner as a type expression (best effort for odd owner strings)."""
        if self.owner is None:
            return None
        try:
            return parse_type(self.owner)
        except QueryError:
            return TypeExpr(self.owner)

    def receiver_type(self) -> TypeExpr | None:
        """``self`` as a type: the owner with the receiver's reference kind."""
        owner = self.owner_type()
        if owner is None or self.receiver is None:
            return None
        return owner.with_reference(self.receiver)

    def mentioned_types(self) -> list[TypeExpr]:
        """Receiver, params and return type, the occurrences a query can hit."""
        types: list[TypeExpr] = []
        receiver = self.receiver_type()
        if receiver is not None:
            types.append(receiver)
        types.extend(self.params)
        if self.ret is not None:
            types.append(self.ret)
        return types

    def identifiers(self) -> set[str]:
        """Every base identifier mentioned by owner, receiver, params or return."""
        idents: set[str] = set()
        owner = self.owner_type()
        if owner is not None:
            idents |= owner.identifiers()
        for expr in self.mentioned_types():
            idents |= expr.identifiers()
        return idents

    def signature(self) -> str:
        """Canonical display signature, reproducible from the record alone."""
        args: list[str] = []
        if self.receiver is not None:
            args.append(self.receiver.self_param)
        args.extend(format_type(p) for p in self.params)
        sig = f"fn {self.display_path}({', '.join(args)})"
        if self.ret is not None:
            sig += f" -> {format_type(self.ret)}"
        return sig

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "owner": self.owner,
            "receiver": None if self.receiver is None else self.receiver.value,
            "path": self.path,
            "params": [p.to_dict() for p in self.params],
            "ret": None if self.ret is None else self.ret.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FnRecord:
        receiver = data.get("receiver")
        ret = data.get("ret")
        return cls(
            name=data["name"],
            owner=data.get("owner"),
            receiver=None if receiver is None else Reference(receiver),
            path=data.get("path"),
            params=tuple(TypeExpr.from_dict(p) for p in data.get("params", ())),
            ret=None if ret is None else TypeExpr.from_dict(ret),
        )

    def __str__(self) -> str:
        return self.signature()


@dataclass(frozen=True, slots=True)
class CrateRecord:
    """A crate's identity, import name and exported functions."""

    crate: CrateId
    import_name: str
    functions: tuple[FnRecord, ...] = field(default=())

    def __post_init__(self) -> None:
        if not isinstance(self.functions, tuple):
            object.__setattr__(self, "functions", tuple(self.functions))

    def identifiers(self) -> set[str]:
        """Type index contribution of this crate."""
        idents: set[str] = set()
        for fn in self.functions:
            idents |= fn.identifiers()
        return idents
