"""SQLModel definitions for the signature store.

Single source of truth for all table schemas.

- crates:        one row per analyzed crate identity (name, version)
- fn_records:    exported functions, TypeExprs serialized as JSON
- type_mentions: derived index, base identifier -> crate. Rebuildable
                 entirely from fn_records (see SignatureStore.rebuild_type_index)

Child rows cascade on crate deletion, so replacing a crate is a delete of
the crate row followed by fresh inserts, all in one transaction.
"""

import json
from typing import Any

from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint
from sqlmodel import Field, SQLModel

from reeves.signature import CrateId, FnRecord, Reference, TypeExpr


class CrateRow(SQLModel, table=True):
    """Analyzed crate identity."""

    __tablename__ = "crates"
    __table_args__ = (UniqueConstraint("name", "version", name="uq_crates_name_version"),)

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    version: str
    import_name: str
    fn_count: int = 0
    analyzed_at: float | None = None

    def crate_id(self) -> CrateId:
        return CrateId(self.name, self.version)


class FnRow(SQLModel, table=True):
    """One exported function. Ordinal is its position in the crate record."""

    __tablename__ = "fn_records"

    id: int | None = Field(default=None, primary_key=True)
    crate_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("crates.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    ordinal: int
    fn_key: str = Field(unique=True, index=True)
    name: str = Field(index=True)
    owner: str | None = None
    receiver: str | None = None  # Reference value, None when there is no self
    path: str | None = None
    params_json: str = "[]"
    ret_json: str | None = None
    signature: str  # display only, never used for matching

    @classmethod
    def from_record(cls, crate_row_id: int, crate: CrateId, ordinal: int, fn: FnRecord) -> dict[str, Any]:
        """Column mapping for a bulk insert."""
        return {
            "crate_id": crate_row_id,
            "ordinal": ordinal,
            "fn_key": crate.fn_key(ordinal),
            "name": fn.name,
            "owner": fn.owner,
            "receiver": None if fn.receiver is None else fn.receiver.value,
            "path": fn.path,
            "params_json": json.dumps([p.to_dict() for p in fn.params], separators=(",", ":")),
            "ret_json": None
            if fn.ret is None
            else json.dumps(fn.ret.to_dict(), separators=(",", ":")),
            "signature": fn.signature(),
        }

    def to_record(self) -> FnRecord:
        return FnRecord(
            name=self.name,
            owner=self.owner,
            receiver=None if self.receiver is None else Reference(self.receiver),
            path=self.path,
            params=tuple(TypeExpr.from_dict(p) for p in json.loads(self.params_json)),
            ret=None if self.ret_json is None else TypeExpr.from_dict(json.loads(self.ret_json)),
        )


class TypeMentionRow(SQLModel, table=True):
    """Derived: a crate mentions this base identifier somewhere in its functions."""

    __tablename__ = "type_mentions"

    ident: str = Field(primary_key=True)
    crate_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("crates.id", ondelete="CASCADE"), primary_key=True
        )
    )
