"""Builders for rustdoc JSON documents, crate records and fake runners used across tests."""

from __future__ import annotations

import json
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from reeves.sandbox import SandboxResult, SandboxSpec
from reeves.signature import CrateId, CrateRecord, FnRecord, Reference, parse_type

# rustdoc Type helpers


def prim(name: str) -> dict[str, Any]:
    return {"primitive": name}


def generic(name: str) -> dict[str, Any]:
    return {"generic": name}


SELF = generic("Self")


def path(name: str, *args: dict[str, Any]) -> dict[str, Any]:
    value: dict[str, Any] = {"path": name, "id": 9000}
    if args:
        value["args"] = {
            "angle_bracketed": {"args": [{"type": a} for a in args], "constraints": []}
        }
    else:
        value["args"] = None
    return {"resolved_path": value}


def ref(ty: dict[str, Any], *, mutable: bool = False) -> dict[str, Any]:
    return {"borrowed_ref": {"lifetime": None, "is_mutable": mutable, "type": ty}}


def slice_of(ty: dict[str, Any]) -> dict[str, Any]:
    return {"slice": ty}


def array_of(ty: dict[str, Any], length: str) -> dict[str, Any]:
    return {"array": {"type": ty, "len": length}}


def tuple_of(*members: dict[str, Any]) -> dict[str, Any]:
    return {"tuple": list(members)}


class RustdocBuilder:
    """Assembles a minimal rustdoc JSON document.

    Items are added to the crate root unless a ``parent`` module id is given.
    """

    def __init__(self, crate_name: str = "demo") -> None:
        self.crate_name = crate_name
        self.index: dict[str, dict[str, Any]] = {}
        self._next_id = 1
        self.root = self._add(crate_name, {"module": {"is_crate": True, "items": []}}, attach=False)

    def _add(
        self,
        name: str | None,
        inner: dict[str, Any],
        *,
        visibility: str = "public",
        parent: int | None = None,
        attach: bool = True,
    ) -> int:
        item_id = 0 if not self.index else self._next_id
        if self.index:
            self._next_id += 1
        self.index[str(item_id)] = {
            "id": item_id,
            "crate_id": 0,
            "name": name,
            "visibility": visibility,
            "inner": inner,
        }
        if attach:
            module = self.index[str(self.root if parent is None else parent)]
            module["inner"]["module"]["items"].append(item_id)
        return item_id

    @staticmethod
    def _function_inner(
        inputs: list[tuple[str, dict[str, Any]]], output: dict[str, Any] | None
    ) -> dict[str, Any]:
        return {
            "function": {
                "sig": {
                    "inputs": [[n, t] for n, t in inputs],
                    "output": output,
                    "is_c_variadic": False,
                },
                "generics": {"params": [], "where_predicates": []},
                "has_body": True,
            }
        }

    def function(
        self,
        name: str,
        inputs: list[tuple[str, dict[str, Any]]],
        output: dict[str, Any] | None = None,
        *,
        visibility: str = "public",
        parent: int | None = None,
    ) -> int:
        return self._add(
            name, self._function_inner(inputs, output), visibility=visibility, parent=parent
        )

    def method(
        self,
        name: str,
        inputs: list[tuple[str, dict[str, Any]]],
        output: dict[str, Any] | None = None,
        *,
        visibility: str = "public",
    ) -> int:
        """A function item that belongs to an impl block, not a module."""
        return self._add(
            name, self._function_inner(inputs, output), visibility=visibility, attach=False
        )

    def module(self, name: str, *, visibility: str = "public", parent: int | None = None) -> int:
        return self._add(
            name, {"module": {"is_crate": False, "items": []}}, visibility=visibility, parent=parent
        )

    def struct(
        self,
        name: str,
        *,
        type_params: tuple[str, ...] = (),
        visibility: str = "public",
        parent: int | None = None,
    ) -> int:
        generics = {
            "params": [{"name": p, "kind": {"type": {"bounds": []}}} for p in type_params],
            "where_predicates": [],
        }
        return self._add(
            name,
            {"struct": {"kind": {"unit": None}, "generics": generics, "impls": []}},
            visibility=visibility,
            parent=parent,
        )

    def trait(self, name: str, *, parent: int | None = None) -> int:
        return self._add(name, {"trait": {"items": [], "implementations": []}}, parent=parent)

    def impl(
        self,
        struct_id: int,
        methods: list[int],
        *,
        trait: str | None = None,
        for_type: dict[str, Any] | None = None,
        blanket: bool = False,
        synthetic: bool = False,
    ) -> int:
        struct = self.index[str(struct_id)]
        impl_id = self._add(
            None,
            {
                "impl": {
                    "is_unsafe": False,
                    "generics": {"params": [], "where_predicates": []},
                    "trait": None if trait is None else {"path": trait, "id": 9001, "args": None},
                    "for": for_type or path(struct["name"]),
                    "items": list(methods),
                    "is_negative": False,
                    "is_synthetic": synthetic,
                    "blanket_impl": generic("T") if blanket else None,
                }
            },
            visibility="default",
            attach=False,
        )
        struct["inner"]["struct"]["impls"].append(impl_id)
        return impl_id

    def use(
        self,
        target_id: int,
        *,
        name: str | None = None,
        glob: bool = False,
        parent: int | None = None,
    ) -> int:
        target = self.index[str(target_id)]
        return self._add(
            None,
            {
                "use": {
                    "source": f"self::{target['name']}",
                    "name": name or target["name"],
                    "id": target_id,
                    "is_glob": glob,
                }
            },
            parent=parent,
        )

    def build(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "crate_version": None,
            "includes_private": False,
            "index": self.index,
            "paths": {},
            "external_crates": {},
            "format_version": 39,
        }


def header_crate_json(crate_name: str = "demo") -> dict[str, Any]:
    """A small crate with a Header type, used by analysis and pipeline tests.

    pub struct Header;
    impl Header {
        pub fn parse(&self, buf: &[u8]) -> Option<Header>;
        pub fn name(&self) -> String;
        fn private_helper(&self);
    }
    pub fn checksum(data: &[u8; 4]) -> u32;
    """
    doc = RustdocBuilder(crate_name)
    header = doc.struct("Header")
    parse = doc.method(
        "parse", [("self", ref(SELF)), ("buf", ref(slice_of(prim("u8"))))], path("Option", SELF)
    )
    name = doc.method("name", [("self", ref(SELF))], path("String"))
    hidden = doc.method("private_helper", [("self", ref(SELF))], visibility="default")
    doc.impl(header, [parse, name, hidden])
    doc.function("checksum", [("data", ref(array_of(prim("u8"), "4")))], prim("u32"))
    return doc.build()


def write_manifest(directory: Path, name: str, version: str, lib_name: str | None = None) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    text = f'[package]\nname = "{name}"\nversion = "{version}"\nedition = "2021"\n'
    if lib_name is not None:
        text += f'\n[lib]\nname = "{lib_name}"\n'
    manifest = directory / "Cargo.toml"
    manifest.write_text(text)
    return manifest


# Signature records


def fn(
    name: str,
    params: Sequence[str] = (),
    ret: str | None = None,
    *,
    owner: str | None = None,
    receiver: Reference | None = None,
) -> FnRecord:
    return FnRecord(
        name=name,
        params=tuple(parse_type(p) for p in params),
        ret=None if ret is None else parse_type(ret),
        owner=owner,
        receiver=receiver,
    )


def crate_record(spec: str, *functions: FnRecord, import_name: str | None = None) -> CrateRecord:
    crate = CrateId.parse(spec)
    return CrateRecord(
        crate=crate,
        import_name=import_name or crate.name.replace("-", "_"),
        functions=functions,
    )


# Sandbox


@dataclass
class FakeSandbox:
    """SandboxRunner that fakes the prepare and analyze phases on the host.

    ``behaviour`` maps a crate to one of: "ok", "timeout", "oom", "fail",
    "fail_once", "bad_json", "deep_json", "wrong_manifest", "linked_manifest",
    "linked_output". Unlisted crates are "ok". The linked modes leave a symlink
    pointing at a real file outside the work directory.
    """

    behaviour: dict[CrateId, str] = field(default_factory=dict)
    calls: list[tuple[str, list[str], str]] = field(default_factory=list)
    envs: list[dict[str, str]] = field(default_factory=list)
    _failed_once: set[CrateId] = field(default_factory=set)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def run(self, spec: SandboxSpec, command: list[str], timeout_sec: float) -> SandboxResult:
        crate_text, _, phase = spec.label.rpartition(":")
        crate = CrateId.parse(crate_text)
        mode = self.behaviour.get(crate, "ok")
        with self._lock:
            self.calls.append((spec.label, command, spec.network))
            self.envs.append(dict(spec.env))
            first_failure = mode == "fail_once" and crate not in self._failed_once
            if first_failure:
                self._failed_once.add(crate)

        if phase == "prepare":
            if first_failure or mode == "fail":
                return SandboxResult(exit_code=1, stderr="tar: unexpected end of file")
            name = "other" if mode == "wrong_manifest" else crate.name
            if mode == "linked_manifest":
                outside = write_manifest(spec.work_dir.parent / f"outside-{crate.name}", name, crate.version)
                (spec.work_dir / "src").mkdir(parents=True, exist_ok=True)
                (spec.work_dir / "src" / "Cargo.toml").symlink_to(outside)
            else:
                write_manifest(spec.work_dir / "src", name, crate.version)
            return SandboxResult(exit_code=0)

        if mode == "timeout":
            return SandboxResult(exit_code=-1, timed_out=True, duration_ms=int(timeout_sec * 1000))
        if mode == "oom":
            return SandboxResult(exit_code=137)
        out = spec.work_dir / "out"
        out.mkdir(parents=True, exist_ok=True)
        import_name = crate.name.replace("-", "_")
        target = out / f"{import_name}.json"
        if mode == "bad_json":
            target.write_text("{not json")
        elif mode == "deep_json":
            depth = 100_000
            target.write_text('{"root": 0, "index": ' + "[" * depth + "]" * depth + "}")
        elif mode == "linked_output":
            outside = spec.work_dir.parent / f"outside-{import_name}.json"
            outside.write_text(json.dumps(header_crate_json(import_name)))
            target.symlink_to(outside)
        else:
            target.write_text(json.dumps(header_crate_json(import_name)))
        return SandboxResult(exit_code=0)

    def phases(self, crate: CrateId) -> list[str]:
        return [label.rpartition(":")[2] for label, _, _ in self.calls if label.startswith(f"{crate}:")]
