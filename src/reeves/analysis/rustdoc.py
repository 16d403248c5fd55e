"""Translation of rustdoc JSON into type expressions and function records.

Handles the rustdoc JSON layouts seen across recent nightlies: item ids as
strings or integers, ``sig`` or the older ``decl`` on functions, ``path`` or
the older ``name`` on resolved paths, ``use`` or the older ``import`` items.

Anything without a counterpart in the type model becomes ``TypeExpr("_")``.
Lifetimes, trait bounds and associated-type bindings are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from reeves.signature import UNIT, UNKNOWN, FnRecord, Reference, TypeExpr, format_type
from reeves.signature.expr import (
    ARRAY,
    CONST_PTR,
    DYN,
    FN_PTR,
    IMPL,
    MUT_PTR,
    NEVER,
    TUPLE,
)

Item = dict[str, Any]

# deeper types are refused; stored expressions are walked recursively
MAX_TYPE_DEPTH = 64


def _strip_raw(name: str) -> str:
    return name[2:] if name.startswith("r#") else name


def _last_segment(path: str) -> str:
    return _strip_raw(path.rsplit("::", 1)[-1])


def _is_mutable(data: dict[str, Any]) -> bool:
    return bool(data.get("is_mutable", data.get("mutable", False)))


def _fn_sig(data: dict[str, Any]) -> dict[str, Any]:
    sig = data.get("sig") or data.get("decl")
    return sig if isinstance(sig, dict) else {}


def inner_kind(item: Item) -> tuple[str, Any]:
    """(kind, payload) of an item's ``inner``; ('', None) if absent."""
    inner = item.get("inner")
    if isinstance(inner, dict) and len(inner) == 1:
        kind, payload = next(iter(inner.items()))
        return kind, payload
    if isinstance(inner, str):
        return inner, None
    return "", None


class TypeTranslator:
    """Maps rustdoc ``Type`` values onto TypeExpr.

    ``self_type`` replaces the ``Self`` generic inside impl blocks.
    """

    def __init__(self, self_type: TypeExpr | None = None) -> None:
        self.self_type = self_type
        self._depth = 0

    def translate(self, ty: Any) -> TypeExpr:
        """Raises ValueError for types nested deeper than MAX_TYPE_DEPTH."""
        if not isinstance(ty, dict) or len(ty) != 1:
            return TypeExpr(UNKNOWN)
        kind, value = next(iter(ty.items()))
        handler = getattr(self, f"_t_{kind}", None)
        if handler is None:
            return TypeExpr(UNKNOWN)
        if self._depth >= MAX_TYPE_DEPTH:
            raise ValueError(f"type nested deeper than {MAX_TYPE_DEPTH} levels")
        self._depth += 1
        try:
            return handler(value)
        finally:
            self._depth -= 1

    def _t_primitive(self, name: str) -> TypeExpr:
        if name == "never":
            return TypeExpr(NEVER)
        return TypeExpr(name)

    def _t_generic(self, name: str) -> TypeExpr:
        if name == "Self" and self.self_type is not None:
            return self.self_type
        return TypeExpr(_strip_raw(name))

    def _t_resolved_path(self, value: dict[str, Any]) -> TypeExpr:
        return self.path(value)

    def _t_dyn_trait(self, value: dict[str, Any]) -> TypeExpr:
        traits = value.get("traits") or []
        if not traits:
            return TypeExpr(DYN, (TypeExpr(UNKNOWN),))
        return TypeExpr(DYN, (self.path(traits[0].get("trait") or {}),))

    def _t_impl_trait(self, bounds: list[Any]) -> TypeExpr:
        for bound in bounds or []:
            if isinstance(bound, dict) and "trait_bound" in bound:
                return TypeExpr(IMPL, (self.path(bound["trait_bound"].get("trait") or {}),))
        return TypeExpr(IMPL, (TypeExpr(UNKNOWN),))

    def _t_borrowed_ref(self, value: dict[str, Any]) -> TypeExpr:
        inner = self.translate(value.get("type"))
        # &&T collapses to the outermost reference
        return inner.with_reference(Reference.MUTABLE if _is_mutable(value) else Reference.SHARED)

    def _t_raw_pointer(self, value: dict[str, Any]) -> TypeExpr:
        inner = self.translate(value.get("type"))
        return TypeExpr(MUT_PTR if _is_mutable(value) else CONST_PTR, (inner,))

    def _t_tuple(self, members: list[Any]) -> TypeExpr:
        return TypeExpr(TUPLE, tuple(self.translate(m) for m in members or []))

    def _t_slice(self, elem: Any) -> TypeExpr:
        return TypeExpr(ARRAY, (self.translate(elem),))

    def _t_array(self, value: dict[str, Any]) -> TypeExpr:
        elem = self.translate(value.get("type"))
        try:
            length: int | None = int(str(value.get("len", "")).strip())
        except ValueError:
            # const generic length such as [T; N]
            length = None
        return TypeExpr(ARRAY, (elem,), array_len=length)

    def _t_function_pointer(self, value: dict[str, Any]) -> TypeExpr:
        sig = _fn_sig(value)
        params = [self.translate(ty) for _, ty in sig.get("inputs") or []]
        output = sig.get("output")
        ret = UNIT if output is None else self.translate(output)
        return TypeExpr(FN_PTR, (*params, ret))

    def _t_qualified_path(self, value: dict[str, Any]) -> TypeExpr:
        # <T as Trait>::Name and Self::Name keep only the associated name
        return TypeExpr(_strip_raw(value.get("name") or UNKNOWN))

    def _t_pat(self, value: dict[str, Any]) -> TypeExpr:
        return self.translate(value.get("type"))

    def path(self, value: dict[str, Any]) -> TypeExpr:
        """A rustdoc ``Path`` (resolved path or trait reference)."""
        name = value.get("path") or value.get("name") or ""
        if not name:
            return TypeExpr(UNKNOWN)
        base = _last_segment(name)
        if base == "Self" and self.self_type is not None:
            return self.self_type
        return TypeExpr(base, self._generic_args(value.get("args")))

    def _generic_args(self, args: Any) -> tuple[TypeExpr, ...]:
        if not isinstance(args, dict):
            return ()
        if "angle_bracketed" in args:
            entries = args["angle_bracketed"].get("args") or []
            return tuple(
                self.translate(entry["type"])
                for entry in entries
                if isinstance(entry, dict) and "type" in entry
            )
        if "parenthesized" in args:
            # Fn(A, B) -> R
            value = args["parenthesized"]
            params = [self.translate(ty) for ty in value.get("inputs") or []]
            output = value.get("output")
            return (*params, UNIT if output is None else self.translate(output))
        return ()


@dataclass
class FunctionShape:
    """Receiver and parameter split of a rustdoc function signature."""

    receiver: Reference | None
    params: tuple[TypeExpr, ...]
    ret: TypeExpr | None


def function_shape(payload: dict[str, Any], translator: TypeTranslator) -> FunctionShape:
    """Split a function's inputs into receiver and params.

    ``self``, ``&self`` and ``&mut self`` become the receiver. Other ``self``
    forms (``self: Box<Self>``) stay ordinary parameters.
    """
    sig = _fn_sig(payload)
    inputs = list(sig.get("inputs") or [])
    receiver: Reference | None = None
    if inputs and translator.self_type is not None and inputs[0][0] == "self":
        self_ty = inputs[0][1]
        receiver = _receiver_kind(self_ty)
        if receiver is not None:
            inputs = inputs[1:]

    params = tuple(translator.translate(ty) for _, ty in inputs)
    output = sig.get("output")
    ret = None if output is None else translator.translate(output)
    if ret is not None and ret.is_unit and ret.reference is Reference.NONE:
        ret = None
    return FunctionShape(receiver=receiver, params=params, ret=ret)


def _receiver_kind(ty: Any) -> Reference | None:
    if ty == {"generic": "Self"}:
        return Reference.NONE
    if isinstance(ty, dict) and "borrowed_ref" in ty:
        ref = ty["borrowed_ref"]
        if ref.get("type") == {"generic": "Self"}:
            return Reference.MUTABLE if _is_mutable(ref) else Reference.SHARED
    return None


@dataclass
class CrateWalk:
    """Result of walking a rustdoc crate."""

    functions: list[FnRecord] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class CrateWalker:
    """Enumerates the public functions and methods of a rustdoc crate.

    Starts at the crate root and descends through public modules. Public
    free functions are collected directly; for public structs, enums and
    unions the public inherent methods and all trait-impl methods are
    collected. ``use`` re-exports of local items are followed once.
    """

    _ADT_KINDS = ("struct", "enum", "union")

    def __init__(self, data: dict[str, Any], import_name: str) -> None:
        self._index: dict[str, Item] = {str(k): v for k, v in (data.get("index") or {}).items()}
        self._root = str(data.get("root"))
        self._import_name = import_name
        self._seen: set[str] = set()
        self._walk = CrateWalk()

    def walk(self) -> CrateWalk:
        root = self._index.get(self._root)
        if root is None:
            self._walk.skipped.append(f"root item {self._root} missing from index")
            return self._walk
        self._seen.add(self._root)
        self._visit_module(root, [self._import_name])
        return self._walk

    def _item(self, item_id: Any) -> Item | None:
        if item_id is None:
            return None
        return self._index.get(str(item_id))

    def _visit_module(self, module: Item, path: list[str]) -> None:
        _, payload = inner_kind(module)
        for child_id in (payload or {}).get("items") or []:
            child = self._item(child_id)
            if child is None:
                continue  # defined in another crate
            self._visit(str(child_id), child, path)

    def _visit(self, item_id: str, item: Item, path: list[str], alias: str | None = None) -> None:
        kind, payload = inner_kind(item)
        if kind in ("use", "import"):
            self._visit_use(item, payload or {}, path)
            return
        if item.get("visibility") != "public" or item_id in self._seen:
            return
        name = alias or item.get("name") or ""
        if kind == "module":
            self._seen.add(item_id)
            self._visit_module(item, [*path, name])
        elif kind == "function":
            self._seen.add(item_id)
            self._add_function(item, payload or {}, [*path, name], owner=None)
        elif kind in self._ADT_KINDS:
            self._seen.add(item_id)
            self._visit_adt(item, payload or {}, [*path, name])
        elif kind == "trait":
            self._seen.add(item_id)
            self._walk.skipped.append(f"trait {'::'.join([*path, name])}")

    def _visit_use(self, item: Item, use: dict[str, Any], path: list[str]) -> None:
        if item.get("visibility") != "public":
            return
        target_id = use.get("id")
        target = self._item(target_id)
        if target is None:
            return  # external re-export
        if use.get("is_glob") or use.get("glob"):
            kind, _ = inner_kind(target)
            if kind == "module" and str(target_id) not in self._seen:
                self._seen.add(str(target_id))
                self._visit_module(target, path)
            return
        # re-exported items count as public at the re-export site
        visible = {**target, "visibility": "public"}
        self._visit(str(target_id), visible, path, alias=use.get("name"))

    def _visit_adt(self, item: Item, payload: dict[str, Any], type_path: list[str]) -> None:
        declared = self._owner_type(item, payload, type_path[-1])
        for impl_id in payload.get("impls") or []:
            impl_item = self._item(impl_id)
            if impl_item is None:
                continue
            _, impl = inner_kind(impl_item)
            if not isinstance(impl, dict):
                continue
            if impl.get("blanket_impl") is not None or impl.get("is_synthetic") or impl.get("synthetic"):
                continue
            if impl.get("is_negative") or impl.get("negative"):
                continue
            is_trait_impl = impl.get("trait") is not None
            owner = self._impl_owner(impl, declared)
            for method_id in impl.get("items") or []:
                method = self._item(method_id)
                if method is None or str(method_id) in self._seen:
                    continue
                kind, fn_payload = inner_kind(method)
                if kind != "function":
                    continue
                # trait-impl items inherit the trait's visibility
                if not is_trait_impl and method.get("visibility") != "public":
                    continue
                self._seen.add(str(method_id))
                self._add_function(
                    method, fn_payload or {}, [*type_path, method.get("name") or ""], owner=owner
                )

    def _impl_owner(self, impl: dict[str, Any], declared: TypeExpr) -> TypeExpr:
        """The implementing type as written on the impl, e.g. `Foo<u8>`."""
        if impl.get("for") is None:
            return declared
        try:
            owner = TypeTranslator().translate(impl["for"]).with_reference(Reference.NONE)
        except ValueError:
            return declared
        if owner.base != declared.base:
            return declared
        return owner

    def _owner_type(self, item: Item, payload: dict[str, Any], name: str) -> TypeExpr:
        """The ADT as a type: its name applied to its type parameters."""
        params = (payload.get("generics") or {}).get("params") or []
        generics = tuple(
            TypeExpr(_strip_raw(p["name"]))
            for p in params
            if isinstance(p, dict) and isinstance(p.get("kind"), dict) and "type" in p["kind"]
        )
        return TypeExpr(_strip_raw(name or item.get("name") or UNKNOWN), generics)

    def _add_function(
        self,
        item: Item,
        payload: dict[str, Any],
        path: list[str],
        owner: TypeExpr | None,
    ) -> None:
        name = _strip_raw(item.get("name") or "")
        display_path = "::".join(_strip_raw(p) for p in path)
        try:
            shape = function_shape(payload, TypeTranslator(owner))
            record = FnRecord(
                name=name,
                owner=None if owner is None else format_type(owner),
                receiver=shape.receiver,
                params=shape.params,
                ret=shape.ret,
                path=display_path,
            )
        except (KeyError, TypeError, ValueError, IndexError, AttributeError) as e:
            self._walk.skipped.append(f"{display_path}: {type(e).__name__}: {e}")
            return
        self._walk.functions.append(record)

