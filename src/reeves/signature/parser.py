"""Parser for the canonical type display grammar.

Stored signatures and user queries go through this one grammar, so a query
typed as the display form of a stored type always parses to the same
structure::

    type      := ("&" | "&mut")? core
    core      := path ("<" type ("," type)* ">")?
               | "[" type (";" INT)? "]"
               | "(" ")" | "(" type "," ")" | "(" type ("," type)+ ")"
               | ("impl" | "dyn" | "*const" | "*mut") type
               | "fn" "(" (type ("," type)*)? ")" ("->" type)?
    path      := IDENT ("::" IDENT)*

Paths are reduced to their last segment: ``std::io::Result`` and ``Result``
parse to the same base.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from reeves.core.errors import QueryError
from reeves.signature.expr import (
    ARRAY,
    CONST_PTR,
    DYN,
    FN_PTR,
    IMPL,
    MUT_PTR,
    TUPLE,
    UNIT,
    Reference,
    TypeExpr,
)

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<arrow>->)
  | (?P<pathsep>::)
  | (?P<ident>[^\W\d]\w*|!)
  | (?P<int>\d+)
  | (?P<punct>[<>\[\]();,&*])
    """,
    re.VERBOSE,
)

_EOF = "<end>"


@dataclass(frozen=True, slots=True)
class Token:
    kind: str
    text: str
    offset: int


def tokenize(text: str) -> list[Token]:
    """Split a type string into tokens, rejecting unknown characters."""
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise QueryError.parse_error(text, text[pos], pos, "unexpected character")
        kind = m.lastgroup or ""
        if kind != "ws":
            value = m.group()
            tokens.append(Token(value if kind in ("punct", "arrow", "pathsep") else kind, value, pos))
        pos = m.end()
    tokens.append(Token(_EOF, "", len(text)))
    return tokens


class _Parser:
    def __init__(self, text: str) -> None:
        self._text = text
        self._tokens = tokenize(text)
        self._pos = 0

    @property
    def _tok(self) -> Token:
        return self._tokens[self._pos]

    def _peek(self, ahead: int = 1) -> Token:
        idx = min(self._pos + ahead, len(self._tokens) - 1)
        return self._tokens[idx]

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        if tok.kind != _EOF:
            self._pos += 1
        return tok

    def _error(self, reason: str, tok: Token | None = None) -> QueryError:
        tok = tok or self._tok
        return QueryError.parse_error(self._text, tok.text or _EOF, tok.offset, reason)

    def _expect(self, kind: str) -> Token:
        if self._tok.kind != kind:
            raise self._error(f"expected {kind!r}")
        return self._advance()

    def parse(self) -> TypeExpr:
        if self._tok.kind == _EOF:
            raise self._error("empty type")
        expr = self._type()
        if self._tok.kind != _EOF:
            raise self._error("unexpected trailing input")
        return expr

    def _type(self) -> TypeExpr:
        reference = Reference.NONE
        if self._tok.kind == "&":
            self._advance()
            reference = Reference.SHARED
            if self._tok.kind == "ident" and self._tok.text == "mut":
                self._advance()
                reference = Reference.MUTABLE
            if self._tok.kind == "&":
                raise self._error("nested references are not supported")
        core = self._core()
        return core.with_reference(reference) if reference is not Reference.NONE else core

    def _core(self) -> TypeExpr:
        tok = self._tok
        if tok.kind == "[":
            return self._array()
        if tok.kind == "(":
            return self._tuple()
        if tok.kind == "*":
            self._advance()
            qualifier = self._tok
            if qualifier.kind != "ident" or qualifier.text not in ("const", "mut"):
                raise self._error("expected 'const' or 'mut' after '*'")
            self._advance()
            return TypeExpr(CONST_PTR if qualifier.text == "const" else MUT_PTR, (self._type(),))
        if tok.kind == "ident":
            if tok.text in (IMPL, DYN) and self._peek().kind not in (_EOF, ",", ">", ")", "]", ";", "::", "<"):
                self._advance()
                return TypeExpr(tok.text, (self._type(),))
            if tok.text == FN_PTR and self._peek().kind == "(":
                return self._fn_pointer()
            return self._path()
        raise self._error("expected a type")

    def _array(self) -> TypeExpr:
        self._expect("[")
        elem = self._type()
        length: int | None = None
        if self._tok.kind == ";":
            self._advance()
            length = int(self._expect("int").text)
        self._expect("]")
        return TypeExpr(ARRAY, (elem,), array_len=length)

    def _tuple(self) -> TypeExpr:
        self._expect("(")
        if self._tok.kind == ")":
            self._advance()
            return UNIT
        members = [self._type()]
        if self._tok.kind != ",":
            raise self._error("expected ',' (single-element tuples need a trailing comma)")
        while self._tok.kind == ",":
            self._advance()
            if self._tok.kind == ")":
                break
            members.append(self._type())
        self._expect(")")
        return TypeExpr(TUPLE, tuple(members))

    def _fn_pointer(self) -> TypeExpr:
        self._advance()
        self._expect("(")
        params: list[TypeExpr] = []
        if self._tok.kind != ")":
            params.append(self._type())
            while self._tok.kind == ",":
                self._advance()
                params.append(self._type())
        self._expect(")")
        ret = UNIT
        if self._tok.kind == "->":
            self._advance()
            ret = self._type()
        return TypeExpr(FN_PTR, (*params, ret))

    def _path(self) -> TypeExpr:
        if self._tok.text in (IMPL, DYN, FN_PTR):
            raise self._error(f"expected a type after {self._tok.text!r}", self._peek())
        name = self._expect("ident").text
        while self._tok.kind == "::":
            self._advance()
            name = self._expect("ident").text
        generics: list[TypeExpr] = []
        if self._tok.kind == "<":
            self._advance()
            generics.append(self._type())
            while self._tok.kind == ",":
                self._advance()
                generics.append(self._type())
            self._expect(">")
        return TypeExpr(name, tuple(generics))


def parse_type(text: str) -> TypeExpr:
    """Parse a display string (stored or user-typed) into a TypeExpr.

    Raises:
        QueryError: With the offending token and its offset.
    """
    return _Parser(text).parse()
