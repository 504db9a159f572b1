"""
Guard expression language.

A small boolean language for variant eligibility, parsed into an
expression tree and evaluated by walking it against exactly three bound
names: `session`, `slotId` and `variant`. Nothing else is reachable; there
is no function call, attribute access outside declared model fields, or
dynamic code execution.

Grammar (lowest precedence first):

    expr        := or_expr
    or_expr     := and_expr ("||" and_expr)*
    and_expr    := comparison ("&&" comparison)*
    comparison  := unary (CMP unary)?
    unary       := ("!" | "-") unary | primary
    primary     := NUMBER | STRING | "true" | "false" | "null"
                 | path | "(" expr ")"
    path        := ROOT ("." NAME | "[" (STRING | NUMBER) "]")*

    CMP  := "<" | "<=" | ">" | ">=" | "==" | "!=" | "===" | "!=="
    ROOT := "session" | "slotId" | "variant"

Examples:
    session.metrics.accEWMA < 0.7
    session.env.device == 'mobile' && variant.meta.difficulty != 'hard'
    !(session.metrics.streak >= 3) || slotId == "intro"
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Sequence

from pydantic import BaseModel

from adaptivity.exceptions import GuardEvaluationError, GuardSyntaxError


BOUND_NAMES = ("session", "slotId", "variant")

COMPARISON_OPS = {"<", "<=", ">", ">=", "==", "!=", "===", "!=="}

_KEYWORD_LITERALS = {"true": True, "false": False, "null": None}

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<name>[A-Za-z_$][A-Za-z0-9_$]*)
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[<>!\-.()\[\]])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


@dataclass(frozen=True)
class Token:
    kind: str  # number, string, name, op, eof
    value: Any
    position: int


def tokenize(source: str) -> list[Token]:
    """Split guard text into tokens, ending with an eof token."""
    tokens: list[Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise GuardSyntaxError(f"Unexpected character {source[pos]!r}", pos)
        kind = match.lastgroup
        text = match.group()
        if kind == "number":
            value: Any = float(text) if any(c in text for c in ".eE") else int(text)
            tokens.append(Token("number", value, pos))
        elif kind == "string":
            tokens.append(Token("string", _unescape(text[1:-1]), pos))
        elif kind in ("name", "op"):
            tokens.append(Token(kind, text, pos))
        pos = match.end()
    tokens.append(Token("eof", None, len(source)))
    return tokens


def _unescape(body: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


# ========================================
# Expression Tree
# ========================================


class Node:
    """Base expression node."""

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class Path(Node):
    root: str
    segments: tuple[Any, ...] = ()

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        value = scope[self.root]
        walked = self.root
        for segment in self.segments:
            value = resolve_member(value, segment, walked)
            walked = f"{walked}.{segment}"
        return value


@dataclass(frozen=True)
class Not(Node):
    operand: Node

    def evaluate(self, scope: Mapping[str, Any]) -> bool:
        return not truthy(self.operand.evaluate(scope))


@dataclass(frozen=True)
class Negate(Node):
    operand: Node

    def evaluate(self, scope: Mapping[str, Any]) -> Any:
        value = self.operand.evaluate(scope)
        if not _is_number(value):
            raise GuardEvaluationError(f"Cannot negate non-number {value!r}")
        return -value


@dataclass(frozen=True)
class Compare(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, scope: Mapping[str, Any]) -> bool:
        return compare(self.op, self.left.evaluate(scope), self.right.evaluate(scope))


@dataclass(frozen=True)
class And(Node):
    left: Node
    right: Node

    def evaluate(self, scope: Mapping[str, Any]) -> bool:
        return truthy(self.left.evaluate(scope)) and truthy(self.right.evaluate(scope))


@dataclass(frozen=True)
class Or(Node):
    left: Node
    right: Node

    def evaluate(self, scope: Mapping[str, Any]) -> bool:
        return truthy(self.left.evaluate(scope)) or truthy(self.right.evaluate(scope))


# ========================================
# Evaluation Helpers
# ========================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def truthy(value: Any) -> bool:
    """Truthiness of a guard value. Containers and models count as present."""
    if value is None:
        return False
    if isinstance(value, (bool, int, float, str)):
        return bool(value)
    return True


def compare(op: str, left: Any, right: Any) -> bool:
    """Apply a comparison operator with strict typing."""
    if op in ("==", "==="):
        return _equals(left, right)
    if op in ("!=", "!=="):
        return not _equals(left, right)

    comparable = (_is_number(left) and _is_number(right)) or (
        isinstance(left, str) and isinstance(right, str)
    )
    if not comparable:
        raise GuardEvaluationError(f"Cannot compare {left!r} {op} {right!r}")
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right
    raise GuardEvaluationError(f"Unknown operator {op}")


def _equals(left: Any, right: Any) -> bool:
    # true == 1 is False here, as in the authoring language
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


@lru_cache(maxsize=None)
def _alias_map(model_cls: type[BaseModel]) -> dict[str, str]:
    """Map wire names and attribute names of a model to attribute names."""
    names: dict[str, str] = {}
    for name, info in model_cls.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


def resolve_member(value: Any, segment: Any, walked: str) -> Any:
    """
    Read one path segment.

    Models expose their declared fields only (by wire or attribute name),
    mappings expose their keys, sequences expose integer indexes.
    """
    if isinstance(value, BaseModel):
        name = _alias_map(type(value)).get(segment) if isinstance(segment, str) else None
        if name is None:
            raise GuardEvaluationError(f"{walked} has no property {segment!r}")
        return getattr(value, name)
    if isinstance(value, Mapping):
        if segment not in value:
            raise GuardEvaluationError(f"{walked} has no key {segment!r}")
        return value[segment]
    if isinstance(value, Sequence) and not isinstance(value, str) and _is_number(segment):
        try:
            return value[int(segment)]
        except IndexError:
            raise GuardEvaluationError(f"{walked}[{segment}] is out of range") from None
    raise GuardEvaluationError(f"Cannot read {segment!r} of {walked} ({type(value).__name__})")


# ========================================
# Parser
# ========================================


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, tokens: list[Token]):
        self._tokens = tokens
        self._index = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.kind != "eof":
            self._index += 1
        return token

    def _at_op(self, *ops: str) -> bool:
        return self._current.kind == "op" and self._current.value in ops

    def _expect_op(self, op: str) -> Token:
        if not self._at_op(op):
            raise GuardSyntaxError(f"Expected {op!r}", self._current.position)
        return self._advance()

    def parse(self) -> Node:
        if self._current.kind == "eof":
            raise GuardSyntaxError("Empty expression", 0)
        node = self._or()
        if self._current.kind != "eof":
            raise GuardSyntaxError(
                f"Unexpected token {self._current.value!r}", self._current.position
            )
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._at_op("||"):
            self._advance()
            node = Or(node, self._and())
        return node

    def _and(self) -> Node:
        node = self._comparison()
        while self._at_op("&&"):
            self._advance()
            node = And(node, self._comparison())
        return node

    def _comparison(self) -> Node:
        node = self._unary()
        if self._current.kind == "op" and self._current.value in COMPARISON_OPS:
            op = self._advance().value
            node = Compare(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if self._at_op("!"):
            self._advance()
            return Not(self._unary())
        if self._at_op("-"):
            self._advance()
            return Negate(self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self._current
        if token.kind in ("number", "string"):
            self._advance()
            return Literal(token.value)
        if token.kind == "name":
            if token.value in _KEYWORD_LITERALS:
                self._advance()
                return Literal(_KEYWORD_LITERALS[token.value])
            return self._path()
        if self._at_op("("):
            self._advance()
            node = self._or()
            self._expect_op(")")
            return node
        if token.kind == "eof":
            raise GuardSyntaxError("Unexpected end of expression", token.position)
        raise GuardSyntaxError(f"Unexpected token {token.value!r}", token.position)

    def _path(self) -> Node:
        root = self._advance()
        if root.value not in BOUND_NAMES:
            raise GuardSyntaxError(
                f"Unknown name {root.value!r}; expected one of {', '.join(BOUND_NAMES)}",
                root.position,
            )
        segments: list[Any] = []
        while True:
            if self._at_op("."):
                self._advance()
                name = self._advance()
                if name.kind != "name":
                    raise GuardSyntaxError("Expected property name after '.'", name.position)
                segments.append(name.value)
            elif self._at_op("["):
                self._advance()
                key = self._advance()
                if key.kind not in ("string", "number"):
                    raise GuardSyntaxError("Expected string or number index", key.position)
                self._expect_op("]")
                segments.append(key.value)
            else:
                break
        return Path(root.value, tuple(segments))


def parse_guard(source: str) -> Node:
    """
    Parse guard text into an expression tree.

    Raises:
        GuardSyntaxError: If the text is not a valid guard expression
    """
    return _Parser(tokenize(source)).parse()
