"""A small, closed expression language for transition guards.

Guards are boolean expressions over two read-only bindings, ``entity`` and
``context``, plus a fixed function library. There is no access to Python
builtins, attributes or modules: the only reachable names are the ones listed
in :data:`BUILTIN_NAMES`.

Grammar::

    expression  := or
    or          := and ( "||" and )*
    and         := equality ( "&&" equality )*
    equality    := comparison ( ( "==" | "===" | "!=" | "!==" ) comparison )*
    comparison  := unary ( ( "<" | "<=" | ">" | ">=" ) unary )*
    unary       := ( "!" | "-" ) unary | postfix
    postfix     := primary ( "." IDENT | "?." IDENT | "[" expression "]" | "(" args? ")" )*
    args        := expression ( "," expression )*
    primary     := NUMBER | STRING | "true" | "false" | "null" | "undefined"
                 | IDENT | "(" expression ")"

Values follow the JavaScript conventions guard authors expect: a missing
property reads as ``null``, ``<``/``>`` and ``==``/``!=`` convert mixed operands to
numbers (so ``"5000" > 1000`` holds) while ``===``/``!==`` never convert,
``&&``/``||`` short-circuit and return an operand, and truthiness treats
``0``, ``""`` and ``null`` as false but empty lists and objects as true.
``undefined`` is the same value as ``null``.
"""

from __future__ import annotations

import functools
import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

# --- errors -----------------------------------------------------------------


class ExpressionError(Exception):
    pass


class ExpressionSyntaxError(ExpressionError):
    pass


class ExpressionEvaluationError(ExpressionError):
    pass


# --- tokens -----------------------------------------------------------------

_KEYWORDS: dict[str, object] = {"true": True, "false": False, "null": None, "undefined": None}

# Longest operators first so "===" wins over "==".
_OPERATORS = (
    "===",
    "!==",
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
    "?.",
    "<",
    ">",
    "!",
    "-",
    ".",
    "[",
    "]",
    "(",
    ")",
    ",",
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


@dataclass(frozen=True, slots=True)
class Token:
    kind: str  # "number" | "string" | "ident" | "op" | "eof"
    value: object
    pos: int


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        if ch.isspace():
            i += 1
            continue

        if ch.isdigit() or (ch == "." and i + 1 < n and source[i + 1].isdigit()):
            start = i
            while i < n and source[i].isdigit():
                i += 1
            is_float = False
            if i < n and source[i] == "." and i + 1 < n and source[i + 1].isdigit():
                is_float = True
                i += 1
                while i < n and source[i].isdigit():
                    i += 1
            text = source[start:i]
            tokens.append(Token("number", float(text) if is_float else int(text), start))
            continue

        if ch in ("'", '"'):
            start = i
            quote = ch
            i += 1
            buf: list[str] = []
            while True:
                if i >= n:
                    raise ExpressionSyntaxError(
                        f"Unterminated string literal at position {start}"
                    )
                c = source[i]
                if c == "\\" and i + 1 < n:
                    buf.append(_ESCAPES.get(source[i + 1], source[i + 1]))
                    i += 2
                    continue
                if c == quote:
                    i += 1
                    break
                buf.append(c)
                i += 1
            tokens.append(Token("string", "".join(buf), start))
            continue

        if ch.isalpha() or ch in "_$":
            start = i
            while i < n and (source[i].isalnum() or source[i] in "_$"):
                i += 1
            tokens.append(Token("ident", source[start:i], start))
            continue

        for op in _OPERATORS:
            if source.startswith(op, i):
                tokens.append(Token("op", op, i))
                i += len(op)
                break
        else:
            raise ExpressionSyntaxError(f"Unexpected character {ch!r} at position {i}")

    tokens.append(Token("eof", None, n))
    return tokens


# --- AST --------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Literal:
    value: object


@dataclass(frozen=True, slots=True)
class Identifier:
    name: str


@dataclass(frozen=True, slots=True)
class Member:
    target: Node
    name: str
    optional: bool = False


@dataclass(frozen=True, slots=True)
class Index:
    target: Node
    key: Node


@dataclass(frozen=True, slots=True)
class Call:
    callee: Node
    args: tuple[Node, ...]


@dataclass(frozen=True, slots=True)
class Unary:
    op: str
    operand: Node


@dataclass(frozen=True, slots=True)
class Binary:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Logical:
    op: str
    left: Node
    right: Node


Node = Literal | Identifier | Member | Index | Call | Unary | Binary | Logical


# --- parser -----------------------------------------------------------------


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._pos = 0

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _next(self) -> Token:
        tok = self._tokens[self._pos]
        self._pos += 1
        return tok

    def _match(self, *ops: str) -> str | None:
        tok = self._peek()
        if tok.kind == "op" and tok.value in ops:
            self._pos += 1
            return str(tok.value)
        return None

    def _expect(self, op: str) -> None:
        tok = self._next()
        if tok.kind != "op" or tok.value != op:
            raise self._unexpected(tok, expected=op)

    @staticmethod
    def _unexpected(tok: Token, expected: str | None = None) -> ExpressionSyntaxError:
        if tok.kind == "eof":
            msg = "Unexpected end of expression"
        else:
            msg = f"Unexpected token {tok.value!r} at position {tok.pos}"
        if expected is not None:
            msg += f" (expected {expected!r})"
        return ExpressionSyntaxError(msg)

    def parse(self) -> Node:
        if self._peek().kind == "eof":
            raise ExpressionSyntaxError("Empty guard expression")
        node = self._or()
        tok = self._peek()
        if tok.kind != "eof":
            raise self._unexpected(tok)
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._match("||"):
            node = Logical("||", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._equality()
        while self._match("&&"):
            node = Logical("&&", node, self._equality())
        return node

    def _equality(self) -> Node:
        node = self._comparison()
        while op := self._match("===", "!==", "==", "!="):
            node = Binary(op, node, self._comparison())
        return node

    def _comparison(self) -> Node:
        node = self._unary()
        while op := self._match("<=", ">=", "<", ">"):
            node = Binary(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        if op := self._match("!", "-"):
            return Unary(op, self._unary())
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while True:
            if op := self._match(".", "?."):
                tok = self._next()
                if tok.kind != "ident":
                    raise self._unexpected(tok, expected="property name")
                node = Member(node, str(tok.value), optional=op == "?.")
            elif self._match("["):
                key = self._or()
                self._expect("]")
                node = Index(node, key)
            elif self._match("("):
                args: list[Node] = []
                if not self._match(")"):
                    args.append(self._or())
                    while self._match(","):
                        args.append(self._or())
                    self._expect(")")
                node = Call(node, tuple(args))
            else:
                return node

    def _primary(self) -> Node:
        tok = self._next()
        if tok.kind in ("number", "string"):
            return Literal(tok.value)
        if tok.kind == "ident":
            name = str(tok.value)
            if name in _KEYWORDS:
                return Literal(_KEYWORDS[name])
            return Identifier(name)
        if tok.kind == "op" and tok.value == "(":
            node = self._or()
            self._expect(")")
            return node
        raise self._unexpected(tok)


@functools.lru_cache(maxsize=512)
def parse_expression(source: str) -> Node:
    """Parse a guard expression into an AST. Results are cached per source string."""

    return _Parser(tokenize(source.strip())).parse()


# --- value semantics --------------------------------------------------------


def _is_number(v: object) -> bool:
    return isinstance(v, int | float) and not isinstance(v, bool)


def truthy(v: object) -> bool:
    if v is None:
        return False
    if isinstance(v, bool):
        return v
    if _is_number(v):
        return not (v == 0 or math.isnan(v))  # type: ignore[arg-type]
    if isinstance(v, str):
        return v != ""
    return True


def strict_equals(a: object, b: object) -> bool:
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if _is_number(a) and _is_number(b):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    # Objects and arrays compare by identity.
    return a is b


_NUMERIC_LITERAL = re.compile(
    r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)|0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+"
)


def to_primitive(v: object) -> object:
    """Arrays join their items with ``,``; other objects become ``[object Object]``."""

    if isinstance(v, list):
        return ",".join("" if item is None else to_display(to_primitive(item)) for item in v)
    if isinstance(v, dict):
        return "[object Object]"
    return v


def to_number(v: object) -> float:
    """JavaScript ``Number(v)``: ``null`` is 0, booleans are 0/1, unparsable text is NaN."""

    v = to_primitive(v)
    if v is None:
        return 0.0
    if isinstance(v, bool):
        return float(v)
    if _is_number(v):
        return float(v)  # type: ignore[arg-type]
    if isinstance(v, str):
        text = v.strip()
        if not text:
            return 0.0
        if not _NUMERIC_LITERAL.fullmatch(text):
            return math.nan
        if text[:2].lower() in ("0x", "0o", "0b"):
            return float(int(text, 0))
        return float(text.replace("Infinity", "inf"))
    return math.nan


def loose_equals(a: object, b: object) -> bool:
    """JavaScript ``==``: numbers, numeric strings and booleans meet as numbers."""

    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool) or isinstance(b, bool):
        if isinstance(a, bool) and isinstance(b, bool):
            return a == b
        return loose_equals(
            to_number(a) if isinstance(a, bool) else a,
            to_number(b) if isinstance(b, bool) else b,
        )
    if isinstance(a, list | dict) and isinstance(b, list | dict):
        return a is b
    if isinstance(a, list | dict) or isinstance(b, list | dict):
        return loose_equals(to_primitive(a), to_primitive(b))
    if _is_number(a) and isinstance(b, str):
        return a == to_number(b)
    if isinstance(a, str) and _is_number(b):
        return to_number(a) == b
    return strict_equals(a, b)


def compare(op: str, a: object, b: object) -> bool:
    """JavaScript relational operators: text compares as text, anything else as numbers."""

    a, b = to_primitive(a), to_primitive(b)
    if not (isinstance(a, str) and isinstance(b, str)):
        a, b = to_number(a), to_number(b)
        if math.isnan(a) or math.isnan(b):
            return False
    if op == "<":
        return a < b  # type: ignore[operator]
    if op == "<=":
        return a <= b  # type: ignore[operator]
    if op == ">":
        return a > b  # type: ignore[operator]
    if op == ">=":
        return a >= b  # type: ignore[operator]
    raise ExpressionEvaluationError(f"Unknown comparison operator {op!r}")


def to_display(v: object) -> str:
    if v is None:
        return "null"
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


# --- builtins ---------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Builtin:
    name: str
    fn: Callable[..., object]

    def __call__(self, *args: object) -> object:
        return self.fn(*args)


@dataclass(frozen=True, slots=True)
class Namespace:
    name: str
    members: Mapping[str, Builtin]


def _arg(args: tuple[object, ...], i: int) -> object:
    return args[i] if i < len(args) else None


def _has(*args: object) -> bool:
    obj, key = _arg(args, 0), _arg(args, 1)
    if isinstance(obj, dict):
        return to_display(key) in obj or key in obj
    if isinstance(obj, list) and _is_number(key):
        return 0 <= int(key) < len(obj)  # type: ignore[call-overload]
    return False


def _contains(*args: object) -> bool:
    haystack, needle = _arg(args, 0), _arg(args, 1)
    if haystack is None:
        haystack = ""
    if isinstance(haystack, str):
        return to_display(needle) in haystack
    if isinstance(haystack, list):
        return any(strict_equals(item, needle) for item in haystack)
    raise ExpressionEvaluationError("contains() expects a string or an array")


def _is_empty(*args: object) -> bool:
    val = _arg(args, 0)
    if val is None:
        return True
    if isinstance(val, str):
        return val.strip() == ""
    if isinstance(val, list | dict):
        return len(val) == 0
    return False


def _normalise(v: float) -> int | float:
    return int(v) if math.isfinite(v) and v.is_integer() else v


def _math_abs(*args: object) -> int | float:
    return _normalise(abs(to_number(_arg(args, 0))))


def _math_max(*args: object) -> int | float:
    values = [to_number(a) for a in args]
    if any(math.isnan(v) for v in values):
        return math.nan
    return _normalise(max(values, default=-math.inf))


def _math_min(*args: object) -> int | float:
    values = [to_number(a) for a in args]
    if any(math.isnan(v) for v in values):
        return math.nan
    return _normalise(min(values, default=math.inf))


def _math_round(*args: object) -> int | float:
    v = to_number(_arg(args, 0))
    if not math.isfinite(v):
        return v
    return int(math.floor(v + 0.5))


BUILTINS: dict[str, Builtin | Namespace] = {
    "has": Builtin("has", _has),
    "equals": Builtin("equals", lambda *a: strict_equals(_arg(a, 0), _arg(a, 1))),
    "notEquals": Builtin("notEquals", lambda *a: not strict_equals(_arg(a, 0), _arg(a, 1))),
    "greaterThan": Builtin("greaterThan", lambda *a: compare(">", _arg(a, 0), _arg(a, 1))),
    "lessThan": Builtin("lessThan", lambda *a: compare("<", _arg(a, 0), _arg(a, 1))),
    "contains": Builtin("contains", _contains),
    "isEmpty": Builtin("isEmpty", _is_empty),
    "Math": Namespace(
        "Math",
        {
            "abs": Builtin("Math.abs", _math_abs),
            "max": Builtin("Math.max", _math_max),
            "min": Builtin("Math.min", _math_min),
            "round": Builtin("Math.round", _math_round),
        },
    ),
}

BUILTIN_NAMES: frozenset[str] = frozenset(BUILTINS) | {"entity", "context"}


# --- interpreter ------------------------------------------------------------


def _describe(node: Node) -> str:
    if isinstance(node, Identifier):
        return node.name
    if isinstance(node, Member):
        return f"{_describe(node.target)}.{node.name}"
    if isinstance(node, Index):
        return f"{_describe(node.target)}[...]"
    if isinstance(node, Call):
        return f"{_describe(node.callee)}(...)"
    return "expression"


def _get_property(target: object, key: object, *, node: Node) -> object:
    if target is None:
        raise ExpressionEvaluationError(
            f"Cannot read properties of null (reading {to_display(key)!r}) in {_describe(node)}"
        )
    if isinstance(target, Namespace):
        return target.members.get(to_display(key))
    if isinstance(target, dict):
        if key in target:
            return target[key]
        return target.get(to_display(key))
    if isinstance(target, list | str):
        if key == "length":
            return len(target)
        if _is_number(key) and float(key).is_integer():  # type: ignore[arg-type]
            idx = int(key)  # type: ignore[call-overload]
            return target[idx] if 0 <= idx < len(target) else None
        return None
    return None


class Interpreter:
    """Evaluates a parsed guard against the ``entity`` and ``context`` bindings."""

    def __init__(self, entity: Mapping[str, Any], context: Mapping[str, Any]) -> None:
        self._scope: dict[str, object] = {
            **BUILTINS,
            "entity": dict(entity),
            "context": dict(context),
        }

    def evaluate(self, node: Node) -> object:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, Identifier):
            if node.name not in self._scope:
                raise ExpressionEvaluationError(f"{node.name} is not defined")
            return self._scope[node.name]

        if isinstance(node, Member):
            target = self.evaluate(node.target)
            if target is None and node.optional:
                return None
            return _get_property(target, node.name, node=node)

        if isinstance(node, Index):
            target = self.evaluate(node.target)
            return _get_property(target, self.evaluate(node.key), node=node)

        if isinstance(node, Call):
            fn = self.evaluate(node.callee)
            if not isinstance(fn, Builtin):
                raise ExpressionEvaluationError(f"{_describe(node.callee)} is not a function")
            return fn(*(self.evaluate(a) for a in node.args))

        if isinstance(node, Unary):
            value = self.evaluate(node.operand)
            if node.op == "!":
                return not truthy(value)
            if isinstance(value, bool):
                return -int(value)
            return _normalise(-to_number(value))

        if isinstance(node, Logical):
            left = self.evaluate(node.left)
            if node.op == "&&":
                return self.evaluate(node.right) if truthy(left) else left
            return left if truthy(left) else self.evaluate(node.right)

        if isinstance(node, Binary):
            left = self.evaluate(node.left)
            right = self.evaluate(node.right)
            if node.op == "===":
                return strict_equals(left, right)
            if node.op == "!==":
                return not strict_equals(left, right)
            if node.op == "==":
                return loose_equals(left, right)
            if node.op == "!=":
                return not loose_equals(left, right)
            return compare(node.op, left, right)

        raise ExpressionEvaluationError(f"Unsupported node {type(node).__name__}")


def evaluate_expression(
    source: str,
    entity: Mapping[str, Any] | None = None,
    context: Mapping[str, Any] | None = None,
) -> object:
    """Parse (cached) and evaluate a guard, returning the raw value.

    Raises:
        ExpressionSyntaxError: If the source does not match the grammar.
        ExpressionEvaluationError: If evaluation fails.
    """

    return Interpreter(entity or {}, context or {}).evaluate(parse_expression(source))
