"""Text parsing for single-variable expressions.

The grammar is a small arithmetic language in the style of calculator input:
``sin(x) + x^2/5``, ``exp(-x^2)``, ``x<0 ? -x : x^2``, ``|x|``. Parsing is a
hand-written recursive descent over a regex tokenizer and produces the tree
types of :mod:`slope_toolkit.ExpressionTree`.

Operator precedence, loosest first::

    ? :                      (right associative)
    < <= > >= == !=
    + -
    * /  and implicit products (2x, 3(x+1), (x+1)(x-1))
    unary + -
    ^  (also **)             (right associative, -x^2 == -(x^2))

Examples
--------
>>> parse_expression("2x^2 + 1")  # doctest: +SKIP
BinaryOp(op='+', left=BinaryOp(op='*', ...), right=Literal(value=1.0, name=None))
>>> normalize_expression("  |x - 1| ")
'abs(x - 1)'
"""

from __future__ import annotations

import math
import re
from typing import List, NamedTuple, Optional

from .ExpressionTree import (
    COMPARISON_OPERATORS,
    FUNCTION_ARITY,
    BinaryOp,
    Call,
    Conditional,
    Literal,
    Node,
    UnaryOp,
    Variable,
)

__all__ = [
    "ExpressionParseError",
    "normalize_expression",
    "parse_expression",
    "tokenize",
]


class ExpressionParseError(ValueError):
    """Raised when text cannot be parsed into an expression tree.

    Attributes
    ----------
    position : int or None
        Character offset of the offending token, when known.
    """

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        super().__init__(message)
        self.position = position


_FUNCTION_ALIASES = {"ln": "log"}
_CONSTANTS = {"pi": math.pi, "π": math.pi, "e": math.e}

_ABS_BARS = re.compile(r"\|(.*)\|", re.DOTALL)


def normalize_expression(raw: Optional[str]) -> str:
    """Trim ``raw`` and rewrite one outer ``|...|`` pair into ``abs(...)``.

    The rewrite only applies when the whole trimmed string is wrapped in bars
    and no ``abs`` call is present yet. Inner bars are left alone, so
    ``|x| + |y|`` style input is not supported.

    Parameters
    ----------
    raw : str or None
        User input.

    Returns
    -------
    str
        Normalized text; ``""`` for ``None`` or blank input.
    """
    if not raw or not raw.strip():
        return ""
    text = raw.strip()
    if "|" in text and "abs" not in text:
        match = _ABS_BARS.fullmatch(text)
        if match:
            text = f"abs({match.group(1)})"
    return text


# SECTION: tokenizer [id: tokenize]
# =============================================================================

class Token(NamedTuple):
    kind: str  # "number", "name", "op" or "end"
    text: str
    position: int


_TOKEN_RE = re.compile(
    r"""
    (?P<space>\s+)
    |(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
    |(?P<name>[A-Za-z_][A-Za-z_0-9]*|π)
    |(?P<op>\*\*|<=|>=|==|!=|[-+*/^<>(),?:])
    """,
    re.VERBOSE,
)


def tokenize(text: str) -> List[Token]:
    """Split ``text`` into tokens, ending with an ``end`` token."""
    tokens: List[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ExpressionParseError(f"Unexpected character {text[pos]!r}", pos)
        kind = match.lastgroup
        if kind != "space":
            value = match.group()
            if value == "**":
                value = "^"
            tokens.append(Token(kind, value, pos))
        pos = match.end()
    tokens.append(Token("end", "", len(text)))
    return tokens


# SECTION: recursive descent [id: parser]
# =============================================================================

class _Parser:
    def __init__(self, tokens: List[Token]) -> None:
        self._tokens = tokens
        self._index = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    @property
    def _previous(self) -> Optional[Token]:
        return self._tokens[self._index - 1] if self._index else None

    def _advance(self) -> Token:
        token = self._current
        if token.kind != "end":
            self._index += 1
        return token

    def _at_op(self, *ops: str) -> bool:
        return self._current.kind == "op" and self._current.text in ops

    def _expect_op(self, op: str) -> Token:
        if not self._at_op(op):
            found = self._current.text or "end of input"
            raise ExpressionParseError(
                f"Expected {op!r} but found {found!r}", self._current.position
            )
        return self._advance()

    def parse(self) -> Node:
        node = self._conditional()
        if self._current.kind != "end":
            raise ExpressionParseError(
                f"Unexpected token {self._current.text!r}", self._current.position
            )
        return node

    def _conditional(self) -> Node:
        condition = self._comparison()
        if not self._at_op("?"):
            return condition
        self._advance()
        then = self._conditional()
        self._expect_op(":")
        otherwise = self._conditional()
        return Conditional(condition, then, otherwise)

    def _comparison(self) -> Node:
        node = self._additive()
        while self._at_op(*COMPARISON_OPERATORS):
            op = self._advance().text
            node = BinaryOp(op, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._multiplicative()
        while self._at_op("+", "-"):
            op = self._advance().text
            node = BinaryOp(op, node, self._multiplicative())
        return node

    def _implicit_product_follows(self) -> bool:
        prev = self._previous
        if prev is None or not (prev.kind == "number" or prev.text == ")"):
            return False
        return self._current.kind == "name" or self._at_op("(")

    def _multiplicative(self) -> Node:
        node = self._unary()
        while True:
            if self._at_op("*", "/"):
                op = self._advance().text
                node = BinaryOp(op, node, self._unary())
            elif self._implicit_product_follows():
                node = BinaryOp("*", node, self._unary())
            else:
                return node

    def _unary(self) -> Node:
        if self._at_op("-", "+"):
            op = self._advance().text
            return UnaryOp(op, self._unary())
        return self._power()

    def _power(self) -> Node:
        base = self._primary()
        if self._at_op("^"):
            self._advance()
            return BinaryOp("^", base, self._unary())
        return base

    def _primary(self) -> Node:
        token = self._current
        if token.kind == "number":
            self._advance()
            return Literal(float(token.text))
        if token.kind == "name":
            self._advance()
            if self._at_op("("):
                return self._call(token)
            if token.text == "x":
                return Variable("x")
            if token.text in _CONSTANTS:
                name = "pi" if token.text == "π" else token.text
                return Literal(_CONSTANTS[token.text], name)
            raise ExpressionParseError(f"Unknown symbol {token.text!r}", token.position)
        if self._at_op("("):
            self._advance()
            node = self._conditional()
            self._expect_op(")")
            return node
        found = token.text or "end of input"
        raise ExpressionParseError(f"Unexpected {found!r}", token.position)

    def _call(self, name_token: Token) -> Node:
        name = _FUNCTION_ALIASES.get(name_token.text, name_token.text)
        if name not in FUNCTION_ARITY:
            raise ExpressionParseError(
                f"Unknown function {name_token.text!r}", name_token.position
            )
        self._expect_op("(")
        args = [self._conditional()]
        while self._at_op(","):
            self._advance()
            args.append(self._conditional())
        self._expect_op(")")
        if len(args) not in FUNCTION_ARITY[name]:
            raise ExpressionParseError(
                f"{name}() takes {' or '.join(map(str, FUNCTION_ARITY[name]))} "
                f"argument(s), got {len(args)}",
                name_token.position,
            )
        return Call(name, tuple(args))


def parse_expression(text: str) -> Node:
    """Parse ``text`` into an expression tree.

    Parameters
    ----------
    text : str
        Expression source. It is parsed as-is; call
        :func:`normalize_expression` first for user input.

    Returns
    -------
    Node
        Root of the parsed tree.

    Raises
    ------
    ExpressionParseError
        If the text is empty, contains unknown characters, names or
        functions, or does not follow the grammar.

    Examples
    --------
    >>> parse_expression("x<0 ? -1 : 1")  # doctest: +SKIP
    Conditional(condition=BinaryOp(op='<', ...), ...)
    """
    if not text or not text.strip():
        raise ExpressionParseError("Empty expression", 0)
    try:
        return _Parser(tokenize(text)).parse()
    except RecursionError as e:
        raise ExpressionParseError("Expression is nested too deeply") from e
