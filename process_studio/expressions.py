"""Template and arithmetic mini-language used by math nodes.

An expression such as ``"({{coco}} - {{merma}}) * 2"`` is evaluated in two
phases. Interpolation replaces every ``{{name}}`` with the numeric value of
that variable, a missing or non-numeric variable counting as zero. The
resulting text is then tokenized and parsed by a small recursive-descent
parser that understands numbers, ``+ - * /`` and parentheses and nothing
else, so no user-authored text is ever executed as code.

Grammar::

    expr    := term (("+" | "-") term)*
    term    := unary (("*" | "/") unary)*
    unary   := ("+" | "-") unary | primary
    primary := NUMBER | "(" expr ")"

Arithmetic uses IEEE-754 doubles, including for division by zero.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Union

PLACEHOLDER = re.compile(r"{{(.*?)}}")

_NUMBER = r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
_TOKEN = re.compile(rf"\s*(?:(?P<number>{_NUMBER}|Infinity|NaN)|(?P<op>[-+*/()]))")
_NUMERIC_STRING = re.compile(rf"[+-]?(?:{_NUMBER}|Infinity)")

MAX_NESTING = 100


class ExpressionSyntaxError(ValueError):
    """Raised when an interpolated expression is not valid arithmetic."""

    def __init__(self, message: str, expression: str = "", position: int = -1) -> None:
        super().__init__(message)
        self.expression = expression
        self.position = position


@dataclass(slots=True, frozen=True)
class Number:
    value: float


@dataclass(slots=True, frozen=True)
class UnaryOp:
    op: str
    operand: "ExpressionNode"


@dataclass(slots=True, frozen=True)
class BinaryOp:
    op: str
    left: "ExpressionNode"
    right: "ExpressionNode"


ExpressionNode = Union[Number, UnaryOp, BinaryOp]


@dataclass(slots=True, frozen=True)
class _Token:
    kind: str
    text: str
    position: int


# ----------------------------------------------------------------------
# Interpolation
# ----------------------------------------------------------------------
def coerce_number(value: Any) -> float:
    """Numeric reading of a stored variable; anything unusable becomes 0."""

    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return math.inf if value > 0 else -math.inf
        return 0.0 if math.isnan(number) else number
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if _NUMERIC_STRING.fullmatch(text):
            if text.lstrip("+-") == "Infinity":
                return -math.inf if text.startswith("-") else math.inf
            return float(text)
    return 0.0


def format_number(value: float) -> str:
    """Render a number so the tokenizer reads back the same value."""

    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == int(value) and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def references(expression: str) -> List[str]:
    """Variable names referenced by ``{{name}}`` placeholders, in order."""

    return [match.strip() for match in PLACEHOLDER.findall(expression)]


def interpolate(expression: str, variables: Mapping[str, Any]) -> str:
    """Replace each ``{{name}}`` with the numeric value of ``name``.

    Names are whitespace-stripped, so ``{{ x }}`` reads variable ``x``. The
    browser editor this mirrors looks up the raw text between the braces,
    where ``{{ x }}`` reads a variable named ``" x "`` and so yields 0.
    """

    def substitute(match: "re.Match[str]") -> str:
        return format_number(coerce_number(variables.get(match.group(1).strip())))

    return PLACEHOLDER.sub(substitute, expression)


def assignment_target(expression: str, result_var: Optional[str] = None) -> Optional[str]:
    """Name of the variable that receives the result of ``expression``.

    An explicit ``result_var`` wins. Without one, the first placeholder of
    the original expression is the target, so ``"{{count}} + 1"`` reads as
    "increment count". An expression without placeholders writes nothing.
    """

    if result_var and result_var.strip():
        return result_var.strip()
    names = references(expression)
    if names and names[0]:
        return names[0]
    return None


# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------
def tokenize(text: str) -> List[_Token]:
    tokens: List[_Token] = []
    position = 0
    length = len(text)
    while position < length:
        match = _TOKEN.match(text, position)
        if match is None:
            if text[position:].strip() == "":
                break
            offset = position + (len(text[position:]) - len(text[position:].lstrip()))
            raise ExpressionSyntaxError(
                f"Unexpected character {text[offset]!r} at position {offset}",
                text,
                offset,
            )
        kind = "number" if match.group("number") is not None else "op"
        token_text = match.group(kind)
        tokens.append(_Token(kind, token_text, match.start(kind)))
        position = match.end()
    return tokens


class _Parser:
    def __init__(self, text: str) -> None:
        self._text = text
        self._tokens = tokenize(text)
        self._index = 0
        self._depth = 0

    def parse(self) -> ExpressionNode:
        if not self._tokens:
            raise ExpressionSyntaxError("Empty expression", self._text, 0)
        node = self._expression()
        token = self._peek()
        if token is not None:
            raise self._error(f"Unexpected {token.text!r}", token)
        return node

    def _peek(self) -> Optional[_Token]:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _advance(self) -> _Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _accept(self, *ops: str) -> Optional[_Token]:
        token = self._peek()
        if token is not None and token.kind == "op" and token.text in ops:
            return self._advance()
        return None

    def _error(self, message: str, token: Optional[_Token]) -> ExpressionSyntaxError:
        position = token.position if token is not None else len(self._text)
        return ExpressionSyntaxError(f"{message} at position {position}", self._text, position)

    def _expression(self) -> ExpressionNode:
        node = self._term()
        while True:
            token = self._accept("+", "-")
            if token is None:
                return node
            node = BinaryOp(token.text, node, self._term())

    def _term(self) -> ExpressionNode:
        node = self._unary()
        while True:
            token = self._accept("*", "/")
            if token is None:
                return node
            node = BinaryOp(token.text, node, self._unary())

    def _unary(self) -> ExpressionNode:
        token = self._accept("+", "-")
        if token is None:
            return self._primary()
        self._enter(token)
        try:
            return UnaryOp(token.text, self._unary())
        finally:
            self._depth -= 1

    def _primary(self) -> ExpressionNode:
        token = self._peek()
        if token is None:
            raise self._error("Unexpected end of expression", None)
        if token.kind == "number":
            self._advance()
            return Number(float("inf") if token.text == "Infinity" else float(token.text.lower()))
        if token.text == "(":
            self._advance()
            self._enter(token)
            try:
                node = self._expression()
            finally:
                self._depth -= 1
            if self._accept(")") is None:
                raise self._error("Missing closing parenthesis", self._peek())
            return node
        raise self._error(f"Unexpected {token.text!r}", token)

    def _enter(self, token: _Token) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING:
            raise self._error("Expression nested too deeply", token)


def parse(text: str) -> ExpressionNode:
    """Parse plain arithmetic (no placeholders) into an expression tree."""

    return _Parser(text).parse()


# ----------------------------------------------------------------------
# Evaluation
# ----------------------------------------------------------------------
def _divide(left: float, right: float) -> float:
    if right != 0:
        return left / right
    if left == 0 or math.isnan(left):
        return math.nan
    return math.copysign(math.inf, left) * math.copysign(1.0, right)


def _apply(op: str, left: float, right: float) -> float:
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    return _divide(left, right)


def evaluate_tree(node: ExpressionNode) -> float:
    """Compute ``node`` with an explicit stack.

    Chains like ``1 + 1 + ... + 1`` parse into left-deep trees whose depth
    grows with the expression length, so evaluation does not recurse.
    """

    pending: List[tuple] = [(node, False)]
    values: List[float] = []
    while pending:
        current, operands_ready = pending.pop()
        if isinstance(current, Number):
            values.append(current.value)
        elif operands_ready:
            if isinstance(current, UnaryOp):
                operand = values.pop()
                values.append(-operand if current.op == "-" else operand)
            else:
                right = values.pop()
                left = values.pop()
                values.append(_apply(current.op, left, right))
        else:
            pending.append((current, True))
            if isinstance(current, UnaryOp):
                pending.append((current.operand, False))
            else:
                pending.append((current.right, False))
                pending.append((current.left, False))
    return values.pop()


def evaluate(expression: str, variables: Mapping[str, Any]) -> float:
    """Interpolate ``expression`` against ``variables`` and compute its value."""

    return evaluate_tree(parse(interpolate(expression, variables)))


__all__ = [
    "ExpressionSyntaxError",
    "Number",
    "UnaryOp",
    "BinaryOp",
    "ExpressionNode",
    "coerce_number",
    "format_number",
    "references",
    "interpolate",
    "assignment_target",
    "tokenize",
    "parse",
    "evaluate_tree",
    "evaluate",
]
