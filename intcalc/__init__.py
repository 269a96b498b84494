import abc
import dataclasses
import logging
import math
import operator as op
import re
from collections import deque
from collections.abc import Callable, Iterable
from types import MappingProxyType
from typing import Union

logger = logging.getLogger(__name__)

UNARY_MARKER = "~"
WHITESPACE = frozenset(" \t\n")
DIGITS = frozenset("0123456789")
PARENS = frozenset("()")

DIVISION_BY_ZERO = "Cannot evaluate expression, division by zero."
ZERO_TO_ZERO = "Cannot evaluate expression, 0^0 is undefined."
TOO_LARGE = "Cannot evaluate expression, number too large."

# stays under the interpreter's int <-> str conversion limit (4300 digits)
MAX_DIGITS = 4000
MAX_BITS = int(MAX_DIGITS * math.log2(10))

NUMBER = re.compile(r"[0-9]+")
# postfix literals may carry a sign, but "-" on its own is still subtraction
SIGNED_NUMBER = re.compile(r"[+-]?[0-9]+(?![^ \t\n])")
SEPARATORS = re.compile(r"[ \t\n]+")
WORD = re.compile(r"[^ \t\n]+")


class CalculatorError(Exception):
    pass


class EvaluationError(CalculatorError, ArithmeticError):
    pass


class PostfixError(CalculatorError, ValueError):
    pass


class InternalError(CalculatorError):
    """A stage was handed input that an earlier stage should have rejected."""


@dataclasses.dataclass(frozen=True)
class Diagnostic:
    message: str
    column: int


@dataclasses.dataclass(frozen=True)
class Expression:
    original: str
    normalized: str

    def __post_init__(self) -> None:
        if len(self.original) != len(self.normalized):
            raise ValueError("normalized text must keep the original columns")


class ExpressionSyntaxError(CalculatorError):
    def __init__(self, expression: Expression, diagnostic: Diagnostic) -> None:
        super().__init__(diagnostic.message)
        self.expression = expression
        self.diagnostic = diagnostic

    def __str__(self) -> str:
        return render(self.expression, self.diagnostic)


class Symbol(abc.ABC):
    @abc.abstractmethod
    def dispatch(self, stack: deque[int]) -> None:
        ...


@dataclasses.dataclass(frozen=True)
class Number(Symbol):
    value: int
    column: int = dataclasses.field(default=0, compare=False)

    def dispatch(self, stack: deque[int]) -> None:
        stack.append(bounded(self.value))

    def __str__(self) -> str:
        return str(self.value)


@dataclasses.dataclass(frozen=True)
class Operator(Symbol):
    symbol: str
    precedence: int
    arity: int
    fn: Callable[..., int] = dataclasses.field(repr=False)
    right_assoc: bool = False
    column: int = dataclasses.field(default=0, compare=False)

    def dispatch(self, stack: deque[int]) -> None:
        try:
            # the most recently pushed value is the right-hand operand
            args = tuple(stack.pop() for _ in range(self.arity))[::-1]
        except IndexError:
            raise InternalError(
                f"Not enough operands for '{self.symbol}' @ {self.column}"
            ) from None
        stack.append(bounded(self.fn(*args)))

    def yields_to(self, other: "Operator") -> bool:
        if self.right_assoc:
            return other.precedence > self.precedence
        return other.precedence >= self.precedence

    def __str__(self) -> str:
        return self.symbol


@dataclasses.dataclass(frozen=True)
class OpenParen:
    column: int
    symbol = "("


@dataclasses.dataclass(frozen=True)
class CloseParen:
    column: int
    symbol = ")"


Token = Union[Number, Operator, OpenParen, CloseParen]
PostfixToken = Union[Number, Operator]


@dataclasses.dataclass(frozen=True)
class Result:
    expression: Expression
    postfix: tuple[PostfixToken, ...]
    value: int

    @property
    def postfix_text(self) -> str:
        return unparse_postfix(self.postfix)


def bounded(value: int) -> int:
    if value.bit_length() > MAX_BITS:
        raise EvaluationError(TOO_LARGE)
    return value


def parse_digits(digits: str) -> int:
    # int() refuses digit strings past the conversion limit, so go in chunks
    value = 0
    for i in range(0, len(digits), MAX_DIGITS):
        chunk = digits[i : i + MAX_DIGITS]
        value = value * 10 ** len(chunk) + int(chunk)
    return value


def div(a: int, b: int) -> int:
    if b == 0:
        raise EvaluationError(DIVISION_BY_ZERO)
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def mod(a: int, b: int) -> int:
    return a - b * div(a, b)


def power(a: int, b: int) -> int:
    if a == 0 and b == 0:
        raise EvaluationError(ZERO_TO_ZERO)
    if b >= 0:
        if abs(a) > 1 and (abs(a).bit_length() - 1) * b > MAX_BITS:
            raise EvaluationError(TOO_LARGE)
        return a**b
    # 1 / a**-b, truncated toward zero
    if a == 0:
        raise EvaluationError(DIVISION_BY_ZERO)
    if a == 1:
        return 1
    if a == -1:
        return -1 if b % 2 else 1
    return 0


OPERATORS = MappingProxyType(
    {
        UNARY_MARKER: Operator(UNARY_MARKER, 4, 1, op.neg),
        "^": Operator("^", 3, 2, power, right_assoc=True),
        "x": Operator("x", 2, 2, op.mul),
        "/": Operator("/", 2, 2, div),
        "%": Operator("%", 2, 2, mod),
        "+": Operator("+", 1, 2, op.add),
        "-": Operator("-", 1, 2, op.sub),
    }
)


def is_valid_symbol(c: str) -> bool:
    return c in DIGITS or c in OPERATORS or c in PARENS


def normalize(src: str) -> tuple[Expression, Diagnostic | None]:
    """Replace every negation "-" with the unary marker.

    The returned text has the same length as ``src`` so columns reported
    against it are columns of the original. Only the first invalid symbol is
    reported; scanning carries on past it.
    """
    error = None
    expecting = True
    chars = []
    for col, c in enumerate(src, 1):
        if c in WHITESPACE:
            chars.append(c)
            continue
        if error is None and not is_valid_symbol(c):
            error = Diagnostic(
                f"Unexpected symbol '{c}' found at position {col}.", col
            )
        if expecting and c == "-":
            c = UNARY_MARKER
        chars.append(c)
        expecting = c == "(" or c in OPERATORS
    expression = Expression(src, "".join(chars))
    logger.debug("normalized %r -> %r", src, expression.normalized)
    return expression, error


def tokenize(expression: Expression) -> list[Token]:
    src = expression.normalized
    tokens: list[Token] = []
    p = 0
    while p < len(src):
        if m := SEPARATORS.match(src[p:]):
            p += m.end()
        elif m := NUMBER.match(src[p:]):
            tokens.append(Number(parse_digits(m.group()), p + 1))
            p += m.end()
        else:
            c = src[p]
            if c == "(":
                tokens.append(OpenParen(p + 1))
            elif c == ")":
                tokens.append(CloseParen(p + 1))
            elif c in OPERATORS:
                tokens.append(dataclasses.replace(OPERATORS[c], column=p + 1))
            else:
                raise ExpressionSyntaxError(
                    expression,
                    Diagnostic(
                        f"Unexpected symbol '{c}' found at position {p + 1}.",
                        p + 1,
                    ),
                )
            p += 1
    return tokens


def validate(expression: Expression) -> Diagnostic | None:
    """Check that operands and operators alternate and parentheses balance.

    Returns the first violation found, or None for a well-formed expression.
    """
    try:
        tokens = tokenize(expression)
    except ExpressionSyntaxError as e:
        return e.diagnostic
    parens: deque[OpenParen] = deque()
    expecting = True
    for token in tokens:
        col = token.column
        if isinstance(token, Number):
            if not expecting:
                # the caret goes on the boundary before the second operand
                return Diagnostic(f"Expected operator at position {col}.", col - 1)
            expecting = False
        elif isinstance(token, CloseParen) or (
            isinstance(token, Operator) and token.arity == 2
        ):
            if expecting:
                return Diagnostic(
                    f"Expected operand, but found '{token.symbol}' "
                    f"at position {col}.",
                    col,
                )
            if isinstance(token, CloseParen):
                if not parens:
                    return Diagnostic(
                        f"Unmatched ')' found at position {col}.", col
                    )
                parens.pop()
            expecting = isinstance(token, Operator)
        else:
            if not expecting:
                return Diagnostic(
                    f"Expected operator, but found '{token.symbol}' "
                    f"at position {col}.",
                    col,
                )
            if isinstance(token, OpenParen):
                parens.append(token)
    if expecting:
        col = len(expression.normalized) + 1
        return Diagnostic(f"Missing operand at position {col}.", col)
    if parens:
        col = parens.pop().column
        return Diagnostic(f"Unmatched '(' found at position {col}.", col)
    return None


def is_valid(expression: Expression) -> bool:
    return validate(expression) is None


def to_postfix(expression: Expression) -> list[PostfixToken]:
    """Shunting-yard over an expression that already passed ``validate``."""
    output: list[PostfixToken] = []
    stack: deque[Operator | OpenParen] = deque()
    for token in tokenize(expression):
        if isinstance(token, Number):
            output.append(token)
        elif isinstance(token, OpenParen):
            stack.append(token)
        elif isinstance(token, CloseParen):
            while stack and not isinstance(stack[-1], OpenParen):
                output.append(stack.pop())
            if not stack:
                raise InternalError(f"Unmatched ')' @ {token.column}")
            stack.pop()
        elif token.arity == 1:
            # the marker always sits directly before its operand
            stack.append(token)
        else:
            while (
                stack
                and isinstance(stack[-1], Operator)
                and token.yields_to(stack[-1])
            ):
                output.append(stack.pop())
            stack.append(token)
    while stack:
        top = stack.pop()
        if isinstance(top, OpenParen):
            raise InternalError(f"Unmatched '(' @ {top.column}")
        output.append(top)
    return output


def unparse_postfix(tokens: Iterable[PostfixToken]) -> str:
    return " ".join(map(str, tokens))


def parse_postfix(src: str) -> list[PostfixToken]:
    tokens: list[PostfixToken] = []
    p = 0
    while p < len(src):
        if m := SEPARATORS.match(src[p:]):
            p += m.end()
        elif m := SIGNED_NUMBER.match(src[p:]):
            sign, digits = m.group()[:1], m.group().lstrip("+-")
            value = parse_digits(digits)
            tokens.append(Number(-value if sign == "-" else value, p + 1))
            p += m.end()
        else:
            m = WORD.match(src[p:])
            assert m
            word = m.group()
            if word not in OPERATORS:
                raise PostfixError(f"Unknown token @ {p + 1} ({word})")
            tokens.append(dataclasses.replace(OPERATORS[word], column=p + 1))
            p += m.end()
    return tokens


def evaluate_postfix(tokens: Iterable[PostfixToken]) -> int:
    stack: deque[int] = deque()
    for token in tokens:
        token.dispatch(stack)
    if len(stack) != 1:
        raise InternalError(f"Expected one value after evaluation, got {len(stack)}")
    return stack.pop()


def render(expression: Expression, diagnostic: Diagnostic) -> str:
    return (
        f"{expression.original}\n"
        f"{' ' * (diagnostic.column - 1)}^ {diagnostic.message}"
    )


def calculate(src: str) -> Result:
    expression, error = normalize(src)
    if error is None:
        error = validate(expression)
    if error is not None:
        logger.debug("rejected %r: %s", src, error.message)
        raise ExpressionSyntaxError(expression, error)
    postfix = tuple(to_postfix(expression))
    value = evaluate_postfix(postfix)
    logger.debug("postfix of %r is %r", src, unparse_postfix(postfix))
    logger.debug("%r evaluated to %d", src, value)
    return Result(expression, postfix, value)
