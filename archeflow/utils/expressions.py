"""Boolean path expressions and ``${}`` string interpolation.

Expressions gate flow nodes, outputs and model entries (the ``if``
attribute). They are parsed once, bound to absolute paths and type-checked
when an archetype is compiled, then evaluated against the Choice Tree:

    ${security} && !(${db} == 'mongo')
    ${features} contains ['metrics', 'health']
    ${tracing} != 'zipkin' || ${auth} == true

Interpolation substitutes ``${path}`` placeholders in plain strings, with an
optional ``${path/regex/replacement}`` regex rewrite of the value:

    >>> interpolate("${package/\\./\\/}", {"package": "com.example"}.get)
    'com/example'
"""

import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Union

from ..core.models.context import OptionValue, SelectValue, TextValue
from ..errors import ExpressionError, ExpressionSyntaxError, ExpressionTypeError


# =============================================================================
# AST
# =============================================================================

LiteralValue = Union[str, bool, tuple[str, ...]]


@dataclass(frozen=True)
class Variable:
    """``${path}`` on its own: true iff the path holds a value."""

    path: str


@dataclass(frozen=True)
class Compare:
    op: str  # "==", "!=", "contains"
    path: str
    literal: LiteralValue


@dataclass(frozen=True)
class Not:
    operand: "Expr"


@dataclass(frozen=True)
class And:
    left: "Expr"
    right: "Expr"


@dataclass(frozen=True)
class Or:
    left: "Expr"
    right: "Expr"


Expr = Union[Variable, Compare, Not, And, Or]


# =============================================================================
# Tokenizer
# =============================================================================

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<var>\$\{(?P<path>[^}]*)\})
  | (?P<string>'(?P<sq>[^']*)'|"(?P<dq>[^"]*)")
  | (?P<op>==|!=|&&|\|\||!|\(|\)|\[|\]|,)
  | (?P<word>[A-Za-z_][A-Za-z0-9_-]*)
    """,
    re.VERBOSE,
)

_KEYWORDS = {"true", "false", "contains"}


@dataclass(frozen=True)
class _Token:
    type: str  # var, string, op, keyword
    value: str
    pos: int


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_PATTERN.match(text, pos)
        if not match:
            raise ExpressionSyntaxError(
                f"Unexpected character {text[pos]!r} at {pos} in: {text}"
            )
        if match.group("var"):
            path = match.group("path").strip()
            if not path:
                raise ExpressionSyntaxError(f"Empty variable at {pos} in: {text}")
            tokens.append(_Token("var", path, pos))
        elif match.group("string") is not None:
            value = match.group("sq")
            if value is None:
                value = match.group("dq")
            tokens.append(_Token("string", value, pos))
        elif match.group("op"):
            tokens.append(_Token("op", match.group("op"), pos))
        elif match.group("word"):
            word = match.group("word")
            if word not in _KEYWORDS:
                raise ExpressionSyntaxError(
                    f"Unknown word {word!r} at {pos} in: {text}"
                )
            tokens.append(_Token("keyword", word, pos))
        pos = match.end()
    return tokens


# =============================================================================
# Parser
# =============================================================================


class _Parser:
    """Recursive descent over ``or := and ('||' and)*``, ``and := unary ('&&' unary)*``."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.index = 0

    def parse(self) -> Expr:
        if not self.tokens:
            raise ExpressionSyntaxError("Empty expression")
        expr = self._or()
        if self.index < len(self.tokens):
            token = self.tokens[self.index]
            raise self._error(f"unexpected {token.value!r}", token)
        return expr

    def _peek(self) -> _Token | None:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _accept(self, type_: str, value: str | None = None) -> _Token | None:
        token = self._peek()
        if token and token.type == type_ and (value is None or token.value == value):
            self.index += 1
            return token
        return None

    def _expect(self, type_: str, value: str | None = None) -> _Token:
        token = self._accept(type_, value)
        if token is None:
            found = self._peek()
            wanted = value or type_
            raise self._error(
                f"expected {wanted!r}, found "
                + (repr(found.value) if found else "end of expression"),
                found,
            )
        return token

    def _error(self, message: str, token: _Token | None) -> ExpressionSyntaxError:
        where = f" at {token.pos}" if token else ""
        return ExpressionSyntaxError(f"{message}{where} in: {self.text}")

    def _or(self) -> Expr:
        expr = self._and()
        while self._accept("op", "||"):
            expr = Or(expr, self._and())
        return expr

    def _and(self) -> Expr:
        expr = self._unary()
        while self._accept("op", "&&"):
            expr = And(expr, self._unary())
        return expr

    def _unary(self) -> Expr:
        if self._accept("op", "!"):
            return Not(self._unary())
        return self._primary()

    def _primary(self) -> Expr:
        if self._accept("op", "("):
            expr = self._or()
            self._expect("op", ")")
            return expr

        var = self._expect("var")
        if self._accept("op", "=="):
            return Compare("==", var.value, self._scalar_literal())
        if self._accept("op", "!="):
            return Compare("!=", var.value, self._scalar_literal())
        if self._accept("keyword", "contains"):
            if self._accept("op", "["):
                return Compare("contains", var.value, self._list_literal())
            return Compare("contains", var.value, self._expect("string").value)
        return Variable(var.value)

    def _scalar_literal(self) -> LiteralValue:
        token = self._accept("string")
        if token:
            return token.value
        token = self._accept("keyword", "true") or self._accept("keyword", "false")
        if token:
            return token.value == "true"
        found = self._peek()
        raise self._error("expected a literal", found)

    def _list_literal(self) -> tuple[str, ...]:
        items: list[str] = []
        if self._accept("op", "]"):
            return ()
        while True:
            items.append(self._expect("string").value)
            if self._accept("op", "]"):
                return tuple(items)
            self._expect("op", ",")


def parse_expression(text: str) -> Expr:
    """Parse an expression string.

    Raises:
        ExpressionSyntaxError: If the expression is malformed
    """
    return _Parser(text).parse()


# =============================================================================
# Tree utilities
# =============================================================================


def variables(expr: Expr) -> Iterator[str]:
    """Yield every path referenced by the expression, left to right."""
    if isinstance(expr, (Variable, Compare)):
        yield expr.path
    elif isinstance(expr, Not):
        yield from variables(expr.operand)
    else:
        yield from variables(expr.left)
        yield from variables(expr.right)


def bind_paths(expr: Expr, resolve: Callable[[str], str]) -> Expr:
    """Return a copy of the expression with every path passed through ``resolve``."""
    if isinstance(expr, Variable):
        return Variable(resolve(expr.path))
    if isinstance(expr, Compare):
        return Compare(expr.op, resolve(expr.path), expr.literal)
    if isinstance(expr, Not):
        return Not(bind_paths(expr.operand, resolve))
    return type(expr)(bind_paths(expr.left, resolve), bind_paths(expr.right, resolve))


@dataclass(frozen=True)
class InputSignature:
    """What the type checker needs to know about the input behind a path."""

    kind: str  # text, option, select
    multiple: bool = False
    options: frozenset[str] = frozenset()


def check_types(expr: Expr, signature_of: Callable[[str], InputSignature]) -> None:
    """Verify every operator is applied to a compatible input kind.

    ``signature_of`` receives absolute paths and raises when the path is not
    an input.

    Raises:
        ExpressionTypeError: On the first kind mismatch
    """
    if isinstance(expr, Variable):
        signature_of(expr.path)
        return
    if isinstance(expr, Not):
        check_types(expr.operand, signature_of)
        return
    if isinstance(expr, (And, Or)):
        check_types(expr.left, signature_of)
        check_types(expr.right, signature_of)
        return

    sig = signature_of(expr.path)
    literal = expr.literal
    if expr.op == "contains":
        if sig.kind != "select" or not sig.multiple:
            raise ExpressionTypeError(
                f"'contains' requires a multi-select input, '{expr.path}' is {_describe(sig)}"
            )
        wanted = literal if isinstance(literal, tuple) else (literal,)
        _check_options(expr.path, wanted, sig)
    elif isinstance(literal, bool):
        if sig.kind != "option":
            raise ExpressionTypeError(
                f"'{expr.op} {str(literal).lower()}' requires an option input, "
                f"'{expr.path}' is {_describe(sig)}"
            )
    else:
        if sig.kind == "option" or (sig.kind == "select" and sig.multiple):
            raise ExpressionTypeError(
                f"'{expr.op} '{literal}'' requires a text or single select input, "
                f"'{expr.path}' is {_describe(sig)}"
            )
        if sig.kind == "select":
            _check_options(expr.path, (literal,), sig)


def _check_options(path: str, wanted: tuple[str, ...], sig: InputSignature) -> None:
    unknown = [w for w in wanted if w not in sig.options]
    if unknown:
        raise ExpressionTypeError(
            f"'{path}' has no option(s) {', '.join(repr(u) for u in unknown)} "
            f"(available: {', '.join(sorted(sig.options)) or 'none'})"
        )


def _describe(sig: InputSignature) -> str:
    if sig.kind == "select":
        return "a multi-select" if sig.multiple else "a single select"
    return f"a {sig.kind} input"


# =============================================================================
# Evaluation
# =============================================================================


def evaluate(expr: Expr, lookup: Callable[[str], object | None]) -> bool:
    """Evaluate a bound expression.

    ``lookup`` maps an absolute path to its ContextValue, or None when the
    path has no value. ``&&`` and ``||`` short-circuit left to right.

    Raises:
        ExpressionTypeError: If a value's kind does not match its operator
    """
    if isinstance(expr, Variable):
        return lookup(expr.path) is not None
    if isinstance(expr, Not):
        return not evaluate(expr.operand, lookup)
    if isinstance(expr, And):
        return evaluate(expr.left, lookup) and evaluate(expr.right, lookup)
    if isinstance(expr, Or):
        return evaluate(expr.left, lookup) or evaluate(expr.right, lookup)
    return _compare(expr, lookup(expr.path))


def _compare(expr: Compare, value: object | None) -> bool:
    if value is None:
        return expr.op == "!="

    literal = expr.literal
    if expr.op == "contains":
        if not isinstance(value, SelectValue) or not value.multiple:
            raise ExpressionTypeError(
                f"'contains' applied to non multi-select value at '{expr.path}'"
            )
        wanted = literal if isinstance(literal, tuple) else (literal,)
        return set(wanted).issubset(value.selected)

    if isinstance(literal, bool):
        if not isinstance(value, OptionValue):
            raise ExpressionTypeError(
                f"Boolean comparison applied to non-option value at '{expr.path}'"
            )
        equal = value.enabled == literal
    elif isinstance(value, TextValue):
        equal = value.text == literal
    elif isinstance(value, SelectValue) and not value.multiple:
        equal = value.selected == (literal,)
    else:
        raise ExpressionTypeError(
            f"Text comparison applied to {type(value).__name__} at '{expr.path}'"
        )
    return equal if expr.op == "==" else not equal


# =============================================================================
# Interpolation
# =============================================================================

_GROUP_REFERENCE = re.compile(r"\\(.)|\$(\d+)", re.DOTALL)


def _scan_placeholders(text: str) -> Iterator[tuple[int, int, str]]:
    """Yield ``(start, end, body)`` for every ``${...}`` in ``text``.

    Braces inside the body nest (``${v/\\d{2}/x}``) and a backslash escapes
    the next character. An unterminated ``${`` is plain text.
    """
    pos = text.find("${")
    while pos != -1:
        depth = 0
        i = pos + 2
        end = None
        while i < len(text):
            char = text[i]
            if char == "\\":
                i += 2
                continue
            if char == "{":
                depth += 1
            elif char == "}":
                if depth == 0:
                    end = i
                    break
                depth -= 1
            i += 1
        if end is None:
            return
        if end > pos + 2:
            yield pos, end + 1, text[pos + 2 : end]
        pos = text.find("${", end + 1)


@dataclass(frozen=True)
class Placeholder:
    """One ``${...}`` occurrence: a path plus an optional regex rewrite."""

    path: str
    regex: str | None = None
    replacement: str | None = None


def _split_unescaped(body: str) -> list[str]:
    parts: list[str] = [""]
    i = 0
    while i < len(body):
        char = body[i]
        if char == "\\" and i + 1 < len(body) and body[i + 1] == "/":
            parts[-1] += "/"
            i += 2
            continue
        if char == "/":
            parts.append("")
        else:
            parts[-1] += char
        i += 1
    return parts


def parse_placeholder(body: str) -> Placeholder:
    """Parse the inside of ``${...}``.

    Raises:
        ExpressionSyntaxError: If the rewrite form is malformed
    """
    parts = _split_unescaped(body)
    if len(parts) == 1:
        return Placeholder(parts[0].strip())
    if len(parts) != 3 or not parts[0].strip():
        raise ExpressionSyntaxError(
            f"Expected '${{path/regex/replacement}}', got '${{{body}}}'"
        )
    try:
        re.compile(parts[1])
    except re.error as e:
        raise ExpressionSyntaxError(f"Invalid regex '{parts[1]}' in '${{{body}}}': {e}")
    return Placeholder(parts[0].strip(), parts[1], parts[2])


def placeholders(text: str) -> list[Placeholder]:
    """All placeholders in ``text``, in order."""
    return [parse_placeholder(body) for _, _, body in _scan_placeholders(text)]


def group_template(replacement: str) -> str:
    """Convert a replacement with ``$n`` group references to a ``re.sub`` template.

    ``\\x`` stands for a literal ``x``; everything else is literal.
    """
    parts: list[str] = []
    pos = 0
    for match in _GROUP_REFERENCE.finditer(replacement):
        parts.append(replacement[pos : match.start()].replace("\\", "\\\\"))
        if match.group(2) is not None:
            parts.append(f"\\g<{match.group(2)}>")
        else:
            parts.append(match.group(1).replace("\\", "\\\\"))
        pos = match.end()
    parts.append(replacement[pos:].replace("\\", "\\\\"))
    return "".join(parts)


def _substitute(
    body: str,
    text: str,
    lookup: Callable[[str], str | None],
    resolve: Callable[[str], str] | None,
) -> str:
    ph = parse_placeholder(body)
    path = resolve(ph.path) if resolve else ph.path
    value = lookup(path)
    if value is None:
        raise ExpressionError(f"No value for '{path}' in '{text}'")
    if ph.regex is None:
        return value
    return re.sub(ph.regex, group_template(ph.replacement), value)


def interpolate(
    text: str,
    lookup: Callable[[str], str | None],
    resolve: Callable[[str], str] | None = None,
) -> str:
    """Replace every ``${...}`` placeholder in ``text``.

    Args:
        text: String with placeholders
        lookup: Maps a path to its text value, None when absent
        resolve: Optional path resolver applied before lookup

    Raises:
        ExpressionError: If a referenced path has no value
    """
    parts: list[str] = []
    pos = 0
    for start, end, body in _scan_placeholders(text):
        parts.append(text[pos:start])
        parts.append(_substitute(body, text, lookup, resolve))
        pos = end
    parts.append(text[pos:])
    return "".join(parts)


def replacement_template(
    text: str,
    lookup: Callable[[str], str | None],
    resolve: Callable[[str], str] | None = None,
) -> str:
    """Turn a transformation replacement into a ``re.sub`` template.

    Placeholders are interpolated and taken literally, while the text around
    them may use ``$n`` group references (see :func:`group_template`).

    Raises:
        ExpressionError: If a referenced path has no value
    """
    parts: list[str] = []
    pos = 0
    for start, end, body in _scan_placeholders(text):
        parts.append(group_template(text[pos:start]))
        parts.append(_substitute(body, text, lookup, resolve).replace("\\", "\\\\"))
        pos = end
    parts.append(group_template(text[pos:]))
    return "".join(parts)
