# gradleflow/infra/flow/kotlin.py
"""
Kotlin DSL lexical layer shared by the script generator and parser.

Provides string-literal escaping for the generator, and a tokenizer plus a
token cursor and statement splitter for the parser. The tokenizer covers the
subset of Kotlin lexical syntax that appears in build scripts: identifiers,
numbers, string literals (regular, raw and character), operators, line
comments and (nested) block comments.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple


# ============================================================
#                   STRING LITERALS
# ============================================================
_ESCAPES = {
    "\\": "\\\\",
    "\"": "\\\"",
    "$": "\\$",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}

_UNESCAPES = {
    "\\": "\\",
    "\"": "\"",
    "'": "'",
    "$": "$",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
}


def escape_string(text: str) -> str:
    """
    Escape text for use inside a Kotlin string literal.

    Backslash, double quote, ``$`` and control characters are escaped, so the
    literal never triggers string templating.
    """
    out = []
    for char in text:
        if char in _ESCAPES:
            out.append(_ESCAPES[char])
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            out.append(f"\\u{ord(char):04x}")
        else:
            out.append(char)
    return "".join(out)


def quote(text: str) -> str:
    return f"\"{escape_string(text)}\""


def quote_all(values: Sequence[str]) -> str:
    return ", ".join(quote(v) for v in values)


# ============================================================
#                   TOKENS
# ============================================================
IDENT = "ident"
STRING = "string"
NUMBER = "number"
OP = "op"
NEWLINE = "newline"
COMMENT = "comment"

_OPERATORS = (
    "?.", "?:", "::", "!!", "==", "!=", "<=", ">=", "&&", "||", "->", "..",
    "+=", "-=",
    "{", "}", "(", ")", "[", "]", "<", ">", ",", ".", ":", ";", "=", "!",
    "?", "+", "-", "*", "/", "%", "@", "&", "|",
)

OPENERS = {"{": "}", "(": ")", "[": "]"}
CLOSERS = {"}", ")", "]"}


@dataclass(frozen=True)
class Token:
    """
    A lexical token.

    Attributes:
        kind: One of IDENT, STRING, NUMBER, OP, NEWLINE, COMMENT
        value: Identifier/operator text, decoded string contents, or comment text
        line: 1-based line of the token start
        start: Offset of the token start in the source
        end: Offset just past the token end
        template: True when a string contains unescaped ``$`` templates
    """
    kind: str
    value: str
    line: int
    start: int
    end: int
    template: bool = False

    def is_op(self, value: str) -> bool:
        return self.kind == OP and self.value == value

    def is_ident(self, value: Optional[str] = None) -> bool:
        return self.kind == IDENT and (value is None or self.value == value)


@dataclass
class TokenizeResult:
    tokens: List[Token] = field(default_factory=list)
    errors: List[Tuple[int, str]] = field(default_factory=list)


def tokenize(text: str) -> TokenizeResult:
    """
    Split Kotlin source into tokens.

    Block comments are dropped, line comments are kept as COMMENT tokens and
    consecutive line breaks collapse into one NEWLINE token. Lexical problems
    (unterminated strings or comments) are reported in ``errors`` and never
    raised; an unterminated string runs to the end of its line.

    Args:
        text: Source text

    Returns:
        TokenizeResult with the tokens and (line, message) errors
    """
    result = TokenizeResult()
    tokens = result.tokens
    i = 0
    line = 1
    length = len(text)

    def add(kind: str, value: str, start: int, end: int, template: bool = False) -> None:
        tokens.append(Token(kind, value, line, start, end, template))

    while i < length:
        char = text[i]

        if char == "\n":
            if not tokens or tokens[-1].kind != NEWLINE:
                add(NEWLINE, "\n", i, i + 1)
            line += 1
            i += 1
            continue

        if char in " \t\r\f\ufeff":
            i += 1
            continue

        if text.startswith("//", i):
            end = text.find("\n", i)
            end = length if end == -1 else end
            add(COMMENT, text[i + 2:end].strip(), i, end)
            i = end
            continue

        if text.startswith("/*", i):
            depth = 0
            j = i
            start_line = line
            while j < length:
                if text.startswith("/*", j):
                    depth += 1
                    j += 2
                elif text.startswith("*/", j):
                    depth -= 1
                    j += 2
                    if depth == 0:
                        break
                else:
                    if text[j] == "\n":
                        line += 1
                    j += 1
            if depth:
                result.errors.append((start_line, "Unterminated block comment"))
            i = j
            continue

        if text.startswith("\"\"\"", i):
            end = text.find("\"\"\"", i + 3)
            start_line = line
            if end == -1:
                result.errors.append((line, "Unterminated raw string literal"))
                end = length
                value = text[i + 3:]
                stop = length
            else:
                while end + 3 < length and text[end + 3] == "\"":
                    end += 1
                value = text[i + 3:end]
                stop = end + 3
            tokens.append(Token(STRING, value, start_line, i, stop, "$" in value))
            line += value.count("\n")
            i = stop
            continue

        if char in "\"'":
            value, stop, template, ok = _read_quoted(text, i, char)
            if not ok:
                result.errors.append((line, "Unterminated string literal"))
            add(STRING, value, i, stop, template)
            i = stop
            continue

        if char.isalpha() or char == "_":
            j = i + 1
            while j < length and (text[j].isalnum() or text[j] == "_"):
                j += 1
            add(IDENT, text[i:j], i, j)
            i = j
            continue

        if char == "`":
            end = text.find("`", i + 1)
            if end == -1 or "\n" in text[i + 1:end]:
                result.errors.append((line, "Unterminated backtick identifier"))
                i += 1
                continue
            add(IDENT, text[i + 1:end], i, end + 1)
            i = end + 1
            continue

        if char.isdigit():
            j = i + 1
            while j < length and (text[j].isalnum() or text[j] in "_."):
                if text[j] == "." and not (j + 1 < length and text[j + 1].isdigit()):
                    break
                j += 1
            add(NUMBER, text[i:j], i, j)
            i = j
            continue

        for op in _OPERATORS:
            if text.startswith(op, i):
                add(OP, op, i, i + len(op))
                i += len(op)
                break
        else:
            result.errors.append((line, f"Unexpected character {char!r}"))
            i += 1

    return result


def _read_quoted(text: str, start: int, quote_char: str) -> Tuple[str, int, bool, bool]:
    """
    Decode a single-line string or character literal.

    Returns:
        (decoded value, offset after the literal, has templates, terminated)
    """
    out = []
    template = False
    i = start + 1
    length = len(text)
    while i < length:
        char = text[i]
        if char == quote_char:
            return "".join(out), i + 1, template, True
        if char == "\n":
            break
        if char == "\\" and i + 1 < length:
            nxt = text[i + 1]
            if nxt == "u" and i + 5 < length:
                try:
                    out.append(chr(int(text[i + 2:i + 6], 16)))
                    i += 6
                    continue
                except ValueError:
                    pass
            out.append(_UNESCAPES.get(nxt, nxt))
            i += 2
            continue
        if char == "$" and i + 1 < length and (text[i + 1] == "{" or text[i + 1].isalpha() or text[i + 1] == "_"):
            template = True
        out.append(char)
        i += 1
    return "".join(out), i, template, False


def source_text(text: str, tokens: Sequence[Token]) -> str:
    """Return the original source spanned by ``tokens``."""
    if not tokens:
        return ""
    return text[tokens[0].start:tokens[-1].end]


# ============================================================
#                   STATEMENTS
# ============================================================
class UnbalancedError(Exception):
    """Delimiters do not balance inside a statement."""

    def __init__(self, message: str, token: Optional[Token]):
        super().__init__(message)
        self.token = token


_CONTINUATION_OPS = {"?.", "?:", ".", "&&", "||", "=", ",", "+", "-", "*", "/", "==", "!=", "<", ">", "<=", ">=", "->", "::"}
_LEADING_CONTINUATION_OPS = {"?.", "?:", ".", "&&", "||"}


def split_statements(tokens: Sequence[Token], start: int = 0, end: Optional[int] = None) -> List[Tuple[int, int]]:
    """
    Split a token range into statements.

    A statement ends at a newline or ``;`` outside any delimiter pair, unless
    the line ends (or the next line starts) with an operator that continues
    the expression. Comment tokens are skipped.

    Args:
        tokens: Token list (comments and newlines included)
        start: First index of the range
        end: Index just past the range

    Returns:
        (start, end) index pairs of non-empty statements

    Raises:
        UnbalancedError: If delimiters do not balance; ``token`` is the offending
            token, or None when the range ends with delimiters still open
    """
    end = len(tokens) if end is None else end
    statements: List[Tuple[int, int]] = []
    i = start
    while i < end:
        while i < end and tokens[i].kind in (NEWLINE, COMMENT) or (i < end and tokens[i].is_op(";")):
            i += 1
        if i >= end:
            break
        stmt_start = i
        i = statement_end(tokens, i, end)
        statements.append((stmt_start, i))
    return statements


def statement_end(tokens: Sequence[Token], i: int, end: int) -> int:
    """Return the index just past the statement starting at ``i``."""
    stack: List[Token] = []
    last: Optional[Token] = None
    while i < end:
        token = tokens[i]
        if token.kind == COMMENT:
            i += 1
            continue
        if not stack:
            if token.is_op(";"):
                return i
            if token.kind == NEWLINE:
                nxt = _next_significant(tokens, i + 1, end)
                continues = (
                    (last is not None and last.kind == OP and last.value in _CONTINUATION_OPS)
                    or (nxt is not None and nxt.kind == OP and nxt.value in _LEADING_CONTINUATION_OPS)
                )
                if not continues:
                    return i
                i += 1
                continue
            if token.kind == OP and token.value in CLOSERS:
                raise UnbalancedError(f"Unexpected '{token.value}'", token)
        if token.kind == OP and token.value in OPENERS:
            stack.append(token)
        elif token.kind == OP and token.value in CLOSERS:
            if OPENERS[stack[-1].value] != token.value:
                raise UnbalancedError(
                    f"Expected '{OPENERS[stack[-1].value]}' but found '{token.value}'", token
                )
            stack.pop()
        if token.kind != NEWLINE:
            last = token
        i += 1
    if stack:
        raise UnbalancedError(f"Unclosed '{stack[-1].value}'", None)
    return i


def _next_significant(tokens: Sequence[Token], i: int, end: int) -> Optional[Token]:
    while i < end and tokens[i].kind in (NEWLINE, COMMENT):
        i += 1
    return tokens[i] if i < end else None


def matching_close(tokens: Sequence[Token], open_index: int, end: Optional[int] = None) -> int:
    """
    Find the index of the delimiter closing ``tokens[open_index]``.

    Raises:
        UnbalancedError: If the delimiter is never closed or closed by the wrong kind
    """
    end = len(tokens) if end is None else end
    stack: List[Token] = []
    for i in range(open_index, end):
        token = tokens[i]
        if token.kind != OP:
            continue
        if token.value in OPENERS:
            stack.append(token)
        elif token.value in CLOSERS:
            if not stack or OPENERS[stack[-1].value] != token.value:
                raise UnbalancedError(f"Unexpected '{token.value}'", token)
            stack.pop()
            if not stack:
                return i
    raise UnbalancedError(f"Unclosed '{tokens[open_index].value}'", tokens[open_index])


# ============================================================
#                   CURSOR
# ============================================================
class Cursor:
    """
    Read position over a token slice.

    Newlines and comments are kept in ``tokens`` (so delimited groups can be
    split into statements again) but are skipped by every read. Match helpers
    return None (or False) instead of raising, so recognizers can try
    alternatives by saving and restoring ``pos``.
    """

    def __init__(self, tokens: Sequence[Token]):
        self.tokens = list(tokens)
        self.pos = 0

    def _skip(self) -> None:
        while self.pos < len(self.tokens) and self.tokens[self.pos].kind in (NEWLINE, COMMENT):
            self.pos += 1

    @property
    def at_end(self) -> bool:
        self._skip()
        return self.pos >= len(self.tokens)

    def peek(self, offset: int = 0) -> Optional[Token]:
        index = self.pos
        seen = -1
        while index < len(self.tokens):
            if self.tokens[index].kind not in (NEWLINE, COMMENT):
                seen += 1
                if seen == offset:
                    return self.tokens[index]
            index += 1
        return None

    def next(self) -> Optional[Token]:
        self._skip()
        token = self.peek()
        if token is not None:
            self.pos += 1
        return token

    def op(self, *values: str) -> bool:
        """Consume the given operators in sequence, or nothing."""
        save = self.pos
        for value in values:
            token = self.peek()
            if token is None or not token.is_op(value):
                self.pos = save
                return False
            self.next()
        return True

    def ident(self, value: Optional[str] = None) -> Optional[str]:
        token = self.peek()
        if token is not None and token.is_ident(value):
            self.next()
            return token.value
        return None

    def path(self, *names: str) -> bool:
        """Consume a dotted path like ``tasks.register`` (``?.`` not accepted)."""
        save = self.pos
        for index, name in enumerate(names):
            if index and not self.op("."):
                self.pos = save
                return False
            if self.ident(name) is None:
                self.pos = save
                return False
        return True

    def string(self) -> Optional[str]:
        token = self.peek()
        if token is not None and token.kind == STRING:
            self.next()
            return token.value
        return None

    def number(self) -> Optional[str]:
        token = self.peek()
        if token is not None and token.kind == NUMBER:
            self.next()
            return token.value
        return None

    def group(self, opener: str) -> Optional[List[Token]]:
        """
        Consume a delimited group and return the raw tokens between the delimiters.

        Args:
            opener: "(", "[" or "{"

        Raises:
            UnbalancedError: If the group is never closed
        """
        self._skip()
        token = self.peek()
        if token is None or not token.is_op(opener):
            return None
        close = matching_close(self.tokens, self.pos)
        inner = self.tokens[self.pos + 1:close]
        self.pos = close + 1
        return inner

    def rest(self) -> List[Token]:
        self._skip()
        remaining = self.tokens[self.pos:]
        self.pos = len(self.tokens)
        return remaining


def split_arguments(tokens: Sequence[Token]) -> List[List[Token]]:
    """Split call-argument tokens on top-level commas."""
    args: List[List[Token]] = []
    current: List[Token] = []
    depth = 0
    for token in tokens:
        if token.kind in (NEWLINE, COMMENT):
            continue
        if token.kind == OP and token.value in OPENERS:
            depth += 1
        elif token.kind == OP and token.value in CLOSERS:
            depth -= 1
        if depth == 0 and token.is_op(","):
            args.append(current)
            current = []
            continue
        current.append(token)
    if current:
        args.append(current)
    return args


def split_top_level(tokens: Sequence[Token], operator: str) -> List[List[Token]]:
    """Split tokens on a binary operator that appears outside any delimiters."""
    parts: List[List[Token]] = [[]]
    depth = 0
    for token in tokens:
        if token.kind in (NEWLINE, COMMENT):
            continue
        if token.kind == OP and token.value in OPENERS:
            depth += 1
        elif token.kind == OP and token.value in CLOSERS:
            depth -= 1
        if depth == 0 and token.is_op(operator):
            parts.append([])
            continue
        parts[-1].append(token)
    return parts


def strip_parens(tokens: Sequence[Token]) -> List[Token]:
    """Remove redundant outer parentheses: ``((a == b))`` -> ``a == b``."""
    tokens = [t for t in tokens if t.kind not in (NEWLINE, COMMENT)]
    while len(tokens) >= 2 and tokens[0].is_op("(") and tokens[-1].is_op(")"):
        try:
            if matching_close(tokens, 0) != len(tokens) - 1:
                break
        except UnbalancedError:
            break
        tokens = tokens[1:-1]
    return tokens
