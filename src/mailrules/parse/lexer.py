"""Tokenizer for the rule language.

Turns rule-file text into positioned tokens. Whitespace is skipped, ``//``
starts a line comment, operators are single characters resolved through a
lookup table and words are either reserved words or identifiers.
"""

from collections.abc import Iterator
from enum import Enum
from typing import NamedTuple


class TokenKind(str, Enum):
    """Kinds of token produced by the lexer."""

    # Special tokens
    ERROR = "ERROR"
    EOF = "EOF"

    COMMENT = "COMMENT"
    IDENTIFIER = "IDENTIFIER"
    NUMBER = "NUMBER"
    QUOTE = "QUOTE"

    # Operators
    PLUS = "PLUS"
    MINUS = "MINUS"
    MULTIPLY = "MULTIPLY"
    DIVIDE = "DIVIDE"
    PERIOD = "PERIOD"
    BACKSLASH = "BACKSLASH"
    COLON = "COLON"
    PERCENT = "PERCENT"
    PIPE = "PIPE"
    EXCLAMATION = "EXCLAMATION"
    QUESTION = "QUESTION"
    POUND = "POUND"
    AMPERSAND = "AMPERSAND"
    SEMI = "SEMI"
    COMMA = "COMMA"
    LEFT_PAREN = "L_PAREN"
    RIGHT_PAREN = "R_PAREN"
    LEFT_ANGLE = "L_ANG"
    RIGHT_ANGLE = "R_ANG"
    LEFT_BRACE = "L_BRACE"
    RIGHT_BRACE = "R_BRACE"
    LEFT_BRACKET = "L_BRACKET"
    RIGHT_BRACKET = "R_BRACKET"
    EQUALS = "EQUALS"
    TILDE = "TILDE"

    # Reserved words
    IF = "IF"
    THEN = "THEN"
    MOVE = "MOVE"
    FLAG = "FLAG"
    UNFLAG = "UNFLAG"
    STREAM = "STREAM"
    AND = "AND"
    OR = "OR"
    NOT = "NOT"


class Token(NamedTuple):
    """A single token and the offset of its first character in the input."""

    kind: TokenKind
    value: str
    position: int

    def __str__(self) -> str:
        return f"Token{{{self.kind.value}, '{self.value}', {self.position}}}"


RESERVED_WORDS: dict[str, TokenKind] = {
    "if": TokenKind.IF,
    "then": TokenKind.THEN,
    "move": TokenKind.MOVE,
    "flag": TokenKind.FLAG,
    "unflag": TokenKind.UNFLAG,
    "stream": TokenKind.STREAM,
    "and": TokenKind.AND,
    "or": TokenKind.OR,
    "not": TokenKind.NOT,
}

OPERATORS: dict[str, TokenKind] = {
    "+": TokenKind.PLUS,
    "-": TokenKind.MINUS,
    "*": TokenKind.MULTIPLY,
    "/": TokenKind.DIVIDE,
    ".": TokenKind.PERIOD,
    "\\": TokenKind.BACKSLASH,
    ":": TokenKind.COLON,
    "%": TokenKind.PERCENT,
    "|": TokenKind.PIPE,
    "!": TokenKind.EXCLAMATION,
    "?": TokenKind.QUESTION,
    "#": TokenKind.POUND,
    "&": TokenKind.AMPERSAND,
    ";": TokenKind.SEMI,
    ",": TokenKind.COMMA,
    "(": TokenKind.LEFT_PAREN,
    ")": TokenKind.RIGHT_PAREN,
    "<": TokenKind.LEFT_ANGLE,
    ">": TokenKind.RIGHT_ANGLE,
    "{": TokenKind.LEFT_BRACE,
    "}": TokenKind.RIGHT_BRACE,
    "[": TokenKind.LEFT_BRACKET,
    "]": TokenKind.RIGHT_BRACKET,
    "=": TokenKind.EQUALS,
    "~": TokenKind.TILDE,
}

_WHITESPACE = frozenset(" \t\n\r")
_ESCAPABLE = frozenset('"\\')


def _is_alpha(ch: str) -> bool:
    return ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ch == "_" or ch == "$"


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


class Lexer:
    """Scans rule text one token at a time.

    Call :meth:`next_token` repeatedly; once the input is exhausted every
    further call returns an EOF token.
    """

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    @property
    def _current(self) -> str:
        """Character under the cursor, or an empty string at end of input."""
        return self._text[self._pos] if self._pos < len(self._text) else ""

    def _peek(self) -> str:
        nxt = self._pos + 1
        return self._text[nxt] if nxt < len(self._text) else ""

    def next_token(self) -> Token:
        while self._current and self._current in _WHITESPACE:
            self._pos += 1

        ch = self._current
        if not ch:
            return Token(TokenKind.EOF, "", self._pos)

        kind = OPERATORS.get(ch)
        if kind is not None:
            if kind is TokenKind.DIVIDE and self._peek() == "/":
                return self._scan_comment()
            start = self._pos
            self._pos += 1
            return Token(kind, ch, start)

        if _is_alpha(ch):
            return self._scan_identifier()
        if _is_digit(ch):
            return self._scan_number()
        if ch == '"':
            return self._scan_quote()

        return Token(TokenKind.ERROR, ch, self._pos)

    def __iter__(self) -> Iterator[Token]:
        """Yield tokens up to and including the first EOF or ERROR token."""
        while True:
            token = self.next_token()
            yield token
            if token.kind in (TokenKind.EOF, TokenKind.ERROR):
                return

    def _scan_identifier(self) -> Token:
        start = self._pos
        while self._current and (_is_alpha(self._current) or _is_digit(self._current)):
            self._pos += 1
        value = self._text[start : self._pos]
        return Token(RESERVED_WORDS.get(value, TokenKind.IDENTIFIER), value, start)

    def _scan_number(self) -> Token:
        start = self._pos
        while self._current and _is_digit(self._current):
            self._pos += 1
        return Token(TokenKind.NUMBER, self._text[start : self._pos], start)

    def _scan_quote(self) -> Token:
        start = self._pos
        self._pos += 1
        while self._current and self._current != '"':
            if self._current == "\\":
                self._pos += 1
                if self._current not in _ESCAPABLE:
                    return Token(TokenKind.ERROR, self._current, self._pos)
            self._pos += 1

        if not self._current:
            # Unterminated string: report where it started
            return Token(TokenKind.ERROR, self._text[start:], start)

        self._pos += 1
        return Token(TokenKind.QUOTE, self._text[start : self._pos], start)

    def _scan_comment(self) -> Token:
        start = self._pos
        end = self._text.find("\n", start)
        if end < 0:
            end = len(self._text)
        self._pos = end + 1 if end < len(self._text) else end
        return Token(TokenKind.COMMENT, self._text[start:end], start)


def unquote(literal: str) -> str:
    """Strip the surrounding quotes of a QUOTE token and resolve its escapes."""
    body = literal[1:-1]
    out: list[str] = []
    chars = iter(body)
    for ch in chars:
        if ch == "\\":
            ch = next(chars)
        out.append(ch)
    return "".join(out)
