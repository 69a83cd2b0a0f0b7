"""Parser for rule files.

Grammar::

    start      := rule ';' | start rule ';'
    rule       := 'if' condition 'then' action
    condition  := comparison
                | condition 'and' condition
                | condition 'or' condition
                | 'not' condition
                | '(' condition ')'
    comparison := IDENT '~' STRING | IDENT '=' STRING
    action     := 'move' STRING
                | 'flag' [STRING]
                | 'unflag' [STRING]
                | 'stream' [IDENT] STRING [STRING]

``and`` and ``or`` share one precedence level and associate to the left,
so ``a or b and c`` is ``(a or b) and c``. ``not`` binds tighter than both.

Regular expressions are compiled and field names checked while parsing;
any error aborts the whole parse.
"""

import logging
import re
from collections.abc import Callable
from pathlib import Path
from typing import TextIO

from mailrules.defaults import DEFAULT_FLAG
from mailrules.exceptions import RuleSemanticError, RuleSyntaxError
from mailrules.models import StreamContent
from mailrules.parse.lexer import Lexer, Token, TokenKind, unquote
from mailrules.rules.predicates import (
    AndPredicate,
    EqualsMatcher,
    NotPredicate,
    OrPredicate,
    Predicate,
    RegexMatcher,
    field_predicate,
)
from mailrules.rules.rule import FlagRule, MoveRule, Rule, StreamRule, UnflagRule

logger = logging.getLogger(__name__)

_BINARY_OPERATORS: dict[TokenKind, Callable[[Predicate, Predicate], Predicate]] = {
    TokenKind.AND: lambda left, right: AndPredicate(left=left, right=right),
    TokenKind.OR: lambda left, right: OrPredicate(left=left, right=right),
}


def _describe_token(token: Token) -> str:
    if token.kind is TokenKind.EOF:
        return "end of input"
    return f"{token.kind.value} '{token.value}'"


class Parser:
    """Builds rules from a token stream, one token of lookahead.

    Comment tokens are skipped. A lexer error token aborts the parse.
    """

    def __init__(self, lexer: Lexer, *, default_flag: str = DEFAULT_FLAG) -> None:
        self._lexer = lexer
        self._default_flag = default_flag
        self._token = self._next()

    def _next(self) -> Token:
        while True:
            token = self._lexer.next_token()
            if token.kind is TokenKind.COMMENT:
                continue
            if token.kind is TokenKind.ERROR:
                raise RuleSyntaxError(f"lexing error at {token.value!r}", token.position)
            return token

    def _advance(self) -> Token:
        token = self._token
        self._token = self._next()
        return token

    def _accept(self, kind: TokenKind) -> Token | None:
        if self._token.kind is kind:
            return self._advance()
        return None

    def _expect(self, kind: TokenKind, what: str) -> Token:
        if self._token.kind is not kind:
            raise self._unexpected(what)
        return self._advance()

    def _unexpected(self, what: str) -> RuleSyntaxError:
        return RuleSyntaxError(
            f"syntax error: unexpected {_describe_token(self._token)}, expecting {what}",
            self._token.position,
        )

    def parse(self) -> list[Rule]:
        """Parse the whole input.

        Returns:
            Rules in declaration order. Never empty.

        Raises:
            RuleSyntaxError: On lexical or grammar errors.
            RuleSemanticError: On unknown fields, invalid regular expressions
                or unknown stream content.
        """
        rules = [self._rule()]
        while self._token.kind is not TokenKind.EOF:
            rules.append(self._rule())
        return rules

    def _rule(self) -> Rule:
        self._expect(TokenKind.IF, "'if'")
        predicate = self._condition()
        self._expect(TokenKind.THEN, "'then', 'and' or 'or'")
        rule = self._action(predicate)
        self._expect(TokenKind.SEMI, "';'")
        return rule

    def _condition(self) -> Predicate:
        left = self._unary()
        while self._token.kind in _BINARY_OPERATORS:
            combine = _BINARY_OPERATORS[self._advance().kind]
            left = combine(left, self._unary())
        return left

    def _unary(self) -> Predicate:
        if self._accept(TokenKind.NOT):
            return NotPredicate(operand=self._unary())
        if self._accept(TokenKind.LEFT_PAREN):
            inner = self._condition()
            self._expect(TokenKind.RIGHT_PAREN, "')'")
            return inner
        return self._comparison()

    def _comparison(self) -> Predicate:
        field = self._expect(TokenKind.IDENTIFIER, "field name, 'not' or '('")
        if self._accept(TokenKind.TILDE):
            literal = self._expect(TokenKind.QUOTE, "string")
            pattern = unquote(literal.value)
            try:
                matcher: EqualsMatcher | RegexMatcher = RegexMatcher(pattern=re.compile(pattern))
            except re.error as e:
                raise RuleSemanticError(
                    f"invalid regular expression '{pattern}': {e}", literal.position
                ) from e
        elif self._accept(TokenKind.EQUALS):
            literal = self._expect(TokenKind.QUOTE, "string")
            matcher = EqualsMatcher(value=unquote(literal.value))
        else:
            raise self._unexpected("'~' or '='")

        try:
            return field_predicate(field.value, matcher)
        except ValueError as e:
            raise RuleSemanticError(str(e), field.position) from e

    def _optional_string(self) -> str | None:
        token = self._accept(TokenKind.QUOTE)
        return unquote(token.value) if token else None

    def _action(self, predicate: Predicate) -> Rule:
        if self._accept(TokenKind.MOVE):
            mailbox = unquote(self._expect(TokenKind.QUOTE, "mailbox name").value)
            return MoveRule(predicate=predicate, mailbox=mailbox)
        if self._accept(TokenKind.FLAG):
            flag = self._optional_string() or self._default_flag
            return FlagRule(predicate=predicate, flag=flag)
        if self._accept(TokenKind.UNFLAG):
            flag = self._optional_string() or self._default_flag
            return UnflagRule(predicate=predicate, flag=flag)
        if self._accept(TokenKind.STREAM):
            content = StreamContent.RFC822
            kind = self._accept(TokenKind.IDENTIFIER)
            if kind is not None:
                try:
                    content = StreamContent(kind.value)
                except ValueError as e:
                    raise RuleSemanticError(
                        f"unknown stream content '{kind.value}'", kind.position
                    ) from e
            url = unquote(self._expect(TokenKind.QUOTE, "stream target").value)
            return StreamRule(
                predicate=predicate,
                content=content,
                url=url,
                mirror_url=self._optional_string(),
            )
        raise self._unexpected("'move', 'flag', 'unflag' or 'stream'")


def parse(source: str | TextIO, *, default_flag: str = DEFAULT_FLAG) -> list[Rule]:
    """Parse rule text (or a readable text stream) into rules.

    Args:
        source: Rule file contents or an open text file.
        default_flag: Flag used by ``flag``/``unflag`` actions without a name.

    Returns:
        The complete rule list. On error nothing is returned.
    """
    text = source if isinstance(source, str) else source.read()
    rules = Parser(Lexer(text), default_flag=default_flag).parse()
    logger.debug("Parsed %d rules", len(rules))
    return rules


def parse_file(path: str | Path, *, default_flag: str = DEFAULT_FLAG) -> list[Rule]:
    """Read and parse a rule file."""
    with open(path, encoding="utf-8") as f:
        return parse(f, default_flag=default_flag)
