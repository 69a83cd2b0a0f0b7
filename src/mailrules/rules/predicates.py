"""Predicate AST evaluated against one message envelope at a time.

Predicates form a closed union discriminated on ``kind``. Every operation
over them (:func:`evaluate`, :func:`describe`) matches exhaustively on the
variant.
"""

import re
from typing import Annotated, Literal, Union, assert_never

from pydantic import BaseModel, ConfigDict, Field

from mailrules.models import MessageEnvelope

# Message fields a comparison may reference
FIELDS = ("to", "from", "subject")

FieldName = Literal["to", "from", "subject"]


class EqualsMatcher(BaseModel):
    """Exact, case-sensitive string comparison (``field = "literal"``)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["equals"] = "equals"
    value: str


class RegexMatcher(BaseModel):
    """Regular expression search (``field ~ "pattern"``), compiled once."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["regex"] = "regex"
    pattern: re.Pattern[str]


StringMatcher = Annotated[Union[EqualsMatcher, RegexMatcher], Field(discriminator="kind")]


class FieldPredicate(BaseModel):
    """Compares one message field against a string matcher."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["field"] = "field"
    field: FieldName
    matcher: StringMatcher


class AndPredicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["and"] = "and"
    left: "Predicate"
    right: "Predicate"


class OrPredicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["or"] = "or"
    left: "Predicate"
    right: "Predicate"


class NotPredicate(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["not"] = "not"
    operand: "Predicate"


Predicate = Annotated[
    Union[FieldPredicate, AndPredicate, OrPredicate, NotPredicate],
    Field(discriminator="kind"),
]

AndPredicate.model_rebuild()
OrPredicate.model_rebuild()
NotPredicate.model_rebuild()


def field_predicate(field: str, matcher: EqualsMatcher | RegexMatcher) -> FieldPredicate:
    """Build a field comparison, rejecting fields messages do not carry.

    Raises:
        ValueError: If ``field`` is not one of ``to``, ``from`` or ``subject``.
    """
    if field not in FIELDS:
        raise ValueError(f"unknown field '{field}'")
    return FieldPredicate(field=field, matcher=matcher)


def match_string(matcher: EqualsMatcher | RegexMatcher, value: str) -> bool:
    match matcher:
        case EqualsMatcher(value=expected):
            return value == expected
        case RegexMatcher(pattern=pattern):
            return pattern.search(value) is not None
        case _:
            assert_never(matcher)


def evaluate(predicate: Predicate, message: MessageEnvelope) -> bool:
    """Evaluate a predicate against a message envelope.

    ``to`` and ``from`` match when any address in the header list matches;
    ``subject`` matches the single subject string. Both operands of ``and``
    and ``or`` are always evaluated.
    """
    match predicate:
        case FieldPredicate(field="subject", matcher=matcher):
            return match_string(matcher, message.subject)
        case FieldPredicate(field=field, matcher=matcher):
            addresses = message.to if field == "to" else message.from_
            return any(match_string(matcher, address) for address in addresses)
        case AndPredicate(left=left, right=right):
            lhs = evaluate(left, message)
            rhs = evaluate(right, message)
            return lhs and rhs
        case OrPredicate(left=left, right=right):
            lhs = evaluate(left, message)
            rhs = evaluate(right, message)
            return lhs or rhs
        case NotPredicate(operand=operand):
            return not evaluate(operand, message)
        case _:
            assert_never(predicate)


def quote(value: str) -> str:
    """Render a string as a rule-language literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def describe(predicate: Predicate) -> str:
    """Render a predicate in rule-language syntax, fully parenthesized."""
    match predicate:
        case FieldPredicate(field=field, matcher=EqualsMatcher(value=value)):
            return f"{field} = {quote(value)}"
        case FieldPredicate(field=field, matcher=RegexMatcher(pattern=pattern)):
            return f"{field} ~ {quote(pattern.pattern)}"
        case AndPredicate(left=left, right=right):
            return f"({describe(left)}) and ({describe(right)})"
        case OrPredicate(left=left, right=right):
            return f"({describe(left)}) or ({describe(right)})"
        case NotPredicate(operand=operand):
            return f"not ({describe(operand)})"
        case _:
            assert_never(predicate)
