"""Rule and predicate AST."""

from mailrules.rules.predicates import (
    AndPredicate,
    EqualsMatcher,
    FieldPredicate,
    NotPredicate,
    OrPredicate,
    Predicate,
    RegexMatcher,
    describe,
    evaluate,
    field_predicate,
)
from mailrules.rules.rule import (
    FlagRule,
    MoveRule,
    Rule,
    StreamRule,
    UnflagRule,
    act,
    describe_rule,
    match_message,
)

__all__ = [
    "AndPredicate",
    "EqualsMatcher",
    "FieldPredicate",
    "FlagRule",
    "MoveRule",
    "NotPredicate",
    "OrPredicate",
    "Predicate",
    "RegexMatcher",
    "Rule",
    "StreamRule",
    "UnflagRule",
    "act",
    "describe",
    "describe_rule",
    "evaluate",
    "field_predicate",
    "match_message",
]
