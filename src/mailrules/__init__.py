"""Continuous IMAP mailbox filtering driven by a small rule language."""

from mailrules.config import Settings
from mailrules.connectors import BaseMailboxClient, IMAPMailboxClient
from mailrules.delivery import BaseSink, HTTPSink
from mailrules.engine import RuleEngine, ScanReport
from mailrules.exceptions import (
    ActionError,
    ConfigError,
    DeliveryError,
    MailboxError,
    MailRulesError,
    ParseError,
    RuleSemanticError,
    RuleSyntaxError,
    WatchError,
)
from mailrules.models import (
    IMAPConfig,
    MailboxChange,
    MessageBody,
    MessageEnvelope,
    StreamContent,
)
from mailrules.parse import parse, parse_file
from mailrules.rules import FlagRule, MoveRule, Rule, StreamRule, UnflagRule
from mailrules.runloop import Watcher

__version__ = "0.1.0"

__all__ = [
    "ActionError",
    "BaseMailboxClient",
    "BaseSink",
    "ConfigError",
    "DeliveryError",
    "FlagRule",
    "HTTPSink",
    "IMAPConfig",
    "IMAPMailboxClient",
    "MailRulesError",
    "MailboxChange",
    "MailboxError",
    "MessageBody",
    "MessageEnvelope",
    "MoveRule",
    "ParseError",
    "Rule",
    "RuleEngine",
    "RuleSemanticError",
    "RuleSyntaxError",
    "ScanReport",
    "Settings",
    "StreamContent",
    "StreamRule",
    "UnflagRule",
    "WatchError",
    "Watcher",
    "parse",
    "parse_file",
]
