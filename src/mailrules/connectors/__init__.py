"""Mailbox clients used by the rule engine."""

from mailrules.connectors.base import BaseMailboxClient
from mailrules.connectors.imap import IMAPMailboxClient

__all__ = ["BaseMailboxClient", "IMAPMailboxClient"]
