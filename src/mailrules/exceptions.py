"""Custom exceptions for mailrules."""


class MailRulesError(Exception):
    """Base exception for mailrules."""


class ConfigError(MailRulesError):
    """Raised when there is a configuration error.

    Carries the offending file and YAML location when known.
    """

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        line: int | None = None,
        col: int | None = None,
    ) -> None:
        self.file_path = file_path
        self.line = line
        self.col = col
        full_message = message
        if file_path:
            location = f" in {file_path}"
            if line is not None:
                location += f" at line {line}"
                if col is not None:
                    location += f", column {col}"
            full_message = f"Configuration error{location}: {message}"
        super().__init__(full_message)


class ParseError(MailRulesError):
    """Raised when a rule file cannot be parsed. No rules are produced."""

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        if position is not None:
            message = f"{message} near position {position}"
        super().__init__(message)


class RuleSyntaxError(ParseError):
    """Raised for lexical and grammar errors in a rule file."""


class RuleSemanticError(ParseError):
    """Raised for well-formed rules that cannot be built (unknown field, bad regex)."""


class MailboxError(MailRulesError):
    """Raised when the mailbox server rejects a request or the connection fails."""


class ActionError(MailRulesError):
    """Raised when a rule's batched mailbox mutation fails.

    ``failures`` holds per-message delivery errors collected before the
    request failed.
    """

    def __init__(
        self, rule: str, message: str, failures: list["DeliveryError"] | None = None
    ) -> None:
        self.rule = rule
        self.failures = failures or []
        super().__init__(f"{rule}: {message}")


class DeliveryError(MailRulesError):
    """Raised when a single message cannot be delivered to a stream sink."""

    def __init__(self, uid: int | None, message: str) -> None:
        self.uid = uid
        prefix = f"message {uid}: " if uid is not None else ""
        super().__init__(f"{prefix}{message}")


class WatchError(MailRulesError):
    """Raised when the mailbox change subscription fails. Fatal to the run loop."""
