"""Batching engine: matches one mailbox scan against every rule.

A scan runs in two phases. The match phase streams envelopes from the
mailbox and offers each message to every rule in declaration order. The
action phase then runs each rule's action once, batching everything the
rule matched into a single mailbox request.

When several rules match the same message with conflicting actions, all
of them are issued in rule order and the server's last applied mutation
wins.
"""

from collections.abc import Sequence

import structlog
from pydantic import BaseModel, ConfigDict

from mailrules.buffer import buffered
from mailrules.connectors.base import BaseMailboxClient
from mailrules.defaults import DEFAULT_FETCH_BUFFER_SIZE
from mailrules.delivery import BaseSink, HTTPSink
from mailrules.exceptions import ActionError, MailboxError, MailRulesError
from mailrules.rules.rule import Rule, act, describe_rule, match_message

logger = structlog.get_logger()


class ScanReport(BaseModel):
    """Outcome of one scan."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    scanned: int = 0
    matched: int = 0
    errors: list[MailRulesError] = []


class RuleEngine:
    """Runs scans of the selected mailbox against a fixed list of rules."""

    def __init__(
        self,
        rules: Sequence[Rule],
        client: BaseMailboxClient,
        sink: BaseSink | None = None,
        buffer_size: int = DEFAULT_FETCH_BUFFER_SIZE,
    ) -> None:
        """Initialize the engine.

        Args:
            rules: Rules in declaration order.
            client: Connected mailbox client with the mailbox selected.
            sink: Delivery endpoint for stream rules. Defaults to HTTP.
            buffer_size: Capacity of the fetch buffers.
        """
        self._rules = list(rules)
        self._client = client
        self._sink = sink or HTTPSink()
        self._buffer_size = buffer_size

    @property
    def rules(self) -> list[Rule]:
        return list(self._rules)

    def scan(self) -> ScanReport:
        """Run one match phase and one action phase.

        Action failures are logged and collected in the report; they never
        abort the scan.

        Raises:
            MailboxError: If fetching the envelopes failed. Raised after the
                action phase ran for everything matched up to the failure.
        """
        report = ScanReport()
        fetch_error: MailboxError | None = None

        logger.info("Reading mailbox")
        try:
            for message in buffered(self._client.fetch_envelopes(), self._buffer_size):
                report.scanned += 1
                for rule in self._rules:
                    if match_message(rule, message):
                        report.matched += 1
        except MailboxError as e:
            fetch_error = e

        self._act(report)

        if fetch_error is not None:
            raise fetch_error

        logger.info(
            "Scan complete",
            scanned=report.scanned,
            matched=report.matched,
            errors=len(report.errors),
        )
        return report

    def _act(self, report: ScanReport) -> None:
        for rule in self._rules:
            try:
                failures = act(rule, self._client, self._sink, self._buffer_size)
            except ActionError as e:
                logger.error("Apply rule failed", rule=describe_rule(rule), error=str(e))
                report.errors.append(e)
                report.errors.extend(e.failures)
                continue
            report.errors.extend(failures)
