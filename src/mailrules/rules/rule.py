"""Rule variants and the per-scan match and act steps.

A rule pairs a predicate with an action. During a scan every fetched
message is offered to :func:`match_message`, which records matching UIDs in
the rule's pending set. Afterwards :func:`act` takes the pending set and
issues one batched mailbox request for it.

Rule state is owned by the single thread running the scan.
"""

import logging
from typing import Annotated, Literal, Union, assert_never

from pydantic import BaseModel, Field, PrivateAttr

from mailrules.buffer import buffered
from mailrules.connectors.base import BaseMailboxClient
from mailrules.defaults import DEFAULT_FETCH_BUFFER_SIZE, DEFAULT_FLAG
from mailrules.delivery import BaseSink, build_delivery
from mailrules.exceptions import ActionError, DeliveryError, MailboxError
from mailrules.models import MessageEnvelope, StreamContent
from mailrules.rules.predicates import Predicate, describe, evaluate, quote

logger = logging.getLogger(__name__)


class BaseRule(BaseModel):
    """Predicate plus the UIDs it matched during the current scan."""

    predicate: Predicate

    _pending: set[int] = PrivateAttr(default_factory=set)

    @property
    def pending(self) -> frozenset[int]:
        return frozenset(self._pending)

    def add_pending(self, uid: int) -> None:
        self._pending.add(uid)

    def take_pending(self) -> set[int]:
        """Swap the pending set for an empty one and return the old set."""
        pending, self._pending = self._pending, set()
        return pending


class MoveRule(BaseRule):
    kind: Literal["move"] = "move"
    mailbox: str


class FlagRule(BaseRule):
    kind: Literal["flag"] = "flag"
    flag: str = DEFAULT_FLAG


class UnflagRule(BaseRule):
    kind: Literal["unflag"] = "unflag"
    flag: str = DEFAULT_FLAG


class StreamRule(BaseRule):
    """Delivers matched messages to an endpoint, at most one attempt per UID.

    UIDs taken for an action pass join the done set whether or not their
    delivery succeeds. The done set lives only as long as the process.
    """

    kind: Literal["stream"] = "stream"
    content: StreamContent = StreamContent.RFC822
    url: str
    mirror_url: str | None = None

    _done: set[int] = PrivateAttr(default_factory=set)

    @property
    def done(self) -> frozenset[int]:
        return frozenset(self._done)

    @property
    def targets(self) -> list[str]:
        return [self.url] if self.mirror_url is None else [self.url, self.mirror_url]

    def is_done(self, uid: int) -> bool:
        return uid in self._done

    def mark_done(self, uids: set[int]) -> None:
        self._done.update(uids)


Rule = Annotated[
    Union[MoveRule, FlagRule, UnflagRule, StreamRule],
    Field(discriminator="kind"),
]


def describe_rule(rule: Rule) -> str:
    """Render a rule in rule-language syntax (without the trailing semicolon)."""
    condition = describe(rule.predicate)
    match rule:
        case MoveRule(mailbox=mailbox):
            action = f"move {quote(mailbox)}"
        case FlagRule(flag=flag):
            action = f"flag {quote(flag)}"
        case UnflagRule(flag=flag):
            action = f"unflag {quote(flag)}"
        case StreamRule(content=content, url=url, mirror_url=mirror_url):
            action = f"stream {content.value} {quote(url)}"
            if mirror_url is not None:
                action += f" {quote(mirror_url)}"
        case _:
            assert_never(rule)
    return f"if {condition} then {action}"


def match_message(rule: Rule, message: MessageEnvelope) -> bool:
    """Offer a message to a rule; record its UID if the rule applies.

    Flag and unflag rules skip messages already carrying their flag. Stream
    rules skip messages already attempted.

    Returns:
        True if the UID was added to the rule's pending set.
    """
    match rule:
        case MoveRule():
            pass
        case FlagRule(flag=flag) | UnflagRule(flag=flag):
            if message.has_flag(flag):
                return False
        case StreamRule():
            if rule.is_done(message.uid):
                return False
        case _:
            assert_never(rule)

    if not evaluate(rule.predicate, message):
        return False

    match rule:
        case MoveRule(mailbox=mailbox):
            logger.info("Moving %r to %r", message.subject, mailbox)
        case FlagRule(flag=flag):
            logger.info("Flagging %r with %r", message.subject, flag)
        case UnflagRule(flag=flag):
            logger.info("Unflagging %r with %r", message.subject, flag)
        case StreamRule(url=url):
            logger.info("Streaming %r to %r", message.subject, url)
        case _:
            assert_never(rule)

    rule.add_pending(message.uid)
    return True


def act(
    rule: Rule,
    client: BaseMailboxClient,
    sink: BaseSink,
    buffer_size: int = DEFAULT_FETCH_BUFFER_SIZE,
) -> list[DeliveryError]:
    """Apply a rule's action to everything it matched since the last call.

    Issues exactly one mailbox request for move, flag and unflag rules and
    nothing at all when no message matched.

    Returns:
        Per-message delivery failures of a stream rule (empty otherwise).

    Raises:
        ActionError: If the batched mailbox request fails.
    """
    uids = rule.take_pending()
    if isinstance(rule, StreamRule):
        rule.mark_done(uids)
    if not uids:
        return []

    try:
        match rule:
            case MoveRule(mailbox=mailbox):
                client.move(uids, mailbox)
            case FlagRule(flag=flag):
                client.set_flags(uids, [flag], True)
            case UnflagRule(flag=flag):
                client.set_flags(uids, [flag], False)
            case StreamRule():
                return _stream(rule, uids, client, sink, buffer_size)
            case _:
                assert_never(rule)
    except MailboxError as e:
        raise ActionError(describe_rule(rule), str(e)) from e
    return []


def _stream(
    rule: StreamRule,
    uids: set[int],
    client: BaseMailboxClient,
    sink: BaseSink,
    buffer_size: int,
) -> list[DeliveryError]:
    """Fetch and deliver each message on its own; one failure never stops the batch."""
    errors: list[DeliveryError] = []
    try:
        for body in buffered(client.fetch_bodies(uids), buffer_size):
            try:
                delivery = build_delivery(rule.content, body)
            except DeliveryError as e:
                logger.warning("Stream message %d to %r: %s", body.uid, rule.url, e)
                errors.append(e)
                continue
            for url in rule.targets:
                try:
                    sink.post(url, delivery)
                except DeliveryError as e:
                    logger.warning("Stream message %d to %r: %s", body.uid, url, e)
                    errors.append(e)
    except MailboxError as e:
        raise ActionError(describe_rule(rule), str(e), errors) from e
    return errors
