"""Tests for rule matching and actions."""

import re
from unittest.mock import MagicMock

import pytest

from mailrules.connectors.base import BaseMailboxClient
from mailrules.delivery import BaseSink, Delivery
from mailrules.exceptions import ActionError, DeliveryError, MailboxError
from mailrules.models import MessageBody, MessageEnvelope, StreamContent
from mailrules.rules import (
    EqualsMatcher,
    FieldPredicate,
    FlagRule,
    MoveRule,
    RegexMatcher,
    StreamRule,
    UnflagRule,
    act,
    describe_rule,
    match_message,
)

ANY_SUBJECT = FieldPredicate(field="subject", matcher=RegexMatcher(pattern=re.compile("")))
FROM_A = FieldPredicate(field="from", matcher=EqualsMatcher(value="a@example.com"))

RAW = b"From: a@example.com\r\nSubject: hi\r\n\r\nbody\r\n"


def envelope(uid: int, **kwargs: object) -> MessageEnvelope:
    return MessageEnvelope(uid=uid, **kwargs)


class TestMatchMessage:
    def test_move_collects_matching_uids(self) -> None:
        rule = MoveRule(predicate=FROM_A, mailbox="Archive")
        assert match_message(rule, envelope(1, from_=["a@example.com"])) is True
        assert match_message(rule, envelope(2, from_=["b@example.com"])) is False
        assert match_message(rule, envelope(3, from_=["a@example.com"])) is True
        assert rule.pending == {1, 3}

    def test_pending_is_a_set(self) -> None:
        rule = MoveRule(predicate=ANY_SUBJECT, mailbox="Archive")
        match_message(rule, envelope(7))
        match_message(rule, envelope(7))
        assert rule.pending == {7}

    def test_flag_skips_message_already_flagged(self) -> None:
        rule = FlagRule(predicate=ANY_SUBJECT, flag="Promo")
        assert match_message(rule, envelope(1, flags=["Promo"])) is False
        assert match_message(rule, envelope(2, flags=["\\Seen"])) is True
        assert rule.pending == {2}

    def test_flag_default_is_flagged(self) -> None:
        rule = FlagRule(predicate=ANY_SUBJECT)
        assert match_message(rule, envelope(1, flags=["\\Flagged"])) is False

    def test_unflag_skips_message_carrying_flag(self) -> None:
        rule = UnflagRule(predicate=ANY_SUBJECT, flag="Promo")
        assert match_message(rule, envelope(1, flags=["Promo"])) is False
        assert match_message(rule, envelope(2)) is True

    def test_stream_skips_done(self) -> None:
        rule = StreamRule(predicate=ANY_SUBJECT, url="https://hooks.example")
        rule.mark_done({1})
        assert match_message(rule, envelope(1)) is False
        assert match_message(rule, envelope(2)) is True
        assert rule.pending == {2}


class TestTakePending:
    def test_take_resets(self) -> None:
        rule = MoveRule(predicate=ANY_SUBJECT, mailbox="Archive")
        match_message(rule, envelope(1))
        assert rule.take_pending() == {1}
        assert rule.pending == frozenset()

    def test_matches_after_take_accumulate_fresh(self) -> None:
        rule = MoveRule(predicate=ANY_SUBJECT, mailbox="Archive")
        match_message(rule, envelope(1))
        taken = rule.take_pending()
        match_message(rule, envelope(2))
        assert taken == {1}
        assert rule.pending == {2}


class TestAct:
    @pytest.fixture
    def client(self) -> MagicMock:
        return MagicMock(spec=BaseMailboxClient)

    @pytest.fixture
    def sink(self) -> MagicMock:
        return MagicMock(spec=BaseSink)

    def test_nothing_pending_issues_nothing(self, client: MagicMock, sink: MagicMock) -> None:
        for rule in (
            MoveRule(predicate=ANY_SUBJECT, mailbox="Archive"),
            FlagRule(predicate=ANY_SUBJECT),
            UnflagRule(predicate=ANY_SUBJECT),
            StreamRule(predicate=ANY_SUBJECT, url="https://hooks.example"),
        ):
            assert act(rule, client, sink) == []
        assert client.method_calls == []
        sink.post.assert_not_called()

    def test_move_single_batched_request(self, client: MagicMock, sink: MagicMock) -> None:
        rule = MoveRule(predicate=ANY_SUBJECT, mailbox="Archive")
        for uid in (3, 1, 2):
            match_message(rule, envelope(uid))

        act(rule, client, sink)

        client.move.assert_called_once_with({1, 2, 3}, "Archive")
        assert rule.pending == frozenset()

    def test_flag_adds(self, client: MagicMock, sink: MagicMock) -> None:
        rule = FlagRule(predicate=ANY_SUBJECT, flag="Promo")
        match_message(rule, envelope(5))
        act(rule, client, sink)
        client.set_flags.assert_called_once_with({5}, ["Promo"], True)

    def test_unflag_removes(self, client: MagicMock, sink: MagicMock) -> None:
        rule = UnflagRule(predicate=ANY_SUBJECT, flag="Promo")
        match_message(rule, envelope(5))
        act(rule, client, sink)
        client.set_flags.assert_called_once_with({5}, ["Promo"], False)

    def test_mailbox_failure_becomes_action_error(
        self, client: MagicMock, sink: MagicMock
    ) -> None:
        client.move.side_effect = MailboxError("NO [TRYCREATE] no such mailbox")
        rule = MoveRule(predicate=ANY_SUBJECT, mailbox="Nope")
        match_message(rule, envelope(1))

        with pytest.raises(ActionError, match="no such mailbox") as exc_info:
            act(rule, client, sink)
        assert exc_info.value.rule == describe_rule(rule)
        # The batch is not retried on the next pass
        assert rule.pending == frozenset()

    def test_stream_delivers_each_message(self, client: MagicMock, sink: MagicMock) -> None:
        client.fetch_bodies.return_value = iter(
            [MessageBody(uid=1, raw=RAW), MessageBody(uid=2, raw=RAW)]
        )
        rule = StreamRule(predicate=ANY_SUBJECT, url="https://hooks.example")
        match_message(rule, envelope(1))
        match_message(rule, envelope(2))

        assert act(rule, client, sink) == []

        client.fetch_bodies.assert_called_once_with({1, 2})
        assert sink.post.call_count == 2
        url, delivery = sink.post.call_args_list[0].args
        assert url == "https://hooks.example"
        assert isinstance(delivery, Delivery)
        assert delivery.body == RAW
        assert delivery.headers["Content-Type"] == "message/rfc822"
        assert rule.done == {1, 2}

    def test_stream_posts_to_secondary_endpoint(self, client: MagicMock, sink: MagicMock) -> None:
        client.fetch_bodies.return_value = iter([MessageBody(uid=1, raw=RAW)])
        rule = StreamRule(predicate=ANY_SUBJECT, url="https://a.example", mirror_url="https://b")
        match_message(rule, envelope(1))

        act(rule, client, sink)

        assert [c.args[0] for c in sink.post.call_args_list] == ["https://a.example", "https://b"]

    def test_stream_failure_isolated_per_message(
        self, client: MagicMock, sink: MagicMock
    ) -> None:
        client.fetch_bodies.return_value = iter(
            [MessageBody(uid=1, raw=RAW), MessageBody(uid=2, raw=RAW)]
        )

        def post(url: str, delivery: Delivery) -> None:
            if delivery.uid == 1:
                raise DeliveryError(1, "error response: 500")

        sink.post.side_effect = post
        rule = StreamRule(predicate=ANY_SUBJECT, url="https://hooks.example")
        match_message(rule, envelope(1))
        match_message(rule, envelope(2))

        errors = act(rule, client, sink)

        assert [e.uid for e in errors] == [1]
        assert sink.post.call_count == 2
        # Failed deliveries are not retried
        assert rule.done == {1, 2}
        assert match_message(rule, envelope(1)) is False

    def test_stream_build_failure_isolated(self, client: MagicMock, sink: MagicMock) -> None:
        client.fetch_bodies.return_value = iter(
            [MessageBody(uid=1, raw=RAW), MessageBody(uid=2, raw=RAW)]
        )
        rule = StreamRule(predicate=ANY_SUBJECT, content=StreamContent.HTML, url="https://h")
        match_message(rule, envelope(1))
        match_message(rule, envelope(2))

        errors = act(rule, client, sink)

        # Neither message is multipart
        assert sorted(e.uid for e in errors) == [1, 2]
        sink.post.assert_not_called()
        assert rule.done == {1, 2}

    def test_stream_fetch_failure_is_action_error(
        self, client: MagicMock, sink: MagicMock
    ) -> None:
        def bodies(uids: object) -> object:
            yield MessageBody(uid=1, raw=RAW)
            raise MailboxError("fetch message bodies: connection reset")

        client.fetch_bodies.side_effect = bodies
        rule = StreamRule(predicate=ANY_SUBJECT, url="https://hooks.example")
        match_message(rule, envelope(1))
        match_message(rule, envelope(2))

        with pytest.raises(ActionError, match="connection reset"):
            act(rule, client, sink)
        # The message fetched before the failure was still delivered
        sink.post.assert_called_once()
        assert rule.done == {1, 2}

    def test_stream_fetch_failure_keeps_delivery_errors(
        self, client: MagicMock, sink: MagicMock
    ) -> None:
        def bodies(uids: object) -> object:
            yield MessageBody(uid=1, raw=RAW)
            raise MailboxError("fetch message bodies: connection reset")

        client.fetch_bodies.side_effect = bodies
        sink.post.side_effect = DeliveryError(1, "error response: 500")
        rule = StreamRule(predicate=ANY_SUBJECT, url="https://hooks.example")
        match_message(rule, envelope(1))
        match_message(rule, envelope(2))

        with pytest.raises(ActionError) as exc_info:
            act(rule, client, sink)

        assert [e.uid for e in exc_info.value.failures] == [1]
        assert exc_info.value.rule == describe_rule(rule)


class TestDescribeRule:
    def test_move(self) -> None:
        rule = MoveRule(predicate=FROM_A, mailbox="Archive")
        assert describe_rule(rule) == 'if from = "a@example.com" then move "Archive"'

    def test_flag(self) -> None:
        assert describe_rule(FlagRule(predicate=FROM_A)) == (
            'if from = "a@example.com" then flag "\\\\Flagged"'
        )

    def test_stream(self) -> None:
        rule = StreamRule(
            predicate=FROM_A, content=StreamContent.HTML, url="https://a", mirror_url="https://b"
        )
        assert describe_rule(rule) == (
            'if from = "a@example.com" then stream html "https://a" "https://b"'
        )
