"""IMAP mailbox client using imap-tools."""

import logging
import queue
import threading
import time
from collections.abc import Collection, Iterator
from contextlib import contextmanager

from imap_tools import AND, ImapToolsError, MailBox, MailBoxUnencrypted

from mailrules.connectors.base import BaseMailboxClient
from mailrules.defaults import DEFAULT_IDLE_POLL_INTERVAL, DEFAULT_IDLE_REFRESH_INTERVAL
from mailrules.exceptions import MailboxError
from mailrules.models import IMAPConfig, MailboxChange, MessageBody, MessageEnvelope

logger = logging.getLogger(__name__)

# Untagged IDLE responses that signal a change to the selected mailbox
_CHANGE_RESPONSES = (b"EXISTS", b"EXPUNGE", b"RECENT", b"FETCH")


@contextmanager
def _mailbox_errors(action: str) -> Iterator[None]:
    """Translate imap-tools and socket failures into MailboxError."""
    try:
        yield
    except (ImapToolsError, OSError) as e:
        raise MailboxError(f"{action}: {e}") from e


def _uid_list(uids: Collection[int]) -> list[str]:
    return [str(uid) for uid in sorted(uids)]


def is_change_response(response: bytes) -> bool:
    """Check whether an untagged IDLE response reports a mailbox change."""
    return any(marker in response.upper() for marker in _CHANGE_RESPONSES)


class IMAPMailboxClient(BaseMailboxClient):
    """Mailbox client speaking IMAP via imap-tools. All operations are UID based."""

    def __init__(
        self,
        config: IMAPConfig,
        idle_poll_interval: float = DEFAULT_IDLE_POLL_INTERVAL,
        idle_refresh_interval: float = DEFAULT_IDLE_REFRESH_INTERVAL,
    ) -> None:
        """Initialize IMAP client.

        Args:
            config: IMAP server configuration.
            idle_poll_interval: Seconds between checks of the watch stop signal.
            idle_refresh_interval: Seconds after which IDLE is stopped and re-issued.
        """
        self.config = config
        self._idle_poll_interval = idle_poll_interval
        self._idle_refresh_interval = idle_refresh_interval
        self._mailbox: MailBox | MailBoxUnencrypted | None = None
        self._selected: str | None = None

    def _require(self) -> MailBox | MailBoxUnencrypted:
        if not self._mailbox:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._mailbox

    def connect(self) -> None:
        """Establish connection to IMAP server."""
        with _mailbox_errors(f"connect to {self.config.host}:{self.config.port}"):
            if self.config.ssl:
                mailbox: MailBox | MailBoxUnencrypted = MailBox(self.config.host, self.config.port)
            else:
                mailbox = MailBoxUnencrypted(self.config.host, self.config.port)

            mailbox.login(
                self.config.username,
                self.config.password.get_secret_value(),
            )
        self._mailbox = mailbox
        logger.info("Logged in to %s as %s", self.config.host, self.config.username)

    def disconnect(self) -> None:
        """Close connection to IMAP server."""
        if self._mailbox:
            try:
                self._mailbox.logout()
            except (ImapToolsError, OSError):
                logger.debug("IMAP logout failed (connection may already be closed)")
            self._mailbox = None
            self._selected = None

    def select(self, mailbox: str) -> None:
        with _mailbox_errors(f"select mailbox '{mailbox}'"):
            self._require().folder.set(mailbox)
        self._selected = mailbox

    def fetch_envelopes(self, criteria: str = "ALL") -> Iterator[MessageEnvelope]:
        mailbox = self._require()
        with _mailbox_errors("fetch envelopes"):
            for msg in mailbox.fetch(criteria, mark_seen=False, headers_only=True):
                if not msg.uid:
                    logger.warning("Skipping message with missing UID (subject=%r)", msg.subject)
                    continue
                yield MessageEnvelope(
                    uid=int(msg.uid),
                    to=list(msg.to),
                    from_=[msg.from_] if msg.from_ else [],
                    subject=msg.subject,
                    flags=list(msg.flags),
                )

    def fetch_bodies(self, uids: Collection[int]) -> Iterator[MessageBody]:
        if not uids:
            return
        mailbox = self._require()
        with _mailbox_errors("fetch message bodies"):
            for msg in mailbox.fetch(AND(uid=_uid_list(uids)), mark_seen=False):
                if not msg.uid:
                    continue
                yield MessageBody(uid=int(msg.uid), raw=msg.obj.as_bytes())

    def move(self, uids: Collection[int], mailbox: str) -> None:
        with _mailbox_errors(f"move messages to mailbox '{mailbox}'"):
            self._require().move(_uid_list(uids), mailbox)

    def set_flags(self, uids: Collection[int], flags: Collection[str], value: bool) -> None:
        action = "add" if value else "remove"
        with _mailbox_errors(f"{action} flags {', '.join(flags)}"):
            self._require().flag(_uid_list(uids), list(flags), value)

    def watch(self, stop: threading.Event, updates: "queue.Queue[MailboxChange]") -> None:
        """Run IMAP IDLE on the selected mailbox.

        Returns after reporting the first change, or once ``stop`` is set.
        IDLE is re-issued every ``idle_refresh_interval`` seconds while the
        mailbox stays quiet.
        """
        mailbox = self._require()
        if self._selected is None:
            raise RuntimeError("No mailbox selected. Call select() first.")

        with _mailbox_errors(f"idle on mailbox '{self._selected}'"):
            while not stop.is_set():
                deadline = time.monotonic() + self._idle_refresh_interval
                mailbox.idle.start()
                try:
                    while not stop.is_set():
                        remaining = deadline - time.monotonic()
                        if remaining <= 0:
                            logger.debug("Re-issuing IDLE on %s", self._selected)
                            break
                        responses = mailbox.idle.poll(
                            timeout=min(self._idle_poll_interval, remaining)
                        )
                        if any(is_change_response(resp) for resp in responses):
                            updates.put(MailboxChange(mailbox=self._selected))
                            return
                finally:
                    mailbox.idle.stop()
