"""Abstract base class for mailbox clients."""

import queue
import threading
from abc import ABC, abstractmethod
from collections.abc import Collection, Iterator
from types import TracebackType

from mailrules.models import MailboxChange, MessageBody, MessageEnvelope


class BaseMailboxClient(ABC):
    """Abstract base class defining what the rule engine needs from a mailbox.

    All message references are UIDs of the currently selected mailbox.
    Failures are reported as :class:`mailrules.exceptions.MailboxError`.
    """

    @abstractmethod
    def connect(self) -> None:
        """Establish connection to the server and log in."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        """Close connection to the server."""
        ...

    @abstractmethod
    def select(self, mailbox: str) -> None:
        """Select the mailbox subsequent operations apply to."""
        ...

    @abstractmethod
    def fetch_envelopes(self, criteria: str = "ALL") -> Iterator[MessageEnvelope]:
        """Lazily fetch UID, addresses, subject and flags of matching messages.

        Args:
            criteria: Search criteria selecting the messages (default: all).

        Returns:
            Iterator over envelopes in server order. Single pass.
        """
        ...

    @abstractmethod
    def fetch_bodies(self, uids: Collection[int]) -> Iterator[MessageBody]:
        """Lazily fetch the complete RFC 822 bytes of the given messages."""
        ...

    @abstractmethod
    def move(self, uids: Collection[int], mailbox: str) -> None:
        """Move messages to another mailbox in a single request."""
        ...

    @abstractmethod
    def set_flags(self, uids: Collection[int], flags: Collection[str], value: bool) -> None:
        """Add (``value=True``) or remove (``value=False``) flags in a single request."""
        ...

    @abstractmethod
    def watch(self, stop: threading.Event, updates: "queue.Queue[MailboxChange]") -> None:
        """Block waiting for changes to the selected mailbox.

        A change is put on ``updates``. Implementations may return right
        after reporting a change; they must return once ``stop`` is set.
        """
        ...

    def __enter__(self) -> "BaseMailboxClient":
        """Context manager entry - connect to server."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Context manager exit - disconnect from server."""
        self.disconnect()
