"""Run loop: scan, wait for the mailbox to change, scan again.

The wait runs the client's blocking ``watch`` on a worker thread so the
loop can react to whichever comes first: a change to the watched mailbox,
or the watch returning on its own. A change sets the worker's stop signal;
the loop then waits for the worker to finish and rescans.
"""

import queue
import threading
from enum import Enum
from typing import NamedTuple

import structlog

from mailrules.connectors.base import BaseMailboxClient
from mailrules.defaults import DEFAULT_MAILBOX
from mailrules.engine import RuleEngine, ScanReport
from mailrules.exceptions import WatchError
from mailrules.models import MailboxChange

logger = structlog.get_logger()


class State(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    WAITING = "waiting"


class _WatchFinished(NamedTuple):
    error: Exception | None


class Watcher:
    """Owns the engine for the lifetime of the process."""

    def __init__(
        self,
        client: BaseMailboxClient,
        engine: RuleEngine,
        mailbox: str = DEFAULT_MAILBOX,
    ) -> None:
        self._client = client
        self._engine = engine
        self._mailbox = mailbox
        self.state = State.IDLE

    def scan(self) -> ScanReport:
        self.state = State.SCANNING
        return self._engine.scan()

    def wait_for_change(self) -> None:
        """Block until the watched mailbox changes or the watch ends.

        Raises:
            WatchError: If the watch itself failed.
        """
        self.state = State.WAITING
        events: queue.Queue[MailboxChange | _WatchFinished] = queue.Queue()
        stop = threading.Event()

        def watch() -> None:
            try:
                self._client.watch(stop, events)  # type: ignore[arg-type]
            except Exception as e:
                events.put(_WatchFinished(e))
            else:
                events.put(_WatchFinished(None))

        worker = threading.Thread(target=watch, name="mailrules-watch", daemon=True)
        logger.info("Listening", mailbox=self._mailbox)
        worker.start()

        while True:
            event = events.get()
            if isinstance(event, _WatchFinished):
                worker.join()
                if event.error is not None:
                    raise WatchError(
                        f"watch mailbox '{self._mailbox}': {event.error}"
                    ) from event.error
                return
            if event.mailbox != self._mailbox or stop.is_set():
                continue
            logger.info("Saw change to mailbox", mailbox=self._mailbox)
            stop.set()

    def run(self, max_cycles: int | None = None) -> None:
        """Scan, then alternate waiting and rescanning.

        Args:
            max_cycles: Stop after this many scans. Runs forever when None.

        Raises:
            MailboxError: If a scan could not fetch the mailbox.
            WatchError: If waiting for changes failed.
        """
        cycles = 0
        while True:
            self.scan()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                self.state = State.IDLE
                return
            self.wait_for_change()
