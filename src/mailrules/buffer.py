"""Bounded producer/consumer buffer between a mailbox fetch and its consumer."""

import queue
import threading
from collections.abc import Iterable, Iterator
from typing import TypeVar

from mailrules.defaults import DEFAULT_FETCH_BUFFER_SIZE

T = TypeVar("T")

_DONE = object()


def buffered(source: Iterable[T], maxsize: int = DEFAULT_FETCH_BUFFER_SIZE) -> Iterator[T]:
    """Iterate ``source`` on a worker thread through a queue of ``maxsize`` items.

    The source is always drained to the end, even when the consumer stops
    early, so the underlying fetch completes. An exception raised by the
    source is re-raised only after every item it produced was consumed.
    """
    items: queue.Queue = queue.Queue(maxsize=maxsize)
    errors: list[Exception] = []

    def produce() -> None:
        try:
            for item in source:
                items.put(item)
        except Exception as e:
            errors.append(e)
        finally:
            items.put(_DONE)

    worker = threading.Thread(target=produce, name="mailrules-fetch", daemon=True)
    worker.start()

    drained = False
    try:
        while True:
            item = items.get()
            if item is _DONE:
                break
            yield item
        drained = True
    finally:
        if not drained:
            while items.get() is not _DONE:
                pass
        worker.join()

    if errors:
        raise errors[0]
