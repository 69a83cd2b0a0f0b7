"""Outbound delivery sinks for stream rules."""

import logging
import urllib.request
from abc import ABC, abstractmethod
from urllib.error import HTTPError, URLError

from mailrules.defaults import DEFAULT_STREAM_TIMEOUT
from mailrules.delivery.content import Delivery
from mailrules.exceptions import DeliveryError

logger = logging.getLogger(__name__)


class BaseSink(ABC):
    """Abstract base class for the endpoint stream rules deliver to."""

    @abstractmethod
    def post(self, url: str, delivery: Delivery) -> None:
        """Deliver one message to ``url``.

        Raises:
            DeliveryError: If the endpoint could not be reached or rejected it.
        """
        ...


class HTTPSink(BaseSink):
    """Delivers messages with an HTTP POST per message."""

    def __init__(self, timeout: float = DEFAULT_STREAM_TIMEOUT) -> None:
        """Initialize the sink.

        Args:
            timeout: Deadline in seconds for each request.
        """
        self._timeout = timeout

    def post(self, url: str, delivery: Delivery) -> None:
        # http.client sends header values as latin-1; round-trip so UTF-8 reaches the wire
        headers = {
            name: value.encode("utf-8").decode("latin-1")
            for name, value in delivery.headers.items()
        }
        try:
            req = urllib.request.Request(url, data=delivery.body, headers=headers, method="POST")
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                status = resp.status
        except HTTPError as e:
            raise DeliveryError(delivery.uid, f"stream to '{url}': error response: {e.code}") from e
        except (URLError, OSError, ValueError) as e:
            raise DeliveryError(delivery.uid, f"stream to '{url}': do http request: {e}") from e

        if not 200 <= status < 300:
            raise DeliveryError(delivery.uid, f"stream to '{url}': error response: {status}")
        logger.debug("Delivered message %d to %s (status %d)", delivery.uid, url, status)
