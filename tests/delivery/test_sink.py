"""Tests for the HTTP delivery sink."""

from email.message import Message
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

import pytest

from mailrules.delivery import Delivery, HTTPSink
from mailrules.exceptions import DeliveryError


def make_delivery(**headers: str) -> Delivery:
    return Delivery(
        uid=7,
        body=b"<p>hi</p>",
        headers={"Accept": "application/json", "Content-Type": "text/html", **headers},
    )


def urlopen_returning(status: int) -> MagicMock:
    cm = MagicMock()
    cm.__enter__ = MagicMock(return_value=MagicMock(status=status))
    cm.__exit__ = MagicMock(return_value=False)
    return cm


class TestHTTPSink:
    def test_posts_body_and_headers(self) -> None:
        with patch("urllib.request.urlopen", return_value=urlopen_returning(200)) as urlopen:
            HTTPSink(timeout=3.0).post("https://hooks.example/in", make_delivery())

        req = urlopen.call_args.args[0]
        assert urlopen.call_args.kwargs["timeout"] == 3.0
        assert req.full_url == "https://hooks.example/in"
        assert req.get_method() == "POST"
        assert req.data == b"<p>hi</p>"
        assert req.get_header("Accept") == "application/json"
        assert req.get_header("Content-type") == "text/html"

    def test_non_ascii_header_sent_as_utf8(self) -> None:
        delivery = make_delivery(**{"X-Message-Subject": "Grüße"})
        with patch("urllib.request.urlopen", return_value=urlopen_returning(204)) as urlopen:
            HTTPSink().post("https://hooks.example/in", delivery)

        req = urlopen.call_args.args[0]
        sent = req.get_header("X-message-subject")
        assert sent.encode("latin-1").decode("utf-8") == "Grüße"

    def test_error_status_raises(self) -> None:
        error = HTTPError("https://hooks.example/in", 502, "Bad Gateway", Message(), None)
        with patch("urllib.request.urlopen", side_effect=error):
            with pytest.raises(DeliveryError, match="error response: 502") as exc_info:
                HTTPSink().post("https://hooks.example/in", make_delivery())
        assert exc_info.value.uid == 7

    def test_non_success_status_raises(self) -> None:
        with patch("urllib.request.urlopen", return_value=urlopen_returning(302)):
            with pytest.raises(DeliveryError, match="error response: 302"):
                HTTPSink().post("https://hooks.example/in", make_delivery())

    def test_unreachable_raises(self) -> None:
        with patch("urllib.request.urlopen", side_effect=URLError("timed out")):
            with pytest.raises(DeliveryError, match="do http request"):
                HTTPSink().post("https://hooks.example/in", make_delivery())

    def test_invalid_url_raises(self) -> None:
        with pytest.raises(DeliveryError, match="stream to 'not a url'"):
            HTTPSink().post("not a url", make_delivery())
