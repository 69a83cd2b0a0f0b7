"""Build the request a stream rule sends for one message."""

import email
from datetime import timezone
from email import policy
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from email.message import Message
from email.utils import format_datetime, parsedate_to_datetime

from pydantic import BaseModel

from mailrules.exceptions import DeliveryError
from mailrules.models import MessageBody, StreamContent


class Delivery(BaseModel):
    """Body and headers of a single outbound stream request."""

    uid: int
    body: bytes
    headers: dict[str, str]


def find_html_part(message: Message) -> Message:
    """Return the first text/html part of a multipart message.

    Parts are visited in document order, descending into nested multiparts.

    Raises:
        ValueError: If the message is not multipart or has no HTML part.
    """
    if not message.is_multipart():
        raise ValueError(f"expected multipart message but found {message.get_content_type()}")
    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_type() == "text/html":
            return part
    raise ValueError("could not find text/html part of message")


def decode_subject(raw: str | None) -> str:
    """Decode RFC 2047 encoded words in a Subject header."""
    if not raw:
        return ""
    return str(make_header(decode_header(raw)))


def build_delivery(content: StreamContent, message: MessageBody) -> Delivery:
    """Build the delivery for one fetched message.

    ``rfc822`` sends the message verbatim. ``html`` sends the decoded HTML
    part along with the UID, subject and date of the message.

    Raises:
        DeliveryError: If the message lacks what the content kind requires.
    """
    headers = {"Accept": "application/json"}

    if content is StreamContent.RFC822:
        headers["Content-Type"] = "message/rfc822"
        return Delivery(uid=message.uid, body=message.raw, headers=headers)

    parsed = email.message_from_bytes(message.raw, policy=policy.compat32)
    try:
        part = find_html_part(parsed)
    except ValueError as e:
        raise DeliveryError(message.uid, f"html of message: {e}") from e
    # base64 and quoted-printable are decoded, anything else is passed through
    html = part.get_payload(decode=True) or b""

    raw_date = parsed.get("Date")
    if not raw_date:
        raise DeliveryError(message.uid, "message has no Date header")
    try:
        date = parsedate_to_datetime(raw_date)
    except (TypeError, ValueError) as e:
        raise DeliveryError(message.uid, f"parse date {raw_date!r}: {e}") from e

    try:
        subject = decode_subject(parsed.get("Subject"))
    except (HeaderParseError, LookupError, UnicodeDecodeError) as e:
        raise DeliveryError(message.uid, f"decode subject: {e}") from e

    charset = part.get_content_charset()
    headers["Content-Type"] = f"text/html; charset={charset}" if charset else "text/html"
    headers["X-Message-UID"] = str(message.uid)
    if parsed.get("Message-ID"):
        headers["X-Message-ID"] = parsed["Message-ID"].strip()
    headers["X-Message-Subject"] = subject
    headers["X-Message-Date-RFC2822"] = format_datetime(date)
    # "-0000" parses to a naive datetime: UTC with no known local offset
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    headers["X-Message-Date-RFC3339"] = date.isoformat()
    return Delivery(uid=message.uid, body=html, headers=headers)
