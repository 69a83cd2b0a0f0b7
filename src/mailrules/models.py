"""Data models for mailrules."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class StreamContent(str, Enum):
    """What a stream rule delivers for each matched message."""

    RFC822 = "rfc822"  # the complete message, verbatim
    HTML = "html"  # the decoded text/html part of a multipart message


class IMAPConfig(BaseModel):
    """IMAP server configuration."""

    host: str
    port: int = 993
    username: str
    password: SecretStr
    ssl: bool = True


class MessageEnvelope(BaseModel):
    """Envelope and flags of one message, as fetched for the match phase."""

    uid: int
    to: list[str] = []
    from_: list[str] = Field(default=[], alias="from")
    subject: str = ""
    flags: list[str] = []

    model_config = ConfigDict(populate_by_name=True)

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags


class MessageBody(BaseModel):
    """Complete RFC 822 bytes of one message, fetched for stream delivery."""

    uid: int
    raw: bytes


class MailboxChange(BaseModel):
    """Notification that a mailbox changed on the server."""

    mailbox: str
