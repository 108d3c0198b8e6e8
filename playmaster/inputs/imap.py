"""IMAP mailbox backend for one-time codes."""

import email
import email.policy
import email.utils
import imaplib
import logging
import re
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from email.message import EmailMessage

from pydantic import Field, SecretStr

from playmaster.inputs.email import EmailBackendManifest, extract_code
from playmaster.models.base import Model

log = logging.getLogger(__name__)

# Newest messages are checked first; older ones cannot be the code just sent.
MAX_MESSAGES = 10


class ImapError(Exception):
    """Raised when the mailbox cannot be searched."""


class ImapConfig(Model):
    """Settings of the ``imap`` email backend."""

    host: str = Field(default="imap.gmail.com", description="IMAP server host")
    port: int = Field(default=993, description="IMAP over TLS port")
    username: str = Field(..., description="Mailbox login")
    password: SecretStr = Field(..., description="Mailbox password or app token")
    mailbox: str = Field(default="INBOX", description="Folder to search")


@dataclass(frozen=True, kw_only=True)
class ImapEmailClient:
    """Polls an IMAP mailbox for the latest matching email."""

    config: ImapConfig

    @classmethod
    def from_config(cls, config: ImapConfig) -> "ImapEmailClient":
        return cls(config=config)

    def fetch_code(
        self,
        *,
        sender: str,
        subject_contains: str,
        pattern: re.Pattern[str],
        after: datetime,
        timeout: float,
        poll_interval: float,
    ) -> str:
        deadline = time.monotonic() + timeout
        while True:
            code = self._search(sender, subject_contains, pattern, after)
            if code is not None:
                return code
            if time.monotonic() + poll_interval > deadline:
                raise TimeoutError(
                    f"No email from {sender} matched within {timeout:.0f}s"
                )
            log.debug("No matching email yet, retrying in %.1fs", poll_interval)
            time.sleep(poll_interval)

    def _search(
        self,
        sender: str,
        subject_contains: str,
        pattern: re.Pattern[str],
        after: datetime,
    ) -> str | None:
        for message in self._recent_messages(sender, after):
            if subject_contains not in str(message.get("Subject", "")):
                continue
            if (sent := _sent_at(message)) is not None and sent < after:
                continue
            if (code := extract_code(pattern, _body_text(message))) is not None:
                log.info("Found code in email %r", message.get("Subject", ""))
                return code
        return None

    def _recent_messages(self, sender: str, after: datetime) -> list[EmailMessage]:
        since = after.strftime("%d-%b-%Y")
        messages: list[EmailMessage] = []
        try:
            with imaplib.IMAP4_SSL(self.config.host, self.config.port) as conn:
                conn.login(
                    self.config.username, self.config.password.get_secret_value()
                )
                conn.select(self.config.mailbox, readonly=True)
                status, data = conn.search(None, "FROM", f'"{sender}"', "SINCE", since)
                if status != "OK":
                    raise ImapError(f"IMAP search failed with status {status}")

                ids = data[0].split() if data and data[0] else []
                for message_id in reversed(ids[-MAX_MESSAGES:]):
                    status, parts = conn.fetch(message_id, "(RFC822)")
                    if status != "OK":
                        continue
                    messages.extend(
                        _parse(part[1]) for part in parts if isinstance(part, tuple)
                    )
        except imaplib.IMAP4.error as e:
            raise ImapError(f"IMAP error on {self.config.host}: {e}") from e
        return messages


def _parse(raw: bytes) -> EmailMessage:
    message = email.message_from_bytes(raw, policy=email.policy.default)
    assert isinstance(message, EmailMessage)
    return message


def _sent_at(message: EmailMessage) -> datetime | None:
    if (date := message.get("Date")) is None:
        return None
    try:
        sent = email.utils.parsedate_to_datetime(str(date))
    except (TypeError, ValueError):
        return None
    if sent.tzinfo is None:
        sent = sent.replace(tzinfo=UTC)
    return sent


def _body_text(message: EmailMessage) -> str:
    body = message.get_body(preferencelist=("plain", "html"))
    if body is None:
        return ""
    content = body.get_content()
    return content if isinstance(content, str) else ""


imap_manifest = EmailBackendManifest(
    config_cls=ImapConfig,
    client_factory=ImapEmailClient.from_config,
)
