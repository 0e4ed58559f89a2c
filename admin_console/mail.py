"""
Outbound mail transport: SMTP for production and an in-memory recorder for tests.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """Raised when the transport rejects or fails to deliver a message."""


@dataclass
class MailMessage:
    to: str
    subject: str
    text: str


class MailTransport(Protocol):
    def send(self, message: MailMessage) -> None:
        ...


@dataclass
class InMemoryMailTransport:
    """Test double that records sent messages and can be told to fail."""

    sent: list[MailMessage] = field(default_factory=list)
    failing: bool = False

    def send(self, message: MailMessage) -> None:
        if self.failing:
            raise TransportError(f"Delivery to {message.to} failed")
        if "@" not in message.to:
            raise TransportError(f"Invalid recipient {message.to!r}")
        self.sent.append(message)

    def reset(self) -> None:
        self.sent.clear()
        self.failing = False


@dataclass
class SmtpMailTransport:
    """Plain-text SMTP sender using STARTTLS and login."""

    host: str
    user: str
    password: str
    port: int = 587
    from_address: Optional[str] = None
    from_name: Optional[str] = None
    timeout: float = 30.0

    def _sender(self) -> str:
        address = self.from_address or self.user
        return formataddr((self.from_name, address)) if self.from_name else address

    def send(self, message: MailMessage) -> None:
        msg = MIMEText(message.text, "plain", "utf-8")
        msg["Subject"] = message.subject
        msg["From"] = self._sender()
        msg["To"] = message.to
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP send to %s failed: %s", message.to, e)
            raise TransportError(str(e)) from e
