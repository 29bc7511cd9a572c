"""
Outbound email used by the password reset flow.

``SmtpMailer`` delivers through any SMTP provider. Without SMTP settings the
app falls back to ``LoggingMailer``, which only records that a message would
have been sent. ``InMemoryMailer`` is for tests and in-memory dev runs.
"""

from __future__ import annotations

import logging
import smtplib
from collections import deque
from dataclasses import dataclass, field
from email.message import EmailMessage as MimeMessage
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    to: str
    subject: str
    lines: list[str]

    @property
    def body(self) -> str:
        return "\n\n".join(self.lines)


class Mailer(Protocol):
    def send(self, message: EmailMessage) -> None:
        ...


@dataclass
class LoggingMailer:
    """Logs the subject and recipient domain; keeps nothing."""

    sender: str = "no-reply@cryptodca.app"

    def send(self, message: EmailMessage) -> None:
        domain = message.to.rsplit("@", 1)[-1]
        logger.warning(
            "SMTP is not configured; dropping email %r to a recipient at %s",
            message.subject,
            domain,
        )


@dataclass
class InMemoryMailer:
    """Keeps the most recent messages in an outbox instead of delivering them."""

    sender: str = "no-reply@cryptodca.app"
    max_messages: int = 100
    outbox: deque = field(init=False)

    def __post_init__(self):
        self.outbox = deque(maxlen=self.max_messages)

    def send(self, message: EmailMessage) -> None:
        logger.info("Queued email %r from %s", message.subject, self.sender)
        self.outbox.append(message)

    def reset(self) -> None:
        self.outbox.clear()


@dataclass
class SmtpMailer:
    host: str
    port: int = 587
    sender: str = "no-reply@cryptodca.app"
    username: Optional[str] = None
    password: Optional[str] = None
    use_tls: bool = True
    timeout: float = 10.0

    def _build(self, message: EmailMessage) -> MimeMessage:
        mime = MimeMessage()
        mime["From"] = self.sender
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime.set_content(message.body)
        return mime

    def send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(self._build(message))
        logger.info("Sent email %r", message.subject)


def reset_password_message(firstname: str, email: str, reset_link: str) -> EmailMessage:
    return EmailMessage(
        to=email,
        subject="Reset password",
        lines=[
            f"Hello {firstname},",
            "We received a request to reset your password.",
            "Please click the link below to reset your password.",
            reset_link,
            "If you did not request to reset your password, please ignore this email.",
            "Warm regards,",
            "Crypto DCA Plan using Statistics App team",
        ],
    )
