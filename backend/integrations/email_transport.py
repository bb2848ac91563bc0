"""Email transports used by Send Email steps.

A transport accepts a fully resolved message and reports
``{"success": bool, "messageId": str}``. The simulated transport only
logs the message; the SMTP transport delivers it.
"""

import asyncio
import smtplib
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Any, Optional
from uuid import uuid4

import structlog

from app.config import Settings, get_settings

logger = structlog.get_logger(__name__)


@dataclass
class EmailMessage:
    """A composed email with all placeholders already substituted."""

    to: str
    from_address: str
    subject: str
    body: str
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class EmailTransport(ABC):
    """Delivers composed email messages."""

    name: str = "base"

    @abstractmethod
    async def send(self, message: EmailMessage) -> dict[str, Any]:
        """Send a message and return ``{"success", "messageId"}`` (plus ``error`` on failure)."""


class SimulatedEmailTransport(EmailTransport):
    """Logs messages instead of sending them. Sent messages are kept for inspection."""

    name = "simulated"

    def __init__(self):
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> dict[str, Any]:
        message_id = f"mock-message-{int(time.time() * 1000)}-{uuid4().hex[:8]}"
        self.sent.append(message)
        logger.info(
            "Simulated email send",
            to=message.to,
            sender=message.from_address,
            subject=message.subject,
            body_length=len(message.body),
            message_id=message_id,
        )
        return {"success": True, "messageId": message_id}


class SmtpEmailTransport(EmailTransport):
    """Send email via SMTP.

    Config:
        smtp_host, smtp_port, smtp_user, smtp_password, use_tls
    """

    name = "smtp"

    def __init__(self, config: dict = None):
        self.config = config or {}

    async def send(self, message: EmailMessage) -> dict[str, Any]:
        message_id = make_msgid(domain=self._sender_domain(message.from_address))

        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = message.from_address
        msg["To"] = message.to
        msg["Message-ID"] = message_id

        msg.attach(MIMEText(message.body, "plain"))
        if "<" in message.body and ">" in message.body:
            msg.attach(MIMEText(message.body, "html"))

        try:
            # smtplib blocks, so run it in the default executor
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, lambda: self._send_smtp(message, msg))
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP send failed", to=message.to, error=str(e))
            return {"success": False, "messageId": "", "error": str(e)}

        logger.info("Email sent", to=message.to, message_id=message_id)
        return {"success": True, "messageId": message_id}

    def _send_smtp(self, message: EmailMessage, msg: MIMEMultipart):
        """Synchronous SMTP send."""
        host = self.config.get("smtp_host", "localhost")
        port = self.config.get("smtp_port", 587)
        user = self.config.get("smtp_user", "")
        password = self.config.get("smtp_password", "")

        with smtplib.SMTP(host, port) as server:
            if self.config.get("use_tls", True):
                server.starttls()
            if user and password:
                server.login(user, password)
            recipients = [addr.strip() for addr in message.to.split(",") if addr.strip()]
            server.sendmail(message.from_address, recipients, msg.as_string())

    @staticmethod
    def _sender_domain(address: str) -> Optional[str]:
        if "@" not in address:
            return None
        return address.rsplit("@", 1)[1].strip("> ") or None


def get_email_transport(settings: Optional[Settings] = None) -> EmailTransport:
    """Build the email transport selected by EMAIL_TRANSPORT."""
    settings = settings or get_settings()
    if settings.EMAIL_TRANSPORT == "smtp":
        return SmtpEmailTransport({
            "smtp_host": settings.SMTP_HOST,
            "smtp_port": settings.SMTP_PORT,
            "smtp_user": settings.SMTP_USER,
            "smtp_password": settings.SMTP_PASSWORD,
            "use_tls": settings.SMTP_USE_TLS,
        })
    return SimulatedEmailTransport()
