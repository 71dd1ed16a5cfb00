"""
Verification Email Delivery

Email is an external collaborator: the auth service only asks "send a
verification link for token T to address A" and gets back whether it went
out. Delivery failures are reported, never raised, so registration does not
depend on the mail server being up.

Two implementations:
- SMTPEmailSender: real delivery via smtplib, run in a worker thread
- LoggingEmailSender: logs the link and keeps an outbox (development, tests)
"""

import asyncio
import smtplib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

import structlog

from moneyminder.config import EmailSettings, get_settings


logger = structlog.get_logger(__name__)


VERIFICATION_SUBJECT = "Verify Your MoneyMinder Account"

VERIFICATION_TEMPLATE = """Hi {name},

Thank you for creating an account with MoneyMinder. To complete your
registration, please verify your email address by opening the link below:

{url}

This link will expire in {ttl_hours} hours.

If you didn't create an account, you can safely ignore this email.

Best regards,
The MoneyMinder Team
"""


def build_verification_url(app_url: str, token: str) -> str:
    return f"{app_url.rstrip('/')}/verify-email?token={token}"


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    body: str
    token: Optional[str] = None


class EmailSenderInterface(ABC):
    """Sends account emails."""

    @abstractmethod
    async def send_verification_email(self, to: str, name: str, token: str) -> bool:
        """
        Send the verification link.

        Returns:
            True if the message was handed off for delivery
        """
        pass


class _TemplateMixin:
    def __init__(self, app_url: str, ttl_hours: int = 24):
        self._app_url = app_url
        self._ttl_hours = ttl_hours

    def _verification_email(self, to: str, name: str, token: str) -> OutgoingEmail:
        return OutgoingEmail(
            to=to,
            subject=VERIFICATION_SUBJECT,
            body=VERIFICATION_TEMPLATE.format(
                name=name,
                url=build_verification_url(self._app_url, token),
                ttl_hours=self._ttl_hours,
            ),
            token=token,
        )


class LoggingEmailSender(_TemplateMixin, EmailSenderInterface):
    """
    Writes emails to the log instead of sending them.

    The outbox keeps every message so tests can pull the token back out.
    """

    def __init__(self, app_url: str = "http://localhost:3000", ttl_hours: int = 24):
        super().__init__(app_url, ttl_hours)
        self.outbox: list[OutgoingEmail] = []

    async def send_verification_email(self, to: str, name: str, token: str) -> bool:
        message = self._verification_email(to, name, token)
        self.outbox.append(message)
        logger.info(
            "verification_email_logged",
            to=to,
            url=build_verification_url(self._app_url, token),
        )
        return True

    def last_token_for(self, to: str) -> Optional[str]:
        for message in reversed(self.outbox):
            if message.to == to:
                return message.token
        return None


class SMTPEmailSender(_TemplateMixin, EmailSenderInterface):
    """Plain SMTP delivery. Port 465 uses implicit TLS, anything else STARTTLS."""

    def __init__(self, settings: EmailSettings, ttl_hours: int = 24):
        super().__init__(settings.app_url, ttl_hours)
        self._settings = settings

    def _send(self, outgoing: OutgoingEmail) -> None:
        message = EmailMessage()
        message["From"] = self._settings.from_address
        message["To"] = outgoing.to
        message["Subject"] = outgoing.subject
        message.set_content(outgoing.body)

        if self._settings.port == 465:
            smtp = smtplib.SMTP_SSL(self._settings.server, self._settings.port, timeout=30)
        else:
            smtp = smtplib.SMTP(self._settings.server, self._settings.port, timeout=30)

        with smtp:
            if self._settings.port != 465:
                smtp.starttls()
            if self._settings.username:
                smtp.login(self._settings.username, self._settings.password or "")
            smtp.send_message(message)

    async def send_verification_email(self, to: str, name: str, token: str) -> bool:
        outgoing = self._verification_email(to, name, token)
        try:
            await asyncio.to_thread(self._send, outgoing)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("verification_email_failed", to=to, error=str(e))
            return False
        logger.info("verification_email_sent", to=to)
        return True


def create_email_sender(
    settings: Optional[EmailSettings] = None,
    ttl_hours: Optional[int] = None,
) -> EmailSenderInterface:
    """SMTP when a server is configured, otherwise log-only."""
    settings = settings or get_settings().email
    if ttl_hours is None:
        ttl_hours = get_settings().auth.verification_token_ttl_hours
    if settings.server:
        return SMTPEmailSender(settings, ttl_hours=ttl_hours)
    logger.warning("email_server_not_configured", fallback="log")
    return LoggingEmailSender(settings.app_url, ttl_hours=ttl_hours)
