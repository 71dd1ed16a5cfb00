"""Account email delivery."""

from moneyminder.services.email.sender import (
    EmailSenderInterface,
    LoggingEmailSender,
    OutgoingEmail,
    SMTPEmailSender,
    build_verification_url,
    create_email_sender,
)

__all__ = [
    "EmailSenderInterface",
    "LoggingEmailSender",
    "OutgoingEmail",
    "SMTPEmailSender",
    "build_verification_url",
    "create_email_sender",
]
