"""
Services package.

AuthService and LedgerService live in moneyminder.services.auth and
moneyminder.services.ledger; they depend on the audit logger, which in turn
depends on storage, so they are not re-exported here.
"""

from moneyminder.services.email import (
    EmailSenderInterface,
    LoggingEmailSender,
    SMTPEmailSender,
    create_email_sender,
)
from moneyminder.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    Database,
    DuplicateError,
    LedgerStorageInterface,
    StorageError,
    UserStorageInterface,
)

__all__ = [
    # Email services
    "EmailSenderInterface",
    "LoggingEmailSender",
    "SMTPEmailSender",
    "create_email_sender",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "Database",
    "DuplicateError",
    "LedgerStorageInterface",
    "StorageError",
    "UserStorageInterface",
]
