"""Audit logging package."""

from moneyminder.audit.logger import AuditLogger, configure_logging

__all__ = [
    "AuditLogger",
    "configure_logging",
]
