"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of security events (logins, failed codes, 2FA changes)
2. Debugging capability
3. A per-user activity history shown on the profile page

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Never receives secrets: passwords, tokens and TOTP secrets stay out of events
"""

import logging
import sys
from decimal import Decimal
from typing import Optional

import structlog

from moneyminder.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from moneyminder.services.storage import AuditStorageInterface, StorageError


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route stdlib logging (and so structlog) to stdout at `level`."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("moneyminder.audit")

    async def log(self, event: AuditEvent, persist: bool = True) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available, unless
        `persist` is False.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage and persist:
            try:
                return await self._storage.append_event(event)
            except StorageError as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=event.event_id,
                )
                return False

        return True

    async def recent_for_user(self, user_id: str, limit: int = 50) -> list[AuditEvent]:
        if not self._storage:
            return []
        return await self._storage.get_events_for_user(user_id, limit=limit)

    async def log_user_registered(self, user_id: str, email: str) -> None:
        await self.log(AuditEventBuilder.user_registered(user_id, email))

    async def log_verification_email(self, user_id: str, email: str, delivered: bool) -> None:
        await self.log(AuditEventBuilder.verification_email_sent(user_id, email, delivered))

    async def log_email_verified(self, user_id: str) -> None:
        await self.log(AuditEventBuilder.email_verified(user_id))

    async def log_login_succeeded(self, user_id: str, method: str = "password") -> None:
        await self.log(AuditEventBuilder.login_succeeded(user_id, method))

    async def log_login_failed(
        self,
        email: str,
        reason: str,
        user_id: Optional[str] = None,
    ) -> None:
        """Log a failed login. Unknown emails are logged without an owner."""
        await self.log(AuditEventBuilder.login_failed(email, reason, user_id=user_id))

    async def log_two_factor_challenge(self, user_id: str) -> None:
        await self.log(AuditEventBuilder.two_factor_challenge_issued(user_id))

    async def log_two_factor_changed(self, user_id: str, event_type: AuditEventType) -> None:
        await self.log(AuditEventBuilder.two_factor_changed(user_id, event_type))

    async def log_two_factor_rejected(self, user_id: str, stage: str) -> None:
        await self.log(AuditEventBuilder.two_factor_code_rejected(user_id, stage))

    async def log_profile_updated(self, user_id: str, fields: list[str]) -> None:
        await self.log(AuditEventBuilder.profile_updated(user_id, fields))

    async def log_account_deleted(self, user_id: str) -> None:
        # The user's audit rows are deleted with the account
        await self.log(AuditEventBuilder.account_deleted(user_id), persist=False)

    async def log_transaction_added(
        self,
        user_id: str,
        transaction_id: str,
        amount: Decimal,
        category: str,
    ) -> None:
        await self.log(
            AuditEventBuilder.transaction_added(user_id, transaction_id, amount, category)
        )

    async def log_summary_updated(self, user_id: str, fields: list[str]) -> None:
        await self.log(AuditEventBuilder.summary_updated(user_id, fields))

    async def log_goal_created(
        self,
        user_id: str,
        goal_id: str,
        name: str,
        target: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.goal_created(user_id, goal_id, name, target))

    async def log_goal_updated(self, user_id: str, goal_id: str, fields: list[str]) -> None:
        await self.log(AuditEventBuilder.goal_updated(user_id, goal_id, fields))

    async def log_goal_contribution(
        self,
        user_id: str,
        goal_id: str,
        amount: Decimal,
        current: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.goal_contribution(user_id, goal_id, amount, current))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        user_id: Optional[str] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            user_id=user_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        user_id: Optional[str] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            user_id=user_id,
        )
        await self.log(event)
