"""
Audit Models for MoneyMinder

Every significant action in the system is logged for audit purposes.
This provides:
1. A history of security-relevant events per user (logins, 2FA changes)
2. Debugging information when things go wrong
3. Ability to reconstruct how a summary reached its current value

DESIGN DECISION: Audit logs are append-only. We never modify them; they are
only removed together with the user that owns them.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import Field

from moneyminder.models.base import DomainModel
from moneyminder.models.user import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Registration & verification
    USER_REGISTERED = "user_registered"
    VERIFICATION_EMAIL_SENT = "verification_email_sent"
    EMAIL_VERIFIED = "email_verified"

    # Login
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    TWO_FACTOR_CHALLENGE_ISSUED = "two_factor_challenge_issued"

    # Two-factor lifecycle
    TWO_FACTOR_SETUP_STARTED = "two_factor_setup_started"
    TWO_FACTOR_ENABLED = "two_factor_enabled"
    TWO_FACTOR_DISABLED = "two_factor_disabled"
    TWO_FACTOR_CODE_REJECTED = "two_factor_code_rejected"

    # Account
    PROFILE_UPDATED = "profile_updated"
    ACCOUNT_DELETED = "account_deleted"

    # Ledger
    TRANSACTION_ADDED = "transaction_added"
    SUMMARY_UPDATED = "summary_updated"
    GOAL_CREATED = "goal_created"
    GOAL_UPDATED = "goal_updated"
    GOAL_CONTRIBUTION = "goal_contribution"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(DomainModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about, and whose is it?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'user', 'transaction', 'goal')"
    )
    entity_id: Optional[str] = None
    user_id: Optional[str] = Field(
        default=None,
        description="Owner of the event; None for anonymous failures"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None
    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.user_registered(user_id, email)
        event = AuditEventBuilder.transaction_added(user_id, tx_id, amount, category)
    """

    @staticmethod
    def user_registered(user_id: str, email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REGISTERED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=f"User registered: {email}",
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def verification_email_sent(user_id: str, email: str, delivered: bool) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.VERIFICATION_EMAIL_SENT
                if delivered
                else AuditEventType.EXTERNAL_SERVICE_ERROR
            ),
            severity=AuditSeverity.INFO if delivered else AuditSeverity.ERROR,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=(
                f"Verification email sent to {email}"
                if delivered
                else f"Verification email to {email} could not be delivered"
            ),
            details={"email": email, "delivered": delivered},
        )

    @staticmethod
    def email_verified(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EMAIL_VERIFIED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description="Email address verified",
            is_user_action=True,
        )

    @staticmethod
    def login_succeeded(user_id: str, method: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_SUCCEEDED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=f"Login succeeded ({method})",
            details={"method": method},
            is_user_action=True,
        )

    @staticmethod
    def login_failed(email: str, reason: str, user_id: Optional[str] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=f"Login failed for {email}: {reason}",
            details={"email": email, "reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def two_factor_challenge_issued(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TWO_FACTOR_CHALLENGE_ISSUED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description="Password accepted, two-factor code required",
        )

    @staticmethod
    def two_factor_changed(user_id: str, event_type: AuditEventType) -> AuditEvent:
        descriptions = {
            AuditEventType.TWO_FACTOR_SETUP_STARTED: "Two-factor setup started",
            AuditEventType.TWO_FACTOR_ENABLED: "Two-factor authentication enabled",
            AuditEventType.TWO_FACTOR_DISABLED: "Two-factor authentication disabled",
        }
        return AuditEvent(
            event_type=event_type,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=descriptions[event_type],
            is_user_action=True,
        )

    @staticmethod
    def two_factor_code_rejected(user_id: str, stage: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TWO_FACTOR_CODE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=f"Invalid two-factor code during {stage}",
            details={"stage": stage},
            is_user_action=True,
        )

    @staticmethod
    def profile_updated(user_id: str, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROFILE_UPDATED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=f"Profile updated: {', '.join(fields)}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def account_deleted(user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=user_id,
            description="Account deleted",
            is_user_action=True,
        )

    @staticmethod
    def transaction_added(
        user_id: str,
        transaction_id: str,
        amount: Decimal,
        category: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            user_id=user_id,
            description=f"Transaction added: {amount} ({category})",
            details={"amount": str(amount), "category": category},
            is_user_action=True,
        )

    @staticmethod
    def summary_updated(user_id: str, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUMMARY_UPDATED,
            entity_type="summary",
            entity_id=user_id,
            user_id=user_id,
            description=f"Summary edited: {', '.join(fields)}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def goal_created(user_id: str, goal_id: str, name: str, target: Decimal) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CREATED,
            entity_type="goal",
            entity_id=goal_id,
            user_id=user_id,
            description=f"Savings goal created: {name}",
            details={"target": str(target)},
            is_user_action=True,
        )

    @staticmethod
    def goal_updated(user_id: str, goal_id: str, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_UPDATED,
            entity_type="goal",
            entity_id=goal_id,
            user_id=user_id,
            description=f"Savings goal updated: {', '.join(fields)}",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def goal_contribution(
        user_id: str,
        goal_id: str,
        amount: Decimal,
        current: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CONTRIBUTION,
            entity_type="goal",
            entity_id=goal_id,
            user_id=user_id,
            description=f"Contributed {amount} to savings goal",
            details={"amount": str(amount), "current": str(current)},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
        )
