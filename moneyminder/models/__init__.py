"""
Data Models Package

This package contains all Pydantic models used in MoneyMinder.
All data flowing through the system must conform to these schemas.
"""

from moneyminder.models.base import DomainModel, Money
from moneyminder.models.user import (
    LoginResult,
    SessionGrant,
    TwoFactorChallenge,
    TwoFactorSetup,
    UserPatch,
    UserProfile,
    UserRecord,
)
from moneyminder.models.finance import (
    ChatMessage,
    FinancialSummary,
    GoalPatch,
    SavingsGoal,
    SummaryPatch,
    Transaction,
    compute_balance,
    compute_savings_rate,
)
from moneyminder.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    "DomainModel",
    "Money",
    # User models
    "LoginResult",
    "SessionGrant",
    "TwoFactorChallenge",
    "TwoFactorSetup",
    "UserPatch",
    "UserProfile",
    "UserRecord",
    # Financial models
    "ChatMessage",
    "FinancialSummary",
    "GoalPatch",
    "SavingsGoal",
    "SummaryPatch",
    "Transaction",
    "compute_balance",
    "compute_savings_rate",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
