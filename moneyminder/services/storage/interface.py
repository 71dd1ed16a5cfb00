"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the same services against SQL (production) or memory (tests)
2. Inject the storage handle instead of reaching for a global pool
3. Keep business logic decoupled from storage implementation

Partial updates take explicit patch models (UserPatch, SummaryPatch,
GoalPatch); each implementation turns them into a single parameterized
write. An empty patch is a no-op that returns False.

ATOMICITY CONTRACT for the ledger:
- add_transaction inserts the row AND folds it into the summary as one unit
- contribute_to_goal clamps and writes in one step
No caller ever reads a summary, adds to it in Python and writes it back.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional

from moneyminder.errors import StoreError
from moneyminder.models.audit import AuditEvent
from moneyminder.models.finance import (
    FinancialSummary,
    GoalPatch,
    SavingsGoal,
    SummaryPatch,
    Transaction,
)
from moneyminder.models.user import UserPatch, UserRecord


class UserStorageInterface(ABC):
    """
    Credential store.

    Users are keyed by id and by unique (lower-cased) email.
    """

    @abstractmethod
    async def create_user(self, user: UserRecord) -> str:
        """
        Persist a new user.

        Returns:
            The user's id

        Raises:
            DuplicateError: If the email is already registered
        """
        pass

    @abstractmethod
    async def get_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def find_by_verification_token(self, token: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    async def update_user(self, user_id: str, patch: UserPatch) -> bool:
        """
        Apply a profile patch.

        Returns:
            False if the patch carries no recognized field or the user
            does not exist, True otherwise

        Raises:
            DuplicateError: If the new email belongs to another user
        """
        pass

    @abstractmethod
    async def set_verification_token(
        self,
        user_id: str,
        token: str,
        expires_at: datetime,
    ) -> bool:
        pass

    @abstractmethod
    async def mark_email_verified(self, user_id: str, token: str) -> bool:
        """
        Flip email_verified and clear the token.

        Only succeeds while `token` is still the user's current token, so a
        token can be consumed at most once.
        """
        pass

    @abstractmethod
    async def set_two_factor_secret(self, user_id: str, secret: str) -> bool:
        """Store a pending secret. Does NOT enable two-factor."""
        pass

    @abstractmethod
    async def enable_two_factor(self, user_id: str) -> bool:
        """Enable two-factor. Fails (False) if no secret is stored."""
        pass

    @abstractmethod
    async def disable_two_factor(self, user_id: str) -> bool:
        """Disable two-factor and drop the secret."""
        pass

    @abstractmethod
    async def delete_user(self, user_id: str) -> bool:
        """Delete the user and everything it owns."""
        pass


class LedgerStorageInterface(ABC):
    """Transactions, savings goals and the cached summary."""

    @abstractmethod
    async def get_summary(self, user_id: str) -> Optional[FinancialSummary]:
        pass

    @abstractmethod
    async def ensure_summary(self, user_id: str) -> FinancialSummary:
        """Return the user's summary, creating a zeroed one if absent."""
        pass

    @abstractmethod
    async def update_summary(self, user_id: str, patch: SummaryPatch) -> bool:
        """
        Overwrite income and/or expenses and recompute balance and
        savings rate from the stored values.

        Returns:
            False if the patch is empty
        """
        pass

    @abstractmethod
    async def add_transaction(self, transaction: Transaction) -> FinancialSummary:
        """
        Insert a transaction and fold it into the owner's summary atomically.

        Positive amounts are added to income, negative amounts (by absolute
        value) to expenses.

        Returns:
            The summary after the fold
        """
        pass

    @abstractmethod
    async def list_transactions(self, user_id: str) -> list[Transaction]:
        """All transactions for a user, newest date first."""
        pass

    @abstractmethod
    async def add_goal(self, goal: SavingsGoal) -> SavingsGoal:
        pass

    @abstractmethod
    async def get_goal(self, goal_id: str, user_id: str) -> Optional[SavingsGoal]:
        """A goal, only if it belongs to `user_id`."""
        pass

    @abstractmethod
    async def list_goals(self, user_id: str) -> list[SavingsGoal]:
        """All goals for a user, earliest deadline first."""
        pass

    @abstractmethod
    async def update_goal(self, goal_id: str, user_id: str, patch: GoalPatch) -> bool:
        """
        Apply a goal patch.

        `current` is clamped to the resulting target in the same write.

        Returns:
            False if the patch is empty or no such goal belongs to the user
        """
        pass

    @abstractmethod
    async def contribute_to_goal(
        self,
        goal_id: str,
        user_id: str,
        amount: Decimal,
    ) -> Optional[SavingsGoal]:
        """
        Atomically set current = min(current + amount, target).

        Returns:
            The updated goal, or None if no such goal belongs to the user
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_for_user(
        self,
        user_id: str,
        limit: int = 50,
    ) -> list[AuditEvent]:
        """A user's events, newest first."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(StoreError):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
