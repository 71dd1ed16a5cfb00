"""
In-Memory Storage Implementation

Dict-backed stores for tests and local experiments. Nothing survives a
restart.

One asyncio.Lock serializes every write (and the reads that have to see a
consistent summary), which gives the same atomicity guarantees as the SQL
implementation: a transaction and its summary contribution are never
observed separately.
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Optional

from moneyminder.models.audit import AuditEvent
from moneyminder.models.finance import (
    FinancialSummary,
    GoalPatch,
    SavingsGoal,
    SummaryPatch,
    Transaction,
)
from moneyminder.models.user import UserPatch, UserRecord
from moneyminder.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    UserStorageInterface,
)


class InMemoryState:
    """
    Shared backing state, so the three stores see one "database" and
    deleting a user can cascade across them.
    """

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users: dict[str, UserRecord] = {}
        self.transactions: dict[str, Transaction] = {}
        self.goals: dict[str, SavingsGoal] = {}
        self.summaries: dict[str, FinancialSummary] = {}
        self.events: list[AuditEvent] = []


class InMemoryUserStorage(UserStorageInterface):
    """Dict-backed credential store."""

    def __init__(self, state: Optional[InMemoryState] = None):
        self._state = state or InMemoryState()

    def _email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        return any(
            user.email == email and user.id != exclude_id
            for user in self._state.users.values()
        )

    def _replace(self, user_id: str, **changes) -> bool:
        user = self._state.users.get(user_id)
        if user is None:
            return False
        # Re-validate so the two-factor invariant is checked on every write
        self._state.users[user_id] = UserRecord.model_validate(
            {**user.model_dump(), **changes}
        )
        return True

    async def create_user(self, user: UserRecord) -> str:
        async with self._state.lock:
            if self._email_taken(user.email):
                raise DuplicateError(f"Email already registered: {user.email}")
            self._state.users[user.id] = user.model_copy(deep=True)
            return user.id

    async def get_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        user = self._state.users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        email = email.strip().lower()
        for user in self._state.users.values():
            if user.email == email:
                return user.model_copy(deep=True)
        return None

    async def find_by_verification_token(self, token: str) -> Optional[UserRecord]:
        for user in self._state.users.values():
            if user.verification_token and user.verification_token == token:
                return user.model_copy(deep=True)
        return None

    async def update_user(self, user_id: str, patch: UserPatch) -> bool:
        changes = patch.changes()
        if not changes:
            return False
        async with self._state.lock:
            if "email" in changes and self._email_taken(changes["email"], exclude_id=user_id):
                raise DuplicateError(f"Email already registered: {changes['email']}")
            return self._replace(user_id, **changes)

    async def set_verification_token(
        self,
        user_id: str,
        token: str,
        expires_at: datetime,
    ) -> bool:
        async with self._state.lock:
            return self._replace(
                user_id,
                verification_token=token,
                verification_token_expires_at=expires_at,
            )

    async def mark_email_verified(self, user_id: str, token: str) -> bool:
        async with self._state.lock:
            user = self._state.users.get(user_id)
            if user is None or user.verification_token != token:
                return False
            return self._replace(
                user_id,
                email_verified=True,
                verification_token=None,
                verification_token_expires_at=None,
            )

    async def set_two_factor_secret(self, user_id: str, secret: str) -> bool:
        async with self._state.lock:
            return self._replace(user_id, two_factor_secret=secret)

    async def enable_two_factor(self, user_id: str) -> bool:
        async with self._state.lock:
            user = self._state.users.get(user_id)
            if user is None or not user.two_factor_secret:
                return False
            return self._replace(user_id, two_factor_enabled=True)

    async def disable_two_factor(self, user_id: str) -> bool:
        async with self._state.lock:
            return self._replace(user_id, two_factor_enabled=False, two_factor_secret=None)

    async def delete_user(self, user_id: str) -> bool:
        async with self._state.lock:
            if self._state.users.pop(user_id, None) is None:
                return False
            state = self._state
            state.transactions = {
                k: v for k, v in state.transactions.items() if v.user_id != user_id
            }
            state.goals = {k: v for k, v in state.goals.items() if v.user_id != user_id}
            state.summaries.pop(user_id, None)
            state.events = [e for e in state.events if e.user_id != user_id]
            return True


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dict-backed ledger with a lock-serialized summary."""

    def __init__(self, state: Optional[InMemoryState] = None):
        self._state = state or InMemoryState()

    def _ensure(self, user_id: str) -> FinancialSummary:
        summary = self._state.summaries.get(user_id)
        if summary is None:
            summary = FinancialSummary(user_id=user_id)
            self._state.summaries[user_id] = summary
        return summary

    def _store_totals(self, user_id: str, income: Decimal, expenses: Decimal) -> FinancialSummary:
        summary = FinancialSummary.from_totals(user_id, income, expenses)
        self._state.summaries[user_id] = summary
        return summary

    async def get_summary(self, user_id: str) -> Optional[FinancialSummary]:
        summary = self._state.summaries.get(user_id)
        return summary.model_copy() if summary else None

    async def ensure_summary(self, user_id: str) -> FinancialSummary:
        async with self._state.lock:
            return self._ensure(user_id).model_copy()

    async def update_summary(self, user_id: str, patch: SummaryPatch) -> bool:
        if patch.is_empty:
            return False
        async with self._state.lock:
            current = self._ensure(user_id)
            income = patch.income if patch.income is not None else current.income
            expenses = patch.expenses if patch.expenses is not None else current.expenses
            self._store_totals(user_id, income, expenses)
            return True

    async def add_transaction(self, transaction: Transaction) -> FinancialSummary:
        async with self._state.lock:
            self._state.transactions[transaction.id] = transaction.model_copy()
            current = self._ensure(transaction.user_id)
            income, expenses = current.income, current.expenses
            if transaction.amount > 0:
                income += transaction.amount
            else:
                expenses += abs(transaction.amount)
            return self._store_totals(transaction.user_id, income, expenses).model_copy()

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        rows = [t for t in self._state.transactions.values() if t.user_id == user_id]
        rows.sort(key=lambda t: (t.date, t.created_at), reverse=True)
        return [t.model_copy() for t in rows]

    async def add_goal(self, goal: SavingsGoal) -> SavingsGoal:
        async with self._state.lock:
            self._state.goals[goal.id] = goal.model_copy()
            return goal

    async def get_goal(self, goal_id: str, user_id: str) -> Optional[SavingsGoal]:
        goal = self._state.goals.get(goal_id)
        if goal is None or goal.user_id != user_id:
            return None
        return goal.model_copy()

    async def list_goals(self, user_id: str) -> list[SavingsGoal]:
        rows = [g for g in self._state.goals.values() if g.user_id == user_id]
        rows.sort(key=lambda g: (g.deadline, g.created_at))
        return [g.model_copy() for g in rows]

    async def update_goal(self, goal_id: str, user_id: str, patch: GoalPatch) -> bool:
        changes = patch.changes()
        if not changes:
            return False
        async with self._state.lock:
            goal = self._state.goals.get(goal_id)
            if goal is None or goal.user_id != user_id:
                return False
            merged = {**goal.model_dump(), **changes}
            merged["current"] = min(merged["current"], merged["target"])
            self._state.goals[goal_id] = SavingsGoal.model_validate(merged)
            return True

    async def contribute_to_goal(
        self,
        goal_id: str,
        user_id: str,
        amount: Decimal,
    ) -> Optional[SavingsGoal]:
        async with self._state.lock:
            goal = self._state.goals.get(goal_id)
            if goal is None or goal.user_id != user_id:
                return None
            updated = goal.model_copy(
                update={"current": min(goal.current + amount, goal.target)}
            )
            self._state.goals[goal_id] = updated
            return updated.model_copy()


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of events."""

    def __init__(self, state: Optional[InMemoryState] = None):
        self._state = state or InMemoryState()

    async def append_event(self, event: AuditEvent) -> bool:
        self._state.events.append(event)
        return True

    async def get_events_for_user(self, user_id: str, limit: int = 50) -> list[AuditEvent]:
        events = [e for e in self._state.events if e.user_id == user_id]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._state.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]


def create_memory_storage() -> tuple[InMemoryUserStorage, InMemoryLedgerStorage, InMemoryAuditStorage]:
    """Three stores over one shared state."""
    state = InMemoryState()
    return (
        InMemoryUserStorage(state),
        InMemoryLedgerStorage(state),
        InMemoryAuditStorage(state),
    )
