"""
Ledger Service

Transactions, savings goals and the per-user financial summary.

The summary is a materialized cache, not a query over the ledger. It is
kept in step by the storage layer, which folds each new transaction into
it in the same atomic write that inserts the transaction. This service
never reads a summary, adjusts it and writes it back.

INVARIANTS:
- summary.balance == income - expenses == sum(transaction amounts), as long
  as the totals are only changed by transactions
- 0 <= goal.current <= goal.target
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import structlog

from moneyminder.audit import AuditLogger
from moneyminder.errors import GoalNotFoundError, ValidationError
from moneyminder.models.finance import (
    MAX_AMOUNT,
    ZERO,
    FinancialSummary,
    GoalPatch,
    SavingsGoal,
    SummaryPatch,
    Transaction,
)
from moneyminder.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)


class LedgerService:
    """Per-user ledger operations. Every call is scoped to one owner."""

    def __init__(
        self,
        ledger: LedgerStorageInterface,
        audit: Optional[AuditLogger] = None,
    ):
        self._ledger = ledger
        self._audit = audit or AuditLogger()

    # =========================================================================
    # Summary
    # =========================================================================

    async def get_summary(self, user_id: str) -> FinancialSummary:
        """The user's summary. A missing row is created zeroed."""
        return await self._ledger.ensure_summary(user_id)

    async def update_summary(self, user_id: str, patch: SummaryPatch) -> bool:
        """
        Overwrite income and/or expenses directly.

        Balance and savings rate are recomputed from the stored value of
        whichever field was not supplied.

        Returns:
            False when neither field is given
        """
        if patch.is_empty:
            return False

        updated = await self._ledger.update_summary(user_id, patch)
        if updated:
            fields = [f for f in ("income", "expenses") if getattr(patch, f) is not None]
            await self._audit.log_summary_updated(user_id, fields)
        return updated

    # =========================================================================
    # Transactions
    # =========================================================================

    async def add_transaction(
        self,
        user_id: str,
        date: date,
        description: str,
        amount: Decimal,
        category: str,
    ) -> Transaction:
        """
        Record a transaction and fold it into the summary.

        Positive amounts are income, negative amounts are expenses.

        Raises:
            ValidationError: zero amount or malformed fields
        """
        try:
            transaction = Transaction(
                user_id=user_id,
                date=date,
                description=description,
                amount=amount,
                category=category,
            )
        except ValueError as e:
            raise ValidationError(str(e))

        if transaction.amount == ZERO:
            raise ValidationError("Amount must not be zero")

        summary = await self._ledger.add_transaction(transaction)
        await self._audit.log_transaction_added(
            user_id,
            transaction.id,
            transaction.amount,
            transaction.category,
        )
        logger.info(
            "transaction_added",
            user_id=user_id,
            transaction_id=transaction.id,
            balance=str(summary.balance),
        )
        return transaction

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        return await self._ledger.list_transactions(user_id)

    # =========================================================================
    # Savings goals
    # =========================================================================

    async def add_savings_goal(
        self,
        user_id: str,
        name: str,
        target: Decimal,
        deadline: date,
    ) -> SavingsGoal:
        """Create a goal with nothing saved yet."""
        try:
            goal = SavingsGoal(
                user_id=user_id,
                name=name,
                target=target,
                current=ZERO,
                deadline=deadline,
            )
        except ValueError as e:
            raise ValidationError(str(e))

        await self._ledger.add_goal(goal)
        await self._audit.log_goal_created(user_id, goal.id, goal.name, goal.target)
        return goal

    async def list_savings_goals(self, user_id: str) -> list[SavingsGoal]:
        return await self._ledger.list_goals(user_id)

    async def get_savings_goal(self, goal_id: str, user_id: str) -> SavingsGoal:
        goal = await self._ledger.get_goal(goal_id, user_id)
        if goal is None:
            raise GoalNotFoundError()
        return goal

    async def contribute_to_goal(
        self,
        goal_id: str,
        user_id: str,
        amount: Decimal,
    ) -> SavingsGoal:
        """
        Add to a goal. Anything beyond the target is silently capped.

        Raises:
            ValidationError: amount is not positive or is too large
            GoalNotFoundError: no such goal belongs to the user
        """
        if amount <= 0:
            raise ValidationError("Contribution must be positive")
        if amount > MAX_AMOUNT:
            raise ValidationError(f"Contribution must be at most {MAX_AMOUNT}")

        goal = await self._ledger.contribute_to_goal(goal_id, user_id, amount)
        if goal is None:
            raise GoalNotFoundError()

        await self._audit.log_goal_contribution(user_id, goal.id, amount, goal.current)
        return goal

    async def update_goal(self, goal_id: str, user_id: str, patch: GoalPatch) -> bool:
        """
        Apply a partial goal update. `current` is clamped to the target.

        Returns:
            False when the patch carries no field

        Raises:
            GoalNotFoundError: no such goal belongs to the user
        """
        changes = patch.changes()
        if not changes:
            return False

        if not await self._ledger.update_goal(goal_id, user_id, patch):
            raise GoalNotFoundError()

        await self._audit.log_goal_updated(user_id, goal_id, sorted(changes))
        return True
