"""
Financial Models

Transactions are signed: positive amounts are income, negative amounts are
expenses. The FinancialSummary is a cached aggregate of them, kept in step
by folding each new transaction into it rather than re-summing history.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Optional

from pydantic import Field, model_validator

from moneyminder.models.base import Amount, DomainModel, Money
from moneyminder.models.user import new_id, utcnow


CENT = Decimal("0.01")
ZERO = Decimal("0")
MAX_AMOUNT = Decimal("999999999999.99")
# Lowest savings rate kept when expenses dwarf income; fits Numeric(12, 2).
SAVINGS_RATE_FLOOR = Decimal("-9999999999.99")


def compute_balance(income: Decimal, expenses: Decimal) -> Decimal:
    return income - expenses


def compute_savings_rate(income: Decimal, expenses: Decimal) -> Decimal:
    """Percentage of income kept, rounded to cents. Zero without income, never below the floor."""
    if income <= 0:
        return ZERO
    rate = (income - expenses) / income * 100
    if rate < SAVINGS_RATE_FLOOR:
        return SAVINGS_RATE_FLOOR
    return rate.quantize(CENT, rounding=ROUND_HALF_UP)


class Transaction(DomainModel):
    """A single income or expense entry. Immutable once stored."""

    id: str = Field(default_factory=new_id)
    user_id: str
    date: date
    description: str = Field(..., min_length=1, max_length=500)
    amount: Amount = Field(...)
    category: str = Field(..., min_length=1, max_length=100)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_income(self) -> bool:
        return self.amount > 0


class FinancialSummary(DomainModel):
    """Cached per-user aggregate of the ledger."""

    user_id: str
    income: Money = ZERO
    expenses: Money = ZERO
    balance: Money = ZERO
    savings_rate: Money = ZERO
    last_updated: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_totals(
        cls,
        user_id: str,
        income: Decimal,
        expenses: Decimal,
    ) -> 'FinancialSummary':
        return cls(
            user_id=user_id,
            income=income,
            expenses=expenses,
            balance=compute_balance(income, expenses),
            savings_rate=compute_savings_rate(income, expenses),
        )


class SummaryPatch(DomainModel):
    """Direct edit of the summary totals. Either field may be omitted."""

    income: Optional[Amount] = Field(default=None, ge=0)
    expenses: Optional[Amount] = Field(default=None, ge=0)

    @property
    def is_empty(self) -> bool:
        return self.income is None and self.expenses is None


class SavingsGoal(DomainModel):
    """
    A target amount with a deadline.

    INVARIANT: 0 <= current <= target.
    """

    id: str = Field(default_factory=new_id)
    user_id: str
    name: str = Field(..., min_length=1, max_length=200)
    target: Amount = Field(..., gt=0)
    current: Amount = Field(default=ZERO, ge=0)
    deadline: date
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_current(self) -> 'SavingsGoal':
        if self.current > self.target:
            raise ValueError("Current amount cannot exceed target")
        return self

    @property
    def progress(self) -> Decimal:
        return (self.current / self.target * 100).quantize(CENT, rounding=ROUND_HALF_UP)


class GoalPatch(DomainModel):
    """Partial savings goal update."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    target: Optional[Amount] = Field(default=None, gt=0)
    current: Optional[Amount] = Field(default=None, ge=0)
    deadline: Optional[date] = None

    def changes(self) -> dict:
        return {
            field: getattr(self, field)
            for field in ("name", "target", "current", "deadline")
            if getattr(self, field) is not None
        }

    @property
    def is_empty(self) -> bool:
        return not self.changes()


class ChatMessage(DomainModel):
    """One turn of the advice conversation."""

    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1, max_length=4000)
