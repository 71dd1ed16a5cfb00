"""
Tests for the storage backends directly.

Every test runs against the in-memory stores and against SQLite.
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

from moneyminder.models.audit import AuditEventBuilder
from moneyminder.models.finance import SavingsGoal, SummaryPatch, Transaction
from moneyminder.models.user import UserPatch, UserRecord, utcnow
from moneyminder.services.storage import DuplicateError


async def _create_user(users, email="ana@x.com", token="tok-1"):
    user = UserRecord(
        name="Ana",
        email=email,
        password_hash="hash",
        verification_token=token,
        verification_token_expires_at=utcnow() + timedelta(hours=24),
    )
    await users.create_user(user)
    return user


def _transaction(user_id, amount, day=1):
    return Transaction(
        user_id=user_id,
        date=date(2024, 1, day),
        description="Entry",
        amount=Decimal(amount),
        category="Misc",
    )


class TestUserStorage:
    """Tests for the credential store."""

    async def test_create_and_find(self, stores):
        """Test lookup by id, email and verification token."""
        users, _, _ = stores
        user = await _create_user(users)

        assert (await users.get_user_by_id(user.id)).email == "ana@x.com"
        assert (await users.find_by_email("ANA@x.com ")).id == user.id
        assert (await users.find_by_verification_token("tok-1")).id == user.id
        assert await users.find_by_verification_token("") is None
        assert await users.get_user_by_id("missing") is None

    async def test_duplicate_email(self, stores):
        """Test email uniqueness is enforced by the store itself."""
        users, _, _ = stores
        await _create_user(users)
        with pytest.raises(DuplicateError):
            await _create_user(users, token="tok-2")

    async def test_mark_verified_only_once(self, stores):
        """Test the token-guarded write succeeds a single time."""
        users, _, _ = stores
        user = await _create_user(users)

        assert await users.mark_email_verified(user.id, "wrong") is False
        assert await users.mark_email_verified(user.id, "tok-1") is True
        assert await users.mark_email_verified(user.id, "tok-1") is False

        stored = await users.get_user_by_id(user.id)
        assert stored.email_verified is True
        assert stored.verification_token is None
        assert stored.verification_token_expires_at is None

    async def test_concurrent_verification(self, stores):
        """Test racing verifications: exactly one wins."""
        users, _, _ = stores
        user = await _create_user(users)
        results = await asyncio.gather(
            *(users.mark_email_verified(user.id, "tok-1") for _ in range(5))
        )
        assert sorted(results) == [False, False, False, False, True]

    async def test_enable_two_factor_needs_secret(self, stores):
        """Test two-factor cannot be switched on without a stored secret."""
        users, _, _ = stores
        user = await _create_user(users)

        assert await users.enable_two_factor(user.id) is False
        assert await users.set_two_factor_secret(user.id, "JBSWY3DPEHPK3PXP")
        assert await users.enable_two_factor(user.id) is True

        stored = await users.get_user_by_id(user.id)
        assert stored.two_factor_enabled is True

        assert await users.disable_two_factor(user.id)
        stored = await users.get_user_by_id(user.id)
        assert stored.two_factor_enabled is False
        assert stored.two_factor_secret is None

    async def test_update_user_email_clash(self, stores):
        """Test a patch cannot steal another user's email."""
        users, _, _ = stores
        await _create_user(users)
        bob = await _create_user(users, email="bob@x.com", token="tok-2")
        with pytest.raises(DuplicateError):
            await users.update_user(bob.id, UserPatch(email="ana@x.com"))

    async def test_update_missing_user(self, stores):
        """Test writes to an unknown id report False."""
        users, _, _ = stores
        assert await users.update_user("missing", UserPatch(name="X")) is False

    async def test_delete_cascades(self, stores):
        """Test a deleted user's ledger and events are gone."""
        users, ledger, audit = stores
        ana = await _create_user(users)
        bob = await _create_user(users, email="bob@x.com", token="tok-2")

        for owner in (ana, bob):
            await ledger.add_transaction(_transaction(owner.id, "100"))
            await ledger.add_goal(SavingsGoal(
                user_id=owner.id,
                name="Trip",
                target=Decimal("1000"),
                deadline=date(2025, 6, 1),
            ))
            await audit.append_event(AuditEventBuilder.email_verified(owner.id))

        assert await users.delete_user(ana.id) is True
        assert await users.delete_user(ana.id) is False

        assert await ledger.get_summary(ana.id) is None
        assert await ledger.list_transactions(ana.id) == []
        assert await ledger.list_goals(ana.id) == []
        assert await audit.get_events_for_user(ana.id) == []

        assert len(await ledger.list_transactions(bob.id)) == 1
        assert len(await ledger.list_goals(bob.id)) == 1
        assert len(await audit.get_events_for_user(bob.id)) == 1


class TestLedgerStorage:
    """Tests for summary maintenance and goal writes."""

    async def test_concurrent_transactions_are_all_counted(self, stores):
        """Test parallel inserts lose no update to the summary."""
        users, ledger, _ = stores
        user = await _create_user(users)
        await ledger.ensure_summary(user.id)

        amounts = ["100", "-40", "250", "-10", "75", "-25"] * 3
        await asyncio.gather(*(
            ledger.add_transaction(_transaction(user.id, amount, day=(i % 28) + 1))
            for i, amount in enumerate(amounts)
        ))

        summary = await ledger.get_summary(user.id)
        assert summary.income == Decimal("1275")
        assert summary.expenses == Decimal("225")
        assert summary.balance == Decimal("1050")
        assert len(await ledger.list_transactions(user.id)) == len(amounts)

    async def test_add_transaction_returns_new_summary(self, stores):
        """Test the returned summary reflects the insert."""
        users, ledger, _ = stores
        user = await _create_user(users)
        summary = await ledger.add_transaction(_transaction(user.id, "-20"))
        assert summary.expenses == Decimal("20")
        assert summary.balance == Decimal("-20")

    async def test_ensure_summary_is_idempotent(self, stores):
        """Test a second ensure keeps the existing totals."""
        users, ledger, _ = stores
        user = await _create_user(users)
        await ledger.add_transaction(_transaction(user.id, "500"))
        summary = await ledger.ensure_summary(user.id)
        assert summary.income == Decimal("500")

    async def test_update_summary_missing_field_kept(self, stores):
        """Test an omitted total keeps its stored value."""
        users, ledger, _ = stores
        user = await _create_user(users)
        await ledger.add_transaction(_transaction(user.id, "-300"))
        await ledger.update_summary(user.id, SummaryPatch(income=Decimal("1200")))

        summary = await ledger.get_summary(user.id)
        assert summary.expenses == Decimal("300")
        assert summary.balance == Decimal("900")
        assert summary.savings_rate == Decimal("75")

    async def test_concurrent_contributions_cap(self, stores):
        """Test racing contributions never push a goal past its target."""
        users, ledger, _ = stores
        user = await _create_user(users)
        goal = await ledger.add_goal(SavingsGoal(
            user_id=user.id,
            name="Trip",
            target=Decimal("1000"),
            deadline=date(2025, 6, 1),
        ))

        await asyncio.gather(*(
            ledger.contribute_to_goal(goal.id, user.id, Decimal("300")) for _ in range(5)
        ))
        stored = await ledger.get_goal(goal.id, user.id)
        assert stored.current == Decimal("1000")

    async def test_contribute_to_missing_goal(self, stores):
        """Test an unknown goal yields None."""
        users, ledger, _ = stores
        user = await _create_user(users)
        assert await ledger.contribute_to_goal("missing", user.id, Decimal("10")) is None


class TestAuditStorage:
    """Tests for the audit trail."""

    async def test_events_newest_first(self, stores):
        """Test per-user events come back newest first and respect the limit."""
        users, _, audit = stores
        user = await _create_user(users)

        first = AuditEventBuilder.user_registered(user.id, user.email)
        second = AuditEventBuilder.email_verified(user.id)
        second = second.model_copy(update={"timestamp": first.timestamp + timedelta(seconds=1)})
        await audit.append_event(first)
        await audit.append_event(second)

        events = await audit.get_events_for_user(user.id)
        assert [e.event_id for e in events] == [second.event_id, first.event_id]
        assert len(await audit.get_events_for_user(user.id, limit=1)) == 1
        assert len(await audit.get_recent_events()) == 2
