"""
Tests for the authentication flow, run against both storage backends.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from moneyminder.errors import (
    EmailNotVerifiedError,
    EmailTakenError,
    ExpiredTokenError,
    InvalidCodeError,
    InvalidPasswordError,
    InvalidTokenError,
    InvalidVerificationTokenError,
    TwoFactorNotConfiguredError,
    UserNotFoundError,
    ValidationError,
    VerificationTokenExpiredError,
)
from moneyminder.models.user import SessionGrant, TwoFactorChallenge, UserPatch, utcnow


class TestRegistration:
    """Tests for register / verify_email / resend_verification."""

    async def test_register_creates_unverified_user(self, auth_service, stores, outbox):
        """Test a new user is unverified and gets a zeroed summary and one email."""
        users, ledger, _ = stores
        profile = await auth_service.register("Ana", "Ana@X.com", "pw123456", "eur")

        assert profile.email == "ana@x.com"
        assert profile.currency == "EUR"
        assert profile.email_verified is False

        stored = await users.get_user_by_id(profile.id)
        assert stored.password_hash != "pw123456"
        assert stored.verification_token

        summary = await ledger.get_summary(profile.id)
        assert summary.income == 0
        assert summary.balance == 0

        assert len(outbox.outbox) == 1
        assert stored.verification_token in outbox.outbox[0].body

    async def test_register_duplicate_email(self, auth_service):
        """Test the same email cannot register twice, in any case."""
        await auth_service.register("Ana", "ana@x.com", "pw123456")
        with pytest.raises(EmailTakenError):
            await auth_service.register("Ana Two", "ANA@x.com", "pw654321")

    async def test_register_short_password(self, auth_service, outbox):
        """Test passwords below the minimum are rejected before anything is stored."""
        with pytest.raises(ValidationError):
            await auth_service.register("Ana", "ana@x.com", "short")
        assert outbox.outbox == []

    async def test_register_uses_default_currency(self, auth_service):
        """Test the currency falls back to USD."""
        profile = await auth_service.register("Ana", "ana@x.com", "pw123456")
        assert profile.currency == "USD"

    async def test_verify_email_once(self, auth_service, outbox):
        """Test a verification token works exactly once."""
        await auth_service.register("Ana", "ana@x.com", "pw123456")
        token = outbox.last_token_for("ana@x.com")

        profile = await auth_service.verify_email(token)
        assert profile.email_verified is True

        with pytest.raises(InvalidVerificationTokenError):
            await auth_service.verify_email(token)

    async def test_verify_email_unknown_token(self, auth_service):
        """Test unknown and empty tokens."""
        with pytest.raises(InvalidVerificationTokenError):
            await auth_service.verify_email("deadbeef")
        with pytest.raises(InvalidVerificationTokenError):
            await auth_service.verify_email("")

    async def test_verify_email_expired(self, auth_service, stores):
        """Test a token past its expiry is refused and the user stays unverified."""
        users, _, _ = stores
        profile = await auth_service.register("Ana", "ana@x.com", "pw123456")
        await users.set_verification_token(profile.id, "stale-token", utcnow() - timedelta(minutes=1))

        with pytest.raises(VerificationTokenExpiredError):
            await auth_service.verify_email("stale-token")

        stored = await users.get_user_by_id(profile.id)
        assert stored.email_verified is False

    async def test_resend_replaces_token(self, auth_service, outbox):
        """Test a resend invalidates the previous link."""
        await auth_service.register("Ana", "ana@x.com", "pw123456")
        first = outbox.last_token_for("ana@x.com")

        assert await auth_service.resend_verification("ana@x.com") is True
        second = outbox.last_token_for("ana@x.com")
        assert second != first

        with pytest.raises(InvalidVerificationTokenError):
            await auth_service.verify_email(first)
        profile = await auth_service.verify_email(second)
        assert profile.email_verified

    async def test_resend_for_unknown_or_verified(self, auth_service, make_verified_user):
        """Test resend errors."""
        with pytest.raises(UserNotFoundError):
            await auth_service.resend_verification("nobody@x.com")

        await make_verified_user()
        with pytest.raises(ValidationError):
            await auth_service.resend_verification("ana@x.com")


class TestLogin:
    """Tests for login and session authentication."""

    async def test_login_unknown_email(self, auth_service):
        """Test an unregistered email."""
        with pytest.raises(UserNotFoundError):
            await auth_service.login("nobody@x.com", "pw123456")

    async def test_login_before_verification(self, auth_service):
        """Test unverified users cannot log in."""
        await auth_service.register("Ana", "ana@x.com", "pw123456")
        with pytest.raises(EmailNotVerifiedError):
            await auth_service.login("ana@x.com", "pw123456")

    async def test_login_wrong_password(self, auth_service, make_verified_user):
        """Test a wrong password."""
        await make_verified_user()
        with pytest.raises(InvalidPasswordError):
            await auth_service.login("ana@x.com", "wrong-password")

    async def test_login_grants_session(self, auth_service, make_verified_user, token_codec):
        """Test a successful login returns a token for the user."""
        user = await make_verified_user()
        result = await auth_service.login("ANA@x.com", "pw123456")

        assert isinstance(result, SessionGrant)
        claims = token_codec.verify_session_token(result.token)
        assert claims["sub"] == user.id
        assert claims["email"] == "ana@x.com"
        assert claims["name"] == "Ana"

    async def test_authenticate(self, auth_service, make_verified_user):
        """Test a session token resolves to the profile."""
        user = await make_verified_user()
        grant = await auth_service.login("ana@x.com", "pw123456")
        profile = await auth_service.authenticate(grant.token)
        assert profile.id == user.id

    async def test_authenticate_rejects_bad_tokens(self, auth_service, token_codec):
        """Test missing, forged, expired and orphaned tokens."""
        with pytest.raises(InvalidTokenError):
            await auth_service.authenticate(None)
        with pytest.raises(InvalidTokenError):
            await auth_service.authenticate("garbage")

        stale = token_codec.issue_session_token(
            {"sub": "u1"},
            now=utcnow() - timedelta(days=30),
        )
        with pytest.raises(ExpiredTokenError):
            await auth_service.authenticate(stale)

        orphan = token_codec.issue_session_token({"sub": "no-such-user"})
        with pytest.raises(InvalidTokenError):
            await auth_service.authenticate(orphan)


class TestTwoFactor:
    """Tests for the two-factor lifecycle."""

    async def _enable(self, auth_service, totp, user_id):
        setup = await auth_service.enable_two_factor(user_id)
        assert await auth_service.activate_two_factor(user_id, totp.generate_code(setup.secret))
        return setup.secret

    async def test_setup_does_not_enable(self, auth_service, make_verified_user, stores):
        """Test the first step only stores a pending secret."""
        users, _, _ = stores
        user = await make_verified_user()
        setup = await auth_service.enable_two_factor(user.id)

        assert setup.otpauth_url.startswith("otpauth://totp/")
        assert setup.secret in setup.otpauth_url

        stored = await users.get_user_by_id(user.id)
        assert stored.two_factor_secret == setup.secret
        assert stored.two_factor_enabled is False

        # Login is still password-only
        assert isinstance(await auth_service.login("ana@x.com", "pw123456"), SessionGrant)

    async def test_activate_with_wrong_code(self, auth_service, make_verified_user, invalid_code):
        """Test activation needs a code from the pending secret."""
        user = await make_verified_user()
        setup = await auth_service.enable_two_factor(user.id)
        with pytest.raises(InvalidCodeError):
            await auth_service.activate_two_factor(user.id, invalid_code(setup.secret))
        assert (await auth_service.get_user(user.id)).two_factor_enabled is False

    async def test_activate_without_setup(self, auth_service, make_verified_user):
        """Test activation before setup."""
        user = await make_verified_user()
        with pytest.raises(TwoFactorNotConfiguredError):
            await auth_service.activate_two_factor(user.id, "123456")

    async def test_login_with_two_factor(self, auth_service, make_verified_user, totp):
        """Test the two-step login."""
        user = await make_verified_user()
        secret = await self._enable(auth_service, totp, user.id)

        result = await auth_service.login("ana@x.com", "pw123456")
        assert isinstance(result, TwoFactorChallenge)
        assert result.user_id == user.id

        grant = await auth_service.verify_two_factor_login(
            user.id,
            totp.generate_code(secret),
            result.challenge_token,
        )
        assert grant.user.two_factor_enabled is True
        assert grant.token

    async def test_two_factor_login_wrong_code(
        self, auth_service, make_verified_user, totp, invalid_code
    ):
        """Test a bad code does not produce a session."""
        user = await make_verified_user()
        secret = await self._enable(auth_service, totp, user.id)
        challenge = await auth_service.login("ana@x.com", "pw123456")
        with pytest.raises(InvalidCodeError):
            await auth_service.verify_two_factor_login(
                user.id,
                invalid_code(secret),
                challenge.challenge_token,
            )

    async def test_two_factor_login_when_not_enabled(
        self, auth_service, make_verified_user, token_codec
    ):
        """Test the second step is refused for an account without two-factor."""
        user = await make_verified_user()
        with pytest.raises(TwoFactorNotConfiguredError):
            await auth_service.verify_two_factor_login(
                user.id,
                "123456",
                token_codec.issue_challenge_token(user.id),
            )

    async def test_two_factor_login_without_password_step(
        self, auth_service, make_verified_user, totp
    ):
        """Test a valid code alone, with no challenge from a password login, is refused."""
        user = await make_verified_user()
        secret = await self._enable(auth_service, totp, user.id)
        with pytest.raises(InvalidTokenError):
            await auth_service.verify_two_factor_login(user.id, totp.generate_code(secret), None)

    async def test_two_factor_challenge_bound_to_user(
        self, auth_service, make_verified_user, totp, token_codec
    ):
        """Test a challenge issued to one user cannot finish another user's login."""
        ana = await make_verified_user()
        bob = await make_verified_user(email="bob@x.com")
        secret = await self._enable(auth_service, totp, ana.id)

        with pytest.raises(InvalidTokenError):
            await auth_service.verify_two_factor_login(
                ana.id,
                totp.generate_code(secret),
                token_codec.issue_challenge_token(bob.id),
            )

    async def test_two_factor_challenge_expires(
        self, auth_service, make_verified_user, totp, token_codec
    ):
        """Test a challenge older than its lifetime is refused."""
        user = await make_verified_user()
        secret = await self._enable(auth_service, totp, user.id)
        stale = token_codec.issue_challenge_token(
            user.id,
            now=datetime.now(timezone.utc) - timedelta(minutes=10),
        )
        with pytest.raises(ExpiredTokenError):
            await auth_service.verify_two_factor_login(user.id, totp.generate_code(secret), stale)

    async def test_session_and_challenge_tokens_not_interchangeable(
        self, auth_service, make_verified_user, totp, token_codec
    ):
        """Test a session cannot finish a challenge and a challenge is not a session."""
        user = await make_verified_user()
        secret = await self._enable(auth_service, totp, user.id)

        session_token = token_codec.issue_session_token({"sub": user.id})
        with pytest.raises(InvalidTokenError):
            await auth_service.verify_two_factor_login(
                user.id,
                totp.generate_code(secret),
                session_token,
            )

        challenge = await auth_service.login("ana@x.com", "pw123456")
        with pytest.raises(InvalidTokenError):
            await auth_service.authenticate(challenge.challenge_token)

    async def test_setup_twice_when_enabled(self, auth_service, make_verified_user, totp):
        """Test an active secret is not replaced."""
        user = await make_verified_user()
        await self._enable(auth_service, totp, user.id)
        with pytest.raises(ValidationError):
            await auth_service.enable_two_factor(user.id)

    async def test_disable(self, auth_service, make_verified_user, totp, invalid_code, stores):
        """Test disabling needs a current code and clears the secret."""
        users, _, _ = stores
        user = await make_verified_user()
        secret = await self._enable(auth_service, totp, user.id)

        with pytest.raises(InvalidCodeError):
            await auth_service.disable_two_factor(user.id, invalid_code(secret))

        assert await auth_service.disable_two_factor(user.id, totp.generate_code(secret))
        stored = await users.get_user_by_id(user.id)
        assert stored.two_factor_enabled is False
        assert stored.two_factor_secret is None
        assert isinstance(await auth_service.login("ana@x.com", "pw123456"), SessionGrant)


class TestProfile:
    """Tests for profile updates and account deletion."""

    async def test_update_profile(self, auth_service, make_verified_user):
        """Test a patch is applied and normalized."""
        user = await make_verified_user()
        patch = UserPatch.model_validate({"name": "Ana B", "currency": "gbp", "bio": "Saver"})
        assert await auth_service.update_profile(user.id, patch) is True

        profile = await auth_service.get_user(user.id)
        assert profile.name == "Ana B"
        assert profile.currency == "GBP"
        assert profile.bio == "Saver"

    async def test_empty_patch_is_a_no_op(self, auth_service, make_verified_user):
        """Test an empty patch reports no change."""
        user = await make_verified_user()
        assert await auth_service.update_profile(user.id, UserPatch()) is False
        assert (await auth_service.get_user(user.id)).name == "Ana"

    async def test_email_change_conflict(self, auth_service, make_verified_user):
        """Test a profile cannot take another user's email."""
        await make_verified_user()
        bob = await make_verified_user(name="Bob", email="bob@x.com")
        with pytest.raises(EmailTakenError):
            await auth_service.update_profile(bob.id, UserPatch(email="ana@x.com"))

    async def test_update_unknown_user(self, auth_service):
        """Test patching a user that does not exist."""
        with pytest.raises(UserNotFoundError):
            await auth_service.update_profile("missing", UserPatch(name="X"))

    async def test_delete_account_cascades(
        self, auth_service, ledger_service, make_verified_user, stores
    ):
        """Test deleting a user removes the summary, transactions and goals."""
        users, ledger, _ = stores
        user = await make_verified_user()
        await ledger_service.add_transaction(
            user.id, date(2024, 1, 1), "Salary", Decimal("5000"), "Salary"
        )
        await ledger_service.add_savings_goal(user.id, "Trip", Decimal("1000"), date(2025, 6, 1))

        assert await auth_service.delete_account(user.id) is True

        assert await users.get_user_by_id(user.id) is None
        assert await ledger.get_summary(user.id) is None
        assert await ledger.list_transactions(user.id) == []
        assert await ledger.list_goals(user.id) == []

        with pytest.raises(UserNotFoundError):
            await auth_service.login("ana@x.com", "pw123456")
        with pytest.raises(UserNotFoundError):
            await auth_service.delete_account(user.id)

    async def test_delete_account_leaves_no_audit_rows(
        self, auth_service, make_verified_user, stores
    ):
        """Test no stored audit event refers to a deleted user."""
        _, _, audit_store = stores
        user = await make_verified_user()
        bob = await make_verified_user(email="bob@x.com")

        assert await auth_service.delete_account(user.id) is True

        remaining = await audit_store.get_recent_events(limit=1000)
        assert remaining
        assert all(user.id not in (e.user_id, e.entity_id) for e in remaining)
        assert any(e.user_id == bob.id for e in remaining)
