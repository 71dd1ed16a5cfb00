"""
Auth Service

The authentication state machine:

    Unauthenticated -> Registered(unverified) -> EmailVerified
                    -> [TwoFactorPending] -> Authenticated

Each transition is one method. Failures are typed MoneyMinderErrors; the
HTTP layer maps them to status codes. There are no retries and no partial
failure recovery: every step is a single write against the credential store.

SECURITY NOTES:
- Secrets (password hash, verification token, TOTP secret) never leave this
  service; callers get UserProfile
- A verification token is consumed by a guarded write, so it works once
- Two-factor is only switched on after a code from the new secret is accepted
"""

from datetime import timedelta
from typing import Optional

import structlog

from moneyminder.audit import AuditLogger
from moneyminder.errors import (
    EmailNotVerifiedError,
    EmailTakenError,
    InvalidCodeError,
    InvalidPasswordError,
    InvalidTokenError,
    InvalidVerificationTokenError,
    TwoFactorNotConfiguredError,
    UserNotFoundError,
    ValidationError,
    VerificationTokenExpiredError,
)
from moneyminder.models.audit import AuditEventType
from moneyminder.models.user import (
    LoginResult,
    SessionGrant,
    TwoFactorChallenge,
    TwoFactorSetup,
    UserPatch,
    UserProfile,
    UserRecord,
    utcnow,
)
from moneyminder.security import (
    PasswordHasher,
    SessionTokenCodec,
    TOTPEngine,
    generate_opaque_token,
)
from moneyminder.services.email import EmailSenderInterface
from moneyminder.services.storage import (
    DuplicateError,
    LedgerStorageInterface,
    UserStorageInterface,
)


logger = structlog.get_logger(__name__)


MIN_PASSWORD_LENGTH = 8


class AuthService:
    """Registration, verification, login and two-factor management."""

    def __init__(
        self,
        users: UserStorageInterface,
        ledger: LedgerStorageInterface,
        hasher: PasswordHasher,
        tokens: SessionTokenCodec,
        totp: TOTPEngine,
        email_sender: EmailSenderInterface,
        audit: Optional[AuditLogger] = None,
        verification_ttl: timedelta = timedelta(hours=24),
        default_currency: str = "USD",
    ):
        self._users = users
        self._ledger = ledger
        self._hasher = hasher
        self._tokens = tokens
        self._totp = totp
        self._email = email_sender
        self._audit = audit or AuditLogger()
        self._verification_ttl = verification_ttl
        self._default_currency = default_currency

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _require_user(self, user_id: str) -> UserRecord:
        user = await self._users.get_user_by_id(user_id)
        if user is None:
            raise UserNotFoundError()
        return user

    def _grant(self, user: UserRecord) -> SessionGrant:
        token = self._tokens.issue_session_token({
            "sub": user.id,
            "email": user.email,
            "name": user.name,
        })
        return SessionGrant(user=user.to_profile(), token=token)

    async def _send_verification(self, user: UserRecord, token: str) -> bool:
        delivered = await self._email.send_verification_email(user.email, user.name, token)
        await self._audit.log_verification_email(user.id, user.email, delivered)
        return delivered

    # =========================================================================
    # Registration & verification
    # =========================================================================

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        currency: Optional[str] = None,
    ) -> UserProfile:
        """
        Create an unverified user, a zeroed summary, and send the
        verification link.

        Raises:
            ValidationError: password too short or too long
            EmailTakenError: the email is already registered
        """
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        if await self._users.find_by_email(email):
            raise EmailTakenError()

        password_hash = await self._hasher.hash_password_async(password)
        token = generate_opaque_token()

        try:
            user = UserRecord(
                name=name,
                email=email,
                password_hash=password_hash,
                currency=currency or self._default_currency,
                verification_token=token,
                verification_token_expires_at=utcnow() + self._verification_ttl,
            )
        except ValueError as e:
            raise ValidationError(str(e))

        try:
            await self._users.create_user(user)
        except DuplicateError:
            # Lost a race with a concurrent registration
            raise EmailTakenError()

        await self._ledger.ensure_summary(user.id)
        await self._audit.log_user_registered(user.id, user.email)
        await self._send_verification(user, token)

        logger.info("user_registered", user_id=user.id)
        return user.to_profile()

    async def verify_email(self, token: str) -> UserProfile:
        """
        Consume a verification token.

        Raises:
            InvalidVerificationTokenError: unknown or already-consumed token
            VerificationTokenExpiredError: the token is past its expiry
        """
        if not token:
            raise InvalidVerificationTokenError()

        user = await self._users.find_by_verification_token(token)
        if user is None:
            raise InvalidVerificationTokenError()

        expires_at = user.verification_token_expires_at
        if expires_at is not None and expires_at <= utcnow():
            raise VerificationTokenExpiredError()

        if not await self._users.mark_email_verified(user.id, token):
            # Consumed by a concurrent request
            raise InvalidVerificationTokenError()

        await self._audit.log_email_verified(user.id)
        verified = await self._require_user(user.id)
        return verified.to_profile()

    async def resend_verification(self, email: str) -> bool:
        """
        Issue a fresh verification token and send it again.

        Returns:
            Whether the email was handed off for delivery

        Raises:
            UserNotFoundError: no such user
            ValidationError: the email is already verified
        """
        user = await self._users.find_by_email(email)
        if user is None:
            raise UserNotFoundError()
        if user.email_verified:
            raise ValidationError("Email address is already verified")

        token = generate_opaque_token()
        await self._users.set_verification_token(
            user.id,
            token,
            utcnow() + self._verification_ttl,
        )
        return await self._send_verification(user, token)

    # =========================================================================
    # Login
    # =========================================================================

    async def login(self, email: str, password: str) -> LoginResult:
        """
        Check credentials.

        Returns:
            SessionGrant when fully authenticated, or TwoFactorChallenge when
            the account has two-factor enabled (NOT yet authenticated)

        Raises:
            UserNotFoundError, InvalidPasswordError, EmailNotVerifiedError
        """
        user = await self._users.find_by_email(email)
        if user is None:
            await self._audit.log_login_failed(email, "unknown email")
            raise UserNotFoundError()

        if not await self._hasher.verify_password_async(password, user.password_hash):
            await self._audit.log_login_failed(user.email, "invalid password", user_id=user.id)
            raise InvalidPasswordError()

        if not user.email_verified:
            await self._audit.log_login_failed(user.email, "email not verified", user_id=user.id)
            raise EmailNotVerifiedError()

        if user.two_factor_enabled:
            await self._audit.log_two_factor_challenge(user.id)
            return TwoFactorChallenge(
                user_id=user.id,
                challenge_token=self._tokens.issue_challenge_token(user.id),
            )

        await self._audit.log_login_succeeded(user.id, "password")
        return self._grant(user)

    async def verify_two_factor_login(
        self,
        user_id: str,
        code: str,
        challenge_token: Optional[str],
    ) -> SessionGrant:
        """
        Finish a login that returned a TwoFactorChallenge.

        The challenge token from that login must come back with the code and
        belong to the same user, so a code alone never opens a session.

        Raises:
            InvalidTokenError / ExpiredTokenError: missing, forged, stale or
            foreign challenge token
            UserNotFoundError: no such user
            TwoFactorNotConfiguredError: the user has no active two-factor
            InvalidCodeError: the code does not match
        """
        if not challenge_token:
            raise InvalidTokenError("Two-factor challenge required")
        if self._tokens.verify_challenge_token(challenge_token) != user_id:
            raise InvalidTokenError("Invalid two-factor challenge")

        user = await self._require_user(user_id)
        if not user.two_factor_enabled:
            raise TwoFactorNotConfiguredError()

        if not self._totp.verify_code(code, user.two_factor_secret):
            await self._audit.log_two_factor_rejected(user.id, "login")
            raise InvalidCodeError()

        await self._audit.log_login_succeeded(user.id, "two_factor")
        return self._grant(user)

    async def authenticate(self, token: Optional[str]) -> UserProfile:
        """
        Resolve a session token to the current user.

        Raises:
            InvalidTokenError / ExpiredTokenError: bad or stale token, or the
            user no longer exists
        """
        if not token:
            raise InvalidTokenError("Not authenticated")
        claims = self._tokens.verify_session_token(token)
        user = await self._users.get_user_by_id(claims["sub"])
        if user is None:
            raise InvalidTokenError("Invalid token")
        return user.to_profile()

    # =========================================================================
    # Two-factor lifecycle
    # =========================================================================

    async def enable_two_factor(self, user_id: str) -> TwoFactorSetup:
        """
        Step one of setup: generate and store a secret without enabling it.

        Calling it again replaces a pending secret. It does not touch an
        already-active one.
        """
        user = await self._require_user(user_id)
        if user.two_factor_enabled:
            raise ValidationError("Two-factor authentication is already enabled")

        secret = self._totp.generate_secret()
        await self._users.set_two_factor_secret(user.id, secret)
        await self._audit.log_two_factor_changed(user.id, AuditEventType.TWO_FACTOR_SETUP_STARTED)

        return TwoFactorSetup(
            secret=secret,
            otpauth_url=self._totp.build_provisioning_uri(user.email, secret),
        )

    async def activate_two_factor(self, user_id: str, code: str) -> bool:
        """
        Step two of setup: switch two-factor on after one accepted code.

        Raises:
            TwoFactorNotConfiguredError: setup was never started
            InvalidCodeError: the code does not match the pending secret
        """
        user = await self._require_user(user_id)
        if not user.two_factor_secret:
            raise TwoFactorNotConfiguredError()

        if not self._totp.verify_code(code, user.two_factor_secret):
            await self._audit.log_two_factor_rejected(user.id, "activation")
            raise InvalidCodeError()

        enabled = await self._users.enable_two_factor(user.id)
        if enabled:
            await self._audit.log_two_factor_changed(user.id, AuditEventType.TWO_FACTOR_ENABLED)
        return enabled

    async def disable_two_factor(self, user_id: str, code: str) -> bool:
        """Turn two-factor off. Requires a valid current code."""
        user = await self._require_user(user_id)
        if not user.two_factor_enabled:
            raise TwoFactorNotConfiguredError()

        if not self._totp.verify_code(code, user.two_factor_secret):
            await self._audit.log_two_factor_rejected(user.id, "disable")
            raise InvalidCodeError()

        disabled = await self._users.disable_two_factor(user.id)
        if disabled:
            await self._audit.log_two_factor_changed(user.id, AuditEventType.TWO_FACTOR_DISABLED)
        return disabled

    # =========================================================================
    # Profile
    # =========================================================================

    async def get_user(self, user_id: str) -> UserProfile:
        return (await self._require_user(user_id)).to_profile()

    async def update_profile(self, user_id: str, patch: UserPatch) -> bool:
        """
        Apply a profile patch.

        Returns:
            False when the patch carries no recognized field (a no-op, not
            an error), True once written

        Raises:
            UserNotFoundError: no such user
            EmailTakenError: the new email belongs to someone else
        """
        changes = patch.changes()
        if not changes:
            return False

        await self._require_user(user_id)
        try:
            updated = await self._users.update_user(user_id, patch)
        except DuplicateError:
            raise EmailTakenError()

        if updated:
            await self._audit.log_profile_updated(user_id, sorted(changes))
        return updated

    async def delete_account(self, user_id: str) -> bool:
        """Delete the user and everything it owns."""
        await self._require_user(user_id)
        deleted = await self._users.delete_user(user_id)
        if deleted:
            await self._audit.log_account_deleted(user_id)
        return deleted
