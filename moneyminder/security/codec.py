"""
Password & Token Codec

Four kinds of secret material pass through here:

1. Passwords - bcrypt with a per-hash random salt. The cost factor comes
   from AuthSettings.bcrypt_rounds so tests can run at the minimum (4).
2. Session tokens - HS256 JWTs carrying {sub, email, name, iat, exp}.
   They are stateless: nothing is stored server-side, validity is the
   signature plus the expiry.
3. Two-factor challenges - 5-minute JWTs with a ``purpose`` claim, handed
   out after a correct password so the TOTP step can prove it followed one.
   They are never accepted as sessions.
4. Opaque tokens - 256 random bits as hex, used in email verification links.

bcrypt is deliberately slow, so the async wrappers push it to a worker
thread instead of blocking the event loop.
"""

import asyncio
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import bcrypt
import jwt

from moneyminder.config import AuthSettings, get_settings
from moneyminder.errors import ExpiredTokenError, InvalidTokenError, ValidationError


# bcrypt ignores (or, in newer releases, rejects) anything past 72 bytes.
BCRYPT_MAX_BYTES = 72

# Challenge tokens carry a purpose claim; session tokens never do.
PURPOSE_CLAIM = "purpose"
TWO_FACTOR_PURPOSE = "2fa"
TWO_FACTOR_CHALLENGE_TTL = timedelta(minutes=5)


class PasswordHasher:
    """bcrypt password hashing."""

    def __init__(self, rounds: int = 12):
        self._rounds = rounds

    def hash_password(self, plaintext: str) -> str:
        encoded = plaintext.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            raise ValidationError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode("ascii")

    def verify_password(self, plaintext: str, password_hash: str) -> bool:
        encoded = plaintext.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, password_hash.encode("ascii"))
        except ValueError:
            # Malformed stored hash
            return False

    async def hash_password_async(self, plaintext: str) -> str:
        return await asyncio.to_thread(self.hash_password, plaintext)

    async def verify_password_async(self, plaintext: str, password_hash: str) -> bool:
        return await asyncio.to_thread(self.verify_password, plaintext, password_hash)


class SessionTokenCodec:
    """
    Signs and verifies stateless session tokens.

    The claims always include ``sub`` (the user id), ``iat`` and ``exp``;
    callers add whatever else they need (email, name).
    """

    REQUIRED_CLAIMS = ["sub", "iat", "exp"]

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        default_ttl: timedelta = timedelta(days=7),
    ):
        self._secret = secret
        self._algorithm = algorithm
        self._default_ttl = default_ttl

    @property
    def default_ttl(self) -> timedelta:
        return self._default_ttl

    def issue_session_token(
        self,
        claims: dict[str, Any],
        ttl: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> str:
        if "sub" not in claims:
            raise ValueError("Session claims must include 'sub'")

        issued_at = now or datetime.now(timezone.utc)
        payload = {
            **claims,
            "sub": str(claims["sub"]),
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + (ttl or self._default_ttl)).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify_session_token(self, token: str) -> dict[str, Any]:
        """
        Decode and verify a session token.

        Raises:
            ExpiredTokenError: signature is valid but the token is past exp
            InvalidTokenError: anything else (bad signature, malformed, missing
            claims, or a two-factor challenge presented as a session)
        """
        claims = self._decode(token, "Session has expired")
        if PURPOSE_CLAIM in claims:
            raise InvalidTokenError("Invalid token")
        return claims

    def issue_challenge_token(
        self,
        user_id: str,
        ttl: timedelta = TWO_FACTOR_CHALLENGE_TTL,
        now: Optional[datetime] = None,
    ) -> str:
        """Proof that the password step passed, for the two-factor step only."""
        return self.issue_session_token(
            {"sub": user_id, PURPOSE_CLAIM: TWO_FACTOR_PURPOSE},
            ttl=ttl,
            now=now,
        )

    def verify_challenge_token(self, token: str) -> str:
        """Returns the user id the challenge was issued to."""
        claims = self._decode(token, "Two-factor challenge has expired")
        if claims.get(PURPOSE_CLAIM) != TWO_FACTOR_PURPOSE:
            raise InvalidTokenError("Invalid two-factor challenge")
        return claims["sub"]

    def _decode(self, token: str, expired_message: str) -> dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": self.REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredTokenError(expired_message)
        except jwt.InvalidTokenError:
            raise InvalidTokenError("Invalid token")


def generate_opaque_token() -> str:
    """256 random bits, hex encoded."""
    return secrets.token_hex(32)


def create_password_hasher(settings: Optional[AuthSettings] = None) -> PasswordHasher:
    settings = settings or get_settings().auth
    return PasswordHasher(rounds=settings.bcrypt_rounds)


def create_token_codec(settings: Optional[AuthSettings] = None) -> SessionTokenCodec:
    settings = settings or get_settings().auth
    return SessionTokenCodec(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        default_ttl=settings.session_ttl,
    )
