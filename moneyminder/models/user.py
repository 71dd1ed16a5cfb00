"""
User and Authentication Models

UserRecord is the full credential row as stored. It carries the password
hash, the verification token and the TOTP secret and must NEVER be returned
to a client. UserProfile is the public projection.

The login flow branches, so its result is one of two models:
- SessionGrant: fully authenticated, carries a signed session token
- TwoFactorChallenge: password accepted, TOTP code still required
"""

from datetime import datetime, timezone
from typing import Literal, Optional, Union
from uuid import uuid4

from pydantic import EmailStr, Field, field_validator, model_validator

from moneyminder.models.base import DomainModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


class UserRecord(DomainModel):
    """
    A stored user, including secrets.

    INVARIANT: two_factor_enabled implies two_factor_secret is set.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password_hash: str
    currency: str = Field(default="USD", min_length=3, max_length=3)
    bio: Optional[str] = Field(default=None, max_length=1000)

    email_verified: bool = False
    verification_token: Optional[str] = None
    verification_token_expires_at: Optional[datetime] = None

    two_factor_enabled: bool = False
    two_factor_secret: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode='after')
    def validate_two_factor(self) -> 'UserRecord':
        if self.two_factor_enabled and not self.two_factor_secret:
            raise ValueError("Two-factor authentication cannot be enabled without a secret")
        return self

    def to_profile(self) -> 'UserProfile':
        return UserProfile(
            id=self.id,
            name=self.name,
            email=self.email,
            currency=self.currency,
            bio=self.bio,
            email_verified=self.email_verified,
            two_factor_enabled=self.two_factor_enabled,
        )


class UserProfile(DomainModel):
    """What a client is allowed to see about a user."""

    id: str
    name: str
    email: str
    currency: str
    bio: Optional[str] = None
    email_verified: bool
    two_factor_enabled: bool


class UserPatch(DomainModel):
    """
    Partial profile update.

    name, email and currency are only applied when given a value; bio is
    applied whenever it is present, so it can be cleared with null.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    email: Optional[EmailStr] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    bio: Optional[str] = Field(default=None, max_length=1000)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v else v

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    def changes(self) -> dict:
        """The recognized fields to write, keyed by column name."""
        updates = {}
        for field in ("name", "email", "currency"):
            value = getattr(self, field)
            if value:
                updates[field] = value
        if "bio" in self.model_fields_set:
            updates["bio"] = self.bio
        return updates

    @property
    def is_empty(self) -> bool:
        return not self.changes()


class SessionGrant(DomainModel):
    """A completed login."""

    user: UserProfile
    token: str


class TwoFactorChallenge(DomainModel):
    """Password accepted; a TOTP code is required to finish logging in."""

    requires_two_factor: Literal[True] = True
    user_id: str
    challenge_token: str


LoginResult = Union[SessionGrant, TwoFactorChallenge]


class TwoFactorSetup(DomainModel):
    """Returned by the first step of two-factor setup."""

    secret: str
    otpauth_url: str
