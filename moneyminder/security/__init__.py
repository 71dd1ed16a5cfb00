"""Password hashing, session tokens and TOTP."""

from moneyminder.security.codec import (
    PasswordHasher,
    SessionTokenCodec,
    create_password_hasher,
    create_token_codec,
    generate_opaque_token,
)
from moneyminder.security.totp import TOTPEngine, create_totp_engine

__all__ = [
    "PasswordHasher",
    "SessionTokenCodec",
    "TOTPEngine",
    "create_password_hasher",
    "create_token_codec",
    "create_totp_engine",
    "generate_opaque_token",
]
