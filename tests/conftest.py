"""
Shared fixtures.

Service and storage tests run once per storage backend: the in-memory
stores and SQLAlchemy over a temporary SQLite file. No external service is
ever contacted: email goes to an outbox and the advisor is a fake.
"""

import time
from datetime import timedelta

import pytest

from moneyminder.audit import AuditLogger
from moneyminder.config import Settings, get_settings
from moneyminder.security import PasswordHasher, SessionTokenCodec, TOTPEngine
from moneyminder.services.auth import AuthService
from moneyminder.services.email import LoggingEmailSender
from moneyminder.services.ledger import LedgerService
from moneyminder.services.storage import (
    Database,
    create_memory_storage,
    create_sql_storage,
)


TEST_JWT_SECRET = "test-secret-key-that-is-long-enough-for-hs256"


@pytest.fixture(autouse=True)
def settings_env(monkeypatch):
    """Minimal environment for the settings classes."""
    monkeypatch.setenv("AUTH_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("AUTH_BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("EMAIL_SERVER", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture(params=["memory", "sql"])
async def stores(request, tmp_path):
    """(users, ledger, audit) for each backend."""
    if request.param == "memory":
        yield create_memory_storage()
        return

    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'moneyminder.db'}")
    await database.create_all()
    try:
        yield create_sql_storage(database)
    finally:
        await database.dispose()


@pytest.fixture
def outbox() -> LoggingEmailSender:
    return LoggingEmailSender(app_url="http://localhost:3000")


@pytest.fixture
def totp() -> TOTPEngine:
    return TOTPEngine(issuer="MoneyMinder", valid_window=1)


@pytest.fixture
def token_codec() -> SessionTokenCodec:
    return SessionTokenCodec(TEST_JWT_SECRET, default_ttl=timedelta(days=7))


@pytest.fixture
def audit_logger(stores) -> AuditLogger:
    _, _, audit_store = stores
    return AuditLogger(audit_store)


@pytest.fixture
def auth_service(stores, outbox, totp, token_codec, audit_logger) -> AuthService:
    users, ledger, _ = stores
    return AuthService(
        users=users,
        ledger=ledger,
        hasher=PasswordHasher(rounds=4),
        tokens=token_codec,
        totp=totp,
        email_sender=outbox,
        audit=audit_logger,
        verification_ttl=timedelta(hours=24),
    )


@pytest.fixture
def ledger_service(stores, audit_logger) -> LedgerService:
    _, ledger, _ = stores
    return LedgerService(ledger, audit=audit_logger)


def _invalid_code(totp: TOTPEngine, secret: str) -> str:
    """A six-digit code that is not accepted for `secret` right now."""
    now = time.time()
    accepted = {
        totp.generate_code(secret, now + drift * totp.step)
        for drift in range(-totp.valid_window - 1, totp.valid_window + 2)
    }
    for candidate in range(1_000_000):
        code = f"{candidate:06d}"
        if code not in accepted:
            return code
    raise AssertionError("unreachable")


@pytest.fixture
def invalid_code(totp):
    return lambda secret: _invalid_code(totp, secret)


@pytest.fixture
def make_verified_user(auth_service, outbox):
    """Register and verify a user; returns its profile."""

    async def _make(name="Ana", email="ana@x.com", password="pw123456", currency="USD"):
        await auth_service.register(name, email, password, currency)
        await auth_service.verify_email(outbox.last_token_for(email))
        grant = await auth_service.login(email, password)
        return grant.user

    return _make
