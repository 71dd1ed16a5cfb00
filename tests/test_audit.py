"""
Tests for the audit logger and the email senders.
"""

import pytest

from moneyminder.audit import AuditLogger
from moneyminder.models.audit import AuditEventBuilder, AuditEventType, AuditSeverity
from moneyminder.security import PasswordHasher
from moneyminder.services.auth import AuthService
from moneyminder.services.email import (
    EmailSenderInterface,
    LoggingEmailSender,
    build_verification_url,
)
from moneyminder.services.storage import (
    AuditStorageInterface,
    StorageError,
    create_memory_storage,
)


class BrokenAuditStorage(AuditStorageInterface):
    """Fails every write."""

    async def append_event(self, event):
        raise StorageError("disk full")

    async def get_events_for_user(self, user_id, limit=50):
        return []

    async def get_recent_events(self, limit=100):
        return []


class UndeliverableEmailSender(EmailSenderInterface):
    """Simulates an SMTP outage."""

    async def send_verification_email(self, to, name, token):
        return False


class TestAuditLogger:
    """Tests for AuditLogger."""

    async def test_events_are_persisted(self, stores):
        """Test helpers write to the store."""
        _, _, audit_store = stores
        audit = AuditLogger(audit_store)
        await audit.log_user_registered("u1", "ana@x.com")
        await audit.log_login_failed("ana@x.com", "invalid password", user_id="u1")

        events = await audit.recent_for_user("u1")
        assert {e.event_type for e in events} == {
            AuditEventType.USER_REGISTERED,
            AuditEventType.LOGIN_FAILED,
        }

    async def test_storage_failure_does_not_raise(self):
        """Test a failing store is reported, not propagated."""
        audit = AuditLogger(BrokenAuditStorage())
        assert await audit.log(AuditEventBuilder.email_verified("u1")) is False
        await audit.log_error("RuntimeError", "boom")

    async def test_without_storage(self):
        """Test a logger with no store only logs locally."""
        audit = AuditLogger()
        assert await audit.log(AuditEventBuilder.email_verified("u1")) is True
        assert await audit.recent_for_user("u1") == []

    async def test_events_carry_no_secrets(self, auth_service, outbox, stores):
        """Test tokens and hashes never reach the audit trail."""
        users, _, audit_store = stores
        profile = await auth_service.register("Ana", "ana@x.com", "pw123456")
        stored = await users.get_user_by_id(profile.id)

        for event in await audit_store.get_events_for_user(profile.id):
            dumped = str(event.to_log_dict())
            assert stored.verification_token not in dumped
            assert stored.password_hash not in dumped
            assert "pw123456" not in dumped


class TestEmailDelivery:
    """Tests for the verification email path."""

    def test_verification_url(self):
        """Test the link format."""
        assert (
            build_verification_url("http://localhost:3000/", "abc")
            == "http://localhost:3000/verify-email?token=abc"
        )

    async def test_outbox_keeps_messages(self):
        """Test the logging sender records what it would send."""
        sender = LoggingEmailSender(app_url="https://moneyminder.example")
        assert await sender.send_verification_email("ana@x.com", "Ana", "abc")

        message = sender.outbox[0]
        assert message.to == "ana@x.com"
        assert "Ana" in message.body
        assert "https://moneyminder.example/verify-email?token=abc" in message.body
        assert sender.last_token_for("ana@x.com") == "abc"
        assert sender.last_token_for("bob@x.com") is None

    async def test_registration_survives_email_failure(self, token_codec, totp):
        """Test an undelivered email is audited and registration still succeeds."""
        users, ledger, audit_store = create_memory_storage()
        service = AuthService(
            users=users,
            ledger=ledger,
            hasher=PasswordHasher(rounds=4),
            tokens=token_codec,
            totp=totp,
            email_sender=UndeliverableEmailSender(),
            audit=AuditLogger(audit_store),
        )

        profile = await service.register("Ana", "ana@x.com", "pw123456")
        assert await users.get_user_by_id(profile.id) is not None

        events = await audit_store.get_events_for_user(profile.id)
        failures = [e for e in events if e.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR]
        assert len(failures) == 1
        assert failures[0].severity == AuditSeverity.ERROR

        assert await service.resend_verification("ana@x.com") is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
