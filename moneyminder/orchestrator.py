"""
Main Orchestrator for MoneyMinder

This module ties together all the components: storage, codecs, the email
sender, the advisor and the two services. It is the only place that
decides WHICH implementations are used; everything else receives its
collaborators explicitly.

DESIGN DECISION: No global connection pool. `create_app_components` builds
one Database (or one shared in-memory state) and hands the stores to the
services. Tests call it with `use_database=False` and their own senders.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Optional

import structlog

from moneyminder.agents import AdvisorInterface, create_advisor
from moneyminder.audit import AuditLogger
from moneyminder.config import Settings, get_settings
from moneyminder.errors import AdvisorUnavailableError
from moneyminder.models.finance import ChatMessage
from moneyminder.models.user import UserProfile
from moneyminder.security import (
    SessionTokenCodec,
    create_password_hasher,
    create_token_codec,
    create_totp_engine,
)
from moneyminder.services.auth import AuthService
from moneyminder.services.email import EmailSenderInterface, create_email_sender
from moneyminder.services.ledger import LedgerService
from moneyminder.services.storage import (
    Database,
    create_database,
    create_memory_storage,
    create_sql_storage,
)


logger = structlog.get_logger(__name__)


class ChatFlow:
    """
    Orchestrates the advice chat.

    Flow:
    1. Load the user's summary (read-only)
    2. Hand the conversation plus the summary to the advisor
    3. Stream the reply back unchanged

    The advisor never gets write access to anything.
    """

    def __init__(
        self,
        ledger: LedgerService,
        advisor: Optional[AdvisorInterface] = None,
    ):
        self._ledger = ledger
        self._advisor = advisor

    @property
    def available(self) -> bool:
        return self._advisor is not None

    async def reply(
        self,
        user: UserProfile,
        messages: list[ChatMessage],
    ) -> AsyncIterator[str]:
        """
        Start the advisor's reply and return it as a stream.

        The first chunk is awaited here, so an advisor that cannot answer
        raises AdvisorUnavailableError before any response is sent.
        """
        if self._advisor is None:
            raise AdvisorUnavailableError()
        summary = await self._ledger.get_summary(user.id)
        stream = self._advisor.stream_reply(messages, summary=summary, currency=user.currency)
        try:
            first = await stream.__anext__()
        except StopAsyncIteration:
            first = None
        return self._relay(first, stream, user.id)

    @staticmethod
    async def _relay(
        first: Optional[str],
        rest: AsyncIterator[str],
        user_id: str,
    ) -> AsyncIterator[str]:
        if first is None:
            return
        yield first
        try:
            async for chunk in rest:
                yield chunk
        except AdvisorUnavailableError as e:
            # Headers are already sent; the reply just ends early
            logger.error("advisor_stream_interrupted", user_id=user_id, error=str(e))


@dataclass
class AppComponents:
    """Everything the HTTP layer needs, built once per process."""

    auth: AuthService
    ledger: LedgerService
    chat: ChatFlow
    audit: AuditLogger
    tokens: SessionTokenCodec
    settings: Settings
    database: Optional[Database] = None

    async def startup(self) -> None:
        if self.database is not None:
            await self.database.create_all()
            logger.info("database_ready", url=self.database.engine.url.render_as_string())

    async def shutdown(self) -> None:
        if self.database is not None:
            await self.database.dispose()


def create_app_components(
    settings: Optional[Settings] = None,
    use_database: bool = True,
    database: Optional[Database] = None,
    email_sender: Optional[EmailSenderInterface] = None,
    advisor: Optional[AdvisorInterface] = None,
    use_advisor: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to build from (default: environment)
        use_database: SQL storage when True, in-memory stores otherwise
        database: An already-built Database to use instead of the configured one
        email_sender: Overrides the configured sender (tests pass an outbox)
        advisor: Overrides the Gemini advisor
        use_advisor: Set to False to run without any advisor

    Returns:
        AppComponents
    """
    settings = settings or get_settings()
    auth_settings = settings.auth

    if use_database or database is not None:
        database = database or create_database(settings.database)
        users, ledger_store, audit_store = create_sql_storage(database)
    else:
        database = None
        users, ledger_store, audit_store = create_memory_storage()

    audit_logger = AuditLogger(audit_store)
    tokens = create_token_codec(auth_settings)

    if email_sender is None:
        email_sender = create_email_sender(
            settings.email,
            ttl_hours=auth_settings.verification_token_ttl_hours,
        )

    if advisor is None and use_advisor:
        advisor = create_advisor(settings)

    auth_service = AuthService(
        users=users,
        ledger=ledger_store,
        hasher=create_password_hasher(auth_settings),
        tokens=tokens,
        totp=create_totp_engine(auth_settings),
        email_sender=email_sender,
        audit=audit_logger,
        verification_ttl=auth_settings.verification_token_ttl,
        default_currency=settings.app.default_currency,
    )
    ledger_service = LedgerService(ledger_store, audit=audit_logger)

    return AppComponents(
        auth=auth_service,
        ledger=ledger_service,
        chat=ChatFlow(ledger_service, advisor),
        audit=audit_logger,
        tokens=tokens,
        settings=settings,
        database=database,
    )
