"""
SQLAlchemy Storage Implementation

DESIGN DECISION: One async engine, built explicitly by `Database` and
injected into each store. There is no module-level pool: tests construct
their own Database against a temporary SQLite file.

The ledger's atomicity comes from the database, not from Python:
- add_transaction inserts the row and increments the summary totals
  (``income = income + :amount``) inside one transaction
- contribute_to_goal is a single UPDATE with a CASE clamp
- mark_email_verified only matches while the token is still stored

Balance and savings rate are derived columns. They are recomputed from the
stored totals inside the same transaction that changed them, so a reader
never sees totals and derived values disagree.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    case,
    delete,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from moneyminder.config import DatabaseSettings, get_settings
from moneyminder.models.audit import AuditEvent, AuditEventType, AuditSeverity
from moneyminder.models.finance import (
    FinancialSummary,
    GoalPatch,
    SavingsGoal,
    SummaryPatch,
    Transaction,
    compute_balance,
    compute_savings_rate,
)
from moneyminder.models.user import UserPatch, UserRecord, utcnow
from moneyminder.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    StorageError,
    UserStorageInterface,
)


Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes, stored as UTC. SQLite drops the offset."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


# =============================================================================
# Tables
# =============================================================================

class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    name = Column(String(120), nullable=False)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(100), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    bio = Column(Text)
    email_verified = Column(Boolean, nullable=False, default=False)
    verification_token = Column(String(64), index=True)
    verification_token_expires_at = Column(UTCDateTime)
    two_factor_enabled = Column(Boolean, nullable=False, default=False)
    two_factor_secret = Column(String(64))
    created_at = Column(UTCDateTime, nullable=False)


class TransactionRow(Base):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    description = Column(Text, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    category = Column(String(100), nullable=False)
    created_at = Column(UTCDateTime, nullable=False)


class SavingsGoalRow(Base):
    __tablename__ = "savings_goals"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    target = Column(Numeric(14, 2), nullable=False)
    current = Column(Numeric(14, 2), nullable=False, default=0)
    deadline = Column(Date, nullable=False)
    created_at = Column(UTCDateTime, nullable=False)


class FinancialSummaryRow(Base):
    __tablename__ = "financial_summaries"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    # Sums of Numeric(14, 2) amounts
    income = Column(Numeric(18, 2), nullable=False, default=0)
    expenses = Column(Numeric(18, 2), nullable=False, default=0)
    balance = Column(Numeric(18, 2), nullable=False, default=0)
    savings_rate = Column(Numeric(12, 2), nullable=False, default=0)
    last_updated = Column(UTCDateTime, nullable=False)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    event_id = Column(String(36), primary_key=True)
    timestamp = Column(UTCDateTime, nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    severity = Column(String(20), nullable=False)
    entity_type = Column(String(50))
    entity_id = Column(String(36))
    user_id = Column(String(36), index=True)
    description = Column(String(500), nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    error_message = Column(Text)
    is_user_action = Column(Boolean, nullable=False, default=False)


# =============================================================================
# Engine
# =============================================================================

class Database:
    """
    Owns the async engine and session factory.

    In-memory SQLite needs a single shared connection, otherwise every
    session would see its own empty database.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        engine_kwargs = {"echo": echo}
        if url.startswith("sqlite") and ":memory:" in url:
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        self.engine = create_async_engine(url, **engine_kwargs)
        self.sessions = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_all(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except OperationalError as e:
            raise ConnectionError(f"Failed to initialize database: {e}")

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    def session(self) -> AsyncSession:
        return self.sessions()


def create_database(settings: Optional[DatabaseSettings] = None) -> Database:
    settings = settings or get_settings().database
    return Database(settings.url, echo=settings.echo)


# =============================================================================
# Row <-> model conversion
# =============================================================================

def _user_from_row(row: UserRow) -> UserRecord:
    return UserRecord(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        currency=row.currency,
        bio=row.bio,
        email_verified=row.email_verified,
        verification_token=row.verification_token,
        verification_token_expires_at=row.verification_token_expires_at,
        two_factor_enabled=row.two_factor_enabled,
        two_factor_secret=row.two_factor_secret,
        created_at=row.created_at,
    )


def _transaction_from_row(row: TransactionRow) -> Transaction:
    return Transaction(
        id=row.id,
        user_id=row.user_id,
        date=row.date,
        description=row.description,
        amount=Decimal(row.amount),
        category=row.category,
        created_at=row.created_at,
    )


def _goal_from_row(row: SavingsGoalRow) -> SavingsGoal:
    return SavingsGoal(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        target=Decimal(row.target),
        current=Decimal(row.current),
        deadline=row.deadline,
        created_at=row.created_at,
    )


def _summary_from_row(row: FinancialSummaryRow) -> FinancialSummary:
    return FinancialSummary(
        user_id=row.user_id,
        income=Decimal(row.income),
        expenses=Decimal(row.expenses),
        balance=Decimal(row.balance),
        savings_rate=Decimal(row.savings_rate),
        last_updated=row.last_updated,
    )


def _event_from_row(row: AuditEventRow) -> AuditEvent:
    return AuditEvent(
        event_id=row.event_id,
        timestamp=row.timestamp,
        event_type=AuditEventType(row.event_type),
        severity=AuditSeverity(row.severity),
        entity_type=row.entity_type,
        entity_id=row.entity_id,
        user_id=row.user_id,
        description=row.description,
        details=row.details or {},
        error_message=row.error_message,
        is_user_action=row.is_user_action,
    )


# =============================================================================
# Stores
# =============================================================================

class SQLUserStorage(UserStorageInterface):
    """Credential store backed by the ``users`` table."""

    def __init__(self, database: Database):
        self._db = database

    async def _update(self, user_id: str, *conditions, **values) -> bool:
        stmt = (
            update(UserRow)
            .where(UserRow.id == user_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._db.session() as session, session.begin():
                result = await session.execute(stmt)
                return result.rowcount > 0
        except IntegrityError as e:
            raise DuplicateError(f"Email already registered: {values.get('email')}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update user {user_id}: {e}")

    async def _fetch_one(self, stmt) -> Optional[UserRecord]:
        try:
            async with self._db.session() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read user: {e}")
        return _user_from_row(row) if row else None

    async def create_user(self, user: UserRecord) -> str:
        row = UserRow(**user.model_dump())
        try:
            async with self._db.session() as session, session.begin():
                session.add(row)
        except IntegrityError as e:
            raise DuplicateError(f"Email already registered: {user.email}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create user: {e}")
        return user.id

    async def get_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        return await self._fetch_one(select(UserRow).where(UserRow.id == user_id))

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        return await self._fetch_one(
            select(UserRow).where(UserRow.email == email.strip().lower())
        )

    async def find_by_verification_token(self, token: str) -> Optional[UserRecord]:
        if not token:
            return None
        return await self._fetch_one(
            select(UserRow).where(UserRow.verification_token == token)
        )

    async def update_user(self, user_id: str, patch: UserPatch) -> bool:
        changes = patch.changes()
        if not changes:
            return False
        return await self._update(user_id, **changes)

    async def set_verification_token(
        self,
        user_id: str,
        token: str,
        expires_at: datetime,
    ) -> bool:
        return await self._update(
            user_id,
            verification_token=token,
            verification_token_expires_at=expires_at,
        )

    async def mark_email_verified(self, user_id: str, token: str) -> bool:
        return await self._update(
            user_id,
            UserRow.verification_token == token,
            email_verified=True,
            verification_token=None,
            verification_token_expires_at=None,
        )

    async def set_two_factor_secret(self, user_id: str, secret: str) -> bool:
        return await self._update(user_id, two_factor_secret=secret)

    async def enable_two_factor(self, user_id: str) -> bool:
        return await self._update(
            user_id,
            UserRow.two_factor_secret.is_not(None),
            two_factor_enabled=True,
        )

    async def disable_two_factor(self, user_id: str) -> bool:
        return await self._update(
            user_id,
            two_factor_enabled=False,
            two_factor_secret=None,
        )

    async def delete_user(self, user_id: str) -> bool:
        # Explicit deletes: SQLite does not enforce ON DELETE CASCADE by default
        try:
            async with self._db.session() as session, session.begin():
                for table, column in (
                    (TransactionRow, TransactionRow.user_id),
                    (SavingsGoalRow, SavingsGoalRow.user_id),
                    (FinancialSummaryRow, FinancialSummaryRow.user_id),
                    (AuditEventRow, AuditEventRow.user_id),
                ):
                    await session.execute(delete(table).where(column == user_id))
                result = await session.execute(delete(UserRow).where(UserRow.id == user_id))
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete user {user_id}: {e}")


class SQLLedgerStorage(LedgerStorageInterface):
    """Transactions, goals and summaries."""

    def __init__(self, database: Database):
        self._db = database

    async def _recompute(self, session: AsyncSession, user_id: str) -> FinancialSummary:
        """Refresh balance and savings rate from the totals just written."""
        row = (await session.execute(
            select(FinancialSummaryRow).where(FinancialSummaryRow.user_id == user_id)
        )).scalar_one()
        income, expenses = Decimal(row.income), Decimal(row.expenses)
        row.balance = compute_balance(income, expenses)
        row.savings_rate = compute_savings_rate(income, expenses)
        row.last_updated = utcnow()
        await session.flush()
        return FinancialSummary(
            user_id=user_id,
            income=income,
            expenses=expenses,
            balance=row.balance,
            savings_rate=row.savings_rate,
            last_updated=row.last_updated,
        )

    async def get_summary(self, user_id: str) -> Optional[FinancialSummary]:
        try:
            async with self._db.session() as session:
                row = await session.get(FinancialSummaryRow, user_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read summary: {e}")
        return _summary_from_row(row) if row else None

    async def ensure_summary(self, user_id: str) -> FinancialSummary:
        existing = await self.get_summary(user_id)
        if existing:
            return existing

        summary = FinancialSummary(user_id=user_id)
        try:
            async with self._db.session() as session, session.begin():
                session.add(FinancialSummaryRow(**summary.model_dump()))
        except IntegrityError:
            # Another request created it first
            return await self.get_summary(user_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create summary: {e}")
        return summary

    async def update_summary(self, user_id: str, patch: SummaryPatch) -> bool:
        if patch.is_empty:
            return False
        await self.ensure_summary(user_id)

        values = {}
        if patch.income is not None:
            values["income"] = patch.income
        if patch.expenses is not None:
            values["expenses"] = patch.expenses

        try:
            async with self._db.session() as session, session.begin():
                await session.execute(
                    update(FinancialSummaryRow)
                    .where(FinancialSummaryRow.user_id == user_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                await self._recompute(session, user_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update summary: {e}")
        return True

    async def add_transaction(self, transaction: Transaction) -> FinancialSummary:
        await self.ensure_summary(transaction.user_id)

        if transaction.amount > 0:
            increment = {"income": FinancialSummaryRow.income + transaction.amount}
        else:
            increment = {"expenses": FinancialSummaryRow.expenses + abs(transaction.amount)}

        try:
            async with self._db.session() as session, session.begin():
                session.add(TransactionRow(**transaction.model_dump()))
                await session.execute(
                    update(FinancialSummaryRow)
                    .where(FinancialSummaryRow.user_id == transaction.user_id)
                    .values(**increment)
                    .execution_options(synchronize_session=False)
                )
                return await self._recompute(session, transaction.user_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to add transaction: {e}")

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        stmt = (
            select(TransactionRow)
            .where(TransactionRow.user_id == user_id)
            .order_by(TransactionRow.date.desc(), TransactionRow.created_at.desc())
        )
        try:
            async with self._db.session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list transactions: {e}")
        return [_transaction_from_row(row) for row in rows]

    async def add_goal(self, goal: SavingsGoal) -> SavingsGoal:
        try:
            async with self._db.session() as session, session.begin():
                session.add(SavingsGoalRow(**goal.model_dump()))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to add savings goal: {e}")
        return goal

    async def get_goal(self, goal_id: str, user_id: str) -> Optional[SavingsGoal]:
        stmt = select(SavingsGoalRow).where(
            SavingsGoalRow.id == goal_id,
            SavingsGoalRow.user_id == user_id,
        )
        try:
            async with self._db.session() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read savings goal: {e}")
        return _goal_from_row(row) if row else None

    async def list_goals(self, user_id: str) -> list[SavingsGoal]:
        stmt = (
            select(SavingsGoalRow)
            .where(SavingsGoalRow.user_id == user_id)
            .order_by(SavingsGoalRow.deadline.asc(), SavingsGoalRow.created_at.asc())
        )
        try:
            async with self._db.session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list savings goals: {e}")
        return [_goal_from_row(row) for row in rows]

    async def update_goal(self, goal_id: str, user_id: str, patch: GoalPatch) -> bool:
        changes = patch.changes()
        if not changes:
            return False

        if "target" in changes and "current" in changes:
            changes["current"] = min(changes["current"], changes["target"])
        elif "target" in changes or "current" in changes:
            target = changes.get("target", SavingsGoalRow.target)
            current = changes.get("current", SavingsGoalRow.current)
            changes["current"] = case((current > target, target), else_=current)

        stmt = (
            update(SavingsGoalRow)
            .where(SavingsGoalRow.id == goal_id, SavingsGoalRow.user_id == user_id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._db.session() as session, session.begin():
                result = await session.execute(stmt)
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update savings goal: {e}")

    async def contribute_to_goal(
        self,
        goal_id: str,
        user_id: str,
        amount: Decimal,
    ) -> Optional[SavingsGoal]:
        raised = SavingsGoalRow.current + amount
        stmt = (
            update(SavingsGoalRow)
            .where(SavingsGoalRow.id == goal_id, SavingsGoalRow.user_id == user_id)
            .values(current=case(
                (raised > SavingsGoalRow.target, SavingsGoalRow.target),
                else_=raised,
            ))
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._db.session() as session, session.begin():
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    return None
                row = (await session.execute(
                    select(SavingsGoalRow).where(SavingsGoalRow.id == goal_id)
                )).scalar_one()
                return _goal_from_row(row)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to contribute to savings goal: {e}")


class SQLAuditStorage(AuditStorageInterface):
    """Append-only ``audit_events`` table."""

    def __init__(self, database: Database):
        self._db = database

    async def append_event(self, event: AuditEvent) -> bool:
        row = AuditEventRow(
            event_id=event.event_id,
            timestamp=event.timestamp,
            event_type=event.event_type.value,
            severity=event.severity.value,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            user_id=event.user_id,
            description=event.description,
            details=event.details,
            error_message=event.error_message,
            is_user_action=event.is_user_action,
        )
        try:
            async with self._db.session() as session, session.begin():
                session.add(row)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to log audit event: {e}")
        return True

    async def _list(self, stmt) -> list[AuditEvent]:
        try:
            async with self._db.session() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read audit log: {e}")
        return [_event_from_row(row) for row in rows]

    async def get_events_for_user(self, user_id: str, limit: int = 50) -> list[AuditEvent]:
        return await self._list(
            select(AuditEventRow)
            .where(AuditEventRow.user_id == user_id)
            .order_by(AuditEventRow.timestamp.desc())
            .limit(limit)
        )

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return await self._list(
            select(AuditEventRow)
            .order_by(AuditEventRow.timestamp.desc())
            .limit(limit)
        )


def create_sql_storage(
    database: Database,
) -> tuple[SQLUserStorage, SQLLedgerStorage, SQLAuditStorage]:
    """Three stores over one engine."""
    return (
        SQLUserStorage(database),
        SQLLedgerStorage(database),
        SQLAuditStorage(database),
    )
