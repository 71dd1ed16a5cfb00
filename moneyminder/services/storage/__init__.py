"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
SQLAlchemy is the production backend; the in-memory stores back the tests.
"""

from moneyminder.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    StorageError,
    UserStorageInterface,
)
from moneyminder.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    InMemoryState,
    InMemoryUserStorage,
    create_memory_storage,
)
from moneyminder.services.storage.sql import (
    Base,
    Database,
    SQLAuditStorage,
    SQLLedgerStorage,
    SQLUserStorage,
    create_database,
    create_sql_storage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "UserStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "InMemoryState",
    "InMemoryUserStorage",
    "create_memory_storage",
    # SQLAlchemy implementation
    "Base",
    "Database",
    "SQLAuditStorage",
    "SQLLedgerStorage",
    "SQLUserStorage",
    "create_database",
    "create_sql_storage",
]
