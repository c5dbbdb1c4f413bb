"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the shared backend; the in-memory backend serves tests
and unconfigured local runs.
"""

from settleup.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseSourceInterface,
    HouseholdDirectoryInterface,
    NotFoundError,
    SettlementStorageInterface,
    SettleUpStorageInterface,
    StorageError,
)
from settleup.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryExpenseSource,
    InMemoryHouseholdDirectory,
    InMemorySettlementStorage,
    InMemorySettleUpStorage,
)
from settleup.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsSettlementStorage,
    GoogleSheetsSettleUpStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ExpenseSourceInterface",
    "HouseholdDirectoryInterface",
    "SettlementStorageInterface",
    "SettleUpStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryExpenseSource",
    "InMemoryHouseholdDirectory",
    "InMemorySettlementStorage",
    "InMemorySettleUpStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsSettlementStorage",
    "GoogleSheetsSettleUpStorage",
]
