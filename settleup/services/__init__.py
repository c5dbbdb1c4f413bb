"""Services package."""

from settleup.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    ExpenseSourceInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsSettlementStorage,
    GoogleSheetsSettleUpStorage,
    HouseholdDirectoryInterface,
    InMemoryAuditStorage,
    InMemoryExpenseSource,
    InMemoryHouseholdDirectory,
    InMemorySettlementStorage,
    InMemorySettleUpStorage,
    NotFoundError,
    SettlementStorageInterface,
    SettleUpStorageInterface,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "ExpenseSourceInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsSettlementStorage",
    "GoogleSheetsSettleUpStorage",
    "HouseholdDirectoryInterface",
    "InMemoryAuditStorage",
    "InMemoryExpenseSource",
    "InMemoryHouseholdDirectory",
    "InMemorySettlementStorage",
    "InMemorySettleUpStorage",
    "NotFoundError",
    "SettlementStorageInterface",
    "SettleUpStorageInterface",
    "StorageError",
]
