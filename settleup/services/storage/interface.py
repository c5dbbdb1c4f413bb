"""
Abstract Storage Interfaces

DESIGN DECISION: Everything the settlement engine reads or writes goes
through an abstract interface. This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the calculation core free of any I/O

Members, split settings and expenses belong to other parts of the
household app; we only describe the reads we need from them.

Conflict policy for settlements is last-write-wins. Each write bumps a
monotonically increasing sync_version so overwrites are visible.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from settleup.models.audit import AuditEvent
from settleup.models.settlement import (
    Expense,
    HouseholdSplitSettings,
    Member,
    Settlement,
    SettleUpRecord,
)


class SettlementStorageInterface(ABC):
    """
    Abstract interface for monthly settlement records.

    Records are keyed by the natural key (household_id, month).
    """

    @abstractmethod
    async def get_month_settlement(
        self,
        household_id: str,
        month: str,
    ) -> Optional[Settlement]:
        """
        Look up the settlement for a household and month.

        Returns:
            The stored settlement, or None if never saved (not an error)
        """
        pass

    @abstractmethod
    async def save_settlement(self, settlement: Settlement) -> UUID:
        """
        Upsert a settlement by (household_id, month).

        An existing record is overwritten in place and keeps its id and
        created_at; otherwise a new record is inserted. Either way the
        stored sync_version becomes the previous stored version + 1.

        Returns:
            The id of the stored record

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def list_settlements(self, household_id: str) -> list[Settlement]:
        """
        List a household's settlements, newest month first.
        """
        pass


class SettleUpStorageInterface(ABC):
    """
    Abstract interface for settle-up payment history.

    Append-only - records are never modified or deleted.
    """

    @abstractmethod
    async def append_settle_up(self, record: SettleUpRecord) -> UUID:
        """Append a settle-up record. Returns its id."""
        pass

    @abstractmethod
    async def list_settle_ups(self, household_id: str) -> list[SettleUpRecord]:
        """List a household's settle-ups, most recent first."""
        pass


class HouseholdDirectoryInterface(ABC):
    """Read access to household members and their split configuration."""

    @abstractmethod
    async def get_members(self, household_id: str) -> list[Member]:
        """Members of the household, in a stable order."""
        pass

    @abstractmethod
    async def get_split_settings(
        self,
        household_id: str,
    ) -> Optional[HouseholdSplitSettings]:
        """Split settings, or None if the household never configured any."""
        pass


class ExpenseSourceInterface(ABC):
    """Read access to a household's expenses."""

    @abstractmethod
    async def list_expenses(self, household_id: str, month: str) -> list[Expense]:
        """
        Expenses of the household for a YYYY-MM month.

        Deleted expenses must not be returned.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one service call, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent audit events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
