"""
In-Memory Storage Implementation

Used by the tests and as the fallback when no remote storage is
configured. Implements the same contracts as the Google Sheets backend,
including upsert-by-natural-key and sync_version bumps.

Records are copied on the way in and out so callers can never mutate
what is stored.
"""

from typing import Iterable, Optional
from uuid import UUID

from settleup.models.audit import AuditEvent
from settleup.models.settlement import (
    Expense,
    HouseholdSplitSettings,
    Member,
    Settlement,
    SettleUpRecord,
    utc_now,
)
from settleup.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    ExpenseSourceInterface,
    HouseholdDirectoryInterface,
    SettlementStorageInterface,
    SettleUpStorageInterface,
)


class InMemorySettlementStorage(SettlementStorageInterface):
    """Settlements held in a dict keyed by (household_id, month)."""

    def __init__(self):
        self._records: dict[tuple[str, str], Settlement] = {}

    async def get_month_settlement(
        self,
        household_id: str,
        month: str,
    ) -> Optional[Settlement]:
        record = self._records.get((household_id, month))
        return record.model_copy(deep=True) if record else None

    async def save_settlement(self, settlement: Settlement) -> UUID:
        key = settlement.natural_key
        existing = self._records.get(key)

        if existing:
            stored = settlement.model_copy(
                deep=True,
                update={
                    "id": existing.id,
                    "created_at": existing.created_at,
                    "updated_at": utc_now(),
                    "sync_version": existing.sync_version + 1,
                    "is_persisted": True,
                },
            )
        else:
            stored = settlement.model_copy(
                deep=True,
                update={
                    "updated_at": utc_now(),
                    "sync_version": 1,
                    "is_persisted": True,
                },
            )

        self._records[key] = stored
        return stored.id

    async def list_settlements(self, household_id: str) -> list[Settlement]:
        records = [
            record.model_copy(deep=True)
            for (record_household, _), record in self._records.items()
            if record_household == household_id
        ]
        records.sort(key=lambda s: s.month, reverse=True)
        return records


class InMemorySettleUpStorage(SettleUpStorageInterface):
    """Append-only list of settle-up records."""

    def __init__(self):
        self._records: list[SettleUpRecord] = []

    async def append_settle_up(self, record: SettleUpRecord) -> UUID:
        if any(existing.id == record.id for existing in self._records):
            raise DuplicateError(f"Settle-up already recorded: {record.id}")
        self._records.append(record.model_copy(deep=True))
        return record.id

    async def list_settle_ups(self, household_id: str) -> list[SettleUpRecord]:
        records = [
            record.model_copy(deep=True)
            for record in self._records
            if record.household_id == household_id
        ]
        records.sort(key=lambda r: r.settled_at, reverse=True)
        return records


class InMemoryHouseholdDirectory(HouseholdDirectoryInterface):
    """Members and split settings registered up front."""

    def __init__(self):
        self._members: dict[str, list[Member]] = {}
        self._split_settings: dict[str, HouseholdSplitSettings] = {}

    def set_members(self, household_id: str, members: Iterable[Member]) -> None:
        self._members[household_id] = list(members)

    def set_split_settings(self, settings: HouseholdSplitSettings) -> None:
        self._split_settings[settings.household_id] = settings

    async def get_members(self, household_id: str) -> list[Member]:
        return list(self._members.get(household_id, []))

    async def get_split_settings(
        self,
        household_id: str,
    ) -> Optional[HouseholdSplitSettings]:
        return self._split_settings.get(household_id)


class InMemoryExpenseSource(ExpenseSourceInterface):
    """Expenses registered up front, filtered by month on read."""

    def __init__(self):
        self._expenses: dict[str, list[Expense]] = {}

    def add_expenses(self, household_id: str, expenses: Iterable[Expense]) -> None:
        self._expenses.setdefault(household_id, []).extend(expenses)

    async def list_expenses(self, household_id: str, month: str) -> list[Expense]:
        return [
            expense for expense in self._expenses.get(household_id, [])
            if expense.month == month
        ]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only in-memory audit trail."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
