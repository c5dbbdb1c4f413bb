"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the shared storage backend because:
1. Every device of the household can read and write the same sheet
2. Members can look at past settlements directly in Sheets
3. No database setup required

TRADEOFFS:
- No transactions: two devices saving the same month race, and the last
  write wins. The sync_version column makes such overwrites visible.
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interfaces, so we can swap
to PostgreSQL/SQLite later without changing the service.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from settleup.config import GoogleSheetsSettings, get_settings
from settleup.models.audit import AuditEvent, AuditEventType, AuditSeverity
from settleup.models.settlement import (
    BalanceTransfer,
    MemberBalance,
    Settlement,
    SettleUpRecord,
    utc_now,
)
from settleup.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    SettlementStorageInterface,
    SettleUpStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


# Column mappings for Settlements sheet
SETTLEMENT_COLUMNS = [
    "id",
    "household_id",
    "month",
    "total_expenses",
    "member_balances_json",
    "suggested_transfers_json",
    "is_settled",
    "settled_at",
    "completed_at",
    "sync_version",
    "created_at",
    "updated_at",
]

# Column mappings for SettleUps sheet
SETTLE_UP_COLUMNS = [
    "id",
    "household_id",
    "month",
    "from_member_id",
    "to_member_id",
    "amount",
    "settled_at",
    "expense_ids_json",
    "notes",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "household_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_settlements_sheet(self) -> gspread.Worksheet:
        """Get or create the Settlements worksheet."""
        return self._get_or_create_sheet(
            self._settings.settlements_sheet_name, SETTLEMENT_COLUMNS, rows=1000
        )

    def get_settle_ups_sheet(self) -> gspread.Worksheet:
        """Get or create the SettleUps worksheet."""
        return self._get_or_create_sheet(
            self._settings.settle_ups_sheet_name, SETTLE_UP_COLUMNS, rows=1000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


class GoogleSheetsSettlementStorage(SettlementStorageInterface):
    """
    Google Sheets implementation of settlement storage.

    One row per (household_id, month). Balances and transfers are
    JSON-serialized into single cells.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _settlement_to_row(self, settlement: Settlement) -> list:
        """Convert a Settlement to a spreadsheet row."""
        return [
            str(settlement.id),
            settlement.household_id,
            settlement.month,
            str(settlement.total_expenses),
            json.dumps([b.model_dump(mode="json") for b in settlement.member_balances]),
            json.dumps([t.model_dump(mode="json") for t in settlement.suggested_transfers]),
            str(settlement.is_settled),
            settlement.settled_at.isoformat() if settlement.settled_at else "",
            settlement.completed_at.isoformat() if settlement.completed_at else "",
            str(settlement.sync_version),
            settlement.created_at.isoformat(),
            settlement.updated_at.isoformat(),
        ]

    def _row_to_settlement(self, row: list) -> Settlement:
        """Convert a spreadsheet row to a Settlement."""
        balances_json = _cell(row, 4)
        transfers_json = _cell(row, 5)
        settled_at = _cell(row, 7)
        completed_at = _cell(row, 8)

        return Settlement(
            id=UUID(_cell(row, 0)),
            household_id=_cell(row, 1),
            month=_cell(row, 2),
            total_expenses=Decimal(_cell(row, 3, "0")),
            member_balances=[
                MemberBalance.model_validate(item)
                for item in (json.loads(balances_json) if balances_json else [])
            ],
            suggested_transfers=[
                BalanceTransfer.model_validate(item)
                for item in (json.loads(transfers_json) if transfers_json else [])
            ],
            is_settled=_cell(row, 6).lower() == "true",
            settled_at=datetime.fromisoformat(settled_at) if settled_at else None,
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
            sync_version=int(_cell(row, 9, "0")),
            created_at=datetime.fromisoformat(_cell(row, 10)),
            updated_at=datetime.fromisoformat(_cell(row, 11)),
            is_persisted=True,
        )

    def _find_row(
        self,
        all_rows: list[list],
        household_id: str,
        month: str,
    ) -> Optional[int]:
        """1-based sheet row index of the record, or None."""
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
            if len(row) > 2 and row[1] == household_id and row[2] == month:
                return idx
        return None

    async def get_month_settlement(
        self,
        household_id: str,
        month: str,
    ) -> Optional[Settlement]:
        """Look up the settlement for a household and month."""
        try:
            sheet = self._client.get_settlements_sheet()
            all_rows = sheet.get_all_values()
            idx = self._find_row(all_rows, household_id, month)
            if idx is None:
                return None
            return self._row_to_settlement(all_rows[idx - 1])
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get settlement: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def save_settlement(self, settlement: Settlement) -> UUID:
        """Upsert a settlement by (household_id, month)."""
        try:
            sheet = self._client.get_settlements_sheet()
            all_rows = sheet.get_all_values()
            idx = self._find_row(all_rows, settlement.household_id, settlement.month)

            if idx is None:
                stored = settlement.model_copy(
                    update={"updated_at": utc_now(), "sync_version": 1}
                )
                sheet.append_row(self._settlement_to_row(stored), value_input_option="RAW")
                return stored.id

            existing = self._row_to_settlement(all_rows[idx - 1])
            stored = settlement.model_copy(
                update={
                    "id": existing.id,
                    "created_at": existing.created_at,
                    "updated_at": utc_now(),
                    "sync_version": existing.sync_version + 1,
                }
            )
            if settlement.sync_version < existing.sync_version:
                logger.warning(
                    "settlement_stale_overwrite",
                    household_id=settlement.household_id,
                    month=settlement.month,
                    incoming_version=settlement.sync_version,
                    stored_version=existing.sync_version,
                )

            # Whole row, one RAW write
            sheet.update(
                range_name=f"A{idx}",
                values=[self._settlement_to_row(stored)],
                value_input_option="RAW",
            )
            return stored.id
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save settlement: {e}")

    async def list_settlements(self, household_id: str) -> list[Settlement]:
        """List a household's settlements, newest month first."""
        try:
            sheet = self._client.get_settlements_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header

            settlements = []
            for row in all_rows:
                if len(row) < 3 or row[1] != household_id:
                    continue
                try:
                    settlements.append(self._row_to_settlement(row))
                except Exception:
                    logger.warning("settlement_row_malformed", row_id=_cell(row, 0))

            settlements.sort(key=lambda s: s.month, reverse=True)
            return settlements
        except Exception as e:
            raise StorageError(f"Failed to list settlements: {e}")


class GoogleSheetsSettleUpStorage(SettleUpStorageInterface):
    """
    Google Sheets implementation of settle-up history.

    Append-only; one row per payment.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _record_to_row(self, record: SettleUpRecord) -> list:
        return [
            str(record.id),
            record.household_id,
            record.month,
            record.from_member_id,
            record.to_member_id,
            str(record.amount),
            record.settled_at.isoformat(),
            json.dumps(record.expense_ids),
            record.notes or "",
        ]

    def _row_to_record(self, row: list) -> SettleUpRecord:
        expense_ids = _cell(row, 7)
        return SettleUpRecord(
            id=UUID(_cell(row, 0)),
            household_id=_cell(row, 1),
            month=_cell(row, 2),
            from_member_id=_cell(row, 3),
            to_member_id=_cell(row, 4),
            amount=Decimal(_cell(row, 5)),
            settled_at=datetime.fromisoformat(_cell(row, 6)),
            expense_ids=json.loads(expense_ids) if expense_ids else [],
            notes=_cell(row, 8) or None,
        )

    @retry(
        retry=retry_if_not_exception_type(DuplicateError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_settle_up(self, record: SettleUpRecord) -> UUID:
        """Append a settle-up record."""
        try:
            sheet = self._client.get_settle_ups_sheet()
            existing_ids = {row[0] for row in sheet.get_all_values()[1:] if row}
            if str(record.id) in existing_ids:
                raise DuplicateError(f"Settle-up already recorded: {record.id}")
            sheet.append_row(self._record_to_row(record), value_input_option="RAW")
            return record.id
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save settle-up: {e}")

    async def list_settle_ups(self, household_id: str) -> list[SettleUpRecord]:
        """List a household's settle-ups, most recent first."""
        try:
            sheet = self._client.get_settle_ups_sheet()
            all_rows = sheet.get_all_values()[1:]

            records = []
            for row in all_rows:
                if len(row) < 2 or row[1] != household_id:
                    continue
                try:
                    records.append(self._row_to_record(row))
                except Exception:
                    logger.warning("settle_up_row_malformed", row_id=_cell(row, 0))

            records.sort(key=lambda r: r.settled_at, reverse=True)
            return records
        except Exception as e:
            raise StorageError(f"Failed to list settle-ups: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=_cell(row, 5) or None,
            household_id=_cell(row, 6) or None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
            is_user_action=_cell(row, 11).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.warning(
                "audit_sheet_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                logger.warning("audit_row_malformed", row_id=_cell(row, 0))
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [
                e for e in await self._read_events()
                if e.correlation_id == correlation_id
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = [
                e for e in await self._read_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        try:
            events = await self._read_events()
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
