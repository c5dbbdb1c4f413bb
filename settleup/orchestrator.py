"""
Settlement Orchestrator

This module ties the pure calculation core to the outside world:
household members, split settings and expenses come in through
collaborator interfaces; settlements and settle-ups go out through
storage interfaces.

Lifecycle of a household+month settlement:

    NOT_REQUESTED -> COMPUTED -> PERSISTED -> COMPLETED
                        ^            |
                        +------------+   (recalculation while open)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is calculated from inputs that failed validation
- A completed month is never recomputed or overwritten
- Storage errors are audited and re-raised unchanged; no retries here
- Every step is audited
"""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional, Sequence
from uuid import UUID

import structlog

from settleup.audit import AuditLogger, create_correlation_id
from settleup.calculation import (
    ShareConfigurationError,
    UnbalancedBalancesError,
    calculate_monthly_balance,
    calculate_transfers,
    select_settlement_expenses,
)
from settleup.config import SettlementSettings, get_settings
from settleup.models.settlement import (
    BalanceTransfer,
    Expense,
    Member,
    MonthlyBalanceReport,
    PaymentShare,
    Settlement,
    SettlementHistoryStats,
    SettlementState,
    SettleUpRecord,
    current_month,
    utc_now,
)
from settleup.models.validation import ValidationIssue, ValidationResult
from settleup.queries import SettlementHistoryQuery
from settleup.services.storage import (
    ExpenseSourceInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsSettlementStorage,
    GoogleSheetsSettleUpStorage,
    HouseholdDirectoryInterface,
    InMemorySettlementStorage,
    InMemorySettleUpStorage,
    SettlementStorageInterface,
    SettleUpStorageInterface,
)
from settleup.validation import (
    InvalidSettlementInputError,
    SettlementInputValidator,
)


logger = structlog.get_logger(__name__)


class SettlementClosedError(Exception):
    """The month's settlement is completed and can no longer change."""

    def __init__(self, household_id: str, month: str):
        super().__init__(
            f"Settlement for household {household_id} in {month} is completed"
        )
        self.household_id = household_id
        self.month = month


class SettleUpNotConfiguredError(Exception):
    """No settle-up storage was configured."""
    pass


class SettlementService:
    """
    Facade over balance calculation and settlement persistence.

    Used by the UI and by scheduled jobs. The calculation methods are
    pure; the async methods talk to the collaborators.
    """

    def __init__(
        self,
        settlement_storage: SettlementStorageInterface,
        household_directory: HouseholdDirectoryInterface,
        expense_source: ExpenseSourceInterface,
        settle_up_storage: Optional[SettleUpStorageInterface] = None,
        validator: Optional[SettlementInputValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SettlementSettings] = None,
    ):
        self._settlements = settlement_storage
        self._directory = household_directory
        self._expenses = expense_source
        self._settle_ups = settle_up_storage
        self._validator = validator or SettlementInputValidator()
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().settlement
        self._history = SettlementHistoryQuery(settlement_storage, settle_up_storage)

    # -------------------------------------------------------------------------
    # Pure calculation
    # -------------------------------------------------------------------------

    def calculate_monthly_balance(
        self,
        expenses: Sequence[Expense],
        members: Sequence[Member],
        shares: Optional[Sequence[PaymentShare]] = None,
        household_id: Optional[str] = None,
        month: Optional[str] = None,
    ) -> MonthlyBalanceReport:
        """Calculate a report using the configured share policy."""
        return calculate_monthly_balance(
            expenses,
            members,
            shares,
            household_id=household_id,
            month=month,
            policy=self._settings.share_policy,
            share_tolerance=self._settings.share_sum_tolerance,
            epsilon=self._settings.balance_epsilon,
        )

    def calculate_transfers(
        self,
        balances: Mapping[str, Decimal],
    ) -> list[BalanceTransfer]:
        """Suggested transfers for an arbitrary balance vector."""
        return calculate_transfers(balances, epsilon=self._settings.balance_epsilon)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def get_month_settlement(
        self,
        household_id: str,
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Settlement]:
        """
        Look up a stored settlement.

        Returns None if the month was never saved.
        """
        try:
            return await self._settlements.get_month_settlement(household_id, month)
        except Exception as e:
            await self._log_storage_error(
                "get_month_settlement", e, household_id, correlation_id
            )
            raise

    async def save_settlement(
        self,
        settlement: Settlement,
        correlation_id: Optional[UUID] = None,
    ) -> UUID:
        """
        Upsert a settlement by (household_id, month).

        Raises:
            SettlementClosedError: If the stored month is completed and
                the new record isn't
        """
        correlation_id = correlation_id or create_correlation_id()
        stored = await self._persist(settlement, correlation_id)
        return stored.id

    async def state_of(self, household_id: str, month: str) -> SettlementState:
        """Lifecycle state of a household's month."""
        existing = await self.get_month_settlement(household_id, month)
        if existing is None:
            return SettlementState.NOT_REQUESTED
        return existing.state

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def compute_month_settlement(
        self,
        household_id: str,
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> Settlement:
        """
        Calculate the month's settlement without saving it.

        If the month is already completed, the stored record is returned
        as-is. Otherwise members, split settings and expenses are loaded,
        validated and folded into a fresh report. An existing open record
        lends its id and sync_version so a later save overwrites it.
        A month with recorded settle-ups comes back settled, but open.

        Raises:
            InvalidSettlementInputError: If the inputs fail validation
            ShareConfigurationError: If the share policy refuses the shares
            UnbalancedBalancesError: If the balances do not sum to zero
        """
        correlation_id = correlation_id or create_correlation_id()

        existing = await self.get_month_settlement(household_id, month, correlation_id)
        if existing is not None and existing.is_completed:
            if self._audit_logger:
                await self._audit_logger.log_frozen_settlement_served(
                    existing, correlation_id
                )
            return existing

        members, split_settings, expenses = await self._load_inputs(
            household_id, month, correlation_id
        )
        shares = split_settings.shares if split_settings else None
        unify = split_settings.unify_expenses if split_settings else False
        expenses = select_settlement_expenses(expenses, month, unify)

        result = self._validator.validate(expenses, members, shares, month=month)
        if not result.is_valid:
            if self._audit_logger:
                await self._audit_logger.log_validation_failed(
                    household_id=household_id,
                    month=month,
                    issues=[
                        {"field": i.field, "type": i.issue_type, "message": i.message}
                        for i in result.issues
                    ],
                    correlation_id=correlation_id,
                )
            raise InvalidSettlementInputError(result)

        try:
            report = self.calculate_monthly_balance(
                expenses, members, shares, household_id=household_id, month=month
            )
        except ShareConfigurationError as e:
            if self._audit_logger:
                await self._audit_logger.log_share_configuration_rejected(
                    household_id=household_id,
                    month=month,
                    reason=str(e),
                    correlation_id=correlation_id,
                )
            raise
        except UnbalancedBalancesError as e:
            if self._audit_logger:
                await self._audit_logger.log_balances_unbalanced(
                    household_id=household_id,
                    month=month,
                    residual=str(e.residual),
                    correlation_id=correlation_id,
                )
            raise
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"household_id": household_id, "month": month},
                    correlation_id=correlation_id,
                )
            raise

        settlement = Settlement.from_report(report, household_id, previous=existing)

        settle_ups = await self._month_settle_ups(household_id, month, correlation_id)
        if settle_ups:
            # Paid up but still open; completed_at stays unset
            settlement = settlement.model_copy(update={
                "is_settled": True,
                "settled_at": max(record.settled_at for record in settle_ups),
            })

        if self._audit_logger:
            await self._audit_logger.log_settlement_calculated(settlement, correlation_id)
        return settlement

    async def recalculate(
        self,
        household_id: str,
        month: str,
        correlation_id: Optional[UUID] = None,
    ) -> Settlement:
        """
        Calculate and save the month's settlement.

        Safe to repeat: the same inputs always produce the same report.
        A completed month is returned unchanged.
        """
        correlation_id = correlation_id or create_correlation_id()
        settlement = await self.compute_month_settlement(
            household_id, month, correlation_id
        )
        if settlement.is_completed:
            return settlement
        return await self._persist(settlement, correlation_id)

    async def complete_settlement(
        self,
        household_id: str,
        month: str,
        completed_at: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Settlement:
        """
        Freeze the month's settlement.

        The last saved figures are frozen as they are; a month that was
        never saved is calculated first. Completing twice is a no-op.
        """
        correlation_id = correlation_id or create_correlation_id()

        existing = await self.get_month_settlement(household_id, month, correlation_id)
        if existing is not None and existing.is_completed:
            return existing

        settlement = existing or await self.compute_month_settlement(
            household_id, month, correlation_id
        )
        completed = settlement.model_copy(update={
            "completed_at": completed_at or utc_now(),
            "is_settled": True,
        })
        stored = await self._persist(completed, correlation_id)

        if self._audit_logger:
            await self._audit_logger.log_settlement_completed(stored, correlation_id)
        return stored

    # -------------------------------------------------------------------------
    # Settle-up history
    # -------------------------------------------------------------------------

    async def record_settle_up(
        self,
        household_id: str,
        month: str,
        from_member_id: str,
        to_member_id: str,
        amount: Decimal,
        expense_ids: Optional[list[str]] = None,
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SettleUpRecord:
        """
        Record a payment actually made between two members.

        Raises:
            SettleUpNotConfiguredError: If no settle-up storage is set
            InvalidSettlementInputError: If a party isn't a household member
        """
        if self._settle_ups is None:
            raise SettleUpNotConfiguredError("Settle-up storage is not configured")

        correlation_id = correlation_id or create_correlation_id()
        record = SettleUpRecord(
            household_id=household_id,
            month=month,
            from_member_id=from_member_id,
            to_member_id=to_member_id,
            amount=amount,
            expense_ids=expense_ids or [],
            notes=notes,
        )

        members = await self._directory.get_members(household_id)
        member_ids = {member.id for member in members}
        issues = [
            ValidationIssue(
                field="settle_up",
                issue_type="unknown_member",
                message=f"{member_id} is not a member of household {household_id}",
                severity="error",
                reference=member_id,
            )
            for member_id in (from_member_id, to_member_id)
            if member_id not in member_ids
        ]
        if issues:
            raise InvalidSettlementInputError(
                ValidationResult(is_valid=False, issues=issues)
            )

        try:
            await self._settle_ups.append_settle_up(record)
        except Exception as e:
            await self._log_storage_error(
                "append_settle_up", e, household_id, correlation_id
            )
            raise

        if self._audit_logger:
            await self._audit_logger.log_settle_up_recorded(record, correlation_id)
        return record

    async def get_settle_history(self, household_id: str) -> list[SettleUpRecord]:
        """Settle-up payments, most recent first."""
        return await self._history.settle_history(household_id)

    async def get_history_stats(
        self,
        household_id: str,
        month: Optional[str] = None,
    ) -> SettlementHistoryStats:
        """
        History metrics, with the pending balance of the given month
        (the current month by default).
        """
        report = await self.compute_month_settlement(
            household_id, month or current_month()
        )
        return await self._history.stats(household_id, current_report=report)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _load_inputs(
        self,
        household_id: str,
        month: str,
        correlation_id: UUID,
    ):
        try:
            return await asyncio.gather(
                self._directory.get_members(household_id),
                self._directory.get_split_settings(household_id),
                self._expenses.list_expenses(household_id, month),
            )
        except Exception as e:
            await self._log_storage_error("load_inputs", e, household_id, correlation_id)
            raise

    async def _month_settle_ups(
        self,
        household_id: str,
        month: str,
        correlation_id: UUID,
    ) -> list[SettleUpRecord]:
        if self._settle_ups is None:
            return []
        try:
            records = await self._settle_ups.list_settle_ups(household_id)
        except Exception as e:
            await self._log_storage_error(
                "list_settle_ups", e, household_id, correlation_id
            )
            raise
        return [record for record in records if record.month == month]

    async def _persist(
        self,
        settlement: Settlement,
        correlation_id: UUID,
    ) -> Settlement:
        """Save through the store and return the record as stored."""
        household_id, month = settlement.natural_key

        existing = await self.get_month_settlement(household_id, month, correlation_id)
        if existing is not None and existing.is_completed and not settlement.is_completed:
            raise SettlementClosedError(household_id, month)

        try:
            await self._settlements.save_settlement(settlement)
            stored = await self._settlements.get_month_settlement(household_id, month)
        except Exception as e:
            await self._log_storage_error(
                "save_settlement", e, household_id, correlation_id
            )
            raise

        if self._audit_logger:
            await self._audit_logger.log_settlement_saved(stored, correlation_id)
        return stored

    async def _log_storage_error(
        self,
        operation: str,
        error: Exception,
        household_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(error),
                household_id=household_id,
                correlation_id=correlation_id,
            )


def create_settlement_service(
    household_directory: HouseholdDirectoryInterface,
    expense_source: ExpenseSourceInterface,
    use_storage: bool = True,
) -> SettlementService:
    """
    Factory function to wire a SettlementService.

    Args:
        household_directory: Members and split settings collaborator
        expense_source: Expense collaborator
        use_storage: Whether to use Google Sheets storage.
                    Falls back to in-memory storage when False or
                    when Sheets isn't configured.
    """
    settlement_storage: SettlementStorageInterface
    settle_up_storage: SettleUpStorageInterface

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            settlement_storage = GoogleSheetsSettlementStorage(sheets_client)
            settle_up_storage = GoogleSheetsSettleUpStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            use_storage = False

    if not use_storage:
        settlement_storage = InMemorySettlementStorage()
        settle_up_storage = InMemorySettleUpStorage()
        audit_logger = AuditLogger()  # Local-only logging

    return SettlementService(
        settlement_storage=settlement_storage,
        household_directory=household_directory,
        expense_source=expense_source,
        settle_up_storage=settle_up_storage,
        audit_logger=audit_logger,
    )
