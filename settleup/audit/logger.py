"""
Audit Logger

DESIGN DECISION: Every calculation, save and completion is logged.
This provides:
1. Traceability of suggested transfers back to their inputs
2. Visibility into last-write-wins overwrites
3. A record of when each month was frozen

The audit logger:
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace the events of one service call
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from settleup.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from settleup.models.settlement import Settlement, SettleUpRecord
from settleup.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and household visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("settleup.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_settlement_calculated(
        self,
        settlement: Settlement,
        correlation_id: UUID,
    ) -> None:
        """Log a fresh calculation."""
        await self.log(AuditEventBuilder.settlement_calculated(
            household_id=settlement.household_id,
            month=settlement.month,
            total_expenses=str(settlement.total_expenses),
            transfer_count=len(settlement.suggested_transfers),
            correlation_id=correlation_id,
        ))

    async def log_frozen_settlement_served(
        self,
        settlement: Settlement,
        correlation_id: UUID,
    ) -> None:
        """Log that a completed month was served without recalculation."""
        await self.log(AuditEventBuilder.frozen_settlement_served(
            settlement_id=settlement.id,
            household_id=settlement.household_id,
            month=settlement.month,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        household_id: str,
        month: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.input_validation_failed(
            household_id=household_id,
            month=month,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_share_configuration_rejected(
        self,
        household_id: str,
        month: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.share_configuration_rejected(
            household_id=household_id,
            month=month,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_balances_unbalanced(
        self,
        household_id: str,
        month: str,
        residual: str,
        correlation_id: UUID,
    ) -> None:
        """Log a balance vector the transfer step could not settle."""
        await self.log(AuditEventBuilder.balances_unbalanced(
            household_id=household_id,
            month=month,
            residual=residual,
            correlation_id=correlation_id,
        ))

    async def log_settlement_saved(
        self,
        settlement: Settlement,
        correlation_id: UUID,
    ) -> None:
        """Log a save, with the version the store assigned."""
        await self.log(AuditEventBuilder.settlement_saved(
            settlement_id=settlement.id,
            household_id=settlement.household_id,
            month=settlement.month,
            sync_version=settlement.sync_version,
            correlation_id=correlation_id,
        ))

    async def log_settlement_completed(
        self,
        settlement: Settlement,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_completed(
            settlement_id=settlement.id,
            household_id=settlement.household_id,
            month=settlement.month,
            correlation_id=correlation_id,
        ))

    async def log_settle_up_recorded(
        self,
        record: SettleUpRecord,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.settle_up_recorded(
            record_id=record.id,
            household_id=record.household_id,
            from_member_id=record.from_member_id,
            to_member_id=record.to_member_id,
            amount=str(record.amount),
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        household_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a storage failure before it propagates."""
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            household_id=household_id,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a service call and pass it through
    all subsequent operations.
    """
    return uuid4()
