"""
Audit Models for Household Settlements

Every calculation, save and completion of a settlement is logged.
This provides:
1. Traceability of which inputs produced which suggested transfers
2. Visibility into last-write-wins overwrites (sync versions)
3. A record of when a month was frozen

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from settleup.models.settlement import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Calculation
    SETTLEMENT_CALCULATED = "settlement_calculated"
    FROZEN_SETTLEMENT_SERVED = "frozen_settlement_served"
    INPUT_VALIDATION_FAILED = "input_validation_failed"
    SHARE_CONFIGURATION_REJECTED = "share_configuration_rejected"
    BALANCES_UNBALANCED = "balances_unbalanced"

    # Persistence
    SETTLEMENT_SAVED = "settlement_saved"
    SETTLEMENT_COMPLETED = "settlement_completed"
    SETTLE_UP_RECORDED = "settle_up_recorded"

    # System events
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'settlement', 'settle_up')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    household_id: Optional[str] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate events of one service call"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "household_id": self.household_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         household_id, correlation_id, description, details_json,
         error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.household_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.settlement_saved(settlement, correlation_id)
    """

    @staticmethod
    def settlement_calculated(
        household_id: str,
        month: str,
        total_expenses: str,
        transfer_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_CALCULATED,
            entity_type="settlement",
            household_id=household_id,
            correlation_id=correlation_id,
            description=(
                f"Settlement calculated for {month}: "
                f"{total_expenses} in expenses, {transfer_count} transfers"
            ),
            details={
                "month": month,
                "total_expenses": total_expenses,
                "transfer_count": transfer_count,
            },
        )

    @staticmethod
    def frozen_settlement_served(
        settlement_id: UUID,
        household_id: str,
        month: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FROZEN_SETTLEMENT_SERVED,
            entity_type="settlement",
            entity_id=str(settlement_id),
            household_id=household_id,
            correlation_id=correlation_id,
            description=f"Settlement for {month} is completed; served without recalculation",
            details={"month": month},
        )

    @staticmethod
    def input_validation_failed(
        household_id: str,
        month: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INPUT_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="settlement",
            household_id=household_id,
            correlation_id=correlation_id,
            description=f"Settlement inputs for {month} failed validation with {len(issues)} issues",
            details={
                "month": month,
                "issues": issues,
            },
        )

    @staticmethod
    def share_configuration_rejected(
        household_id: str,
        month: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SHARE_CONFIGURATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="settlement",
            household_id=household_id,
            correlation_id=correlation_id,
            description=f"Split ratios rejected for {month}",
            error_message=reason,
            details={"month": month},
        )

    @staticmethod
    def balances_unbalanced(
        household_id: str,
        month: str,
        residual: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCES_UNBALANCED,
            severity=AuditSeverity.WARNING,
            entity_type="settlement",
            household_id=household_id,
            correlation_id=correlation_id,
            description=(
                f"Balances for {month} do not sum to zero "
                f"(residual {residual}); no transfers suggested"
            ),
            details={
                "month": month,
                "residual": residual,
            },
        )

    @staticmethod
    def settlement_saved(
        settlement_id: UUID,
        household_id: str,
        month: str,
        sync_version: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_SAVED,
            entity_type="settlement",
            entity_id=str(settlement_id),
            household_id=household_id,
            correlation_id=correlation_id,
            description=f"Settlement for {month} saved (version {sync_version})",
            details={
                "month": month,
                "sync_version": sync_version,
            },
        )

    @staticmethod
    def settlement_completed(
        settlement_id: UUID,
        household_id: str,
        month: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_COMPLETED,
            entity_type="settlement",
            entity_id=str(settlement_id),
            household_id=household_id,
            correlation_id=correlation_id,
            description=f"Settlement for {month} marked as completed",
            details={"month": month},
            is_user_action=True,
        )

    @staticmethod
    def settle_up_recorded(
        record_id: UUID,
        household_id: str,
        from_member_id: str,
        to_member_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLE_UP_RECORDED,
            entity_type="settle_up",
            entity_id=str(record_id),
            household_id=household_id,
            correlation_id=correlation_id,
            description=f"Settle-up recorded: {from_member_id} paid {amount} to {to_member_id}",
            details={
                "from_member_id": from_member_id,
                "to_member_id": to_member_id,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        household_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            household_id=household_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
