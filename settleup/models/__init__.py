"""
Data Models Package

This package contains all Pydantic models used by the settlement engine.
All data flowing through the system must conform to these schemas.
"""

from settleup.models.settlement import (
    MONTH_PATTERN,
    BalanceTransfer,
    Expense,
    HouseholdSplitSettings,
    Member,
    MemberBalance,
    MonthlyBalanceReport,
    PaymentShare,
    Settlement,
    SettlementHistoryStats,
    SettlementState,
    SettleUpRecord,
    current_month,
    month_of,
    utc_now,
)
from settleup.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Settlement models
    "MONTH_PATTERN",
    "BalanceTransfer",
    "Expense",
    "HouseholdSplitSettings",
    "Member",
    "MemberBalance",
    "MonthlyBalanceReport",
    "PaymentShare",
    "Settlement",
    "SettlementHistoryStats",
    "SettlementState",
    "SettleUpRecord",
    "current_month",
    "month_of",
    "utc_now",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
