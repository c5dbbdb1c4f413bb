"""History query package."""

from settleup.queries.history import SettlementHistoryQuery, pending_balance

__all__ = ["SettlementHistoryQuery", "pending_balance"]
