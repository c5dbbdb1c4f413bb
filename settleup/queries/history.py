"""
Settlement History Queries

Read-only views over what has already been stored: completed months,
settle-up payments, and the summary figures shown next to the current
month's balances.

Like every query here, results only ever come from stored data or from
a report the caller passes in. Nothing is estimated.
"""

from decimal import Decimal
from typing import Optional

from settleup.calculation.balances import CENT
from settleup.models.settlement import (
    MonthlyBalanceReport,
    Settlement,
    SettlementHistoryStats,
    SettleUpRecord,
)
from settleup.services.storage import (
    SettlementStorageInterface,
    SettleUpStorageInterface,
)


def pending_balance(report: MonthlyBalanceReport) -> Decimal:
    """
    Amount of money that still has to move to settle a report.

    Every transferred unit clears one unit of debt and one of credit,
    hence half the sum of absolute balances. A settled report has
    nothing pending.
    """
    if report.is_settled:
        return Decimal("0.00")
    total = sum((abs(b.balance) for b in report.member_balances), Decimal(0))
    return (total / 2).quantize(CENT)


class SettlementHistoryQuery:
    """Reads a household's settlement and settle-up history."""

    def __init__(
        self,
        settlement_storage: SettlementStorageInterface,
        settle_up_storage: Optional[SettleUpStorageInterface] = None,
    ):
        self._settlements = settlement_storage
        self._settle_ups = settle_up_storage

    async def settle_history(self, household_id: str) -> list[SettleUpRecord]:
        """Settle-up payments, most recent first."""
        if self._settle_ups is None:
            return []
        return await self._settle_ups.list_settle_ups(household_id)

    async def completed_settlements(self, household_id: str) -> list[Settlement]:
        """Frozen monthly settlements, newest month first."""
        settlements = await self._settlements.list_settlements(household_id)
        return [s for s in settlements if s.is_completed]

    async def stats(
        self,
        household_id: str,
        current_report: Optional[MonthlyBalanceReport] = None,
    ) -> SettlementHistoryStats:
        """
        Summary metrics for the household.

        pending_balance is taken from current_report when given,
        otherwise it is zero.
        """
        history = await self.settle_history(household_id)
        completed = await self.completed_settlements(household_id)

        total_settled = sum((r.amount for r in history), Decimal(0)).quantize(CENT)
        average_settle = (
            (total_settled / len(history)).quantize(CENT)
            if history else Decimal("0.00")
        )

        return SettlementHistoryStats(
            household_id=household_id,
            total_settled=total_settled,
            average_settle=average_settle,
            settle_up_count=len(history),
            last_settle_date=history[0].settled_at if history else None,
            pending_balance=(
                pending_balance(current_report) if current_report else Decimal("0.00")
            ),
            settled_months=[s.month for s in completed],
        )
