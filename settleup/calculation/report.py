"""
Monthly Balance Report

Combines share resolution, balance calculation and transfer optimization
into one pure function per operation. These are the entry points callers
use; the classes they wrap stay available for reuse and testing.
"""

from decimal import Decimal
from typing import Mapping, Optional, Sequence

from settleup.calculation.balances import BalanceCalculator
from settleup.calculation.shares import SharePolicy, ShareResolver
from settleup.calculation.transfers import BALANCE_EPSILON, TransferOptimizer
from settleup.models.settlement import (
    BalanceTransfer,
    Expense,
    Member,
    MonthlyBalanceReport,
    PaymentShare,
    current_month,
)


def calculate_monthly_balance(
    expenses: Sequence[Expense],
    members: Sequence[Member],
    shares: Optional[Sequence[PaymentShare]] = None,
    *,
    household_id: Optional[str] = None,
    month: Optional[str] = None,
    policy: SharePolicy = SharePolicy.PASS_THROUGH,
    share_tolerance: Decimal = Decimal("0.01"),
    epsilon: Decimal = BALANCE_EPSILON,
) -> MonthlyBalanceReport:
    """
    Calculate balances and suggested transfers for a set of expenses.

    Pure: no I/O, no clocks unless month is omitted (then the current
    month labels the report). Expenses are used as given; pick the month's
    expenses beforehand with select_settlement_expenses.

    Raises:
        ValueError: If members is empty
        ShareConfigurationError: If the share policy refuses the shares
        UnbalancedBalancesError: If pass-through shares leave the
            balances off zero
    """
    share_table = ShareResolver(policy, share_tolerance).resolve(members, shares)
    member_balances, total_expenses = BalanceCalculator().calculate(
        expenses, members, share_table
    )
    transfers = TransferOptimizer(epsilon).optimize(
        {balance.member_id: balance.balance for balance in member_balances}
    )

    return MonthlyBalanceReport(
        household_id=household_id,
        month=month or current_month(),
        total_expenses=total_expenses,
        member_balances=member_balances,
        suggested_transfers=transfers,
    )


def calculate_transfers(
    balances: Mapping[str, Decimal],
    epsilon: Decimal = BALANCE_EPSILON,
) -> list[BalanceTransfer]:
    """Suggested transfers for an arbitrary balance vector."""
    return TransferOptimizer(epsilon).optimize(balances)
