"""Pure balance and settlement calculation."""

from settleup.calculation.balances import (
    BalanceCalculator,
    allocate_cents,
    select_settlement_expenses,
)
from settleup.calculation.report import (
    calculate_monthly_balance,
    calculate_transfers,
)
from settleup.calculation.shares import (
    ShareConfigurationError,
    SharePolicy,
    ShareResolver,
)
from settleup.calculation.transfers import (
    BALANCE_EPSILON,
    TransferOptimizer,
    UnbalancedBalancesError,
)

__all__ = [
    "BALANCE_EPSILON",
    "BalanceCalculator",
    "ShareConfigurationError",
    "SharePolicy",
    "ShareResolver",
    "TransferOptimizer",
    "UnbalancedBalancesError",
    "allocate_cents",
    "calculate_monthly_balance",
    "calculate_transfers",
    "select_settlement_expenses",
]
