"""Input validation package."""

from settleup.validation.validator import (
    InvalidSettlementInputError,
    SettlementInputValidator,
)

__all__ = ["InvalidSettlementInputError", "SettlementInputValidator"]
