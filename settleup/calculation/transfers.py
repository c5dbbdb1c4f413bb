"""
Transfer Optimization

Turns a balance vector into a short list of debtor -> creditor payments
that brings every balance to zero.

Algorithm (greedy two-pointer matching):
1. Debtors have balance < 0, creditors balance > 0; near-zero is skipped
2. Debtors sorted most negative first, creditors largest first
   (stable sorts, so ties keep input order)
3. Match the current debtor and creditor for min(|debtor|, creditor),
   rounded to cents
4. Move past any party whose balance reached zero (within epsilon)

NOTE: This greedy matching is not a provably minimal solver for every
distribution. It is kept as-is because suggested transfers shown to users
depend on its exact output shape.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

from settleup.models.settlement import BalanceTransfer


CENT = Decimal("0.01")
BALANCE_EPSILON = Decimal("0.01")


class UnbalancedBalancesError(ValueError):
    """The balance vector does not sum to zero, so it cannot be settled."""

    def __init__(self, residual: Decimal):
        super().__init__(
            f"Balances sum to {residual}, expected 0; "
            "transfers would leave an unmatched party"
        )
        self.residual = residual


class TransferOptimizer:
    """
    Computes suggested settlement transfers for a balance vector.

    Works on any vector, not only those produced by the balance calculator.
    """

    def __init__(self, epsilon: Decimal = BALANCE_EPSILON):
        self._epsilon = Decimal(epsilon)

    def optimize(self, balances: Mapping[str, Decimal]) -> list[BalanceTransfer]:
        """
        Calculate the transfers for a balance vector.

        Raises:
            UnbalancedBalancesError: If the balances don't sum to ~0
        """
        residual = sum(balances.values(), Decimal(0))
        if abs(residual) >= self._epsilon:
            raise UnbalancedBalancesError(residual)

        parties = [
            [member_id, Decimal(balance)]
            for member_id, balance in balances.items()
            if abs(balance) >= self._epsilon
        ]
        debtors = sorted(
            (party for party in parties if party[1] < 0),
            key=lambda party: party[1],
        )
        creditors = sorted(
            (party for party in parties if party[1] > 0),
            key=lambda party: -party[1],
        )

        transfers: list[BalanceTransfer] = []
        debtor_index = 0
        creditor_index = 0

        while debtor_index < len(debtors) and creditor_index < len(creditors):
            debtor = debtors[debtor_index]
            creditor = creditors[creditor_index]

            amount = min(-debtor[1], creditor[1]).quantize(CENT, rounding=ROUND_HALF_UP)
            transfers.append(BalanceTransfer(
                from_member_id=debtor[0],
                to_member_id=creditor[0],
                amount=amount,
            ))

            debtor[1] += amount
            creditor[1] -= amount

            if abs(debtor[1]) < self._epsilon:
                debtor_index += 1
            if abs(creditor[1]) < self._epsilon:
                creditor_index += 1

        return transfers
