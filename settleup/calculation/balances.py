"""
Balance Calculation

Folds a month's expenses and a resolved share table into per-member
paid / owed / balance figures.

Algorithm:
1. paid[m] = owed[m] = 0 for every member
2. paid[expense.payer] += amount
3. owed[m] += amount * share[m] / 100, for every expense and member
4. balance[m] = paid[m] - owed[m]

All accumulation happens on exact rationals of cents. Rounding to whole
cents happens once, at the end, using largest-remainder allocation so the
rounded owed figures add up to the rounded exact total. With shares that
sum to 100 the balances therefore sum to exactly zero.

IMPORTANT: Inputs are assumed valid (positive amounts, known payers,
non-empty member list). Validation belongs to the caller.
"""

import math
from decimal import Decimal
from fractions import Fraction
from typing import Iterable, Sequence

from settleup.calculation.shares import HUNDRED, ShareTable
from settleup.models.settlement import Expense, Member, MemberBalance


CENT = Decimal("0.01")


def to_cents(amount: Decimal) -> Fraction:
    """Exact number of cents in a Decimal amount."""
    return Fraction(amount) * 100


def from_cents(cents: int) -> Decimal:
    """Whole cents back to a two-place Decimal."""
    return (Decimal(cents) / 100).quantize(CENT)


def round_half_up(value: Fraction) -> int:
    """Round a rational to the nearest integer, halves away from zero."""
    if value < 0:
        return -math.floor(-value + Fraction(1, 2))
    return math.floor(value + Fraction(1, 2))


def allocate_cents(exact: dict[str, Fraction]) -> dict[str, int]:
    """
    Round exact cent amounts to integers without losing the total.

    Every member gets the floor of their exact amount; the cents left over
    go to the largest fractional remainders. Ties go to the member listed
    first.
    """
    target = round_half_up(sum(exact.values(), Fraction(0)))
    allocated = {member_id: math.floor(value) for member_id, value in exact.items()}
    leftover = target - sum(allocated.values())

    by_remainder = sorted(
        exact,
        key=lambda member_id: exact[member_id] - allocated[member_id],
        reverse=True,
    )
    for member_id in by_remainder[:max(leftover, 0)]:
        allocated[member_id] += 1
    return allocated


def select_settlement_expenses(
    expenses: Iterable[Expense],
    month: str,
    unify_expenses: bool = False,
) -> list[Expense]:
    """
    Pick the expenses that take part in a month's settlement.

    Only expenses that occurred in the month are kept. Unless the household
    unifies its expenses, personal (non-shared) expenses are dropped too.
    """
    return [
        expense for expense in expenses
        if expense.month == month and (unify_expenses or expense.is_shared)
    ]


class BalanceCalculator:
    """
    Computes member balances for a set of expenses.

    Pure and synchronous: no I/O and no state between calls.
    """

    def calculate(
        self,
        expenses: Sequence[Expense],
        members: Sequence[Member],
        share_table: ShareTable,
    ) -> tuple[list[MemberBalance], Decimal]:
        """
        Calculate balances for every member.

        Returns:
            (member_balances in member order, total_expenses)
        """
        paid = {member.id: Fraction(0) for member in members}
        owed = {member.id: Fraction(0) for member in members}

        for expense in expenses:
            cents = to_cents(expense.amount)
            paid[expense.paid_by_member_id] += cents
            for member_id, share in share_table.items():
                owed[member_id] += cents * share / HUNDRED

        owed_cents = allocate_cents(owed)

        balances = []
        for member in members:
            paid_amount = from_cents(round_half_up(paid[member.id]))
            owed_amount = from_cents(owed_cents[member.id])
            balances.append(MemberBalance(
                member_id=member.id,
                paid=paid_amount,
                owed=owed_amount,
                balance=paid_amount - owed_amount,
            ))

        total = from_cents(round_half_up(sum(
            (to_cents(expense.amount) for expense in expenses),
            Fraction(0),
        )))
        return balances, total
