"""
Share Resolution

Turns a possibly partial list of configured split percentages into a
complete share table covering every household member exactly once.

Shares are kept as exact rationals (Fraction) so that an equal split of
100 / 3 never picks up representation error before the balance boundary.

DESIGN DECISION: Whether explicit shares must sum to 100 is a policy,
not a fact of the arithmetic. The resolver supports three explicit
policies and never picks one silently:
- PASS_THROUGH: use the shares as configured
- REJECT: refuse tables that miss 100 by more than the tolerance;
  rescale the ones inside it
- NORMALIZE: rescale any table proportionally to 100
"""

from decimal import Decimal
from enum import Enum
from fractions import Fraction
from typing import Optional, Sequence

from settleup.models.settlement import Member, PaymentShare


HUNDRED = Fraction(100)

ShareTable = dict[str, Fraction]


class SharePolicy(str, Enum):
    """How explicit shares that don't sum to 100 are handled."""
    PASS_THROUGH = "pass_through"
    REJECT = "reject"
    NORMALIZE = "normalize"


class ShareConfigurationError(Exception):
    """Configured split percentages cannot be used."""

    def __init__(self, message: str, total: Optional[Fraction] = None):
        super().__init__(message)
        self.total = total


class ShareResolver:
    """
    Resolves a household's split configuration into a share table.

    For each member the explicit percentage is used if present
    (an explicit 0 is honored); otherwise the member gets 100 / member_count.
    Shares naming someone outside the member list are ignored.
    """

    def __init__(
        self,
        policy: SharePolicy = SharePolicy.PASS_THROUGH,
        tolerance: Decimal = Decimal("0.01"),
    ):
        self._policy = SharePolicy(policy)
        self._tolerance = Fraction(tolerance)

    @property
    def policy(self) -> SharePolicy:
        return self._policy

    def resolve(
        self,
        members: Sequence[Member],
        shares: Optional[Sequence[PaymentShare]] = None,
    ) -> ShareTable:
        """
        Build the share table for the given members.

        Raises:
            ValueError: If members is empty
            ShareConfigurationError: If the policy refuses the shares
        """
        if not members:
            raise ValueError("Cannot resolve shares for an empty member list")

        default_share = HUNDRED / len(members)
        explicit = {
            share.member_id: Fraction(share.percentage)
            for share in (shares or [])
        }

        table = {
            member.id: explicit.get(member.id, default_share)
            for member in members
        }

        # An absent configuration is always an exact equal split
        if not shares or self._policy == SharePolicy.PASS_THROUGH:
            return table

        total = sum(table.values(), Fraction(0))

        if self._policy == SharePolicy.REJECT and abs(total - HUNDRED) > self._tolerance:
            raise ShareConfigurationError(
                f"Split percentages sum to {float(total):.4f}%, expected 100%",
                total=total,
            )
        if total == HUNDRED:
            return table

        # Accepted tables within the tolerance are rescaled too, so the
        # balances still sum to exactly zero
        if total == 0:
            raise ShareConfigurationError(
                "Cannot normalize split percentages that sum to zero",
                total=total,
            )
        return {
            member_id: share * HUNDRED / total
            for member_id, share in table.items()
        }

