"""
Core Data Models for Household Settlements

These models define the schemas for everything flowing through the
balance and settlement engine:
1. Inputs owned by other collaborators (members, expenses, split ratios)
2. Computed, ephemeral figures (member balances, suggested transfers)
3. The one persisted entity: the monthly Settlement record

DESIGN DECISION: Money is always Decimal with two decimal places.
Floats never enter the calculation path.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def month_of(moment: datetime) -> str:
    """Format a datetime as its YYYY-MM month key."""
    return moment.strftime("%Y-%m")


def current_month() -> str:
    """The YYYY-MM key of the current UTC month."""
    return month_of(utc_now())


# =============================================================================
# ENUMS
# =============================================================================

class SettlementState(str, Enum):
    """
    Lifecycle of a household+month settlement.

    NOT_REQUESTED -> COMPUTED -> PERSISTED -> COMPLETED
    COMPLETED is terminal. There is no way back.
    """
    NOT_REQUESTED = "not_requested"
    COMPUTED = "computed"      # Calculated in memory, not saved
    PERSISTED = "persisted"    # Saved, still open for recalculation
    COMPLETED = "completed"    # Frozen historical record


# =============================================================================
# INPUT MODELS (owned by external collaborators)
# =============================================================================

class Member(BaseModel):
    """A household member. Immutable within a calculation."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1, description="Member identifier")
    name: str = Field(..., min_length=1, max_length=200)


class Expense(BaseModel):
    """
    A shared expense as supplied by the expense collaborator.

    Read-only input. Amount is strictly positive.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(..., min_length=1)
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Expense amount in the household currency"
    )
    paid_by_member_id: str = Field(
        ...,
        min_length=1,
        description="Member who paid the expense"
    )
    occurred_at: datetime = Field(
        ...,
        description="When the expense happened; decides its month"
    )
    # Expenses not marked shared are personal unless the household unifies
    is_shared: bool = True
    description: Optional[str] = Field(default=None, max_length=500)

    @property
    def month(self) -> str:
        return month_of(self.occurred_at)


class PaymentShare(BaseModel):
    """
    Configured share of responsibility for one member.

    Across a household, percentages are expected to sum to 100.
    """
    model_config = ConfigDict(frozen=True)

    member_id: str = Field(..., min_length=1)
    percentage: Decimal = Field(
        ...,
        ge=0,
        le=100,
        description="Percentage of each shared expense this member owes"
    )


class HouseholdSplitSettings(BaseModel):
    """
    Per-household split configuration.

    If shares is None, expenses are split equally between all members.
    """

    household_id: str = Field(..., min_length=1)
    unify_expenses: bool = Field(
        default=False,
        description="If True every expense counts as shared"
    )
    shares: Optional[list[PaymentShare]] = None
    updated_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# COMPUTED MODELS
# =============================================================================

class MemberBalance(BaseModel):
    """
    A member's net position for a period.

    Positive balance: the member is owed money.
    Negative balance: the member owes money.
    """

    member_id: str
    paid: Decimal = Field(..., decimal_places=2)
    owed: Decimal = Field(..., decimal_places=2)
    balance: Decimal = Field(..., decimal_places=2)

    @model_validator(mode='after')
    def validate_balance(self) -> 'MemberBalance':
        if self.balance != self.paid - self.owed:
            raise ValueError("Balance must equal paid minus owed")
        return self


class BalanceTransfer(BaseModel):
    """A single payment instruction from a debtor to a creditor."""

    from_member_id: str
    to_member_id: str
    amount: Decimal = Field(..., gt=0, decimal_places=2)

    @model_validator(mode='after')
    def validate_parties(self) -> 'BalanceTransfer':
        if self.from_member_id == self.to_member_id:
            raise ValueError("A transfer needs two different members")
        return self


class MonthlyBalanceReport(BaseModel):
    """
    Balances and suggested transfers for one household and month.

    CRITICAL: Built only from its inputs. No ids or clocks are generated
    here, so identical inputs always produce identical reports.
    """

    household_id: Optional[str] = None
    month: str = Field(..., pattern=MONTH_PATTERN, description="YYYY-MM")
    total_expenses: Decimal = Field(..., ge=0, decimal_places=2)
    member_balances: list[MemberBalance] = Field(default_factory=list)
    suggested_transfers: list[BalanceTransfer] = Field(default_factory=list)
    is_settled: bool = Field(
        default=False,
        description="True once a settle-up was recorded for the month, or it was completed"
    )
    settled_at: Optional[datetime] = Field(
        default=None,
        description="When the latest settle-up for the month was made"
    )
    completed_at: Optional[datetime] = None

    def balances_by_member(self) -> dict[str, Decimal]:
        return {b.member_id: b.balance for b in self.member_balances}


class Settlement(MonthlyBalanceReport):
    """
    The persisted monthly settlement record.

    At most one exists per (household_id, month). It is overwritten on each
    recalculation until completed_at is set, then frozen.
    """

    id: UUID = Field(default_factory=uuid4)
    household_id: str = Field(..., min_length=1)
    sync_version: int = Field(
        default=0,
        ge=0,
        description="Incremented by the store on every write"
    )
    # Set only on records read back from a store; never serialized
    is_persisted: bool = Field(default=False, exclude=True)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_completion(self) -> 'Settlement':
        if self.completed_at is not None and not self.is_settled:
            raise ValueError("A completed settlement must be marked settled")
        return self

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def state(self) -> SettlementState:
        """Lifecycle state as seen from this record."""
        if self.is_completed:
            return SettlementState.COMPLETED
        if self.is_persisted:
            return SettlementState.PERSISTED
        return SettlementState.COMPUTED

    @property
    def natural_key(self) -> tuple[str, str]:
        return (self.household_id, self.month)

    @classmethod
    def from_report(
        cls,
        report: MonthlyBalanceReport,
        household_id: str,
        previous: Optional['Settlement'] = None,
    ) -> 'Settlement':
        """
        Wrap a freshly computed report as a Settlement.

        If a record already exists for the month, its identity
        (id, created_at, sync_version) is carried over so the save
        becomes an overwrite. The result stays COMPUTED until a store
        hands it back.
        """
        data = report.model_dump(exclude={"household_id"})
        if previous is not None:
            data.update(
                id=previous.id,
                created_at=previous.created_at,
                sync_version=previous.sync_version,
            )
        return cls(household_id=household_id, **data)


# =============================================================================
# SETTLE-UP HISTORY
# =============================================================================

class SettleUpRecord(BaseModel):
    """
    A payment actually made between two members to settle a month.

    Append-only history; never edited.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    household_id: str = Field(..., min_length=1)
    month: str = Field(..., pattern=MONTH_PATTERN)
    from_member_id: str = Field(..., min_length=1)
    to_member_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    settled_at: datetime = Field(default_factory=utc_now)
    expense_ids: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode='after')
    def validate_parties(self) -> 'SettleUpRecord':
        if self.from_member_id == self.to_member_id:
            raise ValueError("A settle-up needs two different members")
        return self


class SettlementHistoryStats(BaseModel):
    """Summary metrics over a household's settle-up history."""

    household_id: str
    total_settled: Decimal = Field(default=Decimal("0.00"))
    average_settle: Decimal = Field(default=Decimal("0.00"))
    settle_up_count: int = Field(default=0, ge=0)
    last_settle_date: Optional[datetime] = None
    pending_balance: Decimal = Field(
        default=Decimal("0.00"),
        description="Amount still to move for the current month"
    )
    settled_months: list[str] = Field(default_factory=list)

    @field_validator('settled_months')
    @classmethod
    def sort_months(cls, v: list[str]) -> list[str]:
        return sorted(v, reverse=True)
