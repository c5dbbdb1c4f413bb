"""
Tests for Household Settle-Up

Test strategy:
1. Unit tests for individual components (models, calculators, validators)
2. Integration tests for the service (with in-memory storage)
3. No real API calls in tests (Google Sheets is replaced by fakes)
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from settleup.models.settlement import (
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
    month_of,
)
from settleup.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from settleup.models.validation import ValidationIssue, ValidationResult


def make_report(**overrides) -> MonthlyBalanceReport:
    data = dict(
        household_id="h1",
        month="2024-03",
        total_expenses=Decimal("100.00"),
        member_balances=[
            MemberBalance(
                member_id="a",
                paid=Decimal("100.00"),
                owed=Decimal("50.00"),
                balance=Decimal("50.00"),
            ),
            MemberBalance(
                member_id="b",
                paid=Decimal("0.00"),
                owed=Decimal("50.00"),
                balance=Decimal("-50.00"),
            ),
        ],
        suggested_transfers=[
            BalanceTransfer(from_member_id="b", to_member_id="a", amount=Decimal("50.00")),
        ],
    )
    data.update(overrides)
    return MonthlyBalanceReport(**data)


class TestInputModels:
    """Tests for member, expense and share models."""

    def test_member_strips_whitespace(self):
        """Test that whitespace is stripped from member names."""
        member = Member(id="a", name="  Alice  ")
        assert member.name == "Alice"

    def test_expense_month(self):
        """Test that an expense's month comes from occurred_at."""
        expense = Expense(
            id="e1",
            amount=Decimal("12.50"),
            paid_by_member_id="a",
            occurred_at=datetime(2024, 2, 29, 23, 0, tzinfo=timezone.utc),
        )
        assert expense.month == "2024-02"
        assert expense.is_shared is True

    def test_expense_rejects_non_positive_amount(self):
        """Test that zero and negative amounts are rejected."""
        for amount in ("0", "-1.00"):
            with pytest.raises(ValueError):
                Expense(
                    id="e1",
                    amount=Decimal(amount),
                    paid_by_member_id="a",
                    occurred_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
                )

    def test_expense_rejects_fractional_cents(self):
        """Test that amounts with more than two decimals are rejected."""
        with pytest.raises(ValueError):
            Expense(
                id="e1",
                amount=Decimal("1.005"),
                paid_by_member_id="a",
                occurred_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
            )

    def test_payment_share_bounds(self):
        """Test that percentages must be within 0..100."""
        assert PaymentShare(member_id="a", percentage=Decimal("0")).percentage == 0
        with pytest.raises(ValueError):
            PaymentShare(member_id="a", percentage=Decimal("100.01"))
        with pytest.raises(ValueError):
            PaymentShare(member_id="a", percentage=Decimal("-1"))

    def test_split_settings_defaults(self):
        """Test that a household without shares splits equally."""
        settings = HouseholdSplitSettings(household_id="h1")
        assert settings.shares is None
        assert settings.unify_expenses is False

    def test_month_of(self):
        """Test month key formatting."""
        assert month_of(datetime(2024, 1, 31)) == "2024-01"


class TestComputedModels:
    """Tests for balances, transfers and reports."""

    def test_member_balance_must_match(self):
        """Test that balance must equal paid minus owed."""
        with pytest.raises(ValueError, match="Balance must equal paid minus owed"):
            MemberBalance(
                member_id="a",
                paid=Decimal("10.00"),
                owed=Decimal("5.00"),
                balance=Decimal("4.00"),
            )

    def test_transfer_needs_two_members(self):
        """Test that a member cannot pay themselves."""
        with pytest.raises(ValueError, match="two different members"):
            BalanceTransfer(from_member_id="a", to_member_id="a", amount=Decimal("1.00"))

    def test_transfer_amount_positive(self):
        """Test that transfers carry a positive amount."""
        with pytest.raises(ValueError):
            BalanceTransfer(from_member_id="a", to_member_id="b", amount=Decimal("0"))

    def test_report_month_format(self):
        """Test that the report month must be YYYY-MM."""
        with pytest.raises(ValueError):
            make_report(month="2024-13")
        with pytest.raises(ValueError):
            make_report(month="March")

    def test_balances_by_member(self):
        """Test the balance lookup helper."""
        assert make_report().balances_by_member() == {
            "a": Decimal("50.00"),
            "b": Decimal("-50.00"),
        }


class TestSettlementModel:
    """Tests for the persisted settlement record."""

    def test_from_report_new(self):
        """Test wrapping a report without an existing record."""
        settlement = Settlement.from_report(make_report(household_id=None), "h1")
        assert settlement.household_id == "h1"
        assert settlement.sync_version == 0
        assert settlement.state == SettlementState.COMPUTED
        assert settlement.natural_key == ("h1", "2024-03")

    def test_from_report_keeps_identity(self):
        """Test that recalculating keeps the stored record's identity."""
        previous = Settlement.from_report(make_report(), "h1").model_copy(
            update={"sync_version": 3, "is_persisted": True}
        )
        updated = Settlement.from_report(
            make_report(total_expenses=Decimal("120.00")), "h1", previous=previous
        )
        assert updated.id == previous.id
        assert updated.created_at == previous.created_at
        assert updated.sync_version == 3
        assert updated.total_expenses == Decimal("120.00")
        assert previous.state == SettlementState.PERSISTED
        assert updated.state == SettlementState.COMPUTED

    def test_persisted_flag_not_serialized(self):
        """Test that the store-side flag never reaches a dump."""
        settlement = Settlement.from_report(make_report(), "h1").model_copy(
            update={"is_persisted": True}
        )
        assert "is_persisted" not in settlement.model_dump()

    def test_completed_requires_settled(self):
        """Test that a completed record must be marked settled."""
        with pytest.raises(ValueError, match="must be marked settled"):
            Settlement(
                household_id="h1",
                month="2024-03",
                total_expenses=Decimal("0"),
                completed_at=datetime.now(timezone.utc),
            )

    def test_completed_state(self):
        """Test that completed_at makes the record terminal."""
        settlement = Settlement(
            household_id="h1",
            month="2024-03",
            total_expenses=Decimal("0"),
            is_settled=True,
            completed_at=datetime.now(timezone.utc),
            sync_version=2,
        )
        assert settlement.is_completed is True
        assert settlement.state == SettlementState.COMPLETED

    def test_settle_up_needs_two_members(self):
        """Test that settle-ups between the same member are rejected."""
        with pytest.raises(ValueError, match="two different members"):
            SettleUpRecord(
                household_id="h1",
                month="2024-03",
                from_member_id="a",
                to_member_id="a",
                amount=Decimal("5.00"),
            )

    def test_history_stats_sorts_months(self):
        """Test that settled months are listed newest first."""
        stats = SettlementHistoryStats(
            household_id="h1",
            settled_months=["2024-01", "2024-03", "2023-12"],
        )
        assert stats.settled_months == ["2024-03", "2024-01", "2023-12"]


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.SETTLEMENT_CALCULATED,
            description="Settlement calculated",
        )
        assert event.event_type == AuditEventType.SETTLEMENT_CALCULATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.SETTLEMENT_SAVED,
            description="Settlement saved",
            household_id="h1",
            details={"month": "2024-03", "sync_version": 2},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "settlement_saved"
        assert log_dict["household_id"] == "h1"
        assert log_dict["details"]["sync_version"] == 2

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.SETTLEMENT_COMPLETED,
            description="Settlement completed",
            household_id="h1",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 12  # Expected number of columns
        assert row[2] == "settlement_completed"  # event_type
        assert row[6] == "h1"  # household_id
        assert row[11] == "True"  # is_user_action

    def test_audit_event_builder_settlement_saved(self):
        """Test AuditEventBuilder.settlement_saved."""
        correlation_id = uuid4()
        settlement_id = uuid4()

        event = AuditEventBuilder.settlement_saved(
            settlement_id=settlement_id,
            household_id="h1",
            month="2024-03",
            sync_version=4,
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.SETTLEMENT_SAVED
        assert event.entity_id == str(settlement_id)
        assert event.correlation_id == correlation_id
        assert event.details["sync_version"] == 4

    def test_audit_event_builder_settle_up_recorded(self):
        """Test AuditEventBuilder.settle_up_recorded."""
        record_id = uuid4()

        event = AuditEventBuilder.settle_up_recorded(
            record_id=record_id,
            household_id="h1",
            from_member_id="b",
            to_member_id="a",
            amount="50.00",
            correlation_id=uuid4(),
        )

        assert event.event_type == AuditEventType.SETTLE_UP_RECORDED
        assert event.entity_type == "settle_up"
        assert event.is_user_action is True

    def test_share_rejection_is_warning(self):
        """Test that rejected shares are logged as warnings."""
        event = AuditEventBuilder.share_configuration_rejected(
            household_id="h1",
            month="2024-03",
            reason="Split percentages sum to 60.0000%, expected 100%",
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.WARNING
        assert "60.0000" in event.error_message

    def test_unbalanced_balances_event(self):
        """Test AuditEventBuilder.balances_unbalanced."""
        event = AuditEventBuilder.balances_unbalanced(
            household_id="h1",
            month="2024-03",
            residual="40.00",
            correlation_id=uuid4(),
        )
        assert event.event_type == AuditEventType.BALANCES_UNBALANCED
        assert event.severity == AuditSeverity.WARNING
        assert "do not sum to zero" in event.description
        assert event.details["residual"] == "40.00"


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="members",
                    issue_type="missing",
                    message="No members",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="shares",
                    issue_type="unknown_member",
                    message="Stale share",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0
        assert len(result.warnings) == 1

    def test_severity_must_be_known(self):
        """Test that unknown severities are rejected."""
        with pytest.raises(ValueError):
            ValidationIssue(
                field="x",
                issue_type="y",
                message="z",
                severity="fatal",
            )


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
