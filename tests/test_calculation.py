"""
Tests for the pure calculation core: share resolution, balances,
transfer optimization and the monthly report.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from fractions import Fraction

from settleup.calculation import (
    BalanceCalculator,
    ShareConfigurationError,
    SharePolicy,
    ShareResolver,
    TransferOptimizer,
    UnbalancedBalancesError,
    allocate_cents,
    calculate_monthly_balance,
    calculate_transfers,
    select_settlement_expenses,
)
from settleup.models.settlement import Expense, Member, PaymentShare


def make_members(*ids: str) -> list[Member]:
    return [Member(id=member_id, name=member_id.upper()) for member_id in ids]


def make_expense(
    expense_id: str,
    amount: str,
    paid_by: str,
    day: int = 5,
    month: int = 3,
    is_shared: bool = True,
) -> Expense:
    return Expense(
        id=expense_id,
        amount=Decimal(amount),
        paid_by_member_id=paid_by,
        occurred_at=datetime(2024, month, day, 12, 0, tzinfo=timezone.utc),
        is_shared=is_shared,
    )


def apply_transfers(balances: dict[str, Decimal], transfers) -> dict[str, Decimal]:
    result = dict(balances)
    for transfer in transfers:
        result[transfer.from_member_id] += transfer.amount
        result[transfer.to_member_id] -= transfer.amount
    return result


class TestShareResolver:
    """Tests for share table resolution."""

    def test_equal_split_when_no_shares(self):
        """Test that missing shares become an exact equal split."""
        table = ShareResolver().resolve(make_members("a", "b", "c"))
        assert table == {
            "a": Fraction(100, 3),
            "b": Fraction(100, 3),
            "c": Fraction(100, 3),
        }

    def test_explicit_shares_used(self):
        """Test that configured percentages are used as given."""
        table = ShareResolver().resolve(
            make_members("a", "b"),
            [
                PaymentShare(member_id="a", percentage=Decimal("60")),
                PaymentShare(member_id="b", percentage=Decimal("40")),
            ],
        )
        assert table == {"a": Fraction(60), "b": Fraction(40)}

    def test_partial_shares_fall_back_to_equal_split(self):
        """Test that members without a share get 100 / member count."""
        table = ShareResolver().resolve(
            make_members("a", "b"),
            [PaymentShare(member_id="a", percentage=Decimal("70"))],
        )
        assert table == {"a": Fraction(70), "b": Fraction(50)}

    def test_explicit_zero_is_honored(self):
        """Test that a 0% share is not replaced by the default."""
        table = ShareResolver(SharePolicy.REJECT).resolve(
            make_members("a", "b", "c"),
            [
                PaymentShare(member_id="a", percentage=Decimal("0")),
                PaymentShare(member_id="b", percentage=Decimal("50")),
                PaymentShare(member_id="c", percentage=Decimal("50")),
            ],
        )
        assert table["a"] == 0

    def test_shares_for_unknown_members_ignored(self):
        """Test that shares naming non-members don't leak into the table."""
        table = ShareResolver().resolve(
            make_members("a", "b"),
            [PaymentShare(member_id="ghost", percentage=Decimal("100"))],
        )
        assert set(table) == {"a", "b"}

    def test_empty_member_list_rejected(self):
        """Test that an empty household is a caller error."""
        with pytest.raises(ValueError, match="empty member list"):
            ShareResolver().resolve([])

    def test_reject_policy_refuses_bad_sum(self):
        """Test that REJECT raises when shares miss 100."""
        resolver = ShareResolver(SharePolicy.REJECT)
        with pytest.raises(ShareConfigurationError) as exc_info:
            resolver.resolve(
                make_members("a", "b"),
                [
                    PaymentShare(member_id="a", percentage=Decimal("30")),
                    PaymentShare(member_id="b", percentage=Decimal("30")),
                ],
            )
        assert exc_info.value.total == 60

    def test_reject_policy_counts_default_shares(self):
        """Test that a partial table summing past 100 is rejected."""
        resolver = ShareResolver(SharePolicy.REJECT)
        with pytest.raises(ShareConfigurationError):
            resolver.resolve(
                make_members("a", "b", "c"),
                [PaymentShare(member_id="a", percentage=Decimal("50"))],
            )

    def test_reject_policy_rescales_within_tolerance(self):
        """Test that 33.33 x 3 is accepted and rescaled to exactly 100."""
        table = ShareResolver(SharePolicy.REJECT).resolve(
            make_members("a", "b", "c"),
            [
                PaymentShare(member_id=m, percentage=Decimal("33.33"))
                for m in ("a", "b", "c")
            ],
        )
        assert sum(table.values()) == 100
        assert table["a"] == Fraction(100, 3)

    def test_normalize_policy_rescales(self):
        """Test that NORMALIZE rescales proportionally to 100."""
        table = ShareResolver(SharePolicy.NORMALIZE).resolve(
            make_members("a", "b"),
            [
                PaymentShare(member_id="a", percentage=Decimal("30")),
                PaymentShare(member_id="b", percentage=Decimal("10")),
            ],
        )
        assert table == {"a": Fraction(75), "b": Fraction(25)}

    def test_normalize_policy_rejects_zero_total(self):
        """Test that all-zero shares cannot be normalized."""
        with pytest.raises(ShareConfigurationError, match="sum to zero"):
            ShareResolver(SharePolicy.NORMALIZE).resolve(
                make_members("a", "b"),
                [
                    PaymentShare(member_id="a", percentage=Decimal("0")),
                    PaymentShare(member_id="b", percentage=Decimal("0")),
                ],
            )

    def test_pass_through_keeps_bad_sum(self):
        """Test that PASS_THROUGH returns the table untouched."""
        table = ShareResolver(SharePolicy.PASS_THROUGH).resolve(
            make_members("a", "b"),
            [
                PaymentShare(member_id="a", percentage=Decimal("30")),
                PaymentShare(member_id="b", percentage=Decimal("30")),
            ],
        )
        assert sum(table.values()) == 60


class TestAllocateCents:
    """Tests for largest-remainder rounding."""

    def test_total_preserved(self):
        """Test that rounded cents add up to the rounded exact total."""
        exact = {m: Fraction(10000, 3) for m in ("a", "b", "c")}
        allocated = allocate_cents(exact)
        assert sum(allocated.values()) == 10000
        assert allocated == {"a": 3334, "b": 3333, "c": 3333}

    def test_largest_remainder_gets_the_cent(self):
        """Test that the leftover cent goes to the biggest fraction."""
        exact = {"a": Fraction(101, 2), "b": Fraction(199, 4), "c": Fraction(0)}
        allocated = allocate_cents(exact)
        assert allocated == {"a": 50, "b": 50, "c": 0}


class TestBalanceCalculator:
    """Tests for member balance calculation."""

    def test_custom_shares_scenario(self):
        """Test 60/40 shares with one expense paid by A."""
        members = make_members("a", "b")
        table = {"a": Fraction(60), "b": Fraction(40)}
        balances, total = BalanceCalculator().calculate(
            [make_expense("e1", "100.00", "a")], members, table
        )
        by_member = {b.member_id: b for b in balances}

        assert total == Decimal("100.00")
        assert by_member["a"].owed == Decimal("60.00")
        assert by_member["b"].owed == Decimal("40.00")
        assert by_member["a"].balance == Decimal("40.00")
        assert by_member["b"].balance == Decimal("-40.00")

    def test_output_follows_member_order(self):
        """Test that balances are returned in member list order."""
        members = make_members("c", "a", "b")
        balances, _ = BalanceCalculator().calculate(
            [], members, ShareResolver().resolve(members)
        )
        assert [b.member_id for b in balances] == ["c", "a", "b"]

    def test_no_expenses_gives_zero_balances(self):
        """Test that an empty month leaves everybody at zero."""
        members = make_members("a", "b")
        balances, total = BalanceCalculator().calculate(
            [], members, ShareResolver().resolve(members)
        )
        assert total == Decimal("0.00")
        assert all(b.balance == 0 for b in balances)

    def test_odd_cent_is_allocated_not_lost(self):
        """Test that 100.00 split three ways still sums to zero."""
        members = make_members("a", "b", "c")
        balances, _ = BalanceCalculator().calculate(
            [make_expense("e1", "100.00", "a")],
            members,
            ShareResolver().resolve(members),
        )
        owed = [b.owed for b in balances]
        assert owed == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]
        assert sum(b.balance for b in balances) == 0

    def test_many_small_expenses_do_not_drift(self):
        """Test that many small expenses accumulate without rounding drift."""
        members = make_members("a", "b", "c")
        expenses = [
            make_expense(f"e{i}", "0.10", ("a", "b", "c")[i % 3])
            for i in range(1000)
        ]
        balances, total = BalanceCalculator().calculate(
            expenses, members, ShareResolver().resolve(members)
        )
        assert total == Decimal("100.00")
        assert sum(b.owed for b in balances) == Decimal("100.00")
        assert sum(b.balance for b in balances) == 0

    def test_unknown_payer_is_a_precondition(self):
        """Test that the calculator does not silently drop unknown payers."""
        members = make_members("a")
        with pytest.raises(KeyError):
            BalanceCalculator().calculate(
                [make_expense("e1", "10.00", "ghost")],
                members,
                ShareResolver().resolve(members),
            )


class TestSelectSettlementExpenses:
    """Tests for picking a month's settlement expenses."""

    def test_filters_by_month(self):
        """Test that expenses of other months are dropped."""
        expenses = [
            make_expense("march", "10.00", "a", month=3),
            make_expense("april", "10.00", "a", month=4),
        ]
        selected = select_settlement_expenses(expenses, "2024-03")
        assert [e.id for e in selected] == ["march"]

    def test_personal_expenses_dropped_unless_unified(self):
        """Test that non-shared expenses only count when unified."""
        expenses = [
            make_expense("shared", "10.00", "a"),
            make_expense("personal", "10.00", "a", is_shared=False),
        ]
        assert [e.id for e in select_settlement_expenses(expenses, "2024-03")] == ["shared"]
        assert len(select_settlement_expenses(expenses, "2024-03", unify_expenses=True)) == 2


class TestTransferOptimizer:
    """Tests for greedy transfer matching."""

    def test_single_debtor_two_creditors(self):
        """Test that ties between creditors keep input order."""
        transfers = TransferOptimizer().optimize({
            "a": Decimal("50.00"),
            "b": Decimal("-100.00"),
            "c": Decimal("50.00"),
        })
        assert [(t.from_member_id, t.to_member_id, t.amount) for t in transfers] == [
            ("b", "a", Decimal("50.00")),
            ("b", "c", Decimal("50.00")),
        ]

    def test_largest_parties_matched_first(self):
        """Test that the most negative debtor meets the largest creditor."""
        transfers = TransferOptimizer().optimize({
            "a": Decimal("-10.00"),
            "b": Decimal("-70.00"),
            "c": Decimal("30.00"),
            "d": Decimal("50.00"),
        })
        assert [(t.from_member_id, t.to_member_id, t.amount) for t in transfers] == [
            ("b", "d", Decimal("50.00")),
            ("b", "c", Decimal("20.00")),
            ("a", "c", Decimal("10.00")),
        ]

    def test_zero_balances_excluded(self):
        """Test that settled members take part in no transfer."""
        transfers = TransferOptimizer().optimize({
            "a": Decimal("0.00"),
            "b": Decimal("-5.00"),
            "c": Decimal("5.00"),
        })
        assert len(transfers) == 1
        assert transfers[0].from_member_id == "b"

    def test_all_settled_gives_no_transfers(self):
        """Test that a zero vector needs no transfers."""
        assert TransferOptimizer().optimize({"a": Decimal("0"), "b": Decimal("0")}) == []
        assert TransferOptimizer().optimize({}) == []

    def test_transfers_zero_every_balance(self):
        """Test that applying all transfers leaves everyone within a cent of zero."""
        balances = {
            "a": Decimal("123.45"),
            "b": Decimal("-23.40"),
            "c": Decimal("-50.05"),
            "d": Decimal("10.00"),
            "e": Decimal("-60.00"),
        }
        transfers = TransferOptimizer().optimize(balances)
        settled = apply_transfers(balances, transfers)
        assert all(abs(v) < Decimal("0.01") for v in settled.values())
        assert all(t.amount > 0 for t in transfers)

    def test_unbalanced_vector_rejected(self):
        """Test that a vector off zero is a precondition violation."""
        with pytest.raises(UnbalancedBalancesError) as exc_info:
            TransferOptimizer().optimize({"a": Decimal("10.00"), "b": Decimal("-5.00")})
        assert exc_info.value.residual == Decimal("5.00")

    def test_deterministic(self):
        """Test that the same vector always gives the same transfers."""
        balances = {"a": Decimal("-5"), "b": Decimal("-5"), "c": Decimal("10")}
        assert calculate_transfers(balances) == calculate_transfers(balances)


class TestCalculateMonthlyBalance:
    """Tests for the end-to-end pure report."""

    def test_equal_split_three_members(self):
        """Test A and C paying 150 each, B nothing, equal split."""
        members = make_members("a", "b", "c")
        expenses = [
            make_expense("e1", "150.00", "a"),
            make_expense("e2", "150.00", "c"),
        ]
        report = calculate_monthly_balance(
            expenses, members, household_id="h1", month="2024-03"
        )

        assert report.total_expenses == Decimal("300.00")
        assert [b.owed for b in report.member_balances] == [Decimal("100.00")] * 3
        assert report.balances_by_member() == {
            "a": Decimal("50.00"),
            "b": Decimal("-100.00"),
            "c": Decimal("50.00"),
        }
        assert [
            (t.from_member_id, t.to_member_id, t.amount)
            for t in report.suggested_transfers
        ] == [
            ("b", "a", Decimal("50.00")),
            ("b", "c", Decimal("50.00")),
        ]
        assert report.is_settled is False

    def test_explicit_thirds(self):
        """Test 33.33 / 33.33 / 33.34 shares stay zero-sum."""
        members = make_members("a", "b", "c")
        shares = [
            PaymentShare(member_id="a", percentage=Decimal("33.33")),
            PaymentShare(member_id="b", percentage=Decimal("33.33")),
            PaymentShare(member_id="c", percentage=Decimal("33.34")),
        ]
        report = calculate_monthly_balance(
            [make_expense("e1", "150.00", "a"), make_expense("e2", "150.00", "c")],
            members,
            shares,
            month="2024-03",
        )
        assert report.balances_by_member() == {
            "a": Decimal("50.01"),
            "b": Decimal("-99.99"),
            "c": Decimal("49.98"),
        }
        assert sum(t.amount for t in report.suggested_transfers) == Decimal("99.99")

    def test_custom_shares_transfer(self):
        """Test 60/40 shares produce a single B to A transfer of 40."""
        report = calculate_monthly_balance(
            [make_expense("e1", "100.00", "a")],
            make_members("a", "b"),
            [
                PaymentShare(member_id="a", percentage=Decimal("60")),
                PaymentShare(member_id="b", percentage=Decimal("40")),
            ],
            month="2024-03",
        )
        assert len(report.suggested_transfers) == 1
        transfer = report.suggested_transfers[0]
        assert (transfer.from_member_id, transfer.to_member_id) == ("b", "a")
        assert transfer.amount == Decimal("40.00")

    def test_pass_through_bad_shares_surface_residual(self):
        """Test that shares not summing to 100 are not silently absorbed."""
        with pytest.raises(UnbalancedBalancesError):
            calculate_monthly_balance(
                [make_expense("e1", "100.00", "a")],
                make_members("a", "b"),
                [
                    PaymentShare(member_id="a", percentage=Decimal("30")),
                    PaymentShare(member_id="b", percentage=Decimal("30")),
                ],
                month="2024-03",
            )

    def test_idempotent(self):
        """Test that identical inputs produce identical reports."""
        members = make_members("a", "b", "c")
        expenses = [
            make_expense("e1", "19.99", "a"),
            make_expense("e2", "7.01", "b"),
            make_expense("e3", "100.00", "c"),
        ]
        first = calculate_monthly_balance(expenses, members, month="2024-03")
        second = calculate_monthly_balance(expenses, members, month="2024-03")
        assert first == second
        assert first.model_dump_json() == second.model_dump_json()

    @pytest.mark.parametrize("amounts", [
        ["0.01"],
        ["10.00", "20.00", "30.01"],
        ["99.99", "0.02", "13.37", "250.00", "1.01"],
        ["1234.56", "0.07", "0.07", "0.07"],
    ])
    def test_zero_sum_and_settles(self, amounts):
        """Test that balances sum to zero and transfers settle everyone."""
        members = make_members("a", "b", "c", "d")
        payers = ["a", "b", "c", "d"]
        expenses = [
            make_expense(f"e{i}", amount, payers[i % 3])
            for i, amount in enumerate(amounts)
        ]
        shares = [
            PaymentShare(member_id="a", percentage=Decimal("12.5")),
            PaymentShare(member_id="b", percentage=Decimal("37.5")),
            PaymentShare(member_id="c", percentage=Decimal("20")),
            PaymentShare(member_id="d", percentage=Decimal("30")),
        ]
        report = calculate_monthly_balance(expenses, members, shares, month="2024-03")

        balances = report.balances_by_member()
        assert abs(sum(balances.values())) < Decimal("0.01")
        settled = apply_transfers(balances, report.suggested_transfers)
        assert all(abs(v) < Decimal("0.01") for v in settled.values())

    def test_default_month_is_current(self):
        """Test that the report is labelled with a YYYY-MM month."""
        report = calculate_monthly_balance([], make_members("a"))
        assert len(report.month) == 7
        assert report.month[4] == "-"
