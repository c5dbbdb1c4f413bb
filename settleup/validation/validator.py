"""
Settlement Input Validation

DESIGN DECISION: The calculation core trusts its inputs. Everything that
would make its output meaningless is checked here, before it runs:

- Empty member list
- Duplicate member IDs
- Expenses paid by someone outside the household
- Expenses outside the month being settled
- Duplicate expense IDs
- Split shares for unknown members, or several shares for one member

Positive amounts and percentage bounds are already enforced by the models.

IMPORTANT: Validation NEVER silently fixes issues. It reports them and
the service refuses to calculate while errors remain.
"""

from collections import Counter
from typing import Optional, Sequence

from settleup.models.settlement import Expense, Member, PaymentShare
from settleup.models.validation import ValidationIssue, ValidationResult


class InvalidSettlementInputError(Exception):
    """Settlement inputs violate the calculator's preconditions."""

    def __init__(self, result: ValidationResult):
        messages = "; ".join(
            issue.message for issue in result.issues if issue.severity == "error"
        )
        super().__init__(f"Invalid settlement input: {messages}")
        self.result = result


class SettlementInputValidator:
    """Checks expenses, members and shares before a calculation."""

    def validate(
        self,
        expenses: Sequence[Expense],
        members: Sequence[Member],
        shares: Optional[Sequence[PaymentShare]] = None,
        month: Optional[str] = None,
    ) -> ValidationResult:
        """
        Validate one calculation's inputs.

        Returns a ValidationResult; is_valid is False if any error was found.
        """
        issues = []
        issues.extend(self._check_members(members))
        issues.extend(self._check_expenses(expenses, members, month))
        issues.extend(self._check_shares(shares or [], members))

        return ValidationResult(
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
        )

    def _check_members(self, members: Sequence[Member]) -> list[ValidationIssue]:
        if not members:
            return [ValidationIssue(
                field="members",
                issue_type="missing",
                message="The household has no members to split expenses between",
                severity="error",
            )]

        counts = Counter(member.id for member in members)
        return [
            ValidationIssue(
                field="members",
                issue_type="duplicate",
                message=f"Member {member_id} is listed {count} times",
                severity="error",
                reference=member_id,
            )
            for member_id, count in counts.items()
            if count > 1
        ]

    def _check_expenses(
        self,
        expenses: Sequence[Expense],
        members: Sequence[Member],
        month: Optional[str],
    ) -> list[ValidationIssue]:
        issues = []
        member_ids = {member.id for member in members}
        seen_ids = set()

        for expense in expenses:
            if expense.id in seen_ids:
                issues.append(ValidationIssue(
                    field="expenses",
                    issue_type="duplicate",
                    message=f"Expense {expense.id} appears more than once",
                    severity="error",
                    reference=expense.id,
                ))
            seen_ids.add(expense.id)

            if expense.paid_by_member_id not in member_ids:
                issues.append(ValidationIssue(
                    field="expenses.paid_by_member_id",
                    issue_type="unknown_member",
                    message=(
                        f"Expense {expense.id} was paid by {expense.paid_by_member_id}, "
                        "who is not a household member"
                    ),
                    severity="error",
                    reference=expense.id,
                ))

            if month and expense.month != month:
                issues.append(ValidationIssue(
                    field="expenses.occurred_at",
                    issue_type="wrong_period",
                    message=f"Expense {expense.id} belongs to {expense.month}, not {month}",
                    severity="error",
                    reference=expense.id,
                ))

        return issues

    def _check_shares(
        self,
        shares: Sequence[PaymentShare],
        members: Sequence[Member],
    ) -> list[ValidationIssue]:
        issues = []
        member_ids = {member.id for member in members}
        counts = Counter(share.member_id for share in shares)

        for member_id, count in counts.items():
            if count > 1:
                issues.append(ValidationIssue(
                    field="shares",
                    issue_type="duplicate",
                    message=f"Member {member_id} has {count} split shares configured",
                    severity="error",
                    reference=member_id,
                ))
            if member_id not in member_ids:
                # Former members keep stale shares around; they are ignored
                issues.append(ValidationIssue(
                    field="shares",
                    issue_type="unknown_member",
                    message=f"Split share for {member_id} ignored: not a household member",
                    severity="warning",
                    reference=member_id,
                ))

        return issues

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.
        """
        if not result.issues:
            return "✅ Everything looks good. Balances can be calculated."

        lines = []
        if result.has_errors:
            lines.append(
                f"❌ Found {result.error_count} problem(s) that must be fixed first:"
            )
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"  • {issue.message}")

        if result.warnings:
            lines.append("⚠️ Please note:")
            for issue in result.warnings:
                lines.append(f"  • {issue.message}")

        return "\n".join(lines)
