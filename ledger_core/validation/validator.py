"""
Two-Stage Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Types, required fields, formats and single-record invariants
- Enforced by the pydantic models themselves at construction time

STAGE 2 - SEMANTIC VALIDATION (this module):
- Rules that need other records: category direction, ownership of
  referenced accounts and goals, goal withdrawal limits
- Needs storage access, so it runs in the service layer before any write

IMPORTANT: Validation NEVER silently fixes issues. Errors abort the
operation before anything is mutated; warnings are reported only.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ledger_core.models.entities import (
    BudgetCreate,
    CategoryType,
    GoalCreate,
    TransactionCreate,
    TransactionType,
)
from ledger_core.services.storage.interface import LedgerStorageInterface


_DIRECTION = {
    TransactionType.EXPENSE: CategoryType.EXPENSE,
    TransactionType.INCOME: CategoryType.INCOME,
}


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'unknown_category', 'category_direction')"
    )
    message: str
    severity: str = Field(..., pattern="^(error|warning|info)$")
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """Outcome of semantic validation for one input."""

    entity_type: str
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """
        Raises:
            LedgerValidationError: If any issue has error severity
        """
        if not self.is_valid:
            raise LedgerValidationError(self.entity_type, self.errors)


class LedgerValidationError(ValueError):
    """Input is malformed or violates a business rule. Nothing was mutated."""

    def __init__(self, entity_type: str, issues: list[ValidationIssue]):
        self.entity_type = entity_type
        self.issues = issues
        summary = "; ".join(f"{issue.field}: {issue.message}" for issue in issues)
        super().__init__(f"Invalid {entity_type}: {summary}")

    @classmethod
    def single(
        cls,
        entity_type: str,
        field: str,
        issue_type: str,
        message: str,
        suggested_fix: Optional[str] = None,
    ) -> "LedgerValidationError":
        return cls(entity_type, [ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=message,
            severity="error",
            suggested_fix=suggested_fix,
        )])


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _warning(field: str, issue_type: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field, issue_type=issue_type, message=message, severity="warning")


class LedgerValidator:
    """
    Reference-aware validation of ledger inputs.

    A missing *source* account is not reported here: the ledger
    coordinator owns that failure (ReferenceNotFoundError).
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def _check_category(
        self,
        user_id: str,
        data: TransactionCreate,
    ) -> list[ValidationIssue]:
        expected = _DIRECTION.get(TransactionType(data.type))
        if expected is None or not data.category_id:
            return []

        category = await self._storage.get_category(data.category_id)
        if category is None:
            return [_error(
                "category_id",
                "unknown_category",
                f"Category {data.category_id} does not exist",
            )]
        if category.user_id != user_id and not category.is_default:
            return [_error("category_id", "foreign_category", "Category belongs to another user")]
        if category.type != expected:
            return [_error(
                "category_id",
                "category_direction",
                f"{data.type.value.capitalize()} transactions need an {expected.value} category, "
                f"'{category.name}' is {category.type.value}",
                "Pick a category of the matching type",
            )]
        return []

    async def _check_accounts(
        self,
        user_id: str,
        data: TransactionCreate,
    ) -> list[ValidationIssue]:
        issues = []

        source = await self._storage.get_account(data.account_id)
        if source is not None:
            if source.user_id != user_id:
                issues.append(_error("account_id", "foreign_account", "Account belongs to another user"))
            elif not source.is_active:
                issues.append(_warning("account_id", "inactive_account", f"Account '{source.name}' is archived"))

        if data.type == TransactionType.TRANSFER and data.to_account_id:
            destination = await self._storage.get_account(data.to_account_id)
            if destination is None:
                issues.append(_error(
                    "to_account_id",
                    "unknown_account",
                    f"Destination account {data.to_account_id} does not exist",
                ))
            elif destination.user_id != user_id:
                issues.append(_error("to_account_id", "foreign_account", "Destination belongs to another user"))
            elif source is not None and source.currency != destination.currency:
                issues.append(_warning(
                    "to_account_id",
                    "currency_mismatch",
                    f"Transfer from {source.currency} to {destination.currency} is not converted",
                ))

        return issues

    async def _check_goal(
        self,
        user_id: str,
        data: TransactionCreate,
    ) -> list[ValidationIssue]:
        if data.type not in (TransactionType.GOAL_CONTRIBUTION, TransactionType.GOAL_WITHDRAWAL):
            return []

        goal = await self._storage.get_goal(data.goal_id)
        if goal is None:
            return [_error("goal_id", "unknown_goal", f"Goal {data.goal_id} does not exist")]
        if goal.user_id != user_id:
            return [_error("goal_id", "foreign_goal", "Goal belongs to another user")]
        if data.type == TransactionType.GOAL_WITHDRAWAL and data.amount > goal.current_amount:
            return [_error(
                "amount",
                "exceeds_goal_amount",
                f"Cannot withdraw {data.amount}, goal '{goal.name}' holds {goal.current_amount}",
            )]
        return []

    async def validate_transaction(
        self,
        user_id: str,
        data: TransactionCreate,
    ) -> ValidationResult:
        """
        Validate a transaction input against stored records.

        Args:
            user_id: Owner of the transaction
            data: Schema-valid transaction input

        Returns:
            ValidationResult with all issues found
        """
        issues = []
        issues.extend(await self._check_category(user_id, data))
        issues.extend(await self._check_accounts(user_id, data))
        issues.extend(await self._check_goal(user_id, data))

        if data.amount == 0:
            issues.append(_warning("amount", "zero_amount", "Transaction amount is zero"))

        return ValidationResult(entity_type="transaction", issues=issues)

    async def validate_goal_movement(
        self,
        user_id: str,
        goal_id: str,
        amount: Decimal,
        account_id: str,
        is_withdrawal: bool,
    ) -> ValidationResult:
        """Validate a contribution to, or withdrawal from, a goal."""
        tx_type = TransactionType.GOAL_WITHDRAWAL if is_withdrawal else TransactionType.GOAL_CONTRIBUTION
        issues = []
        if Decimal(amount) <= 0:
            issues.append(_error("amount", "invalid_value", "Amount must be greater than zero"))
        else:
            data = TransactionCreate(
                account_id=account_id,
                amount=amount,
                type=tx_type,
                goal_id=goal_id,
            )
            issues.extend(await self._check_accounts(user_id, data))
            issues.extend(await self._check_goal(user_id, data))
        return ValidationResult(entity_type="goal", issues=issues)

    async def validate_budget(self, user_id: str, data: BudgetCreate) -> ValidationResult:
        """Every tracked category must exist; income categories only warn."""
        issues = []
        for category_id in data.category_ids:
            category = await self._storage.get_category(category_id)
            if category is None:
                issues.append(_error(
                    "category_ids",
                    "unknown_category",
                    f"Category {category_id} does not exist",
                ))
            elif category.user_id != user_id and not category.is_default:
                issues.append(_error("category_ids", "foreign_category", "Category belongs to another user"))
            elif category.type != CategoryType.EXPENSE:
                issues.append(_warning(
                    "category_ids",
                    "income_category",
                    f"'{category.name}' is an income category; budgets only count expenses",
                ))
        return ValidationResult(entity_type="budget", issues=issues)

    async def validate_goal(self, user_id: str, data: GoalCreate) -> ValidationResult:
        """The target must still be ahead of the current amount at creation."""
        issues = []
        if data.target_amount <= data.current_amount:
            issues.append(_error(
                "target_amount",
                "target_reached",
                "Target amount must be greater than the current amount",
            ))
        if data.deadline is not None and data.deadline <= datetime.now():
            issues.append(_warning("deadline", "past_deadline", "Deadline is already in the past"))
        if data.account_id is not None:
            account = await self._storage.get_account(data.account_id)
            if account is None:
                issues.append(_error(
                    "account_id",
                    "unknown_account",
                    f"Account {data.account_id} does not exist",
                ))
            elif account.user_id != user_id:
                issues.append(_error("account_id", "foreign_account", "Account belongs to another user"))
        return ValidationResult(entity_type="goal", issues=issues)


def get_user_friendly_summary(result: ValidationResult) -> str:
    """One line per issue, errors first."""
    if result.is_valid and not result.warnings:
        return "All checks passed."

    lines = []
    for issue in result.errors:
        line = f"Error - {issue.field}: {issue.message}"
        if issue.suggested_fix:
            line += f" ({issue.suggested_fix})"
        lines.append(line)
    for message in result.warnings:
        lines.append(f"Warning - {message}")
    return "\n".join(lines)
