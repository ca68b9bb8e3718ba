"""
Result Models

Snapshots produced by the calculation engines and the ledger flows.
None of these are persisted as a source of truth: every field can be
recomputed from entities and the transaction log.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from ledger_core.models.entities import AccountType, LedgerModel


class PeriodRange(LedgerModel):
    """Inclusive period boundaries."""
    start: datetime
    end: datetime


# =============================================================================
# PROGRESS SNAPSHOTS
# =============================================================================

class BudgetProgress(LedgerModel):
    """
    Point-in-time progress of one budget.

    Pure snapshot: computing it has no side effects.
    """

    budget_id: str
    spent: Decimal
    remaining: Decimal
    percentage: float
    days_remaining: int
    days_passed: int
    total_days: int
    daily_budget: Decimal
    daily_average: Decimal
    projected_spending: Decimal
    projected_remaining: Decimal
    active_alerts: list[float] = Field(default_factory=list)
    is_over_budget: bool
    is_warning: bool


class GoalProgress(LedgerModel):
    """
    Point-in-time progress of one goal.

    `percentage` is not clamped and may exceed 100 on overshoot.
    """

    goal_id: str
    percentage: float
    remaining: Decimal
    days_until_deadline: Optional[int] = None
    required_monthly_contribution: Decimal = Decimal("0")
    expected_progress: Optional[float] = None
    is_on_track: bool = True


class BalanceCheck(LedgerModel):
    """Result of comparing a cached balance with a derived one."""

    account_id: Optional[str] = None
    expected: Decimal
    calculated: Decimal
    difference: Decimal = Field(description="expected - calculated")
    is_valid: bool


# =============================================================================
# STATISTICS
# =============================================================================

class MonthlyStats(LedgerModel):
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    savings: Decimal = Decimal("0")
    savings_rate: float = 0.0
    transaction_count: int = 0


class CategorySpending(LedgerModel):
    category_id: str
    name: str = "Other"
    amount: Decimal
    count: int
    percentage: float


class AccountBalances(LedgerModel):
    total_assets: Decimal = Decimal("0")
    total_liabilities: Decimal = Decimal("0")
    net_worth: Decimal = Decimal("0")
    by_type: dict[AccountType, Decimal] = Field(default_factory=dict)


# =============================================================================
# FLOW RESULTS
# =============================================================================

class MutationResult(LedgerModel):
    """
    Outcome of one coordinated balance mutation.

    `balance_changes` maps account id to the delta applied by the whole
    operation. Tolerated anomalies (such as a missing transfer destination)
    are listed instead of raised.
    """

    transaction_id: str
    operation: str
    balance_changes: dict[str, Decimal] = Field(default_factory=dict)
    anomalies: list[str] = Field(default_factory=list)

    @property
    def has_anomalies(self) -> bool:
        return bool(self.anomalies)


class MigrationCounts(LedgerModel):
    transactions: int = 0
    budgets: int = 0
    goals: int = 0
    accounts: int = 0
    categories: int = 0

    @property
    def total(self) -> int:
        return (
            self.transactions + self.budgets + self.goals
            + self.accounts + self.categories
        )


class MigrationResult(LedgerModel):
    """Outcome of a guest to authenticated ownership transfer."""

    success: bool
    migrated_counts: MigrationCounts = Field(default_factory=MigrationCounts)
    error: Optional[str] = None


class MigrationReport(LedgerModel):
    """Summary of an import payload, for audit and logging."""

    total_records: int
    record_counts: dict[str, int] = Field(default_factory=dict)
    has_settings: bool = False
    detected_user_id: Optional[str] = None
