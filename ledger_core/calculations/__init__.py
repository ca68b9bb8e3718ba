"""
Pure calculation engines.

Nothing in this package touches storage: every function is a function of
in-memory entity snapshots.
"""

from ledger_core.calculations.periods import (
    add_months,
    clamp_start_day,
    days_between,
    days_elapsed,
    days_remaining,
    financial_month_end_date,
    financial_month_start_date,
    get_period_range,
    is_date_in_period,
)
from ledger_core.calculations.balance import (
    IntegrityMismatchError,
    balance_effect,
    compute_account_balance,
    compute_balance,
    compute_balance_with_transfers,
    ensure_balance_matches,
    verify_balance,
)
from ledger_core.calculations.budget import (
    calculate_active_alerts,
    calculate_budget_progress,
    calculate_projected_spending,
)
from ledger_core.calculations.goal import (
    calculate_goal_progress,
    calculate_required_monthly_contribution,
    clamp_percentage,
)
from ledger_core.calculations.statistics import (
    calculate_account_balances,
    calculate_average_transaction,
    calculate_monthly_stats,
    calculate_spending_by_category,
    calculate_transaction_counts,
)

__all__ = [
    # Periods
    "add_months",
    "clamp_start_day",
    "days_between",
    "days_elapsed",
    "days_remaining",
    "financial_month_end_date",
    "financial_month_start_date",
    "get_period_range",
    "is_date_in_period",
    # Balance
    "IntegrityMismatchError",
    "balance_effect",
    "compute_account_balance",
    "compute_balance",
    "compute_balance_with_transfers",
    "ensure_balance_matches",
    "verify_balance",
    # Budgets
    "calculate_active_alerts",
    "calculate_budget_progress",
    "calculate_projected_spending",
    # Goals
    "calculate_goal_progress",
    "calculate_required_monthly_contribution",
    "clamp_percentage",
    # Statistics
    "calculate_account_balances",
    "calculate_average_transaction",
    "calculate_monthly_stats",
    "calculate_spending_by_category",
    "calculate_transaction_counts",
]
