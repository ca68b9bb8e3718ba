"""Balance coordination and adapter-backed batch operations."""

from ledger_core.ledger.coordinator import (
    AccountLockRegistry,
    LedgerCoordinator,
    LedgerError,
    MutationOperation,
    PriorStateRequiredError,
    ReferenceNotFoundError,
)
from ledger_core.ledger.operations import (
    archive_old_transactions,
    get_account_summary,
    get_category_breakdown,
    get_financial_month_start,
    get_monthly_totals,
    get_spending_by_category,
    migrate_categories,
    recalculate_budget_spent,
    verify_account_balances,
)

__all__ = [
    "AccountLockRegistry",
    "LedgerCoordinator",
    "LedgerError",
    "MutationOperation",
    "PriorStateRequiredError",
    "ReferenceNotFoundError",
    "archive_old_transactions",
    "get_account_summary",
    "get_category_breakdown",
    "get_financial_month_start",
    "get_monthly_totals",
    "get_spending_by_category",
    "migrate_categories",
    "recalculate_budget_spent",
    "verify_account_balances",
]
