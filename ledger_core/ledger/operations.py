"""
Ledger Batch Operations

Higher-level operations built on the storage contract: budget spent
recalculation, category remapping, period totals and integrity sweeps.

DESIGN DECISION: Batch operations are not atomic as a whole. Each record
write is individually consistent; the first storage error propagates and
leaves earlier records updated.
"""

from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional

import structlog

from ledger_core.calculations.balance import compute_account_balance, verify_balance
from ledger_core.calculations.budget import calculate_budget_progress
from ledger_core.calculations.periods import get_period_range
from ledger_core.calculations.statistics import (
    calculate_account_balances,
    calculate_monthly_stats,
    calculate_spending_by_category,
)
from ledger_core.config import get_settings
from ledger_core.models.entities import TransactionType, to_naive_utc
from ledger_core.models.progress import (
    AccountBalances,
    BalanceCheck,
    BudgetProgress,
    CategorySpending,
    MonthlyStats,
)
from ledger_core.models.queries import BudgetFilters, TransactionFilters
from ledger_core.services.storage.interface import LedgerStorageInterface


logger = structlog.get_logger(__name__)


async def get_financial_month_start(storage: LedgerStorageInterface, user_id: str) -> int:
    """The user's configured month start day, or the configured default."""
    user = await storage.get_user(user_id)
    if user is None:
        return get_settings().ledger.default_financial_month_start
    return user.settings.financial_month_start


async def recalculate_budget_spent(
    storage: LedgerStorageInterface,
    user_id: str,
    now: Optional[datetime] = None,
) -> list[BudgetProgress]:
    """
    Recompute and persist `spent` for every active budget of a user.

    Each budget is measured over its current period (weekly, financial
    month or calendar year) as of `now`.

    Returns:
        The progress snapshot computed for each budget
    """
    now = to_naive_utc(now) if now else datetime.now()
    start_day = await get_financial_month_start(storage, user_id)
    budgets = await storage.get_budgets(user_id, BudgetFilters(is_active=True))

    results = []
    for budget in budgets:
        period = get_period_range(budget.period, now, start_day)
        transactions = await storage.get_transactions(
            user_id,
            TransactionFilters(
                type=TransactionType.EXPENSE,
                start_date=period.start,
                end_date=period.end,
            ),
        )
        progress = calculate_budget_progress(budget, transactions, period.start, period.end, now)
        await storage.update_budget_spent(budget.id, progress.spent)
        logger.info(
            "budget_spent_recalculated",
            budget_id=budget.id,
            spent=str(progress.spent),
            percentage=round(progress.percentage, 2),
        )
        results.append(progress)

    return results


async def migrate_categories(
    storage: LedgerStorageInterface,
    user_id: str,
    category_mapping: Mapping[str, str],
) -> dict[str, int]:
    """
    Re-point transactions and budgets from old to new category ids.

    Budget category lists are deduplicated after remapping.

    Returns:
        Number of updated transactions and budgets
    """
    updated = {"transactions": 0, "budgets": 0}

    for tx in await storage.get_transactions(user_id):
        if tx.category_id and tx.category_id in category_mapping:
            await storage.update_transaction(
                tx.id,
                {"category_id": category_mapping[tx.category_id]},
            )
            updated["transactions"] += 1

    for budget in await storage.get_budgets(user_id):
        remapped = list(dict.fromkeys(
            category_mapping.get(category_id, category_id)
            for category_id in budget.category_ids
        ))
        if remapped != budget.category_ids:
            await storage.update_budget(budget.id, {"category_ids": remapped})
            updated["budgets"] += 1

    logger.info("categories_migrated", user_id=user_id, **updated)
    return updated


async def get_spending_by_category(
    storage: LedgerStorageInterface,
    user_id: str,
    start: datetime,
    end: datetime,
) -> dict[str, Decimal]:
    """Expense total per category id within [start, end]."""
    transactions = await storage.get_transactions(
        user_id,
        TransactionFilters(type=TransactionType.EXPENSE, start_date=start, end_date=end),
    )
    spending: dict[str, Decimal] = {}
    for tx in transactions:
        if tx.category_id:
            spending[tx.category_id] = spending.get(tx.category_id, Decimal("0")) + tx.amount
    return spending


async def get_category_breakdown(
    storage: LedgerStorageInterface,
    user_id: str,
    start: datetime,
    end: datetime,
) -> list[CategorySpending]:
    """Named, percentage-annotated spending per category, largest first."""
    transactions = await storage.get_transactions(
        user_id,
        TransactionFilters(type=TransactionType.EXPENSE, start_date=start, end_date=end),
    )
    names = {category.id: category.name for category in await storage.get_categories(user_id)}
    return calculate_spending_by_category(transactions, start, end, names)


async def get_monthly_totals(
    storage: LedgerStorageInterface,
    user_id: str,
    start: datetime,
    end: datetime,
) -> MonthlyStats:
    transactions = await storage.get_transactions(
        user_id,
        TransactionFilters(start_date=start, end_date=end),
    )
    return calculate_monthly_stats(transactions, start, end)


async def get_account_summary(
    storage: LedgerStorageInterface,
    user_id: str,
) -> AccountBalances:
    return calculate_account_balances(await storage.get_accounts(user_id))


async def archive_old_transactions(
    storage: LedgerStorageInterface,
    user_id: str,
    before: datetime,
) -> int:
    """
    Count transactions dated strictly before the cutoff.

    Moving them to cold storage is a backend concern; the core only
    reports how many qualify.
    """
    before = to_naive_utc(before)
    transactions = await storage.get_transactions(user_id, TransactionFilters(end_date=before))
    return sum(1 for tx in transactions if tx.date < before)


async def verify_account_balances(
    storage: LedgerStorageInterface,
    user_id: str,
    tolerance: Optional[float] = None,
) -> list[BalanceCheck]:
    """
    Compare every cached account balance with the one derived from the log.

    Reports only; never corrects a drifted balance.
    """
    transactions = await storage.get_transactions(user_id)
    checks = []
    for account in await storage.get_accounts(user_id):
        check = verify_balance(
            account.balance,
            compute_account_balance(account, transactions),
            tolerance=tolerance,
            account_id=account.id,
        )
        if not check.is_valid:
            logger.warning(
                "balance_integrity_mismatch",
                account_id=account.id,
                expected=str(check.expected),
                calculated=str(check.calculated),
                difference=str(check.difference),
            )
        checks.append(check)
    return checks
