"""
Aggregate Statistics Engine

Pure aggregations over transaction sets and account snapshots.
"""

from collections import Counter
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional

from ledger_core.models.entities import Account, Transaction, TransactionType, to_naive_utc
from ledger_core.models.progress import AccountBalances, CategorySpending, MonthlyStats


def _in_period(
    transactions: Iterable[Transaction],
    period_start: datetime,
    period_end: datetime,
) -> list[Transaction]:
    period_start, period_end = to_naive_utc(period_start), to_naive_utc(period_end)
    return [tx for tx in transactions if period_start <= tx.date <= period_end]


def calculate_monthly_stats(
    transactions: Iterable[Transaction],
    period_start: datetime,
    period_end: datetime,
) -> MonthlyStats:
    """Income, expenses, savings and savings rate for one period."""
    in_period = _in_period(transactions, period_start, period_end)

    income = sum(
        (abs(tx.amount) for tx in in_period if tx.type == TransactionType.INCOME),
        Decimal("0"),
    )
    expenses = sum(
        (abs(tx.amount) for tx in in_period if tx.type == TransactionType.EXPENSE),
        Decimal("0"),
    )
    savings = income - expenses

    return MonthlyStats(
        income=income,
        expenses=expenses,
        savings=savings,
        savings_rate=float(savings / income * 100) if income > 0 else 0.0,
        transaction_count=len(in_period),
    )


def calculate_spending_by_category(
    transactions: Iterable[Transaction],
    period_start: datetime,
    period_end: datetime,
    category_names: Mapping[str, str],
) -> list[CategorySpending]:
    """
    Expense totals grouped by category, largest first.

    Ties keep the order in which categories were first encountered.
    Unknown category ids are labelled "Other".
    """
    totals: dict[str, Decimal] = {}
    counts: Counter = Counter()

    for tx in _in_period(transactions, period_start, period_end):
        if tx.type != TransactionType.EXPENSE:
            continue
        key = tx.category_id or ""
        totals[key] = totals.get(key, Decimal("0")) + abs(tx.amount)
        counts[key] += 1

    total_spent = sum(totals.values(), Decimal("0"))

    result = [
        CategorySpending(
            category_id=category_id,
            name=category_names.get(category_id, "Other"),
            amount=amount,
            count=counts[category_id],
            percentage=float(amount / total_spent * 100) if total_spent > 0 else 0.0,
        )
        for category_id, amount in totals.items()
    ]
    # sort is stable, so first-encountered order breaks ties
    result.sort(key=lambda item: item.amount, reverse=True)
    return result


def calculate_account_balances(accounts: Iterable[Account]) -> AccountBalances:
    """Assets, liabilities, net worth and per-type subtotals."""
    summary = AccountBalances()

    for account in accounts:
        if account.balance >= 0:
            summary.total_assets += account.balance
        else:
            summary.total_liabilities += abs(account.balance)
        summary.by_type[account.type] = (
            summary.by_type.get(account.type, Decimal("0")) + account.balance
        )

    summary.net_worth = summary.total_assets - summary.total_liabilities
    return summary


def calculate_average_transaction(
    transactions: Iterable[Transaction],
    transaction_type: Optional[TransactionType] = None,
) -> Decimal:
    amounts = [
        abs(tx.amount)
        for tx in transactions
        if transaction_type is None or tx.type == transaction_type
    ]
    if not amounts:
        return Decimal("0")
    return sum(amounts, Decimal("0")) / len(amounts)


def calculate_transaction_counts(
    transactions: Iterable[Transaction],
    period_start: datetime,
    period_end: datetime,
) -> dict[str, int]:
    """Count per transaction type; income, expense and transfer always present."""
    counts = {
        TransactionType.INCOME.value: 0,
        TransactionType.EXPENSE.value: 0,
        TransactionType.TRANSFER.value: 0,
    }
    for tx in _in_period(transactions, period_start, period_end):
        key = TransactionType(tx.type).value
        counts[key] = counts.get(key, 0) + 1
    return counts
