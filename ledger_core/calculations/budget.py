"""
Budget Progress Engine

Computes spent, remaining, time-based projections and crossed alert
thresholds for one budget over one period.

DESIGN DECISION: Progress is a pure snapshot. The only write path for the
cached `Budget.spent` is the batch recalculation in
`ledger_core.ledger.operations`, which calls this engine.
"""

import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from ledger_core.config import get_settings
from ledger_core.migrations.normalization import ensure_current_budget
from ledger_core.models.entities import BudgetRecord, Transaction, TransactionType, to_naive_utc
from ledger_core.models.progress import BudgetProgress


_ONE_DAY = timedelta(days=1)


def calculate_active_alerts(
    percentage: float,
    thresholds: Sequence[float],
) -> list[float]:
    """
    Thresholds reached by the spending percentage, highest first.

    >>> calculate_active_alerts(85, [50, 80, 100])
    [80, 50]
    """
    return sorted((t for t in thresholds if percentage >= t), reverse=True)


def calculate_projected_spending(daily_average: Decimal, total_days: int) -> Decimal:
    return daily_average * total_days


def _budget_spent(
    category_ids: set[str],
    transactions: Iterable[Transaction],
    period_start: datetime,
    period_end: datetime,
) -> Decimal:
    spent = Decimal("0")
    for tx in transactions:
        if tx.type != TransactionType.EXPENSE:
            continue
        if not period_start <= tx.date <= period_end:
            continue
        if tx.category_id in category_ids:
            spent += abs(tx.amount)
    return spent


def calculate_budget_progress(
    budget: BudgetRecord,
    transactions: Iterable[Transaction],
    period_start: datetime,
    period_end: datetime,
    now: Optional[datetime] = None,
) -> BudgetProgress:
    """
    Calculate budget progress with all metrics.

    Args:
        budget: Current or legacy budget; legacy shapes are normalized first
        transactions: Candidate transactions (any type, any date)
        period_start: Inclusive period start
        period_end: Inclusive period end
        now: Reference moment for time metrics (defaults to now)

    Returns:
        BudgetProgress snapshot
    """
    budget = ensure_current_budget(budget)
    now = to_naive_utc(now) if now else datetime.now()
    period_start = to_naive_utc(period_start)
    period_end = to_naive_utc(period_end)

    spent = _budget_spent(set(budget.category_ids), transactions, period_start, period_end)
    remaining = budget.amount - spent
    percentage = float(spent / budget.amount * 100) if budget.amount > 0 else 0.0

    total_days = max(1, math.ceil((period_end - period_start) / _ONE_DAY))
    days_remaining = max(0, math.ceil((period_end - now) / _ONE_DAY))
    days_passed = max(1, total_days - days_remaining)

    daily_budget = remaining / days_remaining if days_remaining > 0 else Decimal("0")
    daily_average = spent / days_passed
    projected_spending = calculate_projected_spending(daily_average, total_days)

    alerts = budget.alerts
    if alerts is not None and not alerts.enabled:
        active_alerts = []
    else:
        thresholds = alerts.thresholds if alerts and alerts.thresholds is not None else None
        if thresholds is None:
            thresholds = get_settings().ledger.default_alert_thresholds
        active_alerts = calculate_active_alerts(percentage, thresholds)

    return BudgetProgress(
        budget_id=budget.id,
        spent=spent,
        remaining=remaining,
        percentage=percentage,
        days_remaining=days_remaining,
        days_passed=days_passed,
        total_days=total_days,
        daily_budget=daily_budget,
        daily_average=daily_average,
        projected_spending=projected_spending,
        projected_remaining=budget.amount - projected_spending,
        active_alerts=active_alerts,
        is_over_budget=spent > budget.amount,
        is_warning=bool(active_alerts) and 100 not in active_alerts,
    )
