"""
Goal Progress Engine

Percentage, remaining amount, required monthly contribution and on-track
status for savings and debt goals.
"""

import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from ledger_core.models.entities import Goal, to_naive_utc
from ledger_core.models.progress import GoalProgress


_ONE_DAY = timedelta(days=1)
_DAYS_PER_MONTH = 30
_ON_TRACK_SLACK = 0.9


def calculate_required_monthly_contribution(
    remaining: Decimal,
    days_until_deadline: int,
) -> Decimal:
    """
    Monthly amount needed to close the gap by the deadline.

    calculate_required_monthly_contribution(3000, 90) == 1000
    """
    if days_until_deadline <= 0:
        return Decimal("0")
    return Decimal(remaining) / (Decimal(days_until_deadline) / _DAYS_PER_MONTH)


def clamp_percentage(value: float) -> float:
    """Display clamp to 0-100. Not applied by calculate_goal_progress."""
    return min(100.0, max(0.0, value))


def calculate_goal_progress(goal: Goal, now: Optional[datetime] = None) -> GoalProgress:
    """
    Calculate goal progress with all metrics.

    The goal is on track when its percentage is at least 90% of the
    linear expectation between creation and deadline. A goal without a
    deadline is always on track.
    """
    now = to_naive_utc(now) if now else datetime.now()

    percentage = float(goal.current_amount / goal.target_amount * 100)
    remaining = max(Decimal("0"), goal.target_amount - goal.current_amount)

    if goal.deadline is None:
        return GoalProgress(goal_id=goal.id, percentage=percentage, remaining=remaining)

    days_until_deadline = max(0, math.ceil((goal.deadline - now) / _ONE_DAY))
    required = calculate_required_monthly_contribution(remaining, days_until_deadline)

    total_days = math.ceil((goal.deadline - goal.created_at) / _ONE_DAY)
    days_passed = total_days - days_until_deadline

    expected_progress = None
    is_on_track = True
    if days_passed > 0:
        expected_progress = days_passed / total_days * 100
        is_on_track = percentage >= expected_progress * _ON_TRACK_SLACK

    return GoalProgress(
        goal_id=goal.id,
        percentage=percentage,
        remaining=remaining,
        days_until_deadline=days_until_deadline,
        required_monthly_contribution=required,
        expected_progress=expected_progress,
        is_on_track=is_on_track,
    )
