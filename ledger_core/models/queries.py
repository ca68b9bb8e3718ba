"""
Query Models

Filters and pagination blocks accepted by every list operation of the
storage contract, plus the export/import snapshot payload.

DESIGN DECISION: Filters know how to match a record themselves.
Backends that cannot push a filter down to their engine (the in-memory
store, key-value stores) call `matches()` and `apply_query_options()`
so that every backend agrees on filter semantics.
"""

import re
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional, Sequence, TypeVar

from pydantic import Field

from ledger_core.models.entities import (
    Account,
    AccountType,
    Budget,
    BudgetPeriod,
    Category,
    CategoryType,
    Goal,
    GoalStatus,
    GoalType,
    LedgerModel,
    Transaction,
    TransactionType,
    User,
    UserSettings,
)


SortOrder = Literal["asc", "desc"]

T = TypeVar("T")


def _contains(needle: Optional[str], *haystacks: Optional[str]) -> bool:
    """Case-insensitive substring search over several text fields."""
    if not needle:
        return True
    needle = needle.lower()
    return any(needle in (text or "").lower() for text in haystacks)


class QueryOptions(LedgerModel):
    """Pagination and sort block accepted by list operations."""

    limit: Optional[int] = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)
    sort_by: Optional[str] = None
    sort_order: SortOrder = "asc"


# =============================================================================
# FILTERS
# =============================================================================

class AccountFilters(LedgerModel):
    type: Optional[AccountType] = None
    is_active: Optional[bool] = None
    search: Optional[str] = None

    def matches(self, account: Account) -> bool:
        if self.type is not None and account.type != self.type:
            return False
        if self.is_active is not None and account.is_active != self.is_active:
            return False
        return _contains(self.search, account.name)


class CategoryFilters(LedgerModel):
    type: Optional[CategoryType] = None
    is_default: Optional[bool] = None
    parent_id: Optional[str] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None
    sort_direction: SortOrder = "asc"

    def matches(self, category: Category) -> bool:
        if self.type is not None and category.type != self.type:
            return False
        if self.is_default is not None and category.is_default != self.is_default:
            return False
        if self.parent_id is not None and category.parent_id != self.parent_id:
            return False
        return _contains(self.search, category.name)


class TransactionFilters(LedgerModel):
    """
    Transaction filters.

    `account_id` matches either leg, so a transfer shows up for both the
    source and the destination account. Date bounds are inclusive and
    accept ISO strings.
    """

    type: Optional[TransactionType] = None
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    goal_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    search: Optional[str] = None

    def matches(self, tx: Transaction) -> bool:
        if self.type is not None and tx.type != self.type:
            return False
        if self.account_id is not None and not tx.touches_account(self.account_id):
            return False
        if self.category_id is not None and tx.category_id != self.category_id:
            return False
        if self.goal_id is not None and tx.goal_id != self.goal_id:
            return False
        if self.start_date is not None and tx.date < self.start_date:
            return False
        if self.end_date is not None and tx.date > self.end_date:
            return False
        if self.min_amount is not None and tx.amount < self.min_amount:
            return False
        if self.max_amount is not None and tx.amount > self.max_amount:
            return False
        return _contains(self.search, tx.description, *tx.tags)


class BudgetFilters(LedgerModel):
    is_active: Optional[bool] = None
    period: Optional[BudgetPeriod] = None
    category_id: Optional[str] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None
    sort_direction: SortOrder = "asc"

    def matches(self, budget: Budget) -> bool:
        if self.is_active is not None and budget.is_active != self.is_active:
            return False
        if self.period is not None and budget.period != self.period:
            return False
        if self.category_id is not None and self.category_id not in budget.category_ids:
            return False
        return _contains(self.search, budget.name)


class GoalFilters(LedgerModel):
    type: Optional[GoalType] = None
    status: Optional[GoalStatus] = None
    account_id: Optional[str] = None
    search: Optional[str] = None
    sort_by: Optional[str] = None
    sort_direction: SortOrder = "asc"

    def matches(self, goal: Goal) -> bool:
        if self.type is not None and goal.type != self.type:
            return False
        if self.status is not None and goal.status != self.status:
            return False
        if self.account_id is not None and goal.account_id != self.account_id:
            return False
        return _contains(self.search, goal.name)


# =============================================================================
# SORTING & PAGINATION
# =============================================================================

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _field_name(sort_by: str) -> str:
    """Accept both `createdAt` and `created_at`."""
    return _CAMEL_BOUNDARY.sub("_", sort_by).lower()


def _sort_key(field: str):
    def key(record: Any):
        value = getattr(record, field, None)
        # None sorts first in ascending order
        return (value is not None, value)
    return key


def apply_query_options(
    records: Sequence[T],
    options: Optional[QueryOptions] = None,
    default_sort: Optional[str] = None,
    default_order: SortOrder = "asc",
) -> list[T]:
    """
    Sort and paginate already-filtered records.

    Args:
        records: Records that passed the filter
        options: Pagination/sort block; None means "everything"
        default_sort: Field used when the caller gives no sort_by
        default_order: Direction used with default_sort

    Returns:
        A new list, sorted and sliced
    """
    result = list(records)

    sort_by = options.sort_by if options and options.sort_by else default_sort
    if sort_by:
        order = options.sort_order if options and options.sort_by else default_order
        result.sort(key=_sort_key(_field_name(sort_by)), reverse=order == "desc")

    if options:
        end = options.offset + options.limit if options.limit is not None else None
        result = result[options.offset:end]

    return result


# =============================================================================
# EXPORT / IMPORT PAYLOAD
# =============================================================================

class ExportData(LedgerModel):
    """
    Serialized snapshot of a user's (or the whole store's) data.

    Every array is optional on input; missing arrays are treated as empty.
    """

    users: list[User] = Field(default_factory=list)
    accounts: list[Account] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    settings: Optional[UserSettings] = None
    exported_at: datetime = Field(default_factory=datetime.now)
    version: str = "1.0.0"

    def record_counts(self) -> dict[str, int]:
        return {
            "users": len(self.users),
            "accounts": len(self.accounts),
            "categories": len(self.categories),
            "transactions": len(self.transactions),
            "budgets": len(self.budgets),
            "goals": len(self.goals),
        }
