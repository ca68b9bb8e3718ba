"""
Core Data Models for the Ledger

These models define the strict schemas for every record the ledger owns:
accounts, categories, transactions, budgets, goals and users.

They are designed to:
1. Enforce the cross-field invariants of each record at construction time
2. Be serializable to the camelCase wire format used by backups
3. Keep money exact (Decimal) so balances can be re-derived exactly

DESIGN DECISION: An account's `balance` is a cached snapshot.
The source of truth is always initial_balance plus the signed effect of
every transaction that references the account.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate a new record identifier."""
    return str(uuid4())


def to_naive_utc(value):
    """
    Convert an aware datetime to naive UTC; anything else passes through.

    '2024-12-05T10:00:00.000Z' -> datetime(2024, 12, 5, 10, 0)
    """
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class LedgerModel(BaseModel):
    """
    Base model for everything that crosses the storage boundary.

    Python code uses snake_case names; backups and legacy payloads use
    camelCase, so both are accepted on input and dumps use aliases.

    All datetimes are naive. Offset-carrying input (backups written by
    other clients use ISO strings ending in 'Z') is converted to UTC and
    stripped, so stored and generated datetimes always compare.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    @field_validator('*', mode='after')
    @classmethod
    def normalize_datetimes(cls, v):
        return to_naive_utc(v)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Supported account types."""
    BANK = "bank"
    CREDIT = "credit"
    CASH = "cash"
    INVESTMENT = "investment"
    WALLET = "wallet"


class TransactionType(str, Enum):
    """
    Types of money movement.

    The amount is stored non-negative; the type decides the sign.
    BALANCE_ADJUSTMENT is the one exception and may carry a negative amount.
    """
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"
    GOAL_CONTRIBUTION = "goal-contribution"
    GOAL_WITHDRAWAL = "goal-withdrawal"
    BALANCE_ADJUSTMENT = "balance-adjustment"


GOAL_TRANSACTION_TYPES = frozenset({
    TransactionType.GOAL_CONTRIBUTION,
    TransactionType.GOAL_WITHDRAWAL,
})


class CategoryType(str, Enum):
    """Economic direction of a category."""
    EXPENSE = "expense"
    INCOME = "income"


class BudgetPeriod(str, Enum):
    """Budget time periods."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class GoalType(str, Enum):
    SAVINGS = "savings"
    DEBT = "debt"


class GoalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class UserMode(str, Enum):
    """
    Guest users keep data locally under a `guest-` id.
    Authenticated users own data under their provider id.
    """
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


# =============================================================================
# ACCOUNTS
# =============================================================================

class AccountCreate(LedgerModel):
    """Input for creating an account."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="User-defined account name"
    )
    type: AccountType
    initial_balance: Decimal = Field(
        default=Decimal("0"),
        description="Balance when tracking started; the base of every derivation"
    )
    currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="ISO 4217 currency code"
    )
    color: Optional[str] = None
    icon: Optional[str] = None
    is_active: bool = True

    @field_validator('currency')
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()


class Account(AccountCreate):
    """
    A financial account owned by one user.

    `balance` is a read-optimization snapshot maintained by the ledger
    coordinator. Never edit it directly.
    """

    id: str = Field(default_factory=new_id)
    user_id: str
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Cached balance, re-derivable from the transaction log"
    )
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode='before')
    @classmethod
    def default_balance_to_initial(cls, data):
        """A fresh account's cached balance starts at its initial balance."""
        if isinstance(data, dict) and "balance" not in data:
            initial = data.get("initial_balance", data.get("initialBalance"))
            if initial is not None:
                data = {**data, "balance": initial}
        return data


# =============================================================================
# CATEGORIES
# =============================================================================

class CategoryCreate(LedgerModel):
    """Input for creating a category."""

    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    color: Optional[str] = None
    icon: Optional[str] = None
    parent_id: Optional[str] = Field(
        default=None,
        description="Parent category for one level of hierarchy"
    )
    is_default: bool = Field(
        default=False,
        description="Default (seeded) categories are never re-keyed to another user"
    )
    order: int = 0


class Category(CategoryCreate):
    id: str = Field(default_factory=new_id)
    user_id: str

    @model_validator(mode='after')
    def validate_parent(self) -> 'Category':
        if self.parent_id is not None and self.parent_id == self.id:
            raise ValueError("Category cannot be its own parent")
        return self


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionCreate(LedgerModel):
    """
    Input for creating a transaction.

    Invariants:
    - to_account_id is set if and only if type is transfer
    - goal_id is set if and only if type is a goal type
    - to_account_id differs from account_id
    - amount is non-negative except for balance adjustments
    - expense and income transactions carry a category
    """

    account_id: str = Field(..., min_length=1)
    amount: Decimal
    type: TransactionType
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None
    description: str = Field(default="", max_length=500)
    date: datetime = Field(default_factory=datetime.now)
    tags: list[str] = Field(default_factory=list)
    to_account_id: Optional[str] = None
    goal_id: Optional[str] = None
    is_recurring: bool = False
    recurring_id: Optional[str] = None
    is_essential: Optional[bool] = None

    @model_validator(mode='after')
    def validate_references(self) -> 'TransactionCreate':
        """Validate the type-dependent reference fields."""
        is_transfer = self.type == TransactionType.TRANSFER
        if is_transfer and not self.to_account_id:
            raise ValueError("Transfer requires a destination account")
        if not is_transfer and self.to_account_id:
            raise ValueError("Only transfers may set a destination account")
        if self.to_account_id and self.to_account_id == self.account_id:
            raise ValueError("Transfer source and destination must differ")

        is_goal = self.type in GOAL_TRANSACTION_TYPES
        if is_goal and not self.goal_id:
            raise ValueError("Goal transactions require a goal")
        if not is_goal and self.goal_id:
            raise ValueError("Only goal transactions may reference a goal")

        if self.amount < 0 and self.type != TransactionType.BALANCE_ADJUSTMENT:
            raise ValueError("Amount cannot be negative")

        if (
            self.type in (TransactionType.EXPENSE, TransactionType.INCOME)
            and not self.category_id
        ):
            raise ValueError("Category is required for expense and income transactions")

        return self


class Transaction(TransactionCreate):
    """A persisted ledger entry."""

    id: str = Field(default_factory=new_id)
    user_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_transfer(self) -> bool:
        return self.type == TransactionType.TRANSFER

    def touches_account(self, account_id: str) -> bool:
        """Check if either leg of this transaction references the account."""
        return self.account_id == account_id or self.to_account_id == account_id


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetAlertConfig(LedgerModel):
    """
    Alert threshold configuration.

    thresholds=None means "use the configured defaults" (50, 80, 100).
    """

    thresholds: Optional[list[float]] = None
    enabled: bool = True

    @field_validator('thresholds')
    @classmethod
    def validate_thresholds(cls, v: Optional[list[float]]) -> Optional[list[float]]:
        """Thresholds must be strictly ascending percentages in (0, 100]."""
        if v is None:
            return v
        for threshold in v:
            if threshold <= 0 or threshold > 100:
                raise ValueError(
                    f"Alert threshold must be in (0, 100], got {threshold}"
                )
        if any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError("Alert thresholds must be ascending without duplicates")
        return v


class BudgetFields(LedgerModel):
    """Fields shared by the current and the legacy budget shape."""

    name: str = Field(default="", max_length=200)
    amount: Decimal = Field(..., gt=0, description="Spending limit for one period")
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: datetime = Field(default_factory=datetime.now)
    end_date: Optional[datetime] = None
    rollover: bool = Field(
        default=False,
        description="Stored only; no carry-over is calculated"
    )
    alerts: Optional[BudgetAlertConfig] = None
    is_active: bool = True

    @model_validator(mode='after')
    def validate_dates(self) -> 'BudgetFields':
        if self.end_date is not None and self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class BudgetCreate(BudgetFields):
    """Input for creating a budget tracking one or more categories."""

    name: str = Field(..., min_length=1, max_length=200)
    category_ids: list[str] = Field(..., min_length=1)

    @field_validator('category_ids')
    @classmethod
    def validate_unique_categories(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("Budget category ids must be unique")
        return v


class Budget(BudgetCreate):
    """A persisted budget. `spent` is a denormalized, recomputable cache."""

    id: str = Field(default_factory=new_id)
    user_id: str
    spent: Decimal = Decimal("0")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class LegacyBudget(BudgetFields):
    """
    Older persisted budget shape with a single `categoryId`.

    Still found in imported backups. Convert it with
    `ledger_core.migrations.ensure_current_budget` before use.
    """

    id: str = Field(default_factory=new_id)
    user_id: str
    category_id: str = Field(..., min_length=1)
    spent: Decimal = Decimal("0")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


BudgetRecord = Union[Budget, LegacyBudget]


# =============================================================================
# GOALS
# =============================================================================

class GoalCreate(LedgerModel):
    """Input for creating a savings or debt payoff goal."""

    name: str = Field(..., min_length=1, max_length=200)
    type: GoalType = GoalType.SAVINGS
    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    deadline: Optional[datetime] = None
    account_id: Optional[str] = Field(
        default=None,
        description="Account where the goal's funds are held"
    )
    color: Optional[str] = None
    icon: Optional[str] = None


class Goal(GoalCreate):
    id: str = Field(default_factory=new_id)
    user_id: str
    status: GoalStatus = GoalStatus.ACTIVE
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


# =============================================================================
# USERS
# =============================================================================

class NotificationSettings(LedgerModel):
    budget_alerts: bool = True
    bill_reminders: bool = True
    weekly_reports: bool = True
    unusual_spending: bool = True


class UserSettings(LedgerModel):
    """User preferences. Only financial_month_start affects calculations."""

    currency: str = "USD"
    date_format: str = "MM/dd/yyyy"
    theme: Theme = Theme.SYSTEM
    language: str = "en"
    financial_month_start: int = Field(
        default=1,
        description="Day of month the financial month starts on (1-31)"
    )
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    @field_validator('financial_month_start', mode='before')
    @classmethod
    def clamp_month_start(cls, v) -> int:
        return max(1, min(31, int(v)))


class User(LedgerModel):
    id: str = Field(default_factory=new_id)
    email: str = ""
    display_name: str = ""
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    mode: UserMode = UserMode.GUEST
    settings: UserSettings = Field(default_factory=UserSettings)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class AuthSession(LedgerModel):
    """Provider-neutral session shape; token handling lives outside the core."""

    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None
    user_id: str
