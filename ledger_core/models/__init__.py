"""
Data Models Package

This package contains all Pydantic models used by the ledger core.
All data crossing the storage boundary must conform to these schemas.
"""

from ledger_core.models.entities import (
    GOAL_TRANSACTION_TYPES,
    Account,
    AccountCreate,
    AccountType,
    AuthSession,
    Budget,
    BudgetAlertConfig,
    BudgetCreate,
    BudgetPeriod,
    BudgetRecord,
    Category,
    CategoryCreate,
    CategoryType,
    Goal,
    GoalCreate,
    GoalStatus,
    GoalType,
    LedgerModel,
    LegacyBudget,
    NotificationSettings,
    Theme,
    Transaction,
    TransactionCreate,
    TransactionType,
    User,
    UserMode,
    UserSettings,
    new_id,
    to_naive_utc,
)
from ledger_core.models.queries import (
    AccountFilters,
    BudgetFilters,
    CategoryFilters,
    ExportData,
    GoalFilters,
    QueryOptions,
    TransactionFilters,
    apply_query_options,
)
from ledger_core.models.progress import (
    AccountBalances,
    BalanceCheck,
    BudgetProgress,
    CategorySpending,
    GoalProgress,
    MigrationCounts,
    MigrationReport,
    MigrationResult,
    MonthlyStats,
    MutationResult,
    PeriodRange,
)
from ledger_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Entities
    "GOAL_TRANSACTION_TYPES",
    "Account",
    "AccountCreate",
    "AccountType",
    "AuthSession",
    "Budget",
    "BudgetAlertConfig",
    "BudgetCreate",
    "BudgetPeriod",
    "BudgetRecord",
    "Category",
    "CategoryCreate",
    "CategoryType",
    "Goal",
    "GoalCreate",
    "GoalStatus",
    "GoalType",
    "LedgerModel",
    "LegacyBudget",
    "NotificationSettings",
    "Theme",
    "Transaction",
    "TransactionCreate",
    "TransactionType",
    "User",
    "UserMode",
    "UserSettings",
    "new_id",
    "to_naive_utc",
    # Queries
    "AccountFilters",
    "BudgetFilters",
    "CategoryFilters",
    "ExportData",
    "GoalFilters",
    "QueryOptions",
    "TransactionFilters",
    "apply_query_options",
    # Results
    "AccountBalances",
    "BalanceCheck",
    "BudgetProgress",
    "CategorySpending",
    "GoalProgress",
    "MigrationCounts",
    "MigrationReport",
    "MigrationResult",
    "MonthlyStats",
    "MutationResult",
    "PeriodRange",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
