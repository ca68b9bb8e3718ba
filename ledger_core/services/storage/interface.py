"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the in-memory store for a key-value or SQL backend
2. Use in-memory storage for testing
3. Keep the ledger coordinator and engines decoupled from any engine

Backends are selected by name at process start (see `create_storage`);
business code only ever sees this contract.

Concurrency contract: reading an account's balance and writing it back is
a critical section per account. Backends that detect a lost update raise
StorageConflictError from `update_account_balance` when `expected_balance`
no longer matches; callers retry.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from ledger_core.models.audit import AuditEvent
from ledger_core.models.entities import (
    Account,
    AccountCreate,
    Budget,
    BudgetCreate,
    Category,
    CategoryCreate,
    Goal,
    GoalCreate,
    Transaction,
    TransactionCreate,
    User,
)
from ledger_core.models.progress import MigrationReport, MigrationResult
from ledger_core.models.queries import (
    AccountFilters,
    BudgetFilters,
    CategoryFilters,
    GoalFilters,
    QueryOptions,
    TransactionFilters,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger persistence.

    Any storage implementation must implement these methods.
    Getters return None for unknown ids; updates and deletes of unknown
    ids raise NotFoundError. Update methods take a dict of snake_case
    field changes and return the re-validated record.
    """

    # ==================== Users ====================

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def create_user(self, user: User) -> User:
        """
        Raises:
            DuplicateError: If a user with the same id exists
        """
        pass

    @abstractmethod
    async def update_user(self, user_id: str, updates: dict[str, Any]) -> User:
        pass

    @abstractmethod
    async def delete_user(self, user_id: str) -> None:
        pass

    # ==================== Accounts ====================

    @abstractmethod
    async def get_accounts(
        self,
        user_id: str,
        filters: Optional[AccountFilters] = None,
    ) -> list[Account]:
        pass

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        pass

    @abstractmethod
    async def create_account(self, user_id: str, data: AccountCreate) -> Account:
        """
        Create an account whose cached balance starts at its initial balance.
        """
        pass

    @abstractmethod
    async def update_account(self, account_id: str, updates: dict[str, Any]) -> Account:
        pass

    @abstractmethod
    async def delete_account(self, account_id: str) -> None:
        """
        Delete an account record. Does not cascade to transactions.
        """
        pass

    @abstractmethod
    async def update_account_balance(
        self,
        account_id: str,
        new_balance: Decimal,
        expected_balance: Optional[Decimal] = None,
    ) -> None:
        """
        Overwrite an account's cached balance.

        Args:
            account_id: Account to update
            new_balance: Balance to store
            expected_balance: If given, the write only succeeds when the
                stored balance still equals this value (compare-and-set)

        Raises:
            NotFoundError: If the account doesn't exist
            StorageConflictError: If expected_balance no longer matches
        """
        pass

    # ==================== Categories ====================

    @abstractmethod
    async def get_categories(
        self,
        user_id: str,
        filters: Optional[CategoryFilters] = None,
    ) -> list[Category]:
        pass

    @abstractmethod
    async def get_category(self, category_id: str) -> Optional[Category]:
        pass

    @abstractmethod
    async def create_category(
        self,
        user_id: str,
        data: CategoryCreate,
        category_id: Optional[str] = None,
    ) -> Category:
        """
        Args:
            user_id: Owner
            data: Category fields
            category_id: Explicit id, e.g. a canonical 'expense-food'.
                Generated when omitted.

        Raises:
            DuplicateError: If category_id is already taken
        """
        pass

    @abstractmethod
    async def update_category(self, category_id: str, updates: dict[str, Any]) -> Category:
        pass

    @abstractmethod
    async def delete_category(self, category_id: str) -> None:
        pass

    # ==================== Transactions ====================

    @abstractmethod
    async def get_transactions(
        self,
        user_id: str,
        filters: Optional[TransactionFilters] = None,
        options: Optional[QueryOptions] = None,
    ) -> list[Transaction]:
        """
        List a user's transactions, newest first unless options say otherwise.
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def create_transaction(self, user_id: str, data: TransactionCreate) -> Transaction:
        """
        Persist a transaction record only.

        Balance side effects are the ledger coordinator's job, never the
        backend's.
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        transaction_id: str,
        updates: dict[str, Any],
    ) -> Transaction:
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: str) -> None:
        pass

    @abstractmethod
    async def get_transactions_by_account(
        self,
        account_id: str,
        options: Optional[QueryOptions] = None,
    ) -> list[Transaction]:
        """Transactions where the account is the source or the destination."""
        pass

    @abstractmethod
    async def get_transactions_by_category(
        self,
        category_id: str,
        options: Optional[QueryOptions] = None,
    ) -> list[Transaction]:
        pass

    @abstractmethod
    async def get_transaction_count(
        self,
        user_id: str,
        filters: Optional[TransactionFilters] = None,
    ) -> int:
        pass

    # ==================== Budgets ====================

    @abstractmethod
    async def get_budgets(
        self,
        user_id: str,
        filters: Optional[BudgetFilters] = None,
    ) -> list[Budget]:
        pass

    @abstractmethod
    async def get_budget(self, budget_id: str) -> Optional[Budget]:
        pass

    @abstractmethod
    async def create_budget(self, user_id: str, data: BudgetCreate) -> Budget:
        pass

    @abstractmethod
    async def update_budget(self, budget_id: str, updates: dict[str, Any]) -> Budget:
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: str) -> None:
        pass

    @abstractmethod
    async def update_budget_spent(self, budget_id: str, spent: Decimal) -> None:
        pass

    # ==================== Goals ====================

    @abstractmethod
    async def get_goals(
        self,
        user_id: str,
        filters: Optional[GoalFilters] = None,
    ) -> list[Goal]:
        pass

    @abstractmethod
    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        pass

    @abstractmethod
    async def create_goal(self, user_id: str, data: GoalCreate) -> Goal:
        pass

    @abstractmethod
    async def update_goal(self, goal_id: str, updates: dict[str, Any]) -> Goal:
        pass

    @abstractmethod
    async def delete_goal(self, goal_id: str) -> None:
        pass

    @abstractmethod
    async def update_goal_amount(self, goal_id: str, amount: Decimal) -> None:
        pass

    @abstractmethod
    async def contribute_to_goal(
        self,
        goal_id: str,
        amount: Decimal,
        account_id: str,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Record a contribution as one logical unit.

        Creates the goal-contribution transaction and raises the goal's
        current amount; reaching the target marks the goal completed.
        Does not touch account balances.

        Returns:
            The created transaction

        Raises:
            NotFoundError: If the goal doesn't exist
        """
        pass

    @abstractmethod
    async def withdraw_from_goal(
        self,
        goal_id: str,
        amount: Decimal,
        account_id: str,
        description: Optional[str] = None,
    ) -> Transaction:
        """
        Record a withdrawal as one logical unit.

        Creates the goal-withdrawal transaction and lowers the goal's
        current amount. Does not touch account balances.

        Raises:
            NotFoundError: If the goal doesn't exist
            ValueError: If the amount exceeds the goal's current amount
        """
        pass

    # ==================== Backup & Restore ====================

    @abstractmethod
    async def export_database(self, user_id: Optional[str] = None) -> str:
        """
        Serialize a snapshot (camelCase JSON) of one user's data, or of
        everything when user_id is None.
        """
        pass

    @abstractmethod
    async def import_database(
        self,
        json_data: str,
        target_user_id: Optional[str] = None,
    ) -> MigrationReport:
        """
        Import a snapshot, upserting records by id.

        Legacy shapes are normalized and ownership is remapped to
        target_user_id when given. Records without an id are dropped.
        Not atomic as a whole.

        Returns:
            Report of what the payload contained
        """
        pass

    @abstractmethod
    async def clear_database(self) -> None:
        """Delete ALL data."""
        pass

    # ==================== Utility ====================

    @abstractmethod
    async def get_total_balance(self, user_id: str, exclude_inactive: bool = False) -> Decimal:
        pass

    @abstractmethod
    async def get_net_worth(self, user_id: str) -> Decimal:
        """Sum of non-negative balances minus sum of |negative balances|."""
        pass

    @abstractmethod
    async def migrate_guest_data_to_user(
        self,
        from_guest_id: str,
        to_user_id: str,
    ) -> MigrationResult:
        """
        Re-key a guest's records to an authenticated user.

        Moves transactions, budgets, goals, accounts and non-default
        categories, then deletes the guest user record. Never raises:
        failures come back as success=False with the error message.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for one user action, in chronological order.
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConflictError(StorageError):
    """A compare-and-set write lost against a concurrent writer. Retryable."""
    pass
