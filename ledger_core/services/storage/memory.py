"""
In-Memory Storage Implementation

Reference backend for the ledger storage contract. Used by tests and as
the default backend; it is also the executable description of the
contract's semantics for other backends.

DESIGN DECISION: Records are stored as validated pydantic models in
insertion-ordered dicts. Every update goes through `model_validate`, so
a backend write can never store a record that violates an entity
invariant. Methods contain no awaits between read and write, so each
call is atomic on a single event loop.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, TypeVar
from uuid import UUID

import structlog

from ledger_core.config import get_settings
from ledger_core.migrations.normalization import (
    generate_migration_report,
    prepare_import_payload,
)
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
    GoalStatus,
    LedgerModel,
    Transaction,
    TransactionCreate,
    TransactionType,
    User,
)
from ledger_core.models.progress import MigrationCounts, MigrationReport, MigrationResult
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
from ledger_core.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageConflictError,
    StorageError,
)


logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=LedgerModel)

# Fields an update dict may never change
_IMMUTABLE_FIELDS = frozenset({"id", "user_id", "created_at"})


def _merged(current: M, updates: dict[str, Any], protected: frozenset = frozenset()) -> M:
    """Re-validate a record with updates applied."""
    data = current.model_dump()
    blocked = _IMMUTABLE_FIELDS | protected
    data.update({key: value for key, value in updates.items() if key not in blocked})
    if "updated_at" in type(current).model_fields:
        data["updated_at"] = datetime.now()
    return type(current).model_validate(data)


def _sort_options(sort_by: Optional[str], direction: str) -> Optional[QueryOptions]:
    if not sort_by:
        return None
    return QueryOptions(sort_by=sort_by, sort_order=direction)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dict-backed implementation of the full ledger storage contract."""

    def __init__(self):
        self._users: dict[str, User] = {}
        self._accounts: dict[str, Account] = {}
        self._categories: dict[str, Category] = {}
        self._transactions: dict[str, Transaction] = {}
        self._budgets: dict[str, Budget] = {}
        self._goals: dict[str, Goal] = {}

    def _require(self, store: dict[str, M], record_id: str, kind: str) -> M:
        record = store.get(record_id)
        if record is None:
            raise NotFoundError(f"{kind} not found: {record_id}")
        return record

    def _update(
        self,
        store: dict[str, M],
        record_id: str,
        updates: dict[str, Any],
        kind: str,
        protected: frozenset = frozenset(),
    ) -> M:
        updated = _merged(self._require(store, record_id, kind), updates, protected)
        store[record_id] = updated
        return updated

    def _delete(self, store: dict[str, M], record_id: str, kind: str) -> None:
        self._require(store, record_id, kind)
        del store[record_id]

    # ==================== Users ====================

    async def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def create_user(self, user: User) -> User:
        if user.id in self._users:
            raise DuplicateError(f"User already exists: {user.id}")
        self._users[user.id] = user
        return user

    async def update_user(self, user_id: str, updates: dict[str, Any]) -> User:
        return self._update(self._users, user_id, updates, "User")

    async def delete_user(self, user_id: str) -> None:
        self._delete(self._users, user_id, "User")

    # ==================== Accounts ====================

    async def get_accounts(
        self,
        user_id: str,
        filters: Optional[AccountFilters] = None,
    ) -> list[Account]:
        return [
            account for account in self._accounts.values()
            if account.user_id == user_id and (filters is None or filters.matches(account))
        ]

    async def get_account(self, account_id: str) -> Optional[Account]:
        return self._accounts.get(account_id)

    async def create_account(self, user_id: str, data: AccountCreate) -> Account:
        account = Account(**data.model_dump(), user_id=user_id)
        self._accounts[account.id] = account
        return account

    async def update_account(self, account_id: str, updates: dict[str, Any]) -> Account:
        """
        Update account fields. The cached balance is not writable here;
        changing initial_balance shifts it by the same amount.
        """
        current = self._require(self._accounts, account_id, "Account")
        updated = _merged(current, updates, protected=frozenset({"balance"}))
        shift = updated.initial_balance - current.initial_balance
        if shift:
            updated = updated.model_copy(update={"balance": current.balance + shift})
        self._accounts[account_id] = updated
        return updated

    async def delete_account(self, account_id: str) -> None:
        self._delete(self._accounts, account_id, "Account")

    async def update_account_balance(
        self,
        account_id: str,
        new_balance: Decimal,
        expected_balance: Optional[Decimal] = None,
    ) -> None:
        account = self._require(self._accounts, account_id, "Account")
        if expected_balance is not None and account.balance != Decimal(expected_balance):
            raise StorageConflictError(
                f"Balance of {account_id} changed: expected {expected_balance}, "
                f"found {account.balance}"
            )
        self._accounts[account_id] = account.model_copy(
            update={"balance": Decimal(new_balance), "updated_at": datetime.now()}
        )

    # ==================== Categories ====================

    async def get_categories(
        self,
        user_id: str,
        filters: Optional[CategoryFilters] = None,
    ) -> list[Category]:
        matching = [
            category for category in self._categories.values()
            if category.user_id == user_id and (filters is None or filters.matches(category))
        ]
        options = _sort_options(filters.sort_by, filters.sort_direction) if filters else None
        return apply_query_options(matching, options, default_sort="order")

    async def get_category(self, category_id: str) -> Optional[Category]:
        return self._categories.get(category_id)

    async def create_category(
        self,
        user_id: str,
        data: CategoryCreate,
        category_id: Optional[str] = None,
    ) -> Category:
        if category_id is not None and category_id in self._categories:
            raise DuplicateError(f"Category already exists: {category_id}")
        extra = {"id": category_id} if category_id is not None else {}
        category = Category(**data.model_dump(), user_id=user_id, **extra)
        self._categories[category.id] = category
        return category

    async def update_category(self, category_id: str, updates: dict[str, Any]) -> Category:
        return self._update(self._categories, category_id, updates, "Category")

    async def delete_category(self, category_id: str) -> None:
        self._delete(self._categories, category_id, "Category")

    # ==================== Transactions ====================

    async def get_transactions(
        self,
        user_id: str,
        filters: Optional[TransactionFilters] = None,
        options: Optional[QueryOptions] = None,
    ) -> list[Transaction]:
        matching = [
            tx for tx in self._transactions.values()
            if tx.user_id == user_id and (filters is None or filters.matches(tx))
        ]
        return apply_query_options(matching, options, default_sort="date", default_order="desc")

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    async def create_transaction(self, user_id: str, data: TransactionCreate) -> Transaction:
        tx = Transaction(**data.model_dump(), user_id=user_id)
        self._transactions[tx.id] = tx
        return tx

    async def update_transaction(
        self,
        transaction_id: str,
        updates: dict[str, Any],
    ) -> Transaction:
        return self._update(self._transactions, transaction_id, updates, "Transaction")

    async def delete_transaction(self, transaction_id: str) -> None:
        self._delete(self._transactions, transaction_id, "Transaction")

    async def get_transactions_by_account(
        self,
        account_id: str,
        options: Optional[QueryOptions] = None,
    ) -> list[Transaction]:
        matching = [tx for tx in self._transactions.values() if tx.touches_account(account_id)]
        return apply_query_options(matching, options, default_sort="date", default_order="desc")

    async def get_transactions_by_category(
        self,
        category_id: str,
        options: Optional[QueryOptions] = None,
    ) -> list[Transaction]:
        matching = [tx for tx in self._transactions.values() if tx.category_id == category_id]
        return apply_query_options(matching, options, default_sort="date", default_order="desc")

    async def get_transaction_count(
        self,
        user_id: str,
        filters: Optional[TransactionFilters] = None,
    ) -> int:
        return sum(
            1 for tx in self._transactions.values()
            if tx.user_id == user_id and (filters is None or filters.matches(tx))
        )

    # ==================== Budgets ====================

    async def get_budgets(
        self,
        user_id: str,
        filters: Optional[BudgetFilters] = None,
    ) -> list[Budget]:
        matching = [
            budget for budget in self._budgets.values()
            if budget.user_id == user_id and (filters is None or filters.matches(budget))
        ]
        options = _sort_options(filters.sort_by, filters.sort_direction) if filters else None
        return apply_query_options(matching, options)

    async def get_budget(self, budget_id: str) -> Optional[Budget]:
        return self._budgets.get(budget_id)

    async def create_budget(self, user_id: str, data: BudgetCreate) -> Budget:
        budget = Budget(**data.model_dump(), user_id=user_id)
        self._budgets[budget.id] = budget
        return budget

    async def update_budget(self, budget_id: str, updates: dict[str, Any]) -> Budget:
        return self._update(self._budgets, budget_id, updates, "Budget")

    async def delete_budget(self, budget_id: str) -> None:
        self._delete(self._budgets, budget_id, "Budget")

    async def update_budget_spent(self, budget_id: str, spent: Decimal) -> None:
        budget = self._require(self._budgets, budget_id, "Budget")
        self._budgets[budget_id] = budget.model_copy(
            update={"spent": Decimal(spent), "updated_at": datetime.now()}
        )

    # ==================== Goals ====================

    async def get_goals(
        self,
        user_id: str,
        filters: Optional[GoalFilters] = None,
    ) -> list[Goal]:
        matching = [
            goal for goal in self._goals.values()
            if goal.user_id == user_id and (filters is None or filters.matches(goal))
        ]
        options = _sort_options(filters.sort_by, filters.sort_direction) if filters else None
        return apply_query_options(matching, options)

    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        return self._goals.get(goal_id)

    async def create_goal(self, user_id: str, data: GoalCreate) -> Goal:
        goal = Goal(**data.model_dump(), user_id=user_id)
        self._goals[goal.id] = goal
        return goal

    async def update_goal(self, goal_id: str, updates: dict[str, Any]) -> Goal:
        return self._update(self._goals, goal_id, updates, "Goal")

    async def delete_goal(self, goal_id: str) -> None:
        self._delete(self._goals, goal_id, "Goal")

    async def update_goal_amount(self, goal_id: str, amount: Decimal) -> None:
        self._update(self._goals, goal_id, {"current_amount": Decimal(amount)}, "Goal")

    def _goal_transaction(
        self,
        goal: Goal,
        tx_type: TransactionType,
        amount: Decimal,
        account_id: str,
        description: str,
    ) -> Transaction:
        return Transaction(
            user_id=goal.user_id,
            account_id=account_id,
            amount=amount,
            type=tx_type,
            goal_id=goal.id,
            category_id=tx_type.value,
            description=description,
        )

    async def contribute_to_goal(
        self,
        goal_id: str,
        amount: Decimal,
        account_id: str,
        description: Optional[str] = None,
    ) -> Transaction:
        goal = self._require(self._goals, goal_id, "Goal")
        amount = Decimal(amount)

        tx = self._goal_transaction(
            goal,
            TransactionType.GOAL_CONTRIBUTION,
            amount,
            account_id,
            description or f"Contribution to {goal.name}",
        )
        new_amount = goal.current_amount + amount
        updates: dict[str, Any] = {"current_amount": new_amount}
        if new_amount >= goal.target_amount and goal.status == GoalStatus.ACTIVE:
            updates["status"] = GoalStatus.COMPLETED
        updated_goal = _merged(goal, updates)

        self._transactions[tx.id] = tx
        self._goals[goal_id] = updated_goal
        return tx

    async def withdraw_from_goal(
        self,
        goal_id: str,
        amount: Decimal,
        account_id: str,
        description: Optional[str] = None,
    ) -> Transaction:
        goal = self._require(self._goals, goal_id, "Goal")
        amount = Decimal(amount)
        if amount > goal.current_amount:
            raise ValueError(
                f"Cannot withdraw {amount} from goal {goal_id} holding {goal.current_amount}"
            )

        tx = self._goal_transaction(
            goal,
            TransactionType.GOAL_WITHDRAWAL,
            amount,
            account_id,
            description or f"Withdrawal from {goal.name}",
        )
        new_amount = goal.current_amount - amount
        updates: dict[str, Any] = {"current_amount": new_amount}
        if new_amount < goal.target_amount and goal.status == GoalStatus.COMPLETED:
            updates["status"] = GoalStatus.ACTIVE
        updated_goal = _merged(goal, updates)

        self._transactions[tx.id] = tx
        self._goals[goal_id] = updated_goal
        return tx

    # ==================== Backup & Restore ====================

    async def export_database(self, user_id: Optional[str] = None) -> str:
        def owned(store: dict[str, M]) -> list[M]:
            return [r for r in store.values() if user_id is None or r.user_id == user_id]

        user = self._users.get(user_id) if user_id else None
        snapshot = ExportData(
            users=[u for u in self._users.values() if user_id is None or u.id == user_id],
            accounts=owned(self._accounts),
            categories=owned(self._categories),
            transactions=owned(self._transactions),
            budgets=owned(self._budgets),
            goals=owned(self._goals),
            settings=user.settings if user else None,
            version=get_settings().ledger.export_version,
        )
        return snapshot.model_dump_json(by_alias=True)

    async def import_database(
        self,
        json_data: str,
        target_user_id: Optional[str] = None,
    ) -> MigrationReport:
        try:
            raw = json.loads(json_data)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid backup payload: {e}") from e
        if not isinstance(raw, dict):
            raise StorageError("Backup payload must be a JSON object")

        payload = prepare_import_payload(raw, target_user_id)

        for user in payload.users:
            self._users[user.id] = user
        for account in payload.accounts:
            self._accounts[account.id] = account
        for category in payload.categories:
            self._categories[category.id] = category
        for tx in payload.transactions:
            self._transactions[tx.id] = tx
        for budget in payload.budgets:
            self._budgets[budget.id] = budget
        for goal in payload.goals:
            self._goals[goal.id] = goal

        if payload.settings is not None and target_user_id in self._users:
            self._users[target_user_id] = self._users[target_user_id].model_copy(
                update={"settings": payload.settings}
            )

        report = generate_migration_report(payload)
        logger.info(
            "database_imported",
            target_user_id=target_user_id,
            total_records=report.total_records,
        )
        return report

    async def clear_database(self) -> None:
        for store in (
            self._users,
            self._accounts,
            self._categories,
            self._transactions,
            self._budgets,
            self._goals,
        ):
            store.clear()
        logger.warning("database_cleared")

    # ==================== Utility ====================

    async def get_total_balance(self, user_id: str, exclude_inactive: bool = False) -> Decimal:
        return sum(
            (
                account.balance for account in self._accounts.values()
                if account.user_id == user_id and (account.is_active or not exclude_inactive)
            ),
            Decimal("0"),
        )

    async def get_net_worth(self, user_id: str) -> Decimal:
        assets = Decimal("0")
        liabilities = Decimal("0")
        for account in self._accounts.values():
            if account.user_id != user_id:
                continue
            if account.balance >= 0:
                assets += account.balance
            else:
                liabilities += abs(account.balance)
        return assets - liabilities

    async def migrate_guest_data_to_user(
        self,
        from_guest_id: str,
        to_user_id: str,
    ) -> MigrationResult:
        try:
            now = datetime.now()

            def rekey(store: dict[str, M], skip_defaults: bool = False) -> dict[str, M]:
                moved = {}
                for record_id, record in store.items():
                    if record.user_id != from_guest_id:
                        continue
                    if skip_defaults and getattr(record, "is_default", False):
                        continue
                    update: dict[str, Any] = {"user_id": to_user_id}
                    if "updated_at" in type(record).model_fields:
                        update["updated_at"] = now
                    moved[record_id] = record.model_copy(update=update)
                return moved

            # Build everything first so a failure leaves the store untouched
            transactions = rekey(self._transactions)
            budgets = rekey(self._budgets)
            goals = rekey(self._goals)
            accounts = rekey(self._accounts)
            categories = rekey(self._categories, skip_defaults=True)

            self._transactions.update(transactions)
            self._budgets.update(budgets)
            self._goals.update(goals)
            self._accounts.update(accounts)
            self._categories.update(categories)
            self._users.pop(from_guest_id, None)

            return MigrationResult(
                success=True,
                migrated_counts=MigrationCounts(
                    transactions=len(transactions),
                    budgets=len(budgets),
                    goals=len(goals),
                    accounts=len(accounts),
                    categories=len(categories),
                ),
            )
        except Exception as e:
            logger.error(
                "guest_migration_error",
                from_guest_id=from_guest_id,
                to_user_id=to_user_id,
                error=str(e),
            )
            return MigrationResult(success=False, error=str(e))


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
