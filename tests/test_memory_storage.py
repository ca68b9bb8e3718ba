"""Tests for the in-memory storage backend."""

import json
import pytest
from decimal import Decimal

from ledger_core.models.entities import (
    AccountCreate,
    AccountType,
    BudgetCreate,
    CategoryCreate,
    CategoryType,
    GoalCreate,
    GoalStatus,
    TransactionType,
    User,
)
from ledger_core.models.queries import (
    AccountFilters,
    BudgetFilters,
    QueryOptions,
    TransactionFilters,
)
from ledger_core.services.storage import (
    DuplicateError,
    InMemoryLedgerStorage,
    NotFoundError,
    StorageConflictError,
    StorageError,
    available_backends,
    create_storage,
)

from helpers import USER_ID, at, expense, income, transfer


class TestUsersAndAccounts:
    """Tests for user and account records."""

    @pytest.mark.asyncio
    async def test_duplicate_user_rejected(self, storage, user):
        with pytest.raises(DuplicateError):
            await storage.create_user(User(id=user.id))

    @pytest.mark.asyncio
    async def test_update_user_settings(self, storage, user):
        """Nested settings can be replaced through an update dict."""
        updated = await storage.update_user(user.id, {"settings": {"financial_month_start": 15}})
        assert updated.settings.financial_month_start == 15

    @pytest.mark.asyncio
    async def test_account_filters(self, storage, user, checking):
        """Accounts filter by type, active flag and name."""
        await storage.create_account(user.id, AccountCreate(name="Visa", type=AccountType.CREDIT))
        assert len(await storage.get_accounts(user.id)) == 2
        assert [a.name for a in await storage.get_accounts(user.id, AccountFilters(type="credit"))] == ["Visa"]
        assert [a.name for a in await storage.get_accounts(user.id, AccountFilters(search="check"))] == ["Checking"]

    @pytest.mark.asyncio
    async def test_balance_not_writable_through_update(self, storage, checking):
        """update_account never sets the cached balance directly."""
        updated = await storage.update_account(checking.id, {"balance": Decimal("1"), "name": "Main"})
        assert updated.balance == Decimal("1000")
        assert updated.name == "Main"

    @pytest.mark.asyncio
    async def test_initial_balance_change_shifts_balance(self, storage, checking):
        """Raising the initial balance raises the cached balance by the same amount."""
        updated = await storage.update_account(checking.id, {"initial_balance": Decimal("1200")})
        assert updated.balance == Decimal("1200")

    @pytest.mark.asyncio
    async def test_immutable_fields(self, storage, checking):
        """id and owner cannot be changed by an update."""
        updated = await storage.update_account(checking.id, {"id": "other", "user_id": "someone"})
        assert updated.id == checking.id
        assert updated.user_id == USER_ID

    @pytest.mark.asyncio
    async def test_balance_compare_and_set(self, storage, checking):
        """A stale expected balance is a conflict."""
        with pytest.raises(StorageConflictError):
            await storage.update_account_balance(checking.id, Decimal("5"), expected_balance=Decimal("999"))
        await storage.update_account_balance(checking.id, Decimal("5"), expected_balance=Decimal("1000"))
        assert (await storage.get_account(checking.id)).balance == Decimal("5")

    @pytest.mark.asyncio
    async def test_missing_records_raise(self, storage):
        with pytest.raises(NotFoundError):
            await storage.update_account("nope", {"name": "x"})
        with pytest.raises(NotFoundError):
            await storage.delete_transaction("nope")
        assert await storage.get_goal("nope") is None


class TestTransactions:
    """Tests for transaction queries."""

    @pytest.mark.asyncio
    async def test_create_does_not_touch_balances(self, storage, checking, food):
        """Persisting a transaction is a record write only."""
        await storage.create_transaction(USER_ID, expense(checking.id, "50"))
        assert (await storage.get_account(checking.id)).balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_default_order_newest_first(self, storage, checking, food):
        await storage.create_transaction(USER_ID, expense(checking.id, "1", date=at(2024, 1, 1)))
        await storage.create_transaction(USER_ID, expense(checking.id, "2", date=at(2024, 1, 3)))
        result = await storage.get_transactions(USER_ID)
        assert [tx.amount for tx in result] == [Decimal("2"), Decimal("1")]

    @pytest.mark.asyncio
    async def test_filters_and_pagination(self, storage, checking, food, salary):
        for day in range(1, 6):
            await storage.create_transaction(USER_ID, expense(checking.id, str(day), date=at(2024, 2, day)))
        await storage.create_transaction(USER_ID, income(checking.id, "900", date=at(2024, 2, 2)))

        expenses = await storage.get_transactions(
            USER_ID,
            TransactionFilters(type=TransactionType.EXPENSE, min_amount=Decimal("2")),
            QueryOptions(sort_by="amount", limit=2),
        )
        assert [tx.amount for tx in expenses] == [Decimal("2"), Decimal("3")]
        assert await storage.get_transaction_count(USER_ID, TransactionFilters(type="income")) == 1

    @pytest.mark.asyncio
    async def test_by_account_includes_incoming_transfers(self, storage, checking, savings):
        await storage.create_transaction(USER_ID, transfer(checking.id, savings.id, "10"))
        assert len(await storage.get_transactions_by_account(savings.id)) == 1

    @pytest.mark.asyncio
    async def test_by_category(self, storage, checking, food):
        await storage.create_transaction(USER_ID, expense(checking.id, "10"))
        assert len(await storage.get_transactions_by_category(food.id)) == 1

    @pytest.mark.asyncio
    async def test_update_revalidates(self, storage, checking, food):
        """Updates that break an invariant are rejected."""
        tx = await storage.create_transaction(USER_ID, expense(checking.id, "10"))
        with pytest.raises(ValueError):
            await storage.update_transaction(tx.id, {"type": TransactionType.TRANSFER})


class TestBudgetsAndGoals:
    """Tests for budgets and goal units."""

    @pytest.mark.asyncio
    async def test_budget_spent_and_filters(self, storage, user, food):
        budget = await storage.create_budget(
            user.id,
            BudgetCreate(name="Food", amount=Decimal("300"), category_ids=[food.id]),
        )
        await storage.update_budget_spent(budget.id, Decimal("120"))
        assert (await storage.get_budget(budget.id)).spent == Decimal("120")
        assert len(await storage.get_budgets(user.id, BudgetFilters(category_id=food.id))) == 1
        assert await storage.get_budgets(user.id, BudgetFilters(category_id="expense-rent")) == []

    @pytest.mark.asyncio
    async def test_contribution_completes_goal(self, storage, user, checking):
        """Reaching the target marks the goal completed; balances stay untouched."""
        goal = await storage.create_goal(
            user.id,
            GoalCreate(name="Bike", target_amount=Decimal("200"), current_amount=Decimal("150")),
        )
        tx = await storage.contribute_to_goal(goal.id, Decimal("50"), checking.id)

        stored = await storage.get_goal(goal.id)
        assert stored.current_amount == Decimal("200")
        assert stored.status == GoalStatus.COMPLETED
        assert tx.type == TransactionType.GOAL_CONTRIBUTION
        assert tx.description == "Contribution to Bike"
        assert (await storage.get_account(checking.id)).balance == Decimal("1000")

    @pytest.mark.asyncio
    async def test_withdrawal_reopens_goal(self, storage, user, checking):
        goal = await storage.create_goal(
            user.id,
            GoalCreate(name="Bike", target_amount=Decimal("200"), current_amount=Decimal("150")),
        )
        await storage.contribute_to_goal(goal.id, Decimal("50"), checking.id)
        tx = await storage.withdraw_from_goal(goal.id, Decimal("30"), checking.id, "Repair")

        stored = await storage.get_goal(goal.id)
        assert stored.current_amount == Decimal("170")
        assert stored.status == GoalStatus.ACTIVE
        assert tx.description == "Repair"

    @pytest.mark.asyncio
    async def test_over_withdrawal_rejected(self, storage, user, checking):
        """Cannot take out more than the goal holds."""
        goal = await storage.create_goal(user.id, GoalCreate(name="Bike", target_amount=Decimal("200")))
        with pytest.raises(ValueError):
            await storage.withdraw_from_goal(goal.id, Decimal("1"), checking.id)
        assert await storage.get_transactions(USER_ID) == []


class TestBackup:
    """Tests for export, import and utilities."""

    @pytest.mark.asyncio
    async def test_round_trip(self, storage, user, checking, savings, food, salary):
        """Export, clear and import restores identical records."""
        await storage.create_transaction(USER_ID, expense(checking.id, "12.34", date=at(2024, 3, 1)))
        await storage.create_transaction(USER_ID, transfer(checking.id, savings.id, "100", date=at(2024, 3, 2)))
        await storage.create_budget(
            USER_ID, BudgetCreate(name="Food", amount=Decimal("300"), category_ids=[food.id])
        )
        await storage.create_goal(USER_ID, GoalCreate(name="Trip", target_amount=Decimal("900")))

        before = {
            "accounts": await storage.get_accounts(USER_ID),
            "categories": await storage.get_categories(USER_ID),
            "transactions": await storage.get_transactions(USER_ID),
            "budgets": await storage.get_budgets(USER_ID),
            "goals": await storage.get_goals(USER_ID),
        }
        payload = await storage.export_database(USER_ID)
        await storage.clear_database()
        assert await storage.get_accounts(USER_ID) == []

        report = await storage.import_database(payload)

        assert report.record_counts["transactions"] == 2
        assert report.detected_user_id == USER_ID
        assert await storage.get_accounts(USER_ID) == before["accounts"]
        assert await storage.get_categories(USER_ID) == before["categories"]
        assert await storage.get_transactions(USER_ID) == before["transactions"]
        assert await storage.get_budgets(USER_ID) == before["budgets"]
        assert await storage.get_goals(USER_ID) == before["goals"]
        assert await storage.get_user(USER_ID) == user

    @pytest.mark.asyncio
    async def test_export_is_camel_case(self, storage, user, checking):
        data = json.loads(await storage.export_database(USER_ID))
        assert data["accounts"][0]["initialBalance"] == "1000"
        assert data["version"] == "1.0.0"
        assert data["settings"]["financialMonthStart"] == 1

    @pytest.mark.asyncio
    async def test_import_rejects_garbage(self, storage):
        with pytest.raises(StorageError):
            await storage.import_database("not json")
        with pytest.raises(StorageError):
            await storage.import_database("[1, 2]")

    @pytest.mark.asyncio
    async def test_totals(self, storage, user, checking, savings):
        await storage.create_account(
            user.id,
            AccountCreate(name="Card", type=AccountType.CREDIT, initial_balance=Decimal("-200"), is_active=False),
        )
        assert await storage.get_total_balance(user.id) == Decimal("1300")
        assert await storage.get_total_balance(user.id, exclude_inactive=True) == Decimal("1500")
        assert await storage.get_net_worth(user.id) == Decimal("1300")


class TestGuestMigration:
    """Tests for re-keying guest data."""

    @pytest.mark.asyncio
    async def test_moves_everything_but_default_categories(self, storage):
        guest_id = "guest-123"
        await storage.create_user(User(id=guest_id))
        account = await storage.create_account(guest_id, AccountCreate(name="Cash", type=AccountType.CASH))
        await storage.create_category(guest_id, CategoryCreate(name="Food", type=CategoryType.EXPENSE))
        await storage.create_category(
            guest_id, CategoryCreate(name="Misc", type=CategoryType.EXPENSE, is_default=True)
        )
        await storage.create_transaction(guest_id, expense(account.id, "5", category_id="x"))

        result = await storage.migrate_guest_data_to_user(guest_id, "auth-1")

        assert result.success
        assert result.migrated_counts.accounts == 1
        assert result.migrated_counts.categories == 1
        assert result.migrated_counts.transactions == 1
        assert await storage.get_user(guest_id) is None
        assert len(await storage.get_transactions("auth-1")) == 1
        assert len(await storage.get_categories(guest_id)) == 1


class TestBackendRegistry:
    """Tests for backend selection."""

    def test_memory_backend_default(self):
        ledger, audit = create_storage()
        assert isinstance(ledger, InMemoryLedgerStorage)
        assert "memory" in available_backends()

    def test_unknown_backend(self):
        with pytest.raises(StorageError):
            create_storage("sqlite")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
