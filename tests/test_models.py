"""
Tests for the Ledger Core

Test strategy:
1. Unit tests for individual components (models, engines, validators)
2. Integration tests for flows against the in-memory backend
3. No external services in tests
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import ValidationError

from ledger_core.models.entities import (
    Account,
    AccountCreate,
    AccountType,
    BudgetAlertConfig,
    BudgetCreate,
    Category,
    CategoryType,
    GoalCreate,
    Transaction,
    TransactionCreate,
    TransactionType,
    User,
    UserSettings,
    to_naive_utc,
)
from ledger_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from ledger_core.models.queries import (
    ExportData,
    QueryOptions,
    TransactionFilters,
    apply_query_options,
)


class TestAccountModels:
    """Tests for account models."""

    def test_balance_defaults_to_initial_balance(self):
        """A new account's cached balance starts at its initial balance."""
        account = Account(
            user_id="u1",
            name="Checking",
            type=AccountType.BANK,
            initial_balance=Decimal("250.50"),
        )
        assert account.balance == Decimal("250.50")

    def test_explicit_balance_is_kept(self):
        """A stored balance is not overwritten by the initial balance."""
        account = Account(
            user_id="u1",
            name="Card",
            type=AccountType.CREDIT,
            initial_balance=Decimal("0"),
            balance=Decimal("-40"),
        )
        assert account.balance == Decimal("-40")

    def test_currency_is_uppercased(self):
        """Currency codes are normalized to upper case."""
        account = AccountCreate(name="Wallet", type=AccountType.WALLET, currency="eur")
        assert account.currency == "EUR"

    def test_name_strips_whitespace(self):
        """Whitespace is stripped from string fields."""
        account = AccountCreate(name="  Cash  ", type=AccountType.CASH)
        assert account.name == "Cash"

    def test_camel_case_input_accepted(self):
        """Backups use camelCase field names."""
        account = Account.model_validate({
            "id": "a1",
            "userId": "u1",
            "name": "Checking",
            "type": "bank",
            "initialBalance": "100",
            "isActive": False,
        })
        assert account.user_id == "u1"
        assert account.balance == Decimal("100")
        assert account.is_active is False


class TestTransactionModels:
    """Tests for transaction invariants."""

    def test_transfer_requires_destination(self):
        """Transfers must name a destination account."""
        with pytest.raises(ValidationError):
            TransactionCreate(account_id="a1", amount=Decimal("10"), type=TransactionType.TRANSFER)

    def test_transfer_to_same_account_rejected(self):
        """Source and destination must differ."""
        with pytest.raises(ValidationError):
            TransactionCreate(
                account_id="a1",
                to_account_id="a1",
                amount=Decimal("10"),
                type=TransactionType.TRANSFER,
            )

    def test_only_transfers_have_destination(self):
        """Non-transfer types may not carry to_account_id."""
        with pytest.raises(ValidationError):
            TransactionCreate(
                account_id="a1",
                to_account_id="a2",
                amount=Decimal("10"),
                type=TransactionType.EXPENSE,
                category_id="expense-food",
            )

    def test_goal_types_require_goal(self):
        """Goal contributions must reference a goal."""
        with pytest.raises(ValidationError):
            TransactionCreate(
                account_id="a1",
                amount=Decimal("10"),
                type=TransactionType.GOAL_CONTRIBUTION,
            )

    def test_goal_id_only_on_goal_types(self):
        """Only goal transactions may reference a goal."""
        with pytest.raises(ValidationError):
            TransactionCreate(
                account_id="a1",
                amount=Decimal("10"),
                type=TransactionType.INCOME,
                category_id="income-salary",
                goal_id="g1",
            )

    def test_negative_amount_rejected(self):
        """Amounts are non-negative for ordinary types."""
        with pytest.raises(ValidationError):
            TransactionCreate(
                account_id="a1",
                amount=Decimal("-5"),
                type=TransactionType.EXPENSE,
                category_id="expense-food",
            )

    def test_negative_balance_adjustment_allowed(self):
        """Balance adjustments may be negative."""
        tx = TransactionCreate(
            account_id="a1",
            amount=Decimal("-5"),
            type=TransactionType.BALANCE_ADJUSTMENT,
        )
        assert tx.amount == Decimal("-5")

    def test_expense_requires_category(self):
        """Expense and income transactions carry a category."""
        with pytest.raises(ValidationError):
            TransactionCreate(account_id="a1", amount=Decimal("5"), type=TransactionType.EXPENSE)

    def test_touches_account_covers_both_legs(self):
        """A transfer touches its source and its destination."""
        tx = Transaction(
            user_id="u1",
            account_id="a1",
            to_account_id="a2",
            amount=Decimal("10"),
            type=TransactionType.TRANSFER,
        )
        assert tx.is_transfer
        assert tx.touches_account("a1")
        assert tx.touches_account("a2")
        assert not tx.touches_account("a3")

    def test_hyphenated_type_values(self):
        """Goal and adjustment types use hyphenated wire values."""
        assert TransactionType("goal-contribution") == TransactionType.GOAL_CONTRIBUTION
        assert TransactionType.BALANCE_ADJUSTMENT.value == "balance-adjustment"


class TestDatetimeNormalization:
    """Offset-carrying timestamps are stored as naive UTC."""

    def _payload(self, date: str) -> dict:
        return {
            "userId": "u1",
            "accountId": "a1",
            "amount": "10",
            "type": "expense",
            "categoryId": "expense-food",
            "date": date,
        }

    def test_zulu_timestamp(self):
        """ISO strings ending in Z become naive datetimes at the same UTC instant."""
        tx = Transaction.model_validate(self._payload("2024-12-05T10:00:00.000Z"))
        assert tx.date == datetime(2024, 12, 5, 10, 0)
        assert tx.date.tzinfo is None

    def test_offset_converted_to_utc(self):
        tx = Transaction.model_validate(self._payload("2024-12-05T12:00:00+02:00"))
        assert tx.date == datetime(2024, 12, 5, 10, 0)

    def test_naive_values_untouched(self):
        tx = Transaction.model_validate(self._payload("2024-12-05T10:00:00"))
        assert tx.date == datetime(2024, 12, 5, 10, 0)

    def test_optional_and_filter_datetimes(self):
        """Optional fields and filter bounds follow the same convention."""
        filters = TransactionFilters(
            start_date="2024-12-01T00:00:00Z",
            end_date=datetime(2024, 12, 31, 23, 0, tzinfo=timezone.utc),
        )
        assert filters.start_date.tzinfo is None
        assert filters.end_date == datetime(2024, 12, 31, 23, 0)
        assert TransactionFilters().start_date is None

    def test_aware_and_naive_records_sort_together(self):
        """Imported and locally created records can be ordered by date."""
        imported = Transaction.model_validate(self._payload("2024-12-05T10:00:00Z"))
        local = Transaction.model_validate(self._payload("2024-12-06T09:00:00"))
        assert sorted([local, imported], key=lambda tx: tx.date) == [imported, local]

    def test_helper_passes_other_values_through(self):
        assert to_naive_utc(None) is None
        assert to_naive_utc("text") == "text"


class TestCategoryAndBudgetModels:
    """Tests for categories and budgets."""

    def test_category_cannot_be_own_parent(self):
        """Self-parenting is rejected."""
        with pytest.raises(ValidationError):
            Category(id="c1", user_id="u1", name="Food", type=CategoryType.EXPENSE, parent_id="c1")

    def test_budget_requires_categories(self):
        """A budget tracks at least one category."""
        with pytest.raises(ValidationError):
            BudgetCreate(name="Food", amount=Decimal("100"), category_ids=[])

    def test_budget_categories_unique(self):
        """Duplicate category ids are rejected."""
        with pytest.raises(ValidationError):
            BudgetCreate(name="Food", amount=Decimal("100"), category_ids=["a", "a"])

    def test_budget_amount_positive(self):
        """Budget limit must be greater than zero."""
        with pytest.raises(ValidationError):
            BudgetCreate(name="Food", amount=Decimal("0"), category_ids=["a"])

    def test_budget_end_after_start(self):
        """End date must come after start date."""
        with pytest.raises(ValidationError):
            BudgetCreate(
                name="Food",
                amount=Decimal("100"),
                category_ids=["a"],
                start_date=datetime(2024, 5, 1),
                end_date=datetime(2024, 4, 1),
            )

    def test_alert_thresholds_ascending(self):
        """Thresholds must be strictly ascending."""
        with pytest.raises(ValidationError):
            BudgetAlertConfig(thresholds=[80, 50])

    def test_alert_thresholds_in_range(self):
        """Thresholds are percentages in (0, 100]."""
        with pytest.raises(ValidationError):
            BudgetAlertConfig(thresholds=[50, 120])

    def test_goal_target_positive(self):
        """Goal target must be greater than zero."""
        with pytest.raises(ValidationError):
            GoalCreate(name="Trip", target_amount=Decimal("0"))


class TestUserModels:
    """Tests for users and settings."""

    def test_financial_month_start_clamped(self):
        """Month start day is clamped into 1-31."""
        assert UserSettings(financial_month_start=40).financial_month_start == 31
        assert UserSettings(financial_month_start=0).financial_month_start == 1

    def test_photo_url_alias(self):
        """photo_url serializes as photoURL."""
        user = User(id="u1", photo_url="https://example.com/a.png")
        dumped = user.model_dump(by_alias=True)
        assert dumped["photoURL"] == "https://example.com/a.png"
        assert "displayName" in dumped


class TestQueries:
    """Tests for filters and query options."""

    def _tx(self, amount: str, date: datetime, **kwargs) -> Transaction:
        return Transaction(
            user_id="u1",
            account_id=kwargs.pop("account_id", "a1"),
            amount=Decimal(amount),
            type=kwargs.pop("type", TransactionType.EXPENSE),
            category_id=kwargs.pop("category_id", "expense-food"),
            date=date,
            **kwargs,
        )

    def test_date_bounds_inclusive(self):
        """Both date bounds include the boundary moment."""
        filters = TransactionFilters(
            start_date=datetime(2024, 1, 1),
            end_date=datetime(2024, 1, 31),
        )
        assert filters.matches(self._tx("1", datetime(2024, 1, 1)))
        assert filters.matches(self._tx("1", datetime(2024, 1, 31)))
        assert not filters.matches(self._tx("1", datetime(2024, 2, 1)))

    def test_search_covers_description_and_tags(self):
        """Search is case-insensitive over description and tags."""
        tx = self._tx("1", datetime(2024, 1, 1), description="Lunch", tags=["Work"])
        assert TransactionFilters(search="lunch").matches(tx)
        assert TransactionFilters(search="work").matches(tx)
        assert not TransactionFilters(search="rent").matches(tx)

    def test_account_filter_matches_transfer_destination(self):
        """A transfer appears under its destination account."""
        tx = self._tx(
            "10",
            datetime(2024, 1, 1),
            type=TransactionType.TRANSFER,
            category_id=None,
            to_account_id="a2",
        )
        assert TransactionFilters(account_id="a2").matches(tx)

    def test_sorting_and_pagination(self):
        """Sort by a camelCase field name, then slice."""
        records = [
            self._tx("30", datetime(2024, 1, 3)),
            self._tx("10", datetime(2024, 1, 1)),
            self._tx("20", datetime(2024, 1, 2)),
        ]
        page = apply_query_options(
            records,
            QueryOptions(sort_by="amount", sort_order="desc", limit=2, offset=1),
        )
        assert [tx.amount for tx in page] == [Decimal("20"), Decimal("10")]

    def test_default_sort_used_without_options(self):
        """Default sort applies when no sort field is given."""
        records = [
            self._tx("1", datetime(2024, 1, 1)),
            self._tx("2", datetime(2024, 1, 3)),
        ]
        result = apply_query_options(records, default_sort="date", default_order="desc")
        assert result[0].date == datetime(2024, 1, 3)

    def test_export_data_missing_arrays_default_empty(self):
        """Missing collections are treated as empty."""
        data = ExportData.model_validate({"version": "1.0.0"})
        assert data.record_counts()["transactions"] == 0
        assert data.settings is None


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test basic audit event creation."""
        event = AuditEvent(
            event_type=AuditEventType.ENTITY_DELETED,
            entity_type="account",
            entity_id="a1",
            description="Account deleted",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO

    def test_transaction_created_builder(self):
        """Builder stringifies money for the log."""
        event = AuditEventBuilder.transaction_created(
            user_id="u1",
            transaction_id="t1",
            transaction_type="expense",
            amount=Decimal("12.50"),
            balance_changes={"a1": Decimal("-12.50")},
        )
        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.details["balance_changes"] == {"a1": "-12.50"}
        assert event.is_user_action

    def test_integrity_builder_mismatch_is_warning(self):
        """Drifted balances produce a warning event."""
        event = AuditEventBuilder.integrity_checked(
            user_id="u1",
            checked=2,
            mismatches=[{"accountId": "a1"}],
        )
        assert event.event_type == AuditEventType.INTEGRITY_MISMATCH
        assert event.severity == AuditSeverity.WARNING

    def test_to_log_dict(self):
        """Log dict carries plain strings."""
        event = AuditEventBuilder.deletion_denied("category", "c1", "in use", user_id="u1")
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "deletion_denied"
        assert log_dict["severity"] == "warning"
        assert log_dict["details"] == {"reason": "in use"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
