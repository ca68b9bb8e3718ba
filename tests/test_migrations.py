"""Tests for legacy normalization and guest upgrade."""

import json
import pytest
from datetime import datetime
from decimal import Decimal

from ledger_core.audit import AuditLogger
from ledger_core.migrations import (
    GuestMigrationContext,
    clean_export_data,
    complete_guest_upgrade,
    create_guest_user,
    create_guest_user_id,
    detect_backup_user_id,
    ensure_current_budget,
    generate_migration_report,
    is_guest_user_id,
    migrate_budget_category_ids,
    normalize_category_id,
    normalize_category_ids_in_record,
    prepare_import_payload,
    remap_user_id,
    should_attempt_migration,
    validate_financial_month_start_day,
)
from ledger_core.models.audit import AuditEventType
from ledger_core.models.entities import (
    AccountCreate,
    AccountType,
    Budget,
    LegacyBudget,
    TransactionCreate,
    TransactionType,
    UserMode,
)
from ledger_core.models.progress import MigrationResult
from ledger_core.models.queries import TransactionFilters
from ledger_core.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


class TestCategoryIds:
    """Tests for category id normalization."""

    @pytest.mark.parametrize("raw,expected", [
        ("user123-expense-food", "expense-food"),
        ("default-user-expense-food", "expense-food"),
        ("abc-income-salary", "income-salary"),
        ("expense-food", "expense-food"),
        ("expense-food&drink", "expense-foodanddrink"),
        ("custom-id", "custom-id"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_category_id(raw) == expected

    def test_idempotent(self):
        """Normalizing twice changes nothing."""
        once = normalize_category_id("user123-expense-food&fun")
        assert normalize_category_id(once) == once

    def test_empty_passes_through(self):
        assert normalize_category_id(None) is None
        assert normalize_category_id("") == ""

    def test_record_fields(self):
        """Both single and list category fields are rewritten."""
        record = normalize_category_ids_in_record({
            "categoryId": "u1-expense-food",
            "categoryIds": ["u1-expense-rent", "expense-fun"],
        })
        assert record["categoryId"] == "expense-food"
        assert record["categoryIds"] == ["expense-rent", "expense-fun"]


class TestLegacyBudgets:
    """Tests for single-category budget migration."""

    def test_raw_budget_migrated(self):
        migrated = migrate_budget_category_ids({"id": "b1", "categoryId": "expense-food", "amount": 500})
        assert migrated == {"id": "b1", "categoryIds": ["expense-food"], "amount": 500}

    def test_current_budget_untouched(self):
        raw = {"id": "b1", "categoryIds": ["expense-food"], "categoryId": "ignored"}
        assert migrate_budget_category_ids(raw) == raw

    def test_budget_without_any_category(self):
        assert migrate_budget_category_ids({"id": "b1"})["categoryIds"] == []

    def test_ensure_current_budget(self):
        """A legacy model becomes a current Budget named after its category."""
        legacy = LegacyBudget(id="b1", user_id="u1", category_id="expense-food", amount=Decimal("100"))
        budget = ensure_current_budget(legacy)
        assert isinstance(budget, Budget)
        assert budget.category_ids == ["expense-food"]
        assert budget.name == "expense-food"
        assert budget.id == "b1"

    def test_ensure_current_budget_rejects_other_types(self):
        with pytest.raises(TypeError):
            ensure_current_budget({"id": "b1"})


class TestPayloadHelpers:
    """Tests for payload cleaning, ownership and reports."""

    def test_clean_export_data(self):
        """Non-list collections become empty; records without id are dropped."""
        cleaned = clean_export_data({
            "accounts": [{"id": "a1"}, {"name": "no id"}],
            "goals": "oops",
        })
        assert cleaned["accounts"] == [{"id": "a1"}]
        assert cleaned["goals"] == []
        assert cleaned["users"] == []

    def test_remap_user_id(self):
        assert remap_user_id({"id": "a1", "userId": "old"}, "new") == {"id": "a1", "userId": "new"}

    def test_detect_backup_user_id(self):
        assert detect_backup_user_id({"transactions": [{"userId": "u7"}]}) == "u7"
        assert detect_backup_user_id({"users": [{"id": "u9"}]}) == "u9"
        assert detect_backup_user_id({}) is None

    @pytest.mark.parametrize("value,expected", [
        (15, 15),
        ("15", 15),
        (35, 1),
        ("x", 1),
        (None, 1),
        (0, 1),
    ])
    def test_validate_month_start(self, value, expected):
        assert validate_financial_month_start_day(value) == expected

    def test_report(self):
        report = generate_migration_report({
            "accounts": [{"id": "a1", "userId": "u1"}],
            "transactions": [{"id": "t1"}, {"id": "t2"}],
            "settings": {"currency": "EUR"},
        })
        assert report.total_records == 3
        assert report.has_settings
        assert report.detected_user_id == "u1"


class TestPrepareImportPayload:
    """Tests for the full import preparation."""

    def _legacy_backup(self):
        return {
            "users": [{"id": "old-user"}, {"id": "new-user"}],
            "accounts": [{
                "id": "a1",
                "userId": "old-user",
                "name": "Checking",
                "type": "bank",
                "initialBalance": "100",
                "balance": "80",
            }],
            "categories": [
                {"id": "old-user-expense-food", "userId": "old-user", "name": "Food", "type": "expense"},
                {"id": "expense-misc", "userId": "system", "name": "Misc", "type": "expense", "isDefault": True},
            ],
            "transactions": [{
                "id": "t1",
                "userId": "old-user",
                "accountId": "a1",
                "amount": "20",
                "type": "expense",
                "categoryId": "old-user-expense-food",
                "date": "2024-01-05T10:00:00",
            }],
            "budgets": [
                {"id": "b1", "userId": "old-user", "name": "Food", "amount": "300", "categoryId": "old-user-expense-food"},
                {"id": "b2", "userId": "old-user", "name": "Empty", "amount": "50"},
            ],
            "settings": {"financialMonthStart": 45, "currency": "EUR"},
        }

    def test_normalizes_and_remaps(self):
        payload = prepare_import_payload(self._legacy_backup(), target_user_id="new-user")

        assert payload.categories[0].id == "expense-food"
        assert payload.categories[0].user_id == "new-user"
        assert payload.categories[1].user_id == "system"
        assert payload.transactions[0].category_id == "expense-food"
        assert payload.transactions[0].user_id == "new-user"
        assert [b.id for b in payload.budgets] == ["b1"]
        assert payload.budgets[0].category_ids == ["expense-food"]
        assert payload.accounts[0].balance == Decimal("80")
        assert [u.id for u in payload.users] == ["new-user"]
        assert payload.settings.financial_month_start == 1

    @pytest.mark.asyncio
    async def test_import_through_storage(self):
        """Imported settings are applied to the target user."""
        storage = InMemoryLedgerStorage()
        report = await storage.import_database(json.dumps(self._legacy_backup()), target_user_id="new-user")

        assert report.record_counts["budgets"] == 1
        assert (await storage.get_user("new-user")).settings.currency == "EUR"
        assert len(await storage.get_transactions("new-user")) == 1
        assert await storage.get_transactions("old-user") == []

    @pytest.mark.asyncio
    async def test_zulu_dates_mix_with_local_records(self):
        """Backups written with Z timestamps sort and filter next to new records."""
        backup = self._legacy_backup()
        backup["transactions"][0]["date"] = "2024-12-05T10:00:00.000Z"
        backup["accounts"][0]["createdAt"] = "2024-01-01T00:00:00.000Z"
        storage = InMemoryLedgerStorage()
        await storage.import_database(json.dumps(backup), target_user_id="new-user")

        imported = (await storage.get_transactions("new-user"))[0]
        assert imported.date == datetime(2024, 12, 5, 10, 0)
        assert imported.date.tzinfo is None

        await storage.create_transaction("new-user", TransactionCreate(
            account_id="a1",
            amount=Decimal("5"),
            type=TransactionType.EXPENSE,
            category_id="expense-food",
            date=datetime(2024, 12, 6, 9, 0),
        ))
        dates = [tx.date for tx in await storage.get_transactions("new-user")]
        assert dates == [datetime(2024, 12, 6, 9, 0), datetime(2024, 12, 5, 10, 0)]

        in_range = await storage.get_transactions(
            "new-user",
            filters=TransactionFilters(start_date="2024-12-05T00:00:00Z", end_date="2024-12-05T23:59:59Z"),
        )
        assert [tx.id for tx in in_range] == ["t1"]


class TestGuestUsers:
    """Tests for guest identities and upgrade."""

    def test_guest_ids(self):
        guest_id = create_guest_user_id()
        assert guest_id.startswith("guest-")
        assert is_guest_user_id(guest_id)
        assert not is_guest_user_id("auth-1")
        assert not is_guest_user_id(None)

    def test_create_guest_user(self):
        user = create_guest_user()
        assert user.mode == UserMode.GUEST
        assert user.display_name == "Guest User"
        assert is_guest_user_id(user.id)

    def test_should_attempt_migration(self):
        context = GuestMigrationContext(guest_id="guest-abc")
        assert should_attempt_migration(context, "auth-1")
        assert not should_attempt_migration(context, "guest-abc")
        assert not should_attempt_migration(None, "auth-1")
        assert not should_attempt_migration(GuestMigrationContext(guest_id="auth-0"), "auth-1")

    @pytest.mark.asyncio
    async def test_upgrade_moves_data_and_audits(self):
        storage = InMemoryLedgerStorage()
        audit_storage = InMemoryAuditStorage()
        guest = await storage.create_user(create_guest_user())
        await storage.create_account(guest.id, AccountCreate(name="Cash", type=AccountType.CASH))

        result = await complete_guest_upgrade(
            storage,
            GuestMigrationContext(guest_id=guest.id),
            "auth-1",
            audit_logger=AuditLogger(audit_storage),
        )

        assert result.success
        assert result.migrated_counts.total == 1
        assert len(await storage.get_accounts("auth-1")) == 1
        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.GUEST_MIGRATED

    @pytest.mark.asyncio
    async def test_nothing_to_upgrade(self):
        assert await complete_guest_upgrade(InMemoryLedgerStorage(), None, "auth-1") is None

    @pytest.mark.asyncio
    async def test_failure_is_audited_not_raised(self):
        """A failed migration comes back as success=False."""

        class FailingStorage(InMemoryLedgerStorage):
            async def migrate_guest_data_to_user(self, from_guest_id, to_user_id):
                return MigrationResult(success=False, error="backend offline")

        audit_storage = InMemoryAuditStorage()
        result = await complete_guest_upgrade(
            FailingStorage(),
            GuestMigrationContext(guest_id="guest-1"),
            "auth-1",
            audit_logger=AuditLogger(audit_storage),
        )

        assert not result.success
        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.GUEST_MIGRATION_FAILED


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
