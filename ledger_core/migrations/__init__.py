"""Legacy data normalization and guest upgrade."""

from ledger_core.migrations.normalization import (
    clean_export_data,
    detect_backup_user_id,
    ensure_current_budget,
    generate_migration_report,
    migrate_budget_category_ids,
    normalize_category_id,
    normalize_category_ids_in_record,
    prepare_import_payload,
    remap_user_id,
    validate_financial_month_start_day,
)
from ledger_core.migrations.guest import (
    GuestMigrationContext,
    complete_guest_upgrade,
    create_guest_user,
    create_guest_user_id,
    is_guest_user_id,
    should_attempt_migration,
)

__all__ = [
    "GuestMigrationContext",
    "clean_export_data",
    "complete_guest_upgrade",
    "create_guest_user",
    "create_guest_user_id",
    "detect_backup_user_id",
    "ensure_current_budget",
    "generate_migration_report",
    "is_guest_user_id",
    "migrate_budget_category_ids",
    "normalize_category_id",
    "normalize_category_ids_in_record",
    "prepare_import_payload",
    "remap_user_id",
    "should_attempt_migration",
    "validate_financial_month_start_day",
]
