"""
Migration & Normalization Utilities

Backward-compatible reshaping of legacy records found in imported backups:
user-prefixed category ids, single-category budgets and foreign owner ids.

DESIGN DECISION: Raw payload helpers work on camelCase dicts (the wire
format). `ensure_current_budget` is the single place where the
`LegacyBudget | Budget` union is collapsed, so calculation code never
inspects legacy fields itself.
"""

import re
from typing import Any, Mapping, Optional, Union

import structlog

from ledger_core.models.entities import Budget, BudgetRecord, LedgerModel, LegacyBudget
from ledger_core.models.progress import MigrationReport
from ledger_core.models.queries import ExportData


logger = structlog.get_logger(__name__)


COLLECTIONS = ("users", "accounts", "categories", "transactions", "budgets", "goals")
OWNED_COLLECTIONS = ("accounts", "categories", "transactions", "budgets", "goals")
_OWNER_DETECTION_ORDER = ("accounts", "transactions", "categories", "budgets", "goals")

_LEGACY_EXPENSE = re.compile(r"^.*-(expense-.+)$")
_LEGACY_INCOME = re.compile(r"^.*-(income-.+)$")


# =============================================================================
# CATEGORY IDS
# =============================================================================

def normalize_category_id(category_id: Optional[str]) -> Optional[str]:
    """
    Strip legacy owner prefixes from a category id.

        'default-user-expense-food' -> 'expense-food'
        'user123-expense-food'      -> 'expense-food'
        'expense-food'              -> 'expense-food'
        'expense-food&drink'        -> 'expense-foodanddrink'
    """
    if not category_id:
        return category_id

    for pattern in (_LEGACY_EXPENSE, _LEGACY_INCOME):
        match = pattern.match(category_id)
        if match:
            return match.group(1).replace("&", "and")

    return category_id.replace("&", "and")


def normalize_category_ids_in_record(record: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize `categoryId` and `categoryIds` of a raw record (shallow copy)."""
    normalized = dict(record)

    if normalized.get("categoryId"):
        normalized["categoryId"] = normalize_category_id(normalized["categoryId"])

    if isinstance(normalized.get("categoryIds"), list):
        normalized["categoryIds"] = [
            normalize_category_id(category_id) for category_id in normalized["categoryIds"]
        ]

    return normalized


def _normalize_category_record(record: Mapping[str, Any]) -> dict[str, Any]:
    normalized = dict(record)
    for key in ("id", "parentId"):
        if normalized.get(key):
            normalized[key] = normalize_category_id(normalized[key])
    return normalized


# =============================================================================
# BUDGETS
# =============================================================================

def migrate_budget_category_ids(budget: Mapping[str, Any]) -> dict[str, Any]:
    """
    Convert a raw single-category budget to the multi-category shape.

    {categoryId: 'expense-food', amount: 500}
        -> {categoryIds: ['expense-food'], amount: 500}

    Budgets that already carry a non-empty `categoryIds` pass through.
    """
    category_ids = budget.get("categoryIds")
    if isinstance(category_ids, list) and category_ids:
        return dict(budget)

    migrated = {key: value for key, value in budget.items() if key != "categoryId"}
    legacy_id = budget.get("categoryId")
    migrated["categoryIds"] = [legacy_id] if legacy_id else []
    return migrated


def ensure_current_budget(budget: BudgetRecord) -> Budget:
    """
    Collapse the legacy/current budget union to a current Budget.

    Legacy budgets without a name take their category id as name.
    """
    if isinstance(budget, Budget):
        return budget
    if isinstance(budget, LegacyBudget):
        data = budget.model_dump(exclude={"category_id"})
        data["category_ids"] = [budget.category_id]
        data["name"] = budget.name or budget.category_id
        return Budget.model_validate(data)
    raise TypeError(f"Not a budget: {type(budget).__name__}")


# =============================================================================
# OWNERSHIP
# =============================================================================

def remap_user_id(record: Union[Mapping[str, Any], LedgerModel], new_user_id: str):
    """
    Shallow copy of a record with its owner replaced.

    Accepts raw camelCase dicts and models.
    """
    if isinstance(record, LedgerModel):
        return record.model_copy(update={"user_id": new_user_id})
    return {**record, "userId": new_user_id}


def _first_value(records: Any, key: str) -> Optional[str]:
    if isinstance(records, list) and records:
        first = records[0]
        if isinstance(first, Mapping):
            return first.get(key)
        return getattr(first, "user_id" if key == "userId" else key, None)
    return None


def detect_backup_user_id(data: Union[Mapping[str, Any], ExportData]) -> Optional[str]:
    """
    Infer whose data a backup holds.

    Looks at the first record of accounts, transactions, categories,
    budgets and goals (in that order), then at the first user's id.
    """
    if isinstance(data, ExportData):
        data = {name: getattr(data, name) for name in COLLECTIONS}

    for collection in _OWNER_DETECTION_ORDER:
        user_id = _first_value(data.get(collection), "userId")
        if user_id:
            return user_id

    return _first_value(data.get("users"), "id")


# =============================================================================
# SETTINGS & PAYLOADS
# =============================================================================

def validate_financial_month_start_day(value: Any, default: int = 1) -> int:
    """
    Coerce a month start day, falling back to `default` when invalid.

        15   -> 15
        '15' -> 15
        35   -> default
        'x'  -> default
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        day = float(value)
    except (TypeError, ValueError):
        return default
    if day != day or day < 1 or day > 31:
        return default
    return int(day)


def clean_export_data(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Make every collection a list and drop records without an `id`."""
    cleaned = dict(raw)
    for collection in COLLECTIONS:
        records = raw.get(collection)
        if not isinstance(records, list):
            cleaned[collection] = []
            continue
        cleaned[collection] = [
            record for record in records
            if isinstance(record, Mapping) and record.get("id")
        ]
    return cleaned


def generate_migration_report(data: Union[Mapping[str, Any], ExportData]) -> MigrationReport:
    if isinstance(data, ExportData):
        record_counts = data.record_counts()
        has_settings = data.settings is not None
    else:
        record_counts = {
            collection: len(data.get(collection) or [])
            for collection in COLLECTIONS
        }
        has_settings = bool(data.get("settings"))

    return MigrationReport(
        total_records=sum(record_counts.values()),
        record_counts=record_counts,
        has_settings=has_settings,
        detected_user_id=detect_backup_user_id(data),
    )


def prepare_import_payload(
    raw: Mapping[str, Any],
    target_user_id: Optional[str] = None,
) -> ExportData:
    """
    Turn a raw backup into a validated ExportData ready for import.

    Steps: clean, normalize category ids, migrate legacy budgets,
    remap ownership to `target_user_id` (default categories keep their
    owner), then validate.

    Raises:
        pydantic.ValidationError: If a remaining record is malformed
    """
    data = clean_export_data(raw)

    data["categories"] = [_normalize_category_record(c) for c in data["categories"]]
    data["transactions"] = [normalize_category_ids_in_record(t) for t in data["transactions"]]

    budgets = []
    for budget in data["budgets"]:
        migrated = migrate_budget_category_ids(normalize_category_ids_in_record(budget))
        if not migrated["categoryIds"]:
            logger.warning("budget_without_categories_skipped", budget_id=budget.get("id"))
            continue
        budgets.append(migrated)
    data["budgets"] = budgets

    settings = data.get("settings")
    if isinstance(settings, Mapping) and "financialMonthStart" in settings:
        data["settings"] = {
            **settings,
            "financialMonthStart": validate_financial_month_start_day(
                settings["financialMonthStart"]
            ),
        }

    if target_user_id:
        for collection in OWNED_COLLECTIONS:
            data[collection] = [
                record if record.get("isDefault") else remap_user_id(record, target_user_id)
                for record in data[collection]
            ]
        data["users"] = [user for user in data["users"] if user.get("id") == target_user_id]

    return ExportData.model_validate(data)
