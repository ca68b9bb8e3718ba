"""
Guest to Authenticated Upgrade

Guest users work entirely locally under a `guest-<uuid>` id. When they
sign in, their records are re-keyed to the authenticated user id.

DESIGN DECISION: The guest id travels in an explicit GuestMigrationContext
handed from sign-in to upgrade, instead of living in ambient storage.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel, ConfigDict, Field

from ledger_core.config import get_settings
from ledger_core.models.entities import User, UserMode, UserSettings
from ledger_core.models.progress import MigrationResult
from ledger_core.services.storage.interface import LedgerStorageInterface

if TYPE_CHECKING:
    from ledger_core.audit.logger import AuditLogger


logger = structlog.get_logger(__name__)


def create_guest_user_id() -> str:
    return f"{get_settings().ledger.guest_id_prefix}{uuid4()}"


def is_guest_user_id(user_id: Optional[str]) -> bool:
    if not user_id:
        return False
    return user_id.startswith(get_settings().ledger.guest_id_prefix)


def create_guest_user(settings: Optional[UserSettings] = None) -> User:
    """Build (not persist) a fresh guest user with default settings."""
    ledger_settings = get_settings().ledger
    if settings is None:
        settings = UserSettings(
            currency=ledger_settings.default_currency,
            financial_month_start=ledger_settings.default_financial_month_start,
        )
    return User(
        id=create_guest_user_id(),
        display_name="Guest User",
        mode=UserMode.GUEST,
        settings=settings,
    )


class GuestMigrationContext(BaseModel):
    """The guest identity a sign-in flow intends to upgrade."""

    model_config = ConfigDict(frozen=True)

    guest_id: str
    started_at: datetime = Field(default_factory=datetime.now)


def should_attempt_migration(
    context: Optional[GuestMigrationContext],
    auth_user_id: Optional[str] = None,
) -> bool:
    """A migration is pending for a guest id that is not already the target."""
    if context is None or not is_guest_user_id(context.guest_id):
        return False
    return context.guest_id != auth_user_id


async def complete_guest_upgrade(
    storage: LedgerStorageInterface,
    context: Optional[GuestMigrationContext],
    auth_user_id: str,
    audit_logger: Optional["AuditLogger"] = None,
    correlation_id: Optional[UUID] = None,
) -> Optional[MigrationResult]:
    """
    Move a guest's data to the authenticated user.

    Returns None when there is nothing to migrate. Never raises for
    migration failures; they come back as `success=False` and are audited.
    """
    if not should_attempt_migration(context, auth_user_id):
        return None

    result = await storage.migrate_guest_data_to_user(context.guest_id, auth_user_id)

    if result.success:
        logger.info(
            "guest_migrated",
            guest_id=context.guest_id,
            user_id=auth_user_id,
            total=result.migrated_counts.total,
        )
        if audit_logger:
            await audit_logger.log_guest_migrated(
                guest_id=context.guest_id,
                user_id=auth_user_id,
                migrated_counts=result.migrated_counts.model_dump(),
                correlation_id=correlation_id,
            )
    else:
        logger.error(
            "guest_migration_failed",
            guest_id=context.guest_id,
            user_id=auth_user_id,
            error=result.error,
        )
        if audit_logger:
            await audit_logger.log_guest_migration_failed(
                guest_id=context.guest_id,
                user_id=auth_user_id,
                error_message=result.error or "unknown error",
                correlation_id=correlation_id,
            )

    return result
