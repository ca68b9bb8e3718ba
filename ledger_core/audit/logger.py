"""
Audit Logger

DESIGN DECISION: Every ledger-significant action is logged.
This provides:
1. Complete traceability of balance changes
2. Debugging capability when balances drift
3. A visible record of tolerated anomalies

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't break a ledger write if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger_core.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from ledger_core.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        user_id: str,
        transaction_id: str,
        transaction_type: str,
        amount: Decimal,
        balance_changes: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_created(
            user_id=user_id,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            balance_changes=balance_changes,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        user_id: str,
        transaction_id: str,
        changed_fields: list[str],
        balance_changes: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            user_id=user_id,
            transaction_id=transaction_id,
            changed_fields=changed_fields,
            balance_changes=balance_changes,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        user_id: str,
        transaction_id: str,
        balance_changes: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            user_id=user_id,
            transaction_id=transaction_id,
            balance_changes=balance_changes,
            correlation_id=correlation_id,
        ))

    async def log_transfer_anomaly(
        self,
        user_id: str,
        transaction_id: str,
        anomalies: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a transfer whose destination leg was skipped."""
        await self.log(AuditEventBuilder.transfer_anomaly(
            user_id=user_id,
            transaction_id=transaction_id,
            anomalies=anomalies,
            correlation_id=correlation_id,
        ))

    async def log_goal_movement(
        self,
        user_id: str,
        goal_id: str,
        transaction_id: str,
        amount: Decimal,
        is_contribution: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_movement(
            user_id=user_id,
            goal_id=goal_id,
            transaction_id=transaction_id,
            amount=amount,
            is_contribution=is_contribution,
            correlation_id=correlation_id,
        ))

    async def log_budgets_recalculated(
        self,
        user_id: str,
        budget_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budgets_recalculated(
            user_id=user_id,
            budget_count=budget_count,
            correlation_id=correlation_id,
        ))

    async def log_integrity_checked(
        self,
        user_id: str,
        checked: int,
        mismatches: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.integrity_checked(
            user_id=user_id,
            checked=checked,
            mismatches=mismatches,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        entity_type: str,
        issues: list[dict],
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            issues=issues,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_deletion_denied(
        self,
        entity_type: str,
        entity_id: str,
        reason: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.deletion_denied(
            entity_type=entity_type,
            entity_id=entity_id,
            reason=reason,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_entity_deleted(
        self,
        entity_type: str,
        entity_id: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.entity_deleted(
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            correlation_id=correlation_id,
        ))

    async def log_data_exported(
        self,
        user_id: Optional[str],
        record_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.data_exported(
            user_id=user_id,
            record_counts=record_counts,
            correlation_id=correlation_id,
        ))

    async def log_data_imported(
        self,
        user_id: Optional[str],
        report: dict,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.data_imported(
            user_id=user_id,
            report=report,
            correlation_id=correlation_id,
        ))

    async def log_guest_migrated(
        self,
        guest_id: str,
        user_id: str,
        migrated_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.guest_migrated(
            guest_id=guest_id,
            user_id=user_id,
            migrated_counts=migrated_counts,
            correlation_id=correlation_id,
        ))

    async def log_guest_migration_failed(
        self,
        guest_id: str,
        user_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.guest_migration_failed(
            guest_id=guest_id,
            user_id=user_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., editing a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()
