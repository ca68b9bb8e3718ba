"""
Audit Models for the Ledger

Every ledger-significant action is recorded as an audit event:
transaction writes, goal movements, tolerated anomalies, integrity
checks, backups and guest upgrades.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""

    # Transactions
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSFER_ANOMALY = "transfer_anomaly"

    # Goals
    GOAL_CONTRIBUTION = "goal_contribution"
    GOAL_WITHDRAWAL = "goal_withdrawal"

    # Derived state
    BUDGETS_RECALCULATED = "budgets_recalculated"
    INTEGRITY_CHECK_PASSED = "integrity_check_passed"
    INTEGRITY_MISMATCH = "integrity_mismatch"

    # Validation & policy
    VALIDATION_FAILED = "validation_failed"
    DELETION_DENIED = "deletion_denied"
    ENTITY_DELETED = "entity_deleted"

    # Backups & users
    DATA_EXPORTED = "data_exported"
    DATA_IMPORTED = "data_imported"
    GUEST_MIGRATED = "guest_migrated"
    GUEST_MIGRATION_FAILED = "guest_migration_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of the audit trail.
    """

    # Identity
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event occurred"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    user_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account', 'goal')"
    )
    entity_id: Optional[str] = None

    # Correlation - for tracking related events of one user action
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


def _money(value: Decimal) -> str:
    return str(value)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(tx, changes, correlation_id)
        event = AuditEventBuilder.deletion_denied("account", account_id, reason)
    """

    @staticmethod
    def transaction_created(
        user_id: str,
        transaction_id: str,
        transaction_type: str,
        amount: Decimal,
        balance_changes: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction created: {transaction_type} {_money(amount)}",
            details={
                "type": transaction_type,
                "amount": _money(amount),
                "balance_changes": {k: _money(v) for k, v in balance_changes.items()},
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        user_id: str,
        transaction_id: str,
        changed_fields: list[str],
        balance_changes: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated: {', '.join(changed_fields) or 'no changes'}",
            details={
                "changed_fields": changed_fields,
                "balance_changes": {k: _money(v) for k, v in balance_changes.items()},
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        user_id: str,
        transaction_id: str,
        balance_changes: dict[str, Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted and its balance effect reverted",
            details={
                "balance_changes": {k: _money(v) for k, v in balance_changes.items()},
            },
            is_user_action=True,
        )

    @staticmethod
    def transfer_anomaly(
        user_id: str,
        transaction_id: str,
        anomalies: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_ANOMALY,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transfer completed with {len(anomalies)} anomalies",
            details={"anomalies": anomalies},
        )

    @staticmethod
    def goal_movement(
        user_id: str,
        goal_id: str,
        transaction_id: str,
        amount: Decimal,
        is_contribution: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        if is_contribution:
            event_type = AuditEventType.GOAL_CONTRIBUTION
            verb = "Contributed"
        else:
            event_type = AuditEventType.GOAL_WITHDRAWAL
            verb = "Withdrew"
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"{verb} {_money(amount)}",
            details={
                "transaction_id": transaction_id,
                "amount": _money(amount),
            },
            is_user_action=True,
        )

    @staticmethod
    def budgets_recalculated(
        user_id: str,
        budget_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGETS_RECALCULATED,
            user_id=user_id,
            entity_type="budget",
            correlation_id=correlation_id,
            description=f"Recalculated spent for {budget_count} budgets",
            details={"budget_count": budget_count},
        )

    @staticmethod
    def integrity_checked(
        user_id: str,
        checked: int,
        mismatches: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        if mismatches:
            return AuditEvent(
                event_type=AuditEventType.INTEGRITY_MISMATCH,
                severity=AuditSeverity.WARNING,
                user_id=user_id,
                entity_type="account",
                correlation_id=correlation_id,
                description=f"{len(mismatches)} of {checked} account balances drifted",
                details={"checked": checked, "mismatches": mismatches},
            )
        return AuditEvent(
            event_type=AuditEventType.INTEGRITY_CHECK_PASSED,
            user_id=user_id,
            entity_type="account",
            correlation_id=correlation_id,
            description=f"All {checked} account balances match the ledger",
            details={"checked": checked},
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        issues: list[dict],
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def deletion_denied(
        entity_type: str,
        entity_id: str,
        reason: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DELETION_DENIED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Deletion of {entity_type} denied",
            details={"reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def entity_deleted(
        entity_type: str,
        entity_id: str,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_DELETED,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} deleted",
            is_user_action=True,
        )

    @staticmethod
    def data_exported(
        user_id: Optional[str],
        record_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_EXPORTED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Exported {sum(record_counts.values())} records",
            details={"record_counts": record_counts},
            is_user_action=True,
        )

    @staticmethod
    def data_imported(
        user_id: Optional[str],
        report: dict,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_IMPORTED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Imported {report.get('total_records', 0)} records",
            details=report,
            is_user_action=True,
        )

    @staticmethod
    def guest_migrated(
        guest_id: str,
        user_id: str,
        migrated_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GUEST_MIGRATED,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="Guest data migrated to authenticated user",
            details={"guest_id": guest_id, "migrated_counts": migrated_counts},
        )

    @staticmethod
    def guest_migration_failed(
        guest_id: str,
        user_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GUEST_MIGRATION_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="Guest data migration failed",
            error_message=error_message,
            details={"guest_id": guest_id},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
