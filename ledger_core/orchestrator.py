"""
Main Orchestrator for the Ledger Core

This module ties together all the components and defines the
end-to-end flows for:
1. Transaction writes (validate → persist → coordinate balances → audit)
2. Goal movements (validate → adapter unit → coordinate → audit)
3. Reference-safe deletes, integrity sweeps and budget recalculation
4. Backup export/import and guest upgrade

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written before validation passes
- Account balances change only through the LedgerCoordinator
- Every step is audited under one correlation id

If the balance step fails after a transaction record was written, the
record write is undone (create removes it, update restores the old
fields). Deletes revert balances first and re-apply them if the record
cannot be removed.

This is the "glue" that keeps cached balances, budgets and goals
consistent even when callers only know about single records.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog

from ledger_core.audit import AuditLogger, create_correlation_id
from ledger_core.ledger import (
    LedgerCoordinator,
    LedgerError,
    ReferenceNotFoundError,
    recalculate_budget_spent,
    verify_account_balances,
)
from ledger_core.migrations import GuestMigrationContext, complete_guest_upgrade
from ledger_core.models.entities import (
    Budget,
    BudgetCreate,
    Goal,
    GoalCreate,
    Transaction,
    TransactionCreate,
)
from ledger_core.models.progress import (
    BalanceCheck,
    BudgetProgress,
    MigrationReport,
    MigrationResult,
    MutationResult,
)
from ledger_core.models.queries import BudgetFilters, ExportData
from ledger_core.services.storage import (
    AuditStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    create_storage,
)
from ledger_core.validation import (
    LedgerValidator,
    ValidationResult,
    get_user_friendly_summary,
)


logger = structlog.get_logger(__name__)


class ReferenceInUseError(LedgerError):
    """A record cannot be deleted while other records still point at it."""

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot delete {entity_type} {entity_id}: {reason}")


class LedgerService:
    """
    Orchestrates every ledger write.

    Flow for a transaction:
    1. Validate → schema (pydantic) and semantic (LedgerValidator)
    2. Persist → storage writes the record only
    3. Coordinate → LedgerCoordinator moves account balances
    4. Audit → one event per step, linked by correlation id

    Validation errors abort before anything is persisted.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
        coordinator: Optional[LedgerCoordinator] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or LedgerValidator(storage)
        self._coordinator = coordinator or LedgerCoordinator(storage)

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    @property
    def coordinator(self) -> LedgerCoordinator:
        return self._coordinator

    # ==================== Helpers ====================

    async def _check(
        self,
        result: ValidationResult,
        user_id: str,
        correlation_id: UUID,
    ) -> None:
        """Audit and raise validation errors; log warnings."""
        if result.warnings:
            logger.warning(
                "validation_warnings",
                entity_type=result.entity_type,
                warnings=result.warnings,
            )
        if result.is_valid:
            return

        logger.info(
            "validation_failed",
            entity_type=result.entity_type,
            summary=get_user_friendly_summary(result),
        )
        await self._audit_logger.log_validation_failed(
            entity_type=result.entity_type,
            issues=[
                {"field": issue.field, "type": issue.issue_type, "message": issue.message}
                for issue in result.errors
            ],
            user_id=user_id,
            correlation_id=correlation_id,
        )
        result.raise_for_errors()

    async def _require_account(self, account_id: str) -> None:
        if await self._storage.get_account(account_id) is None:
            raise ReferenceNotFoundError("account", account_id)

    async def _audit_anomalies(
        self,
        user_id: str,
        result: MutationResult,
        correlation_id: UUID,
    ) -> None:
        if result.has_anomalies:
            await self._audit_logger.log_transfer_anomaly(
                user_id=user_id,
                transaction_id=result.transaction_id,
                anomalies=result.anomalies,
                correlation_id=correlation_id,
            )

    # ==================== Transactions ====================

    async def _compensate(self, action: str, transaction_id: str, undo) -> None:
        """Await a compensating storage write; a failure is logged, not raised."""
        try:
            await undo
        except StorageError as e:
            logger.error(
                "compensation_failed",
                action=action,
                transaction_id=transaction_id,
                error=str(e),
            )

    async def create_transaction(
        self,
        user_id: str,
        data: TransactionCreate,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, MutationResult]:
        """
        Create a transaction and apply its balance effect.

        Args:
            user_id: Owner of the transaction
            data: Schema-valid transaction input

        Returns:
            (transaction, mutation_result)

        Raises:
            LedgerValidationError: If a business rule is violated
            ReferenceNotFoundError: If the source account does not exist
        """
        correlation_id = correlation_id or create_correlation_id()

        await self._check(
            await self._validator.validate_transaction(user_id, data),
            user_id,
            correlation_id,
        )
        await self._require_account(data.account_id)

        tx = await self._storage.create_transaction(user_id, data)
        try:
            result = await self._coordinator.apply_transaction(tx)
        except Exception:
            await self._compensate(
                "remove_created_transaction",
                tx.id,
                self._storage.delete_transaction(tx.id),
            )
            raise

        await self._audit_logger.log_transaction_created(
            user_id=user_id,
            transaction_id=tx.id,
            transaction_type=tx.type.value,
            amount=tx.amount,
            balance_changes=result.balance_changes,
            correlation_id=correlation_id,
        )
        await self._audit_anomalies(user_id, result, correlation_id)
        return tx, result

    async def update_transaction(
        self,
        transaction_id: str,
        updates: dict[str, Any],
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, MutationResult]:
        """
        Update a transaction, moving balances from the old to the new shape.

        The merged record is re-validated as a whole before it is written.

        Raises:
            NotFoundError: If the transaction doesn't exist
            LedgerValidationError: If the merged record is invalid
        """
        correlation_id = correlation_id or create_correlation_id()

        old_tx = await self._storage.get_transaction(transaction_id)
        if old_tx is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")

        merged = old_tx.model_dump(include=set(TransactionCreate.model_fields))
        merged.update(updates)
        data = TransactionCreate.model_validate(merged)

        await self._check(
            await self._validator.validate_transaction(old_tx.user_id, data),
            old_tx.user_id,
            correlation_id,
        )
        await self._require_account(data.account_id)

        new_tx = await self._storage.update_transaction(
            transaction_id,
            data.model_dump(),
        )
        try:
            result = await self._coordinator.update_transaction(new_tx, old_tx)
        except Exception:
            await self._compensate(
                "restore_updated_transaction",
                transaction_id,
                self._storage.update_transaction(
                    transaction_id,
                    old_tx.model_dump(include=set(TransactionCreate.model_fields)),
                ),
            )
            raise

        changed = sorted(
            field for field in TransactionCreate.model_fields
            if getattr(old_tx, field) != getattr(new_tx, field)
        )
        await self._audit_logger.log_transaction_updated(
            user_id=old_tx.user_id,
            transaction_id=transaction_id,
            changed_fields=changed,
            balance_changes=result.balance_changes,
            correlation_id=correlation_id,
        )
        await self._audit_anomalies(old_tx.user_id, result, correlation_id)
        return new_tx, result

    async def delete_transaction(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """
        Delete a transaction and revert its balance effect.

        Balances are reverted before the record is removed, so a failed
        revert leaves the record in place.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()

        tx = await self._storage.get_transaction(transaction_id)
        if tx is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        await self._require_account(tx.account_id)

        result = await self._coordinator.revert_transaction(tx)
        try:
            await self._storage.delete_transaction(transaction_id)
        except Exception:
            await self._compensate(
                "reapply_deleted_transaction",
                transaction_id,
                self._coordinator.apply_transaction(tx),
            )
            raise

        await self._audit_logger.log_transaction_deleted(
            user_id=tx.user_id,
            transaction_id=transaction_id,
            balance_changes=result.balance_changes,
            correlation_id=correlation_id,
        )
        await self._audit_anomalies(tx.user_id, result, correlation_id)
        return result

    # ==================== Goals ====================

    async def _move_goal(
        self,
        user_id: str,
        goal_id: str,
        amount: Decimal,
        account_id: str,
        is_withdrawal: bool,
        description: Optional[str],
        correlation_id: Optional[UUID],
    ) -> tuple[Transaction, MutationResult]:
        correlation_id = correlation_id or create_correlation_id()
        amount = Decimal(amount)

        await self._check(
            await self._validator.validate_goal_movement(
                user_id, goal_id, amount, account_id, is_withdrawal
            ),
            user_id,
            correlation_id,
        )
        await self._require_account(account_id)

        if is_withdrawal:
            tx = await self._storage.withdraw_from_goal(goal_id, amount, account_id, description)
        else:
            tx = await self._storage.contribute_to_goal(goal_id, amount, account_id, description)
        result = await self._coordinator.apply_transaction(tx)

        await self._audit_logger.log_goal_movement(
            user_id=user_id,
            goal_id=goal_id,
            transaction_id=tx.id,
            amount=amount,
            is_contribution=not is_withdrawal,
            correlation_id=correlation_id,
        )
        return tx, result

    async def contribute_to_goal(
        self,
        user_id: str,
        goal_id: str,
        amount: Decimal,
        account_id: str,
        description: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, MutationResult]:
        """Move money from an account into a goal."""
        return await self._move_goal(
            user_id, goal_id, amount, account_id, False, description, correlation_id
        )

    async def withdraw_from_goal(
        self,
        user_id: str,
        goal_id: str,
        amount: Decimal,
        account_id: str,
        description: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, MutationResult]:
        """Move money from a goal back into an account."""
        return await self._move_goal(
            user_id, goal_id, amount, account_id, True, description, correlation_id
        )

    async def create_goal(
        self,
        user_id: str,
        data: GoalCreate,
        correlation_id: Optional[UUID] = None,
    ) -> Goal:
        correlation_id = correlation_id or create_correlation_id()
        await self._check(
            await self._validator.validate_goal(user_id, data),
            user_id,
            correlation_id,
        )
        return await self._storage.create_goal(user_id, data)

    # ==================== Budgets ====================

    async def create_budget(
        self,
        user_id: str,
        data: BudgetCreate,
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        correlation_id = correlation_id or create_correlation_id()
        await self._check(
            await self._validator.validate_budget(user_id, data),
            user_id,
            correlation_id,
        )
        return await self._storage.create_budget(user_id, data)

    async def recalculate_budgets(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[BudgetProgress]:
        """Recompute `spent` for every active budget of the user."""
        correlation_id = correlation_id or create_correlation_id()
        progress = await recalculate_budget_spent(self._storage, user_id, now)
        await self._audit_logger.log_budgets_recalculated(
            user_id=user_id,
            budget_count=len(progress),
            correlation_id=correlation_id,
        )
        return progress

    # ==================== Deletes ====================

    async def _deny(
        self,
        user_id: Optional[str],
        entity_type: str,
        entity_id: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        await self._audit_logger.log_deletion_denied(
            entity_type=entity_type,
            entity_id=entity_id,
            reason=reason,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        raise ReferenceInUseError(entity_type, entity_id, reason)

    async def delete_account(
        self,
        account_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete an account that no transaction references.

        Raises:
            NotFoundError: If the account doesn't exist
            ReferenceInUseError: If transactions still reference it
                (archive it with is_active=False instead)
        """
        correlation_id = correlation_id or create_correlation_id()

        account = await self._storage.get_account(account_id)
        if account is None:
            raise NotFoundError(f"Account not found: {account_id}")

        referencing = await self._storage.get_transactions_by_account(account_id)
        if referencing:
            await self._deny(
                account.user_id,
                "account",
                account_id,
                f"{len(referencing)} transactions reference this account",
                correlation_id,
            )

        await self._storage.delete_account(account_id)
        await self._audit_logger.log_entity_deleted(
            entity_type="account",
            entity_id=account_id,
            user_id=account.user_id,
            correlation_id=correlation_id,
        )

    async def delete_category(
        self,
        category_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete a category that no transaction or budget references.

        Raises:
            NotFoundError: If the category doesn't exist
            ReferenceInUseError: If it is still referenced
        """
        correlation_id = correlation_id or create_correlation_id()

        category = await self._storage.get_category(category_id)
        if category is None:
            raise NotFoundError(f"Category not found: {category_id}")

        transactions = await self._storage.get_transactions_by_category(category_id)
        if transactions:
            await self._deny(
                category.user_id,
                "category",
                category_id,
                f"{len(transactions)} transactions use this category",
                correlation_id,
            )

        budgets = await self._storage.get_budgets(
            category.user_id,
            BudgetFilters(category_id=category_id),
        )
        if budgets:
            await self._deny(
                category.user_id,
                "category",
                category_id,
                f"{len(budgets)} budgets track this category",
                correlation_id,
            )

        await self._storage.delete_category(category_id)
        await self._audit_logger.log_entity_deleted(
            entity_type="category",
            entity_id=category_id,
            user_id=category.user_id,
            correlation_id=correlation_id,
        )

    # ==================== Integrity ====================

    async def verify_account_integrity(
        self,
        user_id: str,
        tolerance: Optional[float] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[BalanceCheck]:
        """Compare cached balances with the transaction log. Never corrects."""
        correlation_id = correlation_id or create_correlation_id()
        checks = await verify_account_balances(self._storage, user_id, tolerance)
        await self._audit_logger.log_integrity_checked(
            user_id=user_id,
            checked=len(checks),
            mismatches=[
                check.model_dump(mode="json") for check in checks if not check.is_valid
            ],
            correlation_id=correlation_id,
        )
        return checks

    # ==================== Backup & Guest ====================

    async def export_backup(
        self,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """Serialize one user's data (or everything) to camelCase JSON."""
        correlation_id = correlation_id or create_correlation_id()
        payload = await self._storage.export_database(user_id)
        await self._audit_logger.log_data_exported(
            user_id=user_id,
            record_counts=ExportData.model_validate_json(payload).record_counts(),
            correlation_id=correlation_id,
        )
        return payload

    async def import_backup(
        self,
        json_data: str,
        target_user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> MigrationReport:
        """
        Import a backup, normalizing legacy shapes.

        Raises:
            StorageError: If the payload is not a JSON object
        """
        correlation_id = correlation_id or create_correlation_id()
        report = await self._storage.import_database(json_data, target_user_id)
        await self._audit_logger.log_data_imported(
            user_id=target_user_id,
            report=report.model_dump(),
            correlation_id=correlation_id,
        )
        return report

    async def upgrade_guest(
        self,
        context: Optional[GuestMigrationContext],
        auth_user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[MigrationResult]:
        """Re-key a guest's records to the signed-in user, if one is pending."""
        return await complete_guest_upgrade(
            self._storage,
            context,
            auth_user_id,
            audit_logger=self._audit_logger,
            correlation_id=correlation_id or create_correlation_id(),
        )


def create_ledger_components(
    backend: Optional[str] = None,
) -> tuple[LedgerService, LedgerStorageInterface, AuditStorageInterface]:
    """
    Factory function to create all application components.

    Args:
        backend: Storage backend name; defaults to LEDGER_STORAGE_BACKEND

    Returns:
        (ledger_service, ledger_storage, audit_storage)
    """
    ledger_storage, audit_storage = create_storage(backend)
    audit_logger = AuditLogger(audit_storage)

    service = LedgerService(
        storage=ledger_storage,
        audit_logger=audit_logger,
        validator=LedgerValidator(ledger_storage),
        coordinator=LedgerCoordinator(ledger_storage),
    )
    return service, ledger_storage, audit_storage
