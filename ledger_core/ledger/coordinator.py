"""
Ledger Mutation Coordinator

Applies and reverts the balance side effects of a single transaction
write (create, update, delete) so that every cached account balance keeps
equalling initial_balance plus the signed effects of its transactions.

DESIGN DECISION: Revert is the exact inverse of apply.
- create: apply the new transaction
- update: revert the old snapshot, then apply the new one
- delete: revert the snapshot

Each balance change is a read-modify-write. Two mechanisms keep it safe:
1. A per-account asyncio.Lock held for the whole operation, so coordinated
   writers never interleave on the same account (locks are taken in sorted
   id order, so overlapping transfers cannot deadlock)
2. A compare-and-set write retried with tenacity when the backend reports a
   conflict caused by a writer outside this coordinator

A transfer whose destination account no longer exists still moves the
source leg; the skipped leg is reported as an anomaly, not raised.

If a balance write fails part way, the legs already written are undone
before the error propagates, so an operation moves all of its legs or none.
"""

import asyncio
from contextlib import asynccontextmanager
from decimal import Decimal
from enum import Enum
from typing import AsyncIterator, Iterable, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from ledger_core.calculations.balance import balance_effect
from ledger_core.config import get_settings
from ledger_core.models.entities import Transaction, TransactionType
from ledger_core.models.progress import MutationResult
from ledger_core.services.storage.interface import (
    LedgerStorageInterface,
    StorageConflictError,
    StorageError,
)


logger = structlog.get_logger(__name__)


class MutationOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class LedgerError(Exception):
    """Base exception for ledger coordination."""
    pass


class ReferenceNotFoundError(LedgerError):
    """A referenced record (account, category, goal) does not exist."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")


class PriorStateRequiredError(LedgerError):
    """An update or delete came without the snapshot needed to reverse it."""
    pass


class AccountLockRegistry:
    """
    One asyncio.Lock per account id, created on first use.

    Locks belong to the event loop that first awaits them; use one
    registry per loop.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, account_id: str) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[account_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, account_ids: Iterable[str]) -> AsyncIterator[None]:
        """Hold the locks of several accounts, acquired in sorted order."""
        locks = [self.lock_for(account_id) for account_id in sorted(set(account_ids))]
        acquired = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


def _legs(tx: Transaction) -> list[tuple[str, Decimal, bool]]:
    """
    Balance legs of a transaction as (account_id, delta, is_destination).

    Unknown types produce no legs.
    """
    effect = balance_effect(tx)
    if effect is None:
        return []
    legs = [(tx.account_id, effect, False)]
    if tx.type == TransactionType.TRANSFER and tx.to_account_id:
        legs.append((tx.to_account_id, Decimal(tx.amount), True))
    return legs


def _touched_accounts(*transactions: Optional[Transaction]) -> set[str]:
    accounts = set()
    for tx in transactions:
        if tx is None:
            continue
        accounts.add(tx.account_id)
        if tx.to_account_id:
            accounts.add(tx.to_account_id)
    return accounts


class LedgerCoordinator:
    """
    The only component allowed to change cached account balances.

    Written entirely against LedgerStorageInterface.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        locks: Optional[AccountLockRegistry] = None,
        max_attempts: Optional[int] = None,
        retry_wait: Optional[wait_base] = None,
    ):
        """
        Args:
            storage: Ledger storage backend
            locks: Shared lock registry; a private one is created if None
            max_attempts: Attempts per balance write on conflict
                (defaults to LEDGER_BALANCE_WRITE_ATTEMPTS)
            retry_wait: tenacity wait strategy between attempts
        """
        self._storage = storage
        self._locks = locks or AccountLockRegistry()
        self._max_attempts = max_attempts or get_settings().ledger.balance_write_attempts
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    @property
    def locks(self) -> AccountLockRegistry:
        return self._locks

    async def _adjust_balance(self, account_id: str, delta: Decimal) -> bool:
        """
        Add delta to an account's cached balance.

        Returns False if the account does not exist.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(StorageConflictError),
            reraise=True,
        ):
            with attempt:
                account = await self._storage.get_account(account_id)
                if account is None:
                    return False
                await self._storage.update_account_balance(
                    account_id,
                    account.balance + delta,
                    expected_balance=account.balance,
                )
        return True

    async def _require_sources(self, *transactions: Transaction) -> None:
        """Fail before any mutation if a source account is missing."""
        for tx in transactions:
            if await self._storage.get_account(tx.account_id) is None:
                raise ReferenceNotFoundError("account", tx.account_id)

    async def _move(
        self,
        tx: Transaction,
        sign: int,
        result: MutationResult,
    ) -> None:
        """Apply (sign=1) or revert (sign=-1) every leg of a transaction."""
        legs = _legs(tx)
        if not legs:
            result.anomalies.append(f"unknown transaction type '{tx.type}' skipped")
            return

        for account_id, delta, is_destination in legs:
            signed = delta * sign
            if not await self._adjust_balance(account_id, signed):
                if not is_destination:
                    raise ReferenceNotFoundError("account", account_id)
                logger.warning(
                    "transfer_destination_missing",
                    transaction_id=tx.id,
                    account_id=account_id,
                    operation=result.operation,
                )
                result.anomalies.append(f"destination account {account_id} not found")
                continue
            result.balance_changes[account_id] = (
                result.balance_changes.get(account_id, Decimal("0")) + signed
            )

    async def _rollback(self, result: MutationResult) -> None:
        """Undo the balance changes recorded so far, newest account first."""
        for account_id, delta in reversed(list(result.balance_changes.items())):
            try:
                await self._adjust_balance(account_id, -delta)
            except StorageError as e:
                logger.error(
                    "balance_rollback_failed",
                    transaction_id=result.transaction_id,
                    account_id=account_id,
                    delta=str(delta),
                    error=str(e),
                )
        result.balance_changes.clear()

    async def _run(self, result: MutationResult, *moves: tuple[Transaction, int]) -> None:
        """Run (transaction, sign) moves in order; roll back all of them on failure."""
        try:
            for tx, sign in moves:
                await self._move(tx, sign, result)
        except Exception:
            await self._rollback(result)
            raise

    async def apply_transaction(self, tx: Transaction) -> MutationResult:
        """Apply the balance effect of a newly created transaction."""
        result = MutationResult(transaction_id=tx.id, operation=MutationOperation.CREATE.value)
        async with self._locks.hold(_touched_accounts(tx)):
            await self._require_sources(tx)
            await self._run(result, (tx, 1))
        logger.debug("balance_applied", transaction_id=tx.id, changes=len(result.balance_changes))
        return result

    async def update_transaction(
        self,
        new_tx: Transaction,
        old_tx: Optional[Transaction],
    ) -> MutationResult:
        """
        Revert the old snapshot, then apply the new transaction.

        Raises:
            PriorStateRequiredError: If old_tx is None
            ReferenceNotFoundError: If an old or new source account is missing
        """
        if old_tx is None:
            raise PriorStateRequiredError(
                f"Update of transaction {new_tx.id} needs the previous snapshot"
            )

        result = MutationResult(transaction_id=new_tx.id, operation=MutationOperation.UPDATE.value)
        async with self._locks.hold(_touched_accounts(old_tx, new_tx)):
            await self._require_sources(old_tx, new_tx)
            await self._run(result, (old_tx, -1), (new_tx, 1))
        return result

    async def revert_transaction(self, tx: Optional[Transaction]) -> MutationResult:
        """
        Revert the balance effect of a deleted transaction.

        Raises:
            PriorStateRequiredError: If the snapshot is None
        """
        if tx is None:
            raise PriorStateRequiredError("Delete needs the snapshot of the removed transaction")

        result = MutationResult(transaction_id=tx.id, operation=MutationOperation.DELETE.value)
        async with self._locks.hold(_touched_accounts(tx)):
            await self._require_sources(tx)
            await self._run(result, (tx, -1))
        return result

    async def update_account_balances(
        self,
        transaction: Optional[Transaction],
        operation: MutationOperation,
        old_transaction: Optional[Transaction] = None,
    ) -> MutationResult:
        """
        Single entry point dispatching on the write operation.

        For delete, the snapshot is old_transaction if given, else transaction.
        """
        operation = MutationOperation(operation)
        if operation == MutationOperation.CREATE:
            if transaction is None:
                raise ValueError("Create needs the new transaction")
            return await self.apply_transaction(transaction)
        if operation == MutationOperation.UPDATE:
            if transaction is None:
                raise ValueError("Update needs the new transaction")
            return await self.update_transaction(transaction, old_transaction)
        return await self.revert_transaction(old_transaction or transaction)
