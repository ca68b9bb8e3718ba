"""
Balance Calculator

Derives an account's balance from its initial balance and its transactions.

DESIGN DECISION: Balance = initial_balance + sum of signed transaction effects.
The cached `Account.balance` is only a snapshot; these functions are the
definition it is checked against.

Sign table (effect on the transaction's `account_id`):

    income              +amount
    expense             -amount
    transfer            -amount   (the destination gets +amount separately)
    goal-contribution   -amount
    goal-withdrawal     +amount
    balance-adjustment  +amount   (amount itself may be negative)
"""

from decimal import Decimal
from typing import Iterable, Optional, Union

import structlog

from ledger_core.config import get_settings
from ledger_core.models.entities import Account, Transaction, TransactionType
from ledger_core.models.progress import BalanceCheck


logger = structlog.get_logger(__name__)


_SIGNS = {
    TransactionType.INCOME: 1,
    TransactionType.EXPENSE: -1,
    TransactionType.TRANSFER: -1,
    TransactionType.GOAL_CONTRIBUTION: -1,
    TransactionType.GOAL_WITHDRAWAL: 1,
    TransactionType.BALANCE_ADJUSTMENT: 1,
}


class IntegrityMismatchError(Exception):
    """Cached and derived balances differ beyond tolerance."""

    def __init__(self, check: BalanceCheck):
        self.check = check
        super().__init__(
            f"Balance mismatch for account {check.account_id}: "
            f"cached {check.expected}, derived {check.calculated}"
        )


def _resolve_type(tx: Transaction) -> Optional[TransactionType]:
    try:
        return TransactionType(tx.type)
    except ValueError:
        logger.warning(
            "unknown_transaction_type",
            transaction_id=getattr(tx, "id", None),
            type=str(tx.type),
        )
        return None


def balance_effect(tx: Transaction) -> Optional[Decimal]:
    """
    Signed effect of a transaction on its source account.

    Returns None for unrecognized types so callers can skip them.
    """
    tx_type = _resolve_type(tx)
    if tx_type is None:
        return None
    return Decimal(tx.amount) * _SIGNS[tx_type]


def compute_balance(
    initial_balance: Union[Decimal, int, str],
    transactions: Iterable[Transaction],
) -> Decimal:
    """
    Fold the sign table over the transactions of one account.

    Args:
        initial_balance: Balance when tracking started
        transactions: Transactions whose `account_id` is this account.
            Order does not matter.

    Returns:
        The derived balance
    """
    balance = Decimal(initial_balance)
    for tx in transactions:
        effect = balance_effect(tx)
        if effect is not None:
            balance += effect
    return balance


def compute_balance_with_transfers(
    initial_balance: Union[Decimal, int, str],
    incoming_transfers: Iterable[Transaction],
    other_transactions: Iterable[Transaction],
) -> Decimal:
    """Base fold plus every incoming transfer credited to this account."""
    balance = compute_balance(initial_balance, other_transactions)
    for transfer in incoming_transfers:
        if transfer.type == TransactionType.TRANSFER:
            balance += Decimal(transfer.amount)
    return balance


def compute_account_balance(
    account: Account,
    transactions: Iterable[Transaction],
) -> Decimal:
    """
    Derive one account's balance from a mixed transaction log.

    Picks out the account's own transactions and the transfers it received.
    """
    outgoing = []
    incoming = []
    for tx in transactions:
        if tx.account_id == account.id:
            outgoing.append(tx)
        elif tx.to_account_id == account.id:
            incoming.append(tx)
    return compute_balance_with_transfers(account.initial_balance, incoming, outgoing)


def verify_balance(
    expected: Decimal,
    calculated: Decimal,
    tolerance: Optional[float] = None,
    account_id: Optional[str] = None,
) -> BalanceCheck:
    """
    Compare a cached balance against a freshly derived one.

    Reports the signed difference (expected - calculated); never corrects.
    """
    if tolerance is None:
        tolerance = get_settings().ledger.balance_tolerance

    difference = Decimal(expected) - Decimal(calculated)
    return BalanceCheck(
        account_id=account_id,
        expected=Decimal(expected),
        calculated=Decimal(calculated),
        difference=difference,
        is_valid=abs(difference) <= Decimal(str(tolerance)),
    )


def ensure_balance_matches(
    account: Account,
    transactions: Iterable[Transaction],
    tolerance: Optional[float] = None,
) -> BalanceCheck:
    """
    Strict variant of verify_balance for a single account.

    Raises:
        IntegrityMismatchError: If the cached balance drifted
    """
    check = verify_balance(
        account.balance,
        compute_account_balance(account, transactions),
        tolerance=tolerance,
        account_id=account.id,
    )
    if not check.is_valid:
        raise IntegrityMismatchError(check)
    return check
