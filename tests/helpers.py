"""Small builders for ledger inputs used across the test modules."""

from datetime import datetime
from decimal import Decimal

from ledger_core.models.entities import TransactionCreate, TransactionType


USER_ID = "user-1"


def expense(account_id: str, amount: str, category_id: str = "expense-food", **kwargs) -> TransactionCreate:
    return TransactionCreate(
        account_id=account_id,
        amount=Decimal(amount),
        type=TransactionType.EXPENSE,
        category_id=category_id,
        **kwargs,
    )


def income(account_id: str, amount: str, category_id: str = "income-salary", **kwargs) -> TransactionCreate:
    return TransactionCreate(
        account_id=account_id,
        amount=Decimal(amount),
        type=TransactionType.INCOME,
        category_id=category_id,
        **kwargs,
    )


def transfer(account_id: str, to_account_id: str, amount: str, **kwargs) -> TransactionCreate:
    return TransactionCreate(
        account_id=account_id,
        to_account_id=to_account_id,
        amount=Decimal(amount),
        type=TransactionType.TRANSFER,
        **kwargs,
    )


def at(year: int, month: int, day: int, hour: int = 12) -> datetime:
    return datetime(year, month, day, hour)
