"""
Shared fixtures for the ledger core tests.

Every test gets a fresh in-memory backend, so no state leaks between tests.
"""

from decimal import Decimal

import pytest
from tenacity import wait_none

from ledger_core.audit import AuditLogger
from ledger_core.ledger import LedgerCoordinator
from ledger_core.models.entities import (
    AccountCreate,
    AccountType,
    CategoryCreate,
    CategoryType,
    User,
    UserMode,
)
from ledger_core.orchestrator import LedgerService
from ledger_core.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage
from ledger_core.validation import LedgerValidator

from helpers import USER_ID


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def coordinator(storage):
    return LedgerCoordinator(storage, retry_wait=wait_none())


@pytest.fixture
def service(storage, audit_storage, coordinator):
    return LedgerService(
        storage=storage,
        audit_logger=AuditLogger(audit_storage),
        validator=LedgerValidator(storage),
        coordinator=coordinator,
    )


@pytest.fixture
async def user(storage):
    return await storage.create_user(User(
        id=USER_ID,
        email="ada@example.com",
        display_name="Ada",
        mode=UserMode.AUTHENTICATED,
    ))


@pytest.fixture
async def checking(storage, user):
    return await storage.create_account(user.id, AccountCreate(
        name="Checking",
        type=AccountType.BANK,
        initial_balance=Decimal("1000"),
    ))


@pytest.fixture
async def savings(storage, user):
    return await storage.create_account(user.id, AccountCreate(
        name="Savings",
        type=AccountType.BANK,
        initial_balance=Decimal("500"),
    ))


@pytest.fixture
async def food(storage, user):
    return await storage.create_category(
        user.id,
        CategoryCreate(name="Food", type=CategoryType.EXPENSE),
        category_id="expense-food",
    )


@pytest.fixture
async def salary(storage, user):
    return await storage.create_category(
        user.id,
        CategoryCreate(name="Salary", type=CategoryType.INCOME),
        category_id="income-salary",
    )
