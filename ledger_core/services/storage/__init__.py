"""
Storage Services Package

Provides the abstract storage contract and concrete backends.
Backends are registered by name and selected once at process start
from `LEDGER_STORAGE_BACKEND`.
"""

from typing import Callable, Optional

from ledger_core.config import get_settings
from ledger_core.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageConflictError,
    StorageError,
)
from ledger_core.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)


BackendFactory = Callable[[], tuple[LedgerStorageInterface, AuditStorageInterface]]

_BACKENDS: dict[str, BackendFactory] = {
    "memory": lambda: (InMemoryLedgerStorage(), InMemoryAuditStorage()),
}


def register_backend(name: str, factory: BackendFactory) -> None:
    """Register a backend factory under a name (case-insensitive)."""
    _BACKENDS[name.strip().lower()] = factory


def available_backends() -> list[str]:
    return sorted(_BACKENDS)


def create_storage(
    backend: Optional[str] = None,
) -> tuple[LedgerStorageInterface, AuditStorageInterface]:
    """
    Instantiate the ledger and audit storage for a backend.

    Args:
        backend: Registered backend name; defaults to the configured one

    Raises:
        StorageError: If the backend name is not registered
    """
    name = (backend or get_settings().storage.backend).strip().lower()
    factory = _BACKENDS.get(name)
    if factory is None:
        raise StorageError(
            f"Unknown storage backend '{name}'. Available: {', '.join(available_backends())}"
        )
    return factory()


__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageConflictError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # Registry
    "available_backends",
    "create_storage",
    "register_backend",
]
