"""Semantic validation of ledger inputs."""

from ledger_core.validation.validator import (
    LedgerValidationError,
    LedgerValidator,
    ValidationIssue,
    ValidationResult,
    get_user_friendly_summary,
)

__all__ = [
    "LedgerValidationError",
    "LedgerValidator",
    "ValidationIssue",
    "ValidationResult",
    "get_user_friendly_summary",
]
