"""
Storagelib utility package.
Exposes retry/type-check helpers and naming helpers.
"""

from storagelib.util.error_handling import ErrorHandling, attempt, attempt_async, check_types
from storagelib.util.sanitization import Sanitization, generate_account_name, is_storage_account, storage_account

__all__ = [
    "ErrorHandling",
    "Sanitization",
    "attempt",
    "attempt_async",
    "check_types",
    "generate_account_name",
    "is_storage_account",
    "storage_account",
]
