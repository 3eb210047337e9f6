"""Core utilities."""
from booksmart.core.exceptions import (
    AppException,
    BorrowNotAllowedError,
    DuplicateActiveBorrowError,
    InvalidTransitionError,
    NotFoundError,
    OutOfStockError,
    OverReleaseError,
    RenewalNotAllowedError,
    ValidationError,
)
from booksmart.core.logging import get_logger, setup_logging

__all__ = [
    # Exceptions
    "AppException",
    "BorrowNotAllowedError",
    "DuplicateActiveBorrowError",
    "InvalidTransitionError",
    "NotFoundError",
    "OutOfStockError",
    "OverReleaseError",
    "RenewalNotAllowedError",
    "ValidationError",
    # Logging
    "get_logger",
    "setup_logging",
]
