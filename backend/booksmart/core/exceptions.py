"""Custom exceptions for the application."""
from typing import Any, Optional


class AppException(Exception):
    """Base application exception."""

    status_code: int = 400

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Resource not found errors."""

    status_code = 404

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(
            f"{resource} with id {resource_id} not found",
            error_code="NOT_FOUND",
            details={"resource": resource, "id": resource_id},
        )


class ValidationError(AppException):
    """Validation errors."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            error_code="VALIDATION_ERROR",
            details={"field": field} if field else {},
        )


class InvalidTransitionError(AppException):
    """A borrow record was not in the status the operation expected."""

    status_code = 409

    def __init__(
        self,
        record_id: int,
        expected: Any,
        actual: Any,
        target: Any,
    ):
        super().__init__(
            f"Borrow record {record_id} is {_label(actual)}, "
            f"cannot move from {_label(expected)} to {_label(target)}",
            error_code="INVALID_TRANSITION",
            details={
                "record_id": record_id,
                "expected": _label(expected),
                "actual": _label(actual),
                "target": _label(target),
            },
        )


class OutOfStockError(AppException):
    """No copy of the book is available."""

    status_code = 409

    def __init__(self, book_id: int):
        super().__init__(
            f"Book {book_id} has no available copies",
            error_code="OUT_OF_STOCK",
            details={"book_id": book_id},
        )


class OverReleaseError(AppException):
    """Releasing a copy would push available copies above the total.

    This is never a user error: it means the inventory counts and the
    borrow records disagree somewhere upstream.
    """

    status_code = 500

    def __init__(self, book_id: int, total_copies: int, available_copies: int):
        super().__init__(
            f"Book {book_id} already has all {total_copies} copies available",
            error_code="OVER_RELEASE",
            details={
                "book_id": book_id,
                "total_copies": total_copies,
                "available_copies": available_copies,
            },
        )


class DuplicateActiveBorrowError(AppException):
    """The user already has a pending or active borrow for the book."""

    status_code = 409

    def __init__(self, user_id: int, book_id: int):
        super().__init__(
            "You already have a pending or active borrow for this book",
            error_code="DUPLICATE_ACTIVE_BORROW",
            details={"user_id": user_id, "book_id": book_id},
        )


class RenewalNotAllowedError(AppException):
    """Renewal refused."""

    status_code = 409

    def __init__(self, record_id: int, reason: str):
        super().__init__(
            f"Borrow record {record_id} cannot be renewed: {reason}",
            error_code="RENEWAL_NOT_ALLOWED",
            details={"record_id": record_id, "reason": reason},
        )


class BorrowNotAllowedError(AppException):
    """Borrower or book fails the eligibility check."""

    status_code = 403

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(
            message,
            error_code="BORROW_NOT_ALLOWED",
            details={"reason": reason} if reason else {},
        )


def _label(value: Any) -> Any:
    return getattr(value, "value", value)
