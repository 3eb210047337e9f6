"""SQLAlchemy models."""
from booksmart.models.book import Book
from booksmart.models.borrow_record import ACTIVE_STATUSES, BorrowRecord, BorrowStatus
from booksmart.models.inventory_adjustment import InventoryAdjustment
from booksmart.models.system_config import ConfigKey, SystemConfig
from booksmart.models.user import AccountStatus, User, UserRole

__all__ = [
    # User
    "User",
    "UserRole",
    "AccountStatus",
    # Book
    "Book",
    # BorrowRecord
    "BorrowRecord",
    "BorrowStatus",
    "ACTIVE_STATUSES",
    # Config
    "SystemConfig",
    "ConfigKey",
    # Reconciliation
    "InventoryAdjustment",
]
