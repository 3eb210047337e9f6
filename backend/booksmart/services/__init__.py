"""Business logic services."""
from booksmart.services.borrow_record_store import BorrowRecordStore
from booksmart.services.fine_config import FineConfigService
from booksmart.services.inventory_ledger import InventoryLedger
from booksmart.services.lifecycle_service import BorrowLifecycleService
from booksmart.services.reconciliation import ReconciliationService
from booksmart.services.user_service import UserService

__all__ = [
    "BorrowLifecycleService",
    "BorrowRecordStore",
    "FineConfigService",
    "InventoryLedger",
    "ReconciliationService",
    "UserService",
]
