"""Admin API routes."""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booksmart.api.deps import get_lifecycle_service
from booksmart.core.exceptions import NotFoundError
from booksmart.core.security import get_admin_user
from booksmart.database import get_db
from booksmart.models.book import Book
from booksmart.models.borrow_record import BorrowRecord, BorrowStatus
from booksmart.models.user import User
from booksmart.schemas.admin import (
    DiscrepancyResponse,
    DueSoonReminderRequest,
    DueSoonReminderResponse,
    FineConfigResponse,
    FineConfigUpdate,
    FineRefreshRequest,
    FineRefreshResponse,
    InventoryAdjustmentResponse,
    InventoryAuditResponse,
    RepairRequest,
    RepairResponse,
)
from booksmart.schemas.book import BookCreate, BookResponse, BookUpdate
from booksmart.schemas.borrow import (
    ApproveBorrowRequest,
    BorrowRecordResponse,
    BulkActionResponse,
    BulkApproveRequest,
    BulkRejectRequest,
    RejectBorrowRequest,
    RenewBorrowRequest,
)
from booksmart.schemas.common import ERROR_RESPONSES, PaginatedResponse
from booksmart.schemas.user import AccountStatusUpdate, UserResponse
from booksmart.services.fine_config import FineConfigService
from booksmart.services.lifecycle_service import BorrowLifecycleService
from booksmart.services.reconciliation import ReconciliationService
from booksmart.services.user_service import UserService

router = APIRouter(prefix="/admin", tags=["Admin"], responses=ERROR_RESPONSES)


# Borrow requests

@router.get("/borrows", response_model=PaginatedResponse[BorrowRecordResponse])
async def list_borrows(
    status_filter: Optional[BorrowStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    admin: User = Depends(get_admin_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> dict:
    """List borrow records, optionally by status (admin only)."""
    records, total = await service.records.list_records(status_filter, page, page_size)
    return {
        "items": records,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": (total + page_size - 1) // page_size,
    }


@router.post("/borrows/{record_id}/approve", response_model=BorrowRecordResponse)
async def approve_borrow(
    record_id: int,
    body: Optional[ApproveBorrowRequest] = None,
    admin: User = Depends(get_admin_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> BorrowRecord:
    """Approve a pending request and lend the copy."""
    loan_period_days = body.loan_period_days if body else None
    return await service.approve_borrow(record_id, loan_period_days, actor=admin.email)


@router.post("/borrows/{record_id}/reject", response_model=BorrowRecordResponse)
async def reject_borrow(
    record_id: int,
    body: Optional[RejectBorrowRequest] = None,
    admin: User = Depends(get_admin_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> BorrowRecord:
    """Reject a pending request."""
    reason = body.reason if body else None
    return await service.reject_borrow(record_id, actor=admin.email, reason=reason)


@router.post("/borrows/{record_id}/return", response_model=BorrowRecordResponse)
async def return_book(
    record_id: int,
    admin: User = Depends(get_admin_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> BorrowRecord:
    """Check a borrowed copy back in and settle its fine."""
    return await service.return_book(record_id, actor=admin.email)


@router.post("/borrows/{record_id}/renew", response_model=BorrowRecordResponse)
async def renew_borrow(
    record_id: int,
    body: Optional[RenewBorrowRequest] = None,
    admin: User = Depends(get_admin_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> BorrowRecord:
    """Extend the due date of a loan that is not overdue."""
    extension_days = body.extension_days if body else None
    return await service.renew_borrow(record_id, extension_days, actor=admin.email)


@router.post("/borrows/bulk-approve", response_model=BulkActionResponse)
async def bulk_approve(
    body: BulkApproveRequest,
    admin: User = Depends(get_admin_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> dict:
    """Approve several pending requests. Each record succeeds or fails on its own."""
    results = await service.approve_borrows(
        body.record_ids, body.loan_period_days, actor=admin.email
    )
    return _bulk_response(results)


@router.post("/borrows/bulk-reject", response_model=BulkActionResponse)
async def bulk_reject(
    body: BulkRejectRequest,
    admin: User = Depends(get_admin_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> dict:
    """Reject several pending requests. Each record succeeds or fails on its own."""
    results = await service.reject_borrows(body.record_ids, actor=admin.email, reason=body.reason)
    return _bulk_response(results)


def _bulk_response(results) -> dict:
    succeeded = sum(1 for r in results if r.success)
    return {
        "succeeded": succeeded,
        "failed": len(results) - succeeded,
        "results": results,
    }


# Reminders

@router.post("/reminders/due-soon", response_model=DueSoonReminderResponse)
async def send_due_soon_reminders(
    body: Optional[DueSoonReminderRequest] = None,
    admin: User = Depends(get_admin_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> dict:
    """Remind borrowers whose loans fall due within the next few days."""
    days = body.days if body else 2
    results = await service.send_due_soon_reminders(days, actor=admin.email)
    return {
        "sent_count": sum(1 for r in results if r.sent),
        "items": results,
    }


# Fines

@router.get("/fine-config", response_model=FineConfigResponse)
async def get_fine_config(
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Get the current daily fine rate."""
    service = FineConfigService(db)
    config = await service.get_config()
    if config is None:
        return {"daily_fine_amount": await service.get_daily_rate()}
    return {
        "daily_fine_amount": await service.get_daily_rate(),
        "version": config.version,
        "updated_by": config.updated_by,
        "updated_at": config.updated_at,
    }


@router.put("/fine-config", response_model=FineConfigResponse)
async def update_fine_config(
    body: FineConfigUpdate,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Change the daily fine rate."""
    config = await FineConfigService(db).set_daily_rate(body.daily_fine_amount, admin.email)
    return {
        "daily_fine_amount": config.value,
        "version": config.version,
        "updated_by": config.updated_by,
        "updated_at": config.updated_at,
    }


@router.post("/fines/refresh", response_model=FineRefreshResponse)
async def refresh_overdue_fines(
    body: Optional[FineRefreshRequest] = None,
    admin: User = Depends(get_admin_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> dict:
    """Recompute the stored fine of every overdue loan."""
    override = body.daily_fine_amount if body else None
    results = await service.refresh_overdue_fines(override, actor=admin.email)
    rate = override if override is not None else await service.fine_config.get_daily_rate()
    return {
        "daily_fine_amount": rate,
        "updated_count": sum(1 for r in results if r.updated),
        "items": results,
    }


# Inventory reconciliation

@router.get("/inventory/audit", response_model=InventoryAuditResponse)
async def audit_inventory(
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Report books whose copy counts disagree with their borrow records."""
    discrepancies = await ReconciliationService(db).audit_inventory()
    return {
        "consistent": not discrepancies,
        "checked_at": datetime.now(timezone.utc),
        "discrepancies": [DiscrepancyResponse.model_validate(d) for d in discrepancies],
    }


@router.post("/inventory/{book_id}/repair", response_model=RepairResponse)
async def repair_inventory(
    book_id: int,
    body: Optional[RepairRequest] = None,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Reset a book's available copies from its BORROWED records, with an audit row."""
    reason = body.reason if body else None
    adjustment = await ReconciliationService(db).repair_inventory(book_id, admin.email, reason)
    return {"repaired": adjustment is not None, "adjustment": adjustment}


@router.get("/inventory/adjustments", response_model=list[InventoryAdjustmentResponse])
async def list_adjustments(
    book_id: Optional[int] = None,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
):
    """List past inventory repairs, newest first."""
    return await ReconciliationService(db).list_adjustments(book_id)


# Catalog and accounts

@router.post("/books", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(
    book_data: BookCreate,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
) -> Book:
    """Add a book to the catalog with all its copies available."""
    book = Book(
        title=book_data.title,
        author=book_data.author,
        total_copies=book_data.total_copies,
        available_copies=book_data.total_copies,
        is_active=True,
    )
    db.add(book)
    await db.flush()
    await db.refresh(book)
    return book


@router.patch("/books/{book_id}", response_model=BookResponse)
async def update_book(
    book_id: int,
    book_data: BookUpdate,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
) -> Book:
    """Edit a book's details or take it out of circulation."""
    book = await db.get(Book, book_id)
    if book is None:
        raise NotFoundError("Book", book_id)

    for field, value in book_data.model_dump(exclude_unset=True).items():
        setattr(book, field, value)

    await db.flush()
    await db.refresh(book)
    return book


@router.put("/users/{user_id}/status", response_model=UserResponse)
async def update_account_status(
    user_id: int,
    body: AccountStatusUpdate,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Approve or reject a user's account."""
    service = UserService(db)
    user = await service.get_user(user_id)
    return await service.set_account_status(user, body.status)
