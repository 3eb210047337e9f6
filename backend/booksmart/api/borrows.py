"""Borrower-facing API routes."""
from fastapi import APIRouter, Depends, HTTPException, status

from booksmart.api.deps import get_lifecycle_service
from booksmart.core.security import get_current_user
from booksmart.models.borrow_record import BorrowRecord
from booksmart.models.user import User, UserRole
from booksmart.schemas.book import BookResponse
from booksmart.schemas.common import ERROR_RESPONSES
from booksmart.schemas.borrow import (
    BorrowRecordResponse,
    BorrowRecordWithFine,
    BorrowRequestCreate,
)
from booksmart.services.lifecycle_service import BorrowLifecycleService

router = APIRouter(tags=["Borrowing"], responses=ERROR_RESPONSES)


@router.get("/books/{book_id}", response_model=BookResponse)
async def get_book(
    book_id: int,
    current_user: User = Depends(get_current_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
):
    """Get a book with its current availability."""
    return await service.ledger.get_book(book_id)


@router.post("/borrows", response_model=BorrowRecordResponse, status_code=status.HTTP_201_CREATED)
async def request_borrow(
    request: BorrowRequestCreate,
    current_user: User = Depends(get_current_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> BorrowRecord:
    """Ask to borrow a book. The request waits for an admin's approval."""
    return await service.request_borrow(current_user.id, request.book_id, notes=request.notes)


@router.get("/borrows", response_model=list[BorrowRecordWithFine])
async def list_my_borrows(
    current_user: User = Depends(get_current_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> list[dict]:
    """List the current user's borrow records with the fines they owe today."""
    records = await service.records.list_for_user(current_user.id)
    rate = await service.fine_config.get_daily_rate()
    return [await _with_fine(service, record, rate) for record in records]


@router.get("/borrows/{record_id}", response_model=BorrowRecordWithFine)
async def get_borrow(
    record_id: int,
    current_user: User = Depends(get_current_user),
    service: BorrowLifecycleService = Depends(get_lifecycle_service),
) -> dict:
    """Get one borrow record. Borrowers only see their own."""
    record = await service.records.get(record_id)
    if record.user_id != current_user.id and current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Borrow record not found",
        )
    return await _with_fine(service, record)


async def _with_fine(service: BorrowLifecycleService, record: BorrowRecord, rate=None) -> dict:
    data = BorrowRecordResponse.model_validate(record).model_dump()
    data["accrued_fine"] = await service.accrued_fine(record, rate)
    return data
