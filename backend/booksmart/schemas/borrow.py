"""Borrow record Pydantic schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from booksmart.models.borrow_record import BorrowStatus
from booksmart.schemas.common import BaseSchema


class BorrowRequestCreate(BaseModel):
    """Schema for a borrower asking for a book."""

    book_id: int
    notes: Optional[str] = Field(None, max_length=1000)


class ApproveBorrowRequest(BaseModel):
    """Schema for approving a pending request."""

    loan_period_days: Optional[int] = Field(None, ge=1, le=365)


class RejectBorrowRequest(BaseModel):
    """Schema for rejecting a pending request."""

    reason: Optional[str] = Field(None, max_length=1000)


class RenewBorrowRequest(BaseModel):
    """Schema for extending a loan."""

    extension_days: Optional[int] = Field(None, ge=1, le=365)


class BorrowRecordResponse(BaseSchema):
    """Schema for borrow record response."""

    id: int
    user_id: int
    book_id: int
    status: BorrowStatus
    borrow_date: datetime
    due_date: Optional[date] = None
    return_date: Optional[date] = None
    fine_amount: Decimal
    renewal_count: int
    notes: Optional[str] = None
    borrowed_by: Optional[str] = None
    returned_by: Optional[str] = None
    updated_by: Optional[str] = None
    last_reminder_sent: Optional[datetime] = None


class BorrowRecordWithFine(BorrowRecordResponse):
    """Borrow record plus the fine owed as of today at the current rate."""

    accrued_fine: Decimal


class BulkApproveRequest(BaseModel):
    """Schema for approving several pending requests at once."""

    record_ids: list[int] = Field(..., min_length=1, max_length=100)
    loan_period_days: Optional[int] = Field(None, ge=1, le=365)


class BulkRejectRequest(BaseModel):
    """Schema for rejecting several pending requests at once."""

    record_ids: list[int] = Field(..., min_length=1, max_length=100)
    reason: Optional[str] = Field(None, max_length=1000)


class BulkActionItem(BaseSchema):
    """Outcome for one record of a bulk action."""

    record_id: int
    success: bool
    status: Optional[BorrowStatus] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


class BulkActionResponse(BaseModel):
    """Outcome of a bulk approve or reject."""

    succeeded: int
    failed: int
    results: list[BulkActionItem]
