"""Admin Pydantic schemas: fines, reminders and inventory reconciliation."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from booksmart.schemas.common import BaseSchema


class FineConfigResponse(BaseModel):
    """Current daily fine rate."""

    daily_fine_amount: Decimal
    version: int = 0
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None


class FineConfigUpdate(BaseModel):
    """Schema for changing the daily fine rate."""

    daily_fine_amount: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)


class FineRefreshRequest(BaseModel):
    """Optional rate override for a one-off fine refresh."""

    daily_fine_amount: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)


class FineRefreshItem(BaseSchema):
    """Result for one overdue record."""

    record_id: int
    days_overdue: int
    previous_fine: Decimal
    fine_amount: Decimal
    updated: bool


class FineRefreshResponse(BaseModel):
    """Result of an overdue fine refresh."""

    daily_fine_amount: Decimal
    updated_count: int
    items: list[FineRefreshItem]


class DueSoonReminderRequest(BaseModel):
    """Window for due-soon reminders, in days from today."""

    days: int = Field(2, ge=0, le=30)


class DueSoonReminderItem(BaseSchema):
    """Reminder outcome for one loan."""

    record_id: int
    due_date: date
    days_until_due: int
    sent: bool


class DueSoonReminderResponse(BaseModel):
    """Result of a due-soon reminder run."""

    sent_count: int
    items: list[DueSoonReminderItem]


class DiscrepancyResponse(BaseSchema):
    """One book whose copy counts disagree with its BORROWED records."""

    book_id: int
    title: str
    total_copies: int
    available_copies: int
    expected: int
    actual: int
    drift: int


class InventoryAuditResponse(BaseModel):
    """Outcome of an inventory audit."""

    consistent: bool
    checked_at: datetime
    discrepancies: list[DiscrepancyResponse]


class RepairRequest(BaseModel):
    """Operator note attached to an inventory repair."""

    reason: Optional[str] = Field(None, max_length=1000)


class InventoryAdjustmentResponse(BaseSchema):
    """Audit row of an inventory repair."""

    id: int
    book_id: int
    previous_available: int
    new_available: int
    borrowed_count: int
    performed_by: str
    reason: Optional[str] = None
    created_at: datetime


class RepairResponse(BaseModel):
    """Result of an inventory repair request."""

    repaired: bool
    adjustment: Optional[InventoryAdjustmentResponse] = None
