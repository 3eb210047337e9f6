"""Borrow record store: the only writer of a record's status and loan terms."""
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booksmart.core.exceptions import (
    DuplicateActiveBorrowError,
    InvalidTransitionError,
    NotFoundError,
)
from booksmart.core.logging import get_logger
from booksmart.models.borrow_record import ACTIVE_STATUSES, BorrowRecord, BorrowStatus

logger = get_logger("borrow_records")

ALLOWED_TRANSITIONS: frozenset[tuple[BorrowStatus, BorrowStatus]] = frozenset({
    (BorrowStatus.PENDING, BorrowStatus.BORROWED),
    (BorrowStatus.PENDING, BorrowStatus.REJECTED),
    (BorrowStatus.BORROWED, BorrowStatus.RETURNED),
})

# Fields a transition may set alongside the status
TRANSITION_FIELDS = frozenset({
    "due_date",
    "return_date",
    "fine_amount",
    "borrowed_by",
    "returned_by",
    "updated_by",
    "notes",
})


class BorrowRecordStore:
    """Persistence and compare-and-swap status changes for borrow records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, record_id: int) -> BorrowRecord:
        """Get a record by ID with fresh column values."""
        record = await self.db.get(BorrowRecord, record_id, populate_existing=True)
        if record is None:
            raise NotFoundError("Borrow record", record_id)
        return record

    async def find_active(self, user_id: int, book_id: int) -> Optional[BorrowRecord]:
        """Return the user's pending or borrowed record for a book, if any."""
        result = await self.db.execute(
            select(BorrowRecord).where(
                BorrowRecord.user_id == user_id,
                BorrowRecord.book_id == book_id,
                BorrowRecord.status.in_(ACTIVE_STATUSES),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def create(
        self,
        user_id: int,
        book_id: int,
        borrow_date: datetime,
        notes: Optional[str] = None,
    ) -> BorrowRecord:
        """Create a PENDING record. No inventory side effect."""
        if await self.find_active(user_id, book_id) is not None:
            raise DuplicateActiveBorrowError(user_id, book_id)

        record = BorrowRecord(
            user_id=user_id,
            book_id=book_id,
            status=BorrowStatus.PENDING,
            borrow_date=borrow_date,
            due_date=None,
            fine_amount=Decimal("0.00"),
            renewal_count=0,
            notes=notes,
        )
        try:
            # The partial unique index catches a concurrent duplicate request
            async with self.db.begin_nested():
                self.db.add(record)
                await self.db.flush()
        except IntegrityError:
            raise DuplicateActiveBorrowError(user_id, book_id)

        await self.db.refresh(record)
        return record

    async def transition(
        self,
        record_id: int,
        from_status: BorrowStatus,
        to_status: BorrowStatus,
        **effects: Any,
    ) -> BorrowRecord:
        """Move a record from ``from_status`` to ``to_status``.

        The status check and the write are one UPDATE, so of several
        concurrent callers expecting the same ``from_status`` only one wins.
        """
        unknown = set(effects) - TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Unsupported transition fields: {sorted(unknown)}")

        if (from_status, to_status) not in ALLOWED_TRANSITIONS:
            record = await self.get(record_id)
            raise InvalidTransitionError(record_id, from_status, record.status, to_status)

        result = await self.db.execute(
            update(BorrowRecord)
            .where(BorrowRecord.id == record_id, BorrowRecord.status == from_status)
            .values(status=to_status, **effects)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            record = await self.get(record_id)
            raise InvalidTransitionError(record_id, from_status, record.status, to_status)

        logger.info(f"Borrow record {record_id}: {from_status.value} -> {to_status.value}")
        return await self.get(record_id)

    async def extend_due_date(
        self,
        record: BorrowRecord,
        new_due_date: date,
        updated_by: Optional[str] = None,
    ) -> BorrowRecord:
        """Apply a renewal to a BORROWED record loaded by the caller.

        The write only lands if the record still has the status, due date and
        renewal count the caller saw.
        """
        result = await self.db.execute(
            update(BorrowRecord)
            .where(
                BorrowRecord.id == record.id,
                BorrowRecord.status == BorrowStatus.BORROWED,
                BorrowRecord.due_date == record.due_date,
                BorrowRecord.renewal_count == record.renewal_count,
            )
            .values(
                due_date=new_due_date,
                renewal_count=BorrowRecord.renewal_count + 1,
                updated_by=updated_by,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self.get(record.id)
            raise InvalidTransitionError(
                record.id, BorrowStatus.BORROWED, current.status, BorrowStatus.BORROWED
            )
        return await self.get(record.id)

    async def set_fine(
        self,
        record_id: int,
        fine_amount: Decimal,
        updated_by: Optional[str] = None,
        reminder_sent_at: Optional[datetime] = None,
    ) -> bool:
        """Store the accrued fine on a record that is still BORROWED."""
        values: dict[str, Any] = {"fine_amount": fine_amount, "updated_by": updated_by}
        if reminder_sent_at is not None:
            values["last_reminder_sent"] = reminder_sent_at

        result = await self.db.execute(
            update(BorrowRecord)
            .where(
                BorrowRecord.id == record_id,
                BorrowRecord.status == BorrowStatus.BORROWED,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_for_user(self, user_id: int) -> list[BorrowRecord]:
        """All records of one user, newest first."""
        result = await self.db.execute(
            select(BorrowRecord)
            .where(BorrowRecord.user_id == user_id)
            .order_by(BorrowRecord.created_at.desc(), BorrowRecord.id.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_records(
        self,
        status: Optional[BorrowStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[BorrowRecord], int]:
        """Get paginated records, optionally filtered by status."""
        query = select(BorrowRecord)
        if status:
            query = query.where(BorrowRecord.status == status)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar_one()

        query = query.order_by(BorrowRecord.created_at.desc(), BorrowRecord.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query.execution_options(populate_existing=True))

        return list(result.scalars().all()), total

    async def list_overdue(self, today: date) -> list[BorrowRecord]:
        """BORROWED records whose due date is before ``today``."""
        result = await self.db.execute(
            select(BorrowRecord)
            .where(
                BorrowRecord.status == BorrowStatus.BORROWED,
                BorrowRecord.due_date.is_not(None),
                BorrowRecord.due_date < today,
            )
            .order_by(BorrowRecord.due_date)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_due_soon(self, today: date, days: int = 2) -> list[BorrowRecord]:
        """BORROWED records due between ``today`` and ``today + days``, inclusive."""
        result = await self.db.execute(
            select(BorrowRecord)
            .where(
                BorrowRecord.status == BorrowStatus.BORROWED,
                BorrowRecord.due_date.is_not(None),
                BorrowRecord.due_date >= today,
                BorrowRecord.due_date <= today + timedelta(days=days),
            )
            .order_by(BorrowRecord.due_date, BorrowRecord.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def mark_reminded(
        self,
        record_id: int,
        sent_at: datetime,
        updated_by: Optional[str] = None,
    ) -> bool:
        """Stamp ``last_reminder_sent`` on a record that is still BORROWED."""
        result = await self.db.execute(
            update(BorrowRecord)
            .where(
                BorrowRecord.id == record_id,
                BorrowRecord.status == BorrowStatus.BORROWED,
            )
            .values(last_reminder_sent=sent_at, updated_by=updated_by)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def borrowed_counts(self) -> dict[int, int]:
        """Number of BORROWED records per book id."""
        result = await self.db.execute(
            select(BorrowRecord.book_id, func.count())
            .where(BorrowRecord.status == BorrowStatus.BORROWED)
            .group_by(BorrowRecord.book_id)
        )
        return {book_id: count for book_id, count in result.all()}
