"""Consistency checks between book copy counts and borrow records."""
import asyncio
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booksmart.core.exceptions import ValidationError
from booksmart.core.logging import get_logger
from booksmart.models.book import Book
from booksmart.models.borrow_record import BorrowRecord, BorrowStatus
from booksmart.models.inventory_adjustment import InventoryAdjustment
from booksmart.services.borrow_record_store import BorrowRecordStore
from booksmart.services.inventory_ledger import InventoryLedger

logger = get_logger("reconciliation")


@dataclass
class Discrepancy:
    """A book whose lent-out count disagrees with its BORROWED records.

    ``expected`` is the number of BORROWED records, ``actual`` is
    ``total_copies - available_copies``.
    """

    book_id: int
    title: str
    total_copies: int
    available_copies: int
    expected: int
    actual: int

    @property
    def drift(self) -> int:
        return self.actual - self.expected


class ReconciliationService:
    """Detects inventory drift and applies audited operator repairs."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = InventoryLedger(db)
        self.records = BorrowRecordStore(db)

    async def audit_inventory(self) -> list[Discrepancy]:
        """Compare every book's copy counts with its BORROWED records. Read only."""
        # One statement, so counts and records come from the same snapshot
        borrowed = (
            select(BorrowRecord.book_id, func.count().label("borrowed"))
            .where(BorrowRecord.status == BorrowStatus.BORROWED)
            .group_by(BorrowRecord.book_id)
            .subquery()
        )
        result = await self.db.execute(
            select(
                Book.id,
                Book.title,
                Book.total_copies,
                Book.available_copies,
                func.coalesce(borrowed.c.borrowed, 0),
            )
            .outerjoin(borrowed, borrowed.c.book_id == Book.id)
            .order_by(Book.id)
        )
        rows = result.all()

        discrepancies = []
        for book_id, title, total_copies, available_copies, expected in rows:
            actual = total_copies - available_copies
            if expected != actual:
                discrepancies.append(
                    Discrepancy(
                        book_id=book_id,
                        title=title,
                        total_copies=total_copies,
                        available_copies=available_copies,
                        expected=expected,
                        actual=actual,
                    )
                )

        for d in discrepancies:
            logger.warning(
                f"Inventory drift on book {d.book_id} ({d.title}): "
                f"{d.expected} BORROWED record(s) but {d.actual} copies out"
            )
        logger.info(f"Inventory audit checked {len(rows)} book(s), found {len(discrepancies)} discrepancy(ies)")
        return discrepancies

    async def repair_inventory(
        self,
        book_id: int,
        performed_by: str,
        reason: Optional[str] = None,
    ) -> Optional[InventoryAdjustment]:
        """Set a book's available count from its BORROWED records.

        Returns the adjustment written, or None when the book was already
        consistent.
        """
        if not performed_by:
            raise ValidationError("A repair must name the operator", field="performed_by")

        book = await self.ledger.get_book(book_id)
        borrowed = (await self.records.borrowed_counts()).get(book_id, 0)
        target = book.total_copies - borrowed

        if target < 0:
            raise ValidationError(
                f"Book {book_id} has {borrowed} BORROWED records but only "
                f"{book.total_copies} copies; fix the records or the total first",
                field="total_copies",
            )
        if target == book.available_copies:
            logger.info(f"Book {book_id} already consistent, nothing to repair")
            return None

        previous = book.available_copies
        applied = await self.ledger.correct_available_copies(book_id, previous, target)
        if not applied:
            raise ValidationError(
                f"Book {book_id} changed during the repair, run the audit again",
                field="available_copies",
            )

        adjustment = InventoryAdjustment(
            book_id=book_id,
            previous_available=previous,
            new_available=target,
            borrowed_count=borrowed,
            performed_by=performed_by,
            reason=reason,
        )
        self.db.add(adjustment)
        await self.db.flush()
        await self.db.refresh(adjustment)

        logger.warning(
            f"Inventory repaired on book {book_id} by {performed_by}: "
            f"available {previous} -> {target} ({reason or 'no reason given'})"
        )
        return adjustment

    async def list_adjustments(self, book_id: Optional[int] = None) -> list[InventoryAdjustment]:
        query = select(InventoryAdjustment).order_by(InventoryAdjustment.id.desc())
        if book_id is not None:
            query = query.where(InventoryAdjustment.book_id == book_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())


async def run_periodic_audit(
    session_maker: async_sessionmaker,
    interval_seconds: int,
) -> None:
    """Audit the inventory every ``interval_seconds`` until cancelled. Never writes."""
    logger.info(f"Periodic inventory audit every {interval_seconds}s")
    while True:
        try:
            async with session_maker() as session:
                await ReconciliationService(session).audit_inventory()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Periodic inventory audit failed")
        await asyncio.sleep(interval_seconds)
