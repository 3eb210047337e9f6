"""Borrow lifecycle: request, approve, reject, return and renew, plus the admin batches.

Every change that touches both a book's copy count and a borrow record's
status runs inside one SAVEPOINT. If either half fails the whole unit rolls
back before the error reaches the caller, so ``total - available`` always
equals the number of BORROWED records for the book.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from booksmart.config import settings
from booksmart.core.exceptions import (
    AppException,
    BorrowNotAllowedError,
    DuplicateActiveBorrowError,
    InvalidTransitionError,
    OutOfStockError,
    OverReleaseError,
    RenewalNotAllowedError,
    ValidationError,
)
from booksmart.core.logging import get_logger
from booksmart.models.borrow_record import BorrowRecord, BorrowStatus
from booksmart.models.user import AccountStatus
from booksmart.services import fine_calculator
from booksmart.services.borrow_record_store import BorrowRecordStore
from booksmart.services.fine_config import FineConfigService
from booksmart.services.inventory_ledger import InventoryLedger
from booksmart.services.notifications import (
    BorrowEvent,
    LogNotifier,
    Notification,
    Notifier,
    notify_safely,
)
from booksmart.services.user_service import UserService

logger = get_logger("lifecycle")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FineRefreshResult:
    """Outcome of recomputing one overdue record's fine."""

    record_id: int
    days_overdue: int
    previous_fine: Decimal
    fine_amount: Decimal
    updated: bool


@dataclass
class BulkActionResult:
    """Outcome of one record in a bulk approve or reject."""

    record_id: int
    success: bool
    status: Optional[BorrowStatus] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


@dataclass
class ReminderResult:
    """A due-soon reminder for one loan."""

    record_id: int
    due_date: date
    days_until_due: int
    sent: bool


class BorrowLifecycleService:
    """Orchestrates the borrow state machine over the ledger and the record store."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[Notifier] = None,
        clock: Clock = utc_now,
        ledger: Optional[InventoryLedger] = None,
        records: Optional[BorrowRecordStore] = None,
        users: Optional[UserService] = None,
        fine_config: Optional[FineConfigService] = None,
    ):
        self.db = db
        self.notifier = notifier or LogNotifier()
        self.clock = clock
        self.ledger = ledger or InventoryLedger(db)
        self.records = records or BorrowRecordStore(db)
        self.users = users or UserService(db)
        self.fine_config = fine_config or FineConfigService(db)

    def today(self) -> date:
        return fine_calculator.calendar_day(self.clock())

    async def request_borrow(
        self,
        user_id: int,
        book_id: int,
        notes: Optional[str] = None,
    ) -> BorrowRecord:
        """Create a PENDING borrow request. Inventory is not touched."""
        status = await self.users.get_user_status(user_id)
        if status != AccountStatus.APPROVED:
            raise BorrowNotAllowedError(
                "Your account must be approved before you can borrow books",
                reason="account_not_approved",
            )

        book = await self.ledger.get_book(book_id)
        if not book.is_active:
            raise BorrowNotAllowedError(
                "This book is not available for borrowing",
                reason="book_inactive",
            )

        if await self.records.find_active(user_id, book_id) is not None:
            logger.info(f"User {user_id} already has an active borrow for book {book_id}")
            raise DuplicateActiveBorrowError(user_id, book_id)

        if book.available_copies <= 0:
            raise OutOfStockError(book_id)

        record = await self.records.create(user_id, book_id, self.clock(), notes=notes)
        logger.info(f"Borrow request {record.id} created: user {user_id}, book {book_id}")
        return record

    async def approve_borrow(
        self,
        record_id: int,
        loan_period_days: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> BorrowRecord:
        """Lend a copy: reserve it and move the record PENDING -> BORROWED."""
        if loan_period_days is None:
            loan_period_days = settings.loan_period_days
        if loan_period_days <= 0:
            raise ValidationError("Loan period must be at least one day", field="loan_period_days")

        record = await self.records.get(record_id)
        if record.status != BorrowStatus.PENDING:
            raise InvalidTransitionError(
                record_id, BorrowStatus.PENDING, record.status, BorrowStatus.BORROWED
            )

        borrower = await self.users.get_user(record.user_id)
        due_date = self.today() + timedelta(days=loan_period_days)

        try:
            async with self.db.begin_nested():
                await self.ledger.reserve_copy(record.book_id)
                record = await self.records.transition(
                    record_id,
                    BorrowStatus.PENDING,
                    BorrowStatus.BORROWED,
                    due_date=due_date,
                    borrowed_by=borrower.email,
                    updated_by=actor or borrower.email,
                )
        except InvalidTransitionError as exc:
            logger.warning(f"Approval of borrow record {record_id} lost a race: {exc.message}")
            raise

        logger.info(f"Borrow record {record_id} approved, due {due_date.isoformat()}")
        await self._notify(BorrowEvent.APPROVED, record, due_date=due_date.isoformat())
        return record

    async def reject_borrow(
        self,
        record_id: int,
        actor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> BorrowRecord:
        """Refuse a PENDING request. Inventory is not touched."""
        effects = {"updated_by": actor}
        if reason:
            effects["notes"] = reason
        record = await self.records.transition(
            record_id, BorrowStatus.PENDING, BorrowStatus.REJECTED, **effects
        )
        await self._notify(BorrowEvent.REJECTED, record, reason=reason)
        return record

    async def return_book(
        self,
        record_id: int,
        actor: Optional[str] = None,
    ) -> BorrowRecord:
        """Take a copy back: move BORROWED -> RETURNED with its fine, then release the copy."""
        record = await self.records.get(record_id)
        if record.status != BorrowStatus.BORROWED:
            raise InvalidTransitionError(
                record_id, BorrowStatus.BORROWED, record.status, BorrowStatus.RETURNED
            )

        borrower = await self.users.get_user(record.user_id)
        today = self.today()
        rate = await self.fine_config.get_daily_rate()
        fine = (
            fine_calculator.compute(record.due_date, today, rate)
            if record.due_date
            else fine_calculator.ZERO
        )

        try:
            async with self.db.begin_nested():
                record = await self.records.transition(
                    record_id,
                    BorrowStatus.BORROWED,
                    BorrowStatus.RETURNED,
                    return_date=today,
                    fine_amount=fine,
                    borrowed_by=record.borrowed_by or borrower.email,
                    returned_by=actor or borrower.email,
                    updated_by=actor or borrower.email,
                )
                await self.ledger.release_copy(record.book_id)
        except OverReleaseError as exc:
            logger.error(
                f"Return of borrow record {record_id} rolled back, inventory is "
                f"inconsistent for book {exc.details['book_id']}; run an inventory audit"
            )
            raise
        except InvalidTransitionError as exc:
            logger.warning(f"Return of borrow record {record_id} lost a race: {exc.message}")
            raise

        logger.info(f"Borrow record {record_id} returned with fine {fine}")
        await self._notify(
            BorrowEvent.RETURNED,
            record,
            fine_amount=str(fine),
            days_overdue=(
                fine_calculator.days_overdue(record.due_date, today) if record.due_date else 0
            ),
        )
        return record

    async def renew_borrow(
        self,
        record_id: int,
        extension_days: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> BorrowRecord:
        """Push the due date of a BORROWED, not yet overdue record."""
        if extension_days is None:
            extension_days = settings.renewal_extension_days
        if extension_days <= 0:
            raise ValidationError("Extension must be at least one day", field="extension_days")

        record = await self.records.get(record_id)
        if record.status != BorrowStatus.BORROWED:
            reason = (
                "book already returned"
                if record.status == BorrowStatus.RETURNED
                else f"record is {record.status.value}, not BORROWED"
            )
            raise RenewalNotAllowedError(record_id, reason)
        if record.due_date is None or record.due_date < self.today():
            raise RenewalNotAllowedError(record_id, "book is overdue")
        if record.renewal_count >= settings.max_renewals:
            raise RenewalNotAllowedError(
                record_id, f"renewal limit of {settings.max_renewals} reached"
            )

        new_due_date = record.due_date + timedelta(days=extension_days)
        record = await self.records.extend_due_date(record, new_due_date, updated_by=actor)

        logger.info(f"Borrow record {record_id} renewed until {new_due_date.isoformat()}")
        await self._notify(
            BorrowEvent.RENEWED,
            record,
            due_date=new_due_date.isoformat(),
            renewal_count=record.renewal_count,
        )
        return record

    async def approve_borrows(
        self,
        record_ids: list[int],
        loan_period_days: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> list[BulkActionResult]:
        """Approve several requests, each one on its own.

        Every approval reserves its copy like a single approve. A refused
        record rolls back alone and the rest of the batch carries on.
        """
        results = []
        for record_id in record_ids:
            try:
                async with self.db.begin_nested():
                    record = await self.approve_borrow(record_id, loan_period_days, actor=actor)
                results.append(BulkActionResult(record_id, True, status=record.status))
            except AppException as exc:
                results.append(_failed(record_id, exc))

        approved = sum(1 for r in results if r.success)
        logger.info(f"Bulk approve by {actor}: {approved}/{len(results)} approved")
        return results

    async def reject_borrows(
        self,
        record_ids: list[int],
        actor: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> list[BulkActionResult]:
        """Reject several pending requests, each one on its own."""
        results = []
        for record_id in record_ids:
            try:
                async with self.db.begin_nested():
                    record = await self.reject_borrow(record_id, actor=actor, reason=reason)
                results.append(BulkActionResult(record_id, True, status=record.status))
            except AppException as exc:
                results.append(_failed(record_id, exc))

        rejected = sum(1 for r in results if r.success)
        logger.info(f"Bulk reject by {actor}: {rejected}/{len(results)} rejected")
        return results

    async def accrued_fine(
        self,
        record: BorrowRecord,
        rate: Optional[Decimal] = None,
    ) -> Decimal:
        """Fine owed on a record right now, using the current daily rate."""
        if record.status == BorrowStatus.RETURNED:
            return record.fine_amount
        if record.status != BorrowStatus.BORROWED or record.due_date is None:
            return fine_calculator.ZERO
        if rate is None:
            rate = await self.fine_config.get_daily_rate()
        return fine_calculator.compute(record.due_date, self.today(), rate)

    async def refresh_overdue_fines(
        self,
        rate_override: Optional[Decimal] = None,
        actor: str = "system",
    ) -> list[FineRefreshResult]:
        """Recompute and store fines for every overdue BORROWED record."""
        rate = rate_override if rate_override is not None else await self.fine_config.get_daily_rate()
        now = self.clock()
        today = fine_calculator.calendar_day(now)

        overdue = await self.records.list_overdue(today)
        logger.info(f"Refreshing fines for {len(overdue)} overdue record(s) at {rate}/day")

        results = []
        for record in overdue:
            previous = record.fine_amount
            fine = fine_calculator.compute(record.due_date, today, rate)
            updated = await self.records.set_fine(
                record.id, fine, updated_by=actor, reminder_sent_at=now
            )
            if updated:
                await self._notify(
                    BorrowEvent.OVERDUE,
                    record,
                    due_date=record.due_date.isoformat(),
                    fine_amount=str(fine),
                )
            results.append(
                FineRefreshResult(
                    record_id=record.id,
                    days_overdue=fine_calculator.days_overdue(record.due_date, today),
                    previous_fine=previous,
                    fine_amount=fine,
                    updated=updated,
                )
            )
        return results

    async def send_due_soon_reminders(
        self,
        days: int = 2,
        actor: str = "system",
    ) -> list[ReminderResult]:
        """Remind borrowers whose loans fall due within ``days`` days, today included."""
        if days < 0:
            raise ValidationError("Reminder window cannot be negative", field="days")

        now = self.clock()
        today = fine_calculator.calendar_day(now)
        due_soon = await self.records.list_due_soon(today, days)
        logger.info(f"Sending due-soon reminders for {len(due_soon)} loan(s) within {days} day(s)")

        results = []
        for record in due_soon:
            days_until_due = (record.due_date - today).days
            sent = await self.records.mark_reminded(record.id, now, updated_by=actor)
            if sent:
                await self._notify(
                    BorrowEvent.DUE_SOON,
                    record,
                    due_date=record.due_date.isoformat(),
                    days_until_due=days_until_due,
                )
            results.append(
                ReminderResult(
                    record_id=record.id,
                    due_date=record.due_date,
                    days_until_due=days_until_due,
                    sent=sent,
                )
            )
        return results

    async def _notify(self, event: BorrowEvent, record: BorrowRecord, **data) -> None:
        await notify_safely(
            self.notifier,
            Notification(
                event=event,
                record_id=record.id,
                user_id=record.user_id,
                book_id=record.book_id,
                data=data,
            ),
        )


def _failed(record_id: int, exc: AppException) -> BulkActionResult:
    return BulkActionResult(
        record_id,
        False,
        error_code=exc.error_code,
        message=exc.message,
    )
