"""Borrow record store tests."""
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from booksmart.core.exceptions import (
    DuplicateActiveBorrowError,
    InvalidTransitionError,
    NotFoundError,
)
from booksmart.models.borrow_record import BorrowStatus
from booksmart.services.borrow_record_store import BorrowRecordStore

from conftest import make_book, make_user

NOW = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_create_starts_pending(db, reader, book):
    store = BorrowRecordStore(db)

    record = await store.create(reader.id, book.id, NOW, notes="for book club")

    assert record.status == BorrowStatus.PENDING
    assert record.due_date is None
    assert record.return_date is None
    assert record.fine_amount == Decimal("0.00")
    assert record.renewal_count == 0
    assert record.notes == "for book club"


@pytest.mark.asyncio
async def test_second_active_record_is_duplicate(db, reader, book):
    store = BorrowRecordStore(db)
    await store.create(reader.id, book.id, NOW)

    with pytest.raises(DuplicateActiveBorrowError):
        await store.create(reader.id, book.id, NOW)


@pytest.mark.asyncio
async def test_new_request_allowed_after_rejection(db, reader, book):
    store = BorrowRecordStore(db)
    first = await store.create(reader.id, book.id, NOW)
    await store.transition(first.id, BorrowStatus.PENDING, BorrowStatus.REJECTED)

    second = await store.create(reader.id, book.id, NOW)

    assert second.id != first.id
    assert second.status == BorrowStatus.PENDING


@pytest.mark.asyncio
async def test_transition_sets_effects(db, reader, book):
    store = BorrowRecordStore(db)
    record = await store.create(reader.id, book.id, NOW)

    updated = await store.transition(
        record.id,
        BorrowStatus.PENDING,
        BorrowStatus.BORROWED,
        due_date=date(2024, 1, 8),
        borrowed_by=reader.email,
    )

    assert updated.status == BorrowStatus.BORROWED
    assert updated.due_date == date(2024, 1, 8)
    assert updated.borrowed_by == reader.email


@pytest.mark.asyncio
async def test_transition_from_wrong_status(db, reader, book):
    store = BorrowRecordStore(db)
    record = await store.create(reader.id, book.id, NOW)

    with pytest.raises(InvalidTransitionError) as exc_info:
        await store.transition(record.id, BorrowStatus.BORROWED, BorrowStatus.RETURNED)

    assert exc_info.value.details["actual"] == "PENDING"
    assert (await store.get(record.id)).status == BorrowStatus.PENDING


@pytest.mark.parametrize(
    "from_status,to_status",
    [
        (BorrowStatus.PENDING, BorrowStatus.RETURNED),
        (BorrowStatus.BORROWED, BorrowStatus.PENDING),
        (BorrowStatus.RETURNED, BorrowStatus.BORROWED),
        (BorrowStatus.REJECTED, BorrowStatus.PENDING),
    ],
)
@pytest.mark.asyncio
async def test_illegal_transitions_rejected(db, reader, book, from_status, to_status):
    store = BorrowRecordStore(db)
    record = await store.create(reader.id, book.id, NOW)

    with pytest.raises(InvalidTransitionError):
        await store.transition(record.id, from_status, to_status)

    assert (await store.get(record.id)).status == BorrowStatus.PENDING


@pytest.mark.asyncio
async def test_unknown_transition_field(db, reader, book):
    store = BorrowRecordStore(db)
    record = await store.create(reader.id, book.id, NOW)

    with pytest.raises(ValueError):
        await store.transition(
            record.id, BorrowStatus.PENDING, BorrowStatus.BORROWED, renewal_count=5
        )


@pytest.mark.asyncio
async def test_missing_record(db):
    with pytest.raises(NotFoundError):
        await BorrowRecordStore(db).get(12345)


@pytest.mark.asyncio
async def test_extend_due_date_is_guarded(db, reader, book):
    store = BorrowRecordStore(db)
    record = await store.create(reader.id, book.id, NOW)
    record = await store.transition(
        record.id, BorrowStatus.PENDING, BorrowStatus.BORROWED, due_date=date(2024, 1, 8)
    )
    stale = await store.get(record.id)
    snapshot_due, snapshot_count = stale.due_date, stale.renewal_count

    renewed = await store.extend_due_date(stale, date(2024, 1, 15))
    assert renewed.due_date == date(2024, 1, 15)
    assert renewed.renewal_count == 1

    # A second renewal built from the old snapshot must not land
    stale.due_date, stale.renewal_count = snapshot_due, snapshot_count
    with pytest.raises(InvalidTransitionError):
        await store.extend_due_date(stale, date(2024, 1, 15))
    assert (await store.get(record.id)).renewal_count == 1


@pytest.mark.asyncio
async def test_overdue_listing_and_counts(db, book):
    store = BorrowRecordStore(db)
    other_book = await make_book(db, title="Foucault's Pendulum")
    users = [await make_user(db, email=f"reader{i}@example.com") for i in range(3)]

    due_dates = [date(2024, 1, 5), date(2024, 1, 20), None]
    for user, due in zip(users, due_dates):
        record = await store.create(user.id, book.id, NOW)
        if due is not None:
            await store.transition(
                record.id, BorrowStatus.PENDING, BorrowStatus.BORROWED, due_date=due
            )
    late = await store.create(users[0].id, other_book.id, NOW)
    await store.transition(
        late.id, BorrowStatus.PENDING, BorrowStatus.BORROWED, due_date=date(2024, 1, 2)
    )

    overdue = await store.list_overdue(date(2024, 1, 10))

    assert [r.due_date for r in overdue] == [date(2024, 1, 2), date(2024, 1, 5)]
    assert await store.borrowed_counts() == {book.id: 2, other_book.id: 1}


@pytest.mark.asyncio
async def test_set_fine_only_on_borrowed(db, reader, book):
    store = BorrowRecordStore(db)
    record = await store.create(reader.id, book.id, NOW)

    assert await store.set_fine(record.id, Decimal("2.00")) is False

    await store.transition(
        record.id, BorrowStatus.PENDING, BorrowStatus.BORROWED, due_date=date(2024, 1, 8)
    )
    assert await store.set_fine(record.id, Decimal("2.00"), updated_by="system", reminder_sent_at=NOW) is True

    stored = await store.get(record.id)
    assert stored.fine_amount == Decimal("2.00")
    assert stored.updated_by == "system"
    assert stored.last_reminder_sent is not None


@pytest.mark.asyncio
async def test_list_records_paginates(db, book):
    store = BorrowRecordStore(db)
    for i in range(5):
        user = await make_user(db, email=f"page{i}@example.com")
        await store.create(user.id, book.id, NOW)

    items, total = await store.list_records(BorrowStatus.PENDING, page=2, page_size=2)

    assert total == 5
    assert len(items) == 2
    items, total = await store.list_records(BorrowStatus.RETURNED)
    assert (items, total) == ([], 0)


class StaleLookupStore(BorrowRecordStore):
    """Store whose duplicate lookup misses, as a concurrent writer's would."""

    async def find_active(self, user_id, book_id):
        return None


@pytest.mark.asyncio
async def test_unique_index_catches_duplicate_the_lookup_missed(db, reader, book):
    store = StaleLookupStore(db)
    first = await store.create(reader.id, book.id, NOW)

    with pytest.raises(DuplicateActiveBorrowError):
        await store.create(reader.id, book.id, NOW)

    # Only the failed insert was rolled back
    records = await store.list_for_user(reader.id)
    assert [r.id for r in records] == [first.id]
    assert records[0].status == BorrowStatus.PENDING


@pytest.mark.asyncio
async def test_due_soon_listing_window(db, book):
    store = BorrowRecordStore(db)
    due_dates = [
        date(2024, 1, 9),   # overdue
        date(2024, 1, 10),  # today
        date(2024, 1, 12),  # last day of the window
        date(2024, 1, 13),  # too far out
    ]
    for i, due in enumerate(due_dates):
        user = await make_user(db, email=f"soon{i}@example.com")
        record = await store.create(user.id, book.id, NOW)
        await store.transition(
            record.id, BorrowStatus.PENDING, BorrowStatus.BORROWED, due_date=due
        )
    pending_user = await make_user(db, email="pending@example.com")
    await store.create(pending_user.id, book.id, NOW)

    due_soon = await store.list_due_soon(date(2024, 1, 10))

    assert [r.due_date for r in due_soon] == [date(2024, 1, 10), date(2024, 1, 12)]
    assert [r.due_date for r in await store.list_due_soon(date(2024, 1, 10), days=0)] == [
        date(2024, 1, 10)
    ]


@pytest.mark.asyncio
async def test_mark_reminded_only_on_borrowed(db, reader, book):
    store = BorrowRecordStore(db)
    record = await store.create(reader.id, book.id, NOW)

    assert await store.mark_reminded(record.id, NOW) is False

    await store.transition(
        record.id, BorrowStatus.PENDING, BorrowStatus.BORROWED, due_date=date(2024, 1, 2)
    )
    assert await store.mark_reminded(record.id, NOW, updated_by="system") is True

    stored = await store.get(record.id)
    assert stored.last_reminder_sent is not None
    assert stored.updated_by == "system"
