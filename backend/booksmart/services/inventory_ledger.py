"""Inventory ledger: the only writer of ``Book.available_copies``."""
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from booksmart.core.exceptions import NotFoundError, OutOfStockError, OverReleaseError
from booksmart.core.logging import get_logger
from booksmart.models.book import Book

logger = get_logger("inventory")


class InventoryLedger:
    """Guarded copy-count updates for books.

    Each operation is one UPDATE whose WHERE clause carries the guard, so two
    concurrent callers can never both take the last copy or both release into
    a full shelf.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_book(self, book_id: int) -> Book:
        """Load a book with fresh copy counts."""
        book = await self.db.get(Book, book_id, populate_existing=True)
        if book is None:
            raise NotFoundError("Book", book_id)
        return book

    async def reserve_copy(self, book_id: int) -> None:
        """Take one copy off the shelf."""
        result = await self.db.execute(
            update(Book)
            .where(Book.id == book_id, Book.available_copies > 0)
            .values(available_copies=Book.available_copies - 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.debug(f"Reserved a copy of book {book_id}")
            return

        # Nothing matched: the book is missing or the shelf is empty
        book = await self.get_book(book_id)
        logger.info(
            f"Reserve refused for book {book_id}: "
            f"{book.available_copies}/{book.total_copies} available"
        )
        raise OutOfStockError(book_id)

    async def release_copy(self, book_id: int) -> None:
        """Put one copy back on the shelf."""
        result = await self.db.execute(
            update(Book)
            .where(Book.id == book_id, Book.available_copies < Book.total_copies)
            .values(available_copies=Book.available_copies + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.debug(f"Released a copy of book {book_id}")
            return

        book = await self.get_book(book_id)
        logger.error(
            f"Over-release on book {book_id}: "
            f"{book.available_copies}/{book.total_copies} already available"
        )
        raise OverReleaseError(book_id, book.total_copies, book.available_copies)

    async def correct_available_copies(
        self,
        book_id: int,
        expected_available: int,
        new_available: int,
    ) -> bool:
        """Overwrite the available count during an operator repair.

        Only applies if the count is still ``expected_available``; returns
        False when a concurrent borrow or return moved it first.
        """
        result = await self.db.execute(
            update(Book)
            .where(Book.id == book_id, Book.available_copies == expected_available)
            .values(available_copies=new_available)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
