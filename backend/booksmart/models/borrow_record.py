"""Borrow record model."""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from booksmart.database import Base

if TYPE_CHECKING:
    from booksmart.models.book import Book
    from booksmart.models.user import User


class BorrowStatus(str, PyEnum):
    """Borrow record status enum."""
    PENDING = "PENDING"
    BORROWED = "BORROWED"
    RETURNED = "RETURNED"
    REJECTED = "REJECTED"


# Statuses that hold a claim on the book for the user.
ACTIVE_STATUSES = (BorrowStatus.PENDING, BorrowStatus.BORROWED)

_ACTIVE_PREDICATE = text("status IN ('PENDING', 'BORROWED')")


class BorrowRecord(Base):
    """One user's claim on one copy of one book."""

    __tablename__ = "borrow_records"
    __table_args__ = (
        Index(
            "uq_borrow_records_active_user_book",
            "user_id",
            "book_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id"), nullable=False, index=True)
    status: Mapped[BorrowStatus] = mapped_column(
        Enum(BorrowStatus), default=BorrowStatus.PENDING, nullable=False, index=True
    )
    borrow_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    return_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    fine_amount: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), default=Decimal("0.00"), nullable=False
    )
    renewal_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    borrowed_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    returned_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_reminder_sent: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="borrow_records")
    book: Mapped["Book"] = relationship("Book", back_populates="borrow_records")

    def __repr__(self) -> str:
        return (
            f"<BorrowRecord(id={self.id}, user_id={self.user_id}, "
            f"book_id={self.book_id}, status={self.status})>"
        )
