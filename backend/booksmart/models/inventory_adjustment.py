"""Inventory adjustment model for operator repairs."""
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from booksmart.database import Base


class InventoryAdjustment(Base):
    """Audit row written whenever an operator repairs a book's copy count."""

    __tablename__ = "inventory_adjustments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    book_id: Mapped[int] = mapped_column(ForeignKey("books.id"), nullable=False, index=True)
    previous_available: Mapped[int] = mapped_column(Integer, nullable=False)
    new_available: Mapped[int] = mapped_column(Integer, nullable=False)
    borrowed_count: Mapped[int] = mapped_column(Integer, nullable=False)
    performed_by: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryAdjustment(book_id={self.book_id}, "
            f"{self.previous_available}->{self.new_available})>"
        )
