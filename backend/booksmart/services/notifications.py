"""Borrower notifications.

Delivery is best effort: a failing notifier is logged and otherwise ignored,
it never undoes the lifecycle change that triggered it.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from booksmart.core.logging import get_logger
from booksmart.database import after_commit

logger = get_logger("notifications")


class BorrowEvent(str, Enum):
    """Lifecycle events borrowers are told about."""
    APPROVED = "approved"
    REJECTED = "rejected"
    RETURNED = "returned"
    RENEWED = "renewed"
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"


@dataclass
class Notification:
    """A single message about one borrow record."""

    event: BorrowEvent
    record_id: int
    user_id: int
    book_id: int
    data: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    """Anything that can deliver a notification."""

    async def send(self, notification: Notification) -> None:
        ...


class LogNotifier:
    """Notifier that writes notifications to the application log."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            f"[{notification.event.value}] record={notification.record_id} "
            f"user={notification.user_id} book={notification.book_id} {notification.data}"
        )


async def notify_safely(notifier: Notifier, notification: Notification) -> bool:
    """Deliver a notification, logging instead of raising on failure."""
    try:
        await notifier.send(notification)
        return True
    except Exception:
        logger.exception(
            f"Failed to send {notification.event.value} notification "
            f"for borrow record {notification.record_id}"
        )
        return False


class DeferredNotifier:
    """Holds notifications back until the session's transaction commits.

    A rolled back request never tells the borrower about a change that did
    not happen.
    """

    def __init__(self, session: AsyncSession, notifier: Notifier):
        self.session = session
        self.notifier = notifier

    async def send(self, notification: Notification) -> None:
        async def deliver() -> None:
            await notify_safely(self.notifier, notification)

        after_commit(self.session, deliver)
