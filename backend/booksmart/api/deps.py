"""Dependency providers for the API routes."""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from booksmart.database import get_db
from booksmart.services.lifecycle_service import BorrowLifecycleService, Clock, utc_now
from booksmart.services.notifications import DeferredNotifier, LogNotifier, Notifier

notifier = LogNotifier()


def get_notifier() -> Notifier:
    """Dependency provider for the borrower notifier."""
    return notifier


def get_clock() -> Clock:
    """Dependency provider for the current time."""
    return utc_now


def get_lifecycle_service(
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> BorrowLifecycleService:
    """Dependency provider for BorrowLifecycleService.

    Notifications wait for the request's commit.
    """
    return BorrowLifecycleService(db, notifier=DeferredNotifier(db, notifier), clock=clock)
