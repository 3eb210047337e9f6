"""Shared test fixtures."""
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

# Keep the application engine off PostgreSQL; each test builds its own database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from booksmart.api.deps import get_clock, get_notifier  # noqa: E402
from booksmart.core.security import get_password_hash  # noqa: E402
from booksmart.database import Base, build_engine, get_db, session_scope  # noqa: E402
from booksmart.main import app  # noqa: E402
from booksmart.models.book import Book  # noqa: E402
from booksmart.models.user import AccountStatus, User, UserRole  # noqa: E402
from booksmart.services.lifecycle_service import BorrowLifecycleService  # noqa: E402
from booksmart.services.notifications import Notification  # noqa: E402

TEST_PASSWORD = "correct-horse-battery"

# 2024-01-01 10:00 UTC
START = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    """Notifier that keeps every notification in memory."""

    def __init__(self):
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    def events(self) -> list[str]:
        return [n.event.value for n in self.sent]


class FailingNotifier:
    """Notifier whose delivery always fails."""

    async def send(self, notification: Notification) -> None:
        raise ConnectionError("mail server unreachable")


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite database, fresh for every test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(db, notifier, clock):
    return BorrowLifecycleService(db, notifier=notifier, clock=clock)


async def make_user(
    db: AsyncSession,
    email: str = "reader@example.com",
    status: AccountStatus = AccountStatus.APPROVED,
    role: UserRole = UserRole.USER,
) -> User:
    user = User(
        email=email,
        full_name=email.split("@")[0].title(),
        password_hash=get_password_hash(TEST_PASSWORD),
        role=role,
        status=status,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user


async def make_book(
    db: AsyncSession,
    total: int = 2,
    available: Optional[int] = None,
    title: str = "The Name of the Rose",
    is_active: bool = True,
) -> Book:
    book = Book(
        title=title,
        author="Umberto Eco",
        total_copies=total,
        available_copies=total if available is None else available,
        is_active=is_active,
    )
    db.add(book)
    await db.flush()
    await db.refresh(book)
    return book


@pytest.fixture
async def reader(db):
    return await make_user(db)


@pytest.fixture
async def book(db):
    return await make_book(db)


@pytest.fixture
async def client(session_maker, clock, notifier):
    """HTTP client against the app, wired to the per-test database."""

    async def override_get_db():
        async with session_scope(session_maker) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
