"""User accounts: registration, login and borrowing eligibility."""
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booksmart.config import settings
from booksmart.core.exceptions import NotFoundError, ValidationError
from booksmart.core.security import create_access_token, get_password_hash, verify_password
from booksmart.models.user import AccountStatus, User, UserRole
from booksmart.schemas.user import Token, UserCreate


class UserService:
    """Service for user account operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register_user(self, user_data: UserCreate) -> User:
        """Register a new user; the account starts PENDING."""
        existing = await self.get_user_by_email(user_data.email)
        if existing:
            raise ValidationError("Email already registered", field="email")

        user = User(
            email=user_data.email,
            full_name=user_data.full_name,
            password_hash=get_password_hash(user_data.password),
            role=UserRole.USER,
            status=AccountStatus.PENDING,
        )
        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def authenticate_user(self, email: str, password: str) -> Optional[User]:
        """Authenticate a user by email and password."""
        user = await self.get_user_by_email(email)
        if not user:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get a user by email."""
        result = await self.db.execute(
            select(User).where(User.email == email)
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Get a user by ID."""
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_user(self, user_id: int) -> User:
        user = await self.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def get_user_status(self, user_id: int) -> AccountStatus:
        """Account status gating whether the user may borrow."""
        user = await self.get_user(user_id)
        return user.status

    async def set_account_status(self, user: User, status: AccountStatus) -> User:
        """Approve or reject a user's account."""
        user.status = status
        await self.db.flush()
        await self.db.refresh(user)
        return user

    def create_token(self, user: User) -> Token:
        """Create an access token for a user."""
        access_token = create_access_token(
            user_id=user.id,
            email=user.email,
            role=user.role,
            expires_delta=timedelta(hours=settings.jwt_expiration_hours),
        )
        return Token(
            access_token=access_token,
            token_type="bearer",
            expires_in=settings.jwt_expiration_hours * 3600,
        )
