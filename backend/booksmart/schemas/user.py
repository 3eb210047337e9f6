"""User Pydantic schemas."""
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from booksmart.models.user import AccountStatus, UserRole
from booksmart.schemas.common import BaseSchema


class UserBase(BaseModel):
    """Base user schema."""

    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)


class UserCreate(UserBase):
    """Schema for registering a user."""

    password: str = Field(..., min_length=8, max_length=72)


class UserLogin(BaseModel):
    """Schema for user login."""

    email: EmailStr
    password: str


class UserResponse(UserBase, BaseSchema):
    """Schema for user response."""

    id: int
    role: UserRole
    status: AccountStatus
    created_at: datetime


class AccountStatusUpdate(BaseModel):
    """Admin decision on a user's account."""

    status: AccountStatus


class Token(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenPayload(BaseModel):
    """JWT token payload."""

    sub: int  # user_id
    email: str
    role: UserRole
    exp: datetime
