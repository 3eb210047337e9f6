"""Book Pydantic schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from booksmart.schemas.common import BaseSchema


class BookCreate(BaseModel):
    """Schema for adding a book to the catalog; every copy starts on the shelf."""

    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    total_copies: int = Field(1, ge=0)

    @field_validator("title", "author")
    @classmethod
    def strip_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class BookUpdate(BaseModel):
    """Schema for catalog edits that never touch copy counts."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    author: Optional[str] = Field(None, min_length=1, max_length=255)
    is_active: Optional[bool] = None

    @field_validator("title", "author", "is_active", mode="before")
    @classmethod
    def reject_null(cls, v):
        # Omit a field to leave it unchanged; the columns are NOT NULL
        if v is None:
            raise ValueError("must not be null")
        return v

    @field_validator("title", "author")
    @classmethod
    def strip_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class BookResponse(BaseSchema):
    """Schema for book response."""

    id: int
    title: str
    author: str
    total_copies: int
    available_copies: int
    is_active: bool
    created_at: datetime
