"""Common Pydantic schemas."""
from typing import Any, Generic, Optional, TypeVar, Union

from fastapi import status
from pydantic import BaseModel, ConfigDict

DataT = TypeVar("DataT")


class BaseSchema(BaseModel):
    """Base schema that reads from ORM objects."""

    model_config = ConfigDict(from_attributes=True)


class PaginatedResponse(BaseModel, Generic[DataT]):
    """Generic paginated response."""

    items: list[DataT]
    total: int
    page: int
    page_size: int
    total_pages: int


class ErrorResponse(BaseModel):
    """Body returned for every application error."""

    detail: str
    error_code: Optional[str] = None
    details: dict[str, Any] = {}


# Documented error bodies for routes that raise AppException
ERROR_RESPONSES: dict[Union[int, str], dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    status.HTTP_409_CONFLICT: {"model": ErrorResponse},
}
