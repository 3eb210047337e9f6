"""API routers."""
from fastapi import APIRouter

from booksmart.api import admin, auth, borrows

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(auth.router)
api_router.include_router(borrows.router)
api_router.include_router(admin.router)

__all__ = ["api_router"]
