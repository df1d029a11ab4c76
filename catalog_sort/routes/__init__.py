"""API routes."""

from fastapi import APIRouter

from catalog_sort.routes import admin

api_router = APIRouter()

# Admin endpoints (sort runs, tally inspection, outcomes)
api_router.include_router(admin.router, prefix="/v1/admin", tags=["admin"])
