"""Main API router aggregating all v1 routes."""

from fastapi import APIRouter

from rentalsync.api.routes import search_index

# Create main router
api_router = APIRouter()

# Include route modules
api_router.include_router(search_index.router)
