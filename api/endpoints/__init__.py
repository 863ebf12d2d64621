"""API endpoints for the Class Mentor training API."""

from fastapi import APIRouter

from .health import router as health_router
from .practice_calls import router as practice_calls_router

# Create main API router
api_router = APIRouter()

# Include all routers
api_router.include_router(health_router, prefix="/health", tags=["Health"])
api_router.include_router(practice_calls_router, prefix="/practice-calls", tags=["Practice Calls"])

__all__ = ["api_router"]
