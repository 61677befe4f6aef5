from fastapi import APIRouter

from lifegraph.api.v1.endpoints import memory

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(memory.router, prefix="/memory", tags=["Memory"])

__all__ = ["api_router"]
