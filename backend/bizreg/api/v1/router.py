"""
bizreg API v1 Router
Aggregates all API endpoints
"""

from fastapi import APIRouter
from bizreg.api.v1.endpoints import business

# Create main API router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(business.router, prefix="/business", tags=["business"])
