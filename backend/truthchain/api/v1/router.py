"""
TruthChain API v1 Router
Aggregates all API endpoints
"""

from fastapi import APIRouter
from truthchain.api.v1.endpoints import records, system

# Create main API router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(records.router, prefix="/records", tags=["records"])
api_router.include_router(system.router, tags=["system"])
