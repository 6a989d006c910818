"""
Main API Router - Consolidates all module routes
"""

from fastapi import APIRouter
from stockalloc.api.v1 import allocations

api_router = APIRouter()

# Stock allocation routes
api_router.include_router(allocations.router, prefix="/allocations", tags=["stock-allocation"])
