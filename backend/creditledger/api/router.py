"""
API router aggregator.
Includes all route modules.
"""
from fastapi import APIRouter
from creditledger.api import admin, health, me

api_router = APIRouter()

# Include route modules
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(me.router, prefix="/me", tags=["me"])
api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
