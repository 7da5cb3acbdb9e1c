"""
API module for FastAPI routes.
"""
from fastapi import APIRouter

from tcgprice.api.routes import health, pricing, sets

api_router = APIRouter()

# Include all route modules
api_router.include_router(health.router, tags=["Health"])
api_router.include_router(pricing.router, tags=["Pricing"])
api_router.include_router(sets.router, tags=["Sets"])
