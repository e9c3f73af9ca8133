"""Routes package initialization.

This module exports the route collection for the application.
"""

from fastapi import APIRouter

from app.api.routes import shortener, redirect, health

# Create root router
api_router = APIRouter()

api_router.include_router(shortener.router)
api_router.include_router(health.router)

# The catch-all /{short_code} route must be registered last
api_router.include_router(redirect.router)

__all__ = ["api_router"]
