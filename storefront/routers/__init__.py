"""
FastAPI Routers Package

All routers are included in api/index.py.
"""

from storefront.routers.health import router as health_router

__all__ = [
    "health_router",
]
