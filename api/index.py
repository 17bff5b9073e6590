"""
EggyPro Storefront - Main FastAPI Application

Single entry point for the storefront API routes.
"""
import sys
from pathlib import Path
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Add project root to path for Vercel compatibility
_base_path = Path(__file__).parent.parent
if str(_base_path) not in sys.path:
    sys.path.insert(0, str(_base_path))

from storefront.cart.service import close_cart_controller
from storefront.logging import get_logger
from storefront.routers import health_router

logger = get_logger(__name__)


# ==================== FASTAPI APP ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    logger.info("Storefront API starting")
    yield
    # Shutdown
    await close_cart_controller()


app = FastAPI(
    title="EggyPro Storefront",
    description="Cart and price health API",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
