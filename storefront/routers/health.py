"""
Health API Router

Service liveness plus price normalization health, so external systems can
check (and report) malformed catalog prices.
"""
import os
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from storefront.errors import (
    ERROR_INTERNAL,
    ERROR_INVALID_ACTION,
    ERROR_MISSING_REPORT_FIELDS,
    ERROR_RESET_FORBIDDEN,
)
from storefront.logging import get_logger
from storefront.services.price_monitoring import get_price_health_status, get_price_monitor

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


# ==================== PYDANTIC MODELS ====================

class PriceHealthAction(BaseModel):
    action: str
    context: Optional[str] = None
    original_value: Any = None
    error: Optional[str] = None


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# ==================== ENDPOINTS ====================

@router.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok", "service": "eggypro-storefront"}


@router.get("/api/health/price")
async def price_health(detailed: bool = False):
    """Price normalization health; ``detailed`` adds the report and recent errors."""
    try:
        monitor = get_price_monitor()
        payload = get_price_health_status(monitor).to_dict()
        if detailed:
            payload["report"] = monitor.generate_report()
            payload["recent_errors"] = [entry.to_dict() for entry in monitor.get_recent_errors(10)]
        payload["timestamp"] = _timestamp()
        return payload
    except Exception as e:
        logger.error(f"Price health check error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=ERROR_INTERNAL)


@router.post("/api/health/price")
async def price_health_action(request: PriceHealthAction):
    """Report a price error from outside, or reset metrics in development."""
    monitor = get_price_monitor()

    if request.action == "report-error":
        if not request.context or not request.error:
            raise HTTPException(status_code=400, detail=ERROR_MISSING_REPORT_FIELDS)
        monitor.log_validation_error(request.context, request.original_value, request.error)
        return {"message": "Error reported successfully", "timestamp": _timestamp()}

    if request.action == "reset-metrics":
        if os.environ.get("ENVIRONMENT", "production").lower() != "development":
            raise HTTPException(status_code=403, detail=ERROR_RESET_FORBIDDEN)
        monitor.reset_metrics()
        return {"message": "Metrics reset successfully", "timestamp": _timestamp()}

    raise HTTPException(status_code=400, detail=ERROR_INVALID_ACTION)
