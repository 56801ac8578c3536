"""
Health Check Endpoints

- /health/live  - process is up
- /health/ready - booking store answers a ping; reports whether Chapa keys are set
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
import time

from ..config import Settings, get_settings
from ..exceptions import StoreUnavailableError
from ..services.booking_store import BookingStore, get_booking_store

router = APIRouter(prefix="/health", tags=["Health"])


def get_store_health(store: BookingStore) -> dict:
    """Check booking store connectivity and latency"""
    try:
        start = time.time()
        store.ping()
        latency_ms = (time.time() - start) * 1000
        return {
            "status": "up",
            "latency_ms": round(latency_ms, 2),
            "type": type(store).__name__,
        }
    except StoreUnavailableError as e:
        return {
            "status": "down",
            "error": e.message[:100]
        }


def get_gateway_config(app_settings: Settings) -> dict:
    """Whether gateway credentials are present. No network call is made."""
    return {"status": "configured" if app_settings.has_chapa_config else "not_configured"}


@router.get("/live")
@router.get("/live/")
async def liveness_check():
    """
    Liveness probe - is the process running?
    """
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/ready")
@router.get("/ready/")
def readiness_check(
    store: BookingStore = Depends(get_booking_store),
    app_settings: Settings = Depends(get_settings),
):
    """
    Readiness probe - is the service ready to accept traffic?
    """
    store_health = get_store_health(store)
    checks = {
        "store": store_health,
        "payment_gateway": get_gateway_config(app_settings),
    }
    timestamp = datetime.now(timezone.utc).isoformat()

    if store_health["status"] == "up":
        return {"status": "ready", "timestamp": timestamp, "checks": checks}

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "not_ready",
            "reason": "store_unavailable",
            "timestamp": timestamp,
            "checks": checks,
        }
    )


@router.get("")
@router.get("/")
async def simple_health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
