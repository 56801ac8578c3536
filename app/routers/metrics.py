from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from ..utils.metrics import format_prometheus_metrics

router = APIRouter(prefix="/metrics", tags=["Metrics"])

# Prometheus text exposition format
CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@router.get("", response_class=PlainTextResponse)
@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def get_metrics():
    """Booking, payment and HTTP counters for this instance."""
    return PlainTextResponse(content=format_prometheus_metrics(), media_type=CONTENT_TYPE)
