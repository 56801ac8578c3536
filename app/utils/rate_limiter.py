"""
Rate Limiting

Per-client limits keyed on the caller's IP as seen through the proxy.
Storage comes from RATE_LIMIT_STORAGE_URI (``memory://`` for one instance,
``redis://...`` when several instances share limits).
"""

import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from ..config import settings

logger = logging.getLogger(__name__)

# Checked in order; X-Forwarded-For may hold a chain, the client is first
PROXY_HEADERS = ("X-Forwarded-For", "X-Real-IP")

DEFAULT_LIMIT = "100/minute"

RATE_LIMITS = {
    "booking_create": "30/minute",
    "payment_initialize": "20/minute",
    "booking_update": "60/minute",
    "booking_delete": "20/minute",
    "booking_list": "100/minute",
    "available_slots": "120/minute",
    "payment_verify": "60/minute",
    # Chapa retries notifications
    "webhook": "100/minute",
    "receipt": "60/minute",
}


def get_real_client_ip(request: Request) -> str:
    for header in PROXY_HEADERS:
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    return get_remote_address(request)


def create_limiter(app_settings=None) -> Limiter:
    app_settings = app_settings or settings
    backend = app_settings.rate_limit_storage_uri.split("://")[0]
    logger.info(f"Rate limiting {'on' if app_settings.rate_limit_enabled else 'off'} ({backend} storage)")
    return Limiter(
        key_func=get_real_client_ip,
        storage_uri=app_settings.rate_limit_storage_uri,
        default_limits=[DEFAULT_LIMIT],
        enabled=app_settings.rate_limit_enabled,
    )


limiter = create_limiter()


def get_rate_limit(operation: str) -> str:
    return RATE_LIMITS.get(operation, DEFAULT_LIMIT)
