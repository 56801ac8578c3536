"""
Chapa API Client

Thin wrapper around the two Chapa endpoints the booking flow needs:

- POST /transaction/initialize   -> hosted checkout URL
- GET  /transaction/verify/{ref} -> authoritative payment status

Authentication is a Bearer secret key. Failures become GatewayError carrying
the gateway's own message; an expired wait becomes GatewayTimeoutError.
No retries: payment calls are not retried blindly.

Chapa API Documentation: https://developer.chapa.co/
"""

import json
import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..exceptions import GatewayError, GatewayTimeoutError
from ..utils import metrics

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = ("secret", "token", "authorization", "api_key", "password")


@dataclass
class ChapaVerification:
    """Result of a verify call. Only ``status == "success"`` means paid."""
    tx_ref: str
    status: Optional[str]
    amount: Optional[Any] = None
    currency: Optional[str] = None
    reference: Optional[str] = None
    raw: Dict = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.status == "success"


def _sanitize_payload(payload: Optional[Dict]) -> Optional[Dict]:
    """Remove sensitive data from payload before logging"""
    if not payload:
        return None

    def sanitize_dict(d: Dict) -> Dict:
        result = {}
        for k, v in d.items():
            if any(sk in k.lower() for sk in SENSITIVE_KEYS):
                result[k] = "[REDACTED]"
            elif isinstance(v, dict):
                result[k] = sanitize_dict(v)
            else:
                result[k] = v
        return result

    return sanitize_dict(payload)


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Pull the gateway's message out of an error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or fallback

    if isinstance(data, dict):
        message = data.get("message")
        if isinstance(message, str) and message:
            return message
        if message:
            # Field errors come back as {"message": {"email": ["..."]}}
            return json.dumps(message, ensure_ascii=False)
        return json.dumps(data, ensure_ascii=False)
    return fallback


class ChapaClient:
    """Client for Chapa transaction initialize/verify."""

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.chapa.co/v1",
        timeout: float = 30,
        verify_timeout: float = 10,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify_timeout = verify_timeout
        self.transport = transport

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _request(self, operation: str, method: str, endpoint: str, timeout: float,
                 payload: Optional[Dict] = None) -> httpx.Response:
        url = f"{self.base_url}{endpoint}"
        start = time.perf_counter()
        try:
            with httpx.Client(timeout=timeout, transport=self.transport) as client:
                response = client.request(method, url, headers=self._get_headers(), json=payload)
        except httpx.TimeoutException as e:
            metrics.record_gateway_request(operation, "timeout", time.perf_counter() - start)
            logger.warning(f"Chapa {operation} timed out after {timeout}s: {endpoint}")
            raise GatewayTimeoutError() from e
        except httpx.HTTPError as e:
            metrics.record_gateway_request(operation, "error", time.perf_counter() - start)
            logger.error(f"Chapa {operation} request failed: {e}")
            raise GatewayError(f"Failed to reach the payment gateway: {e}") from e

        duration = time.perf_counter() - start
        metrics.record_gateway_request(operation, str(response.status_code), duration)
        logger.debug(f"Chapa {operation} -> {response.status_code} in {duration * 1000:.0f}ms")
        return response

    def initialize(self, payload: Dict) -> str:
        """
        Start a hosted checkout and return its URL unchanged.

        Raises GatewayError with the gateway's message on rejection.
        """
        logger.info(f"Initializing Chapa payment: {_sanitize_payload(payload)}")
        response = self._request("initialize", "POST", "/transaction/initialize", self.timeout, payload)

        if not response.is_success:
            message = _error_message(response, "Failed to initialize payment")
            logger.error(f"Chapa initialize rejected ({response.status_code}): {message}")
            raise GatewayError(message, gateway_status=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError("Invalid response from payment gateway") from e

        checkout_url = ((data or {}).get("data") or {}).get("checkout_url")
        if not checkout_url:
            raise GatewayError(data.get("message") or "Payment gateway returned no checkout URL")
        return checkout_url

    def verify(self, tx_ref: str, timeout: Optional[float] = None) -> ChapaVerification:
        """
        Ask the gateway for the status of ``tx_ref``.

        ``timeout`` overrides the default verify wait (the return page uses a
        shorter one). Raises GatewayTimeoutError when the wait expires.
        """
        response = self._request(
            "verify", "GET", f"/transaction/verify/{tx_ref}",
            timeout if timeout is not None else self.verify_timeout,
        )

        if not response.is_success:
            message = _error_message(response, "Failed to verify payment")
            logger.warning(f"Chapa verify rejected ({response.status_code}) for {tx_ref}: {message}")
            raise GatewayError(message, gateway_status=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayError("Invalid response from payment gateway") from e

        data = (body or {}).get("data") or {}
        return ChapaVerification(
            tx_ref=data.get("tx_ref") or tx_ref,
            status=data.get("status"),
            amount=data.get("amount"),
            currency=data.get("currency"),
            reference=data.get("reference"),
            raw=body,
        )


def build_chapa_client(app_settings=None) -> ChapaClient:
    app_settings = app_settings or settings
    if not app_settings.has_chapa_config:
        logger.warning("CHAPA_SECRET_KEY is not set; gateway calls will be rejected")
    return ChapaClient(
        secret_key=app_settings.chapa_secret_key,
        base_url=app_settings.chapa_base_url,
        timeout=app_settings.chapa_timeout_seconds,
        verify_timeout=app_settings.chapa_verify_timeout_seconds,
    )


@lru_cache()
def get_chapa_client() -> ChapaClient:
    """FastAPI dependency: the shared gateway client."""
    return build_chapa_client()
