"""
Tests for the Chapa API Client

Uses httpx.MockTransport, no network.

Tests cover:
- Bearer authentication
- Initialize: checkout URL, gateway error messages
- Verify: status parsing, per-call timeout, timeout mapping
- Secret redaction in logged payloads
"""

import json
import pytest
import httpx

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

BASE_URL = "https://api.chapa.co/v1"


def make_client(handler, **kwargs):
    from app.services.chapa_client import ChapaClient

    return ChapaClient(
        secret_key="CHASECK_TEST-secret",
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        **kwargs
    )


class TestInitialize:
    """POST /transaction/initialize"""

    def test_returns_checkout_url_and_sends_bearer(self):
        captured = {}

        def handler(request: httpx.Request):
            captured["url"] = str(request.url)
            captured["auth"] = request.headers.get("Authorization")
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "status": "success",
                "message": "Hosted Link",
                "data": {"checkout_url": "https://checkout.chapa.co/checkout/payment/abc"},
            })

        client = make_client(handler)
        url = client.initialize({"amount": "300", "currency": "ETB", "tx_ref": "BOOKING-1-abc"})

        assert url == "https://checkout.chapa.co/checkout/payment/abc"
        assert captured["url"] == f"{BASE_URL}/transaction/initialize"
        assert captured["auth"] == "Bearer CHASECK_TEST-secret"
        assert captured["body"]["tx_ref"] == "BOOKING-1-abc"

    def test_rejection_carries_gateway_message(self):
        from app.exceptions import GatewayError

        def handler(request):
            return httpx.Response(400, json={"status": "failed", "message": "Invalid currency"})

        with pytest.raises(GatewayError) as exc:
            make_client(handler).initialize({"amount": "300"})

        assert exc.value.message == "Invalid currency"
        assert exc.value.gateway_status == 400

    def test_field_errors_are_serialized(self):
        from app.exceptions import GatewayError

        def handler(request):
            return httpx.Response(400, json={"message": {"email": ["The email must be valid."]}})

        with pytest.raises(GatewayError) as exc:
            make_client(handler).initialize({"amount": "300"})

        assert "The email must be valid." in exc.value.message

    def test_missing_checkout_url(self):
        from app.exceptions import GatewayError

        def handler(request):
            return httpx.Response(200, json={"status": "success", "data": {}})

        with pytest.raises(GatewayError):
            make_client(handler).initialize({"amount": "300"})

    def test_connection_error(self):
        from app.exceptions import GatewayError

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GatewayError):
            make_client(handler).initialize({"amount": "300"})


class TestVerify:
    """GET /transaction/verify/{tx_ref}"""

    def test_success(self):
        def handler(request):
            assert request.url.path == "/v1/transaction/verify/BOOKING-1-abc"
            return httpx.Response(200, json={
                "status": "success",
                "message": "Payment details",
                "data": {"status": "success", "tx_ref": "BOOKING-1-abc", "amount": 300, "currency": "ETB"},
            })

        result = make_client(handler).verify("BOOKING-1-abc")

        assert result.is_success
        assert result.tx_ref == "BOOKING-1-abc"
        assert result.currency == "ETB"

    def test_only_data_status_counts(self):
        """A successful HTTP call reporting a pending payment is not success"""
        def handler(request):
            return httpx.Response(200, json={"status": "success", "data": {"status": "pending"}})

        result = make_client(handler).verify("BOOKING-1-abc")

        assert not result.is_success
        assert result.status == "pending"

    def test_timeout_maps_to_gateway_timeout(self):
        from app.exceptions import GatewayTimeoutError

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayTimeoutError) as exc:
            make_client(handler).verify("BOOKING-1-abc", timeout=5)

        assert exc.value.message == "Payment verification timeout - please check your booking status later"

    def test_per_call_timeout_is_applied(self):
        seen = {}

        def handler(request):
            seen["timeout"] = request.extensions.get("timeout")
            return httpx.Response(200, json={"data": {"status": "success"}})

        make_client(handler, verify_timeout=10).verify("BOOKING-1-abc", timeout=5)

        assert seen["timeout"]["read"] == 5

    def test_unknown_transaction(self):
        from app.exceptions import GatewayError

        def handler(request):
            return httpx.Response(404, json={"message": "Invalid transaction or Transaction not found"})

        with pytest.raises(GatewayError) as exc:
            make_client(handler).verify("BOOKING-0-none")

        assert exc.value.message == "Invalid transaction or Transaction not found"


class TestPayloadSanitizing:
    """Secrets never reach the logs"""

    def test_sensitive_keys_redacted(self):
        from app.services.chapa_client import _sanitize_payload

        sanitized = _sanitize_payload({
            "amount": "300",
            "secret_key": "abc",
            "customization": {"title": "MB Barbershop", "Authorization": "Bearer x"},
        })

        assert sanitized["amount"] == "300"
        assert sanitized["secret_key"] == "[REDACTED]"
        assert sanitized["customization"]["Authorization"] == "[REDACTED]"
        assert sanitized["customization"]["title"] == "MB Barbershop"

    def test_empty_payload(self):
        from app.services.chapa_client import _sanitize_payload

        assert _sanitize_payload(None) is None
