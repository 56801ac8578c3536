"""
Tests for Payment Reconciliation

Tests cover:
- Verify path: success, failure, timeout, unknown reference
- Webhook path: success, failure, late failure after success, duplicates
- Idempotency across both paths in any order
- Return page: verified, presumed success on timeout (no mutation)
"""

import pytest
from decimal import Decimal
from unittest.mock import MagicMock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

TX_REF = "BOOKING-1718000000000-k3j9x0a2m"


def pending_booking(store, booking_day, tx_ref=TX_REF, time="08:15", phone="0911234567"):
    return store.insert({
        "name": "Abebe Kebede",
        "phone": phone,
        "service": "Fade Cut",
        "date": booking_day,
        "time": time,
        "status": "Pending",
        "payment_status": "pending",
        "payment_reference": tx_ref,
        "amount": Decimal("300"),
    })


def gateway_reporting(status):
    from app.services.chapa_client import ChapaVerification

    gateway = MagicMock()
    gateway.verify.side_effect = lambda tx_ref, timeout=None: ChapaVerification(tx_ref=tx_ref, status=status)
    return gateway


def gateway_raising(error):
    gateway = MagicMock()
    gateway.verify.side_effect = error
    return gateway


class TestVerifyPath:
    """verify_booking_payment"""

    def test_success_marks_paid(self, store, booking_day):
        from app.services.payment_reconciliation import verify_booking_payment

        booking = pending_booking(store, booking_day)

        confirmed = verify_booking_payment(store, gateway_reporting("success"), TX_REF)

        assert confirmed.booking_id == booking.booking_id
        assert confirmed.status == "Paid"
        assert confirmed.payment_status == "success"

    def test_failed_verification_changes_nothing(self, store, booking_day):
        from app.exceptions import PaymentFailedError
        from app.services.payment_reconciliation import verify_booking_payment

        booking = pending_booking(store, booking_day)

        with pytest.raises(PaymentFailedError) as exc:
            verify_booking_payment(store, gateway_reporting("failed"), TX_REF)

        assert exc.value.message == "Payment verification failed"
        stored = store.get(booking.booking_id)
        assert stored.status == "Pending"
        assert stored.payment_status == "pending"

    def test_timeout_is_never_success(self, store, booking_day):
        from app.exceptions import GatewayError, GatewayTimeoutError
        from app.services.payment_reconciliation import verify_booking_payment

        booking = pending_booking(store, booking_day)

        with pytest.raises(GatewayTimeoutError) as exc:
            verify_booking_payment(store, gateway_raising(GatewayTimeoutError()), TX_REF)

        assert isinstance(exc.value, GatewayError)
        assert exc.value.message == "Payment verification timeout - please check your booking status later"
        assert store.get(booking.booking_id).status == "Pending"

    def test_unknown_reference(self, store):
        from app.exceptions import BookingNotFoundError
        from app.services.payment_reconciliation import verify_booking_payment

        with pytest.raises(BookingNotFoundError):
            verify_booking_payment(store, gateway_reporting("success"), "BOOKING-0-unknown")

    def test_missing_reference(self, store):
        from app.exceptions import ValidationError
        from app.services.payment_reconciliation import verify_booking_payment

        gateway = gateway_reporting("success")

        with pytest.raises(ValidationError) as exc:
            verify_booking_payment(store, gateway, None)

        assert exc.value.message == "Transaction reference is required"
        gateway.verify.assert_not_called()

    def test_repeated_verify_is_noop(self, store, booking_day):
        from app.services.payment_reconciliation import verify_booking_payment

        pending_booking(store, booking_day)
        gateway = gateway_reporting("success")

        first = verify_booking_payment(store, gateway, TX_REF)
        second = verify_booking_payment(store, gateway, TX_REF)

        assert first.booking_id == second.booking_id
        assert second.status == "Paid"
        assert len(store.find_by_date_time(booking_day, "08:15", ("Paid",))) == 1


class TestWebhookPath:
    """handle_payment_webhook"""

    def test_success_marks_paid(self, store, booking_day):
        from app.services.payment_reconciliation import handle_payment_webhook

        pending_booking(store, booking_day)

        booking = handle_payment_webhook(store, TX_REF, "success")

        assert booking.status == "Paid"
        assert booking.payment_status == "success"

    def test_failure_marks_failed_only(self, store, booking_day):
        from app.services.payment_reconciliation import handle_payment_webhook

        booking = pending_booking(store, booking_day)

        result = handle_payment_webhook(store, TX_REF, "failed")

        assert result is None
        stored = store.get(booking.booking_id)
        assert stored.status == "Pending"
        assert stored.payment_status == "failed"

    def test_missing_status_counts_as_failure(self, store, booking_day):
        from app.services.payment_reconciliation import handle_payment_webhook

        booking = pending_booking(store, booking_day)

        handle_payment_webhook(store, TX_REF, None)

        assert store.get(booking.booking_id).payment_status == "failed"

    def test_late_failure_after_success_ignored(self, store, booking_day):
        from app.services.payment_reconciliation import handle_payment_webhook

        booking = pending_booking(store, booking_day)

        handle_payment_webhook(store, TX_REF, "success")
        handle_payment_webhook(store, TX_REF, "failed")

        stored = store.get(booking.booking_id)
        assert stored.status == "Paid"
        assert stored.payment_status == "success"

    def test_failure_racing_confirmation_never_reverts(self, store, booking_day, monkeypatch):
        """A confirmation landing between the webhook's lookup and its write wins"""
        from app.services.payment_reconciliation import confirm_payment, handle_payment_webhook

        booking = pending_booking(store, booking_day)
        lookup = store.find_by_payment_reference

        def lookup_then_confirm(reference):
            found = lookup(reference)
            confirm_payment(store, found, "verify")
            return found  # stale Pending copy

        monkeypatch.setattr(store, "find_by_payment_reference", lookup_then_confirm)

        result = handle_payment_webhook(store, TX_REF, "failed")

        assert result is None
        stored = store.get(booking.booking_id)
        assert stored.status == "Paid"
        assert stored.payment_status == "success"

    def test_mark_failed_leaves_success_alone(self, store, booking_day):
        booking = pending_booking(store, booking_day)
        store.mark_paid(booking.booking_id)

        assert store.mark_failed(booking.booking_id).payment_status == "success"
        assert store.mark_failed("missing") is None

    def test_retry_after_failure_can_succeed(self, store, booking_day):
        from app.services.payment_reconciliation import handle_payment_webhook

        pending_booking(store, booking_day)

        handle_payment_webhook(store, TX_REF, "failed")
        booking = handle_payment_webhook(store, TX_REF, "success")

        assert booking.status == "Paid"

    def test_duplicate_delivery_is_noop(self, store, booking_day):
        from app.services.payment_reconciliation import handle_payment_webhook

        pending_booking(store, booking_day)

        for _ in range(3):
            booking = handle_payment_webhook(store, TX_REF, "success")

        assert booking.status == "Paid"
        assert len(store.list_all()) == 1

    def test_unknown_reference(self, store):
        from app.exceptions import BookingNotFoundError
        from app.services.payment_reconciliation import handle_payment_webhook

        with pytest.raises(BookingNotFoundError):
            handle_payment_webhook(store, "BOOKING-0-unknown", "success")

    def test_success_on_taken_slot_rejected(self, store, booking_day):
        from app.exceptions import SlotTakenError
        from app.services.payment_reconciliation import handle_payment_webhook

        pending_booking(store, booking_day, tx_ref="BOOKING-1-first")
        loser = pending_booking(store, booking_day, tx_ref="BOOKING-2-second", phone="0922000000")

        handle_payment_webhook(store, "BOOKING-1-first", "success")

        with pytest.raises(SlotTakenError):
            handle_payment_webhook(store, "BOOKING-2-second", "success")

        assert store.get(loser.booking_id).status == "Pending"


class TestBothPaths:
    """Verify and webhook for the same tx_ref, any order"""

    def test_webhook_then_verify(self, store, booking_day):
        from app.services.payment_reconciliation import handle_payment_webhook, verify_booking_payment

        booking = pending_booking(store, booking_day)

        handle_payment_webhook(store, TX_REF, "success")
        verified = verify_booking_payment(store, gateway_reporting("success"), TX_REF)

        assert verified.booking_id == booking.booking_id
        assert verified.status == "Paid"

    def test_verify_then_webhook(self, store, booking_day):
        from app.services.payment_reconciliation import handle_payment_webhook, verify_booking_payment

        pending_booking(store, booking_day)

        verify_booking_payment(store, gateway_reporting("success"), TX_REF)
        booking = handle_payment_webhook(store, TX_REF, "success")

        assert booking.status == "Paid"
        assert booking.payment_status == "success"

    def test_confirm_payment_keeps_completed(self, store, booking_day):
        from app.services.payment_reconciliation import confirm_payment

        booking = pending_booking(store, booking_day)
        store.update(booking.booking_id, {"status": "Completed"})

        confirmed = confirm_payment(store, store.get(booking.booking_id))

        assert confirmed.status == "Completed"
        assert confirmed.payment_status == "success"


class TestReturnPage:
    """resolve_return_page"""

    def test_verified_success(self, store, booking_day):
        from app.services.payment_reconciliation import resolve_return_page

        pending_booking(store, booking_day)

        result = resolve_return_page(store, gateway_reporting("success"), TX_REF, timeout=5)

        assert result.status == "success"
        assert result.verified is True
        assert result.booking.status == "Paid"

    def test_timeout_presumes_success_without_mutation(self, store, booking_day):
        from app.exceptions import GatewayTimeoutError
        from app.services.payment_reconciliation import resolve_return_page

        booking = pending_booking(store, booking_day)

        result = resolve_return_page(store, gateway_raising(GatewayTimeoutError()), TX_REF, timeout=5)

        assert result.status == "presumed_success"
        assert result.verified is False
        stored = store.get(booking.booking_id)
        assert stored.status == "Pending"
        assert stored.payment_status == "pending"

    def test_short_timeout_passed_to_gateway(self, memory_store, booking_day):
        from app.services.payment_reconciliation import resolve_return_page

        pending_booking(memory_store, booking_day)
        gateway = gateway_reporting("success")

        resolve_return_page(memory_store, gateway, TX_REF, timeout=5)

        gateway.verify.assert_called_once_with(TX_REF, timeout=5)

    def test_failed_payment(self, store, booking_day):
        from app.services.payment_reconciliation import resolve_return_page

        booking = pending_booking(store, booking_day)

        result = resolve_return_page(store, gateway_reporting("failed"), TX_REF, timeout=5)

        assert result.status == "failed"
        assert store.get(booking.booking_id).payment_status == "pending"

    def test_gateway_error(self, memory_store, booking_day):
        from app.exceptions import GatewayError
        from app.services.payment_reconciliation import resolve_return_page

        pending_booking(memory_store, booking_day)

        result = resolve_return_page(memory_store, gateway_raising(GatewayError("boom")), TX_REF, timeout=5)

        assert result.status == "error"
        assert result.verified is False

    def test_already_paid_skips_gateway(self, memory_store, booking_day):
        from app.services.payment_reconciliation import handle_payment_webhook, resolve_return_page

        pending_booking(memory_store, booking_day)
        handle_payment_webhook(memory_store, TX_REF, "success")
        gateway = gateway_reporting("success")

        result = resolve_return_page(memory_store, gateway, TX_REF, timeout=5)

        assert result.status == "success"
        assert result.verified is True
        gateway.verify.assert_not_called()
