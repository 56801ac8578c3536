import sys
import os
from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.config import Settings
from app.services.booking_store import InMemoryBookingStore, SqlBookingStore
from app.services.chapa_client import ChapaClient, ChapaVerification


CHECKOUT_URL = "https://checkout.chapa.co/checkout/payment/test-session"


@pytest.fixture
def settings():
    return Settings(
        chapa_secret_key="CHASECK_TEST-secret",
        chapa_base_url="https://api.chapa.co/v1",
        app_url="https://mb.example.com/",
        admin_api_key="",
        rate_limit_enabled=False,
    )


@pytest.fixture
def memory_store():
    return InMemoryBookingStore()


@pytest.fixture
def sql_store(tmp_path):
    return SqlBookingStore.from_url(f"sqlite:///{tmp_path / 'bookings.db'}")


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    """Both store backends; tests using it run once per backend."""
    if request.param == "memory":
        return InMemoryBookingStore()
    return SqlBookingStore.from_url(f"sqlite:///{tmp_path / 'bookings.db'}")


@pytest.fixture
def gateway():
    """Gateway double: initialize returns a checkout URL, verify reports success."""
    client = MagicMock(spec=ChapaClient)
    client.initialize.return_value = CHECKOUT_URL
    client.verify.side_effect = lambda tx_ref, timeout=None: ChapaVerification(tx_ref=tx_ref, status="success")
    return client


@pytest.fixture
def booking_day():
    return date.today() + timedelta(days=7)
