# tests/conftest.py
"""
Pytest configuration and shared fixtures for the storefront tests.
"""

import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Point the app at a throwaway SQLite file before anything imports Config
_TEST_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}")
os.environ.setdefault("XENDIT_SECRET_KEY", "xnd_development_test_key")
os.environ.setdefault("PUBLIC_BASE_URL", "https://shop.example.com")
os.environ.setdefault("SECRET_KEY", "test-secret")

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from storefront.config import Config
from storefront.database import Base, SessionLocal, engine, init_database
from storefront.models import FlashSale, Product, RentalOption
from storefront.observability.metrics import reset_metrics
from storefront.services.payment_service import InvoiceResponse
from storefront.services.errors import NetworkError

init_database()

START = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class StubGateway:
    """Records invoice requests instead of calling the payment provider."""

    def __init__(self, fail_with=None, invoice_url="https://checkout.xendit.co/web/inv-1", on_call=None):
        self.fail_with = fail_with
        self.invoice_url = invoice_url
        self.on_call = on_call
        self.requests = []

    def create_invoice(self, invoice_request):
        self.requests.append(invoice_request)
        if self.on_call is not None:
            self.on_call(invoice_request)
        if self.fail_with is not None:
            raise self.fail_with
        number = len(self.requests)
        return InvoiceResponse(
            invoice_id=f"inv-{number}",
            status="PENDING",
            invoice_url=self.invoice_url,
            qr_payload="00020101021226" if invoice_request.payment_method == "qris" else None,
            expiry_timestamp="2025-03-02T12:00:00.000Z",
        )


class StubConfig(Config):
    CHECKOUT_THROTTLE_MS = 3000
    PUBLIC_BASE_URL = "https://shop.example.com"
    IN_APP_PAYMENT_PATH = "/payment"
    PAYMENT_GATEWAY_BASE_URL = "https://gateway.test"
    XENDIT_SECRET_KEY = "xnd_development_test_key"
    PAYMENT_GATEWAY_TIMEOUT_SECONDS = 5
    INVOICE_DURATION_SECONDS = 86400


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return StubGateway()


@pytest.fixture
def gateway_factory():
    return StubGateway


@pytest.fixture
def failing_gateway():
    return StubGateway(fail_with=NetworkError("Payment gateway timed out"))


@pytest.fixture
def stub_config():
    return StubConfig


@pytest.fixture
def db_session():
    """Fresh database session; all catalog rows are removed afterwards."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.query(RentalOption).delete(synchronize_session=False)
        session.query(FlashSale).delete(synchronize_session=False)
        session.query(Product).delete(synchronize_session=False)
        session.commit()
        session.close()


@pytest.fixture
def regular_product(db_session):
    product = Product(name="ML Account Mythic Glory", game_title="Mobile Legends", price=250000)
    product.original_price = 300000
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def flash_sale_product(db_session):
    now = datetime.now(timezone.utc)
    product = Product(name="FF Account Grandmaster", game_title="Free Fire", price=100000)
    db_session.add(product)
    db_session.flush()

    flash_sale = FlashSale(productID=product.productID)
    flash_sale.sale_price = 80000
    flash_sale.original_price = 100000
    flash_sale.start_time = now - timedelta(hours=1)
    flash_sale.end_time = now + timedelta(hours=1)
    flash_sale.is_active = True
    db_session.add(flash_sale)

    for duration, price in (("1 Hari", 25000), ("3 Hari", 60000)):
        db_session.add(RentalOption(productID=product.productID, duration=duration, price=price))
    db_session.commit()
    return product
