import pytest
import requests

from storefront.observability.metrics import get_metrics_snapshot
from storefront.services.errors import NetworkError
from storefront.services.payment_service import (
    InvoiceRequest,
    InvoiceResponse,
    PaymentService,
    generate_idempotency_token,
)


class _StubResponse:
    def __init__(self, status_code=200, payload=None, json_error=False):
        self.status_code = status_code
        self._payload = payload
        self._json_error = json_error

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._json_error:
            raise ValueError("no json")
        return self._payload


class _StubSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def _invoice_request(**overrides):
    values = dict(
        idempotency_token="order_test_1",
        amount=80000,
        payer_email="buyer@example.com",
        payer_phone="+6281234567890",
        payer_name="Budi",
        description="Flash Sale - FF Account",
        payment_method="gopay",
        success_redirect_url="https://shop.example.com/payment-status?status=success",
        failure_redirect_url="https://shop.example.com/payment-status?status=failed",
        metadata={"product_id": 7},
    )
    values.update(overrides)
    return InvoiceRequest(**values)


def test_tokens_are_unique():
    tokens = {generate_idempotency_token() for _ in range(10_000)}
    assert len(tokens) == 10_000


def test_token_carries_prefix():
    assert generate_idempotency_token("rental_order").startswith("rental_order_")


def test_build_payload_maps_invoice_fields(stub_config):
    service = PaymentService(config=stub_config, http=_StubSession())
    payload = service.build_payload(_invoice_request())

    assert payload["external_id"] == "order_test_1"
    assert payload["amount"] == 80000
    assert payload["currency"] == "IDR"
    assert payload["invoice_duration"] == 86400
    assert payload["payment_methods"] == ["GOPAY"]
    assert payload["customer"]["mobile_number"] == "+6281234567890"
    assert payload["metadata"] == {"client_external_id": "order_test_1", "product_id": 7}
    assert payload["success_redirect_url"].endswith("status=success")


def test_build_payload_without_method_lets_gateway_offer_all(stub_config):
    service = PaymentService(config=stub_config, http=_StubSession())
    payload = service.build_payload(_invoice_request(payment_method=None, success_redirect_url=None))

    assert "payment_methods" not in payload
    assert "success_redirect_url" not in payload


def test_create_invoice_posts_with_idempotency_key(stub_config):
    session = _StubSession(_StubResponse(200, {
        "id": "inv-123",
        "status": "PENDING",
        "invoice_url": "https://checkout.xendit.co/web/inv-123",
        "expiry_date": "2025-03-02T12:00:00.000Z",
    }))
    service = PaymentService(config=stub_config, http=session)

    invoice = service.create_invoice(_invoice_request())

    assert invoice.invoice_id == "inv-123"
    assert invoice.invoice_url.endswith("inv-123")
    assert invoice.expiry_timestamp == "2025-03-02T12:00:00.000Z"

    url, kwargs = session.calls[0]
    assert url == "https://gateway.test/v2/invoices"
    assert kwargs["headers"]["X-IDEMPOTENCY-KEY"] == "order_test_1"
    assert kwargs["auth"] == ("xnd_development_test_key", "")
    assert kwargs["timeout"] == 5

    snapshot = get_metrics_snapshot()
    assert snapshot["histograms"]["payment_gateway_latency_ms"][0]["stats"]["count"] == 1
    assert snapshot["events"][-1]["name"] == "invoice_created"


def test_timeout_becomes_network_error(stub_config):
    service = PaymentService(config=stub_config, http=_StubSession(error=requests.Timeout("read timed out")))

    with pytest.raises(NetworkError, match="timed out"):
        service.create_invoice(_invoice_request())


def test_connection_error_becomes_network_error(stub_config):
    service = PaymentService(config=stub_config, http=_StubSession(error=requests.ConnectionError("refused")))

    with pytest.raises(NetworkError):
        service.create_invoice(_invoice_request())


def test_gateway_rejection_keeps_status_code(stub_config):
    session = _StubSession(_StubResponse(400, {"error_code": "API_VALIDATION_ERROR", "message": "amount too low"}))
    service = PaymentService(config=stub_config, http=session)

    with pytest.raises(NetworkError) as excinfo:
        service.create_invoice(_invoice_request())

    assert excinfo.value.status_code == 400
    assert "amount too low" in str(excinfo.value)


def test_unreadable_success_body_is_a_network_error(stub_config):
    service = PaymentService(config=stub_config, http=_StubSession(_StubResponse(200, json_error=True)))

    with pytest.raises(NetworkError):
        service.create_invoice(_invoice_request())


def test_response_without_id_is_rejected():
    with pytest.raises(NetworkError):
        InvoiceResponse.from_gateway({"status": "PENDING"})


def test_response_reads_alternate_field_names():
    invoice = InvoiceResponse.from_gateway({
        "id": "inv-9",
        "payment_url": "https://pay.example/inv-9",
        "qr_string": "000201",
        "expires_at": "2025-03-02T00:00:00Z",
    })
    assert invoice.invoice_url == "https://pay.example/inv-9"
    assert invoice.qr_payload == "000201"
    assert invoice.status == "PENDING"
