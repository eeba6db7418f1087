from __future__ import annotations

import itertools
import logging
import secrets
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from storefront.config import Config
from storefront.observability import observe_latency, record_event
from storefront.services.errors import NetworkError
from storefront.services.payment_methods import get_method

_sequence = itertools.count(1)


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
        if value == 0:
            return out


def generate_idempotency_token(prefix: str = "order") -> str:
    """
    Build a fresh gateway ``external_id`` for one logical checkout attempt.

    Nanosecond wall time plus a per-process sequence keeps tokens from one
    process distinct; two independent random draws keep concurrent
    tabs and servers from colliding.
    """
    stamp = _base36(time.time_ns())
    sequence = _base36(next(_sequence))
    return f"{prefix}_{stamp}{sequence}_{secrets.token_hex(4)}{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class InvoiceRequest:
    idempotency_token: str
    amount: int
    payer_email: str
    payer_phone: str
    description: str
    payer_name: str = ""
    payment_method: Optional[str] = None
    success_redirect_url: Optional[str] = None
    failure_redirect_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InvoiceResponse:
    invoice_id: str
    status: str
    invoice_url: Optional[str] = None
    qr_payload: Optional[str] = None
    expiry_timestamp: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_gateway(cls, data: Dict[str, Any]) -> "InvoiceResponse":
        invoice_id = data.get("id")
        if not invoice_id:
            raise NetworkError("Payment gateway response did not include an invoice id")
        return cls(
            invoice_id=str(invoice_id),
            status=str(data.get("status") or "PENDING"),
            invoice_url=data.get("invoice_url") or data.get("payment_url"),
            qr_payload=data.get("qr_string"),
            expiry_timestamp=data.get("expiry_date") or data.get("expires_at"),
            raw=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invoice_id": self.invoice_id,
            "status": self.status,
            "invoice_url": self.invoice_url,
            "qr_payload": self.qr_payload,
            "expiry_timestamp": self.expiry_timestamp,
        }


class PaymentService:
    """
    Outbound client for the payment gateway's invoice API.

    Only invoice creation lives here; webhooks and reconciliation belong to
    the gateway side. Every failure is raised as ``NetworkError`` and is never
    retried automatically, since a retry must carry a new token.
    """

    def __init__(
        self,
        config: type[Config] = Config,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.config = config
        self.http = http or requests.Session()
        self.logger = logging.getLogger(__name__)

    def build_payload(self, invoice: InvoiceRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "external_id": invoice.idempotency_token,
            "amount": invoice.amount,
            "payer_email": invoice.payer_email,
            "description": invoice.description,
            "currency": self.config.CURRENCY,
            "invoice_duration": self.config.INVOICE_DURATION_SECONDS,
            "customer": {
                "given_names": invoice.payer_name or None,
                "email": invoice.payer_email,
                "mobile_number": invoice.payer_phone,
            },
            "metadata": {"client_external_id": invoice.idempotency_token, **invoice.metadata},
        }
        if invoice.success_redirect_url:
            payload["success_redirect_url"] = invoice.success_redirect_url
        if invoice.failure_redirect_url:
            payload["failure_redirect_url"] = invoice.failure_redirect_url
        method = get_method(invoice.payment_method)
        if method is not None:
            payload["payment_methods"] = [method.gateway_code]
        return payload

    def create_invoice(self, invoice: InvoiceRequest) -> InvoiceResponse:
        url = f"{self.config.PAYMENT_GATEWAY_BASE_URL.rstrip('/')}/v2/invoices"
        started = time.perf_counter()
        try:
            response = self.http.post(
                url,
                json=self.build_payload(invoice),
                auth=(self.config.XENDIT_SECRET_KEY, ""),
                headers={"X-IDEMPOTENCY-KEY": invoice.idempotency_token},
                timeout=self.config.PAYMENT_GATEWAY_TIMEOUT_SECONDS,
            )
        except requests.Timeout as exc:
            raise NetworkError(f"Payment gateway timed out: {exc}") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Payment gateway request failed: {exc}") from exc
        finally:
            observe_latency(
                "payment_gateway_latency_ms",
                (time.perf_counter() - started) * 1000,
                labels={"operation": "create_invoice"},
            )

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok:
            message = data.get("message") if isinstance(data, dict) else None
            self.logger.error(
                "Invoice creation rejected by gateway",
                extra={
                    "status_code": response.status_code,
                    "external_id": invoice.idempotency_token,
                    "gateway_message": message,
                },
            )
            raise NetworkError(
                f"Payment gateway returned HTTP {response.status_code}: {message or 'no details'}",
                status_code=response.status_code,
            )
        if not isinstance(data, dict):
            raise NetworkError("Payment gateway returned an unreadable response")

        result = InvoiceResponse.from_gateway(data)
        self.logger.info(
            "Invoice created",
            extra={
                "invoice_id": result.invoice_id,
                "external_id": invoice.idempotency_token,
                "amount": invoice.amount,
                "payment_method": invoice.payment_method,
            },
        )
        record_event(
            "invoice_created",
            {
                "invoice_id": result.invoice_id,
                "external_id": invoice.idempotency_token,
                "amount": invoice.amount,
            },
        )
        return result
