from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import bleach

from storefront.config import Config
from storefront.models import OrderType
from storefront.observability import increment_counter
from storefront.services.errors import (
    ExpiredWindowError,
    NetworkError,
    ThrottledError,
    ValidationError,
)
from storefront.services.payment_methods import (
    RedirectKind,
    amount_limit_error,
    get_method,
    redirect_kind_for,
)
from storefront.services.payment_service import (
    InvoiceRequest,
    InvoiceResponse,
    PaymentService,
    generate_idempotency_token,
)
from storefront.services.price_resolver import PricingInput, is_markdown_live, resolve
from storefront.services.submission_guard import SubmissionAttempt, release, try_acquire
from storefront.services.time_window import evaluate, utc_now

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# Indonesian mobile numbers: 08xx / 628xx / +628xx
PHONE_PATTERN = re.compile(r"^(?:\+?62|0)8\d{7,12}$")
_PHONE_SEPARATORS = re.compile(r"[\s\-().]")


class CheckoutState(str, Enum):
    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    GUARDED = "GUARDED"
    SUBMITTING = "SUBMITTING"
    REDIRECTING = "REDIRECTING"
    FAILED = "FAILED"


class CheckoutStatus(str, Enum):
    REDIRECTING = "redirecting"
    FAILED = "failed"
    INVALID = "invalid"
    THROTTLED = "throttled"
    EXPIRED = "expired"


@dataclass(frozen=True)
class CustomerInfo:
    name: str = ""
    email: str = ""
    phone: str = ""


@dataclass(frozen=True)
class RentalTier:
    id: Optional[int]
    duration: str
    price: int


@dataclass(frozen=True)
class CheckoutOrder:
    product_id: Optional[int]
    product_name: str
    pricing: PricingInput
    customer: CustomerInfo
    accepted_terms: bool = False
    order_type: OrderType = OrderType.PURCHASE
    rental: Optional[RentalTier] = None
    # Amount the customer was shown when they pressed the button, if known
    quoted_amount: Optional[int] = None


@dataclass(frozen=True)
class RedirectTarget:
    kind: RedirectKind
    url: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "url": self.url, "payload": self.payload}


@dataclass
class CheckoutOutcome:
    status: CheckoutStatus
    message: str = ""
    field_errors: Dict[str, str] = field(default_factory=dict)
    redirect: Optional[RedirectTarget] = None
    invoice: Optional[InvoiceResponse] = None
    idempotency_token: Optional[str] = None
    amount: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == CheckoutStatus.REDIRECTING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "field_errors": self.field_errors,
            "redirect": self.redirect.to_dict() if self.redirect else None,
            "invoice": self.invoice.to_dict() if self.invoice else None,
            "idempotency_token": self.idempotency_token,
            "amount": self.amount,
        }


def _clean_text(value: Optional[str]) -> str:
    return bleach.clean(value or "", tags=[], strip=True).strip()


def normalize_phone(phone: Optional[str]) -> str:
    return _PHONE_SEPARATORS.sub("", _clean_text(phone))


def to_international_phone(phone: str) -> str:
    if phone.startswith("+"):
        return phone
    if phone.startswith("0"):
        return "+62" + phone[1:]
    return "+" + phone


def clean_customer(customer: CustomerInfo) -> CustomerInfo:
    return CustomerInfo(
        name=_clean_text(customer.name),
        email=_clean_text(customer.email).lower(),
        phone=normalize_phone(customer.phone),
    )


def validate_checkout(
    order: CheckoutOrder,
    customer: CustomerInfo,
    payment_method: Optional[str],
) -> Dict[str, str]:
    """Return field-level errors; an empty dict means the form may be submitted."""
    errors: Dict[str, str] = {}
    if not customer.name:
        errors["name"] = "Full name is required"
    if not customer.email:
        errors["email"] = "Email is required"
    elif not EMAIL_PATTERN.match(customer.email):
        errors["email"] = "Enter a valid email address"
    if not customer.phone:
        errors["phone"] = "WhatsApp number is required"
    elif not PHONE_PATTERN.match(customer.phone):
        errors["phone"] = "Enter a valid WhatsApp number"
    if not order.accepted_terms:
        errors["accepted_terms"] = "You must accept the terms and conditions"
    if not payment_method:
        errors["payment_method"] = "Choose a payment method"
    elif get_method(payment_method) is None:
        errors["payment_method"] = "This payment method is not available"
    if order.order_type == OrderType.RENTAL and order.rental is None:
        errors["rental_option"] = "Choose a rental duration"
    return errors


@dataclass(frozen=True)
class OrderQuote:
    """Amount for one submission, priced once against the clock."""

    amount: int
    discounted: bool = False
    # The markdown shown when the session opened has closed and the customer
    # has not acknowledged the new price
    window_closed: bool = False


def _to_amount(price) -> int:
    return int(Decimal(str(price)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class CheckoutOrchestrator:
    """
    Turns one checkout session's button presses into at most one invoice each.

    IDLE -> VALIDATING -> GUARDED -> SUBMITTING -> REDIRECTING | FAILED -> IDLE.
    The orchestrator owns its ``SubmissionAttempt`` for the whole session and
    never shares it; ``submit`` never raises.
    """

    def __init__(
        self,
        gateway: Optional[PaymentService] = None,
        clock: Callable[[], datetime] = utc_now,
        config: type[Config] = Config,
    ) -> None:
        self.gateway = gateway or PaymentService(config=config)
        self.clock = clock
        self.config = config
        self.attempt = SubmissionAttempt()
        self.state = CheckoutState.IDLE
        self.markdown_live_at_open = False
        self.logger = logging.getLogger(__name__)

    def open_session(self, pricing: PricingInput) -> None:
        """Remember whether the customer was shown a live markdown when the session opened."""
        remaining = evaluate(pricing.deadline, self.clock())
        self.markdown_live_at_open = is_markdown_live(pricing, remaining)

    def _transition(self, state: CheckoutState, owner: bool = False) -> None:
        # Only the call holding the guard may move the state while one is in flight
        if owner or not self.attempt.in_flight:
            self.state = state

    def _finish(self, outcome: CheckoutOutcome) -> CheckoutOutcome:
        increment_counter("checkout_submissions_total", labels={"outcome": outcome.status.value})
        return outcome

    def submit(self, order: CheckoutOrder, payment_method: Optional[str]) -> CheckoutOutcome:
        self._transition(CheckoutState.VALIDATING)
        customer = clean_customer(order.customer)
        field_errors = validate_checkout(order, customer, payment_method)
        order_quote: Optional[OrderQuote] = None
        if not field_errors:
            order_quote = self.price_order(order)
            limit_message = amount_limit_error(get_method(payment_method), order_quote.amount)
            if limit_message:
                field_errors["payment_method"] = limit_message

        if field_errors:
            self._transition(CheckoutState.IDLE)
            self.logger.info("Checkout form rejected", extra={"fields": sorted(field_errors)})
            return self._finish(
                CheckoutOutcome(
                    status=CheckoutStatus.INVALID,
                    message=ValidationError.user_message,
                    field_errors=field_errors,
                    amount=order_quote.amount if order_quote else None,
                )
            )

        self._transition(CheckoutState.GUARDED)
        decision = try_acquire(self.attempt, self.clock(), self.config.CHECKOUT_THROTTLE_MS)
        if not decision.granted:
            self._transition(CheckoutState.IDLE)
            return self._finish(
                CheckoutOutcome(status=CheckoutStatus.THROTTLED, message=ThrottledError.user_message)
            )

        try:
            outcome = self._submit_guarded(replace(order, customer=customer), payment_method, order_quote)
        finally:
            release(self.attempt)
            self._transition(CheckoutState.IDLE, owner=True)
        return self._finish(outcome)

    def _submit_guarded(
        self,
        order: CheckoutOrder,
        payment_method: str,
        order_quote: OrderQuote,
    ) -> CheckoutOutcome:
        self._transition(CheckoutState.SUBMITTING, owner=True)
        token: Optional[str] = None
        amount = order_quote.amount
        try:
            if order_quote.window_closed:
                raise ExpiredWindowError("Markdown window closed before submission")

            method = get_method(payment_method)
            token = generate_idempotency_token(self._token_prefix(order, order_quote))
            invoice_request = self._build_invoice_request(order, method.id, order_quote, token)
            invoice = self.gateway.create_invoice(invoice_request)
            redirect = self.dispatch_redirect(method.id, invoice)
        except ExpiredWindowError as exc:
            self._transition(CheckoutState.FAILED, owner=True)
            self.logger.info("Checkout rejected: markdown window closed", extra={"product_id": order.product_id})
            return CheckoutOutcome(status=CheckoutStatus.EXPIRED, message=exc.user_message)
        except NetworkError as exc:
            self._transition(CheckoutState.FAILED, owner=True)
            self.logger.warning(
                "Invoice submission failed",
                extra={"external_id": token, "error": str(exc)},
            )
            return CheckoutOutcome(
                status=CheckoutStatus.FAILED,
                message=exc.user_message,
                idempotency_token=token,
                amount=amount,
            )
        except Exception:
            self._transition(CheckoutState.FAILED, owner=True)
            self.logger.exception("Unexpected checkout failure", extra={"external_id": token})
            return CheckoutOutcome(
                status=CheckoutStatus.FAILED,
                message=NetworkError.user_message,
                idempotency_token=token,
                amount=amount,
            )

        self._transition(CheckoutState.REDIRECTING, owner=True)
        self.logger.info(
            "Checkout redirecting to payment",
            extra={"external_id": token, "redirect_kind": redirect.kind.value, "amount": amount},
        )
        return CheckoutOutcome(
            status=CheckoutStatus.REDIRECTING,
            redirect=redirect,
            invoice=invoice,
            idempotency_token=token,
            amount=amount,
        )

    def price_order(self, order: CheckoutOrder) -> OrderQuote:
        """Price the order against the clock as it reads right now."""
        if order.order_type == OrderType.RENTAL:
            return OrderQuote(amount=_to_amount(order.rental.price))

        remaining = evaluate(order.pricing.deadline, self.clock())
        resolved = resolve(order.pricing, remaining)
        amount = _to_amount(resolved.effective_price)
        # Only a markdown that was live at open can close under the customer
        window_closed = (
            self.markdown_live_at_open
            and not resolved.has_discount
            and (order.quoted_amount is None or order.quoted_amount != amount)
        )
        return OrderQuote(amount=amount, discounted=resolved.has_discount, window_closed=window_closed)

    def dispatch_redirect(self, payment_method: str, invoice: InvoiceResponse) -> RedirectTarget:
        kind = redirect_kind_for(payment_method)
        if kind == RedirectKind.EXTERNAL:
            if not invoice.invoice_url:
                raise NetworkError("No payment URL received from the payment gateway")
            return RedirectTarget(kind=kind, url=invoice.invoice_url)
        url = f"{self.config.IN_APP_PAYMENT_PATH}?id={quote(invoice.invoice_id, safe='')}"
        payload = dict(invoice.to_dict(), payment_method=payment_method)
        return RedirectTarget(kind=kind, url=url, payload=payload)

    def _token_prefix(self, order: CheckoutOrder, order_quote: OrderQuote) -> str:
        if order.order_type == OrderType.RENTAL:
            return "rental_order"
        if order_quote.discounted:
            return "flash_sale_order"
        return "order"

    def _build_invoice_request(
        self,
        order: CheckoutOrder,
        payment_method: str,
        order_quote: OrderQuote,
        token: str,
    ) -> InvoiceRequest:
        if order.order_type == OrderType.RENTAL:
            description = f"Rental {order.product_name} ({order.rental.duration})"
        elif order_quote.discounted:
            description = f"Flash Sale - {order.product_name}"
        else:
            description = f"Purchase {order.product_name}"
        return InvoiceRequest(
            idempotency_token=token,
            amount=order_quote.amount,
            payer_email=order.customer.email,
            payer_phone=to_international_phone(order.customer.phone),
            payer_name=order.customer.name,
            description=description,
            payment_method=payment_method,
            success_redirect_url=self.config.success_redirect_url(),
            failure_redirect_url=self.config.failure_redirect_url(),
            metadata={
                "product_id": order.product_id,
                "order_type": order.order_type.value,
                "rental_duration": order.rental.duration if order.rental else None,
                "customer_name": order.customer.name,
                "customer_phone": order.customer.phone,
                "amount": order_quote.amount,
            },
        )
