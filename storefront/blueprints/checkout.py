from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from flask import Blueprint, g, jsonify, request, session

from storefront.config import Config
from storefront.database import get_db
from storefront.models import OrderType
from storefront.observability import set_gauge
from storefront.services.catalog_service import CatalogService
from storefront.services.checkout_service import (
    CheckoutOrchestrator,
    CheckoutOrder,
    CheckoutStatus,
    CustomerInfo,
    RentalTier,
)
from storefront.services.payment_methods import all_methods
from storefront.services.price_resolver import PricingInput

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api")

_SESSION_KEY = "checkout_sessions"
# Cookie-backed sessions stay small; older ids simply stop being usable
_MAX_OWNED_SESSIONS = 20

STATUS_CODES = {
    CheckoutStatus.REDIRECTING: 200,
    CheckoutStatus.THROTTLED: 202,
    CheckoutStatus.INVALID: 400,
    CheckoutStatus.EXPIRED: 409,
    CheckoutStatus.FAILED: 502,
}


@dataclass
class CheckoutSession:
    session_id: str
    product_id: int
    orchestrator: CheckoutOrchestrator


class CheckoutSessionRegistry:
    """
    Holds one orchestrator per open checkout session.

    Discarding a session drops its orchestrator; a submission that is still
    running keeps its own reference and simply finishes in the background.
    """

    def __init__(
        self,
        orchestrator_factory: Callable[[], CheckoutOrchestrator] = CheckoutOrchestrator,
        limit: int = Config.CHECKOUT_SESSION_LIMIT,
    ) -> None:
        self.orchestrator_factory = orchestrator_factory
        self.limit = limit
        self._sessions: "OrderedDict[str, CheckoutSession]" = OrderedDict()
        self._lock = threading.Lock()

    def open(self, product_id: int, pricing: Optional[PricingInput] = None) -> CheckoutSession:
        orchestrator = self.orchestrator_factory()
        if pricing is not None:
            orchestrator.open_session(pricing)
        checkout_session = CheckoutSession(
            session_id=uuid4().hex,
            product_id=product_id,
            orchestrator=orchestrator,
        )
        with self._lock:
            self._sessions[checkout_session.session_id] = checkout_session
            while len(self._sessions) > self.limit:
                evicted_id, _ = self._sessions.popitem(last=False)
                logger.info("Evicted idle checkout session", extra={"evicted_session_id": evicted_id})
            set_gauge("checkout_sessions_open", len(self._sessions))
        return checkout_session

    def get(self, session_id: str) -> Optional[CheckoutSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def discard(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
            set_gauge("checkout_sessions_open", len(self._sessions))
        return removed

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            set_gauge("checkout_sessions_open", 0)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


checkout_sessions = CheckoutSessionRegistry()


def _get_catalog_service() -> CatalogService:
    return CatalogService(get_db())


def _owned_session_ids() -> List[str]:
    return list(session.get(_SESSION_KEY, []))


def _lookup_owned_session(session_id: str) -> Optional[CheckoutSession]:
    # A browser may only drive the checkout sessions it opened
    if session_id not in _owned_session_ids():
        return None
    return checkout_sessions.get(session_id)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


@checkout_bp.route("/payment-methods", methods=["GET"])
def list_payment_methods():
    return jsonify({"payment_methods": [method.to_dict() for method in all_methods()]})


@checkout_bp.route("/products/<int:product_id>/pricing", methods=["GET"])
def product_pricing(product_id: int):
    """Countdown and effective price for one product"""
    try:
        success, message, snapshot = _get_catalog_service().get_pricing_snapshot(product_id)
        if not success:
            return jsonify({"error": message}), 404
        return jsonify(snapshot)
    except Exception as e:
        logger.exception("Pricing lookup failed")
        return jsonify({"error": str(e)}), 500


@checkout_bp.route("/flash-sales", methods=["GET"])
def flash_sales():
    """Products whose flash sale is running"""
    try:
        return jsonify({"flash_sales": _get_catalog_service().list_flash_sale_products()})
    except Exception as e:
        logger.exception("Flash sale listing failed")
        return jsonify({"error": str(e)}), 500


@checkout_bp.route("/checkout/sessions", methods=["POST"])
def open_checkout_session():
    data = request.get_json(silent=True) or {}
    try:
        product_id = int(data.get("product_id"))
    except (TypeError, ValueError):
        return jsonify({"error": "product_id is required"}), 400

    catalog = _get_catalog_service()
    product = catalog.get_product(product_id)
    if product is None:
        return jsonify({"error": "Product not found"}), 404

    checkout_session = checkout_sessions.open(product_id, catalog.build_pricing_input(product))
    owned = _owned_session_ids()
    owned.append(checkout_session.session_id)
    session[_SESSION_KEY] = owned[-_MAX_OWNED_SESSIONS:]
    g.checkout_session_id = checkout_session.session_id
    logger.info("Checkout session opened", extra={"product_id": product_id})
    return jsonify({"session_id": checkout_session.session_id, "product_id": product_id}), 201


@checkout_bp.route("/checkout/sessions/<session_id>", methods=["DELETE"])
def close_checkout_session(session_id: str):
    if _lookup_owned_session(session_id) is None:
        return jsonify({"error": "Checkout session not found"}), 404
    g.checkout_session_id = session_id
    checkout_sessions.discard(session_id)
    session[_SESSION_KEY] = [sid for sid in _owned_session_ids() if sid != session_id]
    logger.info("Checkout session closed")
    return jsonify({"closed": True})


@checkout_bp.route("/checkout/sessions/<session_id>/submit", methods=["POST"])
def submit_checkout(session_id: str):
    checkout_session = _lookup_owned_session(session_id)
    if checkout_session is None:
        return jsonify({"error": "Checkout session not found"}), 404
    g.checkout_session_id = session_id

    data: Dict[str, Any] = request.get_json(silent=True) or {}
    customer_data = data.get("customer") or {}

    try:
        order_type = OrderType(data.get("order_type") or OrderType.PURCHASE.value)
        rental_option_id = _optional_int(data.get("rental_option_id"))
        quoted_amount = _optional_int(data.get("quoted_amount"))
    except (TypeError, ValueError):
        return jsonify({"error": "Malformed checkout request"}), 400

    try:
        catalog = _get_catalog_service()
        product = catalog.get_product(checkout_session.product_id)
        if product is None:
            return jsonify({"error": "Product not found"}), 404

        orchestrator = checkout_session.orchestrator
        rental = None
        if order_type == OrderType.RENTAL:
            option = catalog.get_rental_option(product, rental_option_id)
            if option is not None:
                rental = RentalTier(id=option.rentalOptionID, duration=option.duration, price=option.price)

        order = CheckoutOrder(
            product_id=product.productID,
            product_name=product.name,
            pricing=catalog.build_pricing_input(product, orchestrator.clock()),
            customer=CustomerInfo(
                name=customer_data.get("name", ""),
                email=customer_data.get("email", ""),
                phone=customer_data.get("phone", ""),
            ),
            accepted_terms=bool(data.get("accepted_terms")),
            order_type=order_type,
            rental=rental,
            quoted_amount=quoted_amount,
        )
    except Exception as e:
        logger.exception("Could not prepare checkout order")
        return jsonify({"error": str(e)}), 500

    outcome = orchestrator.submit(order, data.get("payment_method"))
    return jsonify(outcome.to_dict()), STATUS_CODES[outcome.status]
