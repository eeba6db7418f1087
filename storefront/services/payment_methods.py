"""Activated payment channels and where each one sends the customer next."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class PaymentMethodType(str, Enum):
    EWALLET = "EWALLET"
    VIRTUAL_ACCOUNT = "VIRTUAL_ACCOUNT"
    RETAIL_OUTLET = "RETAIL_OUTLET"
    QRIS = "QRIS"


class RedirectKind(str, Enum):
    EXTERNAL = "external"
    IN_APP = "in_app"


@dataclass(frozen=True)
class PaymentMethodConfig:
    id: str
    name: str
    type: PaymentMethodType
    gateway_code: str
    min_amount: Optional[int] = None
    max_amount: Optional[int] = None
    processing_time: str = "Instant"
    popular: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "min_amount": self.min_amount,
            "max_amount": self.max_amount,
            "processing_time": self.processing_time,
            "popular": self.popular,
            "redirect": redirect_kind_for(self.id).value,
        }


_METHODS = [
    # E-wallets
    PaymentMethodConfig("shopeepay", "ShopeePay", PaymentMethodType.EWALLET, "SHOPEEPAY", 1_000, 2_000_000, popular=True),
    PaymentMethodConfig("gopay", "GoPay", PaymentMethodType.EWALLET, "GOPAY", 10_000, 2_000_000, popular=True),
    PaymentMethodConfig("dana", "DANA", PaymentMethodType.EWALLET, "DANA", 10_000, 10_000_000),
    PaymentMethodConfig("linkaja", "LinkAja", PaymentMethodType.EWALLET, "LINKAJA", 10_000, 10_000_000),
    PaymentMethodConfig("astrapay", "AstraPay", PaymentMethodType.EWALLET, "ASTRAPAY"),
    # Virtual accounts
    PaymentMethodConfig("bjb", "BJB Virtual Account", PaymentMethodType.VIRTUAL_ACCOUNT, "BJB", 10_000, 50_000_000, "1-15 menit"),
    PaymentMethodConfig("bni", "BNI Virtual Account", PaymentMethodType.VIRTUAL_ACCOUNT, "BNI", 10_000, 50_000_000, "1-15 menit", popular=True),
    PaymentMethodConfig("bri", "BRI Virtual Account", PaymentMethodType.VIRTUAL_ACCOUNT, "BRI", 10_000, 50_000_000, "1-15 menit"),
    PaymentMethodConfig("bsi", "BSI Virtual Account", PaymentMethodType.VIRTUAL_ACCOUNT, "BSI", 10_000, 50_000_000, "1-15 menit"),
    PaymentMethodConfig("cimb", "CIMB Niaga Virtual Account", PaymentMethodType.VIRTUAL_ACCOUNT, "CIMB", 10_000, 50_000_000, "1-15 menit"),
    PaymentMethodConfig("mandiri", "Mandiri Virtual Account", PaymentMethodType.VIRTUAL_ACCOUNT, "MANDIRI", 10_000, 50_000_000, "1-15 menit", popular=True),
    PaymentMethodConfig("permata", "Permata Virtual Account", PaymentMethodType.VIRTUAL_ACCOUNT, "PERMATA", 10_000, 50_000_000, "1-15 menit"),
    # Retail outlets
    PaymentMethodConfig("indomaret", "Indomaret", PaymentMethodType.RETAIL_OUTLET, "INDOMARET", 10_000, 5_000_000, "1-24 jam"),
    # QR
    PaymentMethodConfig("qris", "QRIS", PaymentMethodType.QRIS, "QRIS", 1_500, 10_000_000, popular=True),
]

PAYMENT_METHODS: Dict[str, PaymentMethodConfig] = {method.id: method for method in _METHODS}

# Redirect dispatch: fixed membership, never inferred from the gateway response
DIRECT_REDIRECT_METHODS = frozenset({"shopeepay", "gopay", "dana", "linkaja", "astrapay"})
IN_APP_METHODS = frozenset(
    {"bjb", "bni", "bri", "bsi", "cimb", "mandiri", "permata", "indomaret", "qris"}
)


def _normalize(method_id: Optional[str]) -> str:
    return (method_id or "").strip().lower()


def get_method(method_id: Optional[str]) -> Optional[PaymentMethodConfig]:
    return PAYMENT_METHODS.get(_normalize(method_id))


def is_activated(method_id: Optional[str]) -> bool:
    return _normalize(method_id) in PAYMENT_METHODS


def all_methods() -> List[PaymentMethodConfig]:
    return list(PAYMENT_METHODS.values())


def methods_by_type(method_type: PaymentMethodType) -> List[PaymentMethodConfig]:
    return [method for method in PAYMENT_METHODS.values() if method.type == method_type]


def redirect_kind_for(method_id: str) -> RedirectKind:
    key = _normalize(method_id)
    if key in DIRECT_REDIRECT_METHODS:
        return RedirectKind.EXTERNAL
    if key in IN_APP_METHODS:
        return RedirectKind.IN_APP
    raise KeyError(f"No redirect rule for payment method {method_id!r}")


def amount_limit_error(method: PaymentMethodConfig, amount: int) -> Optional[str]:
    """Return a customer-facing message when ``amount`` is outside the channel's limits."""
    if method.min_amount is not None and amount < method.min_amount:
        return f"{method.name} requires a minimum payment of Rp {method.min_amount:,}".replace(",", ".")
    if method.max_amount is not None and amount > method.max_amount:
        return f"{method.name} accepts at most Rp {method.max_amount:,}".replace(",", ".")
    return None
