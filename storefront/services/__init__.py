from .catalog_service import CatalogService
from .checkout_service import CheckoutOrchestrator
from .countdown import CountdownTimer
from .payment_service import PaymentService

__all__ = [
    "CatalogService",
    "CheckoutOrchestrator",
    "CountdownTimer",
    "PaymentService",
]
