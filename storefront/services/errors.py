"""Failure kinds of the checkout flow.

They are raised inside the checkout steps and converted into a
``CheckoutOutcome`` by the orchestrator; none of them reach its callers.
"""
from __future__ import annotations

from typing import Dict, Optional


class CheckoutError(Exception):
    user_message = "Checkout could not be completed. Please try again."

    def __init__(self, message: Optional[str] = None, user_message: Optional[str] = None) -> None:
        super().__init__(message or user_message or self.user_message)
        if user_message:
            self.user_message = user_message


class ValidationError(CheckoutError):
    user_message = "Please check the highlighted fields."

    def __init__(self, field_errors: Dict[str, str], message: Optional[str] = None) -> None:
        super().__init__(message or "Checkout form is invalid")
        self.field_errors = dict(field_errors)


class ThrottledError(CheckoutError):
    user_message = ""

    def __init__(self, reason: Optional[str] = None) -> None:
        super().__init__(f"Checkout trigger ignored ({reason})")
        self.reason = reason


class NetworkError(CheckoutError):
    user_message = "We could not reach the payment provider. Please try again."

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExpiredWindowError(CheckoutError):
    user_message = "This offer has expired. Please refresh the page to see the current price."
