from __future__ import annotations

import time
from typing import Any, Dict, Tuple
from urllib.parse import urlparse

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from storefront.config import Config
from storefront.database import engine

UP = "UP"
DOWN = "DOWN"
DEGRADED = "DEGRADED"


def check_database_health(db_engine=None) -> Dict[str, Any]:
    """Ping the catalog database and report how long it took."""
    db_engine = db_engine or engine
    started = time.perf_counter()
    try:
        with db_engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        return {"status": DOWN, "detail": str(exc)}
    return {"status": UP, "latency_ms": round((time.perf_counter() - started) * 1000, 2)}


def check_payment_gateway_config(config: type[Config] = Config) -> Dict[str, Any]:
    """Checkout cannot create invoices without gateway credentials and a usable base URL."""
    if not config.XENDIT_SECRET_KEY:
        return {"status": DOWN, "detail": "XENDIT_SECRET_KEY is not configured"}
    parsed = urlparse(config.PAYMENT_GATEWAY_BASE_URL or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return {"status": DOWN, "detail": "PAYMENT_GATEWAY_BASE_URL is not a valid URL"}
    return {
        "status": UP,
        "base_url": config.PAYMENT_GATEWAY_BASE_URL,
        "mode": "live" if config.XENDIT_SECRET_KEY.startswith("xnd_production") else "test",
    }


def summarize_health(components: Dict[str, Dict[str, Any]]) -> Tuple[Dict[str, Any], int]:
    """
    Fold component checks into the /health body and HTTP status.

    The service is only unavailable without its database; a gateway problem
    leaves pricing readable, so it degrades the status without failing it.
    """
    database_up = components.get("database", {}).get("status") == UP
    all_up = all(component.get("status") == UP for component in components.values())
    overall = UP if all_up else DEGRADED
    return {"status": overall, "components": components}, 200 if database_up else 503
