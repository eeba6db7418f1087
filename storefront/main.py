# storefront/main.py
import logging
import time

from flask import Flask, request, jsonify, g

from storefront.config import Config
from storefront.database import close_db, init_database
from storefront.blueprints.checkout import checkout_bp
from storefront.observability import (
    configure_logging,
    increment_counter,
    observe_latency,
)
from storefront.observability.health import (
    check_database_health,
    check_payment_gateway_config,
    summarize_health,
)
from storefront.observability.logging_config import ensure_request_id

app = Flask(__name__)
Config.configure_app(app)
configure_logging(app)
app.register_blueprint(checkout_bp)

logger = logging.getLogger(__name__)

try:
    init_database()
    logger.info("Database tables initialized successfully")
except Exception as e:
    logger.exception("Error initializing database: %s", e)


@app.before_request
def before_request_logging():
    g.request_started_at = time.perf_counter()
    g.request_id = ensure_request_id()
    increment_counter(
        "http_requests_total",
        labels={
            "method": request.method,
            "endpoint": request.endpoint or request.path,
        },
    )


@app.after_request
def after_request_logging(response):
    started = getattr(g, 'request_started_at', None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000
        observe_latency(
            "http_request_latency_ms",
            duration_ms,
            labels={
                "method": request.method,
                "endpoint": request.endpoint or request.path,
                "status": str(response.status_code),
            },
        )
    response.headers[Config.REQUEST_ID_HEADER] = getattr(g, "request_id", "") or ""
    if response.status_code >= 500:
        increment_counter(
            "http_errors_total",
            labels={
                "method": request.method,
                "endpoint": request.endpoint or request.path,
                "status": str(response.status_code),
            },
        )
        logger.error("Request finished with error status %s", response.status_code)
    else:
        logger.info("Request finished", extra={"status_code": response.status_code})
    return response


@app.teardown_appcontext
def teardown_db(exception):
    close_db(exception)


@app.route('/health', methods=['GET'])
def health():
    body, status_code = summarize_health({
        "database": check_database_health(),
        "payment_gateway": check_payment_gateway_config(),
    })
    return jsonify(body), status_code
