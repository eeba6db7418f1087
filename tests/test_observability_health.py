from storefront.observability.health import (
    check_database_health,
    check_payment_gateway_config,
    summarize_health,
)


class _StubConfig:
    XENDIT_SECRET_KEY = "xnd_development_test_key"
    PAYMENT_GATEWAY_BASE_URL = "https://api.xendit.co"


def test_database_check_reports_latency():
    status = check_database_health()
    assert status["status"] == "UP"
    assert status["latency_ms"] >= 0


def test_gateway_config_requires_valid_base_url():
    class _BadUrlConfig(_StubConfig):
        PAYMENT_GATEWAY_BASE_URL = "api.xendit.co"

    assert check_payment_gateway_config(_StubConfig)["mode"] == "test"
    assert check_payment_gateway_config(_BadUrlConfig)["status"] == "DOWN"


def test_database_outage_makes_service_unavailable():
    body, status_code = summarize_health({
        "database": {"status": "DOWN", "detail": "connection refused"},
        "payment_gateway": {"status": "UP"},
    })

    assert status_code == 503
    assert body["status"] == "DEGRADED"
    assert body["components"]["database"]["detail"] == "connection refused"
