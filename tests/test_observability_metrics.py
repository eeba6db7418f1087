from storefront.observability.metrics import (
    MetricsRegistry,
    increment_counter,
    set_gauge,
    observe_latency,
    get_counter_value,
    get_metrics_snapshot,
    reset_metrics,
)


def test_metrics_snapshot_accumulates_counts():
    reset_metrics()
    increment_counter("checkout_submissions_total", labels={"outcome": "redirecting"})
    increment_counter("checkout_submissions_total", amount=2, labels={"outcome": "throttled"})
    set_gauge("open_checkout_sessions", 5)
    observe_latency("payment_gateway_latency_ms", 100, labels={"operation": "create_invoice"})
    observe_latency("payment_gateway_latency_ms", 50, labels={"operation": "create_invoice"})

    snapshot = get_metrics_snapshot()
    counters = snapshot["counters"]["checkout_submissions_total"]
    assert len(counters) == 2
    assert get_counter_value("checkout_submissions_total", labels={"outcome": "throttled"}) == 2

    gauges = snapshot["gauges"]["open_checkout_sessions"]
    assert gauges[0]["value"] == 5

    hist = snapshot["histograms"]["payment_gateway_latency_ms"][0]["stats"]
    assert hist["count"] == 2
    assert hist["max"] == 100
    assert hist["avg"] == 75


def test_event_log_is_bounded():
    registry = MetricsRegistry(max_events=3)
    for number in range(5):
        registry.record_event("invoice_created", {"invoice_id": f"inv-{number}"})

    events = registry.snapshot()["events"]
    assert [event["payload"]["invoice_id"] for event in events] == ["inv-2", "inv-3", "inv-4"]
