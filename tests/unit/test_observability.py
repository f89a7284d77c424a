"""Unit tests for structured logging and the telemetry observer"""

import json
import logging
from datetime import datetime
from prometheus_client import REGISTRY
from spend_sentinel.domain.models import AlertSeverity, BalanceAlert, BalanceAlertType
from spend_sentinel.infrastructure.observability.logging import CustomJsonFormatter, log_alert, request_id_var
from spend_sentinel.services.observers import FinanceObserver, ObserverHub, TelemetryObserver


def _balance_alert() -> BalanceAlert:
    return BalanceAlert(
        id="bal_1",
        account_id="acc_1",
        account_name="Current",
        type=BalanceAlertType.LOW_BALANCE,
        severity=AlertSeverity.WARNING,
        message="Current balance 80.00 is below 100.00",
        balance=80.0,
        threshold=100.0,
        created_at=datetime(2026, 10, 6, 9, 0),
    )


def test_formatter_adds_service_and_request_id():
    formatter = CustomJsonFormatter("%(message)s")
    record = logging.LogRecord("spend_sentinel.test", logging.INFO, __file__, 1, "hello", None, None)

    token = request_id_var.set("req-9")
    try:
        payload = json.loads(formatter.format(record))
    finally:
        request_id_var.reset(token)

    assert payload["message"] == "hello"
    assert payload["level"] == "INFO"
    assert payload["service"] == "spend-sentinel"
    assert payload["request_id"] == "req-9"


def test_log_alert_structured_fields(caplog):
    caplog.set_level(logging.INFO, logger="spend_sentinel.alerts")

    log_alert("low_balance", "acc_1", "warning", "balance low")

    record = caplog.records[-1]
    assert record.alert_type == "low_balance"
    assert record.entity_id == "acc_1"
    assert record.severity == "warning"


def test_telemetry_observer_counts_alerts():
    labels = {"kind": "low_balance"}
    before = REGISTRY.get_sample_value("sentinel_alerts_total", labels) or 0.0

    TelemetryObserver().on_alert(_balance_alert())

    assert REGISTRY.get_sample_value("sentinel_alerts_total", labels) == before + 1


def test_hub_fans_out_in_subscription_order():
    calls = []

    class Named(FinanceObserver):
        def __init__(self, name):
            self.name = name

        def on_alert(self, alert):
            calls.append(self.name)

    first, second = Named("first"), Named("second")
    hub = ObserverHub([first])
    hub.subscribe(second)
    hub.subscribe(second)
    hub.on_alert(_balance_alert())

    hub.unsubscribe(first)
    hub.on_alert(_balance_alert())

    assert calls == ["first", "second", "second"]
