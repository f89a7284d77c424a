"""Observer interface for engine events and the hub that fans them out"""

import logging
from typing import Any, List, Optional

from spend_sentinel.domain.models import (
    BalanceAlert,
    Budget,
    BudgetAlert,
    DirectDebit,
    MissedPaymentAlert,
    PriceChangeAlert,
    RecurringPayment,
    StandingOrder,
)
from spend_sentinel.infrastructure.observability.logging import log_alert
from spend_sentinel.infrastructure.observability.metrics import (
    budget_rollover_counter,
    record_alert,
    record_detection,
)

logger = logging.getLogger(__name__)

DETECTION_SOURCES = {
    RecurringPayment: "recurring",
    DirectDebit: "direct_debit",
    StandingOrder: "standing_order",
}


class FinanceObserver:
    """
    Receives engine events synchronously, once per emitting call site.

    Subclasses override only the hooks they care about. ``on_detected`` also
    receives newly detected mandates (DirectDebit / StandingOrder).
    """

    def on_detected(self, record: Any) -> None:
        pass

    def on_price_change(self, alert: PriceChangeAlert) -> None:
        pass

    def on_missed(self, alert: MissedPaymentAlert) -> None:
        pass

    def on_alert(self, alert: BalanceAlert | BudgetAlert) -> None:
        pass

    def on_rollover(self, budget: Budget) -> None:
        pass

    def on_created(self, record: Any) -> None:
        pass

    def on_updated(self, record: Any) -> None:
        pass

    def on_deleted(self, record_id: str) -> None:
        pass


class ObserverHub(FinanceObserver):
    """Fans every event out to the subscribed observers, in subscription order"""

    def __init__(self, observers: Optional[List[FinanceObserver]] = None):
        self._observers: List[FinanceObserver] = list(observers or [])

    def subscribe(self, observer: FinanceObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: FinanceObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def on_detected(self, record: Any) -> None:
        for observer in self._observers:
            observer.on_detected(record)

    def on_price_change(self, alert: PriceChangeAlert) -> None:
        for observer in self._observers:
            observer.on_price_change(alert)

    def on_missed(self, alert: MissedPaymentAlert) -> None:
        for observer in self._observers:
            observer.on_missed(alert)

    def on_alert(self, alert: BalanceAlert | BudgetAlert) -> None:
        for observer in self._observers:
            observer.on_alert(alert)

    def on_rollover(self, budget: Budget) -> None:
        for observer in self._observers:
            observer.on_rollover(budget)

    def on_created(self, record: Any) -> None:
        for observer in self._observers:
            observer.on_created(record)

    def on_updated(self, record: Any) -> None:
        for observer in self._observers:
            observer.on_updated(record)

    def on_deleted(self, record_id: str) -> None:
        for observer in self._observers:
            observer.on_deleted(record_id)


class TelemetryObserver(FinanceObserver):
    """Turns engine events into structured log lines and Prometheus counters"""

    def on_detected(self, record: Any) -> None:
        source = DETECTION_SOURCES.get(type(record), "unknown")
        record_detection(source)
        logger.info("Recurring payment detected", extra={"source": source, "record_id": record.id})

    def on_price_change(self, alert: PriceChangeAlert) -> None:
        record_alert("price_change")
        log_alert(
            "price_change",
            alert.recurring_payment_id,
            "info",
            f"{alert.merchant} changed from {alert.previous_amount:.2f} to {alert.new_amount:.2f}",
        )

    def on_missed(self, alert: MissedPaymentAlert) -> None:
        record_alert("missed_payment")
        log_alert(
            "missed_payment",
            alert.payment_id,
            "warning",
            f"{alert.name} is {alert.days_overdue} days overdue",
        )

    def on_alert(self, alert: BalanceAlert | BudgetAlert) -> None:
        if isinstance(alert, BudgetAlert):
            kind = f"budget_{alert.type.value}"
            record_alert(kind)
            log_alert(kind, alert.budget_id, "warning", alert.message)
        else:
            record_alert(alert.type.value)
            log_alert(alert.type.value, alert.account_id, alert.severity.value, alert.message)

    def on_rollover(self, budget: Budget) -> None:
        budget_rollover_counter.inc()
        logger.info(
            "Budget rolled over",
            extra={"budget_id": budget.id, "carry_over": budget.carry_over, "period_start": str(budget.period_start)},
        )
