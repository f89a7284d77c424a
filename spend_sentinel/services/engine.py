"""FinanceEngine - the service struct wiring every subsystem together"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, List, Optional, Sequence

from spend_sentinel.config import Settings, settings as default_settings
from spend_sentinel.domain.models import (
    AccountSnapshot,
    BankTransaction,
    SpendingPrediction,
    UpcomingCharge,
)
from spend_sentinel.infrastructure.storage import JsonFileStore, MemoryStore, StateStore
from spend_sentinel.services.balance_alerts import BalanceAlertMonitor
from spend_sentinel.services.base import moment_for, today_or
from spend_sentinel.services.budgets import BudgetTracker, default_category
from spend_sentinel.services.forecasting import SpendingForecaster
from spend_sentinel.services.mandates import MandateDetector
from spend_sentinel.services.observers import FinanceObserver, ObserverHub, TelemetryObserver
from spend_sentinel.services.recurring import RecurringPaymentRegistry
from spend_sentinel.utils.date_utils import month_bounds

logger = logging.getLogger(__name__)

CategoryFn = Callable[[BankTransaction], str]


@dataclass
class CycleReport:
    """Everything one ``run_cycle`` call raised"""

    detected: list = field(default_factory=list)
    mandates: list = field(default_factory=list)
    price_changes: list = field(default_factory=list)
    missed: list = field(default_factory=list)
    budget_alerts: list = field(default_factory=list)
    balance_alerts: list = field(default_factory=list)
    months_learned: int = 0


@dataclass
class FinanceEngine:
    """
    One instance per host process, passed to every caller.

    Not thread-safe: the host must serialize calls (e.g. dispatch them from a
    single event loop).
    """

    recurring: RecurringPaymentRegistry
    mandates: MandateDetector
    budgets: BudgetTracker
    forecaster: SpendingForecaster
    balance_alerts: BalanceAlertMonitor
    observers: ObserverHub
    category_fn: CategoryFn = default_category

    def subscribe(self, observer: FinanceObserver) -> None:
        self.observers.subscribe(observer)

    def run_cycle(
        self,
        transactions: Sequence[BankTransaction],
        accounts: Iterable[AccountSnapshot] = (),
        today: Optional[date] = None,
    ) -> CycleReport:
        """Feed one transaction window (and balances) through every subsystem"""
        report = CycleReport()

        analysis = self.recurring.analyze(transactions, self.category_fn, today=today)
        report.detected = analysis.detected
        report.price_changes = analysis.price_changes
        report.missed = list(analysis.missed)

        detection = self.mandates.detect(transactions, today=today)
        report.mandates = [*detection.direct_debits, *detection.standing_orders]
        report.missed.extend(self.mandates.check_missed_collections(today=today))

        report.budget_alerts = self.budgets.process_transactions(transactions, self.category_fn, today=today)
        report.months_learned = len(self.forecaster.learn_from_transactions(transactions, self.category_fn))

        accounts = list(accounts)
        if accounts:
            report.balance_alerts = self.balance_alerts.check_accounts(accounts, now=moment_for(today))

        return report

    def upcoming_charges(self, today: Optional[date] = None) -> List[UpcomingCharge]:
        """Recurring payments and mandates due between today and month end"""
        today = today_or(today)
        _, period_end = month_bounds(today)
        days = (period_end - today).days

        # A recurring payment built from a mandate's collections is the same charge
        collected = {
            c.transaction_id
            for mandate in [*self.mandates.direct_debits.values(), *self.mandates.standing_orders.values()]
            for c in mandate.history
        }
        recurring = [
            u
            for u in self.recurring.get_upcoming(days, today)
            if not self.recurring.get_payment(u.payment_id).transaction_ids & collected
        ]
        upcoming = sorted([*recurring, *self.mandates.get_upcoming(days, today)], key=lambda u: u.date)
        return [UpcomingCharge(amount=u.amount, date=u.date, name=u.name) for u in upcoming]

    def predict(
        self,
        current_balance: float,
        upcoming: Optional[Iterable[UpcomingCharge]] = None,
        today: Optional[date] = None,
    ) -> SpendingPrediction:
        if upcoming is None:
            upcoming = self.upcoming_charges(today)
        return self.forecaster.predict(current_balance, upcoming, today=today)

    def get_active_alerts(self) -> list:
        """Unacknowledged alerts from every subsystem"""
        return [
            *self.balance_alerts.get_active_alerts(),
            *self.budgets.get_active_alerts(),
            *self.recurring.get_price_alerts(unacknowledged_only=True),
            *self.recurring.get_missed_alerts(unacknowledged_only=True),
            *self.mandates.get_missed_alerts(unacknowledged_only=True),
        ]

    def acknowledge_alert(self, alert_id: str) -> bool:
        return (
            self.balance_alerts.acknowledge_alert(alert_id)
            or self.budgets.acknowledge_alert(alert_id)
            or self.recurring.acknowledge_alert(alert_id)
            or self.mandates.acknowledge_alert(alert_id)
        )


def create_store(config: Settings) -> StateStore:
    """Storage adapter selected by ``storage_backend``"""
    if config.storage_backend == "memory":
        return MemoryStore()
    if config.storage_backend == "sql":
        from spend_sentinel.infrastructure.database.repositories import SqlStateStore
        from spend_sentinel.infrastructure.database.session import create_session_factory

        return SqlStateStore(create_session_factory(config.database_url))
    return JsonFileStore(config.data_dir)


def build_engine(
    store: Optional[StateStore] = None,
    config: Optional[Settings] = None,
    category_fn: Optional[CategoryFn] = None,
    observers: Optional[List[FinanceObserver]] = None,
) -> FinanceEngine:
    """Construct every subsystem once, sharing one store, config and observer hub"""
    config = config or default_settings
    store = store if store is not None else create_store(config)
    hub = ObserverHub([TelemetryObserver(), *(observers or [])])

    engine = FinanceEngine(
        recurring=RecurringPaymentRegistry(store, hub, config),
        mandates=MandateDetector(store, hub, config),
        budgets=BudgetTracker(store, hub, config),
        forecaster=SpendingForecaster(store, hub, config),
        balance_alerts=BalanceAlertMonitor(store, hub, config),
        observers=hub,
        category_fn=category_fn or default_category,
    )
    logger.info("Finance engine ready", extra={"storage_backend": type(store).__name__})
    return engine
