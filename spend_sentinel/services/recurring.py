"""Recurring payment registry - detects subscriptions, price changes and missed payments"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import TypeAdapter

from spend_sentinel.domain.frequency import CADENCE_DAYS, classify, next_date, to_monthly
from spend_sentinel.domain.merchants import is_subscription_service, normalize
from spend_sentinel.domain.models import (
    AnalysisResult,
    BankTransaction,
    Cadence,
    MissedPaymentAlert,
    PaymentSource,
    PriceChangeAlert,
    PricePoint,
    RecurringPayment,
    UpcomingPayment,
    new_id,
)
from spend_sentinel.services.base import PersistentComponent, moment_for, today_or

logger = logging.getLogger(__name__)

CategoryFn = Callable[[BankTransaction], str]

_PAYMENTS = TypeAdapter(Dict[str, RecurringPayment])
_PRICE_ALERTS = TypeAdapter(List[PriceChangeAlert])
_MISSED_ALERTS = TypeAdapter(List[MissedPaymentAlert])


def group_by_merchant(transactions: Iterable[BankTransaction]) -> Dict[str, List[BankTransaction]]:
    """Outgoing transactions grouped by normalized merchant, each group sorted by date"""
    groups: Dict[str, Dict[str, BankTransaction]] = defaultdict(dict)
    for txn in transactions:
        if not txn.is_outgoing:
            continue
        key = normalize(txn.counterparty)
        if key:
            groups[key][txn.transaction_id] = txn
    return {
        key: sorted(by_id.values(), key=lambda t: (t.date, t.transaction_id))
        for key, by_id in groups.items()
    }


def amounts_consistent(amounts: List[float], tolerance: float = 0.2) -> bool:
    """Every amount lies within ``tolerance`` of the group mean"""
    if not amounts:
        return False
    mean = sum(amounts) / len(amounts)
    if mean == 0:
        return False
    return all(abs(a - mean) / mean <= tolerance for a in amounts)


class RecurringPaymentRegistry(PersistentComponent):
    """
    One RecurringPayment per normalized merchant.

    Records are created on the first statistically consistent group of 2+
    outgoing transactions, updated on later detections, and never deleted:
    stale ones are only marked inactive.
    """

    document_name = "recurring_payments"

    # Bills legitimately vary month to month
    AMOUNT_VARIANCE_EXEMPT = frozenset({Cadence.MONTHLY})
    AMOUNT_TOLERANCE = 0.2

    def _restore(self, document):
        self.payments: Dict[str, RecurringPayment] = _PAYMENTS.validate_python(document.get("payments", {}))
        self.price_alerts: List[PriceChangeAlert] = _PRICE_ALERTS.validate_python(document.get("price_alerts", []))
        self.missed_alerts: List[MissedPaymentAlert] = _MISSED_ALERTS.validate_python(
            document.get("missed_alerts", [])
        )

    def _snapshot(self):
        cap = self.config.max_price_alerts
        self.price_alerts = self.price_alerts[-cap:]
        self.missed_alerts = self.missed_alerts[-cap:]
        return {
            "payments": _PAYMENTS.dump_python(self.payments, mode="json"),
            "price_alerts": _PRICE_ALERTS.dump_python(self.price_alerts, mode="json"),
            "missed_alerts": _MISSED_ALERTS.dump_python(self.missed_alerts, mode="json"),
        }

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def analyze(
        self,
        transactions: Iterable[BankTransaction],
        category_fn: Optional[CategoryFn] = None,
        today: Optional[date] = None,
    ) -> AnalysisResult:
        """
        Detect recurring payments in a transaction window.

        Steps:
        1. Group outgoing transactions by normalized merchant (2+ per group)
        2. Classify the cadence of each group; irregular groups are skipped
        3. Non-monthly cadences also need every amount within 20% of the mean
        4. Create new records or update existing ones (price-change check)
        5. Run the missed-payment check
        """
        today = today_or(today)
        result = AnalysisResult()

        for pattern, txns in group_by_merchant(transactions).items():
            if len(txns) < 2:
                continue

            cadence = classify([t.date for t in txns])
            if cadence is None:
                continue

            amounts = [abs(t.amount) for t in txns]
            if cadence not in self.AMOUNT_VARIANCE_EXEMPT and not amounts_consistent(amounts, self.AMOUNT_TOLERANCE):
                logger.debug("Skipping %s: inconsistent amounts for %s cadence", pattern, cadence.value)
                continue

            existing = self.find_by_pattern(pattern)
            if existing is None:
                payment = self._create(pattern, txns, cadence, category_fn, today)
                result.detected.append(payment)
                self.observer.on_detected(payment)
            else:
                alert = self._update(existing, txns, cadence, today)
                if alert is not None:
                    result.price_changes.append(alert)
                    self.observer.on_price_change(alert)

        result.missed = self._check_missed(today)
        self._persist()

        logger.info(
            "Recurring analysis complete",
            extra={
                "detected": len(result.detected),
                "price_changes": len(result.price_changes),
                "missed": len(result.missed),
            },
        )
        return result

    def _create(
        self,
        pattern: str,
        txns: List[BankTransaction],
        cadence: Cadence,
        category_fn: Optional[CategoryFn],
        today: date,
    ) -> RecurringPayment:
        latest = txns[-1]
        amount = abs(latest.amount)
        now = moment_for(today)

        payment = RecurringPayment(
            id=new_id("rp"),
            merchant=latest.counterparty.strip(),
            merchant_pattern=pattern,
            frequency=cadence,
            amount=amount,
            currency=latest.currency,
            last_date=latest.date,
            next_expected_date=latest.date,
            category=category_fn(latest) if category_fn else latest.category,
            is_subscription=is_subscription_service(pattern),
            price_history=[PricePoint(amount=amount, date=latest.date)],
            transaction_ids={t.transaction_id for t in txns},
            created_at=now,
            updated_at=now,
        )
        self._anchor(payment, latest.date, cadence)
        self.payments[payment.id] = payment
        return payment

    def _update(
        self,
        payment: RecurringPayment,
        txns: List[BankTransaction],
        cadence: Cadence,
        today: date,
    ) -> Optional[PriceChangeAlert]:
        latest = txns[-1]
        new_amount = abs(latest.amount)
        previous = payment.amount
        now = moment_for(today)
        alert = None

        if previous > 0 and abs(new_amount - previous) / previous * 100 > self.config.price_change_threshold_percent:
            alert = PriceChangeAlert(
                id=new_id("pca"),
                recurring_payment_id=payment.id,
                merchant=payment.merchant,
                previous_amount=previous,
                new_amount=new_amount,
                change_percent=round((new_amount - previous) / previous * 100, 2),
                detected_at=now,
            )
            self.price_alerts.append(alert)
            payment.price_history.append(PricePoint(amount=new_amount, date=latest.date))
            payment.price_history = payment.price_history[-self.config.max_price_history:]

        # Only a transaction not seen before brings a stopped payment back
        if any(t.transaction_id not in payment.transaction_ids for t in txns):
            payment.is_active = True

        payment.amount = new_amount
        payment.frequency = cadence
        payment.last_date = latest.date
        payment.transaction_ids.update(t.transaction_id for t in txns)
        payment.updated_at = now
        self._anchor(payment, latest.date, cadence)
        return alert

    @staticmethod
    def _anchor(payment: RecurringPayment, latest: date, cadence: Cadence) -> None:
        """Set the day-of-week / day-of-month anchor and the next expected date"""
        if cadence in (Cadence.WEEKLY, Cadence.FORTNIGHTLY):
            payment.day_of_week = latest.weekday()
            payment.day_of_month = None
        else:
            payment.day_of_month = latest.day
            payment.day_of_week = None
        payment.next_expected_date = next_date(latest, cadence, payment.day_of_month)

    # ------------------------------------------------------------------
    # Missed payments
    # ------------------------------------------------------------------

    def check_missed_payments(self, today: Optional[date] = None) -> List[MissedPaymentAlert]:
        """Raise alerts for active payments past their expected date plus grace"""
        alerts = self._check_missed(today_or(today))
        self._persist()
        return alerts

    def _check_missed(self, today: date) -> List[MissedPaymentAlert]:
        grace = self.config.missed_payment_grace_days
        alerts = []

        for payment in self.payments.values():
            if not payment.is_active:
                continue

            days_past = (today - payment.next_expected_date).days
            if days_past - grace <= 0:
                continue

            # Two whole cycles without a payment: treat as ended, not missed
            if days_past > 2 * CADENCE_DAYS[payment.frequency]:
                payment.is_active = False
                logger.info("Marking recurring payment inactive", extra={"payment_id": payment.id})
                continue

            if self._recently_alerted(payment.id, today):
                continue

            alert = MissedPaymentAlert(
                id=new_id("mpa"),
                payment_id=payment.id,
                source=PaymentSource.RECURRING,
                name=payment.merchant,
                expected_amount=payment.amount,
                expected_date=payment.next_expected_date,
                days_overdue=days_past - grace,
                created_at=moment_for(today),
            )
            self.missed_alerts.append(alert)
            alerts.append(alert)
            self.observer.on_missed(alert)

        return alerts

    def _recently_alerted(self, payment_id: str, today: date) -> bool:
        window = timedelta(days=self.config.missed_alert_dedup_days)
        return any(
            a.payment_id == payment_id and not a.acknowledged and today - a.created_at.date() < window
            for a in self.missed_alerts
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_pattern(self, pattern: str) -> Optional[RecurringPayment]:
        for payment in self.payments.values():
            if payment.merchant_pattern == pattern:
                return payment
        return None

    def get_payment(self, payment_id: str) -> Optional[RecurringPayment]:
        return self.payments.get(payment_id)

    def get_recurring_payments(
        self,
        active_only: bool = False,
        subscriptions_only: bool = False,
        frequency: Optional[Cadence] = None,
    ) -> List[RecurringPayment]:
        payments = [
            p
            for p in self.payments.values()
            if (not active_only or p.is_active)
            and (not subscriptions_only or p.is_subscription)
            and (frequency is None or p.frequency == frequency)
        ]
        return sorted(payments, key=lambda p: (p.next_expected_date, p.merchant_pattern))

    def get_monthly_total(self) -> float:
        """Active recurring spend normalized to one month"""
        return round(sum(to_monthly(p.amount, p.frequency) for p in self.payments.values() if p.is_active), 2)

    def get_upcoming(self, days: int = 30, today: Optional[date] = None) -> List[UpcomingPayment]:
        today = today_or(today)
        horizon = today + timedelta(days=days)
        upcoming = [
            UpcomingPayment(
                payment_id=p.id,
                kind="recurring",
                name=p.merchant,
                amount=p.amount,
                date=p.next_expected_date,
            )
            for p in self.payments.values()
            if p.is_active and today <= p.next_expected_date <= horizon
        ]
        return sorted(upcoming, key=lambda u: u.date)

    def get_price_alerts(self, unacknowledged_only: bool = False) -> List[PriceChangeAlert]:
        return [a for a in self.price_alerts if not (unacknowledged_only and a.acknowledged)]

    def get_missed_alerts(self, unacknowledged_only: bool = False) -> List[MissedPaymentAlert]:
        return [a for a in self.missed_alerts if not (unacknowledged_only and a.acknowledged)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def acknowledge_alert(self, alert_id: str) -> bool:
        for alert in [*self.price_alerts, *self.missed_alerts]:
            if alert.id == alert_id:
                alert.acknowledged = True
                self._persist()
                return True
        return False

    def set_active(self, payment_id: str, active: bool) -> Optional[RecurringPayment]:
        payment = self.payments.get(payment_id)
        if payment is None:
            return None
        payment.is_active = active
        payment.updated_at = moment_for(None)
        self._persist()
        self.observer.on_updated(payment)
        return payment
