"""Direct debit and standing order mandate detection"""

import logging
import math
import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import TypeAdapter

from spend_sentinel.domain.frequency import classify, next_date, to_monthly
from spend_sentinel.domain.merchants import normalize
from spend_sentinel.domain.models import (
    BankTransaction,
    Cadence,
    Collection,
    CollectionStatus,
    DirectDebit,
    Mandate,
    MandateDetectionResult,
    MandateKind,
    MandateStatus,
    MissedPaymentAlert,
    MonthlyCommitment,
    PaymentSource,
    StandingOrder,
    UpcomingPayment,
    new_id,
)
from spend_sentinel.config import Settings
from spend_sentinel.infrastructure.storage import StateStore
from spend_sentinel.services.base import PersistentComponent, moment_for, today_or
from spend_sentinel.services.observers import FinanceObserver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MandatePatterns:
    """Description markers identifying each mandate kind (case-insensitive regexes)"""

    direct_debit: Tuple[str, ...] = (
        r"\bdirect\s*debit\b",
        r"\bdd\b",
        r"\bddr\b",
    )
    standing_order: Tuple[str, ...] = (
        r"\bstanding\s*order\b",
        r"\bs/o\b",
        r"\bsto\b",
        r"\bso\b",
    )


MandateClassifier = Callable[[BankTransaction], Optional[MandateKind]]

_SUN = re.compile(r"\bSUN[:\s]*([0-9]{6})\b", re.IGNORECASE)
_REFERENCE = re.compile(r"\bREF(?:ERENCE)?[:\s.]+([A-Z0-9][A-Z0-9/-]{2,})", re.IGNORECASE)
_SORT_CODE = re.compile(r"\b(\d{2}-\d{2}-\d{2})\b")
_ACCOUNT_NUMBER = re.compile(r"\b(\d{8})\b")

# Variation below this coefficient counts as a fixed amount
FIXED_AMOUNT_VARIATION = 0.01

_DIRECT_DEBITS = TypeAdapter(Dict[str, DirectDebit])
_STANDING_ORDERS = TypeAdapter(Dict[str, StandingOrder])
_MISSED_ALERTS = TypeAdapter(List[MissedPaymentAlert])


def pattern_classifier(patterns: MandatePatterns = MandatePatterns()) -> MandateClassifier:
    """Build a classifier that tags a transaction by its description markers"""
    dd = [re.compile(p, re.IGNORECASE) for p in patterns.direct_debit]
    so = [re.compile(p, re.IGNORECASE) for p in patterns.standing_order]

    def classify_transaction(txn: BankTransaction) -> Optional[MandateKind]:
        text = f"{txn.description} {txn.merchant_name or ''}"
        if any(p.search(text) for p in dd):
            return MandateKind.DIRECT_DEBIT
        if any(p.search(text) for p in so):
            return MandateKind.STANDING_ORDER
        return None

    return classify_transaction


def strip_markers(text: str, patterns: MandatePatterns = MandatePatterns()) -> str:
    """Remove mandate markers and reference details, leaving the payee name"""
    for p in (*patterns.direct_debit, *patterns.standing_order):
        text = re.sub(p, " ", text, flags=re.IGNORECASE)
    for p in (_SUN, _REFERENCE, _SORT_CODE, _ACCOUNT_NUMBER):
        text = p.sub(" ", text)
    return " ".join(text.split())


def expected_amount(amounts: List[float]) -> float:
    """Latest amount when collections are effectively fixed, else the historical average"""
    if not amounts:
        return 0.0
    mean = sum(amounts) / len(amounts)
    if mean == 0:
        return 0.0
    stdev = math.sqrt(sum((a - mean) ** 2 for a in amounts) / len(amounts))
    if stdev / mean < FIXED_AMOUNT_VARIATION:
        return round(amounts[-1], 2)
    return round(mean, 2)


def collection_status(txn: BankTransaction) -> CollectionStatus:
    status = (txn.status or "").lower()
    if status in ("returned", "reversed"):
        return CollectionStatus.RETURNED
    if status in ("rejected", "failed", "unpaid"):
        return CollectionStatus.REJECTED
    return CollectionStatus.COLLECTED


class MandateDetector(PersistentComponent):
    """
    Tracks direct debits and standing orders identified by description markers.

    Unlike the recurring registry, amounts may vary freely (utility bills);
    variance is absorbed into ``expected_amount``. Mandates with a single
    collection and no inferable cadence are assumed monthly.
    """

    document_name = "mandates"

    def __init__(
        self,
        store: Optional[StateStore] = None,
        observer: Optional[FinanceObserver] = None,
        config: Optional[Settings] = None,
        patterns: MandatePatterns = MandatePatterns(),
        classifier: Optional[MandateClassifier] = None,
    ):
        self.patterns = patterns
        self.classifier = classifier or pattern_classifier(patterns)
        super().__init__(store, observer, config)

    def _restore(self, document):
        self.direct_debits: Dict[str, DirectDebit] = _DIRECT_DEBITS.validate_python(document.get("direct_debits", {}))
        self.standing_orders: Dict[str, StandingOrder] = _STANDING_ORDERS.validate_python(
            document.get("standing_orders", {})
        )
        self.missed_alerts: List[MissedPaymentAlert] = _MISSED_ALERTS.validate_python(
            document.get("missed_alerts", [])
        )

    def _snapshot(self):
        self.missed_alerts = self.missed_alerts[-self.config.max_price_alerts:]
        return {
            "direct_debits": _DIRECT_DEBITS.dump_python(self.direct_debits, mode="json"),
            "standing_orders": _STANDING_ORDERS.dump_python(self.standing_orders, mode="json"),
            "missed_alerts": _MISSED_ALERTS.dump_python(self.missed_alerts, mode="json"),
        }

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, transactions: Iterable[BankTransaction], today: Optional[date] = None) -> MandateDetectionResult:
        """
        Create or update mandates from marked outgoing transactions.

        Returns every mandate matched by this call, new or updated.
        """
        today = today_or(today)
        result = MandateDetectionResult()

        for (kind, account_id, pattern), txns in self._group(transactions).items():
            store = self._registry(kind)
            existing = next(
                (m for m in store.values() if m.pattern == pattern and m.account_id == account_id), None
            )
            if existing is None:
                mandate = self._create(kind, account_id, pattern, txns, today)
                store[mandate.id] = mandate
                self.observer.on_detected(mandate)
            else:
                mandate = existing
                if self._record_collections(mandate, txns, today):
                    self.observer.on_updated(mandate)

            if kind == MandateKind.DIRECT_DEBIT:
                result.direct_debits.append(mandate)
            else:
                result.standing_orders.append(mandate)

        self._persist()
        logger.info(
            "Mandate detection complete",
            extra={"direct_debits": len(result.direct_debits), "standing_orders": len(result.standing_orders)},
        )
        return result

    def _group(self, transactions: Iterable[BankTransaction]) -> Dict[tuple, List[BankTransaction]]:
        groups: Dict[tuple, Dict[str, BankTransaction]] = defaultdict(dict)
        for txn in transactions:
            if not txn.is_outgoing:
                continue
            kind = self.classifier(txn)
            if kind is None:
                continue
            pattern = normalize(strip_markers(txn.merchant_name or txn.description, self.patterns))
            if not pattern:
                continue
            groups[(kind, txn.account_id, pattern)][txn.transaction_id] = txn
        return {key: sorted(by_id.values(), key=lambda t: (t.date, t.transaction_id)) for key, by_id in groups.items()}

    def _registry(self, kind: MandateKind) -> Dict[str, Mandate]:
        return self.direct_debits if kind == MandateKind.DIRECT_DEBIT else self.standing_orders

    def _create(
        self,
        kind: MandateKind,
        account_id: str,
        pattern: str,
        txns: List[BankTransaction],
        today: date,
    ) -> Mandate:
        latest = txns[-1]
        text = f"{latest.description} {latest.merchant_name or ''}"
        now = moment_for(today)
        reference = _REFERENCE.search(text)
        common = dict(
            id=new_id("dd" if kind == MandateKind.DIRECT_DEBIT else "so"),
            account_id=account_id,
            name=strip_markers(latest.merchant_name or latest.description, self.patterns) or pattern,
            pattern=pattern,
            expected_amount=abs(latest.amount),
            currency=latest.currency,
            frequency=Cadence.MONTHLY,
            last_date=latest.date,
            next_date=latest.date,
            reference=reference.group(1).upper() if reference else None,
            created_at=now,
            updated_at=now,
        )

        if kind == MandateKind.DIRECT_DEBIT:
            sun = _SUN.search(text)
            mandate: Mandate = DirectDebit(**common, service_user_number=sun.group(1) if sun else None)
        else:
            sort_code = _SORT_CODE.search(text)
            account_number = _ACCOUNT_NUMBER.search(text)
            mandate = StandingOrder(
                **common,
                sort_code=sort_code.group(1) if sort_code else None,
                account_number=account_number.group(1) if account_number else None,
            )

        self._record_collections(mandate, txns, today)
        return mandate

    def _record_collections(self, mandate: Mandate, txns: List[BankTransaction], today: date) -> bool:
        """Append unseen collections and recompute cadence, amount and next date"""
        seen = {c.transaction_id for c in mandate.history}
        fresh = [
            Collection(
                transaction_id=t.transaction_id,
                date=t.date,
                amount=abs(t.amount),
                status=collection_status(t),
            )
            for t in txns
            if t.transaction_id not in seen
        ]
        if not fresh and mandate.history:
            return False

        history = sorted([*mandate.history, *fresh], key=lambda c: (c.date, c.transaction_id))
        mandate.history = history[-self.config.max_collection_history:]

        collected = [c for c in mandate.history if c.status == CollectionStatus.COLLECTED]
        if collected:
            cadence = classify([c.date for c in collected])
            if cadence is not None:
                mandate.frequency = cadence
            mandate.expected_amount = expected_amount([c.amount for c in collected])
            mandate.last_date = collected[-1].date
        mandate.next_date = next_date(mandate.last_date, mandate.frequency)
        mandate.updated_at = moment_for(today)
        return True

    # ------------------------------------------------------------------
    # Missed collections
    # ------------------------------------------------------------------

    def check_missed_collections(self, today: Optional[date] = None) -> List[MissedPaymentAlert]:
        """Alert on active mandates with no collection past the expected date plus grace"""
        today = today_or(today)
        grace = self.config.missed_payment_grace_days
        window = timedelta(days=self.config.missed_alert_dedup_days)
        alerts = []

        for kind, registry in (
            (PaymentSource.DIRECT_DEBIT, self.direct_debits),
            (PaymentSource.STANDING_ORDER, self.standing_orders),
        ):
            for mandate in registry.values():
                if mandate.status != MandateStatus.ACTIVE:
                    continue
                days_overdue = (today - mandate.next_date).days - grace
                if days_overdue <= 0:
                    continue
                if any(
                    a.payment_id == mandate.id and not a.acknowledged and today - a.created_at.date() < window
                    for a in self.missed_alerts
                ):
                    continue

                alert = MissedPaymentAlert(
                    id=new_id("mpa"),
                    payment_id=mandate.id,
                    source=kind,
                    name=mandate.name,
                    expected_amount=mandate.expected_amount,
                    expected_date=mandate.next_date,
                    days_overdue=days_overdue,
                    created_at=moment_for(today),
                )
                self.missed_alerts.append(alert)
                alerts.append(alert)
                self.observer.on_missed(alert)

        self._persist()
        return alerts

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_direct_debits(self, status: Optional[str] = None, account_id: Optional[str] = None) -> List[DirectDebit]:
        return self._filter(self.direct_debits, status, account_id)

    def get_standing_orders(
        self, status: Optional[str] = None, account_id: Optional[str] = None
    ) -> List[StandingOrder]:
        return self._filter(self.standing_orders, status, account_id)

    @staticmethod
    def _filter(registry: Dict[str, Mandate], status: Optional[str], account_id: Optional[str]) -> list:
        mandates = [
            m
            for m in registry.values()
            if (status is None or m.status.value == status) and (account_id is None or m.account_id == account_id)
        ]
        return sorted(mandates, key=lambda m: (m.next_date, m.name))

    def get_upcoming(self, days: int = 30, today: Optional[date] = None) -> List[UpcomingPayment]:
        today = today_or(today)
        horizon = today + timedelta(days=days)
        upcoming = []
        for kind, registry in (
            (MandateKind.DIRECT_DEBIT, self.direct_debits),
            (MandateKind.STANDING_ORDER, self.standing_orders),
        ):
            for m in registry.values():
                if m.status == MandateStatus.ACTIVE and today <= m.next_date <= horizon:
                    upcoming.append(
                        UpcomingPayment(
                            payment_id=m.id,
                            kind=kind.value,
                            name=m.name,
                            amount=m.expected_amount,
                            date=m.next_date,
                        )
                    )
        return sorted(upcoming, key=lambda u: u.date)

    def get_monthly_committed(self) -> MonthlyCommitment:
        """Active mandates normalized to a monthly amount"""
        active_dd = [m for m in self.direct_debits.values() if m.status == MandateStatus.ACTIVE]
        active_so = [m for m in self.standing_orders.values() if m.status == MandateStatus.ACTIVE]
        dd_total = sum(to_monthly(m.expected_amount, m.frequency) for m in active_dd)
        so_total = sum(to_monthly(m.expected_amount, m.frequency) for m in active_so)
        return MonthlyCommitment(
            direct_debits=round(dd_total, 2),
            standing_orders=round(so_total, 2),
            total=round(dd_total + so_total, 2),
            count=len(active_dd) + len(active_so),
        )

    def get_missed_alerts(self, unacknowledged_only: bool = False) -> List[MissedPaymentAlert]:
        return [a for a in self.missed_alerts if not (unacknowledged_only and a.acknowledged)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def cancel_direct_debit(self, mandate_id: str, reason: Optional[str] = None) -> bool:
        mandate = self.direct_debits.get(mandate_id)
        if mandate is None or mandate.status == MandateStatus.CANCELLED:
            return False
        mandate.status = MandateStatus.CANCELLED
        mandate.cancelled_at = moment_for(None)
        mandate.cancellation_reason = reason
        mandate.updated_at = mandate.cancelled_at
        self._persist()
        self.observer.on_updated(mandate)
        logger.info("Direct debit cancelled", extra={"mandate_id": mandate_id})
        return True

    def acknowledge_alert(self, alert_id: str) -> bool:
        for alert in self.missed_alerts:
            if alert.id == alert_id:
                alert.acknowledged = True
                self._persist()
                return True
        return False
