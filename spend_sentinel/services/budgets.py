"""Budget tracking - period-scoped category spend with rollover and threshold alerts"""

import logging
from datetime import date, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import TypeAdapter

from spend_sentinel.domain.exceptions import BudgetValidationError
from spend_sentinel.domain.models import (
    BankTransaction,
    Budget,
    BudgetAlert,
    BudgetAlertType,
    BudgetPeriod,
    BudgetSummary,
    new_id,
)
from spend_sentinel.services.base import PersistentComponent, moment_for, today_or
from spend_sentinel.utils.date_utils import month_bounds, week_bounds, year_bounds

logger = logging.getLogger(__name__)

CategoryFn = Callable[[BankTransaction], str]

# Percent-used thresholds, each notified once per period
THRESHOLDS = (50, 75, 90, 100)

UPDATABLE_FIELDS = frozenset({"name", "category", "amount", "period", "rollover", "is_active"})

_BUDGETS = TypeAdapter(Dict[str, Budget])
_ALERTS = TypeAdapter(List[BudgetAlert])


def default_category(txn: BankTransaction) -> str:
    return txn.category or "uncategorized"


def period_window(period: BudgetPeriod, today: date) -> Tuple[date, date]:
    """
    Current window for a budget period (both ends inclusive).

    - weekly: Monday-anchored 7 days
    - monthly: calendar month
    - yearly: calendar year
    """
    if period == BudgetPeriod.WEEKLY:
        return week_bounds(today)
    if period == BudgetPeriod.MONTHLY:
        return month_bounds(today)
    return year_bounds(today)


class BudgetTracker(PersistentComponent):
    """
    Budgets move ``active -> rolled over -> active`` each period, or get deleted.

    Threshold alerts are gated by four per-budget flags that reset only on
    rollover, so each threshold notifies at most once per period.
    """

    document_name = "budgets"

    def _restore(self, document):
        self.budgets: Dict[str, Budget] = _BUDGETS.validate_python(document.get("budgets", {}))
        self.alerts: List[BudgetAlert] = _ALERTS.validate_python(document.get("alerts", []))

    def _snapshot(self):
        self.alerts = self.alerts[-self.config.max_alert_history:]
        return {
            "budgets": _BUDGETS.dump_python(self.budgets, mode="json"),
            "alerts": _ALERTS.dump_python(self.alerts, mode="json"),
        }

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_budget(
        self,
        name: str,
        category: str,
        amount: float,
        period: BudgetPeriod = BudgetPeriod.MONTHLY,
        rollover: bool = False,
        today: Optional[date] = None,
    ) -> Budget:
        """
        Create a budget for the period containing ``today``.

        Raises:
            BudgetValidationError: On empty name/category or non-positive amount
        """
        if not name or not name.strip():
            raise BudgetValidationError("Budget name is required")
        if not category or not category.strip():
            raise BudgetValidationError("Budget category is required")
        if amount <= 0:
            raise BudgetValidationError("Budget amount must be positive")

        period = BudgetPeriod(period)
        start, end = period_window(period, today_or(today))
        now = moment_for(today)
        budget = Budget(
            id=new_id("bud"),
            name=name.strip(),
            category=category.strip(),
            amount=amount,
            period=period,
            period_start=start,
            period_end=end,
            rollover=rollover,
            created_at=now,
            updated_at=now,
        )
        budget.recalculate()
        self.budgets[budget.id] = budget
        self._persist()
        self.observer.on_created(budget)
        logger.info("Budget created", extra={"budget_id": budget.id, "category": budget.category})
        return budget

    def update_budget(self, budget_id: str, updates: Dict[str, Any], today: Optional[date] = None) -> Optional[Budget]:
        """Apply a partial update; returns None when the budget does not exist"""
        budget = self.budgets.get(budget_id)
        if budget is None:
            return None

        unknown = set(updates) - UPDATABLE_FIELDS
        if unknown:
            raise BudgetValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if "amount" in updates and (updates["amount"] is None or updates["amount"] <= 0):
            raise BudgetValidationError("Budget amount must be positive")

        for field_name, value in updates.items():
            if value is None:
                continue
            if field_name == "period":
                value = BudgetPeriod(value)
                if value != budget.period:
                    budget.period_start, budget.period_end = period_window(value, today_or(today))
            setattr(budget, field_name, value)

        budget.recalculate()
        budget.updated_at = moment_for(today)
        self._persist()
        self.observer.on_updated(budget)
        return budget

    def delete_budget(self, budget_id: str) -> bool:
        if self.budgets.pop(budget_id, None) is None:
            return False
        self._persist()
        self.observer.on_deleted(budget_id)
        logger.info("Budget deleted", extra={"budget_id": budget_id})
        return True

    # ------------------------------------------------------------------
    # Period accounting
    # ------------------------------------------------------------------

    def check_rollovers(self, today: Optional[date] = None) -> List[Budget]:
        """Roll every active budget whose period has ended into the current period"""
        rolled = self._roll_expired(today_or(today))
        if rolled:
            self._persist()
        return rolled

    def _roll_expired(self, today: date) -> List[Budget]:
        rolled = []
        for budget in self.budgets.values():
            if budget.is_active and budget.period_end < today:
                self._rollover(budget, today)
                rolled.append(budget)
                self.observer.on_rollover(budget)
        return rolled

    def _rollover(self, budget: Budget, today: date) -> None:
        budget.recalculate()
        if budget.rollover:
            cap = budget.amount * self.config.rollover_cap_ratio
            budget.carry_over = round(max(0.0, min(budget.remaining, cap)), 2)
        else:
            budget.carry_over = 0.0

        budget.spent = 0.0
        budget.alert_50_sent = False
        budget.alert_75_sent = False
        budget.alert_90_sent = False
        budget.alert_100_sent = False
        budget.period_start, budget.period_end = period_window(budget.period, today)
        budget.updated_at = moment_for(today)
        budget.recalculate()

    def process_transactions(
        self,
        transactions: Iterable[BankTransaction],
        category_fn: Optional[CategoryFn] = None,
        today: Optional[date] = None,
    ) -> List[BudgetAlert]:
        """
        Recompute spend for every active budget and raise threshold alerts.

        Expired budgets are rolled over first. Spent is rebuilt from scratch
        each call from outgoing transactions whose category matches and whose
        date falls inside the budget window.
        """
        today = today_or(today)
        category_fn = category_fn or default_category
        self._roll_expired(today)

        outgoing = [(txn, category_fn(txn)) for txn in transactions if txn.is_outgoing]
        alerts: List[BudgetAlert] = []

        for budget in self.budgets.values():
            if not budget.is_active or budget.period_end < today:
                continue

            budget.spent = round(
                sum(
                    abs(txn.amount)
                    for txn, category in outgoing
                    if category == budget.category and budget.period_start <= txn.date <= budget.period_end
                ),
                2,
            )
            budget.recalculate()
            alerts.extend(self._evaluate_thresholds(budget, today))

        self._persist()
        for alert in alerts:
            self.observer.on_alert(alert)
        return alerts

    def _evaluate_thresholds(self, budget: Budget, today: date) -> List[BudgetAlert]:
        alerts = []
        for threshold in THRESHOLDS:
            flag = f"alert_{threshold}_sent"
            if budget.percent_used >= threshold and not getattr(budget, flag):
                setattr(budget, flag, True)
                alerts.append(
                    self._raise(
                        budget,
                        BudgetAlertType.THRESHOLD,
                        threshold,
                        f"{budget.name}: {budget.percent_used:.0f}% of budget used",
                        today,
                    )
                )

        if budget.percent_used > 100 and not self._recently_exceeded(budget.id, today):
            alerts.append(
                self._raise(
                    budget,
                    BudgetAlertType.EXCEEDED,
                    100,
                    f"{budget.name}: over budget by {abs(budget.remaining):.2f}",
                    today,
                )
            )
        return alerts

    def _raise(self, budget: Budget, kind: BudgetAlertType, threshold: int, message: str, today: date) -> BudgetAlert:
        alert = BudgetAlert(
            id=new_id("ba"),
            budget_id=budget.id,
            budget_name=budget.name,
            category=budget.category,
            type=kind,
            threshold=threshold,
            percent_used=budget.percent_used,
            spent=budget.spent,
            limit=budget.limit,
            message=message,
            created_at=moment_for(today),
        )
        self.alerts.append(alert)
        return alert

    def _recently_exceeded(self, budget_id: str, today: date) -> bool:
        window = timedelta(hours=self.config.alert_dedup_hours)
        now = moment_for(today)
        return any(
            a.budget_id == budget_id
            and a.type == BudgetAlertType.EXCEEDED
            and not a.acknowledged
            and now - a.created_at < window
            for a in self.alerts
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_budget(self, budget_id: str) -> Optional[Budget]:
        return self.budgets.get(budget_id)

    def get_budgets(
        self,
        active_only: bool = False,
        category: Optional[str] = None,
        period: Optional[BudgetPeriod] = None,
    ) -> List[Budget]:
        budgets = [
            b
            for b in self.budgets.values()
            if (not active_only or b.is_active)
            and (category is None or b.category == category)
            and (period is None or b.period == period)
        ]
        return sorted(budgets, key=lambda b: (b.category, b.name))

    def get_summary(self) -> BudgetSummary:
        active = [b for b in self.budgets.values() if b.is_active]
        total_budgeted = sum(b.limit for b in active)
        total_spent = sum(b.spent for b in active)
        return BudgetSummary(
            budget_count=len(active),
            total_budgeted=round(total_budgeted, 2),
            total_spent=round(total_spent, 2),
            total_remaining=round(total_budgeted - total_spent, 2),
            percent_used=round(total_spent / total_budgeted * 100, 2) if total_budgeted > 0 else 0.0,
            over_budget_count=sum(1 for b in active if b.percent_used > 100),
            near_limit_count=sum(1 for b in active if 90 <= b.percent_used <= 100),
        )

    def get_active_alerts(self) -> List[BudgetAlert]:
        return sorted((a for a in self.alerts if not a.acknowledged), key=lambda a: a.created_at, reverse=True)

    def acknowledge_alert(self, alert_id: str) -> bool:
        for alert in self.alerts:
            if alert.id == alert_id:
                alert.acknowledged = True
                self._persist()
                return True
        return False
