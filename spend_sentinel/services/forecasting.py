"""Spending forecaster - learns monthly patterns and projects end-of-period balance"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import TypeAdapter

from spend_sentinel.domain.models import (
    BankTransaction,
    CategoryTrend,
    DayOfWeekPattern,
    MonthlySummary,
    SpendingPrediction,
    SpendingTrend,
    Trend,
    UpcomingCharge,
    WarningLevel,
)
from spend_sentinel.services.base import PersistentComponent, today_or
from spend_sentinel.utils.date_utils import days_in_month, generate_date_range, month_bounds, month_key

logger = logging.getLogger(__name__)

CategoryFn = Callable[[BankTransaction], str]

# Weeks per month used to turn a monthly weekday total into a per-day average
WEEKS_PER_MONTH = 4
# Months of history at which a weekday pattern is fully trusted
FULL_CONFIDENCE_MONTHS = 6
MIN_HISTORY_MONTHS = 3
LOW_HISTORY_CONFIDENCE = 0.5
TREND_THRESHOLD_PERCENT = 10.0

_SUMMARIES = TypeAdapter(Dict[str, MonthlySummary])


def classify_trend(recent: float, prior: float) -> tuple[Trend, float]:
    """Compare two averages; >10% up is increasing, >10% down is decreasing"""
    if prior <= 0:
        return Trend.STABLE, 0.0
    change = (recent - prior) / prior * 100
    if change > TREND_THRESHOLD_PERCENT:
        return Trend.INCREASING, round(change, 2)
    if change < -TREND_THRESHOLD_PERCENT:
        return Trend.DECREASING, round(change, 2)
    return Trend.STABLE, round(change, 2)


def warning_level(predicted_end_balance: float) -> WarningLevel:
    if predicted_end_balance < 0:
        return WarningLevel.CRITICAL
    if predicted_end_balance < 100:
        return WarningLevel.WARNING
    if predicted_end_balance < 500:
        return WarningLevel.CAUTION
    return WarningLevel.OK


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class SpendingForecaster(PersistentComponent):
    """
    Monthly summaries are append-only: once a ``YYYY-MM`` key is summarized it
    is never recomputed, so late transactions for a closed month are ignored.
    """

    document_name = "spending_history"

    def _restore(self, document):
        self.summaries: Dict[str, MonthlySummary] = _SUMMARIES.validate_python(document.get("summaries", {}))

    def _snapshot(self):
        return {"summaries": _SUMMARIES.dump_python(self.summaries, mode="json")}

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def learn_from_transactions(
        self,
        transactions: Iterable[BankTransaction],
        category_fn: Optional[CategoryFn] = None,
    ) -> List[MonthlySummary]:
        """
        Summarize months not seen before.

        Returns the summaries created by this call.
        """
        by_month: Dict[str, List[BankTransaction]] = defaultdict(list)
        for txn in transactions:
            by_month[month_key(txn.date)].append(txn)

        created = []
        skipped = 0
        for key in sorted(by_month):
            if key in self.summaries:
                skipped += len(by_month[key])
                continue
            summary = self._summarize(key, by_month[key], category_fn)
            self.summaries[key] = summary
            created.append(summary)

        if skipped:
            logger.debug("Ignored %d transactions for already summarized months", skipped)
        if created:
            self._persist()
            logger.info("Learned spending history", extra={"months_added": len(created)})
        return created

    @staticmethod
    def _summarize(key: str, txns: List[BankTransaction], category_fn: Optional[CategoryFn]) -> MonthlySummary:
        by_category: Dict[str, float] = defaultdict(float)
        by_weekday: Dict[int, float] = defaultdict(float)
        income = 0.0
        expenses = 0.0

        for txn in txns:
            if txn.amount >= 0:
                income += txn.amount
                continue
            spend = abs(txn.amount)
            expenses += spend
            category = category_fn(txn) if category_fn else (txn.category or "uncategorized")
            by_category[category] += spend
            by_weekday[txn.date.weekday()] += spend

        return MonthlySummary(
            month=key,
            total_income=round(income, 2),
            total_expenses=round(expenses, 2),
            transaction_count=len(txns),
            by_category={k: round(v, 2) for k, v in by_category.items()},
            by_weekday={k: round(v, 2) for k, v in by_weekday.items()},
        )

    # ------------------------------------------------------------------
    # Patterns
    # ------------------------------------------------------------------

    def _ordered(self) -> List[MonthlySummary]:
        return [self.summaries[k] for k in sorted(self.summaries)]

    def get_monthly_summaries(self) -> List[MonthlySummary]:
        return self._ordered()

    def get_day_of_week_patterns(self) -> List[DayOfWeekPattern]:
        """
        Average daily spend per weekday (Monday = 0).

        Each month's weekday total is divided by 4 weeks, then averaged over
        every observed month. Confidence grows with the number of months in
        which that weekday saw spending.
        """
        months = self._ordered()
        patterns = []
        for weekday in range(7):
            per_month = [m.by_weekday.get(weekday, 0.0) / WEEKS_PER_MONTH for m in months]
            samples = sum(1 for m in months if m.by_weekday.get(weekday, 0.0) > 0)
            patterns.append(
                DayOfWeekPattern(
                    weekday=weekday,
                    average_spend=round(_mean(per_month), 2),
                    sample_count=samples,
                    confidence=round(min(samples / FULL_CONFIDENCE_MONTHS, 1.0), 2),
                )
            )
        return patterns

    def get_category_trends(self) -> List[CategoryTrend]:
        """Last-3-month vs prior-3-month average per category"""
        months = self._ordered()
        categories = sorted({c for m in months for c in m.by_category})
        recent_months = months[-3:]
        prior_months = months[-6:-3]

        trends = []
        for category in categories:
            recent = _mean([m.by_category.get(category, 0.0) for m in recent_months])
            prior = _mean([m.by_category.get(category, 0.0) for m in prior_months])
            trend, change = classify_trend(recent, prior)
            trends.append(
                CategoryTrend(
                    category=category,
                    monthly_average=round(_mean([m.by_category.get(category, 0.0) for m in months]), 2),
                    recent_average=round(recent, 2),
                    prior_average=round(prior, 2),
                    change_percent=change,
                    trend=trend,
                )
            )
        return trends

    def get_spending_trend(self) -> SpendingTrend:
        months = self._ordered()
        recent = _mean([m.total_expenses for m in months[-3:]])
        prior = _mean([m.total_expenses for m in months[-6:-3]])
        trend, change = classify_trend(recent, prior)
        return SpendingTrend(
            trend=trend,
            change_percent=change,
            monthly_average=round(_mean([m.total_expenses for m in months]), 2),
            months_observed=len(months),
        )

    def confidence(self) -> float:
        if len(self.summaries) < MIN_HISTORY_MONTHS:
            return LOW_HISTORY_CONFIDENCE
        patterns = self.get_day_of_week_patterns()
        return round(min(_mean([p.confidence for p in patterns]), self.config.forecast_confidence_cap), 2)

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict(
        self,
        current_balance: float,
        upcoming_recurring: Optional[Iterable[UpcomingCharge]] = None,
        today: Optional[date] = None,
    ) -> SpendingPrediction:
        """
        Project spend for the rest of the calendar month.

        predicted spend = upcoming recurring charges due by month end
                          + weekday average for each remaining day (after today)
        daily budget    = spend down to a protected floor over the remaining days
        """
        today = today_or(today)
        _, period_end = month_bounds(today)
        days_remaining = (period_end - today).days

        recurring_total = sum(
            abs(charge.amount) for charge in (upcoming_recurring or []) if today <= charge.date <= period_end
        )

        day_averages = {p.weekday: p.average_spend for p in self.get_day_of_week_patterns()}
        remaining_days = generate_date_range(today + timedelta(days=1), period_end) if days_remaining > 0 else []
        discretionary = sum(day_averages.get(d.weekday(), 0.0) for d in remaining_days)

        predicted_spending = recurring_total + discretionary
        predicted_end_balance = current_balance - predicted_spending

        if days_remaining <= 0:
            daily_budget = 0.0
        else:
            floor = max(predicted_end_balance, self.config.protected_balance_floor)
            daily_budget = max(0.0, (current_balance - floor - recurring_total) / days_remaining)

        return SpendingPrediction(
            current_balance=round(current_balance, 2),
            predicted_spending=round(predicted_spending, 2),
            predicted_end_balance=round(predicted_end_balance, 2),
            recurring_total=round(recurring_total, 2),
            days_remaining=days_remaining,
            daily_budget=round(daily_budget, 2),
            confidence=self.confidence(),
            warning_level=warning_level(predicted_end_balance),
            period_end=period_end,
            category_breakdown=self._category_breakdown(days_remaining, today),
        )

    def _category_breakdown(self, days_remaining: int, today: date) -> Dict[str, float]:
        """Each category's monthly average pro-rated to the remaining days"""
        if days_remaining <= 0:
            return {}
        share = days_remaining / days_in_month(today.year, today.month)
        return {t.category: round(t.monthly_average * share, 2) for t in self.get_category_trends() if t.monthly_average > 0}
