"""Unit tests for budget tracking, thresholds and rollover"""

import pytest
from datetime import date
from spend_sentinel.domain.exceptions import BudgetValidationError
from spend_sentinel.domain.models import Budget, BudgetAlertType, BudgetPeriod
from spend_sentinel.services.budgets import BudgetTracker, period_window
from spend_sentinel.services.observers import FinanceObserver


class RolloverRecorder(FinanceObserver):
    def __init__(self):
        self.rolled = []

    def on_rollover(self, budget):
        self.rolled.append(budget.id)


@pytest.fixture
def tracker(store) -> BudgetTracker:
    return BudgetTracker(store)


def _groceries(make_txn, *spend):
    return [make_txn(-amount, on, category="groceries") for amount, on in spend]


def test_budget_math_includes_carry_over():
    budget = Budget(
        id="bud_1",
        name="Food",
        category="groceries",
        amount=200.0,
        period=BudgetPeriod.MONTHLY,
        period_start=date(2026, 10, 1),
        period_end=date(2026, 10, 31),
        spent=150.0,
        carry_over=50.0,
    )
    budget.recalculate()

    assert budget.limit == 250.0
    assert budget.remaining == 100.0
    assert budget.percent_used == 60.0


def test_period_windows():
    today = date(2026, 10, 18)  # Sunday
    assert period_window(BudgetPeriod.WEEKLY, today) == (date(2026, 10, 12), date(2026, 10, 18))
    assert period_window(BudgetPeriod.MONTHLY, today) == (date(2026, 10, 1), date(2026, 10, 31))
    assert period_window(BudgetPeriod.YEARLY, today) == (date(2026, 1, 1), date(2026, 12, 31))


def test_create_budget(tracker):
    budget = tracker.create_budget("Food", "groceries", 200.0, today=date(2026, 10, 6))

    assert budget.period == BudgetPeriod.MONTHLY
    assert budget.period_start == date(2026, 10, 1)
    assert budget.period_end == date(2026, 10, 31)
    assert budget.remaining == 200.0
    assert tracker.get_budget(budget.id) is budget


@pytest.mark.parametrize(
    "name,category,amount",
    [("", "groceries", 100.0), ("Food", "  ", 100.0), ("Food", "groceries", 0.0), ("Food", "groceries", -5.0)],
)
def test_create_budget_validation(tracker, name, category, amount):
    with pytest.raises(BudgetValidationError):
        tracker.create_budget(name, category, amount)


def test_process_counts_matching_category_in_window(tracker, make_txn):
    budget = tracker.create_budget("Food", "groceries", 200.0, today=date(2026, 10, 6))
    txns = _groceries(make_txn, (50.0, date(2026, 10, 2)), (60.0, date(2026, 10, 4)), (70.0, date(2026, 9, 30)))
    txns.append(make_txn(-100.0, date(2026, 10, 3), category="transport"))
    txns.append(make_txn(30.0, date(2026, 10, 3), category="groceries"))

    alerts = tracker.process_transactions(txns, today=date(2026, 10, 6))

    assert budget.spent == 110.0
    assert budget.percent_used == 55.0
    assert [(a.type, a.threshold) for a in alerts] == [(BudgetAlertType.THRESHOLD, 50)]


def test_thresholds_notify_once_per_period(tracker, make_txn):
    tracker.create_budget("Food", "groceries", 200.0, today=date(2026, 10, 6))
    txns = _groceries(make_txn, (110.0, date(2026, 10, 2)))

    assert len(tracker.process_transactions(txns, today=date(2026, 10, 6))) == 1
    assert tracker.process_transactions(txns, today=date(2026, 10, 6)) == []

    txns += _groceries(make_txn, (45.0, date(2026, 10, 7)))
    alerts = tracker.process_transactions(txns, today=date(2026, 10, 7))
    assert [a.threshold for a in alerts] == [75]


def test_exceeded_budget(tracker, make_txn):
    budget = tracker.create_budget("Food", "groceries", 200.0, today=date(2026, 10, 6))
    txns = _groceries(make_txn, (210.0, date(2026, 10, 2)))

    alerts = tracker.process_transactions(txns, today=date(2026, 10, 6))

    assert [a.threshold for a in alerts if a.type == BudgetAlertType.THRESHOLD] == [50, 75, 90, 100]
    exceeded = [a for a in alerts if a.type == BudgetAlertType.EXCEEDED]
    assert len(exceeded) == 1
    assert budget.remaining == -10.0
    assert tracker.process_transactions(txns, today=date(2026, 10, 6)) == []


def test_rollover_carries_unspent_capped_at_half(store, make_txn):
    recorder = RolloverRecorder()
    tracker = BudgetTracker(store, observer=recorder)
    budget = tracker.create_budget("Fun", "entertainment", 300.0, rollover=True, today=date(2026, 9, 10))
    tracker.process_transactions([make_txn(-180.0, date(2026, 9, 12), category="entertainment")], today=date(2026, 9, 20))

    rolled = tracker.check_rollovers(today=date(2026, 10, 2))

    assert rolled == [budget]
    assert recorder.rolled == [budget.id]
    assert budget.carry_over == 120.0
    assert budget.spent == 0.0
    assert budget.limit == 420.0
    assert budget.period_start == date(2026, 10, 1)
    assert budget.period_end == date(2026, 10, 31)
    assert not any([budget.alert_50_sent, budget.alert_75_sent, budget.alert_90_sent, budget.alert_100_sent])


@pytest.mark.parametrize(
    "spent,rollover,expected_carry",
    [(0.0, True, 150.0), (350.0, True, 0.0), (100.0, False, 0.0)],
)
def test_rollover_carry_over_bounds(tracker, make_txn, spent, rollover, expected_carry):
    budget = tracker.create_budget("Fun", "entertainment", 300.0, rollover=rollover, today=date(2026, 9, 10))
    if spent:
        tracker.process_transactions(
            [make_txn(-spent, date(2026, 9, 12), category="entertainment")], today=date(2026, 9, 20)
        )

    tracker.check_rollovers(today=date(2026, 10, 2))

    assert budget.carry_over == expected_carry


def test_process_rolls_expired_budgets_first(tracker, make_txn):
    budget = tracker.create_budget("Food", "groceries", 200.0, today=date(2026, 9, 10))
    txns = _groceries(make_txn, (150.0, date(2026, 9, 20)), (40.0, date(2026, 10, 2)))

    tracker.process_transactions(txns, today=date(2026, 10, 3))

    assert budget.period_start == date(2026, 10, 1)
    assert budget.spent == 40.0


def test_update_budget(tracker, make_txn):
    budget = tracker.create_budget("Food", "groceries", 200.0, today=date(2026, 10, 6))
    tracker.process_transactions(_groceries(make_txn, (100.0, date(2026, 10, 2))), today=date(2026, 10, 6))

    updated = tracker.update_budget(budget.id, {"amount": 400.0}, today=date(2026, 10, 6))
    assert updated.percent_used == 25.0

    updated = tracker.update_budget(budget.id, {"period": "weekly"}, today=date(2026, 10, 6))
    assert updated.period == BudgetPeriod.WEEKLY
    assert (updated.period_start, updated.period_end) == (date(2026, 10, 5), date(2026, 10, 11))

    assert tracker.update_budget("bud_missing", {"amount": 10.0}) is None
    with pytest.raises(BudgetValidationError):
        tracker.update_budget(budget.id, {"spent": 0.0})
    with pytest.raises(BudgetValidationError):
        tracker.update_budget(budget.id, {"amount": -1.0})


def test_delete_budget(tracker):
    budget = tracker.create_budget("Food", "groceries", 200.0)
    assert tracker.delete_budget(budget.id) is True
    assert tracker.delete_budget(budget.id) is False
    assert tracker.get_budgets() == []


def test_summary_and_queries(tracker, make_txn):
    food = tracker.create_budget("Food", "groceries", 200.0, today=date(2026, 10, 6))
    tracker.create_budget("Travel", "transport", 100.0, today=date(2026, 10, 6))
    tracker.create_budget("Gifts", "gifts", 500.0, period=BudgetPeriod.YEARLY, today=date(2026, 10, 6))
    txns = _groceries(make_txn, (190.0, date(2026, 10, 2)))
    txns.append(make_txn(-150.0, date(2026, 10, 3), category="transport"))
    tracker.process_transactions(txns, today=date(2026, 10, 6))

    summary = tracker.get_summary()
    assert summary.budget_count == 3
    assert summary.total_budgeted == 800.0
    assert summary.total_spent == 340.0
    assert summary.total_remaining == 460.0
    assert summary.percent_used == 42.5
    assert summary.over_budget_count == 1
    assert summary.near_limit_count == 1

    assert tracker.get_budgets(category="groceries") == [food]
    assert len(tracker.get_budgets(period=BudgetPeriod.YEARLY)) == 1

    alert = tracker.get_active_alerts()[0]
    assert tracker.acknowledge_alert(alert.id) is True
    assert alert.id not in {a.id for a in tracker.get_active_alerts()}


def test_custom_category_function(tracker, make_txn):
    budget = tracker.create_budget("Coffee", "coffee", 50.0, today=date(2026, 10, 6))
    txns = [make_txn(-4.0, date(2026, 10, 2), merchant="Pret A Manger")]

    tracker.process_transactions(
        txns, category_fn=lambda t: "coffee" if "pret" in (t.merchant_name or "").lower() else "other",
        today=date(2026, 10, 6),
    )

    assert budget.spent == 4.0


def test_state_survives_restart(store, tracker, make_txn):
    budget = tracker.create_budget("Food", "groceries", 200.0, rollover=True, today=date(2026, 10, 6))
    tracker.process_transactions(_groceries(make_txn, (110.0, date(2026, 10, 2))), today=date(2026, 10, 6))

    restored = BudgetTracker(store)

    copy = restored.get_budget(budget.id)
    assert copy.spent == 110.0
    assert copy.alert_50_sent is True
    assert copy.rollover is True
    assert len(restored.get_active_alerts()) == 1
