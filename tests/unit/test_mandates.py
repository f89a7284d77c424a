"""Unit tests for direct debit and standing order detection"""

import pytest
from datetime import date
from spend_sentinel.domain.models import (
    Cadence,
    CollectionStatus,
    DirectDebit,
    MandateKind,
    MandateStatus,
    PaymentSource,
    StandingOrder,
)
from spend_sentinel.services.mandates import (
    MandateDetector,
    collection_status,
    expected_amount,
    pattern_classifier,
    strip_markers,
)


@pytest.fixture
def detector(store) -> MandateDetector:
    return MandateDetector(store)


@pytest.fixture
def british_gas(make_txn):
    """Variable monthly direct debit collections"""
    description = "BRITISH GAS DD REF: BG12345 SUN 654321"
    return [
        make_txn(-45.00, date(2026, 7, 1), description=description),
        make_txn(-52.30, date(2026, 8, 1), description=description),
        make_txn(-48.10, date(2026, 9, 1), description=description),
    ]


@pytest.fixture
def rent(make_txn):
    """Fixed monthly standing order"""
    description = "STO RENT J SMITH 12-34-56 12345678"
    return [
        make_txn(-750.00, date(2026, 7, 28), description=description),
        make_txn(-750.00, date(2026, 8, 28), description=description),
        make_txn(-750.00, date(2026, 9, 28), description=description),
    ]


def test_pattern_classifier(make_txn):
    classify = pattern_classifier()
    assert classify(make_txn(-10.0, date(2026, 9, 1), description="Direct Debit EE LIMITED")) == MandateKind.DIRECT_DEBIT
    assert classify(make_txn(-10.0, date(2026, 9, 1), description="COUNCIL TAX DDR")) == MandateKind.DIRECT_DEBIT
    assert classify(make_txn(-10.0, date(2026, 9, 1), description="Standing Order to Savings")) == (
        MandateKind.STANDING_ORDER
    )
    assert classify(make_txn(-10.0, date(2026, 9, 1), description="S/O POCKET MONEY")) == MandateKind.STANDING_ORDER
    assert classify(make_txn(-10.0, date(2026, 9, 1), description="TESCO STORES 2041")) is None


def test_strip_markers_leaves_payee():
    assert strip_markers("BRITISH GAS DD REF: BG12345 SUN 654321") == "BRITISH GAS"
    assert strip_markers("STO RENT J SMITH 12-34-56 12345678") == "RENT J SMITH"


def test_expected_amount():
    """Fixed collections use the latest amount, variable ones the average"""
    assert expected_amount([20.0, 20.0, 20.0]) == 20.0
    assert expected_amount([45.0, 52.3, 48.1]) == pytest.approx(48.47)
    assert expected_amount([]) == 0.0


def test_collection_status(make_txn):
    assert collection_status(make_txn(-5.0, date(2026, 9, 1), status="returned")) == CollectionStatus.RETURNED
    assert collection_status(make_txn(-5.0, date(2026, 9, 1), status="rejected")) == CollectionStatus.REJECTED
    assert collection_status(make_txn(-5.0, date(2026, 9, 1))) == CollectionStatus.COLLECTED


def test_detects_direct_debit_with_details(detector, british_gas):
    result = detector.detect(british_gas, today=date(2026, 9, 5))

    assert result.standing_orders == []
    assert len(result.direct_debits) == 1
    dd = result.direct_debits[0]
    assert isinstance(dd, DirectDebit)
    assert dd.name == "BRITISH GAS"
    assert dd.pattern == "britishgas"
    assert dd.frequency == Cadence.MONTHLY
    assert dd.expected_amount == pytest.approx(48.47)
    assert dd.reference == "BG12345"
    assert dd.service_user_number == "654321"
    assert dd.last_date == date(2026, 9, 1)
    assert dd.next_date == date(2026, 10, 1)
    assert len(dd.history) == 3


def test_detects_standing_order_with_payee_account(detector, rent):
    so = detector.detect(rent, today=date(2026, 10, 1)).standing_orders[0]

    assert isinstance(so, StandingOrder)
    assert so.pattern == "rentjsmith"
    assert so.expected_amount == 750.0
    assert so.sort_code == "12-34-56"
    assert so.account_number == "12345678"
    assert so.next_date == date(2026, 10, 28)


def test_single_collection_defaults_to_monthly(detector, make_txn):
    txn = make_txn(-20.0, date(2026, 9, 15), description="STANDING ORDER CHARITY")
    so = detector.detect([txn], today=date(2026, 9, 16)).standing_orders[0]

    assert so.frequency == Cadence.MONTHLY
    assert so.next_date == date(2026, 10, 15)


def test_refunds_are_ignored(detector, make_txn):
    refund = make_txn(15.0, date(2026, 9, 2), description="BRITISH GAS DD REFUND")
    result = detector.detect([refund], today=date(2026, 9, 3))
    assert result.direct_debits == []


def test_redetection_updates_existing(detector, british_gas, make_txn):
    detector.detect(british_gas, today=date(2026, 9, 5))
    again = detector.detect(british_gas, today=date(2026, 9, 6))

    assert len(detector.direct_debits) == 1
    assert len(again.direct_debits[0].history) == 3

    october = make_txn(-47.00, date(2026, 10, 1), description="BRITISH GAS DD REF: BG12345")
    dd = detector.detect(british_gas + [october], today=date(2026, 10, 2)).direct_debits[0]
    assert len(dd.history) == 4
    assert dd.last_date == date(2026, 10, 1)
    assert dd.next_date == date(2026, 11, 1)


def test_returned_collection_excluded_from_expectations(detector, british_gas, make_txn):
    bounced = make_txn(-60.0, date(2026, 10, 1), description="BRITISH GAS DD", status="returned")
    dd = detector.detect(british_gas + [bounced], today=date(2026, 10, 2)).direct_debits[0]

    assert dd.history[-1].status == CollectionStatus.RETURNED
    assert dd.last_date == date(2026, 9, 1)
    assert dd.expected_amount == pytest.approx(48.47)


def test_missed_collection(detector, british_gas):
    detector.detect(british_gas, today=date(2026, 9, 5))

    alerts = detector.check_missed_collections(today=date(2026, 10, 11))

    assert len(alerts) == 1
    assert alerts[0].source == PaymentSource.DIRECT_DEBIT
    assert alerts[0].days_overdue == 7
    assert detector.check_missed_collections(today=date(2026, 10, 12)) == []


def test_cancel_direct_debit(detector, british_gas):
    dd = detector.detect(british_gas, today=date(2026, 9, 5)).direct_debits[0]

    assert detector.cancel_direct_debit(dd.id, "Switched supplier") is True
    assert dd.status == MandateStatus.CANCELLED
    assert dd.cancellation_reason == "Switched supplier"
    assert dd.cancelled_at is not None
    assert detector.cancel_direct_debit(dd.id) is False
    assert detector.cancel_direct_debit("dd_missing") is False

    assert detector.get_upcoming(days=60, today=date(2026, 9, 5)) == []
    assert detector.check_missed_collections(today=date(2026, 10, 11)) == []
    assert detector.get_direct_debits(status="cancelled") == [dd]


def test_monthly_committed_and_upcoming(detector, british_gas, rent):
    detector.detect(british_gas + rent, today=date(2026, 9, 29))

    committed = detector.get_monthly_committed()
    assert committed.direct_debits == pytest.approx(48.47)
    assert committed.standing_orders == pytest.approx(750.0)
    assert committed.total == pytest.approx(798.47)
    assert committed.count == 2

    upcoming = detector.get_upcoming(days=30, today=date(2026, 9, 29))
    assert [(u.kind, u.date) for u in upcoming] == [
        ("direct_debit", date(2026, 10, 1)),
        ("standing_order", date(2026, 10, 28)),
    ]


def test_custom_classifier(store, make_txn):
    def gym_is_direct_debit(txn):
        return MandateKind.DIRECT_DEBIT if "gym" in txn.description.lower() else None

    detector = MandateDetector(store, classifier=gym_is_direct_debit)
    txns = [make_txn(-24.99, date(2026, m, 3), description="PUREGYM MEMBERSHIP") for m in (7, 8, 9)]

    dd = detector.detect(txns, today=date(2026, 9, 4)).direct_debits[0]
    assert dd.pattern == "puregymmembership"


def test_state_survives_restart(store, detector, british_gas, rent):
    detector.detect(british_gas + rent, today=date(2026, 9, 29))

    restored = MandateDetector(store)

    assert len(restored.get_direct_debits()) == 1
    assert restored.get_standing_orders()[0].sort_code == "12-34-56"
    assert restored.get_direct_debits()[0].history[0].status == CollectionStatus.COLLECTED
