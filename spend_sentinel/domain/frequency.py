"""Payment cadence inference from irregular date series"""

import math
from datetime import date, timedelta
from typing import List, Optional, Sequence

from spend_sentinel.domain.models import Cadence
from spend_sentinel.utils.date_utils import add_months

# Maximum coefficient of variation (stddev / mean) of day gaps
MAX_INTERVAL_VARIATION = 0.2

# Inclusive mean-gap ranges in days. Coarse on purpose: banks post with jitter.
CADENCE_RANGES = (
    (Cadence.WEEKLY, 5, 9),
    (Cadence.FORTNIGHTLY, 12, 16),
    (Cadence.MONTHLY, 25, 35),
    (Cadence.QUARTERLY, 85, 100),
    (Cadence.ANNUAL, 350, 380),
)

# Factor converting one payment at a cadence to a monthly amount
MONTHLY_MULTIPLIERS = {
    Cadence.WEEKLY: 4.33,
    Cadence.FORTNIGHTLY: 2.17,
    Cadence.MONTHLY: 1.0,
    Cadence.QUARTERLY: 1 / 3,
    Cadence.ANNUAL: 1 / 12,
}

CADENCE_DAYS = {
    Cadence.WEEKLY: 7,
    Cadence.FORTNIGHTLY: 14,
    Cadence.MONTHLY: 30,
    Cadence.QUARTERLY: 91,
    Cadence.ANNUAL: 365,
}


def day_gaps(sorted_dates: Sequence[date]) -> List[int]:
    return [(b - a).days for a, b in zip(sorted_dates, sorted_dates[1:])]


def classify(sorted_dates: Sequence[date]) -> Optional[Cadence]:
    """
    Infer a cadence from dates sorted ascending.

    Returns None when:
    - fewer than 2 dates are given
    - with 3+ dates, the gap stddev/mean exceeds 0.2 (too irregular)
    - the mean gap falls outside every cadence range
    """
    gaps = day_gaps(sorted_dates)
    if not gaps:
        return None

    mean = sum(gaps) / len(gaps)
    if mean <= 0:
        return None

    if len(sorted_dates) > 2:
        variance = sum((g - mean) ** 2 for g in gaps) / len(gaps)
        if math.sqrt(variance) / mean > MAX_INTERVAL_VARIATION:
            return None

    for cadence, low, high in CADENCE_RANGES:
        if low <= mean <= high:
            return cadence
    return None


def next_date(last: date, cadence: Cadence, anchor_day: Optional[int] = None) -> date:
    """
    Calendar arithmetic for the next expected payment after ``last``.

    Month-based cadences keep ``anchor_day`` (default: last.day), clamped to
    the target month's length.
    """
    if cadence == Cadence.WEEKLY:
        return last + timedelta(days=7)
    if cadence == Cadence.FORTNIGHTLY:
        return last + timedelta(days=14)
    if cadence == Cadence.MONTHLY:
        return add_months(last, 1, anchor_day)
    if cadence == Cadence.QUARTERLY:
        return add_months(last, 3, anchor_day)
    return add_months(last, 12, anchor_day)


def to_monthly(amount: float, cadence: Cadence) -> float:
    return amount * MONTHLY_MULTIPLIERS[cadence]
