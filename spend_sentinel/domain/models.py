"""Domain models - pure Python dataclasses representing finance records"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Set


def new_id(prefix: str) -> str:
    """Generate a record id such as ``rp_3f2c...``"""
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


class Cadence(str, Enum):
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class BudgetPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class WarningLevel(str, Enum):
    OK = "ok"
    CAUTION = "caution"
    WARNING = "warning"
    CRITICAL = "critical"


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class BalanceAlertType(str, Enum):
    LOW_BALANCE = "low_balance"
    OVERDRAFT_WARNING = "overdraft_warning"
    LARGE_WITHDRAWAL = "large_withdrawal"
    BALANCE_INCREASE = "balance_increase"


class BudgetAlertType(str, Enum):
    THRESHOLD = "threshold"
    EXCEEDED = "exceeded"


class MandateKind(str, Enum):
    DIRECT_DEBIT = "direct_debit"
    STANDING_ORDER = "standing_order"


class MandateStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class CollectionStatus(str, Enum):
    COLLECTED = "collected"
    REJECTED = "rejected"
    RETURNED = "returned"


class PaymentSource(str, Enum):
    """Which registry raised a missed-payment alert"""

    RECURRING = "recurring"
    DIRECT_DEBIT = "direct_debit"
    STANDING_ORDER = "standing_order"


# ---------------------------------------------------------------------------
# Inputs supplied by external collaborators
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BankTransaction:
    """Posted bank transaction; amount is signed (negative = outgoing)"""

    transaction_id: str
    account_id: str
    amount: float
    currency: str
    date: date
    description: str
    merchant_name: Optional[str] = None
    category: Optional[str] = None
    status: str = "posted"

    @property
    def is_outgoing(self) -> bool:
        return self.amount < 0

    @property
    def counterparty(self) -> str:
        return self.merchant_name or self.description


@dataclass(frozen=True)
class AccountSnapshot:
    """Point-in-time balance of one account"""

    account_id: str
    name: str
    balance: float
    available_balance: Optional[float] = None
    currency: str = "GBP"


@dataclass(frozen=True)
class UpcomingCharge:
    """Known outgoing payment expected before the end of the period"""

    amount: float
    date: date
    name: Optional[str] = None


# ---------------------------------------------------------------------------
# Recurring payments
# ---------------------------------------------------------------------------


@dataclass
class PricePoint:
    amount: float
    date: date


@dataclass
class RecurringPayment:
    """One detected recurring outgoing payment, keyed by normalized merchant"""

    id: str
    merchant: str
    merchant_pattern: str
    frequency: Cadence
    amount: float
    currency: str
    last_date: date
    next_expected_date: date
    day_of_month: Optional[int] = None
    day_of_week: Optional[int] = None  # 0 = Monday
    category: Optional[str] = None
    is_subscription: bool = False
    is_active: bool = True
    price_history: List[PricePoint] = field(default_factory=list)
    transaction_ids: Set[str] = field(default_factory=set)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class PriceChangeAlert:
    id: str
    recurring_payment_id: str
    merchant: str
    previous_amount: float
    new_amount: float
    change_percent: float
    detected_at: datetime
    acknowledged: bool = False


@dataclass
class MissedPaymentAlert:
    id: str
    payment_id: str
    source: PaymentSource
    name: str
    expected_amount: float
    expected_date: date
    days_overdue: int
    created_at: datetime
    acknowledged: bool = False


@dataclass
class AnalysisResult:
    detected: List[RecurringPayment] = field(default_factory=list)
    price_changes: List[PriceChangeAlert] = field(default_factory=list)
    missed: List[MissedPaymentAlert] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Direct debits and standing orders
# ---------------------------------------------------------------------------


@dataclass
class Collection:
    """One collection (direct debit) or payment (standing order) of a mandate"""

    transaction_id: str
    date: date
    amount: float
    status: CollectionStatus = CollectionStatus.COLLECTED


@dataclass
class Mandate:
    id: str
    account_id: str
    name: str
    pattern: str
    expected_amount: float
    currency: str
    frequency: Cadence
    last_date: date
    next_date: date
    reference: Optional[str] = None
    status: MandateStatus = MandateStatus.ACTIVE
    history: List[Collection] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class DirectDebit(Mandate):
    service_user_number: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None


@dataclass
class StandingOrder(Mandate):
    sort_code: Optional[str] = None
    account_number: Optional[str] = None


@dataclass
class MandateDetectionResult:
    direct_debits: List[DirectDebit] = field(default_factory=list)
    standing_orders: List[StandingOrder] = field(default_factory=list)


@dataclass
class UpcomingPayment:
    payment_id: str
    kind: str
    name: str
    amount: float
    date: date


@dataclass
class MonthlyCommitment:
    direct_debits: float
    standing_orders: float
    total: float
    count: int


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------


@dataclass
class Budget:
    """Spend limit for one category over a rolling period"""

    id: str
    name: str
    category: str
    amount: float
    period: BudgetPeriod
    period_start: date
    period_end: date
    spent: float = 0.0
    remaining: float = 0.0
    percent_used: float = 0.0
    carry_over: float = 0.0
    rollover: bool = False
    is_active: bool = True
    alert_50_sent: bool = False
    alert_75_sent: bool = False
    alert_90_sent: bool = False
    alert_100_sent: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def limit(self) -> float:
        return self.amount + self.carry_over

    def recalculate(self) -> None:
        """Derive remaining and percent_used from the stored spent value"""
        self.remaining = round(self.limit - self.spent, 2)
        self.percent_used = round(self.spent / self.limit * 100, 2) if self.limit > 0 else 0.0


@dataclass
class BudgetAlert:
    id: str
    budget_id: str
    budget_name: str
    category: str
    type: BudgetAlertType
    threshold: int
    percent_used: float
    spent: float
    limit: float
    message: str
    created_at: datetime
    acknowledged: bool = False


@dataclass
class BudgetSummary:
    budget_count: int
    total_budgeted: float
    total_spent: float
    total_remaining: float
    percent_used: float
    over_budget_count: int
    near_limit_count: int


# ---------------------------------------------------------------------------
# Forecasting
# ---------------------------------------------------------------------------


@dataclass
class MonthlySummary:
    """Closed ledger of one calendar month, keyed by ``YYYY-MM``"""

    month: str
    total_income: float
    total_expenses: float
    transaction_count: int
    by_category: Dict[str, float] = field(default_factory=dict)
    by_weekday: Dict[int, float] = field(default_factory=dict)


@dataclass
class DayOfWeekPattern:
    weekday: int
    average_spend: float
    sample_count: int
    confidence: float


@dataclass
class CategoryTrend:
    category: str
    monthly_average: float
    recent_average: float
    prior_average: float
    change_percent: float
    trend: Trend


@dataclass
class SpendingTrend:
    trend: Trend
    change_percent: float
    monthly_average: float
    months_observed: int


@dataclass
class SpendingPrediction:
    current_balance: float
    predicted_spending: float
    predicted_end_balance: float
    recurring_total: float
    days_remaining: int
    daily_budget: float
    confidence: float
    warning_level: WarningLevel
    period_end: date
    category_breakdown: Dict[str, float] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Balance alerts
# ---------------------------------------------------------------------------


@dataclass
class AlertConfig:
    """Per-account override of a global balance-alert threshold"""

    id: str
    account_id: str
    type: BalanceAlertType
    threshold: float
    enabled: bool = True
    created_at: Optional[datetime] = None


@dataclass
class BalanceAlert:
    id: str
    account_id: str
    account_name: str
    type: BalanceAlertType
    severity: AlertSeverity
    message: str
    balance: float
    threshold: float
    created_at: datetime
    acknowledged: bool = False


@dataclass
class AlertStats:
    total: int
    active: int
    last_24h: int
    by_type: Dict[str, int] = field(default_factory=dict)
