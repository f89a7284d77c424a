"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date
from typing import Dict, List, Optional

from spend_sentinel.domain.models import (
    BalanceAlert,
    BalanceAlertType,
    BudgetAlert,
    BudgetPeriod,
    MissedPaymentAlert,
    PriceChangeAlert,
)


class BudgetCreateRequest(BaseModel):
    """Request body for POST /v1/budgets"""

    name: str = Field(..., min_length=1, description="Display name")
    category: str = Field(..., min_length=1, description="Category matched against transactions")
    amount: float = Field(..., gt=0, description="Budget amount per period")
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    rollover: bool = False


class BudgetUpdateRequest(BaseModel):
    """Request body for PATCH /v1/budgets/{budget_id}; omitted fields are unchanged"""

    name: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1)
    amount: Optional[float] = Field(None, gt=0)
    period: Optional[BudgetPeriod] = None
    rollover: Optional[bool] = None
    is_active: Optional[bool] = None


class UpcomingChargeSchema(BaseModel):
    amount: float
    date: date
    name: Optional[str] = None


class PredictRequest(BaseModel):
    """Request body for POST /v1/forecast/predict"""

    current_balance: float
    upcoming: Optional[List[UpcomingChargeSchema]] = Field(
        None, description="Known charges; defaults to detected recurring payments and mandates"
    )


class LearnResponse(BaseModel):
    months_added: int
    months_observed: int


class ThresholdsRequest(BaseModel):
    """Request body for PUT /v1/alerts/thresholds"""

    low_balance: Optional[float] = Field(None, ge=0)
    large_withdrawal: Optional[float] = Field(None, gt=0)
    large_deposit: Optional[float] = Field(None, gt=0)
    overdraft_buffer: Optional[float] = Field(None, ge=0)


class AlertConfigRequest(BaseModel):
    """Request body for POST /v1/alerts/configs"""

    account_id: str = Field(..., min_length=1)
    type: BalanceAlertType
    threshold: Optional[float] = None
    enabled: bool = True


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool


class MonthlyTotalResponse(BaseModel):
    monthly_total: float


class ActiveAlertsResponse(BaseModel):
    """Unacknowledged alerts grouped by subsystem"""

    balance: List[BalanceAlert]
    budget: List[BudgetAlert]
    price_changes: List[PriceChangeAlert]
    missed_payments: List[MissedPaymentAlert]


class ThresholdsResponse(BaseModel):
    thresholds: Dict[str, float]
