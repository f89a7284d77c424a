"""Recurring payment endpoints - analyze the feed and query detected payments"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from spend_sentinel.api.dependencies import get_engine, get_feed_client, get_request_id
from spend_sentinel.api.v1.schemas import MonthlyTotalResponse, SuccessResponse
from spend_sentinel.domain.exceptions import TransactionFeedError
from spend_sentinel.domain.models import (
    AnalysisResult,
    Cadence,
    MissedPaymentAlert,
    PriceChangeAlert,
    RecurringPayment,
    UpcomingPayment,
)
from spend_sentinel.infrastructure.clients.feed import TransactionFeedClient
from spend_sentinel.services.engine import FinanceEngine

router = APIRouter()


@router.post("/recurring/analyze", response_model=AnalysisResult)
async def analyze_recurring(
    request: Request,
    engine: FinanceEngine = Depends(get_engine),
    feed: TransactionFeedClient = Depends(get_feed_client),
):
    """
    Pull the transaction window from the feed and run recurring detection.

    Returns newly detected payments, price changes and missed payments.
    """
    request_id = get_request_id(request)
    try:
        transactions = await feed.get_transactions(limit=500)
    except TransactionFeedError as e:
        logging.error(f"Transaction feed error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Transaction feed unavailable")

    return engine.recurring.analyze(transactions, engine.category_fn)


@router.get("/recurring", response_model=List[RecurringPayment])
async def list_recurring(
    active_only: bool = Query(False),
    subscriptions_only: bool = Query(False),
    frequency: Optional[Cadence] = Query(None),
    engine: FinanceEngine = Depends(get_engine),
):
    return engine.recurring.get_recurring_payments(
        active_only=active_only,
        subscriptions_only=subscriptions_only,
        frequency=frequency,
    )


@router.get("/recurring/monthly-total", response_model=MonthlyTotalResponse)
async def monthly_recurring_total(engine: FinanceEngine = Depends(get_engine)):
    return MonthlyTotalResponse(monthly_total=engine.recurring.get_monthly_total())


@router.get("/recurring/upcoming", response_model=List[UpcomingPayment])
async def upcoming_recurring(
    days: int = Query(30, ge=0, le=366),
    engine: FinanceEngine = Depends(get_engine),
):
    return engine.recurring.get_upcoming(days)


@router.get("/recurring/price-alerts", response_model=List[PriceChangeAlert])
async def price_change_alerts(
    unacknowledged_only: bool = Query(False),
    engine: FinanceEngine = Depends(get_engine),
):
    return engine.recurring.get_price_alerts(unacknowledged_only)


@router.post("/recurring/check-missed", response_model=List[MissedPaymentAlert])
async def check_missed_payments(engine: FinanceEngine = Depends(get_engine)):
    return engine.recurring.check_missed_payments()


@router.post("/recurring/{payment_id}/deactivate", response_model=SuccessResponse)
async def deactivate_recurring(payment_id: str, engine: FinanceEngine = Depends(get_engine)):
    if engine.recurring.set_active(payment_id, False) is None:
        raise HTTPException(status_code=404, detail="Recurring payment not found")
    return SuccessResponse(success=True)
