"""Spending forecast endpoints"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from spend_sentinel.api.dependencies import get_engine, get_feed_client, get_request_id
from spend_sentinel.api.v1.schemas import LearnResponse, PredictRequest
from spend_sentinel.domain.exceptions import TransactionFeedError
from spend_sentinel.domain.models import (
    CategoryTrend,
    DayOfWeekPattern,
    SpendingPrediction,
    SpendingTrend,
    UpcomingCharge,
)
from spend_sentinel.infrastructure.clients.feed import TransactionFeedClient
from spend_sentinel.services.engine import FinanceEngine

router = APIRouter()


@router.post("/forecast/learn", response_model=LearnResponse)
async def learn_spending_patterns(
    request: Request,
    engine: FinanceEngine = Depends(get_engine),
    feed: TransactionFeedClient = Depends(get_feed_client),
):
    """Summarize any months in the feed window that have not been learned yet"""
    request_id = get_request_id(request)
    try:
        transactions = await feed.get_transactions(limit=1000)
    except TransactionFeedError as e:
        logging.error(f"Transaction feed error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Transaction feed unavailable")

    created = engine.forecaster.learn_from_transactions(transactions, engine.category_fn)
    return LearnResponse(months_added=len(created), months_observed=len(engine.forecaster.summaries))


@router.post("/forecast/predict", response_model=SpendingPrediction)
async def predict_spending(request_body: PredictRequest, engine: FinanceEngine = Depends(get_engine)):
    upcoming = None
    if request_body.upcoming is not None:
        upcoming = [UpcomingCharge(amount=c.amount, date=c.date, name=c.name) for c in request_body.upcoming]
    return engine.predict(request_body.current_balance, upcoming)


@router.get("/forecast/trend", response_model=SpendingTrend)
async def spending_trend(engine: FinanceEngine = Depends(get_engine)):
    return engine.forecaster.get_spending_trend()


@router.get("/forecast/categories", response_model=List[CategoryTrend])
async def category_trends(engine: FinanceEngine = Depends(get_engine)):
    return engine.forecaster.get_category_trends()


@router.get("/forecast/day-patterns", response_model=List[DayOfWeekPattern])
async def day_of_week_patterns(engine: FinanceEngine = Depends(get_engine)):
    return engine.forecaster.get_day_of_week_patterns()
