"""Budget endpoints - CRUD, spend processing, summary and alerts"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from spend_sentinel.api.dependencies import get_engine, get_feed_client, get_request_id
from spend_sentinel.api.v1.schemas import BudgetCreateRequest, BudgetUpdateRequest, SuccessResponse
from spend_sentinel.domain.exceptions import BudgetValidationError, TransactionFeedError
from spend_sentinel.domain.models import Budget, BudgetAlert, BudgetPeriod, BudgetSummary
from spend_sentinel.infrastructure.clients.feed import TransactionFeedClient
from spend_sentinel.services.engine import FinanceEngine

router = APIRouter()


@router.post("/budgets", response_model=Budget, status_code=201)
async def create_budget(request_body: BudgetCreateRequest, engine: FinanceEngine = Depends(get_engine)):
    try:
        return engine.budgets.create_budget(
            name=request_body.name,
            category=request_body.category,
            amount=request_body.amount,
            period=request_body.period,
            rollover=request_body.rollover,
        )
    except BudgetValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/budgets", response_model=List[Budget])
async def list_budgets(
    active_only: bool = Query(False),
    category: Optional[str] = Query(None),
    period: Optional[BudgetPeriod] = Query(None),
    engine: FinanceEngine = Depends(get_engine),
):
    return engine.budgets.get_budgets(active_only=active_only, category=category, period=period)


@router.get("/budgets/summary", response_model=BudgetSummary)
async def budget_summary(engine: FinanceEngine = Depends(get_engine)):
    return engine.budgets.get_summary()


@router.get("/budgets/alerts", response_model=List[BudgetAlert])
async def budget_alerts(engine: FinanceEngine = Depends(get_engine)):
    return engine.budgets.get_active_alerts()


@router.post("/budgets/process", response_model=List[BudgetAlert])
async def process_budget_transactions(
    request: Request,
    engine: FinanceEngine = Depends(get_engine),
    feed: TransactionFeedClient = Depends(get_feed_client),
):
    """
    Recompute spend for every budget from the feed's transaction window.

    Returns the alerts raised by this pass.
    """
    request_id = get_request_id(request)
    try:
        transactions = await feed.get_transactions(limit=500)
    except TransactionFeedError as e:
        logging.error(f"Transaction feed error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Transaction feed unavailable")

    return engine.budgets.process_transactions(transactions, engine.category_fn)


@router.get("/budgets/{budget_id}", response_model=Budget)
async def get_budget(budget_id: str, engine: FinanceEngine = Depends(get_engine)):
    budget = engine.budgets.get_budget(budget_id)
    if budget is None:
        raise HTTPException(status_code=404, detail="Budget not found")
    return budget


@router.patch("/budgets/{budget_id}", response_model=Budget)
async def update_budget(
    budget_id: str,
    request_body: BudgetUpdateRequest,
    engine: FinanceEngine = Depends(get_engine),
):
    try:
        budget = engine.budgets.update_budget(budget_id, request_body.model_dump(exclude_none=True))
    except BudgetValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if budget is None:
        raise HTTPException(status_code=404, detail="Budget not found")
    return budget


@router.delete("/budgets/{budget_id}", response_model=SuccessResponse)
async def delete_budget(budget_id: str, engine: FinanceEngine = Depends(get_engine)):
    if not engine.budgets.delete_budget(budget_id):
        raise HTTPException(status_code=404, detail="Budget not found")
    return SuccessResponse(success=True)
