"""Balance alert endpoints and the cross-subsystem alert inbox"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from spend_sentinel.api.dependencies import get_engine, get_feed_client, get_request_id
from spend_sentinel.api.v1.schemas import (
    ActiveAlertsResponse,
    AlertConfigRequest,
    SuccessResponse,
    ThresholdsRequest,
    ThresholdsResponse,
)
from spend_sentinel.domain.exceptions import TransactionFeedError
from spend_sentinel.domain.models import AlertConfig, AlertStats, BalanceAlert
from spend_sentinel.infrastructure.clients.feed import TransactionFeedClient
from spend_sentinel.services.engine import FinanceEngine

router = APIRouter()


@router.post("/alerts/check", response_model=List[BalanceAlert])
async def check_accounts(
    request: Request,
    engine: FinanceEngine = Depends(get_engine),
    feed: TransactionFeedClient = Depends(get_feed_client),
):
    """Pull account balances from the feed and evaluate balance alerts"""
    request_id = get_request_id(request)
    try:
        accounts = await feed.get_accounts()
    except TransactionFeedError as e:
        logging.error(f"Transaction feed error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Transaction feed unavailable")

    return engine.balance_alerts.check_accounts(accounts)


@router.get("/alerts/active", response_model=ActiveAlertsResponse)
async def active_alerts(engine: FinanceEngine = Depends(get_engine)):
    return ActiveAlertsResponse(
        balance=engine.balance_alerts.get_active_alerts(),
        budget=engine.budgets.get_active_alerts(),
        price_changes=engine.recurring.get_price_alerts(unacknowledged_only=True),
        missed_payments=[
            *engine.recurring.get_missed_alerts(unacknowledged_only=True),
            *engine.mandates.get_missed_alerts(unacknowledged_only=True),
        ],
    )


@router.post("/alerts/{alert_id}/acknowledge", response_model=SuccessResponse)
async def acknowledge_alert(alert_id: str, engine: FinanceEngine = Depends(get_engine)):
    if not engine.acknowledge_alert(alert_id):
        raise HTTPException(status_code=404, detail="Alert not found")
    return SuccessResponse(success=True)


@router.put("/alerts/thresholds", response_model=ThresholdsResponse)
async def set_thresholds(request_body: ThresholdsRequest, engine: FinanceEngine = Depends(get_engine)):
    thresholds = engine.balance_alerts.set_thresholds(**request_body.model_dump())
    return ThresholdsResponse(thresholds={k.value: v for k, v in thresholds.items()})


@router.get("/alerts/stats", response_model=AlertStats)
async def alert_stats(engine: FinanceEngine = Depends(get_engine)):
    return engine.balance_alerts.get_stats()


@router.post("/alerts/configs", response_model=AlertConfig, status_code=201)
async def create_alert_config(request_body: AlertConfigRequest, engine: FinanceEngine = Depends(get_engine)):
    return engine.balance_alerts.create_config(
        request_body.account_id,
        request_body.type,
        threshold=request_body.threshold,
        enabled=request_body.enabled,
    )


@router.get("/alerts/configs", response_model=List[AlertConfig])
async def list_alert_configs(
    account_id: Optional[str] = Query(None),
    engine: FinanceEngine = Depends(get_engine),
):
    return engine.balance_alerts.get_configs(account_id)


@router.delete("/alerts/configs/{config_id}", response_model=SuccessResponse)
async def delete_alert_config(config_id: str, engine: FinanceEngine = Depends(get_engine)):
    if not engine.balance_alerts.delete_config(config_id):
        raise HTTPException(status_code=404, detail="Alert config not found")
    return SuccessResponse(success=True)
