"""Direct debit and standing order endpoints"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from spend_sentinel.api.dependencies import get_engine, get_feed_client, get_request_id
from spend_sentinel.api.v1.schemas import CancelRequest, SuccessResponse
from spend_sentinel.domain.exceptions import TransactionFeedError
from spend_sentinel.domain.models import (
    DirectDebit,
    MandateDetectionResult,
    MissedPaymentAlert,
    MonthlyCommitment,
    StandingOrder,
    UpcomingPayment,
)
from spend_sentinel.infrastructure.clients.feed import TransactionFeedClient
from spend_sentinel.services.engine import FinanceEngine

router = APIRouter()


@router.post("/mandates/detect", response_model=MandateDetectionResult)
async def detect_mandates(
    request: Request,
    engine: FinanceEngine = Depends(get_engine),
    feed: TransactionFeedClient = Depends(get_feed_client),
):
    """Pull the transaction window from the feed and detect direct debits / standing orders"""
    request_id = get_request_id(request)
    try:
        transactions = await feed.get_transactions(limit=1000)
    except TransactionFeedError as e:
        logging.error(f"Transaction feed error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Transaction feed unavailable")

    return engine.mandates.detect(transactions)


@router.get("/mandates/direct-debits", response_model=List[DirectDebit])
async def list_direct_debits(
    status: Optional[str] = Query(None),
    account_id: Optional[str] = Query(None),
    engine: FinanceEngine = Depends(get_engine),
):
    return engine.mandates.get_direct_debits(status=status, account_id=account_id)


@router.get("/mandates/standing-orders", response_model=List[StandingOrder])
async def list_standing_orders(
    status: Optional[str] = Query(None),
    account_id: Optional[str] = Query(None),
    engine: FinanceEngine = Depends(get_engine),
):
    return engine.mandates.get_standing_orders(status=status, account_id=account_id)


@router.get("/mandates/upcoming", response_model=List[UpcomingPayment])
async def upcoming_mandate_payments(
    days: int = Query(30, ge=0, le=366),
    engine: FinanceEngine = Depends(get_engine),
):
    return engine.mandates.get_upcoming(days)


@router.get("/mandates/monthly-committed", response_model=MonthlyCommitment)
async def monthly_committed(engine: FinanceEngine = Depends(get_engine)):
    return engine.mandates.get_monthly_committed()


@router.post("/mandates/check-missed", response_model=List[MissedPaymentAlert])
async def check_missed_collections(engine: FinanceEngine = Depends(get_engine)):
    return engine.mandates.check_missed_collections()


@router.post("/mandates/direct-debits/{mandate_id}/cancel", response_model=SuccessResponse)
async def cancel_direct_debit(
    mandate_id: str,
    body: Optional[CancelRequest] = None,
    engine: FinanceEngine = Depends(get_engine),
):
    reason = body.reason if body else None
    if not engine.mandates.cancel_direct_debit(mandate_id, reason):
        raise HTTPException(status_code=404, detail="Active direct debit not found")
    return SuccessResponse(success=True)
