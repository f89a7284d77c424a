"""Unit tests for the transaction feed client"""

import asyncio
import httpx
import pytest
from datetime import date
from unittest.mock import AsyncMock, patch
from spend_sentinel.domain.exceptions import InvalidTransactionDataError, TransactionFeedError
from spend_sentinel.infrastructure.clients.feed import TransactionFeedClient


def _response(status_code: int, payload) -> httpx.Response:
    return httpx.Response(status_code, json=payload, request=httpx.Request("GET", "http://feed.test/transactions"))


def test_get_transactions_parses_feed():
    payload = {
        "transactions": [
            {
                "transaction_id": "t1",
                "account_id": "acc_1",
                "amount": "-9.99",
                "date": "2026-09-01T08:30:00Z",
                "description": "CARD PAYMENT",
                "merchant_name": "Netflix",
            }
        ]
    }
    with patch("httpx.AsyncClient.get", new=AsyncMock(return_value=_response(200, payload))) as mock_get:
        transactions = asyncio.run(TransactionFeedClient(base_url="http://feed.test").get_transactions(limit=50))

    assert mock_get.call_args.kwargs["params"] == {"limit": 50}
    txn = transactions[0]
    assert txn.amount == -9.99
    assert txn.date == date(2026, 9, 1)
    assert txn.currency == "GBP"
    assert txn.status == "posted"
    assert txn.counterparty == "Netflix"


def test_get_accounts_parses_optional_available_balance():
    payload = {"accounts": [{"account_id": "acc_1", "balance": 120.5}]}
    with patch("httpx.AsyncClient.get", new=AsyncMock(return_value=_response(200, payload))):
        accounts = asyncio.run(TransactionFeedClient(base_url="http://feed.test").get_accounts())

    assert accounts[0].name == "acc_1"
    assert accounts[0].balance == 120.5
    assert accounts[0].available_balance is None


def test_malformed_record_raises_invalid_data():
    payload = {"transactions": [{"transaction_id": "t1", "account_id": "acc_1", "date": "2026-09-01"}]}
    with patch("httpx.AsyncClient.get", new=AsyncMock(return_value=_response(200, payload))):
        with pytest.raises(InvalidTransactionDataError):
            asyncio.run(TransactionFeedClient(base_url="http://feed.test").get_transactions())


def test_http_error_raises_feed_error():
    with patch("httpx.AsyncClient.get", new=AsyncMock(return_value=_response(502, {"error": "bad gateway"}))):
        with pytest.raises(TransactionFeedError, match="502"):
            asyncio.run(TransactionFeedClient(base_url="http://feed.test").get_transactions())


def test_timeout_raises_feed_error():
    with patch("httpx.AsyncClient.get", new=AsyncMock(side_effect=httpx.ReadTimeout("slow"))):
        with pytest.raises(TransactionFeedError, match="timeout"):
            asyncio.run(TransactionFeedClient(base_url="http://feed.test", timeout=1.0).get_transactions())


@pytest.mark.parametrize("method", ["get_transactions", "get_accounts"])
def test_non_object_payload_raises_invalid_data(method):
    with patch("httpx.AsyncClient.get", new=AsyncMock(return_value=_response(200, [{"transaction_id": "t1"}]))):
        with pytest.raises(InvalidTransactionDataError, match="list"):
            asyncio.run(getattr(TransactionFeedClient(base_url="http://feed.test"), method)())
