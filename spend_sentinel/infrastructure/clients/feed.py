"""Transaction feed HTTP client for fetching transactions and account balances"""

import httpx
from datetime import date
from typing import List
from spend_sentinel.domain.models import AccountSnapshot, BankTransaction
from spend_sentinel.domain.exceptions import InvalidTransactionDataError, TransactionFeedError
from spend_sentinel.config import settings


class TransactionFeedClient:
    """Client for the external account/transaction provider"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.feed_api_base
        self.timeout = timeout or settings.http_timeout_seconds

    async def get_transactions(self, limit: int = 1000) -> List[BankTransaction]:
        """
        Fetch the current transaction window.

        Raises:
            TransactionFeedError: On timeout, HTTP errors, or invalid response
        """
        data = await self._get("/transactions", {"limit": limit})
        try:
            return [
                BankTransaction(
                    transaction_id=txn["transaction_id"],
                    account_id=txn["account_id"],
                    amount=float(txn["amount"]),
                    currency=txn.get("currency", "GBP"),
                    date=date.fromisoformat(txn["date"][:10]),
                    description=txn.get("description") or "",
                    merchant_name=txn.get("merchant_name"),
                    category=txn.get("category"),
                    status=txn.get("status", "posted"),
                )
                for txn in data.get("transactions", [])
            ]
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidTransactionDataError(f"Invalid transaction data from feed: {e}") from e

    async def get_accounts(self) -> List[AccountSnapshot]:
        """Fetch current balances for every connected account"""
        data = await self._get("/accounts", {})
        try:
            return [
                AccountSnapshot(
                    account_id=acct["account_id"],
                    name=acct.get("name") or acct["account_id"],
                    balance=float(acct["balance"]),
                    available_balance=(
                        float(acct["available_balance"]) if acct.get("available_balance") is not None else None
                    ),
                    currency=acct.get("currency", "GBP"),
                )
                for acct in data.get("accounts", [])
            ]
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidTransactionDataError(f"Invalid account data from feed: {e}") from e

    async def _get(self, path: str, params: dict) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(f"{self.base_url}{path}", params=params)
                response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException as e:
                raise TransactionFeedError(f"Feed timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise TransactionFeedError(f"Feed error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise TransactionFeedError(f"Feed unreachable: {e}") from e
            except ValueError as e:
                raise TransactionFeedError(f"Feed returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise InvalidTransactionDataError(f"Feed returned {type(data).__name__} for {path}, expected an object")
        return data
