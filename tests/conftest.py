"""Pytest fixtures for testing"""

import itertools
import os
from datetime import date
from typing import Callable, List, Optional

# Keep the module-level app off the filesystem
os.environ.setdefault("STORAGE_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient

from spend_sentinel.api.dependencies import get_feed_client
from spend_sentinel.api.main import create_app
from spend_sentinel.domain.exceptions import TransactionFeedError
from spend_sentinel.domain.models import AccountSnapshot, BankTransaction
from spend_sentinel.infrastructure.storage import MemoryStore
from spend_sentinel.services.engine import FinanceEngine, build_engine


class StubFeed:
    """In-process stand-in for the transaction feed client"""

    def __init__(self):
        self.transactions: List[BankTransaction] = []
        self.accounts: List[AccountSnapshot] = []
        self.error: Optional[TransactionFeedError] = None

    async def get_transactions(self, limit: int = 1000) -> List[BankTransaction]:
        if self.error:
            raise self.error
        return self.transactions[:limit]

    async def get_accounts(self) -> List[AccountSnapshot]:
        if self.error:
            raise self.error
        return self.accounts


@pytest.fixture
def make_txn() -> Callable[..., BankTransaction]:
    """Factory for posted transactions with unique ids"""
    ids = itertools.count(1)

    def factory(
        amount: float,
        on: date,
        description: str = "Card payment",
        merchant: Optional[str] = None,
        category: Optional[str] = None,
        account_id: str = "acc_1",
        status: str = "posted",
        transaction_id: Optional[str] = None,
    ) -> BankTransaction:
        return BankTransaction(
            transaction_id=transaction_id or f"txn_{next(ids)}",
            account_id=account_id,
            amount=amount,
            currency="GBP",
            date=on,
            description=description,
            merchant_name=merchant,
            category=category,
            status=status,
        )

    return factory


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def engine(store: MemoryStore) -> FinanceEngine:
    """Engine wired to an in-memory store"""
    return build_engine(store=store)


@pytest.fixture
def feed() -> StubFeed:
    return StubFeed()


@pytest.fixture
def client(engine: FinanceEngine, feed: StubFeed) -> TestClient:
    """Create FastAPI test client with an in-memory engine and stub feed"""
    app = create_app(engine)
    app.dependency_overrides[get_feed_client] = lambda: feed
    return TestClient(app)
