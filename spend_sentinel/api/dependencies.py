"""Dependency injection for FastAPI endpoints"""

from fastapi import Request
from spend_sentinel.infrastructure.clients.feed import TransactionFeedClient
from spend_sentinel.services.engine import FinanceEngine


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_engine(request: Request) -> FinanceEngine:
    """The engine constructed once by create_app"""
    return request.app.state.engine


def get_feed_client() -> TransactionFeedClient:
    """Provide transaction feed client instance"""
    return TransactionFeedClient()
