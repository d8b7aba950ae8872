"""Dependency injection for FastAPI endpoints"""

from functools import lru_cache

from fastapi import Request

from collections_engine.config import settings
from collections_engine.domain.dunning import DunningPlanner
from collections_engine.domain.engine import CollectionsEngine
from collections_engine.domain.states import StateRegistry


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


@lru_cache
def get_engine() -> CollectionsEngine:
    """Provide the collections engine configured from settings"""
    registry = StateRegistry()
    planner = DunningPlanner(
        registry=registry,
        past_action_policy=settings.past_action_policy,
        recent_payment_window_days=settings.recent_payment_window_days,
        review_interval_days=settings.review_interval_days,
    )
    return CollectionsEngine(registry=registry, planner=planner)
