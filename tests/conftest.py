"""Pytest fixtures for testing"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

import pytest
from fastapi.testclient import TestClient

from collections_engine.api.main import create_app
from collections_engine.domain.dunning import DunningPlanner
from collections_engine.domain.engine import CollectionsEngine
from collections_engine.domain.models import AccountType, CollectionState, DunningAccount
from collections_engine.domain.states import StateRegistry

# Due date "D" shared by the scenario tests
DUE_DATE = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def due_date() -> datetime:
    return DUE_DATE


@pytest.fixture
def days_after_due() -> Callable[[int], datetime]:
    """Clock reading N days after the shared due date"""

    def _at(days: int) -> datetime:
        return DUE_DATE + timedelta(days=days)

    return _at


@pytest.fixture
def registry() -> StateRegistry:
    return StateRegistry()


@pytest.fixture
def planner(registry: StateRegistry) -> DunningPlanner:
    return DunningPlanner(registry=registry)


@pytest.fixture
def engine(registry: StateRegistry, planner: DunningPlanner) -> CollectionsEngine:
    return CollectionsEngine(registry=registry, planner=planner)


@pytest.fixture
def make_account() -> Callable[..., DunningAccount]:
    """Factory for a self-pay account 46 days past due unless overridden"""

    def _make(**overrides) -> DunningAccount:
        values = {
            "account_id": "acct-1001",
            "account_type": AccountType.SELF_PAY,
            "current_state": CollectionState.PAST_DUE_60,
            "balance": Decimal("500.00"),
            "due_date": DUE_DATE,
        }
        values.update(overrides)
        return DunningAccount(**values)

    return _make


@pytest.fixture
def client() -> TestClient:
    """Create FastAPI test client"""
    app = create_app()
    return TestClient(app)
