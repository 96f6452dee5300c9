"""Shared pytest fixtures and configuration."""

import os
import pytest
from unittest.mock import MagicMock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LEAD_STORE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from leadroute.services.assignment_ledger import AssignmentLedger
from leadroute.services.lead_status import LeadStatusMachine
from leadroute.services.notifications import NotificationSink
from leadroute.services.reconciler import CoverageReconciler
from leadroute.services.realtor_registry import RealtorRegistry
from leadroute.services.routing_service import LeadRoutingService
from leadroute.services.store import InMemoryLeadStore
from tests.utils.factories import create_realtor_data


@pytest.fixture
def store():
    """Fresh in-memory store."""
    return InMemoryLeadStore()


@pytest.fixture
def notifications(store):
    return NotificationSink(store)


@pytest.fixture
def lead_status(store):
    return LeadStatusMachine(store)


@pytest.fixture
def ledger(store):
    return AssignmentLedger(store)


@pytest.fixture
def registry(store):
    return RealtorRegistry(store)


@pytest.fixture
def reconciler(store, lead_status, notifications):
    return CoverageReconciler(store, lead_status, notifications)


@pytest.fixture
def service(store):
    return LeadRoutingService(store=store)


@pytest.fixture
def active_realtor_factory(registry):
    """Register a realtor and activate it; returns the Realtor."""
    async def create(zip_codes="10001", **overrides):
        data = create_realtor_data(**overrides)
        realtor = await registry.register_realtor(data)
        realtor = await registry.update_realtor(realtor.realtor_id, "zip_codes", zip_codes)
        return await registry.update_realtor(realtor.realtor_id, "is_active", True)

    return create


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client for testing."""
    client = MagicMock()
    client.table = MagicMock(return_value=MagicMock())
    return client


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time


@pytest.fixture
def mock_vercel_request():
    """Mock Vercel serverless function request."""
    return {
        "method": "GET",
        "path": "/api/reconcile/tick",
        "headers": {
            "content-type": "application/json"
        },
        "body": "",
        "query": {}
    }


@pytest.fixture(scope="function")
def reset_environment(monkeypatch):
    """Reset environment variables for each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)
