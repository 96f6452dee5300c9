"""Tests for the lead intake endpoint."""

import pytest
from unittest.mock import AsyncMock, patch

from api.leads.intake import handler
from leadroute.services.routing_service import LeadRoutingService
from leadroute.utils.errors import SupabaseError
from tests.utils.factories import create_lead_data
from tests.utils.helpers import build_http_handler, read_json_response


@pytest.fixture
def routing_service():
    service = LeadRoutingService()
    with patch("api.leads.intake.get_routing_service", return_value=service):
        yield service


@pytest.mark.unit
def test_intake_creates_pending_lead(routing_service):
    h = build_http_handler(handler, body=create_lead_data(zip_code="10001"))

    h.do_POST()

    assert h.send_response.call_args[0][0] == 201
    body = read_json_response(h)
    assert body["success"] is True
    assert len(body["lead_id"]) == 8
    assert routing_service.store.leads


@pytest.mark.unit
def test_intake_missing_fields_is_400(routing_service):
    data = create_lead_data()
    del data["first_name"]
    h = build_http_handler(handler, body=data)

    h.do_POST()

    assert h.send_response.call_args[0][0] == 400
    body = read_json_response(h)
    assert body["success"] is False
    assert "first_name" in body["error"]
    assert routing_service.store.leads == {}


@pytest.mark.unit
def test_intake_invalid_json_is_400(routing_service):
    h = build_http_handler(handler, body=b"{not json")

    h.do_POST()

    assert h.send_response.call_args[0][0] == 400


@pytest.mark.unit
def test_intake_store_outage_is_503(routing_service):
    routing_service.create_lead = AsyncMock(side_effect=SupabaseError("Failed to create lead: timeout"))
    h = build_http_handler(handler, body=create_lead_data())

    h.do_POST()

    assert h.send_response.call_args[0][0] == 503


@pytest.mark.unit
def test_intake_unexpected_error_is_500(routing_service):
    routing_service.create_lead = AsyncMock(side_effect=RuntimeError("boom"))
    h = build_http_handler(handler, body=create_lead_data())

    h.do_POST()

    assert h.send_response.call_args[0][0] == 500
    assert read_json_response(h)["error"] == "internal server error"
