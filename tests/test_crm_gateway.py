"""
CRM gateway decoding tests.

Guards the boundary between the backend's loosely-typed JSON and the
typed aggregates:
  - single-row list responses are unwrapped
  - a null pulse is a decode failure, a null list is "no rows"
  - null numeric columns (SQL aggregates over no rows) take field defaults
  - schema mismatches raise DecodeError naming the procedure
  - procedure parameter names match the backend signatures
"""
import asyncio

import pytest

from bizpulse.connectors.backend_client import BackendClient, DecodeError, RPCError
from bizpulse.connectors.crm_gateway import (
    MEETINGS_TABLE,
    RPC_BUSINESS_PULSE,
    RPC_SALESPERSON_RANKINGS,
    RPC_SET_YEARLY_GOAL,
    CRMGateway,
)


def _run(coro):
    """Run an async coroutine in a sync test."""
    return asyncio.run(coro)


class FakeClient:
    """Returns canned JSON per procedure / table and records each request"""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.requests = []

    async def rpc(self, name, params=None):
        self.requests.append(("rpc", name, params))
        return self.responses.get(name)

    async def select(self, table, filters=None):
        self.requests.append(("select", table, filters))
        return self.responses.get(table)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def test_pulse_unwraps_single_row():
    client = FakeClient({RPC_BUSINESS_PULSE: [{"revenue_mtd": 1200, "top_city": "Pune", "unused": 1}]})
    pulse = _run(CRMGateway(client).get_business_pulse())
    assert pulse.revenue_mtd == 1200
    assert pulse.top_city == "Pune"


def test_null_pulse_is_decode_error():
    with pytest.raises(DecodeError) as exc_info:
        _run(CRMGateway(FakeClient()).get_business_pulse())
    assert exc_info.value.call == RPC_BUSINESS_PULSE



def test_null_aggregates_fall_back_to_defaults():
    client = FakeClient({RPC_BUSINESS_PULSE: [{
        "revenue_mtd": 1000,
        "top_city": None,
        "top_city_revenue": None,
        "avg_deal_value": None,
        "deals_this_month": None,
    }]})
    pulse = _run(CRMGateway(client).get_business_pulse())
    assert pulse.revenue_mtd == 1000
    assert pulse.top_city is None
    assert pulse.top_city_revenue == 0
    assert pulse.avg_deal_value == 0
    assert pulse.deals_this_month == 0


def test_null_required_field_still_raises():
    client = FakeClient({RPC_SALESPERSON_RANKINGS: [
        {"salesperson_id": "s1", "salesperson_name": None, "total_revenue": None},
    ]})
    with pytest.raises(DecodeError):
        _run(CRMGateway(client).get_salesperson_rankings())

def test_null_rankings_is_empty():
    assert _run(CRMGateway(FakeClient()).get_salesperson_rankings()) == []


def test_malformed_rankings_raise():
    client = FakeClient({RPC_SALESPERSON_RANKINGS: [{"salesperson_id": "s1"}]})
    with pytest.raises(DecodeError) as exc_info:
        _run(CRMGateway(client).get_salesperson_rankings())
    assert exc_info.value.call == RPC_SALESPERSON_RANKINGS


def test_report_reads_misspelled_gap_column():
    client = FakeClient({"crm_get_intelligence_report": {
        "churn_risks": [],
        "gap_analysis": [{"item_name": "Cement", "tied_captial_value": 42_000}],
    }})
    report = _run(CRMGateway(client).get_intelligence_report())
    assert report.gap_analysis[0].tied_capital_value == 42_000
    assert report.stockout_risks == []
    assert report.product_matrix is None


def test_goal_progress_without_goal():
    client = FakeClient({"crm_get_yearly_goal_progress": {"success": False, "message": "No goal set"}})
    goal = _run(CRMGateway(client).get_yearly_goal_progress(2026))
    assert goal.success is False
    assert client.requests == [("rpc", "crm_get_yearly_goal_progress", {"p_year": 2026})]


# ---------------------------------------------------------------------------
# Mutations and table reads
# ---------------------------------------------------------------------------

def test_set_monthly_target_params():
    client = FakeClient()
    _run(CRMGateway(client).set_monthly_target(1_500_000))
    assert client.requests == [("rpc", "crm_set_monthly_target", {"p_target_amount": 1_500_000})]


def test_set_yearly_goal_defaults_breakdown():
    client = FakeClient()
    _run(CRMGateway(client).set_yearly_goal(2026, 12_000_000))
    assert client.requests == [("rpc", RPC_SET_YEARLY_GOAL, {
        "p_year": 2026, "p_amount": 12_000_000, "p_breakdown": {},
    })]


def test_list_meetings_filters_by_user():
    client = FakeClient({MEETINGS_TABLE: [{
        "id": "m1", "title": "Review", "start_time": "2025-01-10T10:00:00+00:00", "created_by": "u1",
    }]})
    meetings = _run(CRMGateway(client).list_meetings("u1"))
    assert meetings[0].status == "scheduled"
    assert client.requests == [("select", MEETINGS_TABLE, {
        "order": "start_time.asc", "created_by": "eq.u1",
    })]


# ---------------------------------------------------------------------------
# Backend client
# ---------------------------------------------------------------------------

def test_client_headers_fall_back_to_api_key():
    client = BackendClient(base_url="http://backend/", api_key="anon", access_token=None, schema="public")
    client.access_token = None
    assert client.base_url == "http://backend"
    assert client.headers["Authorization"] == "Bearer anon"
    assert client.headers["Accept-Profile"] == "public"


def test_error_payload_parsing():
    error = BackendClient._parse_error('{"message": "denied", "code": "42501", "hint": "check RLS"}', 403)
    assert isinstance(error, RPCError)
    assert error.to_dict() == {
        "message": "denied", "status": 403, "code": "42501", "details": None, "hint": "check RLS",
    }


def test_error_payload_not_json():
    error = BackendClient._parse_error("Bad Gateway", 502)
    assert error.message == "Bad Gateway"
    assert error.status == 502
    assert BackendClient._parse_error("", 500).message == "HTTP 500"
