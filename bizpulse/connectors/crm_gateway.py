"""
CRM aggregate gateway

Maps each CRM operation onto its backend procedure and decodes the
response into a typed schema at the boundary. A response that does not
fit its schema raises DecodeError instead of leaking loosely-shaped data
into the derivation layer.
"""
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from bizpulse.connectors.backend_client import BackendClient, DecodeError
from bizpulse.models.crm import (
    BusinessPulse,
    GeoInsight,
    GoalProgress,
    IntelligenceReport,
    SalespersonPerformance,
)
from bizpulse.models.meetings import Meeting
from bizpulse.utils.logger import log

M = TypeVar("M", bound=BaseModel)

RPC_BUSINESS_PULSE = "crm_get_business_pulse"
RPC_SALESPERSON_RANKINGS = "crm_get_salesperson_rankings"
RPC_CITY_PERFORMANCE = "crm_get_city_performance"
RPC_INTELLIGENCE_REPORT = "crm_get_intelligence_report"
RPC_YEARLY_GOAL_PROGRESS = "crm_get_yearly_goal_progress"
RPC_SET_MONTHLY_TARGET = "crm_set_monthly_target"
RPC_SET_YEARLY_GOAL = "crm_set_yearly_goal"
MEETINGS_TABLE = "crm_meetings"


def decode_one(call: str, model: Type[M], data: Any) -> M:
    """Decode a single-object response"""
    if data is None:
        raise DecodeError(call, "empty response")
    # set-returning procedures wrap a single row in a list
    if isinstance(data, list) and len(data) == 1:
        data = data[0]
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise DecodeError(call, str(e)) from e


def decode_many(call: str, model: Type[M], data: Any) -> List[M]:
    """Decode a list response; null means no rows"""
    if data is None:
        return []
    try:
        return TypeAdapter(List[model]).validate_python(data)
    except ValidationError as e:
        raise DecodeError(call, str(e)) from e


class CRMGateway:
    """Typed access to the CRM aggregates and mutations"""

    def __init__(self, client: BackendClient):
        self.client = client

    async def get_business_pulse(self) -> BusinessPulse:
        data = await self.client.rpc(RPC_BUSINESS_PULSE)
        return decode_one(RPC_BUSINESS_PULSE, BusinessPulse, data)

    async def get_salesperson_rankings(self) -> List[SalespersonPerformance]:
        data = await self.client.rpc(RPC_SALESPERSON_RANKINGS)
        return decode_many(RPC_SALESPERSON_RANKINGS, SalespersonPerformance, data)

    async def get_city_performance(self) -> List[GeoInsight]:
        data = await self.client.rpc(RPC_CITY_PERFORMANCE)
        return decode_many(RPC_CITY_PERFORMANCE, GeoInsight, data)

    async def get_intelligence_report(self) -> IntelligenceReport:
        data = await self.client.rpc(RPC_INTELLIGENCE_REPORT)
        return decode_one(RPC_INTELLIGENCE_REPORT, IntelligenceReport, data)

    async def get_yearly_goal_progress(self, year: int) -> GoalProgress:
        data = await self.client.rpc(RPC_YEARLY_GOAL_PROGRESS, {"p_year": year})
        return decode_one(RPC_YEARLY_GOAL_PROGRESS, GoalProgress, data)

    async def set_monthly_target(self, amount: float) -> None:
        await self.client.rpc(RPC_SET_MONTHLY_TARGET, {"p_target_amount": amount})
        log.info(f"Monthly sales target set to {amount}")

    async def set_yearly_goal(
        self,
        year: int,
        amount: float,
        breakdown: Optional[Dict[str, Any]] = None
    ) -> None:
        await self.client.rpc(RPC_SET_YEARLY_GOAL, {
            "p_year": year,
            "p_amount": amount,
            "p_breakdown": breakdown or {},
        })
        log.info(f"Yearly goal for {year} set to {amount}")

    async def list_meetings(self, user_id: Optional[str] = None) -> List[Meeting]:
        filters = {"order": "start_time.asc"}
        if user_id:
            filters["created_by"] = f"eq.{user_id}"
        data = await self.client.select(MEETINGS_TABLE, filters)
        return decode_many(MEETINGS_TABLE, Meeting, data)
