"""
CRM Business Intelligence API

Endpoints over the session's aggregates: pulse, insights, actions,
targets, yearly goals and the dashboard views built on them.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from bizpulse.connectors.backend_client import BackendError, TRANSPORT_ERRORS
from bizpulse.services.action_planner import CRMActionPlanner, compute_goal_trajectory
from bizpulse.services.business_intelligence_service import BusinessIntelligenceService
from bizpulse.services.dashboard_views import goal_cockpit_view, operations_view, planner_view
from bizpulse.utils.logger import log

router = APIRouter(prefix="/crm", tags=["crm"])


class MonthlyTargetRequest(BaseModel):
    amount: float = Field(..., ge=0)


class YearlyGoalRequest(BaseModel):
    amount: float = Field(..., ge=0)
    breakdown: Optional[Dict[str, Any]] = None


def get_service(request: Request) -> BusinessIntelligenceService:
    return request.app.state.bi_service


def _backend_failure(action: str, e: Exception) -> HTTPException:
    log.error(f"Error {action}: {str(e)}")
    if isinstance(e, (BackendError,) + TRANSPORT_ERRORS):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


async def _goal_or_502(service: BusinessIntelligenceService, year: int):
    goal = await service.fetch_goal_progress(year)
    if goal is None:
        raise HTTPException(status_code=502, detail=f"Goal progress for {year} is unavailable")
    return goal


@router.get("/pulse")
async def get_pulse(service: BusinessIntelligenceService = Depends(get_service)):
    """Current aggregates as last fetched"""
    return {
        "success": True,
        "data": service.snapshot()
    }


@router.post("/pulse/refresh")
async def refresh_pulse(service: BusinessIntelligenceService = Depends(get_service)):
    """
    Re-fetch pulse, rankings, city performance and the intelligence report

    Individual call failures are logged and leave the previous value in place.
    """
    try:
        await service.fetch_business_pulse()
        return {
            "success": True,
            "data": service.snapshot()
        }
    except Exception as e:
        raise _backend_failure("refreshing business pulse", e)


@router.get("/insights")
async def get_insights(service: BusinessIntelligenceService = Depends(get_service)):
    """Natural-language observations for the current pulse"""
    return {
        "success": True,
        "data": service.generate_insights()
    }


@router.get("/actions")
async def get_actions(service: BusinessIntelligenceService = Depends(get_service)):
    """Ranked next steps for the current pulse"""
    return {
        "success": True,
        "data": [action.to_dict() for action in service.generate_actions()]
    }


@router.put("/targets/monthly")
async def set_monthly_target(
    body: MonthlyTargetRequest,
    service: BusinessIntelligenceService = Depends(get_service)
):
    """Set this month's sales target and refresh the pulse"""
    try:
        await service.set_monthly_target(body.amount)
        return {
            "success": True,
            "message": "Monthly target updated",
            "data": service.snapshot()
        }
    except Exception as e:
        raise _backend_failure("setting monthly target", e)


@router.get("/goals/{year}")
async def get_goal_progress(
    year: int,
    service: BusinessIntelligenceService = Depends(get_service)
):
    """Progress against the yearly goal for a fiscal year"""
    goal = await _goal_or_502(service, year)
    return {
        "success": True,
        "data": goal.model_dump()
    }


@router.put("/goals/{year}")
async def set_yearly_goal(
    year: int,
    body: YearlyGoalRequest,
    service: BusinessIntelligenceService = Depends(get_service)
):
    """Create or replace the yearly goal"""
    try:
        await service.set_yearly_goal(year, body.amount, body.breakdown)
        goal = service.goal_for(year)
        return {
            "success": True,
            "message": f"Goal for {year} saved",
            "data": goal.model_dump() if goal else None
        }
    except Exception as e:
        raise _backend_failure("setting yearly goal", e)


@router.get("/goals/{year}/cockpit")
async def get_goal_cockpit(
    year: int,
    service: BusinessIntelligenceService = Depends(get_service)
):
    """Goal cockpit: progress, run rates, status and projection"""
    goal = await _goal_or_502(service, year)
    return {
        "success": True,
        "data": goal_cockpit_view(goal, compute_goal_trajectory(goal))
    }


@router.get("/planner")
async def get_planner(
    year: Optional[int] = Query(None, description="Fiscal year for the goal trajectory"),
    service: BusinessIntelligenceService = Depends(get_service)
):
    """
    Planner screen

    Returns:
    - KPI cards and target bar
    - Insights and priority actions
    - Salesperson and city leaderboards
    - Daily action plan built from goal progress and the intelligence report
    """
    try:
        goal = service.goal_progress
        if year is not None:
            goal = await service.fetch_goal_progress(year)

        plan = CRMActionPlanner(
            goal,
            service.intelligence_report,
            service.pulse
        ).plan()

        view = planner_view(
            service.pulse,
            service.generate_insights(),
            service.generate_actions(),
            service.salesperson_rankings,
            service.city_performance,
            service.last_updated
        )
        view["plan"] = plan.to_dict()

        return {
            "success": True,
            "data": view
        }
    except Exception as e:
        log.error(f"Error building planner: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/operations")
async def get_operations(service: BusinessIntelligenceService = Depends(get_service)):
    """Operations board headline numbers"""
    return {
        "success": True,
        "data": operations_view(service.pulse, service.today())
    }
