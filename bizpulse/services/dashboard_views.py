"""
Dashboard view-models

Plain-data renderings of the CRM screens: goal cockpit, planner and the
operations board. Each screen keeps its own currency format.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from bizpulse.models.crm import BusinessPulse, GeoInsight, GoalProgress, SalespersonPerformance
from bizpulse.services.action_planner import GoalTrajectory
from bizpulse.services.pulse_insights import PriorityAction, target_progress_pct
from bizpulse.utils.formatting import format_inr_compact, format_inr_kilo, format_inr_short
from bizpulse.utils.helpers import round_half_up, to_fixed

STATUS_CONFIG = {
    "ahead": {"label": "Ahead of Target", "color": "green", "icon": "trending-up"},
    "on-track": {"label": "On Track", "color": "primary", "icon": "check-circle"},
    "at-risk": {"label": "At Risk", "color": "orange", "icon": "alert-triangle"},
    "critical": {"label": "Critical", "color": "red", "icon": "zap"},
}

TREND_CONFIG = {
    "accelerating": {"icon": "trending-up", "color": "green"},
    "steady": {"icon": "target", "color": "primary"},
    "decelerating": {"icon": "trending-down", "color": "orange"},
    "volatile": {"icon": "alert-triangle", "color": "yellow"},
}

MAX_DISPLAY_PROGRESS = 999


def goal_cockpit_view(
    goal: Optional[GoalProgress],
    trajectory: Optional[GoalTrajectory]
) -> Dict[str, Any]:
    """
    Yearly goal cockpit.

    Without a goal for the year the view is a call-to-action; otherwise it
    carries progress, run rates, status styling and the shortfall/surplus
    message.
    """
    if goal is None or not goal.success:
        return {
            "state": "no-goal",
            "message": (goal.message if goal and goal.message else "No yearly goal set"),
            "cta": "Set Yearly Goal",
        }

    status = trajectory.status if trajectory else "on-track"
    trend = trajectory.trend_direction if trajectory else "steady"

    view = {
        "state": "tracked",
        "year": goal.year,
        "status": status,
        "status_config": STATUS_CONFIG[status],
        "trend": trend,
        "trend_config": TREND_CONFIG[trend],
        "progress_label": f"{to_fixed(min(goal.progress_percentage, MAX_DISPLAY_PROGRESS), 1)}%",
        "progress_bar_width": min(goal.progress_percentage, 100),
        "revenue_label": f"{format_inr_compact(goal.actual_revenue)} of {format_inr_compact(goal.target_amount)}",
        "days_remaining": goal.days_remaining,
        "required_daily_rate": f"{format_inr_compact(goal.required_daily_run_rate)}/d",
        "current_daily_rate": f"{format_inr_compact(trajectory.daily_run_rate)}/d" if trajectory else "—",
        "goal_achieved": goal.goal_achieved,
        "goal_exceeded": goal.goal_exceeded,
        "confidence_score": trajectory.confidence_score if trajectory else None,
        "projection": None,
    }

    if trajectory:
        view["projection"] = _projection_message(goal, trajectory)

    return view


def _projection_message(goal: GoalProgress, trajectory: GoalTrajectory) -> Dict[str, str]:
    if trajectory.shortfall > 0:
        gap = goal.required_daily_run_rate - trajectory.daily_run_rate
        return {
            "tone": "warning",
            "headline": f"Projected shortfall: {format_inr_compact(trajectory.shortfall)}",
            "detail": (
                f"At current pace, you'll end at {format_inr_compact(trajectory.projected_end_revenue)}. "
                f"Increase daily sales by {format_inr_compact(gap)} to close the gap."
            ),
        }
    surplus = trajectory.projected_end_revenue - goal.target_amount
    return {
        "tone": "positive",
        "headline": f"On pace to exceed target by {format_inr_compact(surplus)}",
        "detail": f"Maintain momentum. Current trajectory: {format_inr_compact(trajectory.projected_end_revenue)}.",
    }


def planner_view(
    pulse: Optional[BusinessPulse],
    insights: List[str],
    actions: List[PriorityAction],
    rankings: List[SalespersonPerformance],
    cities: List[GeoInsight],
    last_updated: Optional[datetime]
) -> Dict[str, Any]:
    """CRM planner: KPI cards, target bar, insights, actions, leaderboards"""
    view: Dict[str, Any] = {
        "last_updated": last_updated.strftime("%H:%M") if last_updated else None,
        "insights": insights,
        "actions": [a.to_dict() for a in actions],
        "kpis": None,
        "target": None,
        "salespeople": [
            {"name": sp.salesperson_name, "revenue": format_inr_short(sp.revenue_this_month),
             "deals": sp.deals_this_month}
            for sp in rankings
        ],
        "cities": [
            {"name": c.city_name, "revenue": format_inr_short(c.total_revenue), "deals": c.deal_count}
            for c in cities
        ],
    }

    if pulse is None:
        return view

    progress = target_progress_pct(pulse)
    view["kpis"] = {
        "revenue_mtd": format_inr_short(pulse.revenue_mtd),
        "deals_this_month": pulse.deals_this_month,
        "customers_this_month": pulse.customers_this_month,
        "avg_deal_value": format_inr_short(pulse.avg_deal_value),
    }
    view["target"] = {
        "label": f"{format_inr_short(pulse.revenue_mtd)} / {format_inr_short(pulse.monthly_sales_target)}",
        "bar_width": min(100.0, progress),
        "daily_target": format_inr_short(pulse.daily_sales_target),
        "percent_complete": round_half_up(progress),
    }
    return view


def operations_view(pulse: Optional[BusinessPulse], today: date) -> Dict[str, Any]:
    """Operations board headline numbers"""
    if pulse is None:
        return {"date": today.isoformat(), "target_progress": 0, "cards": None}

    return {
        "date": today.isoformat(),
        "target_progress": min(100, round_half_up(target_progress_pct(pulse))),
        "cards": {
            "revenue_today": format_inr_kilo(pulse.revenue_today),
            "revenue_mtd": format_inr_kilo(pulse.revenue_mtd),
            "monthly_target": format_inr_kilo(pulse.monthly_sales_target),
            "deals_today": pulse.deals_today,
            "customers_today": pulse.customers_today,
            "pending_quotes": pulse.pending_quotes_count,
            "pending_quotes_value": format_inr_kilo(pulse.pending_quotes_value),
        },
    }
