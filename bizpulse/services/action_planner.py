"""
CRM Action Planner

Turns goal progress, the intelligence report and the pulse into:
  - a goal trajectory (run rates, trend, projected year-end revenue, status)
  - prioritized daily actions, most urgent first
  - SWOT-style performance insights
  - a single "today's focus" score

Statistics: half-over-half trend, coefficient of
variation for volatility, and exponential smoothing for the forward rate.
"""
from dataclasses import dataclass, field, asdict
from typing import List, Literal, Optional
import math
import statistics

from bizpulse.models.crm import BusinessPulse, GoalProgress, IntelligenceReport
from bizpulse.utils.formatting import format_inr_lakhs, format_inr_thousands, plain_number
from bizpulse.utils.helpers import round_half_up, safe_divide

TrajectoryStatus = Literal["ahead", "on-track", "at-risk", "critical"]
TrendDirection = Literal["accelerating", "steady", "decelerating", "volatile"]

# Status bands on projected / target
AHEAD_RATIO = 1.05
ON_TRACK_RATIO = 0.95
AT_RISK_RATIO = 0.75

VOLATILITY_CV_PCT = 25
TREND_DRIFT = 0.05
SMOOTHING_ALPHA = 0.3
MAX_DAYS_TO_GOAL = 9999
BURNDOWN_STEPS = 12

QUOTE_CONVERSION_RATE = 0.35
HIGH_VALUE_THRESHOLD = 500_000
CHURN_VALUE_WEIGHT = 0.7
CHURN_DORMANCY_WEIGHT = 0.3
STOCKOUT_WATCH_DAYS = 14
STOCKOUT_CRITICAL_DAYS = 7


@dataclass(frozen=True)
class BurndownPoint:
    day: int
    target: int
    actual: int
    projected: int


@dataclass
class GoalTrajectory:
    status: TrajectoryStatus
    daily_run_rate: float
    weekly_run_rate: float
    monthly_run_rate: float
    days_to_goal: int
    projected_end_revenue: float
    shortfall: float
    confidence_score: int  # 0-100
    trend_direction: TrendDirection
    weekly_trend: List[float] = field(default_factory=list)
    burndown: List[BurndownPoint] = field(default_factory=list)


@dataclass
class DailyAction:
    id: str
    priority: Literal["critical", "high", "medium", "low"]
    category: Literal["revenue", "retention", "collection", "efficiency", "growth"]
    title: str
    description: str
    impact: str
    urgency_score: float  # 0-100
    potential_value: float
    action_type: Literal["call", "follow-up", "review", "coach", "analyze"]


@dataclass
class PerformanceInsight:
    type: Literal["strength", "weakness", "opportunity", "threat"]
    metric: str
    value: str
    benchmark: str
    recommendation: str
    priority: int


@dataclass(frozen=True)
class FocusScore:
    score: int
    label: str


@dataclass
class ActionPlan:
    goal_trajectory: Optional[GoalTrajectory]
    daily_actions: List[DailyAction]
    performance_insights: List[PerformanceInsight]
    today_focus: FocusScore

    @property
    def top_actions(self) -> List[DailyAction]:
        return self.daily_actions[:3]

    def to_dict(self) -> dict:
        data = asdict(self)
        data["top_actions"] = [asdict(a) for a in self.top_actions]
        return data


# ----------------------------------------------------------------------
# Statistics
# ----------------------------------------------------------------------

def _mean(values: List[float]) -> float:
    return statistics.fmean(values) if values else 0.0


def _trend(values: List[float]) -> str:
    """Compare the mean of the second half against the first half"""
    if len(values) < 2:
        return "stable"
    half = len(values) // 2
    first_mean = _mean(values[:half])
    second_mean = _mean(values[half:])
    diff = (second_mean - first_mean) / (first_mean or 1)
    if diff > TREND_DRIFT:
        return "up"
    if diff < -TREND_DRIFT:
        return "down"
    return "stable"


def _coefficient_of_variation(values: List[float]) -> float:
    """Population std-dev as a percentage of the mean"""
    mean = _mean(values)
    if mean == 0 or len(values) < 2:
        return 0.0
    return statistics.pstdev(values) / mean * 100


def _exponential_smoothing(values: List[float], alpha: float = SMOOTHING_ALPHA) -> float:
    if not values:
        return 0.0
    forecast = values[0]
    for value in values[1:]:
        forecast = alpha * value + (1 - alpha) * forecast
    return forecast


# ----------------------------------------------------------------------
# Trajectory
# ----------------------------------------------------------------------

def compute_goal_trajectory(goal: Optional[GoalProgress]) -> Optional[GoalTrajectory]:
    """Project year-end revenue at the current pace; None when no goal is set"""
    if goal is None or not goal.success:
        return None

    target = goal.target_amount
    actual = goal.actual_revenue
    days_passed = goal.days_passed
    days_remaining = goal.days_remaining
    total_days = days_passed + days_remaining

    daily_run_rate = safe_divide(actual, days_passed)
    weekly_run_rate = daily_run_rate * 7
    monthly_run_rate = daily_run_rate * 30

    progress_ratio = safe_divide(actual, target)
    expected_progress = safe_divide(days_passed, total_days) or 0.01
    performance_ratio = progress_ratio / expected_progress

    # No weekly history is exposed yet, so the last four weeks are modelled
    # as a ramp ending at the current performance ratio.
    weekly_trend = [
        weekly_run_rate * 0.85,
        weekly_run_rate * 0.92,
        weekly_run_rate * 0.98,
        weekly_run_rate * performance_ratio,
    ]

    trend = _trend(weekly_trend)
    cv = _coefficient_of_variation(weekly_trend)

    if cv > VOLATILITY_CV_PCT:
        trend_direction = "volatile"
    elif trend == "up":
        trend_direction = "accelerating"
    elif trend == "down":
        trend_direction = "decelerating"
    else:
        trend_direction = "steady"

    smoothed_daily_rate = _exponential_smoothing([w / 7 for w in weekly_trend])
    projected_end_revenue = actual + smoothed_daily_rate * days_remaining
    shortfall = max(0.0, target - projected_end_revenue)

    trend_consistency = max(0.0, 100 - cv)
    progress_score = min(100.0, progress_ratio / expected_progress * 50)
    confidence_score = round_half_up(trend_consistency * 0.4 + progress_score * 0.6)

    if projected_end_revenue >= target * AHEAD_RATIO:
        status = "ahead"
    elif projected_end_revenue >= target * ON_TRACK_RATIO:
        status = "on-track"
    elif projected_end_revenue >= target * AT_RISK_RATIO:
        status = "at-risk"
    else:
        status = "critical"

    if daily_run_rate > 0:
        days_to_goal = min(math.ceil((target - actual) / daily_run_rate), MAX_DAYS_TO_GOAL)
    else:
        days_to_goal = MAX_DAYS_TO_GOAL

    return GoalTrajectory(
        status=status,
        daily_run_rate=daily_run_rate,
        weekly_run_rate=weekly_run_rate,
        monthly_run_rate=monthly_run_rate,
        days_to_goal=days_to_goal,
        projected_end_revenue=projected_end_revenue,
        shortfall=shortfall,
        confidence_score=confidence_score,
        trend_direction=trend_direction,
        weekly_trend=weekly_trend,
        burndown=_burndown(target, actual, days_passed, total_days, smoothed_daily_rate),
    )


def _burndown(
    target: float,
    actual: float,
    days_passed: int,
    total_days: int,
    smoothed_daily_rate: float
) -> List[BurndownPoint]:
    if total_days <= 0:
        return []

    step = math.ceil(total_days / BURNDOWN_STEPS)
    points = []
    for day in range(0, min(total_days, 365) + 1, step):
        target_at_day = target / total_days * day
        if day <= days_passed:
            actual_at_day = safe_divide(actual, days_passed) * day
            projected_at_day = actual_at_day
        else:
            actual_at_day = actual
            projected_at_day = actual + smoothed_daily_rate * (day - days_passed)
        points.append(BurndownPoint(
            day=day,
            target=round_half_up(target_at_day),
            actual=round_half_up(actual_at_day),
            projected=round_half_up(projected_at_day),
        ))
    return points


# ----------------------------------------------------------------------
# Daily actions
# ----------------------------------------------------------------------

def generate_daily_actions(
    goal: Optional[GoalProgress],
    trajectory: Optional[GoalTrajectory],
    report: Optional[IntelligenceReport],
    pulse: Optional[BusinessPulse]
) -> List[DailyAction]:
    """Actions for today, highest urgency first (ties keep rule order)"""
    actions: List[DailyAction] = []

    if goal is None and report is None and pulse is None:
        return actions

    if trajectory and trajectory.status in ("critical", "at-risk"):
        required_rate = goal.required_daily_run_rate if goal else 0
        rate_gap = required_rate - trajectory.daily_run_rate
        critical = trajectory.status == "critical"
        actions.append(DailyAction(
            id="goal-acceleration",
            priority="critical" if critical else "high",
            category="revenue",
            title=f"Close {format_inr_thousands(rate_gap)} more daily to hit target",
            description=(
                f"Current daily rate: {format_inr_thousands(trajectory.daily_run_rate)}. "
                f"Required: {format_inr_thousands(required_rate)}. Focus on high-probability deals."
            ),
            impact=f"Bridges {format_inr_lakhs(trajectory.shortfall, 0)} shortfall",
            urgency_score=95 if critical else 80,
            potential_value=trajectory.shortfall,
            action_type="follow-up",
        ))

    if pulse and pulse.pending_quotes_count > 0:
        expected_value = pulse.pending_quotes_value * QUOTE_CONVERSION_RATE
        actions.append(DailyAction(
            id="pending-quotes",
            priority="critical" if pulse.pending_quotes_value > HIGH_VALUE_THRESHOLD else "high",
            category="revenue",
            title=f"Follow up on {pulse.pending_quotes_count} pending quotations",
            description=(
                f"Total value: {format_inr_lakhs(pulse.pending_quotes_value)}. "
                f"Expected conversion: {format_inr_lakhs(expected_value)} at 35% rate."
            ),
            impact=f"Potential {format_inr_lakhs(expected_value)} revenue",
            urgency_score=min(90, 50 + pulse.pending_quotes_count * 5),
            potential_value=expected_value,
            action_type="call",
        ))

    if report and report.churn_risks:
        ranked = sorted(
            report.churn_risks,
            key=lambda r: r.total_spent * CHURN_VALUE_WEIGHT + r.days_since_last_order * 100 * CHURN_DORMANCY_WEIGHT,
            reverse=True,
        )
        top_risks = ranked[:3]
        total_at_risk = sum(r.total_spent for r in top_risks)
        actions.append(DailyAction(
            id="churn-prevention",
            priority="critical" if total_at_risk > HIGH_VALUE_THRESHOLD else "high",
            category="retention",
            title=f"Re-engage {len(top_risks)} dormant high-value customers",
            description="; ".join(
                f"{r.party_name} ({r.days_since_last_order}d inactive, {format_inr_thousands(r.total_spent)} LTV)"
                for r in top_risks
            ),
            impact=f"Protect {format_inr_lakhs(total_at_risk)} customer lifetime value",
            urgency_score=85,
            potential_value=total_at_risk * 0.3,
            action_type="call",
        ))

    if pulse and pulse.total_receivables > 0:
        cash_crunch = pulse.total_receivables / pulse.cash_reserves if pulse.cash_reserves > 0 else 2
        if pulse.total_receivables > 100_000 or cash_crunch > 1:
            actions.append(DailyAction(
                id="collect-receivables",
                priority="critical" if cash_crunch > 1.5 else "high",
                category="collection",
                title=f"Collect outstanding receivables: {format_inr_lakhs(pulse.total_receivables)}",
                description=(
                    "Receivables exceed cash reserves. Prioritize collection calls today."
                    if cash_crunch > 1 else "Healthy ratio but optimize cash cycle."
                ),
                impact=f"Improve cash position by {format_inr_lakhs(pulse.total_receivables)}",
                urgency_score=min(95, 50 + cash_crunch * 20),
                potential_value=pulse.total_receivables,
                action_type="call",
            ))

    if pulse and pulse.needs_coaching_name:
        actions.append(DailyAction(
            id="coach-team",
            priority="medium",
            category="efficiency",
            title=f"Coach {pulse.needs_coaching_name} on performance",
            description=pulse.needs_coaching_reason or "Below-average deal closure rate or revenue.",
            impact="Improve team efficiency by 10-20%",
            urgency_score=60,
            potential_value=pulse.avg_deal_value * 2,
            action_type="coach",
        ))

    if pulse and pulse.underserved_city and pulse.top_city != pulse.underserved_city:
        actions.append(DailyAction(
            id="geo-expansion",
            priority="medium",
            category="growth",
            title=f"Expand presence in {pulse.underserved_city}",
            description=(
                f"{pulse.underserved_city} shows potential but is currently underserved. "
                f"{pulse.top_city} leads with {format_inr_thousands(pulse.top_city_revenue)}."
            ),
            impact="New market opportunity",
            urgency_score=50,
            potential_value=pulse.top_city_revenue * 0.5,
            action_type="analyze",
        ))

    if report and report.stockout_risks:
        low_cover = [s for s in report.stockout_risks if s.days_of_cover < STOCKOUT_WATCH_DAYS]
        if low_cover:
            any_critical = any(s.days_of_cover < STOCKOUT_CRITICAL_DAYS for s in low_cover)
            actions.append(DailyAction(
                id="prevent-stockout",
                priority="high" if any_critical else "medium",
                category="efficiency",
                title=f"Reorder {len(low_cover)} items running low",
                description="; ".join(
                    f"{s.item_name}: {plain_number(s.days_of_cover)}d cover" for s in low_cover[:3]
                ),
                impact="Prevent stockouts and lost sales",
                urgency_score=80 if low_cover[0].days_of_cover < STOCKOUT_CRITICAL_DAYS else 60,
                potential_value=0,
                action_type="review",
            ))

    return sorted(actions, key=lambda a: a.urgency_score, reverse=True)


# ----------------------------------------------------------------------
# Performance insights
# ----------------------------------------------------------------------

def generate_performance_insights(
    goal: Optional[GoalProgress],
    trajectory: Optional[GoalTrajectory],
    report: Optional[IntelligenceReport],
    pulse: Optional[BusinessPulse]
) -> List[PerformanceInsight]:
    insights: List[PerformanceInsight] = []

    if goal is None and report is None and pulse is None:
        return insights

    if pulse and pulse.top_performer_name and pulse.top_performer_revenue > 0:
        insights.append(PerformanceInsight(
            type="strength",
            metric="Top Performer",
            value=pulse.top_performer_name,
            benchmark=f"{format_inr_thousands(pulse.top_performer_revenue)} this month",
            recommendation="Document and replicate their winning strategies across the team.",
            priority=3,
        ))

    if pulse and pulse.top_city and pulse.top_city_revenue > 0:
        insights.append(PerformanceInsight(
            type="strength",
            metric="Market Leadership",
            value=pulse.top_city,
            benchmark=f"{format_inr_thousands(pulse.top_city_revenue)} revenue",
            recommendation="Defend market share with customer loyalty programs.",
            priority=4,
        ))

    if goal and trajectory and trajectory.status in ("at-risk", "critical"):
        expected_pct = safe_divide(goal.days_passed, goal.days_total or 365) * 100
        rate_gap = goal.required_daily_run_rate - trajectory.daily_run_rate
        insights.append(PerformanceInsight(
            type="weakness",
            metric="Goal Progress",
            value=f"{goal.progress_percentage:.1f}%",
            benchmark=f"Expected: {expected_pct:.1f}%",
            recommendation=f"Increase daily sales by {format_inr_thousands(rate_gap)}.",
            priority=1,
        ))

    if pulse and pulse.total_receivables > pulse.cash_reserves:
        insights.append(PerformanceInsight(
            type="weakness",
            metric="Cash Flow",
            value=f"{format_inr_lakhs(pulse.total_receivables)} receivables",
            benchmark=f"Cash: {format_inr_lakhs(pulse.cash_reserves)}",
            recommendation="Tighten collection cycles. Offer early payment discounts.",
            priority=2,
        ))

    if pulse and pulse.underserved_city:
        insights.append(PerformanceInsight(
            type="opportunity",
            metric="Market Expansion",
            value=pulse.underserved_city,
            benchmark="Currently underserved",
            recommendation="Launch targeted campaign in this region.",
            priority=5,
        ))

    if pulse and pulse.pending_quotes_count > 3:
        insights.append(PerformanceInsight(
            type="opportunity",
            metric="Pipeline",
            value=f"{pulse.pending_quotes_count} quotes",
            benchmark=f"{format_inr_lakhs(pulse.pending_quotes_value)} value",
            recommendation="Prioritize follow-ups to convert 35%+ of pipeline.",
            priority=3,
        ))

    if report and len(report.churn_risks) > 3:
        total_risk = sum(r.total_spent for r in report.churn_risks)
        insights.append(PerformanceInsight(
            type="threat",
            metric="Customer Churn",
            value=f"{len(report.churn_risks)} dormant",
            benchmark=f"{format_inr_lakhs(total_risk)} at risk",
            recommendation="Implement win-back campaign for top 5 accounts.",
            priority=2,
        ))

    if report:
        critical_items = [s for s in report.stockout_risks if s.days_of_cover < STOCKOUT_CRITICAL_DAYS]
        if critical_items:
            insights.append(PerformanceInsight(
                type="threat",
                metric="Inventory Risk",
                value=f"{len(critical_items)} items critical",
                benchmark="< 7 days cover",
                recommendation="Place emergency orders to prevent stockouts.",
                priority=1,
            ))

    return sorted(insights, key=lambda i: i.priority)


def today_focus_score(actions: List[DailyAction]) -> FocusScore:
    """How much needs attention today: 100 minus 25 per critical and 10 per high action"""
    if not actions:
        return FocusScore(score=85, label="All Clear")

    critical_count = sum(1 for a in actions if a.priority == "critical")
    high_count = sum(1 for a in actions if a.priority == "high")
    score = max(0, 100 - critical_count * 25 - high_count * 10)

    if score >= 80:
        label = "On Track"
    elif score >= 60:
        label = "Needs Attention"
    elif score >= 40:
        label = "Action Required"
    else:
        label = "Critical"

    return FocusScore(score=score, label=label)


class CRMActionPlanner:
    """Builds the full action plan from the current aggregates"""

    def __init__(
        self,
        goal_progress: Optional[GoalProgress],
        intelligence_report: Optional[IntelligenceReport],
        pulse: Optional[BusinessPulse]
    ):
        self.goal_progress = goal_progress
        self.intelligence_report = intelligence_report
        self.pulse = pulse

    def plan(self) -> ActionPlan:
        trajectory = compute_goal_trajectory(self.goal_progress)
        actions = generate_daily_actions(
            self.goal_progress, trajectory, self.intelligence_report, self.pulse
        )
        insights = generate_performance_insights(
            self.goal_progress, trajectory, self.intelligence_report, self.pulse
        )
        return ActionPlan(
            goal_trajectory=trajectory,
            daily_actions=actions,
            performance_insights=insights,
            today_focus=today_focus_score(actions),
        )
