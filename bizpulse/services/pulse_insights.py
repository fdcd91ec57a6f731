"""
Pulse insights and priority actions

Pure functions over a BusinessPulse snapshot. The only other input is the
calendar day, passed in explicitly so identical inputs always give
identical output. Neither function raises: a missing pulse yields [].
"""
from dataclasses import dataclass, asdict
from datetime import date
from typing import List, Literal, Optional
import math

from bizpulse.models.crm import BusinessPulse
from bizpulse.utils.formatting import format_inr_compact
from bizpulse.utils.helpers import round_half_up

# Approximation, not a business calendar. Replace with a holiday-aware
# lookup when one exists.
ASSUMED_WORKING_DAYS_PER_MONTH = 22

RECEIVABLES_ACTION_THRESHOLD = 50_000
TARGET_EXCEEDED_PCT = 100
TARGET_CLOSING_PCT = 80

DEFAULT_COACHING_REASON = "Below-average deal closure rate or revenue."

ActionType = Literal["urgent", "growth", "efficiency"]


@dataclass(frozen=True)
class PriorityAction:
    priority: int
    action: str
    type: ActionType

    def to_dict(self) -> dict:
        return asdict(self)


def target_progress_pct(pulse: BusinessPulse) -> float:
    """Revenue to date as a percentage of the monthly target (0 without a target)"""
    if pulse.monthly_sales_target <= 0:
        return 0.0
    return pulse.revenue_mtd * 100 / pulse.monthly_sales_target


def working_days_remaining(today: date) -> int:
    return max(1, ASSUMED_WORKING_DAYS_PER_MONTH - today.day)


def required_daily_run_rate(pulse: BusinessPulse, today: date) -> float:
    """Revenue per remaining working day needed to reach the monthly target"""
    gap = pulse.monthly_sales_target - pulse.revenue_mtd
    return gap / working_days_remaining(today)


def generate_insights(pulse: Optional[BusinessPulse], today: date) -> List[str]:
    """
    Human-readable observations about the current month.

    Rules run in a fixed order and each contributes at most one line:
    target progress, deal velocity, pending quotes, top city, underserved
    city, top performer, coaching need, cash-flow warning.
    """
    if pulse is None:
        return []

    insights: List[str] = []

    progress = target_progress_pct(pulse)
    progress_label = round_half_up(progress)
    daily_needed = required_daily_run_rate(pulse, today)

    if progress >= TARGET_EXCEEDED_PCT:
        surplus = pulse.revenue_mtd - pulse.monthly_sales_target
        insights.append(
            f"🎯 You've exceeded your monthly target by {format_inr_compact(surplus)}. Outstanding performance."
        )
    elif progress >= TARGET_CLOSING_PCT:
        insights.append(
            f"📈 You're at {progress_label}% of target. Need {format_inr_compact(daily_needed)}/day to close the gap."
        )
    else:
        insights.append(
            f"⚡ Currently at {progress_label}% of target. Accelerate to {format_inr_compact(daily_needed)}/day to hit goal."
        )

    if pulse.avg_deal_value > 0:
        deals_needed = math.ceil((pulse.monthly_sales_target - pulse.revenue_mtd) / pulse.avg_deal_value)
        insights.append(
            f"You need {deals_needed} more deals at {format_inr_compact(pulse.avg_deal_value)} avg to hit target."
        )

    if pulse.pending_quotes_count > 0:
        insights.append(
            f"{pulse.pending_quotes_count} quotes worth {format_inr_compact(pulse.pending_quotes_value)} pending closure."
        )

    if pulse.top_city:
        insights.append(
            f"Top city: {pulse.top_city} ({format_inr_compact(pulse.top_city_revenue)} this month)."
        )
    if pulse.underserved_city and pulse.underserved_city != pulse.top_city:
        insights.append(
            f"Opportunity: {pulse.underserved_city} is underserved - consider targeted outreach."
        )

    if pulse.top_performer_name:
        insights.append(
            f"Top performer: {pulse.top_performer_name} with {format_inr_compact(pulse.top_performer_revenue)} revenue."
        )
    if pulse.needs_coaching_name and pulse.needs_coaching_name != pulse.top_performer_name:
        reason = pulse.needs_coaching_reason or DEFAULT_COACHING_REASON
        insights.append(f"Coaching needed: {pulse.needs_coaching_name} - {reason}")

    if pulse.total_receivables > pulse.cash_reserves:
        insights.append(
            f"⚠️ Receivables ({format_inr_compact(pulse.total_receivables)}) exceed cash. Prioritize collections."
        )

    return insights


def generate_actions(pulse: Optional[BusinessPulse]) -> List[PriorityAction]:
    """
    Ranked recommendations. Priorities are dense: they count up from 1
    over the rules that fired, in rule order.
    """
    if pulse is None:
        return []

    candidates: List[tuple] = []

    if pulse.pending_quotes_count > 0:
        candidates.append((
            f"Follow up on {pulse.pending_quotes_count} pending quotes "
            f"({format_inr_compact(pulse.pending_quotes_value)} value)",
            "urgent",
        ))

    if pulse.total_receivables > RECEIVABLES_ACTION_THRESHOLD:
        candidates.append((
            f"Collect outstanding receivables of {format_inr_compact(pulse.total_receivables)}",
            "urgent",
        ))

    if pulse.underserved_city:
        candidates.append((
            f"Expand in {pulse.underserved_city} - currently underserved market",
            "growth",
        ))

    if pulse.needs_coaching_name:
        candidates.append((
            f"Coach {pulse.needs_coaching_name} on faster deal closure",
            "efficiency",
        ))

    if pulse.monthly_sales_target - pulse.revenue_mtd > 0:
        candidates.append((
            f"Close {format_inr_compact(pulse.daily_sales_target)} today to stay on track",
            "growth",
        ))

    return [
        PriorityAction(priority=i, action=action, type=action_type)
        for i, (action, action_type) in enumerate(candidates, start=1)
    ]
