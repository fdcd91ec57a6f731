"""
CRM aggregate schemas

Response shapes of the backend's CRM procedures. Aggregates are immutable
snapshots: a fetch replaces them wholesale, nothing mutates them in place.
"""
from datetime import date
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class _Aggregate(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def null_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        # SQL aggregates over no rows come back as null
        if value is not None:
            return value
        field = cls.model_fields[info.field_name]
        if field.is_required():
            return value
        return field.get_default(call_default_factory=True)


class BusinessPulse(_Aggregate):
    """Current-period snapshot of core business metrics"""

    monthly_sales_target: float = 0
    daily_sales_target: float = 0
    revenue_mtd: float = 0
    revenue_today: float = 0
    customers_this_month: int = 0
    customers_today: int = 0
    deals_this_month: int = 0
    deals_today: int = 0
    avg_deal_value: float = 0
    avg_days_to_close: float = 0
    pending_quotes_count: int = 0
    pending_quotes_value: float = 0
    total_receivables: float = 0
    total_payables: float = 0
    cash_reserves: float = 0
    monthly_burn_rate: float = 0
    top_city: Optional[str] = None
    top_city_revenue: float = 0
    underserved_city: Optional[str] = None
    top_performer_name: Optional[str] = None
    top_performer_revenue: float = 0
    needs_coaching_name: Optional[str] = None
    needs_coaching_reason: Optional[str] = None


class SalespersonPerformance(_Aggregate):
    salesperson_id: str
    salesperson_name: str
    total_revenue: float = 0
    total_deals: int = 0
    avg_deal_value: float = 0
    avg_days_to_close: float = 0
    deals_this_month: int = 0
    revenue_this_month: float = 0


class GeoInsight(_Aggregate):
    city_name: str
    deal_count: int = 0
    total_revenue: float = 0


class ChurnRisk(_Aggregate):
    party_name: str
    phone: Optional[str] = None
    city: Optional[str] = None
    last_order_date: Optional[date] = None
    total_spent: float = 0
    days_since_last_order: int = 0


class StockoutRisk(_Aggregate):
    item_name: str
    current_stock: float = 0
    velocity_30d: float = 0
    days_of_cover: float = 0


class TopProduct(_Aggregate):
    item_name: str
    total_qty: float = 0
    revenue: float = 0


class SalesmanPerformance(_Aggregate):
    salesman_name: str
    deals_closed: int = 0
    total_revenue: float = 0
    avg_ticket_value: float = 0


class ProductMatrix(_Aggregate):
    item_name: str
    revenue: float = 0
    volume: float = 0
    estimated_profit: float = 0
    margin_pct: float = 0


class GapAnalysis(_Aggregate):
    item_name: str
    current_stock: float = 0
    sku: Optional[str] = None
    # the procedure spells this column "tied_captial_value"
    tied_capital_value: float = Field(default=0, validation_alias="tied_captial_value")


class IntelligenceReport(_Aggregate):
    """Risk / opportunity bundle, consumed read-only"""

    churn_risks: List[ChurnRisk] = Field(default_factory=list)
    stockout_risks: List[StockoutRisk] = Field(default_factory=list)
    top_products: List[TopProduct] = Field(default_factory=list)
    geo_insights: List[GeoInsight] = Field(default_factory=list)
    salesman_performance: Optional[List[SalesmanPerformance]] = None
    product_matrix: Optional[List[ProductMatrix]] = None
    gap_analysis: Optional[List[GapAnalysis]] = None


class GoalProgress(_Aggregate):
    """
    Yearly target vs actual for one fiscal year.

    ``success`` is False when no goal has been set for the year; the
    remaining fields then keep their defaults.
    """

    success: bool
    message: Optional[str] = None
    year: Optional[int] = None
    target_amount: float = 0
    actual_revenue: float = 0
    progress_percentage: float = 0
    raw_progress_percentage: float = 0
    days_passed: int = 0
    days_remaining: int = 0
    days_total: int = 0
    required_daily_run_rate: float = 0
    goal_achieved: bool = False
    goal_exceeded: bool = False
    fy_start: Optional[date] = None
    fy_end: Optional[date] = None
