"""Response schemas for the hosted backend"""

from bizpulse.models.crm import (
    BusinessPulse,
    SalespersonPerformance,
    GeoInsight,
    ChurnRisk,
    StockoutRisk,
    TopProduct,
    SalesmanPerformance,
    ProductMatrix,
    GapAnalysis,
    IntelligenceReport,
    GoalProgress,
)
from bizpulse.models.meetings import Meeting

__all__ = [
    "BusinessPulse",
    "SalespersonPerformance",
    "GeoInsight",
    "ChurnRisk",
    "StockoutRisk",
    "TopProduct",
    "SalesmanPerformance",
    "ProductMatrix",
    "GapAnalysis",
    "IntelligenceReport",
    "GoalProgress",
    "Meeting",
]
