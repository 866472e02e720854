"""
Analytics

Water intake timing and food consumption trend.
"""

from .engine import (
    ANALYSIS_DOCUMENT,
    AnalyticsEngine,
    FoodAnalysis,
    WaterAnalysis,
    cluster_minutes,
    daily_totals,
)

__all__ = [
    "ANALYSIS_DOCUMENT",
    "AnalyticsEngine",
    "FoodAnalysis",
    "WaterAnalysis",
    "cluster_minutes",
    "daily_totals",
]
