"""
Core data models for the Market Intelligence engine.
"""

from .schemas import (
    Provenance,
    SourceResult,
    MarketQuery,
    MarketDataOptions,
    MarketSignal,
    SentimentAnalysis,
    CompetitorRecord,
    CompetitorAnalysis,
    EconomicIndicators,
    IndustryMetrics,
    MarketTrends,
    ComprehensiveMarketData,
    MarketSnapshot,
    InitialProjections,
    FinancialModel,
    ValidationReport,
    EnhancementResult,
)

__all__ = [
    "Provenance",
    "SourceResult",
    "MarketQuery",
    "MarketDataOptions",
    "MarketSignal",
    "SentimentAnalysis",
    "CompetitorRecord",
    "CompetitorAnalysis",
    "EconomicIndicators",
    "IndustryMetrics",
    "MarketTrends",
    "ComprehensiveMarketData",
    "MarketSnapshot",
    "InitialProjections",
    "FinancialModel",
    "ValidationReport",
    "EnhancementResult",
]
