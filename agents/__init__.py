from .base import Agent, AgentResult, Orchestrator
from .classifier import IndustryCategory, classify_industry, classify_business
from .trends import MarketTrendsAgent
from .competitors import CompetitorLocationsAgent
from .sentiment import ConsumerSentimentAgent
from .aggregator import MarketDataAggregator

__all__ = [
    "Agent", "AgentResult", "Orchestrator",
    "IndustryCategory", "classify_industry", "classify_business",
    "MarketTrendsAgent", "CompetitorLocationsAgent",
    "ConsumerSentimentAgent", "MarketDataAggregator",
]
