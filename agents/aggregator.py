"""
Market Data Aggregator
----------------------
Fans out to the three source adapters concurrently and fuses whatever comes
back into one ComprehensiveMarketData assessment.

  - every adapter runs in its own worker with a per-task timeout
  - a failed or timed-out adapter is treated as "no data"; it never cancels
    or blocks the others
  - only REAL adapter output feeds the score, findings, risks and
    reliability; SYNTHETIC fallbacks stay attached for display

Score (clamped to [0, 100]):
  base 50
  trends:      growth > 5% +15, 2-5% +10, < 0 -15;  GDP > 2% +10, < 0 -10
  competitors: +0.3 x competitor score;  Low +15, Medium +5, High -15
  sentiment:   +15 x sentiment score;  mentions > 50 +10, < 10 -5
"""

import logging
import math
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime
from typing import Dict, List, Optional

from agents.base import Agent, Orchestrator
from agents.classifier import IndustryCategory, classify_industry
from agents.competitors import CompetitorLocationsAgent
from agents.sentiment import ConsumerSentimentAgent
from agents.trends import MarketTrendsAgent
from config.settings import Settings, settings as default_settings
from models.schemas import (
    HIGH, LOW, MEDIUM, NEGATIVE,
    CompetitorAnalysis, ComprehensiveMarketData, DataQuality,
    MarketDataOptions, MarketQuery, MarketTrends, SentimentAnalysis, SourceResult,
)

logger = logging.getLogger(__name__)


BASE_RECOMMENDATIONS = [
    "Conduct additional local market research",
    "Develop a strong unique value proposition",
]

MAX_FINDINGS = 6
MAX_RISKS = 5
MAX_RECOMMENDATIONS = 8


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _pct(value: float) -> str:
    return f"{value:.1f}%"


# ─── Synthesis rules ────────────────────────────────────────────────────────


def calculate_market_score(
    trends: Optional[MarketTrends],
    competitors: Optional[CompetitorAnalysis],
    sentiment: Optional[SentimentAnalysis],
) -> int:
    score = 50.0

    if trends:
        growth = trends.industry_metrics.growth_rate
        if growth > 5:
            score += 15
        elif growth > 2:
            score += 10
        elif growth < 0:
            score -= 15

        gdp = trends.economic_indicators.gdp_growth
        if gdp is not None:
            if gdp > 2:
                score += 10
            elif gdp < 0:
                score -= 10

    if competitors:
        score += competitors.market_score * 0.3
        score += {"Low": 15, "Medium": 5, "High": -15}.get(competitors.market_density, 0)

    if sentiment:
        score += sentiment.sentiment_score * 15
        if sentiment.total_mentions > 50:
            score += 10
        elif sentiment.total_mentions < 10:
            score -= 5

    return max(0, min(100, _round_half_up(score)))


def opportunity_level(score: int) -> str:
    if score >= 70:
        return HIGH
    if score >= 50:
        return MEDIUM
    return LOW


def reliability_tier(available: int) -> str:
    if available >= 3:
        return HIGH
    if available == 2:
        return MEDIUM
    return LOW


def extract_key_findings(trends, competitors, sentiment) -> List[str]:
    findings = []

    if trends:
        metrics = trends.industry_metrics
        findings.append(f"Industry growth rate: {_pct(metrics.growth_rate)} annually")
        if metrics.key_drivers:
            findings.append(f"Key market drivers: {', '.join(metrics.key_drivers[:2])}")
        if trends.economic_indicators.inflation is not None:
            findings.append(f"Current inflation rate: {_pct(trends.economic_indicators.inflation)}")

    if competitors:
        findings.append(f"{competitors.competitor_count} competitors found in area")
        findings.append(f"Competition density: {competitors.market_density.lower()}")
        findings.append(f"Average distance to competitors: {_round_half_up(competitors.average_distance)}m")
        if competitors.opportunities:
            findings.append(f"Market opportunity: {competitors.opportunities[0]}")

    if sentiment:
        findings.append(
            f"Consumer sentiment: {sentiment.overall_sentiment.lower()} "
            f"({sentiment.total_mentions} mentions)"
        )
        if sentiment.trending_topics:
            findings.append(f"Trending topics: {', '.join(sentiment.trending_topics[:3])}")

    return findings[:MAX_FINDINGS]


def identify_risk_factors(trends, competitors, sentiment) -> List[str]:
    risks = []

    if trends:
        econ = trends.economic_indicators
        if trends.industry_metrics.growth_rate < 0:
            risks.append("Industry showing negative growth")
        if econ.inflation is not None and econ.inflation > 5:
            risks.append("High inflation may impact consumer spending")
        if econ.unemployment is not None and econ.unemployment > 6:
            risks.append("High unemployment may reduce market demand")

    if competitors:
        if competitors.market_density == "High":
            risks.append("High competition density in area")
        if competitors.competitor_count > 10:
            risks.append("High number of established competitors")
        if competitors.threats:
            risks.append(competitors.threats[0])

    if sentiment:
        if sentiment.overall_sentiment == NEGATIVE:
            risks.append("Negative consumer sentiment toward industry")
        if sentiment.total_mentions < 5:
            risks.append("Low consumer awareness/discussion about industry")
        if sentiment.sentiment_score < -0.3:
            risks.append("Strongly negative public perception")

    return risks[:MAX_RISKS]


def generate_recommendations(trends, competitors, sentiment) -> List[str]:
    recs = list(BASE_RECOMMENDATIONS)

    if trends:
        if trends.industry_metrics.seasonality:
            recs.append(f"Plan for seasonal patterns: {trends.industry_metrics.seasonality[0]}")
        if trends.government_data.subsidies:
            recs.append("Explore available government subsidies and incentives")

    if competitors:
        recs.extend(competitors.recommendations[:2])

    if sentiment:
        recs.extend(sentiment.recommendations[:2])

    return list(dict.fromkeys(recs))[:MAX_RECOMMENDATIONS]


def _real(result: Optional[SourceResult]):
    return result.data if result is not None and result.is_real else None


def synthesize_market_data(
    industry: str,
    location: str,
    category: IndustryCategory,
    trends_result: Optional[SourceResult],
    competitor_result: Optional[SourceResult],
    sentiment_result: Optional[SourceResult],
) -> ComprehensiveMarketData:
    trends = _real(trends_result)
    competitors = _real(competitor_result)
    sentiment = _real(sentiment_result)

    quality = DataQuality(
        trends_available=trends is not None,
        competitor_data_available=competitors is not None,
        sentiment_data_available=sentiment is not None,
        overall_reliability=LOW,
    )
    quality.overall_reliability = reliability_tier(quality.available_count)

    score = calculate_market_score(trends, competitors, sentiment)
    return ComprehensiveMarketData(
        industry=industry,
        location=location,
        category=category.value,
        market_trends=trends_result,
        competitor_analysis=competitor_result,
        consumer_sentiment=sentiment_result,
        market_score=score,
        opportunity_level=opportunity_level(score),
        key_findings=extract_key_findings(trends, competitors, sentiment),
        risk_factors=identify_risk_factors(trends, competitors, sentiment),
        recommendations=generate_recommendations(trends, competitors, sentiment),
        data_quality=quality,
        last_updated=datetime.utcnow(),
    )


# ─── Aggregator ─────────────────────────────────────────────────────────────


class MarketDataAggregator:
    """Single entry point for a fresh, fused market assessment."""

    def __init__(
        self,
        trends_agent: Optional[Agent] = None,
        competitor_agent: Optional[Agent] = None,
        sentiment_agent: Optional[Agent] = None,
        settings: Optional[Settings] = None,
        executor: Optional[Executor] = None,
    ):
        self.settings = settings or default_settings
        self.trends_agent = trends_agent or MarketTrendsAgent(self.settings)
        self.competitor_agent = competitor_agent or CompetitorLocationsAgent(self.settings)
        self.sentiment_agent = sentiment_agent or ConsumerSentimentAgent(self.settings)
        self.executor = executor or ThreadPoolExecutor(
            max_workers=self.settings.MAX_WORKERS, thread_name_prefix="aggregator"
        )
        self.timeout = self.settings.ADAPTER_TIMEOUT

    def _fan_out(self, agents: List[Agent], query: MarketQuery) -> Dict[str, Optional[SourceResult]]:
        orchestrator = Orchestrator(agents, timeout=self.timeout, executor=self.executor)
        results = orchestrator.execute(query)
        return {name: (r.data if r.success else None) for name, r in results.items()}

    def get_comprehensive_market_data(
        self,
        industry: str,
        location: str = "US",
        options: Optional[MarketDataOptions] = None,
    ) -> ComprehensiveMarketData:
        options = options or MarketDataOptions(competitor_radius=self.settings.DEFAULT_COMPETITOR_RADIUS)
        category = classify_industry(industry)
        logger.info(f"🔄 Fetching comprehensive market data for {industry} ({category.value}) in {location}")

        query = MarketQuery(
            industry=industry,
            location=location,
            category=category,
            competitor_radius=options.competitor_radius,
            timeframe=self.settings.DEFAULT_SENTIMENT_TIMEFRAME,
        )

        agents = []
        if options.include_trends:
            agents.append(self.trends_agent)
        if options.include_competitors:
            agents.append(self.competitor_agent)
        if options.include_sentiment:
            agents.append(self.sentiment_agent)

        results = self._fan_out(agents, query) if agents else {}

        data = synthesize_market_data(
            industry,
            location,
            category,
            results.get(self.trends_agent.name),
            results.get(self.competitor_agent.name),
            results.get(self.sentiment_agent.name),
        )
        logger.info(
            f"📊 {industry} / {location}: score={data.market_score} "
            f"level={data.opportunity_level} reliability={data.data_quality.overall_reliability}"
        )
        return data

    def get_market_data_status(
        self,
        probe_industry: str = "coffee shop",
        probe_location: str = "New York, NY",
    ) -> Dict:
        """Health probe: how many adapters currently answer with live data."""
        query = MarketQuery(
            industry=probe_industry,
            location=probe_location,
            category=classify_industry(probe_industry),
            competitor_radius=1000,
            timeframe="1d",
        )
        results = self._fan_out([self.trends_agent, self.competitor_agent, self.sentiment_agent], query)
        services = {
            "market_trends": _real(results.get(self.trends_agent.name)) is not None,
            "competitor_analysis": _real(results.get(self.competitor_agent.name)) is not None,
            "consumer_sentiment": _real(results.get(self.sentiment_agent.name)) is not None,
        }
        active = sum(services.values())
        if active == 3:
            status = "HEALTHY"
        elif active >= 1:
            status = "DEGRADED"
        else:
            status = "DOWN"
        return {"status": status, "services": services, "last_check": datetime.utcnow().isoformat()}
