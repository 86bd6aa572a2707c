"""
Core data models / schemas for the Market Intelligence engine.
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


POSITIVE = "POSITIVE"
NEGATIVE = "NEGATIVE"
NEUTRAL = "NEUTRAL"

HIGH = "HIGH"
MEDIUM = "MEDIUM"
LOW = "LOW"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


# ---------------------------------------------------------------------------
# Tagged adapter output
# ---------------------------------------------------------------------------

class Provenance(str, Enum):
    REAL = "REAL"
    SYNTHETIC = "SYNTHETIC"


@dataclass
class SourceResult:
    """Adapter payload tagged with whether it came from a live provider."""
    data: Any
    provenance: Provenance = Provenance.REAL
    reason: Optional[str] = None

    @classmethod
    def real(cls, data: Any) -> "SourceResult":
        return cls(data=data, provenance=Provenance.REAL)

    @classmethod
    def synthetic(cls, data: Any, reason: str) -> "SourceResult":
        return cls(data=data, provenance=Provenance.SYNTHETIC, reason=reason)

    @property
    def is_real(self) -> bool:
        return self.provenance == Provenance.REAL

    def to_dict(self) -> Dict:
        payload = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        return {
            "provenance": self.provenance.value,
            "reason": self.reason,
            "data": payload,
        }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

@dataclass
class MarketDataOptions:
    include_trends: bool = True
    include_competitors: bool = True
    include_sentiment: bool = True
    competitor_radius: int = 5000


@dataclass
class MarketQuery:
    """Input handed to every source adapter in one aggregation."""
    industry: str
    location: str
    category: Any = None             # IndustryCategory, resolved once upstream
    competitor_radius: int = 5000
    timeframe: str = "7d"


# ---------------------------------------------------------------------------
# Sentiment
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Engagement:
    likes: int = 0
    shares: int = 0
    comments: int = 0


@dataclass(frozen=True)
class MarketSignal:
    keyword: str
    platform: str                   # Twitter | Reddit | News
    sentiment: str                  # POSITIVE | NEGATIVE | NEUTRAL
    score: float                    # -1 to +1
    confidence: float               # 0 to 1
    volume: int
    text: str
    timestamp: datetime
    author: Optional[str] = None
    engagement: Optional[Engagement] = None

    @property
    def likes(self) -> int:
        return self.engagement.likes if self.engagement else 0

    def to_dict(self) -> Dict:
        return {
            "keyword": self.keyword,
            "platform": self.platform,
            "sentiment": self.sentiment,
            "score": self.score,
            "confidence": self.confidence,
            "volume": self.volume,
            "text": self.text,
            "timestamp": _iso(self.timestamp),
            "author": self.author,
            "engagement": asdict(self.engagement) if self.engagement else None,
        }


@dataclass
class PlatformSentiment:
    sentiment: str
    score: float
    volume: int


@dataclass
class SentimentAnalysis:
    industry: str
    location: str
    overall_sentiment: str
    sentiment_score: float
    confidence: float
    total_mentions: int
    platform_breakdown: Dict[str, PlatformSentiment] = field(default_factory=dict)
    trending_topics: List[str] = field(default_factory=list)
    key_insights: List[str] = field(default_factory=list)
    daily_trend: List[Dict[str, Any]] = field(default_factory=list)
    weekly_trend: List[Dict[str, Any]] = field(default_factory=list)
    top_mentions: List[MarketSignal] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    last_updated: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict:
        return {
            "industry": self.industry,
            "location": self.location,
            "overall_sentiment": self.overall_sentiment,
            "sentiment_score": self.sentiment_score,
            "confidence": self.confidence,
            "total_mentions": self.total_mentions,
            "platform_breakdown": {k: asdict(v) for k, v in self.platform_breakdown.items()},
            "trending_topics": self.trending_topics,
            "key_insights": self.key_insights,
            "daily_trend": self.daily_trend,
            "weekly_trend": self.weekly_trend,
            "top_mentions": [m.to_dict() for m in self.top_mentions],
            "recommendations": self.recommendations,
            "last_updated": _iso(self.last_updated),
        }


# ---------------------------------------------------------------------------
# Competitors
# ---------------------------------------------------------------------------

@dataclass
class Coordinates:
    lat: float
    lng: float


@dataclass
class CompetitorRecord:
    name: str
    address: str
    distance: int                   # meters from the reference point
    coordinates: Coordinates

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "address": self.address,
            "distance": self.distance,
            "coordinates": asdict(self.coordinates),
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "CompetitorRecord":
        coords = d.get("coordinates") or {}
        return cls(
            name=d["name"],
            address=d.get("address", "Address not available"),
            distance=d.get("distance", 0),
            coordinates=Coordinates(lat=coords.get("lat", 0.0), lng=coords.get("lng", 0.0)),
        )


@dataclass
class CompetitorAnalysis:
    business_type: str
    location: str
    radius: int
    competitor_count: int
    market_density: str             # Low | Medium | High
    average_distance: float
    market_score: int               # 0-100
    recommendations: List[str] = field(default_factory=list)
    opportunities: List[str] = field(default_factory=list)
    threats: List[str] = field(default_factory=list)
    competitors: List[CompetitorRecord] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "business_type": self.business_type,
            "location": self.location,
            "radius": self.radius,
            "competitor_count": self.competitor_count,
            "market_density": self.market_density,
            "average_distance": round(self.average_distance, 1),
            "market_score": self.market_score,
            "recommendations": self.recommendations,
            "opportunities": self.opportunities,
            "threats": self.threats,
            "competitors": [c.to_dict() for c in self.competitors],
        }


@dataclass
class FundingInfo:
    total_funding: str              # formatted, e.g. "$12.5M"
    last_round: str = "Unknown"
    investors: List[str] = field(default_factory=list)


@dataclass
class FundedCompetitor:
    """An industry player known from funding records rather than from a map search."""
    name: str
    description: Optional[str] = None
    funding: Optional[FundingInfo] = None

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "description": self.description,
            "funding": asdict(self.funding) if self.funding else None,
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "FundedCompetitor":
        funding = d.get("funding")
        return cls(
            name=d["name"],
            description=d.get("description"),
            funding=FundingInfo(
                total_funding=funding.get("total_funding", "$0"),
                last_round=funding.get("last_round") or "Unknown",
                investors=list(funding.get("investors") or []),
            ) if funding else None,
        )


@dataclass
class FundingTrends:
    total_funding: str
    avg_funding: str
    most_common_round: str
    active_companies: int


# ---------------------------------------------------------------------------
# Trends
# ---------------------------------------------------------------------------

@dataclass
class EconomicIndicators:
    gdp_growth: Optional[float] = None        # percent
    inflation: Optional[float] = None         # percent
    unemployment: Optional[float] = None      # percent
    consumer_spending: Optional[str] = None
    business_confidence: Optional[str] = None
    source: Optional[str] = None

    FIELDS = ("gdp_growth", "inflation", "unemployment",
              "consumer_spending", "business_confidence")

    def has_data(self) -> bool:
        return any(getattr(self, f) is not None for f in self.FIELDS)

    def fill_missing(self, other: "EconomicIndicators") -> None:
        """Copy fields from `other` only where this record has none."""
        for f in self.FIELDS:
            if getattr(self, f) is None and getattr(other, f) is not None:
                setattr(self, f, getattr(other, f))
        if self.source is None:
            self.source = other.source

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Optional[Dict]) -> "EconomicIndicators":
        d = d or {}
        return cls(**{k: d.get(k) for k in cls.FIELDS + ("source",)})


@dataclass
class IndustryMetrics:
    market_size: str
    growth_rate: float              # percent per year
    projected_growth: float         # percent per year
    seasonality: List[str] = field(default_factory=list)
    key_drivers: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Optional[Dict]) -> Optional["IndustryMetrics"]:
        if not d:
            return None
        return cls(
            market_size=d.get("market_size", "N/A"),
            growth_rate=d.get("growth_rate", 0.0),
            projected_growth=d.get("projected_growth", 0.0),
            seasonality=list(d.get("seasonality") or []),
            key_drivers=list(d.get("key_drivers") or []),
        )


YEAR_ROUND = "Year-round demand"


@dataclass
class DemandSignal:
    keyword: str
    trend: str                      # rising | declining | stable
    change_percent: str             # "12%", "0%" or "N/A"


@dataclass
class DemandTrends:
    search_interest: List[DemandSignal] = field(default_factory=list)
    seasonality: str = YEAR_ROUND
    peak_months: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Optional[Dict]) -> Optional["DemandTrends"]:
        if not d:
            return None
        return cls(
            search_interest=[DemandSignal(**s) for s in d.get("search_interest") or []],
            seasonality=d.get("seasonality") or YEAR_ROUND,
            peak_months=list(d.get("peak_months") or []),
        )


@dataclass
class GovernmentData:
    regulations: List[str] = field(default_factory=list)
    subsidies: List[str] = field(default_factory=list)
    permits: List[str] = field(default_factory=list)
    taxes: str = ""


@dataclass
class MarketTrends:
    industry: str
    location: str
    category: str
    economic_indicators: EconomicIndicators
    industry_metrics: IndustryMetrics
    government_data: GovernmentData
    location_info: Optional[Dict[str, Any]] = None
    demand_trends: Optional[DemandTrends] = None
    funded_competitors: List[FundedCompetitor] = field(default_factory=list)
    funding_trends: Optional[FundingTrends] = None
    sources: List[str] = field(default_factory=list)
    last_updated: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict:
        return {
            "industry": self.industry,
            "location": self.location,
            "category": self.category,
            "economic_indicators": self.economic_indicators.to_dict(),
            "industry_metrics": self.industry_metrics.to_dict(),
            "government_data": asdict(self.government_data),
            "location_info": self.location_info,
            "demand_trends": self.demand_trends.to_dict() if self.demand_trends else None,
            "funded_competitors": [c.to_dict() for c in self.funded_competitors],
            "funding_trends": asdict(self.funding_trends) if self.funding_trends else None,
            "sources": self.sources,
            "last_updated": _iso(self.last_updated),
        }


# ---------------------------------------------------------------------------
# Aggregated output
# ---------------------------------------------------------------------------

@dataclass
class DataQuality:
    trends_available: bool
    competitor_data_available: bool
    sentiment_data_available: bool
    overall_reliability: str        # HIGH | MEDIUM | LOW

    @property
    def available_count(self) -> int:
        return sum([self.trends_available, self.competitor_data_available,
                    self.sentiment_data_available])


@dataclass
class ComprehensiveMarketData:
    industry: str
    location: str
    category: str
    market_trends: Optional[SourceResult]
    competitor_analysis: Optional[SourceResult]
    consumer_sentiment: Optional[SourceResult]
    market_score: int
    opportunity_level: str
    key_findings: List[str]
    risk_factors: List[str]
    recommendations: List[str]
    data_quality: DataQuality
    last_updated: datetime = field(default_factory=datetime.utcnow)

    @property
    def has_real_data(self) -> bool:
        return self.data_quality.available_count > 0

    def to_dict(self) -> Dict:
        def _src(r: Optional[SourceResult]):
            return r.to_dict() if r else None

        return {
            "industry": self.industry,
            "location": self.location,
            "category": self.category,
            "market_trends": _src(self.market_trends),
            "competitor_analysis": _src(self.competitor_analysis),
            "consumer_sentiment": _src(self.consumer_sentiment),
            "market_score": self.market_score,
            "opportunity_level": self.opportunity_level,
            "key_findings": self.key_findings,
            "risk_factors": self.risk_factors,
            "recommendations": self.recommendations,
            "data_quality": asdict(self.data_quality),
            "last_updated": _iso(self.last_updated),
        }


@dataclass
class MarketSnapshot:
    """Unit of caching and persistence: one per (industry, geographic scope)."""
    industry: str
    location: str
    economic_indicators: EconomicIndicators
    industry_metrics: Optional[IndustryMetrics]
    competitors: List[CompetitorRecord]
    sentiment_summary: Optional[Dict[str, Any]]
    trends: List[str]
    opportunities: List[str]
    risks: List[str]
    market_score: int
    reliability: str
    last_updated: datetime
    sources: List[str] = field(default_factory=list)
    demand_trends: Optional[DemandTrends] = None
    funded_competitors: List[FundedCompetitor] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "industry": self.industry,
            "location": self.location,
            "economic_indicators": self.economic_indicators.to_dict(),
            "industry_metrics": self.industry_metrics.to_dict() if self.industry_metrics else None,
            "competitors": [c.to_dict() for c in self.competitors],
            "sentiment_summary": self.sentiment_summary,
            "trends": self.trends,
            "opportunities": self.opportunities,
            "risks": self.risks,
            "market_score": self.market_score,
            "reliability": self.reliability,
            "last_updated": _iso(self.last_updated),
            "sources": self.sources,
            "demand_trends": self.demand_trends.to_dict() if self.demand_trends else None,
            "funded_competitors": [c.to_dict() for c in self.funded_competitors],
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "MarketSnapshot":
        return cls(
            industry=d["industry"],
            location=d["location"],
            economic_indicators=EconomicIndicators.from_dict(d.get("economic_indicators")),
            industry_metrics=IndustryMetrics.from_dict(d.get("industry_metrics")),
            competitors=[CompetitorRecord.from_dict(c) for c in d.get("competitors") or []],
            sentiment_summary=d.get("sentiment_summary"),
            trends=list(d.get("trends") or []),
            opportunities=list(d.get("opportunities") or []),
            risks=list(d.get("risks") or []),
            market_score=d.get("market_score", 50),
            reliability=d.get("reliability", LOW),
            last_updated=_parse_dt(d.get("last_updated")) or datetime.utcnow(),
            sources=list(d.get("sources") or []),
            demand_trends=DemandTrends.from_dict(d.get("demand_trends")),
            funded_competitors=[FundedCompetitor.from_dict(c) for c in d.get("funded_competitors") or []],
        )


# ---------------------------------------------------------------------------
# Financial model
# ---------------------------------------------------------------------------

@dataclass
class InitialProjections:
    monthly_revenue: float = 1000
    monthly_costs: float = 2000
    initial_investment: float = 15000
    growth_capital: Optional[float] = None    # defaults to initial_investment
    customers: int = 100
    cac: Optional[float] = None
    gross_margin: Optional[float] = None      # overrides the benchmark margin
    business_idea: str = ""


@dataclass
class Benchmark:
    family: str
    gross_margin: float
    churn_rate: float
    ltv_cac_ratio: float
    growth_rate: float


@dataclass
class RevenueModel:
    monthly: List[float]
    annual: float
    growth_rate: float
    revenue_streams: List[str] = field(default_factory=list)


@dataclass
class CostModel:
    monthly: List[float]
    annual: float
    fixed_costs: float
    variable_costs: float
    breakdown: Dict[str, float] = field(default_factory=dict)


@dataclass
class UnitMetrics:
    cac: float
    ltv: float
    churn_rate: float
    arpu: float
    gross_margin: float
    contribution_margin: float

    @property
    def ltv_cac_ratio(self) -> float:
        return self.ltv / self.cac if self.cac else 0.0


@dataclass
class CashFlowModel:
    monthly: List[float]
    cumulative: List[float]
    break_even_month: int
    runway_months: int


@dataclass
class FundingRequirement:
    initial_investment: float
    working_capital: float
    growth_capital: float

    @property
    def total_required(self) -> float:
        return self.initial_investment + self.working_capital + self.growth_capital


@dataclass
class FinancialModel:
    revenue: RevenueModel
    costs: CostModel
    metrics: UnitMetrics
    cash_flow: CashFlowModel
    funding_requirement: FundingRequirement

    def to_dict(self) -> Dict:
        metrics = asdict(self.metrics)
        metrics["ltv_cac_ratio"] = round(self.metrics.ltv_cac_ratio, 4)
        funding = asdict(self.funding_requirement)
        funding["total_required"] = self.funding_requirement.total_required
        return {
            "revenue": asdict(self.revenue),
            "costs": asdict(self.costs),
            "metrics": metrics,
            "cash_flow": asdict(self.cash_flow),
            "funding_requirement": funding,
        }


@dataclass
class ValidationIssue:
    severity: str                   # ERROR | WARNING | SUGGESTION
    category: str                   # REVENUE | COSTS | METRICS | CASHFLOW | FUNDING | MARKET
    message: str
    impact: str                     # HIGH | MEDIUM | LOW
    recommendation: str


@dataclass
class ValidationReport:
    is_realistic: bool
    consistency_score: int
    issues: List[ValidationIssue] = field(default_factory=list)
    improvements: Optional[FinancialModel] = None

    def to_dict(self) -> Dict:
        return {
            "is_realistic": self.is_realistic,
            "consistency_score": self.consistency_score,
            "issues": [asdict(i) for i in self.issues],
            "improvements": self.improvements.to_dict() if self.improvements else None,
        }


@dataclass
class EnhancementResult:
    model: FinancialModel           # pre-correction
    validation: ValidationReport
    benchmark: Benchmark

    @property
    def corrected_model(self) -> Optional[FinancialModel]:
        return self.validation.improvements

    def to_dict(self) -> Dict:
        return {
            "model": self.model.to_dict(),
            "validation": self.validation.to_dict(),
            "benchmark": asdict(self.benchmark),
        }
