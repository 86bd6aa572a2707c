"""
Market Data Manager
-------------------
Read-through cache in front of the aggregator.

Lookup order for (industry, location):
  1. in-memory TTL cache (24h from insertion, bounded LRU)
  2. durable store, fresh while last_updated is under 7 days old
  3. aggregator fan-out, coalesced per key (single-flight); the fused
     snapshot is upserted on (industry, geographic_scope) and cached

A caller that gives up waiting on step 3 gets the stale durable snapshot (or
None) and the fetch still completes and fills the cache for the next caller.
Persistence errors are logged and never block the answer.

Output for the plan generator:
  get_market_insights_for_prompt(industry, location) -> str
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from agents.aggregator import MarketDataAggregator
from agents.errors import MarketDataError, PersistenceFailure, ProviderFailure
from agents.industry_signals import funding_opportunity
from config.settings import Settings, settings as default_settings
from db.database import get_db
from db.models import MarketTrendRecord
from models.schemas import (
    CompetitorAnalysis, CompetitorRecord, ComprehensiveMarketData, EconomicIndicators,
    DemandTrends, FundedCompetitor, IndustryMetrics, MarketDataOptions, MarketSnapshot,
    MarketTrends, SentimentAnalysis, SourceResult, YEAR_ROUND,
)
from utils.singleflight import SingleFlight
from utils.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

MAX_COMPETITORS = 5
GLOBAL_SCOPE = "global"


# ─── Merge ──────────────────────────────────────────────────────────────────


@dataclass
class SourcePayload:
    """The slice of one adapter's output that feeds a MarketSnapshot."""
    source: str
    economic: Optional[EconomicIndicators] = None
    industry_metrics: Optional[IndustryMetrics] = None
    competitors: List[CompetitorRecord] = field(default_factory=list)
    trends: List[str] = field(default_factory=list)
    opportunities: List[str] = field(default_factory=list)
    sentiment_summary: Optional[Dict] = None
    demand_trends: Optional[DemandTrends] = None
    funded_competitors: List[FundedCompetitor] = field(default_factory=list)


def payload_from(result: SourceResult) -> Optional[SourcePayload]:
    data = result.data
    if isinstance(data, MarketTrends):
        return SourcePayload(
            source="market_trends",
            economic=data.economic_indicators,
            industry_metrics=data.industry_metrics,
            trends=list(data.industry_metrics.key_drivers),
            demand_trends=data.demand_trends,
            funded_competitors=list(data.funded_competitors),
            opportunities=[funding_opportunity(data.funding_trends)] if data.funding_trends else [],
        )
    if isinstance(data, CompetitorAnalysis):
        return SourcePayload(
            source="competitor_analysis",
            competitors=list(data.competitors),
            opportunities=list(data.opportunities),
        )
    if isinstance(data, SentimentAnalysis):
        return SourcePayload(
            source="consumer_sentiment",
            trends=[f"Trending topic: {t}" for t in data.trending_topics],
            sentiment_summary={
                "overall_sentiment": data.overall_sentiment,
                "sentiment_score": data.sentiment_score,
                "confidence": data.confidence,
                "total_mentions": data.total_mentions,
                "trending_topics": list(data.trending_topics),
            },
        )
    return None


def merge_payloads(payloads: List[SourcePayload]) -> Dict:
    """
    Fold payloads in order. Competitors are de-duplicated by exact name and
    capped at 5 (funded competitors separately), trend strings are
    de-duplicated, and every scalar field is first-wins (later sources only
    fill what earlier ones left empty).
    """
    economic = EconomicIndicators()
    metrics: Optional[IndustryMetrics] = None
    demand: Optional[DemandTrends] = None
    sentiment: Optional[Dict] = None
    competitors: List[CompetitorRecord] = []
    seen_names = set()
    funded: List[FundedCompetitor] = []
    trends: List[str] = []
    opportunities: List[str] = []

    for p in payloads:
        if p.economic is not None:
            economic.fill_missing(p.economic)
        if metrics is None:
            metrics = p.industry_metrics
        if sentiment is None:
            sentiment = p.sentiment_summary
        if demand is None:
            demand = p.demand_trends
        for c in p.competitors:
            if c.name not in seen_names and len(competitors) < MAX_COMPETITORS:
                seen_names.add(c.name)
                competitors.append(c)
        for f in p.funded_competitors:
            if all(f.name != g.name for g in funded) and len(funded) < MAX_COMPETITORS:
                funded.append(f)
        trends.extend(t for t in p.trends if t not in trends)
        opportunities.extend(o for o in p.opportunities if o not in opportunities)

    return {
        "economic_indicators": economic,
        "industry_metrics": metrics,
        "competitors": competitors,
        "trends": trends,
        "opportunities": opportunities,
        "sentiment_summary": sentiment,
        "demand_trends": demand,
        "funded_competitors": funded,
    }


def build_snapshot(data: ComprehensiveMarketData, now: datetime) -> MarketSnapshot:
    results = [data.market_trends, data.competitor_analysis, data.consumer_sentiment]
    # real payloads take precedence over synthetic fallbacks
    ordered = [r for r in results if r is not None and r.is_real]
    ordered += [r for r in results if r is not None and not r.is_real]
    payloads = []
    sources = []
    for r in ordered:
        p = payload_from(r)
        if p is None:
            continue
        payloads.append(p)
        if r.is_real:
            sources.append(p.source)
    merged = merge_payloads(payloads)

    return MarketSnapshot(
        industry=data.industry,
        location=data.location,
        market_score=data.market_score,
        reliability=data.data_quality.overall_reliability,
        risks=list(data.risk_factors),
        last_updated=now,
        sources=sources,
        **merged,
    )


def key_competitor_names(snapshot: MarketSnapshot, limit: int = 3) -> List[str]:
    """Nearby competitors first, then funded industry players with the amount raised."""
    names = [c.name for c in snapshot.competitors]
    for f in snapshot.funded_competitors:
        if f.name in names:
            continue
        names.append(f"{f.name} ({f.funding.total_funding} raised)" if f.funding else f.name)
    return names[:limit]


def format_insights(snapshot: MarketSnapshot) -> str:
    econ = snapshot.economic_indicators
    metrics = snapshot.industry_metrics

    def pct(v: Optional[float]) -> str:
        return f"{v:.1f}%" if v is not None else "N/A"

    parts = []
    if metrics:
        parts.append(f"Market Size: {metrics.market_size}")
        parts.append(f"Growth Rate: {pct(metrics.growth_rate)}")
        parts.append(f"Projected Growth: {pct(metrics.projected_growth)}")
    parts.append(
        f"Economic Context ({snapshot.location}): GDP Growth {pct(econ.gdp_growth)}, "
        f"Inflation {pct(econ.inflation)}"
    )
    parts.append(f"Unemployment: {pct(econ.unemployment)}")
    if econ.business_confidence:
        parts.append(f"Business Confidence: {econ.business_confidence}")
    demand = snapshot.demand_trends
    if demand and demand.search_interest:
        parts.append("Demand Trends: " + ", ".join(
            f"{s.keyword} ({s.trend})" for s in demand.search_interest
        ))
    if metrics and metrics.seasonality:
        parts.append(f"Seasonality: {', '.join(metrics.seasonality)}")
    if demand and demand.seasonality != YEAR_ROUND:
        parts.append(f"Search Seasonality: {demand.seasonality}")
    if demand and demand.peak_months:
        parts.append(f"Peak Months: {', '.join(demand.peak_months)}")
    names = key_competitor_names(snapshot)
    if names:
        parts.append(f"Key Competitors: {', '.join(names)}")
    if snapshot.trends:
        parts.append(f"Market Trends: {', '.join(snapshot.trends[:2])}")
    if snapshot.sentiment_summary:
        s = snapshot.sentiment_summary
        parts.append(
            f"Consumer Sentiment: {str(s.get('overall_sentiment', 'N/A')).lower()} "
            f"({s.get('total_mentions', 0)} mentions)"
        )
    if snapshot.opportunities:
        parts.append(f"Opportunities: {', '.join(snapshot.opportunities[:2])}")
    parts.append(f"Market Score: {snapshot.market_score}/100 ({snapshot.reliability} reliability)")

    kept = [p for p in parts if "N/A" not in p and "not available" not in p.lower()]
    return f"ENHANCED MARKET INTELLIGENCE ({snapshot.last_updated:%a %b %d %Y}): " + " | ".join(kept)


# ─── Manager ────────────────────────────────────────────────────────────────


class MarketDataManager:

    def __init__(
        self,
        aggregator: MarketDataAggregator,
        session_factory: Optional[sessionmaker] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        executor: Optional[Executor] = None,
    ):
        self.aggregator = aggregator
        self.session_factory = session_factory
        self.settings = settings or default_settings
        self.clock = clock
        self.cache = TTLCache(
            ttl=timedelta(hours=self.settings.CACHE_TTL_HOURS),
            max_entries=self.settings.CACHE_MAX_ENTRIES,
            clock=clock,
        )
        self.freshness = timedelta(days=self.settings.DURABLE_FRESHNESS_DAYS)
        self.singleflight = SingleFlight(
            executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="market-data")
        )

    @staticmethod
    def scope(location: Optional[str]) -> str:
        return (location or "").strip() or GLOBAL_SCOPE

    def fetch_options(self, scope: str) -> MarketDataOptions:
        """A global scope has no place to search around, so competitors are left out."""
        return MarketDataOptions(
            include_competitors=scope != GLOBAL_SCOPE,
            competitor_radius=self.settings.DEFAULT_COMPETITOR_RADIUS,
        )

    def cache_key(self, industry: str, location: Optional[str]) -> Tuple[str, str]:
        return industry.strip(), self.scope(location)

    # ── Durable store ──

    def load_snapshot(self, industry: str, location: Optional[str]) -> Optional[MarketSnapshot]:
        if self.session_factory is None:
            return None
        name, scope = self.cache_key(industry, location)
        try:
            with get_db(self.session_factory) as db:
                record = (
                    db.query(MarketTrendRecord)
                    .filter_by(industry=name, geographic_scope=scope)
                    .first()
                )
                return record.to_snapshot() if record else None
        except SQLAlchemyError as e:
            logger.error(f"Durable store read failed for {name}/{scope}: {e}")
            return None

    def save_snapshot(self, snapshot: MarketSnapshot) -> None:
        """Upsert on (industry, geographic_scope). Raises PersistenceFailure."""
        if self.session_factory is None:
            return
        name, scope = self.cache_key(snapshot.industry, snapshot.location)

        def _upsert():
            with get_db(self.session_factory) as db:
                record = (
                    db.query(MarketTrendRecord)
                    .filter_by(industry=name, geographic_scope=scope)
                    .first()
                )
                if record is None:
                    record = MarketTrendRecord(industry=name, geographic_scope=scope)
                    db.add(record)
                record.apply(snapshot)

        try:
            try:
                _upsert()
            except IntegrityError:
                # another writer inserted the row between our select and insert
                logger.info(f"Concurrent insert for {name}/{scope}, retrying as update")
                _upsert()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"upsert failed for {name}/{scope}: {e}") from e
        logger.info(f"💾 Saved market data for {name} ({scope})")

    def is_fresh(self, snapshot: MarketSnapshot) -> bool:
        return self.clock() - snapshot.last_updated < self.freshness

    # ── Fetch path ──

    def _fetch_and_store(self, industry: str, location: Optional[str]) -> Tuple[MarketSnapshot, bool, bool]:
        """Returns (snapshot, has_real_data, persisted)."""
        key = self.cache_key(industry, location)
        scope = self.scope(location)
        data = self.aggregator.get_comprehensive_market_data(industry, scope, self.fetch_options(scope))
        snapshot = build_snapshot(data, self.clock())

        if not data.has_real_data:
            logger.warning(f"No live market data for {key}; returning uncached fallback")
            return snapshot, False, False

        persisted = True
        try:
            self.save_snapshot(snapshot)
        except PersistenceFailure as e:
            persisted = False
            logger.error(f"⚠️ {e}")
        self.cache.set(key, snapshot)
        return snapshot, True, persisted

    def get_market_data(self, industry: str, location: Optional[str] = None) -> Optional[MarketSnapshot]:
        key = self.cache_key(industry, location)

        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"📦 Cache hit for {key}")
            return cached

        stored = self.load_snapshot(industry, location)
        if stored is not None and self.is_fresh(stored):
            logger.info(f"🗄️ Fresh durable data for {key}")
            self.cache.set(key, stored)
            return stored

        logger.info(f"🌐 Fetching market data for {key}")
        future = self.singleflight.do(key, self._fetch_and_store, industry, location)
        try:
            snapshot, _, _ = future.result(timeout=self.settings.REQUEST_WAIT_SECONDS)
            return snapshot
        except FutureTimeout:
            logger.warning(
                f"Gave up waiting on {key} after {self.settings.REQUEST_WAIT_SECONDS}s; "
                f"fetch continues in background"
            )
        except Exception as e:
            logger.error(f"Market data fetch failed for {key}: {e}")
        return stored

    def force_refresh(self, industry: str, location: Optional[str] = None) -> MarketSnapshot:
        """
        Fetch bypassing both the cache and durable freshness.
        Raises ProviderFailure when no live data came back and
        PersistenceFailure when the result could not be stored.
        """
        key = self.cache_key(industry, location)
        self.cache.delete(key)
        future = self.singleflight.do(key, self._fetch_and_store, industry, location)
        snapshot, real, persisted = future.result()
        if not real:
            raise ProviderFailure(f"no provider returned live data for {key}")
        if not persisted and self.session_factory is not None:
            raise PersistenceFailure(f"refreshed data for {key} was not stored")
        return snapshot

    def refresh_market_data(self, industry: str, location: Optional[str] = None) -> bool:
        try:
            self.force_refresh(industry, location)
            return True
        except MarketDataError as e:
            logger.warning(f"Refresh failed for {industry}/{self.scope(location)}: {e}")
            return False

    # ── Plan generator interface ──

    def get_market_insights_for_prompt(self, industry: str, location: Optional[str] = None) -> str:
        try:
            snapshot = self.get_market_data(industry, location)
        except Exception as e:
            logger.error(f"Market insights unavailable for {industry}: {e}")
            snapshot = None

        if snapshot is None:
            return f"Market data for {industry} is being updated. Using general industry analysis."
        return format_insights(snapshot)

    # ── Maintenance ──

    def get_cached_industries(self) -> List[str]:
        return [f"{industry}_{scope}" for industry, scope in self.cache.keys()]

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("🗑️ Market data cache cleared")
