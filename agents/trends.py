"""
Market Trends Agent
-------------------
Builds one MarketTrends record for an (industry, location) pair from:

  - an economic-indicator provider chain:
      Alpha Vantage (API key) -> FRED (API key) -> World Bank (keyless)
    with a static table of plausible values when every provider fails or
    the chain runs past its time budget
  - REST Countries location metadata
  - industry-level demand trends and funding activity (agents/industry_signals.py)
  - a local heuristic table of industry metrics keyed by IndustryCategory

Architecture:
  MarketTrendsAgent.run(MarketQuery) -> SourceResult[MarketTrends]

The record is tagged REAL when at least one live provider contributed and
SYNTHETIC when it was assembled purely from the local tables.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

import requests

from agents.base import Agent
from agents.classifier import IndustryCategory, classify_industry, is_food_category
from agents.errors import MarketDataError, ProviderFailure
from agents.industry_signals import CrunchbaseProvider, DemandSearchProvider
from agents.providers import BaseProvider, Deadline, provider_budget
from config.settings import Settings, settings as default_settings
from models.schemas import (
    DemandTrends, EconomicIndicators, FundedCompetitor, FundingTrends, GovernmentData,
    IndustryMetrics, MarketQuery, MarketTrends, SourceResult,
)

logger = logging.getLogger(__name__)


# ─── Static Tables ──────────────────────────────────────────────────────────


FALLBACK_ECONOMICS = EconomicIndicators(
    gdp_growth=2.1,
    inflation=3.2,
    unemployment=4.8,
    consumer_spending="Moderate growth",
    business_confidence="Cautiously optimistic",
    source="static estimates",
)

DEFAULT_GROWTH = 2.5

COUNTRY_CODES: Dict[str, str] = {
    "us": "USA",
    "usa": "USA",
    "united states": "USA",
    "canada": "CAN",
    "uk": "GBR",
    "united kingdom": "GBR",
    "germany": "DEU",
    "france": "FRA",
    "japan": "JPN",
}


@dataclass
class IndustryProfile:
    market_size: str
    growth_rate: Optional[float]            # None -> follow GDP growth
    seasonality: List[str]
    key_drivers: List[str]
    regulations: List[str] = field(default_factory=lambda: [
        "Business licensing", "Tax compliance", "Employment regulations"])
    permits: List[str] = field(default_factory=lambda: [
        "Business license", "Operating permit", "Zoning compliance"])


_FOOD_REGULATIONS = ["Food safety regulations", "Liquor licensing", "Health department permits"]
_FOOD_PERMITS = ["Business license", "Food service permit", "Signage permit"]

_PROFILES: Dict[IndustryCategory, IndustryProfile] = {
    IndustryCategory.COFFEE_SHOP: IndustryProfile(
        market_size="$45B globally",
        growth_rate=4.1,
        seasonality=["Morning peaks", "Winter hot drinks"],
        key_drivers=["Remote work trends", "Premium coffee culture", "Location accessibility"],
        regulations=_FOOD_REGULATIONS,
        permits=_FOOD_PERMITS,
    ),
    IndustryCategory.RESTAURANT: IndustryProfile(
        market_size="$899B globally",
        growth_rate=3.2,
        seasonality=["Holiday peaks", "Summer dining"],
        key_drivers=["Consumer spending", "Tourism", "Food delivery trends"],
        regulations=_FOOD_REGULATIONS,
        permits=_FOOD_PERMITS,
    ),
    IndustryCategory.RETAIL: IndustryProfile(
        market_size="$5.5T globally",
        growth_rate=2.8,
        seasonality=["Holiday shopping", "Back-to-school"],
        key_drivers=["E-commerce integration", "Consumer confidence", "Supply chain efficiency"],
        regulations=["Consumer protection laws", "Sales tax compliance", "Product safety standards"],
        permits=["Business license", "Resale permit", "Zoning compliance"],
    ),
    IndustryCategory.TECHNOLOGY: IndustryProfile(
        market_size="$1.8T",
        growth_rate=5.8,
        seasonality=["Generally stable year-round"],
        key_drivers=["Digital transformation demand", "Remote work adoption", "AI/automation trends"],
        regulations=["Data privacy laws", "Software licensing", "Cybersecurity requirements"],
        permits=["Business license", "Professional services permit", "Home office permit"],
    ),
    IndustryCategory.HEALTHCARE: IndustryProfile(
        market_size="$4.3T",
        growth_rate=4.1,
        seasonality=["Flu season demand", "New Year wellness surge", "Summer procedure uptick"],
        key_drivers=["Aging population", "Health awareness", "Insurance coverage expansion"],
        regulations=["HIPAA compliance", "Medical licensing", "FDA regulations"],
    ),
}

_GENERIC_PROFILE = IndustryProfile(
    market_size="Market size varies by location",
    growth_rate=None,
    seasonality=["Seasonal variations apply"],
    key_drivers=["Economic conditions", "Consumer demand", "Technology adoption"],
)

_GROWTH_MULTIPLIERS: Dict[IndustryCategory, float] = {
    IndustryCategory.TECHNOLOGY: 1.5,
    IndustryCategory.HEALTHCARE: 1.3,
    IndustryCategory.ECOMMERCE: 1.6,
    IndustryCategory.FOOD_DELIVERY: 1.4,
    IndustryCategory.EDUCATION: 1.1,
    IndustryCategory.RETAIL: 0.9,
    IndustryCategory.MANUFACTURING: 1.0,
}

SUBSIDIES = [
    "Small Business Administration loans",
    "Industry-specific grants",
    "Tax incentives for startups",
]


def industry_profile(category: IndustryCategory) -> IndustryProfile:
    if category in _PROFILES:
        return _PROFILES[category]
    if is_food_category(category):
        profile = _PROFILES[IndustryCategory.RESTAURANT]
        return IndustryProfile(
            market_size=_GENERIC_PROFILE.market_size,
            growth_rate=None,
            seasonality=_GENERIC_PROFILE.seasonality,
            key_drivers=_GENERIC_PROFILE.key_drivers,
            regulations=profile.regulations,
            permits=profile.permits,
        )
    return _GENERIC_PROFILE


def lookup_country_code(location: str) -> Optional[str]:
    if not location:
        return None
    for candidate in (location, location.split(",")[-1]):
        code = COUNTRY_CODES.get(candidate.strip().lower())
        if code:
            return code
    return None


def country_code(location: str) -> str:
    """ISO-3 code for World Bank queries; unknown locations default to USA."""
    return lookup_country_code(location) or "USA"


# ─── Economic Providers ─────────────────────────────────────────────────────


def _pct_change(latest: float, previous: float) -> Optional[float]:
    if not previous:
        return None
    return round((latest / previous - 1) * 100, 1)


class AlphaVantageProvider(BaseProvider):
    name = "alpha_vantage"

    def fetch(self, location: str, deadline: Optional[Deadline] = None) -> EconomicIndicators:
        key = self._require(self.settings.ALPHA_VANTAGE_API_KEY, "ALPHA_VANTAGE_API_KEY")
        result = EconomicIndicators(source="Alpha Vantage")

        for func in ("REAL_GDP", "INFLATION", "UNEMPLOYMENT"):
            try:
                payload = self._get(
                    self.settings.ALPHA_VANTAGE_BASE,
                    deadline=deadline,
                    params={"function": func, "interval": "annual", "apikey": key},
                )
            except ProviderFailure as e:
                logger.warning(f"Alpha Vantage {func} unavailable: {e}")
                continue

            series = [p for p in payload.get("data", []) if p.get("value") not in (None, ".")]
            if not series:
                # Rate-limit responses come back as 200 with a "Note" / "Information" body
                logger.warning(f"Alpha Vantage {func}: {payload.get('Note') or payload.get('Information') or 'empty series'}")
                continue

            latest = float(series[0]["value"])
            if func == "REAL_GDP" and len(series) > 1:
                result.gdp_growth = _pct_change(latest, float(series[1]["value"]))
            elif func == "INFLATION":
                result.inflation = round(latest, 1)
            elif func == "UNEMPLOYMENT":
                result.unemployment = round(latest, 1)

        return result


class FredProvider(BaseProvider):
    name = "fred"

    # series id -> observations needed
    SERIES = {
        "GDPC1": 5,       # real GDP, quarterly: year over year
        "CPIAUCSL": 13,   # CPI, monthly: year over year
        "UNRATE": 1,
        "PCE": 2,
        "UMCSENT": 1,
    }

    def _observations(self, series_id: str, limit: int, key: str,
                      deadline: Optional[Deadline] = None) -> List[float]:
        payload = self._get(
            f"{self.settings.FRED_BASE}/series/observations",
            deadline=deadline,
            params={
                "series_id": series_id,
                "api_key": key,
                "file_type": "json",
                "sort_order": "desc",
                "limit": limit,
            },
        )
        values = []
        for obs in payload.get("observations", []):
            try:
                values.append(float(obs["value"]))
            except (KeyError, ValueError):
                continue
        return values

    def fetch(self, location: str, deadline: Optional[Deadline] = None) -> EconomicIndicators:
        key = self._require(self.settings.FRED_API_KEY, "FRED_API_KEY")
        result = EconomicIndicators(source="FRED")

        for series_id, limit in self.SERIES.items():
            try:
                values = self._observations(series_id, limit, key, deadline)
            except ProviderFailure as e:
                logger.warning(f"FRED {series_id} unavailable: {e}")
                continue
            if not values:
                continue

            if series_id == "GDPC1" and len(values) >= limit:
                result.gdp_growth = _pct_change(values[0], values[limit - 1])
            elif series_id == "CPIAUCSL" and len(values) >= limit:
                result.inflation = _pct_change(values[0], values[limit - 1])
            elif series_id == "UNRATE":
                result.unemployment = round(values[0], 1)
            elif series_id == "PCE" and len(values) >= 2:
                result.consumer_spending = "Growing" if values[0] > values[1] else "Contracting"
            elif series_id == "UMCSENT":
                result.business_confidence = _confidence_label(values[0])

        return result


def _confidence_label(index: float) -> str:
    if index >= 80:
        return "Optimistic"
    if index >= 60:
        return "Cautiously optimistic"
    return "Pessimistic"


class WorldBankProvider(BaseProvider):
    name = "world_bank"

    INDICATORS = {
        "NY.GDP.MKTP.KD.ZG": "gdp_growth",
        "FP.CPI.TOTL.ZG": "inflation",
        "SL.UEM.TOTL.ZS": "unemployment",
    }

    def fetch(self, location: str, deadline: Optional[Deadline] = None) -> EconomicIndicators:
        code = country_code(location)
        result = EconomicIndicators(source="World Bank")

        for indicator, attr in self.INDICATORS.items():
            url = f"{self.settings.WORLD_BANK_BASE}/country/{code}/indicator/{indicator}"
            try:
                payload = self._get(url, params={"format": "json", "mrv": 1}, deadline=deadline)
            except ProviderFailure as e:
                logger.warning(f"World Bank {indicator} unavailable: {e}")
                continue

            # Shape: [page-meta, [ {value: ...}, ... ]]
            rows = payload[1] if isinstance(payload, list) and len(payload) > 1 else None
            if rows and rows[0].get("value") is not None:
                setattr(result, attr, round(float(rows[0]["value"]), 1))

        return result


class RestCountriesProvider(BaseProvider):
    name = "rest_countries"

    def fetch(self, location: str, deadline: Optional[Deadline] = None) -> Optional[Dict]:
        code = lookup_country_code(location)
        fields = "name,capital,population,region,currencies"
        if code:
            url = f"{self.settings.REST_COUNTRIES_BASE}/alpha/{code}"
        else:
            url = f"{self.settings.REST_COUNTRIES_BASE}/name/{quote(location)}"

        payload = self._get(url, params={"fields": fields}, deadline=deadline)
        row = payload[0] if isinstance(payload, list) and payload else payload
        if not row:
            return None
        return {
            "name": (row.get("name") or {}).get("common"),
            "capital": (row.get("capital") or [None])[0],
            "population": row.get("population"),
            "region": row.get("region"),
            "currencies": sorted((row.get("currencies") or {}).keys()),
        }


# ─── Agent ──────────────────────────────────────────────────────────────────


@dataclass
class LiveInputs:
    """What the live providers produced for one get_market_trends call."""
    economics: EconomicIndicators
    live_economics: bool = False
    location_info: Optional[Dict] = None
    demand_trends: Optional[DemandTrends] = None
    funded_competitors: List[FundedCompetitor] = field(default_factory=list)
    funding_trends: Optional[FundingTrends] = None


class MarketTrendsAgent(Agent):
    """
    Adapter for macro-economic context and industry metrics.
    """

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        super().__init__("MarketTrendsAgent")
        self.settings = settings or default_settings
        self.economic_providers: List[BaseProvider] = [
            AlphaVantageProvider(self.settings, session),
            FredProvider(self.settings, session),
            WorldBankProvider(self.settings, session),
        ]
        self.location_provider = RestCountriesProvider(self.settings, session)
        self.demand_provider = DemandSearchProvider(self.settings, session)
        self.funding_provider = CrunchbaseProvider(self.settings, session)
        self._executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="trends")

    def run(self, query: MarketQuery) -> Optional[SourceResult]:
        return self.get_market_trends(query.industry, query.location, query.category)

    # ── Economic indicators ──

    def fetch_economic_data(self, location: str,
                            deadline: Optional[Deadline] = None) -> Tuple[EconomicIndicators, bool]:
        """Walk the provider chain; returns (indicators, came_from_live_provider)."""
        for provider in self.economic_providers:
            if deadline is not None and deadline.expired:
                self.logger.warning(f"⏱️ Economic provider budget spent before {provider.name}")
                break
            try:
                indicators = provider.fetch(location, deadline=deadline)
            except MarketDataError as e:
                self.logger.info(f"Economic provider {provider.name} skipped: {e}")
                continue
            if indicators.has_data():
                self.logger.info(f"📈 Economic indicators from {indicators.source}")
                return indicators, True
            self.logger.warning(f"Economic provider {provider.name} returned no usable values")

        self.logger.warning("All economic providers failed, using static estimates")
        return self.static_economics(), False

    @staticmethod
    def static_economics() -> EconomicIndicators:
        return EconomicIndicators(**FALLBACK_ECONOMICS.to_dict())

    def fetch_location_data(self, location: str, deadline: Optional[Deadline] = None) -> Optional[Dict]:
        try:
            return self.location_provider.fetch(location, deadline=deadline)
        except MarketDataError as e:
            self.logger.warning(f"Location data unavailable for '{location}': {e}")
            return None

    # ── Industry-level signals ──

    def fetch_demand_trends(self, industry: str, deadline: Optional[Deadline] = None) -> Optional[DemandTrends]:
        try:
            return self.demand_provider.fetch(industry, deadline=deadline)
        except MarketDataError as e:
            self.logger.info(f"Demand trends skipped: {e}")
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            self.logger.error(f"Demand search returned an unexpected payload: {e}")
        return None

    def fetch_funding(self, category: IndustryCategory,
                      deadline: Optional[Deadline] = None) -> Tuple[List[FundedCompetitor], Optional[FundingTrends]]:
        try:
            return self.funding_provider.fetch(category, deadline=deadline)
        except MarketDataError as e:
            self.logger.info(f"Funding data skipped: {e}")
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            self.logger.error(f"Crunchbase returned an unexpected payload: {e}")
        return [], None

    def collect_live_data(self, industry: str, location: str, category: IndustryCategory) -> LiveInputs:
        """
        Run the economic chain, the location lookup and the industry-level
        providers side by side under one provider budget. Whatever is still
        running at the deadline is replaced by its fallback: static economics,
        no location, demand or funding data.
        """
        deadline = Deadline(provider_budget(self.settings))
        economic = self._executor.submit(self.fetch_economic_data, location, deadline)
        place = self._executor.submit(self.fetch_location_data, location, deadline)
        demand = self._executor.submit(self.fetch_demand_trends, industry, deadline)
        funding = self._executor.submit(self.fetch_funding, category, deadline)
        wait([economic, place, demand, funding], timeout=deadline.remaining())

        if economic.done():
            inputs = LiveInputs(*economic.result())
        else:
            self.logger.warning("⏱️ Economic providers still running at the deadline, using static estimates")
            inputs = LiveInputs(self.static_economics())
        if place.done():
            inputs.location_info = place.result()
        if demand.done():
            inputs.demand_trends = demand.result()
        if funding.done():
            inputs.funded_competitors, inputs.funding_trends = funding.result()
        return inputs

    # ── Industry heuristics ──

    @staticmethod
    def industry_metrics(category: IndustryCategory, economics: EconomicIndicators) -> IndustryMetrics:
        profile = industry_profile(category)
        base = economics.gdp_growth if economics.gdp_growth is not None else DEFAULT_GROWTH
        growth = profile.growth_rate if profile.growth_rate is not None else base
        multiplier = _GROWTH_MULTIPLIERS.get(category, 1.0)
        return IndustryMetrics(
            market_size=profile.market_size,
            growth_rate=growth,
            projected_growth=round(base * multiplier, 1),
            seasonality=list(profile.seasonality),
            key_drivers=list(profile.key_drivers),
        )

    @staticmethod
    def government_data(category: IndustryCategory, location: str) -> GovernmentData:
        profile = industry_profile(category)
        return GovernmentData(
            regulations=list(profile.regulations),
            subsidies=list(SUBSIDIES),
            permits=list(profile.permits),
            taxes=f"Standard business tax rates for {location}: Corporate 21%, State varies by location",
        )

    # ── Public operation ──

    def get_market_trends(
        self,
        industry: str,
        location: str = "US",
        category: Optional[IndustryCategory] = None,
    ) -> Optional[SourceResult]:
        category = category or classify_industry(industry)
        self.logger.info(f"🔍 Fetching market trends for {industry} ({category.value}) in {location}")
        try:
            live = self.collect_live_data(industry, location, category)
            economics = live.economics

            sources = []
            if live.live_economics:
                sources.append(economics.source)
            if live.location_info:
                sources.append("REST Countries")
            if live.demand_trends:
                sources.append("Google Search")
            if live.funded_competitors or live.funding_trends:
                sources.append("Crunchbase")

            trends = MarketTrends(
                industry=industry,
                location=location,
                category=category.value,
                economic_indicators=economics,
                industry_metrics=self.industry_metrics(category, economics),
                government_data=self.government_data(category, location),
                location_info=live.location_info,
                demand_trends=live.demand_trends,
                funded_competitors=live.funded_competitors,
                funding_trends=live.funding_trends,
                sources=sources or ["static estimates"],
                last_updated=datetime.utcnow(),
            )
        except Exception as e:
            self.logger.error(f"Market trends assembly failed: {e}")
            return None

        if sources:
            return SourceResult.real(trends)
        return SourceResult.synthetic(trends, "no economic or location provider responded")
