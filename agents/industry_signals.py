"""
Industry-level signals that do not depend on a map location:

  - demand trends read from web search snippets (Google Custom Search):
    direction words ("rising", "down 5%"), seasonal terms and month names
  - funded competitors and funding activity from Crunchbase

Both providers are keyed; without credentials they raise AdapterUnavailable
and MarketTrendsAgent carries on without them.
"""

import logging
import re
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from agents.classifier import IndustryCategory
from agents.errors import ProviderFailure
from agents.providers import BaseProvider, Deadline, strip_html
from models.schemas import (
    YEAR_ROUND, DemandSignal, DemandTrends, FundedCompetitor, FundingInfo, FundingTrends,
)

logger = logging.getLogger(__name__)

MAX_SEARCH_INTEREST = 5
MAX_PEAK_MONTHS = 3
MAX_FUNDED_COMPANIES = 10

_RISING = re.compile(r"\b(rising|growing|increasing|up\s+\d+%|surge|boom)")
_DECLINING = re.compile(r"\b(declining|falling|decreasing|down\s+\d+%|drop|slump)")
_STABLE = re.compile(r"\b(stable|steady|consistent|maintained)\b")
_SEASONAL = re.compile(r"\b(holiday|christmas|summer|winter|spring|fall|q[1-4]|seasonal)\b")
_MONTHS = re.compile(
    r"\b(january|february|march|april|may|june|july|august|september|october|november|december)\b"
)
_PERCENT = re.compile(r"\d+\.?\d*%")

_TITLE_NOISE = {"market", "size", "growth", "trend", "analysis", "report"}


# ─── Demand Trends ──────────────────────────────────────────────────────────


def headline_keyword(title: Optional[str]) -> str:
    words = [w for w in (title or "").split(" ") if len(w) > 3 and w.lower() not in _TITLE_NOISE]
    return words[0] if words else "Market"


def _percentage(text: str) -> Optional[str]:
    match = _PERCENT.search(text)
    return match.group(0) if match else None


def analyze_demand_trends(items: List[Dict]) -> DemandTrends:
    """
    Classify each search result as rising, declining or stable demand and
    collect seasonal hints. The last result that mentions a season decides
    the seasonality text.
    """
    signals: List[DemandSignal] = []
    seasonality = YEAR_ROUND
    months: List[str] = []

    for item in items:
        title = strip_html(item.get("title"))
        text = f"{title} {strip_html(item.get('snippet'))}".lower()

        if _RISING.search(text):
            signals.append(DemandSignal(headline_keyword(title), "rising", _percentage(text) or "N/A"))
        elif _DECLINING.search(text):
            signals.append(DemandSignal(headline_keyword(title), "declining", _percentage(text) or "N/A"))
        elif _STABLE.search(text):
            signals.append(DemandSignal(headline_keyword(title), "stable", "0%"))

        seasons = _SEASONAL.findall(text)
        if seasons:
            seasonality = f"Seasonal patterns detected: {', '.join(seasons[:3])}"

        for month in _MONTHS.findall(text)[:3]:
            month = month.capitalize()
            if month not in months:
                months.append(month)

    return DemandTrends(
        search_interest=signals[:MAX_SEARCH_INTEREST],
        seasonality=seasonality,
        peak_months=months[:MAX_PEAK_MONTHS],
    )


class DemandSearchProvider(BaseProvider):
    name = "google_search"
    RESULTS_PER_QUERY = 5

    @staticmethod
    def queries(industry: str, year: int) -> List[str]:
        return [
            f"{industry} market size {year} {year + 1} growth trends",
            f"{industry} demand rising falling trend",
            f"{industry} consumer interest seasonal patterns",
            f"{industry} business opportunities {year + 1}",
        ]

    def fetch(self, industry: str, deadline: Optional[Deadline] = None) -> Optional[DemandTrends]:
        key = self._require(self.settings.GOOGLE_CSE_API_KEY, "GOOGLE_CSE_API_KEY")
        engine = self._require(self.settings.GOOGLE_CSE_ID, "GOOGLE_CSE_ID")

        items: List[Dict] = []
        for q in self.queries(industry, datetime.utcnow().year):
            try:
                payload = self._get(
                    self.settings.GOOGLE_CSE_BASE,
                    params={"key": key, "cx": engine, "q": q, "num": self.RESULTS_PER_QUERY},
                    deadline=deadline,
                )
            except ProviderFailure as e:
                logger.warning(f"Demand search '{q}' failed: {e}")
                continue
            items.extend(payload.get("items") or [])

        if not items:
            return None
        return analyze_demand_trends(items)


# ─── Funding ────────────────────────────────────────────────────────────────

_FOOD = "food-and-beverage"

CRUNCHBASE_CATEGORIES: Dict[IndustryCategory, str] = {
    IndustryCategory.TECHNOLOGY: "information-technology",
    IndustryCategory.COFFEE_SHOP: _FOOD,
    IndustryCategory.BAKERY: _FOOD,
    IndustryCategory.BAR: _FOOD,
    IndustryCategory.RESTAURANT: _FOOD,
    IndustryCategory.FOOD_DELIVERY: _FOOD,
    IndustryCategory.GROCERY: _FOOD,
    IndustryCategory.RETAIL: "e-commerce",
    IndustryCategory.ECOMMERCE: "e-commerce",
    IndustryCategory.HEALTHCARE: "health-care",
    IndustryCategory.PHARMACY: "health-care",
    IndustryCategory.EDUCATION: "education",
    IndustryCategory.PROFESSIONAL_SERVICES: "professional-services",
    IndustryCategory.MANUFACTURING: "manufacturing",
    IndustryCategory.REAL_ESTATE: "real-estate",
    IndustryCategory.TRANSPORTATION: "transportation",
    IndustryCategory.ENTERTAINMENT: "media-and-entertainment",
    IndustryCategory.BANK: "financial-services",
}


def format_currency(amount: float) -> str:
    if amount >= 1e9:
        return f"${amount / 1e9:.1f}B"
    if amount >= 1e6:
        return f"${amount / 1e6:.1f}M"
    if amount >= 1e3:
        return f"${amount / 1e3:.0f}K"
    return f"${amount:.0f}"


def _funding_usd(props: Dict) -> float:
    return float((props.get("funding_total") or {}).get("value_usd") or 0)


def _investor_name(identifier) -> str:
    # Crunchbase identifiers are {"value": <name>, "permalink": ...}
    if isinstance(identifier, dict):
        return identifier.get("value") or identifier.get("permalink") or "Unknown"
    return str(identifier)


def funded_competitor(props: Dict) -> Optional[FundedCompetitor]:
    name = props.get("name")
    if not name:
        return None
    total = _funding_usd(props)
    funding = None
    if total:
        funding = FundingInfo(
            total_funding=format_currency(total),
            last_round=props.get("last_funding_type") or "Unknown",
            investors=[_investor_name(i) for i in (props.get("investor_identifiers") or [])[:3]],
        )
    description = (props.get("short_description") or "")[:100] or None
    return FundedCompetitor(name=name, description=description, funding=funding)


def analyze_funding_trends(entities: List[Dict]) -> Optional[FundingTrends]:
    if not entities:
        return None
    props = [e.get("properties") or {} for e in entities]
    total = sum(_funding_usd(p) for p in props)
    rounds = [p["last_funding_type"] for p in props if p.get("last_funding_type")]
    return FundingTrends(
        total_funding=format_currency(total),
        avg_funding=format_currency(total / len(entities)),
        most_common_round=Counter(rounds).most_common(1)[0][0] if rounds else "Unknown",
        active_companies=len(entities),
    )


def funding_opportunity(trends: FundingTrends) -> str:
    return f"Funding Activity: {trends.active_companies} companies, avg {trends.avg_funding}"


class CrunchbaseProvider(BaseProvider):
    name = "crunchbase"

    def fetch(self, category: IndustryCategory,
              deadline: Optional[Deadline] = None) -> Tuple[List[FundedCompetitor], Optional[FundingTrends]]:
        key = self._require(self.settings.CRUNCHBASE_API_KEY, "CRUNCHBASE_API_KEY")
        slug = CRUNCHBASE_CATEGORIES.get(category, "other")
        payload = self._post(
            f"{self.settings.CRUNCHBASE_BASE}/searches/organizations",
            json={
                "field_ids": ["name", "short_description", "funding_total",
                              "last_funding_type", "investor_identifiers"],
                "query": [{
                    "type": "predicate",
                    "field_id": "categories",
                    "operator_id": "includes",
                    "values": [slug],
                }],
                "order": [{"field_id": "funding_total", "sort": "desc"}],
                "limit": MAX_FUNDED_COMPANIES,
            },
            headers={"X-cb-user-key": key},
            deadline=deadline,
        )
        entities = payload.get("entities") or []
        companies = [c for c in (funded_competitor(e.get("properties") or {}) for e in entities) if c]
        return companies, analyze_funding_trends(entities)
