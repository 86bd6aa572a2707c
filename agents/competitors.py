"""
Competitor Locations Agent
--------------------------
Spatial competitor analysis around a location:

  1. Geocode the location (Nominatim / OpenStreetMap)
  2. Query points of interest matching the business category within a radius
     (Overpass API)
  3. Haversine distance from the reference point to every result
  4. Classify density, score the market, pick tiered recommendation texts

Failure handling:
  - geocode failure -> fully synthetic fallback analysis
  - POI query failure -> two deterministic placeholder competitors are
    analyzed instead
Both are tagged SYNTHETIC.
"""

import logging
import math
from typing import Dict, List, Optional

import requests

from agents.base import Agent
from agents.classifier import IndustryCategory, classify_industry
from agents.errors import GeocodeFailure, MarketDataError, ProviderFailure
from agents.providers import BaseProvider
from config.settings import Settings, settings as default_settings
from models.schemas import (
    CompetitorAnalysis, CompetitorRecord, Coordinates, MarketQuery, SourceResult,
)

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371
MAX_RESULTS = 20
NO_ADDRESS = "Address not available"

LOW, MEDIUM, HIGH = "Low", "Medium", "High"


AMENITY_MAP: Dict[IndustryCategory, List[str]] = {
    IndustryCategory.RESTAURANT: ["restaurant", "fast_food", "cafe"],
    IndustryCategory.COFFEE_SHOP: ["cafe"],
    IndustryCategory.RETAIL: ["shop"],
    IndustryCategory.FITNESS: ["gym", "fitness_centre"],
    IndustryCategory.SALON: ["beauty", "hairdresser"],
    IndustryCategory.HEALTHCARE: ["clinic", "doctors"],
    IndustryCategory.PHARMACY: ["pharmacy"],
    IndustryCategory.BAKERY: ["bakery"],
    IndustryCategory.BAR: ["bar", "pub"],
    IndustryCategory.HOTEL: ["hotel", "motel"],
    IndustryCategory.GAS_STATION: ["fuel"],
    IndustryCategory.BANK: ["bank"],
    IndustryCategory.GROCERY: ["supermarket", "convenience"],
}
DEFAULT_AMENITIES = ["shop"]


# ─── Geometry ───────────────────────────────────────────────────────────────


def haversine_meters(a: Coordinates, b: Coordinates) -> int:
    """Great-circle distance between two points, rounded to whole meters."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return round(EARTH_RADIUS_KM * c * 1000)


def format_address(tags: Optional[Dict]) -> str:
    if not tags:
        return NO_ADDRESS
    keys = ("addr:housenumber", "addr:street", "addr:city", "addr:state", "addr:postcode")
    parts = [tags[k] for k in keys if tags.get(k)]
    return ", ".join(parts) if parts else NO_ADDRESS


# ─── Scoring ────────────────────────────────────────────────────────────────


def classify_density(count: int) -> str:
    if count <= 3:
        return LOW
    if count <= 8:
        return MEDIUM
    return HIGH


def competitor_market_score(density: str, count: int, avg_distance: float, radius: float) -> int:
    score = 50

    if density == LOW:
        score += 30
    elif density == MEDIUM:
        score += 10
    else:
        score -= 20

    if count == 0:
        score += 20
    elif count <= 2:
        score += 10
    elif count > 8:
        score -= 15

    if avg_distance > radius * 0.8:
        score += 15
    elif avg_distance < radius * 0.3:
        score -= 10

    return max(0, min(100, score))


_BASE_RECOMMENDATIONS = [
    "Conduct thorough market research before launching",
    "Identify unique value propositions to differentiate",
    "Consider customer needs not being met by existing businesses",
]

_TIERED_RECOMMENDATIONS = {
    LOW: [
        "Great opportunity - low competition in the area",
        "Focus on being the go-to choice for customers",
        "Consider expanding service area to capture more market",
    ],
    MEDIUM: [
        "Moderate competition - differentiation is key",
        "Focus on superior customer service and experience",
        "Consider specialized niche within the market",
    ],
    HIGH: [
        "High competition - strong differentiation required",
        "Consider alternative locations with less competition",
        "Focus on unique selling points and premium positioning",
    ],
}


def recommendations_for(density: str) -> List[str]:
    return _BASE_RECOMMENDATIONS + _TIERED_RECOMMENDATIONS[density]


def opportunities_for(density: str, count: int) -> List[str]:
    opportunities = []
    if density == LOW:
        opportunities.append("First-mover advantage in underserved market")
        opportunities.append("Opportunity to establish strong brand presence")
    if count == 0:
        opportunities.append("No direct competitors identified in immediate area")
    opportunities.append("Potential for customer loyalty building")
    opportunities.append("Room for market expansion and growth")
    return opportunities


def threats_for(density: str, count: int) -> List[str]:
    threats = []
    if density == HIGH:
        threats.append("Intense competition may impact profitability")
        threats.append("Market saturation risk")
        threats.append("Price competition pressure")
    if count > 5:
        threats.append("Established competitors with customer loyalty")
    threats.append("Economic downturns affecting consumer spending")
    threats.append("New competitors entering the market")
    return threats


def analyze_market_density(
    business_type: str,
    location: str,
    radius: int,
    competitors: List[CompetitorRecord],
) -> CompetitorAnalysis:
    count = len(competitors)
    avg_distance = (
        sum(c.distance for c in competitors) / count if count else float(radius)
    )
    density = classify_density(count)
    return CompetitorAnalysis(
        business_type=business_type,
        location=location,
        radius=radius,
        competitor_count=count,
        market_density=density,
        average_distance=avg_distance,
        market_score=competitor_market_score(density, count, avg_distance, radius),
        recommendations=recommendations_for(density),
        opportunities=opportunities_for(density, count),
        threats=threats_for(density, count),
        competitors=competitors,
    )


def fallback_analysis(business_type: str, location: str, radius: int) -> CompetitorAnalysis:
    return CompetitorAnalysis(
        business_type=business_type,
        location=location,
        radius=radius,
        competitor_count=2,
        market_density=MEDIUM,
        average_distance=800,
        market_score=65,
        recommendations=[
            "Conduct local market research to identify competitors",
            "Visit the area to assess business density",
            "Focus on unique value propositions",
            "Consider customer service as key differentiator",
        ],
        opportunities=[
            "Potential for market entry with proper positioning",
            "Local customer base development opportunity",
        ],
        threats=[
            "Unknown competitive landscape",
            "Market conditions require further research",
        ],
    )


def placeholder_competitors(business_type: str, origin: Coordinates) -> List[CompetitorRecord]:
    """Two stand-ins 500 m and 800 m away, used when the POI query fails."""
    records = []
    for index, prefix in enumerate(("Local", "Downtown")):
        # ~0.0045 deg latitude per 500 m
        offset = (500 + index * 300) / 111_000
        records.append(CompetitorRecord(
            name=f"{prefix} {business_type}",
            address=f"{100 + index * 50} Main Street",
            distance=500 + index * 300,
            coordinates=Coordinates(lat=origin.lat + offset, lng=origin.lng),
        ))
    return records


# ─── Providers ──────────────────────────────────────────────────────────────


class NominatimGeocoder(BaseProvider):
    name = "nominatim"

    def geocode(self, location: str) -> Coordinates:
        try:
            rows = self._get(
                f"{self.settings.NOMINATIM_BASE}/search",
                params={"format": "json", "q": location, "limit": 1},
            )
        except ProviderFailure as e:
            raise GeocodeFailure(str(e)) from e
        if not rows:
            raise GeocodeFailure(f"no geocoding match for '{location}'")
        try:
            return Coordinates(lat=float(rows[0]["lat"]), lng=float(rows[0]["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodeFailure(f"malformed geocoding result for '{location}'") from e


class OverpassClient(BaseProvider):
    name = "overpass"

    @staticmethod
    def build_query(amenities: List[str], origin: Coordinates, radius: int) -> str:
        if len(amenities) == 1:
            selector = f'["amenity"="{amenities[0]}"]'
        else:
            selector = f'["amenity"~"^({"|".join(amenities)})$"]'
        around = f"(around:{radius},{origin.lat},{origin.lng})"
        return (
            "[out:json][timeout:25];\n"
            "(\n"
            f"  node{around}{selector};\n"
            f"  way{around}{selector};\n"
            f"  relation{around}{selector};\n"
            ");\n"
            "out center;"
        )

    def find(self, business_type: str, amenities: List[str], origin: Coordinates, radius: int) -> List[CompetitorRecord]:
        payload = self._post(
            self.settings.OVERPASS_URL,
            data={"data": self.build_query(amenities, origin, radius)},
        )
        elements = payload.get("elements") if isinstance(payload, dict) else None
        if elements is None:
            raise ProviderFailure("overpass: response has no 'elements'")

        records = []
        for element in elements[:MAX_RESULTS]:
            center = element.get("center") or {}
            lat = element.get("lat", center.get("lat"))
            lng = element.get("lon", center.get("lon"))
            if lat is None or lng is None:
                continue
            point = Coordinates(lat=float(lat), lng=float(lng))
            tags = element.get("tags") or {}
            records.append(CompetitorRecord(
                name=tags.get("name") or f"{business_type} Location",
                address=format_address(tags),
                distance=haversine_meters(origin, point),
                coordinates=point,
            ))
        return records


# ─── Agent ──────────────────────────────────────────────────────────────────


class CompetitorLocationsAgent(Agent):
    """
    Adapter for nearby competitor density.
    """

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        super().__init__("CompetitorLocationsAgent")
        self.settings = settings or default_settings
        self.geocoder = NominatimGeocoder(self.settings, session)
        self.overpass = OverpassClient(self.settings, session)

    def run(self, query: MarketQuery) -> Optional[SourceResult]:
        return self.get_competitor_analysis(
            query.industry, query.location, query.competitor_radius, query.category
        )

    def get_competitor_analysis(
        self,
        business_type: str,
        location: str,
        radius_meters: int = 5000,
        category: Optional[IndustryCategory] = None,
    ) -> SourceResult:
        category = category or classify_industry(business_type)
        self.logger.info(f"🔍 Analyzing competitors for {business_type} near {location}")

        try:
            origin = self.geocoder.geocode(location)
        except MarketDataError as e:
            self.logger.warning(f"Could not geocode '{location}', using fallback analysis: {e}")
            return SourceResult.synthetic(
                fallback_analysis(business_type, location, radius_meters),
                f"geocoding failed: {e}",
            )

        amenities = AMENITY_MAP.get(category, DEFAULT_AMENITIES)
        try:
            competitors = self.overpass.find(business_type, amenities, origin, radius_meters)
        except MarketDataError as e:
            self.logger.error(f"Overpass query failed, analyzing placeholder competitors: {e}")
            analysis = analyze_market_density(
                business_type, location, radius_meters,
                placeholder_competitors(business_type, origin),
            )
            return SourceResult.synthetic(analysis, f"point-of-interest query failed: {e}")

        self.logger.info(f"📍 {len(competitors)} competitors within {radius_meters}m")
        return SourceResult.real(
            analyze_market_density(business_type, location, radius_meters, competitors)
        )
