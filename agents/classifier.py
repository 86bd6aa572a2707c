"""
Industry Classifier
-------------------
Maps free-text industry / business-type / idea strings onto a single
IndustryCategory. Every lookup table downstream (amenity tags, trend
heuristics, subreddits, financial benchmarks, refresh priority) is keyed
by the category, so a request is classified once and the result is passed
down.

Rules are ordered; the first category with a whole-word keyword hit wins.
"""

import re
from enum import Enum
from typing import Dict, List, Optional, Tuple


class IndustryCategory(str, Enum):
    COFFEE_SHOP = "coffee shop"
    BAKERY = "bakery"
    BAR = "bar"
    RESTAURANT = "restaurant"
    GROCERY = "grocery"
    PHARMACY = "pharmacy"
    FITNESS = "fitness"
    SALON = "salon"
    HEALTHCARE = "healthcare"
    HOTEL = "hotel"
    GAS_STATION = "gas station"
    BANK = "bank"
    TRANSPORTATION = "transportation"
    FOOD_DELIVERY = "food delivery"
    ECOMMERCE = "e-commerce"
    TECHNOLOGY = "technology"
    RETAIL = "retail"
    EDUCATION = "education"
    PROFESSIONAL_SERVICES = "professional services"
    REAL_ESTATE = "real estate"
    MANUFACTURING = "manufacturing"
    ENTERTAINMENT = "entertainment"
    GENERAL = "general"


_RULES: List[Tuple[IndustryCategory, Tuple[str, ...]]] = [
    (IndustryCategory.COFFEE_SHOP, ("coffee", "cafe", "café", "espresso")),
    (IndustryCategory.BAKERY, ("bakery", "bakeries", "patisserie")),
    (IndustryCategory.BAR, ("bar", "pub", "brewery", "taproom")),
    (IndustryCategory.RESTAURANT, ("restaurant", "dining", "bistro", "catering", "eatery")),
    (IndustryCategory.GROCERY, ("grocery", "groceries", "supermarket", "convenience store")),
    (IndustryCategory.PHARMACY, ("pharmacy", "pharmacies", "drugstore")),
    (IndustryCategory.FITNESS, ("fitness", "gym", "yoga", "pilates", "personal trainer")),
    (IndustryCategory.SALON, ("salon", "barber", "barbershop", "spa", "beauty", "hairdresser")),
    (IndustryCategory.HEALTHCARE, ("healthcare", "health", "clinic", "medical", "dental",
                                   "therapy", "wellness", "doctor")),
    (IndustryCategory.HOTEL, ("hotel", "motel", "hostel", "lodging", "bed and breakfast")),
    (IndustryCategory.GAS_STATION, ("gas station", "fuel", "petrol")),
    (IndustryCategory.BANK, ("bank", "banking", "credit union")),
    (IndustryCategory.TRANSPORTATION, ("logistics", "shipping", "courier", "trucking",
                                       "transportation", "freight")),
    (IndustryCategory.FOOD_DELIVERY, ("food delivery", "meal kit", "food", "delivery")),
    (IndustryCategory.ECOMMERCE, ("e-commerce", "ecommerce", "online store", "marketplace")),
    (IndustryCategory.TECHNOLOGY, ("saas", "software", "app", "platform", "digital", "tech",
                                   "technology", "ai", "automation")),
    (IndustryCategory.RETAIL, ("retail", "store", "shop", "boutique")),
    (IndustryCategory.EDUCATION, ("education", "tutoring", "school", "course", "training",
                                  "learning", "teaching")),
    (IndustryCategory.PROFESSIONAL_SERVICES, ("consulting", "coaching", "legal", "accounting",
                                              "agency", "service", "services")),
    (IndustryCategory.REAL_ESTATE, ("real estate", "property", "realtor", "rental")),
    (IndustryCategory.MANUFACTURING, ("manufacturing", "factory", "fabrication")),
    (IndustryCategory.ENTERTAINMENT, ("entertainment", "events", "gaming", "music", "cinema")),
]

_COMPILED: List[Tuple[IndustryCategory, List["re.Pattern"]]] = [
    (category, [re.compile(rf"\b{re.escape(kw)}s?\b") for kw in keywords])
    for category, keywords in _RULES
]


def classify_industry(text: Optional[str]) -> IndustryCategory:
    """Return the first category whose keyword appears as a whole word in `text`."""
    if not text:
        return IndustryCategory.GENERAL
    lowered = text.lower()
    for category, patterns in _COMPILED:
        if any(p.search(lowered) for p in patterns):
            return category
    return IndustryCategory.GENERAL


def classify_business(business_type: Optional[str], business_idea: Optional[str] = None) -> IndustryCategory:
    """Classify by business type first, falling back to the idea text."""
    category = classify_industry(business_type)
    if category == IndustryCategory.GENERAL:
        category = classify_industry(business_idea)
    return category


# ─── Category-keyed lookups ──────────────────────────────────────────────────

_FOOD = {
    IndustryCategory.COFFEE_SHOP, IndustryCategory.BAKERY, IndustryCategory.BAR,
    IndustryCategory.RESTAURANT, IndustryCategory.FOOD_DELIVERY, IndustryCategory.GROCERY,
}

# Scheduler priority tiers. The named tiers group the categories that used to
# be tracked as "Food & Restaurant", "Retail & E-commerce" and so on.
PRIORITY_TIERS: Dict[str, set] = {
    "HIGH": _FOOD | {
        IndustryCategory.TECHNOLOGY, IndustryCategory.ECOMMERCE, IndustryCategory.RETAIL,
        IndustryCategory.HEALTHCARE, IndustryCategory.PHARMACY, IndustryCategory.FITNESS,
        IndustryCategory.PROFESSIONAL_SERVICES,
    },
    "MEDIUM": {
        IndustryCategory.EDUCATION, IndustryCategory.REAL_ESTATE,
        IndustryCategory.MANUFACTURING, IndustryCategory.TRANSPORTATION,
    },
}


def update_priority(category: IndustryCategory) -> str:
    for tier, members in PRIORITY_TIERS.items():
        if category in members:
            return tier
    return "LOW"


def is_food_category(category: IndustryCategory) -> bool:
    return category in _FOOD
