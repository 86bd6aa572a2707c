"""
Shared fixtures: fake HTTP session, controllable clock, in-memory database
and a scriptable aggregator.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import threading
from datetime import datetime, timedelta

import pytest
import requests

from agents.aggregator import synthesize_market_data
from agents.classifier import classify_industry
from agents.competitors import analyze_market_density
from config.settings import Settings
from db.database import make_session_factory
from models.schemas import (
    CompetitorRecord, Coordinates, EconomicIndicators, GovernmentData,
    IndustryMetrics, MarketTrends, SentimentAnalysis, SourceResult,
)


# ─── Fakes ───────────────────────────────────────────────────────────────────

class FakeClock:
    def __init__(self, start=datetime(2024, 6, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeResponse:
    def __init__(self, payload=None, status_code=200, url=""):
        self.payload = payload
        self.status_code = status_code
        self.url = url

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error for {self.url}")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeHTTPSession:
    """
    Routes requests by (method, url substring); unmatched URLs raise ConnectionError.
    `stall` makes matching URLs block until the given Event is set.
    """

    def __init__(self):
        self.headers = {}
        self.routes = []
        self.stalls = []
        self.calls = []
        self._lock = threading.Lock()

    def add(self, method, url_part, payload=None, status_code=200):
        self.routes.append((method, url_part, payload, status_code))

    def stall(self, url_part, gate):
        self.stalls.append((url_part, gate))

    def request(self, method, url, **kwargs):
        with self._lock:
            self.calls.append((method, url, kwargs))
        for part, gate in self.stalls:
            if part in url:
                gate.wait(5)
                raise requests.ReadTimeout(f"stalled {method} {url}")
        for m, part, payload, status in self.routes:
            if m == method and part in url:
                return FakeResponse(payload, status, url)
        raise requests.ConnectionError(f"no route for {method} {url}")


def make_trends(industry="coffee shop", location="New York, NY", growth=4.1, gdp=2.5):
    return MarketTrends(
        industry=industry,
        location=location,
        category=classify_industry(industry).value,
        economic_indicators=EconomicIndicators(
            gdp_growth=gdp, inflation=3.0, unemployment=4.0,
            business_confidence="Optimistic", source="FRED",
        ),
        industry_metrics=IndustryMetrics(
            market_size="$45B globally",
            growth_rate=growth,
            projected_growth=gdp,
            seasonality=["Morning peaks"],
            key_drivers=["Remote work trends", "Premium coffee culture"],
        ),
        government_data=GovernmentData(subsidies=["Small Business Administration loans"]),
        sources=["FRED"],
    )


def make_competitors(business_type="coffee shop", location="New York, NY", count=2, distance=1000):
    records = [
        CompetitorRecord(
            name=f"Competitor {i}",
            address=f"{i} Main St",
            distance=distance,
            coordinates=Coordinates(lat=40.0, lng=-74.0),
        )
        for i in range(count)
    ]
    return analyze_market_density(business_type, location, 5000, records)


def make_sentiment(industry="coffee shop", location="New York, NY", score=0.4, mentions=60):
    return SentimentAnalysis(
        industry=industry,
        location=location,
        overall_sentiment="POSITIVE" if score > 0.1 else "NEUTRAL",
        sentiment_score=score,
        confidence=0.6,
        total_mentions=mentions,
        trending_topics=["latte", "espresso"],
        recommendations=["Leverage positive sentiment in marketing campaigns"],
    )


def make_market_data(industry="coffee shop", location="New York, NY", real=True,
                     competitor_count=2, competitor_distance=1000):
    wrap = SourceResult.real if real else (lambda d: SourceResult.synthetic(d, "test fallback"))
    return synthesize_market_data(
        industry,
        location,
        classify_industry(industry),
        wrap(make_trends(industry, location)),
        wrap(make_competitors(industry, location, competitor_count, competitor_distance)),
        wrap(make_sentiment(industry, location)),
    )


class FakeAggregator:
    """
    Stands in for MarketDataAggregator.
    `synthetic_for` industries come back with no real data, `gate` (an Event)
    blocks every call until set, `error` is raised when not None.
    """

    def __init__(self):
        self.calls = []
        self.options = []
        self.synthetic_for = set()
        self.gate = None
        self.started = threading.Event()
        self.error = None
        self._lock = threading.Lock()

    def get_comprehensive_market_data(self, industry, location="US", options=None):
        with self._lock:
            self.calls.append((industry, location))
            self.options.append(options)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return make_market_data(industry, location, real=industry not in self.synthetic_for)

    def get_market_data_status(self, probe_industry="coffee shop", probe_location="New York, NY"):
        return {
            "status": "HEALTHY",
            "services": {"market_trends": True, "competitor_analysis": True, "consumer_sentiment": True},
            "last_check": datetime.utcnow().isoformat(),
        }


# ─── Fixtures ────────────────────────────────────────────────────────────────

@pytest.fixture
def test_settings():
    return Settings(
        ALPHA_VANTAGE_API_KEY=None,
        FRED_API_KEY=None,
        NEWS_API_KEY=None,
        TWITTER_BEARER_TOKEN=None,
        GOOGLE_CSE_API_KEY=None,
        GOOGLE_CSE_ID=None,
        CRUNCHBASE_API_KEY=None,
        REQUEST_TIMEOUT=2.0,
        ADAPTER_TIMEOUT=2.0,
        REQUEST_WAIT_SECONDS=2.0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def http():
    return FakeHTTPSession()


@pytest.fixture
def session_factory():
    return make_session_factory("sqlite://")


@pytest.fixture
def fake_aggregator():
    return FakeAggregator()


@pytest.fixture
def market_data_factory():
    return make_market_data


@pytest.fixture
def trends_factory():
    return make_trends


@pytest.fixture
def competitors_factory():
    return make_competitors


@pytest.fixture
def sentiment_factory():
    return make_sentiment
