"""
Configuration & Settings
Market Intelligence & Financial Viability Engine
"""

from pydantic import BaseModel
from typing import Dict, Optional
import os


class Settings(BaseModel):
    # App
    APP_NAME: str = "Market Intelligence & Financial Viability Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    CRON_SECRET: str = os.getenv("CRON_SECRET", "dev-secret-key")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./market_intel.db")

    # Provider credentials (missing key -> provider is skipped)
    ALPHA_VANTAGE_API_KEY: Optional[str] = os.getenv("ALPHA_VANTAGE_API_KEY")
    FRED_API_KEY: Optional[str] = os.getenv("FRED_API_KEY")
    NEWS_API_KEY: Optional[str] = os.getenv("NEWS_API_KEY")
    TWITTER_BEARER_TOKEN: Optional[str] = os.getenv("TWITTER_BEARER_TOKEN")
    GOOGLE_CSE_API_KEY: Optional[str] = os.getenv("GOOGLE_CSE_API_KEY")
    GOOGLE_CSE_ID: Optional[str] = os.getenv("GOOGLE_CSE_ID")
    CRUNCHBASE_API_KEY: Optional[str] = os.getenv("CRUNCHBASE_API_KEY")

    # Provider endpoints
    ALPHA_VANTAGE_BASE: str = "https://www.alphavantage.co/query"
    FRED_BASE: str = "https://api.stlouisfed.org/fred"
    WORLD_BANK_BASE: str = "https://api.worldbank.org/v2"
    REST_COUNTRIES_BASE: str = "https://restcountries.com/v3.1"
    NOMINATIM_BASE: str = "https://nominatim.openstreetmap.org"
    OVERPASS_URL: str = "https://overpass-api.de/api/interpreter"
    REDDIT_BASE: str = "https://www.reddit.com/r"
    NEWS_API_BASE: str = "https://newsapi.org/v2"
    TWITTER_BASE: str = "https://api.twitter.com/2"
    GOOGLE_CSE_BASE: str = "https://www.googleapis.com/customsearch/v1"
    CRUNCHBASE_BASE: str = "https://api.crunchbase.com/api/v4"

    # HTTP
    REQUEST_TIMEOUT: float = 25.0
    USER_AGENT: str = "MarketIntelEngine/1.0 (business plan analysis)"

    # Aggregation
    ADAPTER_TIMEOUT: float = 25.0
    PROVIDER_WAIT_SECONDS: float = 20.0  # capped at 80% of ADAPTER_TIMEOUT
    MAX_WORKERS: int = 8
    DEFAULT_COMPETITOR_RADIUS: int = 5000
    DEFAULT_SENTIMENT_TIMEFRAME: str = "7d"

    # Cache / durable store freshness
    CACHE_TTL_HOURS: float = 24
    CACHE_MAX_ENTRIES: int = 256
    DURABLE_FRESHNESS_DAYS: float = 7
    REQUEST_WAIT_SECONDS: float = 60.0

    # Update scheduler
    UPDATE_INTERVAL_HOURS: Dict[str, float] = {"HIGH": 6, "MEDIUM": 24, "LOW": 168}
    UPDATE_QUEUE_LIMIT: int = 50
    UPDATE_BATCH_SIZE: int = 5
    UPDATE_BATCH_PAUSE_SECONDS: float = 30
    FORCE_UPDATE_LIMIT: int = 100
    FORCE_BATCH_SIZE: int = 3
    FORCE_BATCH_PAUSE_SECONDS: float = 60

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = int(os.getenv("API_PORT", "8000"))


settings = Settings()
