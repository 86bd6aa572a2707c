"""
Service wiring: one aggregator, cache manager, scheduler and enhancer per process.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import sessionmaker

from agents.aggregator import MarketDataAggregator
from config.settings import Settings, settings as default_settings
from db.database import SessionLocal
from services.financial_model import FinancialModelEnhancer
from services.market_data import MarketDataManager, format_insights
from services.update_scheduler import MarketUpdateService, UpdateRunReport


@dataclass
class Services:
    aggregator: MarketDataAggregator
    manager: MarketDataManager
    scheduler: MarketUpdateService
    enhancer: FinancialModelEnhancer


def build_services(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
) -> Services:
    settings = settings or default_settings
    session_factory = session_factory or SessionLocal

    aggregator = MarketDataAggregator(settings=settings)
    manager = MarketDataManager(aggregator, session_factory=session_factory, settings=settings)
    return Services(
        aggregator=aggregator,
        manager=manager,
        scheduler=MarketUpdateService(manager),
        enhancer=FinancialModelEnhancer(),
    )


__all__ = [
    "Services", "build_services",
    "MarketDataManager", "MarketUpdateService", "UpdateRunReport",
    "FinancialModelEnhancer", "format_insights",
]
