"""
FastAPI Route Handlers
Market Intelligence & Financial Viability Engine
"""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from api.schemas import (
    EnhanceModelRequest, HealthResponse, InsightsResponse,
    MarketUpdateRequest, MarketUpdateResponse,
)
from config.settings import settings
from models.schemas import InitialProjections, MarketDataOptions
from services import Services, build_services

logger = logging.getLogger(__name__)

router = APIRouter()

UPDATE_ACTIONS = ("update_all", "update_industry", "force_update_all", "get_stats", "clear_cache")


@lru_cache(maxsize=1)
def get_services() -> Services:
    """Process-wide service graph; overridden in tests."""
    return build_services(settings)


def require_cron_auth(
    authorization: Optional[str] = Header(None),
    x_cron_secret: Optional[str] = Header(None),
) -> None:
    if not authorization and not x_cron_secret:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if x_cron_secret is not None:
        if x_cron_secret != settings.CRON_SECRET:
            raise HTTPException(status_code=401, detail="Invalid cron secret")
        return
    if authorization != f"Bearer {settings.CRON_SECRET}":
        raise HTTPException(status_code=401, detail="Invalid authorization")


# ─── Health ──────────────────────────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    return HealthResponse(
        status="ok",
        version=settings.APP_VERSION,
        timestamp=datetime.utcnow(),
    )


# ─── Market Data ─────────────────────────────────────────────────────────────

@router.get("/market-data", tags=["Market Data"])
def get_market_data(
    industry: str,
    location: str = "US",
    radius: int = Query(settings.DEFAULT_COMPETITOR_RADIUS, ge=100, le=50000),
    include_trends: bool = True,
    include_competitors: bool = True,
    include_sentiment: bool = True,
    services: Services = Depends(get_services),
):
    """Fan out to every enabled source and return the fused assessment."""
    options = MarketDataOptions(
        include_trends=include_trends,
        include_competitors=include_competitors,
        include_sentiment=include_sentiment,
        competitor_radius=radius,
    )
    data = services.aggregator.get_comprehensive_market_data(industry, location, options)
    return data.to_dict()


@router.get("/market-data/insights", response_model=InsightsResponse, tags=["Market Data"])
def get_market_insights(
    industry: str,
    location: Optional[str] = None,
    services: Services = Depends(get_services),
):
    """One-line digest for the plan generator prompt."""
    return InsightsResponse(
        industry=industry,
        location=location,
        insights=services.manager.get_market_insights_for_prompt(industry, location),
    )


@router.get("/market-data/status", tags=["Market Data"])
def get_market_status(services: Services = Depends(get_services)):
    return services.aggregator.get_market_data_status()


@router.get("/market-data/stats", tags=["Market Data"])
def get_market_stats(services: Services = Depends(get_services)):
    cached = services.manager.get_cached_industries()
    return {
        "success": True,
        "stats": services.scheduler.get_update_stats(),
        "cache": {"industries_count": len(cached), "industries": cached},
        "timestamp": datetime.utcnow().isoformat(),
    }


# ─── Updates ─────────────────────────────────────────────────────────────────

@router.post(
    "/market-data/updates",
    response_model=MarketUpdateResponse,
    response_model_exclude_none=True,
    tags=["Updates"],
    dependencies=[Depends(require_cron_auth)],
)
def run_market_update(request: MarketUpdateRequest, services: Services = Depends(get_services)):
    """Entry point for cron jobs and manual refreshes."""
    logger.info(f"📊 Market data update called: {request.action} ({request.industry}, {request.location})")

    if request.action == "update_all":
        report = services.scheduler.run_scheduled_updates()
        return MarketUpdateResponse(
            success=not report.skipped,
            message="Update already in progress" if report.skipped else "Scheduled updates completed",
            results=report.to_dict(),
        )

    if request.action == "update_industry":
        if not request.industry:
            raise HTTPException(status_code=400, detail="Industry parameter required")
        if request.force:
            ok = services.scheduler.update_high_priority_industry(request.industry, request.location)
        else:
            ok = services.manager.refresh_market_data(request.industry, request.location)
        message = (
            f"Updated market data for {request.industry}" if ok
            else f"Update failed for {request.industry}"
        )
        return MarketUpdateResponse(success=ok, message=message)

    if request.action == "force_update_all":
        report = services.scheduler.force_update_all()
        return MarketUpdateResponse(
            success=not report.skipped,
            message="Update already in progress" if report.skipped else "Force update completed for all industries",
            results=report.to_dict(),
        )

    if request.action == "get_stats":
        cached = services.manager.get_cached_industries()
        return MarketUpdateResponse(
            success=True,
            stats=services.scheduler.get_update_stats(),
            cached_industries=len(cached),
            cached_list=cached,
        )

    if request.action == "clear_cache":
        services.manager.clear_cache()
        return MarketUpdateResponse(success=True, message="Cache cleared successfully")

    raise HTTPException(
        status_code=400,
        detail=f"Invalid action. Available: {', '.join(UPDATE_ACTIONS)}",
    )


# ─── Financial Model ─────────────────────────────────────────────────────────

@router.post("/financial-model/enhance", tags=["Financial Model"])
def enhance_financial_model(request: EnhanceModelRequest, services: Services = Depends(get_services)):
    """Build, validate and correct a 12-month model, optionally against live market data."""
    projections = InitialProjections(
        business_idea=request.business_idea,
        **request.projections.model_dump(),
    )
    market_data = None
    if request.include_market_data:
        market_data = services.aggregator.get_comprehensive_market_data(
            request.business_type, request.location
        )

    result = services.enhancer.enhance_financial_model(
        request.business_type, request.business_idea, projections, market_data
    )
    return result.to_dict()
