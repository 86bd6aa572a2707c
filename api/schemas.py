"""
Pydantic schemas for API request/response validation.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime


# ─── Request Schemas ─────────────────────────────────────────────────────────

class MarketUpdateRequest(BaseModel):
    action: str = Field(..., description="update_all | update_industry | force_update_all | get_stats | clear_cache")
    industry: Optional[str] = None
    location: Optional[str] = None
    force: bool = False


class ProjectionsRequest(BaseModel):
    monthly_revenue: float = Field(1000, ge=0)
    monthly_costs: float = Field(2000, ge=0)
    initial_investment: float = Field(15000, ge=0)
    growth_capital: Optional[float] = Field(None, ge=0)
    customers: int = Field(100, ge=1)
    cac: Optional[float] = Field(None, gt=0)
    gross_margin: Optional[float] = Field(None, ge=0, le=1)


class EnhanceModelRequest(BaseModel):
    business_type: str
    business_idea: str = ""
    location: str = "US"
    include_market_data: bool = False
    projections: ProjectionsRequest = Field(default_factory=ProjectionsRequest)


# ─── Response Schemas ────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime


class InsightsResponse(BaseModel):
    industry: str
    location: Optional[str]
    insights: str


class MarketUpdateResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    results: Optional[Dict[str, Any]] = None
    stats: Optional[Dict[str, Any]] = None
    cached_industries: Optional[int] = None
    cached_list: Optional[List[str]] = None
