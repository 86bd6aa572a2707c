"""
SQLAlchemy ORM Models
Market Intelligence & Financial Viability Engine
"""

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, JSON, Index, UniqueConstraint
)
from sqlalchemy.orm import declarative_base
from datetime import datetime

from models.schemas import (
    CompetitorRecord, DemandTrends, EconomicIndicators, FundedCompetitor, IndustryMetrics,
    MarketSnapshot,
)

Base = declarative_base()


class MarketTrendRecord(Base):
    """One persisted MarketSnapshot per (industry, geographic_scope)."""
    __tablename__ = "market_trends"

    id = Column(Integer, primary_key=True, autoincrement=True)
    industry = Column(String(255), nullable=False)
    geographic_scope = Column(String(255), nullable=False, default="global")
    economic_indicators = Column(JSON)
    industry_metrics = Column(JSON)
    competitors = Column(JSON)
    sentiment_summary = Column(JSON)
    trends = Column(JSON)
    opportunities = Column(JSON)
    risks = Column(JSON)
    market_score = Column(Integer, default=50)
    reliability = Column(String(20), default="LOW")
    sources = Column(JSON)
    demand_trends = Column(JSON)
    funded_competitors = Column(JSON)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("industry", "geographic_scope", name="uq_market_trends_scope"),
        Index("ix_market_trends_last_updated", "last_updated"),
    )

    def apply(self, snapshot: MarketSnapshot) -> None:
        """Overwrite every payload column with `snapshot` (replace, never patch)."""
        self.economic_indicators = snapshot.economic_indicators.to_dict()
        self.industry_metrics = snapshot.industry_metrics.to_dict() if snapshot.industry_metrics else None
        self.competitors = [c.to_dict() for c in snapshot.competitors]
        self.sentiment_summary = snapshot.sentiment_summary
        self.trends = list(snapshot.trends)
        self.opportunities = list(snapshot.opportunities)
        self.risks = list(snapshot.risks)
        self.market_score = snapshot.market_score
        self.reliability = snapshot.reliability
        self.sources = list(snapshot.sources)
        self.demand_trends = snapshot.demand_trends.to_dict() if snapshot.demand_trends else None
        self.funded_competitors = [c.to_dict() for c in snapshot.funded_competitors]
        self.last_updated = snapshot.last_updated

    def to_snapshot(self) -> MarketSnapshot:
        return MarketSnapshot(
            industry=self.industry,
            location=self.geographic_scope,
            economic_indicators=EconomicIndicators.from_dict(self.economic_indicators),
            industry_metrics=IndustryMetrics.from_dict(self.industry_metrics),
            competitors=[CompetitorRecord.from_dict(c) for c in self.competitors or []],
            sentiment_summary=self.sentiment_summary,
            trends=list(self.trends or []),
            opportunities=list(self.opportunities or []),
            risks=list(self.risks or []),
            market_score=self.market_score if self.market_score is not None else 50,
            reliability=self.reliability or "LOW",
            last_updated=self.last_updated,
            sources=list(self.sources or []),
            demand_trends=DemandTrends.from_dict(self.demand_trends),
            funded_competitors=[FundedCompetitor.from_dict(c) for c in self.funded_competitors or []],
        )


class MarketUpdateLog(Base):
    """Audit trail: one row per scheduler job outcome."""
    __tablename__ = "market_update_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    industry = Column(String(255), nullable=False)
    location = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False)          # SUCCESS | FAILED
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)
    retry_count = Column(Integer, default=0)
    error_message = Column(Text)
    duration_ms = Column(Integer)

    __table_args__ = (
        Index("ix_update_log_timestamp", "timestamp"),
        Index("ix_update_log_status", "status"),
    )
