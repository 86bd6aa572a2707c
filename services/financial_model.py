"""
Financial Model Enhancer
------------------------
Deterministic four-stage pipeline over a 12-month projection:

  1. Benchmark   pick gross margin / churn / LTV:CAC target / growth for
                 the business family (SaaS, e-commerce, service, food)
  2. Build       revenue, costs, unit metrics, cash flow, funding need
  3. Validate    score internal consistency from 100 downward
  4. Correct     fix the inconsistencies on a deep copy

Input:  business type, business idea, InitialProjections,
        optional ComprehensiveMarketData
Output: EnhancementResult(model=pre-correction, validation.improvements=corrected)
"""

import copy
import logging
import math
from typing import List, Optional

import numpy as np

from agents.classifier import IndustryCategory, classify_business, is_food_category
from models.schemas import (
    Benchmark, CashFlowModel, ComprehensiveMarketData, CostModel, EnhancementResult,
    FinancialModel, FundingRequirement, InitialProjections, RevenueModel, UnitMetrics,
    ValidationIssue, ValidationReport,
)

logger = logging.getLogger(__name__)

MONTHS = 12
LTV_MONTHS = 24
RETENTION_DISCOUNT = 0.05
FIXED_COST_SHARE = 0.7
DEFAULT_CAC_SHARE = 0.3

COST_BREAKDOWN = {
    "personnel": 0.40,
    "marketing": 0.20,
    "operations": 0.15,
    "overhead": 0.15,
    "technology": 0.10,
}

BENCHMARKS = {
    "SAAS": Benchmark("SAAS", gross_margin=0.75, churn_rate=0.05, ltv_cac_ratio=4, growth_rate=0.15),
    "ECOMMERCE": Benchmark("ECOMMERCE", gross_margin=0.45, churn_rate=0.10, ltv_cac_ratio=3, growth_rate=0.12),
    "SERVICE": Benchmark("SERVICE", gross_margin=0.60, churn_rate=0.08, ltv_cac_ratio=5, growth_rate=0.10),
    "FOOD": Benchmark("FOOD", gross_margin=0.35, churn_rate=0.15, ltv_cac_ratio=2.5, growth_rate=0.08),
    "DEFAULT": Benchmark("DEFAULT", gross_margin=0.50, churn_rate=0.10, ltv_cac_ratio=3, growth_rate=0.10),
}


def benchmark_family(category: IndustryCategory) -> str:
    if category == IndustryCategory.TECHNOLOGY:
        return "SAAS"
    if category in (IndustryCategory.ECOMMERCE, IndustryCategory.RETAIL):
        return "ECOMMERCE"
    if category == IndustryCategory.PROFESSIONAL_SERVICES:
        return "SERVICE"
    if is_food_category(category):
        return "FOOD"
    return "DEFAULT"


def revenue_streams(business_idea: str) -> List[str]:
    idea = (business_idea or "").lower()
    streams = []
    if "subscription" in idea or "saas" in idea:
        streams += ["Monthly subscriptions", "Annual subscriptions", "Premium tiers"]
    if "marketplace" in idea or "platform" in idea:
        streams += ["Transaction fees", "Listing fees", "Premium features"]
    if "delivery" in idea or "service" in idea:
        streams += ["Service fees", "Delivery charges", "Premium services"]
    if "product" in idea or "retail" in idea:
        streams += ["Product sales", "Shipping fees", "Accessories"]
    return streams or ["Primary service", "Add-on services", "Premium features"]


class FinancialModelEnhancer:

    # ── 1. Benchmark ──

    def get_benchmark(self, business_type: str, business_idea: str = "") -> Benchmark:
        category = classify_business(business_type, business_idea)
        return BENCHMARKS[benchmark_family(category)]

    # ── 2. Build ──

    @staticmethod
    def build_revenue(p: InitialProjections, bench: Benchmark) -> RevenueModel:
        monthly = [p.monthly_revenue * 0.3]
        for month in range(1, MONTHS):
            if month < 3:
                factor = 1.15
            elif month < 6:
                factor = 1.10
            else:
                factor = 1 + bench.growth_rate
            monthly.append(monthly[-1] * factor)
        return RevenueModel(
            monthly=monthly,
            annual=float(np.sum(monthly)),
            growth_rate=bench.growth_rate,
            revenue_streams=revenue_streams(p.business_idea),
        )

    @staticmethod
    def build_costs(p: InitialProjections, margin: float, revenue: RevenueModel) -> CostModel:
        fixed = p.monthly_costs * FIXED_COST_SHARE
        variable = [r * (1 - margin) for r in revenue.monthly]
        monthly = [v + fixed for v in variable]
        return CostModel(
            monthly=monthly,
            annual=float(np.sum(monthly)),
            fixed_costs=fixed,
            variable_costs=float(np.sum(variable)),
            breakdown={k: p.monthly_costs * share for k, share in COST_BREAKDOWN.items()},
        )

    @staticmethod
    def build_metrics(p: InitialProjections, bench: Benchmark,
                      revenue: RevenueModel, costs: CostModel) -> UnitMetrics:
        customers = p.customers or 100
        arpu = revenue.monthly[-1] / customers
        cac = p.cac if p.cac else arpu * DEFAULT_CAC_SHARE
        ltv = arpu * LTV_MONTHS * (1 - RETENTION_DISCOUNT)
        gross_margin = (
            (revenue.annual - costs.variable_costs) / revenue.annual if revenue.annual else 0.0
        )
        contribution = (
            (revenue.annual - costs.variable_costs - costs.fixed_costs * MONTHS) / revenue.annual
            if revenue.annual else 0.0
        )
        return UnitMetrics(
            cac=cac,
            ltv=ltv,
            churn_rate=bench.churn_rate,
            arpu=arpu,
            gross_margin=gross_margin,
            contribution_margin=contribution,
        )

    @staticmethod
    def build_cash_flow(p: InitialProjections, revenue: RevenueModel, costs: CostModel) -> CashFlowModel:
        net = np.array(revenue.monthly) - np.array(costs.monthly)
        cumulative = np.cumsum(net) - p.initial_investment
        positive = np.nonzero(cumulative > 0)[0]
        break_even = int(positive[0]) + 1 if positive.size else MONTHS
        first_cost = costs.monthly[0] or 1000
        return CashFlowModel(
            monthly=[float(v) for v in net],
            cumulative=[float(v) for v in cumulative],
            break_even_month=break_even,
            runway_months=max(0, math.ceil(p.initial_investment / first_cost)),
        )

    @staticmethod
    def build_funding(p: InitialProjections, costs: CostModel, cash_flow: CashFlowModel) -> FundingRequirement:
        growth_capital = p.growth_capital if p.growth_capital is not None else p.initial_investment
        return FundingRequirement(
            initial_investment=abs(min(cash_flow.cumulative)),
            working_capital=costs.monthly[0] * 2,
            growth_capital=growth_capital,
        )

    def build_model(self, p: InitialProjections, bench: Benchmark) -> FinancialModel:
        margin = p.gross_margin if p.gross_margin is not None else bench.gross_margin
        revenue = self.build_revenue(p, bench)
        costs = self.build_costs(p, margin, revenue)
        metrics = self.build_metrics(p, bench, revenue, costs)
        cash_flow = self.build_cash_flow(p, revenue, costs)
        return FinancialModel(
            revenue=revenue,
            costs=costs,
            metrics=metrics,
            cash_flow=cash_flow,
            funding_requirement=self.build_funding(p, costs, cash_flow),
        )

    # ── 3. Validate ──

    def validate(self, model: FinancialModel,
                 market_data: Optional[ComprehensiveMarketData] = None) -> ValidationReport:
        issues: List[ValidationIssue] = []
        score = 100

        ratio = model.metrics.ltv_cac_ratio
        if ratio < 2:
            issues.append(ValidationIssue(
                severity="ERROR",
                category="METRICS",
                message=f"LTV:CAC ratio of {ratio:.1f} is below healthy threshold",
                impact="HIGH",
                recommendation="Increase customer lifetime value or reduce acquisition costs",
            ))
            score -= 20

        if model.cash_flow.break_even_month > 24:
            issues.append(ValidationIssue(
                severity="WARNING",
                category="CASHFLOW",
                message="Break-even period exceeds 24 months",
                impact="HIGH",
                recommendation="Consider reducing costs or improving revenue model",
            ))
            score -= 15

        if model.metrics.gross_margin < 0.2:
            issues.append(ValidationIssue(
                severity="WARNING",
                category="METRICS",
                message="Gross margin below 20% may indicate unsustainable pricing",
                impact="MEDIUM",
                recommendation="Review pricing strategy and cost structure",
            ))
            score -= 10

        if model.cash_flow.runway_months < 6:
            issues.append(ValidationIssue(
                severity="ERROR",
                category="FUNDING",
                message="Cash runway less than 6 months is risky",
                impact="HIGH",
                recommendation="Increase initial funding or reduce burn rate",
            ))
            score -= 25

        if market_data is not None:
            issues.extend(self.market_suggestions(market_data))

        score = max(0, min(100, score))
        return ValidationReport(
            is_realistic=score >= 70,
            consistency_score=score,
            issues=issues,
        )

    @staticmethod
    def market_suggestions(market_data: ComprehensiveMarketData) -> List[ValidationIssue]:
        """Advisory issues from the market assessment; these do not change the score."""
        suggestions = []
        if market_data.has_real_data and market_data.market_score < 50:
            suggestions.append(ValidationIssue(
                severity="SUGGESTION",
                category="MARKET",
                message=f"Market score of {market_data.market_score} suggests a weak local market",
                impact="MEDIUM",
                recommendation="Use conservative revenue ramp assumptions",
            ))
        competitors = market_data.competitor_analysis
        if (competitors is not None and competitors.is_real
                and competitors.data.market_density == "High"):
            suggestions.append(ValidationIssue(
                severity="SUGGESTION",
                category="MARKET",
                message="High local competitor density",
                impact="MEDIUM",
                recommendation="Budget extra marketing spend for customer acquisition",
            ))
        return suggestions

    # ── 4. Correct ──

    @staticmethod
    def apply_improvements(model: FinancialModel) -> FinancialModel:
        improved = copy.deepcopy(model)

        if improved.metrics.ltv_cac_ratio < 2:
            improved.metrics.cac = improved.metrics.ltv / 3

        if improved.cash_flow.break_even_month < 1:
            first_revenue = improved.revenue.monthly[0] or 1
            improved.cash_flow.break_even_month = max(
                3, math.ceil(improved.funding_requirement.initial_investment / first_revenue)
            )

        if improved.metrics.gross_margin < 0.2:
            improved.metrics.gross_margin = 0.25

        return improved

    # ── Pipeline ──

    def enhance_financial_model(
        self,
        business_type: str,
        business_idea: str,
        initial_projections: Optional[InitialProjections] = None,
        market_data: Optional[ComprehensiveMarketData] = None,
    ) -> EnhancementResult:
        projections = copy.copy(initial_projections) if initial_projections else InitialProjections()
        if not projections.business_idea:
            projections.business_idea = business_idea

        benchmark = self.get_benchmark(business_type, business_idea)
        model = self.build_model(projections, benchmark)
        validation = self.validate(model, market_data)
        validation.improvements = self.apply_improvements(model)

        logger.info(
            f"📐 Financial model for {business_type}: benchmark={benchmark.family} "
            f"score={validation.consistency_score} issues={len(validation.issues)}"
        )
        return EnhancementResult(model=model, validation=validation, benchmark=benchmark)
