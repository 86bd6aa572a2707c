#!/usr/bin/env python3
"""
Quick CLI runner for the Market Intelligence engine.

Usage:
    python run.py                                  # Demo assessment + financial model
    python run.py --mode demo --industry bakery --location "Austin, TX"
    python run.py --mode api                       # Start FastAPI server
    python run.py --mode update                    # Refresh stale snapshots once
    python run.py --mode force-update              # Refresh every tracked snapshot
    python run.py --mode stats                     # Print update statistics
"""

import sys
import os
import argparse
import json
import logging

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run")


def _services():
    from db.database import init_db
    from services import build_services

    init_db()
    return build_services()


def demo(industry: str, location: str, idea: str):
    """Assess one market and run the financial model against it."""
    from models.schemas import InitialProjections

    services = _services()

    print("\n" + "="*70)
    print("  📈 MARKET INTELLIGENCE & FINANCIAL VIABILITY — DEMO RUN")
    print("="*70 + "\n")

    print(f"🤖 Assessing {industry} in {location}...\n")
    data = services.aggregator.get_comprehensive_market_data(industry, location)

    print(f"   Market Score:   {data.market_score}/100 ({data.opportunity_level} opportunity)")
    print(f"   Reliability:    {data.data_quality.overall_reliability} "
          f"({data.data_quality.available_count}/3 live sources)")
    for finding in data.key_findings:
        print(f"   ✔ {finding}")
    for risk in data.risk_factors:
        print(f"   ⚠ {risk}")
    for rec in data.recommendations[:4]:
        print(f"   → {rec}")

    print("\n" + "─"*70)
    print("  🧾 PROMPT DIGEST")
    print("─"*70)
    print(services.manager.get_market_insights_for_prompt(industry, location))

    result = services.enhancer.enhance_financial_model(
        industry, idea, InitialProjections(business_idea=idea), data
    )
    model, validation = result.model, result.validation

    print("\n" + "─"*70)
    print(f"  💰 FINANCIAL MODEL ({result.benchmark.family} benchmark)")
    print("─"*70)
    print(f"   Annual Revenue:  ${model.revenue.annual:,.0f}")
    print(f"   Annual Costs:    ${model.costs.annual:,.0f}")
    print(f"   LTV:CAC:         {model.metrics.ltv_cac_ratio:.1f}")
    print(f"   Break-even:      month {model.cash_flow.break_even_month}")
    print(f"   Runway:          {model.cash_flow.runway_months} months")
    print(f"   Total funding:   ${model.funding_requirement.total_required:,.0f}")
    print(f"   Consistency:     {validation.consistency_score}/100 "
          f"({'realistic' if validation.is_realistic else 'needs work'})")
    for issue in validation.issues:
        print(f"   [{issue.severity}] {issue.message} → {issue.recommendation}")

    print("\n" + "="*70)
    print(f"  🔌 Start API:       uvicorn api.main:app --reload --port 8000")
    print("="*70 + "\n")


def start_api():
    import uvicorn
    from config.settings import settings
    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
    )


def run_updates(force: bool):
    services = _services()
    scheduler = services.scheduler
    report = scheduler.force_update_all() if force else scheduler.run_scheduled_updates()
    print(json.dumps(report.to_dict(), indent=2))
    if report.failed:
        sys.exit(1)


def show_stats():
    services = _services()
    print(json.dumps(services.scheduler.get_update_stats(), indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Market Intelligence & Financial Viability Engine")
    parser.add_argument(
        "--mode",
        choices=["demo", "api", "update", "force-update", "stats"],
        default="demo",
        help="Run mode: demo | api | update | force-update | stats",
    )
    parser.add_argument("--industry", default="coffee shop")
    parser.add_argument("--location", default="New York, NY")
    parser.add_argument("--idea", default="Specialty coffee shop with subscription beans delivery")
    args = parser.parse_args()

    if args.mode == "demo":
        demo(args.industry, args.location, args.idea)
    elif args.mode == "api":
        start_api()
    elif args.mode == "update":
        run_updates(force=False)
    elif args.mode == "force-update":
        run_updates(force=True)
    elif args.mode == "stats":
        show_stats()
