"""
FastAPI Application Entry Point
Market Intelligence & Financial Viability Engine
"""

import logging
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agents.errors import MarketDataError, PersistenceFailure
from api.routes import router
from config.settings import settings
from db.database import init_db

# ─── Logging ─────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# ─── App ─────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Market intelligence for business plans. Fans out to economic, competitor "
        "and sentiment sources, caches and persists the fused snapshot, and "
        "validates 12-month financial projections against industry benchmarks."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# ─── CORS ────────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Startup ─────────────────────────────────────────────────────────────────

@app.on_event("startup")
async def startup_event():
    logging.getLogger(__name__).info("🚀 Starting Market Intelligence API...")
    init_db()


# ─── Errors ──────────────────────────────────────────────────────────────────

@app.exception_handler(MarketDataError)
async def market_data_error_handler(request: Request, exc: MarketDataError):
    # store outages are ours (503), anything else is an upstream provider (502)
    status = 503 if isinstance(exc, PersistenceFailure) else 502
    logging.getLogger(__name__).error(f"❌ {request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status,
        content={"success": False, "error": type(exc).__name__, "detail": str(exc)},
    )


# ─── Routes ──────────────────────────────────────────────────────────────────

app.include_router(router, prefix="/api/v1")


@app.get("/", tags=["System"])
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "status": "running",
    }


# ─── Run ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )
