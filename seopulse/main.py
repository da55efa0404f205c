"""SEOPULSE — FastAPI Application Entry Point.

Search performance ingestion, gap reconciliation and comparative reporting.
The scheduler runs inside this process, so it is skipped on serverless
platforms where no process outlives a request.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from seopulse.api.dashboard_routes import router as dashboard_router
from seopulse.api.reconcile_routes import router as reconcile_router
from seopulse.api.report_routes import router as report_router
from seopulse.api.schedule_routes import router as schedule_router
from seopulse.core.errors import FetchError, SiteRegistryError
from seopulse.core.logging import get_logger
from seopulse.database import init_db, test_connection
from seopulse.scheduler.jobs import start_scheduler, stop_scheduler

logger = get_logger("main")

VERSION = "1.0.0"

IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db_ok = test_connection()
    if db_ok:
        init_db()
    else:
        logger.error("❌ Database unavailable — requests will fail until it is reachable")

    run_scheduler = db_ok and not IS_SERVERLESS
    if run_scheduler:
        start_scheduler()
    logger.info(f"🚀 SEOPULSE {VERSION} started (scheduler: {'on' if run_scheduler else 'off'})")
    yield
    if run_scheduler:
        stop_scheduler()
    logger.info("SEOPULSE shut down")


app = FastAPI(
    title="SEOPULSE",
    description="Collect Search Console metrics, backfill gaps, and generate comparative SEO reports.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SiteRegistryError)
async def site_registry_error_handler(request: Request, exc: SiteRegistryError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(FetchError)
async def fetch_error_handler(request: Request, exc: FetchError):
    logger.error(
        f"Upstream fetch failed on {request.url.path}: {exc}",
        extra={"error_kind": exc.kind.value, "status_code": exc.status_code},
    )
    return JSONResponse(
        status_code=502, content={"detail": str(exc), "error_kind": exc.kind.value}
    )


for router in (reconcile_router, dashboard_router, report_router, schedule_router):
    app.include_router(router)


@app.get("/health", tags=["System"])
async def health_check():
    return {"status": "healthy", "service": "seopulse", "version": VERSION}
