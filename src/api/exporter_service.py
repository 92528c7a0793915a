#!/usr/bin/env python3
"""
Cloud Cost Exporter - FastAPI Backend
Serves the scraped OpenCost cloud cost metrics for Prometheus
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.responses import PlainTextResponse

from .. import __version__
from ..config.settings import ExporterSettings
from ..export.prometheus import ExporterMetrics
from ..monitoring.scheduler import RefreshScheduler
from ..monitoring.scraper import CloudCostScraper

logger = logging.getLogger(__name__)


def render_index(settings: ExporterSettings) -> str:
    """Plain text index listing the endpoints and the active configuration."""
    lines = ["opencost cloud cost exporter", "/metrics", "/healthz", "config:"]
    lines.extend(f"  {key}={value}" for key, value in settings.describe().items())
    return "\n".join(lines) + "\n"


def create_app(
    settings: ExporterSettings,
    metrics: ExporterMetrics | None = None,
    scraper: CloudCostScraper | None = None,
    run_scheduler: bool = True,
) -> FastAPI:
    """
    Build the exporter application.

    Args:
        settings: Exporter settings
        metrics: Metrics to expose (a fresh set when omitted)
        scraper: Scraper writing into metrics (built from settings when omitted)
        run_scheduler: Run the initial scrape and the refresh loop in the app lifespan

    Returns:
        FastAPI application
    """
    metrics = metrics or (scraper.metrics if scraper else ExporterMetrics())
    scraper = scraper or CloudCostScraper(settings, metrics)
    scheduler = RefreshScheduler(scraper, settings.refresh_interval.total_seconds())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management"""
        if run_scheduler:
            # Initial scrape before serving metrics
            logger.info("Running initial scrape...")
            result = await asyncio.to_thread(scraper.run_cycle)
            if not result.success:
                logger.warning("Initial scrape failed; metrics will show scrape_success=0")
            scheduler.start()

        yield

        if run_scheduler:
            logger.info("Shutting down refresh loop...")
            await asyncio.to_thread(scheduler.stop, settings.http_timeout.total_seconds())
        scraper.close()

    app = FastAPI(
        title="OpenCost Cloud Cost Exporter",
        version=__version__,
        description="Prometheus exporter for OpenCost cloud cost data",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.scraper = scraper
    app.state.scheduler = scheduler

    @app.get("/metrics")
    def get_metrics() -> Response:
        return Response(content=metrics.render(), media_type=metrics.content_type)

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz() -> str:
        return "ok"

    @app.get("/", response_class=PlainTextResponse)
    def index() -> str:
        return render_index(settings)

    return app
