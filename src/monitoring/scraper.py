"""
Scrape orchestration for the OpenCost cloud cost exporter.

One scrape cycle wipes every labeled series, then refetches integration
status, totals, tables and daily graphs from OpenCost and repopulates the
metrics. The first failing request aborts the cycle, leaving an empty or
partial dataset visible instead of a mix of old and new values.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..config.settings import ExporterSettings
from ..export.labels import (
    LAST_RUN,
    NEXT_RUN,
    AggregateLabels,
    CategoryLabels,
    IntegrationRunLabels,
    IntegrationUpLabels,
    ServiceLabels,
    TotalCostLabels,
)
from ..export.prometheus import ExporterMetrics
from ..providers.base import (
    CloudCostExporterError,
    CostRow,
    DailyPoint,
    IntegrationStatus,
    UpstreamError,
)
from ..providers.opencost import CATEGORY_AGGREGATE, SERVICE_AGGREGATE, OpenCostClient

logger = logging.getLogger(__name__)


class ScrapeState(Enum):
    """Scrape cycle states."""
    IDLE = "idle"
    FETCHING = "fetching"
    APPLYING = "applying"
    FAILED = "failed"


@dataclass
class ScrapeResult:
    """Outcome of one scrape cycle."""
    success: bool
    started_at: datetime
    duration: float = 0.0
    requests: int = 0
    error: Exception | None = None
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            'success': self.success,
            'started_at': self.started_at.isoformat(),
            'duration': self.duration,
            'requests': self.requests,
            'error': str(self.error) if self.error else None,
            'skipped': self.skipped,
        }


@dataclass
class _Cycle:
    requests: int = 0


class CloudCostScraper:
    """Drives scrape cycles from the OpenCost API into ExporterMetrics."""

    def __init__(
        self,
        settings: ExporterSettings,
        metrics: ExporterMetrics,
        client: OpenCostClient | None = None,
    ):
        self.settings = settings
        self.metrics = metrics
        self.client = client or OpenCostClient(
            settings.opencost_url,
            settings.window,
            timeout=settings.http_timeout.total_seconds(),
        )
        self.state = ScrapeState.IDLE
        self.last_result: ScrapeResult | None = None
        self._busy = threading.Lock()

    @property
    def window(self) -> str:
        return self.settings.window

    def run_cycle(self) -> ScrapeResult:
        """
        Run one scrape cycle unless another one is still in progress.

        Errors raised during the cycle are logged and reported in the result;
        they never propagate.

        Returns:
            ScrapeResult for this cycle (skipped=True if a cycle was running)
        """
        if not self._busy.acquire(blocking=False):
            logger.warning("Previous scrape still running, skipping this cycle")
            return ScrapeResult(success=False, started_at=datetime.now(timezone.utc), skipped=True)

        try:
            result = self._run_cycle()
        finally:
            self._busy.release()

        self.last_result = result
        return result

    def _run_cycle(self) -> ScrapeResult:
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()
        cycle = _Cycle()

        logger.info(
            f"Starting scrape of {self.settings.opencost_url} "
            f"(window={self.window}, cost_metrics={self.settings.cost_metrics}, "
            f"aggregates={self.settings.aggregates})"
        )

        self.metrics.reset_all()

        try:
            self._scrape(cycle)
        except CloudCostExporterError as e:
            context = f" [{e.endpoint} {e.params}]" if isinstance(e, UpstreamError) else ""
            logger.error(f"Scrape failed after {cycle.requests} requests: {e}{context}")
            return self._failed(started_at, start, cycle, e)
        except Exception as e:
            logger.exception(f"Unexpected error during scrape after {cycle.requests} requests")
            return self._failed(started_at, start, cycle, e)

        self.metrics.scrape_success.set(1)
        duration = time.monotonic() - start
        self.metrics.scrape_duration.set(duration)
        self.state = ScrapeState.IDLE
        logger.info(f"Scrape completed in {duration:.2f}s ({cycle.requests} requests)")
        return ScrapeResult(
            success=True, started_at=started_at, duration=duration, requests=cycle.requests
        )

    def _failed(
        self, started_at: datetime, start: float, cycle: _Cycle, error: Exception
    ) -> ScrapeResult:
        self.state = ScrapeState.FAILED
        self.metrics.scrape_success.set(0)
        duration = time.monotonic() - start
        self.metrics.scrape_duration.set(duration)
        self.state = ScrapeState.IDLE
        return ScrapeResult(
            success=False,
            started_at=started_at,
            duration=duration,
            requests=cycle.requests,
            error=error,
        )

    def _fetch(self, cycle: _Cycle, fetch, *args):
        self.state = ScrapeState.FETCHING
        cycle.requests += 1
        result = fetch(*args)
        self.state = ScrapeState.APPLYING
        return result

    def _scrape(self, cycle: _Cycle):
        # Integration status gates the cycle; without it no cost data is reported
        status = self._fetch(cycle, self.client.status)
        self.apply_status(status)

        for cost_metric in self.settings.cost_metrics:
            total = self._fetch(cycle, self.client.totals, cost_metric)
            self.metrics.total_cost.set(
                TotalCostLabels(window=self.window, cost_metric=cost_metric), total
            )

            # Service graph is always scraped; it supplies the daily totals
            daily_service = self._fetch(cycle, self.client.graph, SERVICE_AGGREGATE, cost_metric)
            self.apply_service_daily(daily_service, cost_metric)

            for aggregate in self.settings.aggregates:
                rows = self._fetch(cycle, self.client.table, aggregate, cost_metric)
                self.apply_table(rows, aggregate, cost_metric)

                if aggregate == SERVICE_AGGREGATE:
                    continue
                daily = self._fetch(cycle, self.client.graph, aggregate, cost_metric)
                self.apply_aggregate_daily(daily, aggregate, cost_metric)

    def apply_status(self, status: list[IntegrationStatus]):
        """Set integration up and run timestamp series."""
        for integration in status:
            self.metrics.integration_up.set(
                IntegrationUpLabels(
                    key=integration.key,
                    provider=integration.provider,
                    source=integration.source,
                    connection_status=integration.connection_status,
                ),
                1.0 if integration.up else 0.0,
            )

            for which, ran_at in ((LAST_RUN, integration.last_run_at), (NEXT_RUN, integration.next_run_at)):
                if ran_at is None:
                    continue
                self.metrics.integration_run_timestamp.set(
                    IntegrationRunLabels(key=integration.key, provider=integration.provider, which=which),
                    float(int(ran_at.timestamp())),
                )

    def apply_table(self, rows: list[CostRow], aggregate: str, cost_metric: str):
        """Set aggregate series and the service/category convenience series."""
        for row in rows:
            labels = AggregateLabels(
                aggregate=aggregate, name=row.name, window=self.window, cost_metric=cost_metric
            )
            self.metrics.aggregate_cost.set(labels, row.cost)
            self.metrics.aggregate_kubernetes_percent.set(labels, row.kubernetes_percent)

            if aggregate == SERVICE_AGGREGATE:
                service = ServiceLabels(service=row.name, window=self.window, cost_metric=cost_metric)
                self.metrics.service_cost.set(service, row.cost)
                self.metrics.service_kubernetes_percent.set(service, row.kubernetes_percent)
            if aggregate == CATEGORY_AGGREGATE:
                self.metrics.category_cost.set(
                    CategoryLabels(category=row.name, window=self.window, cost_metric=cost_metric),
                    row.cost,
                )

    def apply_service_daily(self, points: list[DailyPoint], cost_metric: str):
        """Record daily totals plus daily service and service aggregate samples."""
        daily = self.metrics.daily
        for point in points:
            daily.set_total_cost(point.day, self.window, cost_metric, point.total)
            for service, value in point.by_name.items():
                daily.set_aggregate_cost(
                    SERVICE_AGGREGATE, service, point.day, self.window, cost_metric, value
                )
                daily.set_service_cost(service, point.day, self.window, cost_metric, value)

    def apply_aggregate_daily(self, points: list[DailyPoint], aggregate: str, cost_metric: str):
        """Record daily aggregate samples, plus daily category samples for category."""
        daily = self.metrics.daily
        for point in points:
            for name, value in point.by_name.items():
                daily.set_aggregate_cost(aggregate, name, point.day, self.window, cost_metric, value)
                if aggregate == CATEGORY_AGGREGATE:
                    daily.set_category_cost(name, point.day, self.window, cost_metric, value)

    def close(self):
        self.client.close()
