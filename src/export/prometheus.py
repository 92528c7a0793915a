"""
Prometheus metrics for the OpenCost cloud cost exporter.

Holds the exported gauge families and the collector for daily cost samples.
Daily samples carry the timestamp of the day they describe rather than the
scrape time, so sparse per-day values line up with calendar days in
Prometheus and time-based queries (offset) work.
"""

import logging
import re
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timezone

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from ..providers.base import CloudCostExporterError
from .labels import (
    AggregateLabels,
    CategoryLabels,
    DailyAggregateLabels,
    DailyCategoryLabels,
    DailyServiceLabels,
    DailyTotalLabels,
    IntegrationRunLabels,
    IntegrationUpLabels,
    LabelSet,
    ServiceLabels,
    TotalCostLabels,
)

logger = logging.getLogger(__name__)

METRICS_PREFIX = "opencost_cloudcost"

_DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class DailySampleError(CloudCostExporterError):
    """A daily value carried a day string that is not a calendar date."""

    def __init__(self, day: str, family: str, reason: str = "not a YYYY-MM-DD date"):
        super().__init__(f"invalid day {day!r} for {family}: {reason}")
        self.day = day
        self.family = family


def parse_day_utc(day: str) -> datetime:
    """Return UTC midnight of a YYYY-MM-DD day string."""
    if not _DAY_PATTERN.match(day):
        raise ValueError(f"{day!r} is not a YYYY-MM-DD date")
    return datetime.combine(date.fromisoformat(day), time.min, tzinfo=timezone.utc)


class GaugeFamily:
    """A labeled gauge whose series are addressed by one LabelSet type."""

    def __init__(
        self,
        name: str,
        documentation: str,
        label_type: type[LabelSet],
        registry: CollectorRegistry,
    ):
        self.name = name
        self.label_type = label_type
        self._gauge = Gauge(
            name, documentation, labelnames=label_type.label_names(), registry=registry
        )

    def set(self, labels: LabelSet, value: float):
        """Set the series for labels, replacing any previous value."""
        if not isinstance(labels, self.label_type):
            raise TypeError(
                f"{self.name} expects {self.label_type.__name__}, got {type(labels).__name__}"
            )
        self._gauge.labels(**labels.as_dict()).set(value)

    def reset(self):
        """Drop every series; the family exports no samples until the next set."""
        self._gauge.clear()


@dataclass(frozen=True)
class DailyFamily:
    name: str
    documentation: str
    label_type: type[LabelSet]


@dataclass(frozen=True)
class DailySample:
    family: DailyFamily
    labels: LabelSet
    value: float
    timestamp: datetime


DAILY_AGGREGATE_COST = DailyFamily(
    f"{METRICS_PREFIX}_daily_aggregate_cost",
    "Cloud cost by aggregate property per day (from /cloudCost/view/graph).",
    DailyAggregateLabels,
)
DAILY_SERVICE_COST = DailyFamily(
    f"{METRICS_PREFIX}_daily_service_cost",
    "Cloud cost by service per day (from /cloudCost/view/graph).",
    DailyServiceLabels,
)
DAILY_TOTAL_COST = DailyFamily(
    f"{METRICS_PREFIX}_daily_total_cost",
    "Total cloud cost per day (sum of items in /cloudCost/view/graph).",
    DailyTotalLabels,
)
DAILY_CATEGORY_COST = DailyFamily(
    f"{METRICS_PREFIX}_daily_category_cost",
    "Cloud cost by category (resource type) per day (from /cloudCost/view/graph).",
    DailyCategoryLabels,
)

DAILY_FAMILIES = (DAILY_AGGREGATE_COST, DAILY_SERVICE_COST, DAILY_TOTAL_COST, DAILY_CATEGORY_COST)


class DailySampleCollector(Collector):
    """
    Collector for daily cost samples with explicit timestamps.

    Writers append under a lock; collect() copies the sample list under the
    same lock and builds the metric families after releasing it.
    """

    def __init__(self, families: Iterable[DailyFamily] = DAILY_FAMILIES):
        self.families = tuple(families)
        self._lock = threading.Lock()
        self._samples: list[DailySample] = []

    def add(self, family: DailyFamily, timestamp: datetime, value: float, labels: LabelSet):
        """Append one sample."""
        if family not in self.families:
            raise ValueError(f"unknown daily family {family.name}")
        if not isinstance(labels, family.label_type):
            raise TypeError(
                f"{family.name} expects {family.label_type.__name__}, got {type(labels).__name__}"
            )
        sample = DailySample(family=family, labels=labels, value=float(value), timestamp=timestamp)
        with self._lock:
            self._samples.append(sample)

    def reset(self):
        """Drop every sample."""
        with self._lock:
            self._samples = []

    def snapshot(self) -> list[DailySample]:
        """Point-in-time copy of the sample list."""
        with self._lock:
            return list(self._samples)

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def _add_for_day(self, family: DailyFamily, day: str, value: float, labels: LabelSet):
        try:
            timestamp = parse_day_utc(day)
        except ValueError as e:
            raise DailySampleError(day, family.name) from e
        self.add(family, timestamp, value, labels)

    def set_aggregate_cost(
        self, aggregate: str, name: str, day: str, window: str, cost_metric: str, value: float
    ):
        labels = DailyAggregateLabels(
            aggregate=aggregate, name=name, day=day, window=window, cost_metric=cost_metric
        )
        self._add_for_day(DAILY_AGGREGATE_COST, day, value, labels)

    def set_service_cost(self, service: str, day: str, window: str, cost_metric: str, value: float):
        labels = DailyServiceLabels(service=service, day=day, window=window, cost_metric=cost_metric)
        self._add_for_day(DAILY_SERVICE_COST, day, value, labels)

    def set_total_cost(self, day: str, window: str, cost_metric: str, value: float):
        labels = DailyTotalLabels(day=day, window=window, cost_metric=cost_metric)
        self._add_for_day(DAILY_TOTAL_COST, day, value, labels)

    def set_category_cost(self, category: str, day: str, window: str, cost_metric: str, value: float):
        labels = DailyCategoryLabels(
            category=category, day=day, window=window, cost_metric=cost_metric
        )
        self._add_for_day(DAILY_CATEGORY_COST, day, value, labels)

    def _empty_families(self) -> dict[DailyFamily, GaugeMetricFamily]:
        return {
            family: GaugeMetricFamily(
                family.name, family.documentation, labels=family.label_type.label_names()
            )
            for family in self.families
        }

    def describe(self) -> Iterator[GaugeMetricFamily]:
        yield from self._empty_families().values()

    def collect(self) -> Iterator[GaugeMetricFamily]:
        samples = self.snapshot()

        metric_families = self._empty_families()
        for sample in samples:
            metric_families[sample.family].add_metric(
                sample.labels.values(), sample.value, timestamp=sample.timestamp.timestamp()
            )
        yield from metric_families.values()


class ExporterMetrics:
    """
    The exporter's metric families, bound to their own registry.

    One instance is created at startup and shared by the scraper (writer)
    and the HTTP server (reader).
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()

        self.scrape_success = Gauge(
            f"{METRICS_PREFIX}_exporter_scrape_success",
            "1 if the last scrape from OpenCost succeeded; 0 otherwise.",
            registry=self.registry,
        )
        self.scrape_duration = Gauge(
            f"{METRICS_PREFIX}_exporter_scrape_duration_seconds",
            "Duration of the last scrape from OpenCost in seconds.",
            registry=self.registry,
        )

        self.integration_up = GaugeFamily(
            f"{METRICS_PREFIX}_integration_up",
            "1 if the configured Cloud Cost integration is active+valid; 0 otherwise.",
            IntegrationUpLabels,
            self.registry,
        )
        self.integration_run_timestamp = GaugeFamily(
            f"{METRICS_PREFIX}_integration_run_timestamp",
            "Timestamps (unix seconds) for cloud cost integration runs.",
            IntegrationRunLabels,
            self.registry,
        )
        self.total_cost = GaugeFamily(
            f"{METRICS_PREFIX}_total_cost",
            "Total cloud cost over the configured window.",
            TotalCostLabels,
            self.registry,
        )
        self.aggregate_cost = GaugeFamily(
            f"{METRICS_PREFIX}_aggregate_cost",
            "Cloud cost by aggregate property over the configured window.",
            AggregateLabels,
            self.registry,
        )
        self.aggregate_kubernetes_percent = GaugeFamily(
            f"{METRICS_PREFIX}_aggregate_kubernetes_percent",
            "KubernetesPercent by aggregate property over the configured window.",
            AggregateLabels,
            self.registry,
        )
        self.service_cost = GaugeFamily(
            f"{METRICS_PREFIX}_service_cost",
            "Cloud cost by service over the configured window.",
            ServiceLabels,
            self.registry,
        )
        self.service_kubernetes_percent = GaugeFamily(
            f"{METRICS_PREFIX}_service_kubernetes_percent",
            "KubernetesPercent by service over the configured window.",
            ServiceLabels,
            self.registry,
        )
        self.category_cost = GaugeFamily(
            f"{METRICS_PREFIX}_category_cost",
            "Cloud cost by category (resource type) over the configured window.",
            CategoryLabels,
            self.registry,
        )

        self.daily = DailySampleCollector()
        self.registry.register(self.daily)

    @property
    def families(self) -> tuple[GaugeFamily, ...]:
        """Labeled families rebuilt on every scrape."""
        return (
            self.integration_up,
            self.integration_run_timestamp,
            self.total_cost,
            self.aggregate_cost,
            self.aggregate_kubernetes_percent,
            self.service_cost,
            self.service_kubernetes_percent,
            self.category_cost,
        )

    def reset_all(self):
        """Remove every labeled series and every daily sample."""
        for family in self.families:
            family.reset()
        self.daily.reset()

    def render(self) -> bytes:
        """Current state in the Prometheus text exposition format."""
        return generate_latest(self.registry)

    content_type = CONTENT_TYPE_LATEST
