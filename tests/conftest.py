"""
Pytest configuration and shared fixtures for exporter tests.

This module provides common fixtures used across all test modules, including
a fake OpenCost cloud cost API built on requests-mock.
"""

import os
from collections.abc import Generator
from datetime import timedelta
from typing import Any
from urllib.parse import parse_qs, urlparse

import pytest

from src.config.settings import ExporterSettings
from src.export.prometheus import ExporterMetrics
from src.monitoring.scraper import CloudCostScraper

BASE_URL = "http://opencost.test:9003"
WINDOW = "14d"

CONFIG_ENV_VARS = [
    "OPENCOST_URL",
    "WINDOW",
    "COST_METRIC",
    "COST_METRICS",
    "AGGREGATES",
    "REFRESH_INTERVAL",
    "HTTP_TIMEOUT",
    "LISTEN_ADDR",
]


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# Environment fixture
@pytest.fixture
def clean_env() -> Generator[os._Environ, None, None]:
    """Provide an environment without any exporter settings."""
    original_env = os.environ.copy()
    for var in CONFIG_ENV_VARS:
        os.environ.pop(var, None)

    yield os.environ

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


# Configuration fixtures
@pytest.fixture
def exporter_settings() -> ExporterSettings:
    """Settings scraping one cost metric over the default aggregates."""
    return ExporterSettings(
        opencost_url=BASE_URL,
        window=WINDOW,
        cost_metric="amortizedNetCost",
        cost_metrics=["amortizedNetCost"],
        aggregates=["service", "category"],
        refresh_interval=timedelta(minutes=5),
        http_timeout=timedelta(seconds=30),
    )


@pytest.fixture
def metrics() -> ExporterMetrics:
    """An isolated set of metric families."""
    return ExporterMetrics()


@pytest.fixture
def scraper(exporter_settings, metrics) -> Generator[CloudCostScraper, None, None]:
    scraper = CloudCostScraper(exporter_settings, metrics)
    yield scraper
    scraper.close()


# Mock OpenCost responses
def status_payload() -> dict[str, Any]:
    return {
        "code": 200,
        "data": [
            {
                "key": "123456789012/cur-athena",
                "source": "athena",
                "provider": "AWS",
                "active": True,
                "valid": True,
                "lastRun": "2025-06-01T10:15:30.123456789Z",
                "nextRun": "2025-06-01T16:15:30Z",
                "connectionStatus": "Successful Connection",
            },
            {
                "key": "210987654321/cur-athena",
                "source": "athena",
                "provider": "AWS",
                "active": True,
                "valid": False,
                "lastRun": "",
                "nextRun": "not-a-timestamp",
                "connectionStatus": "Invalid Configuration",
            },
        ],
    }


def default_rows(aggregate: str) -> list[dict[str, Any]]:
    names = {
        "service": ["AmazonEC2", "AmazonS3"],
        "category": ["Compute", "Storage"],
        "item": [
            "inv-1/123456789012/AWS/i-0abc/Compute/AmazonEC2",
            "inv-1/123456789012/AWS/bucket-logs/Storage/AmazonS3",
        ],
    }.get(aggregate, [f"{aggregate}-a", f"{aggregate}-b"])
    return [
        {"name": names[0], "kubernetesPercent": 0.75, "cost": 120.5},
        {"name": names[1], "kubernetesPercent": 0.1, "cost": 30.25},
    ]


def default_buckets(aggregate: str) -> list[dict[str, Any]]:
    names = [row["name"] for row in default_rows(aggregate)]
    return [
        {
            "start": "2025-06-01T00:00:00Z",
            "end": "2025-06-02T00:00:00Z",
            "items": [{"name": names[0], "value": 10.0}, {"name": names[1], "value": 2.5}],
        },
        {
            "start": "2025-06-02T00:00:00Z",
            "end": "2025-06-03T00:00:00Z",
            "items": [{"name": names[0], "value": 11.0}],
        },
    ]


class FakeOpenCost:
    """
    Fake cloud cost API.

    Responses are looked up by (aggregate, cost metric); the aggregate of a
    request without an aggregate parameter is "item". Set failures[path] to an
    HTTP status to make an endpoint fail.
    """

    def __init__(self, mocker, base_url: str = BASE_URL):
        self.base_url = base_url
        self.status = status_payload()
        self.totals: dict[str, float] = {}
        self.tables: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.graphs: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.failures: dict[str, int] = {}
        self.calls: list[tuple[str, dict[str, str]]] = []

        mocker.get(f"{base_url}/cloudCost/status", json=self._status)
        mocker.get(f"{base_url}/cloudCost/view/totals", json=self._totals)
        mocker.get(f"{base_url}/cloudCost/view/table", json=self._table)
        mocker.get(f"{base_url}/cloudCost/view/graph", json=self._graph)

    def _record(self, request, context) -> tuple[str, dict[str, str], bool]:
        parsed = urlparse(request.url)
        params = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        self.calls.append((parsed.path, params))
        if parsed.path in self.failures:
            context.status_code = self.failures[parsed.path]
            return parsed.path, params, False
        return parsed.path, params, True

    @staticmethod
    def _key(params: dict[str, str]) -> tuple[str, str]:
        return params.get("aggregate", "item"), params.get("costMetric", "")

    def _status(self, request, context):
        _, _, ok = self._record(request, context)
        return self.status if ok else {"code": 500}

    def _totals(self, request, context):
        _, params, ok = self._record(request, context)
        if not ok:
            return {"code": 500}
        cost = self.totals.get(params.get("costMetric", ""), 150.75)
        return {
            "code": 200,
            "data": {"combined": {"name": "", "kubernetesPercent": 0.6, "cost": cost}},
        }

    def _table(self, request, context):
        _, params, ok = self._record(request, context)
        if not ok:
            return {"code": 500}
        aggregate, cost_metric = self._key(params)
        return {"code": 200, "data": self.tables.get((aggregate, cost_metric), default_rows(aggregate))}

    def _graph(self, request, context):
        _, params, ok = self._record(request, context)
        if not ok:
            return {"code": 500}
        aggregate, cost_metric = self._key(params)
        return {
            "code": 200,
            "data": self.graphs.get((aggregate, cost_metric), default_buckets(aggregate)),
        }

    def paths(self) -> list[str]:
        return [path for path, _ in self.calls]


@pytest.fixture
def fake_opencost(requests_mock) -> FakeOpenCost:
    """Fake OpenCost API at BASE_URL."""
    return FakeOpenCost(requests_mock)
