"""
OpenCost cloud cost API client.

Wraps the four read endpoints of the cloud cost API (status, totals, table
and graph) and decodes their envelopes into the models in base.py.
"""

import logging
from typing import Any, TypeVar

from pydantic import ValidationError

from ..utils.http_client import HTTPClient
from .base import (
    CostRow,
    DailyPoint,
    Envelope,
    GraphResponse,
    IntegrationStatus,
    StatusResponse,
    TableResponse,
    TotalsResponse,
    UpstreamDecodeError,
    UpstreamResponseError,
)

logger = logging.getLogger(__name__)

SERVICE_AGGREGATE = "service"
CATEGORY_AGGREGATE = "category"
# Requests for "item" omit the aggregate parameter, so the upstream returns
# fully qualified names (invoiceEntityID/accountID/provider/providerID/category/service).
ITEM_AGGREGATE = "item"

TABLE_LIMIT = 500

STATUS_PATH = "/cloudCost/status"
TOTALS_PATH = "/cloudCost/view/totals"
TABLE_PATH = "/cloudCost/view/table"
GRAPH_PATH = "/cloudCost/view/graph"

EnvelopeT = TypeVar("EnvelopeT", bound=Envelope)


class OpenCostClient:
    """Read-only client for the OpenCost cloud cost endpoints."""

    def __init__(self, base_url: str, window: str, timeout: float = 30, http: HTTPClient | None = None):
        """
        Initialize the client.

        Args:
            base_url: OpenCost API base URL, e.g. http://opencost.opencost:9003
            window: Query window passed through to every cost request
            timeout: Per-request timeout in seconds
            http: Optional preconfigured HTTP client
        """
        self.window = window
        self.http = http or HTTPClient(base_url, timeout=timeout)

    def _params(self, aggregate: str | None, cost_metric: str, **extra: Any) -> dict[str, Any]:
        params: dict[str, Any] = {"window": self.window}
        if aggregate is not None and aggregate != ITEM_AGGREGATE:
            params["aggregate"] = aggregate
        params["accumulate"] = "day"
        params["costMetric"] = cost_metric
        params.update(extra)
        return params

    def _fetch(self, path: str, model: type[EnvelopeT], params: dict[str, Any] | None = None) -> EnvelopeT:
        body = self.http.get(path, params=params)
        try:
            envelope = model.model_validate(body)
        except ValidationError as e:
            raise UpstreamDecodeError(
                f"{path} response did not match the expected shape: {e}",
                endpoint=path,
                params=params,
            ) from e

        if not envelope.ok:
            raise UpstreamResponseError(
                f"{path} response code {envelope.code}",
                endpoint=path,
                params=params,
            )
        return envelope

    def status(self) -> list[IntegrationStatus]:
        """Fetch the status of every configured cloud cost integration."""
        return self._fetch(STATUS_PATH, StatusResponse).data

    def totals(self, cost_metric: str) -> float:
        """Fetch the combined cost over the window."""
        params = self._params(SERVICE_AGGREGATE, cost_metric)
        return self._fetch(TOTALS_PATH, TotalsResponse, params).data.combined.cost

    def table(self, aggregate: str, cost_metric: str) -> list[CostRow]:
        """
        Fetch cost rows for an aggregate, highest cost first.

        Args:
            aggregate: Aggregate property, or "item" for ungrouped rows
            cost_metric: Cost metric to query

        Returns:
            Up to TABLE_LIMIT rows
        """
        params = self._params(
            aggregate, cost_metric, sortBy="cost", sortByOrder="desc", limit=TABLE_LIMIT
        )
        return self._fetch(TABLE_PATH, TableResponse, params).data

    def graph(self, aggregate: str, cost_metric: str) -> list[DailyPoint]:
        """
        Fetch the per-day cost series for an aggregate.

        Args:
            aggregate: Aggregate property, or "item" for ungrouped names
            cost_metric: Cost metric to query

        Returns:
            One DailyPoint per graph bucket, in upstream order
        """
        params = self._params(aggregate, cost_metric)
        buckets = self._fetch(GRAPH_PATH, GraphResponse, params).data
        return [DailyPoint.from_bucket(bucket) for bucket in buckets]

    def close(self):
        self.http.close()
