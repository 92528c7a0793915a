"""OpenCost cloud cost API integration."""

# Make key classes available at package level
from .base import (
    CloudCostExporterError,
    ConfigurationError,
    CostRow,
    DailyPoint,
    IntegrationStatus,
    UpstreamError,
)
from .opencost import OpenCostClient
