"""
OpenCost Cloud Cost Exporter

Polls the OpenCost cloud cost API and serves its totals, per-aggregate
breakdowns and daily series as Prometheus metrics.
"""

__version__ = "1.0.0"
__author__ = "Cost Monitor Team"
