"""
Export functionality for cloud cost data.

This module provides the Prometheus metric families served by the exporter,
including the collector for day-stamped daily cost samples.
"""

from .prometheus import DailySampleCollector, DailySampleError, ExporterMetrics, GaugeFamily

__all__ = ["ExporterMetrics", "GaugeFamily", "DailySampleCollector", "DailySampleError"]
