"""Exporter configuration."""

from .settings import ExporterSettings, load_settings, settings_from_mapping

__all__ = ["ExporterSettings", "load_settings", "settings_from_mapping"]
