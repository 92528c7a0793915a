"""
Configuration management for the OpenCost cloud cost exporter.

Uses dynaconf to read an optional YAML settings file and the environment, then
converts the resolved values into a validated ExporterSettings model.
"""

import logging
import os
import re
from collections.abc import Mapping
from datetime import timedelta
from pathlib import Path
from typing import Any

from dynaconf import Dynaconf, Validator
from dynaconf.validator import ValidationError
from pydantic import BaseModel, field_validator, model_validator

from ..providers.base import ConfigurationError

logger = logging.getLogger(__name__)

# Get the project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"

DEFAULT_AGGREGATES = ["service", "category"]
DEFAULT_REFRESH_INTERVAL = "5m"
DEFAULT_HTTP_TIMEOUT = "30s"
DEFAULT_LISTEN_ADDR = ":8080"

REQUIRED_KEYS = ("OPENCOST_URL", "WINDOW", "COST_METRIC")
OPTIONAL_KEYS = ("COST_METRICS", "AGGREGATES", "REFRESH_INTERVAL", "HTTP_TIMEOUT", "LISTEN_ADDR")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """
    Parse a Go style duration string such as "300ms", "90s" or "1h30m".

    Raises:
        ValueError: If the string is not a duration
    """
    text = str(value).strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    seconds = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise ValueError(f"invalid duration {value!r}")
        number, unit = match.groups()
        seconds += float(number) * _DURATION_UNITS[unit]
        pos = match.end()

    return timedelta(seconds=sign * seconds)


def format_duration(value: timedelta) -> str:
    """Format a timedelta the way Go prints a time.Duration (e.g. 5m0s)."""
    total = value.total_seconds()
    if total == 0:
        return "0s"

    sign = "-" if total < 0 else ""
    total = abs(total)
    if total < 1:
        return f"{sign}{total * 1000:g}ms"

    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    out = f"{seconds:g}s"
    if hours or minutes:
        out = f"{int(minutes)}m{out}"
    if hours:
        out = f"{int(hours)}h{out}"
    return sign + out


def parse_list(value: Any) -> list[str]:
    """Split a comma separated setting into trimmed, non-empty entries."""
    if isinstance(value, (list, tuple)):
        parts = [str(p) for p in value]
    else:
        parts = str(value).split(",")
    return [p.strip() for p in parts if str(p).strip()]


def parse_listen_addr(addr: str) -> tuple[str, int]:
    """
    Split a "[host]:port" listen address.

    An empty host (":8080") binds every interface.
    """
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid listen address {addr!r}, expected [host]:port")
    host = host.strip("[]") or "0.0.0.0"
    port_number = int(port)
    if not 0 < port_number < 65536:
        raise ValueError(f"invalid port in listen address {addr!r}")
    return host, port_number


class ExporterSettings(BaseModel):
    """Exporter configuration, immutable after startup."""

    model_config = {"frozen": True}

    opencost_url: str
    window: str
    cost_metric: str
    cost_metrics: list[str]
    aggregates: list[str] = list(DEFAULT_AGGREGATES)
    refresh_interval: timedelta = parse_duration(DEFAULT_REFRESH_INTERVAL)
    http_timeout: timedelta = parse_duration(DEFAULT_HTTP_TIMEOUT)
    listen_addr: str = DEFAULT_LISTEN_ADDR

    @field_validator("opencost_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("cost_metrics", "aggregates")
    @classmethod
    def non_empty_list(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one entry is required")
        return v

    @field_validator("refresh_interval", "http_timeout")
    @classmethod
    def positive_duration(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("must be a positive duration")
        return v

    @field_validator("listen_addr")
    @classmethod
    def valid_listen_addr(cls, v: str) -> str:
        parse_listen_addr(v)
        return v

    @model_validator(mode="after")
    def validate_required(self):
        for name in ("opencost_url", "window", "cost_metric"):
            if not getattr(self, name):
                raise ValueError(f"{name} must not be empty")
        return self

    @property
    def host(self) -> str:
        return parse_listen_addr(self.listen_addr)[0]

    @property
    def port(self) -> int:
        return parse_listen_addr(self.listen_addr)[1]

    def describe(self) -> dict[str, str]:
        """Settings as the environment keys they were read from."""
        return {
            "OPENCOST_URL": self.opencost_url,
            "WINDOW": self.window,
            "COST_METRIC": self.cost_metric,
            "COST_METRICS": ",".join(self.cost_metrics),
            "AGGREGATES": ",".join(self.aggregates),
            "REFRESH_INTERVAL": format_duration(self.refresh_interval),
            "HTTP_TIMEOUT": format_duration(self.http_timeout),
            "LISTEN_ADDR": self.listen_addr,
        }


def _get(values: Mapping[str, Any], key: str) -> Any:
    value = values.get(key)
    if value is None:
        value = values.get(key.lower())
    return value


def _is_set(value: Any) -> bool:
    return value is not None and str(value) != ""


def _optional_list(values: Mapping[str, Any], key: str, default: list[str]) -> list[str]:
    raw = _get(values, key)
    if not _is_set(raw):
        return list(default)
    parsed = parse_list(raw)
    if not parsed:
        raise ConfigurationError(f"{key} is set but empty")
    return parsed


def _duration(values: Mapping[str, Any], key: str, default: str) -> timedelta:
    raw = _get(values, key)
    if not _is_set(raw):
        raw = default
    try:
        return parse_duration(str(raw))
    except ValueError as e:
        raise ConfigurationError(f"invalid {key}: {e}") from e


def settings_from_mapping(values: Mapping[str, Any]) -> ExporterSettings:
    """
    Build ExporterSettings from resolved configuration values.

    Args:
        values: Mapping of upper-case keys (OPENCOST_URL, WINDOW, ...) to values

    Returns:
        Validated settings

    Raises:
        ConfigurationError: If a required key is missing or a value is malformed
    """
    for key in REQUIRED_KEYS:
        if not _is_set(_get(values, key)):
            raise ConfigurationError(f"{key} is required")

    cost_metric = str(_get(values, "COST_METRIC"))
    listen_addr = _get(values, "LISTEN_ADDR")

    try:
        return ExporterSettings(
            opencost_url=str(_get(values, "OPENCOST_URL")),
            window=str(_get(values, "WINDOW")),
            cost_metric=cost_metric,
            cost_metrics=_optional_list(values, "COST_METRICS", [cost_metric]),
            aggregates=_optional_list(values, "AGGREGATES", DEFAULT_AGGREGATES),
            refresh_interval=_duration(values, "REFRESH_INTERVAL", DEFAULT_REFRESH_INTERVAL),
            http_timeout=_duration(values, "HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            listen_addr=str(listen_addr) if _is_set(listen_addr) else DEFAULT_LISTEN_ADDR,
        )
    except ValueError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e


def build_dynaconf(settings_file: str | None = None) -> Dynaconf:
    """
    Create the dynaconf settings object.

    Settings files are read first, then every environment variable without a
    prefix (OPENCOST_URL, WINDOW, ...), which overrides the files.
    """
    settings_files = [str(CONFIG_DIR / "exporter.yaml")]
    if settings_file:
        settings_files.append(settings_file)

    return Dynaconf(
        envvar_prefix=False,
        settings_files=settings_files,
        environments=False,
        load_dotenv=True,
        validators=[
            Validator(*REQUIRED_KEYS, must_exist=True, ne=""),
            Validator("REFRESH_INTERVAL", default=DEFAULT_REFRESH_INTERVAL),
            Validator("HTTP_TIMEOUT", default=DEFAULT_HTTP_TIMEOUT),
            Validator("LISTEN_ADDR", default=DEFAULT_LISTEN_ADDR),
        ],
    )


def _resolved(settings: Dynaconf, key: str) -> Any:
    """
    Value of key, taking the environment text verbatim when it is set there.

    dynaconf parses environment values as TOML, which turns strings such as
    "2025-01-01T00:00:00Z" or "true" into typed values.
    """
    raw = os.environ.get(key)
    if raw is not None:
        return raw
    return settings.get(key)


def load_settings(settings_file: str | None = None) -> ExporterSettings:
    """
    Load and validate exporter settings from files and the environment.

    Raises:
        ConfigurationError: If the configuration is incomplete or malformed
    """
    settings = build_dynaconf(settings_file)
    try:
        settings.validators.validate()
    except ValidationError as e:
        raise ConfigurationError(str(e)) from e

    exporter_settings = settings_from_mapping(
        {key: _resolved(settings, key) for key in (*REQUIRED_KEYS, *OPTIONAL_KEYS)}
    )
    logger.debug(f"Loaded settings: {exporter_settings.describe()}")
    return exporter_settings

