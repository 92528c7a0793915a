"""
Response models and error types for the OpenCost cloud cost API.

Defines the envelopes returned by the status, totals, table and graph
endpoints and the shapes the exporter reduces them to.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

SUCCESS_CODE = 200


class CloudCostExporterError(Exception):
    """Base exception for exporter errors."""

    pass


class ConfigurationError(CloudCostExporterError):
    """Configuration-related errors."""

    pass


class UpstreamError(CloudCostExporterError):
    """A request against the cloud cost API failed."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        params: dict[str, Any] | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.endpoint = endpoint
        self.params = params or {}
        self.status_code = status_code


class UpstreamConnectionError(UpstreamError):
    """Transport errors and timeouts."""

    pass


class UpstreamHTTPError(UpstreamError):
    """Non-2xx HTTP status."""

    pass


class UpstreamResponseError(UpstreamError):
    """Envelope carried a non-success code."""

    pass


class UpstreamDecodeError(UpstreamError):
    """Body could not be decoded into the expected shape."""

    pass


def _none_to_empty_list(v: Any) -> Any:
    return [] if v is None else v


def _none_to_zero(v: Any) -> Any:
    return 0.0 if v is None else v


def _none_to_empty_str(v: Any) -> Any:
    return "" if v is None else v


def _none_to_false(v: Any) -> Any:
    return False if v is None else v


class _UpstreamModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class IntegrationStatus(_UpstreamModel):
    """Status of one cloud cost integration as reported by /cloudCost/status."""

    key: str = ""
    source: str = ""
    provider: str = ""
    active: bool = False
    valid: bool = False
    last_run: str = Field(default="", alias="lastRun")
    next_run: str = Field(default="", alias="nextRun")
    connection_status: str = Field(default="", alias="connectionStatus")

    @field_validator(
        "key", "source", "provider", "last_run", "next_run", "connection_status", mode="before"
    )
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return _none_to_empty_str(v)

    @field_validator("active", "valid", mode="before")
    @classmethod
    def null_as_false(cls, v: Any) -> Any:
        return _none_to_false(v)

    @property
    def up(self) -> bool:
        return self.active and self.valid

    @property
    def last_run_at(self) -> datetime | None:
        return parse_rfc3339(self.last_run)

    @property
    def next_run_at(self) -> datetime | None:
        return parse_rfc3339(self.next_run)


class CostRow(_UpstreamModel):
    """A named cost row, used by both the totals and table endpoints."""

    name: str = ""
    kubernetes_percent: float = Field(default=0.0, alias="kubernetesPercent")
    cost: float = 0.0

    @field_validator("kubernetes_percent", "cost", mode="before")
    @classmethod
    def null_as_zero(cls, v: Any) -> Any:
        return _none_to_zero(v)

    @field_validator("name", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return _none_to_empty_str(v)


class GraphItem(_UpstreamModel):
    name: str = ""
    value: float = 0.0

    @field_validator("name", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return _none_to_empty_str(v)

    @field_validator("value", mode="before")
    @classmethod
    def null_as_zero(cls, v: Any) -> Any:
        return _none_to_zero(v)


class GraphBucket(_UpstreamModel):
    start: str = ""
    end: str = ""
    items: list[GraphItem] = []

    @field_validator("start", "end", mode="before")
    @classmethod
    def null_as_empty_str(cls, v: Any) -> Any:
        return _none_to_empty_str(v)

    @field_validator("items", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return _none_to_empty_list(v)


class TotalsData(_UpstreamModel):
    combined: CostRow = CostRow()

    @field_validator("combined", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v


class Envelope(_UpstreamModel):
    """Top-level {code, data} wrapper shared by every endpoint."""

    code: int = 0

    @property
    def ok(self) -> bool:
        return self.code == SUCCESS_CODE


class StatusResponse(Envelope):
    data: list[IntegrationStatus] = []

    @field_validator("data", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return _none_to_empty_list(v)


class TotalsResponse(Envelope):
    data: TotalsData = TotalsData()

    @field_validator("data", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return {} if v is None else v


class TableResponse(Envelope):
    data: list[CostRow] = []

    @field_validator("data", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return _none_to_empty_list(v)


class GraphResponse(Envelope):
    data: list[GraphBucket] = []

    @field_validator("data", mode="before")
    @classmethod
    def null_as_empty(cls, v: Any) -> Any:
        return _none_to_empty_list(v)


class DailyPoint(BaseModel):
    """Costs of one graph bucket keyed by calendar day."""

    day: str
    total: float
    by_name: dict[str, float]

    @classmethod
    def from_bucket(cls, bucket: GraphBucket) -> "DailyPoint":
        """
        Reduce a graph bucket to a daily point.

        The day is the first ten characters of the bucket start
        ("2025-12-04T00:00:00Z" -> "2025-12-04"); shorter strings are kept
        as-is and rejected later when the day is parsed. The total sums every
        item, including repeated names, while by_name keeps the last value
        seen for a name.
        """
        by_name: dict[str, float] = {}
        total = 0.0
        for item in bucket.items:
            by_name[item.name] = item.value
            total += item.value
        return cls(day=truncate_day(bucket.start), total=total, by_name=by_name)


def truncate_day(start: str) -> str:
    """Textual truncation of an RFC 3339 timestamp to its date portion."""
    return start[:10]


def parse_rfc3339(value: str | None) -> datetime | None:
    """
    Parse an RFC 3339 timestamp, returning None when absent or unparseable.

    Accepts a trailing "Z" and fractional seconds of any precision; a
    timestamp without a UTC offset is treated as unparseable.
    """
    if not value:
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    # fromisoformat takes at most microseconds
    if "." in text:
        head, _, rest = text.partition(".")
        digits = len(rest) - len(rest.lstrip("0123456789"))
        fraction, offset = rest[:digits], rest[digits:]
        if not fraction:
            return None
        text = f"{head}.{fraction[:6].ljust(6, '0')}{offset}"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        return None
    try:
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None
