"""
Label sets for the exported metric families.

Each family is bound to one label type, so label values are always passed by
name and a series can't be built with its values in the wrong order.
"""

from dataclasses import asdict, dataclass, fields
from typing import ClassVar

LAST_RUN = "last_run"
NEXT_RUN = "next_run"


@dataclass(frozen=True)
class LabelSet:
    """Base class for structured label keys."""

    @classmethod
    def label_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def as_dict(self) -> dict[str, str]:
        return {k: str(v) for k, v in asdict(self).items()}

    def values(self) -> list[str]:
        return [str(getattr(self, name)) for name in self.label_names()]


@dataclass(frozen=True)
class IntegrationUpLabels(LabelSet):
    key: str
    provider: str
    source: str
    connection_status: str


@dataclass(frozen=True)
class IntegrationRunLabels(LabelSet):
    key: str
    provider: str
    which: str

    WHICH: ClassVar[tuple[str, ...]] = (LAST_RUN, NEXT_RUN)

    def __post_init__(self):
        if self.which not in self.WHICH:
            raise ValueError(f"which must be one of {self.WHICH}, got {self.which!r}")


@dataclass(frozen=True)
class TotalCostLabels(LabelSet):
    window: str
    cost_metric: str


@dataclass(frozen=True)
class AggregateLabels(LabelSet):
    aggregate: str
    name: str
    window: str
    cost_metric: str


@dataclass(frozen=True)
class ServiceLabels(LabelSet):
    service: str
    window: str
    cost_metric: str


@dataclass(frozen=True)
class CategoryLabels(LabelSet):
    category: str
    window: str
    cost_metric: str


@dataclass(frozen=True)
class DailyAggregateLabels(LabelSet):
    aggregate: str
    name: str
    day: str
    window: str
    cost_metric: str


@dataclass(frozen=True)
class DailyServiceLabels(LabelSet):
    service: str
    day: str
    window: str
    cost_metric: str


@dataclass(frozen=True)
class DailyTotalLabels(LabelSet):
    day: str
    window: str
    cost_metric: str


@dataclass(frozen=True)
class DailyCategoryLabels(LabelSet):
    category: str
    day: str
    window: str
    cost_metric: str
