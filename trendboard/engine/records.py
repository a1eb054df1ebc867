"""Record types flowing from the extractor to the cache."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True, slots=True)
class TrendingRecord:
    """One trending listing entry."""

    category: str
    source_url: str
    primary_metric: int = 0
    delta_metric: int | None = None
    secondary_metric: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "sourceUrl": self.source_url,
            "primaryMetric": self.primary_metric,
            "deltaMetric": self.delta_metric,
            "secondaryMetric": self.secondary_metric,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "TrendingRecord":
        # Accepts the legacy repo-centric keys written by older cache files.
        source_url = payload.get("sourceUrl", payload.get("repoUrl"))
        if not source_url:
            raise ValueError("record is missing sourceUrl")
        primary = _optional_int(payload.get("primaryMetric", payload.get("stars")))
        return cls(
            category=str(payload.get("category", payload.get("language", "")) or ""),
            source_url=str(source_url),
            primary_metric=primary if primary is not None and primary >= 0 else 0,
            delta_metric=_optional_int(payload.get("deltaMetric", payload.get("starsToday"))),
            secondary_metric=_optional_int(payload.get("secondaryMetric", payload.get("forks"))),
        )


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(slots=True)
class CategoryOutcome:
    """What one category fetch produced."""

    category: str
    status: OutcomeStatus
    records: list[TrendingRecord] = field(default_factory=list)
    reason: str | None = None

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def success(cls, category: str, records: Iterable[TrendingRecord]) -> "CategoryOutcome":
        return cls(category=category, status=OutcomeStatus.SUCCESS, records=list(records))

    @classmethod
    def failure(cls, category: str, reason: str) -> "CategoryOutcome":
        return cls(category=category, status=OutcomeStatus.FAILURE, reason=reason)


@dataclass(slots=True)
class AggregateResult:
    """Merged records plus the per-category outcome map of one run."""

    records: list[TrendingRecord]
    outcomes: dict[str, CategoryOutcome]

    @property
    def failed_categories(self) -> list[str]:
        return [name for name, outcome in self.outcomes.items() if not outcome.ok]

    @property
    def succeeded_categories(self) -> list[str]:
        return [name for name, outcome in self.outcomes.items() if outcome.ok]


__all__ = ["AggregateResult", "CategoryOutcome", "OutcomeStatus", "TrendingRecord"]
