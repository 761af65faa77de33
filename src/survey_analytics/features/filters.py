from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Literal, Protocol, Sequence, TypeVar

from survey_analytics.config import ScoreThresholdsConfig
from survey_analytics.io.schema import ResultSummary
from survey_analytics.preprocess.time import parse_bound, parse_timestamp

ALL_VERSIONS = "all"

ScoreBand = Literal["high", "medium", "low"]
DateBound = str | date | datetime


class FilterableRecord(Protocol):
    survey_title: str
    results: ResultSummary

    @property
    def timestamp(self) -> str | None: ...


RecordT = TypeVar("RecordT", bound=FilterableRecord)


@dataclass(frozen=True)
class FilterCriteria:
    """User-selected constraints. ``None`` (or ``"all"``) means unconstrained."""

    survey_version: str = ALL_VERSIONS
    start_date: DateBound | None = None
    end_date: DateBound | None = None
    min_score: float | None = None
    max_score: float | None = None
    below_score: float | None = None
    completed: bool | None = None

    def __post_init__(self) -> None:
        if not self.survey_version:
            object.__setattr__(self, "survey_version", ALL_VERSIONS)
        if (
            self.min_score is not None
            and self.max_score is not None
            and self.min_score > self.max_score
        ):
            raise ValueError("min_score must not exceed max_score")
        for bound in (self.start_date, self.end_date):
            if bound is not None:
                parse_bound(bound)

    def ensure_date_order(self, timezone_name: str = "UTC") -> None:
        """Reject a start bound after the end bound, reading naive bounds in ``timezone_name``."""
        if self.start_date is None or self.end_date is None:
            return
        start = parse_bound(self.start_date, timezone_name)
        end = parse_bound(self.end_date, timezone_name, end_of_day=True)
        if start > end:
            raise ValueError("start_date must not be after end_date")

    @property
    def has_date_constraint(self) -> bool:
        return self.start_date is not None or self.end_date is not None

    @property
    def has_score_constraint(self) -> bool:
        return any(
            bound is not None for bound in (self.min_score, self.max_score, self.below_score)
        )

    @property
    def is_active(self) -> bool:
        return (
            self.survey_version != ALL_VERSIONS
            or self.has_date_constraint
            or self.has_score_constraint
            or self.completed is not None
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("start_date", "end_date"):
            value = data[key]
            if isinstance(value, (date, datetime)):
                data[key] = value.isoformat()
        return data

    def describe(self) -> list[tuple[str, str]]:
        score_parts = []
        if self.min_score is not None:
            score_parts.append(f">= {self.min_score:g}%")
        if self.max_score is not None:
            score_parts.append(f"<= {self.max_score:g}%")
        if self.below_score is not None:
            score_parts.append(f"< {self.below_score:g}%")
        completed = "any"
        if self.completed is not None:
            completed = "completed" if self.completed else "incomplete"
        return [
            ("Survey Version", self.survey_version),
            ("Start Date", str(self.start_date) if self.start_date is not None else "any"),
            ("End Date", str(self.end_date) if self.end_date is not None else "any"),
            ("Score Range", ", ".join(score_parts) if score_parts else "all"),
            ("Completion", completed),
        ]


def last_days(days: int, now: datetime | None = None) -> datetime:
    """Start bound for a trailing window of ``days`` days."""
    if days < 1:
        raise ValueError("days must be at least 1")
    reference = now or datetime.now(timezone.utc)
    return reference - timedelta(days=days)


def with_score_band(
    criteria: FilterCriteria,
    band: ScoreBand,
    thresholds: ScoreThresholdsConfig,
) -> FilterCriteria:
    if band == "high":
        return replace(criteria, min_score=thresholds.high, max_score=None, below_score=None)
    if band == "medium":
        return replace(
            criteria,
            min_score=thresholds.medium,
            max_score=None,
            below_score=thresholds.high,
        )
    if band == "low":
        return replace(criteria, min_score=None, max_score=None, below_score=thresholds.medium)
    raise ValueError(f"Unknown score band: {band}")


def _matches_date(record: FilterableRecord, criteria: FilterCriteria, timezone_name: str) -> bool:
    instant = parse_timestamp(record.timestamp, timezone_name)
    if instant is None:
        return False
    if criteria.start_date is not None:
        if instant < parse_bound(criteria.start_date, timezone_name):
            return False
    if criteria.end_date is not None:
        if instant > parse_bound(criteria.end_date, timezone_name, end_of_day=True):
            return False
    return True


def _matches_score(record: FilterableRecord, criteria: FilterCriteria) -> bool:
    percentage = record.results.percentage
    if percentage is None:
        return False
    if criteria.min_score is not None and percentage < criteria.min_score:
        return False
    if criteria.max_score is not None and percentage > criteria.max_score:
        return False
    if criteria.below_score is not None and percentage >= criteria.below_score:
        return False
    return True


def matches(
    record: FilterableRecord,
    criteria: FilterCriteria,
    timezone_name: str = "UTC",
) -> bool:
    """True when ``record`` satisfies every active constraint in ``criteria``."""
    if criteria.survey_version != ALL_VERSIONS and record.survey_title != criteria.survey_version:
        return False
    if criteria.has_date_constraint and not _matches_date(record, criteria, timezone_name):
        return False
    if criteria.has_score_constraint and not _matches_score(record, criteria):
        return False
    if criteria.completed is not None and record.results.is_complete != criteria.completed:
        return False
    return True


def apply_filters(
    records: Iterable[RecordT],
    criteria: FilterCriteria,
    timezone_name: str = "UTC",
) -> tuple[RecordT, ...]:
    return tuple(record for record in records if matches(record, criteria, timezone_name))


def distinct_in_order(values: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered
