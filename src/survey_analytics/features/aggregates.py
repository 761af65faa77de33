from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Sequence

import pandas as pd

from survey_analytics.config import MetricsConfig, TimeConfig
from survey_analytics.io.schema import EmailRecord, ResponseRecord
from survey_analytics.preprocess.time import bucket_start, parse_timestamp

UNKNOWN_LOCATION = "Unknown"


@dataclass(frozen=True)
class CategoryStat:
    category: str
    average: float | None
    count: int
    performance: str
    consistency: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "average": self.average,
            "count": self.count,
            "performance": self.performance,
            "consistency": self.consistency,
        }


@dataclass(frozen=True)
class TrendBucket:
    bucket: date
    count: int


@dataclass(frozen=True)
class GeoCount:
    location: str
    count: int


@dataclass(frozen=True)
class AggregateMetrics:
    """Derived summary of a record set; ``None`` averages mean no contributors."""

    total_count: int
    completed_count: int
    average_score: float | None
    average_percentage: float | None
    category_stats: list[CategoryStat] = field(default_factory=list)
    survey_version_counts: dict[str, int] = field(default_factory=dict)
    trend: list[TrendBucket] = field(default_factory=list)
    trend_granularity: str = "day"
    geography: list[GeoCount] = field(default_factory=list)
    score_distribution: dict[str, int] = field(default_factory=dict)
    email_request_count: int = 0
    email_request_percentage: float | None = None
    synthesized_timestamp_count: int = 0
    undated_count: int = 0

    @property
    def category_averages(self) -> dict[str, float | None]:
        return {stat.category: stat.average for stat in self.category_stats}

    @property
    def is_empty(self) -> bool:
        return self.total_count == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCount": self.total_count,
            "completedCount": self.completed_count,
            "averageScore": self.average_score,
            "averagePercentage": self.average_percentage,
            "categoryAverages": self.category_averages,
            "categoryStats": [stat.to_dict() for stat in self.category_stats],
            "surveyVersionCounts": dict(self.survey_version_counts),
            "trendGranularity": self.trend_granularity,
            "trend": [
                {"bucket": bucket.bucket.isoformat(), "count": bucket.count}
                for bucket in self.trend
            ],
            "geography": [
                {"location": entry.location, "count": entry.count} for entry in self.geography
            ],
            "scoreDistribution": dict(self.score_distribution),
            "emailRequestCount": self.email_request_count,
            "emailRequestPercentage": self.email_request_percentage,
            "synthesizedTimestampCount": self.synthesized_timestamp_count,
            "undatedCount": self.undated_count,
        }


def _mean_or_none(values: pd.Series, precision: int) -> float | None:
    numeric = pd.to_numeric(values, errors="coerce").dropna()
    if numeric.empty:
        return None
    mean = float(numeric.mean())
    if not math.isfinite(mean):
        return None
    return round(mean, precision)


def score_bucket_labels(edges: Sequence[float]) -> list[str]:
    ordered = sorted(float(edge) for edge in edges)
    labels = [f"0-{ordered[0]:g}%"]
    for previous, edge in zip(ordered, ordered[1:]):
        labels.append(f"{previous + 1:g}-{edge:g}%")
    labels.append(f"{ordered[-1]:g}%+")
    return labels


def build_score_distribution(
    percentages: pd.Series,
    edges: Sequence[float],
) -> dict[str, int]:
    labels = score_bucket_labels(edges)
    ordered = sorted(float(edge) for edge in edges)
    values = pd.to_numeric(percentages, errors="coerce").dropna()
    if values.empty:
        return {label: 0 for label in labels}
    binned = pd.cut(
        values,
        bins=[-math.inf, *ordered, math.inf],
        labels=labels,
        right=True,
    )
    counts = binned.value_counts().reindex(labels, fill_value=0)
    return {label: int(counts[label]) for label in labels}


def _performance_label(average: float | None, config: MetricsConfig) -> str:
    if average is None:
        return "N/A"
    if average >= config.score_thresholds.high:
        return "High"
    if average >= config.score_thresholds.medium:
        return "Medium"
    return "Low"


def _consistency_label(variance: float, count: int, config: MetricsConfig) -> str:
    if count < 2 or not math.isfinite(variance):
        return "N/A"
    if variance < config.consistency_thresholds.high:
        return "High"
    if variance < config.consistency_thresholds.medium:
        return "Medium"
    return "Low"


def build_category_stats(
    records: Sequence[ResponseRecord],
    config: MetricsConfig,
) -> list[CategoryStat]:
    rows = [
        {"category": category, "value": value}
        for record in records
        for category, value in record.results.categories.items()
    ]
    if not rows:
        return []
    frame = pd.DataFrame(rows)
    frame["value"] = pd.to_numeric(frame["value"], errors="coerce")
    grouped = frame.groupby("category", sort=False)["value"].agg(
        count="count",
        mean="mean",
        variance=lambda s: s.var(ddof=0),
    )

    stats: list[CategoryStat] = []
    for category, row in grouped.iterrows():
        count = int(row["count"])
        average = round(float(row["mean"]), config.precision) if count > 0 else None
        stats.append(
            CategoryStat(
                category=str(category),
                average=average,
                count=count,
                performance=_performance_label(average, config),
                consistency=_consistency_label(float(row["variance"]), count, config),
            )
        )
    return stats


def build_survey_version_counts(records: Sequence[ResponseRecord]) -> dict[str, int]:
    if not records:
        return {}
    titles = pd.Series([record.survey_title for record in records], dtype="object")
    counts = titles.groupby(titles, sort=False).size()
    return {str(title): int(count) for title, count in counts.items()}


def build_trend(
    records: Sequence[ResponseRecord],
    time_config: TimeConfig,
    *,
    include_synthesized: bool = False,
) -> tuple[list[TrendBucket], int]:
    """Sparse, ascending buckets plus the number of records left undated."""
    buckets: list[date] = []
    undated = 0
    for record in records:
        if record.timestamp_synthesized and not include_synthesized:
            undated += 1
            continue
        instant = parse_timestamp(record.timestamp, time_config.timezone)
        if instant is None:
            undated += 1
            continue
        buckets.append(
            bucket_start(instant, time_config.trend_granularity, time_config.timezone)
        )
    if not buckets:
        return [], undated
    counts = pd.Series(buckets, dtype="object").value_counts().sort_index()
    return [TrendBucket(bucket=key, count=int(value)) for key, value in counts.items()], undated


def location_key(record: ResponseRecord) -> str:
    return record.location or record.ip or UNKNOWN_LOCATION


def build_geography(records: Sequence[ResponseRecord]) -> list[GeoCount]:
    if not records:
        return []
    keys = pd.Series([location_key(record) for record in records], dtype="object")
    counts = keys.groupby(keys, sort=False).size().sort_values(ascending=False, kind="stable")
    return [GeoCount(location=str(key), count=int(value)) for key, value in counts.items()]


def _timestamp_frame(rows: list[dict[str, Any]], timezone_name: str) -> pd.DataFrame:
    frame = pd.DataFrame(rows, columns=["key", "survey_title", "timestamp"])
    frame["instant"] = pd.to_datetime(
        [parse_timestamp(value, timezone_name) for value in frame["timestamp"]],
        utc=True,
    ).as_unit("ns")
    return frame.dropna(subset=["instant"]).sort_values("instant", kind="stable")


def match_email_requests(
    responses: Sequence[ResponseRecord],
    emails: Sequence[EmailRecord],
    *,
    window_seconds: float,
    timezone_name: str = "UTC",
) -> set[str]:
    """Ids of responses with an email record for the same survey nearby in time."""
    if not responses or not emails:
        return set()
    left = _timestamp_frame(
        [
            {"key": record.id, "survey_title": record.survey_title, "timestamp": record.timestamp}
            for record in responses
        ],
        timezone_name,
    )
    right = _timestamp_frame(
        [
            {"key": record.id, "survey_title": record.survey_title, "timestamp": record.timestamp}
            for record in emails
        ],
        timezone_name,
    ).rename(columns={"key": "email_key", "timestamp": "email_timestamp"})
    if left.empty or right.empty:
        return set()

    merged = pd.merge_asof(
        left,
        right,
        on="instant",
        by="survey_title",
        direction="nearest",
        tolerance=pd.Timedelta(seconds=window_seconds),
    )
    return set(merged.loc[merged["email_key"].notna(), "key"].astype(str))


def compute_metrics(
    records: Sequence[ResponseRecord],
    config: MetricsConfig | None = None,
    *,
    time_config: TimeConfig | None = None,
    emails: Sequence[EmailRecord] = (),
) -> AggregateMetrics:
    config = config or MetricsConfig()
    time_config = time_config or TimeConfig()

    scores = pd.Series([record.results.score for record in records], dtype="object")
    percentages = pd.Series([record.results.percentage for record in records], dtype="object")
    trend, undated = build_trend(
        records,
        time_config,
        include_synthesized=config.trend_include_synthesized_timestamps,
    )

    email_matches = match_email_requests(
        records,
        emails,
        window_seconds=config.email_match_window_seconds,
        timezone_name=time_config.timezone,
    )
    email_request_count = sum(1 for record in records if record.id in email_matches)
    email_request_percentage = (
        round(email_request_count / len(records) * 100.0, config.precision) if records else None
    )

    return AggregateMetrics(
        total_count=len(records),
        completed_count=sum(1 for record in records if record.results.is_complete),
        average_score=_mean_or_none(scores, config.precision),
        average_percentage=_mean_or_none(percentages, config.precision),
        category_stats=build_category_stats(records, config),
        survey_version_counts=build_survey_version_counts(records),
        trend=trend,
        trend_granularity=time_config.trend_granularity,
        geography=build_geography(records),
        score_distribution=build_score_distribution(percentages, config.score_bucket_edges),
        email_request_count=email_request_count,
        email_request_percentage=email_request_percentage,
        synthesized_timestamp_count=sum(1 for record in records if record.timestamp_synthesized),
        undated_count=undated,
    )


def build_responses_table(
    records: Sequence[ResponseRecord],
    *,
    limit: int = 50,
    timezone_name: str = "UTC",
    email_matches: set[str] | None = None,
) -> list[dict[str, str]]:
    """Display rows for the dashboard responses table."""
    matched = email_matches or set()
    rows: list[dict[str, str]] = []
    for record in records[:limit]:
        instant = parse_timestamp(record.timestamp, timezone_name)
        day = instant.tz_convert(timezone_name).date().isoformat() if instant is not None else "N/A"
        score = record.results.score
        percentage = record.results.percentage
        rows.append(
            {
                "date": day,
                "surveyTitle": record.survey_title,
                "score": f"{score:g}" if score is not None else "N/A",
                "percentage": f"{percentage:.1f}%" if percentage is not None else "N/A",
                "emailSent": "yes" if record.id in matched else "no",
                "location": location_key(record),
            }
        )
    return rows


def build_export_stats(
    records: Sequence[ResponseRecord],
    timezone_name: str = "UTC",
) -> dict[str, Any]:
    instants = [
        instant
        for instant in (parse_timestamp(record.timestamp, timezone_name) for record in records)
        if instant is not None
    ]
    return {
        "totalResponses": len(records),
        "earliest": min(instants).isoformat() if instants else None,
        "latest": max(instants).isoformat() if instants else None,
    }
