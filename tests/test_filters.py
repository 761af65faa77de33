from __future__ import annotations

from datetime import datetime, timezone

import pytest

from survey_analytics.config import ScoreThresholdsConfig
from survey_analytics.features.filters import (
    FilterCriteria,
    apply_filters,
    distinct_in_order,
    last_days,
    matches,
    with_score_band,
)
from survey_analytics.io.schema import ResponseRecord, ResultSummary


def _record(
    record_id: str,
    percentage: float | None,
    *,
    timestamp: str = "2025-06-15T10:00:00Z",
    survey_title: str = "Survey A",
    score: float | None = 10,
) -> ResponseRecord:
    return ResponseRecord(
        id=record_id,
        timestamp=timestamp,
        survey_title=survey_title,
        results=ResultSummary(score=score, percentage=percentage),
    )


def test_inactive_criteria_keeps_every_record_in_order() -> None:
    records = [_record("a", 85), _record("b", None), _record("c", 93, timestamp="garbage")]

    assert FilterCriteria().is_active is False
    assert apply_filters(records, FilterCriteria()) == tuple(records)


def test_min_score_filters_scenario_dataset() -> None:
    records = [_record("a", 85), _record("b", 72), _record("c", 93)]

    filtered = apply_filters(records, FilterCriteria(min_score=80))

    assert [record.id for record in filtered] == ["a", "c"]


def test_score_bounds_are_inclusive_and_null_percentage_fails() -> None:
    criteria = FilterCriteria(min_score=72, max_score=85)

    assert matches(_record("a", 72), criteria)
    assert matches(_record("b", 85), criteria)
    assert not matches(_record("c", 85.01), criteria)
    assert not matches(_record("d", None), criteria)


def test_survey_version_exact_match() -> None:
    criteria = FilterCriteria(survey_version="Survey B")

    assert matches(_record("a", 50, survey_title="Survey B"), criteria)
    assert not matches(_record("b", 50, survey_title="survey b"), criteria)


def test_unparseable_timestamp_fails_closed_only_under_date_constraint() -> None:
    record = _record("a", 50, timestamp="not a date")

    assert matches(record, FilterCriteria())
    assert not matches(record, FilterCriteria(start_date="2025-01-01"))


def test_date_only_end_bound_includes_the_whole_day() -> None:
    criteria = FilterCriteria(start_date="2025-06-15", end_date="2025-06-15")

    assert matches(_record("a", 50, timestamp="2025-06-15T00:00:00Z"), criteria)
    assert matches(_record("b", 50, timestamp="2025-06-15T23:59:59Z"), criteria)
    assert not matches(_record("c", 50, timestamp="2025-06-16T00:00:00Z"), criteria)
    assert not matches(_record("d", 50, timestamp="2025-06-14T23:59:59Z"), criteria)


def test_date_bounds_use_configured_timezone_for_naive_values() -> None:
    record = _record("a", 50, timestamp="2025-06-15T23:30:00")
    criteria = FilterCriteria(end_date="2025-06-15")

    assert matches(record, criteria, "UTC")
    assert matches(record, criteria, "America/New_York")


def test_completion_flag_uses_score_presence() -> None:
    complete = _record("a", 50, score=10)
    incomplete = _record("b", 50, score=None)

    assert apply_filters([complete, incomplete], FilterCriteria(completed=True)) == (complete,)
    assert apply_filters([complete, incomplete], FilterCriteria(completed=False)) == (
        incomplete,
    )


def test_constraints_are_combined_with_and() -> None:
    records = [
        _record("a", 90, survey_title="Survey A"),
        _record("b", 90, survey_title="Survey B"),
        _record("c", 40, survey_title="Survey A"),
    ]
    criteria = FilterCriteria(survey_version="Survey A", min_score=80)

    assert [record.id for record in apply_filters(records, criteria)] == ["a"]


def test_invalid_criteria_are_rejected() -> None:
    with pytest.raises(ValueError):
        FilterCriteria(min_score=90, max_score=10)
    with pytest.raises(ValueError):
        FilterCriteria(start_date="2025-07-01", end_date="2025-06-01").ensure_date_order()
    with pytest.raises(ValueError):
        FilterCriteria(start_date="yesterday-ish")


def test_score_band_presets() -> None:
    thresholds = ScoreThresholdsConfig(high=80, medium=50)
    records = [_record("high", 80), _record("medium", 50), _record("low", 49.9)]

    def _ids(band: str) -> list[str]:
        criteria = with_score_band(FilterCriteria(), band, thresholds)
        return [record.id for record in apply_filters(records, criteria)]

    assert _ids("high") == ["high"]
    assert _ids("medium") == ["medium"]
    assert _ids("low") == ["low"]
    with pytest.raises(ValueError):
        with_score_band(FilterCriteria(), "extreme", thresholds)


def test_last_days_is_relative_to_reference_time() -> None:
    now = datetime(2025, 7, 10, 12, 0, tzinfo=timezone.utc)

    assert last_days(7, now=now) == datetime(2025, 7, 3, 12, 0, tzinfo=timezone.utc)
    criteria = FilterCriteria(start_date=last_days(7, now=now))
    assert matches(_record("a", 50, timestamp="2025-07-05T00:00:00Z"), criteria)
    assert not matches(_record("b", 50, timestamp="2025-07-01T00:00:00Z"), criteria)
    with pytest.raises(ValueError):
        last_days(0)


def test_describe_lists_active_constraints() -> None:
    described = dict(FilterCriteria(min_score=80, completed=True).describe())

    assert described["Score Range"] == ">= 80%"
    assert described["Completion"] == "completed"
    assert described["Survey Version"] == "all"


def test_distinct_in_order_keeps_first_seen_order() -> None:
    assert distinct_in_order(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


def test_date_order_reads_naive_bounds_in_the_given_timezone() -> None:
    criteria = FilterCriteria(start_date="2025-06-15T12:00:00Z", end_date="2025-06-15T10:00:00")

    criteria.ensure_date_order("America/New_York")
    assert matches(_record("a", 50, timestamp="2025-06-15T13:00:00Z"), criteria, "America/New_York")
    with pytest.raises(ValueError, match="start_date"):
        criteria.ensure_date_order("UTC")
