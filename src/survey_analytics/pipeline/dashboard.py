from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from survey_analytics.errors import ChartRenderError, DataLoadError
from survey_analytics.features.aggregates import (
    AggregateMetrics,
    build_responses_table,
    match_email_requests,
)
from survey_analytics.features.filters import FilterCriteria
from survey_analytics.pipeline.context import AnalyticsContext

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardState:
    metrics: AggregateMetrics
    filters: FilterCriteria
    survey_versions: list[str] = field(default_factory=list)
    table_rows: list[dict[str, str]] = field(default_factory=list)
    charts: dict[str, Path] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return not self.metrics.is_empty

    def to_dict(self) -> dict[str, Any]:
        metrics = self.metrics.to_dict()
        return {
            "filters": self.filters.to_dict(),
            "surveyVersions": list(self.survey_versions),
            "metrics": metrics,
            "geography": metrics["geography"],
            "responsesTable": list(self.table_rows),
            "charts": {name: str(path) for name, path in self.charts.items()},
            "errors": list(self.errors),
        }


class Dashboard:
    """Drives one dashboard view: load, filter, aggregate and chart.

    Load and chart failures are collected as messages in the returned state;
    a failed chart render never blocks the metrics or the responses table.
    """

    def __init__(self, context: AnalyticsContext) -> None:
        self._context = context
        self.state: DashboardState | None = None

    async def initialize(self) -> DashboardState:
        errors: list[str] = []
        try:
            await self._context.chart_manager.initialize()
        except ChartRenderError as exc:
            LOGGER.warning("Charts unavailable: %s", exc)
            errors.append(str(exc))
        errors.extend(await self._load())
        return await self.update_dashboard(errors=errors)

    async def refresh(self) -> DashboardState:
        return await self.update_dashboard(errors=await self._load())

    async def apply_filters(self, criteria: FilterCriteria) -> DashboardState:
        self._context.data_service.set_filters(criteria)
        return await self.update_dashboard()

    async def reset_filters(self) -> DashboardState:
        return await self.apply_filters(FilterCriteria())

    async def _load(self) -> list[str]:
        try:
            summary = await self._context.data_service.load_data()
        except DataLoadError as exc:
            LOGGER.error("Dashboard data load failed: %s", exc)
            return [str(exc)]
        return [f"Partial load: {failure}" for failure in summary.failures]

    async def update_dashboard(self, errors: list[str] | None = None) -> DashboardState:
        config = self._context.config
        data_service = self._context.data_service
        messages = list(errors or [])

        records = data_service.get_filtered_data()
        metrics = data_service.get_metrics()
        email_matches = match_email_requests(
            records,
            data_service.get_emails(),
            window_seconds=config.metrics.email_match_window_seconds,
            timezone_name=config.time.timezone,
        )
        table_rows = build_responses_table(
            records,
            limit=config.metrics.table_page_size,
            timezone_name=config.time.timezone,
            email_matches=email_matches,
        )

        charts: dict[str, Path] = {}
        if self._context.chart_manager.is_initialized:
            try:
                charts = await self._context.chart_manager.update(records, metrics=metrics)
            except ChartRenderError as exc:
                messages.append(str(exc))

        self.state = DashboardState(
            metrics=metrics,
            filters=data_service.get_filters(),
            survey_versions=data_service.get_survey_versions(),
            table_rows=table_rows,
            charts=charts,
            errors=messages,
        )
        return self.state
