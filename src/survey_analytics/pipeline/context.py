from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from survey_analytics.config import AppConfig
from survey_analytics.paths import OutputPaths, build_output_paths
from survey_analytics.pipeline.data_service import DataService
from survey_analytics.report.exports import ExportService
from survey_analytics.viz.chart_manager import ChartManager


@dataclass(frozen=True)
class AnalyticsContext:
    """Services for one run, built once and handed to whoever needs them."""

    config: AppConfig
    paths: OutputPaths
    data_service: DataService
    export_service: ExportService
    chart_manager: ChartManager


def build_context(config: AppConfig, out_dir: Path = Path("out")) -> AnalyticsContext:
    paths = build_output_paths(out_dir, create=False)
    data_service = DataService(config)
    return AnalyticsContext(
        config=config,
        paths=paths,
        data_service=data_service,
        export_service=ExportService(data_service, config),
        chart_manager=ChartManager(config, paths.figures),
    )
