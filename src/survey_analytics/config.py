from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_SCORE_BUCKET_EDGES = [20.0, 40.0, 60.0, 80.0, 100.0]


class StoreConfig(BaseModel):
    results_dir: str | None = None
    email_subdir: str = "email-recipients"
    reserved_prefixes: list[str] = Field(default_factory=lambda: ["email-"])


class TimeConfig(BaseModel):
    timezone: str = "UTC"
    trend_granularity: Literal["day", "week", "month"] = "day"


class ScoreThresholdsConfig(BaseModel):
    high: float = Field(default=80.0, ge=0.0)
    medium: float = Field(default=50.0, ge=0.0)

    @model_validator(mode="after")
    def _check_order(self) -> "ScoreThresholdsConfig":
        if self.medium > self.high:
            raise ValueError("score_thresholds.medium must not exceed score_thresholds.high")
        return self


class ConsistencyThresholdsConfig(BaseModel):
    high: float = Field(default=100.0, gt=0.0)
    medium: float = Field(default=400.0, gt=0.0)


class MetricsConfig(BaseModel):
    precision: int = Field(default=2, ge=0, le=6)
    unknown_survey_title: str = "Unknown Survey"
    score_thresholds: ScoreThresholdsConfig = Field(default_factory=ScoreThresholdsConfig)
    score_bucket_edges: list[float] = Field(
        default_factory=lambda: list(DEFAULT_SCORE_BUCKET_EDGES),
        min_length=1,
    )
    consistency_thresholds: ConsistencyThresholdsConfig = Field(
        default_factory=ConsistencyThresholdsConfig
    )
    email_match_window_seconds: float = Field(default=60.0, ge=0.0)
    trend_include_synthesized_timestamps: bool = False
    table_page_size: int = Field(default=50, ge=1)


class ExportsConfig(BaseModel):
    csv_prefix: str = "survey-responses-"
    json_prefix: str = "survey-analytics-data-"
    pdf_prefix: str = "survey-analytics-report-"
    email_list_prefix: str = "survey-email-list-"
    category_csv_prefix: str = "survey-category-stats-"
    pdf_page_size: Literal["A4", "letter"] = "A4"
    pdf_table_rows_per_page: int = Field(default=40, ge=5)


class ChartsConfig(BaseModel):
    enabled: bool = True
    figures_format: str = "png"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    store: StoreConfig = Field(default_factory=StoreConfig)
    time: TimeConfig = Field(default_factory=TimeConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    exports: ExportsConfig = Field(default_factory=ExportsConfig)
    charts: ChartsConfig = Field(default_factory=ChartsConfig)

    def results_path(self) -> Path:
        return Path(self.store.results_dir or "shared-results")

    def emails_path(self) -> Path:
        return self.results_path() / self.store.email_subdir


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def _resolve_optional_path(path_value: str | None, base_dir: Path) -> str | None:
    if not path_value:
        return None
    candidate = Path(path_value)
    if candidate.is_absolute():
        return str(candidate)
    return str((base_dir / candidate).resolve())


def load_config(path: Path | None = None) -> AppConfig:
    """Load YAML config; with no path, defaults plus environment overrides."""
    if path is None:
        config = AppConfig()
    else:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        config = AppConfig.model_validate(data)
        config.store.results_dir = _resolve_optional_path(
            config.store.results_dir,
            path.resolve().parent,
        )

    config.store.results_dir = config.store.results_dir or os.getenv(
        "SURVEY_ANALYTICS_RESULTS_DIR"
    )
    return config
