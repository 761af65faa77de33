from __future__ import annotations

import asyncio
import json
from enum import Enum
from pathlib import Path

import typer

from survey_analytics.config import AppConfig, load_config
from survey_analytics.errors import ChartRenderError, DataLoadError, ExportError
from survey_analytics.features.filters import (
    ALL_VERSIONS,
    FilterCriteria,
    last_days,
    with_score_band,
)
from survey_analytics.io.write import ExportArtifact, write_artifact, write_summary
from survey_analytics.logging import configure_logging
from survey_analytics.pipeline.context import AnalyticsContext, build_context
from survey_analytics.pipeline.dashboard import Dashboard
from survey_analytics.preprocess.text import normalize_email_address
from survey_analytics.report.exports import ExportService
from survey_analytics.report.mailing import ALL_RECIPIENTS

app = typer.Typer(no_args_is_help=True, add_completion=False)


class ExportFormat(str, Enum):
    csv = "csv"
    json = "json"
    report_json = "report-json"
    category_csv = "category-csv"
    pdf = "pdf"
    mailing_list = "mailing-list"
    email_list = "email-list"


class ScoreBand(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class CompletionStatus(str, Enum):
    any = "any"
    completed = "completed"
    incomplete = "incomplete"


_COMPLETION_FILTERS: dict[CompletionStatus, bool | None] = {
    CompletionStatus.any: None,
    CompletionStatus.completed: True,
    CompletionStatus.incomplete: False,
}


CONFIG_OPTION = typer.Option(None, exists=True, readable=True, resolve_path=True)
RESULTS_DIR_OPTION = typer.Option(
    None,
    resolve_path=True,
    help="Override store.results_dir from the config.",
)
OUT_OPTION = typer.Option(Path("out"), resolve_path=True)
SURVEY_VERSION_OPTION = typer.Option(ALL_VERSIONS, help="Survey title, or 'all'.")
START_DATE_OPTION = typer.Option(None, help="Inclusive start (ISO date or timestamp).")
END_DATE_OPTION = typer.Option(None, help="Inclusive end; a bare date covers the whole day.")
LAST_DAYS_OPTION = typer.Option(
    None,
    "--last-days",
    min=1,
    help="Only responses from the last N days.",
)
MIN_SCORE_OPTION = typer.Option(None, min=0.0, help="Minimum percentage (inclusive).")
MAX_SCORE_OPTION = typer.Option(None, min=0.0, help="Maximum percentage (inclusive).")
SCORE_BAND_OPTION = typer.Option(None, help="Preset score range from the configured thresholds.")
STATUS_OPTION = typer.Option(
    CompletionStatus.any,
    "--status",
    help="Completion status: a completed response has a recorded score.",
)


def _load_app_config(config_path: Path | None, results_dir: Path | None = None) -> AppConfig:
    cfg = load_config(config_path)
    if results_dir is not None:
        cfg.store.results_dir = str(results_dir)
    return cfg


def _build_criteria(
    cfg: AppConfig,
    *,
    survey_version: str = ALL_VERSIONS,
    start_date: str | None = None,
    end_date: str | None = None,
    recent_days: int | None = None,
    min_score: float | None = None,
    max_score: float | None = None,
    score_band: ScoreBand | None = None,
    status: CompletionStatus = CompletionStatus.any,
) -> FilterCriteria:
    if recent_days is not None and start_date is not None:
        raise typer.BadParameter("Use either --start-date or --last-days, not both.")
    try:
        criteria = FilterCriteria(
            survey_version=survey_version,
            start_date=last_days(recent_days) if recent_days is not None else start_date,
            end_date=end_date,
            min_score=min_score,
            max_score=max_score,
            completed=_COMPLETION_FILTERS[status],
        )
        if score_band is not None:
            criteria = with_score_band(criteria, score_band.value, cfg.metrics.score_thresholds)
        criteria.ensure_date_order(cfg.time.timezone)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return criteria


def _load_context(cfg: AppConfig, out: Path, criteria: FilterCriteria) -> AnalyticsContext:
    context = build_context(cfg, out)
    try:
        asyncio.run(context.data_service.load_data())
    except DataLoadError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    context.data_service.set_filters(criteria)
    return context


def _build_export(
    service: ExportService,
    export_format: ExportFormat,
    mailing_type: str,
) -> ExportArtifact:
    if export_format is ExportFormat.csv:
        return service.export_to_csv()
    if export_format is ExportFormat.json:
        return service.export_to_json()
    if export_format is ExportFormat.report_json:
        return service.export_report_json()
    if export_format is ExportFormat.category_csv:
        return service.export_category_stats_csv()
    if export_format is ExportFormat.pdf:
        return service.export_to_pdf()
    if export_format is ExportFormat.mailing_list:
        return service.export_mailing_list(mailing_type)
    return service.export_email_list(mailing_type)


def _fmt_metric(value: float | None, suffix: str = "") -> str:
    return "N/A" if value is None else f"{value:g}{suffix}"


@app.command()
def summary(
    config: Path | None = CONFIG_OPTION,
    results_dir: Path | None = RESULTS_DIR_OPTION,
    survey_version: str = SURVEY_VERSION_OPTION,
    start_date: str | None = START_DATE_OPTION,
    end_date: str | None = END_DATE_OPTION,
    recent_days: int | None = LAST_DAYS_OPTION,
    min_score: float | None = MIN_SCORE_OPTION,
    max_score: float | None = MAX_SCORE_OPTION,
    score_band: ScoreBand | None = SCORE_BAND_OPTION,
    status: CompletionStatus = STATUS_OPTION,
) -> None:
    """Load results, apply filters and print the key metrics."""
    configure_logging()
    cfg = _load_app_config(config, results_dir)
    criteria = _build_criteria(
        cfg,
        survey_version=survey_version,
        start_date=start_date,
        end_date=end_date,
        recent_days=recent_days,
        min_score=min_score,
        max_score=max_score,
        score_band=score_band,
        status=status,
    )
    context = _load_context(cfg, Path("out"), criteria)
    metrics = context.data_service.get_metrics()

    if metrics.is_empty:
        typer.echo("No data available for the selected filters.")
        return
    typer.echo(f"Total responses: {metrics.total_count}")
    typer.echo(f"Completed responses: {metrics.completed_count}")
    typer.echo(f"Average score: {_fmt_metric(metrics.average_score)}")
    typer.echo(f"Average percentage: {_fmt_metric(metrics.average_percentage, '%')}")
    typer.echo(f"Email requests: {_fmt_metric(metrics.email_request_percentage, '%')}")
    for title, count in metrics.survey_version_counts.items():
        typer.echo(f"  {title}: {count}")


@app.command()
def responses(
    config: Path | None = CONFIG_OPTION,
    results_dir: Path | None = RESULTS_DIR_OPTION,
    survey_version: str = SURVEY_VERSION_OPTION,
    start_date: str | None = START_DATE_OPTION,
    end_date: str | None = END_DATE_OPTION,
) -> None:
    """Print normalized response records as a JSON array."""
    configure_logging("WARNING")
    cfg = _load_app_config(config, results_dir)
    criteria = _build_criteria(
        cfg,
        survey_version=survey_version,
        start_date=start_date,
        end_date=end_date,
    )
    context = _load_context(cfg, Path("out"), criteria)
    records = context.data_service.get_filtered_data()
    typer.echo(json.dumps([record.to_dict() for record in records], indent=2))


@app.command()
def emails(
    config: Path | None = CONFIG_OPTION,
    results_dir: Path | None = RESULTS_DIR_OPTION,
    start_date: str | None = START_DATE_OPTION,
    end_date: str | None = END_DATE_OPTION,
    email: str | None = typer.Option(None, help="Only records sent to this address."),
) -> None:
    """Print normalized email records as a JSON array."""
    configure_logging("WARNING")
    cfg = _load_app_config(config, results_dir)
    address = None
    if email is not None:
        address = normalize_email_address(email)
        if address is None:
            raise typer.BadParameter("Invalid email format provided")
    criteria = _build_criteria(cfg, start_date=start_date, end_date=end_date)
    context = _load_context(cfg, Path("out"), criteria)

    records = context.data_service.get_filtered_emails()
    if address is not None:
        records = tuple(
            record for record in records if record.recipient_email.strip().lower() == address
        )
    typer.echo(json.dumps([record.to_dict() for record in records], indent=2))


@app.command()
def export(
    export_format: ExportFormat = typer.Option(ExportFormat.csv, "--format"),
    mailing_type: str = typer.Option(
        ALL_RECIPIENTS,
        "--type",
        help="Mailing list selector: all, high, low, or a survey title.",
    ),
    out: Path = OUT_OPTION,
    config: Path | None = CONFIG_OPTION,
    results_dir: Path | None = RESULTS_DIR_OPTION,
    survey_version: str = SURVEY_VERSION_OPTION,
    start_date: str | None = START_DATE_OPTION,
    end_date: str | None = END_DATE_OPTION,
    recent_days: int | None = LAST_DAYS_OPTION,
    min_score: float | None = MIN_SCORE_OPTION,
    max_score: float | None = MAX_SCORE_OPTION,
    score_band: ScoreBand | None = SCORE_BAND_OPTION,
    status: CompletionStatus = STATUS_OPTION,
) -> None:
    """Export the filtered results to out/exports."""
    configure_logging()
    cfg = _load_app_config(config, results_dir)
    criteria = _build_criteria(
        cfg,
        survey_version=survey_version,
        start_date=start_date,
        end_date=end_date,
        recent_days=recent_days,
        min_score=min_score,
        max_score=max_score,
        score_band=score_band,
        status=status,
    )
    context = _load_context(cfg, out, criteria)
    try:
        artifact = _build_export(context.export_service, export_format, mailing_type)
    except ExportError as exc:
        typer.echo(f"Export failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    path = write_artifact(artifact, context.paths.exports)
    typer.echo(f"Export written to: {path}")


@app.command()
def charts(
    out: Path = OUT_OPTION,
    config: Path | None = CONFIG_OPTION,
    results_dir: Path | None = RESULTS_DIR_OPTION,
    survey_version: str = SURVEY_VERSION_OPTION,
    start_date: str | None = START_DATE_OPTION,
    end_date: str | None = END_DATE_OPTION,
    recent_days: int | None = LAST_DAYS_OPTION,
    min_score: float | None = MIN_SCORE_OPTION,
    max_score: float | None = MAX_SCORE_OPTION,
    score_band: ScoreBand | None = SCORE_BAND_OPTION,
    status: CompletionStatus = STATUS_OPTION,
) -> None:
    """Render chart images for the filtered results into out/figures."""
    configure_logging()
    cfg = _load_app_config(config, results_dir)
    criteria = _build_criteria(
        cfg,
        survey_version=survey_version,
        start_date=start_date,
        end_date=end_date,
        recent_days=recent_days,
        min_score=min_score,
        max_score=max_score,
        score_band=score_band,
        status=status,
    )
    context = _load_context(cfg, out, criteria)
    chart_manager = context.chart_manager

    async def _render() -> dict[str, Path]:
        await chart_manager.initialize()
        return await chart_manager.update(
            context.data_service.get_filtered_data(),
            metrics=context.data_service.get_metrics(),
        )

    try:
        rendered = asyncio.run(_render())
    except ChartRenderError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc
    if not rendered:
        typer.echo("Charts are disabled in the config.")
        return
    typer.echo(f"Charts written: {', '.join(str(path) for path in rendered.values())}")


@app.command()
def dashboard(
    out: Path = OUT_OPTION,
    config: Path | None = CONFIG_OPTION,
    results_dir: Path | None = RESULTS_DIR_OPTION,
    survey_version: str = SURVEY_VERSION_OPTION,
    start_date: str | None = START_DATE_OPTION,
    end_date: str | None = END_DATE_OPTION,
    recent_days: int | None = LAST_DAYS_OPTION,
    min_score: float | None = MIN_SCORE_OPTION,
    max_score: float | None = MAX_SCORE_OPTION,
    score_band: ScoreBand | None = SCORE_BAND_OPTION,
    status: CompletionStatus = STATUS_OPTION,
) -> None:
    """Load, filter, aggregate and chart; write the dashboard state as JSON."""
    configure_logging()
    cfg = _load_app_config(config, results_dir)
    criteria = _build_criteria(
        cfg,
        survey_version=survey_version,
        start_date=start_date,
        end_date=end_date,
        recent_days=recent_days,
        min_score=min_score,
        max_score=max_score,
        score_band=score_band,
        status=status,
    )
    context = build_context(cfg, out)
    context.data_service.set_filters(criteria)
    state = asyncio.run(Dashboard(context).initialize())
    for message in state.errors:
        typer.echo(message, err=True)
    summary_path = write_summary(state.to_dict(), context.paths.summary / "dashboard.json")
    typer.echo(f"Dashboard summary written to: {summary_path}")
