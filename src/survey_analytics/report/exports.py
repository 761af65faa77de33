from __future__ import annotations

import csv
import io
import json
import logging
from datetime import datetime, timezone
from typing import Any, Sequence

import pandas as pd

from survey_analytics.config import AppConfig
from survey_analytics.errors import EmptyExportError, ExportSerializationError
from survey_analytics.features.aggregates import (
    AggregateMetrics,
    build_export_stats,
    compute_metrics,
)
from survey_analytics.features.filters import distinct_in_order
from survey_analytics.io.schema import RESPONSE_CSV_COLUMNS, ResponseRecord
from survey_analytics.io.write import ExportArtifact
from survey_analytics.pipeline.data_service import DataService
from survey_analytics.report.mailing import (
    ALL_RECIPIENTS,
    MailingList,
    build_mailing_list,
    deliverable_rows,
)
from survey_analytics.report.pdf import build_pdf_report

LOGGER = logging.getLogger(__name__)

NO_DATA_MESSAGE = "No data available for the selected filters."


def _dated_filename(prefix: str, extension: str, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).date().isoformat()
    return f"{prefix}{stamp}.{extension}"


def _dump_json(payload: Any) -> bytes:
    try:
        return json.dumps(payload, indent=2, ensure_ascii=False, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise ExportSerializationError(f"Could not serialize export: {exc}") from exc


def build_responses_frame(records: Sequence[ResponseRecord]) -> pd.DataFrame:
    """One row per record; fixed columns then one per category, first-seen order."""
    categories = distinct_in_order(
        [key for record in records for key in record.results.categories]
    )
    rows = [
        [
            record.id,
            record.timestamp,
            record.survey_title,
            record.results.score,
            record.results.percentage,
            *(record.results.categories.get(category) for category in categories),
        ]
        for record in records
    ]
    return pd.DataFrame(rows, columns=[*RESPONSE_CSV_COLUMNS, *categories], dtype="object")


class ExportService:
    """Builds downloadable artifacts from a snapshot of the filtered view."""

    def __init__(self, data_service: DataService, config: AppConfig) -> None:
        self._data_service = data_service
        self._config = config

    def _snapshot(self) -> tuple[ResponseRecord, ...]:
        records = self._data_service.get_filtered_data()
        if not records:
            raise EmptyExportError(NO_DATA_MESSAGE)
        return records

    def export_to_csv(self) -> ExportArtifact:
        records = self._snapshot()
        try:
            content = build_responses_frame(records).to_csv(index=False, lineterminator="\n")
        except (TypeError, ValueError) as exc:
            raise ExportSerializationError(f"Could not build CSV export: {exc}") from exc
        LOGGER.info("Exported %d responses to CSV", len(records))
        return ExportArtifact(
            filename=_dated_filename(self._config.exports.csv_prefix, "csv"),
            media_type="text/csv",
            content=content.encode("utf-8"),
        )

    def export_to_json(self) -> ExportArtifact:
        records = self._snapshot()
        content = _dump_json([record.to_dict() for record in records])
        LOGGER.info("Exported %d responses to JSON", len(records))
        return ExportArtifact(
            filename=_dated_filename(self._config.exports.json_prefix, "json"),
            media_type="application/json",
            content=content,
        )

    def export_report_json(self) -> ExportArtifact:
        """Responses together with metrics, category stats and geography."""
        records = self._snapshot()
        metrics = self._metrics(records)
        payload = {
            "metadata": {
                "exportDate": datetime.now(timezone.utc).isoformat(),
                "totalRecords": len(records),
                "filters": self._data_service.get_filters().to_dict(),
                **build_export_stats(records, self._config.time.timezone),
            },
            "metrics": metrics.to_dict(),
            "responses": [record.to_dict() for record in records],
            "categoryStats": [stat.to_dict() for stat in metrics.category_stats],
            "geographicData": [
                {"location": entry.location, "count": entry.count} for entry in metrics.geography
            ],
        }
        return ExportArtifact(
            filename=_dated_filename(self._config.exports.json_prefix, "json"),
            media_type="application/json",
            content=_dump_json(payload),
        )

    def export_category_stats_csv(self) -> ExportArtifact:
        records = self._snapshot()
        stats = self._metrics(records).category_stats
        if not stats:
            raise EmptyExportError("No category data available to export.")
        frame = pd.DataFrame(
            [
                [stat.category, stat.average, stat.count, stat.performance, stat.consistency]
                for stat in stats
            ],
            columns=["Category", "Average Score", "Response Count", "Performance", "Consistency"],
            dtype="object",
        )
        return ExportArtifact(
            filename=_dated_filename(self._config.exports.category_csv_prefix, "csv"),
            media_type="text/csv",
            content=frame.to_csv(index=False, lineterminator="\n").encode("utf-8"),
        )

    def generate_mailing_list(self, type: str = ALL_RECIPIENTS) -> MailingList:
        mailing_list = build_mailing_list(
            self._data_service.get_filtered_emails(),
            selector=type,
            thresholds=self._config.metrics.score_thresholds,
        )
        LOGGER.info("Generated %s mailing list with %d recipient(s)", type, mailing_list.count)
        return mailing_list

    def export_mailing_list(self, type: str = ALL_RECIPIENTS) -> ExportArtifact:
        mailing_list = self.generate_mailing_list(type)
        if not mailing_list.entries:
            raise EmptyExportError("No email recipients match the selected filters.")
        return ExportArtifact(
            filename=_dated_filename(self._config.exports.email_list_prefix, "json"),
            media_type="application/json",
            content=_dump_json(mailing_list.to_dict()),
        )

    def export_email_list(self, type: str = ALL_RECIPIENTS) -> ExportArtifact:
        """CSV of validated recipient addresses, ready for a mail merge."""
        rows = deliverable_rows(self.generate_mailing_list(type))
        if not rows:
            raise EmptyExportError("Please select at least one valid email address.")
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["Email", "Score"])
        writer.writerows(rows)
        return ExportArtifact(
            filename=_dated_filename(self._config.exports.email_list_prefix, "csv"),
            media_type="text/csv",
            content=buffer.getvalue().encode("utf-8"),
        )

    def export_to_pdf(self) -> ExportArtifact:
        records = self._snapshot()
        metrics = self._metrics(records)
        try:
            content = build_pdf_report(
                records,
                metrics,
                self._data_service.get_filters(),
                self._config.exports,
            )
        except (TypeError, ValueError, KeyError) as exc:
            raise ExportSerializationError(f"Could not build PDF report: {exc}") from exc
        LOGGER.info("Exported %d responses to PDF (%d bytes)", len(records), len(content))
        return ExportArtifact(
            filename=_dated_filename(self._config.exports.pdf_prefix, "pdf"),
            media_type="application/pdf",
            content=content,
        )

    def get_export_stats(self) -> dict[str, Any]:
        records = self._data_service.get_filtered_data()
        stats = build_export_stats(records, self._config.time.timezone)
        stats["emailResponses"] = len(self._data_service.get_filtered_emails())
        return stats

    def _metrics(self, records: Sequence[ResponseRecord]) -> AggregateMetrics:
        return compute_metrics(
            records,
            self._config.metrics,
            time_config=self._config.time,
            emails=self._data_service.get_emails(),
        )
