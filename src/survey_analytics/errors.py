from __future__ import annotations

from pathlib import Path


class SurveyAnalyticsError(Exception):
    """Base class for failures raised by the analytics pipeline."""


class FileReadError(SurveyAnalyticsError):
    """A single result file could not be read or parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"{path.name}: {reason}")
        self.path = path
        self.reason = reason


class StoreAccessError(SurveyAnalyticsError):
    """A results directory exists but could not be listed."""

    def __init__(self, directory: Path, reason: str) -> None:
        super().__init__(f"cannot list {directory}: {reason}")
        self.directory = directory
        self.reason = reason


class DataLoadError(SurveyAnalyticsError):
    """Both the response and the email load failed outright."""


class RecordValidationError(SurveyAnalyticsError):
    """A raw record cannot be turned into a canonical record."""


class ExportError(SurveyAnalyticsError):
    """Base class for export failures; both kinds are recoverable."""


class EmptyExportError(ExportError):
    """No data matched the current filters."""


class ExportSerializationError(ExportError):
    """Malformed data prevented building the export."""


class ChartRenderError(SurveyAnalyticsError):
    """Chart initialisation or rendering failed."""
