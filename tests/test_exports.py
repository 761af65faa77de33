from __future__ import annotations

import asyncio
import csv
import io
import json
import re
from pathlib import Path

import pytest

from survey_analytics.config import AppConfig
from survey_analytics.errors import EmptyExportError, ExportError, ExportSerializationError
from survey_analytics.features.filters import FilterCriteria
from survey_analytics.io.write import write_artifact
from survey_analytics.pipeline.data_service import DataService
from survey_analytics.report.exports import ExportService


def _write(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")


def _response(percentage: float | None, **extra: object) -> dict:
    payload = {
        "timestamp": "2025-06-15T10:00:00Z",
        "surveyTitle": "Burnout Check",
        "results": {"score": 10, "percentage": percentage},
    }
    payload.update(extra)
    return payload


def _email(recipient: str, percentage: float | None, **extra: object) -> dict:
    payload = {
        "recipientEmail": recipient,
        "surveyTitle": "Burnout Check",
        "timestamp": "2025-06-15T10:00:10Z",
        "results": {"percentage": percentage},
    }
    payload.update(extra)
    return payload


def _services(results_dir: Path, **config: object) -> tuple[DataService, ExportService]:
    app_config = AppConfig.model_validate({"store": {"results_dir": str(results_dir)}, **config})
    data_service = DataService(app_config)
    asyncio.run(data_service.load_data())
    return data_service, ExportService(data_service, app_config)


def test_export_to_csv_uses_fixed_columns_then_categories(tmp_path: Path) -> None:
    _write(
        tmp_path / "a.json",
        _response(85, results={"score": 17, "percentage": 85, "categories": {"Energy": 80}}),
    )
    _write(
        tmp_path / "b.json",
        _response(None, results={"categories": {"Sleep": 60, "Energy": 40}}),
    )
    _, exports = _services(tmp_path)

    artifact = exports.export_to_csv()
    rows = list(csv.reader(io.StringIO(artifact.text)))

    assert artifact.media_type == "text/csv"
    assert artifact.filename.startswith("survey-responses-")
    assert artifact.filename.endswith(".csv")
    assert rows[0] == ["id", "timestamp", "surveyTitle", "score", "percentage", "Energy", "Sleep"]
    assert rows[1] == ["a", "2025-06-15T10:00:00Z", "Burnout Check", "17", "85", "80", ""]
    assert rows[2] == ["b", "2025-06-15T10:00:00Z", "Burnout Check", "", "", "40", "60"]
    assert "null" not in artifact.text
    assert "nan" not in artifact.text.lower()


def test_export_to_json_round_trips_the_filtered_view(tmp_path: Path) -> None:
    for name, percentage in (("a", 85), ("b", 72), ("c", 93)):
        _write(tmp_path / f"{name}.json", _response(percentage))
    data_service, exports = _services(tmp_path)
    data_service.set_filters(FilterCriteria(min_score=80))

    artifact = exports.export_to_json()

    assert json.loads(artifact.text) == [
        record.to_dict() for record in data_service.get_filtered_data()
    ]
    assert len(json.loads(artifact.text)) == 2


def test_exports_raise_empty_export_error_when_nothing_matches(tmp_path: Path) -> None:
    _write(tmp_path / "a.json", _response(40))
    data_service, exports = _services(tmp_path)
    data_service.set_filters(FilterCriteria(min_score=90))

    for export in (exports.export_to_csv, exports.export_to_json, exports.export_to_pdf):
        with pytest.raises(EmptyExportError):
            export()


def test_export_to_json_reports_serialization_failures(tmp_path: Path) -> None:
    (tmp_path / "nan.json").write_text(
        '{"surveyTitle": "S", "results": {"percentage": 50, "answers": {"q1": NaN}}}',
        encoding="utf-8",
    )
    _, exports = _services(tmp_path)

    with pytest.raises(ExportSerializationError):
        exports.export_to_json()
    with pytest.raises(ExportError):
        exports.export_to_json()


def test_report_json_bundles_metrics_and_records(tmp_path: Path) -> None:
    _write(tmp_path / "a.json", _response(85, ip="10.0.0.1"))
    _write(tmp_path / "b.json", _response(72))
    _, exports = _services(tmp_path)

    payload = json.loads(exports.export_report_json().text)

    assert payload["metadata"]["totalRecords"] == 2
    assert payload["metadata"]["filters"]["survey_version"] == "all"
    assert payload["metrics"]["averagePercentage"] == 78.5
    assert [entry["location"] for entry in payload["geographicData"]] == ["10.0.0.1", "Unknown"]
    assert len(payload["responses"]) == 2


def test_category_stats_csv(tmp_path: Path) -> None:
    _write(
        tmp_path / "a.json",
        _response(85, results={"percentage": 85, "categories": {"Energy": 90}}),
    )
    _, exports = _services(tmp_path)

    rows = list(csv.reader(io.StringIO(exports.export_category_stats_csv().text)))

    assert rows[0] == ["Category", "Average Score", "Response Count", "Performance", "Consistency"]
    assert rows[1] == ["Energy", "90.0", "1", "High", "N/A"]


def test_mailing_list_keeps_first_entry_for_duplicate_recipient(tmp_path: Path) -> None:
    emails_dir = tmp_path / "email-recipients"
    _write(emails_dir / "email-1.json", _email("dup@example.com", 85, id="first"))
    _write(emails_dir / "email-2.json", _email("other@example.com", 40))
    _write(emails_dir / "email-3.json", _email("DUP@example.com", 20, id="second"))
    _, exports = _services(tmp_path)

    mailing_list = exports.generate_mailing_list()

    assert mailing_list.count == 2
    duplicate = [
        entry for entry in mailing_list.entries if entry.email.lower() == "dup@example.com"
    ]
    assert len(duplicate) == 1
    assert duplicate[0].record_id == "first"
    assert duplicate[0].percentage == 85


def test_mailing_list_selectors(tmp_path: Path) -> None:
    emails_dir = tmp_path / "email-recipients"
    _write(emails_dir / "email-1.json", _email("high@example.com", 90))
    _write(emails_dir / "email-2.json", _email("low@example.com", 30))
    _write(
        emails_dir / "email-3.json",
        _email("pulse@example.com", 60, surveyTitle="Team Pulse"),
    )
    _, exports = _services(tmp_path)

    assert [entry.email for entry in exports.generate_mailing_list("high").entries] == [
        "high@example.com"
    ]
    assert [entry.email for entry in exports.generate_mailing_list("low").entries] == [
        "low@example.com"
    ]
    assert [entry.email for entry in exports.generate_mailing_list("Team Pulse").entries] == [
        "pulse@example.com"
    ]
    payload = json.loads(exports.export_mailing_list("all").text)
    assert payload["type"] == "all"
    assert payload["count"] == 3


def test_export_email_list_validates_and_lowercases(tmp_path: Path) -> None:
    emails_dir = tmp_path / "email-recipients"
    _write(emails_dir / "email-1.json", _email("Jane.Doe@Example.com", 85))
    _write(emails_dir / "email-2.json", _email("not-an-address", 50))
    _write(emails_dir / "email-3.json", _email("nobody@example.org", None))
    _, exports = _services(tmp_path)

    artifact = exports.export_email_list()

    assert artifact.text.splitlines() == [
        "Email,Score",
        "jane.doe@example.com,85%",
        "nobody@example.org,",
    ]


def test_export_email_list_without_valid_addresses_is_empty(tmp_path: Path) -> None:
    _write(tmp_path / "email-recipients" / "email-1.json", _email("broken", 85))
    _, exports = _services(tmp_path)

    with pytest.raises(EmptyExportError):
        exports.export_email_list()


def test_export_to_pdf_paginates_large_record_sets(tmp_path: Path) -> None:
    for index in range(200):
        _write(
            tmp_path / f"response-{index:03d}.json",
            _response(index % 100, results={"score": index, "percentage": index % 100}),
        )
    _, exports = _services(tmp_path, exports={"pdf_table_rows_per_page": 40})

    artifact = exports.export_to_pdf()

    assert artifact.media_type == "application/pdf"
    assert artifact.content.startswith(b"%PDF")
    assert len(re.findall(rb"/Type /Page\b", artifact.content)) >= 6


def test_export_stats_and_write_artifact(tmp_path: Path) -> None:
    results_dir = tmp_path / "results"
    _write(results_dir / "a.json", _response(85))
    _write(results_dir / "email-recipients" / "email-1.json", _email("a@example.com", 85))
    _, exports = _services(results_dir)

    stats = exports.get_export_stats()
    path = write_artifact(exports.export_to_json(), tmp_path / "out")

    assert stats["totalResponses"] == 1
    assert stats["emailResponses"] == 1
    assert path.exists()
    assert json.loads(path.read_text(encoding="utf-8"))[0]["id"] == "a"
