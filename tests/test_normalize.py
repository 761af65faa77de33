from __future__ import annotations

from survey_analytics.io.store import RawRecord
from survey_analytics.preprocess.normalize import (
    coerce_number,
    normalize_email,
    normalize_emails,
    normalize_response,
    normalize_results,
)
from survey_analytics.preprocess.text import normalize_email_address, sanitize_text

READ_TIME = "2025-07-01T12:00:00Z"


def _raw(payload: dict, name: str = "response-1.json") -> RawRecord:
    return RawRecord(source_name=name, payload=payload)


def test_normalize_response_fills_defaults_and_flags_synthesized_timestamp() -> None:
    record = normalize_response(_raw({}), read_time=READ_TIME)

    assert record.id == "response-1"
    assert record.timestamp == READ_TIME
    assert record.timestamp_synthesized is True
    assert record.survey_title == "Unknown Survey"
    assert record.results.score is None
    assert record.results.percentage is None
    assert record.results.answers == {}
    assert record.results.categories == {}


def test_normalize_response_prefers_embedded_id_and_keeps_timestamp() -> None:
    record = normalize_response(
        _raw(
            {
                "id": "abc-123",
                "timestamp": "2025-06-30T09:15:00Z",
                "surveyTitle": "Burnout Check",
                "results": {"score": 17, "percentage": 85, "answers": {"q1": 3}},
                "ip": "10.0.0.1",
                "userAgent": "Mozilla/5.0",
            }
        ),
        read_time=READ_TIME,
    )

    assert record.id == "abc-123"
    assert record.timestamp == "2025-06-30T09:15:00Z"
    assert record.timestamp_synthesized is False
    assert record.survey_title == "Burnout Check"
    assert record.results.score == 17
    assert record.results.percentage == 85
    assert record.results.answers == {"q1": 3}
    assert record.ip == "10.0.0.1"
    assert record.user_agent == "Mozilla/5.0"


def test_normalize_results_accepts_legacy_shapes() -> None:
    results = normalize_results(
        {
            "totalScore": "42",
            "percentage": "70%",
            "categoryScores": {
                "Energy": {"score": 8, "percentage": 80},
                "Focus": {"score": 6},
                "Sleep": 55,
                "Broken": "n/a",
            },
        }
    )

    assert results.score == 42.0
    assert results.percentage == 70.0
    assert results.categories == {"Energy": 80, "Focus": 6, "Sleep": 55}


def test_coerce_number_rejects_booleans_and_non_finite_values() -> None:
    assert coerce_number(True) is None
    assert coerce_number(float("nan")) is None
    assert coerce_number("inf") is None
    assert coerce_number("abc") is None
    assert coerce_number(" 12.5 ") == 12.5
    assert coerce_number(7) == 7


def test_normalize_response_sanitizes_text_fields() -> None:
    record = normalize_response(
        _raw(
            {
                "surveyTitle": "<b>Team</b> Survey<script>alert(1)</script>",
                "userAgent": "javascript:evil()",
            }
        ),
        read_time=READ_TIME,
    )

    assert record.survey_title == "Team Survey"
    assert record.user_agent == "evil()"


def test_normalize_response_converts_epoch_timestamps() -> None:
    record = normalize_response(_raw({"timestamp": 1751371200000}), read_time=READ_TIME)

    assert record.timestamp == "2025-07-01T12:00:00Z"
    assert record.timestamp_synthesized is False


def test_normalize_response_is_deterministic() -> None:
    raw = _raw({"id": "x", "results": {"percentage": 50}})

    assert normalize_response(raw, read_time=READ_TIME) == normalize_response(
        raw, read_time=READ_TIME
    )


def test_normalize_email_rejects_missing_or_blank_recipient() -> None:
    assert normalize_email(_raw({"id": "e1"}, "email-1.json")) is None
    assert normalize_email(_raw({"recipientEmail": "   "}, "email-2.json")) is None


def test_normalize_emails_keeps_valid_records_in_order() -> None:
    records = normalize_emails(
        [
            _raw({"recipientEmail": "first@example.com", "method": "smtp"}, "email-1.json"),
            _raw({"surveyTitle": "No recipient"}, "email-2.json"),
            _raw({"id": "e3", "recipientEmail": "third@example.com"}, "email-3.json"),
        ]
    )

    assert [record.id for record in records] == ["email-1", "e3"]
    assert records[0].method == "smtp"
    assert records[0].survey_title == "Unknown Survey"
    assert records[0].timestamp is None


def test_normalize_email_address_validates_and_lowercases() -> None:
    assert normalize_email_address("  Jane.Doe@Example.COM ") == "jane.doe@example.com"
    assert normalize_email_address("missing-at.example.com") is None
    assert normalize_email_address("a" * 65 + "@example.com") is None
    assert normalize_email_address("user@" + "a" * 250 + ".com") is None
    assert normalize_email_address(None) is None


def test_sanitize_text_strips_markup() -> None:
    assert sanitize_text("  <i>Hello</i> <script>x()</script>world ") == "Hello world"
    assert sanitize_text("VBScript:run") == "run"
    assert sanitize_text(42) == ""
