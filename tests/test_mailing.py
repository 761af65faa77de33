from __future__ import annotations

from survey_analytics.config import ScoreThresholdsConfig
from survey_analytics.io.schema import EmailRecord, ResultSummary
from survey_analytics.report.mailing import build_mailing_list, deliverable_rows


def _email(record_id: str, address: str, percentage: float | None) -> EmailRecord:
    return EmailRecord(
        id=record_id,
        recipient_email=address,
        survey_title="Survey A",
        results=ResultSummary(percentage=percentage),
    )


def test_selector_is_applied_before_deduplication() -> None:
    emails = [
        _email("low-first", "same@example.com", 20),
        _email("high-second", "same@example.com", 95),
    ]

    high = build_mailing_list(emails, "high", ScoreThresholdsConfig())
    everyone = build_mailing_list(emails)

    assert [entry.record_id for entry in high.entries] == ["high-second"]
    assert [entry.record_id for entry in everyone.entries] == ["low-first"]


def test_unknown_selector_matches_survey_title() -> None:
    emails = [_email("a", "a@example.com", 50)]

    assert build_mailing_list(emails, "Survey A").count == 1
    assert build_mailing_list(emails, "Survey B").count == 0


def test_mailing_list_to_dict() -> None:
    payload = build_mailing_list([_email("a", "a@example.com", 50)]).to_dict()

    assert payload == {
        "type": "all",
        "count": 1,
        "emails": [
            {
                "email": "a@example.com",
                "surveyTitle": "Survey A",
                "percentage": 50,
                "timestamp": None,
                "recordId": "a",
            }
        ],
    }


def test_deliverable_rows_skip_invalid_addresses(caplog) -> None:
    mailing_list = build_mailing_list(
        [
            _email("a", "Valid@Example.com", 72.5),
            _email("b", "broken@", 10),
        ]
    )

    rows = deliverable_rows(mailing_list)

    assert rows == [("valid@example.com", "72.5%")]
    assert "broken@" in caplog.text
