"""Map loosely-shaped result files onto the canonical record types.

Result files written over the life of the survey app do not agree on shape:
older files carry ``totalScore`` and ``categoryScores`` (whose values may be
objects with ``score``/``percentage``), some omit ``timestamp`` or
``surveyTitle`` entirely, and numbers occasionally arrive as strings. Every
such variation is resolved here so downstream code only sees
``ResponseRecord`` and ``EmailRecord``.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Mapping

from survey_analytics.errors import RecordValidationError
from survey_analytics.io.schema import EmailRecord, Number, ResponseRecord, ResultSummary
from survey_analytics.io.store import RawRecord
from survey_analytics.preprocess.text import optional_text, sanitize_text
from survey_analytics.preprocess.time import epoch_to_iso, utc_now_iso

LOGGER = logging.getLogger(__name__)

UNKNOWN_SURVEY_TITLE = "Unknown Survey"


def coerce_number(value: Any) -> Number | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip().rstrip("%"))
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _category_value(value: Any) -> Number | None:
    if isinstance(value, Mapping):
        percentage = coerce_number(value.get("percentage"))
        if percentage is not None:
            return percentage
        return coerce_number(value.get("score"))
    return coerce_number(value)


def _normalize_categories(raw: Any) -> dict[str, Number]:
    if not isinstance(raw, Mapping):
        return {}
    categories: dict[str, Number] = {}
    for key, value in raw.items():
        number = _category_value(value)
        if number is not None:
            categories[str(key)] = number
    return categories


def normalize_results(raw: Any) -> ResultSummary:
    if not isinstance(raw, Mapping):
        return ResultSummary()

    score = coerce_number(raw.get("score"))
    if score is None:
        score = coerce_number(raw.get("totalScore"))

    categories_raw = raw.get("categories")
    if categories_raw is None:
        categories_raw = raw.get("categoryScores")

    answers = raw.get("answers")
    return ResultSummary(
        score=score,
        percentage=coerce_number(raw.get("percentage")),
        answers={str(key): value for key, value in answers.items()}
        if isinstance(answers, Mapping)
        else {},
        categories=_normalize_categories(categories_raw),
    )


def _normalize_timestamp(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return epoch_to_iso(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _record_id(payload: Mapping[str, Any], fallback: str) -> str:
    embedded = payload.get("id")
    if isinstance(embedded, bool):
        embedded = None
    if isinstance(embedded, (int, float)) or (isinstance(embedded, str) and embedded.strip()):
        return str(embedded).strip()
    return fallback


def normalize_response(
    raw: RawRecord,
    *,
    unknown_survey_title: str = UNKNOWN_SURVEY_TITLE,
    read_time: str | None = None,
) -> ResponseRecord:
    """Build a ``ResponseRecord``, filling defaults for absent fields.

    A missing timestamp is replaced with ``read_time`` (or the current time)
    and flagged with ``timestamp_synthesized``.
    """
    payload = raw.payload
    timestamp = _normalize_timestamp(payload.get("timestamp"))
    synthesized = timestamp is None
    if synthesized:
        timestamp = read_time or utc_now_iso()

    return ResponseRecord(
        id=_record_id(payload, raw.source_stem),
        timestamp=timestamp,
        survey_title=sanitize_text(payload.get("surveyTitle")) or unknown_survey_title,
        results=normalize_results(payload.get("results")),
        ip=optional_text(payload.get("ip")),
        user_agent=optional_text(payload.get("userAgent")),
        location=optional_text(payload.get("location")),
        timestamp_synthesized=synthesized,
    )


def _require_recipient(payload: Mapping[str, Any], source_name: str) -> str:
    recipient = sanitize_text(payload.get("recipientEmail"))
    if not recipient:
        raise RecordValidationError(f"{source_name}: missing recipientEmail")
    return recipient


def normalize_email(
    raw: RawRecord,
    *,
    unknown_survey_title: str = UNKNOWN_SURVEY_TITLE,
) -> EmailRecord | None:
    """Build an ``EmailRecord``; records without a recipient are rejected."""
    payload = raw.payload
    try:
        recipient = _require_recipient(payload, raw.source_name)
    except RecordValidationError as exc:
        LOGGER.warning("Rejected email record %s", exc)
        return None

    return EmailRecord(
        id=_record_id(payload, raw.source_stem),
        recipient_email=recipient,
        survey_title=sanitize_text(payload.get("surveyTitle")) or unknown_survey_title,
        results=normalize_results(payload.get("results")),
        timestamp=_normalize_timestamp(payload.get("timestamp")),
        ip=optional_text(payload.get("ip")),
        user_agent=optional_text(payload.get("userAgent")),
        method=optional_text(payload.get("method")),
    )


def normalize_responses(
    raws: list[RawRecord],
    *,
    unknown_survey_title: str = UNKNOWN_SURVEY_TITLE,
    read_time: str | None = None,
) -> list[ResponseRecord]:
    stamp = read_time or utc_now_iso()
    return [
        normalize_response(raw, unknown_survey_title=unknown_survey_title, read_time=stamp)
        for raw in raws
    ]


def normalize_emails(
    raws: list[RawRecord],
    *,
    unknown_survey_title: str = UNKNOWN_SURVEY_TITLE,
) -> list[EmailRecord]:
    records: list[EmailRecord] = []
    for raw in raws:
        record = normalize_email(raw, unknown_survey_title=unknown_survey_title)
        if record is not None:
            records.append(record)
    return records
