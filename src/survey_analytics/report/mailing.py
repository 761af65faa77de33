from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from survey_analytics.config import ScoreThresholdsConfig
from survey_analytics.io.schema import EmailRecord
from survey_analytics.preprocess.text import normalize_email_address

LOGGER = logging.getLogger(__name__)

ALL_RECIPIENTS = "all"


@dataclass(frozen=True)
class MailingEntry:
    email: str
    survey_title: str
    percentage: float | None
    timestamp: str | None
    record_id: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "surveyTitle": self.survey_title,
            "percentage": self.percentage,
            "timestamp": self.timestamp,
            "recordId": self.record_id,
        }


@dataclass(frozen=True)
class MailingList:
    type: str
    entries: list[MailingEntry] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "count": self.count,
            "emails": [entry.to_dict() for entry in self.entries],
        }


def _selected(record: EmailRecord, selector: str, thresholds: ScoreThresholdsConfig) -> bool:
    percentage = record.results.percentage
    if selector == ALL_RECIPIENTS:
        return True
    if selector == "high":
        return percentage is not None and percentage >= thresholds.high
    if selector == "low":
        return percentage is not None and percentage < thresholds.medium
    return record.survey_title == selector


def build_mailing_list(
    emails: Sequence[EmailRecord],
    selector: str = ALL_RECIPIENTS,
    thresholds: ScoreThresholdsConfig | None = None,
) -> MailingList:
    """Deduplicated recipients matching ``selector``; the first occurrence wins.

    ``selector`` is ``all``, ``high``, ``low`` or a survey title.
    """
    thresholds = thresholds or ScoreThresholdsConfig()
    seen: set[str] = set()
    entries: list[MailingEntry] = []
    for record in emails:
        if not _selected(record, selector, thresholds):
            continue
        key = record.recipient_email.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        entries.append(
            MailingEntry(
                email=record.recipient_email,
                survey_title=record.survey_title,
                percentage=record.results.percentage,
                timestamp=record.timestamp,
                record_id=record.id,
            )
        )
    return MailingList(type=selector, entries=entries)


def deliverable_rows(mailing_list: MailingList) -> list[tuple[str, str]]:
    """(email, score) pairs with validated, lower-cased addresses."""
    rows: list[tuple[str, str]] = []
    for entry in mailing_list.entries:
        address = normalize_email_address(entry.email)
        if address is None:
            LOGGER.warning("Skipping undeliverable address in mailing list: %r", entry.email)
            continue
        score = f"{entry.percentage:g}%" if entry.percentage is not None else ""
        rows.append((address, score))
    return rows
