from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any

Number = int | float


@dataclass(frozen=True)
class ResultSummary:
    score: Number | None = None
    percentage: Number | None = None
    answers: dict[str, Any] = field(default_factory=dict)
    categories: dict[str, Number] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return self.score is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "percentage": self.percentage,
            "answers": deepcopy(self.answers),
            "categories": dict(self.categories),
        }


@dataclass(frozen=True)
class ResponseRecord:
    id: str
    timestamp: str
    survey_title: str
    results: ResultSummary
    ip: str | None = None
    user_agent: str | None = None
    location: str | None = None
    timestamp_synthesized: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "surveyTitle": self.survey_title,
            "results": self.results.to_dict(),
            "ip": self.ip,
            "userAgent": self.user_agent,
            "location": self.location,
            "timestampSynthesized": self.timestamp_synthesized,
        }


@dataclass(frozen=True)
class EmailRecord:
    id: str
    recipient_email: str
    survey_title: str
    results: ResultSummary
    timestamp: str | None = None
    ip: str | None = None
    user_agent: str | None = None
    method: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "recipientEmail": self.recipient_email,
            "surveyTitle": self.survey_title,
            "results": self.results.to_dict(),
            "timestamp": self.timestamp,
            "ip": self.ip,
            "userAgent": self.user_agent,
            "method": self.method,
        }


RESPONSE_CSV_COLUMNS = ["id", "timestamp", "surveyTitle", "score", "percentage"]
