from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from survey_analytics.config import AppConfig
from survey_analytics.errors import DataLoadError, StoreAccessError
from survey_analytics.features.aggregates import AggregateMetrics, compute_metrics
from survey_analytics.features.filters import FilterCriteria, apply_filters, distinct_in_order
from survey_analytics.io.schema import EmailRecord, ResponseRecord
from survey_analytics.io.store import StoreLoad, load_emails, load_responses
from survey_analytics.preprocess.normalize import normalize_emails, normalize_responses
from survey_analytics.preprocess.time import utc_now_iso

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Snapshot:
    responses: tuple[ResponseRecord, ...] = ()
    emails: tuple[EmailRecord, ...] = ()


@dataclass(frozen=True)
class LoadSummary:
    responses_loaded: int
    emails_loaded: int
    response_files_skipped: int = 0
    email_files_skipped: int = 0
    emails_rejected: int = 0
    failures: list[str] = field(default_factory=list)


def _skipped_count(outcome: StoreLoad | BaseException) -> int:
    return len(outcome.skipped) if isinstance(outcome, StoreLoad) else 0


class DataService:
    """Owns the normalized record collections and the active filter view.

    Consumers only ever receive tuples of frozen records, never the
    service's internal state.
    """

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._snapshot = _Snapshot()
        self._criteria = FilterCriteria()
        self._filtered: tuple[ResponseRecord, ...] | None = None
        self._filtered_emails: tuple[EmailRecord, ...] | None = None
        self.is_loading = False

    @property
    def config(self) -> AppConfig:
        return self._config

    async def _read(
        self,
        loader: Callable[[Path], StoreLoad],
        directory: Path,
    ) -> StoreLoad:
        return await asyncio.to_thread(loader, directory)

    async def load_data(self) -> LoadSummary:
        """Reload both record kinds and swap them in together.

        Raises ``DataLoadError`` only when neither directory could be read; a
        single failed kind keeps its previous records.
        """
        self.is_loading = True
        try:
            return await self._load()
        finally:
            self.is_loading = False

    async def _load(self) -> LoadSummary:
        store = self._config.store
        response_load, email_load = await asyncio.gather(
            self._read(
                lambda path: load_responses(path, reserved_prefixes=store.reserved_prefixes),
                self._config.results_path(),
            ),
            self._read(load_emails, self._config.emails_path()),
            return_exceptions=True,
        )
        for outcome in (response_load, email_load):
            if isinstance(outcome, BaseException) and not isinstance(outcome, StoreAccessError):
                raise outcome

        failures = [
            str(outcome)
            for outcome in (response_load, email_load)
            if isinstance(outcome, StoreAccessError)
        ]
        if len(failures) == 2:
            LOGGER.error("Analytics data load failed: %s", "; ".join(failures))
            raise DataLoadError("Failed to load analytics data: " + "; ".join(failures))

        previous = self._snapshot
        unknown_title = self._config.metrics.unknown_survey_title
        if isinstance(response_load, StoreLoad):
            responses = tuple(
                normalize_responses(
                    response_load.records,
                    unknown_survey_title=unknown_title,
                    read_time=utc_now_iso(),
                )
            )
        else:
            LOGGER.error("Keeping previous responses: %s", response_load)
            responses = previous.responses

        emails_rejected = 0
        if isinstance(email_load, StoreLoad):
            emails = tuple(normalize_emails(email_load.records, unknown_survey_title=unknown_title))
            emails_rejected = len(email_load.records) - len(emails)
        else:
            LOGGER.error("Keeping previous email records: %s", email_load)
            emails = previous.emails

        self._snapshot = _Snapshot(responses=responses, emails=emails)
        self._invalidate()
        LOGGER.info("Loaded %d responses and %d email records", len(responses), len(emails))
        return LoadSummary(
            responses_loaded=len(responses),
            emails_loaded=len(emails),
            response_files_skipped=_skipped_count(response_load),
            email_files_skipped=_skipped_count(email_load),
            emails_rejected=emails_rejected,
            failures=failures,
        )

    def _invalidate(self) -> None:
        self._filtered = None
        self._filtered_emails = None

    def set_filters(self, criteria: FilterCriteria) -> None:
        criteria.ensure_date_order(self._config.time.timezone)
        self._criteria = criteria
        self._invalidate()

    def get_filters(self) -> FilterCriteria:
        return self._criteria

    def get_raw_data(self) -> tuple[ResponseRecord, ...]:
        return self._snapshot.responses

    def get_emails(self) -> tuple[EmailRecord, ...]:
        return self._snapshot.emails

    def get_filtered_data(self) -> tuple[ResponseRecord, ...]:
        if self._filtered is None:
            self._filtered = apply_filters(
                self._snapshot.responses,
                self._criteria,
                self._config.time.timezone,
            )
        return self._filtered

    def get_filtered_emails(self) -> tuple[EmailRecord, ...]:
        if self._filtered_emails is None:
            self._filtered_emails = apply_filters(
                self._snapshot.emails,
                self._criteria,
                self._config.time.timezone,
            )
        return self._filtered_emails

    def get_survey_versions(self) -> list[str]:
        return distinct_in_order([record.survey_title for record in self._snapshot.responses])

    def get_metrics(self) -> AggregateMetrics:
        return compute_metrics(
            self.get_filtered_data(),
            self._config.metrics,
            time_config=self._config.time,
            emails=self._snapshot.emails,
        )
