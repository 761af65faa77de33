from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Sequence

import matplotlib
import matplotlib.pyplot as plt

from survey_analytics.config import AppConfig
from survey_analytics.errors import ChartRenderError
from survey_analytics.features.aggregates import AggregateMetrics, compute_metrics
from survey_analytics.io.schema import EmailRecord, ResponseRecord
from survey_analytics.viz.charts import (
    plot_category_performance,
    plot_responses_over_time,
    plot_score_distribution,
)

LOGGER = logging.getLogger(__name__)

ChartRenderer = Callable[[AggregateMetrics, Path], Path]

DEFAULT_RENDERERS: dict[str, ChartRenderer] = {
    "score_distribution": plot_score_distribution,
    "responses_over_time": plot_responses_over_time,
    "category_performance": plot_category_performance,
}


class ChartManager:
    """Two-phase chart lifecycle: ``initialize`` once, then serialized ``update`` calls.

    A second ``update`` waits on the lock until the in-flight render has
    finished; renders never interleave.
    """

    def __init__(
        self,
        config: AppConfig,
        figures_dir: Path,
        renderers: dict[str, ChartRenderer] | None = None,
    ) -> None:
        self._config = config
        self._figures_dir = figures_dir
        self._renderers = dict(renderers or DEFAULT_RENDERERS)
        self._lock = asyncio.Lock()
        self._initialized = False
        self._in_flight = False
        self._latest: dict[str, Path] = {}
        self.update_count = 0

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_rendering(self) -> bool:
        return self._in_flight

    @property
    def latest(self) -> dict[str, Path]:
        return dict(self._latest)

    async def initialize(self) -> None:
        if self._initialized:
            return
        async with self._lock:
            if self._initialized:
                return
            try:
                matplotlib.use("Agg")
                self._figures_dir.mkdir(parents=True, exist_ok=True)
            except (OSError, ValueError) as exc:
                raise ChartRenderError(f"Chart initialization failed: {exc}") from exc
            self._initialized = True
            LOGGER.info("Charts initialized in %s", self._figures_dir)

    def _figure_path(self, name: str) -> Path:
        return self._figures_dir / f"{name}.{self._config.charts.figures_format}"

    async def update(
        self,
        records: Sequence[ResponseRecord],
        *,
        metrics: AggregateMetrics | None = None,
        emails: Sequence[EmailRecord] = (),
    ) -> dict[str, Path]:
        """Re-render every chart for ``records`` and return chart name to image path."""
        if not self._initialized:
            raise ChartRenderError("Charts must be initialized before they can be updated")
        if not self._config.charts.enabled:
            return {}

        async with self._lock:
            self._in_flight = True
            try:
                if metrics is None:
                    metrics = compute_metrics(
                        records,
                        self._config.metrics,
                        time_config=self._config.time,
                        emails=emails,
                    )
                rendered: dict[str, Path] = {}
                for name, renderer in self._renderers.items():
                    await asyncio.sleep(0)
                    rendered[name] = renderer(metrics, self._figure_path(name))
            except Exception as exc:
                LOGGER.exception("Chart rendering failed")
                raise ChartRenderError(f"Chart rendering failed: {exc}") from exc
            finally:
                plt.close("all")
                self._in_flight = False

            self._latest = rendered
            self.update_count += 1
            LOGGER.info("Rendered %d chart(s) for %d records", len(rendered), len(records))
            return dict(rendered)
