from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from survey_analytics.features.aggregates import AggregateMetrics
from survey_analytics.viz.common import plot_no_data, save_figure

SCORE_RANGE_COLORS = ["#ff6b6b", "#ffa726", "#ffee58", "#66bb6a", "#42a5f5", "#9c27b0"]
PRIMARY_COLOR = "#42a5f5"
MAX_RADAR_VALUE = 100.0


def plot_score_distribution(metrics: AggregateMetrics, output_path: Path) -> Path:
    title = "Score distribution"
    counts = {label: count for label, count in metrics.score_distribution.items() if count > 0}
    if not counts:
        return plot_no_data(title, output_path)

    colors = [
        SCORE_RANGE_COLORS[index % len(SCORE_RANGE_COLORS)]
        for index, label in enumerate(metrics.score_distribution)
        if label in counts
    ]
    plt.figure(figsize=(6, 6))
    plt.pie(
        list(counts.values()),
        labels=list(counts.keys()),
        colors=colors,
        autopct="%1.0f%%",
        wedgeprops={"width": 0.45, "edgecolor": "white"},
        startangle=90,
    )
    plt.title(title)
    return save_figure(output_path)


def plot_responses_over_time(metrics: AggregateMetrics, output_path: Path) -> Path:
    title = f"Responses per {metrics.trend_granularity}"
    if not metrics.trend:
        return plot_no_data(title, output_path)

    buckets = [bucket.bucket for bucket in metrics.trend]
    counts = [bucket.count for bucket in metrics.trend]
    plt.figure(figsize=(10, 4))
    plt.plot(buckets, counts, marker="o", linewidth=1.5, color=PRIMARY_COLOR)
    plt.fill_between(buckets, counts, alpha=0.1, color=PRIMARY_COLOR)
    plt.ylim(bottom=0)
    plt.title(title)
    plt.xlabel("Date")
    plt.ylabel("Number of responses")
    plt.gcf().autofmt_xdate()
    return save_figure(output_path)


def plot_category_performance(metrics: AggregateMetrics, output_path: Path) -> Path:
    title = "Category performance"
    stats = [stat for stat in metrics.category_stats if stat.average is not None]
    if not stats:
        return plot_no_data(title, output_path)

    labels = [stat.category for stat in stats]
    values = [min(float(stat.average), MAX_RADAR_VALUE) for stat in stats]
    if len(stats) < 3:
        plt.figure(figsize=(8, 4))
        plt.bar(labels, values, color=PRIMARY_COLOR)
        plt.ylim(0, MAX_RADAR_VALUE)
        plt.ylabel("Average score (%)")
        plt.title(title)
        return save_figure(output_path)

    angles = np.linspace(0, 2 * np.pi, len(labels), endpoint=False).tolist()
    _, axis = plt.subplots(figsize=(6, 6), subplot_kw={"polar": True})
    axis.plot(angles + angles[:1], values + values[:1], color=PRIMARY_COLOR, linewidth=2)
    axis.fill(angles + angles[:1], values + values[:1], color=PRIMARY_COLOR, alpha=0.2)
    axis.set_xticks(angles)
    axis.set_xticklabels(labels)
    axis.set_ylim(0, MAX_RADAR_VALUE)
    axis.set_title(title)
    return save_figure(output_path)
