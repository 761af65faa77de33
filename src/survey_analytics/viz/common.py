from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt


def save_figure(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    plt.savefig(path)
    plt.close()
    return path


def plot_no_data(title: str, output_path: Path) -> Path:
    plt.figure(figsize=(8, 4))
    plt.text(0.5, 0.5, "No Data", ha="center", va="center", fontsize=16, color="#94A3B8")
    plt.axis("off")
    plt.title(title)
    return save_figure(output_path)
