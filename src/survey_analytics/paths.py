from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class OutputPaths:
    root: Path
    exports: Path
    figures: Path
    summary: Path


def build_output_paths(out_dir: Path, *, create: bool = True) -> OutputPaths:
    paths = OutputPaths(
        root=out_dir,
        exports=out_dir / "exports",
        figures=out_dir / "figures",
        summary=out_dir / "summary",
    )
    if create:
        for path in (paths.root, paths.exports, paths.figures, paths.summary):
            path.mkdir(parents=True, exist_ok=True)
    return paths
