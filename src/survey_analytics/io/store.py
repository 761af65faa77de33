from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from survey_analytics.errors import FileReadError, StoreAccessError

LOGGER = logging.getLogger(__name__)

DEFAULT_RESERVED_PREFIXES = ("email-",)


@dataclass(frozen=True)
class RawRecord:
    """One parsed result file, before normalization."""

    source_name: str
    payload: dict[str, Any]

    @property
    def source_stem(self) -> str:
        return Path(self.source_name).stem


@dataclass(frozen=True)
class StoreLoad:
    directory: Path
    records: list[RawRecord]
    skipped: list[FileReadError] = field(default_factory=list)


def _list_json_files(directory: Path, reserved_prefixes: Sequence[str]) -> list[Path]:
    try:
        entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
    except OSError as exc:
        raise StoreAccessError(directory, str(exc)) from exc
    return [
        entry
        for entry in entries
        if entry.suffix == ".json"
        and entry.is_file()
        and not any(entry.name.startswith(prefix) for prefix in reserved_prefixes)
    ]


def read_json_file(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise FileReadError(path, f"unreadable ({exc})") from exc
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise FileReadError(path, f"invalid JSON ({exc.msg} at line {exc.lineno})") from exc
    if not isinstance(payload, dict):
        raise FileReadError(path, f"expected a JSON object, got {type(payload).__name__}")
    return payload


def load_directory(
    directory: Path,
    reserved_prefixes: Sequence[str] = (),
) -> StoreLoad:
    """Parse every candidate ``*.json`` file in ``directory``.

    A missing directory yields an empty load. Files that cannot be read or
    parsed are logged and reported in ``skipped``; they never abort the load.
    A directory that exists but cannot be listed raises ``StoreAccessError``.
    """
    if not directory.exists():
        LOGGER.info("Results directory %s does not exist; nothing to load", directory)
        return StoreLoad(directory=directory, records=[])
    if not directory.is_dir():
        raise StoreAccessError(directory, "not a directory")

    records: list[RawRecord] = []
    skipped: list[FileReadError] = []
    for path in _list_json_files(directory, reserved_prefixes):
        try:
            payload = read_json_file(path)
        except FileReadError as exc:
            LOGGER.warning("Skipping result file %s", exc)
            skipped.append(exc)
            continue
        records.append(RawRecord(source_name=path.name, payload=payload))

    LOGGER.info(
        "Loaded %d file(s) from %s (%d skipped)",
        len(records),
        directory,
        len(skipped),
    )
    return StoreLoad(directory=directory, records=records, skipped=skipped)


def load_responses(
    directory: Path,
    reserved_prefixes: Sequence[str] = DEFAULT_RESERVED_PREFIXES,
) -> StoreLoad:
    return load_directory(directory, reserved_prefixes=reserved_prefixes)


def load_emails(directory: Path) -> StoreLoad:
    return load_directory(directory)
