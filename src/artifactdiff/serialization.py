"""JSON persistence for snapshots and comparison results."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from .models import ArtifactSummary, ComparisonResult, DuplicateGroups, Entry, Snapshot

logger = logging.getLogger(__name__)

REPORT_SUFFIX = "-report"


class SnapshotFormatError(ValueError):
    """Raised when a serialized snapshot or comparison is malformed."""


def _artifact_stem(path: Path) -> str:
    stem = Path(path).stem
    return stem[: -len(".tar")] if stem.lower().endswith(".tar") else stem


def report_stem(path: Path) -> str:
    """Return the file stem of ``path`` without a trailing ``-report``."""

    stem = _artifact_stem(path)
    return stem[: -len(REPORT_SUFFIX)] if stem.endswith(REPORT_SUFFIX) else stem


def snapshot_report_path(artifact: Path, output_dir: Path | None = None) -> Path:
    directory = output_dir if output_dir is not None else Path.cwd()
    return directory / f"{_artifact_stem(artifact)}{REPORT_SUFFIX}.json"


def comparison_report_path(first: Path, second: Path, output_dir: Path | None = None) -> Path:
    directory = output_dir if output_dir is not None else Path.cwd()
    return directory / f"{report_stem(first)}-{report_stem(second)}-comparison.json"


def _require(data: Mapping[str, Any], key: str, kind: type | tuple[type, ...], context: str) -> Any:
    if not isinstance(data, Mapping):
        raise SnapshotFormatError(f"{context} must be an object")
    try:
        value = data[key]
    except KeyError:
        raise SnapshotFormatError(f"{context} is missing required field '{key}'") from None
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise SnapshotFormatError(f"{context} field '{key}' has unexpected type {type(value).__name__}")
    return value


def _require_non_negative(data: Mapping[str, Any], key: str, context: str) -> int:
    value = _require(data, key, int, context)
    if value < 0:
        raise SnapshotFormatError(f"{context} field '{key}' must not be negative, got {value}")
    return value


def entry_to_dict(entry: Entry) -> dict[str, object]:
    return {
        "path": entry.path,
        "size": entry.size,
        "modifiedTime": entry.modified_time,
        "isDirectory": entry.is_directory,
        "fingerprint": entry.fingerprint,
    }


def entry_from_dict(data: Mapping[str, Any], *, context: str = "entry") -> Entry:
    path = _require(data, "path", str, context)
    context = f"{context} '{path}'"
    is_directory = _require(data, "isDirectory", bool, context)
    fingerprint = data.get("fingerprint")
    if fingerprint is None and not is_directory:
        raise SnapshotFormatError(f"{context} is a file without a fingerprint")
    if fingerprint is not None and not isinstance(fingerprint, str):
        raise SnapshotFormatError(f"{context} field 'fingerprint' has unexpected type {type(fingerprint).__name__}")

    return Entry(
        path=path,
        size=_require_non_negative(data, "size", context),
        modified_time=_require_non_negative(data, "modifiedTime", context),
        is_directory=is_directory,
        fingerprint=fingerprint,
    )


def _entries_from_list(raw: Any, context: str) -> tuple[Entry, ...]:
    if not isinstance(raw, list):
        raise SnapshotFormatError(f"{context} must be a list")
    return tuple(entry_from_dict(item, context=f"{context}[{index}]") for index, item in enumerate(raw))


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, object]:
    return {
        "label": snapshot.label,
        "entries": [entry_to_dict(entry) for entry in snapshot.entries],
    }


def snapshot_from_dict(data: Mapping[str, Any]) -> Snapshot:
    label = _require(data, "label", str, "snapshot")
    entries = _entries_from_list(_require(data, "entries", list, "snapshot"), "entries")
    return Snapshot(label=label, entries=entries)


def summary_to_dict(summary: ArtifactSummary) -> dict[str, object]:
    return {
        "label": summary.label,
        "fileCount": summary.file_count,
        "dirCount": summary.dir_count,
        "totalSize": summary.total_size,
        "lastModified": summary.last_modified,
    }


def summary_from_dict(data: Mapping[str, Any], *, context: str) -> ArtifactSummary:
    last_modified = _require(data, "lastModified", (int, type(None)), context)
    return ArtifactSummary(
        label=_require(data, "label", str, context),
        file_count=_require_non_negative(data, "fileCount", context),
        dir_count=_require_non_negative(data, "dirCount", context),
        total_size=_require_non_negative(data, "totalSize", context),
        last_modified=last_modified,
    )


def comparison_to_dict(result: ComparisonResult) -> dict[str, object]:
    def entries(items: tuple[Entry, ...]) -> list[dict[str, object]]:
        return [entry_to_dict(entry) for entry in items]

    return {
        "sourceSummary": summary_to_dict(result.source_summary),
        "targetSummary": summary_to_dict(result.target_summary),
        "commonFiles": entries(result.common),
        "commonDirs": entries(result.common_dirs),
        "addedFiles": entries(result.added),
        "addedDirs": entries(result.added_dirs),
        "removedFiles": entries(result.removed),
        "removedDirs": entries(result.removed_dirs),
        "changedFiles": entries(result.changed),
        "renamedFiles": entries(result.renamed),
        "duplicates": {
            "sourceDuplicateGroups": [entries(group) for group in result.duplicates.source_groups],
            "targetDuplicateGroups": [entries(group) for group in result.duplicates.target_groups],
        },
    }


def comparison_from_dict(data: Mapping[str, Any]) -> ComparisonResult:
    def entries(key: str) -> tuple[Entry, ...]:
        return _entries_from_list(_require(data, key, list, "comparison"), key)

    duplicates = _require(data, "duplicates", dict, "comparison")

    def groups(key: str) -> tuple[tuple[Entry, ...], ...]:
        raw_groups = _require(duplicates, key, list, "duplicates")
        return tuple(_entries_from_list(group, f"{key}[{index}]") for index, group in enumerate(raw_groups))

    return ComparisonResult(
        source_summary=summary_from_dict(_require(data, "sourceSummary", dict, "comparison"), context="sourceSummary"),
        target_summary=summary_from_dict(_require(data, "targetSummary", dict, "comparison"), context="targetSummary"),
        common=entries("commonFiles"),
        added=entries("addedFiles"),
        removed=entries("removedFiles"),
        changed=entries("changedFiles"),
        renamed=entries("renamedFiles"),
        common_dirs=entries("commonDirs"),
        added_dirs=entries("addedDirs"),
        removed_dirs=entries("removedDirs"),
        duplicates=DuplicateGroups(
            source_groups=groups("sourceDuplicateGroups"),
            target_groups=groups("targetDuplicateGroups"),
        ),
    )


def _read_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        raise SnapshotFormatError(f"'{path}' is not valid JSON: {exc}") from exc


def _write_json(payload: Mapping[str, object], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)
        handle.write("\n")
    return path


def load_snapshot(path: Path) -> Snapshot:
    path = Path(path)
    snapshot = snapshot_from_dict(_read_json(path))
    logger.info("Loaded snapshot '%s' with %d entries from '%s'", snapshot.label, len(snapshot.entries), path)
    return snapshot


def save_snapshot(snapshot: Snapshot, path: Path) -> Path:
    path = _write_json(snapshot_to_dict(snapshot), Path(path))
    logger.info("Wrote snapshot '%s' to '%s'", snapshot.label, path)
    return path


def load_comparison(path: Path) -> ComparisonResult:
    return comparison_from_dict(_read_json(Path(path)))


def save_comparison(result: ComparisonResult, path: Path) -> Path:
    path = _write_json(comparison_to_dict(result), Path(path))
    logger.info("Wrote comparison to '%s'", path)
    return path
