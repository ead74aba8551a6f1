"""Classification of archive entries between two snapshots."""

from __future__ import annotations

import logging
from typing import AbstractSet, Callable

from .models import (
    ArtifactSummary,
    ClassificationResult,
    ComparisonResult,
    ContentIndex,
    DuplicateGroups,
    Entry,
    Snapshot,
)

logger = logging.getLogger(__name__)

DEFAULT_RENAME_WEIGHT = 0.9

Verifier = Callable[[Entry, Entry], bool]


def build_index(snapshot: Snapshot) -> ContentIndex:
    """Index the files of ``snapshot`` by fingerprint and its directories by path.

    The first file seen for a fingerprint becomes its representative. Later
    files with the same fingerprint form a duplicate group together with the
    representative, in snapshot order.
    """

    by_fingerprint: dict[str, Entry] = {}
    groups: dict[str, list[Entry]] = {}
    directories: dict[str, Entry] = {}

    for entry in snapshot.entries:
        if entry.is_directory:
            directories.setdefault(entry.path, entry)
            continue

        representative = by_fingerprint.get(entry.fingerprint)
        if representative is None:
            by_fingerprint[entry.fingerprint] = entry
            continue

        groups.setdefault(entry.fingerprint, [representative]).append(entry)

    return ContentIndex(
        by_fingerprint=by_fingerprint,
        duplicate_groups={key: tuple(members) for key, members in groups.items()},
        directories=directories,
    )


def classify(
    target: Snapshot,
    source_index: ContentIndex,
    source_paths: AbstractSet[str],
    *,
    verify: Verifier | None = None,
) -> ClassificationResult:
    """Sort every target entry into a category relative to the source.

    ``source_paths`` holds the source file paths. When ``verify`` is given,
    each fingerprint match is confirmed with ``verify(source_entry,
    target_entry)``; a rejected match is classified by path alone.
    """

    common: list[Entry] = []
    added: list[Entry] = []
    changed: list[Entry] = []
    renamed: list[Entry] = []
    common_dirs: list[Entry] = []
    added_dirs: list[Entry] = []
    consumed: set[str] = set()

    for entry in target.entries:
        if entry.is_directory:
            if entry.path in source_index.directories:
                common_dirs.append(entry)
                consumed.add(entry.path)
            else:
                added_dirs.append(entry)
            continue

        group = source_index.group_for(entry.fingerprint)
        if group:
            same_path = next((member for member in group if member.path == entry.path), None)
            counterpart = same_path if same_path is not None else group[0]
            if verify is None or verify(counterpart, entry):
                if same_path is not None:
                    common.append(entry)
                else:
                    renamed.append(entry)
                    consumed.add(counterpart.path)
                continue
            logger.warning(
                "Fingerprint match for '%s' failed byte verification against '%s'", entry.path, counterpart.path
            )

        if entry.path in source_paths:
            changed.append(entry)
        else:
            added.append(entry)

    return ClassificationResult(
        common=tuple(common),
        added=tuple(added),
        changed=tuple(changed),
        renamed=tuple(renamed),
        common_dirs=tuple(common_dirs),
        added_dirs=tuple(added_dirs),
        consumed_paths=frozenset(consumed),
    )


def reconcile_removed(
    source: Snapshot,
    target_paths: AbstractSet[str],
    consumed_paths: AbstractSet[str],
    *,
    target_directory_paths: AbstractSet[str],
) -> tuple[tuple[Entry, ...], tuple[Entry, ...]]:
    """Return the source files and directories with no counterpart in the target."""

    removed_files = tuple(
        entry
        for entry in source.entries
        if not entry.is_directory and entry.path not in target_paths and entry.path not in consumed_paths
    )
    removed_dirs = tuple(
        entry for entry in source.entries if entry.is_directory and entry.path not in target_directory_paths
    )
    return removed_files, removed_dirs


def summarise(snapshot: Snapshot) -> ArtifactSummary:
    file_count = 0
    dir_count = 0
    total_size = 0
    last_modified: int | None = None

    for entry in snapshot.entries:
        if entry.is_directory:
            dir_count += 1
        else:
            file_count += 1
        total_size += entry.size
        if last_modified is None or entry.modified_time > last_modified:
            last_modified = entry.modified_time

    return ArtifactSummary(
        label=snapshot.label,
        file_count=file_count,
        dir_count=dir_count,
        total_size=total_size,
        last_modified=last_modified,
    )


def score(result: ComparisonResult, *, rename_weight: float = DEFAULT_RENAME_WEIGHT) -> float:
    """Return how much of the compared content matches, as a percentage.

    Renamed files count as ``rename_weight`` of a match. Two artifacts without
    files score 100.
    """

    total = result.file_total
    if total == 0:
        return 100.0
    return (len(result.common) + rename_weight * len(result.renamed)) / total * 100


def compare(source: Snapshot, target: Snapshot, *, verify: Verifier | None = None) -> ComparisonResult:
    """Compare two snapshots and package every category into one result."""

    source_index = build_index(source)
    target_index = build_index(target)

    classification = classify(target, source_index, source.file_paths, verify=verify)
    removed, removed_dirs = reconcile_removed(
        source,
        target.file_paths,
        classification.consumed_paths,
        target_directory_paths=target.directory_paths,
    )

    result = ComparisonResult(
        source_summary=summarise(source),
        target_summary=summarise(target),
        common=classification.common,
        added=classification.added,
        removed=removed,
        changed=classification.changed,
        renamed=classification.renamed,
        common_dirs=classification.common_dirs,
        added_dirs=classification.added_dirs,
        removed_dirs=removed_dirs,
        duplicates=DuplicateGroups(
            source_groups=tuple(source_index.duplicate_groups.values()),
            target_groups=tuple(target_index.duplicate_groups.values()),
        ),
    )

    logger.debug(
        "Compared '%s' with '%s': common=%d added=%d removed=%d changed=%d renamed=%d",
        source.label,
        target.label,
        len(result.common),
        len(result.added),
        len(result.removed),
        len(result.changed),
        len(result.renamed),
    )
    return result
