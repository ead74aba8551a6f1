"""Shared models and enums for artifactdiff."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class FingerprintMode(str, Enum):
    """Ways of deriving a content fingerprint for an archive entry."""

    STRONG = "strong"
    WEAK = "weak"


@dataclass(frozen=True, slots=True)
class Entry:
    """Metadata recorded for a single archive member.

    ``fingerprint`` is an opaque content key. Two entries with equal
    fingerprints are assumed to hold equal bytes; nothing verifies this unless
    a comparison runs with a verifier. Directories carry no fingerprint.
    """

    path: str
    size: int
    modified_time: int
    is_directory: bool = False
    fingerprint: str | None = None


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Entries of one artifact in the archive's native enumeration order."""

    label: str
    entries: tuple[Entry, ...] = ()

    @property
    def files(self) -> tuple[Entry, ...]:
        return tuple(entry for entry in self.entries if not entry.is_directory)

    @property
    def directories(self) -> tuple[Entry, ...]:
        return tuple(entry for entry in self.entries if entry.is_directory)

    @property
    def file_paths(self) -> frozenset[str]:
        return frozenset(entry.path for entry in self.entries if not entry.is_directory)

    @property
    def directory_paths(self) -> frozenset[str]:
        return frozenset(entry.path for entry in self.entries if entry.is_directory)


def _frozen_mapping(value: Mapping | None) -> Mapping:
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True, slots=True)
class ContentIndex:
    """Fingerprint and directory lookups built from one snapshot."""

    by_fingerprint: Mapping[str, Entry] = field(default_factory=dict)
    duplicate_groups: Mapping[str, tuple[Entry, ...]] = field(default_factory=dict)
    directories: Mapping[str, Entry] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "by_fingerprint", _frozen_mapping(self.by_fingerprint))
        object.__setattr__(self, "duplicate_groups", _frozen_mapping(self.duplicate_groups))
        object.__setattr__(self, "directories", _frozen_mapping(self.directories))

    def group_for(self, fingerprint: str) -> tuple[Entry, ...]:
        """Return every entry sharing ``fingerprint``, representative first."""

        group = self.duplicate_groups.get(fingerprint)
        if group is not None:
            return group
        representative = self.by_fingerprint.get(fingerprint)
        return (representative,) if representative is not None else ()


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Target entries sorted into categories against a source index."""

    common: tuple[Entry, ...] = ()
    added: tuple[Entry, ...] = ()
    changed: tuple[Entry, ...] = ()
    renamed: tuple[Entry, ...] = ()
    common_dirs: tuple[Entry, ...] = ()
    added_dirs: tuple[Entry, ...] = ()
    consumed_paths: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class ArtifactSummary:
    """Aggregate figures for one snapshot."""

    label: str
    file_count: int
    dir_count: int
    total_size: int
    last_modified: int | None = None


@dataclass(frozen=True, slots=True)
class DuplicateGroups:
    """Sets of same-content entries found within each snapshot."""

    source_groups: tuple[tuple[Entry, ...], ...] = ()
    target_groups: tuple[tuple[Entry, ...], ...] = ()


@dataclass(frozen=True, slots=True)
class ComparisonResult:
    """Full outcome of comparing a source snapshot with a target snapshot."""

    source_summary: ArtifactSummary
    target_summary: ArtifactSummary
    common: tuple[Entry, ...] = ()
    added: tuple[Entry, ...] = ()
    removed: tuple[Entry, ...] = ()
    changed: tuple[Entry, ...] = ()
    renamed: tuple[Entry, ...] = ()
    common_dirs: tuple[Entry, ...] = ()
    added_dirs: tuple[Entry, ...] = ()
    removed_dirs: tuple[Entry, ...] = ()
    duplicates: DuplicateGroups = field(default_factory=DuplicateGroups)

    @property
    def file_total(self) -> int:
        return len(self.common) + len(self.added) + len(self.removed) + len(self.changed) + len(self.renamed)
