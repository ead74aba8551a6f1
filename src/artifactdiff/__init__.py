"""Core package for the artifactdiff project."""

from .cli import app, run
from .comparison import (
    DEFAULT_RENAME_WEIGHT,
    build_index,
    classify,
    compare,
    reconcile_removed,
    score,
    summarise,
)
from .config import Config, ConfigError, Settings, load_config
from .extractor import ArchiveContentVerifier, ArtifactFormatError, ArtifactPathError, extract_snapshot
from .models import (
    ArtifactSummary,
    ClassificationResult,
    ComparisonResult,
    ContentIndex,
    DuplicateGroups,
    Entry,
    FingerprintMode,
    Snapshot,
)
from .serialization import SnapshotFormatError, load_snapshot, save_comparison, save_snapshot

__all__ = [
    "ArtifactSummary",
    "ClassificationResult",
    "ComparisonResult",
    "ContentIndex",
    "DuplicateGroups",
    "Entry",
    "FingerprintMode",
    "Snapshot",
    "DEFAULT_RENAME_WEIGHT",
    "build_index",
    "classify",
    "compare",
    "reconcile_removed",
    "score",
    "summarise",
    "Config",
    "ConfigError",
    "Settings",
    "load_config",
    "ArchiveContentVerifier",
    "ArtifactFormatError",
    "ArtifactPathError",
    "extract_snapshot",
    "SnapshotFormatError",
    "load_snapshot",
    "save_comparison",
    "save_snapshot",
    "app",
    "run",
]
