"""TOML configuration loading for artifactdiff."""

from __future__ import annotations

import hashlib
import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .comparison import DEFAULT_RENAME_WEIGHT
from .extractor import DEFAULT_HASH_ALGORITHM
from .models import FingerprintMode

DEFAULT_CONFIG_FILENAME = "artifactdiff.toml"
DEFAULT_ARTIFACT_EXTENSIONS = ("jar", "zip")


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


class Settings(BaseModel):
    """Options shared by the analyse and compare commands."""

    model_config = ConfigDict(frozen=True)

    fingerprint: FingerprintMode = FingerprintMode.STRONG
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    rename_weight: float = Field(default=DEFAULT_RENAME_WEIGHT, ge=0.0, le=1.0)
    strict: bool = False
    output_dir: Path = Field(default_factory=lambda: Path("."))
    artifact_extensions: tuple[str, ...] = DEFAULT_ARTIFACT_EXTENSIONS

    @field_validator("hash_algorithm")
    @classmethod
    def _known_algorithm(cls, value: str) -> str:
        if value not in hashlib.algorithms_available:
            raise ValueError(f"unknown hash algorithm '{value}'")
        return value

    @field_validator("artifact_extensions")
    @classmethod
    def _normalise_extensions(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("at least one artifact extension is required")
        return tuple(ext.lower().lstrip(".") for ext in value)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        values = dict(raw)
        values["output_dir"] = _expand_path(values.get("output_dir", "."), base_dir=base_dir)
        try:
            return cls(**values)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
            )
            raise ConfigError(f"Invalid [settings]: {problems}") from exc


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path | None = None
    settings: Settings = Field(default_factory=Settings)


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or its directory. Without a path,
            ``artifactdiff.toml`` in the current working directory is used when
            present, otherwise defaults apply.
    """

    config_path = _resolve_config_path(path)
    if config_path is None:
        return Config(settings=Settings.from_raw({}, base_dir=Path.cwd()))

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    settings_section = data.get("settings") or {}
    if not isinstance(settings_section, dict):
        raise ConfigError("[settings] must be a table")

    settings = Settings.from_raw(settings_section, base_dir=config_path.parent)
    return Config(config_path=config_path, settings=settings)


def _resolve_config_path(path: Path | None) -> Path | None:
    if path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_FILENAME
        return candidate.resolve(strict=False) if candidate.is_file() else None

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
