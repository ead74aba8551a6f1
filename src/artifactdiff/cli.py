"""Command-line interface for artifactdiff."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Iterable

import tomli_w
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .comparison import compare as compare_snapshots
from .comparison import score
from .config import DEFAULT_ARTIFACT_EXTENSIONS, DEFAULT_CONFIG_FILENAME, ConfigError, Settings, load_config
from .extractor import (
    DEFAULT_HASH_ALGORITHM,
    ArchiveContentVerifier,
    ArtifactFormatError,
    ArtifactPathError,
    extract_snapshot,
    validate_artifact_path,
)
from .models import ComparisonResult, Entry, FingerprintMode, Snapshot
from .serialization import (
    SnapshotFormatError,
    comparison_report_path,
    load_snapshot,
    report_stem,
    save_comparison,
    save_snapshot,
    snapshot_report_path,
)

app = typer.Typer(help="Compare the entry listings of two build artifacts")
console = Console()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
BYTE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def format_bytes(size: int) -> str:
    """Return ``size`` as a human readable string using binary multiples."""

    if size < 1024:
        return f"{size} B"
    value = float(size)
    index = 0
    while value >= 1024 and index < len(BYTE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{value:.2f} {BYTE_UNITS[index]}"


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _load_settings(config: Path | None) -> Settings:
    return load_config(config).settings


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{escape(message)}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'artifactdiff init --config <path>' to create a configuration file.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, (ArtifactPathError, ArtifactFormatError, SnapshotFormatError)):
        console.print(f"[red]Error: {escape(str(exc))}[/red]")
        raise typer.Exit(code=1)
    if isinstance(exc, FileNotFoundError):
        console.print(f"[red]Error: File not found: {escape(str(exc.filename))}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _analyse_artifact(artifact: Path, settings: Settings, output: Path | None = None) -> Snapshot:
    validate_artifact_path(artifact, settings.artifact_extensions, allow_directory=True)
    snapshot = extract_snapshot(artifact, mode=settings.fingerprint, hash_algorithm=settings.hash_algorithm)
    destination = output or snapshot_report_path(artifact, settings.output_dir)
    save_snapshot(snapshot, destination)
    console.print(f"Written artifact summary to {escape(str(destination))}")
    return snapshot


def _print_duplicate_sets(groups: Iterable[tuple[Entry, ...]]) -> None:
    groups = list(groups)
    for index, group in enumerate(groups):
        for entry in group:
            console.print(f"  - {escape(entry.path)}")
        if index < len(groups) - 1:
            console.print()


def _format_entries(result: ComparisonResult) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Category")
    table.add_column("Entry", overflow="fold")
    table.add_column("Size", justify="right")

    categories = (
        ("added", "green", result.added),
        ("removed", "red", result.removed),
        ("changed", "yellow", result.changed),
        ("renamed", "cyan", result.renamed),
        ("added dir", "green", result.added_dirs),
        ("removed dir", "red", result.removed_dirs),
    )

    for name, style, entries in categories:
        for entry in entries:
            table.add_row(f"[{style}]{name}[/{style}]", escape(entry.path), format_bytes(entry.size))

    if table.row_count:
        console.print(table)


def _format_comparison(result: ComparisonResult, *, rename_weight: float, verbose: bool) -> None:
    source = result.source_summary
    target = result.target_summary

    console.print("Artifact comparison summary")
    console.print("===========================")
    console.print()
    console.print(f"Artifact A: {escape(source.label)}")
    console.print(f"  Files: {source.file_count}")
    console.print(f"  Size: {format_bytes(source.total_size)}")
    console.print()
    console.print(f"Artifact B: {escape(target.label)}")
    console.print(f"  Files: {target.file_count}")
    console.print(f"  Size: {format_bytes(target.total_size)}")
    console.print()
    console.print(f"Files in common: {len(result.common)}")
    console.print()
    console.print("Differences:")
    console.print(f"  - Added files: {len(result.added)}")
    console.print(f"  - Removed files: {len(result.removed)}")
    console.print(f"  - Changed files: {len(result.changed)}")
    console.print(f"  - Renamed files: {len(result.renamed)}")
    console.print()

    for side, groups in (("A", result.duplicates.source_groups), ("B", result.duplicates.target_groups)):
        if not groups:
            continue
        suffix = ":" if verbose else ""
        console.print(f"[yellow]Note: Found {len(groups)} sets of duplicate files in artifact {side}{suffix}[/yellow]")
        if verbose:
            _print_duplicate_sets(groups)
            console.print()

    if verbose:
        _format_entries(result)

    console.print(f"Similarity score: {score(result, rename_weight=rename_weight):.1f}%")
    console.print()


def _render_init_config(settings: Settings) -> str:
    data = {
        "settings": {
            "fingerprint": settings.fingerprint.value,
            "hash_algorithm": settings.hash_algorithm,
            "rename_weight": settings.rename_weight,
            "strict": settings.strict,
            "output_dir": ".",
            "artifact_extensions": list(settings.artifact_extensions),
        }
    }

    buffer = io.StringIO()
    buffer.write("# artifactdiff configuration\n\n")
    buffer.write(tomli_w.dumps(data))
    return buffer.getvalue()


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        help=f"Logging verbosity ({', '.join(LOG_LEVELS)})",
    ),
) -> None:
    """Compare the entry listings of two build artifacts."""

    _configure_logging(log_level)


@app.command()
def init(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILENAME),
        "--config",
        "-c",
        help="Path to write the configuration file",
        dir_okay=False,
        writable=True,
    ),
    fingerprint: FingerprintMode = typer.Option(
        FingerprintMode.STRONG,
        "--fingerprint",
        help="Default fingerprint mode for new snapshots",
        case_sensitive=False,
    ),
    hash_algorithm: str = typer.Option(DEFAULT_HASH_ALGORITHM, "--hash-algorithm", help="Digest used in strong mode"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter artifactdiff configuration file."""

    if config.exists() and not force:
        console.print(f"[red]Configuration '{escape(str(config))}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    try:
        settings = Settings(
            fingerprint=fingerprint,
            hash_algorithm=hash_algorithm,
            artifact_extensions=DEFAULT_ARTIFACT_EXTENSIONS,
        )
    except ValueError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    config.parent.mkdir(parents=True, exist_ok=True)
    config.write_text(_render_init_config(settings))
    console.print(f"[green]Created '{escape(str(config))}'.[/green]")


@app.command()
def analyse(
    artifact: Path = typer.Argument(
        ...,
        help="Artifact to analyse (a .jar, .zip or tar file, or an unpacked directory)",
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Where to write the snapshot JSON"),
    fingerprint: FingerprintMode | None = typer.Option(
        None,
        "--fingerprint",
        help="Override the configured fingerprint mode",
        case_sensitive=False,
    ),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to artifactdiff.toml"),
) -> None:
    """List an artifact's entries and write them as a snapshot JSON file."""

    try:
        settings = _load_settings(config)
        if fingerprint is not None:
            settings = settings.model_copy(update={"fingerprint": fingerprint})
        _analyse_artifact(artifact, settings, output)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def compare(
    file1: Path = typer.Argument(..., help="Snapshot JSON (or artifact with --artifacts) of build A"),
    file2: Path = typer.Argument(..., help="Snapshot JSON (or artifact with --artifacts) of build B"),
    artifacts: bool = typer.Option(
        False,
        "--artifacts",
        "-a",
        help="Compare two artifacts directly (analyse + compare)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print duplicate files and per-entry differences"),
    strict: bool | None = typer.Option(
        None,
        "--strict/--no-strict",
        help="Re-verify fingerprint matches byte by byte (requires --artifacts)",
    ),
    fingerprint: FingerprintMode | None = typer.Option(
        None,
        "--fingerprint",
        help="Override the configured fingerprint mode when analysing artifacts",
        case_sensitive=False,
    ),
    output: Path | None = typer.Option(None, "--output", "-o", help="Where to write the comparison JSON"),
    no_json: bool = typer.Option(False, "--no-json", help="Do not write the comparison JSON file"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to artifactdiff.toml"),
) -> None:
    """Compare two snapshots and report their differences."""

    try:
        settings = _load_settings(config)
        if fingerprint is not None:
            settings = settings.model_copy(update={"fingerprint": fingerprint})
        use_strict = settings.strict if strict is None else strict

        if artifacts:
            source = _analyse_artifact(file1, settings)
            target = _analyse_artifact(file2, settings)
        else:
            source = _load_json_snapshot(file1)
            target = _load_json_snapshot(file2)

        if use_strict and not artifacts:
            console.print("[yellow]Strict verification needs the artifacts themselves; skipping it.[/yellow]")
            use_strict = False

        console.print(f"Comparing {escape(report_stem(file1))} and {escape(report_stem(file2))} ...")
        if use_strict:
            with ArchiveContentVerifier(file1, file2) as verify:
                result = compare_snapshots(source, target, verify=verify)
        else:
            result = compare_snapshots(source, target)
        _format_comparison(result, rename_weight=settings.rename_weight, verbose=verbose)

        if not no_json:
            console.print("Writing full comparison information to JSON...")
            destination = output or comparison_report_path(file1, file2, settings.output_dir)
            save_comparison(result, destination)
            console.print(f"View full comparison JSON at {escape(str(destination))}")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


def _load_json_snapshot(path: Path) -> Snapshot:
    validate_artifact_path(path, ("json",))
    return load_snapshot(path)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
