"""CLI commands for building, applying and inspecting patch archives."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, Optional, Tuple, TypeVar

import typer

from .applier import ApplySummary, apply_patch
from .archive import Classification, inspect_archive
from .builder import BuildSummary, build_patch
from .config import PatchSettings, load_settings
from .errors import P3PatchError

APP_HELP = "Share derivative projects as patches against a baseline SDK sample."

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

app = typer.Typer(help=APP_HELP)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(config: Optional[Path]) -> PatchSettings:
    try:
        return load_settings(config)
    except P3PatchError as error:
        typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(code=1) from error


def _run(action: Callable[[], T]) -> T:
    """Run ``action`` and turn fatal patch and filesystem errors into exit code 1."""
    try:
        return action()
    except (P3PatchError, OSError) as error:
        typer.echo(f"Error: {error}", err=True)
        raise typer.Exit(code=1) from error
    except MemoryError:
        LOGGER.exception("Out of memory")
        raise


def _render_counts(counts: Iterable[Tuple[Classification, int]]) -> str:
    return ", ".join(f"{classification.value} {count}" for classification, count in counts)


def _render_build(summary: BuildSummary) -> None:
    typer.echo(f"Baseline AppCode={summary.baseline_app_code}")
    typer.echo(f"Modified AppCode={summary.modified_app_code}")
    for entry in summary.entries:
        typer.echo(f"{entry.classification.value} {entry.relative_path}")
    typer.echo(f"Created {summary.archive_path} ({_render_counts(summary.counts)})")


def _render_apply(summary: ApplySummary) -> None:
    for entry in summary.entries:
        typer.echo(f"{entry.classification.value} {entry.relative_path}")
    for name in summary.skipped:
        typer.echo(f"Unexpected archive entry: {name}")
    typer.echo(f"Recreated {summary.output_root} ({_render_counts(summary.counts)})")


@app.command()
def diff(
    baseline: Path = typer.Argument(..., help="Baseline project directory."),
    modified: Path = typer.Argument(..., help="Modified project directory."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Optional YAML settings file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress and telemetry events."),
) -> None:
    """Create <modified><extension> describing how MODIFIED differs from BASELINE."""
    _configure_logging(verbose)
    settings = _load(config)
    typer.echo(f"Creating patch with baseline {baseline} and modified tree {modified}")
    summary = _run(lambda: build_patch(baseline, modified, settings=settings))
    _render_build(summary)


@app.command()
def apply(
    baseline: Path = typer.Argument(..., help="Baseline project directory."),
    patch: Path = typer.Argument(..., help="Patch archive to apply."),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output directory (defaults to the patch path without its extension).",
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Optional YAML settings file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress and telemetry events."),
) -> None:
    """Recreate the modified tree from BASELINE and PATCH."""
    _configure_logging(verbose)
    settings = _load(config)
    typer.echo(f"Applying patch {patch} to baseline {baseline}")
    summary = _run(lambda: apply_patch(baseline, patch, output_root=output, settings=settings))
    _render_apply(summary)


@app.command()
def inspect(
    patch: Path = typer.Argument(..., help="Patch archive to list."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log progress and telemetry events."),
) -> None:
    """List the entries of PATCH without applying it."""
    _configure_logging(verbose)
    info = _run(lambda: inspect_archive(patch))
    typer.echo(f"Patch {info.path} (version {info.manifest_version})")
    for entry in info.entries:
        typer.echo(f"{entry.classification.value} {entry.relative_path} ({entry.size} bytes)")
    for name in info.unknown:
        typer.echo(f"unknown {name}")
    typer.echo(f"Totals: {_render_counts(info.counts)}")


def main() -> None:
    app()


if __name__ == "__main__":
    app()
