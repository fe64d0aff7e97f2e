from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from ..config import load_config
from ..core.timing import format_time_key, resolve_motion_samples
from ..sdk import cook_from_config

app = typer.Typer(help="Point instancer cooking utilities")


def _configure_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="[%(levelname)s] %(message)s")
    logging.getLogger("pinst").setLevel(numeric)


def _execute_cook(
    config: Path,
    output_override: Optional[Path],
    current_time: Optional[float],
    offsets: Optional[List[float]],
    backward: Optional[bool],
    fail_on_error: bool,
    log_level: str,
) -> None:
    _configure_logging(log_level)
    cfg = load_config(config)
    if output_override is not None:
        ext = output_override.suffix.lower()
        if ext not in {".yaml", ".yml", ".npz"}:
            raise typer.BadParameter(f"Unsupported output extension '{ext}'", param_hint="--output")
    if offsets is not None and len(set(offsets)) != len(offsets):
        raise typer.BadParameter("Motion sample offsets must be unique.", param_hint="--offset")

    run = cook_from_config(
        cfg,
        output=output_override,
        current_time=current_time,
        motion_sample_times=offsets,
        motion_backward=backward,
    )
    result = run.result
    root = run.root
    typer.echo(
        f"{root.path}: {result.state.value} "
        f"({result.num_instances} instances, {result.produced_samples}/{result.requested_samples} samples, "
        f"{result.intermediate_children} sources) → {run.output_path}"
    )
    if root.attrs.get("type") == "error":
        typer.echo(f"error: {root.attrs.get('errorMessage', '')}", err=True)
        if fail_on_error:
            raise typer.Exit(code=1)


@app.command("cook")
def cook(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Override output path (extension sets format)."),
    current_time: Optional[float] = typer.Option(None, "--current-time", help="Override the evaluation time."),
    offset: Optional[List[float]] = typer.Option(None, "--offset", "-t", help="Override motion sample offsets (repeatable)."),
    backward: Optional[bool] = typer.Option(None, "--backward/--forward", help="Override the motion direction."),
    fail_on_error: bool = typer.Option(False, "--fail-on-error", help="Exit non-zero when the instancer reports an error."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Cook the point instancer described by a YAML config."""

    offsets = list(offset) if offset else None
    _execute_cook(config, output, current_time, offsets, backward, fail_on_error, log_level)


@app.command("samples")
def samples(
    current_time: float = typer.Option(1.0, "--current-time", help="Evaluation time."),
    offset: Optional[List[float]] = typer.Option(None, "--offset", "-t", help="Frame-relative offsets (repeatable)."),
    backward: bool = typer.Option(False, "--backward", help="Motion is backward; reverse the stored keys."),
) -> None:
    """Show the absolute sample times and storage keys for a set of offsets."""

    for sample in resolve_motion_samples(current_time, offset or [], motion_backward=backward):
        typer.echo(f"offset={format_time_key(sample.offset)} time={format_time_key(sample.time)} key={format_time_key(sample.key)}")


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
