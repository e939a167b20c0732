"""
Command-line interface for the fracturing breakdown detection pipeline.

Provides commands for physics-based detection, learning favorable
pre-breakdown conditions, and trend-based prediction on a new stage.
"""

from pathlib import Path
from typing import Dict, List, Optional
import logging

import typer
from rich import print
from rich.console import Console
from rich.table import Table
import pandas as pd

from . import __version__
from .config import PROCESSING_CONFIG, DetectionSettings
from .errors import FracBDError
from .io_reader import read_directory, read_well_file
from .prediction import (
    PredictionResult,
    apply_to_new_dataset,
    breakdowns_frame,
    compare_methods,
    detect_all,
    learn_favorable_conditions,
)
from .signatures import SlopeSignature
from .utils import setup_logging


app = typer.Typer(
    name="frac-bd",
    help="Fracturing breakdown detection - physics-based and trend-based breakdown analysis",
    add_completion=False
)

console = Console()


def version_callback(value: bool):
    if value:
        print(f"Fracturing Breakdown Detection v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True,
        help="Show version and exit"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", help="Enable verbose logging"
    )
):
    """Fracturing Breakdown Detection"""
    log_level = logging.DEBUG if verbose else logging.INFO
    setup_logging(log_level)


@app.command()
def detect(
    files: List[Path] = typer.Argument(..., help="Telemetry files to analyze"),
    settings: Optional[List[str]] = typer.Option(
        None, "--set", "-s",
        help="Detection setting override as key=value (repeatable)"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write detected breakdowns to CSV"
    ),
    max_workers: int = typer.Option(
        PROCESSING_CONFIG["max_workers"], "--max-workers", help="Number of parallel workers"
    )
):
    """Detect breakdowns in each file from the permeability estimate"""
    console.print("[bold blue]Breakdown Detection[/bold blue]")

    try:
        detection_settings = _parse_settings(settings)
        datasets = {}
        for path in files:
            dataset, report = read_well_file(path)
            console.print(f"  {report.summary()}")
            datasets[dataset.name] = dataset

        session = detect_all(datasets, detection_settings, max_workers=max_workers)

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Dataset", style="cyan")
        table.add_column("Breakdowns", justify="right")
        table.add_column("Times")
        for name, events in session.breakdowns.items():
            table.add_row(name, str(len(events)), _format_times(events))
        console.print(table)

        if output:
            breakdowns_frame(session).to_csv(output, index=False)
            console.print(f"[green]Saved breakdowns to {output}[/green]")

    except (FracBDError, ValueError, OSError) as e:
        console.print(f"[red]Detection failed: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def learn(
    directory: Path = typer.Argument(..., help="Directory of historical stage files"),
    pattern: str = typer.Option(
        PROCESSING_CONFIG["file_pattern"], "--pattern", help="File glob pattern"
    ),
    settings: Optional[List[str]] = typer.Option(
        None, "--set", "-s",
        help="Detection setting override as key=value (repeatable)"
    ),
    max_workers: int = typer.Option(
        PROCESSING_CONFIG["max_workers"], "--max-workers", help="Number of parallel workers"
    )
):
    """Learn the favorable pre-breakdown signature from historical stages"""
    console.print("[bold blue]Favorable Conditions[/bold blue]")

    try:
        datasets = _load_directory(directory, pattern, max_workers)
        session = detect_all(datasets, _parse_settings(settings), max_workers=max_workers)
        session = learn_favorable_conditions(session, datasets)
        console.print(_signature_table(session.favorable))

    except (FracBDError, ValueError, OSError) as e:
        console.print(f"[red]Learning failed: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def predict(
    directory: Path = typer.Argument(..., help="Directory of historical stage files"),
    target: Path = typer.Argument(..., help="New stage file to predict on"),
    pattern: str = typer.Option(
        PROCESSING_CONFIG["file_pattern"], "--pattern", help="File glob pattern"
    ),
    settings: Optional[List[str]] = typer.Option(
        None, "--set", "-s",
        help="Detection setting override as key=value (repeatable)"
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write both breakdown lists to CSV"
    ),
    max_workers: int = typer.Option(
        PROCESSING_CONFIG["max_workers"], "--max-workers", help="Number of parallel workers"
    )
):
    """Compare physics-based and trend-based breakdowns on a new stage"""
    console.print("[bold blue]Breakdown Prediction[/bold blue]")

    try:
        detection_settings = _parse_settings(settings)
        datasets = _load_directory(directory, pattern, max_workers)
        session = detect_all(datasets, detection_settings, max_workers=max_workers)
        session = learn_favorable_conditions(session, datasets)
        console.print(_signature_table(session.favorable))

        new_data, report = read_well_file(target)
        console.print(f"  {report.summary()}")
        result = apply_to_new_dataset(session, new_data, detection_settings)

        _display_result(result)

        distance = compare_methods(result)
        if distance is None:
            console.print("[yellow]Hausdorff distance undefined: a method found no breakdowns[/yellow]")
        else:
            console.print(f"Hausdorff distance: [bold]{distance:.1f} s[/bold]")

        if output:
            _result_frame(result).to_csv(output, index=False)
            console.print(f"[green]Saved predictions to {output}[/green]")

    except (FracBDError, ValueError, OSError) as e:
        console.print(f"[red]Prediction failed: {e}[/red]")
        raise typer.Exit(1)


def _parse_settings(items: Optional[List[str]]) -> DetectionSettings:
    """Parse key=value overrides into detection settings"""
    values: Dict[str, float] = {}
    for item in items or []:
        key, sep, raw = item.partition("=")
        if not sep:
            raise typer.BadParameter(f"Expected key=value, got '{item}'")
        try:
            values[key.strip().replace("-", "_")] = float(raw)
        except ValueError as e:
            raise typer.BadParameter(f"Invalid value for {key}: {raw}") from e
    return DetectionSettings.from_dict(values).validate()


def _load_directory(directory: Path, pattern: str, max_workers: int):
    loaded = read_directory(directory, pattern, max_workers=max_workers)
    if not loaded:
        console.print(f"[red]No files matching {pattern} in {directory}[/red]")
        raise typer.Exit(1)

    for dataset, report in loaded.values():
        console.print(f"  {report.summary()}")
    return {name: dataset for name, (dataset, _) in loaded.items()}


def _format_times(events) -> str:
    return ", ".join(f"{event:%H:%M:%S}" for event in events) or "-"


def _signature_table(signature: SlopeSignature) -> Table:
    table = Table(title="Favorable signature", show_header=True, header_style="bold magenta")
    table.add_column("Channel", style="cyan")
    table.add_column("Slope (per s)", justify="right")
    for channel, slope in signature.items():
        table.add_row(channel, "undefined" if slope is None else f"{slope:.5f}")
    return table


def _display_result(result: PredictionResult) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Method", style="cyan")
    table.add_column("Breakdowns", justify="right")
    table.add_column("Times")
    table.add_row("Physics", str(len(result.physics_events)), _format_times(result.physics_events))
    table.add_row("Trend", str(len(result.trend_events)), _format_times(result.trend_events))
    console.print(table)


def _result_frame(result: PredictionResult) -> pd.DataFrame:
    rows = [{"method": "physics", "time": t} for t in result.physics_events]
    rows += [{"method": "trend", "time": t} for t in result.trend_events]
    return pd.DataFrame(rows, columns=["method", "time"])


if __name__ == "__main__":
    app()
