#!/usr/bin/env python3
"""CGM Ingest CLI Tool - Command-line interface for shared-store ingestion.

This tool provides access to the parser, smoothing filter and pipeline:
- Parsing shared-store JSON files into reading batches
- Smoothing preview (raw vs smoothed values)
- Running fetch cycles against a store file
- Listing supported source profiles

Can be used as:
- Installed command: cgm-ingest <command>
- Python module: python -m cgm_ingest.ingest_cli <command>
- Direct script: python scripts/ingest_cli.py <command>
"""

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
import polars as pl
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from cgm_ingest.config import PipelineConfig, load_options, parse_source
from cgm_ingest.interface.ingest_interface import (
    SupportedSource,
    GlucoseTrend,
    NoData,
    NewData,
    FetchError,
    ParseError,
    ConfigError,
    FilterOutOfRangeError,
    DEFAULT_FILTER_NOISE,
)
from cgm_ingest.formats.supported import SOURCE_DEFAULTS, SOURCE_DEVICES
from cgm_ingest.formats.unified import BatchColumn
from cgm_ingest.pipeline import GlucosePipeline
from cgm_ingest.reconciler import as_utc
from cgm_ingest.record_parser import RecordParser
from cgm_ingest.smoothing import smooth_batch
from cgm_ingest.store_reader import FileStore

app = typer.Typer(
    name="cgm-ingest",
    help="CGM Ingest CLI - Parse, smooth and poll shared-store glucose data",
    add_completion=False,
)
console = Console()


@app.callback()
def main_callback(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Log verbosity (-v info, -vv debug)"),
) -> None:
    """Configure logging for all commands."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


# ===== Parsing Commands =====

@app.command()
def parse(
    input_file: Path = typer.Argument(..., help="Shared-store JSON file"),
    limit: int = typer.Option(60, "--limit", "-n", help="Maximum records to read"),
    show_stats: bool = typer.Option(True, "--stats/--no-stats", help="Show statistics"),
    show_preview: bool = typer.Option(False, "--preview", "-p", help="Show readings"),
) -> None:
    """Parse a shared-store JSON file into a reading batch."""
    try:
        if not input_file.exists():
            console.print(f"[red]Error: File not found: {input_file}[/red]")
            raise typer.Exit(1)

        with console.status(f"[bold green]Parsing {input_file.name}..."):
            batch = RecordParser.parse(input_file.read_bytes(), limit)

        console.print(f"\n[green]✓[/green] Parsed {len(batch)} reading(s)")

        if show_stats:
            _print_batch_stats(batch, "Parsed Data")

        if show_preview:
            console.print("\n[bold]Readings:[/bold]")
            console.print(batch)

    except ParseError as e:
        console.print(f"[red]✗ Parse error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


@app.command()
def smooth(
    input_file: Path = typer.Argument(..., help="Shared-store JSON file"),
    limit: int = typer.Option(60, "--limit", "-n", help="Maximum records to read"),
    noise: float = typer.Option(DEFAULT_FILTER_NOISE, "--noise", "-q", help="Filter process/observation noise"),
) -> None:
    """Show raw and smoothed values side by side."""
    try:
        if not input_file.exists():
            console.print(f"[red]Error: File not found: {input_file}[/red]")
            raise typer.Exit(1)

        batch = RecordParser.parse(input_file.read_bytes(), limit)
        if len(batch) == 0:
            console.print("[yellow]No readings in range[/yellow]")
            return

        smoothed = smooth_batch(batch, noise)

        table = Table(title=f"Smoothing (Q={noise})")
        table.add_column("Timestamp", style="cyan")
        table.add_column("Raw", justify="right")
        table.add_column("Smoothed", justify="right", style="green")
        for raw_row, smooth_row in zip(batch.iter_rows(named=True), smoothed.iter_rows(named=True)):
            table.add_row(
                str(raw_row[BatchColumn.TIMESTAMP.value]),
                str(raw_row[BatchColumn.VALUE.value]),
                str(smooth_row[BatchColumn.VALUE.value]),
            )
        console.print(table)

    except FilterOutOfRangeError as e:
        console.print(f"[red]✗ Filter out of range: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    except ParseError as e:
        console.print(f"[red]✗ Parse error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


# ===== Pipeline Commands =====

@app.command()
def poll(
    input_file: Path = typer.Argument(..., help="Shared-store JSON file"),
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Source profile (libredirect, xdrip)"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML/JSON configuration file"),
    cycles: int = typer.Option(1, "--cycles", help="Number of fetch cycles"),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Seconds between cycles (default: poll interval)"),
    now: Optional[str] = typer.Option(None, "--now", help="Pretend the current time is this ISO timestamp"),
    baseline: Optional[str] = typer.Option(None, "--baseline", help="Novelty baseline ISO timestamp"),
) -> None:
    """Run fetch cycles against a store file and print every result."""
    try:
        options = load_options(config_file) if config_file is not None else {}
        if source:
            options["source"] = source
        config = PipelineConfig.from_mapping(options)
        supported_source = parse_source(options["source"]) if "source" in options else None

        clock = None
        if now:
            fixed_now = as_utc(datetime.fromisoformat(now))
            clock = lambda: fixed_now
        novelty_baseline = None
        if baseline:
            fixed_baseline = as_utc(datetime.fromisoformat(baseline))
            novelty_baseline = lambda: fixed_baseline

        pause = config.poll_interval_seconds if interval is None else interval

        with GlucosePipeline(
            FileStore(input_file),
            config,
            source=supported_source,
            clock=clock,
            novelty_baseline=novelty_baseline,
        ) as pipeline:
            for cycle in range(1, cycles + 1):
                result = pipeline.fetch_new_data_if_needed().result()
                _print_result(cycle, result)
                if cycle < cycles:
                    time.sleep(pause)

            console.print(f"\n[dim]{escape(pipeline.debug_description)}[/dim]")

    except (ConfigError, ValueError) as e:
        console.print(f"[red]✗ Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


@app.command()
def profiles() -> None:
    """List supported source profiles."""
    sources = list(SupportedSource)
    table = Table(title="Source Profiles")
    table.add_column("Option", style="cyan", no_wrap=True)
    for supported_source in sources:
        table.add_column(supported_source.value, no_wrap=True)

    def add_option(label: str, render) -> None:
        table.add_row(label, *(render(supported_source) for supported_source in sources))

    def window(supported_source: SupportedSource) -> str:
        minutes = SOURCE_DEFAULTS[supported_source]["staleness_window_minutes"]
        return "none" if minutes is None else f"{minutes:g} min"

    add_option("Device", lambda s: SOURCE_DEVICES[s].name)
    add_option("Manufacturer", lambda s: SOURCE_DEVICES[s].manufacturer)
    add_option("Refetch gate", lambda s: f"{SOURCE_DEFAULTS[s]['min_refetch_interval_minutes']:g} min")
    add_option("Staleness window", window)
    add_option("Smoothing", lambda s: "on" if SOURCE_DEFAULTS[s]["smoothing_enabled"] else "off")
    add_option("Batch", lambda s: str(SOURCE_DEFAULTS[s]["batch_size"]))
    add_option("Skew", lambda s: f"{SOURCE_DEFAULTS[s]['novelty_skew_minutes']:g} min")
    console.print(table)


# ===== Helpers =====

def _print_result(cycle: int, result) -> None:
    if isinstance(result, NoData):
        console.print(f"[yellow]Cycle {cycle}: no data[/yellow]")
    elif isinstance(result, FetchError):
        console.print(f"[red]Cycle {cycle}: ✗ error: {escape(str(result.error))}[/red]")
    elif isinstance(result, NewData):
        console.print(f"[green]Cycle {cycle}: ✓ {len(result.samples)} new sample(s)[/green]")
        table = Table(show_header=True, box=None)
        table.add_column("Date", style="cyan")
        table.add_column("mg/dL", justify="right")
        table.add_column("Trend")
        table.add_column("Sync ID")
        for sample in result.samples:
            table.add_row(
                str(sample.date),
                f"{sample.quantity:.0f}",
                _trend_symbol(sample.trend),
                sample.sync_identifier,
            )
        console.print(table)


def _trend_symbol(trend: int) -> str:
    try:
        return GlucoseTrend(trend).symbol
    except ValueError:
        return "?"


def _print_batch_stats(batch: pl.DataFrame, title: str) -> None:
    """Print statistics about a reading batch."""
    console.print(f"\n[bold]{title} Statistics:[/bold]")

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Readings", f"{len(batch):,}")

    if len(batch) > 0:
        min_time = batch[BatchColumn.TIMESTAMP.value].min()
        max_time = batch[BatchColumn.TIMESTAMP.value].max()
        duration_minutes = (max_time - min_time).total_seconds() / 60
        table.add_row("Time Range", f"{min_time} to {max_time}")
        table.add_row("Duration", f"{duration_minutes:.1f} minutes")

        values = batch[BatchColumn.VALUE.value]
        std = values.std()
        table.add_row("Glucose Mean ± SD", f"{values.mean():.1f} ± {(std or 0.0):.1f} mg/dL")
        table.add_row("Glucose Range", f"{values.min()} - {values.max()} mg/dL")

        collectors = batch[BatchColumn.COLLECTOR.value].drop_nulls().unique().to_list()
        if collectors:
            table.add_row("Collectors", ", ".join(sorted(collectors)))

    console.print(table)


# ===== Main Entry Point =====

def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
