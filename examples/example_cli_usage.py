#!/usr/bin/env python3
"""Example CLI Usage Script - Demonstrates all cgm-ingest commands.

This script shows how to use the cgm-ingest tool from Python by calling it as a subprocess.
It generates a synthetic shared-store file first, so no real data is needed.

Usage:
    python examples/example_cli_usage.py

    # Or keep the generated files in a specific directory
    python examples/example_cli_usage.py --output-dir /tmp/cgm_ingest_demo
"""

import subprocess
import sys
from pathlib import Path
from typing import List
import typer
from rich.console import Console
from rich.panel import Panel

app = typer.Typer()
console = Console()

SCRIPTS_DIR = Path(__file__).parent.parent / "scripts"


def run_cli_command(args: List[str], description: str = "") -> subprocess.CompletedProcess:
    """Run a cgm-ingest command and display results.

    Args:
        args: Command arguments for cgm-ingest
        description: Human-readable description of what this command does

    Returns:
        CompletedProcess with stdout/stderr
    """
    if description:
        console.print(f"\n[bold cyan]Example: {description}[/bold cyan]")

    # Run as module
    cmd = [sys.executable, "-m", "cgm_ingest.ingest_cli"] + args
    cmd_str = " ".join(args)
    console.print(f"[dim]$ cgm-ingest {cmd_str}[/dim]\n")

    result = subprocess.run(cmd, capture_output=True, text=True)

    # Display output
    if result.stdout:
        console.print(result.stdout)

    if result.returncode != 0 and result.stderr:
        console.print(f"[red]{result.stderr}[/red]")

    return result


@app.command()
def main(
    output_dir: Path = typer.Option(
        Path(__file__).parent.parent / "data" / "cli_examples_output",
        "--output-dir",
        "-o",
        help="Directory for generated store files"
    ),
) -> None:
    """Run through all cgm-ingest command examples."""

    console.print(Panel.fit(
        "[bold]CGM Ingest CLI Tool - Complete Usage Examples[/bold]\n\n"
        "This script demonstrates all cgm-ingest commands with synthetic data.\n"
        "Commands are executed via subprocess to show real-world usage.",
        border_style="cyan"
    ))

    output_dir.mkdir(parents=True, exist_ok=True)
    store_file = output_dir / "latest_readings.json"
    noisy_file = output_dir / "latest_readings_spikes.json"

    # ===== 0. Synthetic Data =====
    for target, extra in ((store_file, []), (noisy_file, ["--spikes", "5", "--seed", "7"])):
        subprocess.run(
            [sys.executable, str(SCRIPTS_DIR / "make_synthetic_store.py"), str(target)] + extra,
            check=True,
        )
    console.print(f"\n[bold]Store file:[/bold] {store_file}")

    # ===== 1. Profiles =====
    console.print("\n" + "=" * 70)
    console.print("[bold green]1. SOURCE PROFILES[/bold green]")
    console.print("=" * 70)

    run_cli_command(["profiles"], "List supported producers and their defaults")

    # ===== 2. Parsing =====
    console.print("\n" + "=" * 70)
    console.print("[bold green]2. PARSING COMMANDS[/bold green]")
    console.print("=" * 70)

    run_cli_command(
        ["parse", str(store_file)],
        "Parse a shared-store file with statistics"
    )

    run_cli_command(
        ["parse", str(noisy_file), "--preview", "--no-stats", "--limit", "10"],
        "Parse the first 10 records; out-of-range spikes are dropped"
    )

    # ===== 3. Smoothing =====
    console.print("\n" + "=" * 70)
    console.print("[bold green]3. SMOOTHING COMMAND[/bold green]")
    console.print("=" * 70)

    run_cli_command(
        ["smooth", str(store_file), "--limit", "15"],
        "Compare raw and smoothed values"
    )

    # ===== 4. Polling =====
    console.print("\n" + "=" * 70)
    console.print("[bold green]4. POLLING COMMAND[/bold green]")
    console.print("=" * 70)

    run_cli_command(
        ["-v", "poll", str(store_file), "--source", "libredirect", "--cycles", "2", "--interval", "1"],
        "Two fetch cycles; the second is held back by the refetch gate"
    )

    run_cli_command(
        ["poll", str(store_file), "--source", "xdrip"],
        "Single xDrip-style cycle (newest reading only, no smoothing)"
    )

    # ===== Summary =====
    console.print("\n" + "=" * 70)
    console.print("[bold green]SUMMARY[/bold green]")
    console.print("=" * 70)

    console.print("\n[bold cyan]Commands:[/bold cyan]")
    console.print("  1. [bold]profiles[/bold] - Source profiles")
    console.print("  2. [bold]parse[/bold] - Parse shared-store JSON")
    console.print("  3. [bold]smooth[/bold] - Smoothing preview")
    console.print("  4. [bold]poll[/bold] - Run pipeline fetch cycles")

    console.print("\n[bold cyan]For help on any command:[/bold cyan]")
    console.print("  cgm-ingest <command> --help")

    console.print("\n[bold green]✓ All examples completed successfully![/bold green]\n")


if __name__ == "__main__":
    app()
