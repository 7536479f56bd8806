#!/usr/bin/env python3
"""
Script to create a synthetic shared-store blob for CI testing and demos.

Generation:
1. One reading per interval, most recent first, ending at --end (default: now)
2. Glucose follows a random walk around a baseline with random noise (±2)
3. Trend codes are derived from the change against the previous reading
4. Optionally injects out-of-range spikes the parser is expected to drop
"""

import json
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import typer

from cgm_ingest.formats.shared_store import StoreField, encode_date
from cgm_ingest.interface.ingest_interface import GlucoseTrend


app = typer.Typer()


def trend_for_delta(delta_per_minute: float) -> GlucoseTrend:
    """Map a rate of change (mg/dL per minute) to a trend code."""
    if delta_per_minute >= 3:
        return GlucoseTrend.UP_UP_UP
    if delta_per_minute >= 2:
        return GlucoseTrend.UP_UP
    if delta_per_minute >= 1:
        return GlucoseTrend.UP
    if delta_per_minute > -1:
        return GlucoseTrend.FLAT
    if delta_per_minute > -2:
        return GlucoseTrend.DOWN
    if delta_per_minute > -3:
        return GlucoseTrend.DOWN_DOWN
    return GlucoseTrend.DOWN_DOWN_DOWN


@app.command()
def main(
    output_file: Path = typer.Argument(..., help="Path to output shared-store JSON file"),
    count: int = typer.Option(60, help="Number of readings"),
    interval_minutes: int = typer.Option(1, help="Minutes between readings"),
    baseline: int = typer.Option(120, help="Baseline glucose, mg/dL"),
    collector: str = typer.Option("Libre2", help="Collector label (\"unknown\" for none)"),
    spikes: int = typer.Option(0, help="Number of out-of-range readings to inject"),
    end: Optional[str] = typer.Option(None, help="ISO timestamp of the newest reading (default: now)"),
    seed: int = typer.Option(42, help="Random seed for reproducibility"),
) -> None:
    """Main entry point."""
    random.seed(seed)

    newest = datetime.fromisoformat(end) if end else datetime.now(timezone.utc)
    if newest.tzinfo is None:
        newest = newest.replace(tzinfo=timezone.utc)

    print(f"=== Synthetic Store Generation ===")
    print(f"- Readings: {count} every {interval_minutes} min")
    print(f"- Newest reading: {newest.isoformat()}")

    # Random walk, oldest first
    values = []
    level = float(baseline)
    for _ in range(count):
        level += random.uniform(-1.5, 1.5)
        level = max(60.0, min(300.0, level))
        values.append(int(round(level)) + random.choice([-2, -1, 0, 1, 2]))

    records = []
    for index, value in enumerate(values):
        timestamp = newest - timedelta(minutes=interval_minutes * (count - 1 - index))
        previous = values[index - 1] if index > 0 else value
        trend = trend_for_delta((value - previous) / interval_minutes)
        records.append({
            StoreField.VALUE.value: value,
            StoreField.TREND.value: int(trend),
            StoreField.DATE.value: encode_date(int(timestamp.timestamp() * 1000)),
            StoreField.COLLECTOR.value: collector,
        })

    # Spikes replace random readings with values the parser drops
    for index in random.sample(range(count), min(spikes, count)):
        records[index][StoreField.VALUE.value] = random.choice([0, 20, 38, 501, 600])

    records.reverse()  # producers publish most recent first

    with open(output_file, 'w', encoding='utf-8') as f:
        json.dump(records, f, indent=2)

    print(f"✓ Synthetic store created: {output_file}")
    print(f"✓ Collector: {collector}")
    print(f"✓ Out-of-range spikes: {min(spikes, count)}")


if __name__ == "__main__":
    app()
