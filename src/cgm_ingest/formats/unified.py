"""Reading batch schema.

A batch is the in-pipeline representation of an ordered run of readings:
one row per reading, most recent first.
"""

from typing import Iterable, List
import polars as pl

from cgm_ingest.interface.schema import EnumLiteral, ColumnSchema, BatchSchemaDefinition
from cgm_ingest.interface.ingest_interface import (
    GlucoseReading,
    ReadingBatch,
    GLUCOSE_MIN_MGDL,
    GLUCOSE_MAX_MGDL,
    GLUCOSE_UNIT,
)

BATCH_TIMESTAMP_DTYPE = pl.Datetime("ms", "UTC")


class BatchColumn(EnumLiteral):
    """Column names of a reading batch."""
    VALUE = "value"
    TREND = "trend"
    TIMESTAMP = "timestamp"
    COLLECTOR = "collector"


BATCH_COLUMNS: List[ColumnSchema] = [
    {
        "name": BatchColumn.VALUE.value,
        "dtype": pl.Int64,
        "description": "Glucose concentration",
        "unit": GLUCOSE_UNIT,
        "constraints": {"minimum": GLUCOSE_MIN_MGDL, "maximum": GLUCOSE_MAX_MGDL},
    },
    {
        "name": BatchColumn.TREND.value,
        "dtype": pl.Int64,
        "description": "Producer trend code, 0 if unknown",
        "constraints": {"minimum": 0, "maximum": 255},
    },
    {
        "name": BatchColumn.TIMESTAMP.value,
        "dtype": BATCH_TIMESTAMP_DTYPE,
        "description": "Reading time (UTC)",
    },
    {
        "name": BatchColumn.COLLECTOR.value,
        "dtype": pl.Utf8,
        "description": "Source device label, optional",
    },
]

BATCH_SCHEMA = BatchSchemaDefinition(columns=BATCH_COLUMNS)


def to_readings(batch: ReadingBatch) -> List[GlucoseReading]:
    """Convert a batch into reading values, keeping row order."""
    return [
        GlucoseReading(
            value=row[BatchColumn.VALUE.value],
            trend=row[BatchColumn.TREND.value],
            timestamp=row[BatchColumn.TIMESTAMP.value],
            collector=row[BatchColumn.COLLECTOR.value],
        )
        for row in batch.iter_rows(named=True)
    ]


def from_readings(readings: Iterable[GlucoseReading]) -> ReadingBatch:
    """Build a batch from reading values, keeping their order."""
    readings = list(readings)
    if not readings:
        return BATCH_SCHEMA.empty()
    return pl.DataFrame(
        {
            BatchColumn.VALUE.value: [r.value for r in readings],
            BatchColumn.TREND.value: [r.trend for r in readings],
            BatchColumn.TIMESTAMP.value: [r.timestamp for r in readings],
            BatchColumn.COLLECTOR.value: [r.collector for r in readings],
        },
        schema=BATCH_SCHEMA.get_polars_schema(),
    )
