"""Record parser for the shared-store JSON format."""

import json
import logging
from typing import Any, Dict, List, Optional, Union
import polars as pl

from cgm_ingest.interface.ingest_interface import (
    ReadingParser,
    ReadingBatch,
    ParseError,
    GLUCOSE_MIN_MGDL,
    GLUCOSE_MAX_MGDL,
)
from cgm_ingest.formats.unified import BATCH_SCHEMA, BatchColumn, BATCH_TIMESTAMP_DTYPE
from cgm_ingest.formats.shared_store import StoreField, DATE_ENVELOPE_PATTERN

logger = logging.getLogger(__name__)

# ParseError reasons
NOT_AN_ARRAY = "not an array"
MALFORMED_RECORD = "malformed record"
DATE = "date"

TREND_MAX = 255  # trend codes are published as an unsigned byte

# Range of epoch milliseconds representable as a Python datetime (years 1-9999)
EPOCH_MS_MIN = -62135596800000
EPOCH_MS_MAX = 253402300799999

# Intermediate frame built from validated records before date parsing
_RECORD_SCHEMA = {
    BatchColumn.VALUE.value: pl.Int64,
    BatchColumn.TREND.value: pl.Int64,
    "dt": pl.Utf8,
    BatchColumn.COLLECTOR.value: pl.Utf8,
}


def _is_int(value: Any) -> bool:
    # JSON booleans decode to bool, which is an int subclass
    return isinstance(value, int) and not isinstance(value, bool)


class RecordParser(ReadingParser):
    """Parser implementing the ReadingParser interface.

    Turns a shared-store blob into a batch of in-range readings:
    1. Decode raw data (strip BOM, decode JSON, require an array)
    2. Validate the first `limit` records (all or nothing)
    3. Drop out-of-range readings and parse the date envelopes
    """

    # ===== STAGE 1: Decode Raw Data =====

    @classmethod
    def decode_raw_data(cls, raw_data: Union[bytes, str]) -> list:
        """Decode the blob into the list of raw records it carries.

        Args:
            raw_data: Raw store contents (bytes or string)

        Returns:
            List of decoded JSON values, in store order

        Raises:
            ParseError: If the blob is not valid JSON or not a JSON array
        """
        if isinstance(raw_data, (bytes, bytearray)):
            try:
                text = bytes(raw_data).decode('utf-8-sig')
            except UnicodeDecodeError as e:
                raise ParseError(NOT_AN_ARRAY, f"undecodable bytes: {e}")
        else:
            text = raw_data

        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(NOT_AN_ARRAY, f"invalid JSON: {e}")

        if not isinstance(decoded, list):
            raise ParseError(NOT_AN_ARRAY, f"got {type(decoded).__name__}")

        return decoded

    # ===== STAGE 2 + 3: Records to Batch =====

    @classmethod
    def parse_records(cls, records: list, limit: int) -> ReadingBatch:
        """Validate up to `limit` records and build a batch of in-range readings.

        Out-of-range readings are dropped silently. Any malformed record or
        unparseable date fails the whole call; no partial batch is returned.

        Args:
            records: Decoded store records, most recent first
            limit: Maximum number of records to consider

        Returns:
            Batch of readings in store order (most recent first)

        Raises:
            ValueError: If limit is negative
            ParseError: If a record is malformed ("malformed record") or its DT
                does not carry an epoch-millisecond envelope ("date")
        """
        if limit < 0:
            raise ValueError(f"limit must not be negative, got {limit}")

        rows: List[Dict[str, Any]] = []
        dropped = 0
        for index, record in enumerate(records[:limit]):
            row = cls._validate_record(record, index)
            if GLUCOSE_MIN_MGDL <= row[BatchColumn.VALUE.value] <= GLUCOSE_MAX_MGDL:
                rows.append(row)
            else:
                dropped += 1

        if dropped:
            logger.debug("Dropped %d out-of-range reading(s)", dropped)

        if not rows:
            return BATCH_SCHEMA.empty()

        records_df = pl.DataFrame(rows, schema=_RECORD_SCHEMA)
        return cls._parse_dates(records_df)

    # ===== Private: Validation and Date Parsing =====

    @staticmethod
    def _validate_record(record: Any, index: int) -> Dict[str, Any]:
        """Check a single record's fields and types.

        Args:
            record: Decoded JSON value
            index: Position in the store array (for error messages)

        Returns:
            Row dictionary keyed by intermediate column names

        Raises:
            ParseError: If a required field is missing or mistyped
        """
        if not isinstance(record, dict):
            raise ParseError(MALFORMED_RECORD, f"record {index} is {type(record).__name__}")

        value = record.get(StoreField.VALUE.value)
        trend = record.get(StoreField.TREND.value)
        dt = record.get(StoreField.DATE.value)

        if not _is_int(value):
            raise ParseError(MALFORMED_RECORD, f"record {index} has no integer {StoreField.VALUE}")
        if not _is_int(trend) or not 0 <= trend <= TREND_MAX:
            raise ParseError(MALFORMED_RECORD, f"record {index} has no valid {StoreField.TREND}")
        if not isinstance(dt, str):
            raise ParseError(MALFORMED_RECORD, f"record {index} has no string {StoreField.DATE}")

        # Collector might not be available
        collector: Optional[str] = record.get(StoreField.COLLECTOR.value)
        if not isinstance(collector, str):
            collector = None

        return {
            BatchColumn.VALUE.value: value,
            BatchColumn.TREND.value: trend,
            "dt": dt,
            BatchColumn.COLLECTOR.value: collector,
        }

    @staticmethod
    def _parse_dates(records_df: pl.DataFrame) -> ReadingBatch:
        """Replace the DT envelope column with absolute UTC timestamps.

        Args:
            records_df: Validated records with a raw "dt" column

        Returns:
            Batch matching BATCH_SCHEMA

        Raises:
            ParseError: If any DT does not carry a usable epoch-millisecond value
        """
        extracted = records_df.with_columns([
            pl.col("dt").str.extract(DATE_ENVELOPE_PATTERN, 1).alias("epoch_text"),
        ]).with_columns([
            pl.col("epoch_text").cast(pl.Float64, strict=False).alias("epoch_ms"),
        ])

        unmatched = extracted.filter(pl.col("epoch_text").is_null())
        if len(unmatched) > 0:
            raise ParseError(DATE, f"unrecognized date {unmatched['dt'][0]!r}")

        unusable = extracted.filter(
            pl.col("epoch_ms").is_null()
            | ~pl.col("epoch_ms").is_finite()
            | ~pl.col("epoch_ms").is_between(EPOCH_MS_MIN, EPOCH_MS_MAX)
        )
        if len(unusable) > 0:
            raise ParseError(DATE, f"unusable epoch in {unusable['dt'][0]!r}")

        try:
            batch = extracted.with_columns([
                pl.from_epoch(pl.col("epoch_ms").cast(pl.Int64), time_unit="ms")
                .dt.replace_time_zone("UTC")
                .cast(BATCH_TIMESTAMP_DTYPE)
                .alias(BatchColumn.TIMESTAMP.value),
            ])
        except pl.exceptions.PolarsError as e:
            raise ParseError(DATE, str(e))

        return BATCH_SCHEMA.validate_dataframe(batch)
