"""Interface package for glucose ingestion.

This package provides base interfaces, value types and errors shared by the
pipeline stages.
"""

from cgm_ingest.interface.schema import (
    EnumLiteral,
    ColumnSchema,
    BatchSchemaDefinition,
)
from cgm_ingest.interface.ingest_interface import (
    SupportedSource,
    GlucoseTrend,
    GlucoseReading,
    GlucoseDevice,
    DeliveredSample,
    NoData,
    NewData,
    FetchError,
    FetchResult,
    ReadingBatch,
    StoreAdapter,
    ReadingParser,
    StoreUnavailableError,
    ParseError,
    FilterOutOfRangeError,
    ConfigError,
    GLUCOSE_MIN_MGDL,
    GLUCOSE_MAX_MGDL,
    DEFAULT_FILTER_NOISE,
    DEFAULT_STORE_RETRIES,
    GLUCOSE_UNIT,
    UNKNOWN_COLLECTOR,
)

__all__ = [
    # Schema definitions
    "EnumLiteral",
    "ColumnSchema",
    "BatchSchemaDefinition",
    # Value types
    "SupportedSource",
    "GlucoseTrend",
    "GlucoseReading",
    "GlucoseDevice",
    "DeliveredSample",
    "NoData",
    "NewData",
    "FetchError",
    "FetchResult",
    "ReadingBatch",
    # Core interfaces
    "StoreAdapter",
    "ReadingParser",
    # Exceptions
    "StoreUnavailableError",
    "ParseError",
    "FilterOutOfRangeError",
    "ConfigError",
    # Constants
    "GLUCOSE_MIN_MGDL",
    "GLUCOSE_MAX_MGDL",
    "DEFAULT_FILTER_NOISE",
    "DEFAULT_STORE_RETRIES",
    "GLUCOSE_UNIT",
    "UNKNOWN_COLLECTOR",
]
