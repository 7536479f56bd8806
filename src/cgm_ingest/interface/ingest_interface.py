"""Abstract Base Class interface for the glucose ingestion pipeline.

Separated into two concerns:
- StoreAdapter: transport of the raw shared-store blob (one adapter per host)
- ReadingParser: decoding of the blob into a validated reading batch

Also defines the value types exchanged with the consumer and the error
taxonomy shared by every pipeline stage.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum
from typing import Optional, Tuple, Union
import polars as pl

GLUCOSE_MIN_MGDL = 39  # lowest physiologically plausible reading (inclusive)
GLUCOSE_MAX_MGDL = 500  # highest physiologically plausible reading (inclusive)
DEFAULT_FILTER_NOISE = 2.5  # process and observation noise of the smoothing filter, mg/dL
DEFAULT_STORE_RETRIES = 2  # additional attempts after the first failed store read
GLUCOSE_UNIT = "mg/dL"
UNKNOWN_COLLECTOR = "unknown"  # producer placeholder for an absent collector

# Type alias to highlight that this is a batch of readings, newest first
# (columns described by formats.unified.BATCH_SCHEMA)
ReadingBatch = pl.DataFrame


class SupportedSource(Enum):
    """Supported shared-store producers."""
    LIBRE_DIRECT = "libredirect"
    XDRIP = "xdrip"


class GlucoseTrend(IntEnum):
    """Trend codes as published by the producers (0 means unknown)."""
    UP_UP_UP = 1
    UP_UP = 2
    UP = 3
    FLAT = 4
    DOWN = 5
    DOWN_DOWN = 6
    DOWN_DOWN_DOWN = 7

    @property
    def symbol(self) -> str:
        return _TREND_SYMBOLS[self]


_TREND_SYMBOLS = {
    GlucoseTrend.UP_UP_UP: "⇈",
    GlucoseTrend.UP_UP: "↑",
    GlucoseTrend.UP: "↗︎",
    GlucoseTrend.FLAT: "→",
    GlucoseTrend.DOWN: "↘︎",
    GlucoseTrend.DOWN_DOWN: "↓",
    GlucoseTrend.DOWN_DOWN_DOWN: "⇊",
}


# ===== Exceptions =====

class StoreUnavailableError(Exception):
    """Raised when the shared store cannot deliver its blob."""
    pass


class ParseError(ValueError):
    """Raised when the shared-store blob cannot be turned into readings.
    
    The reason is one of "not an array", "malformed record" or "date".
    """
    
    def __init__(self, reason: str, detail: Optional[str] = None):
        self.reason = reason
        self.detail = detail
        message = reason if detail is None else f"{reason}: {detail}"
        super().__init__(message)


class FilterOutOfRangeError(ValueError):
    """Raised when a smoothed estimate leaves the physiological range."""
    pass


class ConfigError(ValueError):
    """Raised when pipeline configuration values are invalid."""
    pass


# ===== Value Types =====

@dataclass(frozen=True)
class GlucoseReading:
    """A single validated sensor reading."""
    value: int
    trend: int
    timestamp: datetime
    collector: Optional[str] = None
    
    @property
    def is_state_valid(self) -> bool:
        return GLUCOSE_MIN_MGDL <= self.value <= GLUCOSE_MAX_MGDL
    
    @property
    def state_description(self) -> str:
        return "OK" if self.is_state_valid else "Needs Attention"
    
    @property
    def trend_type(self) -> Optional[GlucoseTrend]:
        try:
            return GlucoseTrend(self.trend)
        except ValueError:
            return None
    
    @property
    def known_collector(self) -> Optional[str]:
        """Collector label, with the producer's "unknown" placeholder treated as absent."""
        if self.collector is None or self.collector == UNKNOWN_COLLECTOR:
            return None
        return self.collector


@dataclass(frozen=True)
class GlucoseDevice:
    """Opaque device descriptor attached to every delivered sample."""
    name: str
    manufacturer: str
    model: Optional[str] = None


@dataclass(frozen=True)
class DeliveredSample:
    """A reading in the shape handed to the consumer."""
    date: datetime
    quantity: float
    trend: int
    sync_identifier: str
    device: Optional[GlucoseDevice] = None
    is_display_only: bool = False
    unit: str = GLUCOSE_UNIT


@dataclass(frozen=True)
class NoData:
    """Nothing new this cycle."""
    pass


@dataclass(frozen=True)
class NewData:
    """New samples this cycle, most recent first."""
    samples: Tuple[DeliveredSample, ...]


@dataclass(frozen=True)
class FetchError:
    """The cycle failed; the pipeline state is unchanged."""
    error: Exception


FetchResult = Union[NoData, NewData, FetchError]


# ===== Interfaces =====

class StoreAdapter(ABC):
    """Transport for the raw shared-store blob.
    
    Implementations read from shared memory, files, key-value areas or
    sockets; the pipeline only sees the bytes.
    """
    
    @abstractmethod
    def fetch_raw(self) -> bytes:
        """Fetch the current blob.
        
        Returns:
            Raw bytes, expected to hold a JSON array of reading records
            
        Raises:
            StoreUnavailableError: If the store cannot be read right now
        """
        pass


class ReadingParser(ABC):
    """Abstract base class for turning a store blob into a reading batch.
    
    This interface handles:
    - Stage 1: Decoding raw bytes into a list of records
    - Stage 2: Record validation and date-envelope parsing
    - Stage 3: Range filtering into a ReadingBatch
    """
    
    # ===== STAGE 1: Decode Raw Data =====
    
    @classmethod
    @abstractmethod
    def decode_raw_data(cls, raw_data: Union[bytes, str]) -> list:
        """Decode the blob into the list of raw records it carries.
        
        Raises:
            ParseError: If the blob is not a JSON array ("not an array")
        """
        pass
    
    # ===== STAGE 2 + 3: Records to Batch =====
    
    @classmethod
    @abstractmethod
    def parse_records(cls, records: list, limit: int) -> ReadingBatch:
        """Validate up to `limit` records and build a batch of in-range readings.
        
        Raises:
            ParseError: If a record is malformed or carries an unparseable date
        """
        pass
    
    @classmethod
    def parse(cls, raw_data: Union[bytes, str], limit: int) -> ReadingBatch:
        """Run every stage on a raw blob."""
        return cls.parse_records(cls.decode_raw_data(raw_data), limit)
