"""cgm_ingest - Periodic glucose ingestion from a shared data store.

This package polls a shared store published by a CGM app, validates and
smooths the readings it finds, and delivers only the readings a consumer
has not seen yet.

Main Components:
    GlucosePipeline: Timer-driven, single-flight fetch cycle (store → parse → smooth → reconcile)
    RecordParser: Shared-store JSON records to a validated reading batch
    Reconciler: Refetch gate, staleness window and novelty cutoff
    DispatchTimer: Suspendable repeating timer

Quick Start:
    >>> from cgm_ingest import GlucosePipeline, FileStore, SupportedSource
    >>>
    >>> pipeline = GlucosePipeline(FileStore("latest.json"), source=SupportedSource.LIBRE_DIRECT)
    >>> result = pipeline.fetch_new_data_if_needed().result()
    >>> pipeline.close()
"""

from cgm_ingest.interface.ingest_interface import (
    SupportedSource,
    GlucoseReading,
    GlucoseDevice,
    DeliveredSample,
    NoData,
    NewData,
    FetchError,
    StoreUnavailableError,
    ParseError,
    FilterOutOfRangeError,
    ConfigError,
)
from cgm_ingest.config import PipelineConfig
from cgm_ingest.dispatch_timer import DispatchTimer
from cgm_ingest.record_parser import RecordParser
from cgm_ingest.reconciler import PipelineState, Reconciler
from cgm_ingest.smoothing import KalmanFilter, smooth_batch
from cgm_ingest.store_reader import MemoryStore, FileStore, KeyValueStore, RetryingStoreReader
from cgm_ingest.pipeline import GlucosePipeline, PipelineListener

__version__ = "0.1.0"

__all__ = [
    "GlucosePipeline",
    "PipelineListener",
    "PipelineConfig",
    "PipelineState",
    "Reconciler",
    "RecordParser",
    "DispatchTimer",
    "KalmanFilter",
    "smooth_batch",
    "MemoryStore",
    "FileStore",
    "KeyValueStore",
    "RetryingStoreReader",
    "SupportedSource",
    "GlucoseReading",
    "GlucoseDevice",
    "DeliveredSample",
    "NoData",
    "NewData",
    "FetchError",
    "StoreUnavailableError",
    "ParseError",
    "FilterOutOfRangeError",
    "ConfigError",
    "__version__",
]
