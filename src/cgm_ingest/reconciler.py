"""Reconciliation of fetched batches against the last delivered reading.

The reconciler decides whether a fetch is due, which readings are recent
enough to matter, which of those the consumer has not seen yet, and keeps
the last delivered reading up to date.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import polars as pl

from cgm_ingest.interface.ingest_interface import (
    GlucoseReading,
    GlucoseDevice,
    DeliveredSample,
    ReadingBatch,
    FetchResult,
    NoData,
    NewData,
)
from cgm_ingest.formats.unified import BatchColumn, BATCH_TIMESTAMP_DTYPE, to_readings

logger = logging.getLogger(__name__)

NoveltyBaseline = Callable[[], Optional[datetime]]


def as_utc(moment: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken to be UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def sync_identifier(timestamp: datetime) -> str:
    """Deterministic identifier of a reading: its integer epoch seconds."""
    return str(int(timestamp.timestamp()))


@dataclass
class PipelineState:
    """Mutable state carried between fetch cycles.

    Attributes:
        last_delivered: Newest reading seen in a successful cycle
        fetch_in_flight: True while a fetch awaits its terminal outcome
    """
    last_delivered: Optional[GlucoseReading] = None
    fetch_in_flight: bool = False


class Reconciler:
    """Applies the refetch gate, staleness window and novelty cutoff."""

    def __init__(
        self,
        min_refetch_interval: timedelta,
        staleness_window: Optional[timedelta] = None,
        novelty_skew: timedelta = timedelta(0),
        device: Optional[GlucoseDevice] = None,
    ):
        """Initialize the reconciler.

        Args:
            min_refetch_interval: No fetch while the last delivered reading is younger than this
            staleness_window: Readings older than this are ignored; None keeps everything
            novelty_skew: Forward shift of the novelty cutoff
            device: Descriptor attached to delivered samples (model filled from each reading's collector)
        """
        self.min_refetch_interval = min_refetch_interval
        self.staleness_window = staleness_window
        self.novelty_skew = novelty_skew
        self.device = device

    # ===== Policies =====

    def refetch_allowed(self, state: PipelineState, now: datetime) -> bool:
        """Check the refetch gate: False while the last delivered reading is too recent."""
        if state.last_delivered is None:
            return True
        age = as_utc(now) - as_utc(state.last_delivered.timestamp)
        return age >= self.min_refetch_interval

    def within_staleness_window(self, batch: ReadingBatch, now: datetime) -> ReadingBatch:
        """Drop readings older than the staleness window, keeping order."""
        if self.staleness_window is None or len(batch) == 0:
            return batch
        oldest_allowed = as_utc(now) - self.staleness_window
        return batch.filter(pl.col(BatchColumn.TIMESTAMP.value) >= _timestamp_literal(oldest_allowed))

    def novelty_cutoff(
        self,
        state: PipelineState,
        novelty_baseline: Optional[NoveltyBaseline] = None,
    ) -> Optional[datetime]:
        """Timestamp at or below which readings count as already seen.

        Uses the last delivered reading, or the consumer baseline when nothing
        was delivered yet, shifted forward by the novelty skew. None means
        every reading is new.
        """
        if state.last_delivered is not None:
            cutoff: Optional[datetime] = state.last_delivered.timestamp
        elif novelty_baseline is not None:
            cutoff = novelty_baseline()
        else:
            cutoff = None

        if cutoff is None:
            return None
        return as_utc(cutoff) + self.novelty_skew

    # ===== Reconciliation =====

    def reconcile(
        self,
        batch: ReadingBatch,
        state: PipelineState,
        now: datetime,
        novelty_baseline: Optional[NoveltyBaseline] = None,
    ) -> FetchResult:
        """Compute the readings to deliver and advance the state.

        Steps:
        1. Refetch gate (NoData while the last delivered reading is too recent)
        2. Staleness window (NoData if nothing recent remains)
        3. Novelty cutoff (last delivered reading, else consumer baseline, plus skew)
        4. Keep readings strictly newer than the cutoff and map them to samples
        5. Advance state.last_delivered to the newest recent reading
        6. NewData when samples remain, NoData otherwise

        Args:
            batch: Readings, most recent first
            state: Pipeline state, updated in place
            now: Current time
            novelty_baseline: Consumer cutoff used while nothing was delivered

        Returns:
            NewData with samples most recent first, or NoData
        """
        if not self.refetch_allowed(state, now):
            return NoData()

        recent = self.within_staleness_window(batch, now)
        if len(recent) == 0:
            logger.debug("No readings within the staleness window")
            return NoData()

        cutoff = self.novelty_cutoff(state, novelty_baseline)
        if cutoff is None:
            new_readings = recent
        else:
            new_readings = recent.filter(pl.col(BatchColumn.TIMESTAMP.value) > _timestamp_literal(cutoff))

        samples = tuple(self.to_sample(reading) for reading in to_readings(new_readings))

        self._advance(state, recent)

        if not samples:
            return NoData()
        logger.info("Delivering %d new reading(s), newest at %s", len(samples), samples[0].date)
        return NewData(samples=samples)

    def to_sample(self, reading: GlucoseReading) -> DeliveredSample:
        """Map a reading to the shape delivered to the consumer."""
        device = None
        if self.device is not None:
            device = GlucoseDevice(
                name=self.device.name,
                manufacturer=self.device.manufacturer,
                model=reading.known_collector,
            )
        return DeliveredSample(
            date=reading.timestamp,
            quantity=float(reading.value),
            trend=reading.trend,
            sync_identifier=sync_identifier(reading.timestamp),
            device=device,
            is_display_only=False,
        )

    @staticmethod
    def _advance(state: PipelineState, recent: ReadingBatch) -> None:
        """Move last_delivered to the newest reading of the batch, never backwards."""
        newest = to_readings(recent.sort(BatchColumn.TIMESTAMP.value, descending=True, maintain_order=True).head(1))[0]
        previous = state.last_delivered
        if previous is not None and as_utc(newest.timestamp) < as_utc(previous.timestamp):
            logger.debug("Store went back in time (%s < %s); keeping last delivered reading",
                         newest.timestamp, previous.timestamp)
            return
        state.last_delivered = newest


def _timestamp_literal(moment: datetime) -> pl.Expr:
    return pl.lit(as_utc(moment)).cast(BATCH_TIMESTAMP_DTYPE)
