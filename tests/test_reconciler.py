"""Tests for the Reconciler (refetch gate, staleness window, novelty cutoff)."""

import pytest
from datetime import datetime, timedelta, timezone

from cgm_ingest.reconciler import Reconciler, PipelineState, sync_identifier, as_utc
from cgm_ingest.interface.ingest_interface import (
    GlucoseReading,
    GlucoseDevice,
    NoData,
    NewData,
)
from cgm_ingest.formats.unified import from_readings, BatchColumn, BATCH_SCHEMA

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
DEVICE = GlucoseDevice(name="LibreDirectClient", manufacturer="LibreDirect")


def reading(minutes_offset: float, value: int = 120, collector: str = "Libre2") -> GlucoseReading:
    return GlucoseReading(value=value, trend=4, timestamp=T0 + timedelta(minutes=minutes_offset), collector=collector)


@pytest.fixture
def reconciler() -> Reconciler:
    """LibreDirect-style reconciler: 30s gate, 65 minute window, no skew."""
    return Reconciler(
        min_refetch_interval=timedelta(minutes=0.5),
        staleness_window=timedelta(minutes=65),
        device=DEVICE,
    )


def test_first_cycle_with_baseline(reconciler):
    """Test the first delivery against a consumer baseline."""
    batch = from_readings([reading(0, 120), reading(-5, 250)])
    state = PipelineState()

    result = reconciler.reconcile(batch, state, T0 + timedelta(minutes=1), lambda: T0 - timedelta(minutes=10))

    assert isinstance(result, NewData)
    assert [s.date for s in result.samples] == [T0, T0 - timedelta(minutes=5)]
    assert [s.quantity for s in result.samples] == [120.0, 250.0]
    assert state.last_delivered.timestamp == T0
    assert state.last_delivered.value == 120


def test_second_cycle_only_newer(reconciler):
    """Test that a later cycle delivers only readings after the last delivered one."""
    state = PipelineState()
    reconciler.reconcile(
        from_readings([reading(0, 120), reading(-5, 118)]), state, T0 + timedelta(minutes=1)
    )

    batch = from_readings([reading(1, 121), reading(0, 120), reading(-5, 118)])
    result = reconciler.reconcile(batch, state, T0 + timedelta(minutes=2))

    assert isinstance(result, NewData)
    assert [s.date for s in result.samples] == [T0 + timedelta(minutes=1)]
    assert state.last_delivered.timestamp == T0 + timedelta(minutes=1)


def test_reconcile_same_batch_twice_is_idempotent(reconciler):
    """Test that the same store contents are never delivered twice."""
    batch = from_readings([reading(0), reading(-1), reading(-2)])
    state = PipelineState()

    first = reconciler.reconcile(batch, state, T0 + timedelta(minutes=1))
    second = reconciler.reconcile(batch, state, T0 + timedelta(minutes=2))

    assert isinstance(first, NewData)
    assert len(first.samples) == 3
    assert isinstance(second, NoData)
    assert state.last_delivered.timestamp == T0


def test_baseline_filters_first_cycle(reconciler):
    """Test that readings at or before the baseline are not delivered."""
    batch = from_readings([reading(0), reading(-5), reading(-10), reading(-15)])
    state = PipelineState()

    result = reconciler.reconcile(batch, state, T0 + timedelta(minutes=1), lambda: T0 - timedelta(minutes=10))

    assert [s.date for s in result.samples] == [T0, T0 - timedelta(minutes=5)]


def test_baseline_ignored_once_something_was_delivered(reconciler):
    """Test that the last delivered reading takes precedence over the baseline."""
    state = PipelineState(last_delivered=reading(-5))
    batch = from_readings([reading(0), reading(-5)])

    result = reconciler.reconcile(batch, state, T0 + timedelta(minutes=1), lambda: T0 + timedelta(hours=1))

    assert [s.date for s in result.samples] == [T0]


def test_no_baseline_delivers_everything_recent(reconciler):
    """Test that without a cutoff every reading in the window is new."""
    batch = from_readings([reading(-i) for i in range(10)])
    result = reconciler.reconcile(batch, PipelineState(), T0 + timedelta(minutes=1))

    assert isinstance(result, NewData)
    assert len(result.samples) == 10


def test_baseline_returning_none(reconciler):
    """Test that a baseline callable returning None disables the cutoff."""
    batch = from_readings([reading(0), reading(-1)])
    result = reconciler.reconcile(batch, PipelineState(), T0 + timedelta(minutes=1), lambda: None)
    assert len(result.samples) == 2


def test_refetch_gate_closed(reconciler):
    """Test that nothing happens while the last delivered reading is too recent."""
    state = PipelineState(last_delivered=reading(0))
    batch = from_readings([reading(0.2), reading(0)])

    assert not reconciler.refetch_allowed(state, T0 + timedelta(seconds=20))
    result = reconciler.reconcile(batch, state, T0 + timedelta(seconds=20))

    assert isinstance(result, NoData)
    assert state.last_delivered.timestamp == T0


def test_refetch_gate_open_at_boundary(reconciler):
    """Test that the gate opens once the interval has fully elapsed."""
    state = PipelineState(last_delivered=reading(0))
    assert reconciler.refetch_allowed(state, T0 + timedelta(seconds=30))
    assert reconciler.refetch_allowed(PipelineState(), T0)


def test_staleness_window_drops_old_readings(reconciler):
    """Test that readings older than the window are never delivered."""
    now = T0 + timedelta(minutes=1)
    batch = from_readings([reading(0), reading(-63), reading(-64), reading(-70)])

    recent = reconciler.within_staleness_window(batch, now)
    assert len(recent) == 3

    result = reconciler.reconcile(batch, PipelineState(), now)
    cutoff = now - timedelta(minutes=65)
    assert all(s.date >= cutoff for s in result.samples)
    assert len(result.samples) == 3


def test_everything_stale_gives_no_data(reconciler):
    """Test that an all-stale batch leaves the state untouched."""
    state = PipelineState()
    batch = from_readings([reading(-120), reading(-121)])

    result = reconciler.reconcile(batch, state, T0)

    assert isinstance(result, NoData)
    assert state.last_delivered is None


def test_no_staleness_window_keeps_old_readings():
    """Test that a reconciler without a window keeps everything."""
    reconciler = Reconciler(min_refetch_interval=timedelta(minutes=4.5))
    batch = from_readings([reading(-600)])
    assert len(reconciler.within_staleness_window(batch, T0)) == 1


def test_empty_batch(reconciler):
    """Test that an empty batch is simply no data."""
    state = PipelineState()
    assert isinstance(reconciler.reconcile(BATCH_SCHEMA.empty(), state, T0), NoData)
    assert state.last_delivered is None


def test_last_delivered_never_moves_backwards(reconciler):
    """Test that a store that went back in time does not rewind the state."""
    state = PipelineState(last_delivered=reading(0))
    batch = from_readings([reading(-3), reading(-4)])

    result = reconciler.reconcile(batch, state, T0 + timedelta(minutes=1))

    assert isinstance(result, NoData)
    assert state.last_delivered.timestamp == T0


def test_last_delivered_uses_newest_recent_reading(reconciler):
    """Test that last_delivered advances even when all readings were already seen via baseline."""
    state = PipelineState()
    batch = from_readings([reading(-1), reading(-2)])

    result = reconciler.reconcile(batch, state, T0, lambda: T0)

    assert isinstance(result, NoData)
    assert state.last_delivered.timestamp == T0 - timedelta(minutes=1)


def test_novelty_skew_shifts_cutoff():
    """Test that the skew moves the cutoff forward (xDrip-style)."""
    reconciler = Reconciler(
        min_refetch_interval=timedelta(minutes=4.5),
        novelty_skew=timedelta(minutes=1),
    )
    state = PipelineState()
    batch = from_readings([reading(0.5)])

    # a reading 30s after the baseline is within the skew
    result = reconciler.reconcile(batch, state, T0 + timedelta(minutes=1), lambda: T0)
    assert isinstance(result, NoData)

    assert reconciler.novelty_cutoff(state) == T0 + timedelta(minutes=1.5)


def test_novelty_cutoff_none_without_history(reconciler):
    """Test that there is no cutoff before anything was delivered or baselined."""
    assert reconciler.novelty_cutoff(PipelineState()) is None
    assert reconciler.novelty_cutoff(PipelineState(), lambda: None) is None


def test_samples_carry_device_and_sync_identifier(reconciler):
    """Test the sample mapping (quantity, sync id, device model)."""
    batch = from_readings([reading(0, 120, collector="Libre2"), reading(-1, 119, collector="unknown")])
    result = reconciler.reconcile(batch, PipelineState(), T0)

    newest, older = result.samples
    assert newest.sync_identifier == str(int(T0.timestamp()))
    assert newest.unit == "mg/dL"
    assert newest.is_display_only is False
    assert newest.trend == 4
    assert newest.device == GlucoseDevice(name="LibreDirectClient", manufacturer="LibreDirect", model="Libre2")
    assert older.device.model is None


def test_sync_identifier_truncates_to_seconds():
    """Test that sync identifiers are whole epoch seconds."""
    moment = T0 + timedelta(milliseconds=999)
    assert sync_identifier(moment) == str(int(T0.timestamp()))


def test_as_utc():
    """Test that naive datetimes are taken to be UTC."""
    naive = datetime(2024, 5, 1, 12, 0, 0)
    assert as_utc(naive) == T0
    assert as_utc(naive).tzinfo is timezone.utc

    other_zone = datetime(2024, 5, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
    assert as_utc(other_zone) == T0


def test_samples_most_recent_first(reconciler):
    """Test that delivered samples keep the batch order."""
    batch = from_readings([reading(-i, 100 + i) for i in range(5)])
    result = reconciler.reconcile(batch, PipelineState(), T0)

    dates = [s.date for s in result.samples]
    assert dates == sorted(dates, reverse=True)
    assert result.samples[0].quantity == 100.0
    assert batch[BatchColumn.VALUE.value][0] == 100
