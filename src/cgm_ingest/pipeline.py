"""Glucose ingestion pipeline.

Wires the timer, store reader, record parser, smoothing filter and
reconciler together and reports every cycle to a consumer.

Execution contexts:
- timer thread: fires the polling handler, never does pipeline work itself
- process queue: single worker owning PipelineState; runs gate checks,
  parsing, smoothing and reconciliation
- store queue: single worker performing store reads
- delegate queue: the consumer's reporting executor; every completion and
  notification is posted there
"""

import logging
import threading
import weakref
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Type

from cgm_ingest.interface.ingest_interface import (
    StoreAdapter,
    ReadingParser,
    GlucoseReading,
    GlucoseDevice,
    SupportedSource,
    FetchResult,
    NoData,
    NewData,
    FetchError,
    FilterOutOfRangeError,
)
from cgm_ingest.config import PipelineConfig
from cgm_ingest.dispatch_timer import DispatchTimer
from cgm_ingest.formats.supported import SOURCE_DEVICES, SOURCE_APP_URLS
from cgm_ingest.reconciler import PipelineState, Reconciler
from cgm_ingest.record_parser import RecordParser
from cgm_ingest.smoothing import smooth_batch
from cgm_ingest.store_reader import RetryingStoreReader

logger = logging.getLogger(__name__)

DEFAULT_DEVICE = GlucoseDevice(name="cgm_ingest", manufacturer="cgm_ingest")

Completion = Callable[[FetchResult], None]


class PipelineListener:
    """Consumer interface; override the methods you need."""

    def pipeline_did_update(self, pipeline: "GlucosePipeline", result: FetchResult) -> None:
        """Called on the reporting executor after a timer cycle produced NewData."""
        pass

    def start_date_to_filter_new_data(self, pipeline: "GlucosePipeline") -> Optional[datetime]:
        """Readings at or before this time are never delivered while nothing was delivered yet."""
        return None


class WeakDelegate:
    """Non-owning reference to a listener plus the executor it is notified on."""

    def __init__(self, listener: Optional[Any] = None, executor: Optional[Executor] = None):
        self._lock = threading.Lock()
        self._ref: Optional[weakref.ref] = None
        self._reporting = threading.local()
        self.executor = executor
        self.listener = listener

    @property
    def listener(self) -> Optional[Any]:
        with self._lock:
            return self._ref() if self._ref is not None else None

    @listener.setter
    def listener(self, value: Optional[Any]) -> None:
        with self._lock:
            self._ref = weakref.ref(value) if value is not None else None

    @property
    def in_reporting_call(self) -> bool:
        """True on a thread currently running a block posted through submit()."""
        return getattr(self._reporting, "active", False)

    def submit(self, fn: Callable[..., None], *args: Any) -> Future:
        """Post fn(*args) onto the executor.

        Raises:
            RuntimeError: If the executor was shut down
        """
        return self.executor.submit(self._run, fn, *args)

    def _run(self, fn: Callable[..., None], *args: Any) -> None:
        self._reporting.active = True
        try:
            fn(*args)
        finally:
            self._reporting.active = False

    def notify(self, block: Callable[[Any], None]) -> None:
        """Post block(listener) onto the executor if the listener is still alive."""
        listener = self.listener
        if listener is None or self.executor is None:
            return
        try:
            self.submit(block, listener)
        except RuntimeError:
            logger.debug("Reporting executor shut down; notification dropped")

    def call(self, block: Callable[[Optional[Any]], Any]) -> Any:
        """Run block(listener) synchronously on the calling thread (listener may be None)."""
        return block(self.listener)


class GlucosePipeline:
    """Periodic shared-store ingestion with single-flight fetches.

    Example:
        >>> pipeline = GlucosePipeline(FileStore("latest.json"), source=SupportedSource.LIBRE_DIRECT)
        >>> pipeline.listener = my_listener
        >>> pipeline.start()
        >>> ...
        >>> pipeline.close()
    """

    def __init__(
        self,
        store: StoreAdapter,
        config: Optional[PipelineConfig] = None,
        *,
        source: Optional[SupportedSource] = None,
        device: Optional[GlucoseDevice] = None,
        parser: Type[ReadingParser] = RecordParser,
        novelty_baseline: Optional[Callable[[], Optional[datetime]]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        reporting_executor: Optional[Executor] = None,
    ):
        """Initialize the pipeline; polling starts with start().

        Args:
            store: Shared-store adapter
            config: Options; defaults to the source profile, or PipelineConfig() without a source
            source: Producer, selects config defaults and the device descriptor
            device: Descriptor for delivered samples (overrides the source's)
            parser: Parser turning store blobs into reading batches
            novelty_baseline: Cutoff used while nothing was delivered; defaults to
                the listener's start_date_to_filter_new_data
            clock: Returns the current time (aware UTC); defaults to datetime.now(timezone.utc)
            reporting_executor: Consumer's reporting context; a private single thread if None
        """
        if config is None:
            config = PipelineConfig.for_source(source) if source is not None else PipelineConfig()
        self.config = config
        self.source = source
        self.parser = parser
        self.reader = RetryingStoreReader(store, retries=config.store_retries)
        self.base_device = device or SOURCE_DEVICES.get(source, DEFAULT_DEVICE)
        self.reconciler = Reconciler(
            min_refetch_interval=config.min_refetch_interval,
            staleness_window=config.staleness_window,
            novelty_skew=config.novelty_skew,
            device=self.base_device,
        )
        self.state = PipelineState()

        self._novelty_baseline = novelty_baseline
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._process_queue = ThreadPoolExecutor(max_workers=1, thread_name_prefix="GlucosePipeline.processQueue")
        self._store_queue = ThreadPoolExecutor(max_workers=1, thread_name_prefix="GlucosePipeline.storeQueue")
        self._owns_reporting_executor = reporting_executor is None
        if reporting_executor is None:
            reporting_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="GlucosePipeline.delegateQueue")
        self.delegate = WeakDelegate(executor=reporting_executor)

        self._update_timer: Optional[DispatchTimer] = DispatchTimer(
            config.poll_interval_seconds, name="GlucosePipeline.updateTimer"
        )
        # stops the timer thread of a pipeline dropped without close()
        self._timer_finalizer = weakref.finalize(self, self._update_timer.close)
        self._closed = False

    # ===== Consumer Surface =====

    @property
    def listener(self) -> Optional[Any]:
        return self.delegate.listener

    @listener.setter
    def listener(self, value: Optional[Any]) -> None:
        self.delegate.listener = value

    @property
    def last_delivered(self) -> Optional[GlucoseReading]:
        return self.state.last_delivered

    @property
    def sensor_state(self) -> Optional[GlucoseReading]:
        return self.state.last_delivered

    @property
    def is_fetching(self) -> bool:
        return self.state.fetch_in_flight

    @property
    def latest_collector(self) -> Optional[str]:
        if self.state.last_delivered is None:
            return None
        return self.state.last_delivered.known_collector

    @property
    def device(self) -> GlucoseDevice:
        return GlucoseDevice(
            name=self.base_device.name,
            manufacturer=self.base_device.manufacturer,
            model=self.latest_collector,
        )

    @property
    def app_url(self) -> Optional[str]:
        return SOURCE_APP_URLS.get(self.source)

    @property
    def debug_description(self) -> str:
        return "\n".join([
            f"## {type(self).__name__}",
            f"source: {self.source.value if self.source else None}",
            f"latestBackfill: {self.state.last_delivered}",
            f"latestCollector: {self.latest_collector}",
            f"isFetching: {self.state.fetch_in_flight}",
            "",
        ])

    # ===== Lifecycle =====

    def start(self) -> None:
        """Arm the polling timer."""
        if self._closed:
            raise RuntimeError("Pipeline is closed")
        weak_self = weakref.ref(self)

        def on_tick() -> None:
            pipeline = weak_self()
            if pipeline is None:
                return
            pipeline.fetch_new_data_if_needed(pipeline._notify_if_new_data)

        self._update_timer.pause()
        self._update_timer.start(on_tick)

    def pause(self) -> None:
        if self._update_timer is not None:
            self._update_timer.pause()

    def resume(self) -> None:
        if self._update_timer is not None:
            self._update_timer.resume()

    def close(self, wait: bool = True) -> None:
        """Stop polling, drain in-flight work and release the listener.

        Called from a completion or listener callback, the reporting
        executor is shut down without waiting.

        Args:
            wait: Wait for in-flight work to be reported
        """
        if self._closed:
            return
        self._closed = True

        self._update_timer = None
        self._timer_finalizer()

        # store reads complete onto the process queue, which reports onto the delegate queue
        self._store_queue.shutdown(wait=wait)
        self._process_queue.shutdown(wait=wait)

        self.delegate.listener = None
        if self._owns_reporting_executor:
            self.delegate.executor.shutdown(wait=wait and not self.delegate.in_reporting_call)
        logger.debug("Pipeline closed")

    def __enter__(self) -> "GlucosePipeline":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ===== Fetch Cycle =====

    def fetch_new_data_if_needed(self, completion: Optional[Completion] = None) -> "Future[FetchResult]":
        """Run one fetch cycle unless one is in flight or the refetch gate is closed.

        The completion (if any) is called on the reporting executor.

        Returns:
            Future resolved with the cycle's result after the completion ran

        Raises:
            RuntimeError: If the pipeline is closed
        """
        if self._closed:
            raise RuntimeError("Pipeline is closed")
        future: "Future[FetchResult]" = Future()
        self._process_queue.submit(self._begin_fetch, completion, future)
        return future

    def _begin_fetch(self, completion: Optional[Completion], future: Future) -> None:
        # process queue
        if self.state.fetch_in_flight:
            logger.debug("Fetch already in flight; reporting no data")
            self._report(NoData(), completion, future)
            return

        if not self.reconciler.refetch_allowed(self.state, self._clock()):
            logger.debug("Last reading %s is too recent to refetch", self.state.last_delivered.timestamp)
            self._report(NoData(), completion, future)
            return

        self.state.fetch_in_flight = True
        try:
            store_future = self._store_queue.submit(self.reader.fetch_raw)
        except RuntimeError as e:
            self.state.fetch_in_flight = False
            self._report(FetchError(e), completion, future)
            return
        store_future.add_done_callback(
            lambda done: self._enqueue(self._complete_fetch, done, completion, future)
        )

    def _complete_fetch(self, store_future: Future, completion: Optional[Completion], future: Future) -> None:
        # process queue
        self.state.fetch_in_flight = False
        try:
            raw = store_future.result()
            result = self._process(raw)
        except FilterOutOfRangeError:
            result = NoData()
        except Exception as e:
            logger.warning("Fetch failed: %s", e)
            result = FetchError(e)
        self._report(result, completion, future)

    def _process(self, raw: bytes) -> FetchResult:
        """Parse, bound, smooth and reconcile one store blob."""
        now = self._clock()
        batch = self.parser.parse(raw, self.config.batch_size)
        if len(batch) == 0:
            return NoData()

        recent = self.reconciler.within_staleness_window(batch, now)
        if len(recent) == 0:
            return NoData()

        if self.config.smoothing_enabled:
            recent = smooth_batch(recent, self.config.process_noise)

        return self.reconciler.reconcile(recent, self.state, now, self._resolve_novelty_baseline)

    def _resolve_novelty_baseline(self) -> Optional[datetime]:
        if self._novelty_baseline is not None:
            return self._novelty_baseline()

        def ask(listener: Optional[Any]) -> Optional[datetime]:
            if listener is None or not hasattr(listener, "start_date_to_filter_new_data"):
                return None
            return listener.start_date_to_filter_new_data(self)

        return self.delegate.call(ask)

    # ===== Reporting =====

    def _enqueue(self, fn: Callable[..., None], *args: Any) -> None:
        try:
            self._process_queue.submit(fn, *args)
        except RuntimeError:
            logger.debug("Process queue shut down; dropping %s", getattr(fn, "__name__", fn))

    def _report(self, result: FetchResult, completion: Optional[Completion], future: Future) -> None:
        def deliver() -> None:
            if completion is not None:
                try:
                    completion(result)
                except Exception:
                    logger.exception("Fetch completion handler failed")
            future.set_result(result)

        try:
            self.delegate.submit(deliver)
        except RuntimeError:
            logger.debug("Reporting executor shut down; result not delivered to completion")
            future.set_result(result)

    def _notify_if_new_data(self, result: FetchResult) -> None:
        # reporting executor
        if not isinstance(result, NewData):
            return
        self.delegate.notify(lambda listener: listener.pipeline_did_update(self, result))
