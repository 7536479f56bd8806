"""Store adapters and the retrying store reader.

Adapters only move bytes; they know nothing about the record format.
"""

import logging
import threading
from pathlib import Path
from typing import Mapping, Optional, Union

from cgm_ingest.interface.ingest_interface import (
    StoreAdapter,
    StoreUnavailableError,
    DEFAULT_STORE_RETRIES,
)
from cgm_ingest.formats.shared_store import SHARED_STORE_KEY

logger = logging.getLogger(__name__)


class MemoryStore(StoreAdapter):
    """In-process store holding the most recently published blob."""

    def __init__(self, data: Optional[bytes] = None):
        self._lock = threading.Lock()
        self._data = data

    def update(self, data: Optional[bytes]) -> None:
        """Publish a new blob (None empties the store)."""
        with self._lock:
            self._data = data

    def fetch_raw(self) -> bytes:
        with self._lock:
            data = self._data
        if data is None:
            raise StoreUnavailableError("Memory store is empty")
        return data


class FileStore(StoreAdapter):
    """Store backed by a file the producer rewrites."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def fetch_raw(self) -> bytes:
        try:
            with open(self.path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise StoreUnavailableError(f"Cannot read store file {self.path}: {e}")


class KeyValueStore(StoreAdapter):
    """Store reading one key of a shared key-value area.

    The area is any mapping (a shared dict, a shelve, an app-group
    preferences view); values may be bytes or str.
    """

    def __init__(self, area: Mapping[str, Union[bytes, str]], key: str = SHARED_STORE_KEY):
        self.area = area
        self.key = key

    def fetch_raw(self) -> bytes:
        try:
            value = self.area[self.key]
        except KeyError:
            raise StoreUnavailableError(f"Key {self.key!r} not present in shared area")
        if isinstance(value, str):
            return value.encode('utf-8')
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        raise StoreUnavailableError(f"Key {self.key!r} holds {type(value).__name__}, expected bytes")


class RetryingStoreReader:
    """Reads a store, retrying transient failures immediately.

    The store is local, so retries carry no backoff delay.
    """

    def __init__(self, adapter: StoreAdapter, retries: int = DEFAULT_STORE_RETRIES):
        """Initialize the reader.

        Args:
            adapter: Store to read
            retries: Additional attempts after the first failure
        """
        if retries < 0:
            raise ValueError(f"retries must not be negative, got {retries}")
        self.adapter = adapter
        self.retries = retries
        self.attempts = 0  # total adapter calls, for diagnostics

    def fetch_raw(self) -> bytes:
        """Fetch the blob, trying at most retries + 1 times.

        Raises:
            StoreUnavailableError: If every attempt failed (the last error is surfaced)
        """
        last_error: Optional[StoreUnavailableError] = None
        for attempt in range(self.retries + 1):
            self.attempts += 1
            try:
                return self.adapter.fetch_raw()
            except StoreUnavailableError as e:
                last_error = e
                logger.warning("Store read attempt %d/%d failed: %s", attempt + 1, self.retries + 1, e)
        raise last_error
