"""Tests for store adapters and the retrying store reader."""

import pytest

from cgm_ingest.store_reader import MemoryStore, FileStore, KeyValueStore, RetryingStoreReader
from cgm_ingest.interface.ingest_interface import StoreAdapter, StoreUnavailableError
from cgm_ingest.formats.shared_store import SHARED_STORE_KEY


class FlakyStore(StoreAdapter):
    """Store failing a fixed number of times before answering."""

    def __init__(self, failures: int, data: bytes = b"[]"):
        self.failures = failures
        self.data = data
        self.calls = 0

    def fetch_raw(self) -> bytes:
        self.calls += 1
        if self.calls <= self.failures:
            raise StoreUnavailableError(f"failure {self.calls}")
        return self.data


def test_memory_store_roundtrip():
    """Test that the memory store returns the last published blob."""
    store = MemoryStore()
    with pytest.raises(StoreUnavailableError):
        store.fetch_raw()

    store.update(b"[1]")
    assert store.fetch_raw() == b"[1]"

    store.update(None)
    with pytest.raises(StoreUnavailableError):
        store.fetch_raw()


def test_file_store(tmp_path):
    """Test that the file store reads the current file contents."""
    path = tmp_path / "latest.json"
    store = FileStore(path)

    with pytest.raises(StoreUnavailableError, match="Cannot read store file"):
        store.fetch_raw()

    path.write_bytes(b"[]")
    assert store.fetch_raw() == b"[]"


def test_key_value_store():
    """Test reading the shared key, as bytes or text."""
    area = {SHARED_STORE_KEY: '[{"Value": 1}]'}
    store = KeyValueStore(area)
    assert store.fetch_raw() == b'[{"Value": 1}]'

    area[SHARED_STORE_KEY] = b"[]"
    assert store.fetch_raw() == b"[]"


def test_key_value_store_missing_key():
    """Test that an absent key is a store failure."""
    with pytest.raises(StoreUnavailableError, match="latestReadings"):
        KeyValueStore({}).fetch_raw()


def test_key_value_store_wrong_type():
    """Test that a non-blob value is a store failure."""
    with pytest.raises(StoreUnavailableError, match="expected bytes"):
        KeyValueStore({SHARED_STORE_KEY: 42}).fetch_raw()


def test_retry_recovers_from_transient_failures():
    """Test that two failures are absorbed by the default retry budget."""
    store = FlakyStore(failures=2, data=b"[42]")
    reader = RetryingStoreReader(store)

    assert reader.fetch_raw() == b"[42]"
    assert store.calls == 3
    assert reader.attempts == 3


def test_retry_gives_up_after_three_attempts():
    """Test that a persistently failing store is tried exactly three times."""
    store = FlakyStore(failures=10)
    reader = RetryingStoreReader(store)

    with pytest.raises(StoreUnavailableError, match="failure 3"):
        reader.fetch_raw()
    assert store.calls == 3


def test_no_retry_on_success():
    """Test that a healthy store is read once."""
    store = FlakyStore(failures=0)
    RetryingStoreReader(store).fetch_raw()
    assert store.calls == 1


def test_zero_retries():
    """Test that retries=0 means a single attempt."""
    store = FlakyStore(failures=1)
    with pytest.raises(StoreUnavailableError):
        RetryingStoreReader(store, retries=0).fetch_raw()
    assert store.calls == 1


def test_negative_retries_rejected():
    """Test that a negative retry count is refused."""
    with pytest.raises(ValueError):
        RetryingStoreReader(MemoryStore(), retries=-1)


def test_other_errors_not_retried():
    """Test that only store failures are retried."""

    class BrokenStore(StoreAdapter):
        calls = 0

        def fetch_raw(self) -> bytes:
            BrokenStore.calls += 1
            raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        RetryingStoreReader(BrokenStore()).fetch_raw()
    assert BrokenStore.calls == 1
