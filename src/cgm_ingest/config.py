"""Pipeline configuration.

Configuration is a frozen dataclass validated on construction. It can be
built from keyword arguments, from a source profile, from a mapping (snake_case
or camelCase keys) or from a YAML/JSON file.
"""

import json
import logging
from dataclasses import dataclass, fields, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from cgm_ingest.interface.ingest_interface import (
    SupportedSource,
    ConfigError,
    DEFAULT_FILTER_NOISE,
    DEFAULT_STORE_RETRIES,
)
from cgm_ingest.formats.supported import SOURCE_DEFAULTS

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 10.0

# camelCase spellings accepted when loading from a mapping
CAMEL_CASE_KEYS: Dict[str, str] = {
    "pollIntervalSeconds": "poll_interval_seconds",
    "minRefetchIntervalMinutes": "min_refetch_interval_minutes",
    "stalenessWindowMinutes": "staleness_window_minutes",
    "smoothingEnabled": "smoothing_enabled",
    "processNoise": "process_noise",
    "batchSize": "batch_size",
    "noveltySkewMinutes": "novelty_skew_minutes",
    "storeRetries": "store_retries",
}


@dataclass(frozen=True)
class PipelineConfig:
    """Recognized pipeline options.

    Attributes:
        poll_interval_seconds: Timer period
        min_refetch_interval_minutes: Skip fetching while the last delivered reading is younger than this
        staleness_window_minutes: Ignore readings older than this; None disables the window
        smoothing_enabled: Run the smoothing filter over each batch
        process_noise: Process and observation noise of the smoothing filter
        batch_size: Maximum number of store records considered per fetch
        novelty_skew_minutes: Forward shift of the novelty cutoff absorbing clock skew
        store_retries: Additional store read attempts after a failure
    """
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    min_refetch_interval_minutes: float = 0.5
    staleness_window_minutes: Optional[float] = 65.0
    smoothing_enabled: bool = True
    process_noise: float = DEFAULT_FILTER_NOISE
    batch_size: int = 60
    novelty_skew_minutes: float = 0.0
    store_retries: int = DEFAULT_STORE_RETRIES

    def __post_init__(self):
        if self.poll_interval_seconds <= 0:
            raise ConfigError(f"poll_interval_seconds must be positive, got {self.poll_interval_seconds}")
        if self.min_refetch_interval_minutes < 0:
            raise ConfigError(
                f"min_refetch_interval_minutes must not be negative, got {self.min_refetch_interval_minutes}"
            )
        if self.staleness_window_minutes is not None and self.staleness_window_minutes <= 0:
            raise ConfigError(
                f"staleness_window_minutes must be positive or None, got {self.staleness_window_minutes}"
            )
        if not isinstance(self.smoothing_enabled, bool):
            raise ConfigError(f"smoothing_enabled must be a boolean, got {self.smoothing_enabled!r}")
        if self.process_noise <= 0:
            raise ConfigError(f"process_noise must be positive, got {self.process_noise}")
        if isinstance(self.batch_size, bool) or not isinstance(self.batch_size, int) or self.batch_size < 1:
            raise ConfigError(f"batch_size must be a positive integer, got {self.batch_size!r}")
        if self.novelty_skew_minutes < 0:
            raise ConfigError(f"novelty_skew_minutes must not be negative, got {self.novelty_skew_minutes}")
        if isinstance(self.store_retries, bool) or not isinstance(self.store_retries, int) or self.store_retries < 0:
            raise ConfigError(f"store_retries must be a non-negative integer, got {self.store_retries!r}")

    # ===== Derived intervals =====

    @property
    def min_refetch_interval(self) -> timedelta:
        return timedelta(minutes=self.min_refetch_interval_minutes)

    @property
    def staleness_window(self) -> Optional[timedelta]:
        if self.staleness_window_minutes is None:
            return None
        return timedelta(minutes=self.staleness_window_minutes)

    @property
    def novelty_skew(self) -> timedelta:
        return timedelta(minutes=self.novelty_skew_minutes)

    # ===== Constructors =====

    def with_overrides(self, **overrides: Any) -> "PipelineConfig":
        """Return a copy with some options replaced."""
        try:
            return replace(self, **overrides)
        except TypeError as e:
            raise ConfigError(str(e))

    @classmethod
    def for_source(cls, source: SupportedSource, **overrides: Any) -> "PipelineConfig":
        """Build the configuration used for a given shared-store producer.

        Args:
            source: Producer whose defaults should be used
            **overrides: Options replacing the producer defaults
        """
        options = dict(SOURCE_DEFAULTS[source])
        options.update(overrides)
        return cls.from_mapping(options)

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "PipelineConfig":
        """Build a configuration from a mapping of options.

        Keys may be snake_case field names or their camelCase spellings.
        A "source" key selects the producer defaults the other keys override.

        Raises:
            ConfigError: On unknown keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        normalized: Dict[str, Any] = {}
        source: Optional[SupportedSource] = None

        for key, value in options.items():
            if key == "source":
                source = parse_source(value)
                continue
            name = CAMEL_CASE_KEYS.get(key, key)
            if name not in known:
                raise ConfigError(f"Unknown configuration option: {key}")
            normalized[name] = value

        if source is not None:
            base = dict(SOURCE_DEFAULTS[source])
            base.update(normalized)
            normalized = base

        try:
            return cls(**normalized)
        except TypeError as e:
            raise ConfigError(str(e))

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "PipelineConfig":
        """Load configuration from a YAML (.yaml, .yml) or JSON (.json) file.

        Raises:
            ConfigError: If the file is missing, malformed or holds invalid options
        """
        return cls.from_mapping(load_options(config_path))


def load_options(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Read the raw option mapping of a YAML or JSON configuration file."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif path.suffix == ".json":
                data = json.load(f)
            else:
                raise ConfigError(
                    f"Unknown config file format for '{path}'. Supported: .yaml, .yml, .json"
                )
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML configuration from '{path}': {e}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Error parsing JSON configuration from '{path}': {e}")

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration in '{path}' must be a mapping")

    logger.debug("Loaded configuration from %s", path)
    return data


def parse_source(value: Any) -> SupportedSource:
    if isinstance(value, SupportedSource):
        return value
    try:
        return SupportedSource(str(value).lower())
    except ValueError:
        supported = ", ".join(s.value for s in SupportedSource)
        raise ConfigError(f"Unknown source '{value}'. Use: {supported}")
