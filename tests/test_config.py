"""Tests for PipelineConfig."""

import json
import pytest
from datetime import timedelta

from cgm_ingest.config import PipelineConfig, load_options, parse_source
from cgm_ingest.interface.ingest_interface import SupportedSource, ConfigError


def test_defaults():
    """Test the documented default options."""
    config = PipelineConfig()

    assert config.poll_interval_seconds == 10.0
    assert config.min_refetch_interval == timedelta(seconds=30)
    assert config.staleness_window == timedelta(minutes=65)
    assert config.smoothing_enabled is True
    assert config.process_noise == 2.5
    assert config.batch_size == 60
    assert config.novelty_skew == timedelta(0)
    assert config.store_retries == 2


def test_libredirect_profile():
    """Test the LibreDirect producer defaults."""
    config = PipelineConfig.for_source(SupportedSource.LIBRE_DIRECT)

    assert config.min_refetch_interval_minutes == 0.5
    assert config.staleness_window_minutes == 65.0
    assert config.smoothing_enabled is True
    assert config.batch_size == 60
    assert config.novelty_skew_minutes == 0.0


def test_xdrip_profile():
    """Test the xDrip producer defaults."""
    config = PipelineConfig.for_source(SupportedSource.XDRIP)

    assert config.min_refetch_interval == timedelta(minutes=4.5)
    assert config.staleness_window is None
    assert config.smoothing_enabled is False
    assert config.batch_size == 1
    assert config.novelty_skew == timedelta(minutes=1)


def test_profile_overrides():
    """Test that explicit options win over the producer defaults."""
    config = PipelineConfig.for_source(SupportedSource.XDRIP, batch_size=5, poll_interval_seconds=2)
    assert config.batch_size == 5
    assert config.poll_interval_seconds == 2
    assert config.smoothing_enabled is False


def test_with_overrides():
    """Test copying with replaced options."""
    config = PipelineConfig().with_overrides(process_noise=4.0)
    assert config.process_noise == 4.0

    with pytest.raises(ConfigError):
        PipelineConfig().with_overrides(unknown_option=1)


@pytest.mark.parametrize(
    "options",
    [
        {"poll_interval_seconds": 0},
        {"min_refetch_interval_minutes": -1},
        {"staleness_window_minutes": 0},
        {"smoothing_enabled": "yes"},
        {"smoothing_enabled": 1},
        {"process_noise": 0},
        {"batch_size": 0},
        {"batch_size": 2.5},
        {"batch_size": True},
        {"novelty_skew_minutes": -0.5},
        {"store_retries": -1},
    ],
)
def test_invalid_values_rejected(options):
    """Test that invalid option values raise ConfigError."""
    with pytest.raises(ConfigError):
        PipelineConfig(**options)


def test_from_mapping_camel_case():
    """Test that camelCase keys are accepted."""
    config = PipelineConfig.from_mapping({
        "pollIntervalSeconds": 5,
        "stalenessWindowMinutes": None,
        "smoothingEnabled": False,
        "batchSize": 10,
    })
    assert config.poll_interval_seconds == 5
    assert config.staleness_window is None
    assert config.smoothing_enabled is False
    assert config.batch_size == 10


def test_from_mapping_with_source():
    """Test that a source key selects producer defaults under the other keys."""
    config = PipelineConfig.from_mapping({"source": "XDRIP", "batchSize": 3})
    assert config.batch_size == 3
    assert config.novelty_skew_minutes == 1.0


def test_from_mapping_unknown_key():
    """Test that unknown options are rejected."""
    with pytest.raises(ConfigError, match="Unknown configuration option"):
        PipelineConfig.from_mapping({"pollInterval": 5})


def test_unknown_source():
    """Test that an unsupported producer is rejected."""
    with pytest.raises(ConfigError, match="Unknown source"):
        PipelineConfig.from_mapping({"source": "dexcom"})
    assert parse_source("LibreDirect") is SupportedSource.LIBRE_DIRECT


def test_from_yaml_file(tmp_path):
    """Test loading a YAML configuration file."""
    path = tmp_path / "ingest.yaml"
    path.write_text(
        "source: libredirect\n"
        "poll_interval_seconds: 30\n"
        "processNoise: 3.5\n",
        encoding='utf-8',
    )
    config = PipelineConfig.from_file(path)

    assert config.poll_interval_seconds == 30
    assert config.process_noise == 3.5
    assert config.staleness_window_minutes == 65.0


def test_from_json_file(tmp_path):
    """Test loading a JSON configuration file."""
    path = tmp_path / "ingest.json"
    path.write_text(json.dumps({"source": "xdrip", "storeRetries": 0}), encoding='utf-8')

    config = PipelineConfig.from_file(path)
    assert config.store_retries == 0
    assert config.batch_size == 1


def test_empty_yaml_file(tmp_path):
    """Test that an empty file gives the defaults."""
    path = tmp_path / "empty.yml"
    path.write_text("", encoding='utf-8')
    assert PipelineConfig.from_file(path) == PipelineConfig()
    assert load_options(path) == {}


@pytest.mark.parametrize(
    "name, content, message",
    [
        ("missing.yaml", None, "not found"),
        ("config.toml", "a = 1", "Unknown config file format"),
        ("broken.yaml", "a: [1, 2", "Error parsing YAML"),
        ("broken.json", "{", "Error parsing JSON"),
        ("list.yaml", "- 1\n- 2\n", "must be a mapping"),
    ],
)
def test_bad_files(tmp_path, name, content, message):
    """Test that unreadable configuration files raise ConfigError."""
    path = tmp_path / name
    if content is not None:
        path.write_text(content, encoding='utf-8')
    with pytest.raises(ConfigError, match=message):
        PipelineConfig.from_file(path)
