from typing import Any, Dict
from cgm_ingest.interface.ingest_interface import SupportedSource, GlucoseDevice
from cgm_ingest.formats.libredirect import (
    LIBRE_DIRECT_DEVICE_NAME,
    LIBRE_DIRECT_MANUFACTURER,
    LIBRE_DIRECT_APP_URL,
    LIBRE_DIRECT_MIN_REFETCH_MINUTES,
    LIBRE_DIRECT_STALENESS_WINDOW_MINUTES,
    LIBRE_DIRECT_SMOOTHING_ENABLED,
    LIBRE_DIRECT_BATCH_SIZE,
    LIBRE_DIRECT_NOVELTY_SKEW_MINUTES,
)
from cgm_ingest.formats.xdrip import (
    XDRIP_DEVICE_NAME,
    XDRIP_MANUFACTURER,
    XDRIP_APP_URL,
    XDRIP_MIN_REFETCH_MINUTES,
    XDRIP_STALENESS_WINDOW_MINUTES,
    XDRIP_SMOOTHING_ENABLED,
    XDRIP_BATCH_SIZE,
    XDRIP_NOVELTY_SKEW_MINUTES,
)


# Per-source configuration defaults (keys are PipelineConfig fields)
SOURCE_DEFAULTS: Dict[SupportedSource, Dict[str, Any]] = {
    SupportedSource.LIBRE_DIRECT: {
        "min_refetch_interval_minutes": LIBRE_DIRECT_MIN_REFETCH_MINUTES,
        "staleness_window_minutes": LIBRE_DIRECT_STALENESS_WINDOW_MINUTES,
        "smoothing_enabled": LIBRE_DIRECT_SMOOTHING_ENABLED,
        "batch_size": LIBRE_DIRECT_BATCH_SIZE,
        "novelty_skew_minutes": LIBRE_DIRECT_NOVELTY_SKEW_MINUTES,
    },
    SupportedSource.XDRIP: {
        "min_refetch_interval_minutes": XDRIP_MIN_REFETCH_MINUTES,
        "staleness_window_minutes": XDRIP_STALENESS_WINDOW_MINUTES,
        "smoothing_enabled": XDRIP_SMOOTHING_ENABLED,
        "batch_size": XDRIP_BATCH_SIZE,
        "novelty_skew_minutes": XDRIP_NOVELTY_SKEW_MINUTES,
    },
}

SOURCE_DEVICES: Dict[SupportedSource, GlucoseDevice] = {
    SupportedSource.LIBRE_DIRECT: GlucoseDevice(
        name=LIBRE_DIRECT_DEVICE_NAME, manufacturer=LIBRE_DIRECT_MANUFACTURER
    ),
    SupportedSource.XDRIP: GlucoseDevice(
        name=XDRIP_DEVICE_NAME, manufacturer=XDRIP_MANUFACTURER
    ),
}

SOURCE_APP_URLS: Dict[SupportedSource, str] = {
    SupportedSource.LIBRE_DIRECT: LIBRE_DIRECT_APP_URL,
    SupportedSource.XDRIP: XDRIP_APP_URL,
}
