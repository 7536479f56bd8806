"""Shared-store record format.

The producers publish a JSON array of records, most recent first, under a
single key of a shared key-value area:

    [{"Value": 120, "Trend": 4, "DT": "/Date(1462404576000)/", "Collector": "Libre2"}, ...]
"""

from cgm_ingest.interface.schema import EnumLiteral

SHARED_STORE_KEY = "latestReadings"

# DT looks like "/Date(1462404576000)/": epoch milliseconds inside the first parenthetical
DATE_ENVELOPE_PATTERN = r"\((.*)\)"


class StoreField(EnumLiteral):
    """Record keys of the shared-store format."""
    VALUE = "Value"
    TREND = "Trend"
    DATE = "DT"
    COLLECTOR = "Collector"


def encode_date(epoch_ms: int) -> str:
    """Wrap epoch milliseconds in the producer's date envelope."""
    return f"/Date({epoch_ms})/"
