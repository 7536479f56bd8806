"""xDrip4iOS shared-store producer.

Publishes five-minute readings; only the newest one is consumed, without
smoothing or a staleness window. Share timestamps can shift by up to a
minute, absorbed by the novelty skew.
"""

XDRIP_DEVICE_NAME = "xDripClient"
XDRIP_MANUFACTURER = "xDrip"
XDRIP_APP_URL = "xdrip://"

XDRIP_MIN_REFETCH_MINUTES = 4.5
XDRIP_STALENESS_WINDOW_MINUTES = None
XDRIP_SMOOTHING_ENABLED = False
XDRIP_BATCH_SIZE = 1
XDRIP_NOVELTY_SKEW_MINUTES = 1.0
