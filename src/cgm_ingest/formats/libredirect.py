"""Glucose Direct (LibreDirect) shared-store producer.

Publishes up to an hour of one-minute readings; the history is noisy enough
to be smoothed before delivery.
"""

LIBRE_DIRECT_DEVICE_NAME = "LibreDirectClient"
LIBRE_DIRECT_MANUFACTURER = "LibreDirect"
LIBRE_DIRECT_APP_URL = "libredirect://"

LIBRE_DIRECT_MIN_REFETCH_MINUTES = 0.5
LIBRE_DIRECT_STALENESS_WINDOW_MINUTES = 65.0
LIBRE_DIRECT_SMOOTHING_ENABLED = True
LIBRE_DIRECT_BATCH_SIZE = 60
LIBRE_DIRECT_NOVELTY_SKEW_MINUTES = 0.0
