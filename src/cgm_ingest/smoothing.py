"""Scalar Kalman smoothing of a reading batch.

The filter walks a batch in chronological order, so every smoothed value
depends only on the readings at or before it.
"""

import logging
import math
from dataclasses import dataclass
from typing import List
import polars as pl

from cgm_ingest.interface.ingest_interface import (
    ReadingBatch,
    FilterOutOfRangeError,
    GLUCOSE_MIN_MGDL,
    GLUCOSE_MAX_MGDL,
    DEFAULT_FILTER_NOISE,
)
from cgm_ingest.formats.unified import BatchColumn

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KalmanFilter:
    """One-dimensional Kalman filter state.

    Attributes:
        state_estimate_prior: Current scalar estimate
        error_covariance_prior: Variance of the current estimate
    """
    state_estimate_prior: float
    error_covariance_prior: float

    def predict(
        self,
        state_transition_model: float = 1.0,
        control_input_model: float = 0.0,
        control_vector: float = 0.0,
        covariance_of_process_noise: float = DEFAULT_FILTER_NOISE,
    ) -> "KalmanFilter":
        """Project the estimate one step forward."""
        estimate = state_transition_model * self.state_estimate_prior + control_input_model * control_vector
        covariance = (
            state_transition_model * self.error_covariance_prior * state_transition_model
            + covariance_of_process_noise
        )
        return KalmanFilter(state_estimate_prior=estimate, error_covariance_prior=covariance)

    def update(
        self,
        measurement: float,
        observation_model: float = 1.0,
        covariance_of_observation_noise: float = DEFAULT_FILTER_NOISE,
    ) -> "KalmanFilter":
        """Correct the estimate with a measurement."""
        innovation = measurement - observation_model * self.state_estimate_prior
        innovation_covariance = (
            observation_model * self.error_covariance_prior * observation_model
            + covariance_of_observation_noise
        )
        gain = self.error_covariance_prior * observation_model / innovation_covariance
        estimate = self.state_estimate_prior + gain * innovation
        covariance = (1.0 - gain * observation_model) * self.error_covariance_prior
        return KalmanFilter(state_estimate_prior=estimate, error_covariance_prior=covariance)


def _round_half_away(value: float) -> int:
    # halves round away from zero, not to even
    if value >= 0:
        return math.floor(value + 0.5)
    return math.ceil(value - 0.5)


def smooth_values(values: List[int], noise: float = DEFAULT_FILTER_NOISE) -> List[int]:
    """Smooth chronologically ordered values (oldest first).

    The filter starts from the oldest value with covariance `noise`; each
    value is replaced by the rounded estimate after predicting and updating
    against it.

    Args:
        values: Raw readings, oldest first
        noise: Process and observation noise

    Returns:
        Smoothed readings, oldest first

    Raises:
        FilterOutOfRangeError: If any estimate leaves the physiological range
    """
    if not values:
        return []

    kalman = KalmanFilter(state_estimate_prior=float(values[0]), error_covariance_prior=noise)
    smoothed: List[int] = []
    for index, measurement in enumerate(values):
        prediction = kalman.predict(
            state_transition_model=1.0,
            control_input_model=0.0,
            control_vector=0.0,
            covariance_of_process_noise=noise,
        )
        kalman = prediction.update(
            measurement=float(measurement),
            observation_model=1.0,
            covariance_of_observation_noise=noise,
        )
        estimate = _round_half_away(kalman.state_estimate_prior)
        if not GLUCOSE_MIN_MGDL <= estimate <= GLUCOSE_MAX_MGDL:
            raise FilterOutOfRangeError(
                f"Smoothed estimate {estimate} at position {index} is outside "
                f"[{GLUCOSE_MIN_MGDL}, {GLUCOSE_MAX_MGDL}]"
            )
        smoothed.append(estimate)
    return smoothed


def smooth_batch(batch: ReadingBatch, noise: float = DEFAULT_FILTER_NOISE) -> ReadingBatch:
    """Smooth the values of a most-recent-first batch.

    Timestamps, trends and collectors are kept; only the value column changes.

    Args:
        batch: Readings, most recent first
        noise: Process and observation noise

    Returns:
        Batch with smoothed values, most recent first

    Raises:
        FilterOutOfRangeError: If any estimate leaves the physiological range
    """
    if len(batch) == 0:
        return batch

    chronological = batch[BatchColumn.VALUE.value].to_list()[::-1]
    try:
        smoothed = smooth_values(chronological, noise)
    except FilterOutOfRangeError as e:
        logger.warning("Discarding batch of %d reading(s): %s", len(batch), e)
        raise

    return batch.with_columns([
        pl.Series(BatchColumn.VALUE.value, smoothed[::-1], dtype=pl.Int64),
    ])
