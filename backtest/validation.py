"""Validation checks for rolling VaR forecasts"""

import logging
from typing import Optional
import numpy as np

from garch.models import ModelSpec, RollingForecast

logger = logging.getLogger(__name__)


def verify_temporal_consistency(rolling: RollingForecast, n_obs: int) -> None:
    """Verify each forecast's information set ends before its target day"""
    try:
        start = n_obs - len(rolling)
        targets = start + np.arange(len(rolling))
        violations = np.flatnonzero(rolling.origins >= targets)
        if len(violations) > 0:
            first = violations[0]
            raise ValueError(
                f"Found {len(violations)} instances of look-ahead bias: "
                f"first forecast for day {targets[first]} uses data through day "
                f"{rolling.origins[first]}")

        logger.info("Verified temporal consistency: No look-ahead bias found")

    except Exception as e:
        logger.error(f"Error verifying temporal consistency: {str(e)}")
        raise


def verify_no_lookahead(forecaster, values: np.ndarray, spec: ModelSpec,
                        window_fraction: float = 0.1, refit_every: int = 1,
                        perturb_at: Optional[int] = None) -> int:
    """
    Re-run a rolling forecast with the data from perturb_at on reversed.

    Forecasts for days up to and including perturb_at must not change.
    Returns the number of forecasts checked.
    """
    values = np.asarray(values, dtype=float)
    n = len(values)
    m = int(round(n * window_fraction))
    start = n - m
    if perturb_at is None:
        perturb_at = start + m // 2
    if not start <= perturb_at < n:
        raise ValueError(f"perturb_at must lie in the out-of-sample range [{start}, {n})")

    baseline = forecaster.rolling(values, spec, window_fraction, refit_every)
    distorted = values.copy()
    distorted[perturb_at:] = values[perturb_at:][::-1]
    perturbed = forecaster.rolling(distorted, spec, window_fraction, refit_every)

    n_checked = perturb_at - start + 1
    same = np.array_equal(baseline.var[:n_checked], perturbed.var[:n_checked])
    if not same:
        diff = np.flatnonzero(baseline.var[:n_checked] != perturbed.var[:n_checked])
        raise ValueError(
            f"Forecast for day {start + diff[0]} changed when data from day "
            f"{perturb_at} on was altered")
    logger.info(f"Verified {n_checked} forecasts are unaffected by later data")
    return n_checked
