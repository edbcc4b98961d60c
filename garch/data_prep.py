"""
Prepare price data for GARCH estimation.
"""

import logging
from typing import Sequence, Union
import numpy as np
import pandas as pd

from .exceptions import InvalidInputError
from .models import ReturnSeries

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365


class ReturnSeriesBuilder:
    """Converts price levels into risk-free adjusted percent log-returns."""

    def __init__(self, risk_free_rate: float = 0.0):
        """
        Args:
            risk_free_rate: Annualized risk-free rate as a decimal (0.02 = 2%)
        """
        self.risk_free_rate = risk_free_rate

    def build(self, prices: Union[pd.Series, Sequence[float], np.ndarray],
              risk_free_rate: float = None) -> ReturnSeries:
        """
        Build returns r_i = 100 * (ln P[i+1] - ln P[i] - r_f / 365).

        Args:
            prices: Chronologically ordered price levels. A Series with a
                DatetimeIndex carries its dates over to the returns.
            risk_free_rate: Overrides the builder's annualized rate

        Returns:
            ReturnSeries with len(prices) - 1 observations
        """
        rf = self.risk_free_rate if risk_free_rate is None else risk_free_rate

        dates = None
        if isinstance(prices, pd.Series):
            if isinstance(prices.index, pd.DatetimeIndex):
                dates = prices.index
            values = prices.to_numpy(dtype=float)
        else:
            try:
                values = np.asarray(prices, dtype=float)
            except (TypeError, ValueError) as e:
                raise InvalidInputError(f"Prices are not numeric: {e}") from e

        if values.ndim != 1:
            raise InvalidInputError(f"Prices must be one-dimensional, got shape {values.shape}")
        if len(values) < 2:
            raise InvalidInputError(f"Need at least 2 prices, got {len(values)}")
        if not np.all(np.isfinite(values)):
            raise InvalidInputError(f"Prices contain {np.sum(~np.isfinite(values))} missing/inf values")
        if np.any(values <= 0):
            first_bad = int(np.argmax(values <= 0))
            raise InvalidInputError(f"Prices must be positive (first offender at position {first_bad})")

        log_prices = np.log(values)
        returns = 100.0 * (np.diff(log_prices) - rf / DAYS_PER_YEAR)

        logger.info(
            f"Prepared {len(returns)} log returns (r_f={rf:.4f}):\n"
            f"  Mean: {np.mean(returns):.6f}\n"
            f"  Std:  {np.std(returns):.6f}"
        )

        return ReturnSeries(
            values=returns,
            dates=dates[1:] if dates is not None else None,
            risk_free_rate=rf,
        )

    def verify_data_quality(self, returns: ReturnSeries, min_observations: int = 250,
                            extreme_threshold: float = 15.0) -> bool:
        """
        Check a return series is usable for GARCH estimation.

        Args:
            returns: Series produced by build()
            min_observations: Minimum required observations
            extreme_threshold: Standard deviations beyond which a return is flagged

        Returns:
            bool indicating if data meets quality requirements
        """
        values = np.asarray(returns.values)
        if len(values) < min_observations:
            logger.warning(f"Insufficient observations: {len(values)} < {min_observations}")
            return False

        zero_returns = int(np.sum(np.isclose(values, -100.0 * returns.risk_free_rate / DAYS_PER_YEAR)))
        if zero_returns > 0:
            logger.warning(f"Found {zero_returns} days with unchanged prices")

        std = np.std(values)
        if std == 0:
            logger.warning("Return series has zero variance")
            return False

        extremes = np.abs(values - np.mean(values)) > extreme_threshold * std
        if np.any(extremes):
            logger.warning(f"Found {int(np.sum(extremes))} extreme returns (> {extreme_threshold} sd)")
            if np.sum(extremes) > 5:
                return False

        return True
