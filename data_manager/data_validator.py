"""
Data validation for daily adjusted closing prices.
"""

import pandas as pd
import numpy as np
from typing import List, Tuple


class PriceValidator:
    """Validates a price series before returns are built."""

    def __init__(self, min_observations: int = 2, max_abs_log_return: float = 0.25):
        self.min_observations = min_observations

        # Blocking bounds
        self.validation_bounds = {
            'price': {'min': 0, 'max': 1e7},
        }
        # Single-day moves beyond this are reported but do not fail validation
        self.max_abs_log_return = max_abs_log_return

    def validate(self, prices: pd.Series) -> Tuple[bool, List[str]]:
        """
        Validates the price series.

        Args:
            prices: Series of adjusted closing prices indexed by date

        Returns:
            Tuple of (is_valid, list_of_issues)
        """
        issues = []
        warnings = []

        if len(prices) < self.min_observations:
            issues.append(
                f"Need at least {self.min_observations} prices, got {len(prices)}")
            return False, issues

        missing_count = int(prices.isna().sum())
        if missing_count > 0:
            issues.append(f"Price series has {missing_count} missing values")

        if isinstance(prices.index, pd.DatetimeIndex) and not prices.index.is_monotonic_increasing:
            issues.append("Dates are not in chronological order")

        issues.extend(self._validate_bounds(
            prices.dropna(),
            self.validation_bounds['price']['min'],
            self.validation_bounds['price']['max'],
            "price",
        ))
        # Zero passes the bound check above but breaks ln P
        zeros = prices[prices == 0]
        if not zeros.empty:
            issues.append(
                f"price: {len(zeros)} zero values "
                f"(first occurrence at index {zeros.index[0]})")

        valid = prices[prices > 0].dropna()
        if len(valid) > 1:
            log_returns = np.log(valid).diff().dropna()
            jumps = log_returns[log_returns.abs() > self.max_abs_log_return]
            if not jumps.empty:
                warnings.append(
                    f"Warning: {len(jumps)} daily moves above "
                    f"{self.max_abs_log_return:.0%} in log terms "
                    f"(first at {jumps.index[0]})")

        return len(issues) == 0, issues + warnings

    def _validate_bounds(self, series: pd.Series, min_val: float, max_val: float, name: str) -> List[str]:
        """Validates that values fall within expected bounds."""
        issues = []

        below_min = series[series < min_val]
        if not below_min.empty:
            issues.append(
                f"{name}: {len(below_min)} values below minimum of {min_val} "
                f"(first occurrence at index {below_min.index[0]})"
            )

        above_max = series[series > max_val]
        if not above_max.empty:
            issues.append(
                f"{name}: {len(above_max)} values above maximum of {max_val} "
                f"(first occurrence at index {above_max.index[0]})"
            )

        return issues
