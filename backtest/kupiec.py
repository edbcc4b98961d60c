"""
Backtesting procedures for VaR forecasts.

- Kupiec proportion-of-failures (unconditional coverage) test
- Christoffersen independence and conditional coverage tests
"""

from typing import Tuple, Union
import logging
import numpy as np
import pandas as pd
from scipy import stats
from scipy.special import xlogy

from garch.exceptions import MisalignedSeriesError
from garch.models import BacktestResult

logger = logging.getLogger(__name__)

CONVENTIONS = ('violation', 'coverage')

SeriesLike = Union[np.ndarray, pd.Series, list]


def exceedance_indicator(losses: SeriesLike, var: SeriesLike,
                         convention: str = 'violation') -> np.ndarray:
    """
    Day-by-day 0/1 indicator.

    'violation': 1 when loss_t > VaR_t
    'coverage':  1 when loss_t <= VaR_t
    """
    if convention not in CONVENTIONS:
        raise ValueError(f"Unknown convention '{convention}', expected one of {CONVENTIONS}")
    if isinstance(losses, pd.Series) and isinstance(var, pd.Series):
        if not losses.index.equals(var.index):
            raise MisalignedSeriesError("loss and VaR series have different indexes")
    loss_values = np.asarray(losses, dtype=float)
    var_values = np.asarray(var, dtype=float)
    if loss_values.shape != var_values.shape:
        raise MisalignedSeriesError(
            f"loss series has {loss_values.shape[0] if loss_values.ndim else 0} days, "
            f"VaR series has {var_values.shape[0] if var_values.ndim else 0}")
    hits = loss_values > var_values
    if convention == 'coverage':
        hits = ~hits
    return hits.astype(int)


def kupiec_pof(n_obs: int, n_hits: int, alpha: float) -> Tuple[float, float]:
    """
    POF = 2 ln[((1 - a_hat)/(1 - a))^(T - x) * (a_hat / a)^x], chi2(1) p-value.

    Computed in log space with 0 * ln 0 = 0, so x = 0 and x = T are finite.
    """
    if n_obs <= 0:
        raise ValueError("Backtest needs at least one observation")
    if not 0 <= n_hits <= n_obs:
        raise ValueError(f"Hit count {n_hits} outside [0, {n_obs}]")
    if not 0.0 < alpha < 1.0:
        raise ValueError(f"alpha must lie in (0, 1), got {alpha}")
    rate = n_hits / n_obs
    misses = n_obs - n_hits
    statistic = 2.0 * (
        xlogy(misses, 1.0 - rate) - misses * np.log(1.0 - alpha)
        + xlogy(n_hits, rate) - n_hits * np.log(alpha)
    )
    statistic = max(float(statistic), 0.0)
    return statistic, float(stats.chi2.sf(statistic, df=1))


def christoffersen_independence(hits: np.ndarray) -> Tuple[float, float]:
    """
    Markov-chain LR test that hits do not cluster, chi2(1) p-value.

    Returns nan when a transition row has no observations.
    """
    hits = np.asarray(hits, dtype=int)
    if len(hits) < 2:
        return np.nan, np.nan
    prev, curr = hits[:-1], hits[1:]
    n_00 = np.sum((prev == 0) & (curr == 0))
    n_01 = np.sum((prev == 0) & (curr == 1))
    n_10 = np.sum((prev == 1) & (curr == 0))
    n_11 = np.sum((prev == 1) & (curr == 1))
    if n_00 + n_01 == 0 or n_10 + n_11 == 0:
        return np.nan, np.nan

    p_01 = n_01 / (n_00 + n_01)
    p_11 = n_11 / (n_10 + n_11)
    p = (n_01 + n_11) / (n_00 + n_01 + n_10 + n_11)

    ll_null = xlogy(n_00 + n_10, 1.0 - p) + xlogy(n_01 + n_11, p)
    ll_alt = (xlogy(n_00, 1.0 - p_01) + xlogy(n_01, p_01)
              + xlogy(n_10, 1.0 - p_11) + xlogy(n_11, p_11))
    statistic = max(float(-2.0 * (ll_null - ll_alt)), 0.0)
    return statistic, float(stats.chi2.sf(statistic, df=1))


class VaRBacktester:
    """Compares realized losses with VaR forecasts at significance alpha"""

    def __init__(self, alpha: float = 0.01, convention: str = 'violation'):
        if convention not in CONVENTIONS:
            raise ValueError(f"Unknown convention '{convention}', expected one of {CONVENTIONS}")
        if not 0.0 < alpha < 1.0:
            raise ValueError(f"alpha must lie in (0, 1), got {alpha}")
        self.alpha = alpha
        self.convention = convention
        self.logger = logging.getLogger('backtest.kupiec')

    @property
    def nominal_rate(self) -> float:
        """Expected share of indicator ones under correct coverage"""
        return self.alpha if self.convention == 'violation' else 1.0 - self.alpha

    def evaluate(self, hits: np.ndarray) -> BacktestResult:
        """Run the tests on a ready-made 0/1 indicator sequence"""
        hits = np.asarray(hits, dtype=int)
        if hits.ndim != 1 or len(hits) == 0:
            raise ValueError("Indicator sequence must be a non-empty 1-D array")
        if np.any((hits != 0) & (hits != 1)):
            raise ValueError("Indicator sequence must contain only 0 and 1")

        n_obs = len(hits)
        n_hits = int(hits.sum())
        pof, p_value = kupiec_pof(n_obs, n_hits, self.nominal_rate)

        # Independence is always tested on violations
        violations = hits if self.convention == 'violation' else 1 - hits
        ind, ind_p = christoffersen_independence(violations)
        if np.isnan(ind):
            cc, cc_p = np.nan, np.nan
        else:
            cc = pof + ind
            cc_p = float(stats.chi2.sf(cc, df=2))

        result = BacktestResult(
            n_obs=n_obs,
            n_exceedances=n_hits,
            exceedance_rate=n_hits / n_obs,
            alpha=self.alpha,
            pof_statistic=pof,
            p_value=p_value,
            convention=self.convention,
            independence_statistic=ind,
            independence_p_value=ind_p,
            cc_statistic=cc,
            cc_p_value=cc_p,
        )
        self.logger.info(
            f"Kupiec POF ({self.convention}): {n_hits}/{n_obs} "
            f"(rate {result.exceedance_rate:.4f} vs {self.nominal_rate:.4f}), "
            f"LR={pof:.4f}, p={p_value:.4f}"
        )
        return result

    def run(self, losses: SeriesLike, var: SeriesLike) -> BacktestResult:
        """
        Backtest day-aligned realized losses against VaR forecasts

        Raises:
            MisalignedSeriesError: lengths or indexes differ
        """
        hits = exceedance_indicator(losses, var, self.convention)
        return self.evaluate(hits)
