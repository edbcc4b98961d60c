"""
Peaks-over-threshold tail model for standardized GARCH residuals.

Exceedances y = z - u of the residuals z above an empirical threshold u
are modelled with the generalized Pareto distribution

    G(y) = 1 - (1 + xi * y / beta)^(-1/xi)     xi != 0
    G(y) = 1 - exp(-y / beta)                  xi == 0

fitted by maximum likelihood.
"""

from typing import Optional, Sequence
import logging
import numpy as np
from scipy.stats import genpareto

from garch.exceptions import InsufficientTailDataError, NonConvergenceError
from garch.models import TailModel
from garch.optimizer import Optimizer, ScipyOptimizer

logger = logging.getLogger(__name__)

XI_BOUNDS = (-0.5, 1.5)


class TailEstimator:
    """Fits a GPD to the upper tail of a residual sample"""

    def __init__(self, tail_fraction: float = 0.10, min_exceedances: int = 20,
                 optimizer: Optional[Optimizer] = None):
        """
        Args:
            tail_fraction: Share of observations above the threshold; the
                threshold is the empirical (1 - tail_fraction) quantile
            min_exceedances: Fewest exceedances accepted for a fit
            optimizer: Minimiser for the GPD negative log-likelihood
        """
        if not 0.0 < tail_fraction < 1.0:
            raise ValueError(f"tail_fraction must lie in (0, 1), got {tail_fraction}")
        self.tail_fraction = tail_fraction
        self.min_exceedances = min_exceedances
        self.optimizer = optimizer if optimizer is not None else ScipyOptimizer()
        self.logger = logging.getLogger('evt.tail_estimator')

    @staticmethod
    def gpd_log_likelihood(theta: Sequence[float], excesses: np.ndarray) -> float:
        xi, beta = theta
        if beta <= 0:
            return -np.inf
        with np.errstate(all='ignore'):
            ll = np.sum(genpareto.logpdf(excesses, c=xi, scale=beta))
        return float(ll) if np.isfinite(ll) else -np.inf

    @staticmethod
    def _starting_values(excesses: np.ndarray) -> np.ndarray:
        """Method-of-moments estimates, moved inside the feasible region"""
        mean = float(np.mean(excesses))
        var = float(np.var(excesses))
        if var <= 0:
            return np.array([0.0, max(mean, 1e-3)])
        ratio = mean ** 2 / var
        xi = float(np.clip(0.5 * (1.0 - ratio), XI_BOUNDS[0] + 0.05, XI_BOUNDS[1] - 0.05))
        beta = 0.5 * mean * (1.0 + ratio)
        if xi < 0 and np.max(excesses) >= -beta / xi:
            xi = 0.0
            beta = mean
        return np.array([xi, beta])

    def fit(self, residuals) -> TailModel:
        """
        Fit the GPD to residuals above the empirical threshold

        Raises:
            InsufficientTailDataError: fewer than min_exceedances exceedances
            NonConvergenceError: likelihood maximisation failed
        """
        z = np.asarray(residuals, dtype=float)
        z = z[np.isfinite(z)]
        n = len(z)
        if n == 0:
            raise InsufficientTailDataError("no finite residuals supplied")

        threshold = float(np.quantile(z, 1.0 - self.tail_fraction))
        excesses = z[z > threshold] - threshold
        n_exc = len(excesses)
        if n_exc < self.min_exceedances:
            raise InsufficientTailDataError(
                f"only {n_exc} exceedances above u={threshold:.4f} "
                f"(minimum {self.min_exceedances})")

        result = self.optimizer.maximize(
            lambda theta: self.gpd_log_likelihood(theta, excesses),
            self._starting_values(excesses),
            bounds=[XI_BOUNDS, (1e-8, None)],
        )
        if not result.converged or not np.isfinite(result.fun):
            raise NonConvergenceError(f"GPD fit failed: {result.message}", stage='tail')

        xi, beta = (float(v) for v in result.x)
        tail = TailModel(
            xi=xi,
            beta=beta,
            threshold=threshold,
            n_total=n,
            n_exceedances=n_exc,
            loglik=float(result.fun),
        )
        self.logger.info(
            f"GPD tail fit: xi={xi:.4f}, beta={beta:.4f}, u={threshold:.4f}, "
            f"exceedances={n_exc}/{n}"
        )
        return tail

    def mean_excess(self, residuals, thresholds: Optional[Sequence[float]] = None):
        """
        Empirical mean excess e(u) = E[Z - u | Z > u] over a threshold grid.

        Linearity of e(u) above a threshold supports the GPD approximation.
        """
        z = np.sort(np.asarray(residuals, dtype=float))
        if thresholds is None:
            thresholds = z[:-self.min_exceedances] if len(z) > self.min_exceedances else z[:0]
        values = []
        for u in thresholds:
            exc = z[z > u] - u
            values.append(exc.mean() if len(exc) else np.nan)
        return np.asarray(thresholds, dtype=float), np.asarray(values)
