from typing import Dict, List, Optional, Sequence, Tuple, Union
import logging
import numpy as np
from scipy.signal import lfilter, lfiltic

from .distributions import get_distribution
from .exceptions import InvalidInputError, NonConvergenceError
from .models import FittedModel, ModelSpec, ReturnSeries
from .optimizer import Optimizer, ScipyOptimizer

logger = logging.getLogger(__name__)

ArrayLike = Union[ReturnSeries, Sequence[float], np.ndarray]

# Upper bound on each ARCH / GARCH coefficient
COEF_UPPER = 0.9999
# Bound on AR / MA coefficients
ARMA_BOUND = 0.99


class GARCHEstimator:
    """Maximum likelihood estimation of ARMA(p,q)-GARCH(r,s) models"""

    def __init__(self, optimizer: Optional[Optimizer] = None,
                 min_observations: int = 100):
        """
        Initialize estimator

        Args:
            optimizer: Minimiser used for the negative log-likelihood
                (defaults to ScipyOptimizer)
            min_observations: Minimum number of returns required for a fit
        """
        self.optimizer = optimizer if optimizer is not None else ScipyOptimizer()
        self.min_observations = min_observations
        self.logger = logging.getLogger('garch.estimator')

    # ------------------------------------------------------------------
    # Recursions
    # ------------------------------------------------------------------
    @staticmethod
    def arma_residuals(returns: np.ndarray, mu: float,
                       ar: np.ndarray, ma: np.ndarray) -> np.ndarray:
        """
        Shocks a_t of r_t = mu + sum(ar_i (r_{t-i} - mu)) + sum(ma_j a_{t-j}) + a_t.

        Pre-sample deviations and shocks are zero.
        """
        y = returns - mu
        b = np.concatenate(([1.0], -np.asarray(ar, dtype=float)))
        a = np.concatenate(([1.0], np.asarray(ma, dtype=float)))
        return lfilter(b, a, y)

    @staticmethod
    def variance_recursion(shocks: np.ndarray, omega: float,
                           alpha: np.ndarray, beta: np.ndarray,
                           seed_variance: Optional[float] = None) -> np.ndarray:
        """
        sigma2_t = omega + sum(alpha_i a_{t-i}^2) + sum(beta_j sigma2_{t-j}).

        The first max(r, s) variances are set to seed_variance (sample
        variance of the shocks by default).
        """
        n = len(shocks)
        r, s = len(alpha), len(beta)
        m = max(r, s)
        if seed_variance is None:
            seed_variance = float(np.mean(shocks ** 2))

        sigma2 = np.empty(n)
        if m == 0:
            sigma2.fill(omega)
            return sigma2

        m = min(m, n)
        sigma2[:m] = seed_variance
        if m == n:
            return sigma2

        a2 = shocks ** 2
        drive = np.full(n - m, omega, dtype=float)
        for i in range(1, r + 1):
            drive += alpha[i - 1] * a2[m - i:n - i]

        if s > 0:
            denom = np.concatenate(([1.0], -np.asarray(beta, dtype=float)))
            zi = lfiltic([1.0], denom, y=np.full(s, seed_variance))
            sigma2[m:] = lfilter([1.0], denom, drive, zi=zi)[0]
        else:
            sigma2[m:] = drive
        return sigma2

    # ------------------------------------------------------------------
    # Parameter handling
    # ------------------------------------------------------------------
    @staticmethod
    def unpack(spec: ModelSpec, theta: Sequence[float]) -> Dict[str, float]:
        names = spec.param_names()
        if len(theta) != len(names):
            raise ValueError(f"{spec.label} expects {len(names)} parameters, got {len(theta)}")
        return {name: float(value) for name, value in zip(names, theta)}

    @staticmethod
    def _split(spec: ModelSpec, theta: np.ndarray) -> Tuple:
        idx = 0
        mu = theta[idx]
        idx += 1
        ar = theta[idx:idx + spec.p]
        idx += spec.p
        ma = theta[idx:idx + spec.q]
        idx += spec.q
        omega = theta[idx]
        idx += 1
        alpha = theta[idx:idx + spec.r]
        idx += spec.r
        beta = theta[idx:idx + spec.s]
        idx += spec.s
        dist_params = theta[idx:]
        return mu, ar, ma, omega, alpha, beta, dist_params

    def _bounds(self, returns: np.ndarray, spec: ModelSpec) -> List[Tuple[float, float]]:
        var = float(np.var(returns))
        bounds = [(None, None)]
        bounds += [(-ARMA_BOUND, ARMA_BOUND)] * (spec.p + spec.q)
        bounds.append((1e-6 * var, 10.0 * var))
        bounds += [(0.0, COEF_UPPER)] * (spec.r + spec.s)
        bounds += list(get_distribution(spec.distribution).bounds)
        return bounds

    def _get_starting_values(self, returns: np.ndarray, spec: ModelSpec) -> np.ndarray:
        """Reasonable starting values with exponentially decaying lag weights"""
        var = float(np.var(returns))
        if spec.s > 0:
            alpha_total = 0.05 if spec.r > 0 else 0.0
            beta_total = 0.90
        else:
            alpha_total = 0.30 if spec.r > 0 else 0.0
            beta_total = 0.0

        def decay(n, total):
            if n == 0:
                return np.zeros(0)
            weights = np.exp(-np.arange(n))
            return total * weights / weights.sum()

        omega = var * (1.0 - alpha_total - beta_total)
        theta = [np.mean(returns)]
        theta += [0.0] * (spec.p + spec.q)
        theta.append(omega)
        theta += list(decay(spec.r, alpha_total))
        theta += list(decay(spec.s, beta_total))
        theta += list(get_distribution(spec.distribution).starting_values)
        return np.asarray(theta, dtype=float)

    # ------------------------------------------------------------------
    # Likelihood
    # ------------------------------------------------------------------
    def _filter_arrays(self, returns: np.ndarray, spec: ModelSpec,
                       theta: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        mu, ar, ma, omega, alpha, beta, _ = self._split(spec, theta)
        shocks = self.arma_residuals(returns, mu, ar, ma)
        sigma2 = self.variance_recursion(shocks, omega, alpha, beta)
        return shocks, sigma2

    def log_likelihood(self, theta: Sequence[float], returns: np.ndarray,
                       spec: ModelSpec) -> float:
        """sum_t [ln f(a_t / sigma_t) - 0.5 ln sigma2_t]"""
        theta = np.asarray(theta, dtype=float)
        with np.errstate(all='ignore'):
            shocks, sigma2 = self._filter_arrays(returns, spec, theta)
            if not np.all(np.isfinite(sigma2)) or np.any(sigma2 <= 0):
                return -np.inf
            dist = get_distribution(spec.distribution)
            dist_params = self._split(spec, theta)[-1]
            z = shocks / np.sqrt(sigma2)
            ll = np.sum(dist.logpdf(z, dist_params)) - 0.5 * np.sum(np.log(sigma2))
        return float(ll) if np.isfinite(ll) else -np.inf

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def _prepare(self, returns: ArrayLike) -> Tuple[np.ndarray, Optional[object]]:
        dates = None
        if isinstance(returns, ReturnSeries):
            dates = returns.dates
            values = np.asarray(returns.values, dtype=float)
        else:
            values = np.asarray(returns, dtype=float)
        if values.ndim != 1:
            raise InvalidInputError(f"Returns must be one-dimensional, got shape {values.shape}")
        if len(values) < self.min_observations:
            raise InvalidInputError(
                f"Insufficient observations: {len(values)} < {self.min_observations}")
        if not np.all(np.isfinite(values)):
            raise InvalidInputError("Returns contain missing values")
        return values, dates

    def _build_result(self, values: np.ndarray, dates, spec: ModelSpec,
                      theta: np.ndarray, loglik: float, converged: bool,
                      n_iterations: int) -> FittedModel:
        shocks, sigma2 = self._filter_arrays(values, spec, theta)
        return FittedModel(
            spec=spec,
            params=self.unpack(spec, theta),
            loglik=loglik,
            returns=values,
            conditional_mean=values - shocks,
            conditional_variance=sigma2,
            residuals=shocks,
            standardized_residuals=shocks / np.sqrt(sigma2),
            converged=converged,
            n_iterations=n_iterations,
            dates=dates,
        )

    def fit(self, returns: ArrayLike, spec: ModelSpec,
            starting_values: Optional[Sequence[float]] = None) -> FittedModel:
        """
        Estimate a single model specification

        Args:
            returns: Percent returns (ReturnSeries or array)
            spec: Model order and innovation distribution
            starting_values: Optional initial parameter vector in
                spec.param_names() order

        Returns:
            FittedModel

        Raises:
            NonConvergenceError: optimizer failed or likelihood is not finite
        """
        values, dates = self._prepare(returns)
        x0 = (np.asarray(starting_values, dtype=float) if starting_values is not None
              else self._get_starting_values(values, spec))
        if len(x0) != spec.n_params:
            raise ValueError(f"{spec.label} expects {spec.n_params} starting values, got {len(x0)}")

        result = self.optimizer.maximize(
            lambda theta: self.log_likelihood(theta, values, spec),
            x0,
            bounds=self._bounds(values, spec),
        )

        if not result.converged or not np.isfinite(result.fun):
            raise NonConvergenceError(
                f"optimizer failed after {result.n_iterations} iterations: {result.message}",
                spec=spec)

        fitted = self._build_result(values, dates, spec, result.x, result.fun,
                                    converged=True, n_iterations=result.n_iterations)

        self.logger.info(
            f"Fitted {spec.label}: loglik={fitted.loglik:.4f}, "
            f"persistence={fitted.persistence:.4f}, iterations={result.n_iterations}"
        )
        if not fitted.is_stationary:
            self.logger.warning(
                f"{spec.label} is non-stationary (persistence {fitted.persistence:.4f} >= 1)")
        return fitted

    def filter(self, returns: ArrayLike, spec: ModelSpec,
               params: Union[Dict[str, float], Sequence[float]]) -> FittedModel:
        """Apply fixed parameters to (new) data without re-estimation"""
        values, dates = self._prepare(returns)
        if isinstance(params, dict):
            theta = np.array([params[name] for name in spec.param_names()], dtype=float)
        else:
            theta = np.asarray(params, dtype=float)
        loglik = self.log_likelihood(theta, values, spec)
        return self._build_result(values, dates, spec, theta, loglik,
                                  converged=True, n_iterations=0)

    def simulate(self, spec: ModelSpec, params: Dict[str, float], n_obs: int,
                 random_seed: Optional[int] = None, burn: int = 500) -> np.ndarray:
        """Simulate an ARMA-GARCH path (used for testing and scenario generation)"""
        rng = np.random.default_rng(random_seed)
        theta = np.array([params[name] for name in spec.param_names()], dtype=float)
        mu, ar, ma, omega, alpha, beta, dist_params = self._split(spec, theta)
        persistence = np.sum(alpha) + np.sum(beta)
        if persistence >= 1:
            raise ValueError(f"Cannot simulate non-stationary model (persistence {persistence:.4f})")

        total = n_obs + burn
        z = get_distribution(spec.distribution).rvs(total, dist_params, random_state=rng)
        uncond = omega / (1.0 - persistence)
        m = max(spec.p, spec.q, spec.r, spec.s)
        r = np.full(total + m, mu)
        a = np.zeros(total + m)
        sigma2 = np.full(total + m, uncond)
        for t in range(m, total + m):
            var_t = omega
            for i in range(1, spec.r + 1):
                var_t += alpha[i - 1] * a[t - i] ** 2
            for j in range(1, spec.s + 1):
                var_t += beta[j - 1] * sigma2[t - j]
            sigma2[t] = var_t
            a[t] = np.sqrt(var_t) * z[t - m]
            mean_t = mu
            for i in range(1, spec.p + 1):
                mean_t += ar[i - 1] * (r[t - i] - mu)
            for j in range(1, spec.q + 1):
                mean_t += ma[j - 1] * a[t - j]
            r[t] = mean_t + a[t]
        return r[m + burn:]
