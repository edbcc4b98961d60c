from typing import Dict, List, Optional, Union
import logging
import numpy as np
import pandas as pd

from evt.tail_estimator import TailEstimator
from .checkpoint import CheckpointManager
from .distributions import get_distribution
from .estimator import GARCHEstimator
from .exceptions import InvalidInputError, NonConvergenceError, NonStationaryModelError
from .models import FittedModel, ModelSpec, ReturnSeries, RollingForecast, TailModel, VaRForecast

logger = logging.getLogger(__name__)


class VaRForecaster:
    """GARCH-EVT Value-at-Risk and expected shortfall forecasts"""

    def __init__(self, alpha: float = 0.01,
                 estimator: Optional[GARCHEstimator] = None,
                 tail_estimator: Optional[TailEstimator] = None,
                 checkpoint_manager: Optional[CheckpointManager] = None,
                 progress=None):
        """
        Args:
            alpha: VaR significance level (0.01 gives the 99% VaR)
            estimator: GARCH estimator used by rolling refits
            tail_estimator: GPD estimator used by rolling refits
            checkpoint_manager: Optional store for rolling refits
            progress: Optional ProgressMonitor for rolling forecasts
        """
        if not 0.0 < alpha < 1.0:
            raise ValueError(f"alpha must lie in (0, 1), got {alpha}")
        self.alpha = alpha
        self.estimator = estimator if estimator is not None else GARCHEstimator()
        self.tail_estimator = tail_estimator if tail_estimator is not None else TailEstimator()
        self.checkpoint_manager = checkpoint_manager
        self.progress = progress
        self.logger = logging.getLogger('garch.forecaster')

    @property
    def level(self) -> float:
        return 1.0 - self.alpha

    @staticmethod
    def _require_stationary(fitted: FittedModel):
        if not fitted.is_stationary:
            raise NonStationaryModelError(
                f"persistence {fitted.persistence:.4f} >= 1, "
                f"variance forecasts do not revert to a finite level",
                spec=fitted.spec)

    @staticmethod
    def variance_decomposition(fitted: FittedModel) -> Dict[str, float]:
        """
        kappa, lambda and theta of
        E[sigma2_{t+1}] = kappa*theta + (1-kappa)[(1-lambda) a_t^2 + lambda sigma2_t]
        """
        persistence = fitted.persistence
        return {
            'kappa': 1.0 - persistence,
            'lambda': float(np.sum(fitted.beta) / persistence) if persistence > 0 else 0.0,
            'theta': fitted.unconditional_variance(),
            'persistence': persistence,
        }

    def variance_forecast(self, fitted: FittedModel, horizon: int = 1) -> np.ndarray:
        """E[sigma2_{T+k} | F_T] for k = 1..horizon"""
        self._require_stationary(fitted)
        if horizon < 1:
            raise ValueError(f"horizon must be >= 1, got {horizon}")
        alpha, beta = fitted.alpha, fitted.beta
        n = fitted.n_obs
        a2 = np.concatenate((fitted.residuals ** 2, np.zeros(horizon)))
        s2 = np.concatenate((fitted.conditional_variance, np.zeros(horizon)))
        for t in range(n, n + horizon):
            value = fitted.omega
            for i in range(1, len(alpha) + 1):
                value += alpha[i - 1] * a2[t - i]
            for j in range(1, len(beta) + 1):
                value += beta[j - 1] * s2[t - j]
            s2[t] = value
            # future squared shocks are replaced by their expectation
            a2[t] = value
        return s2[n:]

    def mean_forecast(self, fitted: FittedModel, horizon: int = 1) -> np.ndarray:
        """E[r_{T+k} | F_T] for k = 1..horizon"""
        mu, ar, ma = fitted.mu, fitted.ar, fitted.ma
        n = fitted.n_obs
        r = np.concatenate((fitted.returns, np.zeros(horizon)))
        a = np.concatenate((fitted.residuals, np.zeros(horizon)))
        for t in range(n, n + horizon):
            value = mu
            for i in range(1, len(ar) + 1):
                value += ar[i - 1] * (r[t - i] - mu)
            for j in range(1, len(ma) + 1):
                value += ma[j - 1] * a[t - j]
            r[t] = value
        return r[n:]

    def _assemble(self, fitted: FittedModel, horizon: int,
                  quantile: float, tail_mean: float) -> List[VaRForecast]:
        means = self.mean_forecast(fitted, horizon)
        sigmas = np.sqrt(self.variance_forecast(fitted, horizon))
        return [
            VaRForecast(
                horizon=h + 1,
                level=self.level,
                mean=float(means[h]),
                sigma=float(sigmas[h]),
                quantile=float(quantile),
                var=float(means[h] + sigmas[h] * quantile),
                es=float(means[h] + sigmas[h] * tail_mean),
            )
            for h in range(horizon)
        ]

    def forecast(self, fitted: FittedModel, tail: TailModel,
                 horizon: int = 1) -> List[VaRForecast]:
        """
        VaR = mu_hat + sigma_hat * q_{1-alpha}(GPD), one entry per step

        Raises:
            NonStationaryModelError: fitted persistence >= 1
        """
        q = tail.quantile(self.level)
        es = tail.expected_shortfall(self.level)
        if not np.isfinite(es):
            self.logger.warning(f"GPD shape xi={tail.xi:.4f} >= 1, expected shortfall is infinite")
        return self._assemble(fitted, horizon, q, es)

    def parametric(self, fitted: FittedModel, horizon: int = 1) -> List[VaRForecast]:
        """Same forecast using the fitted innovation distribution instead of the GPD"""
        dist = get_distribution(fitted.spec.distribution)
        params = fitted.dist_params
        q = float(dist.ppf(self.level, params))
        es = dist.tail_expectation(self.level, params)
        return self._assemble(fitted, horizon, q, es)

    # ------------------------------------------------------------------
    # Rolling out-of-sample forecasts
    # ------------------------------------------------------------------
    def _refit(self, history: np.ndarray, spec: ModelSpec, origin: int,
               previous: Optional[Dict[str, float]]):
        key = f"{spec.label}_{origin:06d}"
        if self.checkpoint_manager is not None:
            saved = self.checkpoint_manager.load_checkpoint(key)
            if saved is not None:
                fitted = self.estimator.filter(history, spec, saved['params'])
                return fitted, saved['tail']

        try:
            start = ([previous[name] for name in spec.param_names()]
                     if previous is not None else None)
            fitted = self.estimator.fit(history, spec, starting_values=start)
        except NonConvergenceError as e:
            if previous is None:
                raise
            self.logger.warning(f"Refit at origin {origin} failed, keeping previous parameters: {e}")
            fitted = self.estimator.filter(history, spec, previous)
        else:
            if not fitted.is_stationary and previous is not None:
                self.logger.warning(
                    f"Refit at origin {origin} is non-stationary "
                    f"(persistence {fitted.persistence:.4f}), keeping previous parameters")
                fitted = self.estimator.filter(history, spec, previous)

        tail = self.tail_estimator.fit(fitted.standardized_residuals)
        if self.checkpoint_manager is not None:
            self.checkpoint_manager.save_checkpoint(key, {'params': fitted.params, 'tail': tail})
        return fitted, tail

    def rolling(self, series: Union[ReturnSeries, np.ndarray, pd.Series], spec: ModelSpec,
                window_fraction: float = 0.1, refit_every: int = 1) -> RollingForecast:
        """
        One-step VaR for each of the last round(N * window_fraction) days.

        The forecast for day t is built from series[:t] only. The model is
        re-estimated every refit_every days and re-filtered with the latest
        parameters in between.
        """
        dates = None
        if isinstance(series, ReturnSeries):
            values, dates = np.asarray(series.values, dtype=float), series.dates
        elif isinstance(series, pd.Series):
            values, dates = series.to_numpy(dtype=float), series.index
        else:
            values = np.asarray(series, dtype=float)

        n = len(values)
        m = int(round(n * window_fraction))
        if m < 1:
            raise InvalidInputError(f"window_fraction {window_fraction} leaves no out-of-sample days")
        if refit_every < 1:
            raise ValueError(f"refit_every must be >= 1, got {refit_every}")
        start = n - m
        if start < self.estimator.min_observations:
            raise InvalidInputError(
                f"Insufficient in-sample observations: {start} < {self.estimator.min_observations}")

        self.logger.info(
            f"\nRolling VaR setup:"
            f"\n  Total observations: {n}"
            f"\n  Out-of-sample days: {m}"
            f"\n  Model: {spec.label}"
            f"\n  Refit every: {refit_every} days"
        )

        origins, means, sigmas, var, es = [], [], [], [], []
        params, tail = None, None
        for k, t in enumerate(range(start, n)):
            history = values[:t]
            if k % refit_every == 0:
                fitted, tail = self._refit(history, spec, t - 1, params)
                params = fitted.params
            else:
                fitted = self.estimator.filter(history, spec, params)

            step = self.forecast(fitted, tail, horizon=1)[0]
            origins.append(t - 1)
            means.append(step.mean)
            sigmas.append(step.sigma)
            var.append(step.var)
            es.append(step.es)

            if self.progress is not None:
                self.progress.update(1)
            if (k + 1) % 100 == 0:
                self.logger.info(f"Completed {k + 1}/{m} rolling forecasts")

        index = dates[start:] if dates is not None else pd.RangeIndex(start, n)
        return RollingForecast(
            dates=index,
            origins=np.asarray(origins),
            mean=np.asarray(means),
            sigma=np.asarray(sigmas),
            var=np.asarray(var),
            es=np.asarray(es),
            realized=values[start:],
            spec=spec,
            level=self.level,
            refit_every=refit_every,
        )
