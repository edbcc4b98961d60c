"""Value objects passed between the pipeline stages."""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import numpy as np
import pandas as pd

from .distributions import get_distribution
from .exceptions import NonStationaryModelError


def _frozen_array(values, dtype=float) -> np.ndarray:
    """Copy values into a read-only ndarray"""
    arr = np.array(values, dtype=dtype, copy=True)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True, eq=False)
class ReturnSeries:
    """Risk-free adjusted log-returns in percent"""
    values: np.ndarray
    dates: Optional[pd.DatetimeIndex] = None
    risk_free_rate: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, 'values', _frozen_array(self.values))
        if self.dates is not None and len(self.dates) != len(self.values):
            raise ValueError("dates and values must have the same length")

    def __len__(self) -> int:
        return len(self.values)

    def losses(self) -> np.ndarray:
        """Negated returns (positive numbers are losses)"""
        return _frozen_array(-self.values)

    def to_series(self) -> pd.Series:
        index = self.dates if self.dates is not None else pd.RangeIndex(len(self.values))
        return pd.Series(np.asarray(self.values), index=index, name='returns')


@dataclass(frozen=True)
class ModelSpec:
    """ARMA(p,q)-GARCH(r,s) order plus innovation distribution"""
    p: int
    q: int
    r: int
    s: int
    distribution: str = 'norm'

    def __post_init__(self):
        for name in ('p', 'q', 'r', 's'):
            value = getattr(self, name)
            if int(value) != value or value < 0:
                raise ValueError(f"Order {name} must be a non-negative integer, got {value}")
        try:
            get_distribution(self.distribution)
        except KeyError as e:
            raise ValueError(e.args[0]) from None

    @property
    def label(self) -> str:
        return (f"ARMA({self.p},{self.q})-GARCH({self.r},{self.s})"
                f"-{self.distribution}")

    def param_names(self) -> List[str]:
        """Parameter names in the order used by the estimator"""
        names = ['mu']
        names += [f'ar{i}' for i in range(1, self.p + 1)]
        names += [f'ma{j}' for j in range(1, self.q + 1)]
        names.append('omega')
        names += [f'alpha{i}' for i in range(1, self.r + 1)]
        names += [f'beta{j}' for j in range(1, self.s + 1)]
        names += list(get_distribution(self.distribution).param_names)
        return names

    @property
    def n_params(self) -> int:
        return len(self.param_names())

    def __str__(self) -> str:
        return self.label


@dataclass(frozen=True)
class InformationCriteria:
    """Likelihood-based model ranking scores (smaller is better)"""
    aic: float
    aicc: float
    sbc: float
    hqc: float

    @classmethod
    def from_loglik(cls, loglik: float, k: int, n: int) -> 'InformationCriteria':
        if n - k - 1 <= 0:
            raise ValueError(f"Need more observations ({n}) than parameters + 1 ({k + 1})")
        deviance = -2.0 * loglik
        return cls(
            aic=deviance + 2.0 * k,
            aicc=deviance + 2.0 * k * n / (n - k - 1),
            sbc=deviance + k * np.log(n),
            hqc=deviance + 2.0 * k * np.log(np.log(n)),
        )

    def ranking_key(self) -> Tuple[float, float, float]:
        return (self.aicc, self.sbc, self.hqc)


@dataclass(frozen=True, eq=False)
class FittedModel:
    """Maximum likelihood fit of a ModelSpec to a return series"""
    spec: ModelSpec
    params: Dict[str, float]
    loglik: float
    returns: np.ndarray
    conditional_mean: np.ndarray
    conditional_variance: np.ndarray
    residuals: np.ndarray
    standardized_residuals: np.ndarray
    converged: bool = True
    n_iterations: int = 0
    dates: Optional[pd.DatetimeIndex] = None

    def __post_init__(self):
        object.__setattr__(self, 'params', dict(self.params))
        for name in ('returns', 'conditional_mean', 'conditional_variance',
                     'residuals', 'standardized_residuals'):
            object.__setattr__(self, name, _frozen_array(getattr(self, name)))

    @property
    def n_obs(self) -> int:
        return len(self.returns)

    @property
    def mu(self) -> float:
        return self.params['mu']

    @property
    def omega(self) -> float:
        return self.params['omega']

    @property
    def ar(self) -> np.ndarray:
        return np.array([self.params[f'ar{i}'] for i in range(1, self.spec.p + 1)])

    @property
    def ma(self) -> np.ndarray:
        return np.array([self.params[f'ma{j}'] for j in range(1, self.spec.q + 1)])

    @property
    def alpha(self) -> np.ndarray:
        return np.array([self.params[f'alpha{i}'] for i in range(1, self.spec.r + 1)])

    @property
    def beta(self) -> np.ndarray:
        return np.array([self.params[f'beta{j}'] for j in range(1, self.spec.s + 1)])

    @property
    def dist_params(self) -> Dict[str, float]:
        names = get_distribution(self.spec.distribution).param_names
        return {name: self.params[name] for name in names}

    @property
    def persistence(self) -> float:
        return float(np.sum(self.alpha) + np.sum(self.beta))

    @property
    def is_stationary(self) -> bool:
        return self.persistence < 1.0

    @property
    def criteria(self) -> InformationCriteria:
        return InformationCriteria.from_loglik(self.loglik, self.spec.n_params, self.n_obs)

    @property
    def conditional_volatility(self) -> np.ndarray:
        return np.sqrt(self.conditional_variance)

    def unconditional_variance(self) -> float:
        """theta = omega / (1 - sum(alpha) - sum(beta))"""
        if not self.is_stationary:
            raise NonStationaryModelError(
                f"persistence {self.persistence:.4f} >= 1, unconditional variance undefined",
                spec=self.spec)
        return self.omega / (1.0 - self.persistence)

    def params_series(self) -> pd.Series:
        return pd.Series(self.params, name=self.spec.label)


@dataclass(frozen=True)
class TailModel:
    """Generalized Pareto fit to standardized residual exceedances"""
    xi: float
    beta: float
    threshold: float
    n_total: int
    n_exceedances: int
    loglik: float = float('nan')

    @property
    def exceedance_probability(self) -> float:
        return self.n_exceedances / self.n_total

    def quantile(self, p: float) -> float:
        """Tail quantile q_p for p at or above the threshold's level"""
        if not 0.0 < p < 1.0:
            raise ValueError(f"Quantile level must lie in (0, 1), got {p}")
        if p < 1.0 - self.exceedance_probability:
            raise ValueError(
                f"Level {p} lies below the threshold level "
                f"{1.0 - self.exceedance_probability:.4f}")
        ratio = (self.n_total / self.n_exceedances) * (1.0 - p)
        if abs(self.xi) < 1e-12:
            return self.threshold - self.beta * np.log(ratio)
        return self.threshold + (self.beta / self.xi) * (ratio ** (-self.xi) - 1.0)

    def expected_shortfall(self, p: float) -> float:
        """Tail-conditional expectation E[Z | Z > q_p]"""
        q = self.quantile(p)
        if self.xi >= 1.0:
            return float('inf')
        return q / (1.0 - self.xi) + (self.beta - self.xi * self.threshold) / (1.0 - self.xi)


@dataclass(frozen=True)
class VaRForecast:
    """VaR and expected shortfall for one forecast step"""
    horizon: int
    level: float
    mean: float
    sigma: float
    quantile: float
    var: float
    es: float
    date: Optional[datetime] = None


@dataclass(frozen=True, eq=False)
class RollingForecast:
    """Out-of-sample one-step VaR series, each conditioned on data before its day"""
    dates: pd.Index
    origins: np.ndarray
    mean: np.ndarray
    sigma: np.ndarray
    var: np.ndarray
    es: np.ndarray
    realized: np.ndarray
    spec: ModelSpec
    level: float
    refit_every: int = 1

    def __post_init__(self):
        object.__setattr__(self, 'origins', _frozen_array(self.origins, dtype=int))
        for name in ('mean', 'sigma', 'var', 'es', 'realized'):
            object.__setattr__(self, name, _frozen_array(getattr(self, name)))

    def __len__(self) -> int:
        return len(self.var)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            'origin': self.origins,
            'mean': self.mean,
            'sigma': self.sigma,
            'var': self.var,
            'es': self.es,
            'realized_loss': self.realized,
        }, index=self.dates)


@dataclass(frozen=True)
class BacktestResult:
    """Kupiec POF and Christoffersen test outcome"""
    n_obs: int
    n_exceedances: int
    exceedance_rate: float
    alpha: float
    pof_statistic: float
    p_value: float
    convention: str = 'violation'
    independence_statistic: float = float('nan')
    independence_p_value: float = float('nan')
    cc_statistic: float = float('nan')
    cc_p_value: float = float('nan')

    def reject(self, level: float = 0.05) -> bool:
        """True when correct coverage is rejected at the given test level"""
        return self.p_value < level

    def to_dict(self) -> Dict[str, float]:
        return {
            'n_obs': self.n_obs,
            'n_exceedances': self.n_exceedances,
            'exceedance_rate': self.exceedance_rate,
            'alpha': self.alpha,
            'pof_statistic': self.pof_statistic,
            'p_value': self.p_value,
            'convention': self.convention,
            'independence_statistic': self.independence_statistic,
            'independence_p_value': self.independence_p_value,
            'cc_statistic': self.cc_statistic,
            'cc_p_value': self.cc_p_value,
        }


@dataclass(frozen=True)
class SelectionRecord:
    """One row of the model comparison table"""
    order: int
    spec: ModelSpec
    criteria: Optional[InformationCriteria] = None
    loglik: float = float('nan')
    is_stationary: Optional[bool] = None
    error: Optional[str] = None

    @property
    def converged(self) -> bool:
        return self.criteria is not None


@dataclass(frozen=True, eq=False)
class SelectionResult:
    """All enumerated specs (canonical order) and the winning fit"""
    records: Tuple[SelectionRecord, ...]
    best: FittedModel

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for record in self.records:
            crit = record.criteria
            rows.append({
                'order': record.order,
                'model': record.spec.label,
                'p': record.spec.p,
                'q': record.spec.q,
                'r': record.spec.r,
                's': record.spec.s,
                'distribution': record.spec.distribution,
                'k': record.spec.n_params,
                'loglik': record.loglik,
                'AIC': crit.aic if crit else np.nan,
                'AICC': crit.aicc if crit else np.nan,
                'SBC': crit.sbc if crit else np.nan,
                'HQC': crit.hqc if crit else np.nan,
                'stationary': record.is_stationary,
                'error': record.error,
            })
        return pd.DataFrame(rows).set_index('order')

    @property
    def n_failed(self) -> int:
        return sum(1 for record in self.records if not record.converged)

    def ranked(self, stationary_only: bool = False) -> List[SelectionRecord]:
        """Converged records from best to worst by (AICC, SBC, HQC, order)"""
        candidates = [r for r in self.records if r.converged
                      and (r.is_stationary or not stationary_only)]
        return sorted(candidates, key=lambda r: r.criteria.ranking_key() + (r.order,))
