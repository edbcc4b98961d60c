"""
Standardized innovation distributions (zero mean, unit variance).

Each family exposes log-density, quantile, tail expectation and sampling,
keyed by the short names used in model specs:

    norm, std, ged      symmetric normal, Student-t and generalized error
    snorm, sstd, sged   Fernandez-Steel skewed variants (skew parameter xi > 0)
"""

from typing import Dict, Mapping, Sequence, Tuple, Union
import numpy as np
from scipy import stats, integrate
from scipy.special import gammaln

Params = Union[Sequence[float], Mapping[str, float], None]


class Distribution:
    """Interface shared by all innovation distributions"""

    name: str = ''
    param_names: Tuple[str, ...] = ()
    bounds: Tuple[Tuple[float, float], ...] = ()
    starting_values: Tuple[float, ...] = ()

    def _unpack(self, params: Params) -> Tuple[float, ...]:
        if params is None:
            params = ()
        if isinstance(params, Mapping):
            params = [params[name] for name in self.param_names]
        params = tuple(float(v) for v in params)
        if len(params) != len(self.param_names):
            raise ValueError(
                f"{self.name} expects parameters {self.param_names}, got {params}")
        return params

    def logpdf(self, z, params: Params = None) -> np.ndarray:
        raise NotImplementedError

    def ppf(self, p, params: Params = None):
        raise NotImplementedError

    def pdf(self, z, params: Params = None) -> np.ndarray:
        return np.exp(self.logpdf(z, params))

    def tail_expectation(self, p: float, params: Params = None) -> float:
        """E[Z | Z > q_p], integrated numerically over the upper tail"""
        if not 0.0 < p < 1.0:
            raise ValueError(f"Tail level must lie in (0, 1), got {p}")
        q = float(self.ppf(p, params))
        value, _ = integrate.quad(
            lambda z: z * float(self.pdf(z, params)), q, np.inf, limit=200)
        return value / (1.0 - p)

    def rvs(self, size, params: Params = None,
            random_state: np.random.Generator = None) -> np.ndarray:
        """Inverse-transform sampling"""
        rng = random_state if random_state is not None else np.random.default_rng()
        u = rng.uniform(size=size)
        return np.asarray(self.ppf(u, params), dtype=float)

    def __repr__(self) -> str:
        return f"{type(self).__name__}('{self.name}')"


class NormalDistribution(Distribution):
    name = 'norm'

    def abs_moment(self, params: Tuple[float, ...] = ()) -> float:
        return np.sqrt(2.0 / np.pi)

    def logpdf(self, z, params: Params = None) -> np.ndarray:
        self._unpack(params)
        return stats.norm.logpdf(z)

    def ppf(self, p, params: Params = None):
        self._unpack(params)
        return stats.norm.ppf(p)

    def tail_expectation(self, p: float, params: Params = None) -> float:
        self._unpack(params)
        return float(stats.norm.pdf(stats.norm.ppf(p)) / (1.0 - p))


class StudentTDistribution(Distribution):
    """Student-t rescaled to unit variance (shape nu > 2)"""

    name = 'std'
    param_names = ('shape',)
    bounds = ((2.05, 100.0),)
    starting_values = (8.0,)

    @staticmethod
    def _scale(nu: float) -> float:
        return np.sqrt((nu - 2.0) / nu)

    def abs_moment(self, params: Tuple[float, ...]) -> float:
        nu, = params
        log_ratio = gammaln((nu + 1.0) / 2.0) - gammaln(nu / 2.0)
        return 2.0 * np.sqrt(nu - 2.0) * np.exp(log_ratio) / (np.sqrt(np.pi) * (nu - 1.0))

    def logpdf(self, z, params: Params = None) -> np.ndarray:
        nu, = self._unpack(params)
        scale = self._scale(nu)
        return stats.t.logpdf(np.asarray(z) / scale, nu) - np.log(scale)

    def ppf(self, p, params: Params = None):
        nu, = self._unpack(params)
        return self._scale(nu) * stats.t.ppf(p, nu)


class GEDDistribution(Distribution):
    """Generalized error distribution with unit variance (nu = 2 is normal)"""

    name = 'ged'
    param_names = ('shape',)
    bounds = ((0.5, 20.0),)
    starting_values = (2.0,)

    @staticmethod
    def _scale(nu: float) -> float:
        return np.exp(0.5 * (gammaln(1.0 / nu) - gammaln(3.0 / nu)))

    def abs_moment(self, params: Tuple[float, ...]) -> float:
        nu, = params
        return self._scale(nu) * np.exp(gammaln(2.0 / nu) - gammaln(1.0 / nu))

    def logpdf(self, z, params: Params = None) -> np.ndarray:
        nu, = self._unpack(params)
        scale = self._scale(nu)
        return stats.gennorm.logpdf(np.asarray(z) / scale, nu) - np.log(scale)

    def ppf(self, p, params: Params = None):
        nu, = self._unpack(params)
        return self._scale(nu) * stats.gennorm.ppf(p, nu)


class SkewedDistribution(Distribution):
    """
    Fernandez-Steel skewing of a symmetric unit-variance base density.

    The skewed variable Y has density 2/(xi + 1/xi) * f(y / xi^sign(y));
    it is re-centred and re-scaled so the result still has zero mean and
    unit variance.
    """

    skew_bounds = (0.1, 10.0)

    def __init__(self, base: Distribution):
        self.base = base
        self.name = 's' + base.name
        self.param_names = ('skew',) + base.param_names
        self.bounds = (self.skew_bounds,) + base.bounds
        self.starting_values = (1.0,) + base.starting_values

    def _moments(self, xi: float, base_params: Tuple[float, ...]) -> Tuple[float, float]:
        m1 = self.base.abs_moment(base_params)
        mu = m1 * (xi - 1.0 / xi)
        sigma = np.sqrt((1.0 - m1 ** 2) * (xi ** 2 + xi ** -2) + 2.0 * m1 ** 2 - 1.0)
        return mu, sigma

    def logpdf(self, z, params: Params = None) -> np.ndarray:
        values = self._unpack(params)
        xi, base_params = values[0], values[1:]
        mu, sigma = self._moments(xi, base_params)
        y = np.asarray(z, dtype=float) * sigma + mu
        xi_sign = np.where(y >= 0.0, xi, 1.0 / xi)
        log_g = np.log(2.0 / (xi + 1.0 / xi))
        return log_g + self.base.logpdf(y / xi_sign, base_params) + np.log(sigma)

    def ppf(self, p, params: Params = None):
        values = self._unpack(params)
        xi, base_params = values[0], values[1:]
        mu, sigma = self._moments(xi, base_params)
        p = np.asarray(p, dtype=float)
        g = 2.0 / (xi + 1.0 / xi)
        split = 1.0 / (1.0 + xi ** 2)

        lower_arg = np.clip(p * xi / g, 0.0, 1.0)
        upper_arg = np.clip(0.5 + (p - split) / (g * xi), 0.0, 1.0)
        lower = self.base.ppf(lower_arg, base_params) / xi
        upper = xi * self.base.ppf(upper_arg, base_params)
        y = np.where(p < split, lower, upper)
        result = (y - mu) / sigma
        return float(result) if result.ndim == 0 else result


_REGISTRY: Dict[str, Distribution] = {}


def register_distribution(dist: Distribution) -> None:
    """Make a distribution available to model specs under dist.name"""
    _REGISTRY[dist.name] = dist


for _base in (NormalDistribution(), StudentTDistribution(), GEDDistribution()):
    register_distribution(_base)
    register_distribution(SkewedDistribution(_base))


def get_distribution(name: str) -> Distribution:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise KeyError(
            f"Unknown distribution '{name}', available: {sorted(_REGISTRY)}") from None


def available_distributions() -> Tuple[str, ...]:
    return tuple(_REGISTRY)
