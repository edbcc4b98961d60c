import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
import pandas as pd
from scipy import stats

from backtest.validation import verify_no_lookahead, verify_temporal_consistency
from evt.tail_estimator import TailEstimator
from garch.checkpoint import CheckpointManager
from garch.estimator import GARCHEstimator
from garch.exceptions import InvalidInputError, NonStationaryModelError
from garch.forecaster import VaRForecaster
from garch.models import ModelSpec, ReturnSeries, TailModel

GARCH11 = ModelSpec(0, 0, 1, 1, 'norm')
PARAMS = {'mu': 0.02, 'omega': 0.05, 'alpha1': 0.1, 'beta1': 0.85}


class NoRefitEstimator(GARCHEstimator):
    """Estimator that refuses to optimise; only filtering is allowed"""

    def fit(self, returns, spec, starting_values=None):
        raise AssertionError("fit should not be called when checkpoints exist")


class DriftingEstimator(GARCHEstimator):
    """Warm-started refits come back with persistence above one"""

    def fit(self, returns, spec, starting_values=None):
        fitted = super().fit(returns, spec, starting_values)
        if starting_values is None:
            return fitted
        params = dict(fitted.params)
        params['beta1'] = 1.01 - params['alpha1']
        return self.filter(returns, spec, params)


@pytest.fixture
def estimator():
    return GARCHEstimator(min_observations=100)


@pytest.fixture
def sample_losses(estimator):
    """Simulated GARCH(1,1) losses with dates"""
    values = estimator.simulate(GARCH11, PARAMS, n_obs=400, random_seed=3)
    dates = pd.bdate_range('2020-01-01', periods=len(values))
    return ReturnSeries(values=values, dates=dates)


@pytest.fixture
def fitted(estimator, sample_losses):
    return estimator.filter(sample_losses, GARCH11, PARAMS)


@pytest.fixture
def forecaster(estimator):
    return VaRForecaster(alpha=0.01, estimator=estimator,
                         tail_estimator=TailEstimator(tail_fraction=0.10))


def test_initialization(forecaster):
    assert forecaster.alpha == 0.01
    assert forecaster.level == pytest.approx(0.99)
    assert isinstance(forecaster.estimator, GARCHEstimator)
    with pytest.raises(ValueError):
        VaRForecaster(alpha=1.5)


def test_variance_forecast_closed_form(forecaster, fitted):
    """GARCH(1,1): E[sigma2_{T+k}] = theta + (a + b)^(k-1) (sigma2_{T+1} - theta)"""
    horizon = 20
    forecast = forecaster.variance_forecast(fitted, horizon)

    omega, alpha, beta = PARAMS['omega'], PARAMS['alpha1'], PARAMS['beta1']
    theta = omega / (1 - alpha - beta)
    one_step = (omega + alpha * fitted.residuals[-1] ** 2
                + beta * fitted.conditional_variance[-1])
    k = np.arange(1, horizon + 1)
    expected = theta + (alpha + beta) ** (k - 1) * (one_step - theta)
    np.testing.assert_allclose(forecast, expected, rtol=1e-10)


def test_variance_decomposition(forecaster, fitted):
    parts = forecaster.variance_decomposition(fitted)
    kappa, lam, theta = parts['kappa'], parts['lambda'], parts['theta']
    assert kappa == pytest.approx(0.05)
    assert lam == pytest.approx(0.85 / 0.95)
    assert theta == pytest.approx(1.0)

    a2 = fitted.residuals[-1] ** 2
    s2 = fitted.conditional_variance[-1]
    one_step = kappa * theta + (1 - kappa) * ((1 - lam) * a2 + lam * s2)
    assert forecaster.variance_forecast(fitted, 1)[0] == pytest.approx(one_step)


def test_mean_forecast_arma(estimator, sample_losses, forecaster):
    spec = ModelSpec(1, 0, 1, 1, 'norm')
    params = {'mu': 0.1, 'ar1': 0.5, 'omega': 0.05, 'alpha1': 0.1, 'beta1': 0.85}
    fitted = estimator.filter(sample_losses, spec, params)
    means = forecaster.mean_forecast(fitted, 3)
    last = fitted.returns[-1]
    assert means[0] == pytest.approx(0.1 + 0.5 * (last - 0.1))
    assert means[1] == pytest.approx(0.1 + 0.5 * (means[0] - 0.1))


def test_non_stationary_model_raises(estimator, sample_losses, forecaster):
    explosive = estimator.filter(sample_losses, GARCH11,
                                 {'mu': 0.0, 'omega': 0.05, 'alpha1': 0.2, 'beta1': 0.85})
    tail = TailModel(xi=0.1, beta=0.6, threshold=1.3, n_total=400, n_exceedances=40)
    with pytest.raises(NonStationaryModelError):
        forecaster.variance_forecast(explosive, 5)
    with pytest.raises(NonStationaryModelError):
        forecaster.forecast(explosive, tail)
    with pytest.raises(NonStationaryModelError):
        explosive.unconditional_variance()


def test_evt_forecast_composition(forecaster, fitted):
    tail = TailEstimator().fit(fitted.standardized_residuals)
    steps = forecaster.forecast(fitted, tail, horizon=5)
    assert [s.horizon for s in steps] == [1, 2, 3, 4, 5]
    q = tail.quantile(0.99)
    for step in steps:
        assert step.quantile == pytest.approx(q)
        assert step.var == pytest.approx(step.mean + step.sigma * q)
        assert step.es > step.var


def test_parametric_normal_forecast(forecaster, fitted):
    step = forecaster.parametric(fitted, horizon=1)[0]
    z = stats.norm.ppf(0.99)
    assert step.quantile == pytest.approx(z)
    assert step.var == pytest.approx(step.mean + step.sigma * z)
    assert step.es == pytest.approx(step.mean + step.sigma * stats.norm.pdf(z) / 0.01)


def test_rolling_forecast_shape(forecaster, sample_losses):
    rolling = forecaster.rolling(sample_losses, GARCH11, window_fraction=0.1, refit_every=10)
    n = len(sample_losses)
    assert len(rolling) == 40
    assert rolling.dates.equals(sample_losses.dates[n - 40:])
    np.testing.assert_array_equal(rolling.origins, np.arange(n - 41, n - 1))
    np.testing.assert_array_equal(rolling.realized, sample_losses.values[n - 40:])
    assert np.all(rolling.sigma > 0)
    assert np.all(rolling.es > rolling.var)
    verify_temporal_consistency(rolling, n)

    frame = rolling.to_frame()
    assert list(frame.columns) == ['origin', 'mean', 'sigma', 'var', 'es', 'realized_loss']


def test_rolling_no_lookahead(forecaster, sample_losses):
    """Changing data after day t leaves the forecast for day t untouched"""
    n_checked = verify_no_lookahead(forecaster, sample_losses.values, GARCH11,
                                    window_fraction=0.1, refit_every=5)
    assert n_checked == 21


def test_temporal_consistency_detects_lookahead(forecaster, sample_losses):
    rolling = forecaster.rolling(sample_losses, GARCH11, window_fraction=0.05, refit_every=20)
    with pytest.raises(ValueError):
        # Claim a shorter series so targets shift onto the origins
        verify_temporal_consistency(rolling, len(sample_losses) - 1)


def test_rolling_requires_history(forecaster):
    values = np.random.default_rng(0).standard_normal(105)
    with pytest.raises(InvalidInputError):
        forecaster.rolling(values, GARCH11, window_fraction=0.1)
    with pytest.raises(InvalidInputError):
        forecaster.rolling(values, GARCH11, window_fraction=0.001)


def test_rolling_resumes_from_checkpoints(tmp_path, estimator, sample_losses):
    manager = CheckpointManager(tmp_path / "checkpoints")
    first = VaRForecaster(alpha=0.01, estimator=estimator, checkpoint_manager=manager)
    baseline = first.rolling(sample_losses, GARCH11, window_fraction=0.05, refit_every=5)
    assert len(list((tmp_path / "checkpoints").glob("checkpoint_*.pkl"))) == 4

    resumed = VaRForecaster(alpha=0.01, estimator=NoRefitEstimator(min_observations=100),
                            checkpoint_manager=manager)
    again = resumed.rolling(sample_losses, GARCH11, window_fraction=0.05, refit_every=5)
    np.testing.assert_allclose(again.var, baseline.var)
    assert manager.clear() == 4


def test_non_stationary_refit_keeps_previous_parameters(sample_losses):
    """Refits that drift to persistence >= 1 fall back to the last stationary parameters"""
    drifting = VaRForecaster(alpha=0.01, estimator=DriftingEstimator(min_observations=100))
    rolling = drifting.rolling(sample_losses, GARCH11, window_fraction=0.1, refit_every=10)
    assert len(rolling) == 40
    assert np.all(np.isfinite(rolling.var))

    # A single fit at the first origin filters the same parameters forward
    single = VaRForecaster(alpha=0.01, estimator=GARCHEstimator(min_observations=100))
    baseline = single.rolling(sample_losses, GARCH11, window_fraction=0.1, refit_every=40)
    np.testing.assert_allclose(rolling.sigma, baseline.sigma)
    np.testing.assert_allclose(rolling.mean, baseline.mean)
