import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
from scipy.stats import genpareto

from evt.bootstrap import bootstrap_tail_quantile
from evt.tail_estimator import TailEstimator
from garch.exceptions import InsufficientTailDataError
from garch.models import TailModel


@pytest.fixture
def gpd_sample():
    """
    Body uniform on (-3, 1.5) and a 10% GPD tail above u = 1.5
    with xi = 0.2, beta = 1.
    """
    rng = np.random.default_rng(42)
    body = rng.uniform(-3.0, 1.5, size=18000)
    tail = 1.5 + genpareto.rvs(0.2, scale=1.0, size=2000, random_state=rng)
    sample = np.concatenate((body, tail))
    rng.shuffle(sample)
    return sample


def test_gpd_recovery(gpd_sample):
    tail = TailEstimator(tail_fraction=0.10).fit(gpd_sample)
    assert tail.threshold == pytest.approx(1.5, abs=0.01)
    assert tail.xi == pytest.approx(0.2, abs=0.1)
    assert tail.beta == pytest.approx(1.0, rel=0.15)
    assert tail.n_total == 20000
    assert 1990 <= tail.n_exceedances <= 2000


def test_quantile_formula(gpd_sample):
    tail = TailEstimator(tail_fraction=0.10).fit(gpd_sample)
    p = 0.99
    ratio = tail.n_total / tail.n_exceedances * (1 - p)
    expected = tail.threshold + tail.beta / tail.xi * (ratio ** (-tail.xi) - 1)
    assert tail.quantile(p) == pytest.approx(expected)
    # empirical check of the fitted tail
    assert tail.quantile(p) == pytest.approx(np.quantile(gpd_sample, p), rel=0.1)


def test_quantile_at_threshold_level():
    tail = TailModel(xi=0.2, beta=1.0, threshold=1.5, n_total=1000, n_exceedances=100)
    assert tail.quantile(0.9) == pytest.approx(1.5)
    with pytest.raises(ValueError):
        tail.quantile(0.5)


def test_exponential_tail_limit():
    tail = TailModel(xi=0.0, beta=1.0, threshold=1.0, n_total=1000, n_exceedances=100)
    assert tail.quantile(0.99) == pytest.approx(1.0 + np.log(10.0))
    assert tail.expected_shortfall(0.99) == pytest.approx(tail.quantile(0.99) + 1.0)


def test_expected_shortfall():
    tail = TailModel(xi=0.25, beta=0.8, threshold=1.2, n_total=2000, n_exceedances=200)
    q = tail.quantile(0.99)
    expected = q / 0.75 + (0.8 - 0.25 * 1.2) / 0.75
    assert tail.expected_shortfall(0.99) == pytest.approx(expected)
    assert tail.expected_shortfall(0.99) > q


def test_infinite_shortfall_for_heavy_tail():
    tail = TailModel(xi=1.2, beta=1.0, threshold=1.0, n_total=1000, n_exceedances=100)
    assert np.isinf(tail.expected_shortfall(0.99))


def test_insufficient_exceedances():
    z = np.random.default_rng(0).standard_normal(150)
    with pytest.raises(InsufficientTailDataError) as excinfo:
        TailEstimator(tail_fraction=0.10, min_exceedances=20).fit(z)
    assert excinfo.value.stage == 'tail'


def test_threshold_choice_sensitivity(gpd_sample):
    """Higher thresholds keep the shape estimate in the same region"""
    narrow = TailEstimator(tail_fraction=0.05).fit(gpd_sample)
    assert narrow.threshold > 1.5
    assert narrow.xi == pytest.approx(0.2, abs=0.15)


def test_mean_excess(gpd_sample):
    grid, values = TailEstimator().mean_excess(gpd_sample, [1.6, 2.5, 3.5])
    np.testing.assert_allclose(grid, [1.6, 2.5, 3.5])
    # e(u) = (beta + xi (u - 1.5)) / (1 - xi) above the true threshold
    assert values[0] == pytest.approx((1.0 + 0.2 * 0.1) / 0.8, abs=0.2)
    assert values[2] > values[0]


def test_bootstrap_reproducible():
    z = np.random.default_rng(5).standard_t(5, size=1500)
    first = bootstrap_tail_quantile(z, level=0.99, n_boot=30, random_seed=9)
    second = bootstrap_tail_quantile(z, level=0.99, n_boot=30, random_seed=9)
    np.testing.assert_array_equal(first.samples, second.samples)
    assert first.quantile_ci[0] <= first.quantile <= first.quantile_ci[1]
    assert first.n_boot == 30
    assert len(first.samples) + first.n_failed == 30
