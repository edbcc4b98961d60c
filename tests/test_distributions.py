import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
from scipy import integrate, stats

from garch.distributions import (
    Distribution, available_distributions, get_distribution,
)
from garch.models import ModelSpec

# Representative parameters for each family
PARAMS = {
    'norm': {},
    'std': {'shape': 5.0},
    'ged': {'shape': 1.3},
    'snorm': {'skew': 1.4},
    'sstd': {'skew': 0.8, 'shape': 6.0},
    'sged': {'skew': 1.2, 'shape': 1.5},
}


def _moment(dist, params, power):
    value, _ = integrate.quad(
        lambda z: z ** power * float(dist.pdf(z, params)), -np.inf, np.inf, limit=200)
    return value


def test_registry_contents():
    assert set(available_distributions()) == set(PARAMS)


@pytest.mark.parametrize("name", sorted(PARAMS))
def test_standardized(name):
    """Every innovation density integrates to one with zero mean and unit variance"""
    dist = get_distribution(name)
    params = PARAMS[name]
    assert _moment(dist, params, 0) == pytest.approx(1.0, abs=1e-6)
    assert _moment(dist, params, 1) == pytest.approx(0.0, abs=1e-5)
    assert _moment(dist, params, 2) == pytest.approx(1.0, abs=1e-4)


@pytest.mark.parametrize("name", sorted(PARAMS))
def test_ppf_inverts_cdf(name):
    dist = get_distribution(name)
    params = PARAMS[name]
    for p in (0.01, 0.3, 0.5, 0.9, 0.99):
        q = float(dist.ppf(p, params))
        cdf, _ = integrate.quad(lambda z: float(dist.pdf(z, params)), -np.inf, q, limit=200)
        assert cdf == pytest.approx(p, abs=1e-5)


@pytest.mark.parametrize("name", ['std', 'ged', 'sstd'])
def test_tail_expectation_exceeds_quantile(name):
    dist = get_distribution(name)
    params = PARAMS[name]
    q = float(dist.ppf(0.99, params))
    assert dist.tail_expectation(0.99, params) > q


def test_normal_tail_expectation_closed_form():
    dist = get_distribution('norm')
    numeric = Distribution.tail_expectation(dist, 0.99)
    assert dist.tail_expectation(0.99) == pytest.approx(numeric, rel=1e-6)
    assert dist.tail_expectation(0.99) == pytest.approx(2.665, abs=1e-3)


def test_symmetric_skew_matches_base():
    base = get_distribution('std')
    skewed = get_distribution('sstd')
    z = np.linspace(-4, 4, 17)
    np.testing.assert_allclose(
        skewed.logpdf(z, {'skew': 1.0, 'shape': 6.0}), base.logpdf(z, {'shape': 6.0}),
        atol=1e-10)


def test_skew_direction():
    """skew > 1 puts more mass to the right of the mode"""
    dist = get_distribution('snorm')
    right = float(dist.ppf(0.99, {'skew': 1.5}))
    left = -float(dist.ppf(0.01, {'skew': 1.5}))
    assert right > left


def test_ged_shape_two_is_normal():
    ged = get_distribution('ged')
    z = np.linspace(-3, 3, 13)
    np.testing.assert_allclose(ged.logpdf(z, [2.0]), stats.norm.logpdf(z), atol=1e-10)


def test_rvs_reproducible():
    dist = get_distribution('sstd')
    a = dist.rvs(1000, PARAMS['sstd'], random_state=np.random.default_rng(3))
    b = dist.rvs(1000, PARAMS['sstd'], random_state=np.random.default_rng(3))
    np.testing.assert_array_equal(a, b)
    assert abs(np.mean(a)) < 0.15
    assert np.std(a) == pytest.approx(1.0, abs=0.15)


def test_wrong_parameter_count():
    with pytest.raises(ValueError):
        get_distribution('std').logpdf(0.0, [5.0, 1.0])


def test_unknown_distribution():
    with pytest.raises(KeyError):
        get_distribution('cauchy')
    with pytest.raises(ValueError):
        ModelSpec(1, 0, 1, 1, 'cauchy')
