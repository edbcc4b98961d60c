import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np

from garch.diagnostics import ljung_box, residual_diagnostics, stationarity_test
from garch.estimator import GARCHEstimator
from garch.models import ModelSpec

SPEC = ModelSpec(0, 0, 1, 1, 'norm')
PARAMS = {'mu': 0.0, 'omega': 0.05, 'alpha1': 0.1, 'beta1': 0.85}


@pytest.fixture
def returns():
    return GARCHEstimator().simulate(SPEC, PARAMS, n_obs=1500, random_seed=17)


def test_correct_model_leaves_white_noise(returns):
    fitted = GARCHEstimator().filter(returns, SPEC, PARAMS)
    table = residual_diagnostics(fitted)
    assert list(table.columns) == ['test', 'lag', 'statistic', 'p_value']
    assert set(table['test']) == {'Ljung-Box z', 'Ljung-Box z^2', 'ARCH-LM z', 'Jarque-Bera z'}
    arch_lm = table[table['test'] == 'ARCH-LM z'].iloc[0]
    assert arch_lm['p_value'] > 0.01


def test_raw_returns_show_clustering(returns):
    squared = ljung_box(returns ** 2, lags=[10])
    assert squared['p_value'].iloc[0] < 0.01


def test_stationarity(returns):
    result = stationarity_test(returns)
    assert result['p_value'] < 0.01
    assert set(result['critical_values']) == {'1%', '5%', '10%'}

