import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import matplotlib
matplotlib.use('Agg')

import pytest
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt

from evt.tail_estimator import TailEstimator
from garch.estimator import GARCHEstimator
from garch.forecaster import VaRForecaster
from garch.models import ModelSpec, ReturnSeries
from garch.selector import ModelSelector, enumerate_specs
from utils.visualization import VaRVisualizer

SPEC = ModelSpec(0, 0, 1, 1, 'sstd')
PARAMS = {'mu': 0.0, 'omega': 0.05, 'alpha1': 0.1, 'beta1': 0.85, 'skew': 1.1, 'shape': 6.0}


@pytest.fixture
def visualizer():
    with VaRVisualizer() as vis:
        yield vis


@pytest.fixture
def losses():
    estimator = GARCHEstimator()
    values = estimator.simulate(SPEC, PARAMS, n_obs=500, random_seed=8)
    return ReturnSeries(values=values, dates=pd.bdate_range('2018-01-01', periods=500))


@pytest.fixture
def fitted(losses):
    return GARCHEstimator().filter(losses, SPEC, PARAMS)


def test_unknown_style_falls_back():
    vis = VaRVisualizer(style='no-such-style')
    assert len(vis.colors) > 0


def test_plot_fitted_returns(visualizer, fitted, tmp_path):
    path = tmp_path / "fitted.png"
    fig = visualizer.plot_fitted_returns(fitted, save_path=path)
    assert isinstance(fig, plt.Figure)
    assert len(fig.axes) == 2
    assert path.exists()


def test_plot_residual_diagnostics(visualizer, fitted, tmp_path):
    tail = TailEstimator().fit(fitted.standardized_residuals)
    path = tmp_path / "diagnostics.png"
    fig = visualizer.plot_residual_diagnostics(fitted, tail, save_path=path)
    assert len(fig.axes) >= 4
    assert path.exists()


def test_plot_residual_diagnostics_without_tail(visualizer, fitted):
    fig = visualizer.plot_residual_diagnostics(fitted)
    assert isinstance(fig, plt.Figure)


def test_plot_var_backtest(visualizer, losses, tmp_path):
    forecaster = VaRForecaster(alpha=0.01)
    rolling = forecaster.rolling(losses, ModelSpec(0, 0, 1, 1, 'norm'),
                                 window_fraction=0.05, refit_every=25)
    path = tmp_path / "backtest.png"
    fig = visualizer.plot_var_backtest(rolling, save_path=path)
    assert path.exists()
    assert 'VaR' in ' '.join(t.get_text() for t in fig.axes[0].get_legend().get_texts())


def test_plot_information_criteria(visualizer, losses, tmp_path):
    specs = enumerate_specs(0, 0, 1, 1, ('norm',))
    selection = ModelSelector(specs=specs).select(losses)
    path = tmp_path / "ic.png"
    fig = visualizer.plot_information_criteria(selection, criterion='SBC', save_path=path)
    assert path.exists()
    with pytest.raises(ValueError):
        visualizer.plot_information_criteria(selection, criterion='BIC')
    plt.close(fig)
