import sys
import os

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.append(project_root)

import pytest
import numpy as np
import pandas as pd

from garch.data_prep import ReturnSeriesBuilder, DAYS_PER_YEAR
from garch.exceptions import InvalidInputError
from garch.models import ReturnSeries
from data_manager.data_loader import PriceLoader
from data_manager.data_validator import PriceValidator


@pytest.fixture
def sample_prices():
    """Geometric random walk indexed by business days"""
    np.random.seed(42)
    n = 300
    dates = pd.bdate_range('2019-01-01', periods=n)
    log_returns = np.random.normal(0.0003, 0.01, n)
    return pd.Series(100.0 * np.exp(np.cumsum(log_returns)), index=dates)


def test_return_length(sample_prices):
    returns = ReturnSeriesBuilder().build(sample_prices)
    assert isinstance(returns, ReturnSeries)
    assert len(returns) == len(sample_prices) - 1


def test_return_formula(sample_prices):
    rf = 0.02
    returns = ReturnSeriesBuilder(risk_free_rate=rf).build(sample_prices)
    expected = 100.0 * (np.diff(np.log(sample_prices.values)) - rf / DAYS_PER_YEAR)
    np.testing.assert_allclose(returns.values, expected)
    assert returns.risk_free_rate == rf


def test_rescaling_invariance(sample_prices):
    builder = ReturnSeriesBuilder(risk_free_rate=0.01)
    base = builder.build(sample_prices)
    scaled = builder.build(sample_prices * 37.5)
    np.testing.assert_allclose(base.values, scaled.values, atol=1e-10)


def test_rate_override(sample_prices):
    builder = ReturnSeriesBuilder(risk_free_rate=0.05)
    overridden = builder.build(sample_prices, risk_free_rate=0.0)
    plain = ReturnSeriesBuilder().build(sample_prices)
    np.testing.assert_allclose(overridden.values, plain.values)


def test_dates_carried_over(sample_prices):
    returns = ReturnSeriesBuilder().build(sample_prices)
    assert returns.dates.equals(sample_prices.index[1:])
    assert returns.to_series().index.equals(sample_prices.index[1:])


def test_plain_array_input():
    returns = ReturnSeriesBuilder().build([100.0, 101.0, 99.0])
    assert returns.dates is None
    assert len(returns) == 2
    assert returns.values[0] == pytest.approx(100.0 * np.log(1.01))


def test_returns_are_read_only(sample_prices):
    returns = ReturnSeriesBuilder().build(sample_prices)
    with pytest.raises(ValueError):
        returns.values[0] = 0.0
    np.testing.assert_allclose(returns.losses(), -returns.values)


@pytest.mark.parametrize("prices", [
    [100.0],
    [],
    [100.0, np.nan, 101.0],
    [100.0, 0.0, 101.0],
    [100.0, -5.0],
])
def test_invalid_prices(prices):
    with pytest.raises(InvalidInputError):
        ReturnSeriesBuilder().build(prices)


def test_invalid_input_is_value_error():
    """Callers catching ValueError keep working"""
    with pytest.raises(ValueError):
        ReturnSeriesBuilder().build([1.0])


def test_verify_data_quality(sample_prices):
    builder = ReturnSeriesBuilder()
    returns = builder.build(sample_prices)
    assert builder.verify_data_quality(returns, min_observations=250)
    assert not builder.verify_data_quality(returns, min_observations=1000)


def test_validator_flags_problems(sample_prices):
    validator = PriceValidator()
    is_valid, issues = validator.validate(sample_prices)
    assert is_valid
    assert issues == []

    broken = sample_prices.copy()
    broken.iloc[10] = np.nan
    broken.iloc[20] = 0.0
    is_valid, issues = validator.validate(broken)
    assert not is_valid
    assert any('missing' in issue for issue in issues)
    assert any('zero' in issue for issue in issues)


def test_validator_warns_on_jumps(sample_prices):
    jumpy = sample_prices.copy()
    jumpy.iloc[100:] *= 2.0
    is_valid, issues = PriceValidator().validate(jumpy)
    assert is_valid
    assert any(issue.startswith('Warning') for issue in issues)


def test_loader_reads_csv(tmp_path, sample_prices):
    frame = pd.DataFrame({
        'date': sample_prices.index.strftime('%Y-%m-%d'),
        'Adj Close': sample_prices.values,
    })
    # Reverse-chronological export, as some vendors ship it
    path = tmp_path / "prices.csv"
    frame.iloc[::-1].to_csv(path, index=False)

    prices = PriceLoader().load(path)
    assert prices.index.is_monotonic_increasing
    np.testing.assert_allclose(prices.values, sample_prices.values)


def test_loader_missing_column(tmp_path, sample_prices):
    path = tmp_path / "prices.csv"
    pd.DataFrame({'Date': sample_prices.index, 'Close': sample_prices.values}).to_csv(path, index=False)
    with pytest.raises(InvalidInputError):
        PriceLoader().load(path)
