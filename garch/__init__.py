"""
GARCH modeling package for volatility and Value-at-Risk analysis.
Implements ARMA-GARCH estimation, model selection and VaR forecasting.
"""

from .data_prep import ReturnSeriesBuilder
from .estimator import GARCHEstimator
from .selector import ModelSelector, enumerate_specs
from .models import (
    ReturnSeries, ModelSpec, InformationCriteria, FittedModel, TailModel,
    VaRForecast, RollingForecast, BacktestResult, SelectionRecord, SelectionResult,
)

__all__ = [
    'ReturnSeriesBuilder', 'GARCHEstimator', 'ModelSelector', 'enumerate_specs',
    'ReturnSeries', 'ModelSpec', 'InformationCriteria',
    'FittedModel', 'TailModel', 'VaRForecast', 'RollingForecast',
    'BacktestResult', 'SelectionRecord', 'SelectionResult',
]
