"""
Extreme value theory tail modelling of standardized residuals.
"""

from .tail_estimator import TailEstimator
from .bootstrap import TailBootstrapResult, bootstrap_tail_quantile

__all__ = ['TailEstimator', 'TailBootstrapResult', 'bootstrap_tail_quantile']
