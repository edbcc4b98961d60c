"""Goodness-of-fit checks for a fitted GARCH model"""

import logging
from typing import Sequence
import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.diagnostic import acorr_ljungbox, het_arch
from statsmodels.tsa.stattools import adfuller

from .models import FittedModel

logger = logging.getLogger(__name__)


def ljung_box(series: np.ndarray, lags: Sequence[int] = (10, 15, 20)) -> pd.DataFrame:
    """Ljung-Box Q statistics with p-values at the requested lags"""
    result = acorr_ljungbox(np.asarray(series), lags=list(lags))
    return result.rename(columns={'lb_stat': 'statistic', 'lb_pvalue': 'p_value'})


def residual_diagnostics(fitted: FittedModel, lags: Sequence[int] = (10, 15, 20),
                         arch_lags: int = 10) -> pd.DataFrame:
    """
    Validate a fit through its standardized residuals z_t

    Rows:
        Ljung-Box on z and z^2 at each lag (no remaining autocorrelation)
        ARCH-LM on z (no remaining conditional heteroskedasticity)
        Jarque-Bera on z (normality, expected to fail for fat tails)
    """
    z = np.asarray(fitted.standardized_residuals)
    rows = []
    for name, values in (('Ljung-Box z', z), ('Ljung-Box z^2', z ** 2)):
        lb = ljung_box(values, lags)
        for lag, row in lb.iterrows():
            rows.append({'test': name, 'lag': int(lag),
                         'statistic': float(row['statistic']),
                         'p_value': float(row['p_value'])})

    lm_stat, lm_pvalue, _, _ = het_arch(z, nlags=arch_lags)
    rows.append({'test': 'ARCH-LM z', 'lag': arch_lags,
                 'statistic': float(lm_stat), 'p_value': float(lm_pvalue)})

    jb = stats.jarque_bera(z)
    rows.append({'test': 'Jarque-Bera z', 'lag': np.nan,
                 'statistic': float(jb[0]), 'p_value': float(jb[1])})

    table = pd.DataFrame(rows)
    logger.info(f"Residual diagnostics for {fitted.spec.label}:\n{table.to_string(index=False)}")
    return table


def stationarity_test(returns: np.ndarray) -> dict:
    """Augmented Dickey-Fuller test of the return series"""
    stat, pvalue, used_lag, n_obs, critical, _ = adfuller(np.asarray(returns), autolag='AIC')
    return {
        'statistic': float(stat),
        'p_value': float(pvalue),
        'lags': int(used_lag),
        'n_obs': int(n_obs),
        'critical_values': dict(critical),
    }
