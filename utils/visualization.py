from typing import Optional
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from pathlib import Path
from scipy import stats
import logging

from garch.distributions import get_distribution
from garch.models import FittedModel, RollingForecast, SelectionResult, TailModel

logger = logging.getLogger(__name__)


class VaRVisualizer:
    """Plots for the fitted model, the tail fit and the VaR backtest"""

    def __init__(self, style: str = 'seaborn-v0_8-whitegrid'):
        """
        Initialize visualizer

        Parameters:
        -----------
        style : str
            Matplotlib style to use.
            Available styles can be listed with `plt.style.available`
        """
        try:
            plt.style.use(style)
        except OSError:
            plt.style.use('default')
            logger.warning(f"Style '{style}' not found, using default style")

        self.colors = plt.rcParams['axes.prop_cycle'].by_key()['color']

    @staticmethod
    def _index(fitted: FittedModel):
        if fitted.dates is not None:
            return fitted.dates
        return np.arange(fitted.n_obs)

    def _finish(self, fig: plt.Figure, save_path: Optional[Path]) -> plt.Figure:
        fig.tight_layout()
        if save_path:
            fig.savefig(save_path, dpi=120)
            logger.info(f"Saved plot to {save_path}")
        return fig

    def plot_fitted_returns(self,
                            fitted: FittedModel,
                            title: Optional[str] = None,
                            save_path: Optional[Path] = None) -> plt.Figure:
        """
        Series the model was fitted to, with the fitted conditional mean
        and a two-sigma band from the conditional volatility.
        """
        x = self._index(fitted)
        mean = fitted.conditional_mean
        vol = fitted.conditional_volatility

        fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8), sharex=True)
        ax1.plot(x, fitted.returns, color=self.colors[0], lw=0.6, label='Observed')
        ax1.plot(x, mean, color=self.colors[1], lw=1.0, label='Conditional mean')
        ax1.fill_between(x, mean - 2 * vol, mean + 2 * vol,
                         color=self.colors[1], alpha=0.15, label=r'$\pm 2\sigma_t$')
        ax1.set_ylabel('%')
        ax1.legend(loc='upper left')
        ax1.set_title(title or fitted.spec.label)

        ax2.plot(x, vol, color=self.colors[2], lw=0.8)
        ax2.set_ylabel(r'$\sigma_t$ (%)')
        ax2.set_xlabel('Date')

        return self._finish(fig, save_path)

    def plot_var_backtest(self,
                          rolling: RollingForecast,
                          title: Optional[str] = None,
                          save_path: Optional[Path] = None) -> plt.Figure:
        """Realized losses against one-step VaR and ES, exceedances marked"""
        if len(rolling) == 0:
            raise ValueError("Empty forecast series")

        x = rolling.dates
        hits = rolling.realized > rolling.var

        fig, ax = plt.subplots(figsize=(12, 6))
        ax.plot(x, rolling.realized, color='grey', lw=0.6, label='Realized loss')
        ax.plot(x, rolling.var, color=self.colors[3], lw=1.2,
                label=f'VaR {rolling.level:.1%}')
        ax.plot(x, rolling.es, color=self.colors[4], lw=1.0, ls='--',
                label=f'ES {rolling.level:.1%}')
        ax.scatter(np.asarray(x)[hits], rolling.realized[hits], color='red', zorder=3,
                   s=18, label=f'Exceedances ({int(hits.sum())})')
        ax.set_xlabel('Date')
        ax.set_ylabel('Loss (%)')
        ax.set_title(title or f"Rolling VaR backtest - {rolling.spec.label}")
        ax.legend(loc='upper left')

        return self._finish(fig, save_path)

    def plot_residual_diagnostics(self,
                                  fitted: FittedModel,
                                  tail: Optional[TailModel] = None,
                                  save_path: Optional[Path] = None) -> plt.Figure:
        """
        Create diagnostic grid for standardized residuals

        Histogram, QQ plot against the fitted innovation distribution,
        autocorrelation of squared residuals and, when a tail model is
        given, empirical versus GPD tail survival.
        """
        z = np.asarray(fitted.standardized_residuals)
        dist = get_distribution(fitted.spec.distribution)
        params = fitted.dist_params

        fig = plt.figure(figsize=(14, 10))
        gs = fig.add_gridspec(2, 2)

        ax1 = fig.add_subplot(gs[0, 0])
        sns.histplot(z, ax=ax1, bins=50, stat='density', color=self.colors[0])
        grid = np.linspace(z.min(), z.max(), 400)
        ax1.plot(grid, dist.pdf(grid, params), color=self.colors[1],
                 label=fitted.spec.distribution)
        ax1.set_title('Standardized residuals')
        ax1.legend()

        ax2 = fig.add_subplot(gs[0, 1])
        n = len(z)
        probs = (np.arange(1, n + 1) - 0.5) / n
        theoretical = np.asarray(dist.ppf(probs, params), dtype=float)
        ax2.scatter(theoretical, np.sort(z), s=6, color=self.colors[0])
        lims = [min(theoretical.min(), z.min()), max(theoretical.max(), z.max())]
        ax2.plot(lims, lims, color='black', lw=0.8)
        ax2.set_xlabel('Theoretical quantiles')
        ax2.set_ylabel('Sample quantiles')
        ax2.set_title(f'QQ plot ({fitted.spec.distribution})')

        ax3 = fig.add_subplot(gs[1, 0])
        pd.plotting.autocorrelation_plot(pd.Series(z ** 2), ax=ax3)
        ax3.set_xlim(0, min(50, n))
        ax3.set_title('Autocorrelation of squared residuals')

        ax4 = fig.add_subplot(gs[1, 1])
        if tail is not None:
            exceed = np.sort(z[z > tail.threshold])
            empirical = tail.exceedance_probability * (
                1.0 - np.arange(len(exceed)) / len(exceed))
            model = tail.exceedance_probability * stats.genpareto.sf(
                exceed - tail.threshold, tail.xi, scale=tail.beta)
            ax4.semilogy(exceed, empirical, 'o', ms=3, color=self.colors[0], label='Empirical')
            ax4.semilogy(exceed, model, color=self.colors[1],
                         label=rf'GPD $\xi$={tail.xi:.3f}, $\beta$={tail.beta:.3f}')
            ax4.axvline(tail.threshold, color='grey', ls=':', lw=0.8)
            ax4.set_xlabel('z')
            ax4.set_ylabel('P(Z > z)')
            ax4.legend()
        ax4.set_title('Upper tail fit')

        fig.suptitle(fitted.spec.label)
        return self._finish(fig, save_path)

    def plot_information_criteria(self,
                                  selection: SelectionResult,
                                  criterion: str = 'AICC',
                                  top_n: int = 20,
                                  save_path: Optional[Path] = None) -> plt.Figure:
        """Bar chart of the best top_n specs by one information criterion"""
        table = selection.to_frame()
        if criterion not in table.columns:
            raise ValueError(f"Unknown criterion '{criterion}'")
        table = table.dropna(subset=[criterion]).sort_values(criterion).head(top_n)
        if table.empty:
            raise ValueError("No converged models to plot")

        fig, ax = plt.subplots(figsize=(10, max(4, 0.35 * len(table))))
        sns.barplot(x=criterion, y='model', hue='distribution', data=table,
                    dodge=False, ax=ax)
        low, high = table[criterion].min(), table[criterion].max()
        pad = max(high - low, 1.0) * 0.1
        ax.set_xlim(low - pad, high + pad)
        ax.set_ylabel('')
        ax.set_title(f'{criterion} by model (lower is better)')

        return self._finish(fig, save_path)

    def close_all(self):
        """Close all open figures"""
        plt.close('all')

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close_all()
