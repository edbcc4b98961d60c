#!/usr/bin/env python
"""
GARCH-EVT Value-at-Risk pipeline for a daily index.
Coordinates return construction, model selection, tail estimation,
VaR forecasting and the Kupiec backtest.
"""
import sys
import json
import dataclasses
from pathlib import Path
import logging
from datetime import datetime
import numpy as np
import pandas as pd
from typing import Dict, Optional, Union
import time
import psutil
import traceback

# Add project root to path
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.append(str(project_root))

from backtest.kupiec import VaRBacktester
from backtest.validation import verify_temporal_consistency
from config.model_config import PipelineConfig
from data_manager.data_loader import PriceLoader
from data_manager.database import VaRDatabase
from evt.bootstrap import bootstrap_tail_quantile
from evt.tail_estimator import TailEstimator
from garch.checkpoint import CheckpointManager
from garch.data_prep import ReturnSeriesBuilder
from garch.diagnostics import residual_diagnostics, stationarity_test
from garch.estimator import GARCHEstimator
from garch.exceptions import NonConvergenceError, NonStationaryModelError
from garch.forecaster import VaRForecaster
from garch.models import ReturnSeries, SelectionResult
from garch.selector import ModelSelector, enumerate_specs
from utils.progress import ProgressMonitor
from utils.visualization import VaRVisualizer


class PerformanceMonitor:
    """Tracks time and memory per pipeline stage"""
    def __init__(self):
        self.start_time = time.time()
        self.last_checkpoint = self.start_time
        self.checkpoints = {}

    def checkpoint(self, name: str):
        """Record timing for a checkpoint"""
        now = time.time()
        self.checkpoints[name] = {
            'duration': now - self.last_checkpoint,
            'memory': psutil.Process().memory_info().rss / 1024 / 1024  # MB
        }
        self.last_checkpoint = now

    def report(self) -> str:
        total_time = time.time() - self.start_time
        report = ["Performance Report:", "-----------------"]

        for name, stats in self.checkpoints.items():
            report.append(f"{name}:")
            report.append(f"  Duration: {stats['duration']:.2f} seconds")
            report.append(f"  Memory: {stats['memory']:.2f} MB")

        report.append("-----------------")
        report.append(f"Total Time: {total_time:.2f} seconds")
        return "\n".join(report)


def setup_logging(output_dir: Path, level: int = logging.INFO) -> logging.Logger:
    """
    Configure logging with both file and console handlers

    Handlers are attached to the root logger so that the component
    loggers (garch.estimator, evt.tail_estimator, ...) reach the log file.

    Parameters:
    -----------
    output_dir : Path
        Directory for log file

    Returns:
    --------
    logging.Logger
        Pipeline logger
    """
    log_dir = Path(output_dir) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"var_calculation_{timestamp}.log"

    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, '_var_pipeline', False):
            root.removeHandler(handler)
            handler.close()

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter('%(message)s'))

    for handler in (file_handler, console_handler):
        handler._var_pipeline = True
        root.addHandler(handler)

    return logging.getLogger("var_calculator")


def load_price_data(data_file: Path, config: PipelineConfig,
                    logger: logging.Logger) -> pd.Series:
    """Load adjusted closing prices with validation"""
    logger.info(f"Reading data from: {data_file}")
    try:
        loader = PriceLoader(price_column=config.price_column, date_column=config.date_column)
        return loader.load(data_file)
    except Exception as e:
        logger.error(f"Error loading data: {str(e)}")
        raise


def initialize_components(config: PipelineConfig, output_dir: Optional[Path] = None,
                          run_id: Optional[str] = None,
                          logger: Optional[logging.Logger] = None) -> Dict:
    """Initialize all analysis components from the run configuration"""
    if logger is None:
        logger = logging.getLogger('var_calculator')

    logger.info("Creating GARCH estimator...")
    estimator = GARCHEstimator(min_observations=config.min_observations)

    specs = enumerate_specs(config.max_p, config.max_q, config.max_r, config.max_s,
                            config.distributions)
    logger.info(f"Creating model selector over {len(specs)} specifications...")
    selector = ModelSelector(estimator=estimator, specs=specs, n_jobs=config.n_jobs)

    tail_estimator = TailEstimator(tail_fraction=config.tail_fraction,
                                   min_exceedances=config.min_exceedances)

    checkpoint_manager = None
    if output_dir is not None and run_id is not None:
        checkpoint_manager = CheckpointManager(Path(output_dir) / "checkpoints" / run_id)

    logger.info("Creating forecaster...")
    forecaster = VaRForecaster(
        alpha=config.alpha,
        estimator=estimator,
        tail_estimator=tail_estimator,
        checkpoint_manager=checkpoint_manager,
    )

    components = {
        'builder': ReturnSeriesBuilder(risk_free_rate=config.risk_free_rate),
        'estimator': estimator,
        'selector': selector,
        'tail_estimator': tail_estimator,
        'forecaster': forecaster,
        'backtester': VaRBacktester(alpha=config.alpha, convention=config.indicator_convention),
        'visualizer': VaRVisualizer() if config.save_plots else None,
        'database': None,
    }
    if output_dir is not None:
        components['database'] = VaRDatabase(str(Path(output_dir) / "var_results.duckdb"))
    return components


def _save_results(results: Dict, components: Dict, config: PipelineConfig,
                  output_dir: Path, logger: logging.Logger) -> None:
    run_id = results['run_id']
    run_dir = Path(output_dir) / run_id
    run_dir.mkdir(parents=True, exist_ok=True)

    results['selection'].to_frame().to_csv(run_dir / "model_selection.csv")
    results['fitted'].params_series().to_csv(run_dir / "fitted_params.csv")
    results['diagnostics'].to_csv(run_dir / "residual_diagnostics.csv", index=False)
    results['rolling'].to_frame().to_csv(run_dir / "rolling_var.csv")
    pd.DataFrame([f.__dict__ for f in results['forecasts']]).to_csv(
        run_dir / "var_forecast_evt.csv", index=False)
    pd.DataFrame([f.__dict__ for f in results['parametric']]).to_csv(
        run_dir / "var_forecast_parametric.csv", index=False)
    with open(run_dir / "summary.json", 'w') as f:
        json.dump(results['summary'], f, indent=2, default=str)

    database = components.get('database')
    if database is not None:
        database.store_run(run_id, json.dumps(config.to_dict()))
        database.store_selection(run_id, results['selection'])
        database.store_fitted_params(run_id, results['fitted'])
        database.store_var_forecasts(run_id, results['rolling'])
        database.store_backtest(run_id, results['backtest'])

    visualizer = components.get('visualizer')
    if visualizer is not None:
        plot_dir = run_dir / "plots"
        plot_dir.mkdir(parents=True, exist_ok=True)
        visualizer.plot_fitted_returns(results['fitted'], save_path=plot_dir / "fitted_losses.png")
        visualizer.plot_residual_diagnostics(results['fitted'], results['tail'],
                                             save_path=plot_dir / "residual_diagnostics.png")
        visualizer.plot_information_criteria(results['selection'],
                                             save_path=plot_dir / "information_criteria.png")
        visualizer.plot_var_backtest(results['rolling'], save_path=plot_dir / "var_backtest.png")
        visualizer.close_all()

    logger.info(f"Results written to {run_dir}")


def select_stationary(estimator: GARCHEstimator, losses: ReturnSeries,
                      selection: SelectionResult,
                      logger: logging.Logger) -> SelectionResult:
    """
    Replace a non-stationary winner with the best-ranked stationary fit

    Candidates are refitted in ranking order; the first that converges to a
    stationary model becomes the selected model. Records are left untouched.
    """
    logger.warning(
        f"Selected model {selection.best.spec.label} is non-stationary "
        f"(persistence {selection.best.persistence:.4f}), re-selecting among stationary fits"
    )
    for record in selection.ranked(stationary_only=True):
        try:
            fitted = estimator.fit(losses, record.spec)
        except NonConvergenceError as e:
            logger.warning(f"Refit of {record.spec.label} failed: {e}")
            continue
        if fitted.is_stationary:
            logger.info(f"Using stationary model {fitted.spec.label}")
            return dataclasses.replace(selection, best=fitted)
    raise NonStationaryModelError(
        "no converged specification is stationary", spec=selection.best.spec, stage='selection')


def run_analysis(components: Dict, prices: Union[pd.Series, np.ndarray],
                 config: PipelineConfig, output_dir: Optional[Path] = None,
                 logger: Optional[logging.Logger] = None,
                 monitor: Optional[PerformanceMonitor] = None,
                 run_id: str = "run") -> Dict:
    """
    Run the pipeline: returns -> model selection -> tail fit -> VaR -> backtest

    The model is fitted to losses (negated returns) so that the GPD
    describes the loss tail and VaR is reported as a positive loss.
    """
    logger = logger or logging.getLogger('var_calculator')
    monitor = monitor or PerformanceMonitor()
    logger.info("Starting analysis pipeline...")

    try:
        returns = components['builder'].build(prices, config.risk_free_rate)
        components['builder'].verify_data_quality(returns)
        losses = ReturnSeries(values=-returns.values, dates=returns.dates,
                              risk_free_rate=returns.risk_free_rate)
        stationarity = stationarity_test(losses.values)
        monitor.checkpoint('returns')

        selector = components['selector']
        selector.progress = ProgressMonitor(total=len(selector.specs), desc="Model selection")
        try:
            selection = selector.select(losses)
        finally:
            selector.progress.close()
            selector.progress = None
        if config.require_stationary and not selection.best.is_stationary:
            selection = select_stationary(components['estimator'], losses, selection, logger)
        monitor.checkpoint('model_selection')

        best = selection.best
        # Re-filter so the fitted series carry the return dates
        fitted = components['estimator'].filter(losses, best.spec, best.params)
        diagnostics = residual_diagnostics(fitted)

        tail = components['tail_estimator'].fit(fitted.standardized_residuals)
        bootstrap = None
        if config.n_bootstrap > 0:
            bootstrap = bootstrap_tail_quantile(
                fitted.standardized_residuals,
                estimator=components['tail_estimator'],
                level=1.0 - config.alpha,
                n_boot=config.n_bootstrap,
                random_seed=config.random_seed,
            )
        monitor.checkpoint('tail_estimation')

        forecaster = components['forecaster']
        forecasts = forecaster.forecast(fitted, tail, horizon=config.horizon)
        parametric = forecaster.parametric(fitted, horizon=config.horizon)
        decomposition = forecaster.variance_decomposition(fitted)
        logger.info(
            f"1-day VaR {forecaster.level:.1%}: EVT {forecasts[0].var:.4f}, "
            f"{best.spec.distribution} {parametric[0].var:.4f}"
        )

        n_out = int(round(len(losses) * config.window_fraction))
        forecaster.progress = ProgressMonitor(total=n_out, desc="Rolling VaR")
        try:
            rolling = forecaster.rolling(losses, best.spec, config.window_fraction,
                                         config.refit_every)
        finally:
            forecaster.progress.close()
            forecaster.progress = None
        verify_temporal_consistency(rolling, len(losses))
        monitor.checkpoint('rolling_forecast')

        backtest = components['backtester'].run(
            pd.Series(rolling.realized, index=rolling.dates),
            pd.Series(rolling.var, index=rolling.dates),
        )
        monitor.checkpoint('backtest')

        summary = {
            'run_id': run_id,
            'n_returns': len(returns),
            'selected_model': best.spec.label,
            'criteria': best.criteria.__dict__,
            'params': best.params,
            'persistence': best.persistence,
            'variance_decomposition': decomposition,
            'stationarity': stationarity,
            'tail': tail.__dict__,
            'var_1d': forecasts[0].var,
            'es_1d': forecasts[0].es,
            'var_1d_parametric': parametric[0].var,
            'backtest': backtest.to_dict(),
        }
        if bootstrap is not None:
            summary['bootstrap'] = {
                'quantile_ci': list(bootstrap.quantile_ci),
                'es_ci': list(bootstrap.es_ci),
                'n_failed': bootstrap.n_failed,
            }

        results = {
            'run_id': run_id,
            'returns': returns,
            'losses': losses,
            'selection': selection,
            'fitted': fitted,
            'diagnostics': diagnostics,
            'tail': tail,
            'bootstrap': bootstrap,
            'forecasts': forecasts,
            'parametric': parametric,
            'rolling': rolling,
            'backtest': backtest,
            'summary': summary,
        }

        if output_dir is not None:
            _save_results(results, components, config, output_dir, logger)
            monitor.checkpoint('persistence')

        logger.info("Pipeline completed successfully")
        return results

    except Exception as e:
        logger.error(f"Error in analysis pipeline: {str(e)}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        raise


def cleanup(components: Dict, logger: logging.Logger):
    """Clean up resources"""
    database = components.get('database')
    if database is not None:
        database.close()
    if components.get('visualizer') is not None:
        components['visualizer'].close_all()


def main(argv=None):
    """Usage: calculate_var.py PRICES_CSV [CONFIG_JSON]"""
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv:
        print(main.__doc__)
        return 2

    root_dir = Path(__file__).parent
    output_dir = root_dir / "results"
    output_dir.mkdir(parents=True, exist_ok=True)
    logger = setup_logging(output_dir)
    logger.info("Starting VaR calculation pipeline...")

    components = {}
    try:
        config = PipelineConfig.from_json(argv[1]) if len(argv) > 1 else PipelineConfig()
        run_id = datetime.now().strftime("%Y%m%d_%H%M%S")

        prices = load_price_data(Path(argv[0]), config, logger)

        logger.info("Initializing analysis components...")
        components = initialize_components(config, output_dir, run_id, logger)

        monitor = PerformanceMonitor()
        results = run_analysis(components, prices, config, output_dir, logger, monitor, run_id)

        backtest = results['backtest']
        logger.info(
            f"\nSelected model: {results['fitted'].spec.label}"
            f"\nExceedances: {backtest.n_exceedances}/{backtest.n_obs} "
            f"(expected {backtest.n_obs * components['backtester'].nominal_rate:.1f})"
            f"\nKupiec POF: {backtest.pof_statistic:.4f} (p={backtest.p_value:.4f})"
        )
        logger.info(monitor.report())
        return 0

    except Exception as e:
        logger.error(f"Pipeline failed: {str(e)}")
        raise
    finally:
        cleanup(components, logger)


if __name__ == '__main__':
    sys.exit(main())
