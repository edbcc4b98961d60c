import logging
import os
from datetime import datetime
from typing import Dict, Optional
import duckdb
import pandas as pd

from garch.models import BacktestResult, FittedModel, RollingForecast, SelectionResult

logger = logging.getLogger(__name__)


class VaRDatabase:
    def __init__(self, db_path: str):
        """Initialize database connection"""
        self.logger = logging.getLogger(__name__)
        self.db_path = db_path

        # Create database directory if it doesn't exist
        db_dir = os.path.dirname(db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

        self.conn = duckdb.connect(db_path)
        self._initialize_tables()
        self.logger.info(f"Initialized database at {db_path}")

    def _initialize_tables(self):
        """Create tables if they don't exist"""
        try:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    run_id VARCHAR PRIMARY KEY,
                    created_at TIMESTAMP,
                    config JSON
                );

                CREATE TABLE IF NOT EXISTS model_selection (
                    run_id VARCHAR,
                    model_order INTEGER,
                    model VARCHAR,
                    p INTEGER,
                    q INTEGER,
                    r INTEGER,
                    s INTEGER,
                    distribution VARCHAR,
                    k INTEGER,
                    loglik DOUBLE,
                    aic DOUBLE,
                    aicc DOUBLE,
                    sbc DOUBLE,
                    hqc DOUBLE,
                    stationary BOOLEAN,
                    error VARCHAR,
                    selected BOOLEAN,
                    PRIMARY KEY (run_id, model_order)
                );

                CREATE TABLE IF NOT EXISTS fitted_params (
                    run_id VARCHAR,
                    model VARCHAR,
                    param VARCHAR,
                    value DOUBLE,
                    PRIMARY KEY (run_id, model, param)
                );

                CREATE TABLE IF NOT EXISTS var_forecasts (
                    run_id VARCHAR,
                    day_index INTEGER,
                    forecast_date TIMESTAMP,
                    origin INTEGER,
                    mean DOUBLE,
                    sigma DOUBLE,
                    value_at_risk DOUBLE,
                    expected_shortfall DOUBLE,
                    realized_loss DOUBLE,
                    PRIMARY KEY (run_id, day_index)
                );

                CREATE TABLE IF NOT EXISTS backtest_results (
                    run_id VARCHAR,
                    convention VARCHAR,
                    n_obs INTEGER,
                    n_exceedances INTEGER,
                    exceedance_rate DOUBLE,
                    alpha DOUBLE,
                    pof_statistic DOUBLE,
                    p_value DOUBLE,
                    independence_statistic DOUBLE,
                    independence_p_value DOUBLE,
                    cc_statistic DOUBLE,
                    cc_p_value DOUBLE,
                    PRIMARY KEY (run_id, convention)
                );
            """)
        except Exception as e:
            self.logger.error(f"Error initializing database tables: {str(e)}")
            raise

    def _replace(self, table: str, run_id: str, df: pd.DataFrame,
                 key: Optional[Dict[str, object]] = None) -> None:
        """Replace the rows of a run (optionally narrowed by key columns) with the frame's rows"""
        where = " AND ".join(["run_id = ?"] + [f"{column} = ?" for column in (key or {})])
        self.conn.execute("BEGIN TRANSACTION")
        try:
            self.conn.execute(f"DELETE FROM {table} WHERE {where}", [run_id, *(key or {}).values()])
            if len(df) > 0:
                self.conn.register('staging_df', df)
                columns = ", ".join(df.columns)
                self.conn.execute(
                    f"INSERT INTO {table} ({columns}) SELECT {columns} FROM staging_df")
                self.conn.unregister('staging_df')
            self.conn.execute("COMMIT")
        except Exception as e:
            self.conn.execute("ROLLBACK")
            self.logger.error(f"Error writing {table} for run {run_id}: {str(e)}")
            raise

    def store_run(self, run_id: str, config_json: Optional[str] = None) -> None:
        self.conn.execute("DELETE FROM runs WHERE run_id = ?", [run_id])
        self.conn.execute(
            "INSERT INTO runs (run_id, created_at, config) VALUES (?, ?, ?)",
            [run_id, datetime.now(), config_json])

    def store_selection(self, run_id: str, selection: SelectionResult) -> None:
        """Store the full model comparison table, flagging the winner"""
        table = selection.to_frame().reset_index()
        df = pd.DataFrame({
            'run_id': run_id,
            'model_order': table['order'].astype(int),
            'model': table['model'],
            'p': table['p'], 'q': table['q'], 'r': table['r'], 's': table['s'],
            'distribution': table['distribution'],
            'k': table['k'],
            'loglik': table['loglik'],
            'aic': table['AIC'], 'aicc': table['AICC'],
            'sbc': table['SBC'], 'hqc': table['HQC'],
            'stationary': table['stationary'].astype(object),
            'error': table['error'].astype(object),
            'selected': table['model'] == selection.best.spec.label,
        })
        self._replace('model_selection', run_id, df)
        self.logger.info(f"Stored {len(df)} model comparison rows for run {run_id}")

    def store_fitted_params(self, run_id: str, fitted: FittedModel) -> None:
        params = fitted.params_series()
        df = pd.DataFrame({
            'run_id': run_id,
            'model': fitted.spec.label,
            'param': params.index.astype(str),
            'value': params.values.astype(float),
        })
        self._replace('fitted_params', run_id, df)

    def store_var_forecasts(self, run_id: str, rolling: RollingForecast) -> None:
        frame = rolling.to_frame()
        dates = frame.index if isinstance(frame.index, pd.DatetimeIndex) else pd.NaT
        df = pd.DataFrame({
            'run_id': run_id,
            'day_index': rolling.origins + 1,
            'forecast_date': dates,
            'origin': rolling.origins,
            'mean': frame['mean'].values,
            'sigma': frame['sigma'].values,
            'value_at_risk': frame['var'].values,
            'expected_shortfall': frame['es'].values,
            'realized_loss': frame['realized_loss'].values,
        })
        self._replace('var_forecasts', run_id, df)
        self.logger.info(f"Stored {len(df)} VaR forecasts for run {run_id}")

    def store_backtest(self, run_id: str, result: BacktestResult) -> None:
        df = pd.DataFrame([{'run_id': run_id, **result.to_dict()}])
        self._replace('backtest_results', run_id, df, key={'convention': result.convention})

    def get_runs(self) -> pd.DataFrame:
        return self.conn.execute("SELECT * FROM runs ORDER BY created_at").df()

    def get_selection(self, run_id: str) -> pd.DataFrame:
        return self.conn.execute("""
            SELECT * FROM model_selection WHERE run_id = ? ORDER BY model_order
        """, [run_id]).df()

    def get_fitted_params(self, run_id: str) -> pd.Series:
        df = self.conn.execute("""
            SELECT param, value FROM fitted_params WHERE run_id = ? ORDER BY rowid
        """, [run_id]).df()
        return df.set_index('param')['value']

    def get_var_forecasts(self, run_id: str) -> pd.DataFrame:
        return self.conn.execute("""
            SELECT * FROM var_forecasts WHERE run_id = ? ORDER BY day_index
        """, [run_id]).df()

    def get_backtest(self, run_id: str) -> pd.DataFrame:
        return self.conn.execute("""
            SELECT * FROM backtest_results WHERE run_id = ? ORDER BY convention
        """, [run_id]).df()

    def close(self):
        """Close database connection"""
        if self.conn is not None:
            self.conn.close()
            self.conn = None
