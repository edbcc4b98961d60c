# scripts/verify_db.py
from pathlib import Path
import logging
import sys

sys.path.append(str(Path(__file__).parent.parent))

from data_manager.database import VaRDatabase


def check_database(db_path: Path = Path("results/var_results.duckdb")):
    logging.basicConfig(level=logging.INFO)
    logger = logging.getLogger('db_check')

    logger.info(f"Checking database file: {db_path}")
    if not db_path.exists():
        logger.error(f"Database file not found at: {db_path}")
        return

    db = VaRDatabase(str(db_path))
    try:
        runs = db.get_runs()
        logger.info(f"\n=== Stored runs: {len(runs)} ===")
        for run_id in runs['run_id']:
            selection = db.get_selection(run_id)
            forecasts = db.get_var_forecasts(run_id)
            backtest = db.get_backtest(run_id)

            logger.info(f"\nRun: {run_id}")
            chosen = selection[selection['selected']]
            if not chosen.empty:
                logger.info(f"  Selected model: {chosen['model'].iloc[0]}")
            logger.info(f"  Specs compared: {len(selection)} "
                        f"({int(selection['aicc'].isna().sum())} excluded)")
            logger.info(f"  Rolling forecasts: {len(forecasts):,}")
            if len(forecasts) > 0:
                logger.info(f"  First/last day: {forecasts['forecast_date'].iloc[0]} / "
                            f"{forecasts['forecast_date'].iloc[-1]}")
            for _, row in backtest.iterrows():
                logger.info(
                    f"  Kupiec ({row['convention']}): {int(row['n_exceedances'])}/"
                    f"{int(row['n_obs'])}, LR={row['pof_statistic']:.4f}, "
                    f"p={row['p_value']:.4f}"
                )
    finally:
        db.close()


if __name__ == "__main__":
    check_database(Path(sys.argv[1]) if len(sys.argv) > 1 else Path("results/var_results.duckdb"))
