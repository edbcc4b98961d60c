"""
Pilot run of the VaR pipeline on a reduced model search and a shortened sample.
"""

import logging
from pathlib import Path
import sys

# Add parent directory to path to import our modules
sys.path.append(str(Path(__file__).parent.parent))

from calculate_var import (
    PerformanceMonitor, cleanup, initialize_components, load_price_data, run_analysis,
)
from config.model_config import PipelineConfig

# Data parameters
PILOT_YEARS = 5
PILOT_DAYS = int(PILOT_YEARS * 252) + 1  # ~1261 prices, 1260 returns

pilot_config = PipelineConfig(
    distributions=('norm', 'std', 'sstd'),
    max_p=1, max_q=1, max_r=1, max_s=1,
    refit_every=21,
    n_bootstrap=200,
    save_plots=True,
)

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler('pilot_run.log'),
            logging.StreamHandler()
        ]
    )
    logger = logging.getLogger('pilot')

    if len(sys.argv) < 2:
        logger.error("Usage: run_pilot.py PRICES_CSV")
        sys.exit(2)

    output_path = Path("results/pilot")
    components = {}
    try:
        logger.info("Starting pilot run...")
        prices = load_price_data(Path(sys.argv[1]), pilot_config, logger)
        prices = prices.iloc[-PILOT_DAYS:]
        logger.info(f"Using prices from {prices.index[0].date()} to {prices.index[-1].date()}")

        components = initialize_components(pilot_config, output_path, 'pilot', logger)
        monitor = PerformanceMonitor()
        results = run_analysis(
            components=components,
            prices=prices,
            config=pilot_config,
            output_dir=output_path,
            logger=logger,
            monitor=monitor,
            run_id='pilot',
        )

        logger.info(results['selection'].to_frame().sort_values('AICC').head(10).to_string())
        logger.info(monitor.report())
        logger.info("Pilot analysis completed successfully")
        logger.info(f"Results saved to {output_path}")

    except Exception as e:
        logger.error(f"Pilot analysis failed: {str(e)}")
        raise
    finally:
        cleanup(components, logger)
