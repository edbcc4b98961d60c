"""Bootstrap uncertainty of the GPD tail quantile and expected shortfall"""

from dataclasses import dataclass
from typing import Optional, Tuple
import logging
import numpy as np
from arch.bootstrap import IIDBootstrap

from garch.exceptions import InsufficientTailDataError, NonConvergenceError
from .tail_estimator import TailEstimator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class TailBootstrapResult:
    """Point estimates and percentile intervals of the standardized tail risk"""
    level: float
    quantile: float
    es: float
    quantile_ci: Tuple[float, float]
    es_ci: Tuple[float, float]
    n_boot: int
    n_failed: int
    samples: np.ndarray


def bootstrap_tail_quantile(residuals, estimator: Optional[TailEstimator] = None,
                            level: float = 0.99, n_boot: int = 1000,
                            confidence: float = 0.95,
                            random_seed: Optional[int] = None) -> TailBootstrapResult:
    """
    Resample standardized residuals, refit the tail and collect q_level / ES_level.

    Args:
        residuals: Standardized residuals of the fitted GARCH model
        estimator: Tail estimator (default settings when omitted)
        level: Quantile level, e.g. 0.99 for 1% VaR
        n_boot: Number of bootstrap replications
        confidence: Coverage of the percentile intervals
        random_seed: Seed for the bootstrap generator
    """
    estimator = estimator if estimator is not None else TailEstimator()
    z = np.asarray(residuals, dtype=float)
    base = estimator.fit(z)

    bs = IIDBootstrap(z, seed=random_seed)
    samples = []
    n_failed = 0
    for data in bs.bootstrap(n_boot):
        resampled = data[0][0]
        try:
            tail = estimator.fit(resampled)
        except (InsufficientTailDataError, NonConvergenceError) as e:
            n_failed += 1
            logger.debug(f"Bootstrap replication skipped: {e}")
            continue
        samples.append((tail.quantile(level), tail.expected_shortfall(level)))

    if not samples:
        raise NonConvergenceError(f"all {n_boot} bootstrap tail fits failed", stage='tail')
    if n_failed:
        logger.warning(f"{n_failed} of {n_boot} bootstrap tail fits failed")

    samples = np.asarray(samples)
    lower = 100.0 * (1.0 - confidence) / 2.0
    upper = 100.0 - lower
    q_ci = tuple(float(v) for v in np.percentile(samples[:, 0], [lower, upper]))
    finite_es = samples[np.isfinite(samples[:, 1]), 1]
    if len(finite_es):
        es_ci = tuple(float(v) for v in np.percentile(finite_es, [lower, upper]))
    else:
        es_ci = (np.inf, np.inf)

    logger.info(
        f"Bootstrap ({len(samples)} fits) q_{level}: {base.quantile(level):.4f} "
        f"[{q_ci[0]:.4f}, {q_ci[1]:.4f}]"
    )
    return TailBootstrapResult(
        level=level,
        quantile=base.quantile(level),
        es=base.expected_shortfall(level),
        quantile_ci=q_ci,
        es_ci=es_ci,
        n_boot=n_boot,
        n_failed=n_failed,
        samples=samples,
    )
