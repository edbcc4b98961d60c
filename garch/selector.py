"""
Brute-force ARMA-GARCH model selection by information criteria.
"""

from concurrent.futures import ProcessPoolExecutor
from itertools import product
from typing import Iterable, List, Optional, Sequence, Tuple, Union
import logging
import numpy as np

from .estimator import GARCHEstimator
from .exceptions import NonConvergenceError
from .models import FittedModel, ModelSpec, ReturnSeries, SelectionRecord, SelectionResult

logger = logging.getLogger(__name__)

DEFAULT_DISTRIBUTIONS = ('norm', 'std', 'ged', 'snorm', 'sstd', 'sged')


def enumerate_specs(max_p: int = 2, max_q: int = 2, max_r: int = 2, max_s: int = 2,
                    distributions: Sequence[str] = DEFAULT_DISTRIBUTIONS) -> List[ModelSpec]:
    """
    Canonical enumeration order: distribution, then p, q, r, s ascending.

    The position of a spec in this list is the last tie-breaker of the
    selection, so the order must not depend on anything but the arguments.
    """
    return [
        ModelSpec(p, q, r, s, dist)
        for dist, p, q, r, s in product(distributions,
                                        range(max_p + 1), range(max_q + 1),
                                        range(max_r + 1), range(max_s + 1))
    ]


def _fit_one(args: Tuple[GARCHEstimator, np.ndarray, ModelSpec]):
    """Worker: returns (FittedModel, None) or (None, error message)"""
    estimator, values, spec = args
    try:
        return estimator.fit(values, spec), None
    except NonConvergenceError as e:
        return None, str(e)


class ModelSelector:
    """Fits every enumerated spec and picks the minimum (AICC, SBC, HQC)"""

    def __init__(self, estimator: Optional[GARCHEstimator] = None,
                 specs: Optional[Iterable[ModelSpec]] = None,
                 n_jobs: int = 1,
                 progress=None):
        """
        Args:
            estimator: GARCH estimator used for each fit
            specs: Specs to compare; defaults to enumerate_specs()
            n_jobs: Worker processes; 1 fits sequentially
            progress: Optional ProgressMonitor updated once per spec
        """
        self.estimator = estimator if estimator is not None else GARCHEstimator()
        self.specs = list(specs) if specs is not None else enumerate_specs()
        if not self.specs:
            raise ValueError("No model specifications to compare")
        self.n_jobs = n_jobs
        self.progress = progress
        self.logger = logging.getLogger('garch.selector')

    def _run_fits(self, values: np.ndarray) -> List[Tuple[Optional[FittedModel], Optional[str]]]:
        jobs = [(self.estimator, values, spec) for spec in self.specs]
        if self.n_jobs > 1:
            # map() yields in submission order, keeping the canonical ordering
            with ProcessPoolExecutor(max_workers=self.n_jobs) as executor:
                outcomes = []
                for outcome in executor.map(_fit_one, jobs):
                    outcomes.append(outcome)
                    if self.progress is not None:
                        self.progress.update(1)
                return outcomes

        outcomes = []
        for job in jobs:
            outcomes.append(_fit_one(job))
            if self.progress is not None:
                self.progress.update(1, status=job[2].label)
        return outcomes

    def select(self, returns: Union[ReturnSeries, np.ndarray]) -> SelectionResult:
        """
        Fit all specs and select the best one

        Returns:
            SelectionResult with one record per spec (canonical order)

        Raises:
            NonConvergenceError: if no spec could be fitted
        """
        if isinstance(returns, ReturnSeries):
            values = np.asarray(returns.values)
        else:
            values = np.asarray(returns, dtype=float)

        self.logger.info(f"Comparing {len(self.specs)} model specifications on {len(values)} returns")
        outcomes = self._run_fits(values)

        records = []
        best_key, best_fit = None, None
        for order, (spec, (fitted, error)) in enumerate(zip(self.specs, outcomes)):
            if fitted is None:
                self.logger.warning(f"Excluding {spec.label}: {error}")
                records.append(SelectionRecord(order=order, spec=spec, error=error))
                continue

            criteria = fitted.criteria
            records.append(SelectionRecord(
                order=order,
                spec=spec,
                criteria=criteria,
                loglik=fitted.loglik,
                is_stationary=fitted.is_stationary,
            ))
            key = criteria.ranking_key() + (order,)
            if best_key is None or key < best_key:
                best_key, best_fit = key, fitted

        if best_fit is None:
            raise NonConvergenceError(
                f"none of the {len(self.specs)} specifications converged", stage='selection')

        n_failed = sum(1 for r in records if not r.converged)
        self.logger.info(
            f"Selected {best_fit.spec.label}: AICC={best_key[0]:.4f}, "
            f"SBC={best_key[1]:.4f}, HQC={best_key[2]:.4f} "
            f"({n_failed} of {len(records)} specs excluded)"
        )
        if not best_fit.is_stationary:
            self.logger.warning(f"Selected model {best_fit.spec.label} is non-stationary")

        return SelectionResult(records=tuple(records), best=best_fit)
