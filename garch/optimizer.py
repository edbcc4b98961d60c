"""Numerical optimizer used for likelihood maximisation"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple
import logging
import warnings
import numpy as np
from scipy.optimize import minimize

logger = logging.getLogger(__name__)

Bounds = Optional[Sequence[Tuple[Optional[float], Optional[float]]]]

# Objective value substituted for nan/inf so line searches can back off
PENALTY = 1e10


@dataclass(frozen=True)
class OptimizationResult:
    """Outcome of a minimisation"""
    x: np.ndarray
    fun: float
    converged: bool
    n_iterations: int
    message: str
    method: str = ''


class Optimizer:
    """Minimise a scalar objective subject to box bounds"""

    def minimize(self, objective: Callable[[np.ndarray], float],
                 x0: Sequence[float], bounds: Bounds = None) -> OptimizationResult:
        raise NotImplementedError

    def maximize(self, objective: Callable[[np.ndarray], float],
                 x0: Sequence[float], bounds: Bounds = None) -> OptimizationResult:
        """Maximise objective; the returned fun is the maximum found"""
        result = self.minimize(lambda x: -objective(x), x0, bounds)
        return OptimizationResult(
            x=result.x,
            fun=-result.fun,
            converged=result.converged,
            n_iterations=result.n_iterations,
            message=result.message,
            method=result.method,
        )


class ScipyOptimizer(Optimizer):
    """
    scipy.optimize.minimize with a chain of fallback methods.

    Methods are tried in order, each starting from the best point found so
    far, until one reports success.
    """

    def __init__(self, methods: Sequence[str] = ('L-BFGS-B', 'Powell'),
                 max_iter: int = 1000, tol: Optional[float] = None):
        if not methods:
            raise ValueError("At least one optimisation method is required")
        self.methods = tuple(methods)
        self.max_iter = max_iter
        self.tol = tol

    @staticmethod
    def _safe(objective: Callable[[np.ndarray], float]) -> Callable[[np.ndarray], float]:
        def wrapped(x):
            value = objective(x)
            if not np.isfinite(value):
                return PENALTY
            return float(value)
        return wrapped

    def minimize(self, objective, x0, bounds=None) -> OptimizationResult:
        safe_objective = self._safe(objective)
        x_best = np.asarray(x0, dtype=float)
        if bounds is not None:
            lower = np.array([b[0] if b[0] is not None else -np.inf for b in bounds])
            upper = np.array([b[1] if b[1] is not None else np.inf for b in bounds])
            x_best = np.clip(x_best, lower, upper)
        fun_best = safe_objective(x_best)
        total_iter = 0
        message = ''
        method = self.methods[0]

        for method in self.methods:
            with warnings.catch_warnings():
                warnings.simplefilter('ignore', RuntimeWarning)
                res = minimize(
                    safe_objective,
                    x_best,
                    method=method,
                    bounds=bounds,
                    tol=self.tol,
                    options={'maxiter': self.max_iter},
                )
            total_iter += int(getattr(res, 'nit', 0) or 0)
            message = str(res.message)
            if np.isfinite(res.fun) and res.fun <= fun_best:
                x_best, fun_best = np.asarray(res.x, dtype=float), float(res.fun)
            if res.success and fun_best < PENALTY:
                return OptimizationResult(
                    x=x_best, fun=fun_best, converged=True,
                    n_iterations=total_iter, message=message, method=method)
            logger.debug(f"{method} did not converge: {message}")

        return OptimizationResult(
            x=x_best, fun=fun_best, converged=False,
            n_iterations=total_iter, message=message, method=method)
