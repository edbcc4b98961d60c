"""Error taxonomy for the GARCH-EVT VaR pipeline."""

from typing import Optional


class VaRPipelineError(Exception):
    """Base pipeline error carrying the stage and model spec that failed"""

    stage: str = "pipeline"

    def __init__(self, message: str, spec=None, stage: Optional[str] = None):
        self.spec = spec
        if stage is not None:
            self.stage = stage
        self.message = message
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [f"[{self.stage}]"]
        if self.spec is not None:
            parts.append(getattr(self.spec, 'label', str(self.spec)))
        parts.append(self.message)
        return " ".join(parts)


class InvalidInputError(VaRPipelineError, ValueError):
    """Malformed or insufficient price / return data"""

    stage = "input"


class NonConvergenceError(VaRPipelineError, RuntimeError):
    """Optimizer did not reach a feasible point for a model spec"""

    stage = "estimation"


class InsufficientTailDataError(VaRPipelineError, ValueError):
    """Too few threshold exceedances for a GPD fit"""

    stage = "tail"


class NonStationaryModelError(VaRPipelineError, RuntimeError):
    """Fitted GARCH persistence is not below one"""

    stage = "forecast"


class MisalignedSeriesError(VaRPipelineError, ValueError):
    """Realized losses and VaR forecasts are not day-aligned"""

    stage = "backtest"
