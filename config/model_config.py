"""Run configuration for the GARCH-EVT VaR pipeline."""

from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Tuple, Union
import json

from garch.distributions import available_distributions


@dataclass
class PipelineConfig:
    """All tunable settings of a pipeline run; nothing is read from globals"""

    # Return construction
    risk_free_rate: float = 0.0          # annualized, decimal
    price_column: str = 'Adj Close'
    date_column: str = 'Date'

    # Model search
    distributions: Tuple[str, ...] = ('norm', 'std', 'ged', 'snorm', 'sstd', 'sged')
    max_p: int = 2
    max_q: int = 2
    max_r: int = 2
    max_s: int = 2
    min_observations: int = 100
    n_jobs: int = 1
    require_stationary: bool = True

    # Tail model
    tail_fraction: float = 0.10
    min_exceedances: int = 20
    n_bootstrap: int = 1000

    # VaR forecasting and backtest
    alpha: float = 0.01
    horizon: int = 10
    window_fraction: float = 0.10
    refit_every: int = 1
    indicator_convention: str = 'violation'

    random_seed: int = 42
    save_plots: bool = True

    def __post_init__(self):
        self.distributions = tuple(self.distributions)
        known = set(available_distributions())
        unknown = [d for d in self.distributions if d not in known]
        if unknown:
            raise ValueError(f"Unknown distributions {unknown}, available: {sorted(known)}")
        if not self.distributions:
            raise ValueError("At least one distribution is required")
        for name in ('max_p', 'max_q', 'max_r', 'max_s'):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if not 0.0 < self.alpha < 0.5:
            raise ValueError(f"alpha must lie in (0, 0.5), got {self.alpha}")
        if not 0.0 < self.window_fraction < 1.0:
            raise ValueError(f"window_fraction must lie in (0, 1), got {self.window_fraction}")
        if not 0.0 < self.tail_fraction < 1.0:
            raise ValueError(f"tail_fraction must lie in (0, 1), got {self.tail_fraction}")
        if self.alpha >= self.tail_fraction:
            raise ValueError(
                f"alpha ({self.alpha}) must be below tail_fraction ({self.tail_fraction}) "
                f"so the VaR quantile lies inside the GPD tail")
        if self.refit_every < 1 or self.horizon < 1 or self.n_jobs < 1:
            raise ValueError("refit_every, horizon and n_jobs must be >= 1")
        if self.n_bootstrap < 0 or self.min_exceedances < 1:
            raise ValueError("n_bootstrap must be >= 0 and min_exceedances >= 1")
        if self.indicator_convention not in ('violation', 'coverage'):
            raise ValueError(f"Unknown indicator convention '{self.indicator_convention}'")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'PipelineConfig':
        allowed = {f.name for f in fields(cls)}
        unknown = set(values) - allowed
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**values)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> 'PipelineConfig':
        with open(path, 'r') as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        values = asdict(self)
        values['distributions'] = list(self.distributions)
        return values

    def to_json(self, path: Union[str, Path]) -> None:
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
