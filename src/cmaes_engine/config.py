"""
Run configuration for the CMA-ES engine.
"""

import json
import logging
from dataclasses import dataclass, asdict, fields, replace as dataclass_replace
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class CMAESConfig:
    """Tunable settings of one optimization run."""

    # Search distribution
    sigma0: float = 1.5                   # Initial step size
    population_multiplier: float = 11.0   # K in lambda = round((4 + 3 ln n) * K)
    population_size: Optional[int] = None # Explicit lambda, overrides the multiplier
    sigma_exponent: float = 0.3           # Damping exponent on the sigma update

    # Termination
    tolerance: float = 1e-8               # Absolute change of best-ever cost
    sigma_tolerance: float = 1e-6         # Minimum sigma
    cost_ceiling: float = 100.0           # Convergence only counts below this cost
    max_iter: int = 500                   # Generation budget
    max_time: Optional[float] = None      # Wall-clock budget in seconds

    # Execution
    seed: Optional[int] = None
    n_workers: Optional[int] = 1          # 1 = sequential, None = cpu_count - 1
    verbose: bool = False
    log_path: Optional[str] = None

    def validate(self) -> "CMAESConfig":
        """
        Check value ranges.

        Raises:
            ValueError: If any setting is out of range
        """
        positive = {
            "sigma0": self.sigma0,
            "population_multiplier": self.population_multiplier,
            "sigma_exponent": self.sigma_exponent,
            "tolerance": self.tolerance,
            "sigma_tolerance": self.sigma_tolerance,
            "max_iter": self.max_iter,
        }
        for name, value in positive.items():
            if not value > 0:
                raise ValueError(f"{name} must be positive, got {value}")

        if self.population_size is not None and self.population_size < 2:
            raise ValueError(f"population_size must be >= 2, got {self.population_size}")
        if self.max_time is not None and self.max_time <= 0:
            raise ValueError(f"max_time must be positive, got {self.max_time}")
        if self.n_workers is not None and self.n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {self.n_workers}")
        return self

    def replace(self, **overrides) -> "CMAESConfig":
        return dataclass_replace(self, **overrides).validate()

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CMAESConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known}).validate()


def load_config(path: str) -> CMAESConfig:
    """
    Load a config from a JSON file.

    Settings may sit at the top level or under a "cmaes" key.
    """
    with open(path, "r") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")

    section = data.get("cmaes", data)
    config = CMAESConfig.from_dict(section)
    logger.info(f"Loaded config from {path}")
    return config
