"""
Data structures for the CMA-ES engine.
"""

import math
import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class TerminationState(Enum):
    """States of the termination state machine."""

    RUNNING = "running"
    CONVERGED = "converged"
    NUMERICAL_FAILURE = "numerical_failure"
    BUDGET_EXHAUSTED = "budget_exhausted"


class TerminationReason(Enum):
    """Why a run stopped. Each reason maps onto one terminal state."""

    CONVERGED = "converged"
    NON_FINITE_OBJECTIVE = "non_finite_objective"
    NUMERICAL_BREAKDOWN = "numerical_breakdown"
    BUDGET_EXHAUSTED = "budget_exhausted"
    TIME_LIMIT = "time_limit"
    INTERRUPTED = "interrupted"

    @property
    def state(self) -> TerminationState:
        if self is TerminationReason.CONVERGED:
            return TerminationState.CONVERGED
        if self in (TerminationReason.NON_FINITE_OBJECTIVE, TerminationReason.NUMERICAL_BREAKDOWN):
            return TerminationState.NUMERICAL_FAILURE
        return TerminationState.BUDGET_EXHAUSTED

    @property
    def failed(self) -> bool:
        return self.state is TerminationState.NUMERICAL_FAILURE


@dataclass(frozen=True)
class StrategyParameters:
    """Constants derived once from n and lambda. Never mutated during a run."""

    n_dimensions: int
    population_size: int          # lambda
    mu: int                       # Number of parents
    weights: np.ndarray           # (mu,) - recombination weights
    mueff: float                  # Variance effective selection mass
    cs: float                     # Time constant for sigma evolution path
    damps: float                  # Damping for sigma adaptation
    chiN: float                   # Expected value of ||N(0,I)||
    cc: float                     # Time constant for C evolution path
    h_threshold: float            # Heaviside gate threshold on ||ps||
    c1: float                     # Learning rate for rank-one update
    cmu: float                    # Learning rate for rank-mu update
    sigma_exponent: float = 0.3   # Damping exponent on the sigma update


@dataclass
class DistributionSnapshot:
    """One slot of the double-buffered search distribution."""

    mean: np.ndarray              # (n,)
    sigma: float                  # Step size
    ps: np.ndarray                # (n,) - evolution path for sigma
    pc: np.ndarray                # (n,) - evolution path for C
    C: np.ndarray                 # (n, n) - covariance matrix

    def copy(self) -> "DistributionSnapshot":
        return DistributionSnapshot(
            mean=self.mean.copy(),
            sigma=self.sigma,
            ps=self.ps.copy(),
            pc=self.pc.copy(),
            C=self.C.copy(),
        )


@dataclass
class CMAESState:
    """
    Complete state of one CMA-ES run.

    The distribution lives in two named slots. At the start of every generation
    the slots are swapped, so ``previous`` holds the last committed distribution
    and ``current`` is the slot the generation writes into. Update formulas read
    only from ``previous``.
    """

    params: StrategyParameters
    previous: DistributionSnapshot
    current: DistributionSnapshot

    # Tracking
    generation: int = 0
    evaluations: int = 0
    best_cost: float = math.inf
    last_best_cost: float = math.inf
    best_solution: Optional[np.ndarray] = None

    def swap(self):
        """Exchange the two slots without copying."""
        self.previous, self.current = self.current, self.previous

    @property
    def mean(self) -> np.ndarray:
        return self.current.mean

    @property
    def sigma(self) -> float:
        return self.current.sigma

    @property
    def C(self) -> np.ndarray:
        return self.current.C


@dataclass
class Population:
    """One generation's samples. Rows are indexed by population position."""

    noise: np.ndarray             # (lambda, n) - standard normal draws z
    offsets: np.ndarray           # (lambda, n) - y = L z
    candidates: np.ndarray        # (lambda, n) - x = mean + sigma * y
    costs: Optional[np.ndarray] = None

    def __len__(self):
        return self.candidates.shape[0]


@dataclass
class OptimizationResult:
    """Outcome of a run: best-ever point and why the run stopped."""

    best_cost: float
    best_solution: np.ndarray
    reason: TerminationReason
    generations: int
    evaluations: int
    sigma: float
    decoded: Any = None
    logbook: list = field(default_factory=list)

    @property
    def state(self) -> TerminationState:
        return self.reason.state

    @property
    def failed(self) -> bool:
        return self.reason.failed

    def as_tuple(self):
        return self.best_cost, self.best_solution, self.reason
