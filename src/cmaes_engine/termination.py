"""
Termination criteria for CMA-ES.
"""

import math
import logging
from typing import Optional

from .data_structures import TerminationReason, TerminationState

logger = logging.getLogger(__name__)


def check_termination_criteria(
    best_cost: float,
    last_best_cost: float,
    sigma: float,
    generation: int,
    max_iter: int = 500,
    tolerance: float = 1e-8,
    sigma_tolerance: float = 1e-6,
    cost_ceiling: float = 100.0,
) -> tuple[Optional[TerminationReason], list[str]]:
    """
    Check the termination criteria in priority order.

    1. NonFinite: best-ever cost is NaN or infinite (failure)
    2. TolFun / TolSigma: best-ever changed by less than ``tolerance`` or
       sigma fell below ``sigma_tolerance``, and best-ever is under
       ``cost_ceiling``
    3. MaxIter: generation count reached ``max_iter``

    The ceiling keeps a stalled run far from any acceptable cost from being
    reported as converged.

    Args:
        best_cost: Best-ever cost after this generation
        last_best_cost: Best-ever cost after the previous generation
        sigma: Step size after this generation's update
        generation: Number of completed generations
        max_iter: Iteration budget
        tolerance: Absolute tolerance on the best-ever change
        sigma_tolerance: Lower threshold for sigma
        cost_ceiling: Best-ever must be below this to count as converged

    Returns:
        Tuple of (reason or None while running, list_of_triggered_conditions)
    """
    if math.isnan(best_cost) or math.isinf(best_cost):
        return TerminationReason.NON_FINITE_OBJECTIVE, ["NonFinite"]

    triggered_conditions = []
    if abs(last_best_cost - best_cost) < tolerance:
        triggered_conditions.append("TolFun")
    if sigma < sigma_tolerance:
        triggered_conditions.append("TolSigma")

    if triggered_conditions and best_cost < cost_ceiling:
        return TerminationReason.CONVERGED, triggered_conditions

    if generation >= max_iter:
        return TerminationReason.BUDGET_EXHAUSTED, ["MaxIter"]

    return None, []


class TerminationPolicy:
    """
    State machine RUNNING -> {CONVERGED, NUMERICAL_FAILURE, BUDGET_EXHAUSTED}.

    Terminal states are absorbing: once a reason is recorded further checks
    return it unchanged.
    """

    def __init__(
        self,
        max_iter: int = 500,
        tolerance: float = 1e-8,
        sigma_tolerance: float = 1e-6,
        cost_ceiling: float = 100.0,
    ):
        self.max_iter = max_iter
        self.tolerance = tolerance
        self.sigma_tolerance = sigma_tolerance
        self.cost_ceiling = cost_ceiling
        self.reason: Optional[TerminationReason] = None
        self.triggered_conditions: list[str] = []

    @classmethod
    def from_config(cls, config) -> "TerminationPolicy":
        return cls(
            max_iter=config.max_iter,
            tolerance=config.tolerance,
            sigma_tolerance=config.sigma_tolerance,
            cost_ceiling=config.cost_ceiling,
        )

    @property
    def state(self) -> TerminationState:
        if self.reason is None:
            return TerminationState.RUNNING
        return self.reason.state

    def check(self, best_cost, last_best_cost, sigma, generation) -> TerminationState:
        if self.reason is None:
            reason, triggered = check_termination_criteria(
                best_cost,
                last_best_cost,
                sigma,
                generation,
                max_iter=self.max_iter,
                tolerance=self.tolerance,
                sigma_tolerance=self.sigma_tolerance,
                cost_ceiling=self.cost_ceiling,
            )
            if reason is not None:
                self.stop(reason, triggered)
        return self.state

    def stop(self, reason: TerminationReason, triggered_conditions=()):
        """Force a terminal reason, e.g. after a factorization failure or a caller-imposed stop."""
        if self.reason is not None:
            return
        self.reason = reason
        self.triggered_conditions = list(triggered_conditions)
        logger.info(
            f"Termination: {reason.value} ({', '.join(self.triggered_conditions) or 'forced'})"
        )
