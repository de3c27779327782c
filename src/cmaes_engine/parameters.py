"""
Strategy parameter derivation and search-space transforms for CMA-ES.
"""

import math
import numpy as np

from .data_structures import StrategyParameters


def population_size_for(n_dimensions: int, multiplier: float = 11.0) -> int:
    """
    Population size lambda = (4 + 3 ln n) * multiplier, rounded half up.

    The textbook multiplier is 1 (or 10 for large populations); 11 is the
    tuned default and trades extra evaluations for more exploration.
    """
    if n_dimensions < 1:
        raise ValueError(f"n_dimensions must be >= 1, got {n_dimensions}")
    if multiplier <= 0:
        raise ValueError(f"multiplier must be positive, got {multiplier}")
    return int(math.floor((4.0 + 3.0 * math.log(n_dimensions)) * multiplier + 0.5))


def recombination_weights(population_size: int) -> np.ndarray:
    """
    Log-linear recombination weights for the best mu = floor(lambda / 2 + 0.5),
    i.e. lambda / 2 rounded half up.

    Args:
        population_size: lambda, must be >= 2

    Returns:
        Array of mu positive, decreasing weights summing to 1
    """
    if population_size < 2:
        raise ValueError(f"population_size must be >= 2, got {population_size}")

    mu = int(math.floor(population_size / 2.0 + 0.5))
    weights = np.log(mu + 0.5) - np.log(np.arange(mu) + 1.0)
    weights /= weights.sum()
    return weights


def derive_strategy_parameters(
    n_dimensions: int,
    population_multiplier: float = 11.0,
    population_size: int = None,
    sigma_exponent: float = 0.3,
) -> StrategyParameters:
    """
    Compute all run constants from the dimension and population size.

    Args:
        n_dimensions: Number of dimensions in the search space
        population_multiplier: Multiplier K in lambda = round((4 + 3 ln n) * K)
        population_size: Explicit lambda, overrides the multiplier formula
        sigma_exponent: Exponent applied to the step-size update factor

    Returns:
        StrategyParameters: Frozen set of constants for the run
    """
    n = n_dimensions
    if n < 1:
        raise ValueError(f"n_dimensions must be >= 1, got {n}")

    if population_size is None:
        lam = population_size_for(n, population_multiplier)
    else:
        lam = int(population_size)

    weights = recombination_weights(lam)
    mu = len(weights)

    # Variance effective selection mass
    mueff = 1.0 / (weights ** 2).sum()

    # Step-size control
    cs = (mueff + 2.0) / (n + mueff + 5.0)
    damps = 1.0 + cs + 2.0 * max(0.0, math.sqrt((mueff - 1.0) / (n + 1.0)) - 1.0)

    # Expected value of ||N(0,I)||
    chiN = math.sqrt(n) * (1.0 - 1.0 / (4.0 * n) + 1.0 / (21.0 * n ** 2))

    # Covariance cumulation and heaviside gate
    cc = (4.0 + mueff / n) / (4.0 + n + 2.0 * mueff / n)
    h_threshold = (1.4 + 2.0 / (n + 1.0)) * chiN

    # Learning rates for rank-one and rank-mu updates
    c1 = 2.0 / ((n + 1.3) ** 2 + mueff)
    cmu = min(1.0 - c1, 2.0 * (mueff - 2.0 + 1.0 / mueff) / ((n + 2.0) ** 2 + mueff))

    weights.setflags(write=False)

    return StrategyParameters(
        n_dimensions=n,
        population_size=lam,
        mu=mu,
        weights=weights,
        mueff=mueff,
        cs=cs,
        damps=damps,
        chiN=chiN,
        cc=cc,
        h_threshold=h_threshold,
        c1=c1,
        cmu=cmu,
        sigma_exponent=sigma_exponent,
    )


class IdentityTransform:
    """Search vector is the domain value."""

    def encode(self, value) -> np.ndarray:
        return np.asarray(value, dtype=float).ravel().copy()

    def decode(self, vector: np.ndarray) -> np.ndarray:
        return np.array(vector, dtype=float)


class BoundedTransform:
    """
    Affine map between a box [lower, upper] and the unit box.

    The optimizer searches the unit box. Decoded values are not clipped: points
    outside [0, 1] map outside the box and the objective is expected to
    penalize them.
    """

    def __init__(self, lower_bounds, upper_bounds):
        self.lower_bounds = np.asarray(lower_bounds, dtype=float)
        self.upper_bounds = np.asarray(upper_bounds, dtype=float)

        if self.lower_bounds.shape != self.upper_bounds.shape:
            raise ValueError(
                f"Dimension mismatch: lower bounds have {self.lower_bounds.size} dimensions, "
                f"upper bounds have {self.upper_bounds.size} dimensions"
            )

        ranges = self.upper_bounds - self.lower_bounds
        if np.any(ranges <= 0):
            bad_indices = np.where(ranges <= 0)[0]
            raise ValueError(
                f"Cannot map parameters with non-positive range at indices: {bad_indices.tolist()}"
            )
        self.ranges = ranges

    def encode(self, value) -> np.ndarray:
        return normalize_solution(np.asarray(value, dtype=float), self.lower_bounds, self.upper_bounds)

    def decode(self, vector: np.ndarray) -> np.ndarray:
        return denormalize_solution(np.asarray(vector, dtype=float), self.lower_bounds, self.upper_bounds)


def normalize_solution(
    solution: np.ndarray,
    lower_bounds: np.ndarray,
    upper_bounds: np.ndarray
) -> np.ndarray:
    """
    Transform solution from original parameter bounds to normalized [0, 1] space.

    Formula:
        normalized = (x - lower) / (upper - lower)
    """
    if len(solution) != len(lower_bounds) or len(solution) != len(upper_bounds):
        raise ValueError(
            f"Dimension mismatch: solution has {len(solution)} dimensions, "
            f"but bounds have {len(lower_bounds)} dimensions"
        )

    return (solution - lower_bounds) / (upper_bounds - lower_bounds)


def denormalize_solution(
    normalized_solution: np.ndarray,
    lower_bounds: np.ndarray,
    upper_bounds: np.ndarray,
    integer_params_indices: list = ()
) -> np.ndarray:
    """
    Transform solution from normalized [0, 1] space to original parameter bounds.

    Formula:
        denormalized = lower + x * (upper - lower)

    Integer parameters are rounded to the nearest integer afterwards.
    """
    if len(normalized_solution) != len(lower_bounds) or len(normalized_solution) != len(upper_bounds):
        raise ValueError(
            f"Dimension mismatch: solution has {len(normalized_solution)} dimensions, "
            f"but bounds have {len(lower_bounds)} dimensions"
        )

    denormalized = lower_bounds + normalized_solution * (upper_bounds - lower_bounds)

    for idx in integer_params_indices:
        if 0 <= idx < len(denormalized):
            denormalized[idx] = np.round(denormalized[idx])

    return denormalized


class ParameterSpace:
    """
    Named parameters <-> flat search vector.

    Parameters whose bounds have min == max are fixed and never enter the
    search vector. Decoding yields a dict of every parameter in declaration
    order.
    """

    def __init__(self, all_param_names, optimizable_bounds, fixed_params, integer_params=()):
        self.all_param_names = list(all_param_names)
        self.optimizable_param_names = list(optimizable_bounds.keys())
        self.fixed_params = dict(fixed_params)
        self.integer_params = set(integer_params)

        self.lower_bounds = np.array([optimizable_bounds[name][0] for name in self.optimizable_param_names], dtype=float)
        self.upper_bounds = np.array([optimizable_bounds[name][1] for name in self.optimizable_param_names], dtype=float)
        self.integer_params_indices = [
            i for i, name in enumerate(self.optimizable_param_names)
            if name in self.integer_params
        ]

    @classmethod
    def from_bounds(cls, parameter_bounds: dict, integer_params=()) -> "ParameterSpace":
        """
        Build a space from {param_name: (min_val, max_val)}.

        Raises:
            ValueError: If bounds are empty or any parameter has min > max
        """
        if not parameter_bounds:
            raise ValueError("parameter_bounds cannot be empty")

        optimizable_bounds = {}
        fixed_params = {}

        for param_name, bounds in parameter_bounds.items():
            min_val, max_val = bounds

            if min_val > max_val:
                raise ValueError(
                    f"Invalid bounds for parameter '{param_name}': "
                    f"min ({min_val}) > max ({max_val})"
                )

            if min_val != max_val:
                optimizable_bounds[param_name] = (float(min_val), float(max_val))
            else:
                fixed_params[param_name] = min_val

        if not optimizable_bounds:
            raise ValueError("parameter_bounds has no optimizable parameters")

        unknown = set(integer_params) - set(parameter_bounds)
        if unknown:
            raise ValueError(f"Unknown integer parameters: {sorted(unknown)}")

        return cls(parameter_bounds.keys(), optimizable_bounds, fixed_params, integer_params)

    @property
    def n_dimensions(self) -> int:
        return len(self.optimizable_param_names)

    def encode(self, values: dict) -> np.ndarray:
        """Map a {name: value} dict to the unit-box search vector. Missing names use the box center."""
        solution = np.array([
            values.get(name, (lo + hi) / 2.0)
            for name, lo, hi in zip(self.optimizable_param_names, self.lower_bounds, self.upper_bounds)
        ], dtype=float)
        return normalize_solution(solution, self.lower_bounds, self.upper_bounds)

    def decode(self, vector: np.ndarray) -> dict:
        denormalized = denormalize_solution(
            np.asarray(vector, dtype=float), self.lower_bounds, self.upper_bounds, self.integer_params_indices
        )
        decoded = dict(zip(self.optimizable_param_names, denormalized.tolist()))
        for idx in self.integer_params_indices:
            name = self.optimizable_param_names[idx]
            decoded[name] = int(decoded[name])
        decoded.update(self.fixed_params)
        return {name: decoded[name] for name in self.all_param_names}
