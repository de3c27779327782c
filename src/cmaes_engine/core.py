"""
Core CMA-ES algorithm implementation.
"""

import numpy as np

from .data_structures import CMAESState, DistributionSnapshot, Population, StrategyParameters


class CMAESError(Exception):
    """Base class for CMA-ES engine errors."""


class CovarianceFactorizationError(CMAESError):
    """Covariance matrix could not be Cholesky-factored. Fatal for the run."""


def initialize_cma_state(
    params: StrategyParameters,
    initial_mean: np.ndarray,
    sigma0: float
) -> CMAESState:
    """
    Initialize fresh CMA-ES state with identity covariance.

    Args:
        params: Strategy parameters derived for this run
        initial_mean: Starting point x0 in search space
        sigma0: Initial step size

    Returns:
        CMAESState: Fresh state, both slots holding the initial distribution
    """
    n = params.n_dimensions
    initial_mean = np.asarray(initial_mean, dtype=float).ravel()

    if sigma0 <= 0:
        raise ValueError(f"sigma0 must be positive, got {sigma0}")
    if len(initial_mean) != n:
        raise ValueError(
            f"initial_mean has {len(initial_mean)} dimensions, "
            f"expected {n}"
        )

    snapshot = DistributionSnapshot(
        mean=initial_mean.copy(),
        sigma=float(sigma0),
        ps=np.zeros(n),
        pc=np.zeros(n),
        C=np.eye(n),
    )

    return CMAESState(
        params=params,
        previous=snapshot,
        current=snapshot.copy(),
        best_solution=initial_mean.copy(),
    )


def factorize_covariance(C: np.ndarray) -> np.ndarray:
    """
    Lower-triangular Cholesky root L with C = L L^T.

    Raises:
        CovarianceFactorizationError: If C has non-finite entries or is not
            positive definite
    """
    if not np.all(np.isfinite(C)):
        raise CovarianceFactorizationError("covariance matrix has non-finite entries")
    try:
        return np.linalg.cholesky(C)
    except np.linalg.LinAlgError as e:
        raise CovarianceFactorizationError(f"covariance matrix is not positive definite: {e}") from e


def sample_population(
    snapshot: DistributionSnapshot,
    cov_lower: np.ndarray,
    population_size: int,
    rng: np.random.Generator
) -> Population:
    """
    Sample lambda candidates from N(mean, sigma^2 C).

    All noise is drawn in a single call before any evaluation, so the
    offsets do not depend on how the population is evaluated afterwards.
    Rows are samples: y_k = L z_k is computed as Z @ L^T.
    """
    n = len(snapshot.mean)
    noise = rng.standard_normal((population_size, n))
    offsets = noise @ cov_lower.T
    candidates = snapshot.mean + snapshot.sigma * offsets
    return Population(noise=noise, offsets=offsets, candidates=candidates)


def rank_population(costs: np.ndarray) -> np.ndarray:
    """Indices sorting costs ascending. Ties keep population order, NaN sorts last."""
    return np.argsort(np.asarray(costs, dtype=float), kind="stable")


def recombine(
    params: StrategyParameters,
    population: Population,
    order: np.ndarray
):
    """
    Weighted recombination of the best mu samples.

    Returns:
        Tuple of:
            - step: sum_j w_j y[rank j]
            - noise_step: sum_j w_j z[rank j], which equals L^-1 step
            - selected: (mu, n) offsets of the selected samples, best first
    """
    selected_idx = order[:params.mu]
    selected = population.offsets[selected_idx]
    step = params.weights @ selected
    noise_step = params.weights @ population.noise[selected_idx]
    return step, noise_step, selected


def repair_covariance(C: np.ndarray) -> np.ndarray:
    """
    Project C onto the positive semi-definite cone.

    If any eigenvalue is negative, C is rebuilt from the eigenpairs with
    non-negative eigenvalues only; the negative-eigenvalue subspace is removed
    entirely. If every eigenvalue is negative the result is the zero matrix.
    """
    eigenvalues, eigenvectors = np.linalg.eigh(C)
    if eigenvalues[0] >= 0:
        return C

    keep = eigenvalues >= 0
    if not np.any(keep):
        return np.zeros_like(C)

    kept_vectors = eigenvectors[:, keep]
    repaired = (kept_vectors * eigenvalues[keep]) @ kept_vectors.T
    return (repaired + repaired.T) / 2.0


def update_cma_state(
    state: CMAESState,
    step: np.ndarray,
    noise_step: np.ndarray,
    selected: np.ndarray,
    new_mean: np.ndarray,
) -> bool:
    """
    Write the adapted distribution of this generation into ``state.current``.

    Reads only ``state.previous``. Order of the updates:
    1. Evolution path for step-size (ps)
    2. Sigma from ||ps||, damped by the sigma exponent
    3. Heaviside gate and evolution path for covariance (pc)
    4. Covariance matrix: decay + rank-one + rank-mu
    5. Positive semi-definite repair

    Returns:
        The heaviside gate value h_sigma for this generation
    """
    p = state.params
    old = state.previous
    new = state.current
    generation = state.generation

    # 1. ps cumulation with L^-1 step
    ps = (1.0 - p.cs) * old.ps + np.sqrt(p.cs * (2.0 - p.cs) * p.mueff) * noise_step
    ps_norm = np.linalg.norm(ps)

    # 2. sigma update
    sigma = old.sigma * np.exp((p.cs / p.damps) * (ps_norm / p.chiN - 1.0)) ** p.sigma_exponent

    # 3. heaviside gate and pc cumulation
    hsig = ps_norm / np.sqrt(1.0 - (1.0 - p.cs) ** (2.0 * generation)) < p.h_threshold

    if hsig:
        pc = (1.0 - p.cc) * old.pc + np.sqrt(p.cc * (2.0 - p.cc) * p.mueff) * step
        rank_one = p.c1 * np.outer(pc, pc)
    else:
        # Compensate the variance the blocked path would have injected
        pc = (1.0 - p.cc) * old.pc
        rank_one = p.c1 * (np.outer(pc, pc) + p.cc * (2.0 - p.cc) * old.C)

    # 4. covariance update
    rank_mu = p.cmu * (selected.T * p.weights) @ selected
    C = (1.0 - p.c1 - p.cmu) * old.C + rank_one + rank_mu
    C = (C + C.T) / 2.0

    # 5. repair
    C = repair_covariance(C)

    new.mean = new_mean
    new.sigma = float(sigma)
    new.ps = ps
    new.pc = pc
    new.C = C

    return bool(hsig)
