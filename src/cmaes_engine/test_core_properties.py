"""
Property-based tests for the core CMA-ES update.

Testing Framework: pytest + Hypothesis
"""

import numpy as np
import pytest
from hypothesis import given, strategies as st, settings

from cmaes_engine.core import (
    CovarianceFactorizationError,
    factorize_covariance,
    initialize_cma_state,
    rank_population,
    recombine,
    repair_covariance,
    sample_population,
    update_cma_state,
)
from cmaes_engine.objectives import rastrigin, sphere
from cmaes_engine.parameters import derive_strategy_parameters


def _assert_psd(C, context=""):
    assert np.array_equal(C, C.T), f"{context}: covariance is not symmetric"
    eigenvalues = np.linalg.eigvalsh(C)
    scale = max(1.0, float(np.max(np.abs(eigenvalues))))
    assert eigenvalues.min() >= -1e-10 * scale, f"{context}: negative eigenvalue {eigenvalues.min()}"


def _run_generation(state, objective, rng):
    """One generation using the core functions directly."""
    params = state.params
    state.swap()
    state.generation += 1
    old = state.previous
    cov_lower = factorize_covariance(old.C)
    population = sample_population(old, cov_lower, params.population_size, rng)
    population.costs = np.array([objective(x) for x in population.candidates])
    order = rank_population(population.costs)
    step, noise_step, selected = recombine(params, population, order)
    new_mean = old.mean + old.sigma * step
    update_cma_state(state, step, noise_step, selected, new_mean)
    return population, order, step, noise_step, cov_lower


def test_initial_state():
    params = derive_strategy_parameters(3)
    x0 = np.array([1.0, 2.0, 3.0])
    state = initialize_cma_state(params, x0, 1.5)

    assert np.array_equal(state.C, np.eye(3))
    assert state.sigma == 1.5
    assert np.array_equal(state.previous.ps, np.zeros(3))
    assert np.array_equal(state.previous.pc, np.zeros(3))
    assert state.generation == 0

    x0[0] = 100.0
    assert state.mean[0] == 1.0, "state must not alias the caller's x0"
    assert state.previous is not state.current
    assert state.previous.C is not state.current.C


def test_initial_state_validation():
    params = derive_strategy_parameters(3)
    with pytest.raises(ValueError):
        initialize_cma_state(params, np.zeros(2), 1.0)
    with pytest.raises(ValueError):
        initialize_cma_state(params, np.zeros(3), 0.0)


def test_factorize_covariance():
    C = np.array([[4.0, 2.0], [2.0, 3.0]])
    L = factorize_covariance(C)
    assert np.allclose(L @ L.T, C)
    assert np.allclose(L, np.tril(L))

    with pytest.raises(CovarianceFactorizationError):
        factorize_covariance(np.zeros((2, 2)))
    with pytest.raises(CovarianceFactorizationError):
        factorize_covariance(np.array([[1.0, 0.0], [0.0, -1.0]]))
    with pytest.raises(CovarianceFactorizationError, match="non-finite"):
        factorize_covariance(np.array([[np.nan, 0.0], [0.0, 1.0]]))


def test_sampling_is_deterministic_for_a_seed():
    params = derive_strategy_parameters(4)
    state = initialize_cma_state(params, np.ones(4), 0.7)
    L = factorize_covariance(np.diag([1.0, 2.0, 3.0, 4.0]))

    a = sample_population(state.current, L, params.population_size, np.random.default_rng(11))
    b = sample_population(state.current, L, params.population_size, np.random.default_rng(11))

    assert np.array_equal(a.noise, b.noise)
    assert np.array_equal(a.candidates, b.candidates)
    assert len(a) == params.population_size
    assert np.allclose(a.offsets, a.noise @ L.T)
    assert np.allclose(a.candidates, np.ones(4) + 0.7 * a.offsets)


def test_ranking_is_stable_and_puts_nan_last():
    costs = np.array([1.0, 0.5, 1.0, np.nan, 0.5, -2.0])
    assert rank_population(costs).tolist() == [5, 1, 4, 0, 2, 3]


def test_recombination_uses_best_mu_offsets():
    params = derive_strategy_parameters(2, population_size=6)
    state = initialize_cma_state(params, np.zeros(2), 1.0)
    population = sample_population(state.current, np.eye(2), 6, np.random.default_rng(0))
    costs = np.array([5.0, 0.0, 4.0, 1.0, 3.0, 2.0])
    order = rank_population(costs)

    step, noise_step, selected = recombine(params, population, order)

    assert np.array_equal(selected, population.offsets[[1, 3, 5]])
    assert np.allclose(step, params.weights @ population.offsets[[1, 3, 5]])
    # With L = I, L^-1 step is the step itself
    assert np.allclose(noise_step, step)


def test_noise_step_inverts_the_cholesky_root():
    params = derive_strategy_parameters(3)
    state = initialize_cma_state(params, np.zeros(3), 1.0)
    state.current.C = np.array([[2.0, 0.5, 0.0], [0.5, 1.0, 0.2], [0.0, 0.2, 3.0]])

    population, order, step, noise_step, L = _run_generation(state, sphere, np.random.default_rng(5))

    assert np.allclose(np.linalg.solve(L, step), noise_step)


def test_repair_keeps_psd_matrix_untouched():
    C = np.array([[2.0, 0.3], [0.3, 1.0]])
    assert np.array_equal(repair_covariance(C), C)


def test_repair_drops_negative_eigendirections():
    rotation = np.array([[np.cos(0.4), -np.sin(0.4)], [np.sin(0.4), np.cos(0.4)]])
    C = rotation @ np.diag([-0.5, 3.0]) @ rotation.T

    repaired = repair_covariance(C)

    expected = 3.0 * np.outer(rotation[:, 1], rotation[:, 1])
    assert np.allclose(repaired, expected)
    _assert_psd(repaired, "repaired")


def test_repair_all_negative_gives_zero_matrix():
    repaired = repair_covariance(-np.eye(3))
    assert np.array_equal(repaired, np.zeros((3, 3)))


def test_update_reads_previous_and_writes_current():
    params = derive_strategy_parameters(3)
    state = initialize_cma_state(params, np.full(3, 2.0), 1.0)
    previous_C = state.current.C

    _run_generation(state, sphere, np.random.default_rng(1))

    assert state.previous.C is previous_C
    assert np.array_equal(state.previous.C, np.eye(3)), "previous slot must not be modified"
    assert state.current.C is not state.previous.C
    assert state.current.mean is not state.previous.mean


def test_blocked_heaviside_gate_adds_variance_compensation():
    params = derive_strategy_parameters(2)
    state = initialize_cma_state(params, np.zeros(2), 1.0)
    state.swap()
    state.generation = 1
    old_pc = np.array([0.3, -0.1])
    state.previous.pc = old_pc

    # ||ps|| far above the threshold closes the gate
    noise_step = np.full(2, 50.0)
    step = np.array([0.2, 0.1])
    selected = np.tile(step, (params.mu, 1))
    hsig = update_cma_state(state, step, noise_step, selected, step.copy())

    assert hsig is False
    assert np.allclose(state.current.pc, (1.0 - params.cc) * old_pc)
    pc = state.current.pc
    expected = (
        (1.0 - params.c1 - params.cmu) * np.eye(2)
        + params.c1 * (np.outer(pc, pc) + params.cc * (2.0 - params.cc) * np.eye(2))
        + params.cmu * np.outer(step, step)
    )
    assert np.allclose(state.current.C, expected)


def test_open_heaviside_gate_injects_step_into_path():
    params = derive_strategy_parameters(2)
    state = initialize_cma_state(params, np.zeros(2), 1.0)
    state.swap()
    state.generation = 1

    step = np.array([0.01, -0.02])
    selected = np.tile(step, (params.mu, 1))
    hsig = update_cma_state(state, step, np.zeros(2), selected, step.copy())

    assert hsig is True
    expected_pc = np.sqrt(params.cc * (2.0 - params.cc) * params.mueff) * step
    assert np.allclose(state.current.pc, expected_pc)


def test_sigma_update_is_damped_by_exponent():
    params = derive_strategy_parameters(4)
    state = initialize_cma_state(params, np.zeros(4), 2.0)
    state.swap()
    state.generation = 1
    noise_step = np.array([0.5, 0.0, 0.0, 0.0])
    step = np.zeros(4)

    update_cma_state(state, step, noise_step, np.zeros((params.mu, 4)), np.zeros(4))

    ps_norm = np.sqrt(params.cs * (2 - params.cs) * params.mueff) * 0.5
    expected = 2.0 * np.exp((params.cs / params.damps) * (ps_norm / params.chiN - 1.0)) ** 0.3
    assert state.current.sigma == pytest.approx(expected)


@settings(max_examples=20, deadline=None)
@given(
    n=st.integers(min_value=2, max_value=8),
    seed=st.integers(min_value=0, max_value=2 ** 32 - 1),
    generations=st.integers(min_value=1, max_value=15),
)
def test_covariance_stays_psd_and_sigma_positive(n: int, seed: int, generations: int):
    """
    After every adaptation step C is symmetric without negative eigenvalues
    and sigma is strictly positive and finite.
    """
    rng = np.random.default_rng(seed)
    params = derive_strategy_parameters(n)
    state = initialize_cma_state(params, rng.uniform(-5.0, 5.0, n), 1.5)

    for g in range(generations):
        _run_generation(state, rastrigin, rng)
        _assert_psd(state.C, f"generation {g + 1}")
        assert state.sigma > 0 and np.isfinite(state.sigma), f"generation {g + 1}: sigma={state.sigma}"


@settings(max_examples=50, deadline=None)
@given(
    scale=st.floats(min_value=1e-6, max_value=10.0),
    seed=st.integers(min_value=0, max_value=2 ** 32 - 1),
)
def test_sigma_positive_for_any_finite_step(scale: float, seed: int):
    rng = np.random.default_rng(seed)
    params = derive_strategy_parameters(3)
    state = initialize_cma_state(params, np.zeros(3), 1.0)
    state.swap()
    state.generation = 1

    step = rng.standard_normal(3) * scale
    selected = rng.standard_normal((params.mu, 3)) * scale
    update_cma_state(state, step, step, selected, step)

    assert state.current.sigma > 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
