"""
Main CMA-ES optimizer.
"""

import time
import logging
import numpy as np

from .config import CMAESConfig
from .core import (
    CovarianceFactorizationError,
    factorize_covariance,
    initialize_cma_state,
    rank_population,
    recombine,
    sample_population,
    update_cma_state,
)
from .data_structures import OptimizationResult, TerminationReason, TerminationState
from .evaluation import cleanup_pool, create_pool, evaluate_population
from .objectives import resolve_problem
from .parameters import derive_strategy_parameters
from .reporting import configure_logging, report_configuration, report_result
from .termination import TerminationPolicy

logger = logging.getLogger(__name__)


class CMAESOptimizer:
    """
    One CMA-ES run over a single problem.

    The optimizer owns all numeric state of the run. Use ``run()`` for a full
    optimization, or ``initialize()`` followed by repeated ``step()`` calls to
    drive generations manually. A new run needs a fresh ``initialize()``.

    Args:
        problem: Registry key, ``Problem`` or callable objective
        x0: Initial point in search space
        config: Run settings (defaults to ``CMAESConfig()``)
        rng: Random generator; seeded from ``config.seed`` when omitted
        problem_kwargs: Keyword arguments for a registry problem factory
    """

    def __init__(self, problem, x0, config=None, rng=None, problem_kwargs=None):
        self.config = (config if config is not None else CMAESConfig()).validate()
        self.problem = resolve_problem(problem, **(problem_kwargs or {}))
        self.x0 = np.asarray(x0, dtype=float).ravel().copy()
        if len(self.x0) < 1:
            raise ValueError("x0 must have at least one dimension")

        self.params = derive_strategy_parameters(
            len(self.x0),
            population_multiplier=self.config.population_multiplier,
            population_size=self.config.population_size,
            sigma_exponent=self.config.sigma_exponent,
        )
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)

        self.state = None
        self.policy = None
        self.logbook = []
        self.pool = None

    def initialize(self):
        """Fresh state at x0: identity covariance, zero paths, sigma0, x0 evaluated once."""
        self.state = initialize_cma_state(self.params, self.x0, self.config.sigma0)
        self.state.best_cost = self.problem.evaluate(self.x0)
        self.state.evaluations = 1
        self.policy = TerminationPolicy.from_config(self.config)
        self.logbook = []
        logger.info(f"Initial cost at x0: {self.state.best_cost:.6e}")
        return self.state

    def step(self) -> TerminationState:
        """
        Run one generation and return the termination state afterwards.

        A covariance matrix that cannot be factored ends the run with
        NUMERICAL_BREAKDOWN; the distribution of the last completed
        generation is kept. The buffers and the generation counter only
        advance once the population and the new mean have been evaluated,
        so an exception raised by the objective leaves the state of the last
        completed generation intact.
        """
        if self.state is None:
            self.initialize()
        if self.policy.state is not TerminationState.RUNNING:
            return self.policy.state

        state = self.state
        params = self.params

        old = state.current

        try:
            cov_lower = factorize_covariance(old.C)
        except CovarianceFactorizationError as e:
            logger.warning(f"Gen {state.generation + 1}: {e}")
            self.policy.stop(TerminationReason.NUMERICAL_BREAKDOWN, ["CholeskyFailure"])
            return self.policy.state

        population = sample_population(old, cov_lower, params.population_size, self.rng)
        population.costs = evaluate_population(self.problem, population.candidates, self.pool)
        order = rank_population(population.costs)

        step, noise_step, selected = recombine(params, population, order)
        new_mean = old.mean + old.sigma * step
        recombined_cost = self.problem.evaluate(new_mean)

        state.swap()
        state.generation += 1
        state.evaluations += len(population) + 1

        if recombined_cost < state.best_cost:
            state.best_cost = recombined_cost
            state.best_solution = new_mean.copy()

        hsig = update_cma_state(state, step, noise_step, selected, new_mean)

        record = {
            "gen": state.generation,
            "evals": state.evaluations,
            "best": state.best_cost,
            "recombined": recombined_cost,
            "pop_best": float(population.costs[order[0]]),
            "pop_median": float(np.median(population.costs)),
            "sigma": state.sigma,
            "hsig": hsig,
        }
        self.logbook.append(record)
        logger.info(
            f"Gen {state.generation}: "
            f"Evals={state.evaluations}, "
            f"Best={state.best_cost:.6e}, "
            f"Recombined={recombined_cost:.6e}, "
            f"PopBest={record['pop_best']:.6e}, "
            f"Sigma={state.sigma:.6e}, "
            f"hsig={int(hsig)}"
        )

        result_state = self.policy.check(
            state.best_cost, state.last_best_cost, state.sigma, state.generation
        )
        state.last_best_cost = state.best_cost
        return result_state

    def run(self, callback=None) -> OptimizationResult:
        """
        Optimize until a termination criterion fires.

        Args:
            callback: Optional ``callback(optimizer)`` called after every
                generation; returning True stops the run (INTERRUPTED)

        Returns:
            OptimizationResult with the best-ever point and the reason
        """
        config = self.config
        start_time = time.time()

        if config.log_path:
            configure_logging(config.log_path)

        self.initialize()

        logger.info("=" * 80)
        logger.info(f"CMA-ES on '{self.problem.name}'")
        logger.info(f"Dimensions: {self.params.n_dimensions}")
        logger.info(f"Population size: {self.params.population_size} (mu={self.params.mu})")
        logger.info(f"Initial sigma: {config.sigma0}")
        logger.info(f"Max iterations: {config.max_iter}")
        logger.info("=" * 80)
        if config.verbose:
            report_configuration(config, self.params, self.problem.name)

        self.pool = create_pool(config.n_workers)
        try:
            while self.step() is TerminationState.RUNNING:
                if callback is not None and callback(self):
                    self.policy.stop(TerminationReason.INTERRUPTED, ["Callback"])
                elif config.max_time is not None and time.time() - start_time >= config.max_time:
                    self.policy.stop(TerminationReason.TIME_LIMIT, ["MaxTime"])

        except KeyboardInterrupt:
            logger.info("Optimization interrupted by user (KeyboardInterrupt)")
            self.policy.stop(TerminationReason.INTERRUPTED, ["KeyboardInterrupt"])

        finally:
            cleanup_pool(self.pool)
            self.pool = None

        result = self.result()
        elapsed = time.time() - start_time

        logger.info(
            f"Finished after {result.generations} generations: {result.reason.value}, "
            f"best={result.best_cost:.6e}, time={elapsed:.2f}s"
        )
        if config.verbose:
            report_result(result, elapsed)

        return result

    def result(self) -> OptimizationResult:
        if self.state is None:
            raise RuntimeError("optimizer has not been initialized")
        state = self.state
        reason = self.policy.reason if self.policy.reason is not None else TerminationReason.INTERRUPTED
        return OptimizationResult(
            best_cost=state.best_cost,
            best_solution=state.best_solution.copy(),
            reason=reason,
            generations=state.generation,
            evaluations=state.evaluations,
            sigma=state.sigma,
            decoded=self.problem.decode(state.best_solution),
            logbook=list(self.logbook),
        )


def optimize(x0, dimension=None, objective="sphere", config=None, rng=None, problem_kwargs=None, **overrides):
    """
    Minimize ``objective`` starting from ``x0``.

    Args:
        x0: Initial flat search vector
        dimension: Expected length of x0 (checked when given)
        objective: Objective-kind selector: registry key, ``Problem`` or callable
        config: Base ``CMAESConfig``
        rng: Random generator, overrides ``config.seed``
        problem_kwargs: Keyword arguments for a registry problem factory
        **overrides: Config fields replacing those of ``config``

    Returns:
        OptimizationResult; ``result.as_tuple()`` is
        (best_cost, best_solution, reason)
    """
    x0 = np.asarray(x0, dtype=float).ravel()
    if dimension is not None:
        if dimension < 1:
            raise ValueError(f"dimension must be >= 1, got {dimension}")
        if len(x0) != dimension:
            raise ValueError(f"x0 has {len(x0)} dimensions, expected {dimension}")

    config = config if config is not None else CMAESConfig()
    if overrides:
        config = config.replace(**overrides)

    return CMAESOptimizer(objective, x0, config=config, rng=rng, problem_kwargs=problem_kwargs).run()
