"""
Population evaluation for the CMA-ES engine.

Candidates are evaluated either sequentially or on a multiprocessing pool.
Pool results arrive in arbitrary order and carry their population index, so
costs are always returned in population order.
"""

import logging
import numpy as np
from multiprocessing import Pool, cpu_count

logger = logging.getLogger(__name__)


def _evaluate_indexed(args):
    problem, idx, candidate = args
    return problem.evaluate(candidate), idx


def evaluate_population(problem, candidates, pool=None):
    """
    Evaluate every candidate of a population.

    Parameters
    ----------
    problem : Problem
        Problem whose ``evaluate`` maps a search vector to a cost
    candidates : np.ndarray
        (lambda, n) array of candidate points
    pool : multiprocessing.Pool, optional
        Worker pool; evaluated sequentially when None

    Returns
    -------
    np.ndarray
        Costs in population order
    """
    if pool is None:
        return np.array([problem.evaluate(candidate) for candidate in candidates], dtype=float)

    costs = np.empty(len(candidates), dtype=float)
    eval_args = [(problem, idx, candidate) for idx, candidate in enumerate(candidates)]

    for cost, idx in pool.imap_unordered(_evaluate_indexed, eval_args):
        costs[idx] = cost

    return costs


def create_pool(n_workers):
    """
    Create a worker pool, or None for sequential evaluation.

    Parameters
    ----------
    n_workers : int or None
        Number of processes. 1 means sequential, None means cpu_count - 1.
    """
    if n_workers is None:
        n_workers = max(1, cpu_count() - 1)
    if n_workers <= 1:
        return None
    logger.info(f"Creating multiprocessing pool with {n_workers} workers")
    return Pool(processes=n_workers)


def cleanup_pool(pool):
    """Close and join a pool created by ``create_pool``; terminate it if closing fails."""
    if pool is None:
        return

    try:
        pool.close()
        pool.join()
        logger.debug("Multiprocessing pool closed successfully")
    except (OSError, ValueError) as e:
        logger.error(f"Error closing multiprocessing pool: {e}")
        pool.terminate()
        pool.join()
