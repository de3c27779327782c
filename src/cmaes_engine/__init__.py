"""
Covariance Matrix Adaptation Evolution Strategy (CMA-ES) engine.

This package minimizes black-box scalar objectives over continuous search
spaces. The optimizer samples from an adapted multivariate Gaussian, ranks
candidates by cost, recombines the best half and adapts step size and
covariance every generation, stopping on convergence, numerical failure or
budget exhaustion.
"""

from .config import CMAESConfig, load_config
from .core import CMAESError, CovarianceFactorizationError
from .data_structures import OptimizationResult, TerminationReason, TerminationState
from .objectives import Problem, get_problem, register_objective
from .optimizer import CMAESOptimizer, optimize
from .parameters import BoundedTransform, IdentityTransform, ParameterSpace

__all__ = [
    'CMAESConfig',
    'load_config',
    'CMAESError',
    'CovarianceFactorizationError',
    'OptimizationResult',
    'TerminationReason',
    'TerminationState',
    'Problem',
    'get_problem',
    'register_objective',
    'CMAESOptimizer',
    'optimize',
    'BoundedTransform',
    'IdentityTransform',
    'ParameterSpace',
]
