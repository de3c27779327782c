"""
Objective variants for CMA-ES.

A ``Problem`` bundles an objective with the transform that decodes a search
vector into the objective's input. The optimizer resolves the objective-kind
selector into a ``Problem`` once per run and calls ``Problem.evaluate`` for
every candidate.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Any, Callable

from .parameters import IdentityTransform


@dataclass
class Problem:
    """Objective plus encode/decode transform."""

    name: str
    objective: Callable[[Any], float]
    transform: Any = field(default_factory=IdentityTransform)

    def decode(self, vector: np.ndarray):
        return self.transform.decode(vector)

    def encode(self, value) -> np.ndarray:
        return self.transform.encode(value)

    def evaluate(self, vector: np.ndarray) -> float:
        return float(self.objective(self.transform.decode(vector)))


_REGISTRY: dict[str, Callable[..., Problem]] = {}


def register_objective(name: str):
    """
    Register a problem factory under ``name``.

    The decorated callable receives the keyword arguments given to
    ``get_problem`` and returns a ``Problem``.
    """
    def decorator(factory):
        if name in _REGISTRY:
            raise ValueError(f"Objective '{name}' is already registered")
        _REGISTRY[name] = factory
        return factory
    return decorator


def available_objectives() -> list[str]:
    return sorted(_REGISTRY)


def get_problem(name: str, **kwargs) -> Problem:
    try:
        factory = _REGISTRY[name]
    except KeyError:
        raise KeyError(
            f"Unknown objective '{name}', available: {', '.join(available_objectives())}"
        ) from None
    return factory(**kwargs)


def resolve_problem(objective, **kwargs) -> Problem:
    """Turn a registry key, a ``Problem`` or a plain callable into a ``Problem``."""
    if isinstance(objective, Problem):
        return objective
    if isinstance(objective, str):
        return get_problem(objective, **kwargs)
    if callable(objective):
        return Problem(name=getattr(objective, "__name__", "objective"), objective=objective)
    raise TypeError(f"Cannot build a problem from {type(objective).__name__}")


# Benchmark functions. Module-level so they pickle for pool evaluation.

def sphere(x) -> float:
    x = np.asarray(x, dtype=float)
    return float(np.dot(x, x))


def ellipsoid(x) -> float:
    x = np.asarray(x, dtype=float)
    n = len(x)
    if n == 1:
        return float(x[0] ** 2)
    scales = 1e6 ** (np.arange(n) / (n - 1))
    return float(np.sum(scales * x ** 2))


def rosenbrock(x) -> float:
    x = np.asarray(x, dtype=float)
    return float(np.sum(100.0 * (x[1:] - x[:-1] ** 2) ** 2 + (1.0 - x[:-1]) ** 2))


def rastrigin(x) -> float:
    x = np.asarray(x, dtype=float)
    return float(10.0 * len(x) + np.sum(x ** 2 - 10.0 * np.cos(2.0 * np.pi * x)))


@register_objective("sphere")
def _sphere_problem():
    return Problem(name="sphere", objective=sphere)


@register_objective("ellipsoid")
def _ellipsoid_problem():
    return Problem(name="ellipsoid", objective=ellipsoid)


@register_objective("rosenbrock")
def _rosenbrock_problem():
    return Problem(name="rosenbrock", objective=rosenbrock)


@register_objective("rastrigin")
def _rastrigin_problem():
    return Problem(name="rastrigin", objective=rastrigin)
