"""
Stop strategies decide when an optimization has converged.

Every strategy is called as

    strategy(iteration, point, value, grad, hess=None, delta=None) -> bool

after each step, where ``grad`` is the gradient the step was computed from
and ``delta`` the step actually taken. Strategies are independent of the
step rule that produced the point.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)


class GradientNormStopStrategy:
    def __init__(self, eps):
        self.eps = eps

    def __call__(self, iteration, point, value, grad, hess=None, delta=None):
        return bool(np.linalg.norm(grad) < self.eps)


class DeltaNormStopStrategy:
    def __init__(self, eps):
        self.eps = eps

    def __call__(self, iteration, point, value, grad, hess=None, delta=None):
        return delta is not None and bool(np.linalg.norm(delta) < self.eps)


class StopStrategy:
    """Converged when both the gradient norm and the step norm are below their thresholds."""

    def __init__(self, grad_eps, delta_eps):
        self.grad_eps = grad_eps
        self.delta_eps = delta_eps
        self._grad_strategy = GradientNormStopStrategy(grad_eps)
        self._delta_strategy = DeltaNormStopStrategy(delta_eps)

    def __call__(self, iteration, point, value, grad, hess=None, delta=None):
        return (self._grad_strategy(iteration, point, value, grad, hess, delta)
                and self._delta_strategy(iteration, point, value, grad, hess, delta))


class HistoryStrategyWrapper:
    """
    Record every call of the wrapped strategy without changing its answer.

    ``path`` holds the points, ``values`` and ``grad_norms`` the matching
    energies and gradient norms.
    """

    def __init__(self, strategy):
        self.strategy = strategy
        self.reset()

    def reset(self):
        self.path = []
        self.values = []
        self.grad_norms = []

    def __call__(self, iteration, point, value, grad, hess=None, delta=None):
        self.path.append(np.array(point, dtype="float64"))
        self.values.append(float(value))
        self.grad_norms.append(float(np.linalg.norm(grad)))
        converged = self.strategy(iteration, point, value, grad, hess, delta)
        logger.debug("iter %d: value = %.10f  |grad| = %.3e  |delta| = %s",
                     iteration, value, self.grad_norms[-1],
                     "n/a" if delta is None else f"{np.linalg.norm(delta):.3e}")
        return converged


def make_history_strategy(strategy):
    return HistoryStrategyWrapper(strategy)
