"""
Optimization restricted to the sphere |x| = r.

The constraint is removed by working in a polar chart centred on the current
direction (see ``shspy.Function.polar``). Points returned in a path are
expressed in the frame of the function that was passed in and all lie on
the sphere.
"""

import logging

import numpy as np

from shspy.Function.polar import make_polar_with_direction
from shspy.Optimizer.gradientdescent import GradientDescent
from shspy.Optimizer.newton import Newton
from shspy.Utils.calc_tools import projection

logger = logging.getLogger(__name__)


def _on_sphere(direction, r):
    direction = np.asarray(direction, dtype="float64")
    norm = np.linalg.norm(direction)
    if norm == 0.0:
        raise ValueError("Direction of zero length")
    return direction / norm * r


def tangential_gradient(func, point):
    grad = func.grad(point)
    return grad - projection(grad, point)


def optimize_on_sphere(stop_strategy, func, direction, r, iter_limit=50, restarts=5,
                       optimizer_factory=None, learning_rate=0.5):
    """
    First-order search for a critical direction of ``func`` on the sphere.

    Parameters
    ----------
    stop_strategy : callable
        Called with angle-space gradient and step.
    func : DifferentiableFunction
    direction : np.ndarray
        Starting direction; only its angle is used.
    r : float
        Sphere radius.
    iter_limit : int
        Steps per chart.
    restarts : int
        Number of charts. After every chart the search re-centres on the
        current direction with a fresh optimizer.
    optimizer_factory : callable, optional
        Returns a new step strategy. Defaults to gradient descent whose step
        equals ``learning_rate`` times the tangential gradient.

    Returns
    -------
    list[np.ndarray]
        Visited points, the last one converged, or [] without convergence.
    """
    if optimizer_factory is None:
        def optimizer_factory():
            return GradientDescent(DELTA=learning_rate / r ** 2)

    direction = _on_sphere(direction, r)
    if func.n_dims == 1:
        # a 0-sphere is two isolated points, both critical
        return [direction]
    path = []
    iteration = 0
    for restart in range(restarts):
        polar = make_polar_with_direction(func, r, direction)
        optimizer = optimizer_factory()
        theta = polar.center()
        for _ in range(iter_limit):
            value, grad = polar.value_grad(theta)
            move_vector = np.asarray(optimizer.run(theta, grad), dtype="float64")
            theta = theta - move_vector
            point = polar.to_base(theta)
            path.append(point)
            if stop_strategy(iteration, point, value, grad, None, -move_vector):
                logger.debug("Sphere search converged after %d iterations (%d charts)",
                             iteration + 1, restart + 1)
                return path
            iteration += 1
        if path:
            direction = path[-1]

    logger.debug("Sphere search did not converge in %d iterations", iteration)
    return []


def try_to_converge(stop_strategy, func, direction, r, iter_limit=10, max_step=np.pi / 4):
    """
    Newton refinement of a direction on the sphere.

    Converges to the nearest critical direction of any index. Each iteration
    builds a fresh chart at the current direction; steps longer than
    ``max_step`` radians are shortened. Returns the path or [].
    """
    direction = _on_sphere(direction, r)
    if func.n_dims == 1:
        return [direction]
    newton = Newton()
    path = []
    for iteration in range(iter_limit):
        polar = make_polar_with_direction(func, r, direction)
        theta = polar.center()
        value, grad, hess = polar.value_grad_hess(theta)
        newton.set_hessian(hess)
        try:
            move_vector = newton.run(theta, grad)
        except np.linalg.LinAlgError:
            logger.debug("Singular Hessian on the sphere at iteration %d", iteration)
            return []

        step_norm = np.linalg.norm(move_vector)
        if step_norm > max_step:
            move_vector = move_vector * (max_step / step_norm)

        direction = polar.to_base(theta - move_vector)
        path.append(direction)
        if stop_strategy(iteration, direction, value, grad, hess, -move_vector):
            return path

    return []
