import logging

import numpy as np

from shspy.Optimizer.gradientdescent import GradientDescent, MomentumGradientDescent, NesterovGradientDescent
from shspy.Optimizer.adagrad import Adagrad
from shspy.Optimizer.adadelta import Adadelta
from shspy.Optimizer.adam import Adam
from shspy.Optimizer.newton import Newton
from shspy.Function.normal_coordinates import remove_zero_modes

logger = logging.getLogger(__name__)

optimizer_mapping = {
    "gradientdescent": GradientDescent,
    "steepest_descent": GradientDescent,
    "momentum": MomentumGradientDescent,
    "nesterov": NesterovGradientDescent,
    "adagrad": Adagrad,
    "adadelta": Adadelta,
    "adam": Adam,
    "newton": Newton,
}


def make_optimizer(name, **config):
    key = name.lower()
    if key not in optimizer_mapping:
        raise ValueError(f"Unknown optimizer '{name}'. Available: {sorted(optimizer_mapping)}")
    return optimizer_mapping[key](**config)


def optimize(func, x0, optimizer, stop_strategy, iter_limit=100):
    """
    Run ``optimizer`` on ``func`` from ``x0`` until ``stop_strategy`` agrees.

    Returns the visited points, the last one being the converged point, or
    an empty list when ``iter_limit`` steps were not enough.
    """
    x = np.array(x0, dtype="float64")
    path = []
    for iteration in range(iter_limit):
        hess = None
        if optimizer.requires_hessian:
            value, grad, hess = func.value_grad_hess(x)
            optimizer.set_hessian(hess)
        else:
            value, grad = func.value_grad(x)

        move_vector = np.asarray(optimizer.run(x, grad), dtype="float64")
        x = x - move_vector
        path.append(x.copy())

        if stop_strategy(iteration, x, value, grad, hess, -move_vector):
            logger.debug("%s converged after %d iterations", type(optimizer).__name__, iteration + 1)
            return path

    logger.debug("%s did not converge within %d iterations", type(optimizer).__name__, iter_limit)
    return []


def second_order_structure_optimization(stop_strategy, func, structure, iter_limit, n_zero_modes=6):
    """
    Newton iterations in reduced coordinates re-derived at every structure.

    Returns the converged Cartesian structure or None. A singular reduced
    Hessian ends the attempt with None.
    """
    structure = np.array(structure, dtype="float64")
    newton = Newton()
    for iteration in range(iter_limit):
        fixed = remove_zero_modes(func, structure, n_zero_modes)
        origin = np.zeros(fixed.n_dims)
        value, grad, hess = fixed.value_grad_hess(origin)
        newton.set_hessian(hess)
        try:
            move_vector = newton.run(origin, grad)
        except np.linalg.LinAlgError as exc:
            logger.info("Newton step failed on iteration %d: %s", iteration, exc)
            return None

        previous = structure
        structure = fixed.full_transform(-move_vector)
        if stop_strategy(iteration, structure, value, grad, hess, structure - previous):
            return structure

    return None
