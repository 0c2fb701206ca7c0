"""
shs.py - Scaled hypersphere search along one direction
======================================================

A path starts at an equilibrium structure (the origin of a normalized
frame) in one of the minimum-energy directions on a small sphere. The
sphere radius then grows in steps of ``delta_r``; on every sphere the
direction is re-converged to the nearby critical direction. Climbing this
way follows the valley uphill until a transition state can be refined
from the last point.

Module layout
-------------
PathLoggerAdapter    - prefixes log records with the path number
try_to_optimize_ts   - Newton refinement plus negative-curvature check
shs_ts_try_routine   - refinement, logging and output of a found TS
shs_path             - the growing-sphere walk
two_way_ts           - descent from a TS to the two neighbouring minima
"""

import contextlib
import io
import logging

import numpy as np

from shspy.Calculator.evaluator import EvaluatorFailure
from shspy.Function.normal_coordinates import remove_zero_modes
from shspy.Optimizer.driver import second_order_structure_optimization
from shspy.Optimizer.stop_strategy import StopStrategy, make_history_strategy
from shspy.Sphere.on_sphere import try_to_converge
from shspy.Utils.calc_tools import angle_cosine, singular_values
from shspy.fileio import append_structure, to_chemcraft_coords

logger = logging.getLogger(__name__)

PATH_COSINE_THRESHOLD = 0.9
TS_TRY_PERIOD = 7
MAX_PATH_STEPS = 600


class PathLoggerAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"Path #{self.extra['path_number']}: {msg}", kwargs


# ====================================================================================
# Transition state refinement
# ====================================================================================

def try_to_optimize_ts(molecule, structure, iters=10, grad_eps=1e-4, delta_eps=1e-4,
                       n_zero_modes=6, negative_threshold=0.0):
    """
    Refine ``structure`` to a saddle point.

    Runs ``second_order_structure_optimization`` and accepts the result
    only if the reduced Hessian at the optimized structure has an
    eigenvalue below ``negative_threshold``. Returns the structure or None;
    an EvaluatorFailure during refinement also gives None.
    """
    try:
        stop_strategy = make_history_strategy(StopStrategy(grad_eps, delta_eps))
        optimized = second_order_structure_optimization(stop_strategy, molecule, structure, iters, n_zero_modes)
        if optimized is None:
            logger.info("TS refinement did not converge in %d iterations", iters)
            return None

        reduced = remove_zero_modes(molecule, optimized, n_zero_modes)
        eigvals = np.linalg.eigvalsh(reduced.hess(np.zeros(reduced.n_dims)))
        if not np.any(eigvals < negative_threshold):
            logger.info("No negative curvature after TS refinement (lowest = %.6e)", eigvals.min())
            return None

        logger.info("TS refinement converged; reduced eigenvalues: %s", eigvals)
        return optimized
    except EvaluatorFailure as exc:
        logger.info("TS refinement aborted by evaluator failure: %s", exc)
        return None


def shs_ts_try_routine(molecule, structure, output, **ts_options):
    ts = try_to_optimize_ts(molecule, structure, **ts_options)
    if ts is None:
        return None

    value, grad, hess = molecule.value_grad_hess(ts)
    logger.info("TS found:\n\tvalue = %.13f\n\tgrad = %.3e\n\thess values = %s\n%s",
                value, np.linalg.norm(grad), singular_values(hess),
                to_chemcraft_coords(molecule.charges, ts))
    append_structure(output, molecule.charges, ts, "final TS")
    return ts


# ====================================================================================
# Path walk
# ====================================================================================

def shs_path(func, direction, path_number, delta_r, conv_iter_limit,
             max_steps=MAX_PATH_STEPS, path_cosine_threshold=PATH_COSINE_THRESHOLD,
             ts_try_period=TS_TRY_PERIOD, converge_iters=30, output_path=None,
             ts_try=None, path_logger=None):
    """
    Walk uphill from the origin of ``func`` along ``direction``.

    Parameters
    ----------
    func : DifferentiableFunction
        Energy in a normalized frame centred at an equilibrium structure;
        its full inner function is the evaluator.
    direction : np.ndarray
        Starting point on the initial sphere; its norm is the first radius.
    path_number : int
        Used in log records and in the intermediate trajectory name.
    delta_r : float
        Radius increment. It is halved after every failed convergence.
    conv_iter_limit : int
        Attempts per step before the path is abandoned.
    max_steps : int
    path_cosine_threshold : float
        A re-converged direction is only accepted when its cosine to the
        previous one exceeds this value.
    ts_try_period : int
        A TS refinement is tried from the last point every this many steps
        and after the first failed convergence of a step.
    converge_iters : int
        Newton iterations of every sphere convergence.
    output_path : str, optional
        Intermediate trajectory (chemcraft xyz).
    ts_try : callable, optional
        ``ts_try(molecule, structure, stream) -> ts | None``. Defaults to
        ``shs_ts_try_routine``.
    path_logger : logging.LoggerAdapter, optional

    Returns
    -------
    (list[np.ndarray], np.ndarray | None)
        Cartesian trajectory starting at the equilibrium structure and the
        transition state, if one was found.
    """
    if ts_try is None:
        ts_try = shs_ts_try_routine
    if path_logger is None:
        path_logger = PathLoggerAdapter(logger, {"path_number": path_number})

    molecule = func.get_full_inner_function()
    direction = np.array(direction, dtype="float64")
    r = np.linalg.norm(direction)
    path_logger.info("R0 = %.6f. Initial direction: %s", r, direction)

    last_point = func.full_transform(np.zeros(func.n_dims))
    trajectory = [last_point]
    value = func(direction)
    stop_strategy = make_history_strategy(StopStrategy(1e-8, 1e-5))

    with contextlib.ExitStack() as stack:
        if output_path is not None:
            output = stack.enter_context(open(output_path, "w"))
        else:
            output = stack.enter_context(io.StringIO())

        for step in range(max_steps):
            if step and step % ts_try_period == 0:
                ts = ts_try(molecule, last_point, output)
                if ts is not None:
                    path_logger.info("TS found. Break on step %d", step)
                    return trajectory, ts

            prev = direction
            direction = direction / np.linalg.norm(direction) * (r + delta_r)
            converged = False
            current_dr = delta_r

            for conv_iter in range(conv_iter_limit):
                next_r = r + current_dr
                sphere_path = try_to_converge(stop_strategy, func, direction, next_r, converge_iters)
                if sphere_path:
                    cosine = angle_cosine(direction, sphere_path[-1])
                    if cosine > path_cosine_threshold:
                        path_logger.debug("Converged with dr = %.6e, angle cosine = %.10f", current_dr, cosine)
                        r = next_r
                        direction = sphere_path[-1]
                        converged = True
                        break
                    path_logger.info("Too large angle after convergence (cos = %.6f)", cosine)
                else:
                    path_logger.info("Did not converge with dr = %.6e", current_dr)
                    if conv_iter == 0:
                        ts = ts_try(molecule, last_point, output)
                        if ts is not None:
                            path_logger.info("TS found. Break on step %d", step)
                            return trajectory, ts
                current_dr *= 0.5

            if not converged:
                path_logger.error("Exceeded converge iteration limit (%d). Break", conv_iter_limit)
                break

            new_value = func(direction)
            path_logger.info("Step %d: r = %.6f, value = %.13f, delta angle cosine = %.13f",
                             step, r, new_value, angle_cosine(direction, prev))

            last_point = func.full_transform(direction)
            trajectory.append(last_point)
            append_structure(output, molecule.charges, last_point, str(step))

            if new_value < value:
                path_logger.warning("Energy decreased along the path [%.13f < %.13f]", new_value, value)
            value = new_value

    return trajectory, None


# ====================================================================================
# Descent from a transition state
# ====================================================================================

def _optimize_or_none(molecule, structure):
    try:
        return molecule.optimize(structure)
    except EvaluatorFailure as exc:
        logger.info("Descent from TS failed: %s", exc)
        return None


def two_way_ts(molecule, ts, factor=0.5, n_zero_modes=6):
    """
    Displace ``ts`` by +-``factor`` along its negative-curvature mode and
    let the evaluator optimize both sides.

    Returns (path, first_es, second_es) with path = [first_es, ts,
    second_es] minus the sides that failed (given as None).
    """
    ts = np.asarray(ts, dtype="float64")
    reduced = remove_zero_modes(molecule, ts, n_zero_modes)
    eigvals, eigvecs = np.linalg.eigh(reduced.hess(np.zeros(reduced.n_dims)))
    if eigvals[0] >= 0.0:
        logger.warning("Structure has no negative curvature; no descent from it")
        return [ts], None, None

    mode = eigvecs[:, 0]
    first_es = _optimize_or_none(molecule, reduced.full_transform(-factor * mode))
    second_es = _optimize_or_none(molecule, reduced.full_transform(factor * mode))

    path = []
    if first_es is not None:
        path.append(first_es)
    path.append(ts)
    if second_es is not None:
        path.append(second_es)
    return path, first_es, second_es
