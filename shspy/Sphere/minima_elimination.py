"""
minima_elimination.py - enumerate low-energy directions on a small sphere
=========================================================================

Around an equilibrium structure (in normalized coordinates, where the
harmonic energy on the sphere is r^2 / 2) every local minimum of the energy
on the sphere points along a downhill valley. Each found minimum is lifted
by a Cosine3 repulsion supplement so that the next search lands somewhere
else.

Seeding
-------
Phase 1 sweeps the 2N axis directions (+e_0, -e_0 ... in alternating sign)
cyclically and ends when a whole cycle brings nothing new. Phase 2 uses
random directions and ends after ``random_seed_limit`` consecutive
attempts without a new direction.
"""

import logging

import numpy as np

from shspy.Function.cosine3_supplement import Cosine3OnSphereInterpolation
from shspy.Optimizer.stop_strategy import StopStrategy, make_history_strategy
from shspy.Sphere.on_sphere import optimize_on_sphere, try_to_converge
from shspy.Utils.calc_tools import angle_cosine, eye, random_vect_on_sphere
from shspy.fileio import write_vector_list

logger = logging.getLogger(__name__)

DIRECTION_COSINE_THRESHOLD = 0.975


def max_cosine_to(direction, directions):
    return max((angle_cosine(direction, other) for other in directions), default=0.0)


def accept_direction(direction, value, directions, values, cosine_threshold=DIRECTION_COSINE_THRESHOLD):
    """
    Append ``direction`` and ``value`` unless the direction is within
    ``cosine_threshold`` of an accepted one. Returns True when appended.
    """
    max_cosine = max_cosine_to(direction, directions)
    if max_cosine >= cosine_threshold:
        logger.info("Direction rejected: max cosine to %d known directions = %.6f",
                    len(directions), max_cosine)
        return False
    directions.append(np.array(direction, dtype="float64"))
    values.append(float(value))
    logger.info("Direction #%d accepted: max cosine = %.6f, value = %.10f",
                len(directions), max_cosine, value)
    return True


def axis_seed(n_dims, index, r):
    sign = 2 * (index % 2) - 1
    return r * sign * eye(n_dims, index // 2)


def minima_elimination(func, r=0.05, cosine_threshold=DIRECTION_COSINE_THRESHOLD,
                       iter_limit=50, restarts=5, converge_iters=10,
                       random_seed_limit=None, homotopy_steps=15,
                       rng=None, output_path=None, learning_rate=0.5):
    """
    Find distinct minimum-energy directions of ``func`` on the sphere of radius r.

    Parameters
    ----------
    func : DifferentiableFunction
        Energy in coordinates centred at the equilibrium structure.
    r : float
        Sphere radius.
    cosine_threshold : float
        Directions closer than this cosine to a known one are duplicates.
    iter_limit, restarts : int
        Passed to ``optimize_on_sphere``.
    converge_iters : int
        Newton iterations of the refinement on the bare function.
    random_seed_limit : int, optional
        Consecutive unsuccessful random seeds before stopping. Default N.
    homotopy_steps : int
        Number of steps removing the supplement after a random seed.
    rng : np.random.Generator, optional
    output_path : str, optional
        The accepted directions are rewritten here after every acceptance.

    Returns
    -------
    list[np.ndarray]
        Accepted directions (points on the sphere in ``func``'s frame).
    """
    n_dims = func.n_dims
    if rng is None:
        rng = np.random.default_rng()
    if random_seed_limit is None:
        random_seed_limit = n_dims

    zero_energy = func(np.zeros(n_dims))
    stop_strategy = make_history_strategy(StopStrategy(1e-4 * r, 1e-4 * r))
    values, directions = [], []

    def search(seed, homotopy):
        supplement = Cosine3OnSphereInterpolation(n_dims, values, directions)
        path = optimize_on_sphere(stop_strategy, func + supplement, seed, r, iter_limit, restarts,
                                  learning_rate=learning_rate)
        if not path:
            logger.info("No convergence on the sphere from seed %s", np.array2string(seed, precision=4))
            return None
        direction = path[-1]

        if homotopy:
            for i in range(homotopy_steps):
                alpha = (i + 1) / homotopy_steps
                blended = func + (1.0 - alpha) * supplement
                step_path = optimize_on_sphere(stop_strategy, blended, direction, r, iter_limit, 10,
                                               learning_rate=learning_rate)
                logger.debug("Homotopy step %d: %d iterations", i + 1, len(step_path))
                if step_path:
                    direction = step_path[-1]
            logger.info("Homotopy refinement moved the direction by cos = %.6f",
                        angle_cosine(direction, path[-1]))
            return direction

        refined = try_to_converge(stop_strategy, func, direction, r, converge_iters)
        if refined:
            logger.debug("Newton refinement converged in %d steps", len(refined))
        else:
            logger.info("Newton refinement did not converge, trying a gradient search")
            refined = optimize_on_sphere(stop_strategy, func, direction, r, iter_limit, restarts,
                                         learning_rate=learning_rate)
            if not refined:
                return None
        logger.debug("cos(before, after refinement) = %.6f", angle_cosine(direction, refined[-1]))
        return refined[-1]

    def record(direction):
        value = r ** 2 / 2.0 - (func(direction) - zero_energy)
        if not accept_direction(direction, value, directions, values, cosine_threshold):
            return False
        if output_path is not None:
            write_vector_list(output_path, directions)
        return True

    # Phase 1: axis sweep
    n_seeds = 2 * n_dims
    last_success = -1
    attempt = 0
    while attempt - last_success - 1 < n_seeds:
        seed = axis_seed(n_dims, attempt % n_seeds, r)
        direction = search(seed, homotopy=False)
        if direction is not None and record(direction):
            last_success = attempt
        attempt += 1
    logger.info("Axis sweep finished after %d attempts with %d directions", attempt, len(directions))

    # Phase 2: random seeds
    failures = 0
    while failures < random_seed_limit:
        seed = random_vect_on_sphere(n_dims, r, rng)
        direction = search(seed, homotopy=True)
        if direction is not None and record(direction):
            failures = 0
        else:
            failures += 1
    logger.info("Minima elimination found %d directions", len(directions))

    return directions
