import logging

import numpy as np
import scipy.linalg

from shspy.Function.function import DifferentiableFunction, Sum, Constant

logger = logging.getLogger(__name__)


def cosine3_kernel(cosine):
    return np.maximum(cosine, 0.0) ** 3


class OnSphereCosineSupplement(DifferentiableFunction):
    """
    value * max(cos(x, direction), 0)^3

    Smooth bump centred on ``direction`` that vanishes on the opposite
    hemisphere. Only the angle of x matters, not its length.
    """

    def __init__(self, direction, value):
        direction = np.asarray(direction, dtype="float64")
        super().__init__(len(direction))
        self.direction = direction / np.linalg.norm(direction)
        self.weight = float(value)

    def get_cosine(self, x):
        norm = np.linalg.norm(x)
        if norm == 0.0:
            return 0.0
        return float(np.dot(x, self.direction) / norm)

    def value(self, x):
        x = self.check_point(x)
        return self.weight * cosine3_kernel(self.get_cosine(x))

    def grad(self, x):
        return self.value_grad(x)[1]

    def hess(self, x):
        return self.value_grad_hess(x)[2]

    def value_grad(self, x):
        value, grad, _ = self._evaluate(self.check_point(x), with_hess=False)
        return value, grad

    def value_grad_hess(self, x):
        return self._evaluate(self.check_point(x), with_hess=True)

    def _evaluate(self, x, with_hess):
        n = self.n_dims
        cosine = self.get_cosine(x)
        if cosine <= 0.0:
            return 0.0, np.zeros(n), (np.zeros((n, n)) if with_hess else None)

        norm = np.linalg.norm(x)
        d = self.direction
        d_cos = d / norm - cosine * x / norm ** 2
        value = self.weight * cosine ** 3
        grad = self.weight * 3.0 * cosine ** 2 * d_cos
        if not with_hess:
            return value, grad, None

        d2_cos = (-(np.outer(d, x) + np.outer(x, d)) / norm ** 3
                  + 3.0 * cosine * np.outer(x, x) / norm ** 4
                  - cosine * np.identity(n) / norm ** 2)
        hess = self.weight * (6.0 * cosine * np.outer(d_cos, d_cos) + 3.0 * cosine ** 2 * d2_cos)
        return value, grad, hess


class Cosine3OnSphereInterpolation(Sum):
    """
    Repulsion from already known sphere directions.

    A weighted sum of ``OnSphereCosineSupplement`` terms, one per known
    direction. The weights solve K w = values with
    K_ij = max(cos(d_i, d_j), 0)^3, so the supplement takes exactly
    ``values[i]`` at ``directions[i]``.

    Parameters
    ----------
    n_dims : int
        Dimension of the function the supplement is added to.
    values : sequence of float
        Energy to add at each known direction.
    directions : sequence of np.ndarray
        Known directions (any length, only the angle is used).
    """

    def __init__(self, n_dims, values, directions):
        if len(values) != len(directions):
            raise ValueError("values and directions must have the same length")
        self.weights = np.zeros(0)
        if not directions:
            super().__init__(Constant(n_dims, 0.0))
            return

        units = np.array([d / np.linalg.norm(d) for d in directions])
        if units.shape[1] != n_dims:
            raise ValueError(f"Directions of dimension {units.shape[1]} for a {n_dims}-dimensional supplement")
        kernel = cosine3_kernel(units @ units.T)
        self.weights, _, rank, _ = scipy.linalg.lstsq(kernel, np.asarray(values, dtype="float64"))
        if rank < len(directions):
            logger.warning("Cosine3 interpolation matrix is rank deficient (%d < %d)", rank, len(directions))
        super().__init__(*[OnSphereCosineSupplement(d, w) for d, w in zip(units, self.weights)])
