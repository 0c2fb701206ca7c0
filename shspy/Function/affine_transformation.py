import logging

import numpy as np

from shspy.Function.function import DifferentiableFunction
from shspy.Utils.calc_tools import linearization_normalization, singular_values

logger = logging.getLogger(__name__)


class GeometricDegeneracyError(ValueError):
    """A basis that cannot be inverted was used where an inverse is required."""


class AffineTransformation(DifferentiableFunction):
    """
    Pull an inner function back through the map x -> basis @ x + delta.

    Parameters
    ----------
    func : DifferentiableFunction
        Inner function of ``func.n_dims`` variables.
    delta : np.ndarray, shape (func.n_dims,)
        Translation; the outer origin maps onto this inner point.
    basis : np.ndarray, shape (func.n_dims, n_outer)
        Columns span the outer coordinates. Dropping columns reduces the
        dimension, so ``n_outer`` may be smaller than ``func.n_dims``.
    """

    def __init__(self, func, delta, basis):
        basis = np.asarray(basis, dtype="float64")
        delta = np.asarray(delta, dtype="float64")
        if basis.ndim != 2 or basis.shape[0] != func.n_dims:
            raise ValueError(
                f"Basis of shape {basis.shape} does not match inner dimension {func.n_dims}"
            )
        if delta.shape != (func.n_dims,):
            raise ValueError(
                f"Translation of shape {delta.shape} does not match inner dimension {func.n_dims}"
            )
        super().__init__(basis.shape[1])
        self.func = func
        self.delta = delta
        self.basis = basis

    def value(self, x):
        return self.func.value(self.transform(x))

    def grad(self, x):
        return self.basis.T @ self.func.grad(self.transform(x))

    def hess(self, x):
        return self.basis.T @ self.func.hess(self.transform(x)) @ self.basis

    def value_grad(self, x):
        value, grad = self.func.value_grad(self.transform(x))
        return value, self.basis.T @ grad

    def value_grad_hess(self, x):
        value, grad, hess = self.func.value_grad_hess(self.transform(x))
        return value, self.basis.T @ grad, self.basis.T @ hess @ self.basis

    def transform(self, x):
        x = self.check_point(x)
        return self.basis @ x + self.delta

    def full_transform(self, x):
        return self.func.full_transform(self.transform(x))

    def back_transform(self, y):
        """Inverse of ``transform``. Only defined for a square, invertible basis."""
        y = np.asarray(y, dtype="float64")
        if self.basis.shape[0] != self.basis.shape[1]:
            raise GeometricDegeneracyError(
                f"back_transform requires a square basis, got {self.basis.shape}"
            )
        if y.shape != (self.func.n_dims,):
            raise ValueError(f"Expected a point of shape ({self.func.n_dims},), got {y.shape}")
        if np.linalg.cond(self.basis) > 1e12:
            raise GeometricDegeneracyError("back_transform on an ill-conditioned basis")
        try:
            return np.linalg.solve(self.basis, y - self.delta)
        except np.linalg.LinAlgError as exc:
            raise GeometricDegeneracyError(f"back_transform on a singular basis: {exc}") from exc

    def get_inner_function(self):
        return self.func

    def get_full_inner_function(self):
        return self.func.get_full_inner_function()


def make_affine_transformation(func, delta=None, basis=None):
    if delta is None:
        delta = np.zeros(func.n_dims)
    if basis is None:
        basis = np.identity(func.n_dims)
    return AffineTransformation(func, delta, basis)


def prepare_for_polar(func, point):
    """Re-centre at ``point`` and scale every Hessian direction to unit curvature."""
    hess = func.hess(point)
    logger.debug("Curvatures at the polar centre: %s", singular_values(hess))
    return AffineTransformation(func, point, linearization_normalization(hess))
