"""
polar.py - Hyperspherical reparametrization of a function
=========================================================

For an angle vector theta of length N-1 and a fixed radius r the sphere
point is

    x_0     = r cos(theta_0)
    x_k     = r sin(theta_0) ... sin(theta_{k-1}) cos(theta_k),  0 < k < N-1
    x_{N-1} = r sin(theta_0) ... sin(theta_{N-2})

so |x(theta)| = r for every theta. Each x_i is a product of one-angle
factors, which gives the Jacobian and the second-derivative tensor in
closed form by swapping single factors for their derivatives.

A chart built with ``make_polar_with_direction`` is rotated so that
theta = (pi/2, ..., pi/2) lands on a chosen direction. All sines are 1
there, so the chart is regular around its centre; sphere searches keep
re-centring on their current direction.
"""

import numpy as np

from shspy.Function.function import DifferentiableFunction
from shspy.Function.affine_transformation import AffineTransformation
from shspy.Utils.calc_tools import eye, rotation_matrix


def chart_center(n_angles):
    return np.full(n_angles, np.pi / 2.0)


def _factor_tables(theta):
    # F[i, m]: factor of x_i depending on theta_m; dF, d2F: its derivatives
    n_angles = len(theta)
    n_dims = n_angles + 1
    sin = np.sin(theta)[np.newaxis, :]
    cos = np.cos(theta)[np.newaxis, :]
    lower = np.tri(n_dims, n_angles, k=-1, dtype=bool)
    diag = np.eye(n_dims, n_angles, dtype=bool)

    F = np.where(lower, sin, np.where(diag, cos, 1.0))
    dF = np.where(lower, cos, np.where(diag, -sin, 0.0))
    d2F = np.where(lower, -sin, np.where(diag, -cos, 0.0))
    return F, dF, d2F


def polar_to_cartesian(theta, r):
    theta = np.asarray(theta, dtype="float64")
    F, _, _ = _factor_tables(theta)
    return r * np.prod(F, axis=1)


def cartesian_to_polar(x):
    """Return (r, theta) with theta_k in [0, pi] and the last angle in [0, 2 pi)."""
    x = np.asarray(x, dtype="float64")
    n_dims = len(x)
    if n_dims < 2:
        raise ValueError("Polar coordinates need at least two dimensions")
    theta = np.zeros(n_dims - 1)
    for k in range(n_dims - 2):
        theta[k] = np.arctan2(np.linalg.norm(x[k + 1:]), x[k])
    theta[-1] = np.mod(np.arctan2(x[-1], x[-2]), 2.0 * np.pi)
    return np.linalg.norm(x), theta


def polar_jacobian(theta, r):
    """dx_i / dtheta_j, shape (N, N-1)."""
    theta = np.asarray(theta, dtype="float64")
    F, dF, _ = _factor_tables(theta)
    n_angles = len(theta)
    jacobian = np.zeros((n_angles + 1, n_angles))
    for j in range(n_angles):
        factors = F.copy()
        factors[:, j] = dF[:, j]
        jacobian[:, j] = r * np.prod(factors, axis=1)
    return jacobian


def polar_second_derivatives(theta, r):
    """d^2 x_i / dtheta_j dtheta_k, shape (N, N-1, N-1)."""
    theta = np.asarray(theta, dtype="float64")
    F, dF, d2F = _factor_tables(theta)
    n_angles = len(theta)
    second = np.zeros((n_angles + 1, n_angles, n_angles))
    for j in range(n_angles):
        factors = F.copy()
        factors[:, j] = d2F[:, j]
        second[:, j, j] = r * np.prod(factors, axis=1)
        for k in range(j + 1, n_angles):
            factors = F.copy()
            factors[:, j] = dF[:, j]
            factors[:, k] = dF[:, k]
            second[:, j, k] = second[:, k, j] = r * np.prod(factors, axis=1)
    return second


class InPolar(DifferentiableFunction):
    """``func`` restricted to the sphere of radius ``r``, as a function of the angles."""

    def __init__(self, func, r):
        if func.n_dims < 2:
            raise ValueError("InPolar needs an inner function of at least two dimensions")
        super().__init__(func.n_dims - 1)
        self.func = func
        self.r = float(r)

    def value(self, theta):
        return self.func.value(self.transform(theta))

    def grad(self, theta):
        theta = self.check_point(theta)
        return polar_jacobian(theta, self.r).T @ self.func.grad(self.transform(theta))

    def hess(self, theta):
        return self.value_grad_hess(theta)[2]

    def value_grad(self, theta):
        theta = self.check_point(theta)
        value, grad = self.func.value_grad(self.transform(theta))
        return value, polar_jacobian(theta, self.r).T @ grad

    def value_grad_hess(self, theta):
        theta = self.check_point(theta)
        value, grad, hess = self.func.value_grad_hess(self.transform(theta))
        jacobian = polar_jacobian(theta, self.r)
        second = polar_second_derivatives(theta, self.r)
        polar_hess = jacobian.T @ hess @ jacobian + np.einsum("i,ijk->jk", grad, second)
        return value, jacobian.T @ grad, polar_hess

    def transform(self, theta):
        return polar_to_cartesian(self.check_point(theta), self.r)

    def full_transform(self, theta):
        return self.func.full_transform(self.transform(theta))

    def back_transform(self, x):
        return cartesian_to_polar(x)[1]

    def get_inner_function(self):
        return self.func

    def get_full_inner_function(self):
        return self.func.get_full_inner_function()


class PolarWithDirection(InPolar):
    """Polar chart of ``base_function`` whose centre points along ``direction``."""

    def __init__(self, func, r, direction):
        direction = np.asarray(direction, dtype="float64")
        if direction.shape != (func.n_dims,):
            raise ValueError(f"Direction of shape {direction.shape} for a {func.n_dims}-dimensional function")
        rotation = rotation_matrix(eye(func.n_dims, func.n_dims - 1), direction)
        super().__init__(AffineTransformation(func, np.zeros(func.n_dims), rotation), r)
        self.base_function = func

    def center(self):
        return chart_center(self.n_dims)

    def to_base(self, theta):
        """Point of ``base_function``'s frame for the angles ``theta``."""
        return self.func.transform(self.transform(theta))


def make_polar_with_direction(func, r, direction):
    return PolarWithDirection(func, r, direction)
