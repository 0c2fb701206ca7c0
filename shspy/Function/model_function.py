import numpy as np
import torch

from shspy.Function.function import DifferentiableFunction


class QuadraticFunction(DifferentiableFunction):
    """0.5 (x - center)^T A (x - center) + offset"""

    def __init__(self, hessian, center=None, offset=0.0):
        hessian = np.asarray(hessian, dtype="float64")
        super().__init__(hessian.shape[0])
        self.A = 0.5 * (hessian + hessian.T)
        self.center = np.zeros(self.n_dims) if center is None else np.asarray(center, dtype="float64")
        self.offset = float(offset)

    def value(self, x):
        dx = self.check_point(x) - self.center
        return float(0.5 * dx @ self.A @ dx + self.offset)

    def grad(self, x):
        return self.A @ (self.check_point(x) - self.center)

    def hess(self, x):
        self.check_point(x)
        return self.A.copy()


def double_well_energy(x, n_null=6, barrier=1.0):
    """
    Model PES on torch tensors: ``n_null`` flat coordinates, a double well
    barrier * (q^2 - 1)^2 along coordinate ``n_null`` with minima at q = +-1
    and a saddle at q = 0, and harmonic coordinates with force constants
    1, 2, 3, ... for the rest.
    """
    q = x[n_null]
    rest = x[n_null + 1:]
    force_constants = torch.arange(1, rest.shape[0] + 1, dtype=x.dtype)
    return barrier * (q ** 2 - 1.0) ** 2 + 0.5 * torch.sum(force_constants * rest ** 2)


def single_well_energy(x, n_null=6):
    """Same layout as ``double_well_energy`` with a harmonic well along q."""
    q = x[n_null]
    rest = x[n_null + 1:]
    force_constants = torch.arange(1, rest.shape[0] + 1, dtype=x.dtype)
    return 2.0 * q ** 2 + 0.5 * torch.sum(force_constants * rest ** 2)
