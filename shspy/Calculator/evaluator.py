import threading
from abc import abstractmethod

import numpy as np

from shspy.Function.function import DifferentiableFunction


class EvaluatorFailure(RuntimeError):
    """
    A single energy/gradient/Hessian or optimization request failed.

    Recoverable: the SHS workflow abandons the current path or attempt and
    continues with the others.
    """

    def __init__(self, message, thread_name=None):
        self.thread_name = threading.current_thread().name if thread_name is None else thread_name
        super().__init__(f"[{self.thread_name}] {message}")


class Evaluator(DifferentiableFunction):
    """
    Energy of a molecule as a function of its flat Cartesian coordinates (Angstrom).

    Parameters
    ----------
    charges : sequence of int
        Atomic numbers; the function has ``3 * len(charges)`` variables.
    """

    def __init__(self, charges):
        self.charges = [int(c) for c in charges]
        super().__init__(3 * len(self.charges))
        self.nproc = 1

    @property
    def n_atoms(self):
        return len(self.charges)

    def value(self, x):
        return self.value_grad_hess_impl(self.check_point(x), order=0)[0]

    def grad(self, x):
        return self.value_grad_hess_impl(self.check_point(x), order=1)[1]

    def hess(self, x):
        return self.value_grad_hess_impl(self.check_point(x), order=2)[2]

    def value_grad(self, x):
        value, grad, _ = self.value_grad_hess_impl(self.check_point(x), order=1)
        return value, grad

    def value_grad_hess(self, x):
        return self.value_grad_hess_impl(self.check_point(x), order=2)

    @abstractmethod
    def value_grad_hess_impl(self, x, order):
        """Return (value, grad or None, hess or None) from one calculation of the given derivative order."""

    @abstractmethod
    def optimize(self, structure):
        """Locally minimise from ``structure``; raise EvaluatorFailure on failure."""

    def set_nproc(self, nproc):
        self.nproc = max(1, int(nproc))

    def transform(self, x):
        return np.asarray(x, dtype="float64")
