import logging

import numpy as np
import torch
from scipy.optimize import minimize

from shspy.Calculator.evaluator import Evaluator, EvaluatorFailure

logger = logging.getLogger(__name__)


class TorchModelCalculation(Evaluator):
    """
    Evaluator for an analytic potential written with torch operations.

    ``energy_fn`` maps a flat float64 tensor of length 3 * n_atoms to a
    scalar tensor. Derivatives come from ``torch.func``.
    """

    def __init__(self, energy_fn, charges, gtol=1e-6, maxiter=1000):
        super().__init__(charges)
        self.energy_fn = energy_fn
        self._grad_fn = torch.func.grad(energy_fn)
        self._hess_fn = torch.func.hessian(energy_fn)
        self.gtol = gtol
        self.maxiter = maxiter

    def value_grad_hess_impl(self, x, order):
        x_t = torch.tensor(x, dtype=torch.float64)
        value = self.energy_fn(x_t).item()
        grad = hess = None
        if order >= 1:
            grad = self._grad_fn(x_t).detach().numpy().copy()
        if order >= 2:
            hess = self._hess_fn(x_t).detach().numpy().copy()
        if not np.isfinite(value):
            raise EvaluatorFailure("Model energy is not finite")
        return value, grad, hess

    def optimize(self, structure):
        structure = self.check_point(structure)
        result = minimize(self.value_grad, structure, jac=True, method="BFGS",
                          options={"gtol": self.gtol, "maxiter": self.maxiter})
        if not result.success and np.linalg.norm(result.jac) > 10.0 * self.gtol:
            raise EvaluatorFailure(f"Model optimization failed: {result.message}")
        logger.debug("Model optimization converged in %d iterations", result.nit)
        return np.asarray(result.x, dtype="float64")
