import logging

import networkx as nx
import numpy as np
from scipy.optimize import minimize
from scipy.spatial.distance import pdist, squareform

from shspy.Calculator.evaluator import Evaluator, EvaluatorFailure
from shspy.Parameters.parameter import UnitValueLib, number_element

logger = logging.getLogger(__name__)


class LennardJonesCore:
    """
    Core calculator for Lennard-Jones potential using UFF parameters.
    Handles both homo- and hetero-atomic clusters using combining rules.
    Coordinates in Angstrom, energies in Hartree.
    """
    # UFF parameters with well depth D_i in kcal/mol.
    # Source: Rappe, A. K., et al. J. Am. Chem. Soc. 1992, 114, 10024-10035.
    UFF_PARAMETERS = {
        'He': {'x_i': 2.868, 'D_i': 0.0216},
        'Ne': {'x_i': 3.087, 'D_i': 0.0731},
        'Ar': {'x_i': 3.817, 'D_i': 0.237},
        'Kr': {'x_i': 4.047, 'D_i': 0.357},
        'Xe': {'x_i': 4.363, 'D_i': 0.507},
    }
    SIGMA_CONV_FACTOR = 1 / (2**(1/6))

    def __init__(self):
        self.UVL = UnitValueLib()
        self._param_cache = {}

    def get_parameters(self, atom_symbols):
        """Arrays of sigma (Angstrom) and epsilon (Hartree) for each atom."""
        sigmas = np.zeros(len(atom_symbols))
        epsilons = np.zeros(len(atom_symbols))

        for i, symbol in enumerate(atom_symbols):
            if symbol not in self._param_cache:
                if symbol not in self.UFF_PARAMETERS:
                    raise ValueError(f"Atom symbol '{symbol}' is not supported. "
                                     f"Supported: {list(self.UFF_PARAMETERS.keys())}")
                params = self.UFF_PARAMETERS[symbol]
                sigma = params['x_i'] * self.SIGMA_CONV_FACTOR
                epsilon = params['D_i'] / self.UVL.hartree2kcalmol
                self._param_cache[symbol] = (sigma, epsilon)

            sigmas[i], epsilons[i] = self._param_cache[symbol]

        return sigmas, epsilons

    def _pair_terms(self, coords, atom_symbols):
        num_atoms = coords.shape[0]
        base_sigmas, base_epsilons = self.get_parameters(atom_symbols)

        a, b = np.triu_indices(num_atoms, 1)
        diffs = coords[a] - coords[b]
        dists_sq = np.sum(diffs**2, axis=1)

        # Lorentz-Berthelot combining rules
        sigmas_ab = (base_sigmas[a] + base_sigmas[b]) / 2.0
        epsilons_ab = np.sqrt(base_epsilons[a] * base_epsilons[b])

        sigma_over_r_6 = (sigmas_ab**2 / dists_sq)**3
        sigma_over_r_12 = sigma_over_r_6**2
        return a, b, diffs, dists_sq, epsilons_ab, sigma_over_r_6, sigma_over_r_12

    def calculate_energy_and_gradient(self, coords, atom_symbols):
        if coords.shape[0] <= 1:
            return {"energy": 0.0, "gradient": np.zeros_like(coords)}

        a, b, diffs, dists_sq, eps, sr6, sr12 = self._pair_terms(coords, atom_symbols)
        energy = np.sum(4 * eps * (sr12 - sr6))

        grad_mag_over_r = -24 * eps / dists_sq * (2 * sr12 - sr6)
        grad_pairs = grad_mag_over_r[:, np.newaxis] * diffs
        gradient = np.zeros_like(coords)
        np.add.at(gradient, a, grad_pairs)
        np.add.at(gradient, b, -grad_pairs)

        return {"energy": float(energy), "gradient": gradient}

    def calculate_hessian(self, coords, atom_symbols):
        """Vectorized assembly of 3x3 pair blocks."""
        num_atoms = coords.shape[0]
        hessian = np.zeros((num_atoms * 3, num_atoms * 3))
        if num_atoms <= 1:
            return {"hessian": hessian}

        a, b, diffs, dists_sq, eps, sr6, sr12 = self._pair_terms(coords, atom_symbols)

        dV_dr_over_r = -24 * eps / dists_sq * (2 * sr12 - sr6)
        d2V_dr2 = 24 * eps / dists_sq * (26 * sr12 - 7 * sr6)
        term1 = np.einsum('p,pi,pj->pij', (d2V_dr2 - dV_dr_over_r) / dists_sq, diffs, diffs)
        term2 = np.identity(3)[np.newaxis, :, :] * dV_dr_over_r[:, np.newaxis, np.newaxis]
        sub_hessians = term1 + term2

        p, q = np.meshgrid(np.arange(3), np.arange(3), indexing='ij')
        rows_a = (a[:, None, None] * 3 + p).flatten()
        cols_a = (a[:, None, None] * 3 + q).flatten()
        rows_b = (b[:, None, None] * 3 + p).flatten()
        cols_b = (b[:, None, None] * 3 + q).flatten()
        flat = sub_hessians.flatten()

        np.subtract.at(hessian, (rows_a, cols_b), flat)
        np.subtract.at(hessian, (cols_b, rows_a), flat)
        np.add.at(hessian, (rows_a, cols_a), flat)
        np.add.at(hessian, (rows_b, cols_b), flat)

        return {"hessian": hessian}


class LennardJonesCalculation(Evaluator):
    """
    Lennard-Jones cluster (rare gases) as an SHS evaluator.

    Atoms closer than ``fragment_factor`` times the largest UFF bond length
    are connected; a local minimum whose connectivity graph falls apart is
    a dissociated cluster and is rejected by ``optimize``.
    """

    def __init__(self, charges, gtol=1e-7, maxiter=2000, fragment_factor=2.0):
        super().__init__(charges)
        self.atom_symbol = [number_element(c) for c in self.charges]
        self.calculator = LennardJonesCore()
        self.calculator.get_parameters(self.atom_symbol)
        self.gtol = gtol
        self.maxiter = maxiter
        self.fragment_cutoff = fragment_factor * max(
            LennardJonesCore.UFF_PARAMETERS[s]["x_i"] for s in self.atom_symbol)

    def value_grad_hess_impl(self, x, order):
        coords = x.reshape(-1, 3)
        results = self.calculator.calculate_energy_and_gradient(coords, self.atom_symbol)
        if not np.isfinite(results["energy"]):
            raise EvaluatorFailure("Non-finite LJ energy (overlapping atoms)")
        hess = None
        if order >= 2:
            hess = self.calculator.calculate_hessian(coords, self.atom_symbol)["hessian"]
        return results["energy"], results["gradient"].reshape(-1), hess

    def optimize(self, structure):
        structure = self.check_point(structure)
        result = minimize(self.value_grad, structure, jac=True, method="BFGS",
                          options={"gtol": self.gtol, "maxiter": self.maxiter})
        if not result.success and np.linalg.norm(result.jac) > 10.0 * self.gtol:
            raise EvaluatorFailure(f"LJ optimization failed: {result.message}")
        if self.is_fragmented(result.x):
            raise EvaluatorFailure("LJ optimization fragmented the cluster")
        logger.debug("LJ optimization converged in %d iterations, E = %.10f", result.nit, result.fun)
        return np.asarray(result.x, dtype="float64")

    def is_fragmented(self, structure):
        coords = np.asarray(structure, dtype="float64").reshape(-1, 3)
        if len(coords) <= 1:
            return False
        close = np.triu(squareform(pdist(coords)) < self.fragment_cutoff, 1)
        graph = nx.Graph()
        graph.add_nodes_from(range(len(coords)))
        graph.add_edges_from(zip(*np.nonzero(close)))
        return not nx.is_connected(graph)
