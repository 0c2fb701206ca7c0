import logging

import numpy as np

from shspy.Function.affine_transformation import AffineTransformation

logger = logging.getLogger(__name__)


def _retained_modes(func, structure, n_zero_modes):
    hess = func.hess(structure)
    hess = 0.5 * (hess + hess.T)
    eigvals, eigvecs = np.linalg.eigh(hess)
    if len(eigvals) - n_zero_modes < 1:
        raise ValueError(
            f"Cannot drop {n_zero_modes} modes from a {len(eigvals)}-dimensional function"
        )
    # smallest |lambda| are rigid translations and rotations
    order = np.argsort(np.abs(eigvals), kind="stable")
    keep = np.sort(order[n_zero_modes:])
    logger.debug("Dropped curvatures: %s", eigvals[np.sort(order[:n_zero_modes])])
    return eigvals[keep], eigvecs[:, keep]


def remove_zero_modes(func, structure, n_zero_modes=6):
    """
    Reduced coordinates around ``structure`` without the rigid-body modes.

    The Hessian at ``structure`` is diagonalised and the ``n_zero_modes``
    eigenvectors of smallest |eigenvalue| are discarded. The remaining
    eigenvectors (ascending eigenvalue) form an orthonormal basis of an
    AffineTransformation centred at ``structure``. The frame is only valid
    near ``structure``; re-derive it when the structure moves.
    """
    structure = np.asarray(structure, dtype="float64")
    _, basis = _retained_modes(func, structure, n_zero_modes)
    return AffineTransformation(func, structure, basis)


def normalize_for_polar(func, structure, n_zero_modes=6):
    """
    Like ``remove_zero_modes`` but every retained eigenvector is scaled by
    1/sqrt(|eigenvalue|), so the harmonic part of the energy in the new
    frame is |y|^2 / 2 (up to the sign of each curvature).
    """
    structure = np.asarray(structure, dtype="float64")
    eigvals, basis = _retained_modes(func, structure, n_zero_modes)
    if np.any(np.abs(eigvals) < 1e-12):
        raise ValueError("Retained Hessian modes include a zero curvature; cannot normalize")
    return AffineTransformation(func, structure, basis / np.sqrt(np.abs(eigvals))[np.newaxis, :])
