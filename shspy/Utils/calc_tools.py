import numpy as np
from scipy.spatial.distance import pdist


def eye(n_dims, i):
    vec = np.zeros(n_dims, dtype="float64")
    vec[i] = 1.0
    return vec


def angle_cosine(vec_1, vec_2):
    return float(np.dot(vec_1, vec_2) / (np.linalg.norm(vec_1) * np.linalg.norm(vec_2)))


def projection(which, to):
    to = to / np.linalg.norm(to)
    return np.dot(which, to) * to


def random_vect_on_sphere(n_dims, r=1.0, rng=None):
    if rng is None:
        rng = np.random.default_rng()
    vec = rng.normal(0.0, 1.0, n_dims)
    return vec / np.linalg.norm(vec) * r


def linearization(matrix):
    #matrix: symmetric
    U, _, _ = np.linalg.svd(matrix)
    return U


def linearization_normalization(matrix):
    #matrix: symmetric. Columns of U scaled by 1/sqrt(|s|)
    U, s, _ = np.linalg.svd(matrix)
    return U / np.sqrt(np.abs(s))[np.newaxis, :]


def singular_values(matrix):
    """Signed curvatures of a symmetric matrix, diag(A^T M A) with A from its SVD."""
    A = linearization(matrix)
    return np.diag(A.T @ matrix @ A)


def rotation_matrix_in_plane(u, v, alpha):
    n_dims = len(u)
    return (np.identity(n_dims)
            + np.sin(alpha) * (np.outer(v, u) - np.outer(u, v))
            + (np.cos(alpha) - 1.0) * (np.outer(u, u) + np.outer(v, v)))


def rotation_matrix(vec_from, vec_to):
    """
    Rotation in the plane of vec_from and vec_to that maps the direction of
    vec_from onto the direction of vec_to. Other directions are kept fixed.
    """
    v = vec_to / np.linalg.norm(vec_to)
    f = vec_from / np.linalg.norm(vec_from)
    cos_alpha = np.clip(np.dot(f, v), -1.0, 1.0)
    u = f - v * cos_alpha
    u_norm = np.linalg.norm(u)
    if u_norm < 1e-12:
        if cos_alpha > 0.0:
            return np.identity(len(v))
        # antiparallel: rotate by pi in any plane containing v
        trial = np.roll(v, 1) + 1.0
        u = trial - v * np.dot(trial, v)
        u_norm = np.linalg.norm(u)
    u /= u_norm
    return rotation_matrix_in_plane(u, v, np.arccos(cos_alpha))


def to_distance_space(structure, sort=True):
    """
    Pairwise inter-atomic distances of a flat (3 * natoms) structure.
    Sorted distances do not depend on atom labeling or orientation.
    """
    structure = np.asarray(structure, dtype="float64")
    if structure.size % 3 != 0:
        raise ValueError(f"Structure size {structure.size} is not a multiple of 3")
    dists = pdist(structure.reshape(-1, 3))
    if sort:
        dists = np.sort(dists)
    return dists
