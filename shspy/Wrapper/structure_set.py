import logging

import numpy as np

from shspy.Utils.calc_tools import to_distance_space

logger = logging.getLogger(__name__)


class StructureSet:
    """
    Structures that are pairwise distinct up to translation, rotation and
    atom relabelling.

    Two structures are the same when their sorted inter-atomic distance
    vectors are closer than ``dist_space_eps``. The set only grows.
    Not thread safe; callers hold their own lock.
    """

    def __init__(self, dist_space_eps=1e-3):
        self.dist_space_eps = dist_space_eps
        self._structures = []
        self._fingerprints = []

    def index_of(self, structure):
        """Index of the stored structure matching ``structure`` or None."""
        fingerprint = to_distance_space(structure)
        for index, other in enumerate(self._fingerprints):
            if other.shape == fingerprint.shape and np.linalg.norm(other - fingerprint) < self.dist_space_eps:
                return index
        return None

    def add_structure(self, structure):
        structure = np.array(structure, dtype="float64")
        index = self.index_of(structure)
        if index is not None:
            logger.info("Structure matches #%d in distance space; not added", index)
            return False
        self._structures.append(structure)
        self._fingerprints.append(to_distance_space(structure))
        return True

    @property
    def structures(self):
        return list(self._structures)

    def __len__(self):
        return len(self._structures)

    def __iter__(self):
        return iter(list(self._structures))

    def __getitem__(self, index):
        return self._structures[index]
