import logging

import numpy as np
import scipy.linalg

logger = logging.getLogger(__name__)


class Newton:
    def __init__(self, **config):
        #Full Newton-Raphson step. Converges to the nearest stationary point
        #of any index, so it also refines saddle points.
        self.DELTA = config.get("DELTA", 1.0)
        self.Initialization = True
        self.config = config
        self.hessian = None
        self.requires_hessian = True

    def reset(self):
        self.Initialization = True
        self.hessian = None

    def run(self, geom_num_list, B_g):
        logger.debug("Newton")
        if self.hessian is None:
            raise ValueError("Newton step requires set_hessian() before run()")
        hessian = 0.5 * (self.hessian + self.hessian.T)
        # raises LinAlgError for a singular Hessian
        move_vector = self.DELTA * scipy.linalg.solve(hessian, np.asarray(B_g), assume_a="sym")
        return move_vector

    def set_hessian(self, hessian):
        self.hessian = np.asarray(hessian, dtype="float64")
        return

    def get_hessian(self):
        return self.hessian
