import logging

import numpy as np

logger = logging.getLogger(__name__)


class Adadelta:
    def __init__(self, **config):
        #Adadelta
        #arXiv:1212.5701v1
        self.rho = config.get("rho", 0.95)
        self.Epsilon = config.get("Epsilon", 1e-06)
        self.Initialization = True
        self.config = config
        self.hessian = None
        self.requires_hessian = False
        return

    def reset(self):
        self.Initialization = True

    def run(self, geom_num_list, B_g):
        logger.debug("Adadelta")
        if self.Initialization:
            self.grad_sq_avg = np.zeros_like(geom_num_list, dtype="float64")
            self.move_sq_avg = np.zeros_like(geom_num_list, dtype="float64")
            self.Initialization = False

        B_g = np.asarray(B_g)
        self.grad_sq_avg = self.rho * self.grad_sq_avg + (1.0 - self.rho) * B_g ** 2
        move_vector = np.sqrt(self.move_sq_avg + self.Epsilon) / np.sqrt(self.grad_sq_avg + self.Epsilon) * B_g
        self.move_sq_avg = self.rho * self.move_sq_avg + (1.0 - self.rho) * move_vector ** 2
        return move_vector

    def set_hessian(self, hessian):
        self.hessian = hessian
        return

    def get_hessian(self):
        return self.hessian
