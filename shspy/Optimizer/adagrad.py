import logging

import numpy as np

logger = logging.getLogger(__name__)


class Adagrad:
    def __init__(self, **config):
        #Adagrad
        #JMLR 12 (2011) 2121-2159
        self.DELTA = config.get("DELTA", 0.1)
        self.Epsilon = config.get("Epsilon", 1e-08)
        self.Initialization = True
        self.config = config
        self.hessian = None
        self.requires_hessian = False

    def reset(self):
        self.Initialization = True

    def run(self, geom_num_list, B_g):
        logger.debug("Adagrad")
        if self.Initialization:
            self.grad_sq_sum = np.zeros_like(geom_num_list, dtype="float64")
            self.Initialization = False

        B_g = np.asarray(B_g)
        self.grad_sq_sum = self.grad_sq_sum + B_g ** 2
        move_vector = self.DELTA * B_g / (np.sqrt(self.grad_sq_sum) + self.Epsilon)
        return move_vector

    def set_hessian(self, hessian):
        self.hessian = hessian
        return

    def get_hessian(self):
        return self.hessian
