import logging

import numpy as np

logger = logging.getLogger(__name__)


class GradientDescent:
    def __init__(self, **config):
        #Steepest descent
        self.DELTA = config.get("DELTA", 1.0)
        self.Initialization = True
        self.config = config
        self.hessian = None
        self.requires_hessian = False

    def reset(self):
        self.Initialization = True

    def run(self, geom_num_list, B_g):
        logger.debug("SD")
        if self.Initialization:
            self.Initialization = False

        move_vector = self.DELTA * np.asarray(B_g)
        return move_vector

    def set_hessian(self, hessian):
        self.hessian = hessian
        return

    def get_hessian(self):
        return self.hessian


class MomentumGradientDescent(GradientDescent):
    def __init__(self, **config):
        #Heavy-ball momentum (Polyak 1964)
        super().__init__(**config)
        self.DELTA = config.get("DELTA", 0.1)
        self.beta = config.get("beta", 0.9)

    def run(self, geom_num_list, B_g):
        logger.debug("Momentum SD")
        if self.Initialization:
            self.velocity = np.zeros_like(geom_num_list, dtype="float64")
            self.Initialization = False

        self.velocity = self.beta * self.velocity + self.DELTA * np.asarray(B_g)
        move_vector = self.velocity.copy()
        return move_vector


class NesterovGradientDescent(MomentumGradientDescent):
    def run(self, geom_num_list, B_g):
        #Nesterov accelerated gradient, look-ahead form of Sutskever et al. (ICML 2013)
        logger.debug("Nesterov SD")
        if self.Initialization:
            self.velocity = np.zeros_like(geom_num_list, dtype="float64")
            self.Initialization = False

        B_g = np.asarray(B_g)
        self.velocity = self.beta * self.velocity + self.DELTA * B_g
        move_vector = self.beta * self.velocity + self.DELTA * B_g
        return move_vector
