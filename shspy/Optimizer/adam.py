import logging

import numpy as np

logger = logging.getLogger(__name__)


class Adam:
    def __init__(self, **config):
        #Adam
        #arXiv:1412.6980
        self.adam_count = 1
        self.beta_m = config.get("beta_m", 0.9)
        self.beta_v = config.get("beta_v", 0.999)
        self.DELTA = config.get("DELTA", 0.03)
        self.Epsilon = config.get("Epsilon", 1e-08)
        self.Initialization = True
        self.config = config
        self.hessian = None
        self.requires_hessian = False

    def reset(self):
        self.Initialization = True

    def run(self, geom_num_list, B_g):
        logger.debug("Adam")
        if self.Initialization:
            self.adam_m = np.zeros_like(geom_num_list, dtype="float64")
            self.adam_v = np.zeros_like(geom_num_list, dtype="float64")
            self.adam_count = 1
            self.Initialization = False

        B_g = np.asarray(B_g)
        self.adam_m = self.beta_m * self.adam_m + (1.0 - self.beta_m) * B_g
        self.adam_v = self.beta_v * self.adam_v + (1.0 - self.beta_v) * B_g ** 2
        adam_m_hat = self.adam_m / (1.0 - self.beta_m ** self.adam_count)
        adam_v_hat = self.adam_v / (1.0 - self.beta_v ** self.adam_count)

        move_vector = self.DELTA * adam_m_hat / (np.sqrt(adam_v_hat) + self.Epsilon)
        self.adam_count += 1
        return move_vector

    def set_hessian(self, hessian):
        self.hessian = hessian
        return

    def get_hessian(self):
        return self.hessian
