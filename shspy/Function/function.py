"""
function.py - Differentiable function abstraction
==================================================

Every object the optimizers and the SHS workflow consume is a
DifferentiableFunction: something that returns the value, gradient and
Hessian at a point of R^N. Wrappers (affine maps, polar charts, sums)
implement the same interface over an owned inner function, so arbitrary
coordinate frames can be stacked while derivatives stay exact.

Frame bookkeeping
-----------------
A point only makes sense together with the frame that produced it.
``full_transform`` maps a point of this frame down to the Cartesian frame
of the innermost function, ``get_full_inner_function`` returns that
innermost function (normally the quantum-chemistry evaluator).
"""

from abc import ABC, abstractmethod

import numpy as np


class DifferentiableFunction(ABC):
    """
    Abstract scalar function of ``n_dims`` variables with exact derivatives.

    Subclasses implement ``value``, ``grad`` and ``hess``. ``value_grad``
    and ``value_grad_hess`` default to separate queries and should be
    overridden when a single evaluation provides everything.
    """

    # numpy scalars defer to __rmul__ instead of broadcasting
    __array_ufunc__ = None

    def __init__(self, n_dims):
        self.n_dims = int(n_dims)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @abstractmethod
    def value(self, x):
        ...

    @abstractmethod
    def grad(self, x):
        ...

    @abstractmethod
    def hess(self, x):
        ...

    def __call__(self, x):
        return self.value(x)

    def value_grad(self, x):
        return self.value(x), self.grad(x)

    def value_grad_hess(self, x):
        return self.value(x), self.grad(x), self.hess(x)

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    def full_transform(self, x):
        return np.asarray(x, dtype="float64")

    def get_full_inner_function(self):
        return self

    def check_point(self, x):
        x = np.asarray(x, dtype="float64")
        if x.shape != (self.n_dims,):
            raise ValueError(
                f"{type(self).__name__} expects a point of shape ({self.n_dims},), got {x.shape}"
            )
        return x

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def __add__(self, other):
        return Sum(self, other)

    def __sub__(self, other):
        return Sum(self, MultipliedByConstant(other, -1.0))

    def __neg__(self):
        return MultipliedByConstant(self, -1.0)

    def __mul__(self, constant):
        return MultipliedByConstant(self, constant)

    __rmul__ = __mul__


class Sum(DifferentiableFunction):
    """Sum of functions of equal dimension. Frame queries use the first term."""

    def __init__(self, *funcs):
        if not funcs:
            raise ValueError("Sum requires at least one function")
        n_dims = funcs[0].n_dims
        for func in funcs:
            if func.n_dims != n_dims:
                raise ValueError(f"Cannot add functions of dimensions {n_dims} and {func.n_dims}")
        super().__init__(n_dims)
        self.funcs = list(funcs)

    def value(self, x):
        x = self.check_point(x)
        return sum(func.value(x) for func in self.funcs)

    def grad(self, x):
        x = self.check_point(x)
        return sum(func.grad(x) for func in self.funcs)

    def hess(self, x):
        x = self.check_point(x)
        return sum(func.hess(x) for func in self.funcs)

    def value_grad(self, x):
        x = self.check_point(x)
        value, grad = 0.0, np.zeros(self.n_dims)
        for func in self.funcs:
            v, g = func.value_grad(x)
            value += v
            grad = grad + g
        return value, grad

    def value_grad_hess(self, x):
        x = self.check_point(x)
        value, grad, hess = 0.0, np.zeros(self.n_dims), np.zeros((self.n_dims, self.n_dims))
        for func in self.funcs:
            v, g, h = func.value_grad_hess(x)
            value += v
            grad = grad + g
            hess = hess + h
        return value, grad, hess

    def full_transform(self, x):
        return self.funcs[0].full_transform(x)

    def get_full_inner_function(self):
        return self.funcs[0].get_full_inner_function()


class MultipliedByConstant(DifferentiableFunction):
    def __init__(self, func, constant):
        super().__init__(func.n_dims)
        self.func = func
        self.constant = float(constant)

    def value(self, x):
        return self.constant * self.func.value(x)

    def grad(self, x):
        return self.constant * self.func.grad(x)

    def hess(self, x):
        return self.constant * self.func.hess(x)

    def value_grad(self, x):
        v, g = self.func.value_grad(x)
        return self.constant * v, self.constant * g

    def value_grad_hess(self, x):
        v, g, h = self.func.value_grad_hess(x)
        return self.constant * v, self.constant * g, self.constant * h

    def full_transform(self, x):
        return self.func.full_transform(x)

    def get_full_inner_function(self):
        return self.func.get_full_inner_function()


class Constant(DifferentiableFunction):
    def __init__(self, n_dims, constant=0.0):
        super().__init__(n_dims)
        self.constant = float(constant)

    def value(self, x):
        self.check_point(x)
        return self.constant

    def grad(self, x):
        self.check_point(x)
        return np.zeros(self.n_dims)

    def hess(self, x):
        self.check_point(x)
        return np.zeros((self.n_dims, self.n_dims))


class SqrNorm(DifferentiableFunction):
    def value(self, x):
        x = self.check_point(x)
        return float(np.dot(x, x))

    def grad(self, x):
        return 2.0 * self.check_point(x)

    def hess(self, x):
        self.check_point(x)
        return 2.0 * np.identity(self.n_dims)
