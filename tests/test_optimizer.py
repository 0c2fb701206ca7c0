import numpy as np
import pytest

from shspy.Calculator.torch_calculation_tools import TorchModelCalculation
from shspy.Function.model_function import QuadraticFunction, double_well_energy
from shspy.Optimizer.driver import (
    make_optimizer,
    optimize,
    second_order_structure_optimization,
)
from shspy.Optimizer.newton import Newton
from shspy.Optimizer.stop_strategy import (
    DeltaNormStopStrategy,
    GradientNormStopStrategy,
    StopStrategy,
    make_history_strategy,
)


def bowl():
    return QuadraticFunction(np.diag([1.0, 2.0]), center=np.array([0.5, -0.25]))


def run_steps(func, optimizer, x0, n_steps):
    x = np.array(x0, dtype="float64")
    for _ in range(n_steps):
        x = x - optimizer.run(x, func.grad(x))
    return x


@pytest.mark.parametrize("name, config, iter_limit", [
    ("gradientdescent", {"DELTA": 0.3}, 500),
    ("momentum", {}, 3000),
    ("nesterov", {}, 3000),
])
def test_first_order_optimizers_converge_on_quadratic(name, config, iter_limit):
    func = bowl()
    path = optimize(func, np.ones(2), make_optimizer(name, **config),
                    StopStrategy(1e-6, 1e-6), iter_limit=iter_limit)
    assert path
    assert np.allclose(path[-1], func.center, atol=1e-5)


@pytest.mark.parametrize("name, n_steps, factor", [
    ("adagrad", 200, 0.5),
    ("adam", 200, 0.5),
    ("adadelta", 1000, 1.0),
])
def test_adaptive_optimizers_decrease_the_value(name, n_steps, factor):
    func = bowl()
    x0 = np.array([1.5, 1.0])
    x = run_steps(func, make_optimizer(name), x0, n_steps)
    assert func(x) < factor * func(x0)


def test_newton_solves_quadratic_in_one_step():
    func = bowl()
    path = optimize(func, np.array([3.0, -2.0]), Newton(), StopStrategy(1e-10, 1e-10))
    assert len(path) == 2
    assert np.allclose(path[0], func.center)


def test_newton_requires_hessian():
    with pytest.raises(ValueError):
        Newton().run(np.zeros(2), np.ones(2))


def test_optimize_returns_empty_list_without_convergence():
    func = bowl()
    path = optimize(func, np.ones(2), make_optimizer("gradientdescent", DELTA=0.01),
                    StopStrategy(1e-12, 1e-12), iter_limit=5)
    assert path == []


def test_make_optimizer_rejects_unknown_name():
    with pytest.raises(ValueError):
        make_optimizer("lbfgs")


def test_make_optimizer_is_case_insensitive():
    optimizer = make_optimizer("Adam", DELTA=0.1)
    assert optimizer.DELTA == 0.1
    assert not optimizer.requires_hessian


def test_stop_strategies():
    grad = np.array([1e-7, 0.0])
    assert GradientNormStopStrategy(1e-6)(0, None, 0.0, grad)
    assert not DeltaNormStopStrategy(1e-6)(0, None, 0.0, grad)
    assert DeltaNormStopStrategy(1e-6)(0, None, 0.0, grad, delta=np.zeros(2))

    both = StopStrategy(1e-6, 1e-3)
    assert both(0, None, 0.0, grad, delta=np.array([1e-4, 0.0]))
    assert not both(0, None, 0.0, grad, delta=np.array([1e-2, 0.0]))
    assert not both(0, None, 0.0, np.ones(2), delta=np.zeros(2))


def test_history_wrapper_records_every_call():
    history = make_history_strategy(GradientNormStopStrategy(1e-3))
    assert not history(0, np.ones(2), 1.5, np.array([3.0, 4.0]))
    assert history(1, np.zeros(2), 0.5, np.zeros(2))

    assert len(history.path) == 2
    assert history.values == [1.5, 0.5]
    assert history.grad_norms == [5.0, 0.0]

    history.reset()
    assert history.path == []


def test_second_order_optimization_finds_saddle():
    molecule = TorchModelCalculation(double_well_energy, [1] * 4)
    structure = np.zeros(12)
    structure[6] = 0.1
    structure[7] = 0.05

    ts = second_order_structure_optimization(StopStrategy(1e-6, 1e-6), molecule, structure, 20)
    assert ts is not None
    assert abs(ts[6]) < 1e-6
    assert abs(ts[7]) < 1e-6
    assert np.linalg.norm(molecule.grad(ts)) < 1e-6
