import numpy as np

from shspy.Function.model_function import QuadraticFunction
from shspy.Optimizer.stop_strategy import StopStrategy, make_history_strategy
from shspy.Sphere.minima_elimination import accept_direction, axis_seed, minima_elimination
from shspy.Sphere.on_sphere import optimize_on_sphere, tangential_gradient, try_to_converge
from shspy.Utils.calc_tools import angle_cosine
from shspy.fileio import read_vector_list


def test_bowl_is_critical_everywhere_on_sphere():
    func = QuadraticFunction(2.0 * np.identity(2))
    path = optimize_on_sphere(StopStrategy(1e-8, 1e-8), func, np.array([1.0, 0.0]), 1.0)
    assert path
    assert np.isclose(np.linalg.norm(path[-1]), 1.0)
    assert np.linalg.norm(tangential_gradient(func, path[-1])) < 1e-6


def test_gradient_search_finds_minimum_on_circle():
    func = QuadraticFunction(np.diag([2.0, 4.0]))
    seed = np.array([np.cos(0.3), np.sin(0.3)])
    history = make_history_strategy(StopStrategy(1e-8, 1e-8))
    path = optimize_on_sphere(history, func, seed, 1.0)

    assert path
    assert np.isclose(abs(path[-1][0]), 1.0, atol=1e-6)
    assert np.linalg.norm(tangential_gradient(func, path[-1])) < 1e-6
    assert all(np.isclose(np.linalg.norm(p), 1.0) for p in path)
    assert len(history.path) == len(path)


def test_newton_convergence_on_circle():
    func = QuadraticFunction(np.diag([2.0, 4.0]))
    seed = 2.0 * np.array([np.cos(0.3), np.sin(0.3)])
    path = try_to_converge(StopStrategy(1e-8, 1e-8), func, seed, 2.0)
    assert path
    assert np.isclose(abs(path[-1][0]), 2.0, atol=1e-6)
    assert np.isclose(np.linalg.norm(path[-1]), 2.0)


def test_newton_convergence_gives_up_after_iteration_limit():
    func = QuadraticFunction(np.diag([2.0, 4.0]))
    seed = np.array([np.cos(0.3), np.sin(0.3)])
    assert try_to_converge(StopStrategy(1e-30, 1e-30), func, seed, 1.0, iter_limit=3) == []


def test_accept_direction():
    directions, values = [np.array([1.0, 0.0, 0.0])], [0.1]

    close = np.array([0.98, np.sqrt(1.0 - 0.98 ** 2), 0.0])
    assert not accept_direction(close, 0.2, directions, values)
    assert len(directions) == 1

    far = np.array([0.5, np.sqrt(0.75), 0.0])
    assert accept_direction(far, 0.3, directions, values)
    assert len(directions) == 2
    assert values == [0.1, 0.3]


def test_accept_direction_with_no_known_directions():
    directions, values = [], []
    assert accept_direction(np.array([0.0, 1.0]), 0.5, directions, values)
    assert len(directions) == 1


def test_axis_seeds_alternate_sign():
    assert np.allclose(axis_seed(3, 0, 0.1), [-0.1, 0.0, 0.0])
    assert np.allclose(axis_seed(3, 1, 0.1), [0.1, 0.0, 0.0])
    assert np.allclose(axis_seed(3, 4, 0.1), [0.0, 0.0, -0.1])


def test_minima_elimination_finds_both_ends_of_soft_mode(tmp_path):
    rng = np.random.default_rng(7)
    q, _ = np.linalg.qr(rng.normal(size=(3, 3)))
    func = QuadraticFunction(q @ np.diag([0.5, 2.0, 3.0]) @ q.T)
    soft_mode = q[:, 0]
    output = tmp_path / "mins_on_sphere"

    directions = minima_elimination(func, r=0.05, random_seed_limit=2,
                                    rng=np.random.default_rng(0), output_path=str(output))

    assert len(directions) == 2
    for direction in directions:
        assert np.isclose(np.linalg.norm(direction), 0.05)
        assert abs(angle_cosine(direction, soft_mode)) > 0.999
    assert angle_cosine(directions[0], directions[1]) < -0.999

    stored = read_vector_list(str(output))
    assert len(stored) == 2
    assert np.allclose(stored[0], directions[0])


def test_sphere_search_without_iterations_returns_empty_path():
    func = QuadraticFunction(np.diag([2.0, 4.0]))
    assert optimize_on_sphere(StopStrategy(1e-8, 1e-8), func, np.array([1.0, 1.0]), 1.0, iter_limit=0) == []


def test_one_dimensional_sphere_is_two_points():
    func = QuadraticFunction(np.array([[2.0]]))
    strategy = StopStrategy(1e-8, 1e-8)
    assert np.allclose(optimize_on_sphere(strategy, func, np.array([-3.0]), 0.05), [[-0.05]])
    assert np.allclose(try_to_converge(strategy, func, np.array([2.0]), 0.05), [[0.05]])


def test_minima_elimination_in_one_dimension(tmp_path):
    func = QuadraticFunction(np.array([[1.0]]))
    output = tmp_path / "mins_on_sphere"
    directions = minima_elimination(func, r=0.05, rng=np.random.default_rng(0), output_path=str(output))

    assert len(directions) == 2
    assert np.allclose(sorted(d[0] for d in directions), [-0.05, 0.05])
    assert len(read_vector_list(str(output))) == 2
