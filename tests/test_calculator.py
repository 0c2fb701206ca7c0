import os
import threading

import numpy as np
import pytest

from shspy.Calculator.evaluator import EvaluatorFailure
from shspy.Calculator.gaussian_calculation_tools import (
    GaussianCalculation,
    parse_fchk_array,
    parse_fchk_scalar,
    unpack_lower_triangle,
)
from shspy.Calculator.lj_calculation_tools import LennardJonesCalculation
from shspy.Calculator.torch_calculation_tools import TorchModelCalculation
from shspy.Function.model_function import double_well_energy
from shspy.Parameters.parameter import UnitValueLib

AR3 = np.array([0.0, 0.0, 0.0, 3.9, 0.0, 0.0, 1.8, 3.4, 0.2])


def numerical_grad(f, x, h=1e-5):
    grad = np.zeros(len(x))
    for i in range(len(x)):
        step = np.zeros(len(x))
        step[i] = h
        grad[i] = (f(x + step) - f(x - step)) / (2.0 * h)
    return grad


def numerical_jacobian(f, x, h=1e-5):
    columns = []
    for i in range(len(x)):
        step = np.zeros(len(x))
        step[i] = h
        columns.append((f(x + step) - f(x - step)) / (2.0 * h))
    return np.array(columns).T


# ---------------------------------------------------------------------------
# Lennard-Jones
# ---------------------------------------------------------------------------

def test_lj_gradient_matches_finite_differences():
    calc = LennardJonesCalculation([18, 18, 18])
    assert np.allclose(calc.grad(AR3), numerical_grad(calc.value, AR3), atol=1e-9)


def test_lj_hessian_matches_finite_differences():
    calc = LennardJonesCalculation([18, 18, 18])
    hess = calc.hess(AR3)
    assert np.allclose(hess, hess.T)
    assert np.allclose(hess, numerical_jacobian(calc.grad, AR3), atol=1e-8)


def test_lj_dimer_optimizes_to_well_minimum():
    calc = LennardJonesCalculation([18, 18])
    structure = calc.optimize(np.array([0.0, 0.0, 0.0, 4.0, 0.1, 0.0]))
    distance = np.linalg.norm(structure[3:] - structure[:3])
    assert distance == pytest.approx(3.817, abs=1e-3)
    assert calc.value(structure) == pytest.approx(-0.237 / UnitValueLib().hartree2kcalmol, rel=1e-6)


def test_lj_optimize_rejects_dissociated_cluster():
    calc = LennardJonesCalculation([18, 18])
    assert not calc.is_fragmented(AR3[:6])
    with pytest.raises(EvaluatorFailure):
        calc.optimize(np.array([0.0, 0.0, 0.0, 30.0, 0.0, 0.0]))


def test_lj_fragment_check_follows_connectivity():
    calc = LennardJonesCalculation([18, 18, 18])
    chain = np.array([0.0, 0.0, 0.0, 6.0, 0.0, 0.0, 12.0, 0.0, 0.0])
    assert not calc.is_fragmented(chain)
    chain[6] = 20.0
    assert calc.is_fragmented(chain)


def test_lj_rejects_unsupported_element():
    with pytest.raises(ValueError):
        LennardJonesCalculation([6, 18])


# ---------------------------------------------------------------------------
# Torch model
# ---------------------------------------------------------------------------

def test_torch_model_derivatives():
    calc = TorchModelCalculation(double_well_energy, [1] * 4)
    x = np.zeros(12)
    x[6] = 0.5
    x[8] = 0.3

    value, grad, hess = calc.value_grad_hess(x)
    assert value == pytest.approx((0.25 - 1.0) ** 2 + 0.5 * 2.0 * 0.09)
    assert grad[6] == pytest.approx(4.0 * 0.5 * (0.25 - 1.0))
    assert grad[8] == pytest.approx(2.0 * 0.3)
    assert hess[6, 6] == pytest.approx(12.0 * 0.25 - 4.0)
    assert np.allclose(np.diag(hess)[7:], [1.0, 2.0, 3.0, 4.0, 5.0])
    assert np.allclose(hess[:6], 0.0)


def test_evaluator_rejects_wrong_shape():
    calc = TorchModelCalculation(double_well_energy, [1] * 4)
    with pytest.raises(ValueError):
        calc.value(np.zeros(11))


def test_evaluator_failure_carries_thread_name():
    exc = EvaluatorFailure("boom")
    assert exc.thread_name == threading.current_thread().name
    assert "boom" in str(exc)
    assert exc.thread_name in str(exc)
    assert isinstance(exc, RuntimeError)


# ---------------------------------------------------------------------------
# Gaussian
# ---------------------------------------------------------------------------

FCHK = """\
shspy calculation
SP        RHF                                                         STO-3G
Number of atoms                            I                2
Total Energy                               R     -1.117506325E+00
Current cartesian coordinates              R   N=           6
  0.00000000E+00  0.00000000E+00  0.00000000E+00  0.00000000E+00  0.00000000E+00
  1.40000000E+00
Cartesian Gradient                         R   N=           6
  0.00000000E+00  0.00000000E+00 -1.00000000E-02  0.00000000E+00  0.00000000E+00
  1.00000000E-02
Cartesian Force Constants                  R   N=          21
  1.00000000E-01  0.00000000E+00  1.00000000E-01  0.00000000E+00  0.00000000E+00
  4.00000000E-01 -1.00000000E-01  0.00000000E+00  0.00000000E+00  1.00000000E-01
  0.00000000E+00 -1.00000000E-01  0.00000000E+00  0.00000000E+00  1.00000000E-01
  0.00000000E+00  0.00000000E+00 -4.00000000E-01  0.00000000E+00  0.00000000E+00
  4.00000000E-01
"""


def test_parse_fchk_fields():
    lines = FCHK.splitlines(keepends=True)
    assert parse_fchk_scalar(lines, "Total Energy") == pytest.approx(-1.117506325)
    grad = parse_fchk_array(lines, "Cartesian Gradient")
    assert np.allclose(grad, [0.0, 0.0, -0.01, 0.0, 0.0, 0.01])
    with pytest.raises(EvaluatorFailure):
        parse_fchk_array(lines, "Total Energy")
    with pytest.raises(EvaluatorFailure):
        parse_fchk_scalar(lines, "SCF Energy")


def test_unpack_lower_triangle():
    matrix = unpack_lower_triangle([1.0, 2.0, 3.0, 4.0, 5.0, 6.0], 3)
    assert np.allclose(matrix, [[1.0, 2.0, 4.0], [2.0, 3.0, 5.0], [4.0, 5.0, 6.0]])
    with pytest.raises(EvaluatorFailure):
        unpack_lower_triangle([1.0, 2.0], 3)


def test_gaussian_results_are_converted_to_angstrom():
    calc = GaussianCalculation([1, 1])
    lines = FCHK.splitlines(keepends=True)
    a2b = UnitValueLib().angstrom2bohr

    value, grad, hess = calc.parse_results(lines, 2)
    assert value == pytest.approx(-1.117506325)
    assert grad[5] == pytest.approx(0.01 * a2b)
    assert hess.shape == (6, 6)
    assert np.allclose(hess, hess.T)
    assert hess[5, 2] == pytest.approx(-0.4 * a2b ** 2)

    structure = calc.parse_structure(lines)
    assert structure[5] == pytest.approx(1.4 * UnitValueLib().bohr2angstroms)


def test_gaussian_input_file():
    calc = GaussianCalculation([8, 1, 1], theory="b3lyp/6-31g(d)", nproc=2, mem=500, charge=0, multiplicity=1)
    text = calc.create_input_file(np.zeros(9), 1)
    lines = text.splitlines()
    assert lines[0] == "%NProcShared=2"
    assert lines[1] == "%Mem=500MB"
    assert "#p b3lyp/6-31g(d) force" in lines
    assert "0 1" in lines
    assert lines[8].split()[0] == "O"
    assert text.endswith("\n\n")


def test_missing_gaussian_binary_is_an_evaluator_failure(tmp_path):
    calc = GaussianCalculation([1, 1], gaussian_command=str(tmp_path / "no_such_g16"), work_root=str(tmp_path))
    with pytest.raises(EvaluatorFailure):
        calc.value(np.array([0.0, 0.0, 0.0, 0.0, 0.0, 0.74]))
    assert os.listdir(tmp_path) == []
