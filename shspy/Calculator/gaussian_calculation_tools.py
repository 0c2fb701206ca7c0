import logging
import os
import shutil
import subprocess
import tempfile

import numpy as np

from shspy.Calculator.evaluator import Evaluator, EvaluatorFailure
from shspy.Parameters.parameter import UnitValueLib, number_element

logger = logging.getLogger(__name__)

JOB_ROUTES = {
    0: "",
    1: "force",
    2: "freq",
    "opt": "opt",
}


# ====================================================================================
# Formatted checkpoint parsing
# ====================================================================================

def _find_field(lines, label):
    for index, line in enumerate(lines):
        if line.startswith(label):
            return index, line
    raise EvaluatorFailure(f"Field '{label}' not found in formatted checkpoint")


def parse_fchk_scalar(lines, label):
    """Value of a scalar field such as ``Total Energy   R   -1.1e+00``."""
    _, line = _find_field(lines, label)
    try:
        return float(line.split()[-1])
    except ValueError as exc:
        raise EvaluatorFailure(f"Malformed scalar field '{label}': {line.strip()}") from exc


def parse_fchk_array(lines, label):
    """
    Values of an array field. The header ends with ``N=  count`` and the
    values follow, five per line.
    """
    index, line = _find_field(lines, label)
    tokens = line.split()
    if len(tokens) < 2 or tokens[-2] != "N=":
        raise EvaluatorFailure(f"Field '{label}' is not an array: {line.strip()}")
    count = int(tokens[-1])
    values = []
    for row in lines[index + 1:]:
        if len(values) >= count:
            break
        try:
            values.extend(float(v) for v in row.split())
        except ValueError as exc:
            raise EvaluatorFailure(f"Malformed data in field '{label}'") from exc
    if len(values) != count:
        raise EvaluatorFailure(f"Field '{label}' holds {len(values)} values, expected {count}")
    return np.array(values, dtype="float64")


def unpack_lower_triangle(packed, n):
    """Symmetric n x n matrix from its row-wise packed lower triangle."""
    packed = np.asarray(packed, dtype="float64")
    if packed.size != n * (n + 1) // 2:
        raise EvaluatorFailure(f"Packed triangle of size {packed.size} does not fit a {n} x {n} matrix")
    matrix = np.zeros((n, n))
    matrix[np.tril_indices(n)] = packed
    return matrix + matrix.T - np.diag(np.diag(matrix))


# ====================================================================================
# Calculator
# ====================================================================================

class GaussianCalculation(Evaluator):
    """
    Energy, gradient and Hessian from the Gaussian program.

    Coordinates are in Angstrom, energies in Hartree. Every request writes
    a ``.gjf`` into a private temporary directory, runs the program, checks
    for normal termination and reads the formatted checkpoint.

    Parameters
    ----------
    charges : sequence of int
        Atomic numbers.
    theory : str
        Method/basis part of the route, e.g. ``"hf/sto-3g"``.
    nproc, mem : int
        ``%NProcShared`` and ``%Mem`` (MB).
    charge, multiplicity : int
    gaussian_command, formchk_command : str
        Executables, typically taken from ``software_path.conf``.
    timeout : float, optional
        Seconds before a run is killed and reported as a failure.
    work_root : str, optional
        Parent directory of the temporary run directories.
    keep_files : bool
        Keep the run directories for inspection.
    """

    def __init__(self, charges, theory="hf/sto-3g", nproc=1, mem=1000, charge=0, multiplicity=1,
                 gaussian_command="g16", formchk_command="formchk", timeout=None,
                 work_root=None, keep_files=False):
        super().__init__(charges)
        UVL = UnitValueLib()
        self.bohr2angstroms = UVL.bohr2angstroms
        self.angstrom2bohr = UVL.angstrom2bohr
        self.theory = theory
        self.set_nproc(nproc)
        self.mem = int(mem)
        self.charge = int(charge)
        self.multiplicity = int(multiplicity)
        self.gaussian_command = gaussian_command
        self.formchk_command = formchk_command
        self.timeout = timeout
        self.work_root = work_root
        self.keep_files = keep_files

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def create_input_file(self, x, job, chk_name="input.chk"):
        route = f"#p {self.theory}"
        if JOB_ROUTES[job]:
            route += " " + JOB_ROUTES[job]
        coords = np.asarray(x, dtype="float64").reshape(-1, 3)
        lines = [
            f"%NProcShared={self.nproc}",
            f"%Mem={self.mem}MB",
            f"%chk={chk_name}",
            route,
            "",
            "shspy calculation",
            "",
            f"{self.charge} {self.multiplicity}",
        ]
        for charge, (cx, cy, cz) in zip(self.charges, coords):
            lines.append(f"{number_element(charge):<2s} {cx:20.12f} {cy:20.12f} {cz:20.12f}")
        lines.extend(["", ""])
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _call(self, command, work_dir):
        try:
            subprocess.run(command, cwd=work_dir, capture_output=True, text=True,
                           timeout=self.timeout, check=True)
        except FileNotFoundError as exc:
            raise EvaluatorFailure(f"Program not found: {command[0]}") from exc
        except subprocess.TimeoutExpired as exc:
            raise EvaluatorFailure(f"{command[0]} timed out after {self.timeout} s") from exc
        except subprocess.CalledProcessError as exc:
            raise EvaluatorFailure(f"{command[0]} exited with status {exc.returncode}") from exc
        except OSError as exc:
            raise EvaluatorFailure(f"Could not run {command[0]}: {exc}") from exc

    def run_job(self, x, job):
        """Run one Gaussian job and return the lines of its formatted checkpoint."""
        work_dir = tempfile.mkdtemp(prefix="shspy_gaussian_", dir=self.work_root)
        try:
            with open(os.path.join(work_dir, "input.gjf"), "w") as f:
                f.write(self.create_input_file(x, job))
            logger.debug("Running Gaussian (%s) in %s", JOB_ROUTES[job] or "sp", work_dir)
            self._call([self.gaussian_command, "input.gjf", "input.log"], work_dir)
            try:
                with open(os.path.join(work_dir, "input.log")) as f:
                    log_text = f.read()
            except OSError as exc:
                raise EvaluatorFailure(f"Gaussian log missing in {work_dir}") from exc
            if "Normal termination" not in log_text:
                raise EvaluatorFailure("Gaussian did not terminate normally")
            self._call([self.formchk_command, "input.chk", "input.fchk"], work_dir)
            try:
                with open(os.path.join(work_dir, "input.fchk")) as f:
                    return f.readlines()
            except OSError as exc:
                raise EvaluatorFailure(f"Formatted checkpoint missing in {work_dir}") from exc
        finally:
            if not self.keep_files:
                shutil.rmtree(work_dir, ignore_errors=True)

    # ------------------------------------------------------------------
    # Evaluator interface
    # ------------------------------------------------------------------

    def parse_results(self, lines, order):
        value = parse_fchk_scalar(lines, "Total Energy")
        grad = hess = None
        if order >= 1:
            # Hartree/bohr -> Hartree/Angstrom
            grad = parse_fchk_array(lines, "Cartesian Gradient") * self.angstrom2bohr
            if grad.shape != (self.n_dims,):
                raise EvaluatorFailure(f"Gradient of size {grad.size} for {self.n_atoms} atoms")
        if order >= 2:
            packed = parse_fchk_array(lines, "Cartesian Force Constants")
            hess = unpack_lower_triangle(packed, self.n_dims) * self.angstrom2bohr ** 2
        return value, grad, hess

    def parse_structure(self, lines):
        structure = parse_fchk_array(lines, "Current cartesian coordinates") * self.bohr2angstroms
        if structure.shape != (self.n_dims,):
            raise EvaluatorFailure(f"Structure of size {structure.size} for {self.n_atoms} atoms")
        return structure

    def value_grad_hess_impl(self, x, order):
        return self.parse_results(self.run_job(x, order), order)

    def optimize(self, structure):
        structure = self.check_point(structure)
        return self.parse_structure(self.run_job(structure, "opt"))
