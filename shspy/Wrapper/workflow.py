"""
workflow.py - Breadth-first exploration of equilibrium structures
=================================================================

Starting from one equilibrium structure (ES) the workflow repeatedly

1. takes the next ES from a FIFO queue,
2. finds the minimum-energy directions on a small sphere around it
   (minima elimination in the normalized frame),
3. walks an SHS path along every direction in a thread pool,
4. refines each found transition state (TS), descends from it to both
   sides and queues every ES not seen before.

Deduplication, output files and the queue are shared between the worker
threads and only touched under one lock. Evaluator calls run outside it.

Output layout (under ``output_dir``)
------------------------------------
info_logs/log                      narrative log of found structures
es_directions/{es_id}              ES plus its minima directions
shs_intermediate_log/{path}.xyz    points of every SHS path
paths/{n}.xyz                      TS descent paths
equilibrium_structures.xyz         unique ES, labelled by set size
transition_state_structures.xyz    unique TS, labelled by set size
mins_on_sphere                     directions of the ES being searched
shs_network.json                   ES/TS graph
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import logging.handlers
import os
import threading
import traceback
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import numpy as np

from shspy.Calculator.evaluator import EvaluatorFailure
from shspy.Function.normal_coordinates import normalize_for_polar
from shspy.Sphere.minima_elimination import minima_elimination
from shspy.Utils.calc_tools import singular_values
from shspy.Wrapper.network_graph import ESNode, NetworkGraph
from shspy.Wrapper.shs import shs_path, shs_ts_try_routine, two_way_ts
from shspy.Wrapper.structure_set import StructureSet
from shspy.fileio import (
    append_structure,
    print_path_to_file,
    read_vector_list,
    to_chemcraft_coords,
    write_es_directions,
    write_vector_list,
)

logger = logging.getLogger(__name__)

INFO_LOGGER_NAME = "shspy.info"
OUTPUT_SUBDIRS = ("info_logs", "es_directions", "paths", "shs_intermediate_log")


# ===========================================================================
# Configuration
# ===========================================================================

@dataclass
class SHSConfig:
    """
    Tunables of the workflow. Defaults reproduce the published setup.

    Attributes
    ----------
    delta_r : float
        Radius increment of SHS paths (normalized units).
    conv_iter_limit : int
        Halvings of the increment before a path is abandoned.
    max_path_steps : int
    path_cosine_threshold : float
        Minimal cosine between consecutive path directions.
    ts_try_period : int
        A TS refinement is tried every this many path steps.
    path_converge_iters : int
        Newton iterations per sphere convergence along a path.
    sphere_radius : float
        Radius of the minima elimination sphere.
    direction_cosine_threshold : float
        Directions closer than this cosine count as the same.
    sphere_iter_limit, sphere_restarts, sphere_converge_iters : int
        Sphere search settings of minima elimination.
    sphere_learning_rate : float
    homotopy_steps : int
    random_seed_limit : int | None
        Consecutive failed random seeds before the search stops (None: N).
    dist_space_eps : float
        Structure identity threshold in sorted distance space.
    two_way_factor : float
        Displacement along the negative mode when descending from a TS.
    ts_iters : int
    ts_grad_eps, ts_delta_eps : float
    negative_threshold : float
        A TS needs a reduced Hessian eigenvalue below this value. With the
        default 0.0 numerical noise (about -1e-15) already counts as a
        negative mode; for real molecules use a small negative value such
        as -1e-6.
    n_zero_modes : int
        Rigid-body modes removed from the Hessian.
    n_workers : int
        Threads walking paths of one ES.
    nproc_search, nproc_path : int
        Processes per evaluator call during minima elimination and paths.
    max_es : int
        Stop after this many processed ES (0: until the queue is empty).
    rng_seed : int | None
    directions_file : str | None
        Vector list (see ``read_vector_list``) used as the directions of
        the initial ES instead of minima elimination.
    """
    delta_r: float = 0.04
    conv_iter_limit: int = 10
    max_path_steps: int = 600
    path_cosine_threshold: float = 0.9
    ts_try_period: int = 7
    path_converge_iters: int = 30
    sphere_radius: float = 0.05
    direction_cosine_threshold: float = 0.975
    sphere_iter_limit: int = 50
    sphere_restarts: int = 5
    sphere_converge_iters: int = 10
    sphere_learning_rate: float = 0.5
    homotopy_steps: int = 15
    random_seed_limit: int | None = None
    dist_space_eps: float = 1e-3
    two_way_factor: float = 0.5
    ts_iters: int = 10
    ts_grad_eps: float = 1e-4
    ts_delta_eps: float = 1e-4
    negative_threshold: float = 0.0
    n_zero_modes: int = 6
    n_workers: int = 1
    nproc_search: int = 3
    nproc_path: int = 1
    max_es: int = 0
    rng_seed: int | None = None
    directions_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "SHSConfig":
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown SHS settings: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


@dataclass
class SHSResult:
    equilibrium_structures: list = field(default_factory=list)
    transition_states: list = field(default_factory=list)
    graph: NetworkGraph = field(default_factory=NetworkGraph)


# ===========================================================================
# Workflow
# ===========================================================================

class SHSWorkflow:
    """
    BFS over equilibrium structures driven by SHS paths.

    Parameters
    ----------
    evaluator : Evaluator
        Energy of the molecule in Cartesian coordinates.
    config : SHSConfig | None
    output_dir : str
        Root of all output files. Created if absent.
    direction_finder : callable | None
        ``direction_finder(func, es_id) -> list[np.ndarray]`` for a
        normalized frame ``func``. Default: minima elimination.
    path_walker : callable | None
        ``path_walker(func, direction, path_number) -> (trajectory, ts)``.
        Default: ``shs_path``.
    ts_descender : callable | None
        ``ts_descender(evaluator, ts) -> (path, first_es, second_es)``.
        Default: ``two_way_ts``.
    """

    def __init__(self, evaluator, config: SHSConfig | None = None, output_dir: str = ".",
                 direction_finder=None, path_walker=None, ts_descender=None) -> None:
        self.evaluator = evaluator
        self.config = config if config is not None else SHSConfig()
        self.output_dir = os.path.abspath(output_dir)
        self.rng = np.random.default_rng(self.config.rng_seed)

        self.direction_finder = direction_finder if direction_finder is not None else self._find_directions
        self.path_walker = path_walker if path_walker is not None else self._walk_path
        self.ts_descender = ts_descender if ts_descender is not None else self._descend_from_ts

        self.unique_es = StructureSet(self.config.dist_space_eps)
        self.unique_ts = StructureSet(self.config.dist_space_eps)
        self.graph = NetworkGraph()

        self._lock = threading.Lock()
        self._queue: deque = deque()
        self._path_counter = 0
        self._shs_path_counter = 0
        self._es_output = None
        self._ts_output = None
        self._info_handler = None
        self.info_logger = logging.getLogger(INFO_LOGGER_NAME)

    # ------------------------------------------------------------------
    # Paths and logging
    # ------------------------------------------------------------------

    def _out(self, *parts: str) -> str:
        return os.path.join(self.output_dir, *parts)

    def provision_directories(self) -> None:
        """Create the output tree and attach the info log file."""
        os.makedirs(self.output_dir, exist_ok=True)
        for name in OUTPUT_SUBDIRS:
            os.makedirs(self._out(name), exist_ok=True)

        if self._info_handler is None:
            handler = logging.handlers.TimedRotatingFileHandler(
                self._out("info_logs", "log"), when="midnight", encoding="utf-8")
            handler.setFormatter(logging.Formatter(
                "[%(asctime)s %(threadName)s] %(message)s", datefmt="%H:%M:%S"))
            handler.setLevel(logging.DEBUG)
            self.info_logger.addHandler(handler)
            self.info_logger.setLevel(logging.DEBUG)
            self._info_handler = handler

    def close(self) -> None:
        if self._info_handler is not None:
            self.info_logger.removeHandler(self._info_handler)
            self._info_handler.close()
            self._info_handler = None

    # ------------------------------------------------------------------
    # Default strategies
    # ------------------------------------------------------------------

    def _find_directions(self, func, es_id):
        c = self.config
        if es_id == 0 and c.directions_file:
            return self._read_directions(func)
        return minima_elimination(
            func,
            r=c.sphere_radius,
            cosine_threshold=c.direction_cosine_threshold,
            iter_limit=c.sphere_iter_limit,
            restarts=c.sphere_restarts,
            converge_iters=c.sphere_converge_iters,
            random_seed_limit=c.random_seed_limit,
            homotopy_steps=c.homotopy_steps,
            rng=self.rng,
            output_path=self._out("mins_on_sphere"),
            learning_rate=c.sphere_learning_rate,
        )

    def _read_directions(self, func):
        directions = read_vector_list(self.config.directions_file)
        for direction in directions:
            if direction.shape != (func.n_dims,):
                raise ValueError(f"{self.config.directions_file}: direction of size {direction.size}, "
                                 f"expected {func.n_dims}")
        logger.info("Read %d directions of ES #0 from %s", len(directions), self.config.directions_file)
        return directions

    def _walk_path(self, func, direction, path_number):
        c = self.config
        ts_try = functools.partial(
            shs_ts_try_routine,
            iters=c.ts_iters,
            grad_eps=c.ts_grad_eps,
            delta_eps=c.ts_delta_eps,
            n_zero_modes=c.n_zero_modes,
            negative_threshold=c.negative_threshold,
        )
        return shs_path(
            func, direction, path_number, c.delta_r, c.conv_iter_limit,
            max_steps=c.max_path_steps,
            path_cosine_threshold=c.path_cosine_threshold,
            ts_try_period=c.ts_try_period,
            converge_iters=c.path_converge_iters,
            output_path=self._out("shs_intermediate_log", f"{path_number}.xyz"),
            ts_try=ts_try,
        )

    def _descend_from_ts(self, evaluator, ts):
        return two_way_ts(evaluator, ts, factor=self.config.two_way_factor,
                          n_zero_modes=self.config.n_zero_modes)

    # ------------------------------------------------------------------
    # Shared state (callers hold self._lock)
    # ------------------------------------------------------------------

    def _register_es(self, structure, energy, source):
        """Insert a new ES into the set, graph, output and queue. Returns its id."""
        if not self.unique_es.add_structure(structure):
            return self.unique_es.index_of(structure)

        node_id = len(self.unique_es) - 1
        self.graph.add_node(ESNode(node_id=node_id, energy=energy,
                                   structure=np.array(structure, dtype=float), source=source))
        self._queue.append((node_id, np.array(structure, dtype=float)))
        self.info_logger.info("Found new ES #%d (energy = %s, from %s)\n%s", node_id, energy, source,
                              to_chemcraft_coords(self.evaluator.charges, structure))
        append_structure(self._es_output, self.evaluator.charges, structure, str(len(self.unique_es)))
        return node_id

    def _energy_or_none(self, structure):
        try:
            return float(self.evaluator.value(structure))
        except EvaluatorFailure as exc:
            logger.warning("Energy evaluation failed: %s", exc)
            return None

    # ------------------------------------------------------------------
    # Exploration
    # ------------------------------------------------------------------

    def _explore_direction(self, func, direction, path_number, es_id):
        charges = self.evaluator.charges
        try:
            _, ts = self.path_walker(func, direction, path_number)
        except EvaluatorFailure:
            logger.error("Path #%d from ES #%d aborted:\n%s", path_number, es_id, traceback.format_exc())
            return
        if ts is None:
            logger.info("Path #%d from ES #%d ended without a TS", path_number, es_id)
            return

        ts_energy = self._energy_or_none(ts)
        with self._lock:
            is_unique = self.unique_ts.add_structure(ts)
            if is_unique:
                self.info_logger.info("Found new TS #%d (energy = %s, path #%d)\n%s",
                                      len(self.unique_ts) - 1, ts_energy, path_number,
                                      to_chemcraft_coords(charges, ts))
                append_structure(self._ts_output, charges, ts, str(len(self.unique_ts)))
        if not is_unique:
            return

        try:
            descent_path, first_es, second_es = self.ts_descender(self.evaluator, ts)
        except EvaluatorFailure:
            logger.error("Descent from the TS of path #%d failed:\n%s", path_number, traceback.format_exc())
            return
        energies = [None if es is None else self._energy_or_none(es) for es in (first_es, second_es)]

        with self._lock:
            descent_id = self._path_counter
            self._path_counter += 1
            print_path_to_file(charges, descent_path, first_es, second_es,
                               self._out("paths", f"{descent_id}.xyz"))
            node_ids = [
                None if es is None else self._register_es(es, energy, f"TS path {descent_id}")
                for es, energy in zip((first_es, second_es), energies)
            ]
            if None not in node_ids:
                self.graph.add_transition_state(node_ids[0], node_ids[1], ts_energy, ts)

    def _process_es(self, es_id, structure):
        charges = self.evaluator.charges
        value, grad, hess = self.evaluator.value_grad_hess(structure)
        self.info_logger.info(
            "Equilibrium structure #%d:\n\tvalue = %.13f\n\tgrad = %.3e\n\thess values = %s\n%s",
            es_id, value, np.linalg.norm(grad), singular_values(hess), to_chemcraft_coords(charges, structure))

        func = normalize_for_polar(self.evaluator, structure, self.config.n_zero_modes)
        self.evaluator.set_nproc(self.config.nproc_search)
        directions = self.direction_finder(func, es_id)
        self.info_logger.info("Found %d minima directions for ES #%d", len(directions), es_id)
        write_es_directions(self._out("es_directions", str(es_id)), charges, structure, directions)

        self.evaluator.set_nproc(self.config.nproc_path)
        first_path = self._shs_path_counter
        self._shs_path_counter += len(directions)
        with ThreadPoolExecutor(max_workers=max(1, self.config.n_workers),
                                thread_name_prefix="shs") as pool:
            futures = [
                pool.submit(self._explore_direction, func, direction, first_path + i, es_id)
                for i, direction in enumerate(directions)
            ]
            for future in futures:
                future.result()

    def find_initial_directions(self, structure):
        """
        Minima directions around ``structure`` only.

        They are written to es_directions/0 and, as a vector list that
        ``directions_file`` accepts, to mins_on_sphere.
        """
        structure = self.evaluator.check_point(structure)
        self.provision_directories()
        try:
            func = normalize_for_polar(self.evaluator, structure, self.config.n_zero_modes)
            self.evaluator.set_nproc(self.config.nproc_search)
            directions = self.direction_finder(func, 0)
            write_es_directions(self._out("es_directions", "0"), self.evaluator.charges, structure, directions)
            write_vector_list(self._out("mins_on_sphere"), directions)
            self.info_logger.info("Found %d minima directions", len(directions))
            return directions
        finally:
            self.close()

    def run(self, initial_structure) -> SHSResult:
        """Explore from ``initial_structure`` until no new ES is left."""
        initial_structure = self.evaluator.check_point(initial_structure)
        self.provision_directories()
        graph_path = self._out("shs_network.json")
        logger.info("=== SHS workflow START ===")
        logger.info("  output_dir : %s", self.output_dir)
        logger.info("  n_workers  : %d", self.config.n_workers)

        try:
            with open(self._out("equilibrium_structures.xyz"), "w") as es_output, \
                    open(self._out("transition_state_structures.xyz"), "w") as ts_output:
                self._es_output = es_output
                self._ts_output = ts_output

                with self._lock:
                    self._register_es(initial_structure, self._energy_or_none(initial_structure), "initial")

                processed = 0
                while True:
                    with self._lock:
                        if not self._queue:
                            logger.info("Queue is empty. Stopping.")
                            break
                        es_id, structure = self._queue.popleft()
                    if self.config.max_es and processed >= self.config.max_es:
                        logger.info("Reached max_es=%d. Stopping.", self.config.max_es)
                        break

                    logger.info("--- ES #%d (queue remaining: %d) ---", es_id, len(self._queue))
                    try:
                        self._process_es(es_id, structure)
                    except EvaluatorFailure:
                        logger.error("ES #%d skipped after evaluator failure:\n%s",
                                     es_id, traceback.format_exc())
                    processed += 1
                    self.graph.save(graph_path)
                    logger.info(self.graph.summary())
        finally:
            self._es_output = None
            self._ts_output = None
            self.close()

        self.graph.save(graph_path)
        logger.info("=== SHS workflow DONE ===")
        return SHSResult(
            equilibrium_structures=self.unique_es.structures,
            transition_states=self.unique_ts.structures,
            graph=self.graph,
        )
