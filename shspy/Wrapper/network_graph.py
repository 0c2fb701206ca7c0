"""
network_graph.py - ES/TS network found by the SHS workflow
==========================================================

Equilibrium structures are vertices, transition states are edges between
the two structures reached by descending from them. The graph is kept in
a networkx MultiGraph (two ES may be joined by several TS) and saved as
JSON after every processed ES.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

import numpy as np
import networkx as nx

from shspy.Parameters.parameter import UnitValueLib

logger = logging.getLogger(__name__)

HARTREE_TO_KCALMOL: float = UnitValueLib().hartree2kcalmol


@dataclass
class ESNode:
    """
    An equilibrium structure.

    Attributes
    ----------
    node_id : int
        Index in the set of unique equilibrium structures.
    energy : float | None
        Energy [Hartree], None when not evaluated.
    structure : np.ndarray
        Flat Cartesian coordinates [Angstrom].
    source : str
        "initial" for the input structure, otherwise the TS it came from.
    """
    node_id: int
    energy: float | None
    structure: np.ndarray = field(default_factory=lambda: np.zeros(0))
    source: str = ""

    def to_dict(self) -> dict:
        return {
            "node_id":        self.node_id,
            "energy_hartree": self.energy,
            "structure":      np.asarray(self.structure, dtype=float).tolist(),
            "source":         self.source,
        }


@dataclass
class TSEdge:
    """
    A transition state joining ``node_id_1`` and ``node_id_2``.

    Barriers are in kcal/mol, measured from each endpoint.
    """
    edge_id: int
    node_id_1: int
    node_id_2: int
    ts_energy: float | None
    ts_structure: np.ndarray = field(default_factory=lambda: np.zeros(0))
    barrier_fwd: float | None = None
    barrier_rev: float | None = None

    def to_dict(self) -> dict:
        return {
            "edge_id":           self.edge_id,
            "node_id_1":         self.node_id_1,
            "node_id_2":         self.node_id_2,
            "ts_energy_hartree": self.ts_energy,
            "ts_structure":      np.asarray(self.ts_structure, dtype=float).tolist(),
            "barrier_fwd_kcal":  self.barrier_fwd,
            "barrier_rev_kcal":  self.barrier_rev,
        }


class NetworkGraph:
    """ESNode vertices and TSEdge edges in a NetworkX MultiGraph."""

    def __init__(self) -> None:
        self._nx: nx.MultiGraph = nx.MultiGraph()
        self._nodes: dict[int, ESNode] = {}
        self._edges: dict[int, TSEdge] = {}
        self._edge_counter: int = 0

    # ------------------------------------------------------------------
    # Node operations
    # ------------------------------------------------------------------

    def add_node(self, node: ESNode) -> None:
        self._nodes[node.node_id] = node
        self._nx.add_node(node.node_id, energy=node.energy, source=node.source)

    def get_node(self, node_id: int) -> ESNode | None:
        return self._nodes.get(node_id)

    def all_nodes(self) -> list[ESNode]:
        return list(self._nodes.values())

    # ------------------------------------------------------------------
    # Edge operations
    # ------------------------------------------------------------------

    def add_edge(self, edge: TSEdge) -> None:
        self._edges[edge.edge_id] = edge
        self._nx.add_edge(edge.node_id_1, edge.node_id_2, key=edge.edge_id,
                          ts_energy=edge.ts_energy)

    def add_transition_state(self, node_id_1: int, node_id_2: int, ts_energy: float | None,
                             ts_structure) -> TSEdge:
        """Create an edge with barriers from the stored endpoint energies."""
        def barrier(node_id):
            node = self._nodes.get(node_id)
            if ts_energy is None or node is None or node.energy is None:
                return None
            return (ts_energy - node.energy) * HARTREE_TO_KCALMOL

        edge = TSEdge(
            edge_id=self.next_edge_id(),
            node_id_1=node_id_1,
            node_id_2=node_id_2,
            ts_energy=ts_energy,
            ts_structure=np.asarray(ts_structure, dtype=float),
            barrier_fwd=barrier(node_id_1),
            barrier_rev=barrier(node_id_2),
        )
        self.add_edge(edge)
        return edge

    def all_edges(self) -> list[TSEdge]:
        return list(self._edges.values())

    def next_edge_id(self) -> int:
        eid = self._edge_counter
        self._edge_counter += 1
        return eid

    @property
    def graph(self) -> nx.MultiGraph:
        return self._nx

    def reference_energy(self) -> float | None:
        energies = [n.energy for n in self._nodes.values() if n.energy is not None]
        return min(energies) if energies else None

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def save(self, filepath: str) -> None:
        """Write the full graph to a JSON file."""
        data = {
            "nodes":    [n.to_dict() for n in self._nodes.values()],
            "edges":    [e.to_dict() for e in self._edges.values()],
            "metadata": {
                "n_nodes": len(self._nodes),
                "n_edges": len(self._edges),
            },
        }
        with open(filepath, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, ensure_ascii=False)
        logger.info("Graph saved -> %s", filepath)

    def load(self, filepath: str) -> None:
        """
        Restore the graph from a JSON file.

        WARNING: clears any existing state before loading.
        """
        self._nx = nx.MultiGraph()
        self._nodes.clear()
        self._edges.clear()
        self._edge_counter = 0

        with open(filepath, "r", encoding="utf-8") as fh:
            data = json.load(fh)

        for nd in data.get("nodes", []):
            self.add_node(ESNode(
                node_id=nd["node_id"],
                energy=nd["energy_hartree"],
                structure=np.array(nd.get("structure", []), dtype=float),
                source=nd.get("source", ""),
            ))

        for ed in data.get("edges", []):
            self.add_edge(TSEdge(
                edge_id=ed["edge_id"],
                node_id_1=ed["node_id_1"],
                node_id_2=ed["node_id_2"],
                ts_energy=ed["ts_energy_hartree"],
                ts_structure=np.array(ed.get("ts_structure", []), dtype=float),
                barrier_fwd=ed.get("barrier_fwd_kcal"),
                barrier_rev=ed.get("barrier_rev_kcal"),
            ))

        if self._edges:
            self._edge_counter = max(self._edges) + 1

        logger.info("Graph loaded: %d nodes, %d edges  <- %s",
                    len(self._nodes), len(self._edges), filepath)

    # ------------------------------------------------------------------
    # Text summary
    # ------------------------------------------------------------------

    def summary(self) -> str:
        """Return a human-readable summary sorted by energy."""
        lines = [
            f"[NetworkGraph]  nodes={len(self._nodes)}  edges={len(self._edges)}"
        ]
        ref = self.reference_energy()

        for node in sorted(self._nodes.values(),
                           key=lambda n: (n.energy is None, n.energy or 0.0, n.node_id)):
            if node.energy is not None and ref is not None:
                rel = (node.energy - ref) * HARTREE_TO_KCALMOL
                e_str = f"{node.energy:+.8f} Ha  (+{rel:.2f} kcal/mol)"
            else:
                e_str = "energy unknown"
            lines.append(f"  ES{node.node_id:04d}: {e_str}  [{node.source}]")

        for edge in self._edges.values():
            fwd = f"{edge.barrier_fwd:.2f}" if edge.barrier_fwd is not None else "N/A"
            rev = f"{edge.barrier_rev:.2f}" if edge.barrier_rev is not None else "N/A"
            lines.append(
                f"  TS{edge.edge_id:04d}: "
                f"ES{edge.node_id_1} -- ES{edge.node_id_2}  "
                f"Ea(fwd)={fwd} kcal/mol  Ea(rev)={rev} kcal/mol"
            )
        return "\n".join(lines)
