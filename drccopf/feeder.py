import networkx as nx
import numpy as np
import pandas as pd

from drccopf.utils import handle_branch_input, handle_bus_input, handle_gen_input

# bus_type options
SWING_BUS = "SWING"
PQ_BUS = "PQ"


class Feeder:
    """
    Single-phase radial distribution feeder.

    Parameters
    ----------
    branch_data : pd.DataFrame
        DataFrame containing branch data (fb, tb, r, x, s_max)
    bus_data : pd.DataFrame
        DataFrame containing bus data (id, bus_type, d_p, d_q, v_min, v_max)
    gen_data : pd.DataFrame
        DataFrame containing generator data (id, g_p_max, g_q_max, cost)

    Notes
    -----
    Buses are indexed from 0 (``id - 1``). Every line is identified by the bus it
    feeds, so per-line quantities (``r``, ``x``, ``s_max``) are stored per bus with
    zeros at the root. The matrices ``A``, ``R`` and ``X`` are line-indexed with the
    lines ordered as ``line_idx``.
    """

    def __init__(
        self,
        branch_data: pd.DataFrame = None,
        bus_data: pd.DataFrame = None,
        gen_data: pd.DataFrame = None,
    ):
        # ~~~~~~~~~~~~~~~~~~~~ Load Data Frames ~~~~~~~~~~~~~~~~~~~~
        self.branch = handle_branch_input(branch_data)
        self.bus = handle_bus_input(bus_data)
        self.gen = handle_gen_input(gen_data)

        # ~~~~~~~~~~~~~~~~~~~~ topology ~~~~~~~~~~~~~~~~~~~~
        self.nb = len(self.bus.id)
        if set(self.bus.index) != set(range(self.nb)):
            raise ValueError("Bus ids must be consecutive integers starting at 1.")
        swing = self.bus.index[self.bus.bus_type == SWING_BUS].to_numpy()
        if len(swing) != 1:
            raise ValueError(
                f"Exactly one {SWING_BUS} bus is required. Instead got {len(swing)}."
            )
        self.root_bus = int(swing[0])
        self.graph = self._init_graph(self.branch, self.nb)
        self.ancestor, self.children = self._init_tree(self.graph, self.root_bus)
        self.line_idx = np.array(
            [j for j in range(self.nb) if j != self.root_bus], dtype=int
        )
        self.r, self.x, self.s_max = self._init_line_parameters()
        self.A = self._init_downstream_matrix()
        self.R = np.diag(self.r[self.line_idx])
        self.X = np.diag(self.x[self.line_idx])

        # ~~~~~~~~~~~~~~~~~~~~ bus and generator data ~~~~~~~~~~~~~~~~~~~~
        self.d_p = self.bus.d_p.to_numpy(dtype=float)
        self.d_q = self.bus.d_q.to_numpy(dtype=float)
        self.tanphi = self.bus.tanphi.to_numpy(dtype=float)
        self.gamma = np.diag(self.tanphi)
        self.v_min = self.bus.v_min.to_numpy(dtype=float)
        self.v_max = self.bus.v_max.to_numpy(dtype=float)
        self.gen_buses = self.gen.index.to_numpy(dtype=int)
        if any((self.gen_buses < 0) | (self.gen_buses >= self.nb)):
            raise ValueError("Generator data refers to a bus that does not exist.")
        self.g_p_max = np.zeros(self.nb)
        self.g_q_max = np.zeros(self.nb)
        self.gen_cost = np.zeros(self.nb)
        self.g_p_max[self.gen_buses] = self.gen.g_p_max.to_numpy(dtype=float)
        self.g_q_max[self.gen_buses] = self.gen.g_q_max.to_numpy(dtype=float)
        self.gen_cost[self.gen_buses] = self.gen.cost.to_numpy(dtype=float)

    @staticmethod
    def _init_graph(branch, nb):
        g = nx.Graph()
        g.add_nodes_from(range(nb))
        edges = branch[["fb", "tb"]].to_numpy(dtype=int) - 1
        if edges.size > 0 and (edges.min() < 0 or edges.max() >= nb):
            raise ValueError("Branch data refers to a bus that does not exist.")
        g.add_edges_from(edges)
        if g.number_of_edges() != len(edges) or not nx.is_tree(g):
            raise ValueError("The feeder must be radial: a tree connecting every bus.")
        return g

    @staticmethod
    def _init_tree(g, root):
        ancestor = np.full(g.number_of_nodes(), -1, dtype=int)
        for child, parent in nx.bfs_predecessors(g, root):
            ancestor[child] = parent
        children = [
            np.flatnonzero(ancestor == j) for j in range(g.number_of_nodes())
        ]
        return ancestor, children

    def _init_line_parameters(self):
        r = np.zeros(self.nb)
        x = np.zeros(self.nb)
        s_max = np.zeros(self.nb)
        fb = self.branch.fb.to_numpy(dtype=int) - 1
        tb = self.branch.tb.to_numpy(dtype=int) - 1
        # a branch may be listed in either direction; it feeds the bus further from the root
        to_bus = np.where(self.ancestor[tb] == fb, tb, fb)
        r[to_bus] = self.branch.r.to_numpy(dtype=float)
        x[to_bus] = self.branch.x.to_numpy(dtype=float)
        s_max[to_bus] = self.branch.s_max.to_numpy(dtype=float)
        return r, x, s_max

    def _init_downstream_matrix(self):
        tree = nx.bfs_tree(self.graph, self.root_bus)
        a = np.zeros((len(self.line_idx), self.nb))
        for k, j in enumerate(self.line_idx):
            a[k, j] = 1
            a[k, list(nx.descendants(tree, j))] = 1
        return a

    def path_to_root(self, j: int) -> list:
        """Buses from ``j`` up to (and including) the root."""
        path = [int(j)]
        while self.ancestor[path[-1]] >= 0:
            path.append(int(self.ancestor[path[-1]]))
        return path

    @property
    def branch_data(self):
        return self.branch

    @property
    def bus_data(self):
        return self.bus

    @property
    def gen_data(self):
        return self.gen
