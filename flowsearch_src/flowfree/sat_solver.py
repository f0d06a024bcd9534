"""Exact Flow solver compiling the board to CNF for PySAT, used as a solvability oracle."""

from __future__ import annotations

from itertools import combinations
from typing import TYPE_CHECKING

from pysat.card import CardEnc
from pysat.formula import CNF, IDPool
from pysat.solvers import Minisat22

from .state import BoardState

if TYPE_CHECKING:
    from .game import BoardDef
    from .geometry import Color, Coordinate

# Edge is represented by a tuple of two Coordinates
Edge = tuple["Coordinate", "Coordinate"]

UNUSED: int = 0  # pseudo color of an edge no flow runs along


class FlowFreeSATSolver:
    """Compile a board to CNF over (edge, color) variables and solve it, banning loops incrementally."""

    def __init__(self, board: BoardDef) -> None:
        self.board = board
        self.color_ids: dict[Color, int] = board.color_ids
        self.edge_colors: list[int] = [UNUSED, *self.color_ids.values()]
        self.id_pool = IDPool()
        self.edges: list[Edge] = []
        self.incident: dict[Coordinate, list[int]] = {}
        self._enumerate_edges()

    def solve(self) -> BoardState:
        """Return a solved state of the board, or raise ValueError if none exists."""
        with Minisat22(bootstrap_with=self._build_cnf().clauses) as solver:
            while True:
                if not solver.solve():
                    raise ValueError("Puzzle is unsatisfiable, no solution exists.")
                model = set(solver.get_model())

                # The local constraints admit closed loops detached from the endpoints;
                # ban every such loop and solve again until none are left.
                # https://mzucker.github.io/2016/09/02/eating-sat-flavored-crow.html
                loops = [
                    clause
                    for color in self.color_ids
                    if (clause := self._detached_loop_clause(model, color))
                ]
                if not loops:
                    break
                for clause in loops:
                    solver.add_clause(clause)

        routes = {color: self._walk_route(model, color) for color in self.color_ids}
        if not self.board.check_routes(routes):
            raise ValueError("SAT model did not yield a valid Flow solution.")
        return BoardState.from_routes(self.board, routes)

    def is_solvable(self) -> bool:
        """Check if the puzzle has any solution."""
        try:
            self.solve()
        except ValueError:
            return False
        return True

    def _enumerate_edges(self) -> None:
        """Build the list of undirected grid edges and each cell's incident edges."""
        for cell in self.board.coordinates():
            self.incident.setdefault(cell, [])
            for n in self.board.neighbors(cell):
                if (n.row, n.col) > (cell.row, cell.col):
                    idx = len(self.edges)
                    self.edges.append((cell, n))
                    self.incident[cell].append(idx)
                    self.incident.setdefault(n, []).append(idx)

    def _var(self, edge_idx: int, color_id: int) -> int:
        """SAT var for edge 'edge_idx' carrying color 'color_id'."""
        return self.id_pool.id((edge_idx, color_id))

    def _build_cnf(self) -> CNF:
        cnf = CNF()
        # every edge carries exactly one color, possibly UNUSED
        for idx in range(len(self.edges)):
            lits = [self._var(idx, c) for c in self.edge_colors]
            cnf.extend(CardEnc.equals(lits=lits, bound=1, vpool=self.id_pool))

        for cell, inc in self.incident.items():
            color = self.board.end_pt_map.get(cell)
            if color is None:
                self._encode_body(cnf, inc)
            else:
                self._encode_endpoint(cnf, inc, self.color_ids[color])
        return cnf

    def _encode_endpoint(self, cnf: CNF, inc: list[int], color_id: int) -> None:
        """Endpoint cell: exactly one edge of its own color and no edge of another."""
        cnf.extend(
            CardEnc.equals(
                lits=[self._var(e, color_id) for e in inc], bound=1, vpool=self.id_pool
            )
        )
        for e in inc:
            for c in self.edge_colors:
                if c not in (UNUSED, color_id):
                    cnf.append([-self._var(e, c)])

    def _encode_body(self, cnf: CNF, inc: list[int]) -> None:
        """Any other cell: exactly two used edges, both of the same color."""
        lits = [self._var(e, c) for e in inc for c in self.edge_colors if c != UNUSED]
        cnf.extend(CardEnc.equals(lits=lits, bound=2, vpool=self.id_pool))
        for e1, e2 in combinations(inc, 2):
            for c1 in self.edge_colors:
                for c2 in self.edge_colors:
                    if UNUSED not in (c1, c2) and c1 != c2:
                        cnf.append([-self._var(e1, c1), -self._var(e2, c2)])

    def _adjacency(self, model: set[int], color: Color) -> dict[Coordinate, list[Coordinate]]:
        """Cells joined by the edges the model assigns to color."""
        cid = self.color_ids[color]
        adj: dict[Coordinate, list[Coordinate]] = {}
        for idx, (a, b) in enumerate(self.edges):
            if self._var(idx, cid) in model:
                adj.setdefault(a, []).append(b)
                adj.setdefault(b, []).append(a)
        return adj

    def _detached_loop_clause(self, model: set[int], color: Color) -> list[int]:
        """Clause forbidding the color's edges unreachable from its first endpoint, if any."""
        cid = self.color_ids[color]
        adj = self._adjacency(model, color)
        start = self.board.color_end_pts[color][0]

        seen = {start}
        stack = [start]
        while stack:
            cur = stack.pop()
            for nbr in adj.get(cur, ()):
                if nbr not in seen:
                    seen.add(nbr)
                    stack.append(nbr)

        return [
            -self._var(idx, cid)
            for idx, (a, b) in enumerate(self.edges)
            if self._var(idx, cid) in model and a not in seen and b not in seen
        ]

    def _walk_route(self, model: set[int], color: Color) -> list[Coordinate]:
        """Follow the color's edges from its first endpoint to its second."""
        adj = self._adjacency(model, color)
        start, goal = self.board.color_end_pts[color]
        route = [start]
        prev: Coordinate | None = None
        cur = start
        while cur != goal:
            nexts = [n for n in adj.get(cur, ()) if n != prev]
            if len(nexts) != 1:
                raise ValueError(f"Cannot reconstruct route for {color!r} at {cur}")
            prev, cur = cur, nexts[0]
            route.append(cur)
        return route
