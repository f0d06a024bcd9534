"""Immutable snapshots of a Flow board mid-solve and the predicates used to prune them."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, fields
from functools import cached_property
from typing import TYPE_CHECKING

from .game import EMPTY_CODE, BoardDef, body, head, terminal
from .geometry import Color, Coordinate, Move, Path

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    import numpy as np

# Heads still needing to be joined, or None once a color's heads touch.
ColorState = tuple[Coordinate, Coordinate] | None

# Evaluated in this order by BoardState.is_valid; each is a necessary condition for solvability.
VALIDITY_CHECKS: tuple[str, ...] = (
    "do_no_dead_ends_exist",
    "are_no_paths_stranded",
    "are_no_paths_folded",
    "are_components_legal",
    "are_no_regions_stranded",
    "are_there_no_chokepoints",
)

# 256-colour ANSI backgrounds, indexed by color id - 1.
ANSI_PALETTE: tuple[int, ...] = (196, 21, 46, 226, 208, 51, 201, 94, 129, 250, 22, 88, 18, 244, 217)
PATH_SEGMENT = " ▫ "


@dataclass(frozen=True, eq=False)
class BoardState(BoardDef):
    """A board with every color's two paths grown part of the way.

    Each color owns two paths, one rooted at each endpoint, that grow one cell at a
    time until their heads are adjacent. States are never mutated: ``copy_with_new_move``
    returns a successor and leaves the receiver untouched.
    """

    color_paths: Mapping[Color, tuple[Path, Path]]
    move_stack: tuple[Move, ...] = ()  # most recent move first
    is_forced: bool = False
    num_forced: int = 0

    @classmethod
    def from_board(cls, board: BoardDef) -> BoardState:
        """Return the initial state of a board: every path is its bare endpoint."""
        paths = {
            color: (Path.from_positions(a), Path.from_positions(b))
            for color, (a, b) in board.color_end_pts.items()
        }
        return cls(board.rows, board.cols, board.color_end_pts, paths)

    @classmethod
    def from_routes(
        cls, board: BoardDef, routes: Mapping[Color, Sequence[Coordinate]]
    ) -> BoardState:
        """Return a completed state from full endpoint-to-endpoint routes."""
        paths = {}
        for color, route in routes.items():
            cells = list(route)
            if cells[0] != board.color_end_pts[color][0]:
                cells.reverse()
            # path A runs from its endpoint up to the cell next to endpoint B
            paths[color] = (Path(tuple(reversed(cells[:-1]))), Path.from_positions(cells[-1]))
        return cls(board.rows, board.cols, board.color_end_pts, paths)

    @cached_property
    def color_states(self) -> dict[Color, ColorState]:
        """Heads of each color still to be joined, None when the color is complete."""
        states: dict[Color, ColorState] = {}
        for color, (path_a, path_b) in self.color_paths.items():
            end_a, end_b = path_a.latest, path_b.latest
            states[color] = None if self.are_neighbors(end_a, end_b) else (end_a, end_b)
        return states

    def color_completed(self, color: Color) -> bool:
        return self.color_states[color] is None

    @property
    def num_paths_completed(self) -> int:
        return sum(1 for s in self.color_states.values() if s is None)

    @property
    def all_paths_completed(self) -> bool:
        return all(s is None for s in self.color_states.values())

    @cached_property
    def cells(self) -> dict[Coordinate, Color | None]:
        """Color of every cell covered by a path, None where the cell is still empty."""
        colored = {
            pos: color
            for color, paths in self.color_paths.items()
            for path in paths
            for pos in path
        }
        return {pos: colored.get(pos) for pos in self.coordinates()}

    @property
    def num_empty_cells(self) -> int:
        return len(self.empty_cells)

    @property
    def board_filled(self) -> bool:
        return not self.empty_cells

    @property
    def solved(self) -> bool:
        """Every cell is covered and every color's heads have met."""
        return self.board_filled and self.all_paths_completed

    @cached_property
    def active_states(self) -> dict[tuple[Coordinate, Coordinate], Color]:
        """Head pairs of the colors that are not complete yet."""
        return {heads: color for color, heads in self.color_states.items() if heads is not None}

    @cached_property
    def active_points(self) -> dict[Coordinate, Color]:
        """Heads that still need extending, with their color."""
        return {end: color for (a, b), color in self.active_states.items() for end in (a, b)}

    def is_active_point(self, pos: Coordinate) -> bool:
        return pos in self.active_points

    def routes(self) -> dict[Color, list[Coordinate]]:
        """Each color's cells from its first endpoint to its second.

        Only a continuous route once the color is complete.
        """
        return {
            color: [*reversed(path_a.nodes), *path_b.nodes]
            for color, (path_a, path_b) in self.color_paths.items()
        }

    @cached_property
    def legal_moves(self) -> tuple[Move, ...]:
        """Every way to extend one active head by one empty cell."""
        moves: dict[Move, None] = {}
        for (end_a, end_b), color in self.active_states.items():
            for end in (end_a, end_b):
                for n in self.neighbors(end):
                    if self.is_empty(n):
                        moves[Move(color, n)] = None
        return tuple(moves)

    def _num_empty_neighbors(self, pos: Coordinate) -> int:
        return sum(1 for n in self.neighbors(pos) if self.is_empty(n))

    def _num_open_neighbors(self, pos: Coordinate) -> int:
        """Neighbors a path could still pass through: empty cells and active heads."""
        return sum(1 for n in self.neighbors(pos) if self.is_empty(n) or self.is_active_point(n))

    def is_move_forced(self, move: Move) -> bool:
        """Return True if the move looks inevitable for its color.

        A move is forced from a head when that head has a single empty neighbor, or
        when the target cell can only be entered from this head and one other side.
        This is a heuristic used to cut branching, not a proof of necessity.
        """

        def forced_from(prev: Coordinate) -> bool:
            return (
                self._num_empty_neighbors(prev) == 1
                or self._num_open_neighbors(move.pos) == 2
            )

        return any(
            self.are_neighbors(path.latest, move.pos) and forced_from(path.latest)
            for path in self.color_paths[move.color]
        )

    def _extended_paths(self, move: Move) -> tuple[Path, Path]:
        path_a, path_b = self.color_paths[move.color]
        if self.are_neighbors(path_a.latest, move.pos):
            return path_a.extend(move.pos), path_b
        assert self.are_neighbors(path_b.latest, move.pos), (
            f"Move {move} does not touch either head of color {move.color!r}"
        )
        return path_a, path_b.extend(move.pos)

    def _derive(self, **changes: object) -> BoardState:
        """Copy this state with some fields changed.

        The board is already validated, so __init__ is skipped and the board-level
        lookups are shared with the copy.
        """
        new = object.__new__(type(self))
        new.__dict__.update(
            {f.name: getattr(self, f.name) for f in fields(self)},
            color_ids=self.color_ids,
            end_pt_map=self.end_pt_map,
        )
        new.__dict__.update(changes)
        return new

    def copy_with_new_move(self, move: Move) -> BoardState:
        """Return the successor state with move.pos added to the adjacent head of its color."""
        new_paths = self._extended_paths(move)
        forced = self.is_move_forced(move)
        return self._derive(
            color_paths={**self.color_paths, move.color: new_paths},
            move_stack=(move, *self.move_stack),
            is_forced=forced,
            num_forced=self.num_forced + int(forced),
        )

    @cached_property
    def components(self) -> dict[Coordinate, int]:
        """Label every empty cell with the id of its connected region of empty cells."""
        comp_ids = {pos: i for i, pos in enumerate(self.empty_cells)}
        updated = True
        while updated:
            updated = False
            for pos in self.empty_cells:
                for n in self.neighbors(pos):
                    if n in comp_ids and comp_ids[n] != comp_ids[pos]:
                        low = min(comp_ids[n], comp_ids[pos])
                        comp_ids[n] = comp_ids[pos] = low
                        updated = True
        return comp_ids

    def components_for_pos(self, pos: Coordinate) -> set[int]:
        """Regions of empty cells that a head at pos could extend into."""
        return {self.components[n] for n in self.neighbors(pos) if n in self.components}

    def _heads_share_component(self, end_a: Coordinate, end_b: Coordinate) -> bool:
        return bool(self.components_for_pos(end_a) & self.components_for_pos(end_b))

    @cached_property
    def do_no_dead_ends_exist(self) -> bool:
        """No empty cell is walled in so that no path could pass through or end in it."""
        for pos in self.empty_cells:
            nbrs = self.neighbors(pos)
            if self._num_open_neighbors(pos) <= 1:
                return False
            if not any(self.is_empty(n) for n in nbrs):
                # only usable as the last cell joining both heads of one color
                heads = Counter(self.active_points[n] for n in nbrs if n in self.active_points)
                if 2 not in heads.values():
                    return False
        return True

    @cached_property
    def are_no_paths_stranded(self) -> bool:
        """Every head of an incomplete color can still step into an empty cell."""
        return all(
            any(self.is_empty(n) for n in self.neighbors(end))
            for heads in self.active_states
            for end in heads
        )

    @cached_property
    def are_no_paths_folded(self) -> bool:
        """The last cell placed touches no cell of its own path except its predecessor."""
        move = self.last_move
        if move is None:
            return True
        path = self._path_ending_at(move)
        return sum(1 for pos in path if self.are_neighbors(move.pos, pos)) <= 1

    @cached_property
    def are_components_legal(self) -> bool:
        """Both heads of every incomplete color border a common region of empty cells."""
        return all(self._heads_share_component(a, b) for a, b in self.active_states)

    @cached_property
    def are_no_regions_stranded(self) -> bool:
        """Every region of empty cells is bordered by both heads of at least one color."""
        bordering: dict[int, set[Coordinate]] = {}
        for pos, comp in self.components.items():
            heads = bordering.setdefault(comp, set())
            heads.update(n for n in self.neighbors(pos) if n in self.active_points)

        for heads in bordering.values():
            per_color = Counter(self.active_points[h] for h in heads)
            if 2 not in per_color.values():
                return False
        return True

    @cached_property
    def are_there_no_chokepoints(self) -> bool:
        """The last move did not open a corridor too narrow for the colors that must cross it.

        The strip of empty cells straight ahead of the last move is filled with the same
        color; if that cuts off more other colors than the strip is wide, reject the move.
        """
        move = self.last_move
        if move is None or self.is_border_cell(move.pos):
            return True
        path = self._path_ending_at(move)
        if len(path) < 2:
            return True

        direction = move.pos.direction_from(path.nodes[1])
        strip: list[Coordinate] = []
        pos = self.neighbor_pos(move.pos, direction)
        while pos is not None and self.is_empty(pos):
            strip.append(pos)
            pos = self.neighbor_pos(pos, direction)

        filled = path
        for cell in strip:
            filled = filled.extend(cell)
        path_a, path_b = self.color_paths[move.color]
        new_paths = (filled, path_b) if path is path_a else (path_a, filled)
        blocked_state = self._derive(color_paths={**self.color_paths, move.color: new_paths})

        num_blocked = sum(
            1
            for (end_a, end_b), color in blocked_state.active_states.items()
            if color != move.color and not blocked_state._heads_share_component(end_a, end_b)
        )
        return num_blocked <= len(strip)

    @cached_property
    def is_valid(self) -> bool:
        """Return True if this state cannot be discarded as unsolvable yet."""
        return all(getattr(self, check) for check in VALIDITY_CHECKS)

    @property
    def last_move(self) -> Move | None:
        return self.move_stack[0] if self.move_stack else None

    @property
    def last_pos(self) -> Coordinate | None:
        return self.last_move.pos if self.move_stack else None

    def _path_ending_at(self, move: Move) -> Path:
        path_a, path_b = self.color_paths[move.color]
        return path_a if path_a.ends_with(move.pos) else path_b

    @property
    def does_last_move_continue_path(self) -> bool:
        """The two most recent moves are adjacent, i.e. the same path kept growing."""
        if len(self.move_stack) < 2:
            return False
        return self.are_neighbors(self.move_stack[0].pos, self.move_stack[1].pos)

    @property
    def does_last_move_border_wall(self) -> bool:
        return self.last_pos is not None and self.is_border_cell(self.last_pos)

    @property
    def last_move_distance_to_wall(self) -> int:
        return 0 if self.last_pos is None else self.distance_to_wall(self.last_pos)

    @property
    def last_move_possible_options(self) -> int:
        """How many cells the extended head could have moved into when the last move was made.

        Counts the current empty neighbors of the cell the head moved from, plus one for
        the cell it moved into. A board without moves scores 1.
        """
        move = self.last_move
        path = None if move is None else self._path_ending_at(move)
        if path is None or len(path) < 2:
            return 1
        return self._num_empty_neighbors(path.nodes[1]) + 1

    def _tile_code(self, pos: Coordinate) -> np.int8:
        color = self.cells[pos]
        if color is None:
            return EMPTY_CODE
        cid = self.color_ids[color]
        if pos in self.end_pt_map:
            return terminal(cid)
        if self.is_active_point(pos):
            return head(cid)
        return body(cid)

    def colorized_str(self) -> str:
        """Render the board with an ANSI background colour per flow."""

        def paint(color: Color | None, text: str) -> str:
            if color is None:
                return f"\x1b[48;5;0m{text}\x1b[0m"
            code = ANSI_PALETTE[(self.color_ids[color] - 1) % len(ANSI_PALETTE)]
            return f"\x1b[48;5;{code}m{text}\x1b[0m"

        lines = []
        for r in range(self.rows):
            row = []
            for c in range(self.cols):
                pos = Coordinate(r, c)
                color = self.cells[pos]
                text = f" {color} " if pos in self.end_pt_map else PATH_SEGMENT
                row.append(paint(color, text))
            lines.append("".join(row))
        return "\n".join(lines)

    def debug_str(self) -> str:
        """Return the board along with its completion and validity flags."""
        lines = [
            self.board_str(),
            f"board filled: {self.board_filled}",
            f"paths completed: {self.num_paths_completed}/{self.num_colors}",
            f"solved: {self.solved}",
        ]
        lines.extend(f"{check}: {getattr(self, check)}" for check in VALIDITY_CHECKS)
        lines.append(f"valid state: {self.is_valid}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"BoardState(rows={self.rows}, cols={self.cols}, moves={len(self.move_stack)}, "
            f"empty={self.num_empty_cells}, forced={self.num_forced})"
        )
