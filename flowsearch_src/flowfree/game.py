"""Static Flow board definitions, ASCII parsing and int8 tile codes."""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass
from functools import cached_property, lru_cache
from pathlib import Path as FilePath
from typing import TYPE_CHECKING

import numpy as np

from .geometry import Color, Coordinate, Direction

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence

MAX_COLORS: int = 15  # standard Flow Free palette
HEAD_OFFSET: int = 32  # codes from 33 to 47 mark head positions

EMPTY_CODE: np.int8 = np.int8(0)
EMPTY_SYMBOLS: frozenset[str] = frozenset(".-")


def body(c: int) -> np.int8:
    """Return the int8 code for a body segment of the given color id."""
    return np.int8(c)


def terminal(c: int) -> np.int8:
    """Return the int8 code for a terminal of the given color id."""
    return np.int8(-c)


def head(c: int) -> np.int8:
    """Return the int8 code for the head (current frontier) of the given color id."""
    return np.int8(HEAD_OFFSET + c)


def is_empty(v: int) -> bool:
    return v == 0


def is_body(v: int) -> bool:
    return 0 < v <= MAX_COLORS


def is_terminal(v: int) -> bool:
    return -MAX_COLORS <= v < 0


def is_head(v: int) -> bool:
    return HEAD_OFFSET < v <= HEAD_OFFSET + MAX_COLORS


def color_of(v: int) -> int:
    """Return the color id (1 to 15) for the tile code v, 0 for empty."""
    if is_body(v):
        return v
    if is_terminal(v):
        return -v
    if is_head(v):
        return v - HEAD_OFFSET
    if is_empty(v):
        return 0
    raise ValueError(f"Invalid Flow tile code {v}")


@lru_cache(maxsize=None)
def grid_neighbors(rows: int, cols: int, pos: Coordinate) -> tuple[Coordinate, ...]:
    """Return the in-bounds neighbors of pos in direction order."""
    out = []
    for d in Direction:
        n = pos.move(d)
        if 0 <= n.row < rows and 0 <= n.col < cols:
            out.append(n)
    return tuple(out)


def parse_ascii_board(board_str: str) -> dict[str, tuple[Coordinate, Coordinate]]:
    """Convert an ASCII board into a mapping from endpoint symbol to its two coordinates.

    Empty cells are written as ``.`` or ``-``; every other character is an endpoint
    and must appear exactly twice.
    """
    rows = _grid_rows(board_str)

    occurrences: dict[str, list[Coordinate]] = defaultdict(list)
    for r, row in enumerate(rows):
        for c, ch in enumerate(row):
            if ch in EMPTY_SYMBOLS:
                continue
            occurrences[ch].append(Coordinate(r, c))

    terminals: dict[str, tuple[Coordinate, Coordinate]] = {}
    for sym, coords in occurrences.items():
        if len(coords) != 2:
            raise ValueError(
                f"Symbol '{sym}' appears {len(coords)} times (should appear exactly twice)"
            )
        terminals[sym] = (coords[0], coords[1])
    return terminals


def _grid_rows(board_str: str) -> list[str]:
    rows = [line.strip() for line in board_str.splitlines() if line.strip()]
    if not rows:
        raise ValueError("Board string contains no rows")
    if any(len(r) != len(rows[0]) for r in rows):
        raise ValueError("All rows must have the same length")
    return rows


@dataclass(frozen=True, eq=False)
class BoardDef:
    """Immutable description of a Flow board: its size and each color's two endpoints."""

    rows: int
    cols: int
    color_end_pts: Mapping[Color, tuple[Coordinate, Coordinate]]

    def __post_init__(self) -> None:
        if self.rows <= 0 or self.cols <= 0:
            raise ValueError(f"Board dimensions must be positive, got {self.rows}x{self.cols}")
        seen: dict[Coordinate, Color] = {}
        for color, pair in self.color_end_pts.items():
            if len(pair) != 2:
                raise ValueError(f"Color {color!r} must have exactly two endpoints")
            a, b = pair
            if a == b:
                raise ValueError(f"Endpoints for color {color!r} must be distinct")
            for pos in pair:
                if not self.valid_pos(pos):
                    raise ValueError(f"Endpoint {pos} for color {color!r} is out of bounds")
                if pos in seen:
                    raise ValueError(
                        f"Endpoint {pos} is shared by colors {seen[pos]!r} and {color!r}"
                    )
                seen[pos] = color

    @classmethod
    def from_ascii_board(cls, data: str) -> BoardDef:
        """Create a board definition from an ASCII board string."""
        rows = _grid_rows(data)
        return cls(len(rows), len(rows[0]), parse_ascii_board(data))

    @classmethod
    def from_file(cls, path: str | FilePath) -> BoardDef:
        return cls.from_ascii_board(FilePath(path).read_text(encoding="utf-8"))

    @property
    def num_colors(self) -> int:
        return len(self.color_end_pts)

    @cached_property
    def color_ids(self) -> dict[Color, int]:
        """Integer id (1-based, insertion order) of each color, used for tile codes."""
        return {color: i for i, color in enumerate(self.color_end_pts, 1)}

    @cached_property
    def end_pt_map(self) -> dict[Coordinate, Color]:
        """Map of endpoint coordinate to its color."""
        return {pos: color for color, pair in self.color_end_pts.items() for pos in pair}

    @cached_property
    def cells(self) -> dict[Coordinate, Color | None]:
        """Color of every cell in row-major order, None where the cell is empty."""
        return {pos: self.end_pt_map.get(pos) for pos in self.coordinates()}

    @cached_property
    def empty_cells(self) -> tuple[Coordinate, ...]:
        """Cells not yet filled with a color, in row-major order."""
        return tuple(pos for pos, color in self.cells.items() if color is None)

    def coordinates(self) -> Iterator[Coordinate]:
        """Yield every coordinate on the board in row-major order."""
        for r in range(self.rows):
            for c in range(self.cols):
                yield Coordinate(r, c)

    def is_empty(self, pos: Coordinate) -> bool:
        """Return True if pos is on the board and has not been filled with a color."""
        return self.valid_pos(pos) and self.cells[pos] is None

    def is_border_cell(self, pos: Coordinate) -> bool:
        return self.valid_pos(pos) and (
            pos.row in (0, self.rows - 1) or pos.col in (0, self.cols - 1)
        )

    def valid_pos(self, pos: Coordinate) -> bool:
        return 0 <= pos.row < self.rows and 0 <= pos.col < self.cols

    def neighbor_pos(self, pos: Coordinate, direction: Direction) -> Coordinate | None:
        """Return the cell one step from pos in direction, or None if it is off the board."""
        n = pos.move(direction)
        return n if self.valid_pos(n) else None

    def neighbors(self, pos: Coordinate) -> tuple[Coordinate, ...]:
        """Return the up to four in-bounds neighbors of pos."""
        if not self.valid_pos(pos):
            return ()
        return grid_neighbors(self.rows, self.cols, pos)

    def are_neighbors(self, a: Coordinate, b: Coordinate) -> bool:
        return b in self.neighbors(a)

    def distance_to_wall(self, pos: Coordinate) -> int:
        """Smallest number of steps from pos to the outermost ring of cells."""
        return min(pos.row, pos.col, self.rows - 1 - pos.row, self.cols - 1 - pos.col)

    def _tile_code(self, pos: Coordinate) -> np.int8:
        color = self.end_pt_map.get(pos)
        return EMPTY_CODE if color is None else terminal(self.color_ids[color])

    def to_array(self) -> np.ndarray:
        """Return the board as an int8 grid of tile codes."""
        if self.num_colors > MAX_COLORS:
            raise ValueError(
                f"Tile codes support at most {MAX_COLORS} colors, board has {self.num_colors}"
            )
        arr = np.zeros((self.rows, self.cols), dtype=np.int8)
        for pos in self.coordinates():
            arr[pos.row, pos.col] = self._tile_code(pos)
        return arr

    def check_routes(self, routes: Mapping[Color, Sequence[Coordinate]]) -> bool:
        """Return True if routes are a complete solution of this board.

        Each route must run from one endpoint of its color to the other through
        strictly adjacent cells, and together the routes must cover every cell once.
        """
        if set(routes) != set(self.color_end_pts):
            return False
        covered: set[Coordinate] = set()
        for color, route in routes.items():
            if len(route) < 2 or {route[0], route[-1]} != set(self.color_end_pts[color]):
                return False
            if any(not self.are_neighbors(a, b) for a, b in zip(route, route[1:])):
                return False
            for pos in route:
                if pos in covered:
                    return False
                covered.add(pos)
        return len(covered) == self.rows * self.cols

    def board_str(self) -> str:
        """Return a string view of the board with borders."""
        top_line = "+" + "-" * (self.cols * 2 + 1) + "+"
        lines = [top_line]
        for r in range(self.rows):
            row_cells = []
            for c in range(self.cols):
                color = self.cells[Coordinate(r, c)]
                row_cells.append("." if color is None else str(color))
            lines.append("| " + " ".join(row_cells) + " |")
        lines.append(top_line)
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.board_str()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(rows={self.rows}, cols={self.cols}, colors={self.num_colors})"


def is_solved_grid(arr: np.ndarray) -> bool:
    """Return True if arr is an int8 grid of a fully solved board.

    Every cell must be a terminal or body code, every color must have exactly two
    terminals, and all cells of a color must form one connected region.
    """
    if not isinstance(arr, np.ndarray) or arr.dtype != np.int8 or arr.ndim != 2:
        return False

    n_rows, n_cols = arr.shape
    by_color: dict[int, list[Coordinate]] = defaultdict(list)
    for r in range(n_rows):
        for c in range(n_cols):
            v = int(arr[r, c])
            if not (is_body(v) or is_terminal(v)):
                return False
            by_color[color_of(v)].append(Coordinate(r, c))

    for color, coords in by_color.items():
        terms = [p for p in coords if is_terminal(int(arr[p.row, p.col]))]
        if len(terms) != 2:
            return False

        members = set(coords)
        queue: deque[Coordinate] = deque([terms[0]])
        seen: set[Coordinate] = {terms[0]}
        while queue:
            cur = queue.popleft()
            for n in grid_neighbors(n_rows, n_cols, cur):
                if n in members and n not in seen:
                    seen.add(n)
                    queue.append(n)
        if seen != members:
            return False

    return True
