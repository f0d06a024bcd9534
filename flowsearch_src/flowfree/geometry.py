"""Grid geometry for Flow boards: directions, coordinates, paths and moves."""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

# Any hashable label identifies a flow; the ASCII parser uses single characters.
Color = Hashable


class Direction(Enum):
    """One of the four grid directions, valued by its (row, col) offset."""

    UP = (-1, 0)
    DOWN = (1, 0)
    LEFT = (0, -1)
    RIGHT = (0, 1)

    @property
    def drow(self) -> int:
        return self.value[0]

    @property
    def dcol(self) -> int:
        return self.value[1]


@dataclass(frozen=True, slots=True)
class Coordinate:
    """Immutable grid coordinate (row, col)."""

    row: int
    col: int

    def move(self, direction: Direction) -> Coordinate:
        """Return the coordinate one step away in the given direction."""
        return Coordinate(self.row + direction.drow, self.col + direction.dcol)

    def direction_from(self, other: Coordinate) -> Direction:
        """Return the direction leading from other to this coordinate."""
        offset = (self.row - other.row, self.col - other.col)
        for d in Direction:
            if d.value == offset:
                return d
        raise ValueError(f"{other} and {self} are not adjacent")

    def __str__(self) -> str:
        return f"({self.row},{self.col})"


@dataclass(frozen=True, slots=True)
class Path:
    """Ordered cells of a partial flow, most recently added cell first."""

    nodes: tuple[Coordinate, ...]

    def __post_init__(self) -> None:
        if not self.nodes:
            raise ValueError("A path needs at least one cell")

    @classmethod
    def from_positions(cls, *positions: Coordinate) -> Path:
        """Build a path from cells given head first."""
        return cls(tuple(positions))

    @property
    def latest(self) -> Coordinate:
        """The head of the path."""
        return self.nodes[0]

    def ends_with(self, pos: Coordinate) -> bool:
        return self.nodes[0] == pos

    def extend(self, pos: Coordinate) -> Path:
        """Return a new path with pos as its head."""
        return Path((pos, *self.nodes))

    def __contains__(self, pos: object) -> bool:
        return pos in self.nodes

    def __iter__(self) -> Iterator[Coordinate]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)


@dataclass(frozen=True, slots=True)
class Move:
    """Commit one cell to one color."""

    color: Color
    pos: Coordinate

    def __str__(self) -> str:
        return f"{self.color}@{self.pos}"
