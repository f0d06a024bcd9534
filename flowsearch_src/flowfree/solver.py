"""Best-first search over Flow board states."""

from __future__ import annotations

import heapq
import itertools
import logging
import random
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING

from tqdm import tqdm

from flowsearch_src.util.config import get_key, is_verbose

from .state import BoardState

if TYPE_CHECKING:
    from .game import BoardDef

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HeuristicWeights:
    """Weights of the state-ranking heuristic; higher scores are explored first."""

    empty_cells: float = -1.0
    paths_completed: float = 1.0
    continues_path: float = 0.5
    borders_wall: float = 0.1
    distance_to_wall: float = -0.01

    @classmethod
    def from_config(cls) -> HeuristicWeights:
        """Read weights from ``solver.weights``, falling back to the defaults."""
        defaults = cls()
        return cls(
            **{
                f.name: float(get_key(f"solver.weights.{f.name}", getattr(defaults, f.name)))
                for f in fields(cls)
            }
        )

    def score(self, state: BoardState) -> float:
        return (
            self.empty_cells * state.num_empty_cells
            + self.paths_completed * state.num_paths_completed
            + self.continues_path * state.does_last_move_continue_path
            + self.borders_wall * state.does_last_move_border_wall
            + self.distance_to_wall * state.last_move_distance_to_wall
        )


@dataclass(frozen=True, slots=True)
class ScoredState:
    """A board state together with its heuristic score."""

    state: BoardState
    score: float


# (negated score, tie-break draw, insertion number, entry); heapq pops the smallest
QueueEntry = tuple[float, float, int, ScoredState]


class FlowSolver:
    """Find a solved state of a board by best-first search.

    States are ranked by a heuristic and expanded one at a time. Successors that fail
    a validity check are dropped, and a valid forced move replaces all alternatives.
    The first attempt breaks score ties in insertion order; each later attempt breaks
    them with a draw from a generator seeded with ``seed + attempt``.
    """

    def __init__(
        self,
        board: BoardDef,
        weights: HeuristicWeights | None = None,
        seed: int = get_key("solver.seed", 42),
    ) -> None:
        self.board = board
        self.weights = weights if weights is not None else HeuristicWeights.from_config()
        self.seed = seed
        self.queue: list[QueueEntry] = []
        self.num_iterations = 0
        self.num_attempts = 0
        self._counter = itertools.count()
        self._rng: random.Random | None = None

    def heuristic(self, state: BoardState) -> float:
        return self.weights.score(state)

    def enqueue(self, state: BoardState) -> None:
        scored = ScoredState(state, self.heuristic(state))
        tie = self._rng.random() if self._rng is not None else 0.0
        heapq.heappush(self.queue, (-scored.score, tie, next(self._counter), scored))

    def dequeue(self) -> ScoredState:
        return heapq.heappop(self.queue)[-1]

    def clear(self) -> None:
        self.queue.clear()
        self._counter = itertools.count()

    def init(self, attempt: int = 0) -> None:
        """Reset the queue to hold only the initial state of the board."""
        self.clear()
        self._rng = None if attempt == 0 else random.Random(self.seed + attempt)  # noqa: S311
        self.enqueue(BoardState.from_board(self.board))

    def next_states(self, state: BoardState) -> list[BoardState]:
        """Return the valid successors of state worth exploring.

        A forced successor that is invalid means state cannot lead to a solution, so
        nothing is returned. A forced successor that is valid is returned alone. Otherwise
        the valid successors are ordered by how many options their last move had.
        """
        new_states = [state.copy_with_new_move(move) for move in state.legal_moves]

        if any(s.is_forced and not s.is_valid for s in new_states):
            return []

        forced = next((s for s in new_states if s.is_forced and s.is_valid), None)
        if forced is not None:
            return [forced]

        return sorted(
            (s for s in new_states if s.is_valid), key=lambda s: s.last_move_possible_options
        )

    def solution(
        self,
        max_iterations: int = get_key("solver.max_iterations", 5000),
        max_attempts: int = get_key("solver.max_attempts", 10),
        verbose: bool | None = None,
    ) -> BoardState | None:
        """Return a solved state of the board, or None if the budgets run out first."""
        if verbose is None:
            verbose = is_verbose()

        for attempt in range(max_attempts):
            self.num_attempts = attempt + 1
            self.num_iterations = 0
            self.init(attempt)

            with tqdm(
                total=max_iterations,
                desc=f"Attempt {attempt + 1}/{max_attempts}",
                unit="states",
                disable=not verbose,
            ) as pbar:
                while self.queue and self.num_iterations < max_iterations:
                    current = self.dequeue().state
                    self.num_iterations += 1
                    pbar.update(1)

                    if current.solved:
                        logger.info(
                            "Solved after %d iterations on attempt %d (%d forced moves)",
                            self.num_iterations,
                            self.num_attempts,
                            current.num_forced,
                        )
                        return current

                    for nxt in self.next_states(current):
                        self.enqueue(nxt)

            if not self.queue:
                # successors do not depend on queue order, so a restart would see the same tree
                logger.info(
                    "Search space exhausted after %d iterations without a solution",
                    self.num_iterations,
                )
                return None

            logger.debug(
                "Attempt %d gave up after %d iterations with %d states queued",
                self.num_attempts,
                self.num_iterations,
                len(self.queue),
            )

        logger.info(
            "No solution within %d iterations x %d attempts", max_iterations, max_attempts
        )
        return None
