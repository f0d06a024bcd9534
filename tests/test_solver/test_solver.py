"""Pytest suite for the best-first Flow solver."""

from __future__ import annotations

from pathlib import Path

import pytest

from flowsearch_src.flowfree.game import BoardDef, is_solved_grid
from flowsearch_src.flowfree.geometry import Coordinate, Move
from flowsearch_src.flowfree.solver import FlowSolver, HeuristicWeights
from flowsearch_src.flowfree.state import BoardState

P = Coordinate

BOARD_DIR = Path(__file__).resolve().parents[2] / "flowsearch_src" / "data" / "handcrafted"

# ────────────────────────────── Shared test data ────────────────────────────── #

BOARD_5x5 = """
0....
.....
..1..
213.0
3...2
"""

# a and b must cross each other
CROSSING_BOARD = """
a.b
b.a
"""

# the finished c and d columns split a and b
WALLED_BOARD = """
acb
.c.
.d.
bda
"""


@pytest.fixture
def small_board() -> BoardDef:
    return BoardDef.from_ascii_board(BOARD_5x5)


@pytest.mark.parametrize("board_file", ["board_5x5.txt", "board_6x6.txt", "board_7x7.txt"])
def test_solves_handcrafted_boards(board_file: str) -> None:
    board = BoardDef.from_file(BOARD_DIR / board_file)
    solver = FlowSolver(board)
    solved = solver.solution(max_iterations=1000, max_attempts=10, verbose=False)

    assert solved is not None, f"No solution found for {board_file}"
    assert solved.solved
    assert solved.num_empty_cells == 0
    assert board.check_routes(solved.routes())
    assert is_solved_grid(solved.to_array())
    assert solver.num_iterations <= 1000


@pytest.mark.slow
def test_restarts_solve_8x8_board() -> None:
    board = BoardDef.from_file(BOARD_DIR / "board_8x8.txt")
    solver = FlowSolver(board)
    solved = solver.solution(max_iterations=1000, max_attempts=10, verbose=False)

    assert solved is not None, "No solution found for board_8x8.txt"
    assert solved.solved
    assert board.check_routes(solved.routes())
    assert is_solved_grid(solved.to_array())
    assert solver.num_attempts > 1, "The first attempt should exhaust its budget"


@pytest.mark.parametrize("board_str", [CROSSING_BOARD, WALLED_BOARD])
def test_unsolvable_board_returns_none(board_str: str) -> None:
    solver = FlowSolver(BoardDef.from_ascii_board(board_str))
    assert solver.solution(max_iterations=100, max_attempts=3, verbose=False) is None
    # an emptied queue ends the search without further restarts
    assert solver.num_attempts == 1


def test_gives_up_after_budget(small_board: BoardDef) -> None:
    solver = FlowSolver(small_board)
    assert solver.solution(max_iterations=1, max_attempts=3, verbose=False) is None
    assert solver.num_attempts == 3
    assert solver.num_iterations == 1


def test_search_is_deterministic(small_board: BoardDef) -> None:
    first = FlowSolver(small_board, seed=7).solution(max_iterations=1000, verbose=False)
    second = FlowSolver(small_board, seed=7).solution(max_iterations=1000, verbose=False)
    assert first is not None
    assert second is not None
    assert first.move_stack == second.move_stack


# ─────────────────────────────── Successors ─────────────────────────────── #


def test_valid_forced_move_is_taken_alone(small_board: BoardDef) -> None:
    solver = FlowSolver(small_board)
    successors = solver.next_states(BoardState.from_board(small_board))
    assert len(successors) == 1
    assert successors[0].is_forced
    assert successors[0].last_move == Move("2", P(2, 0))


def test_invalid_forced_move_prunes_state() -> None:
    board = BoardDef.from_ascii_board(CROSSING_BOARD)
    assert FlowSolver(board).next_states(BoardState.from_board(board)) == []


def test_first_forced_move_wins_over_later_ones() -> None:
    board = BoardDef.from_ascii_board(BOARD_5x5)
    state = BoardState.from_board(board).copy_with_new_move(Move("2", P(2, 0)))
    state = state.copy_with_new_move(Move("2", P(4, 3)))
    state = state.copy_with_new_move(Move("3", P(4, 1)))

    # (3, 1) has a single way out, so color 1 closes before color 3 is considered
    successors = FlowSolver(board).next_states(state)
    assert [s.last_move for s in successors] == [Move("1", P(2, 1))]
    assert successors[0].color_completed("1")


def test_unforced_successors_are_all_kept() -> None:
    board = BoardDef.from_ascii_board("a..\n...\n..a")
    successors = FlowSolver(board).next_states(BoardState.from_board(board))

    assert len(successors) == 4
    assert all(s.is_valid and not s.is_forced for s in successors)
    options = [s.last_move_possible_options for s in successors]
    assert options == sorted(options)


# ─────────────────────────────── Priority queue ─────────────────────────────── #


def test_heuristic_default_weights() -> None:
    board = BoardDef.from_ascii_board(BOARD_5x5)
    state = BoardState.from_board(board)
    weights = HeuristicWeights()
    assert weights.score(state) == pytest.approx(-17.0)

    # one cell filled, on the border
    moved = state.copy_with_new_move(Move("0", P(0, 1)))
    assert weights.score(moved) == pytest.approx(-16.0 + 0.1)


def test_weights_read_from_config() -> None:
    assert HeuristicWeights.from_config() == HeuristicWeights()


def test_queue_pops_highest_score_first(small_board: BoardDef) -> None:
    solver = FlowSolver(small_board, weights=HeuristicWeights())
    start = BoardState.from_board(small_board)
    ahead = start.copy_with_new_move(Move("0", P(0, 1)))

    solver.enqueue(start)
    solver.enqueue(ahead)
    assert solver.dequeue().state is ahead
    assert solver.dequeue().state is start
    assert not solver.queue


def test_ties_pop_in_insertion_order_on_first_attempt(small_board: BoardDef) -> None:
    solver = FlowSolver(small_board, weights=HeuristicWeights())
    start = BoardState.from_board(small_board)
    # two interior moves with equal features and equal scores
    first = start.copy_with_new_move(Move("1", P(1, 2)))
    second = start.copy_with_new_move(Move("1", P(2, 3)))
    assert solver.heuristic(first) == solver.heuristic(second)

    solver.enqueue(first)
    solver.enqueue(second)
    assert solver.dequeue().state is first
    assert solver.dequeue().state is second


def test_init_resets_queue(small_board: BoardDef) -> None:
    solver = FlowSolver(small_board)
    solver.init()
    solver.init(attempt=2)
    assert len(solver.queue) == 1
    assert solver.dequeue().state.move_stack == ()
