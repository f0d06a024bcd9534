"""Solve a Flow puzzle stored as an ASCII board using CLI."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from flowsearch_src.flowfree.game import BoardDef
from flowsearch_src.flowfree.sat_solver import FlowFreeSATSolver
from flowsearch_src.flowfree.solver import FlowSolver
from flowsearch_src.util.config import get_key, is_verbose
from flowsearch_src.util.log_util import configure_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

    from flowsearch_src.flowfree.state import BoardState

logger = logging.getLogger(__name__)

SOLVER_CHOICES: tuple[str, ...] = ("best-first", "sat")

EXIT_OK = 0
EXIT_BAD_INPUT = 1
EXIT_NO_SOLUTION = 2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments for solving a board."""
    parser = argparse.ArgumentParser(description="Solve a Flow puzzle from an ASCII board file.")
    parser.add_argument("board", type=Path, help="Path to the board ('.' or '-' marks an empty cell)")
    parser.add_argument("-s", "--solver", choices=SOLVER_CHOICES, default="best-first")
    parser.add_argument(
        "-i", "--max-iterations", type=int, default=get_key("solver.max_iterations", 5000)
    )
    parser.add_argument("-a", "--max-attempts", type=int, default=get_key("solver.max_attempts", 10))
    parser.add_argument("-c", "--color", action="store_true", help="Render with ANSI colors")
    parser.add_argument("-v", "--verbose", action="store_true", default=is_verbose())
    return parser.parse_args(argv)


def solve(
    board: BoardDef,
    solver: str = "best-first",
    max_iterations: int = get_key("solver.max_iterations", 5000),
    max_attempts: int = get_key("solver.max_attempts", 10),
    verbose: bool = False,
) -> BoardState | None:
    """Solve board with the named backend, returning None if no solution was found."""
    if solver == "best-first":
        return FlowSolver(board).solution(max_iterations, max_attempts, verbose=verbose)
    if solver == "sat":
        try:
            return FlowFreeSATSolver(board).solve()
        except ValueError as e:
            logger.info("SAT solver found no solution: %s", e)
            return None
    raise ValueError(f"Unknown solver {solver!r}. Choose one of: {', '.join(SOLVER_CHOICES)}")


def main(argv: Sequence[str] | None = None) -> int:
    """Board solving with CLI."""
    args = parse_args(argv)
    configure_logging("DEBUG" if args.verbose else None)

    try:
        board = BoardDef.from_file(args.board)
    except (OSError, ValueError) as e:
        print(f"Could not read board {args.board}: {e}", file=sys.stderr)
        return EXIT_BAD_INPUT

    state = solve(board, args.solver, args.max_iterations, args.max_attempts, args.verbose)
    if state is None:
        print(f"Could not find a solution to the board in {args.board}")
        return EXIT_NO_SOLUTION

    print(state.colorized_str() if args.color else state.board_str())
    print(
        f"Solved {args.board.name}: {board.rows}x{board.cols}, colors={board.num_colors}, "
        f"moves={len(state.move_stack)}, forced={state.num_forced}"
    )
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
