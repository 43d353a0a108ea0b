#!/usr/bin/env python3
"""Bounded depth-first solvability oracle for Klondike positions."""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import time
from dataclasses import asdict, dataclass
from typing import Iterable, List, Literal, Optional, Sequence

from game import (
    FOUNDATION_COUNT,
    TABLEAU_COUNT,
    GameState,
    Position,
    check_win,
    execute_draw,
    execute_move,
    init_game,
    is_king_to_empty,
    top_card,
)
from rules import is_valid_foundation_move, is_valid_tableau_move, resolve_mode

SOLVABLE = "SOLVABLE"
UNSOLVABLE = "UNSOLVABLE"
UNKNOWN = "UNKNOWN"
VERDICTS = (SOLVABLE, UNSOLVABLE, UNKNOWN)
Verdict = Literal["SOLVABLE", "UNSOLVABLE", "UNKNOWN"]

DEFAULT_MAX_ITERATIONS = 2000

MOVE = "MOVE"
DRAW = "DRAW"

PRIORITY_TABLEAU_TO_FOUNDATION = 100
PRIORITY_WASTE_TO_FOUNDATION = 90
PRIORITY_REVEALING_SHIFT = 50
PRIORITY_WASTE_TO_TABLEAU = 40
PRIORITY_PLAIN_SHIFT = 15
PRIORITY_TABLEAU_DEFAULT = 10
PRIORITY_KING_TO_EMPTY = 5
PRIORITY_DRAW = 1

# Stands in for the top of an empty pile inside a fingerprint.
EMPTY_SLOT = ""

LOGGER = logging.getLogger("solver")

Fingerprint = tuple


def state_fingerprint(state: GameState, *, include_stock_order: bool = False) -> Fingerprint:
    """Return a hashable, totally ordered key identifying *state* for the search.

    The stock contributes only its length unless *include_stock_order* is set,
    so two positions that differ only in stock order after a recycle share a
    key.
    """

    waste_top = state.waste[-1].id if state.waste else EMPTY_SLOT
    foundation_tops = tuple(pile[-1].id if pile else EMPTY_SLOT for pile in state.foundations)
    columns = []
    for column in state.tableau:
        face_down = sum(1 for card in column if not card.face_up)
        face_up = tuple(card.id for card in column if card.face_up)
        columns.append((face_down, face_up))
    key: tuple = (len(state.stock), waste_top, foundation_tops, tuple(columns))
    if include_stock_order:
        key += (tuple(card.id for card in state.stock),)
    return key


@dataclass(frozen=True)
class Move:
    """A single action available from a position, with its search priority."""

    kind: str
    priority: int
    source: Optional[Position] = None
    target_pile: Optional[str] = None
    target_index: int = -1

    def apply(self, state: GameState) -> Optional[GameState]:
        if self.kind == DRAW:
            return execute_draw(state)
        if self.source is None or self.target_pile is None:
            return None
        return execute_move(state, self.source, self.target_pile, self.target_index)

    def to_notation(self) -> str:
        if self.kind == DRAW:
            return "DRAW"
        if self.source is None:
            raise ValueError("MOVE has no source position")
        origin = f"{self.source.pile_type}{self.source.pile_index}"
        if self.source.card_index is not None:
            origin += f":{self.source.card_index}"
        return f"MOVE({origin}->{self.target_pile}{self.target_index})"


def _tableau_shift_priority(column: Sequence, card_index: int, target: Sequence) -> int:
    card = column[card_index]
    king_move = is_king_to_empty(card, target)
    reveals_card = card_index > 0 and not column[card_index - 1].face_up

    priority = PRIORITY_TABLEAU_DEFAULT
    if reveals_card:
        priority = PRIORITY_REVEALING_SHIFT
    if king_move and not reveals_card:
        priority = PRIORITY_KING_TO_EMPTY
    if not king_move and not reveals_card:
        priority = PRIORITY_PLAIN_SHIFT
    return priority


def generate_moves(state: GameState) -> List[Move]:
    """Enumerate every action reachable from *state* in one step."""

    moves: List[Move] = []

    for pile_index, column in enumerate(state.tableau):
        for card_index, card in enumerate(column):
            if not card.face_up:
                continue
            source = Position("tableau", pile_index, card_index)

            if card_index == len(column) - 1:
                for f_index in range(FOUNDATION_COUNT):
                    if is_valid_foundation_move(card, top_card(state.foundations[f_index])):
                        moves.append(
                            Move(MOVE, PRIORITY_TABLEAU_TO_FOUNDATION, source, "foundation", f_index)
                        )

            for t_index in range(TABLEAU_COUNT):
                if t_index == pile_index:
                    continue
                target = state.tableau[t_index]
                if not is_valid_tableau_move(card, top_card(target)):
                    continue
                priority = _tableau_shift_priority(column, card_index, target)
                moves.append(Move(MOVE, priority, source, "tableau", t_index))

    if state.waste:
        card = state.waste[-1]
        source = Position("waste")
        for f_index in range(FOUNDATION_COUNT):
            if is_valid_foundation_move(card, top_card(state.foundations[f_index])):
                moves.append(Move(MOVE, PRIORITY_WASTE_TO_FOUNDATION, source, "foundation", f_index))
        for t_index in range(TABLEAU_COUNT):
            if is_valid_tableau_move(card, top_card(state.tableau[t_index])):
                moves.append(Move(MOVE, PRIORITY_WASTE_TO_TABLEAU, source, "tableau", t_index))

    if state.stock or state.waste:
        moves.append(Move(DRAW, PRIORITY_DRAW))

    return moves


@dataclass(frozen=True)
class SolverReport:
    """Verdict of one search together with how much work it took."""

    verdict: str
    iterations: int
    visited: int
    generated: int
    max_stack: int
    elapsed_ms: float

    def to_dict(self) -> dict:
        return dict(asdict(self))


def solve_position(
    initial_state: GameState,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    *,
    exact_stock: bool = False,
) -> SolverReport:
    """Search the positions reachable from *initial_state* for a win.

    Each iteration pops one position off an explicit stack.  ``SOLVABLE`` is
    returned as soon as a won position is popped or generated, ``UNSOLVABLE``
    once the stack runs dry, and ``UNKNOWN`` when more than *max_iterations*
    positions would be needed.  *exact_stock* makes the visited set tell apart
    positions whose stocks hold the same number of cards in a different order.
    """

    if isinstance(max_iterations, bool) or not isinstance(max_iterations, int):
        raise TypeError("max_iterations must be an integer")
    if max_iterations < 1:
        raise ValueError("max_iterations must be at least 1")

    start = time.perf_counter()
    stack: List[GameState] = [initial_state]
    visited: set[Fingerprint] = set()
    iterations = 0
    generated = 0
    max_stack = 1

    def finish(verdict: str) -> SolverReport:
        report = SolverReport(
            verdict=verdict,
            iterations=min(iterations, max_iterations),
            visited=len(visited),
            generated=generated,
            max_stack=max_stack,
            elapsed_ms=(time.perf_counter() - start) * 1000.0,
        )
        LOGGER.debug(
            "Search finished: verdict=%s iterations=%d visited=%d generated=%d",
            report.verdict,
            report.iterations,
            report.visited,
            report.generated,
        )
        return report

    while stack:
        iterations += 1
        if iterations > max_iterations:
            return finish(UNKNOWN)

        state = stack.pop()
        if check_win(state.foundations):
            return finish(SOLVABLE)

        key = state_fingerprint(state, include_stock_order=exact_stock)
        if key in visited:
            continue
        visited.add(key)

        # Ascending and stable: the last move pushed is the highest priority,
        # and the last generated among equal priorities.
        moves = sorted(generate_moves(state), key=lambda move: move.priority)
        successors: List[GameState] = []
        for move in moves:
            next_state = move.apply(state)
            if next_state is None:
                continue
            generated += 1
            if check_win(next_state.foundations):
                return finish(SOLVABLE)
            successors.append(next_state)

        stack.extend(successors)
        max_stack = max(max_stack, len(stack))

    return finish(UNSOLVABLE)


def check_solvability(state: GameState, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> Verdict:
    """Return ``"SOLVABLE"``, ``"UNSOLVABLE"`` or ``"UNKNOWN"`` for *state*."""
    return solve_position(state, max_iterations).verdict  # type: ignore[return-value]


async def check_solvability_async(
    state: GameState, max_iterations: int = DEFAULT_MAX_ITERATIONS
) -> Verdict:
    """Yield to the event loop once, then run the whole search without pausing."""
    await asyncio.sleep(0)
    return check_solvability(state, max_iterations)


def parse_arguments(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the first deal. Subsequent games advance the RNG deterministically.",
    )
    parser.add_argument(
        "--games",
        type=int,
        default=1,
        help="Number of deals to analyse (default: 1).",
    )
    parser.add_argument(
        "--mode",
        default="easy",
        help="Game mode: 'easy' draws one card, 'hard' draws three (default: easy).",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=DEFAULT_MAX_ITERATIONS,
        help=f"Search budget per deal (default: {DEFAULT_MAX_ITERATIONS}).",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress per-game output and only print the summary line.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def run_cli(argv: Optional[Iterable[str]] = None) -> int:
    args = parse_arguments(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        mode = resolve_mode(args.mode)
    except (TypeError, ValueError) as exc:
        LOGGER.error("%s", exc)
        return 2
    if args.max_iterations < 1:
        LOGGER.error("--max-iterations must be at least 1")
        return 2

    master_seed = args.seed if args.seed is not None else random.randrange(0, 2**32)
    master_rng = random.Random(master_seed)
    counts = {verdict: 0 for verdict in VERDICTS}
    total_iterations = 0

    for game_index in range(args.games):
        if game_index == 0 and args.seed is not None:
            seed = args.seed & 0xFFFFFFFF
        else:
            seed = master_rng.randrange(0, 2**32)

        state = init_game(mode, seed=seed)
        report = solve_position(state, args.max_iterations)
        counts[report.verdict] += 1
        total_iterations += report.iterations

        if not args.quiet:
            print(
                f"Game {game_index + 1}: seed={seed} mode={mode.name} "
                f"verdict={report.verdict} iterations={report.iterations} "
                f"visited={report.visited} elapsed_ms={report.elapsed_ms:.1f}"
            )

    average_iterations = total_iterations / args.games if args.games else 0.0
    print(
        "Summary: "
        f"games={args.games} "
        + " ".join(f"{verdict.lower()}={counts[verdict]}" for verdict in VERDICTS)
        + f" avg_iterations={average_iterations:.1f}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
