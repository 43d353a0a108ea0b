#!/usr/bin/env python3
"""Solvability survey over seeded Klondike deals.

This utility deals a range of seeded games, asks the solver about each one and
stores a row per deal in ``data/survey.parquet`` (or a CSV file when the output
path ends in ``.csv``).  It then reports, per game mode, the share of each
verdict and how much of the search budget the deals consumed.
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from game import init_game
from rules import EASY, HARD, GameMode, resolve_mode
from scripts.solver import DEFAULT_MAX_ITERATIONS, VERDICTS, solve_position

DEFAULT_OUTPUT_PATH = Path("data/survey.parquet")

COLUMNS = [
    "seed",
    "mode",
    "draw_count",
    "max_iterations",
    "verdict",
    "iterations",
    "visited",
    "generated",
    "elapsed_ms",
]
IDENTITY_COLUMNS = ["seed", "mode", "max_iterations"]

LOGGER = logging.getLogger("survey")


class SurveyError(RuntimeError):
    """Raised when the survey job cannot be completed."""


def run_survey(
    seeds: Iterable[int],
    modes: Sequence[GameMode],
    *,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> pd.DataFrame:
    """Solve one seeded deal per (seed, mode) pair and return the results."""

    seed_list = [seed & 0xFFFFFFFF for seed in seeds]
    rows = []
    for mode in modes:
        for seed in seed_list:
            report = solve_position(init_game(mode, seed=seed), max_iterations)
            rows.append(
                {
                    "seed": seed,
                    "mode": mode.name,
                    "draw_count": mode.draw_count,
                    "max_iterations": max_iterations,
                    "verdict": report.verdict,
                    "iterations": report.iterations,
                    "visited": report.visited,
                    "generated": report.generated,
                    "elapsed_ms": report.elapsed_ms,
                }
            )
        LOGGER.info("Surveyed %d %s deals", len(seed_list), mode.name)
    return pd.DataFrame(rows, columns=COLUMNS)


def summarise_survey(frame: pd.DataFrame) -> dict[str, dict[str, float]]:
    """Return verdict shares and iteration percentiles for each mode in *frame*."""

    summary: dict[str, dict[str, float]] = {}
    if frame.empty:
        return summary

    for mode_name, group in frame.groupby("mode", sort=True):
        total = len(group)
        counts = group["verdict"].value_counts()
        iterations = group["iterations"].to_numpy(dtype=float)
        entry: dict[str, float] = {"deals": total}
        for verdict in VERDICTS:
            entry[f"{verdict.lower()}_share"] = float(counts.get(verdict, 0)) / total
        entry["iterations_p50"] = float(np.percentile(iterations, 50))
        entry["iterations_p90"] = float(np.percentile(iterations, 90))
        summary[str(mode_name)] = entry
    return summary


def _check_suffix(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix not in (".parquet", ".csv"):
        raise SurveyError(f"{path}: Unsupported file extension (use .parquet or .csv)")
    return suffix


def load_frame(path: Path) -> pd.DataFrame:
    suffix = _check_suffix(path)
    if not path.exists():
        raise SurveyError(f"Survey results not found: {path}")
    if suffix == ".parquet":
        return pd.read_parquet(path)
    return pd.read_csv(path)


def write_frame(frame: pd.DataFrame, path: Path, *, append: bool = False) -> pd.DataFrame:
    """Write *frame* to *path*, merging with earlier rows when *append* is set."""

    suffix = _check_suffix(path)
    if append and path.exists():
        previous = load_frame(path)
        frame = pd.concat([previous, frame], ignore_index=True)
        frame = frame.drop_duplicates(subset=IDENTITY_COLUMNS, keep="last")
        frame = frame.reset_index(drop=True)

    path.parent.mkdir(parents=True, exist_ok=True)
    if suffix == ".parquet":
        frame.to_parquet(path, index=False)
    else:
        frame.to_csv(path, index=False)
    return frame


def _parse_modes(values: Sequence[str] | None) -> list[GameMode]:
    if not values:
        return [EASY, HARD]
    modes: list[GameMode] = []
    for value in values:
        try:
            mode = resolve_mode(value)
        except (TypeError, ValueError) as exc:
            raise SurveyError(str(exc)) from exc
        if mode not in modes:
            modes.append(mode)
    return modes


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--start-seed",
        type=int,
        default=0,
        help="First seed to deal (default: 0)",
    )
    parser.add_argument(
        "--count",
        metavar="N",
        type=int,
        default=20,
        help="Number of consecutive seeds to survey (default: 20)",
    )
    parser.add_argument(
        "--mode",
        action="append",
        default=None,
        help="Game mode to survey ('easy' or 'hard'). Can be repeated; defaults to both.",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=DEFAULT_MAX_ITERATIONS,
        help=f"Search budget per deal (default: {DEFAULT_MAX_ITERATIONS})",
    )
    parser.add_argument(
        "--output",
        default=str(DEFAULT_OUTPUT_PATH),
        help="Parquet or CSV file receiving one row per deal",
    )
    parser.add_argument(
        "--append",
        action="store_true",
        help="Merge with existing results instead of replacing them",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.count < 1:
            raise SurveyError("--count must be at least 1")
        if args.max_iterations < 1:
            raise SurveyError("--max-iterations must be at least 1")
        modes = _parse_modes(args.mode)
        seeds = range(args.start_seed, args.start_seed + args.count)
        output = Path(args.output)
        _check_suffix(output)
        frame = run_survey(seeds, modes, max_iterations=args.max_iterations)
        frame = write_frame(frame, output, append=args.append)
    except SurveyError as exc:
        LOGGER.error("%s", exc)
        return 1

    LOGGER.info("Wrote %s rows to %s", f"{len(frame):,}", output)
    for mode_name, entry in summarise_survey(frame).items():
        parts = [
            f"{entry[verdict.lower() + '_share'] * 100:.1f}% {verdict.lower()}"
            for verdict in VERDICTS
        ]
        LOGGER.info(
            "%s: %d deals, %s, iterations p50=%.0f p90=%.0f",
            mode_name,
            entry["deals"],
            ", ".join(parts),
            entry["iterations_p50"],
            entry["iterations_p90"],
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
