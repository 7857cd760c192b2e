"""Simulate an attack sequence from the command line and print its distribution."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from attack_core import (  # noqa: E402
    ADVANTAGE_MODES,
    DEFAULT_ITERATIONS,
    ComputationError,
    DamageClient,
    ExpressionError,
    build_setup,
    compute_damage_distribution,
    compute_exact_distribution,
)

BAR_WIDTH = 50


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Estimate the damage distribution of an attack sequence.")
    parser.add_argument("attack", help="Attack roll, optionally followed by variables such as %%%%X=1d4.")
    parser.add_argument("damage", help="Damage roll applied on a hit.")
    parser.add_argument("--versus", default="10", help="Value the attack must exceed (default: %(default)s).")
    parser.add_argument(
        "--mode",
        choices=ADVANTAGE_MODES,
        default="normal",
        help="Attack roll mode (default: %(default)s).",
    )
    parser.add_argument("--attacks", default="1", help="Number of attacks per trial (default: %(default)s).")
    parser.add_argument("--cost", default=None, help="Cost charged per attack.")
    parser.add_argument("--reduction", default=None, help="Flat reduction subtracted from each hit.")
    parser.add_argument(
        "--no-fails-miss",
        dest="fails_miss",
        action="store_false",
        help="Critical failures do not automatically miss.",
    )
    parser.add_argument(
        "--no-successes-hit",
        dest="successes_hit",
        action="store_false",
        help="Critical successes do not automatically hit.",
    )
    parser.add_argument(
        "--no-successes-crit",
        dest="successes_crit",
        action="store_false",
        help="Critical hits do not double damage.",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=DEFAULT_ITERATIONS,
        help="Number of Monte Carlo trials (default: %(default)s).",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible runs.")
    parser.add_argument(
        "--worker",
        action="store_true",
        help="Run through a background computation thread instead of in-process.",
    )
    parser.add_argument(
        "--shard-size",
        type=int,
        default=100_000,
        help="Trials per request when --worker is set (default: %(default)s).",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(list(argv) if argv is not None else None)


def print_distribution(probabilities: dict[int, float], exact: dict[int, float] | None) -> None:
    peak = max(probabilities.values(), default=0.0)
    for damage, probability in sorted(probabilities.items()):
        bar = "#" * (round(BAR_WIDTH * probability / peak) if peak > 0 else 0)
        line = f"{damage:>5} {probability * 100:7.3f}%"
        if exact is not None:
            line += f" (exact {exact.get(damage, 0.0) * 100:7.3f}%)"
        print(f"{line} {bar}")


def main(argv: Iterable[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        setup = build_setup(
            attack=args.attack,
            damage=args.damage,
            versus=args.versus,
            advantage=args.mode,
            num_attacks=args.attacks,
            fails_miss=args.fails_miss,
            successes_hit=args.successes_hit,
            successes_crit=args.successes_crit,
            cost=args.cost,
            reduction=args.reduction,
        )
        if args.worker:
            client = DamageClient(seed=args.seed)
            try:
                client.submit_sharded(setup, args.iterations, args.shard_size)
                histogram = client.collect()
            finally:
                client.close()
            exact = compute_exact_distribution(setup)
        else:
            result = compute_damage_distribution(setup, iterations=args.iterations, seed=args.seed)
            histogram = result.histogram
            exact = result.exact
            print(f"Simulated {args.iterations} trials in {result.compute_seconds:.2f} s")
    except (ExpressionError, ComputationError, ValueError) as exc:
        raise SystemExit(f"Error: {exc}") from exc

    summary = histogram.summary()
    print(f"Mean damage: {summary.mean_damage:.3f}")
    print(f"Hit rate: {summary.hit_rate * 100:.2f}% over {histogram.num_attacks} attacks")
    if setup.cost is not None:
        print(f"Mean cost per trial: {summary.mean_cost:.3f}")
    print_distribution(histogram.probabilities(), exact)


if __name__ == "__main__":
    main(sys.argv[1:])
