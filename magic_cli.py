#!/usr/bin/env python
"""
Command-line front end: fill one grid at random, then with the determined
strategy, printing each grid and whether it is magic.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, TextIO

from logging_config import setup_logging
from magic_square import MagicSquare, MagicSquareError, RandomSource, SquareConfig

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
#  CLI
# --------------------------------------------------------------------------- #
def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Big-integer magic-square generator")
    p.add_argument("--n", type=int, default=3, help="square size")
    p.add_argument("--lower", type=int, default=1, help="smallest base value")
    p.add_argument("--upper", type=int, default=1_000_000, help="largest base value")
    p.add_argument("--power", type=int, default=1,
                   help="raise every drawn value to this power")
    p.add_argument("--allow-duplicates", action="store_true",
                   help="let the same value appear more than once")
    p.add_argument("--max-attempts", type=int, default=None,
                   help="give up on a cell after this many colliding draws")
    p.add_argument("--delimiter", default="\t", help="cell separator")
    p.add_argument("--classical", action="store_true",
                   help="also build a classical magic square")
    p.add_argument("-v", "--verbose", action="count", default=0,
                   help="log to stderr (-v info, -vv debug)")
    p.add_argument("--log-file", default=None, help="also write the log here")
    args = p.parse_args(argv)

    if args.n < 0:
        p.error("--n must be >= 0")
    if args.power < 1:
        p.error("--power must be >= 1")
    if args.lower > args.upper:
        p.error("--lower must not exceed --upper")
    if args.max_attempts is not None and args.max_attempts < 1:
        p.error("--max-attempts must be >= 1")
    return args


def build_config(args: argparse.Namespace) -> SquareConfig:
    return SquareConfig(size=args.n,
                        unique=not args.allow_duplicates,
                        power=args.power,
                        max_attempts=args.max_attempts)


def status_line(label: str, magic: bool) -> str:
    if magic:
        return f"{label} square IS a Magic Square!"
    return f"{label} square IS NOT a Magic Square."


def run(cfg: SquareConfig, lower: int, upper: int, delimiter: str = "\t",
        classical: bool = False, rng: Optional[RandomSource] = None,
        out: Optional[TextIO] = None) -> int:
    """Run every pass on one grid; stop at the first failed fill."""
    out = out if out is not None else sys.stdout
    square = MagicSquare(cfg, rng=rng)

    passes = [("Random", "square", square.populate_random),
              ("Determined", "determined square", square.populate_determined)]
    if classical:
        passes.append(("Classical", "classical square", square.populate_classical))

    for label, what, populate in passes:
        try:
            populate(lower, upper)
        except (MagicSquareError, ValueError) as err:
            logger.info("%s fill failed: %r", label, err)
            print(f"Error populating {what}: {err}", file=out)
            return 1
        square.print_square(delimiter, file=out)
        print(status_line(label, square.is_magic()), file=out)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    # squares of large powers easily pass the default int/str digit limit
    if hasattr(sys, "set_int_max_str_digits"):
        sys.set_int_max_str_digits(0)
    args = parse_args(argv)
    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    setup_logging(level, args.log_file)
    cfg = build_config(args)
    logger.info("config %s, bounds [%d, %d]", cfg, args.lower, args.upper)
    return run(cfg, args.lower, args.upper,
               delimiter=args.delimiter, classical=args.classical)


if __name__ == "__main__":
    sys.exit(main())
