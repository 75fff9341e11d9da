"""
Big-integer magic-square engine.

Builds N×N grids of arbitrary-precision integers with one of three fill
strategies (random, determined, classical) and checks the magic property.
Cells live in a numpy ``object`` array so every sum stays a Python ``int``.
"""

from __future__ import annotations

import itertools
import logging
import random
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, Protocol, TextIO

import numpy as np

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
#  Errors
# --------------------------------------------------------------------------- #
class MagicSquareError(Exception):
    """Base class for population failures."""


class RandomSourceError(MagicSquareError):
    """The entropy source could not produce a value."""


class NonUniqueFillError(MagicSquareError):
    """A determined fill ended with repeated values while uniqueness was on."""


class RetryLimitError(MagicSquareError):
    """Every draw allowed for one cell collided with an already-used value."""


# --------------------------------------------------------------------------- #
#  Configuration
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class SquareConfig:
    size: int = 3                       # grid dimension N
    unique: bool = True                 # forbid repeated values
    power: int = 1                      # 2 → squares, 3 → cubes, ...
    max_attempts: Optional[int] = None  # draws per cell; None → unbounded

    def __post_init__(self) -> None:
        if self.size < 0:
            raise ValueError(f"size must be >= 0, got {self.size}")
        if self.power < 1:
            raise ValueError(f"power must be >= 1, got {self.power}")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")


# --------------------------------------------------------------------------- #
#  Random values
# --------------------------------------------------------------------------- #
class RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int: ...


_SYSTEM_RANDOM = random.SystemRandom()


def generate_random_bigint(lower: int, upper: int, power: int = 1,
                           rng: Optional[RandomSource] = None) -> int:
    """
    Return a uniform integer from the inclusive range [lower, upper],
    raised to ``power`` when power > 1.

    ``rng`` is anything with a ``randint(a, b)`` method; the default is a
    shared ``random.SystemRandom`` which reads OS entropy.
    """
    if lower > upper:
        raise ValueError(f"lower bound {lower} exceeds upper bound {upper}")
    source = rng if rng is not None else _SYSTEM_RANDOM
    try:
        value = source.randint(lower, upper)
    except (OSError, NotImplementedError) as exc:
        raise RandomSourceError(f"random source unavailable: {exc}") from exc
    if power > 1:
        return value ** power
    return value


def distinct_values_available(lower: int, upper: int, power: int) -> int:
    """Number of distinct values a draw over [lower, upper] can produce."""
    width = upper - lower + 1
    if power % 2 == 0 and lower < 0 < upper:
        # x and -x collide once raised to an even power
        return max(-lower, upper) + 1
    return width


# --------------------------------------------------------------------------- #
#  Verification & printing
# --------------------------------------------------------------------------- #
def _as_board(grid) -> np.ndarray:
    board = np.asarray(grid, dtype=object)
    if board.size == 0:
        return board
    if board.ndim != 2 or board.shape[0] != board.shape[1]:
        raise ValueError(f"grid must be N×N, got shape {board.shape}")
    return board


def is_magic(grid) -> bool:
    """
    True when every row, every column and both diagonals add up to the
    sum of row 0. An empty grid is never magic.
    """
    board = _as_board(grid)
    if board.size == 0:
        return False

    target = sum(board[0])

    for row in board[1:]:
        if sum(row) != target:
            return False

    for col in board.T:
        if sum(col) != target:
            return False

    main_diag = sum(board.diagonal())
    anti_diag = sum(np.fliplr(board).diagonal())
    return main_diag == target and anti_diag == target


@contextmanager
def _unlimited_int_digits() -> Iterator[None]:
    """Lift the int → str digit limit (Python 3.11+) for the duration of the block."""
    if not hasattr(sys, "get_int_max_str_digits"):
        yield
        return
    previous = sys.get_int_max_str_digits()
    sys.set_int_max_str_digits(0)
    try:
        yield
    finally:
        sys.set_int_max_str_digits(previous)


def format_square(grid, delimiter: str = "\t") -> str:
    board = _as_board(grid)
    with _unlimited_int_digits():
        return "\n".join(delimiter.join(str(v) for v in row) for row in board)


# --------------------------------------------------------------------------- #
#  Classical constructions (values 1..n²)
# --------------------------------------------------------------------------- #
def siamese_magic(n: int) -> np.ndarray:
    """Odd order, De la Loubère's staircase walk."""
    m = np.zeros((n, n), dtype=object)
    i, j = 0, n // 2
    for k in range(1, n * n + 1):
        m[i, j] = k
        i2, j2 = (i - 1) % n, (j + 1) % n
        if m[i2, j2]:
            i = (i + 1) % n
        else:
            i, j = i2, j2
    return m


def doubly_even_magic(n: int) -> np.ndarray:
    """n % 4 == 0: complement every cell on the diagonals of each 4×4 block."""
    m = np.array(range(1, n * n + 1), dtype=object).reshape(n, n)
    rows, cols = np.indices((n, n))
    mask = (rows % 4 == cols % 4) | ((rows % 4) + (cols % 4) == 3)
    m[mask] = n * n + 1 - m[mask]
    return m


def singly_even_magic(n: int) -> np.ndarray:
    """n % 4 == 2: Strachey's method built from four odd sub-squares."""
    half = n // 2
    sub = siamese_magic(half)
    sq = half * half
    m = np.block([[sub, sub + 2 * sq],
                  [sub + 3 * sq, sub + sq]])

    k = (n - 2) // 4
    for i in range(half):
        left = range(1, k + 1) if i == half // 2 else range(k)
        right = range(n - k + 1, n)
        for j in itertools.chain(left, right):
            m[i, j], m[i + half, j] = m[i + half, j], m[i, j]
    return m


def classical_magic(n: int) -> np.ndarray:
    """Return an ordinary magic square of order n filled with 1..n²."""
    if n < 1 or n == 2:
        raise ValueError(f"no magic square of order {n} with distinct values")
    if n % 2 == 1:
        return siamese_magic(n)
    if n % 4 == 0:
        return doubly_even_magic(n)
    return singly_even_magic(n)


# --------------------------------------------------------------------------- #
#  Engine
# --------------------------------------------------------------------------- #
class MagicSquare:
    """
    One N×N grid plus the strategies that fill it.

    Uniqueness draws are rejection sampling: without ``max_attempts`` a
    range holding fewer than N² distinct values never finishes. Callers are
    expected to pass ranges wide enough for the grid.
    """

    def __init__(self, config: SquareConfig, rng: Optional[RandomSource] = None) -> None:
        self.config = config
        self.rng = rng if rng is not None else _SYSTEM_RANDOM
        n = config.size
        self._grid = np.zeros((n, n), dtype=object)

    @property
    def size(self) -> int:
        return self.config.size

    @property
    def grid(self) -> np.ndarray:
        return self._grid

    def rows(self) -> List[List[int]]:
        return self._grid.tolist()

    # ---------- Helpers ---------------------------------------------------- #
    def _check_range(self, lower: int, upper: int) -> None:
        if lower > upper:
            raise ValueError(f"lower bound {lower} exceeds upper bound {upper}")
        if not self.config.unique:
            return
        available = distinct_values_available(lower, upper, self.config.power)
        needed = self.size * self.size
        if available < needed:
            logger.warning("range [%d, %d] holds %d distinct values but the grid "
                           "needs %d; unique fill cannot finish", lower, upper,
                           available, needed)

    def _draw(self, lower: int, upper: int, used: set) -> int:
        cfg = self.config
        for attempt in itertools.count(1):
            num = generate_random_bigint(lower, upper, cfg.power, self.rng)
            if not cfg.unique or num not in used:
                if attempt > 1:
                    logger.debug("cell accepted after %d draws", attempt)
                return num
            if cfg.max_attempts is not None and attempt >= cfg.max_attempts:
                raise RetryLimitError(
                    f"no unused value in [{lower}, {upper}] after {attempt} draws")

    def _scoped_upper(self, lower: int, upper: int, row_sum: int,
                      row_partial: int, col_partial: int, i: int, j: int,
                      used: set) -> int:
        """
        Largest draw that still leaves room for the later cells in row i /
        column j. Falls back to ``upper`` when [lower, cap] is empty or, under
        uniqueness, holds no unused value.
        """
        if self.config.power != 1:
            return upper
        n = self.size
        row_room = row_sum - row_partial - lower * (n - 1 - j)
        col_room = row_sum - col_partial - lower * (n - 1 - i)
        cap = min(upper, row_room, col_room)
        if cap < lower:
            return upper
        if self.config.unique:
            taken = sum(1 for v in used if lower <= v <= cap)
            if taken >= cap - lower + 1:
                logger.debug("capped range [%d, %d] exhausted, widening", lower, cap)
                return upper
        return cap

    # ---------- Strategies ------------------------------------------------- #
    def populate_random(self, lower: int, upper: int) -> None:
        """Fill every cell with an independent draw from [lower, upper]."""
        self._check_range(lower, upper)
        used: set = set()
        n = self.size
        for i in range(n):
            for j in range(n):
                num = self._draw(lower, upper, used)
                self._grid[i, j] = num
                used.add(num)
        logger.debug("random fill done: %d distinct values", len(used))

    def populate_determined(self, lower: int, upper: int) -> None:
        """
        Fill row 0 at random and force every other row and column onto its
        sum.

        Interior cells (not in the last row or last column) are drawn at
        random. Each last-column cell is whatever its row still needs, and
        each last-row cell is whatever its column still needs, so all rows
        and columns share the row-0 sum. Derived cells are not raised to
        ``power`` and may fall outside [lower, upper]. Diagonals are left to
        chance.

        With power 1, interior draws are capped to the budget left in their
        row and column. A cap whose range has no unused value left widens
        back to ``upper``, so any range with at least N² values finishes.

        Raises NonUniqueFillError when uniqueness is on and a derived cell
        repeats an earlier value.
        """
        self._check_range(lower, upper)
        n = self.size
        if n == 0:
            return
        used: set = set()
        col_sums = [0] * n

        row_sum = 0
        for j in range(n):
            num = self._draw(lower, upper, used)
            self._grid[0, j] = num
            row_sum += num
            col_sums[j] += num
            used.add(num)
        logger.debug("determined fill: target sum %d", row_sum)

        for i in range(1, n):
            row_partial = 0
            for j in range(n):
                if i == n - 1:
                    num = row_sum - col_sums[j]
                elif j == n - 1:
                    num = row_sum - row_partial
                else:
                    cap = self._scoped_upper(lower, upper, row_sum,
                                             row_partial, col_sums[j], i, j, used)
                    num = self._draw(lower, cap, used)
                self._grid[i, j] = num
                row_partial += num
                col_sums[j] += num
                used.add(num)

        if self.config.unique and len(used) < n * n:
            raise NonUniqueFillError(
                f"only {len(used)} distinct values for {n * n} cells")

    def populate_classical(self, lower: int, upper: int) -> None:
        """
        Place a textbook magic square of order N into [lower, upper].

        The 1..N² construction is mapped through ``offset + (k - 1) * step``
        with random offset and step, then randomly rotated and mirrored. The
        result is always magic and its values are distinct.
        """
        if self.config.power != 1:
            raise ValueError("classical construction needs power == 1")
        if lower > upper:
            raise ValueError(f"lower bound {lower} exceeds upper bound {upper}")
        n = self.size
        base = classical_magic(n)
        spread = n * n - 1

        if spread == 0:
            step = 1
        else:
            max_step = (upper - lower) // spread
            if max_step < 1:
                raise ValueError(
                    f"range [{lower}, {upper}] is too narrow for {n * n} distinct values")
            step = generate_random_bigint(1, max_step, rng=self.rng)
        offset = generate_random_bigint(lower, upper - spread * step, rng=self.rng)

        board = (base - 1) * step + offset
        board = np.rot90(board, generate_random_bigint(0, 3, rng=self.rng))
        if generate_random_bigint(0, 1, rng=self.rng):
            board = np.fliplr(board)
        self._grid[:, :] = board
        logger.debug("classical fill: offset %d, step %d", offset, step)

    # ---------- Inspection ------------------------------------------------- #
    def is_magic(self) -> bool:
        return is_magic(self._grid)

    def format(self, delimiter: str = "\t") -> str:
        return format_square(self._grid, delimiter)

    def print_square(self, delimiter: str = "\t", file: Optional[TextIO] = None) -> None:
        out = file if file is not None else sys.stdout
        if self.size:
            print(self.format(delimiter), file=out)
