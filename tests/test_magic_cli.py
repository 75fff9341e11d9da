"""
Tests for the command-line front end.
"""

import io
import logging
import random
import re
import sys

import pytest

import magic_cli
from logging_config import setup_logging
from magic_cli import build_config, parse_args, run, status_line
from magic_square import SquareConfig


STATUS = re.compile(r"^(Random|Determined|Classical) square IS (a Magic Square!|NOT a Magic Square\.)$")


def run_to_lines(cfg, lower, upper, seed=0, **kwargs):
    out = io.StringIO()
    code = run(cfg, lower, upper, rng=random.Random(seed), out=out, **kwargs)
    return code, out.getvalue().splitlines()


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def default_digit_limit():
    if not hasattr(sys, "set_int_max_str_digits"):
        yield
        return
    previous = sys.get_int_max_str_digits()
    sys.set_int_max_str_digits(4300)
    yield
    sys.set_int_max_str_digits(previous)


class TestStatusLine:

    def test_magic(self):
        assert status_line("Random", True) == "Random square IS a Magic Square!"

    def test_not_magic(self):
        assert status_line("Determined", False) == "Determined square IS NOT a Magic Square."


class TestParseArgs:
    """Test cases for argument parsing and config building."""

    def test_defaults_match_reference_run(self):
        args = parse_args([])
        assert (args.n, args.lower, args.upper, args.power) == (3, 1, 1_000_000, 1)
        assert args.delimiter == "\t"
        assert build_config(args) == SquareConfig(size=3, unique=True, power=1)

    def test_flags_reach_config(self):
        args = parse_args(["--n", "5", "--power", "3", "--allow-duplicates",
                           "--max-attempts", "40"])
        assert build_config(args) == SquareConfig(size=5, unique=False, power=3,
                                                  max_attempts=40)

    def test_big_bounds(self):
        args = parse_args(["--lower", "-" + "9" * 40, "--upper", "1" + "0" * 40])
        assert args.lower == -int("9" * 40)
        assert args.upper == 10 ** 40

    @pytest.mark.parametrize("argv", [
        ["--lower", "10", "--upper", "1"],
        ["--power", "0"],
        ["--n", "-1"],
        ["--max-attempts", "0"],
    ])
    def test_invalid_arguments_exit(self, argv):
        with pytest.raises(SystemExit):
            parse_args(argv)


class TestRun:
    """Test cases for the full random → determined run."""

    def test_reference_run_layout(self):
        code, lines = run_to_lines(SquareConfig(size=3), 1, 1_000_000, seed=42)
        assert code == 0
        assert len(lines) == 8
        for line in lines[0:3] + lines[4:7]:
            cells = line.split("\t")
            assert len(cells) == 3
            assert all(re.fullmatch(r"-?\d+", c) for c in cells)
        assert STATUS.match(lines[3]).group(1) == "Random"
        assert STATUS.match(lines[7]).group(1) == "Determined"

    def test_determined_rows_and_columns_share_sum(self):
        code, lines = run_to_lines(SquareConfig(size=3), 1, 1_000_000, seed=7)
        assert code == 0
        rows = [[int(c) for c in line.split("\t")] for line in lines[4:7]]
        target = sum(rows[0])
        assert all(sum(r) == target for r in rows)
        assert all(sum(r[j] for r in rows) == target for j in range(3))

    def test_constant_range_is_magic_both_times(self):
        code, lines = run_to_lines(SquareConfig(size=3, unique=False), 5, 5)
        assert code == 0
        assert lines[3] == "Random square IS a Magic Square!"
        assert lines[7] == "Determined square IS a Magic Square!"

    def test_determined_failure_stops_run(self):
        code, lines = run_to_lines(SquareConfig(size=2), 1, 1_000_000, seed=3)
        assert code == 1
        assert lines[2].startswith("Random square IS")
        assert lines[-1].startswith("Error populating determined square:")
        assert len(lines) == 4

    def test_random_failure_prints_only_error(self):
        cfg = SquareConfig(size=2, max_attempts=4)
        code, lines = run_to_lines(cfg, 1, 3)
        assert code == 1
        assert len(lines) == 1
        assert lines[0].startswith("Error populating square:")

    def test_classical_pass(self):
        code, lines = run_to_lines(SquareConfig(size=4), 1, 10 ** 12,
                                   seed=9, classical=True)
        assert code == 0
        assert lines[-1] == "Classical square IS a Magic Square!"
        assert len(lines) == 15

    def test_classical_with_power_reports_error(self):
        cfg = SquareConfig(size=3, unique=False, power=2)
        code, lines = run_to_lines(cfg, 1, 100, classical=True)
        assert code == 1
        assert lines[-1] == "Error populating classical square: classical construction needs power == 1"

    def test_custom_delimiter(self):
        code, lines = run_to_lines(SquareConfig(size=2, unique=False), 1, 9,
                                   delimiter=",")
        assert code == 0
        assert len(lines[0].split(",")) == 2

    def test_prints_values_beyond_digit_limit(self, default_digit_limit):
        # 999_000 ** 1000 has close to 6000 digits
        cfg = SquareConfig(size=1, unique=False, power=1000)
        code, lines = run_to_lines(cfg, 999_000, 1_000_000, seed=5)
        assert code == 0
        assert len(lines) == 4
        assert len(lines[0]) > 5000 and lines[0].isdigit()
        assert lines[1] == "Random square IS a Magic Square!"


class TestMain:

    def test_main_runs_with_system_randomness(self, capsys, restore_root_logger):
        code = magic_cli.main(["--n", "3", "--allow-duplicates", "--classical"])
        out = capsys.readouterr().out
        assert code == 0
        assert "Classical square IS a Magic Square!" in out
        assert "Random square IS" in out

    def test_main_error_exit_code(self, capsys, restore_root_logger):
        code = magic_cli.main(["--n", "2"])
        assert code == 1
        assert "Error populating determined square:" in capsys.readouterr().out


class TestSetupLogging:

    def test_writes_log_file(self, tmp_path, restore_root_logger):
        log_file = tmp_path / "run.log"
        setup_logging(logging.DEBUG, str(log_file))
        logging.getLogger("magic_square").debug("hello from test")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello from test" in log_file.read_text(encoding="utf-8")

    def test_repeat_setup_does_not_stack_handlers(self, restore_root_logger):
        setup_logging(logging.INFO)
        setup_logging(logging.INFO)
        assert len(logging.getLogger().handlers) == 1
