#!/usr/bin/env python3
"""
PLINKO BOT — Engine Unit Test Suite

Run: python tests.py
     python tests.py -v              # verbose
     python tests.py TestSettlement  # run specific class

Test categories:
  TestBoardConfig    — Validation, config loading, binomial return
  TestPathGenerator  — Path length, terminal range, replay
  TestSettlement     — Multiplier lookup, win/loss classification
  TestAccountLedger  — Debit/credit rules, statistics, thread safety
  TestBallLifecycle  — Row-per-tick progress, single settlement, completion
"""

import random
import sys
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from pathlib import Path as FsPath
from types import SimpleNamespace

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = FsPath(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from engine.board import (  # noqa: E402
    DEFAULT_MULTIPLIERS, BoardConfig, expected_return, slot_probabilities,
)
from engine.errors import ContractViolation  # noqa: E402
from engine.ledger import AccountLedger  # noqa: E402
from engine.lifecycle import BallLifecycle, BallState  # noqa: E402
from engine.paths import LEFT, RIGHT, Path, PathGenerator  # noqa: E402
from engine.settlement import Outcome, settle  # noqa: E402


MULTIPLIERS = [Decimal(m) for m in DEFAULT_MULTIPLIERS]


class FixedRandom:
    """Random source that replays a fixed list of draws, cycling."""

    def __init__(self, values):
        self.values = list(values)
        self.calls = 0

    def random(self):
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value


def path_source(rights, rows):
    """Draws that make a ball go right ``rights`` times, then left."""
    return FixedRandom([0.9] * rights + [0.1] * (rows - rights))


# ============================================================
# Board Configuration Tests
# ============================================================

class TestBoardConfig(unittest.TestCase):
    """BoardConfig validation and derived values."""

    def test_defaults_match_table(self):
        board = BoardConfig()
        self.assertEqual(board.row_count, 16)
        self.assertEqual(board.slot_count, 17)
        self.assertEqual(board.bet_cost, Decimal("2.00"))
        self.assertEqual(board.start_balance, Decimal("500.00"))
        self.assertEqual(board.multipliers[0], Decimal("110"))
        self.assertEqual(board.multipliers[8], Decimal("0.3"))

    def test_multiplier_length_mismatch_rejected(self):
        with self.assertRaises(ContractViolation):
            BoardConfig(row_count=8)

    def test_slot_tag_length_mismatch_rejected(self):
        with self.assertRaises(ContractViolation):
            BoardConfig(row_count=2, multipliers=[2, 0.5, 2], slot_tags=["red", "red"])

    def test_zero_rows_rejected(self):
        with self.assertRaises(ContractViolation):
            BoardConfig(row_count=0, multipliers=[1], slot_tags=["red"])

    def test_non_positive_bet_rejected(self):
        with self.assertRaises(ContractViolation):
            BoardConfig(bet_cost="0")

    def test_negative_multiplier_rejected(self):
        with self.assertRaises(ContractViolation):
            BoardConfig(row_count=1, multipliers=[-1, 2], slot_tags=["red", "red"])

    def test_contract_violation_is_value_error(self):
        with self.assertRaises(ValueError):
            BoardConfig(balls_per_drop=0)

    def test_bad_amount_string_rejected(self):
        with self.assertRaises(ContractViolation):
            BoardConfig(bet_cost="two dollars")

    def test_drop_cost_and_settle_ticks(self):
        board = BoardConfig(balls_per_drop=3, tick_interval=0.25, settle_pause=1.0)
        self.assertEqual(board.drop_cost, Decimal("6.00"))
        self.assertEqual(board.settle_ticks, 4)
        self.assertEqual(BoardConfig(tick_interval=0.3, settle_pause=1.0).settle_ticks, 4)

    def test_settle_ticks_ignore_float_noise(self):
        self.assertEqual(BoardConfig(tick_interval=0.1, settle_pause=1.1).settle_ticks, 11)
        self.assertEqual(BoardConfig(tick_interval=0.1, settle_pause=0.3).settle_ticks, 3)

    def test_multi_ball_drop_needs_stagger(self):
        with self.assertRaises(ContractViolation):
            BoardConfig(balls_per_drop=3, stagger_ticks=0)
        self.assertEqual(BoardConfig(balls_per_drop=1, stagger_ticks=0).stagger_ticks, 0)

    def test_from_config(self):
        config = SimpleNamespace(
            PLINKO_ROWS=2,
            PLINKO_BET_COST="1.50",
            PLINKO_BALLS_PER_DROP=2,
            PLINKO_MULTIPLIERS="3, 0.5, 3",
            PLINKO_SLOT_TAGS="red,yellow,red",
            PLINKO_START_BALANCE="100",
            PLINKO_TICK_INTERVAL=0.25,
            PLINKO_SETTLE_PAUSE=1.25,
            PLINKO_STAGGER_TICKS=2,
        )
        board = BoardConfig.from_config(config)
        self.assertEqual(board.row_count, 2)
        self.assertEqual(board.multipliers, (Decimal("3"), Decimal("0.5"), Decimal("3")))
        self.assertEqual(board.slot_tags, ("red", "yellow", "red"))
        self.assertEqual(board.drop_cost, Decimal("3.00"))
        self.assertEqual(board.settle_ticks, 5)

    def test_from_config_mismatch_fails(self):
        config = SimpleNamespace(
            PLINKO_ROWS=4,
            PLINKO_BET_COST="2",
            PLINKO_BALLS_PER_DROP=1,
            PLINKO_MULTIPLIERS="3,0.5,3",
            PLINKO_SLOT_TAGS="red,yellow,red",
            PLINKO_START_BALANCE="100",
            PLINKO_TICK_INTERVAL=0.25,
            PLINKO_SETTLE_PAUSE=1.0,
            PLINKO_STAGGER_TICKS=1,
        )
        with self.assertRaises(ContractViolation):
            BoardConfig.from_config(config)

    def test_slot_probabilities_sum_to_one(self):
        probs = slot_probabilities(16)
        self.assertEqual(len(probs), 17)
        self.assertAlmostEqual(sum(probs), 1.0)
        self.assertAlmostEqual(probs[0], 1 / 2 ** 16)

    def test_expected_return_of_flat_table(self):
        board = BoardConfig(row_count=3, multipliers=[1, 1, 1, 1], slot_tags=["y"] * 4)
        self.assertAlmostEqual(expected_return(board), 1.0)

    def test_expected_return_of_default_table(self):
        rtp = expected_return(BoardConfig())
        self.assertGreater(rtp, 0.9)
        self.assertLess(rtp, 1.1)


# ============================================================
# Path Generator Tests
# ============================================================

class TestPathGenerator(unittest.TestCase):
    """Path shape and terminal index."""

    def test_length_and_range_for_many_row_counts(self):
        generator = PathGenerator(random.Random(1234))
        for rows in range(1, 25):
            for _ in range(20):
                path, terminal = generator.generate(rows)
                self.assertEqual(len(path), rows)
                self.assertTrue(0 <= terminal <= rows)
                self.assertTrue(all(step in (LEFT, RIGHT) for step in path))

    def test_terminal_is_sum_and_replays(self):
        generator = PathGenerator(random.Random(99))
        for _ in range(100):
            path, terminal = generator.generate(16)
            self.assertEqual(terminal, sum(path))
            self.assertEqual(path.terminal_index, terminal)
            self.assertEqual(path.replay(), terminal)

    def test_seeded_sources_are_reproducible(self):
        first = PathGenerator(random.Random(7)).generate(16)
        second = PathGenerator(random.Random(7)).generate(16)
        self.assertEqual(first, second)

    def test_right_only_above_half(self):
        path, terminal = PathGenerator(FixedRandom([0.5, 0.51])).generate(4)
        self.assertEqual(tuple(path), (LEFT, RIGHT, LEFT, RIGHT))
        self.assertEqual(terminal, 2)

    def test_one_draw_per_row(self):
        source = FixedRandom([0.2])
        PathGenerator(source).generate(16)
        self.assertEqual(source.calls, 16)

    def test_zero_rows_rejected(self):
        with self.assertRaises(ContractViolation):
            PathGenerator().generate(0)

    def test_column_at(self):
        path = Path([RIGHT, LEFT, RIGHT, RIGHT])
        self.assertEqual([path.column_at(r) for r in range(5)], [0, 1, 1, 2, 3])
        with self.assertRaises(IndexError):
            path.column_at(5)


# ============================================================
# Settlement Tests
# ============================================================

class TestSettlement(unittest.TestCase):
    """Multiplier lookup and outcome classification."""

    def test_centre_slot_is_loss(self):
        result = settle(8, Decimal("2.00"), MULTIPLIERS)
        self.assertEqual(result.multiplier, Decimal("0.3"))
        self.assertEqual(result.winnings, Decimal("0.60"))
        self.assertIs(result.outcome, Outcome.LOSS)
        self.assertEqual(result.net, Decimal("-1.40"))

    def test_edge_slot_is_win(self):
        result = settle(0, Decimal("2.00"), MULTIPLIERS)
        self.assertEqual(result.winnings, Decimal("220.00"))
        self.assertIs(result.outcome, Outcome.WIN)
        self.assertTrue(result.is_win)

    def test_breakeven_counts_as_loss(self):
        result = settle(6, Decimal("2.00"), MULTIPLIERS)
        self.assertEqual(result.multiplier, Decimal("1"))
        self.assertEqual(result.winnings, Decimal("2.00"))
        self.assertIs(result.outcome, Outcome.LOSS)

    def test_just_above_one_is_win(self):
        result = settle(5, Decimal("2.00"), MULTIPLIERS)
        self.assertEqual(result.winnings, Decimal("3.00"))
        self.assertIs(result.outcome, Outcome.WIN)

    def test_winnings_are_exact_for_every_slot(self):
        bet = Decimal("2.00")
        for index, multiplier in enumerate(MULTIPLIERS):
            result = settle(index, bet, MULTIPLIERS)
            self.assertEqual(result.winnings, bet * multiplier)
            expected = Outcome.WIN if multiplier > 1 else Outcome.LOSS
            self.assertIs(result.outcome, expected)

    def test_index_out_of_range(self):
        with self.assertRaises(IndexError):
            settle(17, Decimal("2.00"), MULTIPLIERS)
        with self.assertRaises(IndexError):
            settle(-1, Decimal("2.00"), MULTIPLIERS)


# ============================================================
# Account Ledger Tests
# ============================================================

class TestAccountLedger(unittest.TestCase):
    """Balance mutations and statistics."""

    def test_debit_and_credit(self):
        ledger = AccountLedger("10.00")
        self.assertTrue(ledger.debit("4.00"))
        ledger.credit("1.50")
        self.assertEqual(ledger.balance, Decimal("7.50"))

    def test_debit_refused_without_partial_change(self):
        ledger = AccountLedger("3.00")
        self.assertFalse(ledger.debit("3.01"))
        self.assertEqual(ledger.balance, Decimal("3.00"))

    def test_debit_of_exact_balance_allowed(self):
        ledger = AccountLedger("2.00")
        self.assertTrue(ledger.debit("2.00"))
        self.assertEqual(ledger.balance, Decimal("0"))

    def test_negative_amounts_rejected(self):
        ledger = AccountLedger("10")
        with self.assertRaises(ContractViolation):
            ledger.debit("-1")
        with self.assertRaises(ContractViolation):
            ledger.credit("-1")
        with self.assertRaises(ContractViolation):
            AccountLedger("-5")

    def test_record_settlement_counts(self):
        ledger = AccountLedger("0")
        ledger.record_wager("4.00")
        ledger.record_settlement(settle(0, Decimal("2.00"), MULTIPLIERS), slot_index=0)
        ledger.record_settlement(settle(6, Decimal("2.00"), MULTIPLIERS), slot_index=6)

        snap = ledger.snapshot()
        self.assertEqual(snap.total_wagered, Decimal("4.00"))
        self.assertEqual(snap.total_won, Decimal("222.00"))
        self.assertEqual((snap.wins, snap.losses), (1, 1))
        self.assertEqual(snap.balls_settled, 2)
        self.assertEqual(snap.biggest_multiplier, Decimal("110"))
        self.assertEqual(snap.slot_hits, {0: 1, 6: 1})
        self.assertEqual(snap.net, Decimal("218.00"))
        # record_settlement alone never touches the balance
        self.assertEqual(snap.balance, Decimal("0"))

    def test_concurrent_debits_never_overdraw(self):
        ledger = AccountLedger("100")
        with ThreadPoolExecutor(max_workers=16) as pool:
            results = list(pool.map(lambda _: ledger.debit("3"), range(100)))
        self.assertEqual(sum(results), 33)
        self.assertEqual(ledger.balance, Decimal("1"))

    def test_snapshot_never_sees_half_applied_settlement(self):
        seen = []

        class SlowLedger(AccountLedger):
            def credit(self, amount):
                super().credit(amount)
                # Read from another thread between the payout and the statistics
                reader = threading.Thread(target=lambda: seen.append(self.snapshot()))
                reader.start()
                reader.join(timeout=0.2)
                self.readers.append(reader)

        ledger = SlowLedger("10.00")
        ledger.readers = []
        ledger.debit("2.00")
        ledger.record_wager("2.00")
        board = BoardConfig(row_count=1, multipliers=["1", "3"], slot_tags=["yellow", "red"])
        ball = BallLifecycle(
            ball_id=1,
            board=board,
            ledger=ledger,
            path_generator=PathGenerator(path_source(1, 1)),
        )
        ball.advance()
        for reader in ledger.readers:
            reader.join()

        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0], ledger.snapshot())
        self.assertEqual(seen[0].balance, Decimal("14.00"))
        self.assertEqual(seen[0].total_won, Decimal("6.00"))
        self.assertEqual(seen[0].wins, 1)
        self.assertEqual(seen[0].balls_settled, 1)


# ============================================================
# Ball Lifecycle Tests
# ============================================================

class TestBallLifecycle(unittest.TestCase):
    """Tick-by-tick behaviour of a single ball."""

    def setUp(self):
        self.board = BoardConfig(settle_pause=0.5, tick_interval=0.25)
        self.ledger = AccountLedger(self.board.start_balance)
        self.done = []

    def make_ball(self, rights=6, start_delay=0, settle_ticks=2):
        return BallLifecycle(
            ball_id=1,
            board=self.board,
            ledger=self.ledger,
            path_generator=PathGenerator(path_source(rights, self.board.row_count)),
            start_delay=start_delay,
            settle_ticks=settle_ticks,
            on_done=self.done.append,
        )

    def test_path_computed_at_spawn(self):
        ball = self.make_ball(rights=6)
        self.assertIs(ball.state, BallState.SPAWNED)
        self.assertEqual(ball.terminal_index, 6)
        self.assertEqual(len(ball.path), 16)
        self.assertEqual(ball.row, 0)

    def test_one_row_per_tick(self):
        ball = self.make_ball(start_delay=2)
        rows = []
        for _ in range(2 + 16):
            ball.advance()
            rows.append(ball.row)
        self.assertEqual(rows, [0, 0] + list(range(1, 17)))

    def test_settles_on_last_row_then_pauses(self):
        ball = self.make_ball(rights=0, settle_ticks=2)
        for _ in range(15):
            ball.advance()
        self.assertIs(ball.state, BallState.FALLING)
        self.assertIsNone(ball.settlement)

        ball.advance()
        self.assertIs(ball.state, BallState.SETTLING)
        self.assertEqual(ball.settlement.winnings, Decimal("220.00"))
        self.assertEqual(self.ledger.balance, Decimal("720.00"))
        self.assertEqual(self.done, [])

        ball.advance()
        self.assertIs(ball.state, BallState.SETTLING)
        ball.advance()
        self.assertIs(ball.state, BallState.DONE)
        self.assertEqual(self.done, [ball])

    def test_zero_pause_finishes_on_landing_tick(self):
        ball = self.make_ball(settle_ticks=0)
        for _ in range(16):
            ball.advance()
        self.assertTrue(ball.is_done)
        self.assertEqual(len(self.done), 1)

    def test_settlement_and_completion_happen_once(self):
        ball = self.make_ball(rights=8)
        for _ in range(50):
            ball.advance()
        snap = self.ledger.snapshot()
        self.assertEqual(snap.balls_settled, 1)
        self.assertEqual(snap.total_won, Decimal("0.60"))
        self.assertEqual(len(self.done), 1)
        self.assertEqual(ball.row, 16)

    def test_view_tracks_column(self):
        ball = self.make_ball(rights=6)
        for _ in range(4):
            ball.advance()
        view = ball.view()
        self.assertEqual(view.row, 4)
        self.assertEqual(view.column, 4)
        self.assertEqual(view.terminal_index, 6)
        self.assertIs(view.state, BallState.FALLING)

    def test_negative_delays_rejected(self):
        with self.assertRaises(ContractViolation):
            self.make_ball(start_delay=-1)
        with self.assertRaises(ContractViolation):
            self.make_ball(settle_ticks=-1)


# ============================================================
# Main
# ============================================================

if __name__ == "__main__":
    # Configure logging to suppress noise during tests
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
