#!/usr/bin/env python3
"""
PLINKO BOT — Drop Session & Scheduler Test Suite

Run: python tests_session.py

Test categories:
  TestDropSession     — Acceptance, rejection, end-to-end settlement
  TestConcurrentDrops — Many requests, many balls, shared scheduler
  TestTickScheduler   — Tick ordering, listeners, asyncio driver
  TestRendering       — Board image, distribution chart, formatting
  TestCogSetup        — Settings validated before the cog loads
  TestCommandSync     — One slash-command sync path
"""

import asyncio
import random
import sys
import unittest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace
from unittest import mock

# ── Ensure project root is on sys.path ──
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from engine.board import BoardConfig  # noqa: E402
from engine.ledger import AccountLedger  # noqa: E402
from engine.lifecycle import BallState  # noqa: E402
from engine.paths import PathGenerator  # noqa: E402
from engine.scheduler import TickScheduler  # noqa: E402
from engine.session import DropSession  # noqa: E402

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


class FixedRandom:
    """Random source that replays a fixed list of draws, cycling."""

    def __init__(self, values):
        self.values = list(values)
        self.calls = 0

    def random(self):
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value


def make_session(board=None, rights=None, seed=0, scheduler=None):
    """Session whose balls always take ``rights`` right bounces (or a seeded path)."""
    board = board or BoardConfig()
    if rights is None:
        source = random.Random(seed)
    else:
        source = FixedRandom([0.9] * rights + [0.1] * (board.row_count - rights))
    return DropSession(
        board,
        scheduler=scheduler or TickScheduler(board.tick_interval),
        path_generator=PathGenerator(source),
    )


def run_to_idle(scheduler, limit=10_000):
    """Ticks the scheduler by hand until nothing is left in play."""
    for _ in range(limit):
        if scheduler.tick() == 0:
            return scheduler.ticks
    raise AssertionError("scheduler never went idle")


# ============================================================
# Drop Session Tests
# ============================================================

class TestDropSession(unittest.TestCase):
    """Single-table behaviour."""

    def test_breakeven_slot_scenario(self):
        """500.00 balance, one ball into the 1x slot: balance back to 500, one loss."""
        session = make_session(rights=6)
        self.assertTrue(session.request_drop())
        self.assertEqual(session.ledger.balance, Decimal("498.00"))
        self.assertEqual(session.active_ball_count, 1)

        run_to_idle(session.scheduler)

        snap = session.snapshot()
        self.assertEqual(snap.balance, Decimal("500.00"))
        self.assertEqual(snap.account.wins, 0)
        self.assertEqual(snap.account.losses, 1)
        self.assertEqual(snap.account.total_wagered, Decimal("2.00"))
        self.assertEqual(snap.account.total_won, Decimal("2.00"))
        self.assertEqual(snap.active_ball_count, 0)

    def test_rejected_when_drop_costs_more_than_balance(self):
        board = BoardConfig(balls_per_drop=3, start_balance="5.00")
        session = make_session(board)
        self.assertFalse(session.is_accepting_input)

        self.assertFalse(session.request_drop())

        snap = session.snapshot()
        self.assertEqual(snap.balance, Decimal("5.00"))
        self.assertEqual(snap.active_ball_count, 0)
        self.assertEqual(snap.account.total_wagered, Decimal("0"))
        self.assertEqual(snap.drops_rejected, 1)
        self.assertEqual(snap.drops_accepted, 0)
        self.assertEqual(session.scheduler.active_count, 0)

    def test_total_ticks_for_one_ball(self):
        board = BoardConfig(tick_interval=0.25, settle_pause=1.0)
        session = make_session(board, rights=3)
        session.request_drop()
        # 16 rows, then a 4 tick pause
        self.assertEqual(run_to_idle(session.scheduler), 20)

    def test_input_accepted_while_balls_fall(self):
        board = BoardConfig(start_balance="4.00")
        session = make_session(board, rights=8)
        self.assertTrue(session.request_drop())
        self.assertTrue(session.is_accepting_input)
        self.assertTrue(session.request_drop())
        self.assertEqual(session.active_ball_count, 2)
        self.assertFalse(session.is_accepting_input)
        self.assertFalse(session.request_drop())

    def test_multi_ball_drop_is_staggered(self):
        board = BoardConfig(balls_per_drop=3, stagger_ticks=2)
        session = make_session(board, rights=8)
        session.request_drop()
        self.assertEqual(session.ledger.balance, Decimal("494.00"))
        self.assertEqual(session.active_ball_count, 3)

        for _ in range(4):
            session.scheduler.tick()
        rows = [ball.row for ball in session.balls()]
        self.assertEqual(rows, [4, 2, 0])

    def test_balls_exposes_views(self):
        session = make_session(rights=6)
        session.request_drop()
        session.scheduler.tick()
        (view,) = session.balls()
        self.assertEqual(view.row, 1)
        self.assertEqual(view.column, 1)
        self.assertEqual(view.terminal_index, 6)
        self.assertIs(view.state, BallState.FALLING)

    def test_each_ball_settles_exactly_once(self):
        board = BoardConfig(balls_per_drop=4, start_balance="100")
        session = make_session(board, seed=42)
        for _ in range(3):
            session.request_drop()
        run_to_idle(session.scheduler)
        # Keep ticking after everything is done: nothing may change
        before = session.snapshot()
        for _ in range(30):
            session.scheduler.tick()
        after = session.snapshot()

        self.assertEqual(before, after)
        self.assertEqual(after.account.balls_settled, 12)
        self.assertEqual(after.account.wins + after.account.losses, 12)
        self.assertEqual(after.account.total_wagered, Decimal("24.00"))
        self.assertEqual(sum(after.account.slot_hits.values()), 12)
        self.assertEqual(
            after.balance,
            Decimal("100") - after.account.total_wagered + after.account.total_won,
        )


# ============================================================
# Concurrency Tests
# ============================================================

class TestConcurrentDrops(unittest.TestCase):
    """Many requests and many balls sharing state."""

    def test_accepted_requests_bounded_by_balance(self):
        board = BoardConfig(balls_per_drop=2, start_balance="25.00")
        session = make_session(board)
        accepted = [session.request_drop() for _ in range(20)]
        # floor(25 / 4) = 6
        self.assertEqual(sum(accepted), 6)
        self.assertEqual(session.ledger.balance, Decimal("1.00"))
        self.assertEqual(session.active_ball_count, 12)

    def test_threaded_requests_never_overdraw(self):
        board = BoardConfig(balls_per_drop=3, start_balance="100.00")
        session = make_session(board)
        with ThreadPoolExecutor(max_workers=16) as pool:
            accepted = list(pool.map(lambda _: session.request_drop(), range(64)))

        # floor(100 / 6) = 16
        self.assertEqual(sum(accepted), 16)
        self.assertEqual(session.ledger.balance, Decimal("4.00"))
        self.assertEqual(session.snapshot().account.total_wagered, Decimal("96.00"))
        self.assertEqual(session.active_ball_count, 48)
        self.assertEqual(session.drops_rejected, 48)

        run_to_idle(session.scheduler)
        self.assertEqual(session.active_ball_count, 0)
        self.assertEqual(session.snapshot().account.balls_settled, 48)

    def test_active_count_returns_to_zero_across_tables(self):
        scheduler = TickScheduler(0.25)
        board = BoardConfig(balls_per_drop=5, stagger_ticks=3)
        sessions = [make_session(board, seed=i, scheduler=scheduler) for i in range(4)]

        for tick in range(40):
            # New drops land at different moments so balls interleave
            if tick % 7 == 0:
                for session in sessions:
                    session.request_drop()
            scheduler.tick()
        run_to_idle(scheduler)

        for session in sessions:
            snap = session.snapshot()
            self.assertEqual(snap.active_ball_count, 0)
            self.assertEqual(snap.account.balls_settled, snap.drops_accepted * 5)
            self.assertEqual(session.balls(), [])


# ============================================================
# Scheduler Tests
# ============================================================

class RecordingBall:
    """Minimal lifecycle stand-in that finishes after ``lifetime`` ticks."""

    def __init__(self, name, log, lifetime=1, on_advance=None):
        self.name = name
        self.log = log
        self.lifetime = lifetime
        self.on_advance = on_advance

    @property
    def is_done(self):
        return self.lifetime <= 0

    def advance(self):
        self.log.append(self.name)
        self.lifetime -= 1
        if self.on_advance:
            self.on_advance()


class TestTickScheduler(unittest.TestCase):
    """Manual ticking."""

    def test_advances_in_registration_order(self):
        log = []
        scheduler = TickScheduler(0.1)
        scheduler.add(RecordingBall("a", log, lifetime=2))
        scheduler.add(RecordingBall("b", log, lifetime=1))
        self.assertEqual(scheduler.tick(), 1)
        self.assertEqual(scheduler.tick(), 0)
        self.assertEqual(log, ["a", "b", "a"])

    def test_ball_added_during_tick_waits(self):
        log = []
        scheduler = TickScheduler(0.1)
        late = RecordingBall("late", log)
        scheduler.add(RecordingBall("first", log, on_advance=lambda: scheduler.add(late)))
        scheduler.tick()
        self.assertEqual(log, ["first"])
        scheduler.tick()
        self.assertEqual(log, ["first", "late"])

    def test_listeners_called_every_tick(self):
        seen = []
        scheduler = TickScheduler(0.1)
        scheduler.listeners.append(lambda s: seen.append(s.ticks))
        scheduler.tick()
        scheduler.tick()
        self.assertEqual(seen, [1, 2])

    def test_failing_listener_does_not_stop_balls(self):
        log = []
        scheduler = TickScheduler(0.1)
        scheduler.listeners.append(lambda s: 1 / 0)
        scheduler.add(RecordingBall("a", log, lifetime=2))
        with self.assertLogs("engine.scheduler", level="ERROR"):
            scheduler.tick()
        scheduler.tick()
        self.assertEqual(log, ["a", "a"])

    def test_no_driver_without_event_loop(self):
        scheduler = TickScheduler(0.1)
        scheduler.add(RecordingBall("a", []))
        self.assertFalse(scheduler.is_running)

    def test_adds_from_threads_while_ticking_are_never_lost(self):
        log = []
        scheduler = TickScheduler(0.1)
        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [
                pool.submit(scheduler.add, RecordingBall(f"ball-{i}", log)) for i in range(200)
            ]
            while not all(future.done() for future in futures):
                scheduler.tick()
        run_to_idle(scheduler)
        self.assertEqual(sorted(log), sorted(f"ball-{i}" for i in range(200)))
        self.assertEqual(scheduler.active_count, 0)


class TestAsyncDriver(unittest.IsolatedAsyncioTestCase):
    """The background driver task used by the bot."""

    async def asyncSetUp(self):
        self.sleeps = []

        async def fake_sleep(delay):
            self.sleeps.append(delay)
            await asyncio.sleep(0)

        self.fake_sleep = fake_sleep
        board = BoardConfig(balls_per_drop=2, tick_interval=0.25, settle_pause=0.5)
        self.board = board
        self.scheduler = TickScheduler(board.tick_interval, sleep=fake_sleep)

    async def test_drop_runs_to_completion(self):
        session = make_session(self.board, rights=0, scheduler=self.scheduler)
        self.assertTrue(session.request_drop())
        self.assertTrue(self.scheduler.is_running)

        await asyncio.wait_for(session.wait_idle(), timeout=5)

        snap = session.snapshot()
        self.assertEqual(snap.active_ball_count, 0)
        self.assertEqual(snap.account.wins, 2)
        self.assertEqual(snap.balance, Decimal("500.00") - Decimal("4.00") + Decimal("440.00"))
        self.assertTrue(all(delay == 0.25 for delay in self.sleeps))

    async def test_driver_stops_when_idle_and_restarts(self):
        session = make_session(self.board, rights=8, scheduler=self.scheduler)
        session.request_drop()
        await asyncio.wait_for(session.wait_idle(), timeout=5)
        await asyncio.sleep(0)
        self.assertFalse(self.scheduler.is_running)

        session.request_drop()
        self.assertTrue(self.scheduler.is_running)
        await asyncio.wait_for(session.wait_idle(), timeout=5)
        self.assertEqual(session.snapshot().account.balls_settled, 4)

    async def test_wait_idle_returns_immediately_when_nothing_in_flight(self):
        session = make_session(self.board, scheduler=self.scheduler)
        await asyncio.wait_for(session.wait_idle(), timeout=1)

    async def test_drop_from_worker_thread_is_driven_by_bound_loop(self):
        session = make_session(self.board, rights=8, scheduler=self.scheduler)
        session.request_drop()
        await asyncio.wait_for(session.wait_idle(), timeout=5)

        self.assertTrue(await asyncio.to_thread(session.request_drop))
        await asyncio.wait_for(session.wait_idle(), timeout=5)
        self.assertEqual(session.snapshot().account.balls_settled, 4)

    async def test_first_drop_from_worker_thread_starts_driver(self):
        scheduler = TickScheduler(
            self.board.tick_interval, sleep=self.fake_sleep, loop=asyncio.get_running_loop()
        )
        session = make_session(self.board, rights=0, scheduler=scheduler)

        self.assertTrue(await asyncio.to_thread(session.request_drop))
        await asyncio.wait_for(session.wait_idle(), timeout=5)
        self.assertEqual(session.snapshot().account.wins, 2)
        self.assertEqual(scheduler.active_count, 0)


# ============================================================
# Rendering Tests
# ============================================================

class TestRendering(unittest.TestCase):
    """Pillow board, matplotlib chart and text formatting."""

    def test_board_image_is_png(self):
        from utils.board_graphics import board_size, render_board
        from PIL import Image

        session = make_session(BoardConfig(balls_per_drop=3), seed=3)
        session.request_drop()
        for _ in range(18):
            session.scheduler.tick()

        buf = render_board(session.board, session.balls())
        self.assertTrue(buf.getvalue().startswith(PNG_MAGIC))
        self.assertEqual(Image.open(buf).size, board_size(16))

    def test_ball_lands_on_slot_centre(self):
        from utils.board_graphics import PEG_SPACING_X, ball_position, board_size

        width, _ = board_size(16)
        x_left, _ = ball_position(16, 0, 16)
        x_mid, _ = ball_position(16, 8, 16)
        self.assertAlmostEqual(x_mid, width / 2)
        self.assertAlmostEqual(x_mid - x_left, 8 * PEG_SPACING_X)

    def test_distribution_chart_is_png(self):
        from utils.graph_utils import generate_distribution_image

        buf = generate_distribution_image(16, {8: 5, 7: 3, 0: 1})
        self.assertTrue(buf.getvalue().startswith(PNG_MAGIC))
        empty = generate_distribution_image(16, {})
        self.assertTrue(empty.getvalue().startswith(PNG_MAGIC))

    def test_formatting(self):
        from utils.embed_utils import format_currency, format_multiplier

        self.assertEqual(format_currency(Decimal("500")), "$500.00")
        self.assertEqual(format_currency(Decimal("1234.5")), "$1,234.50")
        self.assertEqual(format_multiplier(Decimal("110")), "110x")
        self.assertEqual(format_multiplier(Decimal("1.50")), "1.5x")
        self.assertEqual(format_multiplier(Decimal("0.3")), "0.3x")


class TestCogSetup(unittest.TestCase):
    """Settings checked before the plinko cog is registered."""

    def make_config(self, **overrides):
        values = dict(
            PLINKO_ROWS=2,
            PLINKO_BET_COST="1.00",
            PLINKO_BALLS_PER_DROP=1,
            PLINKO_MULTIPLIERS="3,0.5,3",
            PLINKO_SLOT_TAGS="red,yellow,red",
            PLINKO_START_BALANCE="50",
            PLINKO_TICK_INTERVAL=0.25,
            PLINKO_SETTLE_PAUSE=0.5,
            PLINKO_STAGGER_TICKS=1,
            PLINKO_RENDER_EVERY=4,
        )
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_valid_settings_build_board(self):
        from cogs.games.plinko import load_board

        board = load_board(self.make_config())
        self.assertEqual(board.row_count, 2)
        self.assertEqual(board.settle_ticks, 2)

    def test_zero_render_interval_rejected(self):
        from cogs.games.plinko import load_board
        from engine.errors import ContractViolation

        for render_every in (0, -2):
            with self.assertRaises(ContractViolation):
                load_board(self.make_config(PLINKO_RENDER_EVERY=render_every))

    def test_multi_ball_without_stagger_rejected(self):
        from cogs.games.plinko import load_board
        from engine.errors import ContractViolation

        with self.assertRaises(ContractViolation):
            load_board(self.make_config(PLINKO_BALLS_PER_DROP=2, PLINKO_STAGGER_TICKS=0))


class TestCommandSync(unittest.IsolatedAsyncioTestCase):
    """Slash commands are synced once, from setup_hook."""

    async def asyncSetUp(self):
        from bot import PlinkoBot

        self.bot = PlinkoBot()
        self.sync = mock.AsyncMock(return_value=[])
        self.copy = mock.Mock()
        patchers = [
            mock.patch.object(self.bot.tree, "sync", self.sync),
            mock.patch.object(self.bot.tree, "copy_global_to", self.copy),
        ]
        for patcher in patchers:
            patcher.start()
            self.addCleanup(patcher.stop)

    async def test_dev_guilds_get_a_copy(self):
        from config import Config

        with mock.patch.object(Config, "DEV_GUILD_IDS", [111, 222]):
            await self.bot.sync_commands()
        self.assertEqual(self.copy.call_count, 2)
        synced = [call.kwargs["guild"].id for call in self.sync.await_args_list]
        self.assertEqual(synced, [111, 222])

    async def test_global_sync_without_dev_guilds(self):
        from config import Config

        with mock.patch.object(Config, "DEV_GUILD_IDS", []):
            await self.bot.sync_commands()
        self.sync.assert_awaited_once_with()
        self.copy.assert_not_called()

    async def test_no_prefix_sync_command(self):
        self.assertIsNone(self.bot.get_command("sync"))
        self.assertFalse(self.bot.intents.message_content)


# ============================================================
# Main
# ============================================================

if __name__ == "__main__":
    # Configure logging to suppress noise during tests
    import logging
    logging.disable(logging.WARNING)

    unittest.main(verbosity=2)
