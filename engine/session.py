"""
A player's plinko table: accepts drop requests and keeps track of the balls
that are still falling.
"""
import asyncio
import itertools
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal

from engine.board import BoardConfig
from engine.ledger import AccountLedger, AccountSnapshot
from engine.lifecycle import BallLifecycle, BallView
from engine.paths import PathGenerator
from engine.scheduler import TickScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything a UI needs to show, read in one go."""
    account: AccountSnapshot
    active_ball_count: int
    drops_accepted: int
    drops_rejected: int
    is_accepting_input: bool

    @property
    def balance(self) -> Decimal:
        return self.account.balance


class DropSession:
    """
    Owns the in-flight ball count for one player and spawns balls on request.

    The ledger, scheduler and path generator are passed in so several tables
    can share one scheduler and tests can supply deterministic randomness.
    """

    def __init__(
        self,
        board: BoardConfig,
        ledger: AccountLedger | None = None,
        scheduler: TickScheduler | None = None,
        path_generator: PathGenerator | None = None,
        name: str = "table",
    ):
        self.board = board
        self.ledger = ledger or AccountLedger(board.start_balance)
        self.scheduler = scheduler or TickScheduler(board.tick_interval)
        self.path_generator = path_generator or PathGenerator()
        self.name = name
        self.active_ball_count = 0
        self.drops_accepted = 0
        self.drops_rejected = 0
        self._lock = threading.Lock()
        self._ball_ids = itertools.count(1)
        self._in_flight: dict[int, BallLifecycle] = {}
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def is_accepting_input(self) -> bool:
        return self.ledger.balance >= self.board.drop_cost

    def request_drop(self) -> bool:
        """
        Pays for and launches ``balls_per_drop`` balls.
        Returns False, changing nothing but the rejection counter, when the
        balance does not cover the whole drop.
        """
        total_cost = self.board.drop_cost

        with self.ledger.lock:
            if not self.ledger.debit(total_cost):
                with self._lock:
                    self.drops_rejected += 1
                logger.info(
                    "[%s] Drop rejected: costs %s, balance %s",
                    self.name, total_cost, self.ledger.balance
                )
                return False
            self.ledger.record_wager(total_cost)

            with self._lock:
                self.drops_accepted += 1
                self.active_ball_count += self.board.balls_per_drop
                self._idle.clear()
                balls = [self._spawn(index) for index in range(self.board.balls_per_drop)]

        for ball in balls:
            self.scheduler.add(ball)

        logger.info(
            "[%s] Drop accepted: %d ball(s) for %s", self.name, len(balls), total_cost
        )
        return True

    def _spawn(self, index: int) -> BallLifecycle:
        ball = BallLifecycle(
            ball_id=next(self._ball_ids),
            board=self.board,
            ledger=self.ledger,
            path_generator=self.path_generator,
            start_delay=index * self.board.stagger_ticks,
            settle_ticks=self.board.settle_ticks,
            on_done=self._on_ball_done,
        )
        self._in_flight[ball.ball_id] = ball
        logger.debug("[%s] Spawned ball %s heading for slot %s", self.name, ball.ball_id, ball.terminal_index)
        return ball

    def _on_ball_done(self, ball: BallLifecycle):
        with self._lock:
            if self._in_flight.pop(ball.ball_id, None) is None:
                logger.warning("[%s] Ball %s reported done twice", self.name, ball.ball_id)
                return
            self.active_ball_count = max(0, self.active_ball_count - 1)
            if self.active_ball_count == 0:
                self._idle.set()

    def balls(self) -> list[BallView]:
        """Views of every ball still on the board, oldest first."""
        with self._lock:
            return [ball.view() for ball in self._in_flight.values()]

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            active = self.active_ball_count
            accepted, rejected = self.drops_accepted, self.drops_rejected
        account = self.ledger.snapshot()
        return SessionSnapshot(
            account=account,
            active_ball_count=active,
            drops_accepted=accepted,
            drops_rejected=rejected,
            is_accepting_input=account.balance >= self.board.drop_cost,
        )

    async def wait_idle(self):
        """Returns once every ball launched so far has finished."""
        await self._idle.wait()
