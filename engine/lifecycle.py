"""
One ball's life on the board, driven tick by tick by the scheduler.
"""
import logging
from enum import Enum
from typing import Callable, NamedTuple, Optional

from engine.board import BoardConfig
from engine.errors import ContractViolation
from engine.ledger import AccountLedger
from engine.paths import Path, PathGenerator
from engine.settlement import Settlement, settle

logger = logging.getLogger(__name__)


class BallState(Enum):
    SPAWNED = "spawned"
    FALLING = "falling"
    SETTLING = "settling"
    DONE = "done"


class BallView(NamedTuple):
    """What the renderer needs to know about a ball."""
    ball_id: int
    row: int
    column: int
    terminal_index: int
    state: BallState
    steps: Path


class BallLifecycle:
    """
    Spawned -> Falling -> Settling -> Done.

    The path is drawn up front; falling only reveals it one row per tick.
    ``on_done`` is called exactly once, when the ball reaches DONE.
    """

    def __init__(
        self,
        ball_id: int,
        board: BoardConfig,
        ledger: AccountLedger,
        path_generator: PathGenerator,
        start_delay: int = 0,
        settle_ticks: int = 0,
        on_done: Optional[Callable[["BallLifecycle"], None]] = None,
    ):
        if start_delay < 0:
            raise ContractViolation(f"start_delay must be >= 0, got {start_delay}")
        if settle_ticks < 0:
            raise ContractViolation(f"settle_ticks must be >= 0, got {settle_ticks}")

        self.ball_id = ball_id
        self.board = board
        self.ledger = ledger
        self.on_done = on_done
        self.path, self.terminal_index = path_generator.generate(board.row_count)
        self.row = 0
        self.state = BallState.SPAWNED
        self.settlement: Settlement | None = None
        self._delay_left = start_delay
        self._pause_left = settle_ticks

    @property
    def is_done(self) -> bool:
        return self.state is BallState.DONE

    def advance(self):
        """Moves the ball forward by one scheduler tick."""
        if self.state is BallState.SPAWNED:
            if self._delay_left > 0:
                self._delay_left -= 1
                return
            self.state = BallState.FALLING

        if self.state is BallState.FALLING:
            self.row += 1
            if self.row == self.board.row_count:
                self._settle()
            return

        if self.state is BallState.SETTLING:
            self._pause_left -= 1
            if self._pause_left <= 0:
                self._finish()

    def _settle(self):
        self.state = BallState.SETTLING
        self.settlement = settle(self.terminal_index, self.board.bet_cost, self.board.multipliers)
        self.ledger.apply_settlement(self.settlement, slot_index=self.terminal_index)
        logger.debug(
            "Ball %s landed in slot %s (%sx, %s)",
            self.ball_id, self.terminal_index, self.settlement.multiplier,
            self.settlement.outcome.value
        )
        if self._pause_left <= 0:
            self._finish()

    def _finish(self):
        self.state = BallState.DONE
        if self.on_done is not None:
            self.on_done(self)

    def view(self) -> BallView:
        return BallView(
            ball_id=self.ball_id,
            row=self.row,
            column=self.path.column_at(self.row),
            terminal_index=self.terminal_index,
            state=self.state,
            steps=self.path,
        )
