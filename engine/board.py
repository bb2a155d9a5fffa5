"""
Static board configuration: row count, stake, payout table and timings.
"""
import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from engine.errors import ContractViolation

# "High" risk table: big edges, sub-1x centre
DEFAULT_MULTIPLIERS = (
    "110", "41", "10", "5", "3", "1.5", "1", "0.5", "0.3",
    "0.5", "1", "1.5", "3", "5", "10", "41", "110",
)
DEFAULT_SLOT_TAGS = (
    "red", "red", "red", "orange", "orange", "orange", "yellow", "yellow", "yellow",
    "yellow", "yellow", "orange", "orange", "orange", "red", "red", "red",
)


def to_decimal(value) -> Decimal:
    """Converts config values (str, int, float) to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ContractViolation(f"not a valid amount: {value!r}") from e


@dataclass(frozen=True)
class BoardConfig:
    """
    Everything that is fixed for the lifetime of a plinko table.

    Timings are in seconds; ``stagger_ticks`` is how many scheduler ticks
    each extra ball of a multi-ball drop waits before it starts falling.
    """
    row_count: int = 16
    bet_cost: Decimal = Decimal("2.00")
    balls_per_drop: int = 1
    multipliers: tuple = tuple(Decimal(m) for m in DEFAULT_MULTIPLIERS)
    slot_tags: tuple = DEFAULT_SLOT_TAGS
    start_balance: Decimal = Decimal("500.00")
    tick_interval: float = 0.25
    settle_pause: float = 1.0
    stagger_ticks: int = 1

    def __post_init__(self):
        # Normalise so callers may pass lists or strings
        object.__setattr__(self, "bet_cost", to_decimal(self.bet_cost))
        object.__setattr__(self, "start_balance", to_decimal(self.start_balance))
        object.__setattr__(self, "multipliers", tuple(to_decimal(m) for m in self.multipliers))
        object.__setattr__(self, "slot_tags", tuple(self.slot_tags))
        self._validate()

    def _validate(self):
        if not isinstance(self.row_count, int) or self.row_count < 1:
            raise ContractViolation(f"row_count must be an integer >= 1, got {self.row_count!r}")
        if self.bet_cost <= 0:
            raise ContractViolation(f"bet_cost must be positive, got {self.bet_cost}")
        if not isinstance(self.balls_per_drop, int) or self.balls_per_drop < 1:
            raise ContractViolation(
                f"balls_per_drop must be an integer >= 1, got {self.balls_per_drop!r}"
            )
        slots = self.row_count + 1
        if len(self.multipliers) != slots:
            raise ContractViolation(
                f"{self.row_count} rows need {slots} multipliers, got {len(self.multipliers)}"
            )
        if len(self.slot_tags) != slots:
            raise ContractViolation(
                f"{self.row_count} rows need {slots} slot tags, got {len(self.slot_tags)}"
            )
        if any(m < 0 for m in self.multipliers):
            raise ContractViolation("multipliers must be non-negative")
        if self.start_balance < 0:
            raise ContractViolation(f"start_balance must be >= 0, got {self.start_balance}")
        if self.tick_interval <= 0:
            raise ContractViolation(f"tick_interval must be positive, got {self.tick_interval}")
        if self.settle_pause < 0:
            raise ContractViolation(f"settle_pause must be >= 0, got {self.settle_pause}")
        if self.stagger_ticks < 0:
            raise ContractViolation(f"stagger_ticks must be >= 0, got {self.stagger_ticks}")
        if self.balls_per_drop > 1 and self.stagger_ticks < 1:
            raise ContractViolation("multi-ball drops need stagger_ticks >= 1 so balls start apart")

    @property
    def slot_count(self) -> int:
        return self.row_count + 1

    @property
    def drop_cost(self) -> Decimal:
        """What one press of the drop button costs."""
        return self.bet_cost * self.balls_per_drop

    @property
    def settle_ticks(self) -> int:
        """The settle pause expressed in whole scheduler ticks."""
        # Decimal division: 1.1 / 0.1 is 11 ticks, not 12
        return math.ceil(to_decimal(self.settle_pause) / to_decimal(self.tick_interval))

    @classmethod
    def from_config(cls, config) -> "BoardConfig":
        """Builds a board from the application ``Config`` object."""
        return cls(
            row_count=int(config.PLINKO_ROWS),
            bet_cost=config.PLINKO_BET_COST,
            balls_per_drop=int(config.PLINKO_BALLS_PER_DROP),
            multipliers=_split(config.PLINKO_MULTIPLIERS),
            slot_tags=_split(config.PLINKO_SLOT_TAGS),
            start_balance=config.PLINKO_START_BALANCE,
            tick_interval=float(config.PLINKO_TICK_INTERVAL),
            settle_pause=float(config.PLINKO_SETTLE_PAUSE),
            stagger_ticks=int(config.PLINKO_STAGGER_TICKS),
        )


def _split(value) -> list:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return list(value)


def slot_probabilities(row_count: int) -> list[float]:
    """Binomial probability of landing in each slot with fair bounces."""
    total = 2 ** row_count
    return [math.comb(row_count, k) / total for k in range(row_count + 1)]


def expected_return(board: BoardConfig) -> float:
    """Theoretical return to player, as a fraction of the stake."""
    return sum(
        p * float(m)
        for p, m in zip(slot_probabilities(board.row_count), board.multipliers)
    )
