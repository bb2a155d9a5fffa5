"""
Maps a landing slot to its payout.
"""
from decimal import Decimal
from enum import Enum
from typing import NamedTuple, Sequence


class Outcome(Enum):
    WIN = "win"
    LOSS = "loss"


class Settlement(NamedTuple):
    """The result of settling one ball."""
    multiplier: Decimal
    winnings: Decimal
    outcome: Outcome
    bet_cost: Decimal

    @property
    def net(self) -> Decimal:
        """Profit (or loss, if negative) relative to the stake."""
        return self.winnings - self.bet_cost

    @property
    def is_win(self) -> bool:
        return self.outcome is Outcome.WIN


def settle(terminal_index: int, bet_cost: Decimal, multipliers: Sequence[Decimal]) -> Settlement:
    """
    Looks up the multiplier for ``terminal_index`` and computes the winnings.

    Only a multiplier strictly above 1 is a win; getting the stake back
    (exactly 1x) is counted as a loss.
    """
    if not 0 <= terminal_index < len(multipliers):
        raise IndexError(
            f"slot index {terminal_index} outside 0..{len(multipliers) - 1}"
        )

    multiplier = multipliers[terminal_index]
    winnings = bet_cost * multiplier
    outcome = Outcome.WIN if multiplier > 1 else Outcome.LOSS
    return Settlement(multiplier=multiplier, winnings=winnings, outcome=outcome, bet_cost=bet_cost)
