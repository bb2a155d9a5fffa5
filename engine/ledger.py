"""
The player's account: balance plus running wager/payout statistics.
"""
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal

from engine.board import to_decimal
from engine.errors import ContractViolation
from engine.settlement import Settlement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountSnapshot:
    """A consistent, read-only copy of the account at one instant."""
    balance: Decimal
    total_wagered: Decimal
    total_won: Decimal
    wins: int
    losses: int
    balls_settled: int = 0
    biggest_multiplier: Decimal = Decimal("0")
    slot_hits: dict = field(default_factory=dict)

    @property
    def net(self) -> Decimal:
        return self.total_won - self.total_wagered


class AccountLedger:
    """
    Owns the balance. Every mutation happens under ``self.lock`` so callers
    that need several steps to be indivisible (check, debit, record the
    wager) can hold the lock across them.
    """

    def __init__(self, start_balance=Decimal("0")):
        start_balance = to_decimal(start_balance)
        if start_balance < 0:
            raise ContractViolation(f"start balance cannot be negative: {start_balance}")
        self.lock = threading.RLock()
        self._balance = start_balance
        self._total_wagered = Decimal("0")
        self._total_won = Decimal("0")
        self._wins = 0
        self._losses = 0
        self._biggest_multiplier = Decimal("0")
        self._slot_hits = Counter()

    @property
    def balance(self) -> Decimal:
        with self.lock:
            return self._balance

    def debit(self, amount) -> bool:
        """Takes ``amount`` from the balance. Refuses (no partial debit) if it would go negative."""
        amount = _non_negative(amount)
        with self.lock:
            if self._balance < amount:
                logger.debug("Debit of %s refused, balance is %s", amount, self._balance)
                return False
            self._balance -= amount
            return True

    def credit(self, amount):
        amount = _non_negative(amount)
        with self.lock:
            self._balance += amount

    def record_wager(self, amount):
        amount = _non_negative(amount)
        with self.lock:
            self._total_wagered += amount

    def record_settlement(self, settlement: Settlement, slot_index: int | None = None):
        """Adds one settled ball to the statistics."""
        with self.lock:
            self._total_won += settlement.winnings
            if settlement.is_win:
                self._wins += 1
            else:
                self._losses += 1
            self._biggest_multiplier = max(self._biggest_multiplier, settlement.multiplier)
            if slot_index is not None:
                self._slot_hits[slot_index] += 1

    def apply_settlement(self, settlement: Settlement, slot_index: int | None = None):
        """Pays out and records one ball as a single step."""
        with self.lock:
            self.credit(settlement.winnings)
            self.record_settlement(settlement, slot_index=slot_index)

    def snapshot(self) -> AccountSnapshot:
        with self.lock:
            return AccountSnapshot(
                balance=self._balance,
                total_wagered=self._total_wagered,
                total_won=self._total_won,
                wins=self._wins,
                losses=self._losses,
                balls_settled=self._wins + self._losses,
                biggest_multiplier=self._biggest_multiplier,
                slot_hits=dict(self._slot_hits),
            )


def _non_negative(amount) -> Decimal:
    amount = to_decimal(amount)
    if amount < 0:
        raise ContractViolation(f"amount must not be negative: {amount}")
    return amount
