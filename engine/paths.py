"""
Ball path generation.

A path is the sequence of left/right bounces a ball takes, one per peg row.
The slot it lands in is simply how many times it went right.
"""
import random

from engine.errors import ContractViolation

LEFT = 0
RIGHT = 1


class Path(tuple):
    """An immutable sequence of LEFT/RIGHT steps."""

    @property
    def terminal_index(self) -> int:
        """The slot index the ball lands in."""
        return sum(self)

    def column_at(self, row: int) -> int:
        """Number of right bounces after ``row`` rows have been passed."""
        if not 0 <= row <= len(self):
            raise IndexError(f"row {row} outside 0..{len(self)}")
        return sum(self[:row])

    def replay(self) -> int:
        """Walks the path step by step and returns where it ends."""
        position = 0
        for step in self:
            position += step
        return position


class PathGenerator:
    """
    Produces fair 50/50 paths from a random source.

    Any object with a ``random()`` method returning floats in [0, 1) can be
    used, so tests can pass a seeded ``random.Random`` or a fixed sequence.
    """

    def __init__(self, rng=None):
        self.rng = rng or random.Random()

    def generate(self, row_count: int) -> tuple[Path, int]:
        """Returns the path and its terminal slot index."""
        if row_count < 1:
            raise ContractViolation(f"row_count must be at least 1, got {row_count}")

        steps = []
        terminal_index = 0
        for _ in range(row_count):
            step = RIGHT if self.rng.random() > 0.5 else LEFT
            steps.append(step)
            terminal_index += step

        return Path(steps), terminal_index
