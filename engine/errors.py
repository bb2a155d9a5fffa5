"""
Exception types raised by the plinko engine.
"""


class PlinkoError(Exception):
    """Base class for all engine errors."""


class ContractViolation(PlinkoError, ValueError):
    """
    Raised when the engine is handed input it can never work with,
    e.g. a multiplier table that does not match the row count.
    These are not recoverable at runtime.
    """
