"""
Exception hierarchy for comp-trader.

Anything a single decision cycle can survive derives from TraderError.
"""


class TraderError(Exception):
    """Base class for recoverable bot errors."""


class ConfigError(TraderError):
    """Settings are missing or unusable."""


class ChainQueryError(TraderError):
    """A read-only chain query (round status, balances, reserves) failed."""


class DecisionSourceError(TraderError):
    """The decision source failed to answer or answered with garbage."""


class ExecutionError(TraderError):
    """A state-changing transaction (approve, endRound) could not be completed."""
