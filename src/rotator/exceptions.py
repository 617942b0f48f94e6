"""Custom exceptions for the rotation agent.

Signal, execution, and persistence errors live here so the strategy,
execution, and journal layers can share them without circular imports.
The scheduler catches RotatorError subclasses at the cycle boundary.
"""


class RotatorError(Exception):
    """Base exception for all agent errors."""


class ConfigurationError(RotatorError):
    """Raised at startup when required settings are missing or invalid."""


# Signal errors: missing or malformed market/wallet data, abort the cycle


class SignalError(RotatorError):
    """Base for price and balance data errors."""


class PriceUnavailableError(SignalError):
    """Raised when a price snapshot cannot be obtained."""


class PriceNotFoundError(PriceUnavailableError):
    """Raised when the feed has no data for a token."""


class UpstreamError(PriceUnavailableError):
    """Raised when the price feed fails or returns an unusable response."""


class MissingTimeframeError(SignalError):
    """Raised when a snapshot lacks a timeframe a rule needs to read."""


class BalanceUnavailableError(SignalError):
    """Raised when wallet balances cannot be read."""


# Execution errors: the swap did not complete, nothing is journaled


class ExecutionError(RotatorError):
    """Base for swap construction, submission, and confirmation failures."""


class PoolNotFoundError(ExecutionError):
    """Raised when no deployed pool exists for a token pair."""


class InsufficientLiquidityError(ExecutionError):
    """Raised when the best pool for a pair holds no liquidity."""


class MinimumOutputError(ExecutionError):
    """Raised when the minimum acceptable output cannot be computed.

    The swap is aborted rather than submitted with an unbounded minimum.
    """


class ExecutionRevertedError(ExecutionError):
    """Raised when a submitted transaction is mined with a failed status."""


class SwapTimeoutError(ExecutionError):
    """Raised when a transaction receipt does not arrive in time."""


# Persistence errors


class JournalCorruptError(RotatorError):
    """Raised when the trade history file cannot be parsed or validated."""
