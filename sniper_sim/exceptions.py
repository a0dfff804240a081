"""
Custom exception classes for the sniper simulator.

Provides typed exceptions so the engine can turn failures into
observable skip/error events instead of crashing the detection loop.
"""

class SimulationException(Exception):
    """Base exception for all simulator errors."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self):
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class SignalValidationException(SimulationException):
    """Raised when a detected token signal is incomplete or malformed."""
    pass


class InsufficientBalanceException(SimulationException):
    """Raised when a debit would exceed the available virtual balance."""
    pass


class PositionStateException(SimulationException):
    """Raised when an operation targets an unknown position."""
    pass


class MarketDataException(SimulationException):
    """Raised when the market-data collaborator fails."""
    pass


class ConfigurationException(SimulationException):
    """Raised when configuration is invalid."""
    pass
