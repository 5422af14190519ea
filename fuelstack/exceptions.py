"""
FuelStack Exceptions

Custom exception classes for the keeper and solver.
"""


class FuelStackException(Exception):
    """Base exception for FuelStack."""
    pass


class ConfigurationError(FuelStackException):
    """Missing or invalid configuration. Fatal at startup."""
    pass


class DecodeError(FuelStackException):
    """An event, Clarity value, address or key could not be decoded."""
    pass


class LedgerError(FuelStackException):
    """Order ledger error."""
    pass


class OrderNotFoundError(LedgerError):
    """No order is stored under the requested key."""
    pass


class InvalidTransitionError(LedgerError):
    """Order status change not allowed by the lifecycle."""
    pass


class OrderConflictError(LedgerError):
    """An insert carried different data for an already stored order."""
    pass


class ChainError(FuelStackException):
    """RPC or API communication error. Transient."""
    pass


class TransactionFailedError(ChainError):
    """Transaction reverted, was rejected, or was not confirmed in time."""
    pass


class SettlementError(FuelStackException):
    """Settlement of a filled order could not be completed."""
    pass
