"""Exceptions raised by the marketplace ledger and its surfaces."""


class TradeHubError(Exception):
    """Base exception for all marketplace errors."""
    pass


class PreconditionViolation(TradeHubError):
    """Invalid input ranges when creating a token."""
    pass


class Unauthorized(TradeHubError):
    """Role or ownership check failed."""
    pass


class NotForSale(TradeHubError):
    pass


class InsufficientFunds(TradeHubError):
    pass


class OutsideValidityWindow(TradeHubError):
    pass


class ReentrantCall(TradeHubError):
    """A guarded operation was entered while already in progress."""
    pass


class TokenNotFound(TradeHubError):
    pass


class TransferRejected(TradeHubError):
    """A recipient refused an incoming value transfer."""
    pass


class InvalidAccount(TradeHubError):
    pass


class MetadataError(TradeHubError):
    """Token metadata could not be resolved."""
    pass


class ConfigError(TradeHubError):
    pass


class StoreError(TradeHubError):
    """Persisted ledger state is missing or unreadable."""
    pass
