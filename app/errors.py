class LoyaltyEngineError(Exception):
    """Base class for business errors raised by the services."""


class ValidationError(LoyaltyEngineError, ValueError):
    pass


class InsufficientBalanceError(LoyaltyEngineError):
    def __init__(self, balance: int, requested: int):
        self.balance = balance
        self.requested = requested
        super().__init__(f"Insufficient points balance: {balance} available, {requested} requested")


class AccountNotFoundError(LoyaltyEngineError, LookupError):
    pass


class ConcurrencyConflict(LoyaltyEngineError):
    pass


class DispatchFailure(LoyaltyEngineError):
    """All notification channels failed for one reminder."""

    def __init__(self, message: str, channels: dict | None = None):
        self.channels = channels or {}
        super().__init__(message)
