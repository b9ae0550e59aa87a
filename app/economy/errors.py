from __future__ import annotations


class EconomyError(Exception):
    pass


class UserNotFoundError(EconomyError):
    pass


class AlreadyUnlockedError(EconomyError):
    pass


class InsufficientCoinsError(EconomyError):
    def __init__(self, *, required: int, current: int, shortfall: int) -> None:
        super().__init__(f"required={required} current={current}")
        self.required = required
        self.current = current
        self.shortfall = shortfall


class DailyLimitExceededError(EconomyError):
    def __init__(self, *, limit: int, watched: int) -> None:
        super().__init__(f"limit={limit} watched={watched}")
        self.limit = limit
        self.watched = watched


class PremiumIneligibleError(EconomyError):
    pass


class VerificationFailedError(EconomyError):
    def __init__(self, reason: str | None) -> None:
        super().__init__(reason or "verification_failed")
        self.reason = reason or "verification_failed"


class NoActiveSubscriptionError(EconomyError):
    pass


class UnknownProductError(EconomyError):
    pass


class UnknownPlatformError(EconomyError):
    pass


class InvalidAmountError(EconomyError):
    pass


class BalanceConflictError(EconomyError):
    """Cached balance changed underneath a locked mutation; the unit must roll back."""
