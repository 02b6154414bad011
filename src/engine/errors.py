"""Error taxonomy for the DCA scheduler."""

from __future__ import annotations

from decimal import Decimal


class DcaError(Exception):
    """Base exception for scheduler errors."""


class ConfigurationError(DcaError, ValueError):
    """Raised when the purchase configuration cannot produce a valid plan."""


class InvalidWeightsError(ConfigurationError):
    """Raised when coin percentages do not add up to exactly 100."""

    def __init__(self, total: int) -> None:
        super().__init__(f"Total percentages must be exactly 100, provided {total}")
        self.total = total


class BelowMinimumError(ConfigurationError):
    """Raised when a coin allocation is below the venue minimum order."""

    def __init__(
        self, venue: str, coin: str, minimum: Decimal, amount: Decimal
    ) -> None:
        super().__init__(
            f"{venue} minimum {coin} trade amount is ${minimum:.2f}, "
            f"but you're trying to purchase ${amount:.2f}"
        )
        self.venue = venue
        self.coin = coin
        self.minimum = minimum
        self.amount = amount


class GateError(DcaError):
    """Raised when a run is not allowed to purchase right now."""


class WindowNotElapsedError(GateError):
    """Raised when the last purchase is still inside the purchase window."""


class DeadlineError(GateError):
    """Raised when the run happens outside the configured after/until bounds."""


class TradeRejectedError(GateError):
    """Raised when the operator declines a forced purchase."""


class FundingError(DcaError):
    """Raised when the fiat balance cannot cover the planned purchase."""


class InsufficientFundsError(FundingError):
    """Raised when funds are short and auto-funding is disabled."""


class TransfersSettlingError(FundingError):
    """Raised when an earlier deposit is still in flight."""


class NoBankAccountError(FundingError):
    """Raised when no ACH-linked payment method exists for deposits."""


class VenueError(DcaError):
    """Raised for exchange-side or transport failures."""


class UnsupportedOperationError(VenueError):
    """Raised when a venue cannot provide a capability."""

    def __init__(self, venue: str, operation: str, detail: str | None = None) -> None:
        message = f"{venue} does not support {operation}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.venue = venue
        self.operation = operation


class SkippedForDebugError(DcaError):
    """Raised when an order is skipped because trading is not enabled."""

    def __init__(self, symbol: str | None = None) -> None:
        super().__init__("Skipping because trades are not enabled")
        self.symbol = symbol
