from crowdcast.exceptions import TransientIOError


class MarketAPIError(TransientIOError):
    """Base exception for market API errors."""

    pass


class MarketNotFoundError(MarketAPIError):
    """Resource not found."""

    pass
