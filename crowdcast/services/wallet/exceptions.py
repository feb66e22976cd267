from crowdcast.exceptions import TransientIOError


class WalletError(TransientIOError):
    """Base exception for wallet gateway errors."""

    pass


class WagerRejectedError(WalletError):
    """The settlement side refused a wager (funds, closed market, ...)."""

    pass
