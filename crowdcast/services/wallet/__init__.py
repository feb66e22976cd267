from .client import WalletClient
from .exceptions import WagerRejectedError, WalletError

__all__ = ["WalletClient", "WagerRejectedError", "WalletError"]
