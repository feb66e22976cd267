from .client import MarketClient
from .exceptions import MarketAPIError, MarketNotFoundError
from .models import (
    ACTIVE,
    RESOLVED,
    VOIDED,
    AuthoritativeWager,
    ChatMessage,
    Opportunity,
    parse_timestamp,
)

__all__ = [
    "MarketClient",
    "MarketAPIError",
    "MarketNotFoundError",
    "ACTIVE",
    "RESOLVED",
    "VOIDED",
    "AuthoritativeWager",
    "ChatMessage",
    "Opportunity",
    "parse_timestamp",
]
