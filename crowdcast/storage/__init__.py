from .ledger import Ledger, settle_wager
from .research import ResearchCache

__all__ = ["Ledger", "ResearchCache", "settle_wager"]
