from .batch import BatchedDecisionClient, demultiplex
from .validator import validate_actions

__all__ = ["BatchedDecisionClient", "demultiplex", "validate_actions"]
