"""Error taxonomy shared across the orchestrator and its collaborators."""


class CrowdcastError(Exception):
    """Base exception for all Crowdcast errors."""

    retryable: bool = False


class TransientIOError(CrowdcastError):
    """A network or storage call to a collaborator failed.

    Never retried within a cycle; the next cycle re-attempts the same work.
    """

    retryable = True

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedOracleOutputError(CrowdcastError):
    """The decision payload did not match the expected shape."""

    def __init__(self, message: str, raw_text: str = ""):
        super().__init__(message)
        self.raw_text = raw_text


class BudgetViolation(CrowdcastError):
    """An action rejected by the decision validator.

    Used as the structured drop reason; never raised out of validation.
    """

    def __init__(self, agent_name: str, reason: str, action: object = None):
        super().__init__(f"{agent_name}: {reason}")
        self.agent_name = agent_name
        self.reason = reason
        self.action = action


class ReconciliationConflict(CrowdcastError):
    """More than one pending wager matched a single resolution."""

    def __init__(self, opportunity_id: int, pending_ids: list[int]):
        super().__init__(
            f"{len(pending_ids)} pending wagers on opportunity #{opportunity_id}: "
            f"{pending_ids}"
        )
        self.opportunity_id = opportunity_id
        self.pending_ids = pending_ids


class LedgerError(CrowdcastError):
    """Ledger storage failed. Always propagated to the caller."""

    pass
