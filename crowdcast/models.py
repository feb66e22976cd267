"""Domain models shared by the orchestrator, ledger and decision pipeline."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from crowdcast.services.market.models import ChatMessage, Opportunity

WagerState = Literal["pending", "won", "lost", "voided"]
TERMINAL_STATES: frozenset[str] = frozenset({"won", "lost", "voided"})

MAX_MESSAGE_LENGTH = 500


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def implied_probabilities(odds: list[float] | None) -> list[float] | None:
    """Convert decimal odds into a normalized probability vector.

    p_i = (1 / o_i) / sum(1 / o_j). Returns None when any quote is unusable.
    """
    if not odds:
        return None
    try:
        inverse = [1.0 / float(o) for o in odds]
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    if any(not math.isfinite(x) or x <= 0 for x in inverse):
        return None
    total = sum(inverse)
    return [x / total for x in inverse]


class AgentProfile(BaseModel):
    """Identity and behavior of one participant, loaded once at startup."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    avatar: str = ""
    account_id: str = Field(validation_alias=AliasChoices("account_id", "accountId"))
    personality: str = ""
    strategy: str = ""
    model: str = ""
    temperature: float = 0.8
    max_wager: float = Field(
        default=2.0, gt=0, validation_alias=AliasChoices("max_wager", "maxBetNear")
    )
    risk_level: str = Field(
        default="medium", validation_alias=AliasChoices("risk_level", "riskLevel")
    )
    cycle_minutes: tuple[float, float] = Field(
        default=(5.0, 15.0),
        validation_alias=AliasChoices("cycle_minutes", "cycleMinutes"),
    )
    performs_research: bool = Field(
        default=False,
        validation_alias=AliasChoices("performs_research", "webSearch", "web_search"),
    )
    research_model: str = Field(
        default="", validation_alias=AliasChoices("research_model", "researchModel")
    )
    research_prompt: str = Field(
        default="", validation_alias=AliasChoices("research_prompt", "researchPrompt")
    )


class OpportunitySnapshot(BaseModel):
    """Per-cycle, read-only view of one active opportunity."""

    model_config = ConfigDict(frozen=True)

    id: int
    question: str
    outcomes: tuple[str, ...] = ()
    probabilities: tuple[float, ...] | None = None
    chat: tuple[ChatMessage, ...] = ()

    @classmethod
    def from_opportunity(cls, opportunity: Opportunity) -> OpportunitySnapshot:
        return cls(
            id=opportunity.id,
            question=opportunity.question,
            outcomes=tuple(opportunity.outcomes),
        )


class RealOdds(BaseModel):
    outcomes: list[str] = Field(default_factory=list)
    probabilities: list[float] = Field(default_factory=list)


class ResearchFindings(BaseModel):
    """What a researcher learned about one opportunity."""

    model_config = ConfigDict(populate_by_name=True)

    question: str = ""
    real_odds: RealOdds = Field(
        default_factory=RealOdds,
        validation_alias=AliasChoices("real_odds", "realOdds"),
    )
    analysis: str = ""
    sources: str = ""
    researcher: str = ""


class ResearchRecord(ResearchFindings):
    id: int
    opportunity_id: int
    created_at: datetime


class WagerRecord(BaseModel):
    id: int
    opportunity_id: int
    outcome: int
    amount: float
    odds_at_placement: float | None = None
    reasoning: str = ""
    state: WagerState = "pending"
    pnl: float = 0.0
    created_at: datetime
    resolved_at: datetime | None = None


class AgentStats(BaseModel):
    """Derived from the ledger on every call, never stored."""

    total: int = 0
    pending: int = 0
    won: int = 0
    lost: int = 0
    voided: int = 0
    total_wagered: float = 0.0
    total_pnl: float = 0.0
    win_rate: float = 0.0

    def to_payload(self) -> dict[str, Any]:
        return {
            "totalBets": self.total,
            "pending": self.pending,
            "won": self.won,
            "lost": self.lost,
            "voided": self.voided,
            "totalBet": round(self.total_wagered, 6),
            "pnl": round(self.total_pnl, 6),
            "winRate": round(self.win_rate, 4),
        }


class BetAction(BaseModel):
    type: Literal["bet"] = "bet"
    opportunity_id: int
    outcome: int
    amount: float
    reason: str = ""


class ChatAction(BaseModel):
    type: Literal["chat"] = "chat"
    opportunity_id: int
    message: str


class ReplyAction(BaseModel):
    type: Literal["reply"] = "reply"
    opportunity_id: int
    message: str
    reply_to: int | str | None = None


ActionProposal = Annotated[
    Union[BetAction, ChatAction, ReplyAction], Field(discriminator="type")
]


class AgentDecision(BaseModel):
    reasoning: str = ""
    actions: list[ActionProposal] = Field(default_factory=list)


class AgentContext(BaseModel):
    """Everything one agent contributes to the shared decision prompt."""

    profile: AgentProfile
    balance: float
    pending: list[WagerRecord] = Field(default_factory=list)
    stats: AgentStats = Field(default_factory=AgentStats)

    @property
    def name(self) -> str:
        return self.profile.name


class BalanceSnapshot(BaseModel):
    account_id: str
    balance: float
    low: bool = False
    checked_at: datetime = Field(default_factory=utc_now)
