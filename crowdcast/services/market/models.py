from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator

ACTIVE = "active"
RESOLVED = "resolved"
VOIDED = "voided"


def _first(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an epoch number (s, ms, us or ns) or ISO string into UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _to_utc(value)
    if isinstance(value, str) and not value.strip().lstrip("-").isdigit():
        try:
            return _to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    magnitude = abs(number)
    if magnitude >= 1e17:
        number /= 1e9
    elif magnitude >= 1e14:
        number /= 1e6
    elif magnitude >= 1e11:
        number /= 1e3
    return datetime.fromtimestamp(number, tz=timezone.utc)


def _scale(value: Any, units_per_token: float) -> float:
    try:
        return float(value) / units_per_token
    except (TypeError, ValueError):
        return 0.0


class ChatMessage(BaseModel):
    id: int | str | None = None
    account_id: str = ""
    message: str = ""
    reply_to: int | str | None = None
    created_at: datetime | None = None

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_created_at(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ChatMessage:
        return cls(
            id=data.get("id"),
            account_id=str(_first(data, "account_id", "accountId", default="")),
            message=str(data.get("message", "")),
            reply_to=_first(data, "reply_to", "replyTo"),
            created_at=_first(data, "created_at", "createdAt"),
        )


class Opportunity(BaseModel):
    """Status-bearing market record as served by the market API."""

    id: int
    question: str = ""
    outcomes: list[str] = Field(default_factory=list)
    status: str = "unknown"
    created_at: datetime | None = None
    resolved_outcome: int | None = None
    total_pool: float = 0.0
    outcome_pools: list[float] = Field(default_factory=list)

    @field_validator("created_at", mode="before")
    @classmethod
    def parse_created_at(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE

    def pool_for(self, outcome: int) -> float:
        if 0 <= outcome < len(self.outcome_pools):
            return self.outcome_pools[outcome]
        return 0.0

    @classmethod
    def from_api(cls, data: dict[str, Any], units_per_token: float = 1e24) -> Opportunity:
        resolved = _first(data, "resolved_outcome", "resolvedOutcome", "winning_outcome")
        pools = _first(data, "outcome_pools", "outcomePools", default=[]) or []
        return cls(
            id=int(data["id"]),
            question=str(_first(data, "question", "description", default="")),
            outcomes=[str(o) for o in data.get("outcomes") or []],
            status=str(data.get("status", "unknown")),
            created_at=_first(data, "created_at", "createdAt"),
            resolved_outcome=int(resolved) if resolved is not None else None,
            total_pool=_scale(_first(data, "total_pool", "totalPool", default=0), units_per_token),
            outcome_pools=[_scale(p, units_per_token) for p in pools],
        )


class AuthoritativeWager(BaseModel):
    """A wager as recorded by the settlement authority."""

    opportunity_id: int
    outcome: int
    amount: float
    timestamp: datetime | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_ts(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    @classmethod
    def from_api(
        cls, data: dict[str, Any], units_per_token: float = 1e24
    ) -> AuthoritativeWager:
        return cls(
            opportunity_id=int(_first(data, "market_id", "marketId", "opportunity_id")),
            outcome=int(data.get("outcome", 0)),
            amount=_scale(data.get("amount", 0), units_per_token),
            timestamp=_first(data, "timestamp", "created_at", "createdAt"),
        )
