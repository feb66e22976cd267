"""Shared fakes for the market, wallet, oracle and dashboard collaborators."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import logfire
import pytest

from crowdcast.agents.participant import Participant
from crowdcast.config import OrchestratorConfig
from crowdcast.decisions.batch import BatchedDecisionClient
from crowdcast.models import AgentProfile
from crowdcast.orchestrator import Orchestrator
from crowdcast.pacing import Pacer
from crowdcast.services.market import MarketAPIError, Opportunity
from crowdcast.services.wallet import WagerRejectedError
from crowdcast.storage.ledger import Ledger
from crowdcast.storage.research import ResearchCache

logfire.configure(send_to_logfire=False, console=False)

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeMarket:
    def __init__(self, opportunities: list[Opportunity] | None = None):
        self.opportunities = opportunities or []
        self.by_id: dict[int, Opportunity] = {o.id: o for o in self.opportunities}
        self.chat: dict[int, list] = {}
        self.odds: dict[int, list[float]] = {}
        self.failing_chat: set[int] = set()
        self.failing_odds: set[int] = set()
        self.failing_lookup: set[int] = set()
        self.fail_listing = False
        self.user_wagers: dict[str, list] = {}
        self.sent: list[dict[str, Any]] = []
        self.chat_calls: list[int] = []

    async def list_active_opportunities(self) -> list[Opportunity]:
        if self.fail_listing:
            raise MarketAPIError("market down")
        return [o for o in self.opportunities if o.is_active]

    async def list_opportunities(self, status: str | None = None, limit: int | None = None):
        return list(self.by_id.values())

    async def get_chat(self, opportunity_id: int, limit: int = 10):
        self.chat_calls.append(opportunity_id)
        if opportunity_id in self.failing_chat:
            raise MarketAPIError("chat down")
        return self.chat.get(opportunity_id, [])[-limit:]

    async def get_odds_vector(self, opportunity_id: int):
        if opportunity_id in self.failing_odds:
            raise MarketAPIError("odds down")
        return self.odds.get(opportunity_id)

    async def get_opportunity(self, opportunity_id: int):
        if opportunity_id in self.failing_lookup:
            raise MarketAPIError("lookup failed")
        return self.by_id.get(opportunity_id)

    async def send_message(self, opportunity_id, sender_id, text, reply_to=None):
        self.sent.append(
            {"opportunity_id": opportunity_id, "sender": sender_id, "text": text, "reply_to": reply_to}
        )
        return {"id": len(self.sent)}

    async def get_user_wagers(self, account_id: str):
        return self.user_wagers.get(account_id, [])


class FakeWallet:
    def __init__(self, account_id: str, balance: float = 10.0):
        self.account_id = account_id
        self.balance = balance
        self.placed: list[tuple[int, int, float]] = []
        self.reject = False
        self.fail_balance = False

    async def get_available_balance(self) -> float:
        if self.fail_balance:
            raise MarketAPIError("balance unavailable")
        return self.balance

    async def place_wager(self, opportunity_id: int, outcome: int, amount: float):
        if self.reject:
            raise WagerRejectedError("rejected")
        self.placed.append((opportunity_id, outcome, amount))
        self.balance -= amount
        return {"id": f"w{len(self.placed)}"}

    def credit(self, amount: float) -> None:
        self.balance += amount


class FakePublisher:
    def __init__(self, broken: bool = False):
        self.broken = broken
        self.events: list[tuple[str, str, dict]] = []
        self.stats: list[tuple[str, Any, dict]] = []

    async def publish_event(self, agent_name, event_type, payload=None):
        if self.broken:
            raise RuntimeError("dashboard down")
        self.events.append((agent_name, event_type, payload or {}))
        return True

    async def publish_stats(self, agent_name, stats, **extra):
        if self.broken:
            raise RuntimeError("dashboard down")
        self.stats.append((agent_name, stats, extra))
        return True

    def event_types(self, agent_name: str | None = None) -> list[str]:
        return [e[1] for e in self.events if agent_name is None or e[0] == agent_name]


class FakeOracle:
    def __init__(self, payload: dict | None = None, error: Exception | None = None):
        self.payload = payload or {}
        self.error = error
        self.requests: list = []
        self.research_payloads: dict[str, dict] = {}

    async def complete_json(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if request.web_search:
            for question, payload in self.research_payloads.items():
                if question in request.prompt:
                    return payload
            return {"realOdds": {}, "analysis": "nothing found", "sources": ""}
        return self.payload


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def make_opportunity(opportunity_id: int, status: str = "active", **kwargs: Any) -> Opportunity:
    data = {
        "id": opportunity_id,
        "question": kwargs.pop("question", f"Will event {opportunity_id} happen?"),
        "outcomes": kwargs.pop("outcomes", ["Yes", "No"]),
        "status": status,
    }
    data.update(kwargs)
    return Opportunity(**data)


def make_profile(name: str, **kwargs: Any) -> AgentProfile:
    data = {"name": name, "account_id": f"{name.lower()}.testnet", "max_wager": 2.0}
    data.update(kwargs)
    return AgentProfile(**data)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(tmp_path: Path, clock: FakeClock) -> Ledger:
    instance = Ledger(tmp_path / "ledger.db", "Tester", clock=clock)
    yield instance
    instance.close()


@pytest.fixture
def research_cache(tmp_path: Path, clock: FakeClock) -> ResearchCache:
    instance = ResearchCache(tmp_path / "research.db", clock=clock)
    yield instance
    instance.close()


class World:
    """An orchestrator wired to fakes, plus handles on every fake."""

    def __init__(self, tmp_path: Path, clock: FakeClock, names: list[str], research_agent: str | None = None):
        self.clock = clock
        self.market = FakeMarket()
        self.publisher = FakePublisher()
        self.oracle = FakeOracle()
        self.sleep = RecordingSleep()
        self.pacer = Pacer(sleep=self.sleep, rng=random.Random(7))
        self.cache = ResearchCache(tmp_path / "research.db", clock=clock)
        self.wallets: dict[str, FakeWallet] = {}
        self.participants: list[Participant] = []
        for name in names:
            profile = make_profile(name, performs_research=(name == research_agent))
            wallet = FakeWallet(profile.account_id)
            self.wallets[name] = wallet
            ledger = Ledger(tmp_path / f"{name}.db", name, clock=clock)
            self.participants.append(
                Participant(profile, ledger, wallet, self.market, self.publisher)
            )
        self.config = OrchestratorConfig(reconcile_on_startup=False)

    def participant(self, name: str) -> Participant:
        return next(p for p in self.participants if p.name == name)

    def build(self, researcher=None) -> Orchestrator:
        return Orchestrator(
            self.participants,
            self.market,
            BatchedDecisionClient(self.oracle, max_opportunities=self.config.max_opportunities),
            self.cache,
            self.publisher,
            pacer=self.pacer,
            config=self.config,
            researcher=researcher,
        )

    def set_opportunities(self, opportunities: list[Opportunity]) -> None:
        self.market.opportunities = opportunities
        self.market.by_id = {o.id: o for o in opportunities}

    def close(self) -> None:
        for participant in self.participants:
            participant.ledger.close()
        self.cache.close()


@pytest.fixture
def world(tmp_path: Path, clock: FakeClock):
    instance = World(tmp_path, clock, ["Shark", "MaxBet"], research_agent="Shark")
    yield instance
    instance.close()
