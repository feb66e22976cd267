"""Tests for the batched decision client and prompt construction."""

import asyncio
from datetime import timedelta

import pytest

from conftest import T0, FakeOracle, make_profile
from crowdcast.decisions.batch import BatchedDecisionClient, demultiplex
from crowdcast.decisions.prompts import build_situation_prompt
from crowdcast.models import (
    AgentContext,
    AgentStats,
    BetAction,
    ChatAction,
    OpportunitySnapshot,
    RealOdds,
    ResearchRecord,
    WagerRecord,
)
from crowdcast.services.market import ChatMessage
from crowdcast.services.oracle import OracleParseError, OracleTransportError


def _snapshots(count: int = 3) -> list[OpportunitySnapshot]:
    return [
        OpportunitySnapshot(id=i, question=f"Question {i}?", outcomes=("Yes", "No"))
        for i in range(1, count + 1)
    ]


def _contexts(**balances: float) -> list[AgentContext]:
    return [
        AgentContext(profile=make_profile(name), balance=balance)
        for name, balance in balances.items()
    ]


def test_budget_is_applied_per_agent() -> None:
    contexts = _contexts(Shark=3.0, MaxBet=10.0)
    bets = [
        {"type": "bet", "marketId": 1, "outcome": 0, "amount": 2.0},
        {"type": "bet", "marketId": 2, "outcome": 1, "amount": 2.0},
    ]
    payload = {
        "Shark": {"reasoning": "careful", "actions": bets},
        "MaxBet": {"reasoning": "yolo", "actions": bets},
    }

    decisions = demultiplex(payload, contexts, _snapshots())

    assert [a.amount for a in decisions["Shark"].actions] == [2.0]
    assert [a.amount for a in decisions["MaxBet"].actions] == [2.0, 2.0]
    assert decisions["Shark"].reasoning == "careful"


def test_missing_or_malformed_entry_is_empty() -> None:
    contexts = _contexts(Shark=5.0, MaxBet=5.0, Professor=5.0)
    payload = {
        "Shark": {"reasoning": "r", "actions": [{"type": "chat", "marketId": 2, "message": "hi"}]},
        "MaxBet": "bet everything",
        "Ghost": {"actions": [{"type": "bet", "marketId": 1, "outcome": 0, "amount": 1}]},
    }

    decisions = demultiplex(payload, contexts, _snapshots())

    assert set(decisions) == {"Shark", "MaxBet", "Professor"}
    assert decisions["Shark"].actions == [ChatAction(opportunity_id=2, message="hi")]
    assert decisions["MaxBet"].actions == []
    assert decisions["Professor"].actions == []


def test_decide_makes_one_call_for_all_agents() -> None:
    oracle = FakeOracle(
        payload={
            "Shark": {"actions": [{"type": "bet", "marketId": 3, "outcome": 1, "amount": 1.25}]},
            "MaxBet": {"actions": []},
        }
    )
    client = BatchedDecisionClient(oracle, max_opportunities=2)
    contexts = _contexts(Shark=4.0, MaxBet=4.0)

    decisions = asyncio.run(client.decide(contexts, _snapshots(3), {}))

    assert len(oracle.requests) == 1
    # validation sees every active opportunity, not just the prompted ones
    assert decisions["Shark"].actions == [BetAction(opportunity_id=3, outcome=1, amount=1.25)]
    request = oracle.requests[0]
    assert request.web_search is False
    assert request.temperature == client.config.decision_temperature
    assert "### Shark" in request.system and "### MaxBet" in request.system
    assert "## Active Markets (3):" in request.prompt
    assert "Market #3" not in request.prompt
    assert "... and 1 more markets" in request.prompt


def test_decide_with_no_agents_skips_oracle() -> None:
    oracle = FakeOracle()
    client = BatchedDecisionClient(oracle)

    assert asyncio.run(client.decide([], _snapshots(), {})) == {}
    assert oracle.requests == []


@pytest.mark.parametrize("error", [OracleTransportError("down"), OracleParseError("junk")])
def test_whole_call_failures_propagate(error: Exception) -> None:
    client = BatchedDecisionClient(FakeOracle(error=error))

    with pytest.raises(type(error)):
        asyncio.run(client.decide(_contexts(Shark=1.0), _snapshots(), {}))


def test_model_comes_from_first_profile() -> None:
    client = BatchedDecisionClient(FakeOracle())
    contexts = [
        AgentContext(profile=make_profile("Shark", model="qwen3-235b"), balance=1.0),
        AgentContext(profile=make_profile("MaxBet", model="mistral-31-24b"), balance=1.0),
    ]

    assert client.build_request(contexts, _snapshots(), {}).model == "qwen3-235b"
    assert client.build_request(_contexts(Shark=1.0), _snapshots(), {}).model == client.config.decision_model


def test_system_prompt_lists_pending_wagers_and_stats() -> None:
    pending = WagerRecord(id=1, opportunity_id=7, outcome=1, amount=0.5, created_at=T0)
    context = AgentContext(
        profile=make_profile("Shark", avatar="🦈", personality="cold", strategy="value"),
        balance=6.5,
        pending=[pending],
        stats=AgentStats(total=4, won=2, lost=1, total_pnl=1.75),
    )

    system = BatchedDecisionClient(FakeOracle()).build_request([context], _snapshots(), {}).system

    assert "### 🦈 Shark" in system
    assert "Balance: 6.50 | Max bet: 2" in system
    assert "4 bets, 2 won, 1 lost, PnL: +1.75" in system
    assert "Pending bets: #7 outcome 1 (0.5)" in system


def test_situation_prompt_renders_odds_research_and_chat() -> None:
    contexts = _contexts(Shark=1.0)
    chat = tuple(
        ChatMessage(id=i, account_id="shark.testnet" if i % 2 else "someone.near", message=f"m{i}")
        for i in range(1, 8)
    )
    opportunity = OpportunitySnapshot(
        id=5,
        question="Will the Lakers win?",
        outcomes=("Yes", "No"),
        probabilities=(0.6, 0.4),
        chat=chat,
    )
    research = {
        5: ResearchRecord(
            id=1,
            opportunity_id=5,
            question="Will the Lakers win?",
            real_odds=RealOdds(outcomes=["Yes", "No"], probabilities=[0.55, 0.45]),
            analysis="Injury news favours No.",
            researcher="Shark",
            created_at=T0 - timedelta(minutes=5),
        )
    }

    prompt = build_situation_prompt(contexts, [opportunity], 1, research, chat_excerpt=3)

    assert "Odds: Yes: 60%, No: 40%" in prompt
    assert "Research (by Shark): Injury news favours No." in prompt
    assert "Real odds (bookmakers): Yes: 55%, No: 45%" in prompt
    assert "Chat (last 3):" in prompt
    assert '@Shark (#7): "m7"' in prompt
    assert '@someone.near (#6): "m6"' in prompt
    assert '"m4"' not in prompt
