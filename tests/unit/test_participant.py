"""Tests for per-agent resolution, dispatch and research behavior."""

import asyncio

import pytest

from conftest import make_opportunity
from crowdcast.agents.researcher import Researcher
from crowdcast.models import OpportunitySnapshot, ReplyAction


def test_loss_and_void_are_published(world) -> None:
    shark = world.participant("Shark")
    world.set_opportunities(
        [
            make_opportunity(1, status="resolved", resolved_outcome=1, total_pool=4.0, outcome_pools=[1.0, 3.0]),
            make_opportunity(2, status="voided"),
            make_opportunity(3),
        ]
    )
    shark.ledger.record_wager(1, 0, 1.0)
    shark.ledger.record_wager(2, 1, 0.5)
    shark.ledger.record_wager(3, 0, 0.25)

    resolved = asyncio.run(shark.check_resolutions())

    assert resolved == 2
    assert world.publisher.event_types("Shark") == ["loss", "void"]
    assert world.wallets["Shark"].balance == pytest.approx(10.5)
    assert [w.opportunity_id for w in shark.ledger.pending_wagers()] == [3]


def test_resolved_without_outcome_stays_pending(world) -> None:
    shark = world.participant("Shark")
    world.set_opportunities([make_opportunity(1, status="resolved")])
    shark.ledger.record_wager(1, 0, 1.0)

    assert asyncio.run(shark.check_resolutions()) == 0
    assert len(shark.ledger.pending_wagers()) == 1


def test_reply_carries_reference(world) -> None:
    maxbet = world.participant("MaxBet")
    action = ReplyAction(opportunity_id=4, message="Bold call.", reply_to="abc")

    asyncio.run(maxbet.execute(action))

    assert world.market.sent == [
        {"opportunity_id": 4, "sender": "maxbet.testnet", "text": "Bold call.", "reply_to": "abc"}
    ]
    [event] = [e for e in world.publisher.events if e[0] == "MaxBet"]
    assert event[1] == "reply"
    assert event[2]["metadata"] == {"replyTo": "abc"}


def test_researcher_skips_fresh_and_blank_questions(world) -> None:
    researcher = Researcher(
        world.participant("Shark"), world.oracle, world.cache, world.pacer, delay_seconds=3
    )
    opportunities = [
        OpportunitySnapshot(id=1, question="Will it rain?", outcomes=("Yes", "No")),
        OpportunitySnapshot(id=2, question="", outcomes=("Yes", "No")),
    ]

    assert asyncio.run(researcher.refresh(opportunities)) == 1
    assert asyncio.run(researcher.refresh(opportunities)) == 0
    assert len(world.oracle.requests) == 1
    assert world.sleep.calls == []
    request = world.oracle.requests[0]
    assert request.web_search is True
    assert request.temperature == researcher.config.research_temperature
    assert '"Will it rain?"' in request.prompt
