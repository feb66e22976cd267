"""Tests for the status API."""

import asyncio

from fastapi.testclient import TestClient

from conftest import make_opportunity
from crowdcast.api import create_app


def test_health_and_debug(world) -> None:
    orchestrator = world.build()
    asyncio.run(orchestrator.run_cycle())
    client = TestClient(create_app(orchestrator))

    health = client.get("/api/health")
    debug = client.get("/api/debug").json()

    assert health.json() == {"status": "ok", "agents": 2}
    assert debug["cycleCount"] == 1
    assert debug["agents"] == ["Shark", "MaxBet"]
    assert debug["researcher"] is None
    assert debug["stopping"] is False
    assert debug["lastCycle"]["status"] == "no_opportunities"


def test_balances_after_cycle(world) -> None:
    world.set_opportunities([make_opportunity(1)])
    world.wallets["MaxBet"].balance = 2.0
    orchestrator = world.build()
    asyncio.run(orchestrator.run_cycle())
    client = TestClient(create_app(orchestrator))

    balances = client.get("/api/balances").json()

    assert balances["Shark"]["balance"] == 10.0
    assert balances["MaxBet"]["low"] is True
    assert balances["MaxBet"]["account_id"] == "maxbet.testnet"


def test_sync_status_and_wagers(world) -> None:
    ledger = world.participant("Shark").ledger
    ledger.record_wager(1, 0, 1.0, reasoning="first")
    ledger.record_wager(2, 1, 0.5, reasoning="second")
    client = TestClient(create_app(world.build()))

    sync = client.get("/api/sync-status").json()
    wagers = client.get("/api/agents/Shark/wagers", params={"limit": 1}).json()

    assert sync["Shark"]["wagers"] == 2
    assert sync["MaxBet"]["wagers"] == 0
    assert len(wagers) == 1
    assert wagers[0]["state"] == "pending"


def test_unknown_agent_is_404(world) -> None:
    client = TestClient(create_app(world.build()))

    assert client.get("/api/agents/Nobody/wagers").status_code == 404
