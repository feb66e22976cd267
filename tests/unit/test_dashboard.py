"""Tests for the best-effort dashboard publisher."""

import asyncio
import json

import httpx

from crowdcast.config import DashboardConfig
from crowdcast.models import AgentStats
from crowdcast.services.dashboard import DashboardPublisher


def _publisher(handler) -> DashboardPublisher:
    return DashboardPublisher(
        DashboardConfig(base_url="http://dash.test"),
        secret="s3cret",
        avatars={"Shark": "🦈"},
        transport=httpx.MockTransport(handler),
    )


def test_stats_payload_and_secret_header() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["secret"] = request.headers.get("x-agent-secret")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    publisher = _publisher(handler)
    stats = AgentStats(total=3, won=1, lost=1, pending=1, total_wagered=4.5, total_pnl=-0.25, win_rate=0.5)

    async def run():
        async with publisher:
            return await publisher.publish_stats("Shark", stats, balance=7.5, cycleCount=2)

    assert asyncio.run(run()) is True
    assert seen["path"] == "/api/stats"
    assert seen["secret"] == "s3cret"
    body = seen["body"]
    assert body["agentName"] == "Shark"
    assert body["agentAvatar"] == "🦈"
    assert body["totalBets"] == 3
    assert body["pnl"] == -0.25
    assert body["winRate"] == 0.5
    assert body["balance"] == 7.5
    assert body["cycleCount"] == 2


def test_event_payload() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200)

    publisher = _publisher(handler)

    async def run():
        async with publisher:
            return await publisher.publish_event("MaxBet", "bet", {"marketId": 4, "amount": 2.0})

    assert asyncio.run(run()) is True
    assert seen["path"] == "/api/events"
    assert seen["body"] == {
        "agentName": "MaxBet",
        "agentAvatar": "",
        "eventType": "bet",
        "marketId": 4,
        "amount": 2.0,
    }


def test_failures_never_raise() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    publisher = _publisher(handler)

    async def run():
        async with publisher:
            return await publisher.publish_event("Shark", "chat", {"message": "hi"})

    assert asyncio.run(run()) is False


def test_unreachable_dashboard_never_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    publisher = _publisher(handler)

    async def run():
        async with publisher:
            return await publisher.publish_stats("Shark", AgentStats())

    assert asyncio.run(run()) is False


def test_without_base_url_only_logs() -> None:
    publisher = DashboardPublisher(DashboardConfig(base_url=""))

    async def run():
        async with publisher:
            return await publisher.publish_event("Shark", "bet", {"marketId": 1})

    assert publisher.enabled is False
    assert asyncio.run(run()) is False
