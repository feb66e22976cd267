from __future__ import annotations

import logging
from typing import Any

import httpx

from crowdcast.config import DashboardConfig
from crowdcast.models import AgentStats
from crowdcast.observability import best_effort

logger = logging.getLogger(__name__)


class DashboardPublisher:
    """Fire-and-forget push of agent stats and events to the dashboard.

    Neither publish method ever raises. Without a base_url everything is
    logged and nothing is sent.
    """

    def __init__(
        self,
        config: DashboardConfig | None = None,
        secret: str = "",
        avatars: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or DashboardConfig()
        self._secret = secret
        self._avatars = avatars or {}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.config.base_url)

    async def __aenter__(self) -> DashboardPublisher:
        if self.enabled:
            headers = {"X-Agent-Secret": self._secret} if self._secret else {}
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/") + "/",
                timeout=self.config.timeout_seconds,
                headers=headers,
                transport=self._transport,
            )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _post(self, endpoint: str, body: dict[str, Any]) -> bool:
        if self._client is None:
            logger.debug(f"Dashboard {endpoint}: {body}")
            return False
        with best_effort(f"dashboard push {endpoint}"):
            response = await self._client.post(endpoint, json=body)
            response.raise_for_status()
            return True
        return False

    async def publish_stats(
        self, agent_name: str, stats: AgentStats, **extra: Any
    ) -> bool:
        body = {
            "agentName": agent_name,
            "agentAvatar": self._avatars.get(agent_name, ""),
            **stats.to_payload(),
            **extra,
        }
        logger.info(
            f"[{agent_name}] stats: {stats.total} wagers, {stats.won}W/{stats.lost}L, "
            f"PnL {stats.total_pnl:+.2f}"
        )
        return await self._post("api/stats", body)

    async def publish_event(
        self, agent_name: str, event_type: str, payload: dict[str, Any] | None = None
    ) -> bool:
        body = {
            "agentName": agent_name,
            "agentAvatar": self._avatars.get(agent_name, ""),
            "eventType": event_type,
            **(payload or {}),
        }
        return await self._post("api/events", body)
