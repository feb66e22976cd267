from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from crowdcast.config import MarketConfig

from .exceptions import MarketAPIError, MarketNotFoundError
from .models import ACTIVE, AuthoritativeWager, ChatMessage, Opportunity

logger = logging.getLogger(__name__)


def _items(data: Any, key: str) -> list[dict[str, Any]]:
    """Endpoints answer with either a bare list or ``{key: [...]}``."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get(key) or []
    return []


class MarketClient:
    def __init__(
        self,
        config: MarketConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or MarketConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        logger.info(f"Initialized MarketClient (base_url={self.config.base_url})")

    async def __aenter__(self) -> MarketClient:
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url.rstrip("/") + "/",
            timeout=self.config.timeout_seconds,
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
            logger.info("Closed MarketClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("MarketClient must be used as async context manager")
        return self._client

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        retry_count = 0
        last_error: Exception | None = None

        while retry_count < self.config.max_retries:
            try:
                response = await self.client.request(
                    method=method,
                    url=endpoint.lstrip("/"),
                    params=params,
                    json=json_data,
                )

                if response.status_code == 404:
                    raise MarketNotFoundError(
                        f"Resource not found: {endpoint}", status_code=404
                    )
                elif response.status_code == 429 or response.status_code >= 500:
                    wait_time = 2 ** retry_count
                    logger.warning(
                        f"Market API {response.status_code} on {endpoint}, "
                        f"retrying in {wait_time}s..."
                    )
                    last_error = MarketAPIError(
                        f"HTTP {response.status_code}", status_code=response.status_code
                    )
                    retry_count += 1
                    if retry_count < self.config.max_retries:
                        await asyncio.sleep(wait_time)
                    continue
                elif response.status_code >= 400:
                    raise MarketAPIError(
                        f"API {method} {endpoint}: {response.status_code} "
                        f"{response.text[:200]}",
                        status_code=response.status_code,
                    )

                return response.json()

            except httpx.TimeoutException as e:
                last_error = e
                retry_count += 1
                if retry_count < self.config.max_retries:
                    logger.warning(f"Timeout, retrying ({retry_count})...")
                    await asyncio.sleep(1)

            except httpx.RequestError as e:
                last_error = e
                logger.error(f"Network error: {e}")
                break

        raise MarketAPIError(
            f"Request {method} {endpoint} failed after {retry_count} retries: {last_error}"
        )

    async def list_opportunities(
        self, status: str | None = None, limit: int | None = None
    ) -> list[Opportunity]:
        params: dict[str, Any] = {}
        if status:
            params["status"] = status
        if limit:
            params["limit"] = limit
        data = await self._request("GET", "markets", params=params or None)
        return [
            Opportunity.from_api(m, self.config.units_per_token)
            for m in _items(data, "markets")
        ]

    async def list_active_opportunities(self) -> list[Opportunity]:
        return await self.list_opportunities(status=ACTIVE)

    async def get_opportunity(self, opportunity_id: int) -> Opportunity | None:
        try:
            data = await self._request("GET", f"markets/{opportunity_id}")
        except MarketNotFoundError:
            return None
        if not data:
            return None
        return Opportunity.from_api(data.get("market", data), self.config.units_per_token)

    async def get_chat(self, opportunity_id: int, limit: int = 10) -> list[ChatMessage]:
        """Chat transcript for an opportunity, most recent last."""
        data = await self._request(
            "GET", f"markets/{opportunity_id}/chat", params={"limit": limit}
        )
        messages = [ChatMessage.from_api(m) for m in _items(data, "messages")]
        if messages and all(m.created_at for m in messages):
            messages.sort(key=lambda m: m.created_at)
        return messages[-limit:]

    async def get_odds_vector(self, opportunity_id: int) -> list[float] | None:
        data = await self._request("GET", f"markets/{opportunity_id}/odds")
        odds = data.get("odds") if isinstance(data, dict) else data
        if not odds:
            return None
        try:
            return [float(o) for o in odds]
        except (TypeError, ValueError):
            logger.warning(f"Unusable odds for #{opportunity_id}: {odds!r}")
            return None

    async def send_message(
        self,
        opportunity_id: int,
        sender_id: str,
        text: str,
        reply_to: int | str | None = None,
    ) -> dict[str, Any]:
        payload = {"accountId": sender_id, "message": text, "replyTo": reply_to}
        logger.info(f"Posting to #{opportunity_id} as {sender_id}")
        data = await self._request(
            "POST", f"markets/{opportunity_id}/chat", json_data=payload
        )
        return data if isinstance(data, dict) else {}

    async def get_user_wagers(self, account_id: str) -> list[AuthoritativeWager]:
        """Authoritative wager history for an account; unparseable rows are skipped."""
        data = await self._request("GET", f"user/{account_id}/bets")
        wagers: list[AuthoritativeWager] = []
        for row in _items(data, "bets"):
            try:
                wagers.append(AuthoritativeWager.from_api(row, self.config.units_per_token))
            except (TypeError, ValueError, KeyError, AttributeError) as e:
                logger.warning(f"Skipping unparseable wager for {account_id}: {row!r} ({e})")
        return wagers
