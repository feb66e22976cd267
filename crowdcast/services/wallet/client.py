from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import uuid4

import httpx

from crowdcast.config import WalletConfig

from .exceptions import WagerRejectedError, WalletError

logger = logging.getLogger(__name__)


class WalletClient:
    """Balance lookups and wager placement for one agent account.

    Paper mode keeps an in-memory balance and never touches the network.
    Otherwise calls go to an HTTP gateway that holds the account keys.
    """

    def __init__(
        self,
        account_id: str,
        config: WalletConfig | None = None,
        token: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.account_id = account_id
        self.config = config or WalletConfig()
        self._token = token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._paper_balance = self.config.paper_balance

        logger.info(
            f"Initialized WalletClient for {account_id} "
            f"(paper_mode={self._paper_enabled()})"
        )

    async def __aenter__(self) -> WalletClient:
        if not self._paper_enabled():
            headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
            self._client = httpx.AsyncClient(
                base_url=self.config.gateway_url.rstrip("/") + "/",
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

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("WalletClient must be used as async context manager")
        return self._client

    def _paper_enabled(self) -> bool:
        return self.config.paper_mode or not self.config.gateway_url

    async def _request(
        self,
        method: str,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
        retry: bool = True,
    ) -> dict[str, Any]:
        attempts = self.config.max_retries if retry else 1
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                response = await self.client.request(method, endpoint, json=json_data)
            except httpx.RequestError as e:
                last_error = e
                logger.warning(f"Wallet gateway unreachable: {e}")
                break

            if response.status_code >= 500 and attempt + 1 < attempts:
                wait_time = 2 ** attempt
                logger.warning(
                    f"Wallet gateway {response.status_code}, retrying in {wait_time}s..."
                )
                await asyncio.sleep(wait_time)
                continue
            if 400 <= response.status_code < 500:
                raise WagerRejectedError(
                    f"Wallet gateway rejected {method} {endpoint}: {response.text[:200]}",
                    status_code=response.status_code,
                )
            if response.status_code >= 500:
                raise WalletError(
                    f"Wallet gateway error {response.status_code}",
                    status_code=response.status_code,
                )
            return response.json()

        raise WalletError(f"Wallet request {method} {endpoint} failed: {last_error}")

    async def get_available_balance(self) -> float:
        if self._paper_enabled():
            return self._paper_balance
        data = await self._request("GET", f"balance/{self.account_id}")
        return float(data.get("balance", 0.0))

    async def place_wager(
        self, opportunity_id: int, outcome: int, amount: float
    ) -> dict[str, Any]:
        """Place a wager. Never retried: a lost response could double-spend."""
        if amount <= 0:
            raise ValueError("Wager amount must be positive")

        if self._paper_enabled():
            if amount > self._paper_balance:
                raise WagerRejectedError(
                    f"Insufficient paper balance: {self._paper_balance:.2f} < {amount:.2f}"
                )
            self._paper_balance -= amount
            receipt = {
                "id": f"paper_{uuid4().hex[:8]}",
                "marketId": opportunity_id,
                "outcome": outcome,
                "amount": amount,
            }
            logger.info(
                f"[PAPER] {self.account_id}: {amount:.2f} on #{opportunity_id} "
                f"outcome {outcome}"
            )
            return receipt

        logger.info(
            f"Placing wager: {self.account_id} {amount:.2f} on #{opportunity_id} "
            f"outcome {outcome}"
        )
        return await self._request(
            "POST",
            "wagers",
            json_data={
                "accountId": self.account_id,
                "marketId": opportunity_id,
                "outcome": outcome,
                "amount": amount,
            },
            retry=False,
        )

    def credit(self, amount: float) -> None:
        """Return settled funds to a paper balance; a no-op against the gateway."""
        if self._paper_enabled() and amount > 0:
            self._paper_balance += amount
