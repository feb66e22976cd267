"""One running agent: its ledger, wallet and action dispatch."""

from __future__ import annotations

import logging
from typing import Any

import logfire

from crowdcast.models import (
    ActionProposal,
    AgentContext,
    AgentProfile,
    AgentStats,
    BetAction,
    ChatAction,
    OpportunitySnapshot,
    ReplyAction,
    WagerRecord,
)
from crowdcast.observability import best_effort
from crowdcast.services.dashboard import DashboardPublisher
from crowdcast.services.market import MarketClient
from crowdcast.services.wallet import WalletClient
from crowdcast.storage.ledger import Ledger, settle_wager

logger = logging.getLogger(__name__)

_RESOLUTION_EVENTS = {"won": "win", "lost": "loss", "voided": "void"}


class Participant:
    """Owns one agent's ledger. Only this object writes to it."""

    def __init__(
        self,
        profile: AgentProfile,
        ledger: Ledger,
        wallet: WalletClient,
        market: MarketClient,
        publisher: DashboardPublisher,
    ):
        self.profile = profile
        self.ledger = ledger
        self.wallet = wallet
        self.market = market
        self.publisher = publisher
        self.log = logging.getLogger(f"{__name__}.{profile.name}")

    @property
    def name(self) -> str:
        return self.profile.name

    @property
    def account_id(self) -> str:
        return self.profile.account_id

    async def publish(self, event_type: str, payload: dict[str, Any] | None = None) -> None:
        with best_effort(f"[{self.name}] publish {event_type}"):
            await self.publisher.publish_event(self.name, event_type, payload)

    async def publish_error(self, stage: str, error: Exception) -> None:
        await self.publish("error", {"stage": stage, "message": str(error)})

    async def gather_context(self) -> AgentContext:
        balance = await self.wallet.get_available_balance()
        return AgentContext(
            profile=self.profile,
            balance=balance,
            pending=self.ledger.pending_wagers(),
            stats=self.ledger.stats(),
        )

    async def check_resolutions(self) -> int:
        """Settle pending wagers whose opportunity has left "active".

        A failed check leaves the wager pending; the next cycle retries it.
        """
        resolved = 0
        for wager in self.ledger.pending_wagers():
            try:
                opportunity = await self.market.get_opportunity(wager.opportunity_id)
                if opportunity is None or opportunity.is_active:
                    continue
                state, pnl = settle_wager(opportunity, wager.outcome, wager.amount)
                if state == "pending":
                    continue
                record = self.ledger.resolve_wager(wager.opportunity_id, state, pnl)
            except Exception as e:
                self.log.warning(
                    f"Resolution check for #{wager.opportunity_id} failed: {e}"
                )
                await self.publish_error("resolution", e)
                continue

            if record is None:
                continue
            resolved += 1
            self._settle_funds(record)
            self.log.info(
                f"{state.upper()} #{record.opportunity_id}: {record.pnl:+.2f}"
            )
            await self.publish(
                _RESOLUTION_EVENTS[state],
                {"marketId": record.opportunity_id, "pnl": record.pnl},
            )
        return resolved

    def _settle_funds(self, record: WagerRecord) -> None:
        if record.state == "won":
            self.wallet.credit(record.amount + record.pnl)
        elif record.state == "voided":
            self.wallet.credit(record.amount)

    async def execute(
        self, action: ActionProposal, snapshot: OpportunitySnapshot | None = None
    ) -> None:
        """Carry out one validated action. Collaborator errors propagate."""
        with logfire.span("execute action", agent=self.name, type=action.type):
            if isinstance(action, BetAction):
                await self._place_bet(action, snapshot)
            elif isinstance(action, ReplyAction):
                await self._post(action, reply_to=action.reply_to)
            elif isinstance(action, ChatAction):
                await self._post(action)

    async def _place_bet(
        self, action: BetAction, snapshot: OpportunitySnapshot | None
    ) -> None:
        odds = None
        if snapshot and snapshot.probabilities and action.outcome < len(snapshot.probabilities):
            odds = snapshot.probabilities[action.outcome]

        await self.wallet.place_wager(action.opportunity_id, action.outcome, action.amount)
        self.ledger.record_wager(
            action.opportunity_id, action.outcome, action.amount, odds, action.reason
        )
        self.log.info(
            f"BET {action.amount:.2f} on #{action.opportunity_id}, outcome {action.outcome}"
        )
        await self.publish(
            "bet",
            {
                "marketId": action.opportunity_id,
                "outcome": action.outcome,
                "amount": action.amount,
                "message": action.reason,
            },
        )

    async def _post(
        self, action: ChatAction | ReplyAction, reply_to: int | str | None = None
    ) -> None:
        await self.market.send_message(
            action.opportunity_id, self.account_id, action.message, reply_to
        )
        self.ledger.record_chat(action.opportunity_id, action.message, reply_to)
        self.log.info(f"{action.type.upper()} #{action.opportunity_id}: {action.message[:60]!r}")
        payload: dict[str, Any] = {
            "marketId": action.opportunity_id,
            "message": action.message,
        }
        if reply_to is not None:
            payload["metadata"] = {"replyTo": reply_to}
        await self.publish(action.type, payload)

    async def reconcile(self) -> int:
        """Rebuild an empty ledger from the authority's record of our wagers."""
        if self.ledger.stats().total:
            return 0
        wagers = await self.market.get_user_wagers(self.account_id)
        if not wagers:
            return 0
        opportunities = await self.market.list_opportunities()
        imported = self.ledger.reconcile_from_authority(wagers, opportunities)
        if imported:
            await self.publish("sync", {"imported": imported})
        return imported

    async def publish_stats(self, cycle_count: int = 0) -> AgentStats | None:
        with best_effort(f"[{self.name}] publish stats"):
            stats = self.ledger.stats()
            extra: dict[str, Any] = {"accountId": self.account_id, "cycleCount": cycle_count}
            with best_effort(f"[{self.name}] balance for stats"):
                extra["balance"] = await self.wallet.get_available_balance()
            await self.publisher.publish_stats(self.name, stats, **extra)
            return stats
        return None
