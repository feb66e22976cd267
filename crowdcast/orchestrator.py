"""Cycle orchestrator: one shared snapshot, one oracle call, paced dispatch."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime
from typing import Any, Literal

import logfire
from pydantic import BaseModel, Field

from crowdcast.agents.participant import Participant
from crowdcast.agents.profiles import ledger_filename
from crowdcast.agents.researcher import Researcher
from crowdcast.config import OrchestratorConfig, Settings
from crowdcast.decisions.batch import BatchedDecisionClient
from crowdcast.models import (
    AgentContext,
    AgentDecision,
    AgentProfile,
    BalanceSnapshot,
    OpportunitySnapshot,
    ResearchRecord,
    implied_probabilities,
    utc_now,
)
from crowdcast.observability import best_effort
from crowdcast.pacing import Pacer
from crowdcast.services.dashboard import DashboardPublisher
from crowdcast.services.market import MarketClient, Opportunity
from crowdcast.services.oracle import OracleClient
from crowdcast.services.wallet import WalletClient
from crowdcast.storage.ledger import Ledger
from crowdcast.storage.research import ResearchCache

logger = logging.getLogger(__name__)

ORCHESTRATOR = "orchestrator"

CycleStatus = Literal[
    "running",
    "no_opportunities",
    "no_context",
    "oracle_failed",
    "crashed",
    "completed",
]


class CycleReport(BaseModel):
    cycle: int
    status: CycleStatus = "running"
    started_at: datetime = Field(default_factory=utc_now)
    opportunities: int = 0
    researched: int = 0
    resolved: int = 0
    agents_decided: int = 0
    actions_executed: int = 0
    actions_failed: int = 0
    errors: list[str] = Field(default_factory=list)


class Orchestrator:
    """Drives every participant through the same sequential cycle.

    Single-threaded: nothing inside a cycle runs concurrently, and a stop
    request is honoured only between cycles.
    """

    def __init__(
        self,
        participants: Sequence[Participant],
        market: MarketClient,
        decisions: BatchedDecisionClient,
        research_cache: ResearchCache,
        publisher: DashboardPublisher,
        pacer: Pacer | None = None,
        config: OrchestratorConfig | None = None,
        researcher: Researcher | None = None,
        chat_limit: int = 10,
    ):
        self.participants = list(participants)
        self.market = market
        self.decisions = decisions
        self.research_cache = research_cache
        self.publisher = publisher
        self.pacer = pacer or Pacer()
        self.config = config or OrchestratorConfig()
        self.researcher = researcher
        self.chat_limit = chat_limit

        self.cycle_count = 0
        self.started_at = utc_now()
        self.balances: dict[str, BalanceSnapshot] = {}
        self.last_report: CycleReport | None = None
        self._stopping = False

    # -- lifecycle ---------------------------------------------------------

    def stop(self) -> None:
        """Request a stop; takes effect at the next cycle boundary."""
        logger.info("Stop requested; finishing current cycle")
        self._stopping = True

    @property
    def stopping(self) -> bool:
        return self._stopping

    async def run_forever(self, max_cycles: int | None = None) -> None:
        if self.config.reconcile_on_startup:
            await self.reconcile_all()

        cycles = 0
        while not self._stopping:
            try:
                await self.run_cycle()
            except Exception as e:
                logger.error(f"Cycle #{self.cycle_count} crashed: {e}", exc_info=True)
                await self._publish_event("error", {"stage": "cycle", "message": str(e)})

            cycles += 1
            if self._stopping or (max_cycles is not None and cycles >= max_cycles):
                break

            seconds = await self.pacer.jitter(
                self.config.cycle_min_minutes * 60, self.config.cycle_max_minutes * 60
            )
            logger.info(f"Slept {seconds / 60:.1f} min")

        logger.info(f"Orchestrator stopped after {self.cycle_count} cycles")

    async def reconcile_all(self) -> dict[str, int]:
        """Backfill every empty ledger from the authority; failures are isolated."""
        results: dict[str, int] = {}
        for participant in self.participants:
            try:
                results[participant.name] = await participant.reconcile()
            except Exception as e:
                logger.error(f"[{participant.name}] Reconciliation failed: {e}")
                await participant.publish_error("reconcile", e)
        return results

    # -- one cycle ---------------------------------------------------------

    async def run_cycle(self) -> CycleReport:
        self.cycle_count += 1
        report = CycleReport(cycle=self.cycle_count)
        self.last_report = report
        logger.info(f"--- Cycle #{self.cycle_count} ---")

        try:
            with logfire.span("cycle", cycle=self.cycle_count):
                await self._run_steps(report)
        except Exception as e:
            report.status = "crashed"
            self._note(report, f"cycle: {e}")
            raise
        finally:
            await self.publish_all_stats()
            await self._publish_event("cycle", report.model_dump(mode="json"))
        logfire.info(
            "Cycle finished",
            cycle=report.cycle,
            status=report.status,
            actions=report.actions_executed,
        )
        return report

    async def _run_steps(self, report: CycleReport) -> None:
        opportunities = await self._snapshot(report)
        report.opportunities = len(opportunities)
        if not opportunities:
            logger.info("No active opportunities")
            report.status = "no_opportunities"
            return

        snapshots = await self._enrich(opportunities, report)
        shown = snapshots[: self.config.max_opportunities]

        report.researched = await self._refresh_research(shown, report)
        research = self._load_research(report)

        for participant in self.participants:
            try:
                report.resolved += await participant.check_resolutions()
            except Exception as e:
                self._note(report, f"[{participant.name}] resolutions: {e}")
                await participant.publish_error("resolution", e)

        await self.monitor_balances(report)

        contexts = await self._gather_contexts(report)
        if not contexts:
            logger.error("No agent produced a context; skipping decisions")
            report.status = "no_context"
            return

        logger.info(f"One oracle call for {len(contexts)} agents")
        try:
            decisions = await self.decisions.decide(contexts, snapshots, research)
        except Exception as e:
            self._note(report, f"oracle: {e}")
            report.status = "oracle_failed"
            await self._publish_event("error", {"stage": "decision", "message": str(e)})
            return

        report.agents_decided = len(decisions)
        await self._dispatch(contexts, decisions, snapshots, report)
        report.status = "completed"

    async def _snapshot(self, report: CycleReport) -> list[Opportunity]:
        try:
            return await self.market.list_active_opportunities()
        except Exception as e:
            self._note(report, f"snapshot: {e}")
            await self._publish_event("error", {"stage": "snapshot", "message": str(e)})
            return []

    async def _enrich(
        self, opportunities: list[Opportunity], report: CycleReport
    ) -> list[OpportunitySnapshot]:
        """Attach chat and implied odds to the top opportunities.

        A failed fetch leaves that opportunity without chat or odds and is
        noted on the cycle report.
        """
        snapshots = [OpportunitySnapshot.from_opportunity(o) for o in opportunities]
        limit = self.config.max_opportunities
        for index, snapshot in enumerate(snapshots[:limit]):
            update: dict[str, Any] = {}
            try:
                update["chat"] = tuple(
                    await self.market.get_chat(snapshot.id, self.chat_limit)
                )
            except Exception as e:
                self._note(report, f"chat #{snapshot.id}: {e}")
            try:
                update["probabilities"] = implied_probabilities(
                    await self.market.get_odds_vector(snapshot.id)
                )
            except Exception as e:
                self._note(report, f"odds #{snapshot.id}: {e}")
            if update.get("probabilities") is not None:
                update["probabilities"] = tuple(update["probabilities"])
            snapshots[index] = snapshot.model_copy(update=update)
        return snapshots

    async def _refresh_research(
        self, shown: list[OpportunitySnapshot], report: CycleReport
    ) -> int:
        if self.researcher is None:
            return 0
        try:
            return await self.researcher.refresh(shown)
        except Exception as e:
            self._note(report, f"research: {e}")
            return 0

    def _load_research(self, report: CycleReport) -> dict[int, ResearchRecord]:
        try:
            return self.research_cache.current_by_opportunity()
        except Exception as e:
            self._note(report, f"research load: {e}")
            return {}

    async def _gather_contexts(self, report: CycleReport) -> list[AgentContext]:
        contexts: list[AgentContext] = []
        for participant in self.participants:
            try:
                contexts.append(await participant.gather_context())
            except Exception as e:
                self._note(report, f"[{participant.name}] context: {e}")
                await participant.publish_error("context", e)
        return contexts

    async def _dispatch(
        self,
        contexts: list[AgentContext],
        decisions: dict[str, AgentDecision],
        snapshots: list[OpportunitySnapshot],
        report: CycleReport,
    ) -> None:
        by_name = {p.name: p for p in self.participants}
        by_id = {s.id: s for s in snapshots}

        for ctx in contexts:
            participant = by_name[ctx.name]
            decision = decisions.get(ctx.name) or AgentDecision()
            if decision.reasoning:
                participant.log.info(f"Thinking: {decision.reasoning}")
            if not decision.actions:
                participant.log.info("Decided to do nothing")
                continue

            await self.pacer.jitter(0, self.config.agent_delay_max_seconds)
            for action in decision.actions:
                try:
                    await participant.execute(action, by_id.get(action.opportunity_id))
                    report.actions_executed += 1
                except Exception as e:
                    report.actions_failed += 1
                    self._note(report, f"[{ctx.name}] {action.type}: {e}")
                    await participant.publish_error("dispatch", e)
                await self.pacer.jitter(
                    self.config.action_delay_min_seconds,
                    self.config.action_delay_max_seconds,
                )

    # -- reporting ---------------------------------------------------------

    async def monitor_balances(self, report: CycleReport) -> None:
        for participant in self.participants:
            try:
                balance = await participant.wallet.get_available_balance()
            except Exception as e:
                self._note(report, f"[{participant.name}] balance: {e}")
                continue
            low = balance < self.config.low_balance_threshold
            self.balances[participant.name] = BalanceSnapshot(
                account_id=participant.account_id, balance=balance, low=low
            )
            status = "LOW" if low else "ok"
            logger.info(f"  {participant.name}: {balance:.2f} ({status})")
            if low:
                await participant.publish(
                    "low_balance",
                    {"balance": balance, "threshold": self.config.low_balance_threshold},
                )

    async def publish_all_stats(self) -> None:
        for participant in self.participants:
            await participant.publish_stats(self.cycle_count)

    def ledger_summary(self) -> dict[str, dict[str, Any]]:
        summary: dict[str, dict[str, Any]] = {}
        for participant in self.participants:
            with best_effort(f"[{participant.name}] ledger summary"):
                stats = participant.ledger.stats()
                summary[participant.name] = {
                    "accountId": participant.account_id,
                    "wagers": stats.total,
                    "pending": stats.pending,
                    "chatMessages": participant.ledger.chat_count(),
                    "pnl": stats.total_pnl,
                }
        return summary

    def _note(self, report: CycleReport, message: str) -> None:
        logger.warning(message)
        report.errors.append(message)

    async def _publish_event(self, event_type: str, payload: dict[str, Any]) -> None:
        with best_effort(f"publish {event_type}"):
            await self.publisher.publish_event(ORCHESTRATOR, event_type, payload)


@asynccontextmanager
async def open_orchestrator(
    settings: Settings,
    profiles: Sequence[AgentProfile],
    pacer: Pacer | None = None,
) -> AsyncIterator[Orchestrator]:
    """Build every collaborator from settings and close them on exit."""
    if not profiles:
        raise ValueError("At least one agent profile is required")

    async with AsyncExitStack() as stack:
        market = await stack.enter_async_context(MarketClient(settings.market))
        publisher = await stack.enter_async_context(
            DashboardPublisher(
                settings.dashboard,
                secret=settings.dashboard_secret,
                avatars={p.name: p.avatar for p in profiles},
            )
        )
        oracle = OracleClient(settings.oracle, api_key=settings.oracle_api_key)
        stack.push_async_callback(oracle.aclose)
        cache = ResearchCache(settings.research_db_path)
        stack.callback(cache.close)

        participants: list[Participant] = []
        for profile in profiles:
            wallet = await stack.enter_async_context(
                WalletClient(
                    profile.account_id,
                    settings.wallet,
                    token=settings.wallet_gateway_token,
                )
            )
            ledger = Ledger(settings.ledger_dir / ledger_filename(profile), profile.name)
            stack.callback(ledger.close)
            participants.append(Participant(profile, ledger, wallet, market, publisher))

        pacer = pacer or Pacer()
        orch_config = settings.orchestrator
        research_capable = [p for p in participants if p.profile.performs_research]
        if len(research_capable) > 1:
            logger.warning(
                f"{len(research_capable)} research-capable agents; "
                f"only {research_capable[0].name} will research"
            )
        researcher = None
        if research_capable:
            researcher = Researcher(
                research_capable[0],
                oracle,
                cache,
                pacer,
                settings.oracle,
                ttl_minutes=orch_config.research_ttl_minutes,
                delay_seconds=orch_config.research_delay_seconds,
            )

        yield Orchestrator(
            participants,
            market,
            BatchedDecisionClient(
                oracle,
                settings.oracle,
                max_opportunities=orch_config.max_opportunities,
                chat_excerpt=orch_config.chat_excerpt,
            ),
            cache,
            publisher,
            pacer=pacer,
            config=orch_config,
            researcher=researcher,
            chat_limit=settings.market.chat_limit,
        )
