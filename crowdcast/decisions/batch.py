"""One oracle call per cycle that decides for every agent at once."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import logfire

from crowdcast.config import OracleConfig
from crowdcast.decisions.prompts import build_decision_system_prompt, build_situation_prompt
from crowdcast.decisions.validator import validate_actions
from crowdcast.exceptions import MalformedOracleOutputError
from crowdcast.models import AgentContext, AgentDecision, OpportunitySnapshot, ResearchRecord
from crowdcast.services.oracle import OracleClient, OracleRequest

logger = logging.getLogger(__name__)


def demultiplex(
    payload: dict[str, Any],
    contexts: Sequence[AgentContext],
    opportunities: Sequence[OpportunitySnapshot],
) -> dict[str, AgentDecision]:
    """Split a response keyed by agent name into validated per-agent decisions.

    A missing or malformed entry becomes an empty decision for that agent only.
    """
    decisions: dict[str, AgentDecision] = {}
    for ctx in contexts:
        entry = payload.get(ctx.name)
        if entry is None:
            logger.info(f"[{ctx.name}] No entry in oracle response; no actions")
            entry = {}
        elif not isinstance(entry, dict):
            logger.warning(
                str(
                    MalformedOracleOutputError(
                        f"[{ctx.name}] entry is {type(entry).__name__}, expected object"
                    )
                )
            )
            entry = {}

        reasoning = entry.get("reasoning") or ""
        actions = validate_actions(
            entry.get("actions") or [],
            opportunities,
            balance=ctx.balance,
            max_wager=ctx.profile.max_wager,
            agent_name=ctx.name,
        )
        decisions[ctx.name] = AgentDecision(
            reasoning=reasoning if isinstance(reasoning, str) else str(reasoning),
            actions=actions,
        )

    unknown = set(payload) - {ctx.name for ctx in contexts}
    if unknown:
        logger.debug(f"Ignoring oracle entries for unknown agents: {sorted(unknown)}")
    return decisions


class BatchedDecisionClient:
    def __init__(
        self,
        oracle: OracleClient,
        config: OracleConfig | None = None,
        max_opportunities: int = 8,
        chat_excerpt: int = 5,
    ):
        self._oracle = oracle
        self.config = config or OracleConfig()
        self.max_opportunities = max_opportunities
        self.chat_excerpt = chat_excerpt

    def build_request(
        self,
        contexts: Sequence[AgentContext],
        opportunities: Sequence[OpportunitySnapshot],
        research: dict[int, ResearchRecord],
    ) -> OracleRequest:
        return OracleRequest(
            system=build_decision_system_prompt(contexts),
            prompt=build_situation_prompt(
                contexts,
                opportunities[: self.max_opportunities],
                total_active=len(opportunities),
                research=research,
                chat_excerpt=self.chat_excerpt,
            ),
            model=contexts[0].profile.model or self.config.decision_model,
            temperature=self.config.decision_temperature,
            max_tokens=self.config.decision_max_tokens,
        )

    async def decide(
        self,
        contexts: Sequence[AgentContext],
        opportunities: Sequence[OpportunitySnapshot],
        research: dict[int, ResearchRecord],
    ) -> dict[str, AgentDecision]:
        """Ask the oracle once for every agent in ``contexts``.

        Raises OracleTransportError or OracleParseError when the call as a
        whole fails; partial responses degrade per agent instead.
        """
        if not contexts:
            return {}

        request = self.build_request(contexts, opportunities, research)
        with logfire.span(
            "batched decision",
            agents=len(contexts),
            opportunities=len(opportunities),
            model=request.model,
        ):
            payload = await self._oracle.complete_json(request)
            decisions = demultiplex(payload, contexts, opportunities)

        total = sum(len(d.actions) for d in decisions.values())
        logfire.info(
            "Decisions received",
            agents=len(decisions),
            actions=total,
        )
        return decisions
