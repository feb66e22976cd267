"""Refreshes shared research through the web-search-enabled oracle."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import logfire

from crowdcast.agents.participant import Participant
from crowdcast.config import OracleConfig
from crowdcast.decisions.prompts import DEFAULT_RESEARCH_PROMPT, build_research_prompt
from crowdcast.models import OpportunitySnapshot, ResearchFindings
from crowdcast.pacing import Pacer
from crowdcast.services.oracle import OracleClient, OracleRequest
from crowdcast.storage.research import DEFAULT_TTL_MINUTES, ResearchCache

logger = logging.getLogger(__name__)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


class Researcher:
    def __init__(
        self,
        participant: Participant,
        oracle: OracleClient,
        cache: ResearchCache,
        pacer: Pacer,
        config: OracleConfig | None = None,
        ttl_minutes: float = DEFAULT_TTL_MINUTES,
        delay_seconds: float = 2.0,
    ):
        self.participant = participant
        self.oracle = oracle
        self.cache = cache
        self.pacer = pacer
        self.config = config or OracleConfig()
        self.ttl_minutes = ttl_minutes
        self.delay_seconds = delay_seconds

    @property
    def name(self) -> str:
        return self.participant.name

    def _request_for(self, opportunity: OpportunitySnapshot) -> OracleRequest:
        profile = self.participant.profile
        return OracleRequest(
            system=profile.research_prompt or DEFAULT_RESEARCH_PROMPT,
            prompt=build_research_prompt(opportunity),
            model=profile.research_model or self.config.research_model,
            temperature=self.config.research_temperature,
            max_tokens=self.config.research_max_tokens,
            web_search=True,
        )

    async def refresh(self, opportunities: Sequence[OpportunitySnapshot]) -> int:
        """Research every opportunity without a fresh record; return how many.

        Calls are spaced by ``delay_seconds``. A failed opportunity is logged,
        published and skipped.
        """
        refreshed = 0
        attempted = 0
        for opportunity in opportunities:
            if self.cache.is_fresh(opportunity.id, self.ttl_minutes):
                continue
            if not opportunity.question:
                continue

            if attempted:
                await self.pacer.fixed(self.delay_seconds)
            attempted += 1

            logger.info(f"[{self.name}] Researching #{opportunity.id}: {opportunity.question[:60]}")
            try:
                with logfire.span("research", agent=self.name, opportunity=opportunity.id):
                    payload = await self.oracle.complete_json(self._request_for(opportunity))
                    findings = ResearchFindings.model_validate(
                        {
                            "question": opportunity.question,
                            "real_odds": payload.get("realOdds") or payload.get("real_odds") or {},
                            "analysis": _as_text(payload.get("analysis")),
                            "sources": _as_text(payload.get("sources")),
                            "researcher": self.name,
                        }
                    )
                    self.cache.record_research(opportunity.id, findings)
            except Exception as e:
                logger.warning(f"[{self.name}] Research failed for #{opportunity.id}: {e}")
                await self.participant.publish_error("research", e)
                continue

            refreshed += 1
            await self.participant.publish(
                "research",
                {
                    "marketId": opportunity.id,
                    "message": findings.analysis,
                    "metadata": {
                        "realOdds": findings.real_odds.model_dump(),
                        "sources": findings.sources,
                    },
                },
            )
        return refreshed
