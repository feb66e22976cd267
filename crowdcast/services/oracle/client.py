from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic_ai import Agent, RunContext
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from crowdcast.config import OracleConfig
from crowdcast.llm_providers import get_model_string

from .exceptions import OracleTransportError
from .parsing import parse_json_object

logger = logging.getLogger(__name__)


@dataclass
class OracleRequest:
    """One structured call: system framing, situation prompt and sampling."""

    system: str
    prompt: str
    model: str = ""
    temperature: float = 0.7
    max_tokens: int = 2000
    web_search: bool = False


def _create_oracle_agent() -> Agent[OracleRequest, str]:
    agent: Agent[OracleRequest, str] = Agent(
        output_type=str,
        deps_type=OracleRequest,
    )

    @agent.system_prompt
    def system_prompt(ctx: RunContext[OracleRequest]) -> str:
        return ctx.deps.system

    return agent


class OracleClient:
    """Reasoning oracle over an OpenAI-compatible chat endpoint.

    Returns parsed JSON objects. Transport failures raise OracleTransportError
    and unrepairable text raises OracleParseError.
    """

    def __init__(
        self,
        config: OracleConfig | None = None,
        api_key: str = "",
        model: Model | None = None,
    ):
        self.config = config or OracleConfig()
        self._agent = _create_oracle_agent()
        self._model_override = model
        self._provider: OpenAIProvider | None = None
        self._http_client: httpx.AsyncClient | None = None
        if model is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
            self._provider = OpenAIProvider(
                base_url=self.config.base_url,
                api_key=api_key or "missing",
                http_client=self._http_client,
            )
        logger.info(
            f"Initialized OracleClient (base_url={self.config.base_url}, "
            f"override={'yes' if model else 'no'})"
        )

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
            logger.info("Closed OracleClient")

    def _model_for(self, name: str) -> Model:
        if self._model_override is not None:
            return self._model_override
        assert self._provider is not None
        return OpenAIChatModel(get_model_string(name), provider=self._provider)

    async def complete(self, request: OracleRequest) -> str:
        settings = ModelSettings(
            temperature=request.temperature,
            max_tokens=request.max_tokens,
        )
        if request.web_search:
            settings["extra_body"] = {"web_search": True}

        try:
            result = await self._agent.run(
                request.prompt,
                deps=request,
                model=self._model_for(request.model),
                model_settings=settings,
            )
        except (AgentRunError, httpx.HTTPError) as e:
            raise OracleTransportError(f"Oracle call failed: {e}") from e
        return result.output

    async def complete_json(self, request: OracleRequest) -> dict[str, Any]:
        text = await self.complete(request)
        return parse_json_object(text)
