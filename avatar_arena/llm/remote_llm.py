"""Remote oracle backed by OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from avatar_arena.llm.base import LLMConfig, OracleError, OracleUnavailableError
from avatar_arena.llm.prompts import (
    PromptId,
    extract_json,
    parse_prompt_output,
    render_prompt,
)
from avatar_arena.llm.providers import PROVIDERS, resolve_api_key
from avatar_arena.sim.contracts import (
    DecisionRequest,
    InteractionRequest,
    InteractionResult,
)

logger = logging.getLogger(__name__)


@dataclass
class RemoteLLM:
    """Routes each request to the provider named in it.

    Clients are cached per (provider, credential). When ``config.model_id``
    is set it overrides the model named by the avatar.
    """

    config: LLMConfig = field(default_factory=lambda: LLMConfig(model_id=""))
    _clients: dict[tuple[str, str], AsyncOpenAI] = field(default_factory=dict)

    async def decide(self, request: DecisionRequest) -> dict[str, Any]:
        prompt = render_prompt(PromptId.DECIDE, request)
        content = await self._complete(
            request.provider, request.model, request.api_key, prompt
        )
        parsed = extract_json(content)
        if parsed is None:
            raise OracleError(f"model returned no JSON object: {content[:120]!r}")
        return parsed

    async def react(self, request: InteractionRequest) -> InteractionResult:
        prompt = render_prompt(PromptId.INTERACT, request)
        content = await self._complete(
            request.provider, request.model, request.api_key, prompt
        )
        parsed = parse_prompt_output(PromptId.INTERACT, content)
        if not isinstance(parsed, InteractionResult):
            raise OracleError("LLM failed to generate an object interaction reaction.")
        return parsed

    def client_for(self, provider: str, api_key: str | None) -> AsyncOpenAI:
        spec = PROVIDERS.get(provider)
        if spec is None:
            raise OracleUnavailableError(f"unknown provider {provider!r}")
        key = resolve_api_key(provider, api_key)
        if not key:
            raise OracleUnavailableError(
                f"no API key for provider {provider!r} (set {spec.api_key_env})"
            )
        cache_key = (provider, key)
        client = self._clients.get(cache_key)
        if client is None:
            client = AsyncOpenAI(
                api_key=key,
                base_url=spec.base_url,
                timeout=self.config.timeout_sec,
                max_retries=0,
            )
            self._clients[cache_key] = client
        return client

    async def _complete(
        self, provider: str, model: str, api_key: str | None, prompt: str
    ) -> str:
        client = self.client_for(provider, api_key)
        model_id = self.config.model_id or model
        logger.debug("Calling %s model %s", provider, model_id)
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(
                    model=model_id,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=self.config.temperature,
                    max_tokens=self.config.max_tokens,
                    response_format={"type": "json_object"},
                ),
                timeout=self.config.timeout_sec,
            )
        except asyncio.TimeoutError as exc:
            raise OracleError(
                f"{provider} did not answer within {self.config.timeout_sec:g}s"
            ) from exc
        except OpenAIError as exc:
            raise OracleError(f"{provider} request failed: {exc}") from exc
        if not response.choices:
            raise OracleError(f"{provider} returned no choices")
        return response.choices[0].message.content or ""
