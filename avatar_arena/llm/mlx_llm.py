"""mlx-lm adapter for real local runs."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Any

from avatar_arena.llm.base import LLMConfig, OracleError, OracleUnavailableError
from avatar_arena.llm.prompts import (
    PromptId,
    extract_json,
    parse_prompt_output,
    render_prompt,
)
from avatar_arena.sim.contracts import (
    DecisionRequest,
    InteractionRequest,
    InteractionResult,
)


@dataclass
class MlxLLM:
    """Serves every avatar from one local model, whatever provider it names."""

    config: LLMConfig
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        try:
            from mlx_lm import load
        except ImportError as exc:
            raise OracleUnavailableError(
                "mlx-lm is not installed; install the 'mlx' extra"
            ) from exc

        self._model, self._tokenizer = load(self.config.model_id)

    async def decide(self, request: DecisionRequest) -> dict[str, Any]:
        response = await self._generate(render_prompt(PromptId.DECIDE, request))
        parsed = extract_json(response)
        if parsed is None:
            raise OracleError("local model returned no JSON object")
        return parsed

    async def react(self, request: InteractionRequest) -> InteractionResult:
        response = await self._generate(render_prompt(PromptId.INTERACT, request))
        parsed = parse_prompt_output(PromptId.INTERACT, response)
        if isinstance(parsed, InteractionResult):
            return parsed
        # Small local models often answer in plain prose.
        reaction = response.strip()
        if not reaction:
            raise OracleError("local model returned an empty reaction")
        return InteractionResult(reaction=reaction)

    async def _generate(self, prompt: str) -> str:
        return await asyncio.to_thread(self._generate_blocking, prompt)

    def _generate_blocking(self, prompt: str) -> str:
        from mlx_lm import generate

        # mlx models are not safe to drive from several threads at once.
        with self._lock:
            return generate(
                self._model,
                self._tokenizer,
                prompt=prompt,
                max_tokens=self.config.max_tokens,
            )
