"""Oracle interfaces and shared error types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from avatar_arena.sim.contracts import (
        Decision,
        DecisionRequest,
        InteractionRequest,
        InteractionResult,
    )


class OracleError(RuntimeError):
    """An oracle call failed; the caller decides how to degrade."""


class OracleUnavailableError(OracleError):
    """No backend can serve the request (missing credential, SDK or model)."""


class DecisionOracle(Protocol):
    async def decide(self, request: DecisionRequest) -> Decision | dict[str, Any]:
        """Return one decision for the avatar described by ``request``."""


class InteractionOracle(Protocol):
    async def react(self, request: InteractionRequest) -> InteractionResult:
        """Return the avatar's reaction to an object description."""


@dataclass(frozen=True)
class LLMConfig:
    model_id: str
    timeout_sec: float = 30.0
    max_tokens: int = 400
    temperature: float = 0.7
