"""Decision and interaction oracles."""

from avatar_arena.llm.base import (
    DecisionOracle,
    InteractionOracle,
    LLMConfig,
    OracleError,
    OracleUnavailableError,
)
from avatar_arena.llm.providers import PROVIDERS, ProviderSpec, default_model, resolve_api_key
from avatar_arena.llm.fake_llm import FakeLLM
from avatar_arena.llm.mlx_llm import MlxLLM
from avatar_arena.llm.prompts import PromptId, extract_json, parse_prompt_output, render_prompt
from avatar_arena.llm.remote_llm import RemoteLLM

__all__ = [
    "DecisionOracle",
    "InteractionOracle",
    "LLMConfig",
    "OracleError",
    "OracleUnavailableError",
    "PROVIDERS",
    "ProviderSpec",
    "default_model",
    "resolve_api_key",
    "FakeLLM",
    "MlxLLM",
    "RemoteLLM",
    "PromptId",
    "render_prompt",
    "parse_prompt_output",
    "extract_json",
]
