"""Known oracle providers, their models and OpenAI-compatible endpoints."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    base_url: str | None
    api_key_env: str | None
    models: tuple[str, ...]


PROVIDERS: dict[str, ProviderSpec] = {
    "google": ProviderSpec(
        name="google",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        api_key_env="GOOGLE_API_KEY",
        models=(
            "gemini-2.0-flash-lite",
            "gemini-2.0-flash",
            "gemini-1.5-flash-latest",
            "gemini-1.5-pro-latest",
        ),
    ),
    "openai": ProviderSpec(
        name="openai",
        base_url=None,
        api_key_env="OPENAI_API_KEY",
        models=("gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"),
    ),
    "openrouter": ProviderSpec(
        name="openrouter",
        base_url="https://openrouter.ai/api/v1",
        api_key_env="OPENROUTER_API_KEY",
        models=(
            "deepseek/deepseek-chat-v3-0324:free",
            "amazon/nova-micro-v1",
            "mistralai/mistral-7b-instruct",
            "google/gemma-7b-it",
        ),
    ),
}


def default_model(provider: str) -> str:
    spec = PROVIDERS.get(provider)
    if spec is None or not spec.models:
        return "gpt-3.5-turbo"
    return spec.models[0]


def resolve_api_key(provider: str, explicit: str | None = None) -> str | None:
    """Prefer the avatar's own credential, then the provider's env variable."""
    if explicit:
        return explicit
    spec = PROVIDERS.get(provider)
    if spec is None or spec.api_key_env is None:
        return None
    return os.getenv(spec.api_key_env) or None
