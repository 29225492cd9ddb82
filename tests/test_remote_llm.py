import asyncio
from types import SimpleNamespace

import pytest

from avatar_arena.llm.base import LLMConfig, OracleError, OracleUnavailableError
from avatar_arena.llm.remote_llm import RemoteLLM
from avatar_arena.sim.contracts import InteractionRequest
from avatar_arena.sim.perception import build_decision_request
from avatar_arena.sim.world_state import build_initial_world


def test_client_requires_known_provider_and_key(monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    llm = RemoteLLM()

    with pytest.raises(OracleUnavailableError):
        llm.client_for("nowhere", "key")
    with pytest.raises(OracleUnavailableError):
        llm.client_for("openai", None)


def test_clients_are_cached_per_provider_and_key(monkeypatch) -> None:
    monkeypatch.setenv("OPENROUTER_API_KEY", "env-key")
    llm = RemoteLLM()

    first = llm.client_for("openrouter", None)

    assert llm.client_for("openrouter", "") is first
    assert llm.client_for("openrouter", "other-key") is not first
    assert str(first.base_url).startswith("https://openrouter.ai/api/v1")


def test_decide_returns_parsed_json_and_uses_model_override() -> None:
    completions = _StubCompletions('{"action": "move", "parameters": {"distance": 5}}')
    llm = _with_stub(RemoteLLM(config=LLMConfig(model_id="gpt-4o-mini")), completions)
    request = _decision_request()

    result = asyncio.run(llm.decide(request))

    assert result == {"action": "move", "parameters": {"distance": 5}}
    assert completions.calls[0]["model"] == "gpt-4o-mini"
    assert completions.calls[0]["response_format"] == {"type": "json_object"}


def test_decide_without_json_raises() -> None:
    llm = _with_stub(RemoteLLM(), _StubCompletions("I would rather not."))

    with pytest.raises(OracleError):
        asyncio.run(llm.decide(_decision_request()))


def test_react_requires_reaction_text() -> None:
    good = _with_stub(RemoteLLM(), _StubCompletions('{"reaction": "Pretty."}'))
    bad = _with_stub(RemoteLLM(), _StubCompletions('{"feeling": "meh"}'))
    request = InteractionRequest(
        object_id="object-1",
        object_description="A lamp.",
        system_prompt="You are curious.",
        provider="openai",
        model="gpt-4o",
        api_key="test-key",
    )

    assert asyncio.run(good.react(request)).reaction == "Pretty."
    with pytest.raises(OracleError):
        asyncio.run(bad.react(request))


class _StubCompletions:
    def __init__(self, content: str) -> None:
        self.content = content
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _with_stub(llm: RemoteLLM, completions: _StubCompletions) -> RemoteLLM:
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    llm._clients[("openai", "test-key")] = client
    return llm


def _decision_request():
    world = build_initial_world(now=1_000)
    avatar = world.avatars[0]
    request = build_decision_request(world, avatar)
    return request.model_copy(update={"api_key": "test-key"})
