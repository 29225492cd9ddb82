import asyncio

from avatar_arena.llm.base import OracleUnavailableError
from avatar_arena.llm.fake_llm import FakeLLM
from avatar_arena.sim.contracts import LogLevel, Vector2
from avatar_arena.sim.scheduler import due_avatar_ids, request_decision
from avatar_arena.sim.world_state import WorldStore, build_initial_world

NOW = 5_000_000


def test_only_avatars_past_their_decision_time_are_due() -> None:
    world = build_initial_world(now=NOW)
    first, second = world.avatars
    world = world.model_copy(
        update={
            "avatars": (
                first.model_copy(update={"next_decision_time": NOW}),
                second.model_copy(update={"next_decision_time": NOW + 1}),
            )
        }
    )

    assert due_avatar_ids(world, NOW) == [first.id]
    assert due_avatar_ids(world, NOW + 1) == [first.id, second.id]


def test_successful_decision_is_applied() -> None:
    store = WorldStore(build_initial_world(now=NOW))
    avatar_id = store.snapshot().avatars[0].id
    oracle = FakeLLM()

    after = asyncio.run(
        request_decision(store, avatar_id, oracle=oracle, clock=lambda: NOW)
    )

    assert after.avatar(avatar_id).position == Vector2(x=60, y=50)
    assert after.avatar(avatar_id).next_decision_time == NOW + 1000
    assert f"You are Avatar {avatar_id}" in oracle.prompts[0]


def test_oracle_failure_becomes_one_second_idle() -> None:
    store = WorldStore(build_initial_world(now=NOW))
    avatar_id = store.snapshot().avatars[0].id

    after = asyncio.run(
        request_decision(store, avatar_id, oracle=FailingOracle(), clock=lambda: NOW)
    )

    avatar = after.avatar(avatar_id)
    assert avatar.current_action is None
    assert avatar.next_decision_time == NOW + 1000
    assert avatar.thought == "Error occurred during decision making: no API key"
    errors = [entry for entry in after.logs if entry.level == LogLevel.ERROR]
    assert errors[-1].message == f"Error getting decision for {avatar_id}: no API key"


def test_malformed_output_is_coerced_not_raised() -> None:
    store = WorldStore(build_initial_world(now=NOW))
    avatar_id = store.snapshot().avatars[0].id

    after = asyncio.run(
        request_decision(
            store, avatar_id, oracle=StaticOracle({"action": "fly"}), clock=lambda: NOW
        )
    )

    assert after.avatar(avatar_id).next_decision_time == NOW + 1500
    assert after.avatar(avatar_id).thought.startswith(
        "Oracle failed to produce a usable decision"
    )


def test_request_for_removed_avatar_is_a_no_op() -> None:
    store = WorldStore(build_initial_world(now=NOW))
    before = store.snapshot()

    after = asyncio.run(
        request_decision(store, "avatar-missing", oracle=FailingOracle(), clock=lambda: NOW)
    )

    assert after is before


class FailingOracle:
    async def decide(self, request):
        raise OracleUnavailableError("no API key")


class StaticOracle:
    def __init__(self, payload) -> None:
        self.payload = payload

    async def decide(self, request):
        return self.payload
