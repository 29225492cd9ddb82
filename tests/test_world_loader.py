import json
from pathlib import Path

from avatar_arena.db.world_file import load_world, save_world
from avatar_arena.sim.contracts import (
    ActionKind,
    Decision,
    DecisionParameters,
    LogLevel,
    SimulationMode,
)
from avatar_arena.sim.resolver import transition
from avatar_arena.sim.world_loader import (
    INVALID_MESSAGE,
    LOADED_MESSAGE,
    dump_world,
    restore_world,
)
from avatar_arena.sim.world_state import build_initial_world, check_invariants

NOW = 3_000_000


def test_dump_leaves_out_runtime_fields() -> None:
    world = build_initial_world(now=NOW)
    avatar_id = world.avatars[0].id
    world = transition(
        world,
        avatar_id,
        Decision(action=ActionKind.MOVE, parameters=DecisionParameters(distance=5)),
        now=NOW,
    ).model_copy(update={"running": True})

    data = dump_world(world)

    saved = data["avatars"][0]
    for key in (
        "current_action",
        "conversation_target",
        "thought",
        "next_decision_time",
        "last_action_time",
    ):
        assert key not in saved
    assert "logs" not in data
    assert "running" not in data
    assert saved["position"] == {"x": 55.0, "y": 50.0}


def test_round_trip_restores_a_paused_world() -> None:
    world = build_initial_world(now=NOW).model_copy(update={"running": True})

    restored = restore_world(json.loads(json.dumps(dump_world(world))), now=NOW + 1)

    assert not restored.running
    assert [a.id for a in restored.avatars] == [a.id for a in world.avatars]
    assert [a.position for a in restored.avatars] == [a.position for a in world.avatars]
    assert restored.objects == world.objects
    assert restored.obstacles == world.obstacles
    assert restored.simulation == world.simulation
    assert [entry.message for entry in restored.logs] == [LOADED_MESSAGE]
    assert all(a.next_decision_time == 0 for a in restored.avatars)


def test_restore_fills_defaults_and_forces_eyesight_angle() -> None:
    data = {
        "avatars": [
            {"position": {"x": 1, "y": 2}, "settings": {"eyesight": {"radius": 40, "angle": 60}}},
            {
                "id": "avatar-77",
                "position": {"x": 3, "y": 4},
                "settings": {"provider": "google", "model": "gemini-2.0-flash"},
                "thought": "stale",
            },
        ],
        "simulation": {"mode": "turn-based"},
    }

    world = restore_world(data, now=NOW)

    first, second = world.avatars
    assert first.id.startswith("avatar-")
    assert first.color.startswith("hsl(")
    assert first.settings.eyesight.radius == 40
    assert first.settings.eyesight.angle == 180
    assert first.settings.system_prompt
    assert second.settings.provider == "google"
    assert second.thought is None
    assert world.simulation.mode == SimulationMode.TURN_BASED
    assert world.simulation.board_size.width == 500


def test_invalid_data_resets_to_default_world() -> None:
    for data in (None, [], {"avatars": "nope"}, {"avatars": [{"position": {"x": 0, "y": 0}}]}):
        world = restore_world(data, now=NOW)

        assert len(world.avatars) == 2
        assert world.logs[-1].message == INVALID_MESSAGE
        assert world.logs[-1].level == LogLevel.WARNING


def test_active_conversations_are_relinked_on_load() -> None:
    world = build_initial_world(now=NOW)
    first, second = (a.id for a in world.avatars)
    world = transition(
        world,
        first,
        Decision(
            action=ActionKind.INITIATE_CONVERSATION,
            parameters=DecisionParameters(target_id=second, message="Hi"),
        ),
        now=NOW,
    )

    restored = restore_world(dump_world(world), now=NOW)

    assert restored.avatar(first).conversation_target == second
    assert restored.avatar(second).conversation_target == first
    assert check_invariants(restored) == []


def test_conversations_with_missing_avatars_are_ended_on_load() -> None:
    data = dump_world(build_initial_world(now=NOW))
    data["conversations"] = [
        {
            "id": "conversation-5",
            "participants": [data["avatars"][0]["id"], "avatar-gone"],
            "messages": [],
            "start_time": NOW,
        }
    ]

    restored = restore_world(data, now=NOW + 3)

    assert restored.conversations[0].end_time == NOW + 3
    assert all(a.conversation_target is None for a in restored.avatars)
    assert check_invariants(restored) == []


def test_save_and_load_world_file(tmp_path: Path) -> None:
    path = tmp_path / "worlds" / "arena.json"
    world = build_initial_world(now=NOW)

    save_world(path, world)
    loaded = load_world(path, now=NOW)

    assert [a.id for a in loaded.avatars] == [a.id for a in world.avatars]
    assert loaded.logs[-1].message == LOADED_MESSAGE


def test_missing_or_broken_world_file_starts_fresh(tmp_path: Path) -> None:
    missing = load_world(tmp_path / "missing.json", now=NOW)
    broken_path = tmp_path / "broken.json"
    broken_path.write_text("{not json", encoding="utf-8")
    broken = load_world(broken_path, now=NOW)

    assert missing.logs[-1].level == LogLevel.INFO
    assert missing.logs[-1].message == "No saved state found, starting fresh."
    assert broken.logs[-1].level == LogLevel.ERROR
    assert len(broken.avatars) == 2
    assert not broken_path.exists()


def test_invalid_world_file_is_discarded(tmp_path: Path) -> None:
    path = tmp_path / "arena.json"
    saved = {"avatars": [{"position": {"x": 1, "y": 1}}]}
    path.write_text(json.dumps(saved), encoding="utf-8")

    world = load_world(path, now=NOW)

    assert world.logs[-1].message == INVALID_MESSAGE
    assert world.logs[-1].level == LogLevel.WARNING
    assert not path.exists()
