import asyncio
import random
from pathlib import Path

from avatar_arena.llm.fake_llm import FakeLLM
from avatar_arena.sim.arena import Arena
from avatar_arena.sim.contracts import LogLevel, Vector2
from avatar_arena.sim.world_state import build_initial_world

NOW = 7_000_000


def test_commands_edit_the_shared_world() -> None:
    arena = _arena()

    arena.add_avatar()
    arena.add_object(Vector2(x=200, y=200))
    arena.add_obstacle(Vector2(x=20, y=400))
    arena.update_simulation_settings(time_scale=2.0)

    state = arena.state
    assert len(state.avatars) == 3
    assert state.objects[-1].description == "A new object"
    assert state.obstacles[-1].size == Vector2(x=20, y=20)
    assert state.simulation.time_scale == 2.0
    assert arena.store.version == 4


def test_tick_moves_the_first_avatar() -> None:
    arena = _arena()
    first = arena.state.avatars[0].id

    decided = asyncio.run(arena.clock.tick())

    assert first in decided
    assert arena.state.avatar(first).position == Vector2(x=60, y=50)


def test_reset_restores_initial_world_with_warning() -> None:
    arena = _arena()
    arena.add_avatar()

    state = arena.reset()

    assert len(state.avatars) == 2
    assert not state.running
    assert state.logs[-1].message == "Simulation reset to initial state."
    assert state.logs[-1].level == LogLevel.WARNING


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    arena = _arena()
    arena.add_avatar()
    path = arena.save(tmp_path / "world.json")

    loaded = Arena.load(path, FakeLLM(), clock=lambda: NOW)

    assert [a.id for a in loaded.state.avatars] == [a.id for a in arena.state.avatars]
    assert not loaded.state.running


def _arena() -> Arena:
    return Arena(
        FakeLLM(),
        world=build_initial_world(now=NOW),
        clock=lambda: NOW,
        rng=random.Random(1),
    )
