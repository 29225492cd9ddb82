"""One object bundling a world store, its clock and the edit commands."""

from __future__ import annotations

import asyncio
import logging
import random
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

from avatar_arena.db.world_file import load_world, save_world
from avatar_arena.llm.base import DecisionOracle, InteractionOracle
from avatar_arena.sim import commands
from avatar_arena.sim.contracts import LogLevel, Vector2, WorldSnapshot
from avatar_arena.sim.geometry import OcclusionMode
from avatar_arena.sim.tick_loop import SimulationClock
from avatar_arena.sim.world_state import WorldStore, build_initial_world, now_ms

logger = logging.getLogger(__name__)


class Arena:
    def __init__(
        self,
        oracle: DecisionOracle,
        interaction_oracle: InteractionOracle | None = None,
        *,
        world: WorldSnapshot | None = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        occlusion: OcclusionMode = OcclusionMode.EXACT,
        rng: random.Random | None = None,
    ) -> None:
        self.store = WorldStore(world or build_initial_world(clock()))
        self.clock = SimulationClock(
            self.store,
            oracle,
            interaction_oracle,
            clock=clock,
            sleep=sleep,
            occlusion=occlusion,
        )
        self._now = clock
        self._rng = rng or random.Random()

    @classmethod
    def load(
        cls,
        path: Path,
        oracle: DecisionOracle,
        interaction_oracle: InteractionOracle | None = None,
        **kwargs: Any,
    ) -> "Arena":
        clock = kwargs.get("clock", now_ms)
        world = load_world(path, now=clock())
        return cls(oracle, interaction_oracle, world=world, **kwargs)

    @property
    def state(self) -> WorldSnapshot:
        return self.store.snapshot()

    def save(self, path: Path) -> Path:
        return save_world(path, self.state)

    def start(self) -> asyncio.Task:
        return self.clock.start()

    def pause(self) -> None:
        self.clock.pause()

    def toggle(self) -> None:
        self.clock.toggle()

    def reset(self) -> WorldSnapshot:
        self.pause()
        fresh = build_initial_world(self._now())
        self.store.apply(lambda _: fresh)
        return self.store.log("Simulation reset to initial state.", LogLevel.WARNING)

    def log(self, message: str, level: LogLevel = LogLevel.INFO) -> WorldSnapshot:
        return self.store.log(message, level)

    def add_avatar(self) -> WorldSnapshot:
        return self.store.apply(
            lambda world: commands.add_avatar(world, now=self._now(), rng=self._rng)
        )

    def remove_avatar(self, avatar_id: str) -> WorldSnapshot:
        return self.store.apply(
            lambda world: commands.remove_avatar(world, avatar_id, now=self._now())
        )

    def update_avatar_settings(
        self, avatar_id: str, updates: Mapping[str, Any]
    ) -> WorldSnapshot:
        return self.store.apply(
            lambda world: commands.update_avatar_settings(
                world, avatar_id, updates, now=self._now()
            )
        )

    def reset_system_prompt(self, avatar_id: str) -> WorldSnapshot:
        return self.store.apply(
            lambda world: commands.reset_system_prompt(world, avatar_id, now=self._now())
        )

    def add_object(self, position: Vector2, description: str | None = None) -> WorldSnapshot:
        text = commands.NEW_OBJECT_DESCRIPTION if description is None else description
        return self.store.apply(
            lambda world: commands.add_object(world, position, text, now=self._now())
        )

    def remove_object(self, object_id: str) -> WorldSnapshot:
        return self.store.apply(
            lambda world: commands.remove_object(world, object_id, now=self._now())
        )

    def update_object_description(self, object_id: str, description: str) -> WorldSnapshot:
        return self.store.apply(
            lambda world: commands.update_object_description(
                world, object_id, description, now=self._now()
            )
        )

    def add_obstacle(
        self, position: Vector2, size: Vector2 = commands.DEFAULT_OBSTACLE_SIZE
    ) -> WorldSnapshot:
        return self.store.apply(
            lambda world: commands.add_obstacle(world, position, size, now=self._now())
        )

    def remove_obstacle(self, obstacle_id: str) -> WorldSnapshot:
        return self.store.apply(
            lambda world: commands.remove_obstacle(world, obstacle_id, now=self._now())
        )

    def resize_board(self, width: float, height: float) -> WorldSnapshot:
        return self.store.apply(
            lambda world: commands.resize_board(world, width, height, now=self._now())
        )

    def update_simulation_settings(self, **changes: Any) -> WorldSnapshot:
        return self.store.apply(
            lambda world: commands.update_simulation_settings(
                world, now=self._now(), **changes
            )
        )
