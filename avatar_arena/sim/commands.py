"""Edits requested from outside the tick loop.

Every command is a pure ``WorldSnapshot -> WorldSnapshot`` transform meant
to be passed to ``WorldStore.apply``; each one records its outcome in the
event log.
"""

from __future__ import annotations

import json
import random
from typing import Any, Mapping

from avatar_arena.sim.contracts import (
    ArenaObject,
    AvatarState,
    BoardSize,
    Eyesight,
    LogLevel,
    Obstacle,
    SimulationSettings,
    Vector2,
    WorldSnapshot,
)
from avatar_arena.sim.world_state import (
    DEFAULT_SYSTEM_PROMPT,
    EYESIGHT_ANGLE,
    MAX_AVATARS,
    MIN_AVATARS,
    append_log,
    default_settings,
    generate_color,
    generate_id,
    now_ms,
    release_conversations,
    replace_avatar,
)

MIN_BOARD_SIDE = 100.0
DEFAULT_OBSTACLE_SIZE = Vector2(x=20, y=20)
NEW_OBJECT_DESCRIPTION = "A new object"
FALLBACK_OBJECT_DESCRIPTION = "An object"


def add_avatar(
    world: WorldSnapshot,
    *,
    now: int | None = None,
    rng: random.Random | None = None,
) -> WorldSnapshot:
    if len(world.avatars) >= MAX_AVATARS:
        return append_log(
            world,
            "Cannot add more avatars (limit reached).",
            LogLevel.WARNING,
            now=now,
        )
    rng = rng or random.Random()
    board = world.simulation.board_size
    avatar = AvatarState(
        id=generate_id("avatar"),
        position=Vector2(x=rng.random() * board.width, y=rng.random() * board.height),
        orientation=rng.random() * 360,
        settings=default_settings(),
        color=generate_color(len(world.avatars)),
    )
    world = world.model_copy(update={"avatars": world.avatars + (avatar,)})
    return append_log(world, f"Avatar {avatar.id} added.", now=now)


def remove_avatar(
    world: WorldSnapshot, avatar_id: str, *, now: int | None = None
) -> WorldSnapshot:
    if world.avatar(avatar_id) is None:
        return append_log(
            world, f"Avatar {avatar_id} not found.", LogLevel.WARNING, now=now
        )
    if len(world.avatars) <= MIN_AVATARS:
        return append_log(
            world,
            f"Cannot remove avatar {avatar_id}, minimum of {MIN_AVATARS} required.",
            LogLevel.WARNING,
            now=now,
        )
    timestamp = now_ms() if now is None else now
    world = append_log(world, f"Avatar {avatar_id} removed.", now=timestamp)
    world, ended = release_conversations(world, avatar_id, now=timestamp)
    for conversation_id in ended:
        world = append_log(
            world,
            f"Ending conversation {conversation_id} due to avatar {avatar_id} removal.",
            now=timestamp,
        )
    avatars = tuple(a for a in world.avatars if a.id != avatar_id)
    return world.model_copy(update={"avatars": avatars})


def update_avatar_settings(
    world: WorldSnapshot,
    avatar_id: str,
    updates: Mapping[str, Any],
    *,
    now: int | None = None,
) -> WorldSnapshot:
    avatar = world.avatar(avatar_id)
    if avatar is None:
        return append_log(
            world, f"Avatar {avatar_id} not found.", LogLevel.WARNING, now=now
        )
    merged = avatar.settings.model_dump()
    for key, value in updates.items():
        if key == "eyesight":
            if isinstance(value, Eyesight):
                value = value.model_dump()
            value = {**merged["eyesight"], **dict(value)}
        merged[key] = value
    merged["eyesight"]["angle"] = EYESIGHT_ANGLE
    settings = type(avatar.settings).model_validate(merged)
    world = replace_avatar(world, avatar.model_copy(update={"settings": settings}))
    return append_log(
        world,
        f"Avatar {avatar_id} settings updated: {json.dumps(sorted(updates))}",
        avatar_id=avatar_id,
        now=now,
    )


def reset_system_prompt(
    world: WorldSnapshot, avatar_id: str, *, now: int | None = None
) -> WorldSnapshot:
    return update_avatar_settings(
        world, avatar_id, {"system_prompt": DEFAULT_SYSTEM_PROMPT}, now=now
    )


def add_object(
    world: WorldSnapshot,
    position: Vector2,
    description: str = NEW_OBJECT_DESCRIPTION,
    *,
    now: int | None = None,
) -> WorldSnapshot:
    obj = ArenaObject(
        id=generate_id("object"),
        position=position,
        description=description or FALLBACK_OBJECT_DESCRIPTION,
    )
    world = world.model_copy(update={"objects": world.objects + (obj,)})
    return append_log(
        world,
        f"Object {obj.id} added at ({position.x:.0f}, {position.y:.0f}).",
        now=now,
    )


def remove_object(
    world: WorldSnapshot, object_id: str, *, now: int | None = None
) -> WorldSnapshot:
    objects = tuple(o for o in world.objects if o.id != object_id)
    world = world.model_copy(update={"objects": objects})
    return append_log(world, f"Object {object_id} removed.", now=now)


def update_object_description(
    world: WorldSnapshot,
    object_id: str,
    description: str,
    *,
    now: int | None = None,
) -> WorldSnapshot:
    text = description or FALLBACK_OBJECT_DESCRIPTION
    objects = tuple(
        o.model_copy(update={"description": text}) if o.id == object_id else o
        for o in world.objects
    )
    world = world.model_copy(update={"objects": objects})
    return append_log(world, f"Object {object_id} description updated.", now=now)


def add_obstacle(
    world: WorldSnapshot,
    position: Vector2,
    size: Vector2 = DEFAULT_OBSTACLE_SIZE,
    *,
    now: int | None = None,
) -> WorldSnapshot:
    obstacle = Obstacle(id=generate_id("obstacle"), position=position, size=size)
    world = world.model_copy(update={"obstacles": world.obstacles + (obstacle,)})
    return append_log(
        world,
        f"Obstacle {obstacle.id} added at ({position.x:.0f}, {position.y:.0f}).",
        now=now,
    )


def remove_obstacle(
    world: WorldSnapshot, obstacle_id: str, *, now: int | None = None
) -> WorldSnapshot:
    obstacles = tuple(o for o in world.obstacles if o.id != obstacle_id)
    world = world.model_copy(update={"obstacles": obstacles})
    return append_log(world, f"Obstacle {obstacle_id} removed.", now=now)


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def resize_board(
    world: WorldSnapshot,
    width: float,
    height: float,
    *,
    now: int | None = None,
) -> WorldSnapshot:
    """Resize the board and pull every entity back inside it.

    Obstacles whose top-left corner lies at or beyond the new edges are
    dropped; the rest keep their corner clamped into the board and may
    overhang it.
    """
    width = max(MIN_BOARD_SIDE, width)
    height = max(MIN_BOARD_SIDE, height)

    def inside(point: Vector2) -> Vector2:
        x, y = _clamp(point.x, 0, width), _clamp(point.y, 0, height)
        if (x, y) == (point.x, point.y):
            return point
        return Vector2(x=x, y=y)

    avatars = tuple(
        a.model_copy(update={"position": inside(a.position)}) for a in world.avatars
    )
    objects = tuple(
        o.model_copy(update={"position": inside(o.position)}) for o in world.objects
    )
    obstacles = []
    for obstacle in world.obstacles:
        if obstacle.position.x >= width or obstacle.position.y >= height:
            continue
        obstacles.append(
            obstacle.model_copy(update={"position": inside(obstacle.position)})
        )

    simulation = world.simulation.model_copy(
        update={"board_size": BoardSize(width=width, height=height)}
    )
    world = world.model_copy(
        update={
            "simulation": simulation,
            "avatars": avatars,
            "objects": objects,
            "obstacles": tuple(obstacles),
        }
    )
    return append_log(
        world, f"Board resized to {width:g}x{height:g}. Entities adjusted.", now=now
    )


def update_simulation_settings(
    world: WorldSnapshot, *, now: int | None = None, **changes: Any
) -> WorldSnapshot:
    merged = {**world.simulation.model_dump(), **changes}
    simulation = SimulationSettings.model_validate(merged)
    world = world.model_copy(update={"simulation": simulation})
    described = json.dumps(
        {key: getattr(simulation, key) for key in changes}, default=str
    )
    return append_log(world, f"Simulation settings updated: {described}", now=now)


def set_running(world: WorldSnapshot, running: bool) -> WorldSnapshot:
    if world.running == running:
        return world
    return world.model_copy(update={"running": running})
